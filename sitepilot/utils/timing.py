"""Wall-clock timing helpers."""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Generator

logger = structlog.get_logger(__name__)


def elapsed_ms(start: float) -> int:
    """Milliseconds elapsed since a ``time.monotonic()`` reading."""
    return int((time.monotonic() - start) * 1000)


@contextmanager
def timed(label: str) -> Generator[dict[str, int], None, None]:
    """Context manager that measures elapsed wall-clock time in milliseconds.

    Usage::

        with timed("step") as t:
            await do_work()
        print(t["elapsed_ms"])
    """
    result: dict[str, int] = {"elapsed_ms": 0}
    start = time.monotonic()
    try:
        yield result
    finally:
        result["elapsed_ms"] = elapsed_ms(start)
        logger.debug("timed", label=label, elapsed_ms=result["elapsed_ms"])
