"""structlog setup for the worker process."""

import logging
import sys

import structlog

# Chatty libraries the worker drives on every job.
_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "asyncio")


def setup_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Route structlog through stdlib logging; JSON when not on a terminal."""
    level = logging.getLevelNamesMapping().get(log_level.upper(), logging.INFO)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    use_json = json_output or not sys.stderr.isatty()
    processors.append(
        structlog.processors.JSONRenderer() if use_json else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level, force=True)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    structlog.contextvars.bind_contextvars(service="sitepilot-worker")
