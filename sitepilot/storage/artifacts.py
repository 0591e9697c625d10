"""Screenshot files for test runs, laid out as ``<root>/<run_id>/<name>``."""

from __future__ import annotations

from pathlib import Path

import structlog

from sitepilot.exceptions import StorageError

logger = structlog.get_logger(__name__)


class ArtifactStore:
    def __init__(self, root: Path | None = None) -> None:
        self._root = (root or Path.home() / ".sitepilot" / "artifacts").resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def screenshot_path(self, run_id: str, name: str) -> Path:
        """Path for a run's screenshot; ids or names escaping the root are rejected."""
        path = (self._root / run_id / name).resolve()
        if path.parent.parent != self._root:
            raise StorageError(f"Invalid artifact location: {run_id}/{name}")
        return path

    def save_screenshot(self, run_id: str, name: str, data: bytes) -> Path:
        path = self.screenshot_path(run_id, name)
        path.parent.mkdir(exist_ok=True)
        path.write_bytes(data)
        logger.debug("screenshot_saved", run_id=run_id, name=name, size=len(data))
        return path

