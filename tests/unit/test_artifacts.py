from pathlib import Path

import pytest

from sitepilot.exceptions import StorageError
from sitepilot.storage.artifacts import ArtifactStore


@pytest.mark.unit
class TestArtifactStore:
    @pytest.fixture()
    def store(self, tmp_path: Path) -> ArtifactStore:
        return ArtifactStore(root=tmp_path)

    def test_screenshot_path_is_scoped_to_run(self, store: ArtifactStore) -> None:
        path = store.screenshot_path("run-1", "step-1.png")
        assert path == store.root / "run-1" / "step-1.png"

    def test_save_screenshot_writes_under_run(self, store: ArtifactStore) -> None:
        data = b"\x89PNG fake screenshot data"

        saved = store.save_screenshot("run-1", "step-2.png", data)

        assert saved == store.root / "run-1" / "step-2.png"
        assert saved.read_bytes() == data

    def test_runs_do_not_share_files(self, store: ArtifactStore) -> None:
        store.save_screenshot("run-1", "step-1.png", b"x")
        assert not (store.root / "run-2").exists()

    @pytest.mark.parametrize(
        ("run_id", "name"),
        [("../../etc", "passwd"), ("run-1", "../escape.png"), ("run-1", "a/b.png")],
    )
    def test_escaping_locations_rejected(self, store: ArtifactStore, run_id: str, name: str) -> None:
        with pytest.raises(StorageError, match="Invalid artifact location"):
            store.screenshot_path(run_id, name)
