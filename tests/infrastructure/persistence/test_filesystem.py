"""Tests for FilesystemArtifactStore - persistent artifact storage."""

import json
from dataclasses import replace

import pytest

from phasegate.domain.exceptions import ArtifactExistsError, ArtifactNotFound
from phasegate.infrastructure.persistence.filesystem import (
    FilesystemArtifactStore,
    write_json_atomic,
)


@pytest.fixture
def fs_store(tmp_path):  # noqa: ANN001
    """Create a FilesystemArtifactStore in a temporary directory."""
    return FilesystemArtifactStore(tmp_path / "artifacts")


class TestFilesystemArtifactStoreInit:
    """Tests for FilesystemArtifactStore initialization."""

    def test_init_creates_directories(self, tmp_path) -> None:  # noqa: ANN001
        """Initialization creates base and objects directories."""
        _store = FilesystemArtifactStore(tmp_path / "artifacts")

        assert (tmp_path / "artifacts").exists()
        assert (tmp_path / "artifacts" / "objects").exists()

    def test_init_creates_empty_index(self, fs_store) -> None:  # noqa: ANN001
        """A fresh store has an empty index."""
        assert fs_store._index["version"] == "1.0"
        assert fs_store._index["artifacts"] == {}
        assert fs_store._index["keys"] == {}


class TestFilesystemArtifactStorePut:
    """Tests for put()."""

    def test_writes_object_and_index(self, fs_store, tmp_path, sample_artifact) -> None:  # noqa: ANN001
        """The object lands under a prefix directory and the index names it."""
        fs_store.put(sample_artifact)

        object_path = (
            tmp_path / "artifacts" / "objects" / "aa" / f"{sample_artifact.artifact_id}.json"
        )
        assert object_path.exists()
        assert json.loads(object_path.read_text())["payload"] == sample_artifact.payload

        index = json.loads((tmp_path / "artifacts" / "index.json").read_text())
        key = "run-001/requirements/requirements_analyst/requirements_doc/1"
        assert index["keys"][key] == sample_artifact.artifact_id
        assert index["runs"]["run-001"] == [sample_artifact.artifact_id]

    def test_put_is_idempotent(self, fs_store, sample_artifact) -> None:  # noqa: ANN001
        fs_store.put(sample_artifact)

        assert fs_store.put(sample_artifact) == sample_artifact.artifact_id
        assert len(fs_store.list_for_run("run-001")) == 1

    def test_key_cannot_be_overwritten(self, fs_store, sample_artifact) -> None:  # noqa: ANN001
        """Append-only: a second artifact for the same key is refused."""
        fs_store.put(sample_artifact)

        with pytest.raises(ArtifactExistsError):
            fs_store.put(replace(sample_artifact, artifact_id="c" * 64, payload={}))

        assert not fs_store.exists("c" * 64)

    def test_no_temp_files_left(self, fs_store, tmp_path, sample_artifact) -> None:  # noqa: ANN001
        fs_store.put(sample_artifact)

        assert list((tmp_path / "artifacts").rglob("*.tmp")) == []


class TestFilesystemArtifactStoreRead:
    """Tests for reads, including from a reopened store."""

    def test_reopen_reads_from_disk(self, tmp_path, sample_artifact, next_version) -> None:  # noqa: ANN001
        """A new store over the same directory sees earlier artifacts."""
        first = FilesystemArtifactStore(tmp_path / "artifacts")
        first.put(sample_artifact)
        first.put(next_version)

        reopened = FilesystemArtifactStore(tmp_path / "artifacts")

        assert reopened.get(sample_artifact.artifact_id) == sample_artifact
        assert reopened.latest_version(
            "run-001", "requirements", "requirements_analyst", "requirements_doc"
        ) == 2
        assert [s.version for s in reopened.list_for_run("run-001")] == [1, 2]

    def test_summary_size_matches_memory_store(
        self, fs_store, artifact_store, sample_artifact
    ) -> None:  # noqa: ANN001
        """Both stores report the same payload size."""
        fs_store.put(sample_artifact)
        artifact_store.put(sample_artifact)

        assert fs_store.get_summary(sample_artifact.artifact_id) == (
            artifact_store.get_summary(sample_artifact.artifact_id)
        )

    def test_summary_comes_from_the_index(self, tmp_path, sample_artifact) -> None:  # noqa: ANN001
        """Summaries never open the object file."""
        first = FilesystemArtifactStore(tmp_path / "artifacts")
        first.put(sample_artifact)
        expected = first.get_summary(sample_artifact.artifact_id)
        prefix = sample_artifact.artifact_id[:2]
        (
            tmp_path / "artifacts" / "objects" / prefix
            / f"{sample_artifact.artifact_id}.json"
        ).unlink()

        reopened = FilesystemArtifactStore(tmp_path / "artifacts")

        summary = reopened.get_summary(sample_artifact.artifact_id)
        assert summary == expected
        assert summary.payload_keys == tuple(sorted(sample_artifact.payload))
        assert reopened.list_for_run("run-001") == [expected]
        with pytest.raises(FileNotFoundError):
            reopened.get(sample_artifact.artifact_id)

    def test_missing_artifact(self, fs_store) -> None:  # noqa: ANN001
        with pytest.raises(ArtifactNotFound):
            fs_store.get("f" * 64)
        with pytest.raises(ArtifactNotFound):
            fs_store.get_summary("f" * 64)

    def test_versions_are_per_key(self, fs_store, sample_artifact) -> None:  # noqa: ANN001
        """Another producer's artifacts do not count."""
        fs_store.put(sample_artifact)
        fs_store.put(
            replace(sample_artifact, artifact_id="e" * 64, producer_id="architect")
        )

        assert fs_store.latest_version(
            "run-001", "requirements", "requirements_analyst", "requirements_doc"
        ) == 1
        assert fs_store.latest_version(
            "run-001", "requirements", "architect", "requirements_doc"
        ) == 1
        assert fs_store.latest_version("run-001", "requirements", "nobody", "x") == 0


class TestWriteJsonAtomic:
    """Tests for write_json_atomic()."""

    def test_creates_parents_and_replaces(self, tmp_path) -> None:  # noqa: ANN001
        path = tmp_path / "nested" / "doc.json"

        write_json_atomic(path, {"a": 1})
        write_json_atomic(path, {"a": 2})

        assert json.loads(path.read_text()) == {"a": 2}
        assert not path.with_suffix(".json.tmp").exists()
