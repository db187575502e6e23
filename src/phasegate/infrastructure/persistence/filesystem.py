"""
Filesystem implementation of the Artifact Store.

Provides persistent, append-only storage for artifacts.
"""

import json
import os
import threading
from pathlib import Path
from typing import Any

from phasegate.domain.exceptions import ArtifactExistsError, ArtifactNotFound
from phasegate.domain.interfaces import ArtifactStoreInterface
from phasegate.domain.models import Artifact, ArtifactSummary
from phasegate.infrastructure.persistence.codec import (
    artifact_to_dict,
    dict_to_artifact,
    dict_to_summary,
    summarize,
    summary_to_dict,
)


def write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON to a temp file in the same directory, then replace."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    with open(temp_path, "w") as f:
        json.dump(data, f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.replace(temp_path, path)  # Atomic on POSIX and Windows


class FilesystemArtifactStore(ArtifactStoreInterface):
    """
    Persistent, append-only artifact repository.

    Directory structure:
    {base_dir}/
        objects/
            {prefix}/{artifact_id}.json
        index.json  # artifact metadata and the key -> artifact_id map
    """

    def __init__(self, base_dir: str | Path):
        self._base_dir = Path(base_dir)
        self._objects_dir = self._base_dir / "objects"
        self._index_path = self._base_dir / "index.json"
        self._cache: dict[str, Artifact] = {}
        self._lock = threading.Lock()
        self._index: dict[str, Any] = self._load_or_create_index()

    def _load_or_create_index(self) -> dict[str, Any]:
        """Load existing index or create new one."""
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._objects_dir.mkdir(parents=True, exist_ok=True)

        if self._index_path.exists():
            with open(self._index_path) as f:
                result: dict[str, Any] = json.load(f)
                return result

        return {"version": "1.0", "artifacts": {}, "keys": {}, "runs": {}}

    @staticmethod
    def _key(
        run_id: str, phase_id: str, producer_id: str, schema_id: str, version: int
    ) -> str:
        return f"{run_id}/{phase_id}/{producer_id}/{schema_id}/{version}"

    def _get_object_path(self, artifact_id: str) -> Path:
        """Get filesystem path for artifact (using prefix directories)."""
        prefix = artifact_id[:2]
        return self._objects_dir / prefix / f"{artifact_id}.json"

    def put(self, artifact: Artifact) -> str:
        """
        Append artifact to the store (immutable, append-only).

        Args:
            artifact: The artifact to store

        Returns:
            The artifact_id

        Raises:
            ArtifactExistsError: If a different artifact holds the same key
        """
        with self._lock:
            if artifact.artifact_id in self._index["artifacts"]:
                return artifact.artifact_id

            key = self._key(
                artifact.run_id,
                artifact.phase_id,
                artifact.producer_id,
                artifact.schema_id,
                artifact.version,
            )
            if key in self._index["keys"]:
                raise ArtifactExistsError(
                    f"Artifact {self._index['keys'][key]} already stored for {key}"
                )

            # 1. Write the object before it becomes reachable from the index
            data = artifact_to_dict(artifact)
            object_path = self._get_object_path(artifact.artifact_id)
            write_json_atomic(object_path, data)

            # 2. Update index; summaries are served from here without the object
            self._index["artifacts"][artifact.artifact_id] = {
                "path": str(object_path.relative_to(self._base_dir)),
                "key": key,
                **summary_to_dict(summarize(artifact)),
            }
            self._index["keys"][key] = artifact.artifact_id
            self._index["runs"].setdefault(artifact.run_id, []).append(
                artifact.artifact_id
            )

            # 3. Atomically update index
            write_json_atomic(self._index_path, self._index)

            self._cache[artifact.artifact_id] = artifact
            return artifact.artifact_id

    def get(self, artifact_id: str) -> Artifact:
        """Retrieve artifact by ID (cache-first)."""
        if artifact_id in self._cache:
            return self._cache[artifact_id]

        if artifact_id not in self._index["artifacts"]:
            raise ArtifactNotFound(f"Artifact not found: {artifact_id}")

        rel_path = self._index["artifacts"][artifact_id]["path"]
        with open(self._base_dir / rel_path) as f:
            data = json.load(f)

        artifact = dict_to_artifact(data)
        self._cache[artifact_id] = artifact
        return artifact

    def get_summary(self, artifact_id: str) -> ArtifactSummary:
        """Metadata of an artifact, read from the index alone."""
        if artifact_id not in self._index["artifacts"]:
            raise ArtifactNotFound(f"Artifact not found: {artifact_id}")
        return dict_to_summary(self._index["artifacts"][artifact_id])

    def exists(self, artifact_id: str) -> bool:
        return artifact_id in self._index["artifacts"]

    def latest_version(
        self, run_id: str, phase_id: str, producer_id: str, schema_id: str
    ) -> int:
        prefix = self._key(run_id, phase_id, producer_id, schema_id, 0)[:-1]
        versions = [
            int(key[len(prefix) :])
            for key in self._index["keys"]
            if key.startswith(prefix)
        ]
        return max(versions, default=0)

    def list_for_run(self, run_id: str) -> list[ArtifactSummary]:
        return [self.get_summary(aid) for aid in self._index["runs"].get(run_id, [])]
