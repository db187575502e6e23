"""
Filesystem implementation of the run store.

One JSON document per run, replaced atomically on every save:

{base_dir}/
    runs/
        {run_id}.json
"""

import json
from pathlib import Path

from phasegate.domain.exceptions import RunNotFound
from phasegate.domain.interfaces import RunStoreInterface
from phasegate.domain.models import RunState
from phasegate.infrastructure.persistence.codec import dict_to_run, run_to_dict
from phasegate.infrastructure.persistence.filesystem import write_json_atomic


class FilesystemRunStore(RunStoreInterface):
    """Durable run records on local disk."""

    def __init__(self, base_dir: str | Path):
        self._runs_dir = Path(base_dir) / "runs"
        self._runs_dir.mkdir(parents=True, exist_ok=True)

    def _get_run_path(self, run_id: str) -> Path:
        return self._runs_dir / f"{run_id}.json"

    def save(self, state: RunState) -> None:
        write_json_atomic(self._get_run_path(state.run_id), run_to_dict(state))

    def load(self, run_id: str) -> RunState:
        path = self._get_run_path(run_id)
        if not path.exists():
            raise RunNotFound(f"Run not found: {run_id}")
        with open(path) as f:
            return dict_to_run(json.load(f))

    def list_runs(self) -> list[str]:
        return sorted(p.stem for p in self._runs_dir.glob("*.json"))
