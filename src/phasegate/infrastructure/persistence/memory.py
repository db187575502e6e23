"""
In-memory implementations of the persistence ports.

Useful for testing and ephemeral runs. The run store keeps serialized
copies, so a second controller built over the same stores sees exactly
what a restarted process would read back from disk.
"""

import json
import threading

from phasegate.domain.events import Event, EventKind
from phasegate.domain.exceptions import (
    ArtifactExistsError,
    ArtifactNotFound,
    RunNotFound,
)
from phasegate.domain.interfaces import (
    ArtifactStoreInterface,
    EventLogInterface,
    RunStoreInterface,
)
from phasegate.domain.models import Artifact, ArtifactSummary, RunState
from phasegate.infrastructure.persistence.codec import (
    dict_to_run,
    run_to_dict,
    summarize,
)

ArtifactKey = tuple[str, str, str, str, int]


def artifact_key(artifact: Artifact) -> ArtifactKey:
    return (
        artifact.run_id,
        artifact.phase_id,
        artifact.producer_id,
        artifact.schema_id,
        artifact.version,
    )


class InMemoryArtifactStore(ArtifactStoreInterface):
    """Simple in-memory artifact store for testing."""

    def __init__(self) -> None:
        self._artifacts: dict[str, Artifact] = {}
        self._summaries: dict[str, ArtifactSummary] = {}
        self._keys: dict[ArtifactKey, str] = {}

    def put(self, artifact: Artifact) -> str:
        if artifact.artifact_id in self._artifacts:
            return artifact.artifact_id
        key = artifact_key(artifact)
        if key in self._keys:
            raise ArtifactExistsError(
                f"Artifact {self._keys[key]} already stored for {key}"
            )
        self._artifacts[artifact.artifact_id] = artifact
        self._summaries[artifact.artifact_id] = summarize(artifact)
        self._keys[key] = artifact.artifact_id
        return artifact.artifact_id

    def get(self, artifact_id: str) -> Artifact:
        if artifact_id not in self._artifacts:
            raise ArtifactNotFound(f"Artifact not found: {artifact_id}")
        return self._artifacts[artifact_id]

    def get_summary(self, artifact_id: str) -> ArtifactSummary:
        if artifact_id not in self._summaries:
            raise ArtifactNotFound(f"Artifact not found: {artifact_id}")
        return self._summaries[artifact_id]

    def exists(self, artifact_id: str) -> bool:
        return artifact_id in self._artifacts

    def latest_version(
        self, run_id: str, phase_id: str, producer_id: str, schema_id: str
    ) -> int:
        versions = [
            key[4]
            for key in self._keys
            if key[:4] == (run_id, phase_id, producer_id, schema_id)
        ]
        return max(versions, default=0)

    def list_for_run(self, run_id: str) -> list[ArtifactSummary]:
        return [s for s in self._summaries.values() if s.run_id == run_id]


class InMemoryRunStore(RunStoreInterface):
    """Run records held as JSON text, never as shared live objects."""

    def __init__(self) -> None:
        self._runs: dict[str, str] = {}

    def save(self, state: RunState) -> None:
        self._runs[state.run_id] = json.dumps(run_to_dict(state))

    def load(self, run_id: str) -> RunState:
        if run_id not in self._runs:
            raise RunNotFound(f"Run not found: {run_id}")
        return dict_to_run(json.loads(self._runs[run_id]))

    def list_runs(self) -> list[str]:
        return sorted(self._runs)


class InMemoryEventLog(EventLogInterface):
    """In-memory event log for testing."""

    def __init__(self) -> None:
        self._events: dict[str, list[Event]] = {}
        self._lock = threading.Lock()

    def append(self, event: Event) -> Event:
        with self._lock:
            events = self._events.setdefault(event.run_id, [])
            stored = Event(
                event_id=event.event_id,
                run_id=event.run_id,
                kind=event.kind,
                subject=event.subject,
                payload=dict(event.payload),
                created_at=event.created_at,
                sequence=len(events) + 1,
            )
            events.append(stored)
            return stored

    def read(
        self,
        run_id: str,
        kind: EventKind | None = None,
        subject: str | None = None,
        after: int = 0,
    ) -> list[Event]:
        with self._lock:
            events = list(self._events.get(run_id, []))
        return [
            e
            for e in events
            if e.sequence > after
            and (kind is None or e.kind == kind)
            and (subject is None or e.subject == subject)
        ]

    def last_sequence(self, run_id: str) -> int:
        with self._lock:
            return len(self._events.get(run_id, []))
