"""Run event log models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class EventKind(str, Enum):
    """Kinds of run transitions recorded in the event log."""

    RUN_CREATED = "RUN_CREATED"
    RUN_STATUS = "RUN_STATUS"
    PLAN_CREATED = "PLAN_CREATED"
    PHASE_ENTERED = "PHASE_ENTERED"
    PHASE_COMPLETED = "PHASE_COMPLETED"
    TASK_ADDED = "TASK_ADDED"
    TASK_STATUS = "TASK_STATUS"
    TASK_RESET = "TASK_RESET"
    ARTIFACT_WRITTEN = "ARTIFACT_WRITTEN"
    CHECKPOINT_RAISED = "CHECKPOINT_RAISED"
    CHECKPOINT_RESOLVED = "CHECKPOINT_RESOLVED"
    CANCEL_REQUESTED = "CANCEL_REQUESTED"


@dataclass(frozen=True)
class Event:
    """Single immutable, ordered log entry.

    Sequence numbers are assigned by the event log and increase
    monotonically per run.
    """

    event_id: str
    run_id: str
    kind: EventKind
    subject: str  # run, phase, task or checkpoint id
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""  # ISO 8601
    sequence: int = 0


def attempts_by_task(events: list[Event]) -> dict[str, int]:
    """Count RUNNING transitions per task, as recorded in the log."""
    counts: dict[str, int] = {}
    for event in events:
        if event.kind == EventKind.TASK_STATUS and event.payload.get("to") == "running":
            counts[event.subject] = counts.get(event.subject, 0) + 1
    return counts
