"""Run event emission service."""

import uuid
from datetime import UTC, datetime
from typing import Any

from phasegate.domain.events import Event, EventKind
from phasegate.domain.interfaces import EventLogInterface
from phasegate.domain.models import (
    Checkpoint,
    ClassifiedRequest,
    ErrorInfo,
    Plan,
    RunStatus,
    TaskSpec,
    TaskStatus,
)


def _error_payload(error: ErrorInfo | None) -> dict[str, Any] | None:
    if error is None:
        return None
    return {
        "error_class": error.error_class,
        "message": error.message[:500],
        "recoverable": error.recoverable,
        "task_id": error.task_id,
        "code": error.code,
    }


class RunEventEmitter:
    """Emits run events to the event log.

    Provides convenience methods for the transitions the State Manager
    applies, handling ID generation and timestamps. Every method returns
    the stored event so the caller can record its sequence number.
    """

    def __init__(self, event_log: EventLogInterface) -> None:
        self._log = event_log

    def _emit(
        self,
        run_id: str,
        kind: EventKind,
        subject: str,
        payload: dict[str, Any] | None = None,
    ) -> Event:
        return self._log.append(
            Event(
                event_id=str(uuid.uuid4()),
                run_id=run_id,
                kind=kind,
                subject=subject,
                payload=payload or {},
                created_at=self._now(),
            )
        )

    def _now(self) -> str:
        return datetime.now(UTC).isoformat()

    def run_created(self, run_id: str, request: ClassifiedRequest) -> Event:
        return self._emit(
            run_id,
            EventKind.RUN_CREATED,
            run_id,
            {
                "text": request.text,
                "request_type": request.request_type,
                "complexity": request.complexity.value,
                "domain_tags": sorted(request.domain_tags),
                "confidence": request.confidence,
                "modules": list(request.modules),
            },
        )

    def run_status(
        self,
        run_id: str,
        current: RunStatus,
        target: RunStatus,
        reason: str | None = None,
        error: ErrorInfo | None = None,
    ) -> Event:
        return self._emit(
            run_id,
            EventKind.RUN_STATUS,
            run_id,
            {
                "from": current.value,
                "to": target.value,
                "reason": reason,
                "error": _error_payload(error),
            },
        )

    def plan_created(self, run_id: str, plan: Plan) -> Event:
        return self._emit(
            run_id,
            EventKind.PLAN_CREATED,
            run_id,
            {
                "version": plan.version,
                "pattern": plan.pattern,
                "basis": plan.basis,
                "phases": {p.phase_id: list(p.task_ids()) for p in plan.phases},
            },
        )

    def phase_entered(self, run_id: str, phase_id: str, index: int) -> Event:
        return self._emit(
            run_id, EventKind.PHASE_ENTERED, phase_id, {"index": index}
        )

    def phase_completed(self, run_id: str, phase_id: str, index: int) -> Event:
        return self._emit(
            run_id, EventKind.PHASE_COMPLETED, phase_id, {"index": index}
        )

    def task_added(self, run_id: str, spec: TaskSpec) -> Event:
        return self._emit(
            run_id,
            EventKind.TASK_ADDED,
            spec.task_id,
            {
                "phase_id": spec.phase_id,
                "producer_id": spec.producer_id,
                "inputs": list(spec.inputs),
                "revision_of": spec.revision_of,
            },
        )

    def task_status(
        self,
        run_id: str,
        task_id: str,
        current: TaskStatus,
        target: TaskStatus,
        attempt: int,
        error: ErrorInfo | None = None,
        artifact_id: str | None = None,
        reason: str = "",
    ) -> Event:
        payload: dict[str, Any] = {
            "from": current.value,
            "to": target.value,
            "attempt": attempt,
        }
        if error is not None:
            payload["error"] = _error_payload(error)
        if artifact_id is not None:
            payload["artifact_id"] = artifact_id
        if reason:
            payload["reason"] = reason
        return self._emit(run_id, EventKind.TASK_STATUS, task_id, payload)

    def task_reset(self, run_id: str, subject: str, payload: dict[str, Any]) -> Event:
        return self._emit(run_id, EventKind.TASK_RESET, subject, payload)

    def artifact_written(
        self, run_id: str, task_id: str, artifact_id: str, schema_id: str, version: int
    ) -> Event:
        return self._emit(
            run_id,
            EventKind.ARTIFACT_WRITTEN,
            task_id,
            {"artifact_id": artifact_id, "schema_id": schema_id, "version": version},
        )

    def checkpoint_raised(self, checkpoint: Checkpoint) -> Event:
        return self._emit(
            checkpoint.run_id,
            EventKind.CHECKPOINT_RAISED,
            checkpoint.checkpoint_id,
            {
                "phase_id": checkpoint.phase_id,
                "checkpoint_type": checkpoint.checkpoint_type.value,
                "blocking": checkpoint.blocking,
                "prompt": checkpoint.prompt,
                "summary": checkpoint.summary[:500],
            },
        )

    def checkpoint_resolved(self, checkpoint: Checkpoint) -> Event:
        return self._emit(
            checkpoint.run_id,
            EventKind.CHECKPOINT_RESOLVED,
            checkpoint.checkpoint_id,
            {
                "phase_id": checkpoint.phase_id,
                "decision": checkpoint.decision.value,
                "payload": checkpoint.payload,
            },
        )

    def cancel_requested(self, run_id: str) -> Event:
        return self._emit(run_id, EventKind.CANCEL_REQUESTED, run_id)
