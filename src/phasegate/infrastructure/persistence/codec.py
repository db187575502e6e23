"""
JSON-compatible (de)serialization for persisted domain objects.

Shared by the in-memory and filesystem adapters so that both round-trip
through the same representation.
"""

import json
from typing import Any

from phasegate.domain.events import Event, EventKind
from phasegate.domain.models import (
    Artifact,
    ArtifactSummary,
    Checkpoint,
    CheckpointRequirement,
    CheckpointType,
    ClassifiedRequest,
    ComplexityTier,
    Decision,
    ErrorInfo,
    PauseReason,
    PhaseSpec,
    Plan,
    RunState,
    RunStatus,
    TaskSpec,
    TaskState,
    TaskStatus,
    ValidationStatus,
)

# =============================================================================
# ARTIFACTS
# =============================================================================


def artifact_to_dict(artifact: Artifact) -> dict[str, Any]:
    return {
        "artifact_id": artifact.artifact_id,
        "run_id": artifact.run_id,
        "phase_id": artifact.phase_id,
        "task_id": artifact.task_id,
        "producer_id": artifact.producer_id,
        "schema_id": artifact.schema_id,
        "version": artifact.version,
        "payload": artifact.payload,
        "created_at": artifact.created_at,
        "validation": artifact.validation.value,
    }


def dict_to_artifact(data: dict[str, Any]) -> Artifact:
    return Artifact(
        artifact_id=data["artifact_id"],
        run_id=data["run_id"],
        phase_id=data["phase_id"],
        task_id=data["task_id"],
        producer_id=data["producer_id"],
        schema_id=data["schema_id"],
        version=data["version"],
        payload=data["payload"],
        created_at=data["created_at"],
        validation=ValidationStatus(data.get("validation", "pending")),
    )


def summarize(artifact: Artifact) -> ArtifactSummary:
    """Project an artifact onto its summary."""
    return ArtifactSummary(
        artifact_id=artifact.artifact_id,
        run_id=artifact.run_id,
        phase_id=artifact.phase_id,
        task_id=artifact.task_id,
        producer_id=artifact.producer_id,
        schema_id=artifact.schema_id,
        version=artifact.version,
        created_at=artifact.created_at,
        validation=artifact.validation,
        payload_keys=tuple(sorted(artifact.payload)),
        payload_bytes=len(json.dumps(artifact.payload, sort_keys=True).encode("utf-8")),
    )


def summary_to_dict(summary: ArtifactSummary) -> dict[str, Any]:
    return {
        "artifact_id": summary.artifact_id,
        "run_id": summary.run_id,
        "phase_id": summary.phase_id,
        "task_id": summary.task_id,
        "producer_id": summary.producer_id,
        "schema_id": summary.schema_id,
        "version": summary.version,
        "created_at": summary.created_at,
        "validation": summary.validation.value,
        "payload_keys": list(summary.payload_keys),
        "payload_bytes": summary.payload_bytes,
    }


def dict_to_summary(data: dict[str, Any]) -> ArtifactSummary:
    return ArtifactSummary(
        artifact_id=data["artifact_id"],
        run_id=data["run_id"],
        phase_id=data["phase_id"],
        task_id=data["task_id"],
        producer_id=data["producer_id"],
        schema_id=data["schema_id"],
        version=data["version"],
        created_at=data["created_at"],
        validation=ValidationStatus(data.get("validation", "pending")),
        payload_keys=tuple(data.get("payload_keys", ())),
        payload_bytes=data["payload_bytes"],
    )


# =============================================================================
# EVENTS
# =============================================================================


def event_to_dict(event: Event) -> dict[str, Any]:
    return {
        "event_id": event.event_id,
        "run_id": event.run_id,
        "kind": event.kind.value,
        "subject": event.subject,
        "payload": event.payload,
        "created_at": event.created_at,
        "sequence": event.sequence,
    }


def dict_to_event(data: dict[str, Any]) -> Event:
    return Event(
        event_id=data["event_id"],
        run_id=data["run_id"],
        kind=EventKind(data["kind"]),
        subject=data["subject"],
        payload=data.get("payload", {}),
        created_at=data.get("created_at", ""),
        sequence=data.get("sequence", 0),
    )


# =============================================================================
# PLANS
# =============================================================================


def request_to_dict(request: ClassifiedRequest) -> dict[str, Any]:
    return {
        "text": request.text,
        "request_type": request.request_type,
        "complexity": request.complexity.value,
        "domain_tags": sorted(request.domain_tags),
        "confidence": request.confidence,
        "modules": list(request.modules),
    }


def dict_to_request(data: dict[str, Any]) -> ClassifiedRequest:
    return ClassifiedRequest(
        text=data.get("text", ""),
        request_type=data.get("request_type", "feature"),
        complexity=ComplexityTier(data["complexity"]),
        domain_tags=frozenset(data.get("domain_tags", [])),
        confidence=data.get("confidence", 1.0),
        modules=tuple(data.get("modules", [])),
    )


def task_spec_to_dict(spec: TaskSpec) -> dict[str, Any]:
    return {
        "task_id": spec.task_id,
        "phase_id": spec.phase_id,
        "producer_id": spec.producer_id,
        "output_schema": spec.output_schema,
        "inputs": list(spec.inputs),
        "skip_tolerant": spec.skip_tolerant,
        "max_input_bytes": spec.max_input_bytes,
        "max_retries": spec.max_retries,
        "timeout_seconds": spec.timeout_seconds,
        "revision_of": spec.revision_of,
        "instructions": spec.instructions,
    }


def dict_to_task_spec(data: dict[str, Any]) -> TaskSpec:
    return TaskSpec(
        task_id=data["task_id"],
        phase_id=data["phase_id"],
        producer_id=data["producer_id"],
        output_schema=data["output_schema"],
        inputs=tuple(data.get("inputs", [])),
        skip_tolerant=data.get("skip_tolerant", False),
        max_input_bytes=data.get("max_input_bytes"),
        max_retries=data.get("max_retries"),
        timeout_seconds=data.get("timeout_seconds"),
        revision_of=data.get("revision_of"),
        instructions=data.get("instructions", ""),
    )


def plan_to_dict(plan: Plan) -> dict[str, Any]:
    return {
        "version": plan.version,
        "pattern": plan.pattern,
        "phases": [
            {
                "phase_id": phase.phase_id,
                "ordinal": phase.ordinal,
                "tasks": [task_spec_to_dict(t) for t in phase.tasks],
                "concurrent": phase.concurrent,
                "checkpoint": phase.checkpoint.value,
                "checkpoint_type": phase.checkpoint_type.value,
                "checkpoint_prompt": phase.checkpoint_prompt,
                "clarification": phase.clarification,
            }
            for phase in plan.phases
        ],
        "basis": plan.basis,
    }


def dict_to_plan(data: dict[str, Any]) -> Plan:
    return Plan(
        version=data["version"],
        pattern=data.get("pattern"),
        phases=tuple(
            PhaseSpec(
                phase_id=p["phase_id"],
                ordinal=p["ordinal"],
                tasks=tuple(dict_to_task_spec(t) for t in p.get("tasks", [])),
                concurrent=p.get("concurrent", True),
                checkpoint=CheckpointRequirement(p.get("checkpoint", "none")),
                checkpoint_type=CheckpointType(
                    p.get("checkpoint_type", "informational")
                ),
                checkpoint_prompt=p.get("checkpoint_prompt", ""),
                clarification=p.get("clarification", False),
            )
            for p in data["phases"]
        ),
        basis=data.get("basis"),
    )


# =============================================================================
# RUN STATE
# =============================================================================


def error_to_dict(error: ErrorInfo | None) -> dict[str, Any] | None:
    if error is None:
        return None
    return {
        "error_class": error.error_class,
        "message": error.message,
        "recoverable": error.recoverable,
        "task_id": error.task_id,
        "code": error.code,
    }


def dict_to_error(data: dict[str, Any] | None) -> ErrorInfo | None:
    if data is None:
        return None
    return ErrorInfo(
        error_class=data["error_class"],
        message=data["message"],
        recoverable=data.get("recoverable", False),
        task_id=data.get("task_id"),
        code=data.get("code"),
    )


def checkpoint_to_dict(checkpoint: Checkpoint) -> dict[str, Any]:
    return {
        "checkpoint_id": checkpoint.checkpoint_id,
        "run_id": checkpoint.run_id,
        "phase_id": checkpoint.phase_id,
        "checkpoint_type": checkpoint.checkpoint_type.value,
        "blocking": checkpoint.blocking,
        "prompt": checkpoint.prompt,
        "summary": checkpoint.summary,
        "decision": checkpoint.decision.value,
        "payload": checkpoint.payload,
        "created_at": checkpoint.created_at,
        "decided_at": checkpoint.decided_at,
    }


def dict_to_checkpoint(data: dict[str, Any]) -> Checkpoint:
    return Checkpoint(
        checkpoint_id=data["checkpoint_id"],
        run_id=data["run_id"],
        phase_id=data["phase_id"],
        checkpoint_type=CheckpointType(data["checkpoint_type"]),
        blocking=data["blocking"],
        prompt=data["prompt"],
        summary=data.get("summary", ""),
        decision=Decision(data.get("decision", "pending")),
        payload=data.get("payload", {}),
        created_at=data.get("created_at", ""),
        decided_at=data.get("decided_at"),
    )


def run_to_dict(state: RunState) -> dict[str, Any]:
    return {
        "run_id": state.run_id,
        "request": request_to_dict(state.request),
        "created_at": state.created_at,
        "updated_at": state.updated_at,
        "status": state.status.value,
        "pause_reason": state.pause_reason.value if state.pause_reason else None,
        "plans": [plan_to_dict(p) for p in state.plans],
        "phase_index": state.phase_index,
        "entered_phases": list(state.entered_phases),
        # Insertion order matters: revisions are resolved newest-last
        "tasks": [
            {
                "spec": task_spec_to_dict(t.spec),
                "status": t.status.value,
                "attempts": t.attempts,
                "last_error": error_to_dict(t.last_error),
                "artifact_id": t.artifact_id,
                "skipped_reason": t.skipped_reason,
            }
            for t in state.tasks.values()
        ],
        "checkpoints": [checkpoint_to_dict(c) for c in state.checkpoints.values()],
        "cancel_requested": state.cancel_requested,
        "error": error_to_dict(state.error),
        "last_event_seq": state.last_event_seq,
    }


def dict_to_run(data: dict[str, Any]) -> RunState:
    tasks: dict[str, TaskState] = {}
    for t in data.get("tasks", []):
        spec = dict_to_task_spec(t["spec"])
        tasks[spec.task_id] = TaskState(
            spec=spec,
            status=TaskStatus(t["status"]),
            attempts=t.get("attempts", 0),
            last_error=dict_to_error(t.get("last_error")),
            artifact_id=t.get("artifact_id"),
            skipped_reason=t.get("skipped_reason", ""),
        )
    checkpoints = {
        c["checkpoint_id"]: dict_to_checkpoint(c) for c in data.get("checkpoints", [])
    }
    pause_reason = data.get("pause_reason")
    return RunState(
        run_id=data["run_id"],
        request=dict_to_request(data["request"]),
        created_at=data["created_at"],
        updated_at=data.get("updated_at", ""),
        status=RunStatus(data["status"]),
        pause_reason=PauseReason(pause_reason) if pause_reason else None,
        plans=[dict_to_plan(p) for p in data.get("plans", [])],
        phase_index=data.get("phase_index", 0),
        entered_phases=list(data.get("entered_phases", [])),
        tasks=tasks,
        checkpoints=checkpoints,
        cancel_requested=data.get("cancel_requested", False),
        error=dict_to_error(data.get("error")),
        last_event_seq=data.get("last_event_seq", 0),
    )
