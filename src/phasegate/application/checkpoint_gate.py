"""Checkpoint Gate: human-approval records that close phases.

Blocking checkpoints suspend the run until a decision arrives, either
synchronously from the approval channel or later through resume().
Informational checkpoints are recorded and approved on the spot.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from phasegate.domain.exceptions import ArtifactNotFound, CheckpointError
from phasegate.domain.models import (
    Checkpoint,
    CheckpointRequirement,
    CheckpointType,
    Decision,
    PhaseSpec,
    Resolution,
    RunState,
    TaskSpec,
    TaskState,
    TaskStatus,
)

if TYPE_CHECKING:
    from phasegate.application.state_manager import StateManager
    from phasegate.domain.interfaces import (
        ApprovalChannelInterface,
        ArtifactStoreInterface,
    )


def run_id_of(checkpoint_id: str) -> str:
    """Checkpoint ids are "<run_id>:<phase_id>:<suffix>"."""
    run_id, sep, _ = checkpoint_id.partition(":")
    if not sep:
        raise CheckpointError(f"Malformed checkpoint id: {checkpoint_id}")
    return run_id


class CheckpointGate:
    """Raises and resolves checkpoints on behalf of the Run Controller."""

    def __init__(
        self,
        state_manager: StateManager,
        artifacts: ArtifactStoreInterface,
        channel: ApprovalChannelInterface | None = None,
    ) -> None:
        """Initialize the gate.

        Args:
            state_manager: Single writer of checkpoint state.
            artifacts: Used to summarize phase outputs for reviewers.
            channel: Where blocking checkpoints are announced. Without one,
                decisions can only arrive through resume().
        """
        self._state = state_manager
        self._artifacts = artifacts
        self._channel = channel

    # =========================================================================
    # RAISE / RESOLVE
    # =========================================================================

    def raise_checkpoint(
        self,
        run_id: str,
        phase_id: str,
        checkpoint_type: CheckpointType,
        prompt: str,
        summary: str | None = None,
        blocking: bool = True,
    ) -> str:
        """Record a checkpoint on a phase.

        Args:
            run_id: Run the phase belongs to.
            phase_id: Phase being closed.
            checkpoint_type: Kind of approval record.
            prompt: Question put to the reviewer.
            summary: What the reviewer is approving (content-agnostic).
            blocking: Whether the phase waits for a decision.

        Returns:
            The checkpoint id.

        Raises:
            CheckpointError: If a review checkpoint has no summary.
        """
        if checkpoint_type == CheckpointType.REVIEW and not summary:
            raise CheckpointError(f"Review checkpoint on '{phase_id}' needs a summary")

        checkpoint = Checkpoint(
            checkpoint_id=f"{run_id}:{phase_id}:{uuid.uuid4().hex[:8]}",
            run_id=run_id,
            phase_id=phase_id,
            checkpoint_type=checkpoint_type,
            blocking=blocking,
            prompt=prompt,
            summary=summary or "",
            created_at=datetime.now(UTC).isoformat(),
        )
        self._state.add_checkpoint(run_id, checkpoint)
        if not blocking:
            self._state.decide_checkpoint(
                run_id, checkpoint.checkpoint_id, Decision.APPROVED, {"auto": True}
            )
        return checkpoint.checkpoint_id

    def resolve(
        self,
        checkpoint_id: str,
        decision: Decision,
        payload: dict[str, Any] | None = None,
    ) -> Checkpoint:
        """Record a decision on a pending checkpoint.

        Raises:
            CheckpointError: If the checkpoint is unknown or already decided.
        """
        return self._state.decide_checkpoint(
            run_id_of(checkpoint_id), checkpoint_id, decision, payload
        )

    def close_phase(self, run: RunState, phase: PhaseSpec) -> tuple[str, Resolution | None]:
        """Raise the checkpoint a finished phase declares.

        Returns:
            The checkpoint id, and the channel's immediate decision for a
            blocking checkpoint (None when the decision will come later).
        """
        blocking = phase.checkpoint == CheckpointRequirement.BLOCKING
        checkpoint_id = self.raise_checkpoint(
            run.run_id,
            phase.phase_id,
            phase.checkpoint_type,
            phase.checkpoint_prompt or f"Approve phase '{phase.phase_id}'?",
            summary=self.summarize(run, phase),
            blocking=blocking,
        )
        if not blocking:
            return checkpoint_id, None
        return checkpoint_id, self.notify(run.run_id, checkpoint_id)

    def reraise(self, checkpoint: Checkpoint) -> tuple[str, Resolution | None]:
        """Open a fresh pending copy of a decided checkpoint."""
        checkpoint_id = self.raise_checkpoint(
            checkpoint.run_id,
            checkpoint.phase_id,
            checkpoint.checkpoint_type,
            checkpoint.prompt,
            summary=checkpoint.summary,
            blocking=checkpoint.blocking,
        )
        return checkpoint_id, self.notify(checkpoint.run_id, checkpoint_id)

    def notify(self, run_id: str, checkpoint_id: str) -> Resolution | None:
        if self._channel is None:
            return None
        checkpoint = self._state.get(run_id).checkpoints[checkpoint_id]
        return self._channel.notify(checkpoint)

    # =========================================================================
    # MODIFY REQUESTED
    # =========================================================================

    def request_revision(
        self, run_id: str, phase: PhaseSpec, payload: dict[str, Any]
    ) -> TaskSpec:
        """Create a new task that revises one of the phase's outputs.

        The revision runs on the original producer with the original inputs
        plus the output being revised, and the modification request as
        instructions. It is a new task, not a retry.

        Raises:
            CheckpointError: If the phase has no task to revise, or several
                and the payload does not name one.
        """
        run = self._state.get(run_id)
        roots = [
            t for t in run.phase_tasks(phase.phase_id) if t.spec.revision_of is None
        ]
        if not roots:
            raise CheckpointError(f"Phase '{phase.phase_id}' has no task to revise")

        requested = payload.get("task_id")
        if requested is None:
            if len(roots) > 1:
                raise CheckpointError(
                    f"Phase '{phase.phase_id}' has {len(roots)} tasks; "
                    "name the one to revise with 'task_id'"
                )
            root = roots[0].spec
        else:
            target = run.tasks.get(requested)
            if target is None or target.spec.phase_id != phase.phase_id:
                raise CheckpointError(
                    f"Task '{requested}' is not part of phase '{phase.phase_id}'"
                )
            root_id = target.spec.revision_of or target.task_id
            root = run.tasks[root_id].spec

        if run.latest_output(root.task_id) is None:
            raise CheckpointError(f"Task '{root.task_id}' has no output to revise")

        count = sum(1 for t in run.tasks.values() if t.spec.revision_of == root.task_id)
        spec = TaskSpec(
            task_id=f"{root.task_id}~rev{count + 1}",
            phase_id=root.phase_id,
            producer_id=root.producer_id,
            output_schema=root.output_schema,
            inputs=root.inputs + (root.task_id,),
            skip_tolerant=root.skip_tolerant,
            max_input_bytes=root.max_input_bytes,
            max_retries=root.max_retries,
            timeout_seconds=root.timeout_seconds,
            revision_of=root.task_id,
            instructions=str(payload.get("request", "")),
        )
        self._state.add_task(run_id, spec)
        return spec

    # =========================================================================
    # SUMMARIES
    # =========================================================================

    def summarize(self, run: RunState, phase: PhaseSpec) -> str:
        """Describe what a reviewer is approving, without reading payloads."""
        if phase.clarification:
            return self._request_summary(run)

        if phase.checkpoint_type == CheckpointType.TERMINAL_SUMMARY:
            tasks = list(run.tasks.values())
            header = f"Run {run.run_id} finished phase '{phase.phase_id}'"
        else:
            tasks = run.phase_tasks(phase.phase_id)
            header = f"Phase '{phase.phase_id}' ({len(tasks)} task(s))"

        return "\n".join([header] + [self._task_line(t) for t in tasks])

    def _task_line(self, task: TaskState) -> str:
        if task.status != TaskStatus.SUCCEEDED or task.artifact_id is None:
            detail = task.status.value
            if task.last_error is not None:
                detail += f" ({task.last_error.error_class}: {task.last_error.message})"
            elif task.skipped_reason:
                detail += f" ({task.skipped_reason})"
            return f"- {task.task_id}: {detail}"
        try:
            summary = self._artifacts.get_summary(task.artifact_id)
        except ArtifactNotFound:
            return f"- {task.task_id}: artifact {task.artifact_id} missing"
        keys = ", ".join(summary.payload_keys) or "(empty)"
        return (
            f"- {task.task_id}: {summary.schema_id} v{summary.version}, "
            f"keys: {keys} ({summary.payload_bytes} bytes)"
        )

    @staticmethod
    def _request_summary(run: RunState) -> str:
        request = run.request
        pattern = run.plan.pattern if run.plan else None
        return "\n".join(
            [
                f"Request: {request.text}",
                f"Type: {request.request_type}",
                f"Complexity: {request.complexity.value}",
                f"Tags: {', '.join(sorted(request.domain_tags)) or '(none)'}",
                f"Confidence: {request.confidence:.2f}",
                f"Pattern: {pattern or 'none matched'}",
            ]
        )
