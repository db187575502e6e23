"""Run Controller: the top-level run state machine.

Drives a run phase by phase until it completes, fails, is cancelled, or
pauses. A paused run is continued by resume(), which always re-enters at
the phase and task recorded in the run record; nothing is restarted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from phasegate.application.scheduler import PhaseOutcome
from phasegate.domain.exceptions import CheckpointError, InvalidTransition, PlanningFailure
from phasegate.domain.graph import downstream_of
from phasegate.domain.models import (
    ClassifiedRequest,
    ComplexityTier,
    Decision,
    ErrorInfo,
    PauseReason,
    PhaseSpec,
    PhaseStatus,
    Resolution,
    RunSnapshot,
    RunState,
    RunStatus,
    TaskStatus,
)
from phasegate.domain.transitions import derive_phase_status

if TYPE_CHECKING:
    from phasegate.application.checkpoint_gate import CheckpointGate
    from phasegate.application.scheduler import PhaseScheduler
    from phasegate.application.state_manager import StateManager
    from phasegate.domain.events import Event, EventKind
    from phasegate.domain.interfaces import RequestClassifierInterface
    from phasegate.domain.planning import Planner

logger = logging.getLogger(__name__)

REPLAYABLE = (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.PAUSED)


class RunController:
    """Application service owning the run lifecycle.

    Coordinates the Planner, Phase Scheduler and Checkpoint Gate; all
    state changes go through the State Manager.
    """

    def __init__(
        self,
        state_manager: StateManager,
        planner: Planner,
        scheduler: PhaseScheduler,
        gate: CheckpointGate,
        classifier: RequestClassifierInterface | None = None,
    ) -> None:
        self._state = state_manager
        self._planner = planner
        self._scheduler = scheduler
        self._gate = gate
        self._classifier = classifier

    # =========================================================================
    # PUBLIC OPERATIONS
    # =========================================================================

    def start(self, request: ClassifiedRequest | str) -> str:
        """Create a run, plan it and drive it until it stops.

        Args:
            request: A classified request, or raw text when a classifier
                is configured.

        Returns:
            The run id.
        """
        if isinstance(request, str):
            if self._classifier is None:
                raise ValueError("A request classifier is required to start from text")
            request = self._classifier.classify(request)

        run_id = self._state.create_run(request).run_id
        if self._plan(run_id):
            self._drive(run_id)
        return run_id

    def status(self, run_id: str) -> RunSnapshot:
        """Raises RunNotFound for unknown runs."""
        return self._state.snapshot(run_id)

    def resume(self, run_id: str, resolution: Resolution | None = None) -> RunSnapshot:
        """Continue a run from exactly where its record says it stopped.

        Finished runs are returned untouched. A run paused on a checkpoint
        stays paused until a decision arrives, either as `resolution` or
        from the approval channel.

        Raises:
            CheckpointError: If the resolution does not fit the pause.
        """
        state = self._state.get(run_id)

        if state.status.is_terminal:
            return self.status(run_id)

        if state.status in (RunStatus.INITIALIZED, RunStatus.PLANNING):
            if self._plan(run_id):
                self._drive(run_id)
        elif state.status == RunStatus.EXECUTING:
            logger.info("Run %s: recovering interrupted execution", run_id)
            self._drive(run_id)
        elif state.pause_reason == PauseReason.NEEDS_RESCOPE:
            self._rescope(run_id, resolution)
        else:
            self._resume_checkpoint(run_id, resolution)

        return self.status(run_id)

    def cancel(self, run_id: str) -> RunSnapshot:
        """Cancel a run: immediately when paused, at the next phase boundary
        when executing. Finished runs are left as they are."""
        state = self._state.get(run_id)
        if state.status.is_terminal:
            return self.status(run_id)
        if state.status == RunStatus.PAUSED:
            self._state.set_run_status(run_id, RunStatus.CANCELLED)
        else:
            self._state.request_cancel(run_id)
            logger.info("Run %s: cancellation requested", run_id)
        return self.status(run_id)

    def replay_from(
        self, run_id: str, phase_id: str, task_id: str | None = None
    ) -> RunSnapshot:
        """Re-run part of a run against its existing plan.

        Resets the named phase (or only the named task and everything that
        depends on it) together with all later phases. Artifacts of earlier
        tasks are reused as they are.

        Raises:
            InvalidTransition: If the run is not completed, failed or paused.
            KeyError: If the phase or task is not in the plan.
        """
        state = self._state.get(run_id)
        if state.status not in REPLAYABLE or state.plan is None:
            raise InvalidTransition(run_id, state.status.value, "replay")

        plan = state.plan
        index = plan.index_of(phase_id)
        reset_phases = plan.phases[index:]

        if task_id is None:
            targets = {tid for p in reset_phases for tid in p.task_ids()}
        else:
            if task_id not in plan.phase(phase_id).task_ids():
                raise KeyError(f"Task '{task_id}' is not in phase '{phase_id}'")
            targets = {task_id} | downstream_of(plan, [task_id])
            targets |= {tid for p in plan.phases[index + 1 :] for tid in p.task_ids()}

        self._state.reset_for_replay(
            run_id, index, [p.phase_id for p in reset_phases], targets
        )
        self._state.set_run_status(run_id, RunStatus.EXECUTING)
        self._drive(run_id)
        return self.status(run_id)

    def events(
        self, run_id: str, kind: EventKind | None = None, subject: str | None = None
    ) -> list[Event]:
        return self._state.events(run_id, kind=kind, subject=subject)

    def list_runs(self) -> list[str]:
        return self._state.list_runs()

    # =========================================================================
    # PLANNING
    # =========================================================================

    def _plan(self, run_id: str) -> bool:
        state = self._state.get(run_id)
        if state.status != RunStatus.PLANNING:
            self._state.set_run_status(run_id, RunStatus.PLANNING)
        if state.plan is None:
            try:
                plan = self._planner.plan(state.request)
            except PlanningFailure as e:
                logger.error("Run %s: planning failed: %s", run_id, e)
                self._fail(run_id, ErrorInfo("PlanningFailure", str(e), code=e.code))
                return False
            self._state.add_plan(run_id, plan)
        self._state.set_run_status(run_id, RunStatus.EXECUTING)
        return True

    def _replan(self, run_id: str, classification: dict[str, Any], basis: str) -> bool:
        state = self._state.get(run_id)
        request = _reclassify(state.request, classification)
        self._state.set_run_status(run_id, RunStatus.PLANNING)
        try:
            plan = self._planner.replan(
                state.plan, request, keep=state.phase_index + 1, basis=basis
            )
        except PlanningFailure as e:
            logger.error("Run %s: re-planning failed: %s", run_id, e)
            self._fail(run_id, ErrorInfo("PlanningFailure", str(e), code=e.code))
            return False
        self._state.add_plan(run_id, plan, request=request)
        self._state.set_run_status(run_id, RunStatus.EXECUTING)
        return True

    # =========================================================================
    # PHASE LOOP
    # =========================================================================

    def _drive(self, run_id: str) -> None:
        while True:
            state = self._state.get(run_id)
            if state.status != RunStatus.EXECUTING:
                return
            if state.cancel_requested:
                self._state.set_run_status(run_id, RunStatus.CANCELLED)
                return

            plan = state.plan
            index = state.phase_index
            if index >= len(plan.phases):
                self._state.set_run_status(run_id, RunStatus.COMPLETED)
                return

            phase = plan.phases[index]
            if phase.phase_id not in state.entered_phases:
                self._state.enter_phase(run_id, index)

            status = derive_phase_status(state, phase)
            if status == PhaseStatus.COMPLETED:
                if phase.clarification and not self._clarified(run_id, state, phase):
                    continue
                self._state.complete_phase(run_id, index)
            elif status == PhaseStatus.FAILED:
                self._fail(run_id, _phase_error(state, phase))
                return
            elif status == PhaseStatus.BLOCKED:
                checkpoint = state.latest_checkpoint(phase.phase_id)
                if checkpoint.is_open:
                    self._pause_on_checkpoint(run_id, phase)
                    return
                # Decided but not approved: the phase was revised, ask again
                checkpoint_id, resolution = self._gate.reraise(checkpoint)
                if resolution is not None:
                    self._apply(run_id, phase, checkpoint_id, resolution)
            elif all(t.status.is_terminal for t in state.phase_tasks(phase.phase_id)):
                checkpoint_id, resolution = self._gate.close_phase(state, phase)
                if resolution is not None:
                    self._apply(run_id, phase, checkpoint_id, resolution)
            else:
                outcome = self._scheduler.run_phase(run_id, phase)
                if outcome == PhaseOutcome.NEEDS_RESCOPE:
                    self._pause_on_overflow(run_id, phase)
                    return
                if (
                    outcome == PhaseOutcome.FAILED
                    and derive_phase_status(self._state.get(run_id), phase)
                    != PhaseStatus.FAILED
                ):
                    self._fail(
                        run_id,
                        ErrorInfo(
                            "PhaseStalled",
                            f"phase '{phase.phase_id}' has tasks that can never run",
                        ),
                    )
                    return

    def _fail(self, run_id: str, error: ErrorInfo) -> None:
        self._state.set_run_status(run_id, RunStatus.FAILED, error=error)

    def _pause_on_checkpoint(self, run_id: str, phase: PhaseSpec) -> None:
        state = self._state.get(run_id)
        rejected = any(
            c.decision == Decision.REJECTED for c in state.checkpoints_for(phase.phase_id)
        )
        reason = (
            PauseReason.AWAITING_CLARIFICATION
            if phase.clarification or rejected
            else PauseReason.AWAITING_CHECKPOINT
        )
        self._state.set_run_status(run_id, RunStatus.PAUSED, pause_reason=reason)

    def _pause_on_overflow(self, run_id: str, phase: PhaseSpec) -> None:
        state = self._state.get(run_id)
        error = None
        for task in state.phase_tasks(phase.phase_id):
            if task.status == TaskStatus.FAILED and task.last_error is not None:
                error = task.last_error
                break
        if state.cancel_requested:
            self._state.set_run_status(run_id, RunStatus.CANCELLED, error=error)
            return
        self._state.set_run_status(
            run_id, RunStatus.PAUSED, pause_reason=PauseReason.NEEDS_RESCOPE, error=error
        )

    # =========================================================================
    # DECISIONS
    # =========================================================================

    def _resume_checkpoint(self, run_id: str, resolution: Resolution | None) -> None:
        state = self._state.get(run_id)
        phase = state.plan.phases[state.phase_index]
        checkpoint = state.latest_checkpoint(phase.phase_id)

        if checkpoint is None or not checkpoint.is_open:
            # Paused with nothing pending: the decision was recorded already
            self._state.set_run_status(run_id, RunStatus.EXECUTING)
            self._drive(run_id)
            return

        if resolution is None:
            resolution = self._gate.notify(run_id, checkpoint.checkpoint_id)
            if resolution is None:
                return
        if resolution.checkpoint_id and resolution.checkpoint_id != checkpoint.checkpoint_id:
            raise CheckpointError(
                f"Run {run_id} is waiting on {checkpoint.checkpoint_id}, "
                f"not {resolution.checkpoint_id}"
            )

        self._apply(run_id, phase, checkpoint.checkpoint_id, resolution)
        self._drive(run_id)

    def _apply(
        self,
        run_id: str,
        phase: PhaseSpec,
        checkpoint_id: str,
        resolution: Resolution,
    ) -> None:
        """Record decisions on a phase's checkpoint.

        A rejection raises the checkpoint again, and a synchronous channel
        may answer the fresh one at once; decisions are applied until one
        is not a rejection or no answer is available yet.
        """
        current: Resolution | None = resolution
        while current is not None:
            decision = current.decision
            payload = dict(current.payload)

            if decision == Decision.MODIFY_REQUESTED:
                # Validate the revision before the decision is recorded
                self._gate.request_revision(run_id, phase, payload)
            self._gate.resolve(checkpoint_id, decision, payload)

            if self._state.get(run_id).status == RunStatus.PAUSED:
                self._state.set_run_status(run_id, RunStatus.EXECUTING)

            if decision != Decision.REJECTED:
                return
            checkpoint = self._state.get(run_id).checkpoints[checkpoint_id]
            checkpoint_id, current = self._gate.reraise(checkpoint)

    def _clarified(self, run_id: str, state: RunState, phase: PhaseSpec) -> bool:
        """Carry out an approved clarification from the recorded decision.

        Returns:
            True once the plan reflects the decision and the phase can close.
        """
        checkpoint = state.latest_checkpoint(phase.phase_id)
        classification = checkpoint.payload.get("classification") if checkpoint else None
        if classification and state.plan.basis != checkpoint.checkpoint_id:
            self._replan(run_id, classification, basis=checkpoint.checkpoint_id)
            return False
        if state.plan.pattern is None:
            self._fail(
                run_id,
                ErrorInfo(
                    "PlanningFailure",
                    "no_applicable_pattern: approved without a reclassification",
                    code="no_applicable_pattern",
                ),
            )
            return False
        return True

    def _rescope(self, run_id: str, resolution: Resolution | None) -> None:
        if resolution is None:
            return
        state = self._state.get(run_id)
        error = state.error
        task_id = error.task_id if error else None
        if task_id is None or state.tasks[task_id].status != TaskStatus.FAILED:
            raise CheckpointError(f"Run {run_id} has no task awaiting a rescope")

        if resolution.decision == Decision.APPROVED:
            capacity = resolution.payload.get("max_input_bytes")
            if capacity is not None:
                self._state.rescope_task(run_id, task_id, int(capacity))
            self._state.set_task_status(run_id, task_id, TaskStatus.READY, reason="rescoped")
            self._state.set_run_status(run_id, RunStatus.EXECUTING)
            self._drive(run_id)
        elif resolution.decision == Decision.REJECTED:
            self._state.set_task_status(
                run_id, task_id, TaskStatus.FAILED_TERMINAL, reason="rescope rejected"
            )
            self._fail(run_id, error)
        else:
            raise CheckpointError("A needs_rescope pause takes approved or rejected")


def _phase_error(state: RunState, phase: PhaseSpec) -> ErrorInfo:
    for task in state.phase_tasks(phase.phase_id):
        if task.spec.skip_tolerant:
            continue
        if task.status == TaskStatus.FAILED_TERMINAL:
            error = task.last_error
            return ErrorInfo(
                error.error_class if error else "TaskFailure",
                error.message if error else "task failed",
                recoverable=False,
                task_id=task.task_id,
            )
        if task.status == TaskStatus.SKIPPED:
            return ErrorInfo(
                "Skipped", task.skipped_reason, recoverable=False, task_id=task.task_id
            )
    return ErrorInfo("PhaseFailed", f"phase '{phase.phase_id}' failed")


def _reclassify(request: ClassifiedRequest, data: dict[str, Any]) -> ClassifiedRequest:
    return ClassifiedRequest(
        text=data.get("text", request.text),
        request_type=data.get("request_type", request.request_type),
        complexity=ComplexityTier(data.get("complexity", request.complexity.value)),
        domain_tags=frozenset(data.get("domain_tags", request.domain_tags)),
        confidence=1.0,
        modules=tuple(data.get("modules", request.modules)),
    )
