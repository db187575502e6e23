"""
State Manager: the single writer of run, task and checkpoint state.

Every mutation follows the same write-ahead sequence under a per-run lock:

    1. validate the transition against the state machine
    2. append the event to the event log
    3. apply the mutation to the in-memory RunState
    4. durably save the run record

A crash between 2 and 4 leaves the log ahead of the record; this is
detected and logged when the run is next loaded.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from collections.abc import Iterable
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from phasegate.application.event_emitter import RunEventEmitter
from phasegate.domain.exceptions import CheckpointError, RunNotFound
from phasegate.domain.models import (
    Checkpoint,
    ClassifiedRequest,
    Decision,
    ErrorInfo,
    PauseReason,
    PhaseSnapshot,
    Plan,
    RunSnapshot,
    RunState,
    RunStatus,
    TaskSnapshot,
    TaskSpec,
    TaskState,
    TaskStatus,
)
from phasegate.domain.transitions import (
    check_run_transition,
    check_task_transition,
    derive_phase_status,
)

if TYPE_CHECKING:
    from phasegate.domain.events import Event, EventKind
    from phasegate.domain.interfaces import EventLogInterface, RunStoreInterface

logger = logging.getLogger(__name__)


class StateManager:
    """Serializes and persists every state change of every run."""

    def __init__(
        self,
        run_store: RunStoreInterface,
        event_log: EventLogInterface,
        default_max_retries: int = 3,
    ) -> None:
        """
        Args:
            run_store: Durable run records
            event_log: Append-only event log
            default_max_retries: Retry budget for tasks that declare none
        """
        self._runs = run_store
        self._log = event_log
        self._emitter = RunEventEmitter(event_log)
        self._default_max_retries = default_max_retries
        self._live: dict[str, RunState] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    # =========================================================================
    # ACCESS
    # =========================================================================

    def lock(self, run_id: str) -> threading.RLock:
        with self._locks_guard:
            if run_id not in self._locks:
                self._locks[run_id] = threading.RLock()
            return self._locks[run_id]

    def get(self, run_id: str) -> RunState:
        """
        Copy of a run's current state. Changes to it are not applied;
        all mutation goes through the methods below.

        Raises:
            RunNotFound: If the run does not exist
        """
        with self.lock(run_id):
            return copy.deepcopy(self._live_state(run_id))

    def _live_state(self, run_id: str) -> RunState:
        """The owned state of a run, loaded from the run store on first access."""
        with self.lock(run_id):
            if run_id not in self._live:
                state = self._runs.load(run_id)
                self._verify_log(state)
                self._live[run_id] = state
            return self._live[run_id]

    def exists(self, run_id: str) -> bool:
        try:
            self._live_state(run_id)
        except RunNotFound:
            return False
        return True

    def list_runs(self) -> list[str]:
        return self._runs.list_runs()

    def events(
        self,
        run_id: str,
        kind: EventKind | None = None,
        subject: str | None = None,
        after: int = 0,
    ) -> list[Event]:
        return self._log.read(run_id, kind=kind, subject=subject, after=after)

    def max_retries_for(self, spec: TaskSpec) -> int:
        if spec.max_retries is not None:
            return spec.max_retries
        return self._default_max_retries

    def _verify_log(self, state: RunState) -> None:
        logged = self._log.last_sequence(state.run_id)
        if logged > state.last_event_seq:
            logger.warning(
                "Run %s: event log is at sequence %d but the run record stops at %d; "
                "the last %d transition(s) were logged but not applied",
                state.run_id,
                logged,
                state.last_event_seq,
                logged - state.last_event_seq,
            )

    def _save(self, state: RunState, event: Event) -> None:
        state.last_event_seq = event.sequence
        state.updated_at = event.created_at
        self._runs.save(state)

    # =========================================================================
    # RUN LIFECYCLE
    # =========================================================================

    def create_run(self, request: ClassifiedRequest) -> RunState:
        run_id = uuid.uuid4().hex
        with self.lock(run_id):
            event = self._emitter.run_created(run_id, request)
            state = RunState(
                run_id=run_id,
                request=request,
                created_at=datetime.now(UTC).isoformat(),
            )
            self._live[run_id] = state
            self._save(state, event)
            logger.info("Run %s created (%s)", run_id, request.complexity.value)
            return copy.deepcopy(state)

    def set_run_status(
        self,
        run_id: str,
        target: RunStatus,
        pause_reason: PauseReason | None = None,
        error: ErrorInfo | None = None,
    ) -> None:
        """
        Move a run to a new status.

        The run-level error is replaced by `error` (None clears it).

        Raises:
            InvalidTransition: If the run state machine forbids the move
        """
        with self.lock(run_id):
            state = self._live_state(run_id)
            check_run_transition(run_id, state.status, target)
            reason = pause_reason.value if pause_reason else None
            event = self._emitter.run_status(
                run_id, state.status, target, reason=reason, error=error
            )
            previous = state.status
            state.status = target
            state.pause_reason = pause_reason if target == RunStatus.PAUSED else None
            state.error = error
            self._save(state, event)
            logger.info(
                "Run %s: %s -> %s%s",
                run_id,
                previous.value,
                target.value,
                f" ({reason})" if reason else "",
            )

    def add_plan(
        self, run_id: str, plan: Plan, request: ClassifiedRequest | None = None
    ) -> None:
        """
        Append a plan version.

        Tasks the new plan no longer names are dropped; tasks that have not
        started yet take the new plan's spec. Progress of carried-over
        tasks is kept.
        """
        with self.lock(run_id):
            state = self._live_state(run_id)
            event = self._emitter.plan_created(run_id, plan)
            state.plans.append(plan)
            if request is not None:
                state.request = request
            specs = {spec.task_id: spec for spec in plan.all_tasks()}
            tasks: dict[str, TaskState] = {}
            for task_id, task in state.tasks.items():
                root = task.spec.revision_of or task_id
                if root in specs:
                    tasks[task_id] = task
            for task_id, spec in specs.items():
                task = tasks.get(task_id)
                if task is None:
                    tasks[task_id] = TaskState(spec=spec)
                elif task.status == TaskStatus.PENDING:
                    task.spec = spec
            state.tasks = tasks
            self._save(state, event)
            logger.info(
                "Run %s: plan v%d (%s) with %d phase(s)",
                run_id,
                plan.version,
                plan.pattern,
                len(plan.phases),
            )

    def enter_phase(self, run_id: str, index: int) -> None:
        with self.lock(run_id):
            state = self._live_state(run_id)
            phase_id = state.plan.phases[index].phase_id
            event = self._emitter.phase_entered(run_id, phase_id, index)
            state.phase_index = index
            if phase_id not in state.entered_phases:
                state.entered_phases.append(phase_id)
            self._save(state, event)

    def complete_phase(self, run_id: str, index: int) -> None:
        with self.lock(run_id):
            state = self._live_state(run_id)
            phase_id = state.plan.phases[index].phase_id
            event = self._emitter.phase_completed(run_id, phase_id, index)
            state.phase_index = index + 1
            self._save(state, event)
            logger.info("Run %s: phase '%s' completed", run_id, phase_id)

    def request_cancel(self, run_id: str) -> None:
        with self.lock(run_id):
            state = self._live_state(run_id)
            if state.cancel_requested:
                return
            event = self._emitter.cancel_requested(run_id)
            state.cancel_requested = True
            self._save(state, event)

    # =========================================================================
    # TASKS
    # =========================================================================

    def add_task(self, run_id: str, spec: TaskSpec) -> None:
        with self.lock(run_id):
            state = self._live_state(run_id)
            if spec.task_id in state.tasks:
                raise ValueError(f"Task already exists: {spec.task_id}")
            event = self._emitter.task_added(run_id, spec)
            state.tasks[spec.task_id] = TaskState(spec=spec)
            self._save(state, event)

    def set_task_status(
        self,
        run_id: str,
        task_id: str,
        target: TaskStatus,
        error: ErrorInfo | None = None,
        artifact_id: str | None = None,
        reason: str = "",
    ) -> TaskState:
        """
        Move a task to a new status. Entering RUNNING counts an attempt.

        Raises:
            InvalidTransition: If the task state machine forbids the move
        """
        with self.lock(run_id):
            state = self._live_state(run_id)
            task = state.tasks[task_id]
            check_task_transition(task_id, task.status, target)
            attempts = task.attempts + 1 if target == TaskStatus.RUNNING else task.attempts
            event = self._emitter.task_status(
                run_id,
                task_id,
                task.status,
                target,
                attempt=attempts,
                error=error,
                artifact_id=artifact_id,
                reason=reason,
            )
            task.status = target
            task.attempts = attempts
            if error is not None:
                task.last_error = error
            if artifact_id is not None:
                task.artifact_id = artifact_id
            if target == TaskStatus.SKIPPED:
                task.skipped_reason = reason
            self._save(state, event)
            logger.debug(
                "Run %s: task %s -> %s (attempt %d)",
                run_id,
                task_id,
                target.value,
                attempts,
            )
            return copy.deepcopy(task)

    def record_artifact(
        self, run_id: str, task_id: str, artifact_id: str, schema_id: str, version: int
    ) -> None:
        """Log an artifact write ahead of the store put."""
        with self.lock(run_id):
            state = self._live_state(run_id)
            event = self._emitter.artifact_written(
                run_id, task_id, artifact_id, schema_id, version
            )
            self._save(state, event)

    def rescope_task(self, run_id: str, task_id: str, max_input_bytes: int) -> None:
        """Raise (or lower) a task's input capacity after a needs_rescope pause."""
        with self.lock(run_id):
            state = self._live_state(run_id)
            task = state.tasks[task_id]
            event = self._emitter.task_reset(
                run_id, task_id, {"max_input_bytes": max_input_bytes}
            )
            task.spec = replace(task.spec, max_input_bytes=max_input_bytes)
            self._save(state, event)

    def reset_for_replay(
        self,
        run_id: str,
        phase_index: int,
        phase_ids: Iterable[str],
        task_ids: Iterable[str],
    ) -> None:
        """
        Return tasks to PENDING and forget the given phases' checkpoints.

        Revision tasks of reset tasks are dropped; they were derived from
        outputs that are about to be replaced.
        """
        phase_ids = list(phase_ids)
        task_ids = set(task_ids)
        with self.lock(run_id):
            state = self._live_state(run_id)
            event = self._emitter.task_reset(
                run_id,
                run_id,
                {
                    "phase_index": phase_index,
                    "phase_ids": phase_ids,
                    "task_ids": sorted(task_ids),
                },
            )
            for task_id in [
                tid
                for tid, t in state.tasks.items()
                if t.spec.revision_of in task_ids
            ]:
                del state.tasks[task_id]
            for task_id in task_ids:
                task = state.tasks[task_id]
                task.status = TaskStatus.PENDING
                task.attempts = 0
                task.last_error = None
                task.artifact_id = None
                task.skipped_reason = ""
            state.checkpoints = {
                cid: c for cid, c in state.checkpoints.items() if c.phase_id not in phase_ids
            }
            state.entered_phases = [p for p in state.entered_phases if p not in phase_ids]
            state.phase_index = phase_index
            state.cancel_requested = False
            self._save(state, event)
            logger.info(
                "Run %s: replaying from phase %d (%d task(s) reset)",
                run_id,
                phase_index,
                len(task_ids),
            )

    # =========================================================================
    # CHECKPOINTS
    # =========================================================================

    def add_checkpoint(self, run_id: str, checkpoint: Checkpoint) -> None:
        with self.lock(run_id):
            state = self._live_state(run_id)
            event = self._emitter.checkpoint_raised(checkpoint)
            state.checkpoints[checkpoint.checkpoint_id] = checkpoint
            self._save(state, event)

    def decide_checkpoint(
        self,
        run_id: str,
        checkpoint_id: str,
        decision: Decision,
        payload: dict[str, Any] | None = None,
    ) -> Checkpoint:
        """
        Record a decision on a pending checkpoint.

        Raises:
            CheckpointError: If the checkpoint is unknown or already decided
        """
        if decision == Decision.PENDING:
            raise CheckpointError("A resolution must decide the checkpoint")
        with self.lock(run_id):
            state = self._live_state(run_id)
            current = state.checkpoints.get(checkpoint_id)
            if current is None:
                raise CheckpointError(f"Checkpoint not found: {checkpoint_id}")
            if not current.is_open:
                raise CheckpointError(
                    f"Checkpoint {checkpoint_id} already decided: {current.decision.value}"
                )
            decided = replace(
                current,
                decision=decision,
                payload=dict(payload or {}),
                decided_at=datetime.now(UTC).isoformat(),
            )
            event = self._emitter.checkpoint_resolved(decided)
            state.checkpoints[checkpoint_id] = decided
            self._save(state, event)
            logger.info(
                "Run %s: checkpoint on '%s' %s",
                run_id,
                decided.phase_id,
                decision.value,
            )
            return copy.deepcopy(decided)

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def snapshot(self, run_id: str) -> RunSnapshot:
        """Immutable view of a run, built only from persisted fields."""
        with self.lock(run_id):
            state = self._live_state(run_id)
            plan = state.plan
            phases: list[PhaseSnapshot] = []
            task_snapshots: dict[str, TaskSnapshot] = {}

            for phase in plan.phases if plan else ():
                tasks = tuple(
                    self._task_snapshot(t) for t in state.phase_tasks(phase.phase_id)
                )
                task_snapshots.update((t.task_id, t) for t in tasks)
                phases.append(
                    PhaseSnapshot(
                        phase_id=phase.phase_id,
                        ordinal=phase.ordinal,
                        status=derive_phase_status(state, phase),
                        tasks=tasks,
                        checkpoint=state.latest_checkpoint(phase.phase_id),
                    )
                )

            current_phase = None
            if plan and state.phase_index < len(plan.phases):
                current_phase = plan.phases[state.phase_index].phase_id

            pending = [
                c for c in state.checkpoints.values() if c.is_open and c.blocking
            ]

            return RunSnapshot(
                run_id=state.run_id,
                status=state.status,
                pause_reason=state.pause_reason,
                pattern=plan.pattern if plan else None,
                plan_version=plan.version if plan else 0,
                current_phase=current_phase,
                phases=tuple(phases),
                pending_checkpoint=pending[-1] if pending else None,
                failing_task=self._failing_task(state, task_snapshots),
                error=state.error,
                cancel_requested=state.cancel_requested,
            )

    def _task_snapshot(self, task: TaskState) -> TaskSnapshot:
        max_retries = self.max_retries_for(task.spec)
        used = max(0, task.attempts - 1)
        return TaskSnapshot(
            task_id=task.task_id,
            phase_id=task.spec.phase_id,
            producer_id=task.spec.producer_id,
            status=task.status,
            attempts=task.attempts,
            retries_remaining=max(0, max_retries - used),
            skip_tolerant=task.spec.skip_tolerant,
            artifact_id=task.artifact_id,
            error_class=task.last_error.error_class if task.last_error else None,
            error_message=task.last_error.message if task.last_error else None,
        )

    @staticmethod
    def _failing_task(
        state: RunState, tasks: dict[str, TaskSnapshot]
    ) -> TaskSnapshot | None:
        if state.error is not None and state.error.task_id in tasks:
            return tasks[state.error.task_id]
        for status in (TaskStatus.FAILED_TERMINAL, TaskStatus.FAILED):
            for snapshot in tasks.values():
                if snapshot.status == status:
                    return snapshot
        return None
