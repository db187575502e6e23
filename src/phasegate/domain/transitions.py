"""
State machines for runs and tasks, and the derived phase status.

Phase status is never stored: it is computed from member task states and
the phase's checkpoints, so it cannot diverge from them.
"""

from phasegate.domain.exceptions import InvalidTransition
from phasegate.domain.models import (
    CheckpointRequirement,
    Decision,
    PhaseSpec,
    PhaseStatus,
    RunState,
    RunStatus,
    TaskStatus,
)

TASK_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.READY, TaskStatus.SKIPPED}),
    # READY -> FAILED: input over capacity, caught before dispatch
    TaskStatus.READY: frozenset(
        {TaskStatus.RUNNING, TaskStatus.SKIPPED, TaskStatus.FAILED}
    ),
    # RUNNING -> READY: result discarded on cancel, or in-flight task recovered
    TaskStatus.RUNNING: frozenset(
        {TaskStatus.SUCCEEDED, TaskStatus.FAILED, TaskStatus.READY}
    ),
    TaskStatus.FAILED: frozenset({TaskStatus.READY, TaskStatus.FAILED_TERMINAL}),
    TaskStatus.SUCCEEDED: frozenset(),
    TaskStatus.FAILED_TERMINAL: frozenset(),
    TaskStatus.SKIPPED: frozenset(),
}

RUN_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.INITIALIZED: frozenset({RunStatus.PLANNING}),
    RunStatus.PLANNING: frozenset({RunStatus.EXECUTING, RunStatus.FAILED}),
    RunStatus.EXECUTING: frozenset(
        {
            RunStatus.PLANNING,
            RunStatus.PAUSED,
            RunStatus.COMPLETED,
            RunStatus.FAILED,
            RunStatus.CANCELLED,
        }
    ),
    RunStatus.PAUSED: frozenset(
        {
            RunStatus.EXECUTING,
            RunStatus.FAILED,
            RunStatus.CANCELLED,
        }
    ),
    # Partial replay re-opens finished runs
    RunStatus.COMPLETED: frozenset({RunStatus.EXECUTING}),
    RunStatus.FAILED: frozenset({RunStatus.EXECUTING}),
    RunStatus.CANCELLED: frozenset(),
}


def check_task_transition(task_id: str, current: TaskStatus, target: TaskStatus) -> None:
    if target not in TASK_TRANSITIONS[current]:
        raise InvalidTransition(task_id, current.value, target.value)


def check_run_transition(run_id: str, current: RunStatus, target: RunStatus) -> None:
    if target not in RUN_TRANSITIONS[current]:
        raise InvalidTransition(run_id, current.value, target.value)


def derive_phase_status(run: RunState, phase: PhaseSpec) -> PhaseStatus:
    """Compute a phase's status from its tasks and checkpoints."""
    tasks = run.phase_tasks(phase.phase_id)

    for task in tasks:
        if (
            task.status in (TaskStatus.FAILED_TERMINAL, TaskStatus.SKIPPED)
            and not task.spec.skip_tolerant
        ):
            return PhaseStatus.FAILED

    if phase.phase_id not in run.entered_phases:
        return PhaseStatus.PENDING

    if not all(task.status.is_terminal for task in tasks):
        return PhaseStatus.ACTIVE

    if phase.checkpoint == CheckpointRequirement.NONE:
        return PhaseStatus.COMPLETED

    checkpoint = run.latest_checkpoint(phase.phase_id)
    if checkpoint is None:
        # Tasks are done but the gate has not been raised yet
        return PhaseStatus.ACTIVE
    if checkpoint.decision == Decision.APPROVED or not checkpoint.blocking:
        return PhaseStatus.COMPLETED
    return PhaseStatus.BLOCKED
