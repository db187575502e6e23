"""
Dependency graph over plan tasks.

Edges run from a producing task to every task that declares it as an input.
Inputs may point at the same phase (intra-phase edges) or at any earlier
phase (inter-phase edges), never forward.
"""

from collections import deque
from collections.abc import Sequence

from phasegate.domain.exceptions import PlanningFailure
from phasegate.domain.models import (
    PhaseSpec,
    Plan,
    RunState,
    TaskSpec,
    TaskStatus,
)


def topological_order(tasks: Sequence[TaskSpec]) -> list[str]:
    """Order tasks of one phase so that producers precede consumers.

    Only intra-phase edges are considered. Ties keep declaration order.

    Raises:
        PlanningFailure: If the intra-phase dependencies contain a cycle
    """
    ids = [t.task_id for t in tasks]
    members = set(ids)
    indegree = {tid: 0 for tid in ids}
    consumers: dict[str, list[str]] = {tid: [] for tid in ids}

    for task in tasks:
        for dep in task.inputs:
            if dep in members:
                indegree[task.task_id] += 1
                consumers[dep].append(task.task_id)

    queue = deque(tid for tid in ids if indegree[tid] == 0)
    order: list[str] = []
    while queue:
        tid = queue.popleft()
        order.append(tid)
        for consumer in consumers[tid]:
            indegree[consumer] -= 1
            if indegree[consumer] == 0:
                queue.append(consumer)

    if len(order) != len(ids):
        cyclic = sorted(members - set(order))
        raise PlanningFailure("invalid_plan", f"dependency cycle among {cyclic}")
    return order


def validate_plan(plan: Plan) -> None:
    """Check ids are unique, inputs never point forward, and phases are acyclic.

    Raises:
        PlanningFailure: With code "invalid_plan"
    """
    seen: set[str] = set()
    for ordinal, phase in enumerate(plan.phases):
        if phase.ordinal != ordinal:
            raise PlanningFailure(
                "invalid_plan",
                f"phase '{phase.phase_id}' has ordinal {phase.ordinal}, expected {ordinal}",
            )
        phase_ids = set(phase.task_ids())
        if len(phase_ids) != len(phase.tasks):
            raise PlanningFailure(
                "invalid_plan", f"duplicate task id in phase '{phase.phase_id}'"
            )
        for task in phase.tasks:
            if task.task_id in seen:
                raise PlanningFailure("invalid_plan", f"duplicate task id '{task.task_id}'")
            if task.phase_id != phase.phase_id:
                raise PlanningFailure(
                    "invalid_plan",
                    f"task '{task.task_id}' claims phase '{task.phase_id}'",
                )
            for dep in task.inputs:
                if dep not in seen and dep not in phase_ids:
                    raise PlanningFailure(
                        "invalid_plan",
                        f"task '{task.task_id}' depends on unknown or later task '{dep}'",
                    )
        topological_order(phase.tasks)
        seen.update(phase_ids)


def ready_tasks(run: RunState, phase: PhaseSpec) -> list[str]:
    """Pending tasks of the phase whose every input has a successful output."""
    ready = []
    for state in run.phase_tasks(phase.phase_id):
        if state.status != TaskStatus.PENDING:
            continue
        if all(run.latest_output(dep) is not None for dep in state.spec.inputs):
            ready.append(state.task_id)
    return ready


def blocked_tasks(run: RunState, phase: PhaseSpec) -> list[tuple[str, str]]:
    """Pending tasks that can never run because an input failed.

    Returns:
        (task_id, reason) pairs
    """
    blocked = []
    for state in run.phase_tasks(phase.phase_id):
        if state.status != TaskStatus.PENDING:
            continue
        for dep in state.spec.inputs:
            producer = run.tasks.get(dep)
            if producer is None or run.latest_output(dep) is not None:
                continue
            if producer.status in (TaskStatus.FAILED_TERMINAL, TaskStatus.SKIPPED):
                blocked.append(
                    (state.task_id, f"input '{dep}' is {producer.status.value}")
                )
                break
    return blocked


def downstream_of(plan: Plan, task_ids: Sequence[str]) -> set[str]:
    """Transitive dependents of the given tasks across the whole plan."""
    consumers: dict[str, set[str]] = {}
    for task in plan.all_tasks():
        for dep in task.inputs:
            consumers.setdefault(dep, set()).add(task.task_id)

    result: set[str] = set()
    frontier = list(task_ids)
    while frontier:
        current = frontier.pop()
        for consumer in consumers.get(current, ()):
            if consumer not in result:
                result.add(consumer)
                frontier.append(consumer)
    return result
