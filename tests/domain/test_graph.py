"""Tests for the task dependency graph."""

import pytest

from phasegate.domain.exceptions import PlanningFailure
from phasegate.domain.graph import (
    blocked_tasks,
    downstream_of,
    ready_tasks,
    topological_order,
    validate_plan,
)
from phasegate.domain.models import (
    ClassifiedRequest,
    ComplexityTier,
    PhaseSpec,
    Plan,
    RunState,
    TaskSpec,
    TaskState,
    TaskStatus,
)


def _run(plan: Plan, **statuses: TaskStatus) -> RunState:
    state = RunState(
        run_id="run-001",
        request=ClassifiedRequest("r", "feature", ComplexityTier.SIMPLE),
        created_at="2025-01-01T00:00:00+00:00",
        plans=[plan],
    )
    for spec in plan.all_tasks():
        status = statuses.get(spec.task_id, TaskStatus.PENDING)
        state.tasks[spec.task_id] = TaskState(
            spec=spec,
            status=status,
            artifact_id=f"art-{spec.task_id}" if status == TaskStatus.SUCCEEDED else None,
        )
    return state


class TestTopologicalOrder:
    """Producers precede consumers within a phase."""

    def test_orders_chain_regardless_of_declaration(self) -> None:
        """Reverse-declared chain is sorted."""
        tasks = [
            TaskSpec("c", "p", "w", "s", inputs=("b",)),
            TaskSpec("b", "p", "w", "s", inputs=("a",)),
            TaskSpec("a", "p", "w", "s"),
        ]

        assert topological_order(tasks) == ["a", "b", "c"]

    def test_ignores_inputs_from_other_phases(self) -> None:
        """Inter-phase inputs do not create intra-phase edges."""
        tasks = [
            TaskSpec("x", "p", "w", "s", inputs=("earlier",)),
            TaskSpec("y", "p", "w", "s"),
        ]

        assert topological_order(tasks) == ["x", "y"]

    def test_cycle_raises(self) -> None:
        """A dependency cycle is an invalid plan."""
        tasks = [
            TaskSpec("a", "p", "w", "s", inputs=("b",)),
            TaskSpec("b", "p", "w", "s", inputs=("a",)),
        ]

        with pytest.raises(PlanningFailure, match="cycle") as exc_info:
            topological_order(tasks)

        assert exc_info.value.code == "invalid_plan"


class TestValidatePlan:
    """Structural plan validation."""

    def test_forward_reference_rejected(self) -> None:
        """Inputs may not point at a later phase."""
        plan = Plan(
            version=1,
            pattern=None,
            phases=(
                PhaseSpec("one", 0, (TaskSpec("a", "one", "w", "s", inputs=("b",)),)),
                PhaseSpec("two", 1, (TaskSpec("b", "two", "w", "s"),)),
            ),
        )

        with pytest.raises(PlanningFailure, match="later task 'b'"):
            validate_plan(plan)

    def test_duplicate_task_ids_rejected(self) -> None:
        """Task ids are unique across the plan."""
        plan = Plan(
            version=1,
            pattern=None,
            phases=(
                PhaseSpec("one", 0, (TaskSpec("a", "one", "w", "s"),)),
                PhaseSpec("two", 1, (TaskSpec("a", "two", "w", "s"),)),
            ),
        )

        with pytest.raises(PlanningFailure, match="duplicate"):
            validate_plan(plan)

    def test_wrong_ordinal_rejected(self) -> None:
        """Ordinals must match plan position."""
        plan = Plan(version=1, pattern=None, phases=(PhaseSpec("one", 3),))

        with pytest.raises(PlanningFailure, match="ordinal"):
            validate_plan(plan)

    def test_valid_plan_passes(self, chain_plan) -> None:
        """A well-formed plan validates without error."""
        validate_plan(chain_plan)


class TestReadiness:
    """Ready and blocked task computation."""

    def test_roots_are_ready(self, chain_plan) -> None:
        """Tasks without inputs are ready immediately."""
        run = _run(chain_plan)

        assert ready_tasks(run, chain_plan.phases[0]) == ["a", "d"]

    def test_consumer_ready_once_producer_succeeds(self, chain_plan) -> None:
        """b becomes ready when a has an output."""
        run = _run(chain_plan, a=TaskStatus.SUCCEEDED, d=TaskStatus.RUNNING)

        assert ready_tasks(run, chain_plan.phases[0]) == ["b"]

    def test_failed_producer_blocks_consumer(self, chain_plan) -> None:
        """A terminally failed input blocks its direct consumer."""
        run = _run(chain_plan, a=TaskStatus.FAILED_TERMINAL)

        blocked = blocked_tasks(run, chain_plan.phases[0])

        assert blocked == [("b", "input 'a' is failed_terminal")]

    def test_revision_output_satisfies_input(self) -> None:
        """The newest successful revision stands in for the original."""
        plan = Plan(
            version=1,
            pattern=None,
            phases=(
                PhaseSpec("one", 0, (TaskSpec("a", "one", "w", "s"),)),
                PhaseSpec("two", 1, (TaskSpec("b", "two", "w", "s", inputs=("a",)),)),
            ),
        )
        run = _run(plan, a=TaskStatus.SUCCEEDED)
        revision = TaskSpec("a~rev1", "one", "w", "s", inputs=("a",), revision_of="a")
        run.tasks["a~rev1"] = TaskState(
            spec=revision, status=TaskStatus.SUCCEEDED, artifact_id="art-rev"
        )

        assert run.latest_output("a") == "art-rev"
        assert ready_tasks(run, plan.phases[1]) == ["b"]


class TestDownstream:
    """Transitive dependents."""

    def test_downstream_is_transitive(self, chain_plan) -> None:
        """a -> b -> c; d is independent."""
        assert downstream_of(chain_plan, ["a"]) == {"b", "c"}
        assert downstream_of(chain_plan, ["d"]) == set()
