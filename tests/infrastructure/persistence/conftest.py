"""Fixtures shared by the persistence adapter tests."""

from dataclasses import replace

import pytest

from phasegate.domain.events import Event, EventKind
from phasegate.domain.models import (
    Artifact,
    Checkpoint,
    CheckpointType,
    ClassifiedRequest,
    ComplexityTier,
    ErrorInfo,
    PauseReason,
    PhaseSpec,
    Plan,
    RunState,
    RunStatus,
    TaskSpec,
    TaskState,
    TaskStatus,
)


@pytest.fixture
def next_version(sample_artifact):  # noqa: ANN001
    """Second version of the sample artifact (same key prefix)."""
    return replace(
        sample_artifact,
        artifact_id="b" * 64,
        version=2,
        payload={"stories": ["as a user I can log out"], "notes": "v2"},
    )


@pytest.fixture
def run_state() -> RunState:
    """A paused run with a plan, a failed task and an open checkpoint."""
    spec = TaskSpec(
        "architect",
        "architecture",
        "architect",
        "architecture_doc",
        inputs=("requirements_analyst",),
        max_input_bytes=4096,
    )
    plan = Plan(
        version=1,
        pattern="four_phase",
        phases=(
            PhaseSpec(
                "requirements",
                0,
                tasks=(
                    TaskSpec(
                        "requirements_analyst",
                        "requirements",
                        "requirements_analyst",
                        "requirements_doc",
                    ),
                ),
            ),
            PhaseSpec("architecture", 1, tasks=(spec,)),
        ),
    )
    error = ErrorInfo("ResourceOverflow", "too big", task_id="architect")
    return RunState(
        run_id="run-001",
        request=ClassifiedRequest(
            "Add a login endpoint",
            "feature",
            ComplexityTier.SIMPLE,
            frozenset({"backend"}),
            confidence=0.9,
        ),
        created_at="2025-01-01T00:00:00+00:00",
        updated_at="2025-01-01T00:05:00+00:00",
        status=RunStatus.PAUSED,
        pause_reason=PauseReason.NEEDS_RESCOPE,
        plans=[plan],
        phase_index=1,
        entered_phases=["requirements", "architecture"],
        tasks={
            "requirements_analyst": TaskState(
                plan.phases[0].tasks[0],
                TaskStatus.SUCCEEDED,
                attempts=1,
                artifact_id="a" * 64,
            ),
            "architect": TaskState(spec, TaskStatus.FAILED, attempts=1, last_error=error),
        },
        checkpoints={
            "run-001:requirements:0badcafe": Checkpoint(
                "run-001:requirements:0badcafe",
                "run-001",
                "requirements",
                CheckpointType.INFORMATIONAL,
                blocking=False,
                prompt="Requirements captured",
                created_at="2025-01-01T00:01:00+00:00",
            )
        },
        error=error,
        last_event_seq=12,
    )


@pytest.fixture
def make_event():
    """Factory for unsequenced events."""

    def _make(run_id: str, kind: EventKind, subject: str, **payload) -> Event:
        return Event(
            event_id=f"{subject}-{kind.value}",
            run_id=run_id,
            kind=kind,
            subject=subject,
            payload=payload,
            created_at="2025-01-01T00:00:00+00:00",
        )

    return _make
