"""Shared pytest fixtures for phasegate tests."""

from collections.abc import Callable
from typing import Any

import pytest

from phasegate.application.state_manager import StateManager
from phasegate.bootstrap import Engine, build_engine
from phasegate.domain.models import (
    Artifact,
    ClassifiedRequest,
    ComplexityTier,
    PhaseSpec,
    Plan,
    TaskSpec,
    ValidationStatus,
)
from phasegate.infrastructure.approval.queue import QueueApprovalChannel
from phasegate.infrastructure.persistence.memory import (
    InMemoryArtifactStore,
    InMemoryEventLog,
    InMemoryRunStore,
)
from phasegate.infrastructure.workers.mock import ScriptedWorker


def no_sleep(_seconds: float) -> None:
    """Retry backoff replacement that returns immediately."""
    return None


@pytest.fixture
def simple_backend_request() -> ClassifiedRequest:
    """SIMPLE backend request (four-phase plan)."""
    return ClassifiedRequest(
        text="Add a health check endpoint",
        request_type="feature",
        complexity=ComplexityTier.SIMPLE,
        domain_tags=frozenset({"backend"}),
    )


@pytest.fixture
def medium_backend_request() -> ClassifiedRequest:
    """MEDIUM backend request (six-phase plan with a reviewed architecture)."""
    return ClassifiedRequest(
        text="Add rate limiting to the public API",
        request_type="feature",
        complexity=ComplexityTier.MEDIUM,
        domain_tags=frozenset({"backend"}),
    )


@pytest.fixture
def complex_request() -> ClassifiedRequest:
    """COMPLEX request with two modules (hierarchical plan)."""
    return ClassifiedRequest(
        text="Split billing into its own service",
        request_type="feature",
        complexity=ComplexityTier.COMPLEX,
        domain_tags=frozenset({"backend", "data"}),
        modules=("invoices", "payments"),
    )


@pytest.fixture
def make_engine() -> Callable[..., Engine]:
    """Factory for in-memory engines that never sleep between retries."""

    def _make(**kwargs: Any) -> Engine:
        kwargs.setdefault("default_worker", ScriptedWorker())
        kwargs.setdefault("sleep", no_sleep)
        return build_engine(**kwargs)

    return _make


@pytest.fixture
def engine(make_engine) -> Engine:  # noqa: ANN001
    """Engine with a default scripted worker and no approval channel."""
    return make_engine()


@pytest.fixture
def channel() -> QueueApprovalChannel:
    """Approval channel with no pre-loaded decisions."""
    return QueueApprovalChannel()


@pytest.fixture
def state_manager() -> StateManager:
    """State manager over in-memory stores."""
    return StateManager(InMemoryRunStore(), InMemoryEventLog(), default_max_retries=3)


@pytest.fixture
def artifact_store() -> InMemoryArtifactStore:
    """Empty in-memory artifact store."""
    return InMemoryArtifactStore()


@pytest.fixture
def sample_artifact() -> Artifact:
    """A validated artifact for the requirements phase."""
    return Artifact(
        artifact_id="a" * 64,
        run_id="run-001",
        phase_id="requirements",
        task_id="requirements_analyst",
        producer_id="requirements_analyst",
        schema_id="requirements_doc",
        version=1,
        payload={"stories": ["as a user I can log in"]},
        created_at="2025-01-01T00:00:00+00:00",
        validation=ValidationStatus.VALID,
    )


@pytest.fixture
def chain_plan() -> Plan:
    """One concurrent phase: a -> b -> c, plus an independent d."""
    phase = PhaseSpec(
        phase_id="build",
        ordinal=0,
        tasks=(
            TaskSpec("a", "build", "worker_a", "out"),
            TaskSpec("b", "build", "worker_b", "out", inputs=("a",)),
            TaskSpec("c", "build", "worker_c", "out", inputs=("b",)),
            TaskSpec("d", "build", "worker_d", "out"),
        ),
    )
    return Plan(version=1, pattern="custom", phases=(phase,))
