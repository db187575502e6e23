"""Tests for the Checkpoint Gate."""

import pytest

from phasegate.application.checkpoint_gate import CheckpointGate, run_id_of
from phasegate.domain.exceptions import CheckpointError
from phasegate.domain.models import CheckpointType, Decision, PauseReason, RunStatus
from phasegate.infrastructure.approval.queue import QueueApprovalChannel


@pytest.fixture
def paused(engine, medium_backend_request):
    """A six-phase run paused on its architecture review, and a gate over it."""
    run_id = engine.controller.start(medium_backend_request)
    gate = CheckpointGate(engine.state, engine.stores.artifacts)
    return engine, gate, run_id


class TestRaise:
    """Raising checkpoints."""

    def test_review_needs_summary(self, paused) -> None:
        """A review checkpoint without a summary is refused."""
        engine, gate, run_id = paused

        with pytest.raises(CheckpointError, match="needs a summary"):
            gate.raise_checkpoint(run_id, "research", CheckpointType.REVIEW, "ok?")

    def test_informational_is_auto_approved(self, paused) -> None:
        """Non-blocking checkpoints are recorded and approved on the spot."""
        engine, gate, run_id = paused

        checkpoint_id = gate.raise_checkpoint(
            run_id, "research", CheckpointType.INFORMATIONAL, "fyi", blocking=False
        )

        checkpoint = engine.state.get(run_id).checkpoints[checkpoint_id]
        assert checkpoint.decision == Decision.APPROVED
        assert checkpoint.payload == {"auto": True}

    def test_checkpoint_id_names_its_run(self, paused) -> None:
        """Checkpoint ids carry their run id."""
        engine, gate, run_id = paused
        pending = engine.controller.status(run_id).pending_checkpoint

        assert run_id_of(pending.checkpoint_id) == run_id
        assert pending.checkpoint_id.startswith(f"{run_id}:architecture:")

    def test_malformed_id(self) -> None:
        """Ids without a run prefix are rejected."""
        with pytest.raises(CheckpointError, match="Malformed"):
            run_id_of("no-separator")

    def test_channel_is_notified_for_blocking_only(
        self, make_engine, medium_backend_request
    ) -> None:
        """Informational checkpoints never reach the approval channel."""
        channel = QueueApprovalChannel()
        engine = make_engine(channel=channel)

        run_id = engine.controller.start(medium_backend_request)

        assert [c.phase_id for c in channel.notified] == ["architecture"]
        assert engine.controller.status(run_id).pause_reason == (
            PauseReason.AWAITING_CHECKPOINT
        )


class TestSummaries:
    """Summaries describe outputs without reading payloads."""

    def test_review_summary_lists_phase_outputs(self, paused) -> None:
        """The architecture review lists the architect's artifact."""
        engine, gate, run_id = paused
        pending = engine.controller.status(run_id).pending_checkpoint

        assert pending.checkpoint_type == CheckpointType.REVIEW
        assert "Phase 'architecture' (1 task(s))" in pending.summary
        assert "- architect: architecture_doc v1" in pending.summary


class TestRevisions:
    """modify_requested creates a revision task."""

    def test_revision_task_shape(self, paused) -> None:
        """The revision reuses the producer and consumes the old output."""
        engine, gate, run_id = paused
        phase = engine.state.get(run_id).plan.phase("architecture")

        spec = gate.request_revision(run_id, phase, {"request": "fewer services"})

        assert spec.task_id == "architect~rev1"
        assert spec.producer_id == "architect"
        assert spec.revision_of == "architect"
        assert spec.inputs[-1] == "architect"
        assert spec.instructions == "fewer services"
        assert "architect~rev1" in engine.state.get(run_id).tasks

    def test_several_roots_need_a_task_id(self, paused) -> None:
        """A multi-task phase must name the task to revise."""
        engine, gate, run_id = paused
        phase = engine.state.get(run_id).plan.phase("research")

        with pytest.raises(CheckpointError, match="task_id"):
            gate.request_revision(run_id, phase, {"request": "more detail"})

        spec = gate.request_revision(
            run_id, phase, {"request": "more detail", "task_id": "domain_researcher"}
        )
        assert spec.task_id == "domain_researcher~rev1"

    def test_nothing_to_revise(self, paused) -> None:
        """Tasks without output cannot be revised."""
        engine, gate, run_id = paused
        phase = engine.state.get(run_id).plan.phase("generation")

        with pytest.raises(CheckpointError, match="no output"):
            gate.request_revision(run_id, phase, {})

    def test_resolve_records_decision(self, paused) -> None:
        """resolve() decides the pending checkpoint once."""
        engine, gate, run_id = paused
        pending = engine.controller.status(run_id).pending_checkpoint

        gate.resolve(pending.checkpoint_id, Decision.APPROVED)

        with pytest.raises(CheckpointError):
            gate.resolve(pending.checkpoint_id, Decision.APPROVED)
        assert engine.state.get(run_id).status == RunStatus.PAUSED
