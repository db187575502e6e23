"""
Domain models for the phase-gated orchestration engine.

Value objects are frozen dataclasses. The only mutable holders are RunState
and TaskState, and they are mutated exclusively by the State Manager.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# =============================================================================
# REQUEST CLASSIFICATION
# =============================================================================


class ComplexityTier(str, Enum):
    """Complexity tier assigned by the external request classifier."""

    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


@dataclass(frozen=True)
class ClassifiedRequest:
    """A feature request after classification (classifier is external)."""

    text: str
    request_type: str
    complexity: ComplexityTier
    domain_tags: frozenset[str] = frozenset()
    confidence: float = 1.0
    modules: tuple[str, ...] = ()  # Module names for hierarchical plans


# =============================================================================
# PLAN MODEL
# =============================================================================


class CheckpointRequirement(str, Enum):
    """Whether a phase ends with a checkpoint, and whether it blocks."""

    NONE = "none"
    INFORMATIONAL = "informational"
    BLOCKING = "blocking"


class CheckpointType(str, Enum):
    """Kind of human-approval record."""

    INFORMATIONAL = "informational"
    REVIEW = "review"  # Requires a summary
    TERMINAL_SUMMARY = "terminal_summary"


@dataclass(frozen=True)
class TaskSpec:
    """One unit of work bound to a single worker capability."""

    task_id: str
    phase_id: str
    producer_id: str
    output_schema: str
    inputs: tuple[str, ...] = ()  # Task ids whose artifacts this task consumes
    skip_tolerant: bool = False
    max_input_bytes: int | None = None
    max_retries: int | None = None  # None -> engine default
    timeout_seconds: float | None = None
    revision_of: str | None = None
    instructions: str = ""


@dataclass(frozen=True)
class PhaseSpec:
    """An ordered stage containing tasks."""

    phase_id: str
    ordinal: int
    tasks: tuple[TaskSpec, ...] = ()
    concurrent: bool = True
    checkpoint: CheckpointRequirement = CheckpointRequirement.NONE
    checkpoint_type: CheckpointType = CheckpointType.INFORMATIONAL
    checkpoint_prompt: str = ""
    clarification: bool = False

    def task_ids(self) -> tuple[str, ...]:
        return tuple(t.task_id for t in self.tasks)


@dataclass(frozen=True)
class Plan:
    """Immutable ordered phase structure selected for a run."""

    version: int
    pattern: str | None
    phases: tuple[PhaseSpec, ...]
    basis: str | None = None  # checkpoint whose decision produced this version

    def phase(self, phase_id: str) -> PhaseSpec:
        for phase in self.phases:
            if phase.phase_id == phase_id:
                return phase
        raise KeyError(f"Phase not found in plan: {phase_id}")

    def index_of(self, phase_id: str) -> int:
        return self.phase(phase_id).ordinal

    def all_tasks(self) -> tuple[TaskSpec, ...]:
        return tuple(task for phase in self.phases for task in phase.tasks)


# =============================================================================
# ARTIFACTS
# =============================================================================


class ValidationStatus(str, Enum):
    """Result of the engine's shape check on a worker output."""

    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"


@dataclass(frozen=True)
class WorkerOutput:
    """What a worker returns: a payload claimed to match a schema id."""

    schema_id: str
    payload: dict[str, Any]


@dataclass(frozen=True)
class Artifact:
    """
    Immutable typed output of exactly one task.

    The artifact_id is derived from the content, so storing the same
    artifact twice is idempotent.
    """

    artifact_id: str
    run_id: str
    phase_id: str
    task_id: str
    producer_id: str
    schema_id: str
    version: int
    payload: dict[str, Any]
    created_at: str  # ISO timestamp
    validation: ValidationStatus = ValidationStatus.PENDING


@dataclass(frozen=True)
class ArtifactSummary:
    """Compact view of an artifact for consumers that only need metadata."""

    artifact_id: str
    run_id: str
    phase_id: str
    task_id: str
    producer_id: str
    schema_id: str
    version: int
    created_at: str
    validation: ValidationStatus
    payload_keys: tuple[str, ...]
    payload_bytes: int


# =============================================================================
# CHECKPOINTS
# =============================================================================


class Decision(str, Enum):
    """Human decision on a checkpoint."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    MODIFY_REQUESTED = "modify_requested"


@dataclass(frozen=True)
class Checkpoint:
    """Human-approval record attached to a phase."""

    checkpoint_id: str
    run_id: str
    phase_id: str
    checkpoint_type: CheckpointType
    blocking: bool
    prompt: str
    summary: str = ""
    decision: Decision = Decision.PENDING
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    decided_at: str | None = None

    @property
    def is_open(self) -> bool:
        return self.decision == Decision.PENDING


@dataclass(frozen=True)
class Resolution:
    """A decision supplied to resume() or returned by an approval channel."""

    decision: Decision
    payload: dict[str, Any] = field(default_factory=dict)
    checkpoint_id: str | None = None


# =============================================================================
# RUN / TASK STATE
# =============================================================================


class RunStatus(str, Enum):
    """Top-level run state machine."""

    INITIALIZED = "initialized"
    PLANNING = "planning"
    EXECUTING = "executing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


class PauseReason(str, Enum):
    """Why a paused run is waiting."""

    AWAITING_CHECKPOINT = "awaiting_checkpoint"
    AWAITING_CLARIFICATION = "awaiting_clarification"
    NEEDS_RESCOPE = "needs_rescope"


class PhaseStatus(str, Enum):
    """Derived phase status. Never stored."""

    PENDING = "pending"
    ACTIVE = "active"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskStatus(str, Enum):
    """Per-task state machine."""

    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"  # Awaiting a retry decision
    FAILED_TERMINAL = "failed_terminal"
    SKIPPED = "skipped"  # Blocked on a failed dependency

    @property
    def is_terminal(self) -> bool:
        return self in (
            TaskStatus.SUCCEEDED,
            TaskStatus.FAILED_TERMINAL,
            TaskStatus.SKIPPED,
        )


@dataclass(frozen=True)
class ErrorInfo:
    """Error class and message recorded for a failed task or run."""

    error_class: str
    message: str
    recoverable: bool = False
    task_id: str | None = None
    code: str | None = None


@dataclass(frozen=True)
class TaskFailure:
    """Failure reported by the worker invoker instead of an output."""

    error_class: str
    message: str
    recoverable: bool

    def to_error(self, task_id: str | None = None) -> ErrorInfo:
        return ErrorInfo(
            error_class=self.error_class,
            message=self.message,
            recoverable=self.recoverable,
            task_id=task_id,
        )


@dataclass
class TaskState:
    """Mutable lifecycle record of one task. Owned by the State Manager."""

    spec: TaskSpec
    status: TaskStatus = TaskStatus.PENDING
    attempts: int = 0
    last_error: ErrorInfo | None = None
    artifact_id: str | None = None
    skipped_reason: str = ""

    @property
    def task_id(self) -> str:
        return self.spec.task_id

    @property
    def failed_tolerated(self) -> bool:
        """Terminally unsuccessful, but the plan tolerates it."""
        return self.spec.skip_tolerant and self.status in (
            TaskStatus.FAILED_TERMINAL,
            TaskStatus.SKIPPED,
        )


@dataclass
class RunState:
    """Mutable durable record of one run. Owned by the State Manager."""

    run_id: str
    request: ClassifiedRequest
    created_at: str
    updated_at: str = ""
    status: RunStatus = RunStatus.INITIALIZED
    pause_reason: PauseReason | None = None
    plans: list[Plan] = field(default_factory=list)
    phase_index: int = 0
    entered_phases: list[str] = field(default_factory=list)
    tasks: dict[str, TaskState] = field(default_factory=dict)
    checkpoints: dict[str, Checkpoint] = field(default_factory=dict)
    cancel_requested: bool = False
    error: ErrorInfo | None = None
    last_event_seq: int = 0

    @property
    def plan(self) -> Plan | None:
        return self.plans[-1] if self.plans else None

    def phase_tasks(self, phase_id: str) -> list[TaskState]:
        return [t for t in self.tasks.values() if t.spec.phase_id == phase_id]

    def checkpoints_for(self, phase_id: str) -> list[Checkpoint]:
        found = [c for c in self.checkpoints.values() if c.phase_id == phase_id]
        return sorted(found, key=lambda c: c.created_at)

    def latest_checkpoint(self, phase_id: str) -> Checkpoint | None:
        found = self.checkpoints_for(phase_id)
        return found[-1] if found else None

    def latest_output(self, task_id: str) -> str | None:
        """Artifact id of a task, or of its most recent successful revision.

        Revisions always point at the original task, and tasks are kept in
        insertion order, so the last successful match is the newest.
        """
        artifact_id = None
        current = self.tasks.get(task_id)
        if current is not None and current.status == TaskStatus.SUCCEEDED:
            artifact_id = current.artifact_id
        for state in self.tasks.values():
            if (
                state.spec.revision_of == task_id
                and state.status == TaskStatus.SUCCEEDED
            ):
                artifact_id = state.artifact_id
        return artifact_id


# =============================================================================
# STATUS SNAPSHOTS
# =============================================================================


@dataclass(frozen=True)
class TaskSnapshot:
    """Read-only view of a task for status()."""

    task_id: str
    phase_id: str
    producer_id: str
    status: TaskStatus
    attempts: int
    retries_remaining: int
    skip_tolerant: bool
    artifact_id: str | None = None
    error_class: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class PhaseSnapshot:
    """Read-only view of a phase, with its derived status."""

    phase_id: str
    ordinal: int
    status: PhaseStatus
    tasks: tuple[TaskSnapshot, ...]
    checkpoint: Checkpoint | None = None


@dataclass(frozen=True)
class RunSnapshot:
    """Everything status() reports about a run."""

    run_id: str
    status: RunStatus
    pause_reason: PauseReason | None
    pattern: str | None
    plan_version: int
    current_phase: str | None
    phases: tuple[PhaseSnapshot, ...]
    pending_checkpoint: Checkpoint | None = None
    failing_task: TaskSnapshot | None = None
    error: ErrorInfo | None = None
    cancel_requested: bool = False

    def phase(self, phase_id: str) -> PhaseSnapshot:
        for phase in self.phases:
            if phase.phase_id == phase_id:
                return phase
        raise KeyError(f"Phase not found in snapshot: {phase_id}")

    def task(self, task_id: str) -> TaskSnapshot:
        for phase in self.phases:
            for task in phase.tasks:
                if task.task_id == task_id:
                    return task
        raise KeyError(f"Task not found in snapshot: {task_id}")
