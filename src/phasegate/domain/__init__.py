"""
Domain layer for the phase-gated orchestration engine.

Contains core business logic with no external dependencies.
"""

from phasegate.domain.events import Event, EventKind
from phasegate.domain.exceptions import (
    ArtifactExistsError,
    ArtifactNotFound,
    CheckpointError,
    ConfigurationError,
    ContractViolation,
    InvalidTransition,
    PermanentTaskFailure,
    PlanningFailure,
    ResourceOverflow,
    RunNotFound,
    TaskFailureError,
    TransientTaskFailure,
)
from phasegate.domain.interfaces import (
    ApprovalChannelInterface,
    ArtifactStoreInterface,
    ContractValidatorInterface,
    EventLogInterface,
    RequestClassifierInterface,
    RunStoreInterface,
    WorkerInterface,
)
from phasegate.domain.models import (
    Artifact,
    ArtifactSummary,
    Checkpoint,
    CheckpointRequirement,
    CheckpointType,
    ClassifiedRequest,
    ComplexityTier,
    Decision,
    ErrorInfo,
    PauseReason,
    PhaseSnapshot,
    PhaseSpec,
    PhaseStatus,
    Plan,
    Resolution,
    RunSnapshot,
    RunState,
    RunStatus,
    TaskFailure,
    TaskSnapshot,
    TaskSpec,
    TaskState,
    TaskStatus,
    ValidationStatus,
    WorkerOutput,
)
from phasegate.domain.planning import PatternTable, Planner

__all__ = [
    # Models
    "Artifact",
    "ArtifactSummary",
    "Checkpoint",
    "CheckpointRequirement",
    "CheckpointType",
    "ClassifiedRequest",
    "ComplexityTier",
    "Decision",
    "ErrorInfo",
    "PauseReason",
    "PhaseSnapshot",
    "PhaseSpec",
    "PhaseStatus",
    "Plan",
    "Resolution",
    "RunSnapshot",
    "RunState",
    "RunStatus",
    "TaskFailure",
    "TaskSnapshot",
    "TaskSpec",
    "TaskState",
    "TaskStatus",
    "ValidationStatus",
    "WorkerOutput",
    # Events
    "Event",
    "EventKind",
    # Planning
    "PatternTable",
    "Planner",
    # Interfaces
    "ApprovalChannelInterface",
    "ArtifactStoreInterface",
    "ContractValidatorInterface",
    "EventLogInterface",
    "RequestClassifierInterface",
    "RunStoreInterface",
    "WorkerInterface",
    # Exceptions
    "ArtifactExistsError",
    "ArtifactNotFound",
    "CheckpointError",
    "ConfigurationError",
    "ContractViolation",
    "InvalidTransition",
    "PermanentTaskFailure",
    "PlanningFailure",
    "ResourceOverflow",
    "RunNotFound",
    "TaskFailureError",
    "TransientTaskFailure",
]
