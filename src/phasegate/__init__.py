"""
phasegate: durable, resumable, phase-gated workflow orchestration.

Runs a classified feature request through an ordered plan of phases. Each
phase runs a dependency graph of tasks on pluggable workers, may end in a
human checkpoint, and every transition is logged before it is applied so
a run can be resumed exactly where it stopped.

Example:
    from phasegate import ClassifiedRequest, ComplexityTier, build_engine
    from phasegate.infrastructure import ScriptedWorker

    engine = build_engine(default_worker=ScriptedWorker())
    run_id = engine.controller.start(
        ClassifiedRequest("Add a login endpoint", "feature", ComplexityTier.SIMPLE,
                          domain_tags=frozenset({"backend"}))
    )
    print(engine.controller.status(run_id).status)
"""

# Application layer (orchestration)
from phasegate.application.checkpoint_gate import CheckpointGate
from phasegate.application.controller import RunController
from phasegate.application.scheduler import PhaseScheduler
from phasegate.application.state_manager import StateManager

# Composition root
from phasegate.bootstrap import Engine, build_engine
from phasegate.config import EngineConfig, load_config

# Domain exceptions
from phasegate.domain.exceptions import (
    CheckpointError,
    ContractViolation,
    PermanentTaskFailure,
    PlanningFailure,
    ResourceOverflow,
    RunNotFound,
    TransientTaskFailure,
)

# Domain interfaces (for type hints and custom implementations)
from phasegate.domain.interfaces import (
    ApprovalChannelInterface,
    RequestClassifierInterface,
    WorkerInterface,
)
from phasegate.domain.models import (
    Artifact,
    ClassifiedRequest,
    ComplexityTier,
    Decision,
    PauseReason,
    Resolution,
    RunSnapshot,
    RunStatus,
    TaskSpec,
    TaskStatus,
    WorkerOutput,
)
from phasegate.domain.planning import Planner

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Application
    "CheckpointGate",
    "PhaseScheduler",
    "RunController",
    "StateManager",
    # Composition
    "Engine",
    "EngineConfig",
    "build_engine",
    "load_config",
    # Planning
    "Planner",
    # Models
    "Artifact",
    "ClassifiedRequest",
    "ComplexityTier",
    "Decision",
    "PauseReason",
    "Resolution",
    "RunSnapshot",
    "RunStatus",
    "TaskSpec",
    "TaskStatus",
    "WorkerOutput",
    # Interfaces
    "ApprovalChannelInterface",
    "RequestClassifierInterface",
    "WorkerInterface",
    # Exceptions
    "CheckpointError",
    "ContractViolation",
    "PermanentTaskFailure",
    "PlanningFailure",
    "ResourceOverflow",
    "RunNotFound",
    "TransientTaskFailure",
]
