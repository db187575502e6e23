"""
Application layer for the phase-gated orchestration engine.

Contains use cases and orchestration logic that coordinates domain objects.
"""

from phasegate.application.checkpoint_gate import CheckpointGate
from phasegate.application.controller import RunController
from phasegate.application.event_emitter import RunEventEmitter
from phasegate.application.invoker import WorkerInvoker, classify_failure
from phasegate.application.scheduler import PhaseOutcome, PhaseScheduler
from phasegate.application.state_manager import StateManager

__all__ = [
    "CheckpointGate",
    "PhaseOutcome",
    "PhaseScheduler",
    "RunController",
    "RunEventEmitter",
    "StateManager",
    "WorkerInvoker",
    "classify_failure",
]
