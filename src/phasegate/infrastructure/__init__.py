"""
Infrastructure layer for the phase-gated orchestration engine.

Contains adapters for external concerns (persistence, workers, approval, registry).
"""

from phasegate.infrastructure.approval import (
    ConsoleApprovalChannel,
    QueueApprovalChannel,
)
from phasegate.infrastructure.contracts import JsonSchemaContractValidator
from phasegate.infrastructure.persistence import (
    FilesystemArtifactStore,
    FilesystemEventLog,
    FilesystemRunStore,
    InMemoryArtifactStore,
    InMemoryEventLog,
    InMemoryRunStore,
)
from phasegate.infrastructure.registry import WorkerRegistry
from phasegate.infrastructure.workers import ScriptedWorker

__all__ = [
    # Persistence
    "InMemoryArtifactStore",
    "InMemoryEventLog",
    "InMemoryRunStore",
    "FilesystemArtifactStore",
    "FilesystemEventLog",
    "FilesystemRunStore",
    # Contracts
    "JsonSchemaContractValidator",
    # Approval
    "ConsoleApprovalChannel",
    "QueueApprovalChannel",
    # Workers
    "ScriptedWorker",
    "WorkerRegistry",
]
