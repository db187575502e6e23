"""
Persistence adapters for artifacts, run records and the event log.
"""

from phasegate.infrastructure.persistence.events import FilesystemEventLog
from phasegate.infrastructure.persistence.filesystem import FilesystemArtifactStore
from phasegate.infrastructure.persistence.memory import (
    InMemoryArtifactStore,
    InMemoryEventLog,
    InMemoryRunStore,
)
from phasegate.infrastructure.persistence.runs import FilesystemRunStore

__all__ = [
    "InMemoryArtifactStore",
    "InMemoryEventLog",
    "InMemoryRunStore",
    "FilesystemArtifactStore",
    "FilesystemEventLog",
    "FilesystemRunStore",
]
