"""
Domain interfaces (Ports) for the orchestration engine.

These abstract base classes define the contracts that adapters must satisfy.
They have no external dependencies and represent the core domain boundaries.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from phasegate.domain.events import Event, EventKind
    from phasegate.domain.models import (
        Artifact,
        ArtifactSummary,
        Checkpoint,
        ClassifiedRequest,
        Resolution,
        RunState,
        TaskSpec,
        WorkerOutput,
    )


class WorkerInterface(ABC):
    """
    Port for a worker capability (an LLM agent, a script, a human).

    One implementation per producer identity. Workers receive the task spec
    and the artifacts of the tasks it depends on, keyed by task id, and
    either return an output or raise. TransientTaskFailure signals a
    retryable problem; any other exception is treated as permanent by
    the invoker unless it is a TimeoutError or ConnectionError.
    """

    @abstractmethod
    def invoke(
        self, task: "TaskSpec", inputs: Mapping[str, "Artifact"]
    ) -> "WorkerOutput":
        """
        Run the task.

        Args:
            task: The task specification
            inputs: Input artifacts keyed by the producing task id

        Returns:
            WorkerOutput claiming a schema id and carrying a JSON payload
        """
        pass


class WorkerDirectoryInterface(ABC):
    """Port resolving the worker that serves a producer identity."""

    @abstractmethod
    def worker_for(self, producer_id: str) -> WorkerInterface:
        """
        Raises:
            KeyError: If no worker serves the producer id
        """
        pass


class ArtifactStoreInterface(ABC):
    """
    Port for artifact persistence.

    Append-only: an artifact key (run, phase, producer, schema, version)
    is written once.
    """

    @abstractmethod
    def put(self, artifact: "Artifact") -> str:
        """
        Store an artifact.

        Returns:
            The artifact_id

        Raises:
            ArtifactExistsError: If a different artifact holds the same key
        """
        pass

    @abstractmethod
    def get(self, artifact_id: str) -> "Artifact":
        """
        Raises:
            ArtifactNotFound: If the artifact does not exist
        """
        pass

    @abstractmethod
    def get_summary(self, artifact_id: str) -> "ArtifactSummary":
        """
        Raises:
            ArtifactNotFound: If the artifact does not exist
        """
        pass

    @abstractmethod
    def exists(self, artifact_id: str) -> bool:
        pass

    @abstractmethod
    def latest_version(
        self, run_id: str, phase_id: str, producer_id: str, schema_id: str
    ) -> int:
        """Highest stored version for the key, or 0 when none exists."""
        pass

    @abstractmethod
    def list_for_run(self, run_id: str) -> list["ArtifactSummary"]:
        pass


class RunStoreInterface(ABC):
    """Port for durable run records."""

    @abstractmethod
    def save(self, state: "RunState") -> None:
        pass

    @abstractmethod
    def load(self, run_id: str) -> "RunState":
        """
        Raises:
            RunNotFound: If no record exists
        """
        pass

    @abstractmethod
    def list_runs(self) -> list[str]:
        pass


class EventLogInterface(ABC):
    """Port for the append-only event log."""

    @abstractmethod
    def append(self, event: "Event") -> "Event":
        """
        Append an event.

        Returns:
            The stored event, carrying its assigned sequence number
        """
        pass

    @abstractmethod
    def read(
        self,
        run_id: str,
        kind: "EventKind | None" = None,
        subject: str | None = None,
        after: int = 0,
    ) -> list["Event"]:
        """Events of a run in sequence order, optionally filtered."""
        pass

    @abstractmethod
    def last_sequence(self, run_id: str) -> int:
        pass


class ContractValidatorInterface(ABC):
    """Port for the output shape check (content stays opaque)."""

    @abstractmethod
    def validate(self, task: "TaskSpec", output: "WorkerOutput") -> None:
        """
        Raises:
            ContractViolation: If the output does not match the declared schema
        """
        pass


class ApprovalChannelInterface(ABC):
    """
    Port for the human approval channel (queue, RPC, CLI prompt).

    notify() may answer synchronously with a Resolution, or return None
    when the decision will arrive later through resume().
    """

    @abstractmethod
    def notify(self, checkpoint: "Checkpoint") -> "Resolution | None":
        pass


class RequestClassifierInterface(ABC):
    """Port for the external request classifier."""

    @abstractmethod
    def classify(self, text: str) -> "ClassifiedRequest":
        pass
