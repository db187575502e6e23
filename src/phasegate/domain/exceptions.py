"""
Domain exceptions for the orchestration engine.

Task-level failures share the TaskFailureError base so the worker invoker
can classify them; everything else is a rule violation raised by the engine.
"""


class TaskFailureError(Exception):
    """Base class for failures of a single task invocation."""

    recoverable = False


class TransientTaskFailure(TaskFailureError):
    """
    Recoverable failure (timeout, transient resource unavailability).

    Retried with exponential backoff until the retry budget is spent.
    """

    recoverable = True


class PermanentTaskFailure(TaskFailureError):
    """Non-recoverable failure (malformed input, contract violation). Never retried."""


class ContractViolation(PermanentTaskFailure):
    """A task's output does not match its declared schema."""


class ResourceOverflow(TaskFailureError):
    """
    A task's input exceeds its declared capacity.

    Not auto-recoverable: the run pauses with reason needs_rescope.
    """


class PlanningFailure(Exception):
    """No applicable execution pattern, or the plan is malformed. Not retried."""

    def __init__(self, code: str, message: str = ""):
        """
        Args:
            code: Machine-readable reason (e.g. "no_applicable_pattern")
            message: Human-readable detail
        """
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code


class ArtifactExistsError(Exception):
    """An artifact already occupies this (run, phase, producer, schema, version)."""


class ArtifactNotFound(KeyError):
    """No artifact with the requested id."""


class RunNotFound(KeyError):
    """No run with the requested id."""


class InvalidTransition(Exception):
    """A state transition not allowed by the state machine."""

    def __init__(self, subject: str, current: str, target: str):
        super().__init__(f"{subject}: cannot transition {current} -> {target}")
        self.subject = subject
        self.current = current
        self.target = target


class CheckpointError(Exception):
    """A checkpoint was raised or resolved incorrectly."""


class ConfigurationError(Exception):
    """Raised when configuration files are invalid or missing."""
