"""
Worker Invoker: a facade over the registered worker capabilities.

Calls the worker bound to a task's producer id and converts whatever it
raises into a classified TaskFailure. No domain logic lives here.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from phasegate.domain.exceptions import (
    PermanentTaskFailure,
    ResourceOverflow,
    TaskFailureError,
)
from phasegate.domain.models import TaskFailure, WorkerOutput

if TYPE_CHECKING:
    from phasegate.domain.interfaces import WorkerDirectoryInterface, WorkerInterface
    from phasegate.domain.models import Artifact, TaskSpec

logger = logging.getLogger(__name__)

RECOVERABLE_BUILTINS: tuple[type[BaseException], ...] = (TimeoutError, ConnectionError)


def classify_failure(exc: BaseException) -> TaskFailure:
    """Map an exception raised by a worker onto the failure taxonomy."""
    if isinstance(exc, ResourceOverflow):
        return TaskFailure("ResourceOverflow", str(exc), recoverable=False)
    if isinstance(exc, TaskFailureError):
        return TaskFailure(type(exc).__name__, str(exc), recoverable=exc.recoverable)
    if isinstance(exc, RECOVERABLE_BUILTINS):
        return TaskFailure(type(exc).__name__, str(exc), recoverable=True)
    return TaskFailure(type(exc).__name__, str(exc), recoverable=False)


class WorkerInvoker:
    """Invokes the worker registered for a task's producer id."""

    def __init__(
        self,
        workers: WorkerDirectoryInterface,
        timeout_seconds: float | None = None,
    ):
        """
        Args:
            workers: Resolves producer ids to workers
            timeout_seconds: Default per-task timeout (None: unbounded)
        """
        self._workers = workers
        self._timeout = timeout_seconds

    def worker_for(self, producer_id: str) -> WorkerInterface:
        """
        Raises:
            PermanentTaskFailure: If no worker serves the producer id
        """
        try:
            return self._workers.worker_for(producer_id)
        except KeyError:
            raise PermanentTaskFailure(
                f"No worker registered for '{producer_id}'"
            ) from None

    def invoke(
        self, task: TaskSpec, inputs: Mapping[str, Artifact]
    ) -> WorkerOutput | TaskFailure:
        """
        Run one attempt of a task.

        Args:
            task: The task specification
            inputs: Input artifacts keyed by the producing task id

        Returns:
            The worker's output, or a TaskFailure describing what went wrong
        """
        try:
            worker = self.worker_for(task.producer_id)
        except PermanentTaskFailure as e:
            return classify_failure(e)

        timeout = task.timeout_seconds if task.timeout_seconds is not None else self._timeout
        try:
            if timeout is None:
                output = worker.invoke(task, inputs)
            else:
                output = self._invoke_with_timeout(worker, task, inputs, timeout)
        except Exception as e:
            failure = classify_failure(e)
            logger.debug(
                "Task %s failed: %s: %s", task.task_id, failure.error_class, e
            )
            return failure

        if not isinstance(output, WorkerOutput):
            return TaskFailure(
                "ContractViolation",
                f"worker returned {type(output).__name__}, expected WorkerOutput",
                recoverable=False,
            )
        return output

    @staticmethod
    def _invoke_with_timeout(
        worker: WorkerInterface,
        task: TaskSpec,
        inputs: Mapping[str, Artifact],
        timeout: float,
    ) -> WorkerOutput:
        # The late result of a timed-out call is never read
        executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"phasegate-{task.task_id}"
        )
        try:
            future = executor.submit(worker.invoke, task, inputs)
            try:
                return future.result(timeout=timeout)
            except TimeoutError:
                future.cancel()
                raise TimeoutError(
                    f"task '{task.task_id}' exceeded {timeout:g}s"
                ) from None
        finally:
            executor.shutdown(wait=False)
