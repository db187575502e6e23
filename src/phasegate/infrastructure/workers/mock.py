"""
Scripted worker for testing without real agents.

Returns predefined payloads or raises predefined failures in sequence.
"""

import threading
import time
from collections.abc import Mapping
from typing import Any

from phasegate.domain.interfaces import WorkerInterface
from phasegate.domain.models import Artifact, TaskSpec, WorkerOutput


class ScriptedWorker(WorkerInterface):
    """
    Plays back a script of responses, one per invocation.

    Each script entry is a payload dict (wrapped with the task's declared
    schema), a WorkerOutput (returned as is) or an exception instance
    (raised). Once the script is exhausted, a default payload describing
    the task and its inputs is returned.
    """

    def __init__(
        self,
        responses: list[Any] | None = None,
        delay: float = 0.0,
    ):
        """
        Args:
            responses: Script entries, consumed in order
            delay: Seconds to sleep before answering
        """
        self._responses = list(responses or [])
        self._delay = delay
        self._call_count = 0
        self._calls: list[tuple[str, tuple[str, ...]]] = []
        self._lock = threading.Lock()

    def invoke(self, task: TaskSpec, inputs: Mapping[str, Artifact]) -> WorkerOutput:
        with self._lock:
            index = self._call_count
            self._call_count += 1
            self._calls.append((task.task_id, tuple(sorted(inputs))))

        if self._delay:
            time.sleep(self._delay)

        if index >= len(self._responses):
            return WorkerOutput(
                schema_id=task.output_schema,
                payload={
                    "task_id": task.task_id,
                    "producer_id": task.producer_id,
                    "instructions": task.instructions,
                    "inputs": {
                        task_id: artifact.artifact_id
                        for task_id, artifact in sorted(inputs.items())
                    },
                },
            )

        response = self._responses[index]
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, WorkerOutput):
            return response
        return WorkerOutput(schema_id=task.output_schema, payload=dict(response))

    @property
    def call_count(self) -> int:
        """Number of times invoke() has been called."""
        return self._call_count

    @property
    def calls(self) -> list[tuple[str, tuple[str, ...]]]:
        """(task_id, sorted input task ids) per invocation."""
        with self._lock:
            return list(self._calls)

    def reset(self) -> None:
        """Reset the call counter to reuse responses."""
        with self._lock:
            self._call_count = 0
            self._calls.clear()
