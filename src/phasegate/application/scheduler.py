"""
Phase Scheduler: dispatches the tasks of one phase under its dependency graph.

Ready tasks run concurrently on a thread pool (one at a time for phases
that are not concurrent). Each dispatched task runs its whole retry loop
on its worker thread; the coordinating thread only recomputes the ready
set as tasks finish. Every status change goes through the State Manager.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from phasegate.domain.exceptions import ContractViolation, TransientTaskFailure
from phasegate.domain.graph import blocked_tasks, ready_tasks, topological_order
from phasegate.domain.models import (
    Artifact,
    ErrorInfo,
    PhaseSpec,
    PhaseStatus,
    RunState,
    TaskFailure,
    TaskSpec,
    TaskStatus,
    ValidationStatus,
    WorkerOutput,
)
from phasegate.domain.transitions import derive_phase_status

if TYPE_CHECKING:
    from phasegate.application.invoker import WorkerInvoker
    from phasegate.application.state_manager import StateManager
    from phasegate.domain.interfaces import (
        ArtifactStoreInterface,
        ContractValidatorInterface,
    )

logger = logging.getLogger(__name__)


class PhaseOutcome(str, Enum):
    """How run_phase() left the phase."""

    COMPLETED = "completed"  # Every task terminal, none failing the phase
    FAILED = "failed"
    NEEDS_RESCOPE = "needs_rescope"  # A task's input exceeded its capacity
    CANCELLED = "cancelled"


class _TaskResult(Enum):
    DONE = "done"
    OVERFLOW = "overflow"
    DISCARDED = "discarded"


def artifact_id_for(
    run_id: str,
    spec: TaskSpec,
    schema_id: str,
    version: int,
    payload: dict[str, Any],
) -> str:
    """Content address of an artifact: its key plus its canonical payload."""
    body = json.dumps(
        {
            "run_id": run_id,
            "phase_id": spec.phase_id,
            "task_id": spec.task_id,
            "producer_id": spec.producer_id,
            "schema_id": schema_id,
            "version": version,
            "payload": payload,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


class PhaseScheduler:
    """Runs the tasks of a phase to a terminal outcome."""

    def __init__(
        self,
        state_manager: StateManager,
        invoker: WorkerInvoker,
        artifacts: ArtifactStoreInterface,
        validator: ContractValidatorInterface,
        max_workers: int = 4,
        backoff_base_seconds: float = 1.0,
        backoff_max_seconds: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Args:
            state_manager: Single writer of task state
            invoker: Worker facade
            artifacts: Artifact store (inputs are read, outputs appended)
            validator: Output shape check
            max_workers: Thread pool size per phase
            backoff_base_seconds: First retry delay; doubles per attempt
            backoff_max_seconds: Retry delay ceiling
            sleep: Used between retries (injectable for tests)
        """
        self._state = state_manager
        self._invoker = invoker
        self._artifacts = artifacts
        self._validator = validator
        self._max_workers = max_workers
        self._backoff_base = backoff_base_seconds
        self._backoff_max = backoff_max_seconds
        self._sleep = sleep
        self._put_lock = threading.Lock()

    # =========================================================================
    # PHASE LOOP
    # =========================================================================

    def run_phase(self, run_id: str, phase: PhaseSpec) -> PhaseOutcome:
        """
        Execute every runnable task of a phase.

        Returns once nothing is in flight and nothing more can be
        dispatched: all tasks terminal, the phase failed, an input
        overflowed, or cancellation was requested.
        """
        overflow = self._recover(run_id, phase)
        state = self._state.get(run_id)
        order = topological_order([t.spec for t in state.phase_tasks(phase.phase_id)])
        in_flight: dict[Future[_TaskResult], str] = {}

        with ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="phasegate"
        ) as pool:
            while True:
                state = self._state.get(run_id)
                if self._may_dispatch(state, phase, overflow):
                    self._skip_blocked(run_id, phase)
                    for task_id in self._dispatchable(state, phase, order, in_flight):
                        if self._over_capacity(run_id, state, task_id):
                            overflow = True
                            break
                        logger.info("Run %s: dispatching %s", run_id, task_id)
                        in_flight[pool.submit(self._execute, run_id, task_id)] = task_id

                if not in_flight:
                    break

                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    del in_flight[future]
                    if future.result() == _TaskResult.OVERFLOW:
                        overflow = True

        return self._outcome(run_id, phase, overflow)

    def _may_dispatch(self, state: RunState, phase: PhaseSpec, overflow: bool) -> bool:
        if state.cancel_requested or overflow:
            return False
        return derive_phase_status(state, phase) != PhaseStatus.FAILED

    def _outcome(self, run_id: str, phase: PhaseSpec, overflow: bool) -> PhaseOutcome:
        state = self._state.get(run_id)
        if state.cancel_requested:
            return PhaseOutcome.CANCELLED
        if overflow:
            return PhaseOutcome.NEEDS_RESCOPE
        if derive_phase_status(state, phase) == PhaseStatus.FAILED:
            return PhaseOutcome.FAILED
        if all(t.status.is_terminal for t in state.phase_tasks(phase.phase_id)):
            return PhaseOutcome.COMPLETED
        logger.error("Run %s: phase '%s' stalled with unfinished tasks", run_id, phase.phase_id)
        return PhaseOutcome.FAILED

    def _recover(self, run_id: str, phase: PhaseSpec) -> bool:
        """
        Bring tasks interrupted by a crash or a pause back into the loop.

        Returns:
            True if a task is still waiting on a rescope decision
        """
        overflow = False
        state = self._state.get(run_id)
        for task in state.phase_tasks(phase.phase_id):
            budget = self._state.max_retries_for(task.spec) + 1
            error = task.last_error
            if task.status == TaskStatus.RUNNING:
                if task.attempts < budget:
                    self._state.set_task_status(
                        run_id, task.task_id, TaskStatus.READY, reason="recovered"
                    )
                    continue
                error = ErrorInfo(
                    "Interrupted",
                    "final attempt interrupted",
                    recoverable=True,
                    task_id=task.task_id,
                )
                self._state.set_task_status(
                    run_id, task.task_id, TaskStatus.FAILED, error=error
                )
            elif task.status != TaskStatus.FAILED:
                continue
            if error is not None and error.error_class == "ResourceOverflow":
                overflow = True
            elif error is not None and error.recoverable and task.attempts < budget:
                self._state.set_task_status(run_id, task.task_id, TaskStatus.READY)
            else:
                self._state.set_task_status(
                    run_id, task.task_id, TaskStatus.FAILED_TERMINAL
                )
        return overflow

    def _skip_blocked(self, run_id: str, phase: PhaseSpec) -> None:
        while True:
            blocked = blocked_tasks(self._state.get(run_id), phase)
            if not blocked:
                return
            for task_id, reason in blocked:
                logger.warning("Run %s: skipping %s, %s", run_id, task_id, reason)
                self._state.set_task_status(
                    run_id, task_id, TaskStatus.SKIPPED, reason=reason
                )

    def _dispatchable(
        self,
        state: RunState,
        phase: PhaseSpec,
        order: list[str],
        in_flight: dict[Future[_TaskResult], str],
    ) -> list[str]:
        state = self._state.get(state.run_id)
        promoted = ready_tasks(state, phase)
        for task_id in promoted:
            self._state.set_task_status(state.run_id, task_id, TaskStatus.READY)
        if promoted:
            state = self._state.get(state.run_id)

        running = set(in_flight.values())
        candidates = [
            tid
            for tid in order
            if state.tasks[tid].status == TaskStatus.READY and tid not in running
        ]
        if phase.concurrent:
            return candidates
        return candidates[:1] if not running else []

    def _over_capacity(self, run_id: str, state: RunState, task_id: str) -> bool:
        spec = state.tasks[task_id].spec
        if spec.max_input_bytes is None:
            return False
        total = sum(
            self._artifacts.get_summary(state.latest_output(dep)).payload_bytes
            for dep in spec.inputs
        )
        if total <= spec.max_input_bytes:
            return False
        logger.warning(
            "Run %s: %s inputs are %d bytes, capacity %d",
            run_id,
            task_id,
            total,
            spec.max_input_bytes,
        )
        self._state.set_task_status(
            run_id,
            task_id,
            TaskStatus.FAILED,
            error=ErrorInfo(
                "ResourceOverflow",
                f"inputs total {total} bytes, capacity is {spec.max_input_bytes}",
                recoverable=False,
                task_id=task_id,
            ),
        )
        return True

    # =========================================================================
    # TASK EXECUTION (worker threads)
    # =========================================================================

    def _execute(self, run_id: str, task_id: str) -> _TaskResult:
        task = self._state.get(run_id).tasks[task_id]
        budget = self._state.max_retries_for(task.spec) + 1
        retrying = Retrying(
            stop=stop_after_attempt(max(1, budget - task.attempts)),
            wait=wait_exponential(multiplier=self._backoff_base, max=self._backoff_max),
            retry=retry_if_exception_type(TransientTaskFailure),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            return retrying(self._attempt, run_id, task_id, budget)
        except TransientTaskFailure:
            self._state.set_task_status(
                run_id, task_id, TaskStatus.FAILED_TERMINAL, reason="retries exhausted"
            )
            logger.error("Run %s: %s failed after %d attempt(s)", run_id, task_id, budget)
            return _TaskResult.DONE

    def _attempt(self, run_id: str, task_id: str, budget: int) -> _TaskResult:
        state = self._state.get(run_id)
        if state.cancel_requested:
            return _TaskResult.DISCARDED

        spec = state.tasks[task_id].spec
        inputs = {
            dep: self._artifacts.get(state.latest_output(dep)) for dep in spec.inputs
        }
        self._state.set_task_status(run_id, task_id, TaskStatus.RUNNING)
        result = self._invoker.invoke(spec, inputs)

        if self._state.get(run_id).cancel_requested:
            self._state.set_task_status(
                run_id, task_id, TaskStatus.READY, reason="result discarded on cancel"
            )
            return _TaskResult.DISCARDED

        if isinstance(result, WorkerOutput):
            try:
                self._validator.validate(spec, result)
            except ContractViolation as e:
                result = TaskFailure("ContractViolation", str(e), recoverable=False)
            else:
                self._store(run_id, spec, result)
                return _TaskResult.DONE

        task = self._state.set_task_status(
            run_id, task_id, TaskStatus.FAILED, error=result.to_error(task_id)
        )
        if result.error_class == "ResourceOverflow":
            return _TaskResult.OVERFLOW
        if not result.recoverable:
            self._state.set_task_status(
                run_id, task_id, TaskStatus.FAILED_TERMINAL, reason="permanent failure"
            )
            logger.error(
                "Run %s: %s failed permanently: %s", run_id, task_id, result.message
            )
            return _TaskResult.DONE
        if task.attempts < budget:
            self._state.set_task_status(run_id, task_id, TaskStatus.READY)
        raise TransientTaskFailure(f"{task_id}: {result.message}")

    def _store(self, run_id: str, spec: TaskSpec, output: WorkerOutput) -> None:
        with self._put_lock:
            version = (
                self._artifacts.latest_version(
                    run_id, spec.phase_id, spec.producer_id, output.schema_id
                )
                + 1
            )
            artifact = Artifact(
                artifact_id=artifact_id_for(
                    run_id, spec, output.schema_id, version, output.payload
                ),
                run_id=run_id,
                phase_id=spec.phase_id,
                task_id=spec.task_id,
                producer_id=spec.producer_id,
                schema_id=output.schema_id,
                version=version,
                payload=output.payload,
                created_at=datetime.now(UTC).isoformat(),
                validation=ValidationStatus.VALID,
            )
            self._state.record_artifact(
                run_id, spec.task_id, artifact.artifact_id, artifact.schema_id, version
            )
            self._artifacts.put(artifact)
        self._state.set_task_status(
            run_id, spec.task_id, TaskStatus.SUCCEEDED, artifact_id=artifact.artifact_id
        )

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        run_id, task_id = retry_state.args[0], retry_state.args[1]
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Run %s: %s attempt %d failed (%s), retrying in %.1fs",
            run_id,
            task_id,
            retry_state.attempt_number,
            retry_state.outcome.exception() if retry_state.outcome else "unknown",
            delay,
        )
