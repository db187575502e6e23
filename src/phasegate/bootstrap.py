"""
Composition root: wires stores, workers and services into a RunController.

The application layer never imports infrastructure; this module is the one
place where concrete adapters are chosen.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from phasegate.application import (
    CheckpointGate,
    PhaseScheduler,
    RunController,
    StateManager,
    WorkerInvoker,
)
from phasegate.config import EngineConfig, load_patterns
from phasegate.domain.interfaces import (
    ApprovalChannelInterface,
    ArtifactStoreInterface,
    EventLogInterface,
    RequestClassifierInterface,
    RunStoreInterface,
    WorkerInterface,
)
from phasegate.domain.planning import Planner
from phasegate.infrastructure import (
    FilesystemArtifactStore,
    FilesystemEventLog,
    FilesystemRunStore,
    InMemoryArtifactStore,
    InMemoryEventLog,
    InMemoryRunStore,
    JsonSchemaContractValidator,
    WorkerRegistry,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stores:
    """The three durable stores of an engine."""

    artifacts: ArtifactStoreInterface
    runs: RunStoreInterface
    events: EventLogInterface


@dataclass(frozen=True)
class Engine:
    """A fully wired engine."""

    config: EngineConfig
    stores: Stores
    state: StateManager
    controller: RunController
    workers: WorkerRegistry


def build_stores(config: EngineConfig) -> Stores:
    """Filesystem stores under state_dir, in-memory stores without one."""
    if config.state_dir is None:
        return Stores(InMemoryArtifactStore(), InMemoryRunStore(), InMemoryEventLog())
    base = Path(config.state_dir)
    logger.debug("Using state directory %s", base)
    return Stores(
        artifacts=FilesystemArtifactStore(base / "artifacts"),
        runs=FilesystemRunStore(base),
        events=FilesystemEventLog(base),
    )


def build_engine(
    config: EngineConfig | None = None,
    workers: Mapping[str, WorkerInterface] | None = None,
    default_worker: WorkerInterface | None = None,
    channel: ApprovalChannelInterface | None = None,
    classifier: RequestClassifierInterface | None = None,
    stores: Stores | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Engine:
    """
    Build an engine from configuration.

    Producers named in config.workers are bound through the WorkerRegistry;
    explicitly passed workers take precedence.

    Args:
        config: Engine settings (defaults when None)
        workers: producer_id -> worker overrides
        default_worker: Fallback for producer ids without a binding
        channel: Approval channel for blocking checkpoints
        classifier: Needed to start runs from raw text
        stores: Existing stores to reuse (e.g. to simulate a restart)
        sleep: Used between task retries

    Raises:
        ConfigurationError: If the patterns file is invalid
        KeyError: If a configured worker is not registered
    """
    config = config or EngineConfig()
    stores = stores or build_stores(config)

    registry = WorkerRegistry.from_config(
        config.workers, None if default_worker is not None else config.default_worker
    )
    for producer_id, worker in (workers or {}).items():
        registry.register_producer(producer_id, worker)
    if default_worker is not None:
        registry.set_default(default_worker)

    table = load_patterns(Path(config.patterns_file)) if config.patterns_file else None
    state = StateManager(stores.runs, stores.events, default_max_retries=config.max_retries)
    scheduler = PhaseScheduler(
        state,
        WorkerInvoker(registry, timeout_seconds=config.task_timeout_seconds),
        stores.artifacts,
        JsonSchemaContractValidator(config.output_schemas),
        max_workers=config.max_workers,
        backoff_base_seconds=config.backoff_base_seconds,
        backoff_max_seconds=config.backoff_max_seconds,
        sleep=sleep,
    )
    controller = RunController(
        state,
        Planner(table, confidence_threshold=config.confidence_threshold),
        scheduler,
        CheckpointGate(state, stores.artifacts, channel),
        classifier=classifier,
    )
    return Engine(
        config=config,
        stores=stores,
        state=state,
        controller=controller,
        workers=registry,
    )
