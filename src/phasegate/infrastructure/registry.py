"""
Worker Registry: which worker serves each producer identity.

Worker classes are discovered through the "phasegate.workers" entry point
group, so external packages can ship their own:

    [project.entry-points."phasegate.workers"]
    MyWorker = "mypackage.workers:MyWorker"

Each engine owns a registry binding producer ids (requirements_analyst,
architect, ...) to instances of those classes, plus an optional fallback
for producers nobody claimed.
"""

import warnings
from collections.abc import Mapping
from importlib.metadata import entry_points
from typing import Any

from phasegate.domain.interfaces import WorkerDirectoryInterface, WorkerInterface

ENTRY_POINT_GROUP = "phasegate.workers"


class WorkerRegistry(WorkerDirectoryInterface):
    """
    Producer id -> worker bindings for one engine.

    The catalogue of worker classes is process-wide and read from entry
    points on first use; bindings belong to the instance.

    Example usage:
        registry = WorkerRegistry.from_config(
            {"architect": {"worker": "ScriptedWorker", "config": {"delay": 0.1}}},
            default_worker="ScriptedWorker",
        )
        registry.worker_for("architect")
    """

    _classes: dict[str, type[WorkerInterface]] = {}
    _discovered: bool = False

    def __init__(
        self,
        producers: Mapping[str, WorkerInterface] | None = None,
        default: WorkerInterface | None = None,
    ) -> None:
        """
        Args:
            producers: Initial producer_id -> worker bindings
            default: Serves producer ids without a binding
        """
        self._producers: dict[str, WorkerInterface] = dict(producers or {})
        self._default = default

    # =========================================================================
    # WORKER CLASSES
    # =========================================================================

    @classmethod
    def _discover(cls) -> None:
        if cls._discovered:
            return
        for ep in entry_points(group=ENTRY_POINT_GROUP):
            try:
                cls._classes.setdefault(ep.name, ep.load())
            except Exception as e:
                warnings.warn(
                    f"Skipping worker class '{ep.name}' from {ENTRY_POINT_GROUP}: {e}",
                    stacklevel=2,
                )
        cls._discovered = True

    @classmethod
    def register_class(cls, name: str, worker_class: type[WorkerInterface]) -> None:
        """Add a worker class by hand; it wins over an entry point of that name."""
        cls._classes[name] = worker_class

    @classmethod
    def worker_class(cls, name: str) -> type[WorkerInterface]:
        """
        Raises:
            KeyError: If no class of that name is known
        """
        cls._discover()
        if name not in cls._classes:
            known = ", ".join(sorted(cls._classes)) or "(none)"
            raise KeyError(f"Unknown worker class '{name}' (known: {known})")
        return cls._classes[name]

    @classmethod
    def worker_classes(cls) -> list[str]:
        cls._discover()
        return sorted(cls._classes)

    @classmethod
    def reset_catalogue(cls) -> None:
        """Forget every class so entry points are read again."""
        cls._classes.clear()
        cls._discovered = False

    # =========================================================================
    # PRODUCER BINDINGS
    # =========================================================================

    @classmethod
    def from_config(
        cls,
        workers: Mapping[str, Mapping[str, Any]],
        default_worker: str | None = None,
    ) -> "WorkerRegistry":
        """
        Build the bindings described by an engine configuration.

        Args:
            workers: producer_id -> {"worker": class name, "config": {...}}
            default_worker: Class name for producers without a binding

        Raises:
            KeyError: If a class name is unknown
            TypeError: If a config does not fit the class constructor
        """
        default = cls.worker_class(default_worker)() if default_worker else None
        registry = cls(default=default)
        for producer_id, binding in workers.items():
            registry.bind(producer_id, binding["worker"], **binding.get("config", {}))
        return registry

    def bind(self, producer_id: str, class_name: str, **config: Any) -> WorkerInterface:
        """Instantiate a worker class for one producer."""
        worker = self.worker_class(class_name)(**config)
        self.register_producer(producer_id, worker)
        return worker

    def register_producer(self, producer_id: str, worker: WorkerInterface) -> None:
        self._producers[producer_id] = worker

    def set_default(self, worker: WorkerInterface | None) -> None:
        self._default = worker

    def worker_for(self, producer_id: str) -> WorkerInterface:
        worker = self._producers.get(producer_id, self._default)
        if worker is None:
            raise KeyError(f"No worker bound to '{producer_id}'")
        return worker

    def producers(self) -> list[str]:
        """Producer ids with their own binding."""
        return sorted(self._producers)
