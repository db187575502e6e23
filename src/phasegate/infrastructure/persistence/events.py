"""Filesystem event log storing one JSONL file per run."""

import json
import os
import threading
from dataclasses import replace
from pathlib import Path

from phasegate.domain.events import Event, EventKind
from phasegate.domain.interfaces import EventLogInterface
from phasegate.infrastructure.persistence.codec import dict_to_event, event_to_dict


class FilesystemEventLog(EventLogInterface):
    """
    Append-only event log.

    Each append is flushed and fsynced before it returns, so an event is
    durable before the transition it describes is applied.
    """

    def __init__(self, base_path: str | Path) -> None:
        self.base_path = Path(base_path)
        self.events_dir = self.base_path / "events"
        self.events_dir.mkdir(parents=True, exist_ok=True)
        self._sequences: dict[str, int] = {}
        self._lock = threading.Lock()

    def _get_run_file(self, run_id: str) -> Path:
        return self.events_dir / f"{run_id}.jsonl"

    def _count_lines(self, run_id: str) -> int:
        path = self._get_run_file(run_id)
        if not path.exists():
            return 0
        with open(path) as f:
            return sum(1 for line in f if line.strip())

    def append(self, event: Event) -> Event:
        with self._lock:
            if event.run_id not in self._sequences:
                self._sequences[event.run_id] = self._count_lines(event.run_id)
            sequence = self._sequences[event.run_id] + 1
            stored = replace(event, sequence=sequence)

            with open(self._get_run_file(event.run_id), "a") as f:
                f.write(json.dumps(event_to_dict(stored)) + "\n")
                f.flush()
                os.fsync(f.fileno())

            self._sequences[event.run_id] = sequence
            return stored

    def read(
        self,
        run_id: str,
        kind: EventKind | None = None,
        subject: str | None = None,
        after: int = 0,
    ) -> list[Event]:
        path = self._get_run_file(run_id)
        if not path.exists():
            return []
        events: list[Event] = []
        with open(path) as f:
            for line in f:
                if not line.strip():
                    continue
                event = dict_to_event(json.loads(line))
                if event.sequence <= after:
                    continue
                if kind and event.kind != kind:
                    continue
                if subject and event.subject != subject:
                    continue
                events.append(event)
        return sorted(events, key=lambda e: e.sequence)

    def last_sequence(self, run_id: str) -> int:
        with self._lock:
            if run_id in self._sequences:
                return self._sequences[run_id]
            return self._count_lines(run_id)
