"""Tests for FilesystemEventLog."""

import json

from phasegate.domain.events import EventKind
from phasegate.infrastructure.persistence.events import FilesystemEventLog


class TestFilesystemEventLog:
    """Append-only JSONL log per run."""

    def test_append_assigns_sequence(self, tmp_path, make_event) -> None:  # noqa: ANN001
        log = FilesystemEventLog(tmp_path)

        first = log.append(make_event("r1", EventKind.RUN_CREATED, "r1"))
        second = log.append(make_event("r1", EventKind.PLAN_CREATED, "r1", version=1))

        assert (first.sequence, second.sequence) == (1, 2)
        assert log.last_sequence("r1") == 2

    def test_one_line_per_event(self, tmp_path, make_event) -> None:  # noqa: ANN001
        log = FilesystemEventLog(tmp_path)
        log.append(make_event("r1", EventKind.RUN_CREATED, "r1"))
        log.append(make_event("r1", EventKind.TASK_STATUS, "a", to="ready"))

        lines = (tmp_path / "events" / "r1.jsonl").read_text().splitlines()

        assert [json.loads(line)["kind"] for line in lines] == ["RUN_CREATED", "TASK_STATUS"]

    def test_reopen_continues_sequence(self, tmp_path, make_event) -> None:  # noqa: ANN001
        """A restarted process appends after the events already on disk."""
        FilesystemEventLog(tmp_path).append(make_event("r1", EventKind.RUN_CREATED, "r1"))

        reopened = FilesystemEventLog(tmp_path)
        assert reopened.last_sequence("r1") == 1
        event = reopened.append(make_event("r1", EventKind.RUN_STATUS, "r1", to="planning"))

        assert event.sequence == 2
        assert [e.sequence for e in reopened.read("r1")] == [1, 2]

    def test_read_filters(self, tmp_path, make_event) -> None:  # noqa: ANN001
        log = FilesystemEventLog(tmp_path)
        log.append(make_event("r1", EventKind.RUN_CREATED, "r1"))
        log.append(make_event("r1", EventKind.TASK_STATUS, "a", to="ready"))
        log.append(make_event("r1", EventKind.TASK_STATUS, "b", to="ready"))

        assert [e.subject for e in log.read("r1", kind=EventKind.TASK_STATUS)] == ["a", "b"]
        assert [e.sequence for e in log.read("r1", subject="b")] == [3]
        assert [e.sequence for e in log.read("r1", after=1)] == [2, 3]

    def test_payload_round_trips(self, tmp_path, make_event) -> None:  # noqa: ANN001
        log = FilesystemEventLog(tmp_path)
        stored = log.append(
            make_event("r1", EventKind.TASK_STATUS, "a", to="failed", error={"code": None})
        )

        assert log.read("r1") == [stored]

    def test_unknown_run(self, tmp_path) -> None:  # noqa: ANN001
        log = FilesystemEventLog(tmp_path)

        assert log.read("nope") == []
        assert log.last_sequence("nope") == 0
