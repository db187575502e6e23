"""Tests for the phasegate command-line interface."""

import json
import logging

import pytest
from click.testing import CliRunner
from rich.console import Console

import phasegate.console
from phasegate.cli import cli
from phasegate.infrastructure import FilesystemRunStore, ScriptedWorker, WorkerRegistry


@pytest.fixture(autouse=True)
def cli_environment(monkeypatch):  # noqa: ANN001
    """Wide consoles, a registered default worker, and logging restored afterwards."""
    WorkerRegistry.register_class("ScriptedWorker", ScriptedWorker)
    monkeypatch.setattr(phasegate.console, "console", Console(width=200))
    monkeypatch.setattr(phasegate.console, "error_console", Console(stderr=True, width=200))
    yield
    logger = logging.getLogger("phasegate")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def run_cli(tmp_path):  # noqa: ANN001
    """Invoke the CLI against a state directory under tmp_path."""
    runner = CliRunner()
    state_dir = tmp_path / "state"

    def _run(*args: str, input: str | None = None):  # noqa: A002
        return runner.invoke(
            cli, ["--state-dir", str(state_dir), *args], input=input, catch_exceptions=False
        )

    _run.state_dir = state_dir
    return _run


def only_run_id(run_cli) -> str:  # noqa: ANN001
    run_ids = FilesystemRunStore(run_cli.state_dir).list_runs()
    assert len(run_ids) == 1
    return run_ids[0]


def start_medium(run_cli) -> str:  # noqa: ANN001
    result = run_cli("start", "Add rate limiting", "--complexity", "medium", "--tag", "backend")
    assert result.exit_code == 0, result.output
    return only_run_id(run_cli)


class TestStart:
    """phasegate start"""

    def test_simple_run_completes(self, run_cli) -> None:  # noqa: ANN001
        result = run_cli("start", "Add a health check", "--tag", "backend")

        assert result.exit_code == 0, result.output
        assert "completed | pattern: four_phase" in result.output
        assert "backend_engineer" in result.output
        assert "frontend_engineer" not in result.output

    def test_medium_run_pauses_for_review(self, run_cli) -> None:  # noqa: ANN001
        result = run_cli("start", "Add rate limiting", "--complexity", "medium", "--tag", "backend")

        assert result.exit_code == 0
        assert "paused (awaiting_checkpoint)" in result.output
        assert "Pending review checkpoint" in result.output

    def test_unmatched_request_fails(self, run_cli) -> None:  # noqa: ANN001
        result = run_cli("start", "Tune the warehouse", "--tag", "data")

        assert result.exit_code == 0
        assert "failed" in result.output
        assert "no_applicable_pattern" in result.output

    def test_invalid_complexity(self, run_cli) -> None:  # noqa: ANN001
        result = run_cli("start", "x", "--complexity", "huge")

        assert result.exit_code == 2

    def test_interactive_approval(self, run_cli) -> None:  # noqa: ANN001
        """--interactive asks for the review decision on the terminal."""
        result = run_cli(
            "--interactive",
            "start",
            "Add rate limiting",
            "--complexity",
            "medium",
            "--tag",
            "backend",
            input="a\n",
        )

        assert result.exit_code == 0, result.output
        assert "REVIEW: architecture" in result.output
        assert "completed | pattern: six_phase" in result.output


class TestResume:
    """phasegate resume"""

    def test_approve(self, run_cli) -> None:  # noqa: ANN001
        run_id = start_medium(run_cli)

        result = run_cli("resume", run_id, "--decision", "approved")

        assert result.exit_code == 0, result.output
        assert "completed | pattern: six_phase" in result.output

    def test_without_decision_stays_paused(self, run_cli) -> None:  # noqa: ANN001
        run_id = start_medium(run_cli)

        result = run_cli("resume", run_id)

        assert result.exit_code == 0
        assert "paused (awaiting_checkpoint)" in result.output

    def test_modify_with_payload(self, run_cli) -> None:  # noqa: ANN001
        run_id = start_medium(run_cli)

        result = run_cli(
            "resume",
            run_id,
            "--decision",
            "modify_requested",
            "--payload",
            json.dumps({"request": "use a token bucket"}),
        )

        assert result.exit_code == 0, result.output
        assert "architect~rev1" in result.output
        assert "paused (awaiting_checkpoint)" in result.output

    def test_reject_asks_for_clarification(self, run_cli) -> None:  # noqa: ANN001
        run_id = start_medium(run_cli)

        result = run_cli("resume", run_id, "--decision", "rejected")

        assert "paused (awaiting_clarification)" in result.output

    def test_wrong_checkpoint_id(self, run_cli) -> None:  # noqa: ANN001
        run_id = start_medium(run_cli)

        result = run_cli(
            "resume", run_id, "--decision", "approved", "--checkpoint", f"{run_id}:x:00000000"
        )

        assert result.exit_code == 1
        assert "is waiting on" in result.output

    def test_payload_needs_decision(self, run_cli) -> None:  # noqa: ANN001
        run_id = start_medium(run_cli)

        result = run_cli("resume", run_id, "--payload", "{}")

        assert result.exit_code == 2
        assert "--payload needs --decision" in result.output

    @pytest.mark.parametrize("payload", ["{oops", "[1, 2]"])
    def test_bad_payload(self, run_cli, payload) -> None:  # noqa: ANN001
        run_id = start_medium(run_cli)

        result = run_cli("resume", run_id, "--decision", "approved", "--payload", payload)

        assert result.exit_code == 2


class TestInspection:
    """status, events and runs"""

    def test_status_unknown_run(self, run_cli) -> None:  # noqa: ANN001
        result = run_cli("status", "does-not-exist")

        assert result.exit_code == 1
        assert "Run not found" in result.output

    def test_status_survives_process_restart(self, run_cli) -> None:  # noqa: ANN001
        """Each invocation is a fresh engine over the same state directory."""
        run_id = start_medium(run_cli)

        result = run_cli("status", run_id)

        assert result.exit_code == 0
        assert f"Run {run_id}" in result.output
        assert "phase: architecture" in result.output

    def test_events_filtered_by_kind(self, run_cli) -> None:  # noqa: ANN001
        run_cli("start", "Add a health check", "--tag", "backend")
        run_id = only_run_id(run_cli)

        result = run_cli("events", run_id, "--kind", "RUN_STATUS")

        assert result.exit_code == 0
        assert "initialized -> planning" in result.output
        assert "executing -> completed" in result.output
        assert "TASK_STATUS" not in result.output

    def test_events_unknown_run(self, run_cli) -> None:  # noqa: ANN001
        result = run_cli("events", "does-not-exist")

        assert result.exit_code == 1

    def test_runs_empty(self, run_cli) -> None:  # noqa: ANN001
        result = run_cli("runs")

        assert result.exit_code == 0
        assert "No runs." in result.output

    def test_runs_lists_status(self, run_cli) -> None:  # noqa: ANN001
        run_id = start_medium(run_cli)

        result = run_cli("runs")

        assert run_id in result.output
        assert "paused" in result.output
        assert "six_phase" in result.output


class TestCancelAndReplay:
    """cancel and replay"""

    def test_cancel_paused_run(self, run_cli) -> None:  # noqa: ANN001
        run_id = start_medium(run_cli)

        result = run_cli("cancel", run_id)

        assert result.exit_code == 0
        assert f"Run {run_id}: cancelled" in result.output

    def test_replay_phase(self, run_cli) -> None:  # noqa: ANN001
        run_cli("start", "Add a health check", "--tag", "backend")
        run_id = only_run_id(run_cli)

        result = run_cli("replay", run_id, "generation")

        assert result.exit_code == 0, result.output
        assert "completed" in result.output

    def test_replay_unknown_phase(self, run_cli) -> None:  # noqa: ANN001
        run_cli("start", "Add a health check", "--tag", "backend")
        run_id = only_run_id(run_cli)

        result = run_cli("replay", run_id, "deployment")

        assert result.exit_code == 1
        assert "not in the plan" in result.output

    def test_replay_unknown_task(self, run_cli) -> None:  # noqa: ANN001
        run_cli("start", "Add a health check", "--tag", "backend")
        run_id = only_run_id(run_cli)

        result = run_cli("replay", run_id, "generation", "--task", "frontend_engineer")

        assert result.exit_code == 1
        assert "is not in phase 'generation'" in result.output


class TestConfigOption:
    """--config"""

    def test_invalid_config_file(self, run_cli, tmp_path) -> None:  # noqa: ANN001
        path = tmp_path / "phasegate.json"
        path.write_text(json.dumps({"max_retries": -1}))

        result = run_cli("--config", str(path), "runs")

        assert result.exit_code == 1
        assert "max_retries" in result.output

    def test_config_state_dir_overridden(self, run_cli, tmp_path) -> None:  # noqa: ANN001
        """--state-dir wins over the configuration file."""
        path = tmp_path / "phasegate.json"
        path.write_text(json.dumps({"state_dir": "elsewhere"}))

        run_cli("--config", str(path), "start", "Add a health check", "--tag", "backend")

        assert not (tmp_path / "elsewhere").exists()
        assert len(FilesystemRunStore(run_cli.state_dir).list_runs()) == 1
