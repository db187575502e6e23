"""
Command-line interface for the phasegate engine.

Every command opens the state directory, acts on one run and prints its
snapshot. Runs persist between invocations, so a run paused on a
checkpoint is continued later with `phasegate resume`.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from pathlib import Path
from typing import Any

import click

from phasegate.bootstrap import Engine, build_engine
from phasegate.config import EngineConfig, load_config
from phasegate.console import print_error, print_events, print_snapshot, print_success
from phasegate.domain.events import EventKind
from phasegate.domain.exceptions import (
    CheckpointError,
    ConfigurationError,
    InvalidTransition,
    PlanningFailure,
    RunNotFound,
)
from phasegate.domain.models import ClassifiedRequest, ComplexityTier, Decision, Resolution
from phasegate.infrastructure.approval import ConsoleApprovalChannel
from phasegate.logging_setup import setup_logging

DEFAULT_STATE_DIR = ".phasegate"
DEFAULT_WORKER = "ScriptedWorker"

_USER_ERRORS = (
    CheckpointError,
    ConfigurationError,
    InvalidTransition,
    PlanningFailure,
    RunNotFound,
)


@contextmanager
def _user_errors() -> Iterator[None]:
    """Report engine rule violations as CLI errors instead of tracebacks."""
    try:
        yield
    except _USER_ERRORS as e:
        print_error(str(e))
        raise SystemExit(1) from e


def _engine(ctx: click.Context) -> Engine:
    obj = ctx.obj
    if "engine" not in obj:
        obj["engine"] = build_engine(
            obj["config"],
            channel=ConsoleApprovalChannel() if obj["interactive"] else None,
        )
    engine: Engine = obj["engine"]
    return engine


def _load(config_path: str | None, state_dir: str | None) -> EngineConfig:
    config = load_config(Path(config_path)) if config_path else EngineConfig()
    overrides: dict[str, Any] = {}
    if state_dir or not config.state_dir:
        overrides["state_dir"] = str(Path(state_dir or DEFAULT_STATE_DIR).resolve())
    if not config.default_worker:
        overrides["default_worker"] = DEFAULT_WORKER
    return replace(config, **overrides)


@click.group()
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Path to an engine configuration JSON file",
)
@click.option(
    "--state-dir",
    default=None,
    type=click.Path(file_okay=False),
    help=f"Directory for run records, events and artifacts (default: ./{DEFAULT_STATE_DIR})",
)
@click.option(
    "--interactive/--no-interactive",
    default=False,
    help="Prompt for checkpoint decisions instead of pausing",
)
@click.option("--log-file", default=None, type=click.Path(), help="Path to log file")
@click.option(
    "-v", "--verbose", is_flag=True, help="Enable verbose (DEBUG) logging to console"
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: str | None,
    state_dir: str | None,
    interactive: bool,
    log_file: str | None,
    verbose: bool,
) -> None:
    """Phase-gated workflow orchestration."""
    setup_logging(log_file=log_file, verbose=verbose)
    try:
        config = _load(config_path, state_dir)
    except ConfigurationError as e:
        print_error(str(e), hint="Check the file against config.schema.json")
        raise SystemExit(1) from e
    ctx.obj = {"config": config, "interactive": interactive}


@cli.command()
@click.argument("text")
@click.option("--type", "request_type", default="feature", help="Request type")
@click.option(
    "--complexity",
    type=click.Choice([t.value for t in ComplexityTier]),
    default=ComplexityTier.SIMPLE.value,
    help="Complexity tier",
)
@click.option("--tag", "tags", multiple=True, help="Domain tag (repeatable)")
@click.option(
    "--confidence",
    type=click.FloatRange(0.0, 1.0),
    default=1.0,
    help="Classification confidence",
)
@click.option("--module", "modules", multiple=True, help="Module name (repeatable)")
@click.pass_context
def start(
    ctx: click.Context,
    text: str,
    request_type: str,
    complexity: str,
    tags: tuple[str, ...],
    confidence: float,
    modules: tuple[str, ...],
) -> None:
    """Start a run for an already-classified request."""
    request = ClassifiedRequest(
        text=text,
        request_type=request_type,
        complexity=ComplexityTier(complexity),
        domain_tags=frozenset(tags),
        confidence=confidence,
        modules=modules,
    )
    controller = _engine(ctx).controller
    with _user_errors():
        run_id = controller.start(request)
        print_snapshot(controller.status(run_id))


@cli.command()
@click.argument("run_id")
@click.pass_context
def status(ctx: click.Context, run_id: str) -> None:
    """Show a run's status."""
    with _user_errors():
        print_snapshot(_engine(ctx).controller.status(run_id))


@cli.command()
@click.argument("run_id")
@click.option(
    "--decision",
    type=click.Choice([d.value for d in Decision if d != Decision.PENDING]),
    default=None,
    help="Decision on the pending checkpoint or rescope",
)
@click.option(
    "--payload", default=None, help='Decision payload as JSON, e.g. \'{"request": "..."}\''
)
@click.option("--checkpoint", "checkpoint_id", default=None, help="Expected checkpoint id")
@click.pass_context
def resume(
    ctx: click.Context,
    run_id: str,
    decision: str | None,
    payload: str | None,
    checkpoint_id: str | None,
) -> None:
    """Continue a run from where it stopped."""
    resolution = None
    if decision is not None:
        try:
            data = json.loads(payload) if payload else {}
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"not valid JSON: {e}", param_hint="--payload") from e
        if not isinstance(data, dict):
            raise click.BadParameter("must be a JSON object", param_hint="--payload")
        resolution = Resolution(Decision(decision), data, checkpoint_id)
    elif payload is not None:
        raise click.UsageError("--payload needs --decision")

    with _user_errors():
        print_snapshot(_engine(ctx).controller.resume(run_id, resolution))


@cli.command()
@click.argument("run_id")
@click.pass_context
def cancel(ctx: click.Context, run_id: str) -> None:
    """Cancel a run."""
    with _user_errors():
        snapshot = _engine(ctx).controller.cancel(run_id)
    print_success(f"Run {run_id}: {snapshot.status.value}")


@cli.command()
@click.argument("run_id")
@click.argument("phase_id")
@click.option("--task", "task_id", default=None, help="Replay only this task and its dependents")
@click.pass_context
def replay(ctx: click.Context, run_id: str, phase_id: str, task_id: str | None) -> None:
    """Re-run a run from a phase, reusing earlier artifacts."""
    controller = _engine(ctx).controller
    with _user_errors():
        phases = {p.phase_id: p for p in controller.status(run_id).phases}
        if phase_id not in phases:
            print_error(f"Phase '{phase_id}' is not in the plan of run {run_id}")
            raise SystemExit(1)
        if task_id is not None and task_id not in {
            t.task_id for t in phases[phase_id].tasks
        }:
            print_error(f"Task '{task_id}' is not in phase '{phase_id}'")
            raise SystemExit(1)
        print_snapshot(controller.replay_from(run_id, phase_id, task_id))


@cli.command()
@click.argument("run_id")
@click.option(
    "--kind",
    type=click.Choice([k.value for k in EventKind]),
    default=None,
    help="Only events of this kind",
)
@click.option(
    "--subject", default=None, help="Only events about this run, phase, task or checkpoint"
)
@click.pass_context
def events(ctx: click.Context, run_id: str, kind: str | None, subject: str | None) -> None:
    """Show a run's event log."""
    with _user_errors():
        controller = _engine(ctx).controller
        controller.status(run_id)
        print_events(
            controller.events(
                run_id, kind=EventKind(kind) if kind else None, subject=subject
            )
        )


@cli.command()
@click.pass_context
def runs(ctx: click.Context) -> None:
    """List known runs."""
    controller = _engine(ctx).controller
    run_ids = controller.list_runs()
    if not run_ids:
        click.echo("No runs.")
        return
    for run_id in run_ids:
        snapshot = controller.status(run_id)
        click.echo(
            f"{run_id}  {snapshot.status.value:<10} "
            f"{snapshot.pattern or '-':<13} {snapshot.current_phase or '-'}"
        )


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
