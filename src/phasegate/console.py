"""Rich console rendering for the phasegate CLI."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from phasegate.domain.events import Event
    from phasegate.domain.models import RunSnapshot

# Shared console instances
console = Console()
error_console = Console(stderr=True)

_STATUS_STYLES = {
    "pending": "dim",
    "ready": "cyan",
    "running": "blue",
    "active": "blue",
    "executing": "blue",
    "blocked": "yellow",
    "paused": "yellow",
    "failed": "red",
    "failed_terminal": "bold red",
    "skipped": "magenta",
    "succeeded": "green",
    "completed": "green",
    "cancelled": "dim red",
}


def _styled(value: str) -> Text:
    return Text(value, style=_STATUS_STYLES.get(value, ""))


def print_header(title: str, subtitle: str | None = None) -> None:
    """Print a styled header panel."""
    content = Text(title, style="bold blue")
    if subtitle:
        content.append(f"\n{subtitle}", style="dim")
    console.print(Panel(content, expand=False))


def print_error(message: str, hint: str | None = None) -> None:
    """Print formatted error message to stderr."""
    content = Text(f"ERROR: {message}", style="bold red")
    if hint:
        content.append(f"\n\nHint: {hint}", style="yellow")
    error_console.print(Panel(content, title="Error", border_style="red"))


def print_success(message: str) -> None:
    """Print success message."""
    console.print(Panel(message, title="Success", border_style="green"))


def print_snapshot(snapshot: RunSnapshot) -> None:
    """Print a run's status, phases and tasks."""
    status = snapshot.status.value
    if snapshot.pause_reason is not None:
        status += f" ({snapshot.pause_reason.value})"
    print_header(
        f"Run {snapshot.run_id}",
        f"{status} | pattern: {snapshot.pattern or '-'} | "
        f"plan v{snapshot.plan_version} | phase: {snapshot.current_phase or '-'}",
    )

    table = Table(title="Tasks")
    table.add_column("Phase", style="cyan")
    table.add_column("Task")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Retries left", justify="right")
    table.add_column("Error", style="red")

    for phase in snapshot.phases:
        phase_label = Text(f"{phase.ordinal}. {phase.phase_id} ")
        phase_label.append_text(_styled(phase.status.value))
        if not phase.tasks:
            table.add_row(phase_label, "-", "", "", "", "")
        for i, task in enumerate(phase.tasks):
            error = f"{task.error_class}: {task.error_message}" if task.error_class else ""
            table.add_row(
                phase_label if i == 0 else "",
                task.task_id + (" (tolerant)" if task.skip_tolerant else ""),
                _styled(task.status.value),
                str(task.attempts),
                str(task.retries_remaining),
                error,
            )
    console.print(table)

    if snapshot.pending_checkpoint is not None:
        checkpoint = snapshot.pending_checkpoint
        console.print(
            Panel(
                f"{checkpoint.prompt}\n\n{checkpoint.summary}",
                title=f"Pending {checkpoint.checkpoint_type.value} checkpoint",
                subtitle=checkpoint.checkpoint_id,
                border_style="yellow",
            )
        )
    if snapshot.error is not None:
        error = snapshot.error
        detail = f"{error.error_class}: {error.message}"
        if snapshot.failing_task is not None:
            detail = f"[{snapshot.failing_task.task_id}] {detail}"
        console.print(Panel(detail, title="Error", border_style="red"))


def print_events(events: list[Event]) -> None:
    """Print an event log as a table."""
    table = Table(title="Events")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Time", style="dim")
    table.add_column("Kind", style="cyan")
    table.add_column("Subject")
    table.add_column("Detail")

    for event in events:
        payload = event.payload
        if "from" in payload and "to" in payload:
            detail = f"{payload['from']} -> {payload['to']}"
        elif "decision" in payload:
            detail = payload["decision"]
        else:
            detail = ", ".join(f"{k}={v}" for k, v in sorted(payload.items()))
        table.add_row(
            str(event.sequence),
            event.created_at[11:19],
            event.kind.value,
            event.subject,
            detail[:80],
        )
    console.print(table)
