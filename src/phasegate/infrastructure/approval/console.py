"""
Human-in-the-loop approval over the terminal.

Blocks the run until a human answers a CLI prompt.
"""

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from phasegate.domain.interfaces import ApprovalChannelInterface
from phasegate.domain.models import Checkpoint, Decision, Resolution

_CHOICES = {
    "a": Decision.APPROVED,
    "r": Decision.REJECTED,
    "m": Decision.MODIFY_REQUESTED,
    "l": None,  # Later: leave pending, resume from the CLI
}


class ConsoleApprovalChannel(ApprovalChannelInterface):
    """
    Prompts for a checkpoint decision with rich.

    This implementation uses synchronous CLI prompts.
    For async/distributed use, implement notify() to enqueue the checkpoint
    and return None; the decision then arrives through resume().
    """

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    def notify(self, checkpoint: Checkpoint) -> Resolution | None:
        self.console.print(
            Panel(
                checkpoint.summary or "[dim](no summary)[/dim]",
                title=f"[bold yellow]{checkpoint.checkpoint_type.value.upper()}: "
                f"{checkpoint.phase_id}[/bold yellow]",
                subtitle=f"[dim]{checkpoint.checkpoint_id}[/dim]",
                border_style="yellow",
            )
        )
        self.console.print(f"[bold]{checkpoint.prompt}[/bold]")

        answer = Prompt.ask(
            "[a]pprove / [r]eject / [m]odify / decide [l]ater",
            choices=list(_CHOICES),
            default="l",
        )
        decision = _CHOICES[answer]
        if decision is None:
            return None

        payload: dict = {}
        if decision == Decision.MODIFY_REQUESTED:
            payload["request"] = Prompt.ask("What should change?")
            task_id = Prompt.ask("Task to revise (blank for the only task)", default="")
            if task_id:
                payload["task_id"] = task_id
        elif decision == Decision.REJECTED:
            reason = Prompt.ask("Reason", default="")
            if reason:
                payload["reason"] = reason

        return Resolution(
            decision=decision, payload=payload, checkpoint_id=checkpoint.checkpoint_id
        )
