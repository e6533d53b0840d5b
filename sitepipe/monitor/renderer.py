"""Rich terminal renderer for pipeline runs.

Color scheme
------------
- green     : SUCCEEDED
- red       : FAILED
- yellow    : RUNNING
- dim       : PENDING (never started)
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from sitepipe.models.actions import ActionStatus
from sitepipe.models.pipeline import PipelineStatus, RunResult

_STATUS_ICONS: dict[ActionStatus, str] = {
    ActionStatus.SUCCEEDED: "[green]SUCCEEDED[/green]",
    ActionStatus.FAILED: "[bold red]FAILED[/bold red]",
    ActionStatus.RUNNING: "[yellow]RUNNING[/yellow]",
    ActionStatus.PENDING: "[dim]PENDING[/dim]",
}

_PIPELINE_STYLES: dict[PipelineStatus, str] = {
    PipelineStatus.SUCCEEDED: "green",
    PipelineStatus.FAILED: "red",
    PipelineStatus.ABORTED: "magenta",
    PipelineStatus.RUNNING: "yellow",
    PipelineStatus.PENDING: "dim",
}

def _format_duration(seconds: float | None) -> str:
    return "-" if seconds is None else f"{seconds:.2f}s"


# Diagnostics longer than this are tailed in the panel.
_MAX_DIAGNOSTIC_LINES = 20


class RunRenderer:
    """Renders ``RunResult`` as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render_result(self, result: RunResult) -> Panel:
        """Render a RunResult as a Panel holding the action table."""
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Stage", style="bold")
        table.add_column("Action")
        table.add_column("Kind", style="dim")
        table.add_column("Order", justify="center")
        table.add_column("Status", justify="center")
        table.add_column("Time", justify="right")
        table.add_column("Detail", overflow="fold")

        for outcome in result.outcomes:
            detail = ""
            if outcome.output_artifacts:
                detail = "-> " + ", ".join(outcome.output_artifacts)
            if "keys_written" in outcome.details:
                detail = f"{len(outcome.details['keys_written'])} object(s) written"
            if "request_id" in outcome.details:
                detail = f"invalidation {outcome.details['request_id']}"
            if outcome.error_type:
                detail = f"[red]{outcome.error_type}[/red]"
            table.add_row(
                outcome.stage_name,
                outcome.action_name,
                outcome.kind.value,
                str(outcome.run_order),
                _STATUS_ICONS.get(outcome.status, outcome.status.value),
                _format_duration(outcome.duration_seconds),
                detail,
            )

        style = _PIPELINE_STYLES.get(result.status, "white")
        summary = "  |  ".join([
            f"[bold]Run:[/bold] {result.run_id}",
            f"[bold]Status:[/bold] [{style}]{result.status.value.upper()}[/{style}]",
            f"[bold]Artifacts:[/bold] {len(result.artifacts)}",
            f"[bold]Distribution:[/bold] {result.distribution_id or '-'}",
        ])
        parts: list = [table, Text(""), Text.from_markup(summary)]

        failed = result.failed_action
        if failed is not None and failed.diagnostics:
            lines = failed.diagnostics.splitlines()[-_MAX_DIAGNOSTIC_LINES:]
            parts.append(Text(""))
            parts.append(
                Panel(
                    Text("\n".join(lines)),
                    title=f"[red]{failed.action_name} diagnostics[/red]",
                    border_style="red",
                )
            )

        return Panel(
            Group(*parts),
            title=f"[bold]{result.pipeline_name}[/bold]",
            border_style=style,
            padding=(1, 2),
        )

    def print_result(self, result: RunResult) -> None:
        self.console.print(self.render_result(result))
