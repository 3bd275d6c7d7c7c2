"""Rich console rendering for the effectflow CLI."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from effectflow.domain.models import Effect, Run, RunResult, RunStatus

# Shared console instances
console = Console()
error_console = Console(stderr=True)

_STATUS_STYLES = {
    "completed": "green",
    "failed": "red",
    "suspended": "yellow",
    "pending": "yellow",
    "running": "blue",
}


def print_error(message: str, hint: str | None = None) -> None:
    """Print formatted error message to stderr."""
    content = Text(f"ERROR: {message}", style="bold red")
    if hint:
        content.append(f"\n\nHint: {hint}", style="yellow")
    error_console.print(Panel(content, title="Error", border_style="red"))


def print_success(message: str) -> None:
    """Print success message."""
    console.print(Panel(message, title="Success", border_style="green"))


def print_failure(message: str, details: str | None = None) -> None:
    """Print failure message."""
    content = Text(message, style="bold red")
    if details:
        content.append(f"\n{details}", style="dim")
    console.print(Panel(content, title="Failed", border_style="red"))


def _status(value: str) -> Text:
    return Text(value, style=_STATUS_STYLES.get(value, ""))


def _summarize(value: Any, width: int = 60) -> str:
    if value is None:
        return ""
    text = json.dumps(value, sort_keys=True)
    return text if len(text) <= width else text[: width - 3] + "..."


def print_run_result(result: RunResult) -> None:
    """Print the outcome of a run or resume."""
    if result.status == RunStatus.COMPLETED:
        print_success(f"Run {result.run_id} completed")
        console.print_json(data=result.output)
    elif result.status == RunStatus.SUSPENDED:
        lines = [f"Run {result.run_id} is waiting for input:"]
        for effect in result.pending_breakpoints:
            question = ""
            if isinstance(effect.input, dict):
                question = str(effect.input.get("question") or effect.input.get("title") or "")
            lines.append(f"  {effect.effect_id}  {question}")
        console.print(Panel("\n".join(lines), title="Suspended", border_style="yellow"))
    else:
        print_failure(
            f"Run {result.run_id} failed",
            f"{type(result.error).__name__}: {result.error}" if result.error else None,
        )


def print_run_status(run: Run) -> None:
    """Print a run's stored metadata."""
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Run", run.run_id)
    table.add_row("Process", run.process_id)
    table.add_row("Status", _status(run.status.value))
    table.add_row("Created", run.created_at)
    table.add_row("Updated", run.updated_at)
    if run.pending_breakpoints:
        table.add_row("Waiting at", ", ".join(run.pending_breakpoints))
    if run.error:
        table.add_row("Error", f"{run.error.type}: {run.error.message}")
    if run.status == RunStatus.COMPLETED:
        table.add_row("Output", _summarize(run.output, width=120))
    console.print(Panel(table, title="Run", expand=False))


def print_effects_table(effects: Sequence[Effect]) -> None:
    """Print the effect log of a run."""
    table = Table(title="Effects")
    table.add_column("Effect", style="cyan")
    table.add_column("Kind")
    table.add_column("Status")
    table.add_column("Attempt", justify="right")
    table.add_column("Detail")
    for effect in effects:
        if effect.error:
            detail = f"{effect.error.type}: {effect.error.message}"
        elif effect.completed:
            detail = _summarize(effect.output)
        else:
            detail = _summarize(effect.input)
        table.add_row(
            effect.effect_id,
            effect.kind.value,
            _status(effect.status.value),
            str(effect.attempt),
            detail,
        )
    console.print(table)


def print_runs_table(runs: Sequence[Run]) -> None:
    """Print every stored run."""
    table = Table(title="Runs")
    table.add_column("Run", style="cyan")
    table.add_column("Process")
    table.add_column("Status")
    table.add_column("Updated")
    for run in runs:
        table.add_row(run.run_id, run.process_id, _status(run.status.value), run.updated_at)
    console.print(table)
