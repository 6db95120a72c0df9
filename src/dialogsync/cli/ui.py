"""Shared CLI UI helpers (Rich formatting)."""

from __future__ import annotations

from typing import Iterable

from rich.console import Console
from rich.table import Table

from dialogsync.models.dialogs import Blocked, DialogNode, DialogStatus, Interrupted, RunState
from dialogsync.models.questions import Q4HDialogGroup
from dialogsync.state.run_control import RunControlCounts

console = Console()


def format_status(status: str) -> str:
    """Return colorized status string for terminal output."""
    colors = {
        DialogStatus.RUNNING.value: "cyan",
        DialogStatus.COMPLETED.value: "green",
        DialogStatus.ARCHIVED.value: "grey62",
    }
    value = status.value if isinstance(status, DialogStatus) else str(status)
    color = colors.get(value, "white")
    return f"[{color}]{value}[/{color}]"


def format_run_state(run_state: RunState | None) -> str:
    if run_state is None:
        return "-"
    if isinstance(run_state, Blocked):
        return f"[yellow]blocked[/yellow] ({run_state.reason.kind})"
    if isinstance(run_state, Interrupted):
        reason = run_state.reason.kind if run_state.reason is not None else "unknown"
        return f"[red]interrupted[/red] ({reason})"
    return run_state.kind


def render_dialogs_table(nodes: Iterable[DialogNode]) -> None:
    """Render the registry's dialogs, subdialogs indented under their root."""
    table = Table(title="Dialogs", show_lines=False)
    table.add_column("Dialog", style="white")
    table.add_column("Agent", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("Run State")
    table.add_column("Course", justify="right")
    table.add_column("Task Doc", style="magenta")

    for node in nodes:
        label = node.root_id if node.is_root else f"  └ {node.self_id}"
        table.add_row(
            label,
            node.agent_id or "-",
            format_status(node.status),
            format_run_state(node.run_state),
            str(node.current_course),
            node.task_doc_path,
        )

    console.print(table)


def render_run_control(counts: RunControlCounts) -> None:
    console.print(
        f"[bold]Run control[/bold] stoppable={counts.stoppable} resumable={counts.resumable}"
    )


def render_q4h_groups(groups: Iterable[Q4HDialogGroup]) -> None:
    table = Table(title="Questions for Human", show_lines=False)
    table.add_column("Dialog", style="white")
    table.add_column("Question", style="cyan")
    table.add_column("Course", justify="right")
    table.add_column("Headline")

    for group in groups:
        dialog = group.root_id if group.is_root else f"{group.root_id}#{group.self_id}"
        for question in group.questions:
            table.add_row(dialog, question.id, str(question.course), question.head_line or "-")

    console.print(table)
