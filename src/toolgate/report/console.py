"""
Console report generator for Toolgate.

Renders tool calls, audit entries, chain verification, the tool catalog
and snapshots with the Rich library.

Design Principles:
    - Human-readable first: Optimize for quick scanning
    - Status at a glance: Use icons and colors for states
    - Progressive detail: Summary first, details with verbose
"""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from toolgate.schema import (
    AuditEntry,
    ChainVerification,
    Snapshot,
    ToolCall,
    ToolCallState,
)
from toolgate.tools.base import ToolDescriptor

# Status icons
ICON_SUCCESS = "[green]✓[/green]"
ICON_ERROR = "[red]✗[/red]"
ICON_DENIED = "[yellow]⊘[/yellow]"
ICON_PENDING = "[dim]○[/dim]"

STATE_ICONS = {
    ToolCallState.EXECUTED: ICON_SUCCESS,
    ToolCallState.FAILED: ICON_ERROR,
    ToolCallState.DENIED: ICON_DENIED,
    ToolCallState.REJECTED: ICON_DENIED,
    ToolCallState.EXPIRED: ICON_DENIED,
}

RESULT_STYLES = {
    "ok": "green",
    "pending": "dim",
    "denied": "yellow",
    "rejected": "yellow",
    "expired": "yellow",
}


def _truncate(s: str, max_len: int) -> str:
    """Truncate string with ellipsis."""
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def print_calls(console: Console, calls: list[ToolCall], verbose: bool = False) -> None:
    """Print a timeline of tool calls followed by a summary."""
    console.print("[bold]Tool Calls[/bold]")
    console.print()

    table = Table(show_header=True, header_style="bold", show_lines=verbose, expand=True)
    table.add_column("#", style="dim", width=3, justify="right")
    table.add_column("Status", width=6, justify="center")
    table.add_column("Id", style="dim", width=12)
    table.add_column("Tool", style="cyan", width=18)
    table.add_column("State", width=16)
    table.add_column("Details", overflow="fold")

    for index, call in enumerate(calls, start=1):
        icon = STATE_ICONS.get(call.state, ICON_PENDING)
        table.add_row(
            str(index),
            icon,
            call.id,
            call.tool_name,
            call.state.value,
            _format_details(call, verbose),
        )

    console.print(table)
    console.print()
    print_summary(console, calls)


def _format_details(call: ToolCall, verbose: bool) -> str:
    parts = []

    if verbose and call.arguments:
        args_str = ", ".join(f"{k}={_truncate(str(v), 30)}" for k, v in call.arguments.items())
        parts.append(f"[dim]args:[/dim] {args_str}")
    if verbose and call.prediction and call.prediction.summary:
        parts.append(f"[dim]dry run:[/dim] {call.prediction.summary}")

    if call.state == ToolCallState.EXECUTED:
        if call.result is not None:
            parts.append(_truncate(str(call.result), 100 if verbose else 60))
    elif call.state == ToolCallState.FAILED:
        if call.error:
            parts.append(f"[red]{_truncate(call.error, 80)}[/red]")
    elif call.decision is not None:
        parts.append(f"[yellow]{call.decision.reason}[/yellow]")
        if call.decision.rule_matched:
            parts.append(f"[dim]rule: {call.decision.rule_matched}[/dim]")

    if call.snapshot_id:
        parts.append(f"[dim]snapshot: {call.snapshot_id}[/dim]")
    return "\n".join(parts)


def print_summary(console: Console, calls: list[ToolCall]) -> None:
    """Print counts per outcome."""
    counts = {state: 0 for state in ToolCallState}
    for call in calls:
        counts[call.state] += 1

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column("Metric", style="dim")
    stats_table.add_column("Value")

    stats_table.add_row("Total Calls", str(len(calls)))
    for label, state, style in (
        ("Executed", ToolCallState.EXECUTED, "green"),
        ("Pending", ToolCallState.PENDING_APPROVAL, "dim"),
        ("Denied", ToolCallState.DENIED, "yellow"),
        ("Rejected", ToolCallState.REJECTED, "yellow"),
        ("Expired", ToolCallState.EXPIRED, "yellow"),
        ("Failed", ToolCallState.FAILED, "red"),
    ):
        count = counts[state]
        stats_table.add_row(label, f"[{style}]{count}[/{style}]" if count else "0")

    console.print("[bold]Summary[/bold]")
    console.print(stats_table)


def print_audit(console: Console, entries: list[AuditEntry], verbose: bool = False) -> None:
    """Print audit entries in sequence order."""
    if not entries:
        console.print("[dim]No audit entries[/dim]")
        return

    table = Table(show_header=True, header_style="bold", show_lines=verbose, expand=True)
    table.add_column("Seq", style="dim", justify="right", width=5)
    table.add_column("Time", width=19)
    table.add_column("Call", style="dim", width=12)
    table.add_column("Tool", style="cyan", width=18)
    table.add_column("Transition", width=24)
    table.add_column("Actor", width=10)
    table.add_column("Result", width=16)
    table.add_column("Detail", overflow="fold")

    for entry in entries:
        style = RESULT_STYLES.get(entry.result, "red")
        detail = entry.detail if verbose else _truncate(entry.detail, 60)
        if entry.snapshot_id:
            detail = f"{detail}\n[dim]snapshot: {entry.snapshot_id}[/dim]"
        if verbose and entry.entry_hash:
            detail = f"{detail}\n[dim]hash: {entry.entry_hash[:16]}...[/dim]"
        table.add_row(
            str(entry.sequence),
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.tool_call_id,
            entry.tool_name,
            entry.transition.value,
            entry.actor_id,
            f"[{style}]{entry.result}[/{style}]",
            detail,
        )

    console.print(table)


def print_verification(console: Console, verification: ChainVerification) -> None:
    """Print the outcome of a chain verification."""
    header = Text()
    if verification.valid:
        header.append(" Audit chain intact ", style="bold green")
    else:
        header.append(" Audit chain BROKEN ", style="bold red")
    header.append(f"│ {verification.checked} entries checked", style="dim")
    console.print(Panel(header, expand=False))

    for error in verification.errors:
        console.print(f"  {ICON_ERROR} {error}")


def print_tools(console: Console, descriptors: list[ToolDescriptor]) -> None:
    """Print the tool catalog."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Tool", style="cyan")
    table.add_column("Mutates", justify="center")
    table.add_column("Snapshot", justify="center")
    table.add_column("Description")

    for descriptor in descriptors:
        table.add_row(
            descriptor.name,
            ICON_ERROR if descriptor.mutates else ICON_SUCCESS,
            "yes" if descriptor.requires_snapshot else "[dim]no[/dim]",
            descriptor.description,
        )

    console.print(table)


def print_snapshots(console: Console, snapshots: list[Snapshot]) -> None:
    """Print stored snapshots."""
    if not snapshots:
        console.print("[dim]No snapshots[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Id", style="cyan")
    table.add_column("Created", width=19)
    table.add_column("Call", style="dim")
    table.add_column("Files", justify="right")
    table.add_column("Label")

    for snapshot in snapshots:
        table.add_row(
            snapshot.id,
            snapshot.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            snapshot.tool_call_id or "",
            str(len(snapshot.files)),
            snapshot.label,
        )

    console.print(table)
