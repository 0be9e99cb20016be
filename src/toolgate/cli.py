"""
CLI entry point for Toolgate.

This module provides the Typer-based command-line interface for Toolgate.

Commands:
    run         Propose a file of tool requests and walk them through approval
    audit       Query the audit log
    verify      Recompute the audit hash chain
    tools       List the tool catalog
    snapshots   List stored snapshots
    restore     Roll files back to a snapshot

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to a
    Session. Everything it does is available programmatically.
"""

import json
import traceback
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console

from toolgate import __version__
from toolgate.audit.log import AuditLog
from toolgate.config import GateConfig, load_config
from toolgate.errors import ToolgateError
from toolgate.logging import configure_logging
from toolgate.report import (
    build_audit_report,
    build_session_report,
    print_audit,
    print_calls,
    print_snapshots,
    print_tools,
    print_verification,
    to_json,
)
from toolgate.schema import AuditFilter, AuditTransition, ToolCallState, load_requests
from toolgate.session import Session
from toolgate.snapshot.service import FileSnapshotService
from toolgate.store.db import SQLiteAuditStore
from toolgate.tools import default_catalog

app = typer.Typer(
    name="toolgate",
    help="Approve, checkpoint and audit agent tool calls.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

CLI_ACTOR = "cli"
FAILING_STATES = frozenset({ToolCallState.FAILED, ToolCallState.DENIED})


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]toolgate[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Logging level (DEBUG, INFO, WARNING, ERROR)."),
    ] = "WARNING",
    log_json: Annotated[
        bool,
        typer.Option("--log-json", help="Emit logs as JSON lines on stderr."),
    ] = False,
) -> None:
    """
    Toolgate - approval and audit pipeline for agent tool calls.

    Every requested action is dry-run, decided by policy, approved by a
    human when required, checkpointed before mutation, and recorded in a
    tamper-evident audit log.
    """
    configure_logging(level=log_level, json_output=log_json)


# =============================================================================
# Helpers
# =============================================================================


ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Path to the gate configuration YAML file.",
        exists=True,
        readable=True,
        resolve_path=True,
    ),
]

DbOption = Annotated[
    Optional[Path],
    typer.Option("--db", help="Audit database. Overrides the configuration."),
]

JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output results in JSON format."),
]


def _load_config(
    config_path: Path | None,
    db_path: Path | None = None,
    snapshot_dir: Path | None = None,
) -> GateConfig:
    config = load_config(config_path) if config_path else GateConfig()
    overrides: dict[str, Path] = {}
    if db_path is not None:
        overrides["audit_db_path"] = db_path
    if snapshot_dir is not None:
        overrides["snapshot_dir"] = snapshot_dir
    return config.model_copy(update=overrides) if overrides else config


def _aware(value: datetime | None) -> datetime | None:
    """Command-line timestamps without an offset are taken as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _fail(message: str, json_output: bool, error: Exception | None = None, debug: bool = False) -> None:
    """Report an error and exit with status 1."""
    if json_output:
        output: dict[str, object] = {"error": True, "message": message}
        if isinstance(error, ToolgateError):
            output.update(error.to_dict())
        if debug:
            output["traceback"] = traceback.format_exc()
        print(json.dumps(output, indent=2, default=str))
    else:
        console.print(f"[red]{message}[/red]")
        if debug:
            console.print(f"[dim]{traceback.format_exc()}[/dim]")
    raise typer.Exit(code=1)


# =============================================================================
# run
# =============================================================================


@app.command()
def run(
    requests_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the requests YAML file.",
            exists=True,
            readable=True,
            resolve_path=True,
        ),
    ],
    config_path: ConfigOption = None,
    db_path: DbOption = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Approve every call that needs approval."),
    ] = False,
    no_input: Annotated[
        bool,
        typer.Option("--no-input", help="Reject every call that needs approval without asking."),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Show arguments and dry runs.")] = False,
    debug: Annotated[bool, typer.Option("--debug", help="Show full error tracebacks.")] = False,
    json_output: JsonOption = False,
) -> None:
    """
    Propose each request and walk it through approval.

    Read-only calls allowed by policy run at once. Calls that need approval
    are confirmed interactively, approved with --yes, or rejected with
    --no-input. Exits 1 if any call was denied or failed.

    Example:
        $ toolgate run requests.yaml --config gate.yaml
    """
    try:
        batch = load_requests(requests_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        _fail(f"Error loading requests: {e}", json_output, e, debug)

    try:
        config = _load_config(config_path, db_path)
    except ToolgateError as e:
        _fail(e.message, json_output, e, debug)

    proposal_errors: list[dict[str, object]] = []
    try:
        with Session.open(config) as session:
            coordinator = session.coordinator
            call_ids: list[str] = []

            for request in batch.requests:
                try:
                    call_ids.append(coordinator.propose(request.tool, request.args))
                except ToolgateError as e:
                    proposal_errors.append({"tool": request.tool, **e.to_dict()})
                    if not json_output:
                        console.print(f"[red]✗ {request.tool}: {e.message}[/red]")

            for call in coordinator.list_pending_approvals():
                if no_input:
                    approved = False
                elif yes:
                    approved = True
                else:
                    summary = call.prediction.summary if call.prediction else ""
                    console.print(
                        f"[bold cyan]{call.tool_name}[/bold cyan] {call.arguments}"
                        + (f"\n  [dim]{summary}[/dim]" if summary else "")
                    )
                    if call.decision:
                        console.print(f"  [yellow]{call.decision.reason}[/yellow]")
                    approved = typer.confirm("Approve?", default=False)

                if approved:
                    token = coordinator.approve(call.id, CLI_ACTOR)
                    coordinator.execute(call.id, token)
                else:
                    reason = "Rejected without input" if no_input else "Declined at prompt"
                    coordinator.reject(call.id, CLI_ACTOR, reason)

            calls = [coordinator.get(call_id) for call_id in call_ids]
    except typer.Exit:
        raise
    except (ToolgateError, ValidationError) as e:
        _fail(f"Execution error: {e}", json_output, e, debug)

    if json_output:
        report = build_session_report(calls)
        report["proposal_errors"] = proposal_errors
        print(to_json(report))
    else:
        print_calls(console, calls, verbose)

    failed = proposal_errors or any(call.state in FAILING_STATES for call in calls)
    raise typer.Exit(code=1 if failed else 0)


# =============================================================================
# audit / verify
# =============================================================================


@app.command()
def audit(
    config_path: ConfigOption = None,
    db_path: DbOption = None,
    tool: Annotated[Optional[str], typer.Option("--tool", help="Only entries for this tool.")] = None,
    result: Annotated[Optional[str], typer.Option("--result", help="Only entries with this result.")] = None,
    call: Annotated[Optional[str], typer.Option("--call", help="Only entries for this tool call id.")] = None,
    transition: Annotated[
        Optional[AuditTransition],
        typer.Option("--transition", help="Only entries recording this transition."),
    ] = None,
    since: Annotated[
        Optional[datetime],
        typer.Option("--since", help="Only entries at or after this ISO timestamp."),
    ] = None,
    until: Annotated[
        Optional[datetime],
        typer.Option("--until", help="Only entries at or before this ISO timestamp."),
    ] = None,
    limit: Annotated[Optional[int], typer.Option("--limit", "-n", min=1, help="Maximum entries.")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", help="Show full detail and hashes.")] = False,
    json_output: JsonOption = False,
) -> None:
    """
    Query the audit log.

    Example:
        $ toolgate audit --tool create_file --result ok
    """
    try:
        config = _load_config(config_path, db_path)
        audit_filter = AuditFilter(
            tool_call_id=call,
            tool_name=tool,
            result=result,
            transition=transition,
            since=_aware(since),
            until=_aware(until),
            limit=limit,
        )
        with SQLiteAuditStore(config.audit_db_path) as store:
            entries = AuditLog(store, chain=config.hash_chain).query(audit_filter)
    except (ToolgateError, ValidationError) as e:
        _fail(str(e), json_output, e)

    if json_output:
        print(to_json(build_audit_report(entries)))
    else:
        print_audit(console, entries, verbose)


@app.command()
def verify(
    config_path: ConfigOption = None,
    db_path: DbOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Recompute the audit hash chain. Exits 1 if it was tampered with.

    Example:
        $ toolgate verify --db toolgate.db
    """
    try:
        config = _load_config(config_path, db_path)
        with SQLiteAuditStore(config.audit_db_path) as store:
            verification = AuditLog(store, chain=config.hash_chain).verify()
    except ToolgateError as e:
        _fail(e.message, json_output, e)

    if json_output:
        print(json.dumps(verification.model_dump(mode="json"), indent=2))
    else:
        print_verification(console, verification)

    raise typer.Exit(code=0 if verification.valid else 1)


# =============================================================================
# tools / snapshots / restore
# =============================================================================


@app.command()
def tools(json_output: JsonOption = False) -> None:
    """List the tool catalog with mutation and snapshot flags."""
    descriptors = default_catalog().descriptors()
    if json_output:
        output = [
            {
                "name": d.name,
                "description": d.description,
                "mutates": d.mutates,
                "requires_snapshot": d.requires_snapshot,
                "schema": d.schema,
            }
            for d in descriptors
        ]
        print(json.dumps(output, indent=2))
    else:
        print_tools(console, descriptors)


SnapshotDirOption = Annotated[
    Optional[Path],
    typer.Option("--dir", help="Snapshot directory. Overrides the configuration."),
]


@app.command()
def snapshots(
    config_path: ConfigOption = None,
    snapshot_dir: SnapshotDirOption = None,
    json_output: JsonOption = False,
) -> None:
    """List stored snapshots."""
    try:
        config = _load_config(config_path, snapshot_dir=snapshot_dir)
        stored = FileSnapshotService(config.snapshot_dir).list()
    except ToolgateError as e:
        _fail(e.message, json_output, e)

    if json_output:
        print(json.dumps([s.model_dump(mode="json") for s in stored], indent=2))
    else:
        print_snapshots(console, stored)


@app.command()
def restore(
    snapshot_id: Annotated[str, typer.Argument(help="Id of the snapshot to restore.")],
    config_path: ConfigOption = None,
    db_path: DbOption = None,
    snapshot_dir: SnapshotDirOption = None,
    actor: Annotated[str, typer.Option("--actor", help="Who is restoring.")] = CLI_ACTOR,
    json_output: JsonOption = False,
) -> None:
    """
    Roll files back to a snapshot. The restore is recorded in the audit log.

    Example:
        $ toolgate restore 3f9a1c2b7d4e
    """
    try:
        config = _load_config(config_path, db_path, snapshot_dir)
        with Session.open(config) as session:
            restored = session.coordinator.restore_snapshot(snapshot_id, actor)
    except ToolgateError as e:
        _fail(e.message, json_output, e)

    if json_output:
        print(json.dumps({"snapshot_id": snapshot_id, "restored": [str(p) for p in restored]}, indent=2))
    else:
        console.print(f"[green]✓[/green] Restored {len(restored)} path(s) from {snapshot_id}")
        for path in restored:
            console.print(f"    • {path}")


if __name__ == "__main__":
    app()
