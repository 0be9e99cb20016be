"""
JSON report generator for Toolgate.

Structured output for programmatic consumption of tool calls, audit entries
and chain verification.

Design Principles:
    - Complete data: Include every recorded field
    - Consistent schema: Same structure across sessions
    - ISO timestamps: Standard datetime format
"""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from toolgate.schema import AuditEntry, ChainVerification, ToolCall

REPORT_VERSION = "1.0"


def _json_serializer(obj: Any) -> Any:
    """Serialize values json doesn't know about."""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    msg = f"Object of type {type(obj).__name__} is not JSON serializable"
    raise TypeError(msg)


def build_session_report(
    calls: list[ToolCall],
    entries: list[AuditEntry] | None = None,
    verification: ChainVerification | None = None,
) -> dict[str, Any]:
    """Build a report dictionary for the calls of one session."""
    counts: dict[str, int] = {}
    for call in calls:
        counts[call.state.value] = counts.get(call.state.value, 0) + 1

    report: dict[str, Any] = {
        "report_version": REPORT_VERSION,
        "generated_at": datetime.now(UTC).isoformat(),
        "summary": {"total": len(calls), "by_state": counts},
        "calls": [call.model_dump(mode="json") for call in calls],
    }
    if entries is not None:
        report["audit"] = [entry.model_dump(mode="json") for entry in entries]
    if verification is not None:
        report["verification"] = verification.model_dump(mode="json")
    return report


def build_audit_report(
    entries: list[AuditEntry],
    verification: ChainVerification | None = None,
) -> dict[str, Any]:
    """Build a report dictionary for a slice of the audit log."""
    report: dict[str, Any] = {
        "report_version": REPORT_VERSION,
        "generated_at": datetime.now(UTC).isoformat(),
        "count": len(entries),
        "entries": [entry.model_dump(mode="json") for entry in entries],
    }
    if verification is not None:
        report["verification"] = verification.model_dump(mode="json")
    return report


def to_json(report: dict[str, Any], indent: int = 2) -> str:
    return json.dumps(report, indent=indent, default=_json_serializer)
