"""
Reporting module for Toolgate.

Output formats:
    - Console: Rich tables for calls, audit entries, tools and snapshots
    - JSON: Structured output for programmatic consumption

Example:
    from toolgate.report import build_audit_report, print_audit, to_json

    print_audit(Console(), session.audit.entries())
    print(to_json(build_audit_report(session.audit.entries())))
"""

from toolgate.report.console import (
    print_audit,
    print_calls,
    print_snapshots,
    print_summary,
    print_tools,
    print_verification,
)
from toolgate.report.json import build_audit_report, build_session_report, to_json

__all__ = [
    "build_audit_report",
    "build_session_report",
    "print_audit",
    "print_calls",
    "print_snapshots",
    "print_summary",
    "print_tools",
    "print_verification",
    "to_json",
]
