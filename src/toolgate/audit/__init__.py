"""
Audit module for Toolgate.

    - AuditLog: durable, append-only, hash-chained record of every transition
    - RecentActivity: bounded ring buffer of the latest entries for display

The bounded view is a cache; the AuditLog is the only system of record.
"""

from toolgate.audit.log import AuditListener, AuditLog
from toolgate.audit.recent import RecentActivity

__all__ = [
    "AuditListener",
    "AuditLog",
    "RecentActivity",
]
