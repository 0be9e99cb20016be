"""
Storage module for Toolgate.

Persistence for the audit log. The audit log only talks to the AuditBackend
contract, so the storage engine is an injected collaborator.

Backends:
    - SQLiteAuditStore: single .db file, durable across restarts
    - MemoryAuditStore: in-process, for tests

Design principles:
    - Append-only: historical entries are never modified
    - Synchronous: an append that returns has been committed
"""

from toolgate.store.db import (
    AuditBackend,
    MemoryAuditStore,
    SQLiteAuditStore,
    generate_id,
)

__all__ = [
    "AuditBackend",
    "MemoryAuditStore",
    "SQLiteAuditStore",
    "generate_id",
]
