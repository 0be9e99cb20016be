"""
Persistence backends for the audit log.

The audit log depends only on the AuditBackend contract. Two backends ship:

    - SQLiteAuditStore: durable, single-file, survives restarts
    - MemoryAuditStore: process-local, for tests and throwaway sessions

Design Principles:
    - Append-only: there is no update or delete operation
    - Synchronous: append returns only once the entry is durable
    - Failures surface as StorageWriteError/StorageReadError, never silently

Why SQLite?
    - Zero configuration (no server needed)
    - ACID transactions built-in
    - Portable single-file format
"""

import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

from toolgate.errors import StorageConnectionError, StorageReadError, StorageWriteError
from toolgate.schema import (
    ActorKind,
    AuditEntry,
    AuditFilter,
    AuditTransition,
    ToolCallState,
    utc_now,
)

# Schema version for migrations
SCHEMA_VERSION = 1

CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

-- Audit entries: one row per recorded transition, never updated
CREATE TABLE IF NOT EXISTS audit_entries (
    sequence INTEGER PRIMARY KEY,
    timestamp TEXT NOT NULL,
    tool_call_id TEXT NOT NULL,
    tool_name TEXT NOT NULL,
    transition TEXT NOT NULL,
    from_state TEXT,
    to_state TEXT,
    actor_id TEXT NOT NULL,
    actor_kind TEXT NOT NULL,
    result TEXT NOT NULL,
    detail TEXT NOT NULL,
    snapshot_id TEXT,
    prev_hash TEXT NOT NULL,
    entry_hash TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_audit_tool_call ON audit_entries(tool_call_id);
CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_entries(timestamp);
CREATE INDEX IF NOT EXISTS idx_audit_tool_name ON audit_entries(tool_name);
"""


def generate_id() -> str:
    """Generate a short unique id for tool calls and snapshots."""
    return uuid.uuid4().hex[:12]


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return utc_now().isoformat()


class AuditBackend(ABC):
    """Durability contract required by the audit log."""

    @abstractmethod
    def append_audit_entry(self, entry: AuditEntry) -> None:
        """
        Persist one entry.

        Raises:
            StorageWriteError: If the entry could not be made durable
        """
        ...

    @abstractmethod
    def query_audit_entries(self, audit_filter: AuditFilter) -> list[AuditEntry]:
        """Entries matching the filter, in sequence order."""
        ...

    @abstractmethod
    def last_entry(self) -> AuditEntry | None:
        """The entry with the highest sequence number."""
        ...

    @abstractmethod
    def count(self) -> int:
        ...

    def close(self) -> None:
        """Release resources. Default: nothing to release."""


class MemoryAuditStore(AuditBackend):
    """
    In-process backend.

    Not durable across restarts; useful for tests and for sessions that only
    need the tamper-evident chain while they run.
    """

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []
        self._lock = threading.Lock()

    def append_audit_entry(self, entry: AuditEntry) -> None:
        with self._lock:
            if self._entries and entry.sequence <= self._entries[-1].sequence:
                raise StorageWriteError(
                    operation="append_audit_entry",
                    underlying_error=f"sequence {entry.sequence} is not increasing",
                )
            self._entries.append(entry)

    def query_audit_entries(self, audit_filter: AuditFilter) -> list[AuditEntry]:
        with self._lock:
            entries = list(self._entries)
        matched = [e for e in entries if audit_filter.matches(e)]
        if audit_filter.limit is not None:
            matched = matched[-audit_filter.limit :]
        return matched

    def last_entry(self) -> AuditEntry | None:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def count(self) -> int:
        with self._lock:
            return len(self._entries)


class SQLiteAuditStore(AuditBackend):
    """
    SQLite backend for the audit log.

    Usage:
        store = SQLiteAuditStore("toolgate.db")
        store.append_audit_entry(entry)
        store.close()

    Or use as context manager:
        with SQLiteAuditStore("toolgate.db") as store:
            ...
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Open (and create if needed) the database.

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
        """
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else None
        self._target = str(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        try:
            if self.db_path is not None:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._target, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        except (sqlite3.Error, OSError) as e:
            raise StorageConnectionError(
                db_path=self._target,
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    def _init_schema(self) -> None:
        try:
            with self._lock:
                self._conn.executescript(CREATE_TABLES_SQL)
                row = self._conn.execute(
                    "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
                ).fetchone()
                if row is None:
                    self._conn.execute(
                        "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                        (SCHEMA_VERSION, now_iso()),
                    )
                self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "SQLiteAuditStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # =========================================================================
    # Writes
    # =========================================================================

    def append_audit_entry(self, entry: AuditEntry) -> None:
        try:
            with self._lock:
                self._conn.execute(
                    """
                    INSERT INTO audit_entries (
                        sequence, timestamp, tool_call_id, tool_name, transition,
                        from_state, to_state, actor_id, actor_kind, result,
                        detail, snapshot_id, prev_hash, entry_hash
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        entry.sequence,
                        entry.timestamp.isoformat(),
                        entry.tool_call_id,
                        entry.tool_name,
                        entry.transition.value,
                        entry.from_state.value if entry.from_state else None,
                        entry.to_state.value if entry.to_state else None,
                        entry.actor_id,
                        entry.actor_kind.value,
                        entry.result,
                        entry.detail,
                        entry.snapshot_id,
                        entry.prev_hash,
                        entry.entry_hash,
                    ),
                )
                self._conn.commit()
        except (sqlite3.Error, AttributeError) as e:
            # AttributeError: connection already closed
            raise StorageWriteError(
                operation="append_audit_entry",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Reads
    # =========================================================================

    def query_audit_entries(self, audit_filter: AuditFilter) -> list[AuditEntry]:
        clauses = []
        params: list[Any] = []

        if audit_filter.tool_call_id is not None:
            clauses.append("tool_call_id = ?")
            params.append(audit_filter.tool_call_id)
        if audit_filter.tool_name is not None:
            clauses.append("tool_name = ?")
            params.append(audit_filter.tool_name)
        if audit_filter.result is not None:
            clauses.append("result = ?")
            params.append(audit_filter.result)
        if audit_filter.transition is not None:
            clauses.append("transition = ?")
            params.append(audit_filter.transition.value)

        sql = "SELECT * FROM audit_entries"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY sequence"

        rows = self._fetch(sql, params, "query_audit_entries")
        entries = [self._row_to_entry(row) for row in rows]

        # Time bounds are compared as datetimes, not ISO strings, so
        # differing offsets still order correctly
        entries = [
            e for e in entries
            if (audit_filter.since is None or e.timestamp >= audit_filter.since)
            and (audit_filter.until is None or e.timestamp <= audit_filter.until)
        ]
        # The newest entries, still in sequence order
        if audit_filter.limit is not None:
            entries = entries[-audit_filter.limit :]
        return entries

    def last_entry(self) -> AuditEntry | None:
        rows = self._fetch(
            "SELECT * FROM audit_entries ORDER BY sequence DESC LIMIT 1",
            [],
            "last_entry",
        )
        return self._row_to_entry(rows[0]) if rows else None

    def count(self) -> int:
        rows = self._fetch("SELECT COUNT(*) AS n FROM audit_entries", [], "count")
        return int(rows[0]["n"])

    def _fetch(self, sql: str, params: list[Any], operation: str) -> list[sqlite3.Row]:
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchall()
        except (sqlite3.Error, AttributeError) as e:
            raise StorageReadError(
                operation=operation,
                underlying_error=str(e),
            ) from e

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> AuditEntry:
        return AuditEntry(
            sequence=row["sequence"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            tool_call_id=row["tool_call_id"],
            tool_name=row["tool_name"],
            transition=AuditTransition(row["transition"]),
            from_state=ToolCallState(row["from_state"]) if row["from_state"] else None,
            to_state=ToolCallState(row["to_state"]) if row["to_state"] else None,
            actor_id=row["actor_id"],
            actor_kind=ActorKind(row["actor_kind"]),
            result=row["result"],
            detail=row["detail"],
            snapshot_id=row["snapshot_id"],
            prev_hash=row["prev_hash"],
            entry_hash=row["entry_hash"],
        )
