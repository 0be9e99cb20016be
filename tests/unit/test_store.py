"""
Unit tests for audit storage backends.

Tests cover:
- Schema creation
- Append and query round trips in SQLite
- Filtering and ordering
- Persistence across reopen
- Failure surfacing on closed connections
"""

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Generator

import pytest

from toolgate.errors import StorageReadError, StorageWriteError
from toolgate.schema import AuditEntry, AuditFilter, AuditTransition, ToolCallState
from toolgate.store import MemoryAuditStore, SQLiteAuditStore, generate_id

NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


def entry(sequence: int, **kwargs: object) -> AuditEntry:
    defaults: dict[str, object] = {
        "sequence": sequence,
        "timestamp": NOW + timedelta(seconds=sequence),
        "tool_call_id": "call-1",
        "tool_name": "read_file",
        "transition": AuditTransition.DRY_RUN,
        "entry_hash": f"{sequence:064x}",
    }
    defaults.update(kwargs)
    return AuditEntry(**defaults)  # type: ignore[arg-type]


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store(temp_dir: Path) -> Generator[SQLiteAuditStore, None, None]:
    with SQLiteAuditStore(temp_dir / "audit.db") as s:
        yield s


# =============================================================================
# SQLite
# =============================================================================


class TestSQLiteAuditStore:
    """Tests for the SQLite backend."""

    def test_creates_file(self, temp_dir: Path) -> None:
        path = temp_dir / "nested" / "audit.db"
        with SQLiteAuditStore(path):
            pass
        assert path.exists()

    def test_empty(self, store: SQLiteAuditStore) -> None:
        assert store.count() == 0
        assert store.last_entry() is None
        assert store.query_audit_entries(AuditFilter()) == []

    def test_round_trip_preserves_fields(self, store: SQLiteAuditStore) -> None:
        original = entry(
            1,
            transition=AuditTransition.EXECUTED,
            from_state=ToolCallState.EXECUTING,
            to_state=ToolCallState.EXECUTED,
            actor_id="alice",
            result="ok",
            detail="wrote 5 bytes",
            snapshot_id="snap-1",
            prev_hash="0" * 64,
        )
        store.append_audit_entry(original)
        loaded = store.query_audit_entries(AuditFilter())
        assert loaded == [original]

    def test_last_entry_and_count(self, store: SQLiteAuditStore) -> None:
        for seq in (1, 2, 3):
            store.append_audit_entry(entry(seq))
        assert store.count() == 3
        assert store.last_entry().sequence == 3

    def test_duplicate_sequence_rejected(self, store: SQLiteAuditStore) -> None:
        store.append_audit_entry(entry(1))
        with pytest.raises(StorageWriteError):
            store.append_audit_entry(entry(1))

    def test_filters(self, store: SQLiteAuditStore) -> None:
        store.append_audit_entry(entry(1))
        store.append_audit_entry(entry(2, tool_call_id="call-2", tool_name="run_command",
                                       transition=AuditTransition.DENIED, result="denied"))
        store.append_audit_entry(entry(3, transition=AuditTransition.AUTO_APPROVED))

        assert [e.sequence for e in store.query_audit_entries(
            AuditFilter(tool_call_id="call-1"))] == [1, 3]
        assert [e.sequence for e in store.query_audit_entries(
            AuditFilter(tool_name="run_command"))] == [2]
        assert [e.sequence for e in store.query_audit_entries(
            AuditFilter(result="denied"))] == [2]
        assert [e.sequence for e in store.query_audit_entries(
            AuditFilter(transition=AuditTransition.AUTO_APPROVED))] == [3]

    def test_time_range_and_limit(self, store: SQLiteAuditStore) -> None:
        for seq in range(1, 6):
            store.append_audit_entry(entry(seq))
        window = AuditFilter(
            since=NOW + timedelta(seconds=2),
            until=NOW + timedelta(seconds=4),
        )
        assert [e.sequence for e in store.query_audit_entries(window)] == [2, 3, 4]
        assert [e.sequence for e in store.query_audit_entries(AuditFilter(limit=2))] == [4, 5]

    def test_limit_applies_after_filters(self, store: SQLiteAuditStore) -> None:
        """Test that the limit keeps the newest matching entries."""
        for seq in range(1, 7):
            store.append_audit_entry(entry(seq, tool_call_id=f"call-{seq % 2}"))
        newest = store.query_audit_entries(AuditFilter(tool_call_id="call-1", limit=2))
        assert [e.sequence for e in newest] == [3, 5]

    def test_survives_reopen(self, temp_dir: Path) -> None:
        path = temp_dir / "audit.db"
        with SQLiteAuditStore(path) as first:
            first.append_audit_entry(entry(1))
        with SQLiteAuditStore(path) as second:
            assert second.count() == 1
            assert second.last_entry().entry_hash == entry(1).entry_hash

    def test_closed_store_raises(self, temp_dir: Path) -> None:
        store = SQLiteAuditStore(temp_dir / "audit.db")
        store.close()
        with pytest.raises(StorageWriteError):
            store.append_audit_entry(entry(1))
        with pytest.raises(StorageReadError):
            store.count()

    def test_in_memory_target(self) -> None:
        with SQLiteAuditStore(":memory:") as store:
            store.append_audit_entry(entry(1))
            assert store.count() == 1


# =============================================================================
# Memory
# =============================================================================


class TestMemoryAuditStore:
    """Tests for the in-process backend."""

    def test_append_and_query(self) -> None:
        store = MemoryAuditStore()
        store.append_audit_entry(entry(1))
        store.append_audit_entry(entry(2, result="denied"))
        assert store.count() == 2
        assert [e.sequence for e in store.query_audit_entries(AuditFilter(result="denied"))] == [2]

    def test_rejects_non_increasing_sequence(self) -> None:
        store = MemoryAuditStore()
        store.append_audit_entry(entry(2))
        with pytest.raises(StorageWriteError):
            store.append_audit_entry(entry(2))

    def test_limit(self) -> None:
        store = MemoryAuditStore()
        for seq in range(1, 4):
            store.append_audit_entry(entry(seq))
        assert [e.sequence for e in store.query_audit_entries(AuditFilter(limit=1))] == [3]


class TestGenerateId:
    """Tests for id generation."""

    def test_unique_and_short(self) -> None:
        ids = {generate_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(len(i) == 12 for i in ids)
