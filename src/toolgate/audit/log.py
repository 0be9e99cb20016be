"""
Append-only, tamper-evident audit log.

Every state transition of every tool call is appended here. Each entry is
chained to the previous one with SHA-256 (genesis hash is 64 zeros), so any
retroactive edit, insertion or deletion breaks verification.

Features:
    - Append-only: entries are frozen and the backend has no update path
    - Single writer: appends serialize on one lock; sequence numbers are
      strictly increasing with no gaps
    - Durable: append returns only after the backend committed the entry;
      a failed append raises AuditWriteError and nothing is published
    - Resumable: sequence and chain head continue from the backend's last
      entry after a restart
"""

import threading
from datetime import datetime
from typing import Callable

from toolgate.audit.recent import RecentActivity
from toolgate.errors import AuditWriteError, StorageWriteError
from toolgate.logging import get_logger
from toolgate.schema import GENESIS_HASH, AuditEntry, AuditFilter, ChainVerification, utc_now
from toolgate.store.db import AuditBackend

logger = get_logger(__name__)

AuditListener = Callable[[AuditEntry], None]


class AuditLog:
    """
    The system of record for every decision the pipeline makes.

    Usage:
        log = AuditLog(SQLiteAuditStore("toolgate.db"))
        entry = log.append(AuditEntry(tool_call_id="abc", transition=...))
        report = log.verify()

    Attributes:
        backend: Durable storage for entries
        chain: Whether entries are hash-chained
        recent: Bounded view of the latest entries, for display only
    """

    def __init__(
        self,
        backend: AuditBackend,
        chain: bool = True,
        recent_size: int = 100,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.backend = backend
        self.chain = chain
        self.recent = RecentActivity(recent_size)
        self._clock = clock
        self._write_lock = threading.Lock()
        self._listeners: list[AuditListener] = []

        last = backend.last_entry()
        self._sequence = last.sequence if last else 0
        self._head = last.entry_hash if last and last.entry_hash else GENESIS_HASH

    # =========================================================================
    # Writing
    # =========================================================================

    def append(self, draft: AuditEntry) -> AuditEntry:
        """
        Make an entry durable.

        The draft's sequence, timestamp and hashes are assigned here; all
        other fields are kept as given.

        Raises:
            AuditWriteError: If the backend could not persist the entry
        """
        with self._write_lock:
            sequence = self._sequence + 1
            entry = draft.model_copy(
                update={
                    "sequence": sequence,
                    "timestamp": self._clock(),
                    "prev_hash": self._head if self.chain else "",
                    "entry_hash": "",
                }
            )
            if self.chain:
                entry = entry.model_copy(
                    update={"entry_hash": entry.content_hash(self._head)}
                )

            try:
                self.backend.append_audit_entry(entry)
            except StorageWriteError as e:
                logger.error(
                    "Audit append failed: %s",
                    e.underlying_error or e.message,
                    extra={
                        "tool_call_id": entry.tool_call_id,
                        "sequence": sequence,
                    },
                )
                raise AuditWriteError(
                    tool_call_id=entry.tool_call_id,
                    transition=entry.transition.value,
                    underlying_error=e.underlying_error or e.message,
                ) from e

            self._sequence = sequence
            if self.chain:
                self._head = entry.entry_hash
            self.recent.push(entry)

        self._notify(entry)
        return entry

    def subscribe(self, listener: AuditListener) -> None:
        """Register a callback invoked after every durable append."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: AuditListener) -> None:
        self._listeners = [item for item in self._listeners if item is not listener]

    def _notify(self, entry: AuditEntry) -> None:
        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception:
                # A broken consumer must not undo a committed entry
                logger.exception(
                    "Audit listener failed",
                    extra={"sequence": entry.sequence},
                )

    # =========================================================================
    # Reading
    # =========================================================================

    def query(self, audit_filter: AuditFilter | None = None) -> list[AuditEntry]:
        """Entries matching the filter, in sequence order."""
        return self.backend.query_audit_entries(audit_filter or AuditFilter())

    def entries(self) -> list[AuditEntry]:
        return self.query()

    def by_tool_call(self, tool_call_id: str) -> list[AuditEntry]:
        return self.query(AuditFilter(tool_call_id=tool_call_id))

    def by_time_range(self, since: datetime | None, until: datetime | None) -> list[AuditEntry]:
        return self.query(AuditFilter(since=since, until=until))

    def by_result(self, result: str) -> list[AuditEntry]:
        return self.query(AuditFilter(result=result))

    def count(self) -> int:
        return self.backend.count()

    def __len__(self) -> int:
        return self.count()

    @property
    def head(self) -> str:
        """Hash of the latest entry (genesis hash when empty)."""
        return self._head

    # =========================================================================
    # Verification
    # =========================================================================

    def verify(self) -> ChainVerification:
        """
        Recompute the whole chain.

        Checks that sequence numbers run 1..N without gaps, that every
        entry links to its predecessor, and that every stored hash matches
        the entry's content.
        """
        errors: list[str] = []
        expected_prev = GENESIS_HASH
        entries = self.entries()

        for index, entry in enumerate(entries, start=1):
            if entry.sequence != index:
                errors.append(
                    f"Sequence gap at position {index}: found sequence {entry.sequence}"
                )
            if not self.chain:
                continue
            if entry.prev_hash != expected_prev:
                errors.append(
                    f"Chain broken at sequence {entry.sequence}: "
                    f"expected prev_hash {expected_prev[:16]}..., "
                    f"got {entry.prev_hash[:16]}..."
                )
            recomputed = entry.content_hash(entry.prev_hash)
            if recomputed != entry.entry_hash:
                errors.append(
                    f"Tampered entry at sequence {entry.sequence}: "
                    f"stored {entry.entry_hash[:16]}..., recomputed {recomputed[:16]}..."
                )
            expected_prev = entry.entry_hash

        return ChainVerification(valid=not errors, checked=len(entries), errors=errors)
