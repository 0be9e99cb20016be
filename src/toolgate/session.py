"""
Session wiring.

A Session owns one coordinator and everything it needs, built from a
GateConfig:

    with Session.open(config) as session:
        call_id = session.coordinator.propose("read_file", {"path": "README.md"})

Sessions share nothing mutable with each other; the audit database is the
only shared resource and it is append-only.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from toolgate.audit.log import AuditLog
from toolgate.commands import CommandChannel
from toolgate.config import GateConfig
from toolgate.coordinator import ApprovalCoordinator
from toolgate.policy.engine import PolicyEngine
from toolgate.schema import utc_now
from toolgate.snapshot.gate import SnapshotGate
from toolgate.snapshot.service import FileSnapshotService, SnapshotService
from toolgate.store.db import AuditBackend, SQLiteAuditStore
from toolgate.tools import context_for, default_catalog
from toolgate.tools.registry import ToolCatalog


class Session:
    """
    One coordinator plus its collaborators.

    Attributes:
        config: The configuration the session was built from
        store: Audit persistence backend
        audit: The audit log
        snapshots: Snapshot service
        catalog: Tool catalog
        coordinator: The approval coordinator
        commands: Command channel bound to the coordinator
    """

    def __init__(
        self,
        config: GateConfig,
        store: AuditBackend,
        snapshots: SnapshotService,
        catalog: ToolCatalog,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        catalog.validate()
        self.config = config
        self.store = store
        self.snapshots = snapshots
        self.catalog = catalog
        self.audit = AuditLog(
            store,
            chain=config.hash_chain,
            recent_size=config.recent_activity_size,
            clock=clock,
        )
        self.policy = PolicyEngine(config.policy_rules(), working_dir=config.working_dir)
        self.coordinator = ApprovalCoordinator(
            catalog=catalog,
            policy=self.policy,
            audit=self.audit,
            snapshot_gate=SnapshotGate(snapshots),
            config=config,
            context=context_for(config),
            clock=clock,
        )
        self.commands = CommandChannel(self.coordinator)

    @classmethod
    def open(
        cls,
        config: GateConfig | None = None,
        db_path: str | Path | None = None,
        catalog: ToolCatalog | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "Session":
        """
        Build a session with the default collaborators.

        Args:
            config: Session configuration (defaults apply when omitted)
            db_path: Overrides config.audit_db_path
            catalog: Overrides the built-in catalog
            clock: Time source, for tests
        """
        config = config or GateConfig()
        store = SQLiteAuditStore(db_path or config.audit_db_path)
        try:
            snapshots = FileSnapshotService(config.snapshot_dir)
            tools = catalog or default_catalog()
            return cls(config, store, snapshots, tools, clock=clock)
        except Exception:
            store.close()
            raise

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
