"""
Pytest configuration and fixtures for Toolgate tests.

This module provides shared fixtures used across unit, integration,
and security tests.
"""

import tempfile
import threading
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Generator

import pytest

from toolgate.audit.log import AuditLog
from toolgate.config import GateConfig
from toolgate.coordinator import ApprovalCoordinator
from toolgate.execution import CatalogExecutionGateway
from toolgate.policy.engine import PolicyEngine
from toolgate.snapshot.gate import SnapshotGate
from toolgate.snapshot.service import FileSnapshotService
from toolgate.store.db import MemoryAuditStore
from toolgate.tools import context_for, default_catalog
from toolgate.tools.base import ToolOutput


class FakeClock:
    """Controllable time source."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingGateway:
    """Execution gateway that counts invocations and can stall or fail."""

    def __init__(self, inner: Any = None, delay: float = 0.0, raises: Exception | None = None) -> None:
        self.inner = inner
        self.delay = delay
        self.raises = raises
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def execute(self, name: str, arguments: dict[str, Any]) -> ToolOutput:
        with self._lock:
            self.calls.append((name, dict(arguments)))
        if self.delay:
            time.sleep(self.delay)
        if self.raises is not None:
            raise self.raises
        if self.inner is not None:
            return self.inner.execute(name, arguments)
        return ToolOutput.ok({"tool": name})


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_gateway() -> RecordingGateway:
    """Gateway stand-in; set ``inner``, ``delay`` or ``raises`` as needed."""
    return RecordingGateway()


@pytest.fixture
def gate_config(temp_dir: Path) -> GateConfig:
    """Configuration rooted in the temp directory."""
    return GateConfig(
        working_dir=temp_dir,
        audit_db_path=temp_dir / "audit.db",
        snapshot_dir=temp_dir / ".snapshots",
    )


@pytest.fixture
def make_coordinator(
    gate_config: GateConfig,
    clock: FakeClock,
) -> Callable[..., ApprovalCoordinator]:
    """
    Factory for a coordinator on an in-memory audit store.

    Keyword arguments override the config fields, except ``gateway``,
    ``snapshot_gate``, ``simulator`` and ``rules`` which are passed through.
    """

    def factory(
        gateway: Any = None,
        snapshot_gate: Any = "default",
        simulator: Any = None,
        **overrides: Any,
    ) -> ApprovalCoordinator:
        config = gate_config.model_copy(update=overrides) if overrides else gate_config
        catalog = default_catalog()
        context = context_for(config)
        audit = AuditLog(MemoryAuditStore(), clock=clock)
        if snapshot_gate == "default":
            snapshot_gate = SnapshotGate(FileSnapshotService(config.snapshot_dir))
        if gateway is None:
            gateway = CatalogExecutionGateway(catalog, context)
        return ApprovalCoordinator(
            catalog=catalog,
            policy=PolicyEngine(config.policy_rules(), working_dir=config.working_dir),
            audit=audit,
            snapshot_gate=snapshot_gate,
            simulator=simulator,
            gateway=gateway,
            config=config,
            context=context,
            clock=clock,
        )

    return factory


@pytest.fixture
def coordinator(make_coordinator: Callable[..., ApprovalCoordinator]) -> ApprovalCoordinator:
    return make_coordinator()


@pytest.fixture
def sample_requests_yaml() -> str:
    """A request file mixing read-only and mutating calls."""
    return """
version: "1.0"
requests:
  - tool: list_directory
    args:
      path: "."
  - tool: create_file
    args:
      path: "notes.txt"
      content: "hello"
"""
