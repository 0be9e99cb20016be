"""
Snapshot gate: checkpoint before a mutating call runs.

The gate is fail-closed. If a snapshot is required and cannot be taken,
the call must not execute.
"""

from pathlib import Path

from toolgate.errors import SnapshotFailureError
from toolgate.logging import get_logger
from toolgate.schema import ToolCall
from toolgate.snapshot.service import SnapshotService
from toolgate.tools.base import ToolDescriptor

logger = get_logger(__name__)


class SnapshotGate:
    """Decides whether a call needs a checkpoint and takes it."""

    def __init__(self, service: SnapshotService) -> None:
        self.service = service

    def before_execute(
        self,
        call: ToolCall,
        descriptor: ToolDescriptor,
        affected_paths: list[Path],
    ) -> str | None:
        """
        Take a snapshot if the tool requires one.

        Returns:
            The snapshot id, or None when no snapshot is required

        Raises:
            SnapshotFailureError: If a required snapshot could not be taken
        """
        if not descriptor.requires_snapshot:
            return None

        try:
            snapshot = self.service.create(
                affected_paths,
                label=f"before {call.tool_name}",
                tool_call_id=call.id,
            )
        except Exception as e:
            # Any collaborator failure blocks execution
            underlying = e.underlying_error if isinstance(e, SnapshotFailureError) else str(e)
            logger.error(
                "Snapshot failed, refusing to execute: %s",
                underlying,
                extra={"tool_call_id": call.id, "tool_name": call.tool_name},
            )
            raise SnapshotFailureError(
                tool_call_id=call.id,
                paths=[str(p) for p in affected_paths],
                underlying_error=underlying or type(e).__name__,
            ) from e

        return snapshot.id

    def restore(self, snapshot_id: str, paths: list[Path] | None = None) -> list[Path]:
        return self.service.restore(snapshot_id, paths)
