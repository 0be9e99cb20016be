"""
Snapshot module for Toolgate.

    - SnapshotService: checkpoint contract (create/restore/get/list/delete)
    - FileSnapshotService: content-addressed copies plus a JSON index
    - SnapshotGate: takes the checkpoint before a mutating call, fail-closed
"""

from toolgate.snapshot.gate import SnapshotGate
from toolgate.snapshot.service import FileSnapshotService, SnapshotService

__all__ = [
    "FileSnapshotService",
    "SnapshotGate",
    "SnapshotService",
]
