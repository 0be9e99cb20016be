"""
Snapshot storage.

A snapshot records the content of every path a mutating tool call is about
to touch, so the change can be rolled back afterwards.

FileSnapshotService layout under its base directory:

    index.json          every snapshot's metadata, keyed by id
    <snapshot id>/      content-addressed copies (file name = sha256)

Paths that did not exist when the snapshot was taken are recorded too;
restoring removes whatever was created there since.
"""

import hashlib
import json
import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from toolgate.errors import SnapshotFailureError, SnapshotNotFoundError
from toolgate.logging import get_logger
from toolgate.schema import FileFingerprint, Snapshot
from toolgate.store.db import generate_id

logger = get_logger(__name__)

INDEX_FILE = "index.json"


class SnapshotService(ABC):
    """Checkpoint contract required by the snapshot gate."""

    @abstractmethod
    def create(
        self,
        paths: list[Path],
        label: str = "",
        tool_call_id: str | None = None,
    ) -> Snapshot:
        """
        Record the current content of paths.

        Raises:
            SnapshotFailureError: If any path could not be recorded
        """
        ...

    @abstractmethod
    def restore(self, snapshot_id: str, paths: list[Path] | None = None) -> list[Path]:
        """
        Put recorded content back, optionally limited to paths under ``paths``.

        Returns:
            The paths that were restored or removed

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist
        """
        ...

    @abstractmethod
    def get(self, snapshot_id: str) -> Snapshot:
        ...

    @abstractmethod
    def list(self) -> list[Snapshot]:
        ...

    @abstractmethod
    def delete(self, snapshot_id: str) -> None:
        ...


def _sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class FileSnapshotService(SnapshotService):
    """
    Snapshots as content-addressed file copies with a JSON index.

    Usage:
        service = FileSnapshotService(".toolgate/snapshots")
        snap = service.create([Path("notes.txt")], label="before edit")
        ...
        service.restore(snap.id)
    """

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)
        self._lock = threading.Lock()
        self._snapshots: dict[str, Snapshot] = {}
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SnapshotFailureError(
                message=f"Cannot create snapshot directory {self.base_dir}: {e}",
                underlying_error=str(e),
            ) from e
        self._load_index()

    @property
    def index_path(self) -> Path:
        return self.base_dir / INDEX_FILE

    def _load_index(self) -> None:
        if not self.index_path.exists():
            return
        try:
            raw = json.loads(self.index_path.read_text(encoding="utf-8"))
            self._snapshots = {
                snapshot_id: Snapshot.model_validate(data)
                for snapshot_id, data in raw.items()
            }
        except (OSError, ValueError, ValidationError) as e:
            raise SnapshotFailureError(
                message=f"Snapshot index {self.index_path} is unreadable: {e}",
                underlying_error=str(e),
            ) from e

    def _save_index(self) -> None:
        payload = {
            snapshot_id: snapshot.model_dump(mode="json")
            for snapshot_id, snapshot in self._snapshots.items()
        }
        tmp = self.index_path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, self.index_path)

    # =========================================================================
    # Create
    # =========================================================================

    def create(
        self,
        paths: list[Path],
        label: str = "",
        tool_call_id: str | None = None,
    ) -> Snapshot:
        snapshot_id = generate_id()
        snapshot_dir = self.base_dir / snapshot_id
        resolved = [Path(p).resolve() for p in paths]

        with self._lock:
            try:
                snapshot_dir.mkdir(parents=True)
                files: list[FileFingerprint] = []
                for path in resolved:
                    files.extend(self._record(path, snapshot_dir))

                snapshot = Snapshot(
                    id=snapshot_id,
                    label=label,
                    tool_call_id=tool_call_id,
                    paths=[str(p) for p in resolved],
                    files=files,
                )
                self._snapshots[snapshot_id] = snapshot
                self._save_index()
            except OSError as e:
                self._snapshots.pop(snapshot_id, None)
                self._discard(snapshot_dir)
                raise SnapshotFailureError(
                    tool_call_id=tool_call_id or "",
                    paths=[str(p) for p in resolved],
                    underlying_error=str(e),
                ) from e

        logger.info(
            "Snapshot %s created (%d files)",
            snapshot_id,
            len(files),
            extra={"snapshot_id": snapshot_id, "tool_call_id": tool_call_id},
        )
        return snapshot

    def _record(self, path: Path, snapshot_dir: Path) -> list[FileFingerprint]:
        if path.is_file():
            return [self._copy_in(path, snapshot_dir)]
        if path.is_dir():
            return [
                self._copy_in(child, snapshot_dir)
                for child in sorted(path.rglob("*"))
                if child.is_file()
            ]
        return [FileFingerprint(path=str(path), exists=False)]

    @staticmethod
    def _copy_in(path: Path, snapshot_dir: Path) -> FileFingerprint:
        content = path.read_bytes()
        digest = _sha256(content)
        target = snapshot_dir / digest
        if not target.exists():
            target.write_bytes(content)
        return FileFingerprint(path=str(path), exists=True, sha256=digest, size=len(content))

    @staticmethod
    def _discard(snapshot_dir: Path) -> None:
        if not snapshot_dir.exists():
            return
        for child in snapshot_dir.iterdir():
            child.unlink(missing_ok=True)
        snapshot_dir.rmdir()

    # =========================================================================
    # Restore / Read / Delete
    # =========================================================================

    def restore(self, snapshot_id: str, paths: list[Path] | None = None) -> list[Path]:
        snapshot = self.get(snapshot_id)
        targets = [Path(p).resolve() for p in paths] if paths else None
        snapshot_dir = self.base_dir / snapshot_id
        restored: list[Path] = []

        with self._lock:
            for fingerprint in snapshot.files:
                original = Path(fingerprint.path)
                if targets is not None and not any(
                    original == t or t in original.parents for t in targets
                ):
                    continue
                try:
                    if fingerprint.exists:
                        content = (snapshot_dir / fingerprint.sha256).read_bytes()
                        original.parent.mkdir(parents=True, exist_ok=True)
                        original.write_bytes(content)
                        restored.append(original)
                    elif original.is_file():
                        original.unlink()
                        restored.append(original)
                except OSError as e:
                    raise SnapshotFailureError(
                        message=f"Failed to restore {original} from snapshot {snapshot_id}: {e}",
                        tool_call_id=snapshot.tool_call_id or "",
                        paths=[str(original)],
                        underlying_error=str(e),
                    ) from e

        logger.info(
            "Snapshot %s restored (%d paths)",
            snapshot_id,
            len(restored),
            extra={"snapshot_id": snapshot_id},
        )
        return restored

    def get(self, snapshot_id: str) -> Snapshot:
        """
        Raises:
            SnapshotNotFoundError: If the snapshot does not exist
        """
        snapshot = self._snapshots.get(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id=snapshot_id)
        return snapshot

    def list(self) -> list[Snapshot]:
        """All snapshots, oldest first."""
        return sorted(self._snapshots.values(), key=lambda s: s.created_at)

    def delete(self, snapshot_id: str) -> None:
        with self._lock:
            if snapshot_id not in self._snapshots:
                raise SnapshotNotFoundError(snapshot_id=snapshot_id)
            del self._snapshots[snapshot_id]
            self._discard(self.base_dir / snapshot_id)
            self._save_index()
