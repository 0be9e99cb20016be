"""
Filesystem tools for Toolgate.

This module provides tools for reading and changing files:
- read_file: Read file contents
- list_directory: List the entries of a directory
- create_file: Create a new file (fails if it exists)
- write_file: Overwrite or append to a file
- delete_file: Delete a single file
- move_file: Move or rename a file
- copy_file: Copy a file
- stat: Report metadata for a path

Security Note:
    Policy enforcement and approval happen BEFORE these tools execute, and
    mutating tools are checkpointed by the snapshot gate first. These tools
    still handle:
    - File not found errors
    - Permission errors
    - Encoding errors
    - Size limit enforcement (as a safety net)
"""

import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator

from toolgate.schema import PredictedEffects
from toolgate.tools.base import Tool, ToolArguments, ToolContext, ToolOutput


class PathArguments(ToolArguments):
    """Arguments naming a single path."""

    path: str = Field(..., min_length=1)

    @field_validator("path")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            msg = "path cannot be empty"
            raise ValueError(msg)
        return v


class ReadFileTool(Tool):
    """
    Read file contents.

    Arguments:
        path (str): Path to the file to read (required)
        encoding (str): Text encoding, default "utf-8"

    Example:
        output = tool.execute(tool.validate_args({"path": "README.md"}), context)
        if output.success:
            content = output.data
    """

    name = "read_file"
    description = "Read file contents from the filesystem"

    class Arguments(PathArguments):
        encoding: str = "utf-8"

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        return PredictedEffects(summary=f"Read {args.path}")

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        path = context.resolve(args.path)

        if not path.exists():
            return ToolOutput.fail(f"File not found: {args.path}", path=str(path))
        if not path.is_file():
            return ToolOutput.fail(f"Not a file: {args.path}", path=str(path))

        size = path.stat().st_size
        if size > context.max_file_size:
            return ToolOutput.fail(
                f"File too large: {size} bytes exceeds limit of {context.max_file_size}",
                path=str(path),
                size=size,
            )

        try:
            content = path.read_text(encoding=args.encoding)
        except PermissionError:
            return ToolOutput.fail(f"Permission denied: {args.path}", path=str(path))
        except UnicodeDecodeError as e:
            return ToolOutput.fail(
                f"Encoding error reading {args.path}: {e}",
                path=str(path),
            )
        except (LookupError, OSError) as e:
            return ToolOutput.fail(f"Error reading {args.path}: {e}", path=str(path))

        return ToolOutput.ok(content, path=str(path), size=size, encoding=args.encoding)


class ListDirectoryTool(Tool):
    """
    List a directory.

    Returns a list of ``{"name", "type", "size"}`` dicts sorted by name, with
    ``type`` one of "file", "directory" or "other".
    """

    name = "list_directory"
    description = "List the entries of a directory"

    class Arguments(ToolArguments):
        path: str = "."
        include_hidden: bool = False

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        return PredictedEffects(summary=f"List {args.path}")

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        path = context.resolve(args.path)

        if not path.exists():
            return ToolOutput.fail(f"Directory not found: {args.path}", path=str(path))
        if not path.is_dir():
            return ToolOutput.fail(f"Not a directory: {args.path}", path=str(path))

        try:
            children = sorted(path.iterdir(), key=lambda p: p.name)
        except PermissionError:
            return ToolOutput.fail(f"Permission denied: {args.path}", path=str(path))
        except OSError as e:
            return ToolOutput.fail(f"Error listing {args.path}: {e}", path=str(path))

        entries = []
        for child in children:
            if not args.include_hidden and child.name.startswith("."):
                continue
            if child.is_dir():
                entries.append({"name": child.name, "type": "directory", "size": 0})
            elif child.is_file():
                entries.append({"name": child.name, "type": "file", "size": child.stat().st_size})
            else:
                entries.append({"name": child.name, "type": "other", "size": 0})

        return ToolOutput.ok(entries, path=str(path), count=len(entries))


class CreateFileTool(Tool):
    """
    Create a new file.

    Arguments:
        path (str): File to create (required, must not exist)
        content (str): Initial content, default empty
        create_dirs (bool): Create missing parent directories, default True
    """

    name = "create_file"
    description = "Create a new file with the given content"
    mutates = True

    class Arguments(PathArguments):
        content: str = ""
        create_dirs: bool = True

    def affected_paths(self, args: Arguments, context: ToolContext) -> list[Path]:
        return [context.resolve(args.path)]

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        path = context.resolve(args.path)
        size = len(args.content.encode("utf-8"))
        if path.exists():
            return PredictedEffects(
                summary=f"Would fail: {args.path} already exists",
                effects=[],
            )
        return PredictedEffects(
            summary=f"Would create {args.path}",
            effects=[f"create {path} ({size} bytes)"],
        )

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        path = context.resolve(args.path)

        if path.exists():
            return ToolOutput.fail(f"File already exists: {args.path}", path=str(path))

        try:
            if args.create_dirs:
                path.parent.mkdir(parents=True, exist_ok=True)
            elif not path.parent.exists():
                return ToolOutput.fail(
                    f"Parent directory does not exist: {path.parent}",
                    path=str(path),
                )
            # "x" refuses to clobber a file created since the check above
            with path.open("x", encoding="utf-8") as f:
                f.write(args.content)
        except FileExistsError:
            return ToolOutput.fail(f"File already exists: {args.path}", path=str(path))
        except PermissionError:
            return ToolOutput.fail(f"Permission denied: {args.path}", path=str(path))
        except OSError as e:
            return ToolOutput.fail(f"Error creating {args.path}: {e}", path=str(path))

        size = len(args.content.encode("utf-8"))
        return ToolOutput.ok(size, path=str(path), created=True)


class WriteFileTool(Tool):
    """
    Write content to a file.

    Arguments:
        path (str): Path to the file to write (required)
        content (str): Content to write (required)
        mode (str): "overwrite" (default) or "append"
        create_dirs (bool): Create parent directories if needed, default False

    Returns:
        On success: Number of bytes written
    """

    name = "write_file"
    description = "Write content to a file on the filesystem"
    mutates = True

    class Arguments(PathArguments):
        content: str
        mode: Literal["overwrite", "append"] = "overwrite"
        create_dirs: bool = False

    def affected_paths(self, args: Arguments, context: ToolContext) -> list[Path]:
        return [context.resolve(args.path)]

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        path = context.resolve(args.path)
        size = len(args.content.encode("utf-8"))
        if not path.exists():
            return PredictedEffects(
                summary=f"Would create {args.path}",
                effects=[f"create {path} ({size} bytes)"],
            )
        verb = "append to" if args.mode == "append" else "overwrite"
        return PredictedEffects(
            summary=f"Would {verb} {args.path}",
            effects=[f"{verb} {path} (was {path.stat().st_size} bytes, writing {size})"],
        )

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        path = context.resolve(args.path)

        if args.create_dirs:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                return ToolOutput.fail(f"Failed to create directories: {e}")

        if not path.parent.exists():
            return ToolOutput.fail(
                f"Parent directory does not exist: {path.parent}",
                path=str(path),
            )
        if path.exists() and not path.is_file():
            return ToolOutput.fail(f"Not a file: {args.path}", path=str(path))

        try:
            file_mode = "a" if args.mode == "append" else "w"
            with path.open(file_mode, encoding="utf-8") as f:
                f.write(args.content)
        except PermissionError:
            return ToolOutput.fail(f"Permission denied: {args.path}", path=str(path))
        except OSError as e:
            return ToolOutput.fail(f"Error writing {args.path}: {e}", path=str(path))

        bytes_written = len(args.content.encode("utf-8"))
        return ToolOutput.ok(bytes_written, path=str(path), mode=args.mode)


class DeleteFileTool(Tool):
    """
    Delete a single file.

    Directories are refused; removing trees is not something a single
    approval should be able to do.
    """

    name = "delete_file"
    description = "Delete a file from the filesystem"
    mutates = True

    class Arguments(PathArguments):
        pass

    def affected_paths(self, args: Arguments, context: ToolContext) -> list[Path]:
        return [context.resolve(args.path)]

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        path = context.resolve(args.path)
        if not path.is_file():
            return PredictedEffects(summary=f"Would fail: {args.path} is not a file")
        return PredictedEffects(
            summary=f"Would delete {args.path}",
            effects=[f"delete {path} ({path.stat().st_size} bytes)"],
        )

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        path = context.resolve(args.path)

        if not path.exists():
            return ToolOutput.fail(f"File not found: {args.path}", path=str(path))
        if not path.is_file():
            return ToolOutput.fail(f"Not a file: {args.path}", path=str(path))

        try:
            path.unlink()
        except PermissionError:
            return ToolOutput.fail(f"Permission denied: {args.path}", path=str(path))
        except OSError as e:
            return ToolOutput.fail(f"Error deleting {args.path}: {e}", path=str(path))

        return ToolOutput.ok(str(path), path=str(path), deleted=True)


class TransferArguments(PathArguments):
    """Arguments naming a source path and a destination."""

    destination: str = Field(..., min_length=1)
    overwrite: bool = False


def _check_transfer(args: TransferArguments, context: ToolContext) -> ToolOutput | None:
    """Shared preconditions for move and copy; None when the transfer may go ahead."""
    source = context.resolve(args.path)
    destination = context.resolve(args.destination)

    if not source.exists():
        return ToolOutput.fail(f"File not found: {args.path}", path=str(source))
    if not source.is_file():
        return ToolOutput.fail(f"Not a file: {args.path}", path=str(source))
    if source == destination:
        return ToolOutput.fail(f"Source and destination are the same: {args.path}")
    if destination.exists() and not args.overwrite:
        return ToolOutput.fail(
            f"Destination already exists: {args.destination}",
            destination=str(destination),
        )
    if destination.exists() and not destination.is_file():
        return ToolOutput.fail(f"Not a file: {args.destination}", destination=str(destination))
    if not destination.parent.exists():
        return ToolOutput.fail(
            f"Parent directory does not exist: {destination.parent}",
            destination=str(destination),
        )
    return None


class MoveFileTool(Tool):
    """
    Move (rename) a single file.

    Arguments:
        path (str): File to move (required)
        destination (str): New location (required)
        overwrite (bool): Replace an existing destination file, default False

    Both the source and the destination are checkpointed, so a restore puts
    the file back and removes the moved copy.
    """

    name = "move_file"
    description = "Move or rename a file"
    mutates = True

    class Arguments(TransferArguments):
        pass

    def affected_paths(self, args: Arguments, context: ToolContext) -> list[Path]:
        return [context.resolve(args.path), context.resolve(args.destination)]

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        source = context.resolve(args.path)
        destination = context.resolve(args.destination)
        if not source.is_file():
            return PredictedEffects(summary=f"Would fail: {args.path} is not a file")
        effects = [f"move {source} -> {destination}"]
        if destination.exists():
            effects.append(f"replace {destination}" if args.overwrite else "fail: destination exists")
        return PredictedEffects(summary=f"Would move {args.path} to {args.destination}", effects=effects)

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        refused = _check_transfer(args, context)
        if refused is not None:
            return refused

        source = context.resolve(args.path)
        destination = context.resolve(args.destination)
        try:
            shutil.move(str(source), str(destination))
        except PermissionError:
            return ToolOutput.fail(f"Permission denied: {args.path}", path=str(source))
        except OSError as e:
            return ToolOutput.fail(f"Error moving {args.path}: {e}", path=str(source))

        return ToolOutput.ok(str(destination), path=str(source), destination=str(destination))


class CopyFileTool(Tool):
    """
    Copy a single file, preserving its metadata.

    Only the destination is checkpointed; the source is left untouched.
    """

    name = "copy_file"
    description = "Copy a file to a new location"
    mutates = True

    class Arguments(TransferArguments):
        pass

    def affected_paths(self, args: Arguments, context: ToolContext) -> list[Path]:
        return [context.resolve(args.destination)]

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        source = context.resolve(args.path)
        destination = context.resolve(args.destination)
        if not source.is_file():
            return PredictedEffects(summary=f"Would fail: {args.path} is not a file")
        verb = "overwrite" if destination.exists() else "create"
        return PredictedEffects(
            summary=f"Would copy {args.path} to {args.destination}",
            effects=[f"{verb} {destination} ({source.stat().st_size} bytes)"],
        )

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        refused = _check_transfer(args, context)
        if refused is not None:
            return refused

        source = context.resolve(args.path)
        destination = context.resolve(args.destination)
        try:
            shutil.copy2(source, destination)
        except PermissionError:
            return ToolOutput.fail(f"Permission denied: {args.destination}", path=str(source))
        except OSError as e:
            return ToolOutput.fail(f"Error copying {args.path}: {e}", path=str(source))

        size = destination.stat().st_size
        return ToolOutput.ok(size, path=str(source), destination=str(destination))


def _timestamp(seconds: float) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()


class StatTool(Tool):
    """
    Report metadata for a path.

    Returns a dict with is_file, is_dir, size, modified_at and created_at
    (ISO 8601, UTC). Where the platform has no birth time, created_at is the
    inode change time.
    """

    name = "stat"
    description = "Get metadata for a file or directory"

    class Arguments(PathArguments):
        pass

    def simulate(self, args: Arguments, context: ToolContext) -> PredictedEffects:
        return PredictedEffects(summary=f"Stat {args.path}")

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        path = context.resolve(args.path)
        try:
            info = path.stat()
        except FileNotFoundError:
            return ToolOutput.fail(f"Path not found: {args.path}", path=str(path))
        except PermissionError:
            return ToolOutput.fail(f"Permission denied: {args.path}", path=str(path))
        except OSError as e:
            return ToolOutput.fail(f"Error reading metadata of {args.path}: {e}", path=str(path))

        created = getattr(info, "st_birthtime", info.st_ctime)
        return ToolOutput.ok(
            {
                "is_file": path.is_file(),
                "is_dir": path.is_dir(),
                "size": info.st_size,
                "modified_at": _timestamp(info.st_mtime),
                "created_at": _timestamp(created),
            },
            path=str(path),
        )


FS_TOOLS: tuple[type[Tool], ...] = (
    ReadFileTool,
    ListDirectoryTool,
    CreateFileTool,
    WriteFileTool,
    DeleteFileTool,
    MoveFileTool,
    CopyFileTool,
    StatTool,
)
