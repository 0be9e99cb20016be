"""
Tools module for Toolgate.

This module provides the typed tool interface and built-in tools.

Built-in tools:
    - read_file, list_directory, stat: Read-only filesystem access
    - create_file, write_file, delete_file, move_file, copy_file: Filesystem
      mutation (snapshotted)
    - run_command: Run a program with an argument list
    - git_status, git_log, git_diff: Read-only repository access
    - git_commit, git_create_branch: Repository mutation
    - get_system_info: Host information

Architecture:
    - Tool: Abstract base class with a pydantic Arguments model
    - ToolCatalog: Registry validated once at startup
    - ToolContext: Runtime context passed to tools
    - ToolOutput: Standardized result format from tool execution

Policy enforcement and approval happen BEFORE tool execution, not within
tools.
"""

from typing import TYPE_CHECKING

from toolgate.tools.base import (
    Tool,
    ToolArguments,
    ToolContext,
    ToolDescriptor,
    ToolOutput,
)
from toolgate.tools.fs import (
    FS_TOOLS,
    CopyFileTool,
    CreateFileTool,
    DeleteFileTool,
    ListDirectoryTool,
    MoveFileTool,
    ReadFileTool,
    StatTool,
    WriteFileTool,
)
from toolgate.tools.git import (
    GIT_TOOLS,
    GitCommitTool,
    GitCreateBranchTool,
    GitDiffTool,
    GitLogTool,
    GitStatusTool,
)
from toolgate.tools.registry import ToolCatalog
from toolgate.tools.shell import RunCommandTool
from toolgate.tools.system import SystemInfoTool

if TYPE_CHECKING:
    from toolgate.config import GateConfig

BUILTIN_TOOLS: tuple[type[Tool], ...] = (
    *FS_TOOLS,
    RunCommandTool,
    *GIT_TOOLS,
    SystemInfoTool,
)


def default_catalog() -> ToolCatalog:
    """
    Build and validate a catalog holding every built-in tool.

    Raises:
        CatalogError: If a tool declaration is malformed
    """
    catalog = ToolCatalog([tool_class() for tool_class in BUILTIN_TOOLS])
    catalog.validate()
    return catalog


def context_for(config: "GateConfig", tool_call_id: str | None = None) -> ToolContext:
    """Build the tool context a session's configuration implies."""
    return ToolContext(
        working_dir=str(config.working_dir),
        tool_call_id=tool_call_id,
        command_timeout_seconds=config.command_timeout_seconds,
        max_output_bytes=config.max_output_bytes,
        max_file_size=config.max_file_size,
    )


__all__ = [
    "BUILTIN_TOOLS",
    "CopyFileTool",
    "CreateFileTool",
    "DeleteFileTool",
    "GitCommitTool",
    "GitCreateBranchTool",
    "GitDiffTool",
    "GitLogTool",
    "GitStatusTool",
    "ListDirectoryTool",
    "MoveFileTool",
    "ReadFileTool",
    "RunCommandTool",
    "StatTool",
    "SystemInfoTool",
    "Tool",
    "ToolArguments",
    "ToolCatalog",
    "ToolContext",
    "ToolDescriptor",
    "ToolOutput",
    "WriteFileTool",
    "context_for",
    "default_catalog",
]
