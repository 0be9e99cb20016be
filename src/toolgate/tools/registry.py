"""
Tool catalog for Toolgate.

The catalog maps tool names to tool instances. It is validated once at
startup so that a tool with a malformed declaration can never reach the
approval pipeline.

Usage:
    catalog = ToolCatalog()
    catalog.register(ReadFileTool())
    catalog.validate()

    tool = catalog.get("read_file")
"""

import re
from typing import Iterator

from toolgate.errors import CatalogError, UnknownToolError
from toolgate.tools.base import Tool, ToolArguments, ToolDescriptor

TOOL_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


class ToolCatalog:
    """
    Registry for looking up tools by name.

    Attributes:
        _tools: Internal mapping of tool names to tool instances
    """

    def __init__(self, tools: list[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """
        Register a tool.

        Re-registering a name replaces the previous tool.

        Raises:
            ValueError: If tool is None or has an empty name
        """
        if tool is None:
            msg = "Cannot register None as a tool"
            raise ValueError(msg)
        if not tool.name:
            msg = "Tool must have a non-empty name"
            raise ValueError(msg)
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool:
        """
        Look up a tool by name.

        Raises:
            UnknownToolError: If no tool with that name is registered
        """
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(tool=name)
        return tool

    def get_optional(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def unregister(self, name: str) -> bool:
        """Remove a tool. Returns False if it wasn't registered."""
        return self._tools.pop(name, None) is not None

    def list_tools(self) -> list[str]:
        """Registered tool names in sorted order."""
        return sorted(self._tools)

    def descriptor(self, name: str) -> ToolDescriptor:
        return self.get(name).descriptor()

    def descriptors(self) -> list[ToolDescriptor]:
        return [self._tools[name].descriptor() for name in self.list_tools()]

    def validate(self) -> None:
        """
        Check every registered tool's declaration.

        Raises:
            CatalogError: Listing all problems found
        """
        problems: list[str] = []
        for key, tool in sorted(self._tools.items()):
            if not TOOL_NAME_PATTERN.match(key):
                problems.append(f"{key}: name must be lowercase snake_case")
            arguments = tool.Arguments
            if not (isinstance(arguments, type) and issubclass(arguments, ToolArguments)):
                problems.append(f"{key}: Arguments must subclass ToolArguments")
            if tool.requires_snapshot and not tool.mutates:
                problems.append(f"{key}: requires_snapshot set on a read-only tool")
        if problems:
            raise CatalogError(problems=problems)

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __repr__(self) -> str:
        return f"<ToolCatalog: [{', '.join(self.list_tools())}]>"
