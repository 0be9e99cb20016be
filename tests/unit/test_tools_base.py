"""
Unit tests for tool base classes and the catalog.

Tests cover:
- ToolOutput creation and methods
- ToolContext path resolution
- Tool argument validation and descriptors
- ToolCatalog operations and startup validation
"""

from pathlib import Path
from typing import ClassVar

import pytest

from toolgate.config import GateConfig
from toolgate.errors import ArgumentValidationError, CatalogError, UnknownToolError
from toolgate.tools import (
    BUILTIN_TOOLS,
    Tool,
    ToolArguments,
    ToolCatalog,
    ToolContext,
    ToolOutput,
    context_for,
    default_catalog,
)


# =============================================================================
# Test Fixtures
# =============================================================================


class EchoTool(Tool):
    """A simple read-only tool for testing."""

    name = "echo"
    description = "Echo a message"

    class Arguments(ToolArguments):
        message: str
        repeat: int = 1

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        return ToolOutput.ok(args.message * args.repeat)


class TouchTool(Tool):
    """A mutating tool with the default snapshot requirement."""

    name = "touch"
    description = "Touch a file"
    mutates = True

    class Arguments(ToolArguments):
        path: str

    def execute(self, args: Arguments, context: ToolContext) -> ToolOutput:
        return ToolOutput.ok(None)


class BadNameTool(EchoTool):
    name = "Bad-Name"


class NoArgumentsTool(Tool):
    name = "no_arguments"
    Arguments: ClassVar = None

    def execute(self, args: ToolArguments, context: ToolContext) -> ToolOutput:
        return ToolOutput.ok(None)


class SnapshotReadOnlyTool(EchoTool):
    name = "snapshot_read_only"
    snapshot = True


# =============================================================================
# ToolOutput Tests
# =============================================================================


class TestToolOutput:
    """Tests for ToolOutput."""

    def test_ok(self) -> None:
        """Test creating a successful output with metadata."""
        output = ToolOutput.ok("data", path="/x")
        assert output.success
        assert output.data == "data"
        assert output.error is None
        assert output.metadata == {"path": "/x"}

    def test_fail(self) -> None:
        """Test creating a failed output."""
        output = ToolOutput.fail("boom", code=2)
        assert not output.success
        assert output.error == "boom"
        assert output.metadata["code"] == 2


class TestToolContext:
    """Tests for ToolContext."""

    def test_resolve_relative(self, temp_dir: Path) -> None:
        """Test that relative paths resolve against the working directory."""
        context = ToolContext(working_dir=str(temp_dir))
        assert context.resolve("a/b.txt") == temp_dir / "a" / "b.txt"

    def test_resolve_absolute(self, temp_dir: Path) -> None:
        context = ToolContext(working_dir="/nowhere")
        assert context.resolve(str(temp_dir)) == temp_dir

    def test_resolve_collapses_dotdot(self, temp_dir: Path) -> None:
        context = ToolContext(working_dir=str(temp_dir / "sub"))
        assert context.resolve("../x") == temp_dir / "x"

    def test_context_for_config(self, gate_config: GateConfig) -> None:
        """Test that a context inherits the configured limits."""
        context = context_for(gate_config, tool_call_id="abc")
        assert context.working_dir == str(gate_config.working_dir)
        assert context.tool_call_id == "abc"
        assert context.max_file_size == gate_config.max_file_size


# =============================================================================
# Tool Tests
# =============================================================================


class TestTool:
    """Tests for the Tool base class."""

    def test_validate_args_returns_model(self) -> None:
        """Test that valid arguments produce a typed instance."""
        args = EchoTool().validate_args({"message": "hi", "repeat": 2})
        assert args.message == "hi"
        assert args.repeat == 2

    def test_validate_args_missing_field(self) -> None:
        """Test that a missing argument is reported by name."""
        with pytest.raises(ArgumentValidationError) as exc_info:
            EchoTool().validate_args({})
        assert exc_info.value.tool == "echo"
        assert any(err.startswith("message:") for err in exc_info.value.errors)

    def test_validate_args_rejects_unknown(self) -> None:
        """Test that unknown arguments are rejected."""
        with pytest.raises(ArgumentValidationError) as exc_info:
            EchoTool().validate_args({"message": "hi", "shout": True})
        assert any("shout" in err for err in exc_info.value.errors)

    def test_validate_args_wrong_type(self) -> None:
        with pytest.raises(ArgumentValidationError):
            EchoTool().validate_args({"message": "hi", "repeat": "many"})

    def test_requires_snapshot_follows_mutates(self) -> None:
        """Test the default snapshot requirement."""
        assert not EchoTool().requires_snapshot
        assert TouchTool().requires_snapshot

    def test_default_simulation(self) -> None:
        context = ToolContext()
        assert EchoTool().simulate(None, context).summary == "Read-only: echo"
        assert TouchTool().simulate(None, context).summary == "Would modify state: touch"

    def test_descriptor(self) -> None:
        """Test that the descriptor carries the argument schema."""
        descriptor = TouchTool().descriptor()
        assert descriptor.name == "touch"
        assert descriptor.mutates
        assert descriptor.requires_snapshot
        assert "path" in descriptor.schema["properties"]

    def test_no_argument_model(self) -> None:
        with pytest.raises(ArgumentValidationError):
            NoArgumentsTool().validate_args({})


# =============================================================================
# ToolCatalog Tests
# =============================================================================


class TestToolCatalog:
    """Tests for ToolCatalog."""

    def test_register_and_get(self) -> None:
        """Test registering and retrieving a tool."""
        catalog = ToolCatalog()
        tool = EchoTool()
        catalog.register(tool)
        assert catalog.get("echo") is tool
        assert catalog.has("echo")
        assert "echo" in catalog
        assert len(catalog) == 1

    def test_get_unknown_raises(self) -> None:
        """Test that looking up an unregistered tool raises."""
        with pytest.raises(UnknownToolError) as exc_info:
            ToolCatalog().get("teleport")
        assert exc_info.value.tool == "teleport"

    def test_get_optional(self) -> None:
        assert ToolCatalog().get_optional("teleport") is None

    def test_register_none_raises(self) -> None:
        with pytest.raises(ValueError):
            ToolCatalog().register(None)  # type: ignore[arg-type]

    def test_unregister(self) -> None:
        catalog = ToolCatalog([EchoTool()])
        assert catalog.unregister("echo")
        assert not catalog.unregister("echo")
        assert not catalog.has("echo")

    def test_list_tools_sorted(self) -> None:
        catalog = ToolCatalog([TouchTool(), EchoTool()])
        assert catalog.list_tools() == ["echo", "touch"]
        assert [d.name for d in catalog.descriptors()] == ["echo", "touch"]

    def test_validate_accepts_well_formed(self) -> None:
        ToolCatalog([EchoTool(), TouchTool()]).validate()

    def test_validate_reports_every_problem(self) -> None:
        """Test that validation lists all malformed declarations at once."""
        catalog = ToolCatalog([BadNameTool(), NoArgumentsTool(), SnapshotReadOnlyTool()])
        with pytest.raises(CatalogError) as exc_info:
            catalog.validate()
        problems = exc_info.value.problems
        assert any("Bad-Name" in p and "snake_case" in p for p in problems)
        assert any("no_arguments" in p and "ToolArguments" in p for p in problems)
        assert any("snapshot_read_only" in p and "read-only" in p for p in problems)


class TestDefaultCatalog:
    """Tests for the built-in catalog."""

    def test_contains_builtin_tools(self) -> None:
        catalog = default_catalog()
        assert len(catalog) == len(BUILTIN_TOOLS)
        for name in (
            "read_file",
            "list_directory",
            "create_file",
            "write_file",
            "delete_file",
            "run_command",
            "git_status",
            "git_log",
            "git_diff",
            "git_commit",
            "git_create_branch",
            "move_file",
            "copy_file",
            "stat",
            "get_system_info",
        ):
            assert catalog.has(name)

    def test_snapshot_declarations(self) -> None:
        """Test which built-in tools are checkpointed before execution."""
        catalog = default_catalog()
        snapshotted = {d.name for d in catalog.descriptors() if d.requires_snapshot}
        assert snapshotted == {
            "create_file",
            "write_file",
            "delete_file",
            "move_file",
            "copy_file",
        }

    def test_read_only_tools(self) -> None:
        catalog = default_catalog()
        read_only = {d.name for d in catalog.descriptors() if not d.mutates}
        assert read_only == {
            "read_file",
            "list_directory",
            "stat",
            "git_status",
            "git_log",
            "git_diff",
            "get_system_info",
        }
