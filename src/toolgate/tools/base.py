"""
Base classes for the tool interface.

This module defines the core abstractions for tools in Toolgate:
- Tool: Abstract base class that all tools must implement
- ToolContext: Runtime context passed to tools during execution
- ToolOutput: Standardized result format from tool execution
- ToolDescriptor: Static facts about a tool the coordinator relies on

Design Principles:
    - Tools are stateless - all state comes from ToolContext
    - Arguments are typed: every tool declares a pydantic Arguments model
      and receives a validated instance of it
    - Tools return ToolOutput - never raise exceptions for expected failures
    - Whether a tool mutates state, and whether it needs a snapshot first,
      is declared on the tool and checked once when the catalog is built
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, ValidationError

from toolgate.errors import ArgumentValidationError
from toolgate.schema import PredictedEffects


class ToolArguments(BaseModel):
    """Base for tool argument models. Unknown arguments are rejected."""

    model_config = ConfigDict(extra="forbid", frozen=True)


@dataclass(frozen=True)
class ToolOutput:
    """
    Standardized output from tool execution.

    Attributes:
        success: Whether the tool executed successfully
        data: The output data from the tool (type varies by tool)
        error: Error message if success is False
        metadata: Additional metadata about the execution
    """

    success: bool
    data: Any = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, data: Any, **metadata: Any) -> "ToolOutput":
        """Create a successful output."""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: str, **metadata: Any) -> "ToolOutput":
        """Create a failed output."""
        return cls(success=False, error=error, metadata=metadata)


@dataclass
class ToolContext:
    """
    Runtime context passed to tools.

    Attributes:
        working_dir: Base directory for relative paths
        tool_call_id: The call being simulated or executed, if any
        command_timeout_seconds: Default timeout for spawned processes
        max_output_bytes: Cap on captured process output
        max_file_size: Largest file a read will return
    """

    working_dir: str = "."
    tool_call_id: str | None = None
    command_timeout_seconds: int = 60
    max_output_bytes: int = 1024 * 1024
    max_file_size: int = 10 * 1024 * 1024

    def resolve(self, path_str: str) -> Path:
        """Resolve a tool path argument against the working directory."""
        path = Path(path_str).expanduser()
        if not path.is_absolute():
            path = Path(self.working_dir) / path
        return path.resolve()


@dataclass(frozen=True)
class ToolDescriptor:
    """
    What the coordinator needs to know about a tool without calling it.

    Attributes:
        name: Catalog name
        description: One-line summary
        mutates: Whether execution changes state outside the process
        requires_snapshot: Whether a checkpoint must exist before execution
        schema: JSON schema of the tool's arguments
    """

    name: str
    description: str
    mutates: bool
    requires_snapshot: bool
    schema: dict[str, Any]


class Tool(ABC):
    """
    Abstract base class for all Toolgate tools.

    Subclasses set ``name``, ``description``, ``Arguments`` and ``mutates``
    and implement ``execute``. Mutating tools should also override
    ``affected_paths`` so the snapshot gate knows what to checkpoint.

    Example:
        class EchoTool(Tool):
            name = "echo"
            description = "Echo a message"

            class Arguments(ToolArguments):
                message: str

            def execute(self, args, context):
                return ToolOutput.ok(args.message)
    """

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    Arguments: ClassVar[type[ToolArguments] | None] = None
    mutates: ClassVar[bool] = False
    snapshot: ClassVar[bool | None] = None

    @property
    def requires_snapshot(self) -> bool:
        """Defaults to ``mutates`` unless the tool says otherwise."""
        return self.mutates if self.snapshot is None else self.snapshot

    def validate_args(self, args: dict[str, Any]) -> ToolArguments:
        """
        Validate raw arguments against the tool's Arguments model.

        Raises:
            ArgumentValidationError: Listing every problem found
        """
        if self.Arguments is None:
            raise ArgumentValidationError(
                tool=self.name, errors=["tool declares no argument model"]
            )
        try:
            return self.Arguments.model_validate(args)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
                for err in e.errors()
            ]
            raise ArgumentValidationError(tool=self.name, errors=errors) from e

    def affected_paths(self, args: ToolArguments, context: ToolContext) -> list[Path]:
        """Paths execution may change. Read-only tools touch nothing."""
        return []

    def simulate(self, args: ToolArguments, context: ToolContext) -> PredictedEffects:
        """
        Predict what execution would do, without doing it.

        The default describes the call; tools override this to be more
        specific. Predictions are advisory.
        """
        verb = "Would modify state" if self.mutates else "Read-only"
        return PredictedEffects(summary=f"{verb}: {self.name}")

    @abstractmethod
    def execute(self, args: ToolArguments, context: ToolContext) -> ToolOutput:
        """
        Perform the action.

        Called only after approval (and a snapshot when required). Expected
        failures are returned as ToolOutput.fail(), not raised.
        """
        ...

    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            description=self.description,
            mutates=self.mutates,
            requires_snapshot=self.requires_snapshot,
            schema=self.Arguments.model_json_schema() if self.Arguments else {},
        )

    def __repr__(self) -> str:
        return f"<Tool: {self.name}>"
