"""
Exception hierarchy for Toolgate.

All Toolgate exceptions inherit from ToolgateError, allowing callers to catch
every pipeline failure with a single except clause.

Exception Categories:
    - UnknownToolError / ArgumentValidationError: Rejected before policy
    - StateConflictError / Token*Error: Approval lifecycle violations
    - PolicyDeniedError: Approve or execute attempted on a denied call
    - SnapshotFailureError / ExecutionFailureError: Execution-time failures
    - StorageError / AuditWriteError: Persistence failures

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (tool, call id, state where applicable)
    - Nothing in the pipeline retries on these errors
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Policy errors: 1xxx
ERROR_POLICY_DENIED = 1001

# Catalog errors: 2xxx
ERROR_UNKNOWN_TOOL = 2001
ERROR_INVALID_ARGUMENTS = 2002
ERROR_CATALOG_INVALID = 2003

# Approval errors: 3xxx
ERROR_CALL_NOT_FOUND = 3001
ERROR_STATE_CONFLICT = 3002
ERROR_TOKEN_INVALID = 3003
ERROR_TOKEN_EXPIRED = 3004
ERROR_TOKEN_CONSUMED = 3005

# Execution errors: 4xxx
ERROR_SNAPSHOT_FAILED = 4001
ERROR_EXECUTION_FAILED = 4002
ERROR_SNAPSHOT_NOT_FOUND = 4003

# Storage errors: 5xxx
ERROR_STORAGE_CONNECTION = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003
ERROR_AUDIT_WRITE = 5004
ERROR_CONFIG_INVALID = 5005


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class ToolgateError(Exception):
    """
    Base exception for all Toolgate errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Catalog Errors
# =============================================================================


@dataclass
class UnknownToolError(ToolgateError):
    """Raised when a tool name has no catalog entry."""

    tool: str = ""
    tool_call_id: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Unknown tool: {self.tool}"
        if self.code == 0:
            self.code = ERROR_UNKNOWN_TOOL
        if not self.suggestion:
            self.suggestion = "Check the tool name or register the tool in the catalog"
        self.context.update({"tool": self.tool, "tool_call_id": self.tool_call_id})


@dataclass
class ArgumentValidationError(ToolgateError):
    """Raised when tool arguments do not match the tool's argument schema."""

    tool: str = ""
    tool_call_id: str = ""
    errors: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Invalid arguments for {self.tool}: {'; '.join(self.errors)}"
        if self.code == 0:
            self.code = ERROR_INVALID_ARGUMENTS
        self.context.update({
            "tool": self.tool,
            "tool_call_id": self.tool_call_id,
            "errors": self.errors,
        })


@dataclass
class CatalogError(ToolgateError):
    """Raised when the tool catalog fails startup validation."""

    problems: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Tool catalog is invalid: {'; '.join(self.problems)}"
        if self.code == 0:
            self.code = ERROR_CATALOG_INVALID
        self.context["problems"] = self.problems


# =============================================================================
# Approval Errors
# =============================================================================


@dataclass
class ApprovalError(ToolgateError):
    """
    Base class for approval lifecycle errors.

    Attributes:
        tool_call_id: The call the operation targeted
    """

    tool_call_id: str = ""

    def __post_init__(self) -> None:
        self.context["tool_call_id"] = self.tool_call_id


@dataclass
class ToolCallNotFoundError(ApprovalError):
    """Raised when no tool call with the given id exists in this session."""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Tool call not found: {self.tool_call_id}"
        if self.code == 0:
            self.code = ERROR_CALL_NOT_FOUND
        super().__post_init__()


@dataclass
class StateConflictError(ApprovalError):
    """Raised when an operation is not legal from the call's current state."""

    operation: str = ""
    state: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = (
                f"Cannot {self.operation} tool call {self.tool_call_id} "
                f"in state {self.state}"
            )
        if self.code == 0:
            self.code = ERROR_STATE_CONFLICT
        super().__post_init__()
        self.context.update({"operation": self.operation, "state": self.state})


@dataclass
class TokenInvalidError(ApprovalError):
    """Raised when a token is unknown or belongs to a different tool call."""

    reason: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Invalid approval token for {self.tool_call_id}: {self.reason}"
        if self.code == 0:
            self.code = ERROR_TOKEN_INVALID
        if not self.suggestion:
            self.suggestion = "Request a fresh approval for this tool call"
        super().__post_init__()
        self.context["reason"] = self.reason


@dataclass
class TokenExpiredError(ApprovalError):
    """Raised when a token is presented after its expiry time."""

    expired_at: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Approval token for {self.tool_call_id} expired at {self.expired_at}"
        if self.code == 0:
            self.code = ERROR_TOKEN_EXPIRED
        if not self.suggestion:
            self.suggestion = "Approve the tool call again to obtain a fresh token"
        super().__post_init__()
        self.context["expired_at"] = self.expired_at


@dataclass
class TokenAlreadyConsumedError(StateConflictError):
    """Raised when a single-use token is presented a second time."""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Approval token for {self.tool_call_id} was already used"
        if self.code == 0:
            self.code = ERROR_TOKEN_CONSUMED
        if not self.operation:
            self.operation = "execute"
        super().__post_init__()


@dataclass
class PolicyDeniedError(StateConflictError):
    """
    Raised when approving or executing a call the policy denied.

    Proposing a denied call does not raise; the call is recorded in the
    terminal denied state. Any later attempt to move it forward raises this.
    """

    tool: str = ""
    reason: str = ""
    rule: str | None = None

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Policy denied {self.tool}: {self.reason}"
        if self.code == 0:
            self.code = ERROR_POLICY_DENIED
        if not self.state:
            self.state = "denied"
        super().__post_init__()
        self.context.update({
            "tool": self.tool,
            "reason": self.reason,
            "rule": self.rule,
        })


# =============================================================================
# Execution Errors
# =============================================================================


@dataclass
class SnapshotFailureError(ToolgateError):
    """Raised when a required checkpoint cannot be created."""

    tool_call_id: str = ""
    paths: list[str] = field(default_factory=list)
    underlying_error: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Snapshot failed for {self.tool_call_id}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_SNAPSHOT_FAILED
        self.context.update({
            "tool_call_id": self.tool_call_id,
            "paths": self.paths,
            "underlying_error": self.underlying_error,
        })


@dataclass
class SnapshotNotFoundError(ToolgateError):
    """Raised when restoring or reading a snapshot that does not exist."""

    snapshot_id: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Snapshot not found: {self.snapshot_id}"
        if self.code == 0:
            self.code = ERROR_SNAPSHOT_NOT_FOUND
        self.context["snapshot_id"] = self.snapshot_id


@dataclass
class ExecutionFailureError(ToolgateError):
    """Raised by an execution gateway when the tool itself failed."""

    tool: str = ""
    tool_call_id: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Tool {self.tool} failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_EXECUTION_FAILED
        self.context.update({
            "tool": self.tool,
            "tool_call_id": self.tool_call_id,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(ToolgateError):
    """
    Base class for storage/database errors.

    Attributes:
        operation: The operation that failed (e.g., "append", "query")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when database connection fails."""

    db_path: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Failed to connect to database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class AuditWriteError(StorageWriteError):
    """
    Raised when an audit entry could not be made durable.

    The transition that produced the entry is aborted: an unaudited
    approval or execution is never acceptable.
    """

    tool_call_id: str = ""
    transition: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = (
                f"Audit append failed for {self.tool_call_id} ({self.transition}): "
                f"{self.underlying_error}"
            )
        if self.code == 0:
            self.code = ERROR_AUDIT_WRITE
        if not self.operation:
            self.operation = "append_audit_entry"
        super().__post_init__()
        self.context.update({
            "tool_call_id": self.tool_call_id,
            "transition": self.transition,
        })


@dataclass
class ConfigError(ToolgateError):
    """Raised when a configuration file cannot be loaded or validated."""

    path: str = ""

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f"Invalid configuration: {self.path}"
        if self.code == 0:
            self.code = ERROR_CONFIG_INVALID
        self.context["path"] = self.path
