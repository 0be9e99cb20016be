"""
Schema definitions for Toolgate.

This module defines the Pydantic models used throughout Toolgate:
- ToolCall/ToolCallState: A proposed action and its approval lifecycle
- ApprovalToken: Single-use, time-boxed credential for one tool call
- PolicyRule/ArgumentPredicate/PolicyDecision: Declarative policy
- AuditEntry/AuditFilter: Tamper-evident record of every transition
- Snapshot/FileFingerprint: Reversible checkpoints before mutation
- ToolRequest/RequestBatch: YAML request files consumed by the CLI

Design Decisions:
    - Records that are never mutated after creation are frozen
    - ToolCall is mutable but only the coordinator ever holds the original;
      callers receive deep copies
    - Timestamps are timezone-aware UTC
"""

import hashlib
import json
import secrets
from datetime import UTC, datetime
from enum import Enum
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


GENESIS_HASH = "0" * 64


def utc_now() -> datetime:
    """Get the current UTC time."""
    return datetime.now(UTC)


# =============================================================================
# Enums
# =============================================================================


class ToolCallState(str, Enum):
    """Lifecycle state of a tool call."""

    PROPOSED = "proposed"
    DRY_RUN = "dry_run"
    AUTO_APPROVED = "auto_approved"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    EXECUTING = "executing"
    EXECUTED = "executed"
    FAILED = "failed"
    REJECTED = "rejected"
    DENIED = "denied"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    ToolCallState.EXECUTED,
    ToolCallState.FAILED,
    ToolCallState.REJECTED,
    ToolCallState.DENIED,
    ToolCallState.EXPIRED,
})

# Legal edges of the state machine. APPROVED -> APPROVED is re-approval
# after the previous token expired unused.
TRANSITIONS: dict[ToolCallState, frozenset[ToolCallState]] = {
    ToolCallState.PROPOSED: frozenset({ToolCallState.DRY_RUN}),
    ToolCallState.DRY_RUN: frozenset({
        ToolCallState.AUTO_APPROVED,
        ToolCallState.PENDING_APPROVAL,
        ToolCallState.DENIED,
    }),
    ToolCallState.PENDING_APPROVAL: frozenset({
        ToolCallState.APPROVED,
        ToolCallState.REJECTED,
        ToolCallState.EXPIRED,
    }),
    ToolCallState.APPROVED: frozenset({
        ToolCallState.APPROVED,
        ToolCallState.EXECUTING,
        ToolCallState.REJECTED,
        ToolCallState.EXPIRED,
    }),
    ToolCallState.AUTO_APPROVED: frozenset({
        ToolCallState.EXECUTING,
        ToolCallState.EXPIRED,
    }),
    ToolCallState.EXECUTING: frozenset({
        ToolCallState.EXECUTED,
        ToolCallState.FAILED,
    }),
}


def is_legal_transition(source: ToolCallState, target: ToolCallState) -> bool:
    """Check whether the state machine has an edge from source to target."""
    return target in TRANSITIONS.get(source, frozenset())


class Decision(str, Enum):
    """Outcome of a policy evaluation."""

    AUTO_APPROVE = "auto_approve"
    REQUIRE_APPROVAL = "require_approval"
    DENY = "deny"


class ActorKind(str, Enum):
    """Who drove a transition."""

    HUMAN = "human"
    SYSTEM = "system"


class AuditTransition(str, Enum):
    """Name of the event an audit entry records."""

    DRY_RUN = "dry_run"
    AUTO_APPROVED = "auto_approved"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    DENIED = "denied"
    EXPIRED = "expired"
    EXECUTING = "executing"
    EXECUTED = "executed"
    FAILED = "failed"
    PROPOSAL_REJECTED = "proposal_rejected"
    EXECUTION_ATTEMPT_FAILED = "execution_attempt_failed"
    SNAPSHOT_RESTORED = "snapshot_restored"


# =============================================================================
# Actors and Tokens
# =============================================================================


class Actor(BaseModel):
    """Identity of whoever drove a transition."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(..., min_length=1)
    kind: ActorKind = ActorKind.HUMAN

    @classmethod
    def system(cls) -> "Actor":
        """The pipeline itself (auto-approval, expiry, snapshots)."""
        return cls(id="system", kind=ActorKind.SYSTEM)

    @classmethod
    def human(cls, actor_id: str) -> "Actor":
        return cls(id=actor_id, kind=ActorKind.HUMAN)


def generate_token_secret() -> str:
    """Generate an unguessable token identifier."""
    return secrets.token_urlsafe(24)


class ApprovalToken(BaseModel):
    """
    Single-use, time-boxed credential binding one approval to one tool call.

    Attributes:
        id: Unguessable token identifier
        tool_call_id: The only call this token can execute
        issued_at: When the approval was granted
        expires_at: After this instant the token never validates
        actor: Who approved (system for auto-approval)
        consumed: Whether the token has been used
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(default_factory=generate_token_secret)
    tool_call_id: str
    issued_at: datetime
    expires_at: datetime
    actor: Actor
    consumed: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_live(self, now: datetime) -> bool:
        return not self.consumed and not self.is_expired(now)


# =============================================================================
# Policy Models
# =============================================================================


PredicateKind = Literal[
    "equals",
    "one_of",
    "executable",
    "prefix",
    "path_prefix",
    "matches",
    "contains_token",
    "empty",
    "flags_within",
]


class ArgumentPredicate(BaseModel):
    """
    A condition over tool arguments used by a policy rule.

    The values of the arguments named in ``args`` are joined with spaces to
    form the subject (list values are flattened first), so a predicate over
    ``["command", "args"]`` sees the full command line.

    Attributes:
        kind: How the subject is compared against ``values``
        args: Argument names forming the subject
        values: Values, prefixes, patterns or tokens depending on kind
        negate: Invert a successful evaluation
        optional: Hold when every named argument is missing or null
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: PredicateKind
    args: list[str] = Field(..., min_length=1)
    values: list[str] = Field(default_factory=list)
    negate: bool = False
    optional: bool = False

    @field_validator("args", mode="before")
    @classmethod
    def coerce_single_arg(cls, v: Any) -> Any:
        """Allow ``arg: path`` as shorthand for ``args: [path]``."""
        if isinstance(v, str):
            return [v]
        return v


class PolicyRule(BaseModel):
    """
    A declarative match over tool name and arguments.

    Attributes:
        name: Identifier reported in decisions and audit entries
        tool: fnmatch pattern over the tool name (e.g. "git_*", "*")
        when: Predicates that must all hold for the rule to match
        decision: What to do with a matching call
        rank: Explicit specificity; computed when omitted
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1)
    tool: str = Field(..., min_length=1)
    when: list[ArgumentPredicate] = Field(default_factory=list)
    decision: Decision
    rank: int | None = None

    @property
    def specificity(self) -> int:
        """
        Higher means more specific.

        An exact tool name outranks any glob; among globs, fewer wildcard
        characters outrank more. Each predicate narrows the match further.
        """
        if self.rank is not None:
            return self.rank
        wildcards = sum(self.tool.count(ch) for ch in "*?[")
        base = 1000 if wildcards == 0 else max(0, 500 - 100 * wildcards) + len(self.tool)
        return base + 10 * len(self.when)

    def matches_tool(self, tool_name: str) -> bool:
        return fnmatch(tool_name, self.tool)


class PolicyDecision(BaseModel):
    """
    Result of evaluating a tool call against the rule set.

    Attributes:
        decision: auto_approve, require_approval or deny
        reason: Human-readable explanation of the decision
        rule_matched: Which rule caused this decision (None for the default)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    decision: Decision
    reason: str
    rule_matched: str | None = None

    @property
    def denied(self) -> bool:
        return self.decision == Decision.DENY

    @classmethod
    def auto_approve(cls, reason: str, rule: str | None = None) -> "PolicyDecision":
        return cls(decision=Decision.AUTO_APPROVE, reason=reason, rule_matched=rule)

    @classmethod
    def require_approval(cls, reason: str, rule: str | None = None) -> "PolicyDecision":
        return cls(decision=Decision.REQUIRE_APPROVAL, reason=reason, rule_matched=rule)

    @classmethod
    def deny(cls, reason: str, rule: str | None = None) -> "PolicyDecision":
        return cls(decision=Decision.DENY, reason=reason, rule_matched=rule)


# =============================================================================
# Tool Call Models
# =============================================================================


class PredictedEffects(BaseModel):
    """
    Advisory preview of what a tool call would do.

    Predictions are never checked against the real outcome.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    summary: str
    effects: list[str] = Field(default_factory=list)
    advisory: bool = True


class ToolCall(BaseModel):
    """
    A proposed tool invocation and its lifecycle.

    Attributes:
        id: Unique identifier for this call
        tool_name: Catalog name of the tool
        arguments: Validated arguments
        created_at: When the call was proposed
        updated_at: When the state last changed
        state: Current lifecycle state
        prediction: Dry-run preview, if the simulator produced one
        decision: The policy decision
        result: Tool output once executed
        error: Error detail once failed
        snapshot_id: Checkpoint taken before execution
        history: Every state visited, in order
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    id: str
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    state: ToolCallState = ToolCallState.PROPOSED
    prediction: PredictedEffects | None = None
    decision: PolicyDecision | None = None
    result: Any | None = None
    error: str | None = None
    snapshot_id: str | None = None
    history: list[ToolCallState] = Field(
        default_factory=lambda: [ToolCallState.PROPOSED]
    )

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


class ExecutionResult(BaseModel):
    """What ``execute`` returns to the caller."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tool_call_id: str
    state: ToolCallState
    output: Any | None = None
    error: str | None = None
    snapshot_id: str | None = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.state == ToolCallState.EXECUTED


# =============================================================================
# Audit Models
# =============================================================================


class AuditEntry(BaseModel):
    """
    Immutable record of one state transition.

    Attributes:
        sequence: Monotonically increasing position in the log (from 1)
        timestamp: When the entry was appended
        tool_call_id: The call this entry refers to
        tool_name: Tool of that call (for filtering)
        transition: What happened
        from_state / to_state: The edge taken, when the entry is a transition
        actor_id / actor_kind: Who drove it
        result: Short outcome summary
        detail: Free-text explanation (reasons, errors, output preview)
        snapshot_id: Checkpoint referenced by this entry
        prev_hash: entry_hash of the previous entry
        entry_hash: SHA-256 over prev_hash and this entry's content
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    sequence: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=utc_now)
    tool_call_id: str
    tool_name: str = ""
    transition: AuditTransition
    from_state: ToolCallState | None = None
    to_state: ToolCallState | None = None
    actor_id: str = "system"
    actor_kind: ActorKind = ActorKind.SYSTEM
    result: str = "ok"
    detail: str = ""
    snapshot_id: str | None = None
    prev_hash: str = ""
    entry_hash: str = ""

    def content_hash(self, prev_hash: str) -> str:
        """Compute the chained digest of this entry given the previous hash."""
        content = self.model_dump(mode="json", exclude={"prev_hash", "entry_hash"})
        payload = prev_hash + json.dumps(content, sort_keys=True, default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class AuditFilter(BaseModel):
    """Read-only query over the audit log. Unset fields do not filter."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tool_call_id: str | None = None
    tool_name: str | None = None
    result: str | None = None
    transition: AuditTransition | None = None
    since: datetime | None = None
    until: datetime | None = None
    limit: int | None = Field(default=None, gt=0)

    def matches(self, entry: AuditEntry) -> bool:
        """In-memory evaluation, used by backends without a query engine."""
        if self.tool_call_id is not None and entry.tool_call_id != self.tool_call_id:
            return False
        if self.tool_name is not None and entry.tool_name != self.tool_name:
            return False
        if self.result is not None and entry.result != self.result:
            return False
        if self.transition is not None and entry.transition != self.transition:
            return False
        if self.since is not None and entry.timestamp < self.since:
            return False
        if self.until is not None and entry.timestamp > self.until:
            return False
        return True


class ChainVerification(BaseModel):
    """Outcome of recomputing the audit hash chain."""

    valid: bool
    checked: int = 0
    errors: list[str] = Field(default_factory=list)


# =============================================================================
# Snapshot Models
# =============================================================================


class FileFingerprint(BaseModel):
    """
    Content fingerprint of one path at snapshot time.

    A path that did not exist is recorded with ``exists=False`` so restoring
    the snapshot removes whatever the tool created there.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str
    exists: bool = True
    sha256: str | None = None
    size: int = 0


class Snapshot(BaseModel):
    """A reversible checkpoint of the paths a tool call will touch."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    label: str = ""
    tool_call_id: str | None = None
    paths: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    files: list[FileFingerprint] = Field(default_factory=list)


# =============================================================================
# Request Files
# =============================================================================


class ToolRequest(BaseModel):
    """One tool invocation requested by an agent."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tool: str = Field(..., min_length=1)
    args: dict[str, Any] = Field(default_factory=dict)


class RequestBatch(BaseModel):
    """An ordered list of tool requests, as written in a YAML file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: str = "1.0"
    requests: list[ToolRequest] = Field(..., min_length=1)


def load_requests(path: Path | str) -> RequestBatch:
    """
    Load a request batch from a YAML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValidationError: If the YAML doesn't match the schema
    """
    path = Path(path)
    with path.open() as f:
        data = yaml.safe_load(f)

    return RequestBatch.model_validate(data)


def load_requests_from_string(content: str) -> RequestBatch:
    """Load a request batch from a YAML string."""
    data = yaml.safe_load(content)
    return RequestBatch.model_validate(data)
