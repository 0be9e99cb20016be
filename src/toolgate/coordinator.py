"""
Approval Coordinator for Toolgate.

The coordinator owns the lifecycle of every tool call in a session. It
coordinates between:
- Tool Catalog: Validates the call's shape before anything else
- Dry-run simulator: Produces an advisory preview
- Policy Engine: Decides auto-approve, require approval or deny
- Snapshot Gate: Checkpoints before mutating execution
- Execution Gateway: Runs the tool
- Audit Log: Records every transition

Lifecycle:
    1. propose: catalog check -> proposed -> dry_run -> policy decision
         deny              -> denied (terminal)
         auto_approve      -> auto_approved (executed at once if enabled)
         require_approval  -> pending_approval
    2. approve: pending_approval -> approved, issues a single-use token
    3. execute: token checked -> executing -> snapshot -> tool
         -> executed | failed
    4. reject: pending_approval | approved -> rejected

Design Principles:
    - Fail-closed: no rule match means human review; a missing snapshot
      means no execution
    - Full audit: every transition is durable before it takes effect
    - Per-call locking: one transition in flight per call, calls in parallel
    - Nothing retries: a failed call needs a brand-new proposal
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

from toolgate.audit.log import AuditLog
from toolgate.config import GateConfig
from toolgate.errors import (
    ArgumentValidationError,
    PolicyDeniedError,
    SnapshotFailureError,
    StateConflictError,
    TokenAlreadyConsumedError,
    TokenExpiredError,
    TokenInvalidError,
    ToolCallNotFoundError,
    ToolgateError,
    UnknownToolError,
)
from toolgate.execution import (
    CatalogDryRunSimulator,
    CatalogExecutionGateway,
    DryRunSimulator,
    ExecutionGateway,
)
from toolgate.logging import get_logger
from toolgate.policy.engine import PolicyEngine
from toolgate.schema import (
    Actor,
    ActorKind,
    ApprovalToken,
    AuditEntry,
    AuditFilter,
    AuditTransition,
    Decision,
    ExecutionResult,
    PredictedEffects,
    ToolCall,
    ToolCallState,
    is_legal_transition,
    utc_now,
)
from toolgate.snapshot.gate import SnapshotGate
from toolgate.store.db import generate_id
from toolgate.tools.base import ToolContext, ToolOutput
from toolgate.tools.registry import ToolCatalog

logger = get_logger(__name__)

EXECUTABLE_STATES = frozenset({ToolCallState.APPROVED, ToolCallState.AUTO_APPROVED})
REJECTABLE_STATES = frozenset({ToolCallState.PENDING_APPROVAL, ToolCallState.APPROVED})
DETAIL_PREVIEW_CHARS = 200


def _preview(value: Any) -> str:
    text = "" if value is None else str(value)
    if len(text) > DETAIL_PREVIEW_CHARS:
        return text[:DETAIL_PREVIEW_CHARS] + "..."
    return text


# =============================================================================
# Session State
# =============================================================================


@dataclass
class CallRecord:
    """
    Everything the coordinator tracks for one tool call.

    Attributes:
        call: The call itself (never handed out, only copies are)
        token: The current approval token, consumed or not
        pending_since: When the call entered pending_approval
        lock: Serializes transitions of this call
    """

    call: ToolCall
    token: ApprovalToken | None = None
    pending_since: datetime | None = None
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


class ApprovalState:
    """
    Session-scoped registry of call records and issued tokens.

    Tokens stay indexed after they are superseded or consumed so that a
    stale token is recognized (and refused) rather than reported unknown.
    """

    def __init__(self) -> None:
        self._records: dict[str, CallRecord] = {}
        self._tokens: dict[str, ApprovalToken] = {}
        self._lock = threading.Lock()

    def add(self, record: CallRecord) -> None:
        with self._lock:
            self._records[record.call.id] = record

    def get(self, tool_call_id: str) -> CallRecord:
        """
        Raises:
            ToolCallNotFoundError: If the id is unknown in this session
        """
        with self._lock:
            record = self._records.get(tool_call_id)
        if record is None:
            raise ToolCallNotFoundError(tool_call_id=tool_call_id)
        return record

    def records(self) -> list[CallRecord]:
        with self._lock:
            return list(self._records.values())

    def remember_token(self, token: ApprovalToken) -> None:
        with self._lock:
            self._tokens[token.id] = token

    def find_token(self, token_id: str) -> ApprovalToken | None:
        with self._lock:
            return self._tokens.get(token_id)

    def __len__(self) -> int:
        return len(self._records)


# =============================================================================
# Coordinator
# =============================================================================


class ApprovalCoordinator:
    """
    Drives tool calls from proposal to a terminal state.

    Usage:
        coordinator = ApprovalCoordinator(catalog, policy, audit, snapshot_gate=gate)
        call_id = coordinator.propose("create_file", {"path": "notes.txt"})
        token = coordinator.approve(call_id, "alice")
        result = coordinator.execute(call_id, token)

    Attributes:
        catalog: Tool catalog consulted before anything else
        policy: Policy engine deciding each call
        audit: Durable audit log
        snapshot_gate: Checkpointing before mutating calls (None fails them closed)
        config: Token lifetime, timeouts and auto-execution
    """

    def __init__(
        self,
        catalog: ToolCatalog,
        policy: PolicyEngine,
        audit: AuditLog,
        snapshot_gate: SnapshotGate | None = None,
        simulator: DryRunSimulator | None = None,
        gateway: ExecutionGateway | None = None,
        config: GateConfig | None = None,
        context: ToolContext | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.catalog = catalog
        self.policy = policy
        self.audit = audit
        self.snapshot_gate = snapshot_gate
        self.config = config or GateConfig()
        self.context = context or ToolContext(working_dir=str(self.config.working_dir))
        self.simulator = simulator or CatalogDryRunSimulator(catalog, self.context)
        self.gateway = gateway or CatalogExecutionGateway(catalog, self.context)
        self.state = ApprovalState()
        self._clock = clock

    @property
    def token_ttl(self) -> timedelta:
        return timedelta(seconds=self.config.token_ttl_seconds)

    # =========================================================================
    # Propose
    # =========================================================================

    def propose(self, tool_name: str, arguments: dict[str, Any] | None = None) -> str:
        """
        Submit a tool call for approval.

        Returns:
            The new call's id

        Raises:
            UnknownToolError: If the tool has no catalog entry
            ArgumentValidationError: If the arguments do not fit the tool
            AuditWriteError: If a transition could not be recorded
        """
        arguments = arguments or {}
        call_id = generate_id()

        try:
            tool = self.catalog.get(tool_name)
            validated = tool.validate_args(arguments)
        except UnknownToolError as e:
            self._reject_proposal(call_id, tool_name, "unknown_tool", e.message)
            raise UnknownToolError(tool=tool_name, tool_call_id=call_id) from e
        except ArgumentValidationError as e:
            self._reject_proposal(call_id, tool_name, "validation_error", e.message)
            raise ArgumentValidationError(
                tool=tool_name, tool_call_id=call_id, errors=e.errors
            ) from e

        now = self._clock()
        call = ToolCall(
            id=call_id,
            tool_name=tool_name,
            arguments=validated.model_dump(mode="json", exclude_none=True),
            created_at=now,
            updated_at=now,
        )
        record = CallRecord(call=call)
        self.state.add(record)
        logger.info(
            "Proposed %s",
            tool_name,
            extra={"tool_call_id": call_id, "tool_name": tool_name},
        )

        with record.lock:
            prediction = self._simulate(call)
            call.prediction = prediction
            self._transition(
                record,
                ToolCallState.DRY_RUN,
                AuditTransition.DRY_RUN,
                detail=prediction.summary,
            )

            decision = self.policy.evaluate(tool_name, call.arguments)
            call.decision = decision

            if decision.decision == Decision.DENY:
                self._transition(
                    record,
                    ToolCallState.DENIED,
                    AuditTransition.DENIED,
                    result="denied",
                    detail=decision.reason,
                )
                logger.warning(
                    "Denied %s: %s",
                    tool_name,
                    decision.reason,
                    extra={"tool_call_id": call_id, "rule": decision.rule_matched},
                )
                return call_id

            if decision.decision == Decision.REQUIRE_APPROVAL:
                self._transition(
                    record,
                    ToolCallState.PENDING_APPROVAL,
                    AuditTransition.PENDING_APPROVAL,
                    result="pending",
                    detail=decision.reason,
                )
                record.pending_since = self._clock()
                return call_id

            token = self._issue_token(call_id, Actor.system())
            self._transition(
                record,
                ToolCallState.AUTO_APPROVED,
                AuditTransition.AUTO_APPROVED,
                detail=decision.reason,
            )
            self._install_token(record, token)

        if self.config.auto_execute:
            self.execute(call_id)
        return call_id

    def _reject_proposal(self, call_id: str, tool_name: str, result: str, detail: str) -> None:
        self.audit.append(
            AuditEntry(
                tool_call_id=call_id,
                tool_name=tool_name,
                transition=AuditTransition.PROPOSAL_REJECTED,
                result=result,
                detail=detail,
            )
        )
        logger.warning(
            "Rejected proposal for %s: %s",
            tool_name,
            detail,
            extra={"tool_call_id": call_id, "tool_name": tool_name},
        )

    def _simulate(self, call: ToolCall) -> PredictedEffects:
        try:
            return self.simulator.simulate(call.tool_name, call.arguments)
        except Exception as e:
            # Predictions are advisory; a broken simulator never blocks a call
            logger.warning(
                "Dry run failed for %s: %s",
                call.tool_name,
                e,
                extra={"tool_call_id": call.id},
            )
            return PredictedEffects(summary="")

    # =========================================================================
    # Approve / Reject
    # =========================================================================

    def approve(self, tool_call_id: str, actor_id: str) -> ApprovalToken:
        """
        Approve a pending call and issue its execution token.

        An approved call whose token expired unused can be approved again;
        the fresh token replaces the old one.

        Raises:
            ToolCallNotFoundError: If the id is unknown
            StateConflictError: If the call is not awaiting approval
            PolicyDeniedError: If the policy denied the call
        """
        record = self.state.get(tool_call_id)
        with record.lock:
            call = record.call
            now = self._clock()
            reapproval = (
                call.state == ToolCallState.APPROVED
                and record.token is not None
                and not record.token.consumed
                and record.token.is_expired(now)
            )
            if call.state == ToolCallState.DENIED:
                raise self._denied(call, "approve")
            if call.state != ToolCallState.PENDING_APPROVAL and not reapproval:
                raise StateConflictError(
                    tool_call_id=tool_call_id,
                    operation="approve",
                    state=call.state.value,
                )

            actor = Actor.human(actor_id)
            token = self._issue_token(tool_call_id, actor)
            self._transition(
                record,
                ToolCallState.APPROVED,
                AuditTransition.APPROVED,
                actor=actor,
                detail=(
                    f"{'Re-approved' if reapproval else 'Approved'} by {actor_id}; "
                    f"token expires at {token.expires_at.isoformat()}"
                ),
            )
            self._install_token(record, token)
            return token

    def reject(self, tool_call_id: str, actor_id: str, reason: str = "") -> None:
        """
        Reject a call that has not started executing.

        Raises:
            ToolCallNotFoundError: If the id is unknown
            StateConflictError: If the call is executing or already terminal
        """
        record = self.state.get(tool_call_id)
        with record.lock:
            call = record.call
            if call.state not in REJECTABLE_STATES:
                raise StateConflictError(
                    tool_call_id=tool_call_id,
                    operation="reject",
                    state=call.state.value,
                )
            self._transition(
                record,
                ToolCallState.REJECTED,
                AuditTransition.REJECTED,
                actor=Actor.human(actor_id),
                result="rejected",
                detail=reason or f"Rejected by {actor_id}",
            )

    def _issue_token(self, tool_call_id: str, actor: Actor) -> ApprovalToken:
        now = self._clock()
        return ApprovalToken(
            tool_call_id=tool_call_id,
            issued_at=now,
            expires_at=now + self.token_ttl,
            actor=actor,
        )

    def _install_token(self, record: CallRecord, token: ApprovalToken) -> None:
        record.token = token
        self.state.remember_token(token)

    # =========================================================================
    # Execute
    # =========================================================================

    def execute(
        self,
        tool_call_id: str,
        token: ApprovalToken | str | None = None,
    ) -> ExecutionResult:
        """
        Run an approved call.

        ``token`` may be the ApprovalToken or its id. It may be omitted only
        for auto-approved calls.

        Returns:
            ExecutionResult in state executed or failed

        Raises:
            ToolCallNotFoundError: If the id is unknown
            TokenInvalidError: If the token is unknown or not this call's
            TokenAlreadyConsumedError: If the token was used before
            StateConflictError: If the call is not approved
            PolicyDeniedError: If the policy denied the call
            TokenExpiredError: If the token expired
            AuditWriteError: If a transition could not be recorded
        """
        record = self.state.get(tool_call_id)

        with record.lock:
            call = record.call
            try:
                current = self._check_token(record, token)
            except (TokenInvalidError, TokenExpiredError, StateConflictError) as e:
                self._record_refused_attempt(record, e)
                raise

            consumed = current.model_copy(update={"consumed": True})
            self._transition(
                record,
                ToolCallState.EXECUTING,
                AuditTransition.EXECUTING,
                actor=current.actor,
                detail=f"Token issued by {current.actor.id} consumed",
            )
            self._install_token(record, consumed)
            tool_name = call.tool_name
            arguments = dict(call.arguments)
            snapshot_target = call.model_copy(deep=True)

        # The tool runs outside the lock; concurrent reject/execute observe
        # the executing state and fail with StateConflictError.
        try:
            snapshot_id = self._checkpoint(snapshot_target)
        except SnapshotFailureError as e:
            return self._finish(record, ToolOutput.fail(e.message), None, 0.0, "snapshot_failure")

        start = time.perf_counter()
        try:
            output = self.gateway.execute(tool_name, arguments)
        except Exception as e:
            logger.warning(
                "Execution of %s raised %s",
                tool_name,
                type(e).__name__,
                exc_info=True,
                extra={"tool_call_id": tool_call_id},
            )
            message = e.message if isinstance(e, ToolgateError) else str(e)
            output = ToolOutput.fail(message or type(e).__name__, error_type=type(e).__name__)
        duration_ms = (time.perf_counter() - start) * 1000

        return self._finish(record, output, snapshot_id, duration_ms, "error")

    def _check_token(
        self,
        record: CallRecord,
        presented: ApprovalToken | str | None,
    ) -> ApprovalToken:
        """Validate a presented token; returns the authoritative current token."""
        call = record.call
        current = record.token

        if presented is None:
            system_token = current is not None and current.actor.kind == ActorKind.SYSTEM
            if not system_token:
                if call.state == ToolCallState.APPROVED:
                    raise TokenInvalidError(
                        tool_call_id=call.id, reason="an approval token is required"
                    )
                if call.state == ToolCallState.DENIED:
                    raise self._denied(call, "execute")
                raise StateConflictError(
                    tool_call_id=call.id, operation="execute", state=call.state.value
                )
            token_id = current.id
        else:
            token_id = presented.id if isinstance(presented, ApprovalToken) else presented

        known = self.state.find_token(token_id)
        if known is None or known.tool_call_id != call.id:
            raise TokenInvalidError(
                tool_call_id=call.id, reason="token was not issued for this tool call"
            )
        if current is None or current.id != token_id:
            raise TokenInvalidError(
                tool_call_id=call.id, reason="token was superseded by a newer approval"
            )
        if current.consumed:
            raise TokenAlreadyConsumedError(tool_call_id=call.id, state=call.state.value)
        if call.state not in EXECUTABLE_STATES:
            raise StateConflictError(
                tool_call_id=call.id, operation="execute", state=call.state.value
            )
        if current.is_expired(self._clock()):
            raise TokenExpiredError(
                tool_call_id=call.id, expired_at=current.expires_at.isoformat()
            )
        return current

    @staticmethod
    def _denied(call: ToolCall, operation: str) -> PolicyDeniedError:
        decision = call.decision
        return PolicyDeniedError(
            tool_call_id=call.id,
            operation=operation,
            tool=call.tool_name,
            reason=decision.reason if decision else "denied",
            rule=decision.rule_matched if decision else None,
        )

    def _record_refused_attempt(self, record: CallRecord, error: ToolgateError) -> None:
        if isinstance(error, PolicyDeniedError):
            result = "policy_denied"
        elif isinstance(error, TokenAlreadyConsumedError):
            result = "token_consumed"
        elif isinstance(error, TokenExpiredError):
            result = "token_expired"
        elif isinstance(error, TokenInvalidError):
            result = "token_invalid"
        else:
            result = "state_conflict"

        call = record.call
        self.audit.append(
            AuditEntry(
                tool_call_id=call.id,
                tool_name=call.tool_name,
                transition=AuditTransition.EXECUTION_ATTEMPT_FAILED,
                from_state=call.state,
                result=result,
                detail=error.message,
            )
        )
        logger.warning(
            "Refused execution: %s",
            error.message,
            extra={"tool_call_id": call.id, "state": call.state.value},
        )

    def _checkpoint(self, call: ToolCall) -> str | None:
        descriptor = self.catalog.descriptor(call.tool_name)
        if not descriptor.requires_snapshot:
            return None
        if self.snapshot_gate is None:
            raise SnapshotFailureError(
                tool_call_id=call.id,
                underlying_error="no snapshot service configured",
            )
        try:
            tool = self.catalog.get(call.tool_name)
            paths = tool.affected_paths(tool.validate_args(call.arguments), self.context)
        except ToolgateError as e:
            raise SnapshotFailureError(
                tool_call_id=call.id,
                underlying_error=f"cannot determine affected paths: {e.message}",
            ) from e
        return self.snapshot_gate.before_execute(call, descriptor, paths)

    def _finish(
        self,
        record: CallRecord,
        output: ToolOutput,
        snapshot_id: str | None,
        duration_ms: float,
        failure_result: str,
    ) -> ExecutionResult:
        with record.lock:
            call = record.call
            if output.success:
                self._transition(
                    record,
                    ToolCallState.EXECUTED,
                    AuditTransition.EXECUTED,
                    detail=_preview(output.data),
                    snapshot_id=snapshot_id,
                )
                call.result = output.data
            else:
                self._transition(
                    record,
                    ToolCallState.FAILED,
                    AuditTransition.FAILED,
                    result=failure_result,
                    detail=output.error or "",
                    snapshot_id=snapshot_id,
                )
                call.result = output.data
                call.error = output.error
            call.snapshot_id = snapshot_id

            return ExecutionResult(
                tool_call_id=call.id,
                state=call.state,
                output=output.data,
                error=output.error,
                snapshot_id=snapshot_id,
                duration_ms=duration_ms,
            )

    # =========================================================================
    # Expiry
    # =========================================================================

    def sweep_expired(self) -> list[str]:
        """
        Move stale calls to expired.

        Token expiry is enforced at execute regardless; this only keeps
        pending lists tidy. Returns the ids that were expired.
        """
        expired: list[str] = []
        timeout = self.config.pending_timeout_seconds

        for record in self.state.records():
            with record.lock:
                call = record.call
                now = self._clock()
                if call.state == ToolCallState.PENDING_APPROVAL:
                    if timeout is None or record.pending_since is None:
                        continue
                    if now - record.pending_since < timedelta(seconds=timeout):
                        continue
                    detail = f"No decision within {timeout} seconds"
                elif call.state in EXECUTABLE_STATES:
                    token = record.token
                    if token is None or token.consumed or not token.is_expired(now):
                        continue
                    detail = f"Approval token expired at {token.expires_at.isoformat()}"
                else:
                    continue

                self._transition(
                    record,
                    ToolCallState.EXPIRED,
                    AuditTransition.EXPIRED,
                    result="expired",
                    detail=detail,
                )
                expired.append(call.id)

        return expired

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, tool_call_id: str) -> ToolCall:
        """A copy of the call; changing it has no effect on the coordinator."""
        record = self.state.get(tool_call_id)
        with record.lock:
            return record.call.model_copy(deep=True)

    def list_calls(self) -> list[ToolCall]:
        calls = []
        for record in self.state.records():
            with record.lock:
                calls.append(record.call.model_copy(deep=True))
        return sorted(calls, key=lambda c: c.created_at)

    def list_pending_approvals(self) -> list[ToolCall]:
        return [c for c in self.list_calls() if c.state == ToolCallState.PENDING_APPROVAL]

    def get_audit_log(self, audit_filter: AuditFilter | None = None) -> list[AuditEntry]:
        return self.audit.query(audit_filter)

    # =========================================================================
    # Snapshots
    # =========================================================================

    def restore_snapshot(self, snapshot_id: str, actor_id: str) -> list[Path]:
        """
        Roll files back to a snapshot and record who did it.

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist
            SnapshotFailureError: If no snapshot service is configured or
                                  restoring failed
        """
        if self.snapshot_gate is None:
            raise SnapshotFailureError(
                message="No snapshot service configured",
                underlying_error="no snapshot service configured",
            )

        snapshot = self.snapshot_gate.service.get(snapshot_id)
        restored = self.snapshot_gate.restore(snapshot_id)

        tool_name = ""
        if snapshot.tool_call_id:
            try:
                tool_name = self.state.get(snapshot.tool_call_id).call.tool_name
            except ToolCallNotFoundError:
                tool_name = ""

        actor = Actor.human(actor_id)
        self.audit.append(
            AuditEntry(
                tool_call_id=snapshot.tool_call_id or snapshot_id,
                tool_name=tool_name,
                transition=AuditTransition.SNAPSHOT_RESTORED,
                actor_id=actor.id,
                actor_kind=actor.kind,
                detail=f"Restored {len(restored)} path(s)",
                snapshot_id=snapshot_id,
            )
        )
        logger.info(
            "Restored snapshot %s",
            snapshot_id,
            extra={"snapshot_id": snapshot_id, "actor": actor_id},
        )
        return restored

    # =========================================================================
    # Transitions
    # =========================================================================

    def _transition(
        self,
        record: CallRecord,
        target: ToolCallState,
        transition: AuditTransition,
        actor: Actor | None = None,
        result: str = "ok",
        detail: str = "",
        snapshot_id: str | None = None,
    ) -> AuditEntry:
        """
        Record and apply one state change. Caller holds ``record.lock``.

        The audit entry is made durable first; if that fails the state is
        left untouched and AuditWriteError propagates.
        """
        call = record.call
        if not is_legal_transition(call.state, target):
            raise StateConflictError(
                tool_call_id=call.id,
                operation=target.value,
                state=call.state.value,
            )

        actor = actor or Actor.system()
        entry = self.audit.append(
            AuditEntry(
                tool_call_id=call.id,
                tool_name=call.tool_name,
                transition=transition,
                from_state=call.state,
                to_state=target,
                actor_id=actor.id,
                actor_kind=actor.kind,
                result=result,
                detail=detail,
                snapshot_id=snapshot_id,
            )
        )

        call.state = target
        call.history.append(target)
        call.updated_at = self._clock()
        logger.info(
            "%s -> %s",
            call.tool_name,
            target.value,
            extra={
                "tool_call_id": call.id,
                "state": target.value,
                "actor": actor.id,
                "sequence": entry.sequence,
            },
        )
        return entry
