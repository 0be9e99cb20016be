"""
Unit tests for schema models.

Tests cover:
- The tool call state machine
- Approval token expiry
- Policy rule specificity
- Audit entry hashing and filtering
- Request file loading
"""

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from toolgate.schema import (
    GENESIS_HASH,
    TERMINAL_STATES,
    Actor,
    ActorKind,
    ApprovalToken,
    ArgumentPredicate,
    AuditEntry,
    AuditFilter,
    AuditTransition,
    Decision,
    PolicyDecision,
    PolicyRule,
    ToolCall,
    ToolCallState,
    is_legal_transition,
    load_requests,
    load_requests_from_string,
)

NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


# =============================================================================
# State Machine
# =============================================================================


class TestStateMachine:
    """Tests for legal transitions."""

    @pytest.mark.parametrize(
        ("source", "target"),
        [
            (ToolCallState.PROPOSED, ToolCallState.DRY_RUN),
            (ToolCallState.DRY_RUN, ToolCallState.AUTO_APPROVED),
            (ToolCallState.DRY_RUN, ToolCallState.PENDING_APPROVAL),
            (ToolCallState.DRY_RUN, ToolCallState.DENIED),
            (ToolCallState.PENDING_APPROVAL, ToolCallState.APPROVED),
            (ToolCallState.APPROVED, ToolCallState.EXECUTING),
            (ToolCallState.APPROVED, ToolCallState.REJECTED),
            (ToolCallState.AUTO_APPROVED, ToolCallState.EXECUTING),
            (ToolCallState.EXECUTING, ToolCallState.EXECUTED),
            (ToolCallState.EXECUTING, ToolCallState.FAILED),
        ],
    )
    def test_legal_edges(self, source: ToolCallState, target: ToolCallState) -> None:
        assert is_legal_transition(source, target)

    @pytest.mark.parametrize(
        ("source", "target"),
        [
            (ToolCallState.PROPOSED, ToolCallState.EXECUTING),
            (ToolCallState.PENDING_APPROVAL, ToolCallState.EXECUTING),
            (ToolCallState.EXECUTING, ToolCallState.REJECTED),
            (ToolCallState.DRY_RUN, ToolCallState.PROPOSED),
            (ToolCallState.AUTO_APPROVED, ToolCallState.REJECTED),
        ],
    )
    def test_illegal_edges(self, source: ToolCallState, target: ToolCallState) -> None:
        assert not is_legal_transition(source, target)

    def test_terminal_states_have_no_exits(self) -> None:
        for state in TERMINAL_STATES:
            assert state.is_terminal
            for target in ToolCallState:
                assert not is_legal_transition(state, target)

    def test_new_call_history_starts_proposed(self) -> None:
        call = ToolCall(id="abc", tool_name="read_file")
        assert call.state == ToolCallState.PROPOSED
        assert call.history == [ToolCallState.PROPOSED]
        assert not call.is_terminal


# =============================================================================
# Tokens
# =============================================================================


class TestApprovalToken:
    """Tests for token expiry and liveness."""

    def make_token(self, **kwargs: object) -> ApprovalToken:
        return ApprovalToken(
            tool_call_id="abc",
            issued_at=NOW,
            expires_at=NOW + timedelta(seconds=300),
            actor=Actor.human("alice"),
            **kwargs,
        )

    def test_ids_are_unique(self) -> None:
        assert self.make_token().id != self.make_token().id

    def test_live_before_expiry(self) -> None:
        token = self.make_token()
        assert token.is_live(NOW + timedelta(seconds=299))

    def test_expired_at_boundary(self) -> None:
        token = self.make_token()
        assert token.is_expired(NOW + timedelta(seconds=300))
        assert not token.is_live(NOW + timedelta(seconds=300))

    def test_consumed_is_not_live(self) -> None:
        assert not self.make_token(consumed=True).is_live(NOW)

    def test_frozen(self) -> None:
        token = self.make_token()
        with pytest.raises(ValidationError):
            token.consumed = True  # type: ignore[misc]

    def test_system_actor(self) -> None:
        actor = Actor.system()
        assert actor.kind == ActorKind.SYSTEM


# =============================================================================
# Policy Models
# =============================================================================


class TestPolicyRule:
    """Tests for rule specificity and tool matching."""

    def test_exact_beats_glob(self) -> None:
        exact = PolicyRule(name="a", tool="run_command", decision=Decision.DENY)
        glob = PolicyRule(name="b", tool="run_*", decision=Decision.DENY)
        assert exact.specificity > glob.specificity

    def test_fewer_wildcards_beat_more(self) -> None:
        one = PolicyRule(name="a", tool="git_*", decision=Decision.DENY)
        two = PolicyRule(name="b", tool="*_*", decision=Decision.DENY)
        assert one.specificity > two.specificity

    def test_predicates_add_specificity(self) -> None:
        bare = PolicyRule(name="a", tool="run_command", decision=Decision.DENY)
        narrowed = PolicyRule(
            name="b",
            tool="run_command",
            when=[ArgumentPredicate(kind="equals", args=["command"], values=["rm"])],
            decision=Decision.DENY,
        )
        assert narrowed.specificity > bare.specificity

    def test_explicit_rank_wins(self) -> None:
        rule = PolicyRule(name="a", tool="*", decision=Decision.DENY, rank=5000)
        assert rule.specificity == 5000

    def test_matches_tool_glob(self) -> None:
        rule = PolicyRule(name="a", tool="git_*", decision=Decision.AUTO_APPROVE)
        assert rule.matches_tool("git_status")
        assert not rule.matches_tool("read_file")

    def test_single_arg_shorthand(self) -> None:
        predicate = ArgumentPredicate(kind="equals", args="command", values=["rm"])
        assert predicate.args == ["command"]

    def test_unknown_predicate_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ArgumentPredicate(kind="glob", args=["path"], values=["*"])  # type: ignore[arg-type]

    def test_decision_helpers(self) -> None:
        assert PolicyDecision.deny("no").denied
        assert PolicyDecision.auto_approve("ok").decision == Decision.AUTO_APPROVE
        assert PolicyDecision.require_approval("?").rule_matched is None


# =============================================================================
# Audit Models
# =============================================================================


class TestAuditEntry:
    """Tests for entry hashing and filtering."""

    def make_entry(self, **kwargs: object) -> AuditEntry:
        defaults: dict[str, object] = {
            "sequence": 1,
            "timestamp": NOW,
            "tool_call_id": "abc",
            "tool_name": "read_file",
            "transition": AuditTransition.DRY_RUN,
        }
        defaults.update(kwargs)
        return AuditEntry(**defaults)  # type: ignore[arg-type]

    def test_hash_is_deterministic(self) -> None:
        entry = self.make_entry()
        assert entry.content_hash(GENESIS_HASH) == entry.content_hash(GENESIS_HASH)
        assert len(entry.content_hash(GENESIS_HASH)) == 64

    def test_hash_depends_on_prev(self) -> None:
        entry = self.make_entry()
        assert entry.content_hash(GENESIS_HASH) != entry.content_hash("f" * 64)

    def test_hash_depends_on_content(self) -> None:
        assert (
            self.make_entry(detail="a").content_hash(GENESIS_HASH)
            != self.make_entry(detail="b").content_hash(GENESIS_HASH)
        )

    def test_hash_ignores_stored_hashes(self) -> None:
        plain = self.make_entry()
        stamped = self.make_entry(prev_hash="x", entry_hash="y")
        assert plain.content_hash(GENESIS_HASH) == stamped.content_hash(GENESIS_HASH)

    def test_filter_matches(self) -> None:
        entry = self.make_entry(result="denied")
        assert AuditFilter(result="denied").matches(entry)
        assert not AuditFilter(result="ok").matches(entry)
        assert AuditFilter(tool_name="read_file", tool_call_id="abc").matches(entry)
        assert not AuditFilter(transition=AuditTransition.EXECUTED).matches(entry)

    def test_filter_time_range(self) -> None:
        entry = self.make_entry()
        assert AuditFilter(since=NOW - timedelta(seconds=1), until=NOW).matches(entry)
        assert not AuditFilter(since=NOW + timedelta(seconds=1)).matches(entry)


# =============================================================================
# Request Files
# =============================================================================


class TestRequestLoading:
    """Tests for YAML request files."""

    def test_load_from_string(self, sample_requests_yaml: str) -> None:
        batch = load_requests_from_string(sample_requests_yaml)
        assert [r.tool for r in batch.requests] == ["list_directory", "create_file"]
        assert batch.requests[1].args["content"] == "hello"

    def test_load_from_file(self, temp_dir, sample_requests_yaml: str) -> None:
        path = temp_dir / "requests.yaml"
        path.write_text(sample_requests_yaml)
        assert len(load_requests(path).requests) == 2

    def test_empty_requests_rejected(self) -> None:
        with pytest.raises(ValidationError):
            load_requests_from_string("requests: []")

    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(ValidationError):
            load_requests_from_string("requests:\n  - tool: read_file\n    argz: {}\n")
