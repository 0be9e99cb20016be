"""
Security tests for approval tokens.

These tests verify that an execution token authorizes exactly one run of
exactly one call within its lifetime, and that every refused attempt is
recorded.

Attack vectors tested:
- Replaying a consumed token
- Using one call's token on another call
- Forged and guessed token ids
- Tokens past expiry
- Tokens superseded by re-approval
- Executing without approval
"""

from pathlib import Path

import pytest

from toolgate.errors import (
    StateConflictError,
    TokenAlreadyConsumedError,
    TokenExpiredError,
    TokenInvalidError,
)
from toolgate.schema import Actor, ApprovalToken, AuditTransition


def refused(coordinator, call_id: str) -> list[str]:
    """Results of the audited refused attempts for a call."""
    return [
        entry.result
        for entry in coordinator.audit.by_tool_call(call_id)
        if entry.transition == AuditTransition.EXECUTION_ATTEMPT_FAILED
    ]


class TestReplay:
    """Tests for reusing a token."""

    def test_consumed_token_refused(self, coordinator) -> None:
        call_id = coordinator.propose("create_file", {"path": "a.txt"})
        token = coordinator.approve(call_id, "alice")
        coordinator.execute(call_id, token)

        with pytest.raises(TokenAlreadyConsumedError):
            coordinator.execute(call_id, token)
        with pytest.raises(TokenAlreadyConsumedError):
            coordinator.execute(call_id, token.id)
        assert refused(coordinator, call_id) == ["token_consumed", "token_consumed"]

    def test_tampered_token_object_refused(self, coordinator) -> None:
        """Test that only the id matters; edited fields grant nothing."""
        call_id = coordinator.propose("create_file", {"path": "a.txt"})
        token = coordinator.approve(call_id, "alice")
        coordinator.execute(call_id, token)

        forged = token.model_copy(update={"consumed": False})
        with pytest.raises(TokenAlreadyConsumedError):
            coordinator.execute(call_id, forged)


class TestCrossUse:
    """Tests for binding tokens to calls."""

    def test_other_calls_token_refused(self, coordinator) -> None:
        first = coordinator.propose("create_file", {"path": "a.txt"})
        second = coordinator.propose("delete_file", {"path": "b.txt"})
        token = coordinator.approve(first, "alice")
        coordinator.approve(second, "alice")

        with pytest.raises(TokenInvalidError):
            coordinator.execute(second, token)
        assert refused(coordinator, second) == ["token_invalid"]

        # The misuse does not burn the token for its own call
        assert coordinator.execute(first, token).success

    def test_rebound_token_refused(self, coordinator) -> None:
        """Test that rewriting tool_call_id on a token does not rebind it."""
        first = coordinator.propose("create_file", {"path": "a.txt"})
        second = coordinator.propose("create_file", {"path": "b.txt"})
        token = coordinator.approve(first, "alice")
        coordinator.approve(second, "alice")

        with pytest.raises(TokenInvalidError):
            coordinator.execute(second, token.model_copy(update={"tool_call_id": second}))

    @pytest.mark.parametrize("forged", ["", "x" * 32, "not-a-token"])
    def test_guessed_ids_refused(self, coordinator, forged: str) -> None:
        call_id = coordinator.propose("create_file", {"path": "a.txt"})
        coordinator.approve(call_id, "alice")
        with pytest.raises(TokenInvalidError):
            coordinator.execute(call_id, forged)

    def test_ids_are_unguessable(self, coordinator) -> None:
        ids = set()
        for index in range(20):
            call_id = coordinator.propose("create_file", {"path": f"{index}.txt"})
            ids.add(coordinator.approve(call_id, "alice").id)
        assert len(ids) == 20
        assert all(len(token_id) >= 32 for token_id in ids)


class TestExpiry:
    """Tests for token lifetime."""

    def test_expiry_boundary(self, coordinator, clock) -> None:
        """Test that a token is dead at exactly its expiry instant."""
        call_id = coordinator.propose("create_file", {"path": "a.txt"})
        token = coordinator.approve(call_id, "alice")
        clock.now = token.expires_at

        with pytest.raises(TokenExpiredError):
            coordinator.execute(call_id, token)
        assert refused(coordinator, call_id) == ["token_expired"]

    def test_just_before_expiry(self, coordinator, clock) -> None:
        call_id = coordinator.propose("create_file", {"path": "a.txt"})
        token = coordinator.approve(call_id, "alice")
        clock.advance(299)
        assert coordinator.execute(call_id, token).success

    def test_superseded_token_refused(self, coordinator, clock) -> None:
        """Test that re-approval kills the previous token for good."""
        call_id = coordinator.propose("create_file", {"path": "a.txt"})
        old = coordinator.approve(call_id, "alice")
        clock.advance(301)
        new = coordinator.approve(call_id, "bob")

        with pytest.raises(TokenInvalidError):
            coordinator.execute(call_id, old)
        assert coordinator.execute(call_id, new).success


class TestUnapproved:
    """Tests for executing without a human decision."""

    def test_pending_call_refused(self, coordinator) -> None:
        call_id = coordinator.propose("create_file", {"path": "a.txt"})
        with pytest.raises(StateConflictError):
            coordinator.execute(call_id)
        assert refused(coordinator, call_id) == ["state_conflict"]

    def test_self_minted_token_refused(self, coordinator, clock, temp_dir: Path) -> None:
        """Test that a token built by the caller is never accepted."""
        call_id = coordinator.propose("create_file", {"path": "a.txt"})
        minted = ApprovalToken(
            tool_call_id=call_id,
            issued_at=clock.now,
            expires_at=clock.now.replace(year=2099),
            actor=Actor.human("mallory"),
        )
        with pytest.raises(TokenInvalidError):
            coordinator.execute(call_id, minted)
        assert not (temp_dir / "a.txt").exists()
