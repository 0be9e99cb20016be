"""
Unit tests for the command channel.

Tests cover:
- Queued commands applied in submission order
- Toolgate errors captured on the outcome
- Direct application bypassing the queue
"""

from dataclasses import dataclass
from pathlib import Path

import pytest

from toolgate.commands import (
    ApproveCommand,
    CommandChannel,
    ExecuteCommand,
    RejectCommand,
)
from toolgate.coordinator import ApprovalCoordinator
from toolgate.errors import StateConflictError, TokenAlreadyConsumedError
from toolgate.schema import ApprovalToken, ToolCallState


@pytest.fixture
def channel(coordinator: ApprovalCoordinator) -> CommandChannel:
    return CommandChannel(coordinator)


class TestProcess:
    """Tests for draining the queue."""

    def test_approve_then_execute(
        self, temp_dir: Path, coordinator: ApprovalCoordinator, channel: CommandChannel
    ) -> None:
        """Test a full approve/execute round through the queue."""
        call_id = coordinator.propose("create_file", {"path": "a.txt", "content": "x"})
        channel.submit(ApproveCommand(tool_call_id=call_id, actor_id="alice"))
        assert channel.pending() == 1

        [approved] = channel.process()
        assert approved.ok
        assert isinstance(approved.value, ApprovalToken)
        assert channel.pending() == 0

        channel.submit(ExecuteCommand(tool_call_id=call_id, token=approved.value.id))
        [executed] = channel.process()
        assert executed.ok
        assert executed.value.state == ToolCallState.EXECUTED
        assert (temp_dir / "a.txt").read_text() == "x"

    def test_order_preserved(
        self, coordinator: ApprovalCoordinator, channel: CommandChannel
    ) -> None:
        first = coordinator.propose("create_file", {"path": "a.txt"})
        second = coordinator.propose("create_file", {"path": "b.txt"})
        channel.submit(RejectCommand(tool_call_id=second, actor_id="bob", reason="no"))
        channel.submit(ApproveCommand(tool_call_id=first, actor_id="alice"))

        outcomes = channel.process()
        assert [o.command.tool_call_id for o in outcomes] == [second, first]
        assert coordinator.get(second).state == ToolCallState.REJECTED
        assert coordinator.get(first).state == ToolCallState.APPROVED

    def test_empty_queue(self, channel: CommandChannel) -> None:
        assert channel.process() == []


class TestErrors:
    """Tests for failed commands."""

    def test_conflict_captured(
        self, coordinator: ApprovalCoordinator, channel: CommandChannel
    ) -> None:
        """Test that a toolgate error lands on the outcome instead of raising."""
        call_id = coordinator.propose("create_file", {"path": "a.txt"})
        coordinator.reject(call_id, "bob")

        outcome = channel.apply(ApproveCommand(tool_call_id=call_id, actor_id="alice"))
        assert not outcome.ok
        assert isinstance(outcome.error, StateConflictError)
        assert outcome.value is None

    def test_reused_token_captured(
        self, coordinator: ApprovalCoordinator, channel: CommandChannel
    ) -> None:
        call_id = coordinator.propose("create_file", {"path": "a.txt"})
        token = coordinator.approve(call_id, "alice")
        channel.submit(ExecuteCommand(tool_call_id=call_id, token=token))
        channel.submit(ExecuteCommand(tool_call_id=call_id, token=token))

        first, second = channel.process()
        assert first.ok
        assert not second.ok
        assert isinstance(second.error, TokenAlreadyConsumedError)

    def test_unsupported_command(self, channel: CommandChannel) -> None:
        """Test that non-command values propagate as TypeError."""

        @dataclass(frozen=True)
        class PauseCommand:
            tool_call_id: str

        with pytest.raises(TypeError, match="PauseCommand"):
            channel.apply(PauseCommand(tool_call_id="x"))
