"""
Command values for driving the coordinator from another thread or UI.

Instead of handing closures to a UI, the UI enqueues plain command objects
and the owner of the coordinator drains them:

    channel = CommandChannel(coordinator)
    channel.submit(ApproveCommand(tool_call_id=call_id, actor_id="alice"))
    for outcome in channel.process():
        print(outcome.ok, outcome.error)

Toolgate errors are captured on the outcome; anything else propagates.
"""

import queue
from dataclasses import dataclass
from typing import Any, Union

from toolgate.coordinator import ApprovalCoordinator
from toolgate.errors import ToolgateError
from toolgate.logging import get_logger
from toolgate.schema import ApprovalToken

logger = get_logger(__name__)


@dataclass(frozen=True)
class ApproveCommand:
    tool_call_id: str
    actor_id: str


@dataclass(frozen=True)
class RejectCommand:
    tool_call_id: str
    actor_id: str
    reason: str = ""


@dataclass(frozen=True)
class ExecuteCommand:
    tool_call_id: str
    token: ApprovalToken | str | None = None


Command = Union[ApproveCommand, RejectCommand, ExecuteCommand]


@dataclass(frozen=True)
class CommandOutcome:
    """
    Result of one processed command.

    Attributes:
        command: The command that was processed
        ok: Whether it succeeded
        value: ApprovalToken for approve, ExecutionResult for execute
        error: The toolgate error when it failed
    """

    command: Command
    ok: bool
    value: Any = None
    error: ToolgateError | None = None


class CommandChannel:
    """Thread-safe FIFO of commands applied to one coordinator."""

    def __init__(self, coordinator: ApprovalCoordinator) -> None:
        self.coordinator = coordinator
        self._queue: "queue.Queue[Command]" = queue.Queue()

    def submit(self, command: Command) -> None:
        self._queue.put(command)

    def pending(self) -> int:
        return self._queue.qsize()

    def process(self) -> list[CommandOutcome]:
        """Apply every queued command in submission order."""
        outcomes = []
        while True:
            try:
                command = self._queue.get_nowait()
            except queue.Empty:
                break
            outcomes.append(self.apply(command))
            self._queue.task_done()
        return outcomes

    def apply(self, command: Command) -> CommandOutcome:
        """Apply one command immediately, bypassing the queue."""
        try:
            if isinstance(command, ApproveCommand):
                value = self.coordinator.approve(command.tool_call_id, command.actor_id)
            elif isinstance(command, RejectCommand):
                value = self.coordinator.reject(
                    command.tool_call_id, command.actor_id, command.reason
                )
            elif isinstance(command, ExecuteCommand):
                value = self.coordinator.execute(command.tool_call_id, command.token)
            else:
                msg = f"Unsupported command: {type(command).__name__}"
                raise TypeError(msg)
        except ToolgateError as e:
            logger.debug(
                "%s failed: %s",
                type(command).__name__,
                e.message,
                extra={"tool_call_id": command.tool_call_id},
            )
            return CommandOutcome(command=command, ok=False, error=e)
        return CommandOutcome(command=command, ok=True, value=value)
