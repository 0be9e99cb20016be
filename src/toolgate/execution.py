"""
Dry-run and execution collaborators.

The coordinator only depends on two small contracts:

    - DryRunSimulator.simulate(name, arguments) -> PredictedEffects
    - ExecutionGateway.execute(name, arguments) -> ToolOutput

The catalog-backed implementations dispatch to the registered tool. Any
other implementation (a remote runner, a recording fake in tests) can be
injected instead.
"""

from typing import Any, Protocol

from toolgate.errors import ExecutionFailureError, ToolgateError
from toolgate.logging import get_logger
from toolgate.schema import PredictedEffects
from toolgate.tools.base import ToolContext, ToolOutput
from toolgate.tools.registry import ToolCatalog

logger = get_logger(__name__)


class DryRunSimulator(Protocol):
    """Predicts a call's effects without performing them. Advisory only."""

    def simulate(self, name: str, arguments: dict[str, Any]) -> PredictedEffects: ...


class ExecutionGateway(Protocol):
    """Performs an approved call."""

    def execute(self, name: str, arguments: dict[str, Any]) -> ToolOutput: ...


class CatalogDryRunSimulator:
    """Delegates to each tool's own ``simulate``."""

    def __init__(self, catalog: ToolCatalog, context: ToolContext | None = None) -> None:
        self.catalog = catalog
        self.context = context or ToolContext()

    def simulate(self, name: str, arguments: dict[str, Any]) -> PredictedEffects:
        tool = self.catalog.get(name)
        return tool.simulate(tool.validate_args(arguments), self.context)


class CatalogExecutionGateway:
    """
    Dispatches approved calls to the catalog's tools.

    Arguments are validated again here so a gateway can never be driven
    with input the tool did not declare. An exception escaping a tool is
    raised as ExecutionFailureError. Nothing is retried.
    """

    def __init__(self, catalog: ToolCatalog, context: ToolContext | None = None) -> None:
        self.catalog = catalog
        self.context = context or ToolContext()

    def execute(self, name: str, arguments: dict[str, Any]) -> ToolOutput:
        tool = self.catalog.get(name)
        args = tool.validate_args(arguments)
        logger.debug("Dispatching %s", name, extra={"tool_name": name})
        try:
            return tool.execute(args, self.context)
        except ToolgateError:
            raise
        except Exception as e:
            raise ExecutionFailureError(
                tool=name,
                tool_call_id=self.context.tool_call_id or "",
                underlying_error=str(e) or type(e).__name__,
            ) from e
