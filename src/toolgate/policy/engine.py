"""
Policy Engine for Toolgate.

Every proposed tool call passes through the policy engine after its dry-run
and before any approval is requested.

Design Principles:
    - Fail toward review: no matching rule means a human must approve
    - Deny overrides: any matching deny rule wins, whatever its rank
    - Most specific first: among non-deny matches the most specific applies
    - Pure: same rules and inputs always produce the same decision

How it works:
    1. Rules are sorted by specificity once, at construction
    2. A rule matches when its tool pattern matches and every predicate holds
    3. A predicate that cannot be evaluated makes its rule non-matching
    4. The first deny among matches wins, else the first match, else
       require_approval
"""

from pathlib import Path
from typing import Any

from toolgate.logging import get_logger
from toolgate.policy.predicates import PredicateError, evaluate_predicate
from toolgate.schema import Decision, PolicyDecision, PolicyRule

logger = get_logger(__name__)


class PolicyEngine:
    """
    Decision function over a tool name and its arguments.

    Usage:
        engine = PolicyEngine(config.policy_rules())
        decision = engine.evaluate("run_command", {"command": "git", "args": ["status"]})
        if decision.decision == Decision.AUTO_APPROVE:
            ...

    Attributes:
        rules: Rules ordered most specific first
        working_dir: Base for relative paths in path predicates
    """

    def __init__(self, rules: list[PolicyRule], working_dir: str | Path = ".") -> None:
        # sorted() is stable: equal specificity keeps declaration order
        self.rules = sorted(rules, key=lambda rule: -rule.specificity)
        self.working_dir = str(working_dir)

    def evaluate(self, tool_name: str, arguments: dict[str, Any]) -> PolicyDecision:
        """
        Decide what to do with a tool call.

        Args:
            tool_name: The catalog name of the tool
            arguments: The validated arguments

        Returns:
            PolicyDecision with the decision, a reason and the rule matched
        """
        matched = self.matching_rules(tool_name, arguments)

        for rule in matched:
            if rule.decision == Decision.DENY:
                return PolicyDecision.deny(
                    f"Denied by rule {rule.name}",
                    rule=rule.name,
                )

        if not matched:
            return PolicyDecision.require_approval(
                f"No rule matched {tool_name}; human review required",
            )

        rule = matched[0]
        if rule.decision == Decision.AUTO_APPROVE:
            return PolicyDecision.auto_approve(
                f"Auto-approved by rule {rule.name}",
                rule=rule.name,
            )
        return PolicyDecision.require_approval(
            f"Rule {rule.name} requires approval",
            rule=rule.name,
        )

    def matching_rules(self, tool_name: str, arguments: dict[str, Any]) -> list[PolicyRule]:
        """All rules matching the call, most specific first."""
        return [rule for rule in self.rules if self._rule_matches(rule, tool_name, arguments)]

    def _rule_matches(
        self,
        rule: PolicyRule,
        tool_name: str,
        arguments: dict[str, Any],
    ) -> bool:
        if not rule.matches_tool(tool_name):
            return False
        for predicate in rule.when:
            try:
                if not evaluate_predicate(predicate, arguments, self.working_dir):
                    return False
            except PredicateError as e:
                logger.debug(
                    "Predicate not evaluable, rule skipped: %s",
                    e,
                    extra={"rule": rule.name, "tool_name": tool_name},
                )
                return False
        return True
