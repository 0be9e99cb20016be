"""
Policy Engine module for Toolgate.

The policy engine decides, for every proposed tool call, whether it may run
without confirmation, must wait for a human, or is refused.

Key concepts:
    - PolicyRule: fnmatch pattern over the tool name plus argument predicates
    - PolicyDecision: auto_approve / require_approval / deny with a reason
    - PolicyEngine: evaluates rules most-specific-first, deny overrides

The engine must be:
    - Fail-toward-review: no match means require_approval
    - Predictable: same inputs always produce the same decision
    - Pure: evaluation has no side effects
"""

from toolgate.policy.defaults import default_rules
from toolgate.policy.engine import PolicyEngine
from toolgate.policy.predicates import PredicateError, evaluate_predicate

__all__ = [
    "PolicyEngine",
    "PredicateError",
    "default_rules",
    "evaluate_predicate",
]
