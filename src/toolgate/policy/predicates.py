"""
Argument predicate evaluation.

A predicate either evaluates to True/False or raises PredicateError when the
arguments it needs are missing or malformed. The engine treats a raising
predicate as a non-matching rule, so malformed input can never make a rule
match by accident (``negate`` only inverts a successful evaluation).
"""

import re
from pathlib import Path
from typing import Any, Callable

from toolgate.schema import ArgumentPredicate


class PredicateError(Exception):
    """A predicate could not be evaluated against the given arguments."""


_SCALARS = (str, int, float, bool)


def items_of(predicate: ArgumentPredicate, arguments: dict[str, Any]) -> list[str]:
    """
    Flatten the named arguments into a list of strings.

    Scalars contribute one item, lists one item per element, in the order
    the arguments are named.
    """
    items: list[str] = []
    for name in predicate.args:
        if name not in arguments:
            raise PredicateError(f"missing argument '{name}'")
        value = arguments[name]
        if isinstance(value, _SCALARS):
            items.append(str(value))
        elif isinstance(value, (list, tuple)):
            for item in value:
                if not isinstance(item, _SCALARS):
                    raise PredicateError(
                        f"argument '{name}' contains a {type(item).__name__}"
                    )
                items.append(str(item))
        else:
            raise PredicateError(
                f"argument '{name}' has unsupported type {type(value).__name__}"
            )
    return items


def subject_of(predicate: ArgumentPredicate, arguments: dict[str, Any]) -> str:
    """
    Build the string a predicate is evaluated against.

    Values of the named arguments are joined with single spaces; list values
    are flattened, so ``{"command": "git", "args": ["push", "--force"]}``
    over ``["command", "args"]`` yields ``"git push --force"``.
    """
    return " ".join(items_of(predicate, arguments))


def _equals(subject: str, values: list[str], working_dir: str) -> bool:
    if len(values) != 1:
        raise PredicateError("'equals' takes exactly one value")
    return subject == values[0]


def _one_of(subject: str, values: list[str], working_dir: str) -> bool:
    return subject in values


def _executable(subject: str, values: list[str], working_dir: str) -> bool:
    # /usr/bin/git and git are the same binary for whitelisting
    if not subject.strip():
        raise PredicateError("empty executable")
    return Path(subject.split()[0]).name in values


def _prefix(subject: str, values: list[str], working_dir: str) -> bool:
    return any(subject.startswith(value) for value in values)


def _resolve(path_str: str, working_dir: str) -> Path:
    if not path_str.strip():
        raise PredicateError("empty path")
    try:
        path = Path(path_str).expanduser()
        if not path.is_absolute():
            path = Path(working_dir) / path
        return path.resolve()
    except (ValueError, OSError, RuntimeError) as e:
        raise PredicateError(f"cannot resolve path {path_str!r}: {e}") from e


def _path_prefix(subject: str, values: list[str], working_dir: str) -> bool:
    """
    Check containment of a path under any of the prefixes.

    Both sides are resolved, so ``..`` segments and symlinks cannot escape
    a prefix by string trickery.
    """
    resolved = _resolve(subject, working_dir)
    for value in values:
        base = _resolve(value, working_dir)
        try:
            resolved.relative_to(base)
            return True
        except ValueError:
            continue
    return False


def _matches(subject: str, values: list[str], working_dir: str) -> bool:
    for pattern in values:
        try:
            if re.search(pattern, subject):
                return True
        except re.error as e:
            raise PredicateError(f"invalid pattern {pattern!r}: {e}") from e
    return False


def _contains_token(subject: str, values: list[str], working_dir: str) -> bool:
    # A token must not be embedded in a larger alphanumeric word,
    # so "su" does not match "suite"
    for token in values:
        pattern = r"(?<![a-zA-Z0-9])" + re.escape(token) + r"(?![a-zA-Z0-9])"
        if re.search(pattern, subject, re.IGNORECASE):
            return True
    return False


def _flags_within(items: list[str], values: list[str], working_dir: str) -> bool:
    """
    Check that every flag item is allowed.

    Items not starting with ``-`` are positional and always pass. A value
    ending in ``=`` allows that flag with an attached value (``--format=``
    allows ``--format=%h``); any other value must match exactly.
    """
    for item in items:
        if not item.startswith("-"):
            continue
        allowed = any(
            item.startswith(value) if value.endswith("=") else item == value
            for value in values
        )
        if not allowed:
            return False
    return True


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, (str, list, tuple, dict)) and not value)


def _empty(predicate: ArgumentPredicate, arguments: dict[str, Any]) -> bool:
    # Reads the raw values; a dict (env) has no string subject
    return all(_is_blank(arguments.get(name)) for name in predicate.args)


EVALUATORS: dict[str, Callable[[str, list[str], str], bool]] = {
    "equals": _equals,
    "one_of": _one_of,
    "executable": _executable,
    "prefix": _prefix,
    "path_prefix": _path_prefix,
    "matches": _matches,
    "contains_token": _contains_token,
}

ITEM_EVALUATORS: dict[str, Callable[[list[str], list[str], str], bool]] = {
    "flags_within": _flags_within,
}


def evaluate_predicate(
    predicate: ArgumentPredicate,
    arguments: dict[str, Any],
    working_dir: str = ".",
) -> bool:
    """
    Evaluate a predicate.

    An ``optional`` predicate holds outright when every argument it names is
    missing or None.

    Raises:
        PredicateError: If the predicate cannot be evaluated
    """
    if predicate.optional and all(arguments.get(name) is None for name in predicate.args):
        return True

    if predicate.kind == "empty":
        result = _empty(predicate, arguments)
    elif predicate.kind in ITEM_EVALUATORS:
        items = items_of(predicate, arguments)
        result = ITEM_EVALUATORS[predicate.kind](items, predicate.values, working_dir)
    else:
        subject = subject_of(predicate, arguments)
        result = EVALUATORS[predicate.kind](subject, predicate.values, working_dir)
    return result != predicate.negate
