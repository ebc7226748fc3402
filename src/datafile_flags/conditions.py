"""Evaluation of single condition leaves against a context."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping
from datetime import UTC, date, datetime
from typing import Any

from datafile_flags.models.conditions import ConditionLeaf
from datafile_flags.semver import compare_versions
from datafile_flags.types import ConditionOperator

__all__ = [
    "condition_is_matched",
    "get_value_from_context",
    "has_value_at_path",
    "stringify_value",
]

logger = logging.getLogger(__name__)

GetRegex = Callable[[str, str], re.Pattern[str]]

_MISSING = object()

_STRING_OPERATORS = frozenset(
    {
        ConditionOperator.CONTAINS,
        ConditionOperator.NOT_CONTAINS,
        ConditionOperator.STARTS_WITH,
        ConditionOperator.ENDS_WITH,
        ConditionOperator.SEMVER_EQUALS,
        ConditionOperator.SEMVER_NOT_EQUALS,
        ConditionOperator.SEMVER_GREATER_THAN,
        ConditionOperator.SEMVER_GREATER_THAN_OR_EQUALS,
        ConditionOperator.SEMVER_LESS_THAN,
        ConditionOperator.SEMVER_LESS_THAN_OR_EQUALS,
        ConditionOperator.MATCHES,
        ConditionOperator.NOT_MATCHES,
    }
)

_NUMERIC_OPERATORS = frozenset(
    {
        ConditionOperator.GREATER_THAN,
        ConditionOperator.GREATER_THAN_OR_EQUALS,
        ConditionOperator.LESS_THAN,
        ConditionOperator.LESS_THAN_OR_EQUALS,
    }
)


def _lookup(context: Mapping[str, Any] | None, path: str | None) -> Any:
    if context is None or path is None:
        return _MISSING

    current: Any = context
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return _MISSING
        current = current[part]
    return current


def get_value_from_context(context: Mapping[str, Any] | None, path: str | None) -> Any:
    """Resolve a dot-separated ``path`` inside ``context``.

    Args:
        context: The evaluation context.
        path: Attribute name, e.g. ``"country"`` or ``"user.plan"``.

    Returns:
        The value, or ``None`` when any part of the path is missing.
    """
    value = _lookup(context, path)
    return None if value is _MISSING else value


def has_value_at_path(context: Mapping[str, Any] | None, path: str | None) -> bool:
    """Return whether ``path`` exists in ``context``, even if its value is ``None``."""
    return _lookup(context, path) is not _MISSING


def stringify_value(value: Any) -> str:
    """Render a context value the way JSON-native SDKs stringify it.

    Booleans are ``true`` / ``false``, ``None`` is empty, and floats without a
    fractional part drop the ``.0`` so ``1.0`` and ``1`` bucket identically.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _strict_equals(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a is b
    return a == b


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _match_string(operator: str, context_value: str, value: str, regex_flags: str | None, get_regex: GetRegex) -> bool:
    match operator:
        case ConditionOperator.CONTAINS:
            return value in context_value
        case ConditionOperator.NOT_CONTAINS:
            return value not in context_value
        case ConditionOperator.STARTS_WITH:
            return context_value.startswith(value)
        case ConditionOperator.ENDS_WITH:
            return context_value.endswith(value)
        case ConditionOperator.SEMVER_EQUALS:
            return compare_versions(context_value, value) == 0
        case ConditionOperator.SEMVER_NOT_EQUALS:
            return compare_versions(context_value, value) != 0
        case ConditionOperator.SEMVER_GREATER_THAN:
            return compare_versions(context_value, value) == 1
        case ConditionOperator.SEMVER_GREATER_THAN_OR_EQUALS:
            return compare_versions(context_value, value) >= 0
        case ConditionOperator.SEMVER_LESS_THAN:
            return compare_versions(context_value, value) == -1
        case ConditionOperator.SEMVER_LESS_THAN_OR_EQUALS:
            return compare_versions(context_value, value) <= 0
        case ConditionOperator.MATCHES:
            return get_regex(value, regex_flags or "").search(context_value) is not None
        case ConditionOperator.NOT_MATCHES:
            return get_regex(value, regex_flags or "").search(context_value) is None
    return False


def _match_number(operator: str, context_value: float, value: float) -> bool:
    match operator:
        case ConditionOperator.GREATER_THAN:
            return context_value > value
        case ConditionOperator.GREATER_THAN_OR_EQUALS:
            return context_value >= value
        case ConditionOperator.LESS_THAN:
            return context_value < value
        case ConditionOperator.LESS_THAN_OR_EQUALS:
            return context_value <= value
    return False


def _evaluate(condition: ConditionLeaf, context: Mapping[str, Any], get_regex: GetRegex) -> bool:
    operator = condition.operator
    value = condition.value
    context_value = get_value_from_context(context, condition.attribute)

    if operator == ConditionOperator.EQUALS:
        return _strict_equals(context_value, value)

    if operator == ConditionOperator.NOT_EQUALS:
        return not _strict_equals(context_value, value)

    if operator in (ConditionOperator.BEFORE, ConditionOperator.AFTER):
        date_in_context = _to_datetime(context_value)
        date_in_condition = _to_datetime(value)
        if operator == ConditionOperator.BEFORE:
            return date_in_context < date_in_condition
        return date_in_context > date_in_condition

    if operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        if not isinstance(value, list | tuple):
            return False
        if not (context_value is None or isinstance(context_value, str) or _is_number(context_value)):
            return False
        if not has_value_at_path(context, condition.attribute):
            return False
        is_in = stringify_value(context_value) in value
        return is_in if operator == ConditionOperator.IN else not is_in

    if operator in _STRING_OPERATORS:
        if not (isinstance(context_value, str) and isinstance(value, str)):
            return False
        return _match_string(operator, context_value, value, condition.regex_flags, get_regex)

    if operator in _NUMERIC_OPERATORS:
        if not (_is_number(context_value) and _is_number(value)):
            return False
        return _match_number(operator, context_value, value)

    if operator == ConditionOperator.EXISTS:
        return context_value is not None

    if operator == ConditionOperator.NOT_EXISTS:
        return context_value is None

    if operator in (ConditionOperator.INCLUDES, ConditionOperator.NOT_INCLUDES):
        if not (isinstance(context_value, list | tuple) and isinstance(value, str)):
            return False
        is_included = value in context_value
        return is_included if operator == ConditionOperator.INCLUDES else not is_included

    return False


def condition_is_matched(condition: ConditionLeaf, context: Mapping[str, Any], get_regex: GetRegex) -> bool:
    """Evaluate one condition leaf against ``context``.

    Type mismatches and unknown operators are a non-match. Any exception
    raised while evaluating (an unparseable date, an invalid version or regex)
    is logged and also treated as a non-match.

    Args:
        condition: The leaf to evaluate.
        context: The evaluation context.
        get_regex: Returns a compiled (and usually cached) regex for a pattern and flags.

    Returns:
        Whether the condition matches.
    """
    try:
        return _evaluate(condition, context, get_regex)
    except Exception as e:
        logger.warning(
            "error in condition evaluation",
            extra={"condition": condition, "error": repr(e)},
        )
        return False
