"""Condition and segment trees.

Datafiles describe predicates as nested JSON (``and`` / ``or`` / ``not``
groups, plain lists meaning ``and``, the ``"*"`` wildcard, and either
condition leaves or segment keys at the bottom). They are parsed once into the
node types below so evaluation never has to inspect raw dictionaries.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TypeAlias

from datafile_flags.exceptions import DatafileError

__all__ = [
    "WILDCARD",
    "AndNode",
    "ConditionLeaf",
    "ConditionTree",
    "NeverMatch",
    "NotNode",
    "OrNode",
    "SegmentRef",
    "SegmentTree",
    "Wildcard",
    "parse_conditions",
    "parse_segments",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Wildcard:
    """Matches every context."""


WILDCARD = Wildcard()


@dataclass(frozen=True, slots=True)
class NeverMatch:
    """A value that is not a valid predicate; it never matches.

    Attributes:
        source: The raw value that could not be interpreted.
    """

    source: Any = None


@dataclass(frozen=True, slots=True)
class ConditionLeaf:
    """A single ``attribute operator value`` predicate.

    Attributes:
        attribute: Dot-separated path into the context.
        operator: One of :class:`~datafile_flags.types.ConditionOperator`.
            Unknown operators are kept and simply never match.
        value: The value to compare against.
        regex_flags: Flags for ``matches`` / ``notMatches``.
    """

    attribute: str
    operator: str
    value: Any = None
    regex_flags: str | None = None


@dataclass(frozen=True, slots=True)
class SegmentRef:
    """Reference to a named segment."""

    key: str


@dataclass(frozen=True, slots=True)
class AndNode:
    """Every child must match."""

    children: tuple[Any, ...]


@dataclass(frozen=True, slots=True)
class OrNode:
    """At least one child must match."""

    children: tuple[Any, ...]


@dataclass(frozen=True, slots=True)
class NotNode:
    """The conjunction of the children must not match.

    ``not: [A, B]`` is ``NOT (A AND B)``, not ``(NOT A) AND (NOT B)``.
    """

    children: tuple[Any, ...]


ConditionTree: TypeAlias = Wildcard | NeverMatch | ConditionLeaf | AndNode | OrNode | NotNode
SegmentTree: TypeAlias = Wildcard | NeverMatch | SegmentRef | AndNode | OrNode | NotNode

_TREE_TYPES = (Wildcard, NeverMatch, ConditionLeaf, SegmentRef, AndNode, OrNode, NotNode)


def is_parsed(value: Any) -> bool:
    """Return ``True`` if ``value`` is already a parsed tree node."""
    return isinstance(value, _TREE_TYPES)


def _parse_group(raw: Mapping[str, Any], parse_child: Any) -> AndNode | OrNode | NotNode | None:
    for key, node_type in (("and", AndNode), ("or", OrNode), ("not", NotNode)):
        children = raw.get(key)
        if isinstance(children, list):
            return node_type(tuple(parse_child(child) for child in children))
    return None


def _parse_condition_node(raw: Any) -> ConditionTree:
    if isinstance(raw, str):
        return WILDCARD if raw == "*" else NeverMatch(raw)

    if isinstance(raw, Mapping):
        if raw.get("attribute"):
            return ConditionLeaf(
                attribute=raw["attribute"],
                operator=raw.get("operator", ""),
                value=raw.get("value"),
                regex_flags=raw.get("regexFlags"),
            )
        group = _parse_group(raw, _parse_condition_node)
        if group is not None:
            return group
        return NeverMatch(dict(raw))

    if isinstance(raw, list):
        return AndNode(tuple(_parse_condition_node(child) for child in raw))

    return NeverMatch(raw)


def parse_conditions(raw: Any) -> ConditionTree:
    """Parse a ``conditions`` value from a datafile.

    A JSON-encoded string is decoded first. A string that is neither ``"*"``
    nor valid JSON is logged and becomes a :class:`NeverMatch`.

    Args:
        raw: Parsed JSON, a JSON string, or an already parsed tree.

    Returns:
        The condition tree.
    """
    if is_parsed(raw):
        return raw

    if isinstance(raw, str) and raw != "*":
        try:
            raw = json.loads(raw)
        except ValueError as e:
            logger.error("error parsing conditions", extra={"conditions": raw, "error": str(e)})
            return NeverMatch(raw)

    return _parse_condition_node(raw)


def _parse_segment_node(raw: Any) -> SegmentTree:
    if isinstance(raw, str):
        return WILDCARD if raw == "*" else SegmentRef(raw)

    if isinstance(raw, Mapping):
        group = _parse_group(raw, _parse_segment_node)
        if group is not None:
            return group
        return NeverMatch(dict(raw))

    if isinstance(raw, list):
        return AndNode(tuple(_parse_segment_node(child) for child in raw))

    return NeverMatch(raw)


def parse_segments(raw: Any) -> SegmentTree:
    """Parse a ``segments`` value from a datafile.

    Strings starting with ``{`` or ``[`` are decoded as JSON; any other string
    is a segment key (or the ``"*"`` wildcard).

    Args:
        raw: Parsed JSON, a string, or an already parsed tree.

    Returns:
        The segment tree.

    Raises:
        DatafileError: If a JSON-encoded segments string cannot be decoded.
    """
    if is_parsed(raw):
        return raw

    if isinstance(raw, str) and raw.startswith(("{", "[")):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            msg = f"Invalid JSON in segments: {raw!r}"
            raise DatafileError(msg) from e

    return _parse_segment_node(raw)
