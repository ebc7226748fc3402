"""Read-only access to a datafile snapshot."""

from __future__ import annotations

import re
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from datafile_flags.conditions import condition_is_matched
from datafile_flags.models import (
    Allocation,
    AndNode,
    ConditionLeaf,
    Datafile,
    Feature,
    ForceRule,
    NeverMatch,
    NotNode,
    OrNode,
    Segment,
    SegmentRef,
    TrafficRule,
    Wildcard,
    parse_conditions,
    parse_segments,
)

__all__ = ["DatafileReader", "MatchedForce"]

_REGEX_FLAGS: dict[str, re.RegexFlag] = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}

# JavaScript flags with no Python counterpart; str patterns are already unicode
_IGNORED_REGEX_FLAGS = frozenset("ugy")


def _compile_flags(flags: str) -> int:
    compiled = 0
    for flag in flags:
        if flag in _REGEX_FLAGS:
            compiled |= _REGEX_FLAGS[flag]
        elif flag not in _IGNORED_REGEX_FLAGS:
            msg = f"Unsupported regex flag: {flag!r}"
            raise ValueError(msg)
    return compiled


@dataclass(frozen=True, slots=True)
class MatchedForce:
    """Result of :meth:`DatafileReader.get_matched_force`.

    Attributes:
        force: The first matching force rule, if any.
        force_index: Its position in the feature's ``force`` list.
    """

    force: ForceRule | None = None
    force_index: int | None = None


class DatafileReader:
    """Immutable view over a parsed datafile.

    Besides lookups, the reader evaluates condition and segment trees and
    finds the traffic rule, allocation, and force rule that apply to a
    context. The only mutable state is a cache of compiled regular
    expressions, which is safe to populate from several threads.

    Args:
        datafile: A parsed :class:`~datafile_flags.models.Datafile` or its
            raw JSON representation.
    """

    def __init__(self, datafile: Datafile | Mapping[str, Any]) -> None:
        self._datafile = datafile if isinstance(datafile, Datafile) else Datafile.from_dict(datafile)
        self._regex_cache: dict[tuple[str, str], re.Pattern[str]] = {}
        self._regex_lock = threading.Lock()

    @property
    def datafile(self) -> Datafile:
        """The underlying datafile."""
        return self._datafile

    def get_revision(self) -> str:
        return self._datafile.revision

    def get_schema_version(self) -> str:
        return self._datafile.schema_version

    def get_segment(self, segment_key: str) -> Segment | None:
        return self._datafile.segments.get(segment_key)

    def get_feature(self, feature_key: str) -> Feature | None:
        return self._datafile.features.get(feature_key)

    def get_feature_keys(self) -> list[str]:
        return list(self._datafile.features)

    def get_variable_keys(self, feature_key: str) -> list[str]:
        """Return the variable keys declared by a feature, or ``[]`` if it does not exist."""
        feature = self.get_feature(feature_key)
        if feature is None:
            return []
        return list(feature.variables_schema)

    def has_variations(self, feature_key: str) -> bool:
        feature = self.get_feature(feature_key)
        return feature is not None and len(feature.variations) > 0

    def get_regex(self, pattern: str, flags: str = "") -> re.Pattern[str]:
        """Return a compiled regex, compiling it at most once per ``(pattern, flags)``.

        Args:
            pattern: The regular expression.
            flags: JavaScript-style flags (``i``, ``m``, ``s``, ``x``; ``u``, ``g``
                and ``y`` are accepted and ignored).

        Raises:
            ValueError: On an unknown flag.
            re.error: If the pattern does not compile.
        """
        flags = flags or ""
        cache_key = (pattern, flags)
        cached = self._regex_cache.get(cache_key)
        if cached is not None:
            return cached

        with self._regex_lock:
            cached = self._regex_cache.get(cache_key)
            if cached is None:
                cached = re.compile(pattern, _compile_flags(flags))
                self._regex_cache[cache_key] = cached
        return cached

    # ------------------------------------------------------------------
    # Tree evaluation
    # ------------------------------------------------------------------

    def all_conditions_are_matched(self, conditions: Any, context: Mapping[str, Any]) -> bool:
        """Evaluate a condition tree against a context.

        Args:
            conditions: A parsed condition tree, or raw datafile JSON for one.
            context: The evaluation context.

        Returns:
            Whether the tree matches.
        """
        return self._match_conditions(parse_conditions(conditions), context)

    def _match_conditions(self, node: Any, context: Mapping[str, Any]) -> bool:
        match node:
            case Wildcard():
                return True
            case ConditionLeaf():
                return condition_is_matched(node, context, self.get_regex)
            case AndNode(children):
                return all(self._match_conditions(child, context) for child in children)
            case OrNode(children):
                return any(self._match_conditions(child, context) for child in children)
            case NotNode(children):
                if not children:
                    return True
                return not all(self._match_conditions(child, context) for child in children)
            case NeverMatch():
                return False
        return False

    def segment_is_matched(self, segment: Segment, context: Mapping[str, Any]) -> bool:
        return self._match_conditions(segment.conditions, context)

    def all_segments_are_matched(self, segments: Any, context: Mapping[str, Any]) -> bool:
        """Evaluate a segment tree against a context.

        Segment keys that are not in the datafile never match.

        Args:
            segments: A parsed segment tree, or raw datafile JSON for one.
            context: The evaluation context.

        Returns:
            Whether the tree matches.
        """
        return self._match_segments(parse_segments(segments), context)

    def _match_segments(self, node: Any, context: Mapping[str, Any]) -> bool:
        match node:
            case Wildcard():
                return True
            case SegmentRef(key):
                segment = self.get_segment(key)
                return segment is not None and self.segment_is_matched(segment, context)
            case AndNode(children):
                return all(self._match_segments(child, context) for child in children)
            case OrNode(children):
                return any(self._match_segments(child, context) for child in children)
            case NotNode(children):
                if not children:
                    return True
                return not all(self._match_segments(child, context) for child in children)
        return False

    # ------------------------------------------------------------------
    # Rule matching
    # ------------------------------------------------------------------

    def get_matched_traffic(
        self, traffic: tuple[TrafficRule, ...] | list[TrafficRule], context: Mapping[str, Any]
    ) -> TrafficRule | None:
        """Return the first traffic rule whose segments match ``context``."""
        for rule in traffic:
            if self._match_segments(rule.segments, context):
                return rule
        return None

    def get_matched_allocation(self, traffic: TrafficRule, bucket_value: int) -> Allocation | None:
        """Return the first allocation whose range contains ``bucket_value``.

        Both ends of an allocation range are inclusive.
        """
        for allocation in traffic.allocation:
            start, end = allocation.range
            if start <= bucket_value <= end:
                return allocation
        return None

    def get_matched_force(self, feature: Feature | str, context: Mapping[str, Any]) -> MatchedForce:
        """Find the first force rule of a feature that applies to ``context``.

        Within a rule, ``conditions`` are checked before ``segments``; either
        matching selects the rule.

        Args:
            feature: The feature, or its key.
            context: The evaluation context.

        Returns:
            The matched rule and its index, or an empty :class:`MatchedForce`.
        """
        if isinstance(feature, str):
            resolved = self.get_feature(feature)
            if resolved is None:
                return MatchedForce()
            feature = resolved

        for index, force in enumerate(feature.force):
            if force.conditions is not None and self._match_conditions(force.conditions, context):
                return MatchedForce(force=force, force_index=index)
            if force.segments is not None and self._match_segments(force.segments, context):
                return MatchedForce(force=force, force_index=index)

        return MatchedForce()

    def __repr__(self) -> str:
        return f"DatafileReader(revision={self.get_revision()!r}, features={len(self._datafile.features)})"
