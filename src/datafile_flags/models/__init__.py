"""Typed datafile models."""

from __future__ import annotations

from datafile_flags.models.conditions import (
    WILDCARD,
    AndNode,
    ConditionLeaf,
    ConditionTree,
    NeverMatch,
    NotNode,
    OrNode,
    SegmentRef,
    SegmentTree,
    Wildcard,
    parse_conditions,
    parse_segments,
)
from datafile_flags.models.datafile import EMPTY_DATAFILE, Datafile
from datafile_flags.models.feature import (
    Allocation,
    Feature,
    ForceRule,
    RequiredFeature,
    TrafficRule,
    VariableOverride,
    VariableSchema,
    Variation,
)
from datafile_flags.models.segment import Segment

__all__ = [
    "EMPTY_DATAFILE",
    "WILDCARD",
    "Allocation",
    "AndNode",
    "ConditionLeaf",
    "ConditionTree",
    "Datafile",
    "Feature",
    "ForceRule",
    "NeverMatch",
    "NotNode",
    "OrNode",
    "RequiredFeature",
    "Segment",
    "SegmentRef",
    "SegmentTree",
    "TrafficRule",
    "VariableOverride",
    "VariableSchema",
    "Variation",
    "Wildcard",
    "parse_conditions",
    "parse_segments",
]
