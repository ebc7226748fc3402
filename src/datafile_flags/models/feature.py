"""Feature model and its building blocks.

Every class here mirrors one object of the datafile wire format. Wire keys are
camelCase; attributes are snake_case. Optional overrides are ``None`` when the
datafile omits them, so an explicit ``false`` or ``0`` is never confused with
"not set".
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from datafile_flags.exceptions import DatafileError
from datafile_flags.models.conditions import ConditionTree, SegmentTree, parse_conditions, parse_segments
from datafile_flags.types import VariableType

__all__ = [
    "Allocation",
    "Feature",
    "ForceRule",
    "RequiredFeature",
    "TrafficRule",
    "VariableOverride",
    "VariableSchema",
    "Variation",
]


def _mapping(data: Mapping[str, Any], name: str, owner: str) -> dict[str, Any]:
    value = data.get(name)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        msg = f"'{name}' of {owner} must be an object"
        raise DatafileError(msg)
    return dict(value)


def _list(data: Mapping[str, Any], name: str, owner: str) -> list[Any]:
    value = data.get(name)
    if value is None:
        return []
    if not isinstance(value, list):
        msg = f"'{name}' of {owner} must be a list"
        raise DatafileError(msg)
    return value


def _optional_tree(data: Mapping[str, Any], name: str, parser: Any) -> Any:
    return parser(data[name]) if data.get(name) is not None else None


@dataclass(frozen=True, slots=True)
class Allocation:
    """A sub-range of bucket space mapped to a variation.

    Both ends of ``range`` are inclusive.
    """

    variation: str
    range: tuple[int, int]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Allocation:
        start, end = data["range"]
        return cls(variation=data["variation"], range=(start, end))


@dataclass(frozen=True, slots=True)
class TrafficRule:
    """A segment-gated slice of the rollout.

    Attributes:
        key: Rule key, reported as ``rule_key`` in evaluations.
        segments: Which contexts the rule applies to.
        percentage: Rollout size in the range ``0..100000``.
        allocation: Variation allocations, searched in order.
        enabled: Explicit enabled override, if any.
        variation: Explicit variation override, if any.
        variables: Variable value overrides.
    """

    key: str
    segments: SegmentTree
    percentage: int
    allocation: tuple[Allocation, ...] = ()
    enabled: bool | None = None
    variation: str | None = None
    variables: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TrafficRule:
        owner = f"traffic rule '{data.get('key')}'"
        return cls(
            key=data.get("key", ""),
            segments=parse_segments(data.get("segments")),
            percentage=data.get("percentage", 0),
            allocation=tuple(Allocation.from_dict(a) for a in _list(data, "allocation", owner)),
            enabled=data.get("enabled"),
            variation=data.get("variation"),
            variables=_mapping(data, "variables", owner),
        )


@dataclass(frozen=True, slots=True)
class ForceRule:
    """An override applied to contexts matching ``conditions`` or ``segments``."""

    conditions: ConditionTree | None = None
    segments: SegmentTree | None = None
    enabled: bool | None = None
    variation: str | None = None
    variables: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ForceRule:
        return cls(
            conditions=_optional_tree(data, "conditions", parse_conditions),
            segments=_optional_tree(data, "segments", parse_segments),
            enabled=data.get("enabled"),
            variation=data.get("variation"),
            variables=_mapping(data, "variables", "force rule"),
        )


@dataclass(frozen=True, slots=True)
class VariableOverride:
    """A variable value served inside a variation when its predicate matches."""

    value: Any
    conditions: ConditionTree | None = None
    segments: SegmentTree | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> VariableOverride:
        return cls(
            value=data.get("value"),
            conditions=_optional_tree(data, "conditions", parse_conditions),
            segments=_optional_tree(data, "segments", parse_segments),
        )


@dataclass(frozen=True, slots=True)
class Variation:
    """One arm of an experiment."""

    value: str
    variables: dict[str, Any] = field(default_factory=dict)
    variable_overrides: dict[str, tuple[VariableOverride, ...]] = field(default_factory=dict)
    weight: float | None = None
    description: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Variation:
        owner = f"variation '{data.get('value')}'"
        overrides = {
            variable_key: tuple(VariableOverride.from_dict(o) for o in items)
            for variable_key, items in _mapping(data, "variableOverrides", owner).items()
        }
        return cls(
            value=data["value"],
            variables=_mapping(data, "variables", owner),
            variable_overrides=overrides,
            weight=data.get("weight"),
            description=data.get("description"),
        )


@dataclass(frozen=True, slots=True)
class VariableSchema:
    """Typed contract of a feature variable."""

    key: str
    type: str
    default_value: Any = None
    disabled_value: Any = None
    use_default_when_disabled: bool = False
    deprecated: bool = False
    description: str | None = None

    @classmethod
    def from_dict(cls, key: str, data: Mapping[str, Any]) -> VariableSchema:
        variable_type = data.get("type", VariableType.STRING)
        if variable_type not in {t.value for t in VariableType}:
            msg = f"Invalid type for variable '{key}': {variable_type}"
            raise DatafileError(msg)
        return cls(
            key=data.get("key", key),
            type=variable_type,
            default_value=data.get("defaultValue"),
            disabled_value=data.get("disabledValue"),
            use_default_when_disabled=bool(data.get("useDefaultWhenDisabled", False)),
            deprecated=bool(data.get("deprecated", False)),
            description=data.get("description"),
        )


@dataclass(frozen=True, slots=True)
class RequiredFeature:
    """A feature that must be enabled (optionally with a given variation)."""

    key: str
    variation: str | None = None

    @classmethod
    def from_raw(cls, raw: str | Mapping[str, Any]) -> RequiredFeature:
        if isinstance(raw, str):
            return cls(key=raw)
        return cls(key=raw["key"], variation=raw.get("variation"))


@dataclass(frozen=True, slots=True)
class Feature:
    """A feature as described by the datafile.

    Attributes:
        key: Unique feature key.
        bucket_by: Bucketing strategy; validated when bucketing.
        traffic: Traffic rules in priority order.
        variations: Experiment arms.
        variables_schema: Variable schemas keyed by variable key.
        force: Force rules in priority order.
        required: Features that must be enabled for this one to be.
        ranges: Mutually exclusive bucket ranges (start inclusive, end exclusive).
        disabled_variation_value: Variation served when the feature is disabled.
        deprecated: Whether evaluating the feature should log a deprecation warning.
        hash: Content hash used to detect changes between datafiles.
    """

    key: str
    bucket_by: Any
    traffic: tuple[TrafficRule, ...] = ()
    variations: tuple[Variation, ...] = ()
    variables_schema: dict[str, VariableSchema] = field(default_factory=dict)
    force: tuple[ForceRule, ...] = ()
    required: tuple[RequiredFeature, ...] = ()
    ranges: tuple[tuple[int, int], ...] = ()
    disabled_variation_value: str | None = None
    deprecated: bool = False
    hash: str | None = None

    @classmethod
    def from_dict(cls, key: str, data: Mapping[str, Any]) -> Feature:
        """Build a feature from its datafile representation.

        Raises:
            DatafileError: If a nested collection has the wrong shape.
        """
        owner = f"feature '{key}'"
        if not isinstance(data, Mapping):
            msg = f"{owner} must be an object"
            raise DatafileError(msg)

        raw_schema = data.get("variablesSchema") or {}
        if isinstance(raw_schema, list):
            raw_schema = {item["key"]: item for item in raw_schema}
        if not isinstance(raw_schema, Mapping):
            msg = f"'variablesSchema' of {owner} must be an object"
            raise DatafileError(msg)

        return cls(
            key=data.get("key", key),
            bucket_by=data.get("bucketBy"),
            traffic=tuple(TrafficRule.from_dict(t) for t in _list(data, "traffic", owner)),
            variations=tuple(Variation.from_dict(v) for v in _list(data, "variations", owner)),
            variables_schema={k: VariableSchema.from_dict(k, v) for k, v in raw_schema.items()},
            force=tuple(ForceRule.from_dict(f) for f in _list(data, "force", owner)),
            required=tuple(RequiredFeature.from_raw(r) for r in _list(data, "required", owner)),
            ranges=tuple((start, end) for start, end in _list(data, "ranges", owner)),
            disabled_variation_value=data.get("disabledVariationValue"),
            deprecated=bool(data.get("deprecated", False)),
            hash=data.get("hash"),
        )

    def get_variation(self, value: str) -> Variation | None:
        """Return the variation with the given value, if any."""
        return next((v for v in self.variations if v.value == value), None)
