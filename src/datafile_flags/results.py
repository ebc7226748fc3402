"""Evaluation result."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from datafile_flags.models import ForceRule, RequiredFeature, TrafficRule, VariableSchema, Variation
from datafile_flags.types import EvaluationReason, EvaluationType

__all__ = ["Evaluation"]

_SCALAR_FIELDS = (
    "variable_key",
    "bucket_key",
    "bucket_value",
    "rule_key",
    "force_index",
    "enabled",
    "variation_value",
    "variable_value",
)


@dataclass(frozen=True, slots=True)
class Evaluation:
    """Outcome of evaluating one aspect (flag, variation or variable) of a feature.

    Only ``type``, ``feature_key`` and ``reason`` are always set; which other
    fields are populated depends on the rule that produced the result.

    Attributes:
        type: What was evaluated.
        feature_key: The evaluated feature.
        reason: Which rule produced this result.
        variable_key: The evaluated variable, for variable evaluations.
        bucket_key: The string that was hashed, once bucketing happened.
        bucket_value: The bucket in ``[0, 100000)``, once bucketing happened.
        rule_key: Key of the matched traffic rule.
        traffic: The matched traffic rule.
        force: The matched force rule.
        force_index: Position of ``force`` in the feature's force list.
        required: The feature's required features, when they blocked it.
        sticky: The sticky overrides that were applied.
        enabled: Whether the feature is enabled, for flag evaluations.
        variation: The resolved variation, when one exists in the datafile.
        variation_value: Value of the resolved variation.
        variable_value: The resolved variable value.
        variable_schema: Schema of the evaluated variable.
        error: The exception that was captured, for ``error`` results.
    """

    type: EvaluationType
    feature_key: str
    reason: EvaluationReason
    variable_key: str | None = None
    bucket_key: str | None = None
    bucket_value: int | None = None
    rule_key: str | None = None
    traffic: TrafficRule | None = None
    force: ForceRule | None = None
    force_index: int | None = None
    required: tuple[RequiredFeature, ...] | None = None
    sticky: Mapping[str, Any] | None = None
    enabled: bool | None = None
    variation: Variation | None = None
    variation_value: str | None = None
    variable_value: Any = None
    variable_schema: VariableSchema | None = None
    error: BaseException | None = None

    @property
    def is_error(self) -> bool:
        return self.reason == EvaluationReason.ERROR

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly summary for logging.

        Model references are reduced to their identifying values and unset
        fields are omitted.
        """
        data: dict[str, Any] = {
            "type": str(self.type),
            "feature_key": self.feature_key,
            "reason": str(self.reason),
        }
        for name in _SCALAR_FIELDS:
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        if self.variable_schema is not None:
            data["variable_type"] = self.variable_schema.type
        if self.required is not None:
            data["required"] = [r.key for r in self.required]
        if self.sticky is not None:
            data["sticky"] = dict(self.sticky)
        if self.error is not None:
            data["error"] = repr(self.error)
        return data
