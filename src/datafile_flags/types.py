"""Enumerations used throughout datafile-flags."""

from __future__ import annotations

from enum import StrEnum

__all__ = [
    "ConditionOperator",
    "EvaluationReason",
    "EvaluationType",
    "VariableType",
]


class EvaluationType(StrEnum):
    """The aspect of a feature being evaluated."""

    FLAG = "flag"
    VARIATION = "variation"
    VARIABLE = "variable"


class EvaluationReason(StrEnum):
    """Machine-readable explanation of which rule produced an evaluation.

    The values are part of the cross-SDK contract and must not change.
    """

    # feature specific
    FEATURE_NOT_FOUND = "feature_not_found"
    DISABLED = "disabled"
    REQUIRED = "required"
    OUT_OF_RANGE = "out_of_range"

    # variation specific
    NO_VARIATIONS = "no_variations"
    VARIATION_DISABLED = "variation_disabled"

    # variable specific
    VARIABLE_NOT_FOUND = "variable_not_found"
    VARIABLE_DEFAULT = "variable_default"
    VARIABLE_DISABLED = "variable_disabled"
    VARIABLE_OVERRIDE = "variable_override"

    # common
    NO_MATCH = "no_match"
    FORCED = "forced"
    STICKY = "sticky"
    RULE = "rule"
    ALLOCATED = "allocated"

    ERROR = "error"


class ConditionOperator(StrEnum):
    """Operators supported by condition leaves."""

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"

    BEFORE = "before"
    AFTER = "after"

    IN = "in"
    NOT_IN = "notIn"

    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"

    MATCHES = "matches"
    NOT_MATCHES = "notMatches"

    SEMVER_EQUALS = "semverEquals"
    SEMVER_NOT_EQUALS = "semverNotEquals"
    SEMVER_GREATER_THAN = "semverGreaterThan"
    SEMVER_GREATER_THAN_OR_EQUALS = "semverGreaterThanOrEquals"
    SEMVER_LESS_THAN = "semverLessThan"
    SEMVER_LESS_THAN_OR_EQUALS = "semverLessThanOrEquals"

    GREATER_THAN = "greaterThan"
    GREATER_THAN_OR_EQUALS = "greaterThanOrEquals"
    LESS_THAN = "lessThan"
    LESS_THAN_OR_EQUALS = "lessThanOrEquals"

    EXISTS = "exists"
    NOT_EXISTS = "notExists"

    INCLUDES = "includes"
    NOT_INCLUDES = "notIncludes"


class VariableType(StrEnum):
    """Declared type of a feature variable."""

    STRING = "string"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    DOUBLE = "double"
    ARRAY = "array"
    OBJECT = "object"
    JSON = "json"
