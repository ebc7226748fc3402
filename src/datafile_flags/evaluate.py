"""The evaluation cascade.

:func:`evaluate` resolves one aspect of a feature by trying, in order:
the implicit flag gate (for variations and variables), sticky overrides,
feature and variable lookup, force rules, required features, and finally
bucketing against traffic rules and allocations. The first step that
produces an answer wins. Every result carries an
:class:`~datafile_flags.types.EvaluationReason` naming that step.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from datafile_flags.bucketer import get_bucket_key, get_bucketed_number
from datafile_flags.exceptions import RequiredFeatureCycleError
from datafile_flags.hooks import BucketKeyHookOptions, BucketValueHookOptions
from datafile_flags.results import Evaluation
from datafile_flags.types import EvaluationReason, EvaluationType

if TYPE_CHECKING:
    from datafile_flags.datafile_reader import DatafileReader
    from datafile_flags.hooks import HooksManager
    from datafile_flags.models import Feature, Variation

__all__ = [
    "MAX_REQUIRED_DEPTH",
    "EvaluateOptions",
    "evaluate",
    "evaluate_with_hooks",
]

logger = logging.getLogger(__name__)

MAX_REQUIRED_DEPTH = 32


@dataclass(frozen=True, slots=True)
class EvaluateOptions:
    """A single evaluation request.

    Attributes:
        type: Which aspect of the feature to evaluate.
        feature_key: The feature to evaluate.
        datafile_reader: The datafile snapshot to evaluate against.
        hooks_manager: Hooks applied to bucketing (and, through
            :func:`evaluate_with_hooks`, to the request and the result).
        variable_key: The variable to resolve, for variable evaluations.
        context: Attributes of the subject being evaluated.
        sticky: Per-feature overrides that take precedence over the datafile.
        default_variation_value: Substituted when no variation resolves.
        default_variable_value: Substituted when no variable value resolves.
    """

    type: EvaluationType
    feature_key: str
    datafile_reader: DatafileReader
    hooks_manager: HooksManager
    variable_key: str | None = None
    context: Mapping[str, Any] = field(default_factory=dict)
    sticky: Mapping[str, Mapping[str, Any]] | None = None
    default_variation_value: str | None = None
    default_variable_value: Any = None


_EVALUATION_TYPES = frozenset(EvaluationType)


def _logged(evaluation: Evaluation, message: str, level: int = logging.DEBUG) -> Evaluation:
    if logger.isEnabledFor(level):
        logger.log(level, message, extra=evaluation.to_dict())
    return evaluation


def _error_evaluation(options: EvaluateOptions, error: Exception) -> Evaluation:
    # an unknown type is reported as given
    evaluation_type = options.type
    if isinstance(evaluation_type, str) and evaluation_type in _EVALUATION_TYPES:
        evaluation_type = EvaluationType(evaluation_type)
    evaluation = Evaluation(
        type=evaluation_type,
        feature_key=options.feature_key,
        reason=EvaluationReason.ERROR,
        variable_key=options.variable_key,
        error=error,
    )
    return _logged(evaluation, "error during evaluation", logging.ERROR)


def _raise_if_cycle(evaluation: Evaluation) -> None:
    if isinstance(evaluation.error, RequiredFeatureCycleError):
        raise evaluation.error


def evaluate(options: EvaluateOptions) -> Evaluation:
    """Run the evaluation cascade for one request.

    Never raises: any exception is returned as an evaluation with reason
    :attr:`~datafile_flags.types.EvaluationReason.ERROR`.

    Args:
        options: The evaluation request.

    Returns:
        The evaluation.
    """
    return _evaluate_in_chain(options, ())


def _evaluate_in_chain(options: EvaluateOptions, required_chain: tuple[str, ...]) -> Evaluation:
    try:
        return _evaluate(options, required_chain)
    except Exception as e:
        return _error_evaluation(options, e)


def evaluate_with_hooks(options: EvaluateOptions) -> Evaluation:
    """Evaluate with ``before`` and ``after`` hooks and default values applied.

    ``before`` hooks rewrite the request, the cascade runs, the request's
    default variation or variable value fills an empty result, and ``after``
    hooks rewrite the evaluation. An exception raised by a hook is returned
    as an ``error`` evaluation. Every ``after`` hook runs, even when an
    earlier stage failed.

    Args:
        options: The evaluation request.

    Returns:
        The evaluation.
    """
    hooks_manager = options.hooks_manager
    result_options = options
    try:
        result_options = hooks_manager.run_before_hooks(options)

        evaluation = evaluate(result_options)

        if (
            result_options.default_variation_value is not None
            and evaluation.type == EvaluationType.VARIATION
            and evaluation.variation_value is None
        ):
            evaluation = replace(evaluation, variation_value=result_options.default_variation_value)

        if (
            result_options.default_variable_value is not None
            and evaluation.type == EvaluationType.VARIABLE
            and evaluation.variable_value is None
        ):
            evaluation = replace(evaluation, variable_value=result_options.default_variable_value)
    except Exception as e:
        evaluation = _error_evaluation(options, e)

    for hook in hooks_manager.get_all():
        try:
            evaluation = hook.after(evaluation, result_options)
        except Exception as e:
            evaluation = _error_evaluation(result_options, e)
    return evaluation


def _required_features_are_enabled(
    feature: Feature, options: EvaluateOptions, required_chain: tuple[str, ...]
) -> bool:
    chain = (*required_chain, feature.key)

    for required in feature.required:
        if required.key in chain:
            raise RequiredFeatureCycleError((*chain, required.key))
        if len(chain) >= MAX_REQUIRED_DEPTH:
            msg = f"required features nested deeper than {MAX_REQUIRED_DEPTH} levels"
            raise RequiredFeatureCycleError((*chain, required.key), msg)

        required_options = replace(
            options,
            type=EvaluationType.FLAG,
            feature_key=required.key,
            variable_key=None,
        )
        required_evaluation = _evaluate_in_chain(required_options, chain)
        _raise_if_cycle(required_evaluation)
        if not required_evaluation.enabled:
            return False

        if required.variation is not None:
            variation_evaluation = _evaluate_in_chain(replace(required_options, type=EvaluationType.VARIATION), chain)
            _raise_if_cycle(variation_evaluation)
            if variation_evaluation.variation_value != required.variation:
                return False

    return True


def _matched_override_value(
    variation: Variation, variable_key: str, options: EvaluateOptions
) -> tuple[bool, Any]:
    reader = options.datafile_reader
    for override in variation.variable_overrides.get(variable_key, ()):
        if override.conditions is not None:
            matched = reader.all_conditions_are_matched(override.conditions, options.context)
        elif override.segments is not None:
            matched = reader.all_segments_are_matched(override.segments, options.context)
        else:
            matched = False

        if matched:
            return True, override.value
    return False, None


def _evaluate(options: EvaluateOptions, required_chain: tuple[str, ...]) -> Evaluation:
    evaluation_type = EvaluationType(options.type)
    feature_key = options.feature_key
    variable_key = options.variable_key
    context = options.context
    reader = options.datafile_reader

    def result(reason: EvaluationReason, **kwargs: Any) -> Evaluation:
        return Evaluation(type=evaluation_type, feature_key=feature_key, reason=reason, **kwargs)

    # flag gate for variations and variables
    if evaluation_type != EvaluationType.FLAG:
        flag = _evaluate_in_chain(replace(options, type=EvaluationType.FLAG, variable_key=None), required_chain)
        _raise_if_cycle(flag)

        if flag.enabled is False:
            feature = reader.get_feature(feature_key)
            evaluation = result(EvaluationReason.DISABLED, variable_key=variable_key, enabled=False)

            if evaluation_type == EvaluationType.VARIABLE and feature is not None and variable_key is not None:
                schema = feature.variables_schema.get(variable_key)
                if schema is not None and schema.disabled_value is not None:
                    evaluation = result(
                        EvaluationReason.VARIABLE_DISABLED,
                        variable_key=variable_key,
                        variable_value=schema.disabled_value,
                        variable_schema=schema,
                        enabled=False,
                    )
                elif schema is not None and schema.use_default_when_disabled:
                    evaluation = result(
                        EvaluationReason.VARIABLE_DEFAULT,
                        variable_key=variable_key,
                        variable_value=schema.default_value,
                        variable_schema=schema,
                        enabled=False,
                    )

            if (
                evaluation_type == EvaluationType.VARIATION
                and feature is not None
                and feature.disabled_variation_value is not None
            ):
                evaluation = result(
                    EvaluationReason.VARIATION_DISABLED,
                    variation_value=feature.disabled_variation_value,
                    enabled=False,
                )

            return _logged(evaluation, "feature is disabled")

    # sticky
    sticky_feature = options.sticky.get(feature_key) if options.sticky else None
    if sticky_feature:
        if evaluation_type == EvaluationType.FLAG and "enabled" in sticky_feature:
            return _logged(
                result(EvaluationReason.STICKY, sticky=sticky_feature, enabled=sticky_feature["enabled"]),
                "using sticky enabled",
            )

        if evaluation_type == EvaluationType.VARIATION and sticky_feature.get("variation") is not None:
            return _logged(
                result(EvaluationReason.STICKY, sticky=sticky_feature, variation_value=sticky_feature["variation"]),
                "using sticky variation",
            )

        if evaluation_type == EvaluationType.VARIABLE and variable_key is not None:
            sticky_variables = sticky_feature.get("variables") or {}
            if variable_key in sticky_variables:
                return _logged(
                    result(
                        EvaluationReason.STICKY,
                        sticky=sticky_feature,
                        variable_key=variable_key,
                        variable_value=sticky_variables[variable_key],
                    ),
                    "using sticky variable",
                )

    # feature
    feature = reader.get_feature(feature_key)
    if feature is None:
        return _logged(result(EvaluationReason.FEATURE_NOT_FOUND), "feature not found", logging.WARNING)

    if evaluation_type == EvaluationType.FLAG and feature.deprecated:
        logger.warning("feature is deprecated", extra={"feature_key": feature_key})

    # variable schema
    variable_schema = None
    if variable_key is not None:
        variable_schema = feature.variables_schema.get(variable_key)
        if variable_schema is None:
            return _logged(
                result(EvaluationReason.VARIABLE_NOT_FOUND, variable_key=variable_key),
                "variable schema not found",
                logging.WARNING,
            )
        if variable_schema.deprecated:
            logger.warning("variable is deprecated", extra={"feature_key": feature_key, "variable_key": variable_key})

    if evaluation_type == EvaluationType.VARIATION and not feature.variations:
        return _logged(result(EvaluationReason.NO_VARIATIONS), "no variations", logging.WARNING)

    # forced
    matched_force = reader.get_matched_force(feature, context)
    force = matched_force.force
    if force is not None:
        forced = {"force": force, "force_index": matched_force.force_index}

        if evaluation_type == EvaluationType.FLAG and force.enabled is not None:
            return _logged(result(EvaluationReason.FORCED, enabled=force.enabled, **forced), "forced enabled found")

        if evaluation_type == EvaluationType.VARIATION and force.variation is not None:
            variation = feature.get_variation(force.variation)
            if variation is not None:
                return _logged(
                    result(EvaluationReason.FORCED, variation=variation, variation_value=variation.value, **forced),
                    "forced variation found",
                )

        if variable_key is not None and variable_key in force.variables:
            return _logged(
                result(
                    EvaluationReason.FORCED,
                    variable_key=variable_key,
                    variable_schema=variable_schema,
                    variable_value=force.variables[variable_key],
                    **forced,
                ),
                "forced variable",
            )

    # required
    if (
        evaluation_type == EvaluationType.FLAG
        and feature.required
        and not _required_features_are_enabled(feature, options, required_chain)
    ):
        return _logged(
            result(EvaluationReason.REQUIRED, required=feature.required, enabled=False),
            "required features not enabled",
        )

    # bucketing
    bucket_key = get_bucket_key(feature_key, feature.bucket_by, context)
    bucket_key = options.hooks_manager.run_bucket_key_hooks(
        BucketKeyHookOptions(
            feature_key=feature_key,
            bucket_key=bucket_key,
            bucket_by=feature.bucket_by,
            context=context,
        )
    )
    bucket_value = get_bucketed_number(bucket_key)
    bucket_value = options.hooks_manager.run_bucket_value_hooks(
        BucketValueHookOptions(
            feature_key=feature_key,
            bucket_key=bucket_key,
            bucket_value=bucket_value,
            context=context,
        )
    )
    bucketed = {"bucket_key": bucket_key, "bucket_value": bucket_value}

    matched_traffic = reader.get_matched_traffic(feature.traffic, context)
    matched_allocation = None
    if matched_traffic is not None and evaluation_type != EvaluationType.FLAG:
        matched_allocation = reader.get_matched_allocation(matched_traffic, bucket_value)

    if matched_traffic is not None:
        ruled = {**bucketed, "rule_key": matched_traffic.key, "traffic": matched_traffic}

        # applies to every evaluation type
        if matched_traffic.percentage == 0:
            return _logged(result(EvaluationReason.RULE, enabled=False, **ruled), "matched rule with 0 percentage")

        if evaluation_type == EvaluationType.FLAG:
            if feature.ranges:
                in_range = any(start <= bucket_value < end for start, end in feature.ranges)
                if in_range:
                    enabled = matched_traffic.enabled if matched_traffic.enabled is not None else True
                    return _logged(result(EvaluationReason.ALLOCATED, enabled=enabled, **ruled), "matched range")

                return _logged(result(EvaluationReason.OUT_OF_RANGE, enabled=False, **bucketed), "out of range")

            if matched_traffic.enabled is not None:
                return _logged(
                    result(EvaluationReason.RULE, enabled=matched_traffic.enabled, **ruled),
                    "override from rule",
                )

            if bucket_value <= matched_traffic.percentage:
                return _logged(result(EvaluationReason.RULE, enabled=True, **ruled), "matched traffic")

        if evaluation_type == EvaluationType.VARIATION:
            if matched_traffic.variation is not None:
                variation = feature.get_variation(matched_traffic.variation)
                if variation is not None:
                    return _logged(
                        result(EvaluationReason.RULE, variation=variation, variation_value=variation.value, **ruled),
                        "override from rule",
                    )

            if matched_allocation is not None:
                variation = feature.get_variation(matched_allocation.variation)
                if variation is not None:
                    return _logged(
                        result(
                            EvaluationReason.ALLOCATED, variation=variation, variation_value=variation.value, **ruled
                        ),
                        "allocated variation",
                    )

    if evaluation_type == EvaluationType.VARIABLE and variable_key is not None:
        variabled = {
            **bucketed,
            "rule_key": matched_traffic.key if matched_traffic is not None else None,
            "traffic": matched_traffic,
            "variable_key": variable_key,
            "variable_schema": variable_schema,
        }

        if matched_traffic is not None and variable_key in matched_traffic.variables:
            return _logged(
                result(EvaluationReason.RULE, variable_value=matched_traffic.variables[variable_key], **variabled),
                "override from rule",
            )

        variation_value = None
        if force is not None and force.variation is not None:
            variation_value = force.variation
        elif matched_traffic is not None and matched_traffic.variation is not None:
            variation_value = matched_traffic.variation
        elif matched_allocation is not None:
            variation_value = matched_allocation.variation

        variation = feature.get_variation(variation_value) if variation_value is not None else None
        if variation is not None:
            found, override_value = _matched_override_value(variation, variable_key, options)
            if found:
                return _logged(
                    result(EvaluationReason.VARIABLE_OVERRIDE, variable_value=override_value, **variabled),
                    "variable override",
                )

            if variable_key in variation.variables:
                return _logged(
                    result(EvaluationReason.ALLOCATED, variable_value=variation.variables[variable_key], **variabled),
                    "allocated variable",
                )

    # nothing matched
    if evaluation_type == EvaluationType.VARIATION:
        return _logged(result(EvaluationReason.NO_MATCH, **bucketed), "no matched variation")

    if evaluation_type == EvaluationType.VARIABLE:
        if variable_schema is not None:
            return _logged(
                result(
                    EvaluationReason.VARIABLE_DEFAULT,
                    variable_key=variable_key,
                    variable_schema=variable_schema,
                    variable_value=variable_schema.default_value,
                    **bucketed,
                ),
                "using default value",
            )
        return _logged(
            result(EvaluationReason.VARIABLE_NOT_FOUND, variable_key=variable_key, **bucketed),
            "variable not found",
        )

    return _logged(result(EvaluationReason.NO_MATCH, enabled=False, **bucketed), "nothing matched")
