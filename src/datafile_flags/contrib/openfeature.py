"""OpenFeature provider backed by a :class:`~datafile_flags.client.FeatureFlagClient`.

Boolean lookups resolve whether a feature is enabled, string lookups resolve
its variation. Variables are addressed as ``"<feature>.<variable>"`` and can
be resolved with any typed lookup.

Example::

    from openfeature import api

    from datafile_flags import FeatureFlagClient
    from datafile_flags.contrib.openfeature import DatafileFlagsProvider

    api.set_provider(DatafileFlagsProvider(FeatureFlagClient(datafile=Path("datafile.json"))))
    client = api.get_client()
    enabled = client.get_boolean_value("checkout", False)
    color = client.get_string_value("checkout.buttonColor", "blue")
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from openfeature.evaluation_context import EvaluationContext
from openfeature.exception import ErrorCode
from openfeature.flag_evaluation import FlagResolutionDetails, Reason
from openfeature.provider import AbstractProvider, Metadata

from datafile_flags.exceptions import DatafileError
from datafile_flags.types import EvaluationReason, VariableType

if TYPE_CHECKING:
    from openfeature.hook import Hook

    from datafile_flags.client import FeatureFlagClient
    from datafile_flags.results import Evaluation

__all__ = [
    "DatafileFlagsProvider",
    "adapt_evaluation_context",
    "map_error_code",
    "map_reason",
]

logger = logging.getLogger(__name__)

PROVIDER_NAME = "datafile-flags"

_REASON_MAP: dict[EvaluationReason, Reason] = {
    EvaluationReason.FEATURE_NOT_FOUND: Reason.DEFAULT,
    EvaluationReason.DISABLED: Reason.DISABLED,
    EvaluationReason.REQUIRED: Reason.DISABLED,
    EvaluationReason.OUT_OF_RANGE: Reason.SPLIT,
    EvaluationReason.NO_VARIATIONS: Reason.DEFAULT,
    EvaluationReason.VARIATION_DISABLED: Reason.DISABLED,
    EvaluationReason.VARIABLE_NOT_FOUND: Reason.DEFAULT,
    EvaluationReason.VARIABLE_DEFAULT: Reason.DEFAULT,
    EvaluationReason.VARIABLE_DISABLED: Reason.DISABLED,
    EvaluationReason.VARIABLE_OVERRIDE: Reason.TARGETING_MATCH,
    EvaluationReason.NO_MATCH: Reason.DEFAULT,
    EvaluationReason.FORCED: Reason.TARGETING_MATCH,
    EvaluationReason.STICKY: Reason.STATIC,
    EvaluationReason.RULE: Reason.TARGETING_MATCH,
    EvaluationReason.ALLOCATED: Reason.SPLIT,
    EvaluationReason.ERROR: Reason.ERROR,
}


def map_reason(reason: EvaluationReason | None) -> Reason:
    """Map an evaluation reason onto an OpenFeature reason."""
    if reason is None:
        return Reason.UNKNOWN
    return _REASON_MAP.get(reason, Reason.UNKNOWN)


def map_error_code(evaluation: Evaluation | None) -> ErrorCode | None:
    """Return the OpenFeature error code for an evaluation, if it failed.

    Missing features and variables map to ``FLAG_NOT_FOUND``, datafile
    problems to ``PARSE_ERROR`` and any other error to ``GENERAL``.
    """
    if evaluation is None:
        return None
    if evaluation.reason in (EvaluationReason.FEATURE_NOT_FOUND, EvaluationReason.VARIABLE_NOT_FOUND):
        return ErrorCode.FLAG_NOT_FOUND
    if evaluation.reason == EvaluationReason.ERROR:
        if isinstance(evaluation.error, DatafileError):
            return ErrorCode.PARSE_ERROR
        return ErrorCode.GENERAL
    return None


def adapt_evaluation_context(
    evaluation_context: EvaluationContext | None,
    targeting_key_attribute: str = "userId",
) -> dict[str, Any]:
    """Convert an OpenFeature evaluation context into a datafile-flags context.

    Attributes are copied as is. The targeting key is stored under
    ``targeting_key_attribute`` unless the attributes already set it.
    """
    if evaluation_context is None:
        return {}

    context: dict[str, Any] = dict(evaluation_context.attributes or {})
    if evaluation_context.targeting_key is not None:
        context.setdefault(targeting_key_attribute, evaluation_context.targeting_key)
    return context


class DatafileFlagsProvider(AbstractProvider):
    """OpenFeature provider that evaluates against a datafile.

    Args:
        client: The client to evaluate with.
        hooks: OpenFeature hooks returned by :meth:`get_provider_hooks`.
        variable_separator: Separates the feature key from the variable key
            in flag keys that address a variable.
        targeting_key_attribute: Context attribute that receives the
            OpenFeature targeting key.
    """

    def __init__(
        self,
        client: FeatureFlagClient,
        hooks: Sequence[Hook] | None = None,
        variable_separator: str = ".",
        targeting_key_attribute: str = "userId",
    ) -> None:
        super().__init__()
        self._client = client
        self._hooks = list(hooks or [])
        self._variable_separator = variable_separator
        self._targeting_key_attribute = targeting_key_attribute

    def get_metadata(self) -> Metadata:
        return Metadata(name=PROVIDER_NAME)

    def get_provider_hooks(self) -> list[Hook]:
        return self._hooks

    def shutdown(self) -> None:
        self._client.close()

    def _split_key(self, flag_key: str) -> tuple[str, str | None]:
        if self._client.get_feature(flag_key) is not None or self._variable_separator not in flag_key:
            return flag_key, None
        feature_key, _, variable_key = flag_key.partition(self._variable_separator)
        return feature_key, variable_key

    def _metadata(self, evaluation: Evaluation) -> dict[str, Any]:
        metadata: dict[str, Any] = {"revision": self._client.get_revision()}
        if evaluation.rule_key is not None:
            metadata["rule_key"] = evaluation.rule_key
        if evaluation.bucket_value is not None:
            metadata["bucket_value"] = evaluation.bucket_value
        return metadata

    def _default(
        self,
        default_value: Any,
        evaluation: Evaluation | None = None,
        error_code: ErrorCode | None = None,
        error_message: str | None = None,
    ) -> FlagResolutionDetails[Any]:
        if error_code is None:
            error_code = map_error_code(evaluation)
        if error_message is None and evaluation is not None and evaluation.error is not None:
            error_message = str(evaluation.error)
        if error_code is not None and error_code != ErrorCode.FLAG_NOT_FOUND:
            reason = Reason.ERROR
        elif evaluation is None:
            reason = Reason.DEFAULT
        else:
            reason = map_reason(evaluation.reason)
        return FlagResolutionDetails(
            value=default_value,
            reason=reason,
            error_code=error_code,
            error_message=error_message,
            flag_metadata=self._metadata(evaluation) if evaluation is not None else {},
        )

    def _resolved(self, value: Any, evaluation: Evaluation) -> FlagResolutionDetails[Any]:
        return FlagResolutionDetails(
            value=value,
            reason=map_reason(evaluation.reason),
            variant=evaluation.variation_value,
            flag_metadata=self._metadata(evaluation),
        )

    def _resolve_variable(
        self,
        feature_key: str,
        variable_key: str,
        default_value: Any,
        context: Mapping[str, Any],
        accepts: tuple[type, ...],
    ) -> FlagResolutionDetails[Any]:
        evaluation = self._client.evaluate_variable(feature_key, variable_key, context)
        value = evaluation.variable_value
        if value is None:
            return self._default(default_value, evaluation)

        if (
            isinstance(value, str)
            and evaluation.variable_schema is not None
            and evaluation.variable_schema.type == VariableType.JSON
            and str not in accepts
        ):
            try:
                value = json.loads(value)
            except json.JSONDecodeError as e:
                return self._default(default_value, evaluation, ErrorCode.PARSE_ERROR, str(e))

        if isinstance(value, bool) and bool not in accepts:
            return self._type_mismatch(default_value, feature_key, value, evaluation)
        if not isinstance(value, accepts):
            return self._type_mismatch(default_value, feature_key, value, evaluation)
        if float in accepts and isinstance(value, int):
            value = float(value)
        return self._resolved(value, evaluation)

    def _type_mismatch(
        self, default_value: Any, flag_key: str, value: Any, evaluation: Evaluation | None = None
    ) -> FlagResolutionDetails[Any]:
        message = f"Flag '{flag_key}' resolved to {type(value).__name__}"
        return self._default(default_value, evaluation, ErrorCode.TYPE_MISMATCH, message)

    def _general_error(self, default_value: Any, flag_key: str, error: Exception) -> FlagResolutionDetails[Any]:
        logger.exception("openfeature resolution failed", extra={"flag_key": flag_key})
        return FlagResolutionDetails(
            value=default_value,
            reason=Reason.ERROR,
            error_code=ErrorCode.GENERAL,
            error_message=str(error),
        )

    def resolve_boolean_details(
        self,
        flag_key: str,
        default_value: bool,
        evaluation_context: EvaluationContext | None = None,
    ) -> FlagResolutionDetails[bool]:
        try:
            context = adapt_evaluation_context(evaluation_context, self._targeting_key_attribute)
            feature_key, variable_key = self._split_key(flag_key)
            if variable_key is not None:
                return self._resolve_variable(feature_key, variable_key, default_value, context, (bool,))

            evaluation = self._client.evaluate_flag(feature_key, context)
            if evaluation.enabled is None or map_error_code(evaluation) is not None:
                return self._default(default_value, evaluation)
            return self._resolved(evaluation.enabled, evaluation)
        except Exception as e:
            return self._general_error(default_value, flag_key, e)

    def resolve_string_details(
        self,
        flag_key: str,
        default_value: str,
        evaluation_context: EvaluationContext | None = None,
    ) -> FlagResolutionDetails[str]:
        try:
            context = adapt_evaluation_context(evaluation_context, self._targeting_key_attribute)
            feature_key, variable_key = self._split_key(flag_key)
            if variable_key is not None:
                return self._resolve_variable(feature_key, variable_key, default_value, context, (str,))

            evaluation = self._client.evaluate_variation(feature_key, context)
            value = evaluation.variation_value
            if value is None and evaluation.variation is not None:
                value = evaluation.variation.value
            if value is None:
                return self._default(default_value, evaluation)
            return self._resolved(value, evaluation)
        except Exception as e:
            return self._general_error(default_value, flag_key, e)

    def _resolve_variable_only(
        self,
        flag_key: str,
        default_value: Any,
        evaluation_context: EvaluationContext | None,
        accepts: tuple[type, ...],
    ) -> FlagResolutionDetails[Any]:
        try:
            context = adapt_evaluation_context(evaluation_context, self._targeting_key_attribute)
            feature_key, variable_key = self._split_key(flag_key)
            if variable_key is None:
                message = f"Flag '{flag_key}' must address a variable as 'feature{self._variable_separator}variable'"
                return self._default(default_value, None, ErrorCode.TYPE_MISMATCH, message)
            return self._resolve_variable(feature_key, variable_key, default_value, context, accepts)
        except Exception as e:
            return self._general_error(default_value, flag_key, e)

    def resolve_integer_details(
        self,
        flag_key: str,
        default_value: int,
        evaluation_context: EvaluationContext | None = None,
    ) -> FlagResolutionDetails[int]:
        return self._resolve_variable_only(flag_key, default_value, evaluation_context, (int,))

    def resolve_float_details(
        self,
        flag_key: str,
        default_value: float,
        evaluation_context: EvaluationContext | None = None,
    ) -> FlagResolutionDetails[float]:
        return self._resolve_variable_only(flag_key, default_value, evaluation_context, (int, float))

    def resolve_object_details(
        self,
        flag_key: str,
        default_value: dict | list,
        evaluation_context: EvaluationContext | None = None,
    ) -> FlagResolutionDetails[dict | list]:
        return self._resolve_variable_only(flag_key, default_value, evaluation_context, (dict, list))
