"""OpenTelemetry tracing and metrics for feature flag evaluations.

:class:`OTelHook` opens a ``feature_flag.evaluation`` span when an evaluation
starts and closes it when the evaluation ends, annotating it with the
reason, variation and (optionally) the resolved value. It also records an
evaluation counter and a latency histogram.

Example::

    from datafile_flags import FeatureFlagClient
    from datafile_flags.contrib.otel import OTelHook

    client = FeatureFlagClient(datafile=datafile, hooks=[OTelHook()])
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from datafile_flags.hooks import Hook
from datafile_flags.types import EvaluationType

try:
    from opentelemetry import metrics, trace
    from opentelemetry.trace import SpanKind, StatusCode

    OTEL_AVAILABLE = True
except ImportError:
    metrics = None  # type: ignore[assignment]
    trace = None  # type: ignore[assignment]
    SpanKind = None  # type: ignore[assignment,misc]
    StatusCode = None  # type: ignore[assignment,misc]
    OTEL_AVAILABLE = False

if TYPE_CHECKING:
    from datafile_flags.evaluate import EvaluateOptions
    from datafile_flags.results import Evaluation

__all__ = [
    "ATTR_ERROR_CODE",
    "ATTR_ERROR_MESSAGE",
    "ATTR_FLAG_KEY",
    "ATTR_FLAG_REASON",
    "ATTR_FLAG_TYPE",
    "ATTR_FLAG_VALUE",
    "ATTR_FLAG_VARIANT",
    "ATTR_TARGETING_KEY",
    "ATTR_VARIABLE_KEY",
    "METRIC_EVALUATION_COUNT",
    "METRIC_EVALUATION_LATENCY",
    "OTEL_AVAILABLE",
    "SPAN_NAME",
    "OTelHook",
]

SPAN_NAME = "feature_flag.evaluation"

ATTR_FLAG_KEY = "feature_flag.key"
ATTR_FLAG_TYPE = "feature_flag.type"
ATTR_FLAG_VARIANT = "feature_flag.variant"
ATTR_FLAG_REASON = "feature_flag.reason"
ATTR_FLAG_VALUE = "feature_flag.value"
ATTR_VARIABLE_KEY = "feature_flag.variable_key"
ATTR_ERROR_CODE = "feature_flag.error_code"
ATTR_ERROR_MESSAGE = "feature_flag.error_message"
ATTR_TARGETING_KEY = "feature_flag.targeting_key"

METRIC_EVALUATION_COUNT = "feature_flag.evaluation.count"
METRIC_EVALUATION_LATENCY = "feature_flag.evaluation.latency"

_active_spans: ContextVar[tuple[Any, ...]] = ContextVar("datafile_flags_active_spans", default=())


def _attribute_value(value: Any) -> Any:
    if isinstance(value, bool | int | float | str):
        return value
    return str(value)


class OTelHook(Hook):
    """Hook that traces evaluations and records evaluation metrics.

    Args:
        tracer: Tracer to use. Defaults to the global tracer provider's.
        meter: Meter to use. Defaults to the global meter provider's.
        record_values: Add resolved values to spans.
        targeting_key_attribute: Context attribute recorded as the
            targeting key, if present.
        name: Hook name.

    Raises:
        ImportError: If ``opentelemetry-api`` is not installed.
    """

    def __init__(
        self,
        tracer: Any = None,
        meter: Any = None,
        record_values: bool = False,
        targeting_key_attribute: str | None = "userId",
        name: str = "otel",
    ) -> None:
        if not OTEL_AVAILABLE:
            msg = "opentelemetry-api is required for OTelHook. Install it with: pip install datafile-flags[otel]"
            raise ImportError(msg)

        super().__init__(name)
        self._tracer = tracer if tracer is not None else trace.get_tracer("datafile_flags")
        self._meter = meter if meter is not None else metrics.get_meter("datafile_flags")
        self._record_values = record_values
        self._targeting_key_attribute = targeting_key_attribute
        self._span_start_times: dict[int, float] = {}

        self._evaluation_counter = self._meter.create_counter(
            name=METRIC_EVALUATION_COUNT,
            description="Number of feature flag evaluations",
            unit="1",
        )
        self._latency_histogram = self._meter.create_histogram(
            name=METRIC_EVALUATION_LATENCY,
            description="Feature flag evaluation latency",
            unit="ms",
        )

    @property
    def tracer(self) -> Any:
        return self._tracer

    @property
    def meter(self) -> Any:
        return self._meter

    @property
    def evaluation_counter(self) -> Any:
        return self._evaluation_counter

    @property
    def latency_histogram(self) -> Any:
        return self._latency_histogram

    def start_evaluation_span(
        self,
        feature_key: str,
        context: Mapping[str, Any] | None = None,
        evaluation_type: EvaluationType | str | None = None,
        variable_key: str | None = None,
    ) -> Any:
        """Start a span for an evaluation.

        Args:
            feature_key: The evaluated feature.
            context: The evaluation context.
            evaluation_type: ``flag``, ``variation`` or ``variable``.
            variable_key: The evaluated variable, if any.

        Returns:
            The started span.
        """
        attributes: dict[str, Any] = {ATTR_FLAG_KEY: feature_key}
        if evaluation_type is not None:
            attributes[ATTR_FLAG_TYPE] = str(evaluation_type)
        if variable_key is not None:
            attributes[ATTR_VARIABLE_KEY] = variable_key
        if context and self._targeting_key_attribute:
            targeting_key = context.get(self._targeting_key_attribute)
            if targeting_key is not None:
                attributes[ATTR_TARGETING_KEY] = _attribute_value(targeting_key)

        span = self._tracer.start_span(name=SPAN_NAME, kind=SpanKind.INTERNAL, attributes=attributes)
        self._span_start_times[id(span)] = time.perf_counter()
        return span

    def end_evaluation_span(self, span: Any, evaluation: Evaluation) -> None:
        """Annotate and end a span, and record metrics for the evaluation."""
        reason = str(evaluation.reason)
        span.set_attribute(ATTR_FLAG_REASON, reason)
        if evaluation.variation_value is not None:
            span.set_attribute(ATTR_FLAG_VARIANT, evaluation.variation_value)

        if self._record_values:
            value = self._evaluation_value(evaluation)
            if value is not None:
                span.set_attribute(ATTR_FLAG_VALUE, _attribute_value(value))

        if evaluation.error is not None:
            span.set_attribute(ATTR_ERROR_CODE, type(evaluation.error).__name__)
            span.set_attribute(ATTR_ERROR_MESSAGE, str(evaluation.error))
            span.record_exception(evaluation.error)
            span.set_status(StatusCode.ERROR, str(evaluation.error))
        else:
            span.set_status(StatusCode.OK)

        latency_ms = self._finish(span)
        metric_attributes = {
            ATTR_FLAG_KEY: evaluation.feature_key,
            ATTR_FLAG_TYPE: str(evaluation.type),
            ATTR_FLAG_REASON: reason,
        }
        self._evaluation_counter.add(1, metric_attributes)
        self._latency_histogram.record(latency_ms, metric_attributes)

    def record_evaluation(self, evaluation: Evaluation, context: Mapping[str, Any] | None = None) -> None:
        """Record an evaluation that was not traced from its start."""
        span = self.start_evaluation_span(
            evaluation.feature_key,
            context=context,
            evaluation_type=evaluation.type,
            variable_key=evaluation.variable_key,
        )
        self.end_evaluation_span(span, evaluation)

    def before(self, options: EvaluateOptions) -> EvaluateOptions:
        span = self.start_evaluation_span(
            options.feature_key,
            context=options.context,
            evaluation_type=options.type,
            variable_key=options.variable_key,
        )
        _active_spans.set((*_active_spans.get(), span))
        return options

    def after(self, evaluation: Evaluation, options: EvaluateOptions) -> Evaluation:
        spans = _active_spans.get()
        if not spans:
            self.record_evaluation(evaluation, options.context)
            return evaluation

        _active_spans.set(spans[:-1])
        self.end_evaluation_span(spans[-1], evaluation)
        return evaluation

    def _finish(self, span: Any) -> float:
        start_time = self._span_start_times.pop(id(span), None)
        span.end()
        if start_time is None:
            return 0.0
        return (time.perf_counter() - start_time) * 1000

    @staticmethod
    def _evaluation_value(evaluation: Evaluation) -> Any:
        if evaluation.type == EvaluationType.FLAG:
            return evaluation.enabled
        if evaluation.type == EvaluationType.VARIATION:
            return evaluation.variation_value
        return evaluation.variable_value
