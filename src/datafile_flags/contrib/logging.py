"""Structured logging of feature flag evaluations.

:class:`LoggingHook` logs every evaluation it sees. It uses structlog when it
is installed and the standard library otherwise.

Example::

    from datafile_flags import FeatureFlagClient
    from datafile_flags.contrib.logging import LoggingHook

    client = FeatureFlagClient(datafile=datafile, hooks=[LoggingHook(evaluation_level="INFO")])
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from datafile_flags.hooks import Hook

try:
    import structlog

    STRUCTLOG_AVAILABLE = True
except ImportError:
    structlog = None  # type: ignore[assignment]
    STRUCTLOG_AVAILABLE = False

if TYPE_CHECKING:
    from datafile_flags.evaluate import EvaluateOptions
    from datafile_flags.results import Evaluation

__all__ = ["STRUCTLOG_AVAILABLE", "LoggerProtocol", "LoggingHook"]


@runtime_checkable
class LoggerProtocol(Protocol):
    """Methods a logger passed to :class:`LoggingHook` must provide."""

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> Any: ...

    def info(self, msg: str, *args: Any, **kwargs: Any) -> Any: ...

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> Any: ...

    def error(self, msg: str, *args: Any, **kwargs: Any) -> Any: ...


def _get_default_logger() -> Any:
    if STRUCTLOG_AVAILABLE and structlog is not None:
        return structlog.get_logger("datafile_flags")
    return logging.getLogger("datafile_flags")


class LoggingHook(Hook):
    """Hook that logs feature flag evaluations.

    Successful evaluations are logged at ``evaluation_level``, evaluations
    with reason ``error`` at ``error_level`` together with the captured
    exception.

    Args:
        logger: A structlog or stdlib logger. Defaults to the
            ``datafile_flags`` logger.
        evaluation_level: Level for successful evaluations.
        error_level: Level for failed evaluations.
        log_values: Include resolved values in log records.
        include_context: Include the evaluation context in log records.
        name: Hook name.
    """

    def __init__(
        self,
        logger: LoggerProtocol | None = None,
        evaluation_level: str = "DEBUG",
        error_level: str = "ERROR",
        log_values: bool = False,
        include_context: bool = True,
        name: str = "logging",
    ) -> None:
        super().__init__(name)
        self._logger = logger if logger is not None else _get_default_logger()
        self._use_structlog = STRUCTLOG_AVAILABLE and not isinstance(self._logger, logging.Logger)
        self._evaluation_level = evaluation_level.upper()
        self._error_level = error_level.upper()
        self._log_values = log_values
        self._include_context = include_context
        self._bound: dict[str, Any] = {}

    @property
    def logger(self) -> Any:
        return self._logger

    def _get_log_method(self, level: str) -> Any:
        method_name = {
            "DEBUG": "debug",
            "INFO": "info",
            "WARNING": "warning",
            "ERROR": "error",
            "CRITICAL": "critical",
        }.get(level, "debug")
        return getattr(self._logger, method_name)

    def _log_with_data(self, level: str, msg: str, data: dict[str, Any], exc_info: Any = None) -> None:
        log_method = self._get_log_method(level)
        if self._use_structlog:
            if exc_info is not None:
                log_method(msg, exc_info=exc_info, **data)
            else:
                log_method(msg, **data)
        elif exc_info is not None:
            log_method(msg, exc_info=exc_info, extra=data)
        else:
            log_method(msg, extra=data)

    def _build_log_data(self, evaluation: Evaluation, context: Mapping[str, Any] | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            **self._bound,
            "feature_key": evaluation.feature_key,
            "evaluation_type": str(evaluation.type),
            "reason": str(evaluation.reason),
        }
        if evaluation.variable_key is not None:
            data["variable_key"] = evaluation.variable_key
        if evaluation.rule_key is not None:
            data["rule_key"] = evaluation.rule_key
        if evaluation.bucket_value is not None:
            data["bucket_value"] = evaluation.bucket_value
        if evaluation.variation_value is not None:
            data["variation"] = evaluation.variation_value

        if self._log_values:
            if evaluation.enabled is not None:
                data["enabled"] = evaluation.enabled
            if evaluation.variable_value is not None:
                data["value"] = evaluation.variable_value

        if evaluation.error is not None:
            data["error_type"] = type(evaluation.error).__name__
            data["error_message"] = str(evaluation.error)

        if self._include_context and context:
            data["context"] = dict(context)

        return data

    def log_evaluation(self, evaluation: Evaluation, context: Mapping[str, Any] | None = None) -> None:
        """Log a single evaluation."""
        data = self._build_log_data(evaluation, context)
        if evaluation.is_error:
            self._log_with_data(
                self._error_level,
                f"Feature flag evaluation error: {evaluation.feature_key}",
                data,
                exc_info=evaluation.error,
            )
        else:
            self._log_with_data(self._evaluation_level, f"Feature flag evaluated: {evaluation.feature_key}", data)

    def before(self, options: EvaluateOptions) -> EvaluateOptions:
        data: dict[str, Any] = {**self._bound, "feature_key": options.feature_key, "evaluation_type": str(options.type)}
        if options.variable_key is not None:
            data["variable_key"] = options.variable_key
        if self._include_context and options.context:
            data["context"] = dict(options.context)
        self._log_with_data(self._evaluation_level, f"Starting feature flag evaluation: {options.feature_key}", data)
        return options

    def after(self, evaluation: Evaluation, options: EvaluateOptions) -> Evaluation:
        self.log_evaluation(evaluation, options.context)
        return evaluation

    def bind(self, **kwargs: Any) -> LoggingHook:
        """Return a copy of this hook that adds ``kwargs`` to every record."""
        new_hook = LoggingHook(
            logger=self._logger,
            evaluation_level=self._evaluation_level,
            error_level=self._error_level,
            log_values=self._log_values,
            include_context=self._include_context,
            name=self.name,
        )
        if self._use_structlog and structlog is not None:
            new_hook._logger = self._logger.bind(**kwargs)
            new_hook._use_structlog = True
        else:
            new_hook._use_structlog = self._use_structlog
            new_hook._bound = {**self._bound, **kwargs}
        return new_hook
