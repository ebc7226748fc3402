"""Feature flag client.

:class:`FeatureFlagClient` owns the current datafile, a default context,
sticky overrides, hooks and an event emitter, and exposes the evaluation API
used by applications. It is safe to share between threads: the datafile
reader, context and sticky overrides are replaced wholesale, never mutated,
so every evaluation sees one consistent snapshot.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass
from typing import Any

from datafile_flags.datafile_reader import DatafileReader
from datafile_flags.emitter import Emitter, EventName, Listener
from datafile_flags.evaluate import EvaluateOptions, evaluate_with_hooks
from datafile_flags.events import get_params_for_datafile_set_event, get_params_for_sticky_set_event
from datafile_flags.exceptions import DatafileError
from datafile_flags.hooks import Hook, HooksManager
from datafile_flags.loader import DatafileLoader, DatafileSource
from datafile_flags.models import Feature
from datafile_flags.results import Evaluation
from datafile_flags.types import EvaluationType, VariableType
from datafile_flags.variables import convert_variable_value

__all__ = ["ChildClient", "EvaluationOverrides", "FeatureFlagClient"]

logger = logging.getLogger(__name__)

Context = Mapping[str, Any]
Sticky = Mapping[str, Mapping[str, Any]]


@dataclass(frozen=True, slots=True)
class EvaluationOverrides:
    """Per-call evaluation options.

    Attributes:
        sticky: Sticky overrides merged over the client's own for this call.
        default_variation_value: Returned when no variation resolves.
        default_variable_value: Returned when no variable value resolves.
    """

    sticky: Sticky | None = None
    default_variation_value: str | None = None
    default_variable_value: Any = None


_NO_OVERRIDES = EvaluationOverrides()


class FeatureFlagClient:
    """Evaluates features against a datafile.

    Example::

        client = FeatureFlagClient(datafile=Path("datafile.json"), context={"country": "nl"})
        if client.is_enabled("checkout", {"userId": "123"}):
            variation = client.get_variation("checkout", {"userId": "123"})

    Args:
        datafile: Initial datafile (mapping, JSON string, path, or parsed
            datafile). Defaults to an empty datafile.
        context: Default context merged under every call's context.
        sticky: Sticky overrides applied to every evaluation.
        hooks: Hooks to register.

    Raises:
        DatafileError: If the initial datafile cannot be loaded.
    """

    def __init__(
        self,
        datafile: DatafileSource | None = None,
        context: Context | None = None,
        sticky: Sticky | None = None,
        hooks: Sequence[Hook] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._loader = DatafileLoader()
        self._context: dict[str, Any] = dict(context or {})
        self._sticky: dict[str, Mapping[str, Any]] = dict(sticky or {})
        self._hooks_manager = HooksManager(hooks)
        self._emitter = Emitter()
        self._datafile_reader = DatafileReader(self._loader.load(datafile))

        logger.info("feature flag client initialized", extra={"revision": self.get_revision()})

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def datafile_reader(self) -> DatafileReader:
        """The reader for the current datafile."""
        return self._datafile_reader

    @property
    def hooks_manager(self) -> HooksManager:
        return self._hooks_manager

    def set_log_level(self, level: int | str) -> None:
        """Set the level of the ``datafile_flags`` logger hierarchy."""
        logging.getLogger("datafile_flags").setLevel(level)

    def set_datafile(self, datafile: DatafileSource) -> None:
        """Replace the current datafile.

        Emits ``datafile_set`` with the revisions and the keys of added,
        removed and changed features. A datafile that cannot be loaded is
        logged and the current one stays in place.
        """
        try:
            new_reader = DatafileReader(self._loader.load(datafile))
        except DatafileError:
            logger.exception("could not parse datafile")
            return

        with self._lock:
            details = get_params_for_datafile_set_event(self._datafile_reader, new_reader)
            self._datafile_reader = new_reader

        logger.info("datafile set", extra=asdict(details))
        self._emitter.trigger(EventName.DATAFILE_SET, details)

    def get_revision(self) -> str:
        return self._datafile_reader.get_revision()

    def get_feature(self, feature_key: str) -> Feature | None:
        return self._datafile_reader.get_feature(feature_key)

    def set_context(self, context: Context, replace: bool = False) -> None:
        """Update the default context.

        Args:
            context: Attributes to set.
            replace: Replace the whole context instead of merging into it.
        """
        with self._lock:
            self._context = dict(context) if replace else {**self._context, **context}
            new_context = self._context

        self._emitter.trigger(EventName.CONTEXT_SET, {"context": new_context, "replaced": replace})
        logger.debug("context replaced" if replace else "context updated", extra={"replaced": replace})

    def get_context(self, context: Context | None = None) -> dict[str, Any]:
        """Return the default context with ``context`` merged over it."""
        if context:
            return {**self._context, **context}
        return dict(self._context)

    def set_sticky(self, sticky: Sticky, replace: bool = False) -> None:
        """Update the sticky overrides.

        Args:
            sticky: Overrides keyed by feature key.
            replace: Replace all overrides instead of merging into them.
        """
        with self._lock:
            previous = self._sticky
            self._sticky = dict(sticky) if replace else {**self._sticky, **sticky}
            details = get_params_for_sticky_set_event(previous, self._sticky, replace)

        logger.info("sticky features set", extra=asdict(details))
        self._emitter.trigger(EventName.STICKY_SET, details)

    def add_hook(self, hook: Hook) -> Callable[[], None] | None:
        return self._hooks_manager.add(hook)

    def on(self, event_name: str, callback: Listener) -> Callable[[], None]:
        """Subscribe to ``datafile_set``, ``context_set`` or ``sticky_set``.

        Returns:
            A callable that unsubscribes the listener.
        """
        return self._emitter.on(event_name, callback)

    def close(self) -> None:
        """Remove all event listeners."""
        self._emitter.clear_all()

    def spawn(self, context: Context | None = None, sticky: Sticky | None = None) -> ChildClient:
        """Create a child client with its own context and sticky overrides.

        The child evaluates against this client's datafile and hooks.
        """
        return ChildClient(self, context=self.get_context(context), sticky=sticky)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _options(
        self,
        evaluation_type: EvaluationType,
        feature_key: str,
        context: Context | None,
        overrides: EvaluationOverrides | None,
        variable_key: str | None = None,
    ) -> EvaluateOptions:
        overrides = overrides or _NO_OVERRIDES
        sticky = {**self._sticky, **overrides.sticky} if overrides.sticky else self._sticky
        return EvaluateOptions(
            type=evaluation_type,
            feature_key=feature_key,
            variable_key=variable_key,
            context=self.get_context(context),
            sticky=sticky,
            datafile_reader=self._datafile_reader,
            hooks_manager=self._hooks_manager,
            default_variation_value=overrides.default_variation_value,
            default_variable_value=overrides.default_variable_value,
        )

    def evaluate_flag(
        self, feature_key: str, context: Context | None = None, overrides: EvaluationOverrides | None = None
    ) -> Evaluation:
        return evaluate_with_hooks(self._options(EvaluationType.FLAG, feature_key, context, overrides))

    def evaluate_variation(
        self, feature_key: str, context: Context | None = None, overrides: EvaluationOverrides | None = None
    ) -> Evaluation:
        return evaluate_with_hooks(self._options(EvaluationType.VARIATION, feature_key, context, overrides))

    def evaluate_variable(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> Evaluation:
        return evaluate_with_hooks(
            self._options(EvaluationType.VARIABLE, feature_key, context, overrides, variable_key=variable_key)
        )

    def is_enabled(
        self, feature_key: str, context: Context | None = None, overrides: EvaluationOverrides | None = None
    ) -> bool:
        """Return whether a feature is enabled; ``False`` on any error."""
        try:
            return self.evaluate_flag(feature_key, context, overrides).enabled is True
        except Exception:
            logger.exception("is_enabled failed", extra={"feature_key": feature_key})
            return False

    def get_variation(
        self, feature_key: str, context: Context | None = None, overrides: EvaluationOverrides | None = None
    ) -> str | None:
        """Return the variation value for a feature; ``None`` on any error."""
        try:
            evaluation = self.evaluate_variation(feature_key, context, overrides)
        except Exception:
            logger.exception("get_variation failed", extra={"feature_key": feature_key})
            return None

        if evaluation.variation_value is not None:
            return evaluation.variation_value
        if evaluation.variation is not None:
            return evaluation.variation.value
        return None

    def get_variable(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> Any:
        """Return a variable's value; ``None`` on any error.

        Values of ``json`` variables given as strings are decoded.
        """
        try:
            evaluation = self.evaluate_variable(feature_key, variable_key, context, overrides)
            value = evaluation.variable_value
            if (
                isinstance(value, str)
                and evaluation.variable_schema is not None
                and evaluation.variable_schema.type == VariableType.JSON
            ):
                return json.loads(value)
            return value
        except Exception:
            logger.exception("get_variable failed", extra={"feature_key": feature_key, "variable_key": variable_key})
            return None

    def _get_typed_variable(
        self,
        variable_type: VariableType,
        feature_key: str,
        variable_key: str,
        context: Context | None,
        overrides: EvaluationOverrides | None,
    ) -> Any:
        value = self.get_variable(feature_key, variable_key, context, overrides)
        return convert_variable_value(value, variable_type)

    def get_variable_boolean(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> bool | None:
        return self._get_typed_variable(VariableType.BOOLEAN, feature_key, variable_key, context, overrides)

    def get_variable_string(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> str | None:
        return self._get_typed_variable(VariableType.STRING, feature_key, variable_key, context, overrides)

    def get_variable_integer(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> int | None:
        return self._get_typed_variable(VariableType.INTEGER, feature_key, variable_key, context, overrides)

    def get_variable_double(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> float | None:
        return self._get_typed_variable(VariableType.DOUBLE, feature_key, variable_key, context, overrides)

    def get_variable_array(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> list[Any] | None:
        return self._get_typed_variable(VariableType.ARRAY, feature_key, variable_key, context, overrides)

    def get_variable_object(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> dict[str, Any] | None:
        return self._get_typed_variable(VariableType.OBJECT, feature_key, variable_key, context, overrides)

    def get_variable_json(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> Any:
        return self._get_typed_variable(VariableType.JSON, feature_key, variable_key, context, overrides)

    def get_all_evaluations(
        self,
        context: Context | None = None,
        feature_keys: Iterable[str] | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> dict[str, dict[str, Any]]:
        """Evaluate every aspect of several features at once.

        Args:
            context: Context for all evaluations.
            feature_keys: Features to evaluate; all features in the datafile by default.
            overrides: Per-call options applied to every evaluation.

        Returns:
            For each feature: ``enabled``, plus ``variation`` when the feature
            has variations and one resolves, plus ``variables`` when it
            declares any.
        """
        reader = self._datafile_reader
        keys = list(feature_keys) if feature_keys else reader.get_feature_keys()

        result: dict[str, dict[str, Any]] = {}
        for feature_key in keys:
            evaluated: dict[str, Any] = {"enabled": self.is_enabled(feature_key, context, overrides)}

            if reader.has_variations(feature_key):
                variation = self.get_variation(feature_key, context, overrides)
                if variation is not None:
                    evaluated["variation"] = variation

            variable_keys = reader.get_variable_keys(feature_key)
            if variable_keys:
                evaluated["variables"] = {
                    variable_key: self.get_variable(feature_key, variable_key, context, overrides)
                    for variable_key in variable_keys
                }

            result[feature_key] = evaluated
        return result


class ChildClient:
    """A client scoped to one subject, created with :meth:`FeatureFlagClient.spawn`.

    The child keeps its own context and sticky overrides and layers them
    over the parent's on every call. ``context_set`` and ``sticky_set``
    listeners registered on the child only see the child's changes; other
    events are delegated to the parent.
    """

    def __init__(
        self,
        parent: FeatureFlagClient,
        context: Context | None = None,
        sticky: Sticky | None = None,
    ) -> None:
        self._parent = parent
        self._context: dict[str, Any] = dict(context or {})
        self._sticky: dict[str, Mapping[str, Any]] = dict(sticky or {})
        self._emitter = Emitter()
        self._lock = threading.Lock()

    @property
    def parent(self) -> FeatureFlagClient:
        return self._parent

    def on(self, event_name: str, callback: Listener) -> Callable[[], None]:
        if event_name in (EventName.CONTEXT_SET, EventName.STICKY_SET):
            return self._emitter.on(event_name, callback)
        return self._parent.on(event_name, callback)

    def close(self) -> None:
        self._emitter.clear_all()

    def set_context(self, context: Context, replace: bool = False) -> None:
        with self._lock:
            self._context = dict(context) if replace else {**self._context, **context}
            new_context = self._context
        self._emitter.trigger(EventName.CONTEXT_SET, {"context": new_context, "replaced": replace})

    def get_context(self, context: Context | None = None) -> dict[str, Any]:
        return self._parent.get_context({**self._context, **(context or {})})

    def set_sticky(self, sticky: Sticky, replace: bool = False) -> None:
        with self._lock:
            previous = self._sticky
            self._sticky = dict(sticky) if replace else {**self._sticky, **sticky}
            details = get_params_for_sticky_set_event(previous, self._sticky, replace)
        self._emitter.trigger(EventName.STICKY_SET, details)

    def _context_for(self, context: Context | None) -> dict[str, Any]:
        return {**self._context, **(context or {})}

    def _overrides_for(self, overrides: EvaluationOverrides | None) -> EvaluationOverrides:
        if overrides is None:
            return EvaluationOverrides(sticky=self._sticky)
        if overrides.sticky is None:
            return EvaluationOverrides(
                sticky=self._sticky,
                default_variation_value=overrides.default_variation_value,
                default_variable_value=overrides.default_variable_value,
            )
        return overrides

    def evaluate_flag(
        self, feature_key: str, context: Context | None = None, overrides: EvaluationOverrides | None = None
    ) -> Evaluation:
        return self._parent.evaluate_flag(feature_key, self._context_for(context), self._overrides_for(overrides))

    def evaluate_variation(
        self, feature_key: str, context: Context | None = None, overrides: EvaluationOverrides | None = None
    ) -> Evaluation:
        return self._parent.evaluate_variation(
            feature_key, self._context_for(context), self._overrides_for(overrides)
        )

    def evaluate_variable(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> Evaluation:
        return self._parent.evaluate_variable(
            feature_key, variable_key, self._context_for(context), self._overrides_for(overrides)
        )

    def is_enabled(
        self, feature_key: str, context: Context | None = None, overrides: EvaluationOverrides | None = None
    ) -> bool:
        return self._parent.is_enabled(feature_key, self._context_for(context), self._overrides_for(overrides))

    def get_variation(
        self, feature_key: str, context: Context | None = None, overrides: EvaluationOverrides | None = None
    ) -> str | None:
        return self._parent.get_variation(feature_key, self._context_for(context), self._overrides_for(overrides))

    def get_variable(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> Any:
        return self._parent.get_variable(
            feature_key, variable_key, self._context_for(context), self._overrides_for(overrides)
        )

    def _get_typed_variable(
        self,
        variable_type: VariableType,
        feature_key: str,
        variable_key: str,
        context: Context | None,
        overrides: EvaluationOverrides | None,
    ) -> Any:
        value = self.get_variable(feature_key, variable_key, context, overrides)
        return convert_variable_value(value, variable_type)

    def get_variable_boolean(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> bool | None:
        return self._get_typed_variable(VariableType.BOOLEAN, feature_key, variable_key, context, overrides)

    def get_variable_string(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> str | None:
        return self._get_typed_variable(VariableType.STRING, feature_key, variable_key, context, overrides)

    def get_variable_integer(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> int | None:
        return self._get_typed_variable(VariableType.INTEGER, feature_key, variable_key, context, overrides)

    def get_variable_double(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> float | None:
        return self._get_typed_variable(VariableType.DOUBLE, feature_key, variable_key, context, overrides)

    def get_variable_array(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> list[Any] | None:
        return self._get_typed_variable(VariableType.ARRAY, feature_key, variable_key, context, overrides)

    def get_variable_object(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> dict[str, Any] | None:
        return self._get_typed_variable(VariableType.OBJECT, feature_key, variable_key, context, overrides)

    def get_variable_json(
        self,
        feature_key: str,
        variable_key: str,
        context: Context | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> Any:
        return self._get_typed_variable(VariableType.JSON, feature_key, variable_key, context, overrides)

    def get_all_evaluations(
        self,
        context: Context | None = None,
        feature_keys: Iterable[str] | None = None,
        overrides: EvaluationOverrides | None = None,
    ) -> dict[str, dict[str, Any]]:
        return self._parent.get_all_evaluations(
            self._context_for(context), feature_keys, self._overrides_for(overrides)
        )
