"""Evaluation hooks.

A hook can rewrite the evaluation request before the cascade runs, the bucket
key and bucket value computed for a context, and the evaluation produced at
the end. Hooks run in registration order, each one receiving the previous
hook's output.

Example::

    hooks = HooksManager()
    hooks.add(Hook("pin-qa", bucket_value=lambda o: 0 if o.context.get("qa") else o.bucket_value))
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from datafile_flags.evaluate import EvaluateOptions
    from datafile_flags.results import Evaluation

__all__ = [
    "BucketKeyHookOptions",
    "BucketValueHookOptions",
    "Hook",
    "HooksManager",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BucketKeyHookOptions:
    """Input of :meth:`Hook.bucket_key`."""

    feature_key: str
    bucket_key: str
    bucket_by: Any = None
    context: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class BucketValueHookOptions:
    """Input of :meth:`Hook.bucket_value`."""

    feature_key: str
    bucket_key: str
    bucket_value: int
    context: Mapping[str, Any] = field(default_factory=dict)


class Hook:
    """A named set of evaluation interceptors.

    Pass callables for the stages you need, or subclass and override the
    methods. Stages left out return their input unchanged.

    Args:
        name: Unique name within a :class:`HooksManager`.
        before: Receives and returns :class:`~datafile_flags.evaluate.EvaluateOptions`.
        bucket_key: Receives :class:`BucketKeyHookOptions`, returns the bucket key.
        bucket_value: Receives :class:`BucketValueHookOptions`, returns the bucket value.
        after: Receives the evaluation and the options, returns the evaluation.
    """

    def __init__(
        self,
        name: str,
        before: Callable[[EvaluateOptions], EvaluateOptions] | None = None,
        bucket_key: Callable[[BucketKeyHookOptions], str] | None = None,
        bucket_value: Callable[[BucketValueHookOptions], int] | None = None,
        after: Callable[[Evaluation, EvaluateOptions], Evaluation] | None = None,
    ) -> None:
        self.name = name
        self._before = before
        self._bucket_key = bucket_key
        self._bucket_value = bucket_value
        self._after = after

    def before(self, options: EvaluateOptions) -> EvaluateOptions:
        if self._before is None:
            return options
        return self._before(options)

    def bucket_key(self, options: BucketKeyHookOptions) -> str:
        if self._bucket_key is None:
            return options.bucket_key
        return self._bucket_key(options)

    def bucket_value(self, options: BucketValueHookOptions) -> int:
        if self._bucket_value is None:
            return options.bucket_value
        return self._bucket_value(options)

    def after(self, evaluation: Evaluation, options: EvaluateOptions) -> Evaluation:
        if self._after is None:
            return evaluation
        return self._after(evaluation, options)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class HooksManager:
    """Ordered registry of uniquely named hooks.

    The hook list is never mutated in place: ``add`` and ``remove`` publish a
    new tuple, so a pipeline that is already running keeps iterating the
    snapshot it started with.

    Args:
        hooks: Hooks to register initially.
    """

    def __init__(self, hooks: Sequence[Hook] | None = None) -> None:
        self._hooks: tuple[Hook, ...] = ()
        self._lock = threading.Lock()
        for hook in hooks or ():
            self.add(hook)

    def add(self, hook: Hook) -> Callable[[], None] | None:
        """Register a hook.

        Args:
            hook: The hook to add.

        Returns:
            A callable that removes the hook again, or ``None`` if a hook with
            the same name is already registered.
        """
        with self._lock:
            if any(existing.name == hook.name for existing in self._hooks):
                logger.error(
                    f'Hook with name "{hook.name}" already exists.',
                    extra={"hook_name": hook.name},
                )
                return None
            self._hooks = (*self._hooks, hook)

        return lambda: self.remove(hook.name)

    def remove(self, name: str) -> None:
        with self._lock:
            self._hooks = tuple(hook for hook in self._hooks if hook.name != name)

    def get_all(self) -> tuple[Hook, ...]:
        return self._hooks

    def run_before_hooks(self, options: EvaluateOptions) -> EvaluateOptions:
        result = options
        for hook in self._hooks:
            result = hook.before(result)
        return result

    def run_bucket_key_hooks(self, options: BucketKeyHookOptions) -> str:
        bucket_key = options.bucket_key
        for hook in self._hooks:
            bucket_key = hook.bucket_key(replace(options, bucket_key=bucket_key))
        return bucket_key

    def run_bucket_value_hooks(self, options: BucketValueHookOptions) -> int:
        bucket_value = options.bucket_value
        for hook in self._hooks:
            bucket_value = hook.bucket_value(replace(options, bucket_value=bucket_value))
        return bucket_value

    def run_after_hooks(self, evaluation: Evaluation, options: EvaluateOptions) -> Evaluation:
        result = evaluation
        for hook in self._hooks:
            result = hook.after(result, options)
        return result

    def __len__(self) -> int:
        return len(self._hooks)
