"""Minimal synchronous event emitter used by the client."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import StrEnum
from typing import Any

__all__ = ["Emitter", "EventName", "Listener"]

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class EventName(StrEnum):
    """Events emitted by :class:`~datafile_flags.client.FeatureFlagClient`."""

    DATAFILE_SET = "datafile_set"
    CONTEXT_SET = "context_set"
    STICKY_SET = "sticky_set"


class Emitter:
    """Dispatches events to subscribed listeners.

    A listener that raises is logged and does not prevent the remaining
    listeners from running.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._lock = threading.Lock()

    def on(self, event_name: str, callback: Listener) -> Callable[[], None]:
        """Subscribe ``callback`` to ``event_name``.

        Returns:
            A callable that unsubscribes the listener. Calling it more than
            once has no further effect.
        """
        with self._lock:
            self._listeners.setdefault(event_name, []).append(callback)

        active = True

        def unsubscribe() -> None:
            nonlocal active
            if not active:
                return
            active = False
            with self._lock:
                listeners = self._listeners.get(event_name, [])
                if callback in listeners:
                    listeners.remove(callback)

        return unsubscribe

    def trigger(self, event_name: str, details: Any = None) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event_name, ()))

        for listener in listeners:
            try:
                listener(details)
            except Exception:
                logger.exception("error in event listener", extra={"event_name": event_name})

    def clear_all(self) -> None:
        with self._lock:
            self._listeners = {}

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, ()))
