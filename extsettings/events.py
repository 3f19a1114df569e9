"""Observer registry for settings state changes."""

from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Any, Callable

from .errors import InvalidCallbackError

logger = logging.getLogger(__name__)


class SettingsEvent(str, Enum):
    INITIALIZED = "initialized"
    UPDATED = "updated"
    IMPORTED = "imported"
    RESET = "reset"


Listener = Callable[[SettingsEvent, Any], None]


def _same_listener(a: object, b: object) -> bool:
    """Identity match; bound methods match on (receiver, function) since each access builds a new one."""
    if a is b:
        return True
    if inspect.ismethod(a) and inspect.ismethod(b):
        return a.__self__ is b.__self__ and a.__func__ is b.__func__
    return False


class ListenerRegistry:
    """Ordered, de-duplicated set of callbacks notified synchronously."""

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def __contains__(self, callback: object) -> bool:
        return self._index(callback) is not None

    def _index(self, callback: object) -> int | None:
        for i, registered in enumerate(self._listeners):
            if _same_listener(registered, callback):
                return i
        return None

    def add(self, callback: Listener) -> None:
        if not callable(callback):
            raise InvalidCallbackError("Callback must be callable")
        if self._index(callback) is None:
            self._listeners.append(callback)

    def remove(self, callback: Listener) -> None:
        i = self._index(callback)
        if i is not None:
            del self._listeners[i]

    def clear(self) -> None:
        self._listeners.clear()

    def notify(self, event: SettingsEvent, data: Any = None) -> None:
        # snapshot: a listener may (un)register others while we iterate
        for callback in list(self._listeners):
            try:
                callback(event, data)
            except Exception:
                logger.exception("Error in settings listener %r for event %s", callback, event.value)
