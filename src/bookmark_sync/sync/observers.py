"""Weakly-held observers of the engine's error and busy state."""

from __future__ import annotations

import logging
import threading
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[Exception | None], None]
BusyCallback = Callable[[bool], None]


def _hold(callback: Callable[..., None] | None) -> Callable[[], Callable[..., None] | None] | None:
    """Reference a callback weakly so it never keeps its observer alive.

    Bound methods go through ``WeakMethod``.  Plain functions and closures
    are referenced weakly as well; the caller keeps them alive, usually as
    an attribute of the observer.  Callables that do not support weak
    references are held strongly.
    """
    if callback is None:
        return None
    if hasattr(callback, "__self__") and hasattr(callback, "__func__"):
        return weakref.WeakMethod(callback)
    try:
        return weakref.ref(callback)
    except TypeError:
        return lambda: callback


@dataclass
class _Observation:
    observer: weakref.ref[Any]
    on_error: Callable[[], Callable[..., None] | None] | None = None
    on_busy: Callable[[], Callable[..., None] | None] | None = None

    @property
    def alive(self) -> bool:
        return self.observer() is not None


class ObserverRegistry:
    """Registration table of observers keyed by ``id(observer)``.

    Observers are held through weak references.  Entries whose observer
    has been garbage collected are pruned on every notification.
    """

    def __init__(self) -> None:
        self._observations: dict[int, _Observation] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._observations)

    def add(
        self,
        observer: Any,
        *,
        on_error: ErrorCallback | None = None,
        on_busy: BusyCallback | None = None,
    ) -> None:
        """Register callbacks for *observer*.

        Registering the same observer again keeps its existing callbacks
        for the kinds not given.
        """
        key = id(observer)
        with self._lock:
            existing = self._observations.get(key)
            if existing is not None and existing.observer() is not observer:
                existing = None
            self._observations[key] = _Observation(
                observer=weakref.ref(observer),
                on_error=_hold(on_error) or (existing.on_error if existing else None),
                on_busy=_hold(on_busy) or (existing.on_busy if existing else None),
            )

    def remove(self, observer: Any) -> None:
        with self._lock:
            self._observations.pop(id(observer), None)

    def _live(self) -> list[_Observation]:
        with self._lock:
            for key in [k for k, o in self._observations.items() if not o.alive]:
                del self._observations[key]
            return list(self._observations.values())

    def notify_error(self, error: Exception | None) -> None:
        for observation in self._live():
            _call(observation.on_error, error)

    def notify_busy(self, busy: bool) -> None:
        for observation in self._live():
            _call(observation.on_busy, busy)


def _call(holder: Callable[[], Callable[..., None] | None] | None, value: Any) -> None:
    if holder is None:
        return
    callback = holder()
    if callback is None:
        return
    try:
        callback(value)
    except Exception:
        logger.exception("Observer callback failed")
