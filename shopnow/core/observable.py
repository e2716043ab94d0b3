# shopnow/core/observable.py
"""In-process listener registry used by the reactive state holders."""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Unsubscribe = Callable[[], None]


class Listeners(Generic[T]):
    """
    Set of callbacks notified with every new value.

    A failing listener is logged and skipped so one broken UI binding
    does not stop the others (or the sync layer) from receiving updates.
    """

    def __init__(self, name: str):
        self.name = name
        self._callbacks: list[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def add(self, callback: Callable[[T], None]) -> Unsubscribe:
        with self._lock:
            self._callbacks.append(callback)
            logger.debug("Listener added to %s, total: %d", self.name, len(self._callbacks))

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def notify(self, value: T) -> None:
        with self._lock:
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback(value)
            except Exception:
                logger.exception("Listener error in %s", self.name)

    def __len__(self) -> int:
        return len(self._callbacks)
