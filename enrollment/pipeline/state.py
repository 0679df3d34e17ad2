"""Thread-safe holder for the latest batch state."""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from enrollment.types import BatchState

LOGGER = logging.getLogger("enrollment.pipeline.state")

Subscriber = Callable[[BatchState], None]


class StatePublisher:
    """Keeps the most recent :class:`BatchState` and notifies subscribers.

    Publishing replaces the stored state wholesale; readers always see a
    complete snapshot. Subscribers run synchronously on the publishing thread.
    """

    def __init__(self, initial: Optional[BatchState] = None) -> None:
        self._lock = threading.Lock()
        self._state = initial if initial is not None else BatchState()
        self._subscribers: List[Subscriber] = []

    @property
    def value(self) -> BatchState:
        with self._lock:
            return self._state

    def publish(self, state: BatchState) -> None:
        with self._lock:
            self._state = state
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(state)
            except Exception:
                LOGGER.exception("State subscriber %r failed", callback)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; the returned function removes it again."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe
