from __future__ import annotations

import logging
from collections.abc import Callable

from context_recall.context.models import ContextSnapshot

logger = logging.getLogger(__name__)

Subscriber = Callable[[ContextSnapshot], None]


class SnapshotChannel:
    """Holds the latest snapshot and fans it out to subscribers.

    Subscriber exceptions are logged and never reach the publisher.
    """

    def __init__(self, initial: ContextSnapshot | None = None) -> None:
        self._latest = initial or ContextSnapshot.empty()
        self._subscribers: list[Subscriber] = []

    @property
    def latest(self) -> ContextSnapshot:
        return self._latest

    def subscribe(self, callback: Subscriber, *, replay: bool = False) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        self._subscribers.append(callback)
        if replay:
            self._notify(callback, self._latest)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, snapshot: ContextSnapshot) -> None:
        self._latest = snapshot
        for callback in list(self._subscribers):
            self._notify(callback, snapshot)

    @staticmethod
    def _notify(callback: Subscriber, snapshot: ContextSnapshot) -> None:
        try:
            callback(snapshot)
        except Exception:
            logger.exception("Snapshot subscriber %r failed", callback)
