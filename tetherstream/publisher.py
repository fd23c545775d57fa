"""Fan-out of immutable status snapshots to UI and notification observers."""

import threading
from typing import Callable

from .common import log
from .models import SessionState, StatusSnapshot

StatusCallback = Callable[[StatusSnapshot], None]
NotificationCallback = Callable[[str], None]


class StatusPublisher:
    """
    Observers only ever see snapshots; nothing outside the supervisor reads
    session fields directly. A failing observer is logged and skipped.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: list[StatusCallback] = []
        self._notification_subscribers: list[NotificationCallback] = []
        self._latest = StatusSnapshot(state=SessionState.IDLE)

    @property
    def latest(self) -> StatusSnapshot:
        with self._lock:
            return self._latest

    def subscribe(self, cb: StatusCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(cb)

        def unsubscribe():
            with self._lock:
                if cb in self._subscribers:
                    self._subscribers.remove(cb)
        return unsubscribe

    def subscribe_notifications(self, cb: NotificationCallback) -> Callable[[], None]:
        with self._lock:
            self._notification_subscribers.append(cb)

        def unsubscribe():
            with self._lock:
                if cb in self._notification_subscribers:
                    self._notification_subscribers.remove(cb)
        return unsubscribe

    def publish(self, snapshot: StatusSnapshot):
        with self._lock:
            self._latest = snapshot
            subscribers = list(self._subscribers)
        for cb in subscribers:
            try:
                cb(snapshot)
            except Exception as e:
                log.error(f"Status subscriber failed: {e}", exc_info=True)

    def notify(self, text: str):
        with self._lock:
            subscribers = list(self._notification_subscribers)
        for cb in subscribers:
            try:
                cb(text)
            except Exception as e:
                log.error(f"Notification subscriber failed: {e}", exc_info=True)
