"""Qt hand-off of status snapshots from the supervisor thread to a UI thread."""

from typing import Callable, Optional

from PyQt5 import QtCore

from .publisher import StatusPublisher


class StatusSignalBridge(QtCore.QObject):
    """
    Re-emits publisher callbacks as Qt signals. Slots connected from a
    widget run on the widget's thread through Qt's queued connections, so
    the UI never touches supervisor state directly.
    """

    status_changed = QtCore.pyqtSignal(object)          # StatusSnapshot
    notification_changed = QtCore.pyqtSignal(str)

    def __init__(self, parent: Optional[QtCore.QObject] = None):
        super().__init__(parent)
        self._unsubscribers: list[Callable[[], None]] = []

    def attach(self, publisher: StatusPublisher):
        self._unsubscribers.append(publisher.subscribe(self.status_changed.emit))
        self._unsubscribers.append(publisher.subscribe_notifications(self.notification_changed.emit))

    def detach(self):
        while self._unsubscribers:
            self._unsubscribers.pop()()
