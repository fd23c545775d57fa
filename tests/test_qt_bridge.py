import pytest

pytest.importorskip("PyQt5")

from tetherstream.models import SessionState, StatusSnapshot  # noqa: E402
from tetherstream.publisher import StatusPublisher  # noqa: E402
from tetherstream.qt_bridge import StatusSignalBridge  # noqa: E402


def test_bridge_reemits_until_detached():
    publisher = StatusPublisher()
    bridge = StatusSignalBridge()
    statuses, notes = [], []
    bridge.status_changed.connect(statuses.append)
    bridge.notification_changed.connect(notes.append)

    bridge.attach(publisher)
    snapshot = StatusSnapshot(state=SessionState.STREAMING)
    publisher.publish(snapshot)
    publisher.notify("rtsp://10.0.0.1:8554/stream | Uptime: 00:01")

    bridge.detach()
    publisher.publish(StatusSnapshot(state=SessionState.STOPPED))

    assert statuses == [snapshot]
    assert notes == ["rtsp://10.0.0.1:8554/stream | Uptime: 00:01"]
