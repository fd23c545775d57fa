import threading
import time

import pytest

from tetherstream.models import EngineEvent, EngineEventType, EngineStats, IngestMode, StreamConfig
from tetherstream.supervisor import StreamSupervisor


class FakeEngine:
    def __init__(self, request, on_event, fail_play=False, bytes_per_read=1000):
        self.request = request
        self.on_event = on_event
        self.fail_play = fail_play
        self.bytes_per_read = bytes_per_read
        self.played = False
        self.released = False
        self._bytes = 0

    def play(self):
        if self.fail_play:
            raise RuntimeError("play refused")
        self.played = True

    def stats(self):
        self._bytes += self.bytes_per_read
        return EngineStats(read_bytes=self._bytes)

    def release(self):
        self.released = True

    def emit(self, event_type, percent=None):
        self.on_event(EngineEvent(event_type, percent))


class FakeEngineFactory:
    def __init__(self):
        self.engines = []
        self.fail_create = False
        self.fail_play = False
        self._lock = threading.Lock()

    def __call__(self, request, on_event):
        if self.fail_create:
            raise RuntimeError("no engine for you")
        engine = FakeEngine(request, on_event, fail_play=self.fail_play)
        with self._lock:
            self.engines.append(engine)
        return engine

    @property
    def last(self):
        with self._lock:
            return self.engines[-1]

    @property
    def count(self):
        with self._lock:
            return len(self.engines)


class FakeInspector:
    def __init__(self, address="192.168.42.1"):
        self.address = address

    def advertised_address(self):
        return self.address


def wait_for(predicate, timeout=2.0, interval=0.005):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def engine_factory():
    return FakeEngineFactory()


@pytest.fixture
def make_supervisor(engine_factory):
    created = []

    def _make(**kwargs):
        kwargs.setdefault("engine_factory", engine_factory)
        kwargs.setdefault("inspector", FakeInspector())
        kwargs.setdefault("reconnect_delay", 0.05)
        kwargs.setdefault("sample_interval", 60.0)
        supervisor = StreamSupervisor(**kwargs)
        created.append(supervisor)
        return supervisor

    yield _make
    for supervisor in created:
        supervisor.shutdown(timeout=2.0)


@pytest.fixture
def pull_config():
    return StreamConfig(mode=IngestMode.RTSP, camera_host="192.168.42.129",
                        camera_path="/stream1", token="a1b2c3d4e5f6a7b8")


@pytest.fixture
def udp_config():
    return StreamConfig(mode=IngestMode.UDP, sink_port=8554, token="a1b2c3d4e5f6a7b8")


PLAYING = EngineEventType.PLAYING
ERROR = EngineEventType.ERROR
