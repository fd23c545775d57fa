"""Tests for the stream supervisor state machine."""

import time

import pytest

from conftest import ERROR, PLAYING, wait_for
from tetherstream.errors import EngineStartFailure, SessionAlreadyRunning
from tetherstream.models import EngineEventType, SessionState
from tetherstream.publisher import StatusPublisher


def _fail_and_rebuild(supervisor, engine_factory, attempt):
    engine_factory.last.emit(ERROR)
    supervisor.flush()
    assert supervisor.state is SessionState.RECONNECTING
    assert supervisor.publisher.latest.reconnect_attempt == attempt
    assert wait_for(lambda: engine_factory.count == attempt + 1)
    supervisor.flush()
    assert supervisor.state is SessionState.STARTING


def test_start_hands_urls_to_engine(make_supervisor, engine_factory, pull_config):
    supervisor = make_supervisor()
    snapshot = supervisor.start(pull_config)

    assert snapshot.state is SessionState.STARTING
    request = engine_factory.last.request
    assert request.source_url == "rtsp://192.168.42.129:554/stream1"
    assert ":sout=#rtp{sdp=rtsp://0.0.0.0:8554/stream-a1b2c3d4e5f6a7b8}" in request.media_options
    assert "--rtsp-tcp" in request.instance_options
    assert engine_factory.last.played


def test_playing_moves_to_streaming_with_url(make_supervisor, engine_factory, udp_config):
    supervisor = make_supervisor()
    supervisor.start(udp_config)
    engine_factory.last.emit(PLAYING)
    supervisor.flush()

    latest = supervisor.publisher.latest
    assert latest.state is SessionState.STREAMING
    assert latest.published_url == "rtsp://192.168.42.1:8554/stream-a1b2c3d4e5f6a7b8"
    assert latest.last_error is None


def test_start_while_running_is_rejected(make_supervisor, engine_factory, udp_config):
    supervisor = make_supervisor()
    supervisor.start(udp_config)

    with pytest.raises(SessionAlreadyRunning):
        supervisor.start(udp_config)
    assert engine_factory.count == 1

    engine_factory.last.emit(PLAYING)
    supervisor.flush()
    with pytest.raises(SessionAlreadyRunning):
        supervisor.start(udp_config)


def test_engine_creation_failure_stops_session(make_supervisor, engine_factory, udp_config):
    engine_factory.fail_create = True
    supervisor = make_supervisor()

    with pytest.raises(EngineStartFailure):
        supervisor.start(udp_config)

    latest = supervisor.publisher.latest
    assert latest.state is SessionState.STOPPED
    assert "no engine for you" in latest.last_error


def test_play_failure_releases_engine(make_supervisor, engine_factory, udp_config):
    engine_factory.fail_play = True
    supervisor = make_supervisor()

    with pytest.raises(EngineStartFailure):
        supervisor.start(udp_config)
    assert engine_factory.last.released
    assert supervisor.state is SessionState.STOPPED

    # A failed session does not block the next one
    engine_factory.fail_play = False
    assert supervisor.start(udp_config).state is SessionState.STARTING


def test_udp_error_is_reported_without_reconnect(make_supervisor, engine_factory, udp_config):
    supervisor = make_supervisor()
    supervisor.start(udp_config)
    engine_factory.last.emit(PLAYING)
    engine_factory.last.emit(ERROR)
    supervisor.flush()
    time.sleep(0.05)
    supervisor.flush()

    latest = supervisor.publisher.latest
    assert latest.state is SessionState.STREAMING
    assert latest.last_error == "Stream error occurred"
    assert engine_factory.count == 1


def test_pull_error_rebuilds_engine(make_supervisor, engine_factory, pull_config):
    supervisor = make_supervisor()
    supervisor.start(pull_config)
    first = engine_factory.last
    first.emit(PLAYING)
    supervisor.flush()

    _fail_and_rebuild(supervisor, engine_factory, 1)
    assert first.released
    assert engine_factory.last is not first
    assert engine_factory.last.request == first.request


def test_reconnect_attempts_are_capped(make_supervisor, engine_factory, pull_config):
    supervisor = make_supervisor()
    supervisor.start(pull_config)
    engine_factory.last.emit(PLAYING)
    supervisor.flush()

    for attempt in range(1, 6):
        _fail_and_rebuild(supervisor, engine_factory, attempt)

    engine_factory.last.emit(ERROR)
    supervisor.flush()
    latest = supervisor.publisher.latest
    assert latest.state is SessionState.STOPPED
    assert latest.last_error == "Connection lost after 5 retries"

    time.sleep(0.1)
    assert engine_factory.count == 6
    assert engine_factory.last.released


def test_playing_after_reconnect_resets_counter(make_supervisor, engine_factory, pull_config):
    supervisor = make_supervisor()
    supervisor.start(pull_config)
    engine_factory.last.emit(PLAYING)
    supervisor.flush()

    for attempt in range(1, 4):
        _fail_and_rebuild(supervisor, engine_factory, attempt)
    engine_factory.last.emit(PLAYING)
    supervisor.flush()
    assert supervisor.publisher.latest.reconnect_attempt == 0

    engine_factory.last.emit(ERROR)
    supervisor.flush()
    assert supervisor.publisher.latest.reconnect_attempt == 1
    assert "(1/5)" in supervisor.publisher.latest.last_error


def test_stop_during_reconnect_delay_cancels_rebuild(make_supervisor, engine_factory, pull_config):
    supervisor = make_supervisor(reconnect_delay=0.2)
    supervisor.start(pull_config)
    engine_factory.last.emit(PLAYING)
    engine_factory.last.emit(ERROR)
    supervisor.flush()
    assert supervisor.state is SessionState.RECONNECTING

    snapshot = supervisor.stop()
    assert snapshot.state is SessionState.STOPPED
    assert snapshot.last_error is None

    time.sleep(0.4)
    supervisor.flush()
    assert engine_factory.count == 1
    assert engine_factory.last.released
    assert supervisor.state is SessionState.STOPPED


def test_stop_is_idempotent(make_supervisor, engine_factory, udp_config):
    supervisor = make_supervisor()
    assert supervisor.stop().state is SessionState.IDLE

    supervisor.start(udp_config)
    assert supervisor.stop().state is SessionState.STOPPED
    assert supervisor.stop().state is SessionState.STOPPED
    assert engine_factory.last.released


def test_events_from_released_engine_are_ignored(make_supervisor, engine_factory, udp_config):
    supervisor = make_supervisor()
    supervisor.start(udp_config)
    old = engine_factory.last
    supervisor.stop()

    supervisor.start(udp_config)
    old.emit(PLAYING)
    supervisor.flush()
    assert supervisor.state is SessionState.STARTING


def test_buffering_and_opening_do_not_change_state(make_supervisor, engine_factory, udp_config):
    supervisor = make_supervisor()
    supervisor.start(udp_config)
    engine_factory.last.emit(EngineEventType.OPENING)
    engine_factory.last.emit(EngineEventType.BUFFERING, 42.0)
    supervisor.flush()
    assert supervisor.state is SessionState.STARTING


def test_sampling_publishes_bandwidth_and_stops_with_session(make_supervisor, engine_factory, udp_config):
    publisher = StatusPublisher()
    snapshots = []
    publisher.subscribe(snapshots.append)
    supervisor = make_supervisor(publisher=publisher, sample_interval=0.01)

    supervisor.start(udp_config)
    engine_factory.last.emit(PLAYING)
    assert wait_for(lambda: any(s.bandwidth_bytes_per_sec > 0 for s in list(snapshots)))

    supervisor.stop()
    published = len(snapshots)
    time.sleep(0.1)
    supervisor.flush()
    assert len(snapshots) == published
    assert snapshots[-1].state is SessionState.STOPPED
    assert snapshots[-1].bandwidth_bytes_per_sec == 0


def test_notification_refresh_every_n_ticks(make_supervisor, engine_factory, udp_config):
    publisher = StatusPublisher()
    notifications = []
    publisher.subscribe_notifications(notifications.append)
    supervisor = make_supervisor(publisher=publisher, sample_interval=0.01, notification_interval=3)

    supervisor.start(udp_config)
    engine_factory.last.emit(PLAYING)
    assert wait_for(lambda: len(notifications) >= 2)
    supervisor.stop()

    assert notifications[0] == "rtsp://192.168.42.1:8554/stream-a1b2c3d4e5f6a7b8 | Uptime: 00:00"


def test_uptime_uses_session_start(make_supervisor, engine_factory, udp_config):
    now = [100.0]
    supervisor = make_supervisor(clock=lambda: now[0])
    supervisor.start(udp_config)
    engine_factory.last.emit(PLAYING)
    supervisor.flush()

    now[0] = 165.4
    engine_factory.last.emit(EngineEventType.BUFFERING, 100.0)
    engine_factory.last.emit(PLAYING)
    supervisor.flush()
    assert supervisor.publisher.latest.uptime_seconds == 65


def test_calls_after_shutdown_fail(make_supervisor):
    supervisor = make_supervisor()
    supervisor.shutdown()
    with pytest.raises(RuntimeError):
        supervisor.stop()


def test_repeated_playing_keeps_bandwidth_window(make_supervisor, engine_factory, udp_config):
    supervisor = make_supervisor(sample_interval=0.01)
    supervisor.start(udp_config)
    engine = engine_factory.last
    engine.emit(PLAYING)
    assert wait_for(lambda: supervisor.publisher.latest.bandwidth_bytes_per_sec > 0)

    engine.emit(EngineEventType.BUFFERING, 100.0)
    engine.emit(PLAYING)
    supervisor.flush()

    latest = supervisor.publisher.latest
    assert latest.state is SessionState.STREAMING
    assert latest.bandwidth_bytes_per_sec > 0
    assert engine_factory.count == 1
