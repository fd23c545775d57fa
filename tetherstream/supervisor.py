"""Supervised re-stream session: engine lifecycle, reconnects and sampling."""

import itertools
import queue
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .bandwidth import BandwidthEstimator
from .common import (
    MAX_RECONNECT_ATTEMPTS,
    NOTIFICATION_INTERVAL,
    RECONNECT_DELAY,
    SAMPLE_INTERVAL,
    format_uptime,
    log,
)
from .engine import (
    EngineFactory,
    MediaEngine,
    VlcEngine,
    build_engine_request,
    published_url,
    redact_url,
)
from .errors import EngineStartFailure, ReconnectExhausted, SessionAlreadyRunning, StreamError
from .interfaces import InterfaceInspector
from .models import EngineEvent, EngineEventType, SessionState, StatusSnapshot, StreamConfig
from .publisher import StatusPublisher


@dataclass
class StreamSession:
    """Mutable session record. Only the supervisor thread touches it."""
    config:             StreamConfig
    generation:         int
    state:              SessionState = SessionState.STARTING
    started_at:         Optional[float] = None
    reconnect_attempts: int = 0
    last_error:         Optional[str] = None
    engine:             Optional[MediaEngine] = None
    engine_id:          int = 0
    published_url:      Optional[str] = None
    ticks:              int = 0
    bandwidth:          BandwidthEstimator = field(default_factory=BandwidthEstimator)


@dataclass
class _Message:
    kind:       str
    generation: int = 0
    engine_id:  int = 0
    event:      Optional[EngineEvent] = None
    config:     Optional[StreamConfig] = None
    reply:      Optional[Future] = None


class StreamSupervisor:
    """
    Owns at most one re-stream session and its engine.

    Every state change (start, stop, engine event, reconnect, sampling tick)
    is a message handled in order on a single supervisor thread, so requests
    are serialized against the current state rather than raced. Public calls
    block until their message has been handled.
    """

    def __init__(self, engine_factory: EngineFactory = VlcEngine,
                 publisher: Optional[StatusPublisher] = None,
                 inspector: Optional[InterfaceInspector] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sample_interval: float = SAMPLE_INTERVAL,
                 reconnect_delay: float = RECONNECT_DELAY,
                 max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
                 notification_interval: int = NOTIFICATION_INTERVAL,
                 verbose: bool = False):
        self.engine_factory         = engine_factory
        self.publisher              = publisher or StatusPublisher()
        self.inspector              = inspector or InterfaceInspector()
        self.clock                  = clock
        self.sample_interval        = sample_interval
        self.reconnect_delay        = reconnect_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self.notification_interval  = notification_interval
        self.verbose                = verbose

        self._queue = queue.Queue()
        self._session: Optional[StreamSession] = None
        self._generation = 0
        self._engine_ids = itertools.count(1)
        self._reconnect_timer: Optional[threading.Timer] = None
        self._sampler: Optional[tuple[threading.Thread, threading.Event]] = None
        self._handlers = {
            "start": self._handle_start,
            "stop": self._handle_stop,
            "engine_event": self._handle_engine_event,
            "reconnect_due": self._handle_reconnect_due,
            "tick": self._handle_tick,
            "flush": lambda msg: None,
        }

        self._thread = threading.Thread(target=self._run, name="stream-supervisor", daemon=True)
        self._thread.start()

    # ── Public API ────────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self.publisher.latest.state

    def start(self, config: StreamConfig, timeout: Optional[float] = None) -> StatusSnapshot:
        """
        Start a session. Raises SessionAlreadyRunning if one is active and
        EngineStartFailure if the engine cannot be created or played.
        """
        return self._call(_Message("start", config=config), timeout)

    def stop(self, timeout: Optional[float] = None) -> StatusSnapshot:
        """Stop the session; a no-op when nothing is running."""
        return self._call(_Message("stop"), timeout)

    def flush(self, timeout: Optional[float] = None):
        """Block until every message queued before this call has been handled."""
        self._call(_Message("flush"), timeout)

    def shutdown(self, timeout: Optional[float] = None):
        if not self._thread.is_alive():
            return
        self._call(_Message("shutdown"), timeout)
        self._thread.join(timeout)

    def _call(self, msg: _Message, timeout: Optional[float]) -> Any:
        if threading.current_thread() is self._thread:
            raise RuntimeError("Supervisor calls cannot be made from a status callback")
        if not self._thread.is_alive():
            raise RuntimeError("Supervisor has been shut down")
        msg.reply = Future()
        self._queue.put(msg)
        return msg.reply.result(timeout)

    # ── Supervisor thread ─────────────────────────────────────────────────

    def _run(self):
        while True:
            msg = self._queue.get()
            if msg.kind == "shutdown":
                try:
                    self._handle_stop(msg)
                finally:
                    msg.reply.set_result(None)
                log.debug("Supervisor thread exiting")
                return

            try:
                result = self._handlers[msg.kind](msg)
            except Exception as e:
                if msg.reply is not None:
                    msg.reply.set_exception(e)
                else:
                    log.error(f"Supervisor failed handling {msg.kind}: {e}", exc_info=True)
                continue
            if msg.reply is not None:
                msg.reply.set_result(result)

    def _current(self, msg: _Message) -> Optional[StreamSession]:
        """The live session this message belongs to, or None if it is stale."""
        session = self._session
        if session is None or msg.generation != session.generation:
            return None
        return session

    def _handle_start(self, msg: _Message) -> StatusSnapshot:
        if self._session is not None and self._session.state.is_active:
            raise SessionAlreadyRunning("Stream session already running")

        self._generation += 1
        session = StreamSession(config=msg.config, generation=self._generation)
        self._session = session
        config = session.config
        log.info(
            f"Starting re-stream: input={redact_url(build_engine_request(config).source_url)} "
            f"-> RTSP port {config.sink_port} (token: {'enabled' if config.token else 'disabled'})"
        )
        self._set_state(session, SessionState.STARTING)

        try:
            self._launch_engine(session)
        except Exception as e:
            log.error(f"Error starting re-stream engine: {e}", exc_info=True)
            error = EngineStartFailure(f"Engine failed to start: {e}")
            session.last_error = str(error)
            self._teardown(session)
            raise error from e

        log.info(f"Re-stream engine started on port {config.sink_port}")
        return self._snapshot(session)

    def _handle_stop(self, msg: _Message) -> StatusSnapshot:
        session = self._session
        if session is None or not session.state.is_active:
            log.info("Stream session not currently running")
            return self.publisher.latest

        log.info("Stopping re-stream session")
        session.last_error = None
        snapshot = self._teardown(session)
        log.info("Re-stream session stopped")
        return snapshot

    def _handle_engine_event(self, msg: _Message):
        session = self._current(msg)
        if session is None or msg.engine_id != session.engine_id:
            log.debug(f"Ignoring {msg.event.type.value} from a released engine")
            return
        if session.state is SessionState.RECONNECTING:
            # The failed engine is about to be rebuilt; nothing it says matters now
            log.debug(f"Ignoring {msg.event.type.value} while reconnecting")
            return

        event_type = msg.event.type
        if event_type is EngineEventType.PLAYING:
            self._on_playing(session)
        elif event_type is EngineEventType.ERROR:
            log.error("Re-stream engine reported an error")
            if session.config.is_pulled:
                self._schedule_reconnect(session, "Stream error occurred")
            else:
                # A push source has no connection to retry; the sender has to resume
                session.last_error = str(StreamError("Stream error occurred"))
                self._publish(session)
        elif event_type is EngineEventType.BUFFERING:
            log.debug(f"Engine buffering: {msg.event.percent}%")
        else:
            log.debug(f"Engine {event_type.value}")

    def _on_playing(self, session: StreamSession):
        recovered = session.reconnect_attempts > 0
        session.reconnect_attempts = 0
        session.last_error = None
        if session.started_at is None:
            session.started_at = self.clock()
        session.published_url = published_url(self.inspector.advertised_address(), session.config)
        self._set_state(session, SessionState.STREAMING)
        self._start_sampler(session)
        if recovered:
            log.info("Re-stream reconnected successfully")
        else:
            log.info(f"Re-stream playing, serving {session.published_url or 'on all interfaces'}")

    def _schedule_reconnect(self, session: StreamSession, reason: str):
        session.reconnect_attempts += 1
        attempt = session.reconnect_attempts
        limit = self.max_reconnect_attempts
        if attempt > limit:
            log.warning(f"Max reconnect attempts ({limit}) reached, giving up")
            session.last_error = str(ReconnectExhausted(f"Connection lost after {limit} retries"))
            self._teardown(session)
            return

        session.last_error = f"{reason}; reconnecting ({attempt}/{limit})"
        self._set_state(session, SessionState.RECONNECTING)
        log.info(f"Scheduling reconnect attempt {attempt}/{limit} in {self.reconnect_delay:.1f}s")

        self._cancel_reconnect_timer()
        timer = threading.Timer(
            self.reconnect_delay,
            self._queue.put,
            args=(_Message("reconnect_due", generation=session.generation),),
        )
        timer.daemon = True
        self._reconnect_timer = timer
        timer.start()

    def _handle_reconnect_due(self, msg: _Message):
        session = self._current(msg)
        if session is None or session.state is not SessionState.RECONNECTING:
            log.debug("Dropping reconnect for a session that is no longer reconnecting")
            return

        self._reconnect_timer = None
        attempt = session.reconnect_attempts
        self._release_engine(session)
        self._set_state(session, SessionState.STARTING)
        try:
            self._launch_engine(session)
        except Exception as e:
            log.error(f"Error during reconnect attempt {attempt}: {e}", exc_info=True)
            self._release_engine(session)
            self._schedule_reconnect(session, f"Reconnect failed: {e}")
            return
        log.info(f"Reconnect attempt {attempt} started")

    def _handle_tick(self, msg: _Message):
        session = self._current(msg)
        if session is None or session.state is not SessionState.STREAMING:
            return

        stats = None
        try:
            stats = session.engine.stats()
        except Exception as e:
            log.error(f"Error getting media stats: {e}")
        session.bandwidth.update_from_stats(stats, self.clock())
        snapshot = self._publish(session)

        session.ticks += 1
        if session.ticks >= self.notification_interval:
            session.ticks = 0
            url = session.published_url or published_url("unknown", session.config)
            self.publisher.notify(f"{url} | Uptime: {format_uptime(snapshot.uptime_seconds)}")

    # ── Engine, timers, status ────────────────────────────────────────────

    def _launch_engine(self, session: StreamSession):
        engine_id = next(self._engine_ids)
        generation = session.generation

        def on_event(event: EngineEvent):
            # Runs on the engine's thread; hand it to the supervisor thread
            self._queue.put(_Message("engine_event", generation=generation,
                                     engine_id=engine_id, event=event))

        request = build_engine_request(session.config, self.verbose)
        session.engine_id = engine_id
        # Counters restart with every engine instance
        session.bandwidth.reset()
        session.engine = self.engine_factory(request, on_event)
        session.engine.play()

    def _release_engine(self, session: StreamSession):
        engine = session.engine
        session.engine = None
        session.engine_id = 0
        if engine is None:
            return
        try:
            engine.release()
        except Exception as e:
            log.error(f"Error releasing engine: {e}", exc_info=True)

    def _teardown(self, session: StreamSession) -> StatusSnapshot:
        self._cancel_reconnect_timer()
        self._stop_sampler()
        self._release_engine(session)
        snapshot = self._set_state(session, SessionState.STOPPED)
        self._session = None
        return snapshot

    def _cancel_reconnect_timer(self):
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _start_sampler(self, session: StreamSession):
        if self._sampler is not None:
            return
        stop_event = threading.Event()
        generation = session.generation

        def sample_loop():
            while not stop_event.wait(self.sample_interval):
                self._queue.put(_Message("tick", generation=generation))

        thread = threading.Thread(target=sample_loop, name="stream-sampler", daemon=True)
        self._sampler = (thread, stop_event)
        thread.start()

    def _stop_sampler(self):
        if self._sampler is None:
            return
        thread, stop_event = self._sampler
        self._sampler = None
        stop_event.set()
        thread.join()

    def _set_state(self, session: StreamSession, state: SessionState) -> StatusSnapshot:
        if session.state is not state:
            log.info(f"Session state: {session.state.value} -> {state.value}")
        session.state = state
        return self._publish(session)

    def _snapshot(self, session: StreamSession) -> StatusSnapshot:
        streaming = session.state is SessionState.STREAMING
        uptime = 0
        if session.state.is_active and session.started_at is not None:
            uptime = int(self.clock() - session.started_at)
        return StatusSnapshot(
            state=session.state,
            uptime_seconds=uptime,
            published_url=session.published_url if streaming else None,
            bandwidth_bytes_per_sec=session.bandwidth.current if streaming else 0,
            last_error=session.last_error,
            reconnect_attempt=session.reconnect_attempts,
        )

    def _publish(self, session: StreamSession) -> StatusSnapshot:
        snapshot = self._snapshot(session)
        self.publisher.publish(snapshot)
        return snapshot
