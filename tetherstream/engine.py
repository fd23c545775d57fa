"""Media engine interface, option/URL builders and the libVLC adapter."""

import importlib
from dataclasses import dataclass, field
from typing import Callable, Optional
from urllib.parse import quote

from .common import log
from .models import EngineEvent, EngineEventType, EngineStats, IngestMode, StreamConfig

EventCallback = Callable[[EngineEvent], None]

NETWORK_CACHING_MS = 1000
LIVE_CACHING_MS    = 500
RTSP_PULL_TIMEOUT  = 10         # seconds
UDP_TIMEOUT_MS     = 10000


def stream_path(token: str) -> str:
    """``/stream-<token>`` when a token is configured, else ``/stream``."""
    token = (token or "").strip()
    return f"/stream-{token}" if token else "/stream"


def ingest_url(config: StreamConfig) -> str:
    if config.mode is IngestMode.UDP:
        return f"udp://@:{config.udp_port}"

    credentials = ""
    if config.camera_username:
        credentials = quote(config.camera_username, safe="")
        if config.camera_password:
            credentials += ":" + quote(config.camera_password, safe="")
        credentials += "@"
    path = config.camera_path or "/"
    if not path.startswith("/"):
        path = "/" + path
    return f"rtsp://{credentials}{config.camera_host}:{config.camera_port}{path}"


def redact_url(url: str) -> str:
    """Drop inline credentials before a URL goes to the log."""
    scheme, sep, rest = url.partition("://")
    authority, slash, path = rest.partition("/")
    userinfo, at, host = authority.rpartition("@")
    if not sep or not at or not userinfo:
        return url
    return f"{scheme}://***@{host}{slash}{path}"


def sink_option(config: StreamConfig) -> str:
    # Bound to 0.0.0.0 so viewers on any interface (Wi-Fi, VPN) can connect
    return f":sout=#rtp{{sdp=rtsp://0.0.0.0:{config.sink_port}{stream_path(config.token)}}}"


def instance_options(config: StreamConfig, verbose: bool = False) -> list[str]:
    options = [
        f"--network-caching={NETWORK_CACHING_MS}",
        f"--live-caching={LIVE_CACHING_MS}",
    ]
    if config.is_pulled:
        options += ["--rtsp-tcp", f"--rtsp-timeout={RTSP_PULL_TIMEOUT}"]
    else:
        options.append(f"--udp-timeout={UDP_TIMEOUT_MS}")
    # Served output sessions never time out
    options.append("--rtsp-timeout=0")
    if verbose:
        options.append("-vvv")
    return options


def media_options(config: StreamConfig) -> list[str]:
    return [
        sink_option(config),
        ":sout-keep",
        f":network-caching={NETWORK_CACHING_MS}",
    ]


def published_url(host: Optional[str], config: StreamConfig) -> Optional[str]:
    if not host:
        return None
    return f"rtsp://{host}:{config.sink_port}{stream_path(config.token)}"


@dataclass(frozen=True)
class EngineRequest:
    """Everything the engine is told: a source, instance options, media options."""
    source_url:       str
    instance_options: list[str] = field(default_factory=list)
    media_options:    list[str] = field(default_factory=list)


def build_engine_request(config: StreamConfig, verbose: bool = False) -> EngineRequest:
    return EngineRequest(
        source_url=ingest_url(config),
        instance_options=instance_options(config, verbose),
        media_options=media_options(config),
    )


class MediaEngine:
    """
    One engine instance plays one request. Lifecycle events are delivered to
    the callback given at construction, from whatever thread the engine uses.
    """

    def play(self):
        raise NotImplementedError

    def stats(self) -> Optional[EngineStats]:
        raise NotImplementedError

    def release(self):
        raise NotImplementedError


EngineFactory = Callable[[EngineRequest, EventCallback], MediaEngine]


class VlcEngine(MediaEngine):
    """libVLC through python-vlc: receive the source, serve it over RTSP via ``sout``."""

    def __init__(self, request: EngineRequest, on_event: EventCallback):
        self._vlc = importlib.import_module("vlc")
        self.request = request
        self._on_event = on_event
        self._player = None
        self._media = None

        self._instance = self._vlc.Instance(request.instance_options)
        if self._instance is None:
            raise RuntimeError("libVLC instance creation failed")
        try:
            self._player = self._instance.media_player_new()
            # The media stays referenced for the player's lifetime; stats are read from it
            self._media = self._instance.media_new(request.source_url, *request.media_options)
            self._player.set_media(self._media)

            events = self._vlc.EventType
            manager = self._player.event_manager()
            manager.event_attach(events.MediaPlayerOpening, self._forward, EngineEventType.OPENING)
            manager.event_attach(events.MediaPlayerBuffering, self._forward, EngineEventType.BUFFERING)
            manager.event_attach(events.MediaPlayerPlaying, self._forward, EngineEventType.PLAYING)
            manager.event_attach(events.MediaPlayerEncounteredError, self._forward, EngineEventType.ERROR)
            manager.event_attach(events.MediaPlayerStopped, self._forward, EngineEventType.STOPPED)
        except Exception:
            self.release()
            raise

    def _forward(self, vlc_event, event_type: EngineEventType):
        percent = None
        if event_type is EngineEventType.BUFFERING:
            percent = getattr(vlc_event.u, "new_cache", None)
        self._on_event(EngineEvent(event_type, percent))

    def play(self):
        if self._player.play() == -1:
            raise RuntimeError(f"libVLC refused to play {redact_url(self.request.source_url)}")

    def stats(self) -> Optional[EngineStats]:
        raw = self._vlc.MediaStats()
        if not self._media.get_stats(raw):
            return None
        return EngineStats(
            read_bytes=int(raw.read_bytes),
            demux_read_bytes=int(raw.demux_read_bytes),
            sent_bytes=int(raw.sent_bytes),
        )

    def release(self):
        """Doesn't raise on errors during cleanup. Parts never created are skipped."""
        player, media, instance = self._player, self._media, self._instance
        self._player = self._media = self._instance = None
        steps = []
        if player is not None:
            steps += [("stop player", player.stop), ("release player", player.release)]
        if media is not None:
            steps.append(("release media", media.release))
        if instance is not None:
            steps.append(("release libVLC", instance.release))
        for label, action in steps:
            try:
                action()
            except Exception as e:
                log.warning(f"Engine cleanup failed to {label}: {e}")
        log.debug("libVLC engine released")
