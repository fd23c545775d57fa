"""Data structures for interface discovery, scanning and stream sessions."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .common import (
    DEFAULT_CAMERA_PORT,
    DEFAULT_SINK_PORT,
    DEFAULT_UDP_PORT,
    MAX_HOST_ID,
    MIN_HOST_ID,
)


@dataclass(frozen=True)
class InterfaceInfo:
    name:               str
    display_name:       str
    ip_address:         Optional[str]
    is_up:              bool
    is_loopback:        bool
    supports_multicast: bool


@dataclass(frozen=True)
class ScanRange:
    """Inclusive host-id range on a /24 subnet. start > end is an empty range."""
    subnet:        str
    start_host_id: int = MIN_HOST_ID
    end_host_id:   int = MAX_HOST_ID

    def __post_init__(self):
        for host_id in (self.start_host_id, self.end_host_id):
            if not MIN_HOST_ID <= host_id <= MAX_HOST_ID:
                raise ValueError(
                    f"Host id {host_id} outside [{MIN_HOST_ID}, {MAX_HOST_ID}]"
                )

    @property
    def total(self) -> int:
        return max(self.end_host_id - self.start_host_id + 1, 0)

    def host_ids(self) -> range:
        return range(self.start_host_id, self.end_host_id + 1)

    def address(self, host_id: int) -> str:
        return f"{self.subnet}.{host_id}"


class IngestMode(Enum):
    UDP  = "udp"        # camera pushes raw UDP to us
    RTSP = "rtsp"       # we pull the camera's RTSP stream


def _check_port(name: str, port: int):
    if not 1 <= port <= 65535:
        raise ValueError(f"{name} {port} outside [1, 65535]")


@dataclass(frozen=True)
class StreamConfig:
    mode:            IngestMode = IngestMode.UDP
    udp_port:        int = DEFAULT_UDP_PORT
    camera_host:     Optional[str] = None
    camera_port:     int = DEFAULT_CAMERA_PORT
    camera_path:     str = "/"
    camera_username: str = ""
    camera_password: str = ""
    sink_port:       int = DEFAULT_SINK_PORT
    token:           str = ""

    def __post_init__(self):
        _check_port("udp_port", self.udp_port)
        _check_port("camera_port", self.camera_port)
        _check_port("sink_port", self.sink_port)
        if self.mode is IngestMode.RTSP and not self.camera_host:
            raise ValueError("RTSP ingest requires camera_host")

    @property
    def is_pulled(self) -> bool:
        return self.mode is IngestMode.RTSP


class SessionState(Enum):
    IDLE         = "idle"
    STARTING     = "starting"
    STREAMING    = "streaming"
    RECONNECTING = "reconnecting"
    STOPPED      = "stopped"

    @property
    def is_active(self) -> bool:
        return self in (SessionState.STARTING, SessionState.STREAMING, SessionState.RECONNECTING)


@dataclass(frozen=True)
class BandwidthSample:
    timestamp:        float     # seconds, monotonic clock
    cumulative_bytes: int


@dataclass(frozen=True)
class StatusSnapshot:
    state:                   SessionState
    uptime_seconds:          int = 0
    published_url:           Optional[str] = None
    bandwidth_bytes_per_sec: int = 0
    last_error:              Optional[str] = None
    reconnect_attempt:       int = 0
    timestamp:               float = field(default_factory=time.time)

    @property
    def is_streaming(self) -> bool:
        return self.state is SessionState.STREAMING


class EngineEventType(Enum):
    OPENING   = "opening"
    BUFFERING = "buffering"
    PLAYING   = "playing"
    ERROR     = "error"
    STOPPED   = "stopped"


@dataclass(frozen=True)
class EngineEvent:
    type:    EngineEventType
    percent: Optional[float] = None     # buffering only


@dataclass(frozen=True)
class EngineStats:
    """Cumulative byte counters read from the media engine."""
    read_bytes:       int = 0
    demux_read_bytes: int = 0
    sent_bytes:       int = 0

    def best_counter(self) -> int:
        # Different pipeline stages populate different counters
        for value in (self.read_bytes, self.demux_read_bytes, self.sent_bytes):
            if value > 0:
                return value
        return 0
