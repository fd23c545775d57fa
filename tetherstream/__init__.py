"""Ethernet-tethered camera discovery and supervised RTSP re-streaming."""

from .common import (
    SCAN_PORT,
    PROBE_TIMEOUT,
    COMMON_HOST_IDS,
    MAX_RECONNECT_ATTEMPTS,
    RECONNECT_DELAY,
    BANDWIDTH_WINDOW_SIZE,
    configure_logging,
    format_uptime,
    generate_token,
)
from .models import (
    InterfaceInfo,
    ScanRange,
    IngestMode,
    StreamConfig,
    SessionState,
    BandwidthSample,
    StatusSnapshot,
    EngineEvent,
    EngineEventType,
    EngineStats,
)
from .errors import (
    TetherStreamError,
    NoTetheringInterface,
    SubnetUndetermined,
    NoHostsFound,
    EngineStartFailure,
    StreamError,
    ReconnectExhausted,
    SessionAlreadyRunning,
)
from .interfaces import InterfaceInspector
from .tethering import TetherStateSource, StaticTetherSource, DumpsysTetherSource, TetheringMonitor
from .scanner import SubnetScanner, reachability_probe
from .bandwidth import BandwidthEstimator
from .engine import MediaEngine, VlcEngine, EngineRequest, build_engine_request, stream_path
from .publisher import StatusPublisher
from .supervisor import StreamSupervisor
from .client import TetherStream

__all__ = [
    "SCAN_PORT",
    "PROBE_TIMEOUT",
    "COMMON_HOST_IDS",
    "MAX_RECONNECT_ATTEMPTS",
    "RECONNECT_DELAY",
    "BANDWIDTH_WINDOW_SIZE",
    "configure_logging",
    "format_uptime",
    "generate_token",
    "InterfaceInfo",
    "ScanRange",
    "IngestMode",
    "StreamConfig",
    "SessionState",
    "BandwidthSample",
    "StatusSnapshot",
    "EngineEvent",
    "EngineEventType",
    "EngineStats",
    "TetherStreamError",
    "NoTetheringInterface",
    "SubnetUndetermined",
    "NoHostsFound",
    "EngineStartFailure",
    "StreamError",
    "ReconnectExhausted",
    "SessionAlreadyRunning",
    "InterfaceInspector",
    "TetherStateSource",
    "StaticTetherSource",
    "DumpsysTetherSource",
    "TetheringMonitor",
    "SubnetScanner",
    "reachability_probe",
    "BandwidthEstimator",
    "MediaEngine",
    "VlcEngine",
    "EngineRequest",
    "build_engine_request",
    "stream_path",
    "StatusPublisher",
    "StreamSupervisor",
    "TetherStream",
]
