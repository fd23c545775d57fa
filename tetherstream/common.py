"""Shared constants and logging helpers for the tethered camera re-streamer."""

import logging
import secrets

log = logging.getLogger("tetherstream")

SCAN_PORT           = 22        # SSH, open on most camera bridges (Raspberry Pi)
PROBE_TIMEOUT       = 1.0       # seconds, per TCP connect and per ICMP echo
MIN_HOST_ID         = 1
MAX_HOST_ID         = 254       # 0 and 255 are network/broadcast

# Probed first by find_first_active: gateway, common tethering client, others
COMMON_HOST_IDS = (1, 129, 10, 100, 2)

DEFAULT_UDP_PORT    = 8600      # raw UDP push ingest
DEFAULT_CAMERA_PORT = 554       # camera RTSP
DEFAULT_SINK_PORT   = 8554      # re-published RTSP

MAX_RECONNECT_ATTEMPTS = 5
RECONNECT_DELAY        = 3.0    # seconds
SAMPLE_INTERVAL        = 1.0    # seconds between bandwidth/status ticks
NOTIFICATION_INTERVAL  = 5      # ticks between notification refreshes
BANDWIDTH_WINDOW_SIZE  = 5
TOKEN_LENGTH           = 16     # hex characters

ETHERNET_PREFIX = "eth"
USB_PREFIXES = ("rndis", "usb", "ncm")
BLUETOOTH_PREFIXES = ("bt-pan", "bnep")
WIFI_PREFIXES = ("wlan", "swlan", "ap")

TAILSCALE_PREFIX = "100."


def configure_logging(level_name: str = "INFO"):
    level = getattr(logging, level_name.upper(), logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(message)s')
    else:
        root_logger.setLevel(level)

    log.setLevel(level)


def format_uptime(seconds: int) -> str:
    """Format a duration as ``H:MM:SS`` when it reaches an hour, else ``MM:SS``."""
    seconds = max(int(seconds), 0)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def generate_token() -> str:
    """Return a fresh random hex token for the published stream path."""
    return secrets.token_hex(TOKEN_LENGTH // 2)
