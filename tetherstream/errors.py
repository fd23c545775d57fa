"""Error kinds raised by discovery and the stream supervisor."""


class TetherStreamError(RuntimeError):
    """Base class; ``str(exc)`` is what lands in ``StatusSnapshot.last_error``."""


class NoTetheringInterface(TetherStreamError):
    """No up, non-loopback Ethernet interface. The user must fix tethering."""


class SubnetUndetermined(TetherStreamError):
    """Tethering interface is up but has no IPv4 address yet (DHCP pending)."""


class NoHostsFound(TetherStreamError):
    """Scan completed without a reachable host."""


class EngineStartFailure(TetherStreamError):
    """The media engine could not be created or refused to play."""


class StreamError(TetherStreamError):
    """The engine reported an error after the session started."""


class ReconnectExhausted(TetherStreamError):
    """Terminal: the reconnect ceiling was exceeded."""


class SessionAlreadyRunning(TetherStreamError):
    """A start was requested while a session is starting, streaming or reconnecting."""
