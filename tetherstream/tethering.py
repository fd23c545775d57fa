"""OS tethering-state queries behind a swappable source interface."""

import subprocess
from typing import Iterable

from .common import (
    BLUETOOTH_PREFIXES,
    ETHERNET_PREFIX,
    USB_PREFIXES,
    WIFI_PREFIXES,
    log,
)


class TetherStateSource:
    """Reports the names of interfaces the OS currently considers tethered."""

    def tethered_interfaces(self) -> list[str]:
        raise NotImplementedError


class StaticTetherSource(TetherStateSource):
    """In-memory source; also used on hosts where tethering is set up by hand."""

    def __init__(self, names: Iterable[str] = ()):
        self.names = list(names)

    def tethered_interfaces(self) -> list[str]:
        return list(self.names)


class DumpsysTetherSource(TetherStateSource):
    """
    Android source. The tethered-interface list is not public API, so it is
    read from ``dumpsys`` output, where each tethered downstream appears as
    ``<iface> - TetheredState``.
    """

    def __init__(self, command=("dumpsys", "tethering"), timeout: float = 5.0):
        self.command = list(command)
        self.timeout = timeout

    def tethered_interfaces(self) -> list[str]:
        result = subprocess.run(
            self.command, capture_output=True, text=True, timeout=self.timeout, check=True,
        )
        return parse_dumpsys_tethered(result.stdout)


def parse_dumpsys_tethered(output: str) -> list[str]:
    names = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        name, sep, rest = line.partition(" - ")
        if not sep or not rest.startswith("TetheredState"):
            continue
        if name and name not in names:
            names.append(name)
    return names


def _is_excluded(name: str) -> bool:
    lowered = name.lower()
    return any(lowered.startswith(p) for p in USB_PREFIXES + BLUETOOTH_PREFIXES + WIFI_PREFIXES)


class TetheringMonitor:
    """Confirms the Ethernet link is actually tethering, not just up."""

    def __init__(self, source: TetherStateSource):
        self.source = source

    def is_ethernet_tethering_active(self) -> bool:
        try:
            names = self.source.tethered_interfaces()
        except Exception as e:
            # Best-effort across OS versions: a failed query means "not active"
            log.warning(f"Failed to query tethering state: {e}")
            return False

        active = any(
            name.lower().startswith(ETHERNET_PREFIX) and not _is_excluded(name)
            for name in names
        )
        log.debug(f"Ethernet tethering active: {active}, interfaces: {names}")
        return active
