"""Concurrent reachability scan of a /24 tethering subnet."""

import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Optional

from ping3 import ping

from .common import COMMON_HOST_IDS, MAX_HOST_ID, MIN_HOST_ID, PROBE_TIMEOUT, SCAN_PORT, log
from .models import ScanRange

ProgressCallback = Callable[[int, int], None]


def is_port_open(address: str, port: int = SCAN_PORT, timeout: float = PROBE_TIMEOUT) -> bool:
    try:
        with socket.create_connection((address, port), timeout=timeout):
            return True
    except OSError:
        return False


def is_pingable(address: str, timeout: float = PROBE_TIMEOUT) -> bool:
    try:
        delay = ping(address, timeout=timeout)
    except OSError as e:
        # Unprivileged hosts may refuse raw/datagram ICMP sockets
        log.debug(f"ICMP probe of {address} unavailable: {e}")
        return False
    return delay is not None and delay is not False


def reachability_probe(address: str, port: int = SCAN_PORT, timeout: float = PROBE_TIMEOUT) -> bool:
    """
    TCP connect first (no privileges needed, passes most firewalls),
    then an ICMP echo with the same timeout.
    """
    if is_port_open(address, port, timeout):
        return True
    return is_pingable(address, timeout)


class SubnetScanner:
    """
    Probes every host id of a range at once and collects the live addresses.
    One worker per host id; a /24 range never exceeds 254.
    """

    def __init__(self, probe: Optional[Callable[[str], bool]] = None):
        self.probe = probe or reachability_probe

    def _probe(self, address: str) -> bool:
        try:
            return bool(self.probe(address))
        except Exception as e:
            log.debug(f"Probe of {address} failed: {e}")
            return False

    def scan(self, subnet: str, start_host_id: int = MIN_HOST_ID,
             end_host_id: int = MAX_HOST_ID,
             on_progress: Optional[ProgressCallback] = None) -> set[str]:
        scan_range = ScanRange(subnet, start_host_id, end_host_id)
        total = scan_range.total
        log.info(f"Starting network scan on subnet {subnet} (hosts {start_host_id}-{end_host_id})")
        if total == 0:
            log.warning(f"Empty scan range {start_host_id}-{end_host_id}, nothing to probe")
            return set()

        lock = threading.Lock()
        completed = 0

        def probe_host(host_id: int) -> Optional[str]:
            nonlocal completed
            address = scan_range.address(host_id)
            active = self._probe(address)
            if active:
                log.debug(f"Found active IP: {address}")
            # Completion order is arbitrary; the counter, not the host id, is the progress
            with lock:
                completed += 1
                if on_progress:
                    try:
                        on_progress(completed, total)
                    except Exception as e:
                        log.warning(f"Scan progress callback failed: {e}")
            return address if active else None

        with ThreadPoolExecutor(max_workers=total, thread_name_prefix="scan") as pool:
            results = list(pool.map(probe_host, scan_range.host_ids()))

        active = {address for address in results if address}
        log.info(f"Scan complete. Found {len(active)} active IPs: {sorted(active)}")
        return active

    def find_first_active(self, subnet: str, start_host_id: int = MIN_HOST_ID,
                          end_host_id: int = MAX_HOST_ID,
                          exclude: Iterable[str] = ()) -> Optional[str]:
        """
        Check the likely host ids, then sweep the rest in order; stop at the
        first hit. Addresses in ``exclude`` (usually our own) are never probed.
        """
        scan_range = ScanRange(subnet, start_host_id, end_host_id)
        skip = set(exclude)
        log.info(f"Quick scan: finding first active IP on subnet {subnet}")

        candidates = [h for h in COMMON_HOST_IDS if start_host_id <= h <= end_host_id]
        for host_id in candidates:
            address = scan_range.address(host_id)
            if address not in skip and self._probe(address):
                log.info(f"Found active IP (common): {address}")
                return address

        for host_id in scan_range.host_ids():
            if host_id in candidates:
                continue
            address = scan_range.address(host_id)
            if address not in skip and self._probe(address):
                log.info(f"Found active IP (full scan): {address}")
                return address

        log.info(f"No active IP found on subnet {subnet}")
        return None
