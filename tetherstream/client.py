"""High-level camera discovery and re-stream orchestration."""

from typing import Callable, Optional

from .common import MAX_HOST_ID, MIN_HOST_ID, log
from .engine import EngineFactory, VlcEngine
from .errors import NoHostsFound, NoTetheringInterface, SubnetUndetermined, TetherStreamError
from .interfaces import InterfaceInspector
from .models import InterfaceInfo, ScanRange, StatusSnapshot, StreamConfig
from .publisher import StatusPublisher
from .scanner import ProgressCallback, SubnetScanner
from .supervisor import StreamSupervisor
from .tethering import DumpsysTetherSource, TetherStateSource, TetheringMonitor


class TetherStream:
    """
    High-level interface: find the tethered camera, then run one supervised
    re-stream session and report its status to subscribers.
    """

    def __init__(self, tether_source: Optional[TetherStateSource] = None,
                 inspector: Optional[InterfaceInspector] = None,
                 scanner: Optional[SubnetScanner] = None,
                 engine_factory: EngineFactory = VlcEngine,
                 publisher: Optional[StatusPublisher] = None,
                 verbose: bool = False):
        self.inspector  = inspector or InterfaceInspector()
        self.monitor    = TetheringMonitor(tether_source or DumpsysTetherSource())
        self.scanner    = scanner or SubnetScanner()
        self.publisher  = publisher or StatusPublisher()
        self.supervisor = StreamSupervisor(
            engine_factory=engine_factory,
            publisher=self.publisher,
            inspector=self.inspector,
            verbose=verbose,
        )

    def primary_tethering_interface(self) -> Optional[InterfaceInfo]:
        return self.inspector.primary_tethering_interface()

    def scan_subnet(self, subnet: str, scan_range: Optional[ScanRange] = None,
                    on_progress: Optional[ProgressCallback] = None) -> set[str]:
        if scan_range is None:
            scan_range = ScanRange(subnet, MIN_HOST_ID, MAX_HOST_ID)
        return self.scanner.scan(subnet, scan_range.start_host_id, scan_range.end_host_id, on_progress)

    def discover_camera(self, quick: bool = False,
                        on_progress: Optional[ProgressCallback] = None) -> list[str]:
        """
        Return the reachable peers on the tethering subnet, excluding this host.
        Raises NoTetheringInterface, SubnetUndetermined or NoHostsFound; none
        of them is retried, the user has to fix the link first. The failure is
        also published as ``last_error`` on the status feed; the session state
        is left as it was.
        """
        try:
            return self._discover(quick, on_progress)
        except TetherStreamError as e:
            log.warning(f"Camera discovery failed: {e}")
            self.publisher.publish(StatusSnapshot(state=self.publisher.latest.state, last_error=str(e)))
            raise

    def _discover(self, quick: bool, on_progress: Optional[ProgressCallback]) -> list[str]:
        interfaces = self.inspector.list_interfaces()
        primary = self.inspector.primary_tethering_interface(interfaces)
        if primary is None:
            raise NoTetheringInterface("No active Ethernet tethering interface found")

        subnet = self.inspector.subnet_of(primary)
        if subnet is None:
            raise SubnetUndetermined(f"Interface {primary.name} has no IPv4 address yet")

        if not self.monitor.is_ethernet_tethering_active():
            # The interface is up with an address; the OS report is best-effort only
            log.warning(f"OS does not report Ethernet tethering on {primary.name}, scanning anyway")

        if quick:
            found = self.scanner.find_first_active(subnet, exclude=[primary.ip_address])
            hosts = {found} if found else set()
        else:
            hosts = self.scanner.scan(subnet, on_progress=on_progress)
        hosts.discard(primary.ip_address)

        if not hosts:
            raise NoHostsFound(f"No reachable host on {subnet}.0/24")
        log.info(f"Discovered hosts on {subnet}.0/24: {', '.join(sorted(hosts))}")
        return sorted(hosts)

    def subscribe(self, cb: Callable[[StatusSnapshot], None]) -> Callable[[], None]:
        return self.publisher.subscribe(cb)

    def subscribe_notifications(self, cb: Callable[[str], None]) -> Callable[[], None]:
        return self.publisher.subscribe_notifications(cb)

    @property
    def status(self) -> StatusSnapshot:
        return self.publisher.latest

    def start_session(self, config: StreamConfig) -> StatusSnapshot:
        return self.supervisor.start(config)

    def stop_session(self) -> StatusSnapshot:
        return self.supervisor.stop()

    def close(self):
        self.supervisor.shutdown()
