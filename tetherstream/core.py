"""Public tetherstream API and CLI entrypoint: interfaces, scan, discover, serve."""

import argparse
import signal
import sys
import threading

from .common import (
    SCAN_PORT,
    PROBE_TIMEOUT,
    DEFAULT_CAMERA_PORT,
    DEFAULT_SINK_PORT,
    DEFAULT_UDP_PORT,
    MAX_HOST_ID,
    MIN_HOST_ID,
    configure_logging,
    format_uptime,
    generate_token,
    log,
)
from .models import IngestMode, ScanRange, SessionState, StatusSnapshot, StreamConfig
from .errors import TetherStreamError
from .interfaces import InterfaceInspector
from .tethering import DumpsysTetherSource, StaticTetherSource, TetheringMonitor
from .scanner import SubnetScanner
from .supervisor import StreamSupervisor
from .client import TetherStream

__all__ = [
    "SCAN_PORT",
    "PROBE_TIMEOUT",
    "DEFAULT_CAMERA_PORT",
    "DEFAULT_SINK_PORT",
    "DEFAULT_UDP_PORT",
    "IngestMode",
    "ScanRange",
    "SessionState",
    "StatusSnapshot",
    "StreamConfig",
    "TetherStreamError",
    "InterfaceInspector",
    "DumpsysTetherSource",
    "StaticTetherSource",
    "TetheringMonitor",
    "SubnetScanner",
    "StreamSupervisor",
    "TetherStream",
    "main",
]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ethernet-tethered camera discovery and RTSP re-streaming")
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        help='Logging verbosity (default: INFO)')
    parser.add_argument('--tethered', action='append', default=None, metavar='IFACE',
                        help='Treat IFACE as tethered instead of asking dumpsys (repeatable)')
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('interfaces', help='List host interfaces and the tethering link')

    scan = sub.add_parser('scan', help='Scan a /24 subnet for reachable hosts')
    scan.add_argument('subnet', help='First three octets, e.g. 192.168.42')
    scan.add_argument('--start', type=int, default=MIN_HOST_ID)
    scan.add_argument('--end', type=int, default=MAX_HOST_ID)

    discover = sub.add_parser('discover', help='Find the camera on the tethering subnet')
    discover.add_argument('--quick', action='store_true', help='Stop at the first reachable host')

    serve = sub.add_parser('serve', help='Re-publish the camera feed over RTSP')
    serve.add_argument('--mode', choices=[m.value for m in IngestMode], default=IngestMode.UDP.value)
    serve.add_argument('--udp-port', type=int, default=DEFAULT_UDP_PORT)
    serve.add_argument('--camera-host', default=None,
                       help='Camera address for RTSP pull (discovered if omitted)')
    serve.add_argument('--camera-port', type=int, default=DEFAULT_CAMERA_PORT)
    serve.add_argument('--camera-path', default='/')
    serve.add_argument('--camera-user', default='')
    serve.add_argument('--camera-password', default='')
    serve.add_argument('--sink-port', type=int, default=DEFAULT_SINK_PORT)
    serve.add_argument('--token', default=None, help='Stream path token (random if omitted)')
    serve.add_argument('--no-token', action='store_true', help='Serve on plain /stream')
    serve.add_argument('--verbose-engine', action='store_true')
    return parser


def _cmd_interfaces(app: TetherStream) -> int:
    interfaces = app.inspector.list_interfaces()
    for iface in interfaces:
        flags = []
        if iface.is_up:
            flags.append("up")
        if iface.is_loopback:
            flags.append("loopback")
        if iface.supports_multicast:
            flags.append("multicast")
        print(f"{iface.name:<16} {iface.ip_address or '-':<16} {','.join(flags)}")

    primary = app.inspector.primary_tethering_interface(interfaces)
    if primary:
        print(f"Tethering: {primary.name} subnet={app.inspector.subnet_of(primary) or 'pending DHCP'} "
              f"os_reports_tethering={app.monitor.is_ethernet_tethering_active()}")
    return 0


def _cmd_scan(app: TetherStream, args) -> int:
    def progress(done, total):
        if done == total or done % 32 == 0:
            log.info(f"Scan progress: {done}/{total}")

    hosts = app.scan_subnet(args.subnet, ScanRange(args.subnet, args.start, args.end), progress)
    for host in sorted(hosts):
        print(host)
    return 0 if hosts else 1


def _cmd_discover(app: TetherStream, args) -> int:
    for host in app.discover_camera(quick=args.quick):
        print(host)
    return 0


def _cmd_serve(app: TetherStream, args) -> int:
    mode = IngestMode(args.mode)
    camera_host = args.camera_host
    if mode is IngestMode.RTSP and not camera_host:
        camera_host = app.discover_camera(quick=True)[0]

    token = "" if args.no_token else (args.token or generate_token())
    config = StreamConfig(
        mode=mode,
        udp_port=args.udp_port,
        camera_host=camera_host,
        camera_port=args.camera_port,
        camera_path=args.camera_path,
        camera_username=args.camera_user,
        camera_password=args.camera_password,
        sink_port=args.sink_port,
        token=token,
    )

    finished = threading.Event()

    def on_status(snapshot: StatusSnapshot):
        if snapshot.last_error:
            log.warning(f"Status: {snapshot.state.value} error={snapshot.last_error}")
        if snapshot.state is SessionState.STOPPED:
            finished.set()

    def on_notification(text: str):
        log.info(text)

    app.subscribe(on_status)
    app.subscribe_notifications(on_notification)

    def _graceful_shutdown(_signum, _frame):
        finished.set()

    signal.signal(signal.SIGINT, _graceful_shutdown)
    signal.signal(signal.SIGTERM, _graceful_shutdown)

    app.start_session(config)
    while not finished.wait(0.5):
        pass

    uptime = app.status.uptime_seconds
    final = app.stop_session()
    log.info(f"Session ended after {format_uptime(uptime)}")
    return 1 if final.last_error else 0


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level)

    source = StaticTetherSource(args.tethered) if args.tethered else DumpsysTetherSource()
    verbose = getattr(args, 'verbose_engine', False)
    app = TetherStream(tether_source=source, verbose=verbose)
    try:
        if args.command == 'interfaces':
            return _cmd_interfaces(app)
        if args.command == 'scan':
            return _cmd_scan(app, args)
        if args.command == 'discover':
            return _cmd_discover(app, args)
        return _cmd_serve(app, args)
    except (TetherStreamError, ValueError) as e:
        log.error(str(e))
        return 1
    except KeyboardInterrupt:
        log.info("Interrupted")
        return 0
    finally:
        app.close()


if __name__ == "__main__":
    sys.exit(main())
