"""Host network interface inspection and tethering-link classification."""

import socket
from typing import Optional

import psutil

from .common import ETHERNET_PREFIX, TAILSCALE_PREFIX, log
from .models import InterfaceInfo


def _first_ipv4(addrs) -> Optional[str]:
    for addr in addrs:
        if addr.family != socket.AF_INET:
            continue
        if addr.address and not addr.address.startswith("127."):
            return addr.address
    return None


def _is_loopback(name: str, stats) -> bool:
    flags = getattr(stats, "flags", "") or ""
    return "loopback" in flags.split(",") or name == "lo"


def _supports_multicast(stats) -> bool:
    flags = getattr(stats, "flags", "") or ""
    return "multicast" in flags.split(",")


class InterfaceInspector:
    """
    Enumerates host interfaces and picks the wired Ethernet tethering link.
    USB, Bluetooth and Wi-Fi tethering links are never selected.
    """

    def list_interfaces(self) -> list[InterfaceInfo]:
        """Return a fresh snapshot of every interface, or [] if enumeration fails."""
        try:
            all_addrs = psutil.net_if_addrs()
            all_stats = psutil.net_if_stats()
        except (OSError, RuntimeError) as e:
            log.error(f"Failed to enumerate network interfaces: {e}", exc_info=True)
            return []

        interfaces = []
        for name, addrs in all_addrs.items():
            stats = all_stats.get(name)
            info = InterfaceInfo(
                name=name,
                display_name=name,
                ip_address=_first_ipv4(addrs),
                is_up=bool(stats and stats.isup),
                is_loopback=_is_loopback(name, stats),
                supports_multicast=_supports_multicast(stats),
            )
            log.debug(f"Found interface: {info.name}, IP: {info.ip_address}, Up: {info.is_up}")
            interfaces.append(info)
        return interfaces

    def tethering_interfaces(self, interfaces: Optional[list[InterfaceInfo]] = None) -> list[InterfaceInfo]:
        if interfaces is None:
            interfaces = self.list_interfaces()
        matches = [
            iface for iface in interfaces
            if iface.name.lower().startswith(ETHERNET_PREFIX) and iface.is_up and not iface.is_loopback
        ]
        log.debug(f"Found {len(matches)} active tethering interfaces")
        return matches

    def primary_tethering_interface(self, interfaces: Optional[list[InterfaceInfo]] = None) -> Optional[InterfaceInfo]:
        matches = self.tethering_interfaces(interfaces)
        if not matches:
            log.warning("No active Ethernet tethering interface found")
            return None
        primary = matches[0]
        log.info(f"Primary tethering interface: {primary.name} - {primary.ip_address}")
        return primary

    @staticmethod
    def subnet_of(info: InterfaceInfo) -> Optional[str]:
        """Return the /24 prefix (e.g. ``"192.168.42"``), or None before DHCP completes."""
        if not info.ip_address:
            return None
        octets = info.ip_address.split(".")
        if len(octets) != 4 or not all(o.isdigit() and int(o) <= 255 for o in octets):
            return None
        return ".".join(octets[:3])

    def advertised_address(self, interfaces: Optional[list[InterfaceInfo]] = None) -> Optional[str]:
        """
        Address to put in the published stream URL.
        A Tailscale address wins so the URL also works over the VPN;
        otherwise the first up, non-loopback IPv4 address.
        """
        if interfaces is None:
            interfaces = self.list_interfaces()

        tailscale_ip = None
        fallback_ip = None
        for iface in interfaces:
            if iface.is_loopback or not iface.is_up or not iface.ip_address:
                continue
            if iface.ip_address.startswith(TAILSCALE_PREFIX) or "tailscale" in iface.name.lower():
                tailscale_ip = iface.ip_address
            elif fallback_ip is None:
                fallback_ip = iface.ip_address

        selected = tailscale_ip or fallback_ip
        log.debug(f"Selected advertised address: {selected} (Tailscale: {tailscale_ip is not None})")
        return selected
