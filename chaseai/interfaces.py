"""Host network interface detection."""

from __future__ import annotations

import ipaddress
import socket
import sys

import psutil

from chaseai.schemas import InterfaceType, NetworkInterface


def default_loopback_name() -> str:
    """Platform-standard loopback interface name."""
    return "lo0" if sys.platform == "darwin" else "lo"


def is_private_ip(ip: str) -> bool:
    """Whether an address belongs on a LAN rather than the public internet.

    Every IPv6 address is treated as LAN.
    """
    addr = ipaddress.ip_address(ip)
    if addr.version == 6:
        return True
    return addr.is_private


def classify(ip: str) -> InterfaceType:
    addr = ipaddress.ip_address(ip)
    if addr.is_loopback:
        return InterfaceType.LOOPBACK
    if is_private_ip(ip):
        return InterfaceType.LAN
    return InterfaceType.PUBLIC


def detect_all() -> list[NetworkInterface]:
    """List every IPv4/IPv6 address on the host."""
    interfaces = []
    for name, addrs in psutil.net_if_addrs().items():
        for addr in addrs:
            if addr.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            # Drop IPv6 zone suffixes like fe80::1%en0
            ip = addr.address.split("%", 1)[0]
            interfaces.append(
                NetworkInterface(name=name, ip_address=ip, interface_type=classify(ip))
            )
    return interfaces


def detect_loopback() -> list[NetworkInterface]:
    return [i for i in detect_all() if i.interface_type == InterfaceType.LOOPBACK]


def detect_lan() -> list[NetworkInterface]:
    return [i for i in detect_all() if i.interface_type == InterfaceType.LAN]
