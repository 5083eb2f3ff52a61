"""
Discovery of public local addresses usable as probe source addresses.

When a host has several public interfaces, binding each probe worker to one
of them spreads the outbound load across addresses.
"""

import ipaddress
import logging
import socket
from typing import List, Union

import psutil

from ..core.errors import EgressDiscoveryError

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

NON_EGRESS_NETWORKS = [
    ipaddress.ip_network(cidr) for cidr in (
        "127.0.0.0/8",     # IPv4 loopback
        "10.0.0.0/8",      # RFC1918
        "172.16.0.0/12",   # RFC1918
        "192.168.0.0/16",  # RFC1918
        "::1/128",         # IPv6 loopback
        "fe80::/10",       # IPv6 link-local
        "fc00::/7",        # IPv6 unique local
    )
]


def is_egress_candidate(address: IPAddress) -> bool:
    """True unless ``address`` falls inside one of the excluded ranges.

    IPv4-mapped IPv6 addresses are checked as the IPv4 address they carry.
    """
    if address.version == 6 and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
    return not any(
        address.version == network.version and address in network
        for network in NON_EGRESS_NETWORKS
    )


def _parse_address(raw: str):
    # psutil reports IPv6 link-local addresses with a "%iface" zone suffix.
    try:
        return ipaddress.ip_address(raw.split("%", 1)[0])
    except ValueError:
        return None


def resolve_egress_addresses() -> List[str]:
    """Return the sorted, de-duplicated public addresses of this host.

    Raises ``EgressDiscoveryError`` if the interface list itself cannot be
    read. An empty result means probes use the default route.
    """
    try:
        interfaces = psutil.net_if_addrs()
    except (OSError, RuntimeError) as e:
        raise EgressDiscoveryError(f"Network interface enumeration failed: {e}") from e

    found = set()
    for interface_name, addresses in interfaces.items():
        for address in addresses:
            if address.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            ip = _parse_address(address.address or "")
            if ip is None or not is_egress_candidate(ip):
                continue
            logger.debug(f"Egress address {ip} on {interface_name}")
            found.add(ip)

    return [str(ip) for ip in sorted(found, key=lambda ip: (ip.version, int(ip)))]
