"""
Network utility functions for target planning.

This module provides helper functions for validating and expanding scan
targets, deriving subnet broadcast addresses and ordering addresses.
"""

import ipaddress
from typing import Iterable, List, Tuple, Union

from .error_handler import ValidationError

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def is_valid_target(target: str) -> bool:
    """
    Check if a string is an acceptable scan target (address or CIDR network).

    Args:
        target: Target string, e.g. "192.168.1.10" or "192.168.1.0/24"

    Returns:
        bool: True if the target parses, False otherwise
    """
    try:
        ipaddress.ip_network(target.strip(), strict=False)
        return True
    except (ValueError, AttributeError):
        return False


def expand_targets(targets: Iterable[str], max_targets: int) -> List[IPAddress]:
    """
    Expand address and CIDR targets into a de-duplicated address list.

    Single addresses are kept as given, networks contribute their host
    addresses. Order of first appearance is preserved.

    Args:
        targets: Target strings (addresses or CIDR networks)
        max_targets: Upper bound on the number of expanded addresses

    Returns:
        List of ip_address objects

    Raises:
        ValidationError: If a target cannot be parsed or the expansion
            exceeds max_targets
    """
    expanded: List[IPAddress] = []
    seen = set()

    for target in targets:
        text = str(target).strip()
        try:
            if "/" in text:
                network = ipaddress.ip_network(text, strict=False)
                if network.num_addresses - 2 > max_targets:
                    raise ValidationError(
                        f"Network {network} has more than {max_targets} hosts"
                    )
                addresses = list(network.hosts()) or [network.network_address]
            else:
                addresses = [ipaddress.ip_address(text)]
        except ValueError as e:
            raise ValidationError(f"Invalid target '{text}': {e}") from e

        for address in addresses:
            if address in seen:
                continue
            seen.add(address)
            expanded.append(address)
            if len(expanded) > max_targets:
                raise ValidationError(
                    f"Targets expand to more than {max_targets} addresses"
                )

    return expanded


def get_network_info(ip_address: str, netmask: str) -> Tuple[str, str, str]:
    """
    Get network address, broadcast address, and CIDR from IP and netmask.

    Args:
        ip_address: IP address within the network
        netmask: Subnet mask (dotted decimal or prefix length)

    Returns:
        Tuple[str, str, str]: Network address, broadcast address, CIDR notation

    Raises:
        ValueError: If IP address or netmask is invalid
    """
    try:
        network = ipaddress.IPv4Network(f"{ip_address}/{netmask}", strict=False)
    except ValueError as e:
        raise ValueError(f"Invalid IP or netmask: {ip_address}/{netmask}") from e
    return (
        str(network.network_address),
        str(network.broadcast_address),
        f"{network.network_address}/{network.prefixlen}",
    )


def get_network_hosts(network: str, limit: int) -> List[IPAddress]:
    """
    Get the host addresses of a network, truncated to limit entries.

    Args:
        network: Network in CIDR notation (e.g., "192.168.1.0/24")
        limit: Maximum number of addresses returned

    Returns:
        List of host addresses in ascending order
    """
    hosts = []
    for address in ipaddress.ip_network(network, strict=False).hosts():
        if len(hosts) >= limit:
            break
        hosts.append(address)
    return hosts


def address_sort_key(address: str) -> Tuple[int, int]:
    """
    Sort key ordering IPv4 before IPv6 and numerically within a family.

    Args:
        address: IP address string

    Returns:
        Tuple usable as a sort key
    """
    ip = ipaddress.ip_address(address)
    return ip.version, int(ip)
