"""
Network detection functionality for automatically detecting host network configuration.

This module provides the NetworkDetector class which detects the interface to
probe on, its IPv4 address and subnet, and the set of addresses owned by the
local machine. The coordinator uses it to choose default probe targets when
none are given: the subnet broadcast address for NBNS and the subnet hosts
for mDNS reverse lookups.
"""

import ipaddress
import platform
import socket
import subprocess
from typing import List, Optional, Tuple

from .data_models import NetworkInfo
from ..utils.logger import Logger, get_logger
from ..utils.network_utils import get_network_hosts, get_network_info

DEFAULT_PREFIX = "24"


class NetworkDetector:
    """
    Detects host network configuration and default probe targets.

    On Linux the default route and interface addresses are read from the
    `ip` command, `route`/`ifconfig` are tried next, and a UDP socket
    connect() is the last resort (no packet is sent).
    """

    def __init__(self, logger: Optional[Logger] = None):
        """Initialize the NetworkDetector."""
        self.logger = logger or get_logger(__name__)

    def get_host_network_info(self, interface: Optional[str] = None) -> NetworkInfo:
        """
        Detect and return the host's network configuration.

        Args:
            interface: Interface to use; the default route interface when None

        Returns:
            NetworkInfo for the selected interface

        Raises:
            RuntimeError: If network configuration cannot be detected
        """
        try:
            if interface:
                interface_name = interface
                host_ip = self._get_interface_ip(interface)
            else:
                interface_name, host_ip = self._get_default_interface_and_ip()
            netmask = self._get_interface_netmask(interface_name, host_ip)
            network_address, broadcast_address, _ = get_network_info(host_ip, netmask)
        except (OSError, ValueError, RuntimeError) as e:
            self.logger.error(f"Failed to detect network configuration: {e}")
            raise RuntimeError(f"Network detection failed: {e}") from e

        self.logger.debug(
            f"Interface {interface_name}: {host_ip}/{netmask}, broadcast {broadcast_address}"
        )
        return NetworkInfo(
            host_ip=host_ip,
            netmask=netmask,
            network_address=network_address,
            broadcast_address=broadcast_address,
            interface_name=interface_name,
        )

    def candidate_hosts(self, network_info: NetworkInfo, limit: int) -> List[str]:
        """
        Host addresses of the detected subnet, excluding the probing host.

        Args:
            network_info: Detected network configuration
            limit: Maximum number of addresses returned

        Returns:
            Addresses in ascending order
        """
        hosts = get_network_hosts(network_info.cidr, limit + 1)
        candidates = [str(address) for address in hosts if str(address) != network_info.host_ip]
        if len(candidates) > limit:
            self.logger.warning(
                f"Subnet {network_info.cidr} is larger than max_targets ({limit}); "
                f"only the first {limit} addresses are queried"
            )
        return candidates[:limit]

    def _get_default_interface_and_ip(self) -> Tuple[str, str]:
        if platform.system().lower() == "windows":
            return self._get_interface_via_socket()

        try:
            # Parse output: "default via 192.168.1.1 dev eth0"
            result = subprocess.run(
                ["ip", "route", "show", "default"],
                capture_output=True,
                text=True,
                check=True
            )
            for line in result.stdout.split('\n'):
                parts = line.split()
                if 'default' in parts and 'dev' in parts:
                    dev_index = parts.index('dev')
                    if dev_index + 1 < len(parts):
                        interface_name = parts[dev_index + 1]
                        return interface_name, self._get_interface_ip(interface_name)
        except (subprocess.CalledProcessError, FileNotFoundError):
            # macOS and older systems
            try:
                result = subprocess.run(
                    ["route", "-n", "get", "default"],
                    capture_output=True,
                    text=True,
                    check=True
                )
                for line in result.stdout.split('\n'):
                    if 'interface:' in line:
                        interface_name = line.split(':')[1].strip()
                        return interface_name, self._get_interface_ip(interface_name)
            except (subprocess.CalledProcessError, FileNotFoundError):
                pass

        return self._get_interface_via_socket()

    def _get_interface_via_socket(self) -> Tuple[str, str]:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
                s.connect(("8.8.8.8", 80))
                local_ip = s.getsockname()[0]
        except OSError as e:
            raise RuntimeError(f"Socket method failed: {e}") from e

        self.logger.debug(f"Using socket method, detected IP: {local_ip}")
        return "auto-detected", local_ip

    def _get_interface_ip(self, interface_name: str) -> str:
        """Get the first non-loopback IPv4 address of an interface."""
        for line in self._interface_lines(interface_name):
            parts = line.split()
            if 'inet' in parts:
                # "inet 192.168.1.100/24" (ip) or "inet 192.168.1.100 netmask ..." (ifconfig)
                candidate = parts[parts.index('inet') + 1].split('/')[0]
                if self._is_valid_interface_ip(candidate):
                    return candidate

        raise RuntimeError(f"Could not get IPv4 address for interface {interface_name}")

    def _get_interface_netmask(self, interface_name: str, ip_address: str) -> str:
        """Get the prefix length of an interface address, /24 when unknown."""
        try:
            lines = self._interface_lines(interface_name)
        except RuntimeError:
            lines = []

        for line in lines:
            parts = line.split()
            for index, part in enumerate(parts):
                if part.startswith(f"{ip_address}/"):
                    return part.split('/')[1]
                if part.lower() == 'netmask' and index + 1 < len(parts) and ip_address in parts:
                    return self._netmask_to_cidr(parts[index + 1])

        self.logger.warning(f"Could not determine netmask of {interface_name}, using /{DEFAULT_PREFIX}")
        return DEFAULT_PREFIX

    def _interface_lines(self, interface_name: str) -> List[str]:
        for command in (["ip", "addr", "show", interface_name], ["ifconfig", interface_name]):
            try:
                result = subprocess.run(command, capture_output=True, text=True, check=True)
                return result.stdout.split('\n')
            except (subprocess.CalledProcessError, FileNotFoundError):
                continue
        raise RuntimeError(f"Interface {interface_name} not found")

    def _netmask_to_cidr(self, netmask: str) -> str:
        """Convert dotted decimal or hex netmask to a prefix length."""
        try:
            # Handle hex format (0xffffff00)
            if netmask.startswith('0x'):
                return str(bin(int(netmask, 16)).count('1'))
            if '.' in netmask:
                return str(ipaddress.IPv4Network(f"0.0.0.0/{netmask}").prefixlen)
            return netmask
        except ValueError:
            return DEFAULT_PREFIX

    def _is_valid_interface_ip(self, ip: str) -> bool:
        """Check if IP is usable for probing (IPv4, not loopback, not multicast)."""
        try:
            address = ipaddress.IPv4Address(ip)
        except ipaddress.AddressValueError:
            return False
        return not (address.is_loopback or address.is_multicast)
