"""
Multicast DNS prober.

Asks the mDNS group for the reverse (PTR) names of every candidate address
and collects answers from any responder. Explicit targets also get a unicast
copy of their question on port 5353, which reaches responders that ignore
multicast questions for names they do not own.
"""

import ipaddress
import random
import socket
import struct
from contextlib import contextmanager
from typing import Iterator, List, Optional, Set, Tuple

from .base_prober import BaseProber, SocketFactory
from ..codec.mdns import (
    RECORD_TYPES,
    decode_mdns_response,
    encode_mdns_query,
    encode_mdns_questions,
    reverse_pointer_name,
)
from ..config.config_loader import MDNSConfig
from ..core.data_models import Finding, Protocol, Query, Response
from ..utils.error_handler import ErrorHandler
from ..utils.logger import Logger


class MDNSProber(BaseProber):
    """
    Prober for multicast DNS host names.

    The socket binds port 5353 with address reuse so it can share the port
    with a local responder (Avahi, Bonjour). If the port cannot be bound the
    prober falls back to an ephemeral port and a non-zero query ID, making
    its queries legacy unicast queries that responders answer directly.
    """

    protocol = Protocol.MDNS

    def __init__(self, config: Optional[MDNSConfig] = None,
                 interface_address: Optional[str] = None,
                 interface_name: Optional[str] = None,
                 logger: Optional[Logger] = None,
                 error_handler: Optional[ErrorHandler] = None,
                 socket_factory: Optional[SocketFactory] = None):
        """
        Initialize the mDNS prober.

        Args:
            config: mDNS settings
            interface_address: IPv4 address of the interface to send and
                join on, the system default when None
            interface_name: Interface name, used for IPv6 group membership
            logger: Logger instance
            error_handler: ErrorHandler for socket failures
            socket_factory: socket.socket replacement for tests
        """
        super().__init__(config or MDNSConfig(), logger, error_handler, socket_factory)
        self.interface_address = interface_address
        self.interface_name = interface_name
        self.legacy_unicast = False

    @property
    def family(self) -> int:
        return socket.AF_INET6 if self.config.ipv6 else socket.AF_INET

    @property
    def group(self) -> str:
        return self.config.group_v6 if self.config.ipv6 else self.config.group

    def build_queries(self, candidates: List[str], unicast_targets: List[str] = (),
                      query_id: int = 0) -> List[Query]:
        """
        Build the multicast and unicast queries for one probe.

        Args:
            candidates: Addresses whose reverse names are asked for
            unicast_targets: Addresses that also get a direct query
            query_id: DNS message ID

        Returns:
            Multicast queries of at most questions_per_packet questions each,
            followed by one unicast query per unicast target
        """
        record_type = RECORD_TYPES[self.config.query_type]
        per_packet = self.config.questions_per_packet
        queries = []

        for start in range(0, len(candidates), per_packet):
            chunk = candidates[start:start + per_packet]
            payload = encode_mdns_questions(
                [(reverse_pointer_name(address), record_type) for address in chunk], query_id
            )
            queries.append(Query(self.protocol, self.group, query_id, payload))

        for address in unicast_targets:
            payload = encode_mdns_query(
                reverse_pointer_name(address), record_type, query_id, unicast_response=True
            )
            queries.append(Query(self.protocol, address, query_id, payload))
        return queries

    def probe(self, targets: List[str], deadline: float,
              explicit: bool = False) -> Iterator[Finding]:
        self._start_probe_timer()
        self.legacy_unicast = False
        try:
            candidates = [address for address in targets if self._same_family(address)]
            if len(candidates) < len(targets):
                self._log_warning(
                    f"Skipping {len(targets) - len(candidates)} candidate addresses "
                    f"outside the IPv{6 if self.config.ipv6 else 4} mDNS group's family"
                )
            if not candidates:
                self._log_warning("No mDNS candidate addresses to query")
                return

            with self._open_socket(self.family) as sock:
                self._bind(sock)
                with self._membership(sock):
                    query_id = random.randint(1, 0xFFFF) if self.legacy_unicast else 0
                    unicast = candidates if explicit and self.config.unicast_targets else []
                    queries = self.build_queries(candidates, unicast, query_id)
                    self._log_debug(
                        f"Sending {len(queries)} mDNS queries for {len(candidates)} addresses "
                        f"({len(unicast)} unicast)"
                    )
                    self._send_all(sock, queries)

                    seen: Set[Tuple[str, str]] = set()
                    for response in self._receive(sock, deadline, self.config.recv_buffer_size):
                        yield from self._findings(response, seen)
        finally:
            self._end_probe_timer()

    def _bind(self, sock: socket.socket) -> None:
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        except OSError as e:
            self._log_debug(f"Address reuse not available: {e}")

        try:
            sock.bind(("", self.config.port))
            return
        except OSError as e:
            self._log_warning(
                f"Cannot bind UDP port {self.config.port} ({e}); "
                f"falling back to legacy unicast queries"
            )

        try:
            sock.bind(("", 0))
        except OSError as e:
            raise self._failure(e, "bind", port=0)
        self.legacy_unicast = True

    @contextmanager
    def _membership(self, sock: socket.socket) -> Iterator[None]:
        """Configure multicast sending and join the group for the probe's lifetime."""
        try:
            if self.family == socket.AF_INET:
                interface = socket.inet_aton(self.interface_address or "0.0.0.0")
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.config.multicast_ttl)
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_IF, interface)
                membership = socket.inet_aton(self.group) + interface
                join, leave = socket.IP_ADD_MEMBERSHIP, socket.IP_DROP_MEMBERSHIP
                level = socket.IPPROTO_IP
            else:
                index = socket.if_nametoindex(self.interface_name) if self.interface_name else 0
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_HOPS, self.config.multicast_ttl)
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_IF, index)
                membership = socket.inet_pton(socket.AF_INET6, self.group) + struct.pack("@I", index)
                join, leave = socket.IPV6_JOIN_GROUP, socket.IPV6_LEAVE_GROUP
                level = socket.IPPROTO_IPV6
        except OSError as e:
            raise self._failure(e, "multicast setup", group=self.group)

        # Ephemeral sockets receive legacy unicast answers without joining
        if self.legacy_unicast:
            yield
            return

        try:
            sock.setsockopt(level, join, membership)
        except OSError as e:
            raise self._failure(e, "multicast join", group=self.group, port=self.config.port)
        try:
            yield
        finally:
            try:
                sock.setsockopt(level, leave, membership)
            except OSError as e:
                self._log_debug(f"Leaving {self.group} failed: {e}")

    def _send_all(self, sock: socket.socket, queries: List[Query]) -> None:
        sent = 0
        for query in queries:
            if self._send(sock, query.payload, (query.target, self.config.port)):
                sent += 1
        if not sent:
            raise self._failure(
                OSError(f"none of the {len(queries)} mDNS queries could be sent"),
                "send", group=self.group,
            )

    def _same_family(self, address: str) -> bool:
        version = 6 if self.family == socket.AF_INET6 else 4
        return ipaddress.ip_address(address).version == version

    def _findings(self, response: Response, seen: Set[Tuple[str, str]]) -> Iterator[Finding]:
        result = decode_mdns_response(response.raw_payload)
        if not result.ok:
            self._drop(response, result.error)
            return

        for decoded in result.names:
            address = decoded.address or response.source_address
            if not self._same_family(address):
                continue
            key = (address, decoded.name.casefold())
            if key in seen:
                continue
            seen.add(key)
            self.statistics.names_reported += 1
            yield Finding(address, decoded)
