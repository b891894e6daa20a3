"""
NetBIOS Name Service prober.

Sends one Node Status request per target (explicit host or subnet broadcast
address) from a single UDP socket and reports every name in the returned
name tables.
"""

import random
import socket
from typing import Iterator, List, Optional, Set, Tuple

from .base_prober import BaseProber, SocketFactory
from ..codec.nbns import decode_nbns_response, encode_nbns_query
from ..config.config_loader import NBNSConfig
from ..core.data_models import Finding, Protocol, Query, Response
from ..utils.error_handler import ErrorHandler
from ..utils.logger import Logger

MAX_TRANSACTION_ID = 0xFFFF


class NBNSProber(BaseProber):
    """
    Prober for NetBIOS names over UDP port 137.

    Every query gets its own transaction ID so a reply can be matched to a
    request even when the request went to a broadcast address and the reply
    comes back from a host that was never named.
    """

    protocol = Protocol.NBNS

    def __init__(self, config: Optional[NBNSConfig] = None, bind_address: str = "",
                 logger: Optional[Logger] = None,
                 error_handler: Optional[ErrorHandler] = None,
                 socket_factory: Optional[SocketFactory] = None):
        """
        Initialize the NBNS prober.

        Args:
            config: NBNS settings
            bind_address: Local address to bind, all interfaces when empty
            logger: Logger instance
            error_handler: ErrorHandler for socket failures
            socket_factory: socket.socket replacement for tests
        """
        super().__init__(config or NBNSConfig(), logger, error_handler, socket_factory)
        self.bind_address = bind_address

    def build_queries(self, targets: List[str]) -> List[Query]:
        """
        Build one Node Status query per target with unique transaction IDs.

        Args:
            targets: Destination addresses

        Returns:
            Queries in target order
        """
        if len(targets) > MAX_TRANSACTION_ID:
            raise ValueError(f"Cannot probe more than {MAX_TRANSACTION_ID} NBNS targets at once")
        transaction_ids = random.sample(range(1, MAX_TRANSACTION_ID + 1), len(targets))
        return [
            Query(self.protocol, target, transaction_id,
                  encode_nbns_query(transaction_id=transaction_id))
            for target, transaction_id in zip(targets, transaction_ids)
        ]

    def probe(self, targets: List[str], deadline: float,
              explicit: bool = False) -> Iterator[Finding]:
        self._start_probe_timer()
        try:
            if not targets:
                self._log_warning("No NBNS targets to query")
                return

            queries = self.build_queries(targets)
            outstanding = {query.transaction_id for query in queries}
            self._log_debug(
                f"Sending {len(queries)} NBNS node status "
                f"{'queries' if len(queries) != 1 else 'query'} from port {self.config.source_port or 'ephemeral'}"
            )

            with self._open_socket() as sock:
                try:
                    sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
                    sock.bind((self.bind_address, self.config.source_port))
                except OSError as e:
                    raise self._failure(e, "bind", port=self.config.source_port)

                sent = 0
                for query in queries:
                    if self._send(sock, query.payload, (query.target, self.config.port)):
                        sent += 1
                if not sent:
                    raise self._failure(
                        OSError(f"none of the {len(queries)} NBNS queries could be sent"),
                        "send", port=self.config.port,
                    )

                seen: Set[Tuple[str, int]] = set()
                for response in self._receive(sock, deadline, self.config.recv_buffer_size):
                    yield from self._findings(response, outstanding, seen)
        finally:
            self._end_probe_timer()

    def _findings(self, response: Response, outstanding: Set[int],
                  seen: Set[Tuple[str, int]]) -> Iterator[Finding]:
        result = decode_nbns_response(response.raw_payload, outstanding)
        if not result.ok:
            self._drop(response, result.error)
            return

        key = (response.source_address, result.transaction_id)
        if key in seen:
            self._drop(response, "duplicate response")
            return
        seen.add(key)

        for decoded in result.names:
            if decoded.is_group and not self.config.include_group_names:
                continue
            self.statistics.names_reported += 1
            yield Finding(response.source_address, decoded, result.mac_address)
