"""
Base prober interface for Hostname Discovery Module.

This module defines the abstract base class both probers implement: a
generator-based probe() contract, a socket scoped to the probe, a receive loop
bounded by the shared deadline, per-probe counters and logging helpers.
"""

import socket
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterator, List, Optional, Tuple

from ..core.data_models import Finding, ProbeStatistics, Protocol, Response
from ..utils.error_handler import ErrorHandler, ProbeError
from ..utils.logger import Logger, get_logger

SocketFactory = Callable[..., socket.socket]


class BaseProber(ABC):
    """
    Abstract base class for name service probers.

    A prober owns exactly one socket for the length of one probe() call.
    It never touches the discovery session: it yields Finding objects and
    raises ProbeError when its socket cannot be used.
    """

    protocol: Protocol

    def __init__(self, config: Any, logger: Optional[Logger] = None,
                 error_handler: Optional[ErrorHandler] = None,
                 socket_factory: Optional[SocketFactory] = None):
        """
        Initialize the base prober.

        Args:
            config: Protocol-specific configuration
            logger: Logger instance for progress and errors
            error_handler: ErrorHandler classifying socket failures
            socket_factory: Callable with the signature of socket.socket,
                replaced by a fake in tests
        """
        self.config = config
        self.logger = logger or get_logger(type(self).__name__)
        self.error_handler = error_handler or ErrorHandler(self.logger)
        self.socket_factory = socket_factory or socket.socket
        self.statistics = ProbeStatistics()
        self.probe_start_time: Optional[datetime] = None

    @abstractmethod
    def probe(self, targets: List[str], deadline: float,
              explicit: bool = False) -> Iterator[Finding]:
        """
        Query the targets and yield findings until the deadline.

        Args:
            targets: Destination or candidate addresses
            deadline: time.monotonic() value at which receiving stops
            explicit: True when the targets were named by the caller rather
                than derived from the local subnet

        Yields:
            Finding for every name decoded from a matching response

        Raises:
            ProbeError: If the socket cannot be opened, bound or read
        """

    @contextmanager
    def _open_socket(self, family: int = socket.AF_INET) -> Iterator[socket.socket]:
        """Create a UDP socket that is closed on every exit path."""
        try:
            sock = self.socket_factory(family, socket.SOCK_DGRAM)
        except OSError as e:
            raise self._failure(e, "socket")
        try:
            yield sock
        finally:
            sock.close()

    def _send(self, sock: socket.socket, payload: bytes,
              destination: Tuple[str, int]) -> bool:
        """
        Send one datagram, logging rather than raising on failure.

        Returns:
            True if the datagram was handed to the network stack
        """
        try:
            sock.sendto(payload, destination)
        except OSError as e:
            self.statistics.send_failures += 1
            self._log_warning(f"Send to {destination[0]}:{destination[1]} failed: {e}")
            return False
        self.statistics.queries_sent += 1
        return True

    def _receive(self, sock: socket.socket, deadline: float,
                 buffer_size: int) -> Iterator[Response]:
        """
        Yield received datagrams until the deadline passes.

        A socket timeout ends the loop normally. Connection reset/refused
        (ICMP port unreachable surfacing on UDP sockets) is skipped. Any
        other socket error ends the probe with a ProbeError.
        """
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            try:
                sock.settimeout(remaining)
                data, address = sock.recvfrom(buffer_size)
            except socket.timeout:
                return
            except (ConnectionResetError, ConnectionRefusedError) as e:
                self._log_debug(f"Ignoring transient receive error: {e}")
                continue
            except OSError as e:
                raise self._failure(e, "receive")

            self.statistics.datagrams_received += 1
            # Link-local IPv6 sources carry a "%scope" suffix
            source = address[0].split('%', 1)[0]
            yield Response(source, self.protocol, data)

    def _failure(self, error: OSError, operation: str, **additional_info) -> ProbeError:
        return self.error_handler.socket_failure(
            error, operation, type(self).__name__, self.protocol, **additional_info
        )

    def _drop(self, response: Response, reason: Any) -> None:
        self.statistics.datagrams_dropped += 1
        self._log_debug(f"Dropped datagram from {response.source_address}: {reason}")

    def _start_probe_timer(self) -> None:
        """Reset counters and start the probe timing measurement."""
        self.statistics = ProbeStatistics()
        self.probe_start_time = datetime.now()

    def _end_probe_timer(self) -> float:
        """
        End the probe timing measurement and return duration.

        Returns:
            Probe duration in seconds as a float
        """
        if self.probe_start_time:
            self.statistics.duration = (datetime.now() - self.probe_start_time).total_seconds()
        return self.statistics.duration

    def _log_info(self, message: str) -> None:
        """Log an info message if logger is available."""
        if self.logger:
            self.logger.info(message)

    def _log_warning(self, message: str) -> None:
        """Log a warning message if logger is available."""
        if self.logger:
            self.logger.warning(message)

    def _log_debug(self, message: str) -> None:
        """Log a debug message if logger is available."""
        if self.logger:
            self.logger.debug(message)
