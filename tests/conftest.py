import errno
import socket
import struct
import time

import pytest

from hostname_discovery.core.data_models import NetworkInfo
from hostname_discovery.utils.logger import Logger, LogLevel


class FakeSocket:
    """In-memory stand-in for a UDP socket."""

    def __init__(self, family=socket.AF_INET, type=socket.SOCK_DGRAM, incoming=(),
                 responder=None, fail_bind_ports=(), fail_options=(), fail_send=False):
        self.family = family
        self.type = type
        self.incoming = list(incoming)
        self.responder = responder
        self.fail_bind_ports = set(fail_bind_ports)
        self.fail_options = set(fail_options)
        self.fail_send = fail_send
        self.options = []
        self.bound = []
        self.sent = []
        self.timeouts = []
        self.closed = False

    def setsockopt(self, level, option, value):
        if option in self.fail_options:
            raise OSError(errno.ENODEV, "No such device")
        self.options.append((level, option, value))

    def option_names(self):
        return [option for _, option, _ in self.options]

    def bind(self, address):
        if address[1] in self.fail_bind_ports:
            raise OSError(errno.EADDRINUSE, "Address already in use")
        self.bound.append(address)

    def sendto(self, data, address):
        if self.fail_send:
            raise OSError(errno.ENETUNREACH, "Network is unreachable")
        self.sent.append((data, address))
        if self.responder:
            self.incoming.extend(self.responder(data, address))
        return len(data)

    def settimeout(self, timeout):
        self.timeouts.append(timeout)

    def recvfrom(self, buffer_size):
        if not self.incoming:
            raise socket.timeout("timed out")
        item = self.incoming.pop(0)
        if isinstance(item, BaseException):
            raise item
        data, address = item
        return data[:buffer_size], address

    def close(self):
        self.closed = True


class FakeSocketFactory:
    """Callable with the signature of socket.socket that records created sockets."""

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.sockets = []

    def __call__(self, family=socket.AF_INET, type=socket.SOCK_DGRAM, *args):
        sock = FakeSocket(family, type, **self.kwargs)
        self.sockets.append(sock)
        return sock

    @property
    def last(self):
        return self.sockets[-1]


def transaction_id_of(payload):
    return struct.unpack("!H", payload[:2])[0]


@pytest.fixture
def quiet_logger():
    return Logger("test", min_level=LogLevel.ERROR)


@pytest.fixture
def deadline():
    return time.monotonic() + 1.0


@pytest.fixture
def network_info():
    return NetworkInfo(
        host_ip="192.168.1.5",
        netmask="24",
        network_address="192.168.1.0",
        broadcast_address="192.168.1.255",
        interface_name="eth0",
    )
