import ipaddress
import socket

import pytest

from hostname_discovery.codec.dns_wire import CLASS_IN, DnsHeader, encode_labels, pack_resource_record, split_name
from hostname_discovery.codec.mdns import TYPE_A, TYPE_AAAA, TYPE_PTR
from hostname_discovery.config.config_loader import MDNSConfig
from hostname_discovery.core.data_models import Protocol
from hostname_discovery.probers.mdns_prober import MDNSProber
from hostname_discovery.utils.error_handler import ErrorType, ProbeError

from conftest import FakeSocketFactory, transaction_id_of

MDNS_GROUP = ("224.0.0.251", 5353)


def a_response(name, address, rtype=TYPE_A):
    family = socket.AF_INET6 if rtype == TYPE_AAAA else socket.AF_INET
    rdata = socket.inet_pton(family, address)
    record = pack_resource_record(encode_labels(split_name(name)), rtype, CLASS_IN | 0x8000, 120, rdata)
    return DnsHeader(0, 0x8400, ancount=1).pack() + record


def laptop_responder(data, address):
    if address == MDNS_GROUP:
        return [(a_response("laptop.local", "192.168.1.20"), ("192.168.1.20", 5353))]
    return []


def make_prober(factory, quiet_logger, **config):
    return MDNSProber(MDNSConfig(**config), logger=quiet_logger, socket_factory=factory)


def test_laptop_answers_multicast(quiet_logger, deadline):
    factory = FakeSocketFactory(responder=laptop_responder)
    findings = list(make_prober(factory, quiet_logger).probe(["192.168.1.20"], deadline))

    assert [(f.address, f.decoded.name, f.decoded.protocol) for f in findings] == [
        ("192.168.1.20", "laptop.local", Protocol.MDNS)
    ]


def test_socket_joins_and_leaves_group(quiet_logger, deadline):
    factory = FakeSocketFactory()
    list(make_prober(factory, quiet_logger).probe(["192.168.1.20"], deadline))

    sock = factory.last
    assert sock.bound == [("", 5353)]
    options = sock.option_names()
    assert socket.SO_REUSEADDR in options
    assert socket.IP_ADD_MEMBERSHIP in options
    assert options.index(socket.IP_DROP_MEMBERSHIP) > options.index(socket.IP_ADD_MEMBERSHIP)
    assert sock.closed


def test_explicit_target_gets_unicast_copy(quiet_logger, deadline):
    factory = FakeSocketFactory()
    list(make_prober(factory, quiet_logger).probe(["192.168.1.20"], deadline, explicit=True))

    destinations = [address for _, address in factory.last.sent]
    assert destinations == [MDNS_GROUP, ("192.168.1.20", 5353)]
    unicast_payload = factory.last.sent[1][0]
    assert unicast_payload[-4:] == b"\x00\x0c\x80\x01"


def test_unicast_copies_can_be_disabled(quiet_logger, deadline):
    factory = FakeSocketFactory()
    prober = make_prober(factory, quiet_logger, unicast_targets=False)
    list(prober.probe(["192.168.1.20"], deadline, explicit=True))
    assert [address for _, address in factory.last.sent] == [MDNS_GROUP]


def test_candidates_are_packed_per_datagram(quiet_logger, deadline):
    factory = FakeSocketFactory()
    candidates = [f"10.0.0.{i}" for i in range(1, 71)]
    list(make_prober(factory, quiet_logger).probe(candidates, deadline))

    sent = factory.last.sent
    assert len(sent) == 3
    assert [payload[4:6] for payload, _ in sent] == [b"\x00\x20", b"\x00\x20", b"\x00\x06"]


def test_query_type_any(quiet_logger):
    prober = make_prober(FakeSocketFactory(), quiet_logger, query_type="ANY")
    payload = prober.build_queries(["10.0.0.1"])[0].payload
    assert payload[-4:] == b"\x00\xff\x00\x01"


def test_own_query_reflected_is_dropped(quiet_logger, deadline):
    factory = FakeSocketFactory(responder=lambda data, address: [(data, ("192.168.1.5", 5353))])
    prober = make_prober(factory, quiet_logger)

    assert list(prober.probe(["192.168.1.20"], deadline)) == []
    assert prober.statistics.datagrams_dropped == 1


def test_busy_port_falls_back_to_legacy_unicast(quiet_logger, deadline):
    factory = FakeSocketFactory(fail_bind_ports=(5353,), responder=laptop_responder)
    prober = make_prober(factory, quiet_logger)

    findings = list(prober.probe(["192.168.1.20"], deadline))

    sock = factory.last
    assert sock.bound == [("", 0)]
    assert prober.legacy_unicast
    assert socket.IP_ADD_MEMBERSHIP not in sock.option_names()
    assert transaction_id_of(sock.sent[0][0]) != 0
    assert len(findings) == 1


def test_other_family_records_are_ignored(quiet_logger, deadline):
    reply = a_response("laptop.local", "fe80::1", TYPE_AAAA)
    factory = FakeSocketFactory(responder=lambda data, address: [(reply, ("192.168.1.20", 5353))])

    assert list(make_prober(factory, quiet_logger).probe(["192.168.1.20"], deadline)) == []


def test_ptr_answer_from_proxy_uses_owner_address(quiet_logger, deadline):
    target = encode_labels(split_name("nas.local"))
    record = pack_resource_record(
        encode_labels(split_name("30.1.168.192.in-addr.arpa")), TYPE_PTR, CLASS_IN, 120, target
    )
    reply = DnsHeader(0, 0x8400, ancount=1).pack() + record
    factory = FakeSocketFactory(responder=lambda data, address: [(reply, ("192.168.1.1", 5353))])

    findings = list(make_prober(factory, quiet_logger).probe(["192.168.1.30"], deadline))
    assert [(f.address, f.decoded.name) for f in findings] == [("192.168.1.30", "nas.local")]


def test_join_failure_is_multicast_error(quiet_logger, deadline):
    factory = FakeSocketFactory(fail_options=(socket.IP_ADD_MEMBERSHIP,))
    prober = make_prober(factory, quiet_logger)

    with pytest.raises(ProbeError) as excinfo:
        list(prober.probe(["192.168.1.20"], deadline))
    assert excinfo.value.error_context.error_type == ErrorType.MULTICAST_ERROR
    assert factory.last.closed


def ptr_response(address, host_name):
    owner = ipaddress.ip_address(address).reverse_pointer
    record = pack_resource_record(
        encode_labels(split_name(owner)), TYPE_PTR, CLASS_IN, 120, encode_labels(split_name(host_name))
    )
    return DnsHeader(0, 0x8400, ancount=1).pack() + record


def test_ipv6_mode_only_asks_about_ipv6_candidates(quiet_logger, deadline):
    def responder(data, address):
        if address == ("ff02::fb", 5353):
            return [(ptr_response("fe80::20", "laptop.local"), ("fe80::20%eth0", 5353, 0, 2))]
        return []

    factory = FakeSocketFactory(responder=responder)
    prober = make_prober(factory, quiet_logger, ipv6=True)

    findings = list(prober.probe(["192.168.1.20", "fe80::20"], deadline))

    sock = factory.last
    assert sock.family == socket.AF_INET6
    assert [address for _, address in sock.sent] == [("ff02::fb", 5353)]
    assert b"in-addr" not in sock.sent[0][0]
    assert [(f.address, f.decoded.name) for f in findings] == [("fe80::20", "laptop.local")]
    assert prober.statistics.names_reported == 1


def test_ipv6_mode_without_ipv6_candidates_sends_nothing(quiet_logger, deadline):
    factory = FakeSocketFactory()
    prober = make_prober(factory, quiet_logger, ipv6=True)

    assert list(prober.probe(["192.168.1.20"], deadline)) == []
    assert factory.sockets == []
    assert prober.statistics.queries_sent == 0
