import socket

import pytest

from hostname_discovery.codec.dns_wire import (
    CLASS_IN,
    DnsHeader,
    encode_labels,
    pack_resource_record,
    split_name,
)
from hostname_discovery.codec.mdns import (
    TYPE_A,
    TYPE_AAAA,
    TYPE_PTR,
    address_from_reverse_name,
    decode_mdns_response,
    encode_mdns_query,
    encode_mdns_questions,
    reverse_pointer_name,
)
from hostname_discovery.core.data_models import DecodedName, Protocol

CACHE_FLUSH = 0x8000


def record(owner, rtype, rdata, ttl=120, rclass=CLASS_IN | CACHE_FLUSH):
    return pack_resource_record(encode_labels(split_name(owner)), rtype, rclass, ttl, rdata)


def response(*records):
    return DnsHeader(0, 0x8400, ancount=len(records)).pack() + b"".join(records)


def test_reverse_query_layout():
    query = encode_mdns_query("10.1.168.192.in-addr.arpa", TYPE_PTR)
    assert query == (
        bytes.fromhex("000000000001000000000000")
        + b"\x0210\x011\x03168\x03192\x07in-addr\x04arpa\x00"
        + b"\x00\x0c\x00\x01"
    )


def test_unicast_response_bit():
    query = encode_mdns_query("host.local", TYPE_A, unicast_response=True)
    assert query[-2:] == b"\x80\x01"


def test_questions_share_compressed_suffix():
    names = [(reverse_pointer_name("192.168.1.10"), TYPE_PTR),
             (reverse_pointer_name("192.168.1.11"), TYPE_PTR)]
    query = encode_mdns_questions(names)

    assert query[4:6] == b"\x00\x02"
    assert query.count(b"in-addr") == 1
    assert len(query) == 12 + 27 + 4 + 5 + 4


def test_at_least_one_question_required():
    with pytest.raises(ValueError):
        encode_mdns_questions([])


def test_a_record_names_host():
    data = response(record("laptop.local", TYPE_A, socket.inet_aton("192.168.1.20")))
    result = decode_mdns_response(data)

    assert result.ok
    assert result.names == [
        DecodedName("laptop.local", TYPE_A, Protocol.MDNS, address="192.168.1.20")
    ]


def test_aaaa_record_names_host():
    data = response(record("laptop.local", TYPE_AAAA, socket.inet_pton(socket.AF_INET6, "fe80::1")))
    assert decode_mdns_response(data).names[0].address == "fe80::1"


def test_reverse_ptr_names_owner_address():
    target = encode_labels(split_name("laptop.local"))
    data = response(record("20.1.168.192.in-addr.arpa", TYPE_PTR, target))
    names = decode_mdns_response(data).names

    assert [(n.name, n.suffix, n.address) for n in names] == [
        ("laptop.local", TYPE_PTR, "192.168.1.20")
    ]


def test_ptr_target_may_be_compressed():
    # A record owner sits at offset 12; the PTR target points back to it
    data = response(
        record("laptop.local", TYPE_A, socket.inet_aton("192.168.1.20")),
        record("20.1.168.192.in-addr.arpa", TYPE_PTR, b"\xc0\x0c"),
    )
    result = decode_mdns_response(data)
    assert result.ok
    assert {n.suffix for n in result.names} == {TYPE_A, TYPE_PTR}
    assert {n.name for n in result.names} == {"laptop.local"}


def test_goodbye_records_are_ignored():
    data = response(record("laptop.local", TYPE_A, socket.inet_aton("192.168.1.20"), ttl=0))
    result = decode_mdns_response(data)
    assert result.ok
    assert result.names == []


def test_service_pointers_are_ignored():
    target = encode_labels(split_name("Office Printer._ipp._tcp.local"))
    data = response(record("_ipp._tcp.local", TYPE_PTR, target))
    assert decode_mdns_response(data).names == []


def test_query_is_not_a_response():
    result = decode_mdns_response(encode_mdns_query("laptop.local", TYPE_A))
    assert not result.ok


def test_compression_loop_fails():
    data = DnsHeader(0, 0x8400, ancount=1).pack() + b"\xc0\x0c"
    assert not decode_mdns_response(data).ok


def test_bad_a_record_length_fails():
    data = response(record("laptop.local", TYPE_A, b"\xc0\xa8\x01"))
    assert not decode_mdns_response(data).ok


@pytest.mark.parametrize("cut", [1, 4, 10, 20])
def test_truncated_response_fails(cut):
    data = response(record("laptop.local", TYPE_A, socket.inet_aton("192.168.1.20")))
    assert not decode_mdns_response(data[:-cut]).ok


@pytest.mark.parametrize("name,expected", [
    ("20.1.168.192.in-addr.arpa", "192.168.1.20"),
    ("300.1.168.192.in-addr.arpa", None),
    ("1.168.192.in-addr.arpa", None),
    ("_http._tcp.local", None),
    (reverse_pointer_name("fe80::1"), "fe80::1"),
])
def test_address_from_reverse_name(name, expected):
    assert address_from_reverse_name(split_name(name)) == expected
