import socket

import pytest

from hostname_discovery.codec.dns_wire import CLASS_IN, DnsHeader, RR_FIXED
from hostname_discovery.codec.nbns import (
    TYPE_NB,
    NodeStatusEntry,
    decode_nbns_response,
    decode_netbios_name,
    encode_nbns_node_status_response,
    encode_nbns_query,
    encode_netbios_name,
)
from hostname_discovery.core.data_models import Protocol
from hostname_discovery.utils.error_handler import MalformedDatagram

PRINTER_TABLE = [
    NodeStatusEntry("PRINTER1", 0x00, 0x0400),
    NodeStatusEntry("PRINTER1", 0x20, 0x0400),
    NodeStatusEntry("WORKGROUP", 0x00, 0x8400),
]

# Offset of NUM_NAMES: header, 34-byte encoded name, 10-byte RR fixed part
RDATA_OFFSET = 12 + 34 + 10


@pytest.fixture
def printer_response():
    return encode_nbns_node_status_response(0x4242, PRINTER_TABLE, "00:11:22:33:44:55")


def test_wildcard_name_encoding():
    assert encode_netbios_name("*") == b"\x20" + b"CK" + b"A" * 30 + b"\x00"


def test_name_is_space_padded_and_upper_cased():
    encoded = encode_netbios_name("printer1", 0x20)
    assert len(encoded) == 34
    # "P" = 0x50 -> "FA", space padding 0x20 -> "CA", suffix 0x20 -> "CA"
    assert encoded[1:3] == b"FA"
    assert encoded[-3:-1] == b"CA"
    assert decode_netbios_name(encoded[1:33]) == NodeStatusEntry("PRINTER1", 0x20)


def test_name_longer_than_fifteen_bytes_is_rejected():
    with pytest.raises(ValueError):
        encode_netbios_name("A" * 16)


def test_decode_netbios_name_rejects_bad_characters():
    with pytest.raises(MalformedDatagram):
        decode_netbios_name(b"Z" * 32)


def test_node_status_query_layout():
    query = encode_nbns_query(transaction_id=0x1234)
    assert query[:12] == bytes.fromhex("123400000001000000000000")
    assert query[12:46] == encode_netbios_name("*")
    assert query[46:] == b"\x00\x21\x00\x01"


def test_broadcast_name_query_sets_flags():
    query = encode_nbns_query("FILESRV", 1, 0x20, TYPE_NB, broadcast=True)
    assert query[2:4] == b"\x01\x10"
    assert query[-4:] == b"\x00\x20\x00\x01"


def test_node_status_roundtrip(printer_response):
    result = decode_nbns_response(printer_response, {0x4242})

    assert result.ok
    assert result.transaction_id == 0x4242
    assert [(n.name, n.suffix, n.flags) for n in result.names] == [
        (entry.name, entry.suffix, entry.flags) for entry in PRINTER_TABLE
    ]
    assert all(n.protocol == Protocol.NBNS for n in result.names)
    assert [n.is_group for n in result.names] == [False, False, True]


def test_mac_address_is_surfaced(printer_response):
    assert decode_nbns_response(printer_response).mac_address == "00:11:22:33:44:55"


def test_zero_mac_address_is_absent():
    data = encode_nbns_node_status_response(1, [NodeStatusEntry("HOST", 0x00)])
    assert decode_nbns_response(data).mac_address is None


def test_padding_and_control_characters_are_trimmed():
    data = encode_nbns_node_status_response(1, [NodeStatusEntry("PRN\x01TR", 0x00)])
    assert decode_nbns_response(data).names[0].name == "PRNTR"


def test_transaction_id_mismatch_fails(printer_response):
    result = decode_nbns_response(printer_response, {0x0001, 0x0002})
    assert not result.ok
    assert isinstance(result.error, MalformedDatagram)
    assert result.transaction_id == 0x4242


def test_request_is_not_a_response():
    result = decode_nbns_response(encode_nbns_query(transaction_id=9))
    assert not result.ok


def test_negative_response_fails(printer_response):
    data = bytearray(printer_response)
    data[3] |= 0x03
    assert not decode_nbns_response(bytes(data)).ok


def test_overclaimed_name_count_fails(printer_response):
    data = bytearray(printer_response)
    data[RDATA_OFFSET] = 200
    result = decode_nbns_response(bytes(data))
    assert not result.ok
    assert "200 names" in str(result.error)


@pytest.mark.parametrize("length", [0, 5, 12, 30, 46, 56, 70, 100])
def test_truncated_response_fails_without_raising(printer_response, length):
    assert not decode_nbns_response(printer_response[:length]).ok


def test_positive_name_query_answer():
    address = socket.inet_aton("192.168.1.20")
    data = (
        DnsHeader(5, 0x8500, ancount=1).pack()
        + encode_netbios_name("FILESRV", 0x20)
        + RR_FIXED.pack(TYPE_NB, CLASS_IN, 300000, 6)
        + b"\x00\x00" + address
    )
    result = decode_nbns_response(data)

    assert result.ok
    assert [(n.name, n.suffix) for n in result.names] == [("FILESRV", 0x20)]
    assert result.mac_address is None


@pytest.mark.parametrize("count", [1, 255])
def test_node_status_roundtrip_at_name_count_limits(count):
    table = [NodeStatusEntry(f"HOST{i:03d}", i % 0x100, 0x0400) for i in range(count)]
    result = decode_nbns_response(
        encode_nbns_node_status_response(7, table, "aa:bb:cc:dd:ee:ff"), {7}
    )

    assert result.ok
    assert [(n.name, n.suffix) for n in result.names] == [(e.name, e.suffix) for e in table]
    assert result.mac_address == "aa:bb:cc:dd:ee:ff"


@pytest.mark.parametrize("count", [0, 256])
def test_node_status_response_name_count_is_bounded(count):
    with pytest.raises(ValueError):
        encode_nbns_node_status_response(7, [NodeStatusEntry("HOST", 0x00)] * count)
