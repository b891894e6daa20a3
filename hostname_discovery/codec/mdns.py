"""
Multicast DNS codec (RFC 6762).

Queries are ordinary DNS messages; responses are walked record by record and
only the records that name a host are kept:

    * A / AAAA: the owner name is the host name, the rdata its address
    * PTR under in-addr.arpa / ip6.arpa: the target is the host name, the
      owner encodes its address

Service PTR, SRV and TXT records are skipped. Records with TTL 0 announce
that a name is going away and are ignored too.
"""

import ipaddress
from typing import List, Optional, Sequence, Tuple

from ..core.data_models import DecodedName, Protocol
from ..utils.error_handler import MalformedDatagram
from .dns_wire import (
    CLASS_IN,
    CLASS_MASK,
    HEADER,
    UNICAST_RESPONSE_BIT,
    DnsHeader,
    DecodeResult,
    QUESTION_TAIL,
    encode_labels,
    labels_to_text,
    read_name,
    read_resource_record,
    skip_questions,
    split_name,
    unpack_header,
)

MDNS_PORT = 5353
MDNS_GROUP_V4 = "224.0.0.251"
MDNS_GROUP_V6 = "ff02::fb"

TYPE_A = 1
TYPE_PTR = 12
TYPE_AAAA = 28
TYPE_ANY = 255

RECORD_TYPES = {"A": TYPE_A, "PTR": TYPE_PTR, "AAAA": TYPE_AAAA, "ANY": TYPE_ANY}

_REVERSE_V4 = (b"in-addr", b"arpa")
_REVERSE_V6 = (b"ip6", b"arpa")


def reverse_pointer_name(address: str) -> str:
    """Return the in-addr.arpa / ip6.arpa name of an address."""
    return ipaddress.ip_address(address).reverse_pointer


def address_from_reverse_name(labels: Sequence[bytes]) -> Optional[str]:
    """
    Recover the address encoded in a reverse-lookup owner name.

    Args:
        labels: Labels of the owner name

    Returns:
        The address as a string, or None if the name is not a complete
        reverse name
    """
    lowered = tuple(label.lower() for label in labels)
    try:
        if lowered[-2:] == _REVERSE_V4 and len(lowered) == 6:
            octets = [int(label) for label in reversed(lowered[:4])]
            if all(0 <= octet <= 255 for octet in octets):
                return str(ipaddress.IPv4Address(bytes(octets)))
        elif lowered[-2:] == _REVERSE_V6 and len(lowered) == 34:
            nibbles = "".join(label.decode("ascii") for label in reversed(lowered[:32]))
            return str(ipaddress.IPv6Address(int(nibbles, 16)))
    except (ValueError, UnicodeDecodeError):
        return None
    return None


def encode_mdns_query(query_name: str, record_type: int = TYPE_PTR,
                      query_id: int = 0, unicast_response: bool = False) -> bytes:
    """
    Build a single-question mDNS query.

    Args:
        query_name: Name to ask about, e.g. "10.1.168.192.in-addr.arpa"
        record_type: QTYPE (TYPE_PTR, TYPE_A, TYPE_ANY, ...)
        query_id: Message ID; zero for multicast queries from port 5353
        unicast_response: Set the QU bit asking for a unicast reply

    Returns:
        The encoded datagram
    """
    return encode_mdns_questions([(query_name, record_type)], query_id, unicast_response)


def encode_mdns_questions(questions: Sequence[Tuple[str, int]], query_id: int = 0,
                          unicast_response: bool = False) -> bytes:
    """
    Build an mDNS query carrying several questions.

    Shared name suffixes (".in-addr.arpa", the network part of reverse names)
    are written once and referenced with compression pointers.

    Args:
        questions: (name, record type) pairs
        query_id: Message ID
        unicast_response: Set the QU bit on every question

    Returns:
        The encoded datagram
    """
    if not questions:
        raise ValueError("An mDNS query needs at least one question")
    qclass = CLASS_IN | (UNICAST_RESPONSE_BIT if unicast_response else 0)

    message = bytearray(DnsHeader(query_id & 0xFFFF, 0, qdcount=len(questions)).pack())
    compression = {}
    for name, record_type in questions:
        message += encode_labels(split_name(name), len(message), compression)
        message += QUESTION_TAIL.pack(record_type, qclass)
    return bytes(message)


def decode_mdns_response(data: bytes) -> DecodeResult:
    """
    Decode an mDNS response datagram.

    Args:
        data: Received datagram

    Returns:
        DecodeResult with the host names found in the answer, authority and
        additional sections; failed if the datagram is not a well-formed
        response
    """
    try:
        header = unpack_header(data)
        if not header.is_response:
            raise MalformedDatagram("Datagram is a query, not a response")
        if header.opcode != 0:
            raise MalformedDatagram(f"Unexpected opcode {header.opcode}")

        offset = skip_questions(data, HEADER.size, header.qdcount)
        names: List[DecodedName] = []
        for _ in range(header.record_count):
            record, offset = read_resource_record(data, offset)
            if record.ttl == 0 or record.rclass & CLASS_MASK != CLASS_IN:
                continue
            decoded = _host_name_from_record(data, record)
            if decoded is not None and decoded not in names:
                names.append(decoded)
    except MalformedDatagram as e:
        return DecodeResult.failure(e)

    return DecodeResult(names=names, transaction_id=header.transaction_id)


def _host_name_from_record(data: bytes, record) -> Optional[DecodedName]:
    if record.rtype == TYPE_A:
        if len(record.rdata) != 4:
            raise MalformedDatagram(f"A record with {len(record.rdata)}-byte RDATA")
        address = str(ipaddress.IPv4Address(record.rdata))
        return _decoded(record.name, TYPE_A, address)

    if record.rtype == TYPE_AAAA:
        if len(record.rdata) != 16:
            raise MalformedDatagram(f"AAAA record with {len(record.rdata)}-byte RDATA")
        address = str(ipaddress.IPv6Address(record.rdata))
        return _decoded(record.name, TYPE_AAAA, address)

    if record.rtype == TYPE_PTR:
        address = address_from_reverse_name(record.labels)
        if address is None:
            return None
        target, end = read_name(data, record.rdata_offset)
        if end != record.rdata_offset + len(record.rdata):
            raise MalformedDatagram("PTR target does not fill its RDATA")
        return _decoded(labels_to_text(target), TYPE_PTR, address)

    return None


def _decoded(name: str, record_type: int, address: str) -> Optional[DecodedName]:
    name = name.rstrip(".")
    if not name:
        return None
    return DecodedName(name, record_type, Protocol.MDNS, address=address)
