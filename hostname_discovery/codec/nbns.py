"""
NetBIOS Name Service codec (RFC 1002).

Builds Node Status (NBSTAT) and Name Query (NB) requests and decodes the
matching responses. A Node Status response carries the full name table of
the answering machine: NUM_NAMES entries of 15-byte name, suffix byte and
2-byte flags, followed by the statistics block whose first six bytes are the
adapter's unit ID (MAC address).
"""

import struct
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from ..core.data_models import DecodedName, Protocol
from ..utils.error_handler import MalformedDatagram
from .dns_wire import (
    CLASS_IN,
    HEADER,
    DnsHeader,
    DecodeResult,
    QUESTION_TAIL,
    pack_resource_record,
    read_resource_record,
    skip_questions,
    unpack_header,
)

NBNS_PORT = 137

TYPE_NB = 0x0020
TYPE_NBSTAT = 0x0021

FLAG_RESPONSE = 0x8000
FLAG_AUTHORITATIVE = 0x0400
FLAG_RECURSION_DESIRED = 0x0100
FLAG_BROADCAST = 0x0010
RCODE_MASK = 0x000F

WILDCARD_NAME = "*"
NAME_LENGTH = 15
ENCODED_NAME_LENGTH = 32
NAME_ENTRY = struct.Struct("!15sBH")
STATISTICS_LENGTH = 46


@dataclass(frozen=True)
class NodeStatusEntry:
    """One row of a Node Status name table."""
    name: str
    suffix: int
    flags: int = 0x0400


def encode_netbios_name(name: str, suffix: int = 0x00) -> bytes:
    """
    Apply first and second level NetBIOS name encoding.

    The name is upper-cased and padded to 15 bytes with spaces (the wildcard
    "*" is padded with NULs), the suffix byte is appended, and each of the 16
    bytes is split into two nibbles written as 'A' + nibble.

    Args:
        name: NetBIOS name, at most 15 characters
        suffix: Service suffix byte

    Returns:
        34 bytes: length byte 0x20, 32 encoded bytes, root label
    """
    if not 0 <= suffix <= 0xFF:
        raise ValueError(f"NetBIOS suffix out of range: {suffix}")
    raw = name.upper().encode("ascii")
    if len(raw) > NAME_LENGTH:
        raise ValueError(f"NetBIOS name longer than {NAME_LENGTH} bytes: {name!r}")

    pad = b"\x00" if name == WILDCARD_NAME else b" "
    first_level = raw.ljust(NAME_LENGTH, pad) + bytes([suffix])

    encoded = bytearray([ENCODED_NAME_LENGTH])
    for byte in first_level:
        encoded.append(ord("A") + (byte >> 4))
        encoded.append(ord("A") + (byte & 0x0F))
    encoded.append(0)
    return bytes(encoded)


def decode_netbios_name(encoded: bytes) -> NodeStatusEntry:
    """
    Reverse the second level encoding of a 32-byte NetBIOS label.

    Args:
        encoded: The 32 label bytes (without length prefix)

    Returns:
        NodeStatusEntry with the trimmed name and suffix

    Raises:
        MalformedDatagram: If the label is not a valid encoded name
    """
    if len(encoded) != ENCODED_NAME_LENGTH:
        raise MalformedDatagram(f"Encoded NetBIOS name has {len(encoded)} bytes, expected 32")
    raw = bytearray()
    for high, low in zip(encoded[0::2], encoded[1::2]):
        high -= ord("A")
        low -= ord("A")
        if not (0 <= high <= 0x0F and 0 <= low <= 0x0F):
            raise MalformedDatagram("Encoded NetBIOS name contains characters outside 'A'-'P'")
        raw.append((high << 4) | low)
    return NodeStatusEntry(_clean_name(bytes(raw[:NAME_LENGTH])), raw[NAME_LENGTH])


def encode_nbns_query(name: str = WILDCARD_NAME, transaction_id: int = 0,
                      suffix: int = 0x00, query_type: int = TYPE_NBSTAT,
                      broadcast: bool = False) -> bytes:
    """
    Build an NBNS request.

    The default arguments produce the Node Status request nbtstat and nbtscan
    send: wildcard name, NBSTAT type, no flags.

    Args:
        name: NetBIOS name to query, "*" for any
        transaction_id: 16-bit transaction ID echoed by the responder
        suffix: Suffix byte of the queried name
        query_type: TYPE_NBSTAT or TYPE_NB
        broadcast: Set the B and RD bits (broadcast name query)

    Returns:
        The encoded datagram
    """
    if query_type not in (TYPE_NB, TYPE_NBSTAT):
        raise ValueError(f"Unsupported NBNS query type: 0x{query_type:04x}")
    flags = FLAG_BROADCAST | FLAG_RECURSION_DESIRED if broadcast else 0
    header = DnsHeader(transaction_id & 0xFFFF, flags, qdcount=1)
    return (header.pack() + encode_netbios_name(name, suffix)
            + QUESTION_TAIL.pack(query_type, CLASS_IN))


def encode_nbns_node_status_response(transaction_id: int,
                                     entries: Iterable[NodeStatusEntry],
                                     mac_address: Optional[str] = None) -> bytes:
    """
    Build a Node Status response as a Windows or Samba host would send it.

    Args:
        transaction_id: Transaction ID of the request being answered
        entries: Name table rows (1..255)
        mac_address: Unit ID as "aa:bb:cc:dd:ee:ff", zeros when omitted

    Returns:
        The encoded datagram
    """
    entries = list(entries)
    if not 1 <= len(entries) <= 0xFF:
        raise ValueError("A node status response carries between 1 and 255 names")

    rdata = bytearray([len(entries)])
    for entry in entries:
        raw = entry.name.upper().encode("ascii")
        if len(raw) > NAME_LENGTH:
            raise ValueError(f"NetBIOS name longer than {NAME_LENGTH} bytes: {entry.name!r}")
        rdata += NAME_ENTRY.pack(raw.ljust(NAME_LENGTH, b" "), entry.suffix, entry.flags)

    unit_id = bytes.fromhex(mac_address.replace(":", "")) if mac_address else bytes(6)
    rdata += unit_id + bytes(STATISTICS_LENGTH - len(unit_id))

    header = DnsHeader(transaction_id & 0xFFFF, FLAG_RESPONSE | FLAG_AUTHORITATIVE, ancount=1)
    return header.pack() + pack_resource_record(
        encode_netbios_name(WILDCARD_NAME), TYPE_NBSTAT, CLASS_IN, 0, bytes(rdata))


def decode_nbns_response(data: bytes,
                         transaction_ids: Optional[Iterable[int]] = None) -> DecodeResult:
    """
    Decode an NBNS response datagram.

    Args:
        data: Received datagram
        transaction_ids: Outstanding transaction IDs; a response whose ID is
            not among them is a decode failure

    Returns:
        DecodeResult with one DecodedName per Node Status entry (or the owner
        name of a positive NB answer) and the reported MAC address
    """
    transaction_id = None
    try:
        header = unpack_header(data)
        transaction_id = header.transaction_id
        if not header.is_response:
            raise MalformedDatagram("Datagram is a request, not a response")
        if transaction_ids is not None and header.transaction_id not in set(transaction_ids):
            raise MalformedDatagram(
                f"Transaction ID 0x{header.transaction_id:04x} does not match any request"
            )
        if header.flags & RCODE_MASK:
            raise MalformedDatagram(f"Negative response, rcode {header.flags & RCODE_MASK}")
        if header.ancount < 1:
            raise MalformedDatagram("Response carries no answer record")

        offset = skip_questions(data, HEADER.size, header.qdcount)
        record, _ = read_resource_record(data, offset)

        if record.rtype == TYPE_NBSTAT:
            names, mac = _parse_node_status(record.rdata)
        elif record.rtype == TYPE_NB:
            names, mac = _parse_name_query_answer(record.labels), None
        else:
            raise MalformedDatagram(f"Unexpected record type 0x{record.rtype:04x}")
    except MalformedDatagram as e:
        return DecodeResult.failure(e, transaction_id)

    return DecodeResult(names=names, mac_address=mac, transaction_id=transaction_id)


def _parse_node_status(rdata: bytes):
    if not rdata:
        raise MalformedDatagram("Empty node status RDATA")
    count = rdata[0]
    end = 1 + count * NAME_ENTRY.size
    if end > len(rdata):
        raise MalformedDatagram(
            f"Node status announces {count} names but RDATA holds {len(rdata)} bytes"
        )

    names: List[DecodedName] = []
    for offset in range(1, end, NAME_ENTRY.size):
        raw, suffix, flags = NAME_ENTRY.unpack_from(rdata, offset)
        name = _clean_name(raw)
        if name:
            names.append(DecodedName(name, suffix, Protocol.NBNS, flags))

    mac = None
    unit_id = rdata[end:end + 6]
    if len(unit_id) == 6 and any(unit_id):
        mac = ":".join(f"{b:02x}" for b in unit_id)
    return names, mac


def _parse_name_query_answer(labels: Sequence[bytes]) -> List[DecodedName]:
    if not labels:
        raise MalformedDatagram("NB answer without owner name")
    entry = decode_netbios_name(labels[0])
    if not entry.name or entry.name == WILDCARD_NAME:
        return []
    return [DecodedName(entry.name, entry.suffix, Protocol.NBNS)]


def _clean_name(raw: bytes) -> str:
    text = raw.rstrip(b" \x00").decode("latin-1")
    return "".join(ch for ch in text if ch.isprintable()).strip()


__all__ = [
    "NBNS_PORT",
    "TYPE_NB",
    "TYPE_NBSTAT",
    "NodeStatusEntry",
    "encode_netbios_name",
    "decode_netbios_name",
    "encode_nbns_query",
    "encode_nbns_node_status_response",
    "decode_nbns_response",
]
