"""
DNS-shaped message framing shared by the NBNS and mDNS codecs.

Both protocols use the 12-byte DNS header, length-prefixed label sequences
(RFC 1035 4.1.4 compression included) and the same resource record layout.
Everything here is pure byte manipulation; decoding helpers raise
MalformedDatagram, which the protocol codecs turn into a failed DecodeResult.
"""

import struct
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.data_models import DecodedName
from ..utils.error_handler import MalformedDatagram

HEADER = struct.Struct("!HHHHHH")
QUESTION_TAIL = struct.Struct("!HH")
RR_FIXED = struct.Struct("!HHIH")

FLAG_RESPONSE = 0x8000
OPCODE_MASK = 0x7800
CLASS_IN = 0x0001
CLASS_MASK = 0x7FFF
UNICAST_RESPONSE_BIT = 0x8000

MAX_LABEL_LENGTH = 63
MAX_NAME_LENGTH = 255
_POINTER_MASK = 0xC0
_MAX_POINTER_JUMPS = 32


@dataclass(frozen=True)
class DnsHeader:
    """The fixed 12-byte header of a DNS/NBNS message."""
    transaction_id: int
    flags: int = 0
    qdcount: int = 0
    ancount: int = 0
    nscount: int = 0
    arcount: int = 0

    @property
    def is_response(self) -> bool:
        return bool(self.flags & FLAG_RESPONSE)

    @property
    def opcode(self) -> int:
        return (self.flags & OPCODE_MASK) >> 11

    @property
    def record_count(self) -> int:
        return self.ancount + self.nscount + self.arcount

    def pack(self) -> bytes:
        return HEADER.pack(self.transaction_id, self.flags, self.qdcount,
                           self.ancount, self.nscount, self.arcount)


@dataclass(frozen=True)
class ResourceRecord:
    """A parsed resource record; rdata_offset locates rdata inside the message."""
    labels: Tuple[bytes, ...]
    rtype: int
    rclass: int
    ttl: int
    rdata: bytes
    rdata_offset: int

    @property
    def name(self) -> str:
        return labels_to_text(self.labels)


@dataclass
class DecodeResult:
    """
    Outcome of decoding one datagram.

    Either ok with a (possibly empty) list of names, or failed with the
    MalformedDatagram describing why. Decoders never raise.
    """
    names: List[DecodedName] = field(default_factory=list)
    mac_address: Optional[str] = None
    transaction_id: Optional[int] = None
    error: Optional[MalformedDatagram] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: MalformedDatagram,
                transaction_id: Optional[int] = None) -> "DecodeResult":
        return cls(error=error, transaction_id=transaction_id)

    def unwrap(self) -> List[DecodedName]:
        """Return the names, raising the stored MalformedDatagram on failure."""
        if self.error is not None:
            raise self.error
        return self.names


def unpack_header(data: bytes) -> DnsHeader:
    if len(data) < HEADER.size:
        raise MalformedDatagram(
            f"Datagram of {len(data)} bytes is shorter than a {HEADER.size}-byte header"
        )
    return DnsHeader(*HEADER.unpack_from(data, 0))


def split_name(name: str) -> List[bytes]:
    """Split a dotted name into encoded labels, ignoring a trailing root dot."""
    text = name.rstrip(".")
    if not text:
        return []
    labels = [label.encode("utf-8") for label in text.split(".")]
    for label in labels:
        if not label or len(label) > MAX_LABEL_LENGTH:
            raise ValueError(f"Invalid label in name '{name}'")
    return labels


def encode_labels(labels: Sequence[bytes], offset: int = 0,
                  compression: Optional[Dict[Tuple[bytes, ...], int]] = None) -> bytes:
    """
    Encode a label sequence, optionally compressing known suffixes.

    Args:
        labels: Labels of the name, most specific first
        offset: Offset the encoded name will start at inside the message
        compression: Map of lower-cased label suffix -> message offset,
            updated with the suffixes written here

    Returns:
        Encoded name terminated by the root label or a pointer
    """
    out = bytearray()
    labels = list(labels)
    for index in range(len(labels)):
        suffix = tuple(label.lower() for label in labels[index:])
        if compression is not None:
            pointer = compression.get(suffix)
            if pointer is not None:
                out += struct.pack("!H", 0xC000 | pointer)
                return bytes(out)
            position = offset + len(out)
            if position < 0x4000:
                compression[suffix] = position
        label = labels[index]
        out.append(len(label))
        out += label
    out.append(0)
    return bytes(out)


def read_name(data: bytes, offset: int) -> Tuple[Tuple[bytes, ...], int]:
    """
    Read a possibly compressed name.

    Args:
        data: Whole message
        offset: Offset of the name

    Returns:
        (labels, offset just past the name where it started)
    """
    labels: List[bytes] = []
    total = 0
    jumps = 0
    end_offset = None
    position = offset

    while True:
        if position >= len(data):
            raise MalformedDatagram(f"Name at offset {offset} runs past end of datagram")
        length = data[position]

        if length & _POINTER_MASK == _POINTER_MASK:
            if position + 1 >= len(data):
                raise MalformedDatagram("Truncated compression pointer")
            jumps += 1
            if jumps > _MAX_POINTER_JUMPS:
                raise MalformedDatagram("Compression pointer loop")
            if end_offset is None:
                end_offset = position + 2
            target = ((length & 0x3F) << 8) | data[position + 1]
            if target >= len(data):
                raise MalformedDatagram("Compression pointer outside datagram")
            position = target
            continue
        if length & _POINTER_MASK:
            raise MalformedDatagram(f"Unsupported label type 0x{length:02x}")

        position += 1
        if length == 0:
            break
        if position + length > len(data):
            raise MalformedDatagram("Label runs past end of datagram")
        total += length + 1
        if total > MAX_NAME_LENGTH:
            raise MalformedDatagram("Name exceeds 255 bytes")
        labels.append(bytes(data[position:position + length]))
        position += length

    return tuple(labels), end_offset if end_offset is not None else position


def labels_to_text(labels: Sequence[bytes]) -> str:
    return ".".join(label.decode("utf-8", errors="replace") for label in labels)


def skip_questions(data: bytes, offset: int, count: int) -> int:
    """Advance past count questions."""
    for _ in range(count):
        _, offset = read_name(data, offset)
        if offset + QUESTION_TAIL.size > len(data):
            raise MalformedDatagram("Truncated question")
        offset += QUESTION_TAIL.size
    return offset


def read_resource_record(data: bytes, offset: int) -> Tuple[ResourceRecord, int]:
    """
    Read one resource record.

    Args:
        data: Whole message
        offset: Offset of the record's owner name

    Returns:
        (record, offset of the next record)
    """
    labels, offset = read_name(data, offset)
    if offset + RR_FIXED.size > len(data):
        raise MalformedDatagram("Truncated resource record header")
    rtype, rclass, ttl, rdlength = RR_FIXED.unpack_from(data, offset)
    offset += RR_FIXED.size
    if offset + rdlength > len(data):
        raise MalformedDatagram(
            f"RDATA of {rdlength} bytes runs past end of datagram"
        )
    record = ResourceRecord(labels, rtype, rclass, ttl,
                            bytes(data[offset:offset + rdlength]), offset)
    return record, offset + rdlength


def pack_resource_record(owner: bytes, rtype: int, rclass: int, ttl: int,
                         rdata: bytes) -> bytes:
    """Pack a record whose owner name is already encoded."""
    return owner + RR_FIXED.pack(rtype, rclass, ttl, len(rdata)) + rdata
