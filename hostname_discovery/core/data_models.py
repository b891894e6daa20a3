"""
Core data models and enums for the Hostname Discovery Module.

This module defines the data structures passed between the codec, the
probers and the coordinator: queries and responses on the wire side, decoded
names and findings on the prober side, and the host table owned by the
discovery session.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from ..utils.error_handler import ProbeError


class Protocol(Enum):
    """Name resolution protocols used for discovery."""
    NBNS = "nbns"
    MDNS = "mdns"


class ScanStatus(Enum):
    """Enumeration of possible session statuses."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


# NetBIOS name flag: the name is a group (workgroup/domain) name
NB_GROUP_FLAG = 0x8000
# NetBIOS name flag: the permanent node name
NB_PERMANENT_FLAG = 0x0200


@dataclass
class NetworkInfo:
    """
    Network configuration of the probing host.

    Attributes:
        host_ip: IPv4 address of the selected interface
        netmask: Prefix length of the interface network (e.g. "24")
        network_address: Network address of the interface subnet
        broadcast_address: Directed broadcast address of the subnet
        interface_name: Name of the interface
    """
    host_ip: str
    netmask: str
    network_address: str
    broadcast_address: str
    interface_name: str

    @property
    def cidr(self) -> str:
        return f"{self.network_address}/{self.netmask}"


@dataclass(frozen=True)
class Query:
    """
    A query datagram ready to be sent.

    Attributes:
        protocol: Protocol the payload speaks
        target: Destination address (unicast, broadcast or multicast group)
        transaction_id: NBNS transaction ID or mDNS query ID
        payload: Encoded datagram
    """
    protocol: Protocol
    target: str
    transaction_id: int
    payload: bytes


@dataclass(frozen=True)
class Response:
    """
    A datagram received by a prober, before decoding.

    Attributes:
        source_address: Address the datagram came from
        protocol: Protocol of the receiving prober
        raw_payload: Datagram bytes
        received_at: Time of receipt
    """
    source_address: str
    protocol: Protocol
    raw_payload: bytes
    received_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class DecodedName:
    """
    A host name decoded from a response.

    Attributes:
        name: Host name with padding and trailing dots removed
        suffix: NetBIOS suffix byte (NBNS) or DNS record type (mDNS)
        protocol: Protocol the name was learned from
        flags: NetBIOS name flags (group bit, node type, state)
        address: Address carried inside the record itself, if any
    """
    name: str
    suffix: int
    protocol: Protocol
    flags: int = 0
    address: Optional[str] = None

    @property
    def is_group(self) -> bool:
        return self.protocol == Protocol.NBNS and bool(self.flags & NB_GROUP_FLAG)

    @property
    def is_permanent(self) -> bool:
        return self.protocol == Protocol.NBNS and bool(self.flags & NB_PERMANENT_FLAG)

    @property
    def kind(self) -> str:
        """NetBIOS name classification shown in listings."""
        if self.is_permanent:
            return "Permanent group" if self.is_group else "Permanent"
        return "Group" if self.is_group else "Unique"

    @property
    def key(self) -> Tuple[str, Protocol]:
        """Identity used for de-duplication: case-insensitive within a protocol."""
        return self.name.casefold(), self.protocol


@dataclass(frozen=True)
class Finding:
    """
    One (address, name) observation pushed from a prober to the coordinator.

    Attributes:
        address: Host address the name belongs to
        decoded: The decoded name
        mac_address: Adapter address reported alongside the name (NBNS only)
    """
    address: str
    decoded: DecodedName
    mac_address: Optional[str] = None


@dataclass
class HostRecord:
    """
    Everything learned about one host address.

    Attributes:
        address: Host IP address (record key)
        names: Names reported for the host, first-seen spelling kept
        first_seen: When the host was first reported
        mac_address: MAC address from an NBNS Node Status reply, if any
    """
    address: str
    names: List[DecodedName] = field(default_factory=list)
    first_seen: datetime = field(default_factory=datetime.now)
    mac_address: Optional[str] = None

    def add_name(self, decoded: DecodedName) -> bool:
        """
        Attach a name unless an equal one is already present.

        Args:
            decoded: Name to attach

        Returns:
            True if the name was new
        """
        if decoded.key in {existing.key for existing in self.names}:
            return False
        self.names.append(decoded)
        return True

    @property
    def name_set(self) -> Set[Tuple[str, Protocol]]:
        return {(decoded.name, decoded.protocol) for decoded in self.names}

    def names_for(self, protocol: Protocol) -> List[str]:
        return [decoded.name for decoded in self.names if decoded.protocol == protocol]


@dataclass
class ProbeStatistics:
    """
    Counters kept by one prober during a discovery pass.

    Attributes:
        queries_sent: Query datagrams successfully sent
        send_failures: Query datagrams the socket refused to send
        datagrams_received: Datagrams read from the socket
        datagrams_dropped: Datagrams discarded (undecodable, mismatched, duplicate)
        names_reported: Findings handed to the coordinator
        duration: Seconds the prober ran
    """
    queries_sent: int = 0
    send_failures: int = 0
    datagrams_received: int = 0
    datagrams_dropped: int = 0
    names_reported: int = 0
    duration: float = 0.0


class DiscoverySession:
    """
    The host table of one discovery pass.

    Created when discovery starts, filled through add_finding() by the
    coordinator's single consumer loop, then frozen and handed to the result
    sink. Records are never removed once added.
    """

    def __init__(self, deadline: float, started_at: Optional[datetime] = None):
        """
        Initialize the session.

        Args:
            deadline: time.monotonic() value at which probing stops
            started_at: Wall-clock start time
        """
        self.started_at = started_at or datetime.now()
        self.deadline = deadline
        self.finished_at: Optional[datetime] = None
        self.status = ScanStatus.NOT_STARTED
        self.statistics: Dict[Protocol, ProbeStatistics] = {}
        self._records: Dict[str, HostRecord] = {}
        self._errors: List[ProbeError] = []
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def results(self) -> Tuple[HostRecord, ...]:
        """Host records in first-seen order."""
        return tuple(self._records.values())

    @property
    def errors(self) -> Tuple[ProbeError, ...]:
        return tuple(self._errors)

    @property
    def duration(self) -> float:
        end = self.finished_at or datetime.now()
        return (end - self.started_at).total_seconds()

    def get(self, address: str) -> Optional[HostRecord]:
        return self._records.get(address)

    def __len__(self) -> int:
        return len(self._records)

    def add_finding(self, finding: Finding) -> bool:
        """
        Merge one finding into the host table.

        Args:
            finding: Observation reported by a prober

        Returns:
            True if the table changed (new host or new name)

        Raises:
            RuntimeError: If the session is already frozen
        """
        self._check_open()
        record = self._records.get(finding.address)
        if record is None:
            record = HostRecord(address=finding.address, mac_address=finding.mac_address)
            record.add_name(finding.decoded)
            self._records[finding.address] = record
            return True

        if record.mac_address is None and finding.mac_address:
            record.mac_address = finding.mac_address
        return record.add_name(finding.decoded)

    def record_error(self, error: ProbeError) -> None:
        """Append a prober failure to the session."""
        self._check_open()
        self._errors.append(error)

    def freeze(self, status: ScanStatus) -> "DiscoverySession":
        """
        Finalize the session; further ingestion raises.

        Args:
            status: Final session status

        Returns:
            The session itself
        """
        self.status = status
        self.finished_at = datetime.now()
        self._frozen = True
        return self

    def _check_open(self) -> None:
        if self._frozen:
            raise RuntimeError("Discovery session is frozen")
