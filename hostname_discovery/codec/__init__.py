"""
Wire codecs for the NetBIOS Name Service and multicast DNS.

Pure encode/decode functions with no network or clock dependency. Decoders
return a DecodeResult instead of raising, so unrelated or broken traffic on
the segment never aborts a probe.
"""

from .dns_wire import DecodeResult, DnsHeader
from .nbns import (
    NBNS_PORT,
    TYPE_NB,
    TYPE_NBSTAT,
    NodeStatusEntry,
    decode_nbns_response,
    decode_netbios_name,
    encode_nbns_node_status_response,
    encode_nbns_query,
    encode_netbios_name,
)
from .mdns import (
    MDNS_GROUP_V4,
    MDNS_GROUP_V6,
    MDNS_PORT,
    RECORD_TYPES,
    TYPE_A,
    TYPE_AAAA,
    TYPE_ANY,
    TYPE_PTR,
    address_from_reverse_name,
    decode_mdns_response,
    encode_mdns_query,
    encode_mdns_questions,
    reverse_pointer_name,
)

__all__ = [
    'DecodeResult',
    'DnsHeader',
    'NBNS_PORT',
    'TYPE_NB',
    'TYPE_NBSTAT',
    'NodeStatusEntry',
    'decode_nbns_response',
    'decode_netbios_name',
    'encode_nbns_node_status_response',
    'encode_nbns_query',
    'encode_netbios_name',
    'MDNS_GROUP_V4',
    'MDNS_GROUP_V6',
    'MDNS_PORT',
    'RECORD_TYPES',
    'TYPE_A',
    'TYPE_AAAA',
    'TYPE_ANY',
    'TYPE_PTR',
    'address_from_reverse_name',
    'decode_mdns_response',
    'encode_mdns_query',
    'encode_mdns_questions',
    'reverse_pointer_name',
]
