"""
Core components for hostname discovery functionality.
"""

from .data_models import (
    Protocol,
    ScanStatus,
    NetworkInfo,
    Query,
    Response,
    DecodedName,
    Finding,
    HostRecord,
    ProbeStatistics,
    DiscoverySession
)

__all__ = [
    'Protocol',
    'ScanStatus',
    'NetworkInfo',
    'Query',
    'Response',
    'DecodedName',
    'Finding',
    'HostRecord',
    'ProbeStatistics',
    'DiscoverySession'
]
