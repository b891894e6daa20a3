"""
Configuration management for hostname discovery.
"""

from .config_loader import (
    ConfigLoader,
    DiscoveryConfig,
    NBNSConfig,
    MDNSConfig,
    check_timeout
)

__all__ = [
    'ConfigLoader',
    'DiscoveryConfig',
    'NBNSConfig',
    'MDNSConfig',
    'check_timeout'
]
