"""
Name service probers for hostname discovery.
"""

from .base_prober import BaseProber
from .nbns_prober import NBNSProber
from .mdns_prober import MDNSProber

__all__ = [
    'BaseProber',
    'NBNSProber',
    'MDNSProber'
]
