"""
Hostname Discovery Module

A Python module for discovering host names on the local network segment by
querying NetBIOS Name Service (UDP/137) and multicast DNS (UDP/5353) at the
same time and merging the answers into a single host table.
"""

__version__ = "1.0.0"
__author__ = "Hostname Discovery Team"
