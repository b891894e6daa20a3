"""
JSON Report Generator for Hostname Discovery Module.

This module converts a frozen DiscoverySession into a JSON document and writes
it to disk, generating a timestamped filename when a directory is given.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from ..core.data_models import DiscoverySession, HostRecord
from .logger import get_logger
from .network_utils import address_sort_key


class JSONReporter:
    """
    Handles generation of JSON reports from discovery sessions.

    Hosts are written sorted by address; every name keeps its protocol tag,
    suffix (NetBIOS suffix byte or DNS record type) and group flag.
    """

    def __init__(self):
        self.logger = get_logger(__name__)

    def generate_report(self, session: DiscoverySession, destination: str) -> str:
        """
        Write a session as JSON.

        Args:
            session: Frozen discovery session
            destination: Path of a .json file, or a directory (existing, ending
                in a path separator, or without a .json suffix) to place a
                timestamped report in

        Returns:
            str: Path to the generated JSON file

        Raises:
            OSError: If the file cannot be written
        """
        filepath = Path(destination)
        if self._is_directory(destination, filepath):
            filepath.mkdir(parents=True, exist_ok=True)
            filepath = self._handle_file_collision(filepath / self._generate_filename(session.started_at))
        else:
            filepath.parent.mkdir(parents=True, exist_ok=True)

        json_data = self.to_dict(session)
        try:
            with open(filepath, 'w', encoding='utf-8') as f:
                json.dump(json_data, f, indent=2, ensure_ascii=False, default=str)
        except OSError as e:
            self.logger.error(f"Failed to write JSON report to {filepath}: {e}")
            raise

        self.logger.info(f"JSON report written to {filepath}")
        return str(filepath)

    def to_dict(self, session: DiscoverySession) -> Dict[str, Any]:
        """
        Convert a session to a JSON-serializable dictionary.

        Args:
            session: Discovery session

        Returns:
            Dict with session metadata, per-protocol statistics, errors and hosts
        """
        hosts = sorted(session.results, key=lambda record: address_sort_key(record.address))
        return {
            "session": {
                "started_at": session.started_at.isoformat(),
                "finished_at": session.finished_at.isoformat() if session.finished_at else None,
                "duration": round(session.duration, 3),
                "status": session.status.value,
            },
            "statistics": {
                protocol.value: {
                    "queries_sent": stats.queries_sent,
                    "send_failures": stats.send_failures,
                    "datagrams_received": stats.datagrams_received,
                    "datagrams_dropped": stats.datagrams_dropped,
                    "names_reported": stats.names_reported,
                    "duration": round(stats.duration, 3),
                }
                for protocol, stats in session.statistics.items()
            },
            "errors": [str(error) for error in session.errors],
            "hosts": [self._host_to_dict(record) for record in hosts],
        }

    def _host_to_dict(self, record: HostRecord) -> Dict[str, Any]:
        return {
            "ip_address": record.address,
            "mac_address": record.mac_address,
            "first_seen": record.first_seen.isoformat(),
            "names": [
                {
                    "name": decoded.name,
                    "protocol": decoded.protocol.value,
                    "suffix": decoded.suffix,
                    "group": decoded.is_group,
                }
                for decoded in record.names
            ],
        }

    @staticmethod
    def _is_directory(destination: str, filepath: Path) -> bool:
        if filepath.is_dir() or destination.endswith((os.sep, "/")):
            return True
        return filepath.suffix.lower() != ".json"

    def _generate_filename(self, timestamp: datetime) -> str:
        # Format: hostname_discovery_YYYYMMDD_HHMMSS.json
        return f"hostname_discovery_{timestamp.strftime('%Y%m%d_%H%M%S')}.json"

    def _handle_file_collision(self, filepath: Path) -> Path:
        """
        Handle filename collisions by adding incremental suffix.

        Args:
            filepath: Original file path

        Returns:
            Path: Unique file path
        """
        if not filepath.exists():
            return filepath

        counter = 1
        while True:
            new_filepath = filepath.parent / f"{filepath.stem}_{counter:03d}{filepath.suffix}"
            if not new_filepath.exists():
                self.logger.debug(f"File collision detected, using filename: {new_filepath.name}")
                return new_filepath

            counter += 1
            if counter > 999:
                raise OSError(f"Too many file collisions for {filepath}")
