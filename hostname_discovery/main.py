"""
Main entry point for the Hostname Discovery Module.

This module provides the command-line interface for the hostname discovery
tool: argument parsing, configuration overrides, result rendering and
graceful shutdown handling.
"""

import argparse
import signal
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .codec.mdns import RECORD_TYPES
from .config.config_loader import ConfigLoader, DiscoveryConfig, KNOWN_PROTOCOLS
from .core.coordinator import DiscoveryCoordinator
from .core.data_models import DecodedName, DiscoverySession, HostRecord, Protocol
from .utils.error_handler import (
    ConfigurationError, ErrorHandler, HostnameDiscoveryError, SessionFailure, ValidationError
)
from .utils.json_reporter import JSONReporter
from .utils.logger import LogLevel, get_logger, set_log_level
from .utils.network_utils import address_sort_key

TABLE_HEADERS = ["IP address", "NetBIOS name", "mDNS name", "MAC address"]
TABLE_WIDTHS = [39, 16, 32, 17]

_RECORD_TYPE_NAMES = {value: name for name, value in RECORD_TYPES.items()}

# Suffixes naming the machine itself: workstation and file server
_HOST_SUFFIXES = (0x00, 0x20)


class HostnameDiscoveryApp:
    """
    Main application class for Hostname Discovery Module.

    Handles CLI interface, configuration and application lifecycle.
    """

    def __init__(self):
        """Initialize the application."""
        self.logger = get_logger(__name__)
        self.error_handler = ErrorHandler(self.logger)
        self.coordinator: Optional[DiscoveryCoordinator] = None
        self.shutdown_requested = False

        # Register signal handlers for graceful shutdown
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum: int, frame) -> None:
        """
        Handle shutdown signals.

        The first signal interrupts the discovery pass; a second one exits
        immediately.

        Args:
            signum: Signal number
            frame: Current stack frame
        """
        signal_names = {signal.SIGINT: "SIGINT", signal.SIGTERM: "SIGTERM"}
        signal_name = signal_names.get(signum, f"Signal {signum}")

        if not self.shutdown_requested:
            self.logger.warning(f"Received {signal_name} - stopping discovery...")
            self.shutdown_requested = True
            raise KeyboardInterrupt
        self.logger.error("Force shutdown requested - terminating immediately")
        sys.exit(130)

    def _validate_config_dir(self, config_dir: Optional[str]) -> Optional[str]:
        if not config_dir:
            return None
        config_path = Path(config_dir)
        if not config_path.is_dir():
            raise ConfigurationError(f"Configuration directory does not exist: {config_dir}")
        return str(config_path.resolve())

    def build_config(self, args: argparse.Namespace) -> DiscoveryConfig:
        """
        Load the configuration file and apply command line overrides.

        Args:
            args: Parsed command line arguments

        Returns:
            DiscoveryConfig for this run
        """
        loader = ConfigLoader(self._validate_config_dir(args.config_dir), self.logger)
        config = loader.load_config()

        if args.timeout is not None:
            config.timeout = args.timeout
        if args.interface:
            config.interface = args.interface
        if args.targets:
            config.targets = list(args.targets)
        if args.protocols:
            config.protocols = list(dict.fromkeys(args.protocols))
        return config

    def run(self, args: argparse.Namespace) -> int:
        """
        Run the hostname discovery application.

        Args:
            args: Parsed command line arguments

        Returns:
            int: Exit code (0 for success, 1 for failure, 130 when interrupted)
        """
        try:
            config = self.build_config(args)
            self.coordinator = DiscoveryCoordinator(config, self.logger, self.error_handler)

            self.logger.section("HOSTNAME DISCOVERY")
            session = self.coordinator.discover()

            self.render_session(session, verbose=args.verbose)
            if args.json:
                JSONReporter().generate_report(session, args.json)
            return 0

        except KeyboardInterrupt:
            self.logger.warning("Discovery interrupted by user")
            return 130
        except SessionFailure as e:
            self.logger.error(f"Hostname discovery failed: {e.message}")
            self.logger.info(f"{len(e.errors)} prober error(s); run with --verbose for details")
            return 1
        except (ConfigurationError, ValidationError) as e:
            self.error_handler.input_failure(e, "prepare discovery", type(self).__name__)
            return 1
        except HostnameDiscoveryError as e:
            self.logger.error(f"Hostname discovery failed: {e.message}")
            return 1
        except OSError as e:
            self.logger.error(f"Hostname discovery failed: {e}", exception=e)
            return 1

    def render_session(self, session: DiscoverySession, verbose: bool = False) -> None:
        """
        Print the discovered hosts as a table.

        Args:
            session: Frozen discovery session
            verbose: Also list every name with its suffix and group flag
        """
        self.logger.section("RESULTS")
        for error in session.errors:
            self.logger.warning(str(error))

        if not len(session):
            self.logger.info("No hosts answered")
            return

        records = sorted(session.results, key=lambda record: address_sort_key(record.address))
        self.logger.table_header(TABLE_HEADERS, TABLE_WIDTHS)
        for record in records:
            self.logger.table_row(self._table_values(record), TABLE_WIDTHS)

        if verbose:
            for record in records:
                self.logger.info(f"{record.address}:")
                for decoded in record.names:
                    self.logger.info(f"  {describe_name(decoded)}")

        self.logger.success(
            f"{len(session)} {'host' if len(session) == 1 else 'hosts'} found "
            f"(status: {session.status.value})"
        )

    def _table_values(self, record: HostRecord) -> List[str]:
        netbios = [d for d in record.names if d.protocol == Protocol.NBNS and not d.is_group]
        preferred = [d for d in netbios if d.suffix in _HOST_SUFFIXES] or netbios
        mdns_names = record.names_for(Protocol.MDNS)
        return [
            record.address,
            preferred[0].name if preferred else "-",
            mdns_names[0] if mdns_names else "-",
            record.mac_address or "-",
        ]


def describe_name(decoded: DecodedName) -> str:
    """
    Format one name for the verbose listing.

    NetBIOS names show their suffix as <xx> and their Unique, Group,
    Permanent or Permanent group flag. mDNS names show the record type they
    came from.
    """
    if decoded.protocol == Protocol.NBNS:
        return f"{decoded.name:<15} <{decoded.suffix:02x}> {decoded.kind:<6} NBNS"
    record_type = _RECORD_TYPE_NAMES.get(decoded.suffix, str(decoded.suffix))
    return f"{decoded.name} ({record_type}) mDNS"


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the command line argument parser.

    Returns:
        argparse.ArgumentParser: Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="hostname_discovery",
        description="Hostname Discovery Module - Resolve LAN host names using NetBIOS (NBNS) and mDNS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m hostname_discovery                                # Probe the local subnet
  python -m hostname_discovery --target 192.168.1.0/24       # Probe an explicit network
  python -m hostname_discovery --protocol nbns --timeout 1   # NetBIOS only, 1 second window
  python -m hostname_discovery --json ./reports              # Also write a JSON report
  python -m hostname_discovery --verbose                     # List every name and debug output
        """
    )

    parser.add_argument(
        "--timeout", "-t",
        type=float,
        help="Probe window in seconds (default from discovery_config.yml, 2.0)"
    )

    parser.add_argument(
        "--interface", "-i",
        type=str,
        help="Network interface to probe on. Defaults to the default route interface"
    )

    parser.add_argument(
        "--target",
        dest="targets",
        action="append",
        metavar="IP|CIDR",
        help="Host address or network to probe; may be repeated"
    )

    parser.add_argument(
        "--protocol",
        dest="protocols",
        action="append",
        choices=KNOWN_PROTOCOLS,
        help="Protocol to use; may be repeated. Defaults to both"
    )

    parser.add_argument(
        "--config-dir",
        type=str,
        help="Directory containing discovery_config.yml. Defaults to hostname_discovery/config/"
    )

    parser.add_argument(
        "--json",
        type=str,
        metavar="PATH",
        help="Write the results as JSON to PATH; a path without a .json suffix is a directory for a timestamped report"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging output and list every name"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Hostname Discovery Module {__version__}"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the Hostname Discovery Module.

    Returns:
        int: Exit code (0 for success, non-zero for failure)
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    # Configure logging level based on verbose flag
    if args.verbose:
        set_log_level(LogLevel.DEBUG)

    app = HostnameDiscoveryApp()
    return app.run(args)


if __name__ == "__main__":
    sys.exit(main())
