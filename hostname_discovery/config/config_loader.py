"""
Configuration loader for Hostname Discovery Module.
Handles loading and validation of the YAML configuration file with fallback to defaults.
"""

import yaml
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, Any, List, Optional

from ..utils.logger import Logger, get_logger
from ..utils.error_handler import ConfigurationError
from ..utils.network_utils import is_valid_target

DEFAULT_CONFIG_FILE = "discovery_config.yml"
KNOWN_PROTOCOLS = ("nbns", "mdns")
MDNS_QUERY_TYPES = ("PTR", "ANY")

# Probe windows outside this range still run, with a warning
TIMEOUT_LOW_WARNING = 0.1
TIMEOUT_HIGH_WARNING = 3.5


@dataclass
class NBNSConfig:
    """Configuration for the NetBIOS Name Service prober."""
    port: int = 137
    source_port: int = 0
    include_group_names: bool = False
    recv_buffer_size: int = 1024


@dataclass
class MDNSConfig:
    """Configuration for the multicast DNS prober."""
    port: int = 5353
    group: str = "224.0.0.251"
    group_v6: str = "ff02::fb"
    query_type: str = "PTR"
    questions_per_packet: int = 32
    multicast_ttl: int = 255
    ipv6: bool = False
    unicast_targets: bool = True
    recv_buffer_size: int = 9000


@dataclass
class DiscoveryConfig:
    """
    Top-level configuration of one discovery pass.

    Attributes:
        timeout: Probe window in seconds shared by both probers
        interface: Interface name to probe on (default route interface when None)
        targets: Explicit IP addresses or CIDR networks
        protocols: Enabled protocols, subset of {"nbns", "mdns"}
        max_targets: Upper bound on expanded target addresses
        nbns: NBNS prober settings
        mdns: mDNS prober settings
    """
    timeout: float = 2.0
    interface: Optional[str] = None
    targets: List[str] = field(default_factory=list)
    protocols: List[str] = field(default_factory=lambda: list(KNOWN_PROTOCOLS))
    max_targets: int = 4096
    nbns: NBNSConfig = field(default_factory=NBNSConfig)
    mdns: MDNSConfig = field(default_factory=MDNSConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def check_timeout(timeout: Any, logger: Optional[Logger] = None) -> float:
    """
    Validate a probe timeout.

    Args:
        timeout: Timeout in seconds
        logger: Logger for range warnings

    Returns:
        The timeout as a float

    Raises:
        ConfigurationError: If the timeout is not a positive number
    """
    try:
        value = float(timeout)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Timeout must be a number of seconds, got {timeout!r}")
    if value <= 0:
        raise ConfigurationError(f"Timeout must be positive, got {timeout!r}")

    if logger:
        if value < TIMEOUT_LOW_WARNING:
            logger.warning(f"Timeout of {value}s is very low; slow responders will be missed")
        elif value > TIMEOUT_HIGH_WARNING:
            logger.warning(f"Timeout of {value}s is very high; discovery will take a while")
    return value


class ConfigLoader:
    """
    Loads and validates the YAML configuration file for hostname discovery.
    Provides fallback to default configuration when the file is missing or invalid.
    """

    def __init__(self, config_dir: Optional[str] = None, logger: Optional[Logger] = None):
        """
        Initialize ConfigLoader.

        Args:
            config_dir: Directory containing the configuration file.
                       Defaults to the config directory relative to this file.
            logger: Logger for validation warnings
        """
        if config_dir is None:
            self.config_dir = Path(__file__).parent
        else:
            self.config_dir = Path(config_dir)

        self.logger = logger or get_logger(__name__)

    def load_config(self, config_file: str = DEFAULT_CONFIG_FILE) -> DiscoveryConfig:
        """
        Load the discovery configuration from a YAML file.

        Args:
            config_file: Name of the configuration file

        Returns:
            DiscoveryConfig with loaded or default values
        """
        config_path = self.config_dir / config_file

        if not config_path.exists():
            self.logger.debug(f"Config file not found at {config_path}. Using default configuration.")
            return DiscoveryConfig()

        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            self.logger.error(f"Error parsing config file {config_path}: {e}")
            self.logger.warning("Using default configuration.")
            return DiscoveryConfig()
        except OSError as e:
            self.logger.error(f"Cannot read config file {config_path}: {e}")
            self.logger.warning("Using default configuration.")
            return DiscoveryConfig()

        if not isinstance(config_data, dict):
            self.logger.warning(f"Invalid config structure in {config_path}. Using default configuration.")
            return DiscoveryConfig()

        return self.from_dict(config_data)

    def from_dict(self, config_data: Dict[str, Any]) -> DiscoveryConfig:
        """
        Build a validated DiscoveryConfig from parsed YAML data.

        Args:
            config_data: Mapping with optional 'discovery', 'nbns' and 'mdns' sections

        Returns:
            DiscoveryConfig; invalid fields fall back to their defaults
        """
        defaults = DiscoveryConfig()
        discovery = self._section(config_data, 'discovery')

        timeout = discovery.get('timeout', defaults.timeout)
        try:
            timeout = check_timeout(timeout)
        except ConfigurationError as e:
            self.logger.warning(f"{e}. Using default: {defaults.timeout}")
            timeout = defaults.timeout

        return DiscoveryConfig(
            timeout=timeout,
            interface=discovery.get('interface'),
            targets=self._validate_targets(discovery.get('targets', [])),
            protocols=self._validate_protocols(discovery.get('protocols', defaults.protocols)),
            max_targets=self._validate_positive_int(
                discovery.get('max_targets', defaults.max_targets), 'max_targets', defaults.max_targets),
            nbns=self._load_nbns(self._section(config_data, 'nbns')),
            mdns=self._load_mdns(self._section(config_data, 'mdns')),
        )

    def _load_nbns(self, data: Dict[str, Any]) -> NBNSConfig:
        defaults = NBNSConfig()
        return NBNSConfig(
            port=self._validate_port(data.get('port', defaults.port), 'nbns.port', defaults.port),
            source_port=self._validate_port(
                data.get('source_port', defaults.source_port), 'nbns.source_port',
                defaults.source_port, allow_zero=True),
            include_group_names=bool(data.get('include_group_names', defaults.include_group_names)),
            recv_buffer_size=self._validate_positive_int(
                data.get('recv_buffer_size', defaults.recv_buffer_size),
                'nbns.recv_buffer_size', defaults.recv_buffer_size),
        )

    def _load_mdns(self, data: Dict[str, Any]) -> MDNSConfig:
        defaults = MDNSConfig()
        return MDNSConfig(
            port=self._validate_port(data.get('port', defaults.port), 'mdns.port', defaults.port),
            group=str(data.get('group', defaults.group)),
            group_v6=str(data.get('group_v6', defaults.group_v6)),
            query_type=self._validate_query_type(data.get('query_type', defaults.query_type)),
            questions_per_packet=self._validate_positive_int(
                data.get('questions_per_packet', defaults.questions_per_packet),
                'mdns.questions_per_packet', defaults.questions_per_packet),
            multicast_ttl=self._validate_positive_int(
                data.get('multicast_ttl', defaults.multicast_ttl),
                'mdns.multicast_ttl', defaults.multicast_ttl),
            ipv6=bool(data.get('ipv6', defaults.ipv6)),
            unicast_targets=bool(data.get('unicast_targets', defaults.unicast_targets)),
            recv_buffer_size=self._validate_positive_int(
                data.get('recv_buffer_size', defaults.recv_buffer_size),
                'mdns.recv_buffer_size', defaults.recv_buffer_size),
        )

    def _section(self, config_data: Dict[str, Any], name: str) -> Dict[str, Any]:
        section = config_data.get(name) or {}
        if not isinstance(section, dict):
            self.logger.warning(f"Config section '{name}' must be a mapping. Ignoring it.")
            return {}
        return section

    def _validate_positive_int(self, value: Any, field_name: str, default: int) -> int:
        """
        Validate that a value is a positive integer.

        Args:
            value: Value to validate
            field_name: Name of the field for error messages
            default: Default value to use if validation fails

        Returns:
            Validated integer value or default
        """
        try:
            int_value = int(value)
            if int_value <= 0:
                self.logger.warning(f"Invalid {field_name}: {value}. Must be positive. Using default: {default}")
                return default
            return int_value
        except (ValueError, TypeError):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be an integer. Using default: {default}")
            return default

    def _validate_port(self, value: Any, field_name: str, default: int,
                       allow_zero: bool = False) -> int:
        try:
            port = int(value)
        except (ValueError, TypeError):
            port = -1
        if (port == 0 and allow_zero) or 0 < port <= 0xFFFF:
            return port
        self.logger.warning(f"Invalid {field_name}: {value}. Using default: {default}")
        return default

    def _validate_protocols(self, protocols: Any) -> List[str]:
        """
        Validate the enabled protocol list.

        Args:
            protocols: Protocol names to validate

        Returns:
            Validated list, or both protocols if nothing valid remains
        """
        if isinstance(protocols, str):
            protocols = [protocols]
        if not isinstance(protocols, list):
            self.logger.warning(f"Invalid protocols: {protocols}. Must be a list. Using default: {list(KNOWN_PROTOCOLS)}")
            return list(KNOWN_PROTOCOLS)

        valid = []
        for protocol in protocols:
            name = str(protocol).lower()
            if name in KNOWN_PROTOCOLS and name not in valid:
                valid.append(name)
            elif name not in KNOWN_PROTOCOLS:
                self.logger.warning(f"Unknown protocol: {protocol}. Skipping.")

        if not valid:
            self.logger.warning(f"No valid protocols found. Using default: {list(KNOWN_PROTOCOLS)}")
            return list(KNOWN_PROTOCOLS)
        return valid

    def _validate_query_type(self, query_type: Any) -> str:
        name = str(query_type).upper()
        if name not in MDNS_QUERY_TYPES:
            self.logger.warning(f"Invalid mDNS query_type: {query_type}. Must be one of {list(MDNS_QUERY_TYPES)}. Using default: PTR")
            return "PTR"
        return name

    def _validate_string_list(self, value: Any, field_name: str) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        if not isinstance(value, list):
            self.logger.warning(f"Invalid {field_name}: {value}. Must be a list. Ignoring it.")
            return []
        return [str(item) for item in value]

    def _validate_targets(self, targets: Any) -> List[str]:
        valid = []
        for target in self._validate_string_list(targets, 'targets'):
            if is_valid_target(target):
                valid.append(target.strip())
            else:
                self.logger.warning(f"Invalid target: {target}. Skipping.")
        return valid

    def create_default_config(self, config_file: str = DEFAULT_CONFIG_FILE) -> Path:
        """
        Write the default configuration file if it does not exist.

        Args:
            config_file: Name of the configuration file

        Returns:
            Path of the configuration file
        """
        config_path = self.config_dir / config_file
        if config_path.exists():
            return config_path

        defaults = DiscoveryConfig().to_dict()
        default_config = {
            'discovery': {
                key: defaults[key]
                for key in ('timeout', 'interface', 'targets', 'protocols', 'max_targets')
            },
            'nbns': defaults['nbns'],
            'mdns': defaults['mdns'],
        }

        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(default_config, f, default_flow_style=False, indent=2, sort_keys=False)
            self.logger.info(f"Created default config at {config_path}")
        except OSError as e:
            self.logger.error(f"Failed to create default config: {e}")
        return config_path
