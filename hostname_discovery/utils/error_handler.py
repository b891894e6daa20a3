"""
Error taxonomy and centralized error handling for Hostname Discovery Module.

This module defines the exception hierarchy shared by the codec, the probers
and the coordinator, plus an ErrorHandler that classifies socket failures,
keeps per-type statistics and prints troubleshooting suggestions.

Propagation follows three levels:
    * MalformedDatagram stays inside the codec result and is dropped by the prober
    * ProbeError travels to the coordinator as data and lands in the session
    * SessionFailure is raised to the caller when every prober failed
"""

import errno
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Any, Dict, List

from .logger import Logger, get_logger


class ErrorType(Enum):
    """Enumeration for different types of errors."""
    NETWORK_ERROR = "network_error"
    PERMISSION_ERROR = "permission_error"
    ADDRESS_IN_USE_ERROR = "address_in_use_error"
    MULTICAST_ERROR = "multicast_error"
    CONFIGURATION_ERROR = "configuration_error"
    VALIDATION_ERROR = "validation_error"


class ErrorSeverity(Enum):
    """Enumeration for error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """
    Context information for error handling.

    Attributes:
        error_type: Type of error that occurred
        severity: Severity level of the error
        operation: Operation that was being performed when error occurred
        component: Component/module where error occurred
        additional_info: Additional context information
    """
    error_type: ErrorType
    severity: ErrorSeverity
    operation: str
    component: str
    additional_info: Dict[str, Any] = field(default_factory=dict)


class HostnameDiscoveryError(Exception):
    """Base exception class for Hostname Discovery Module."""

    def __init__(self, message: str, error_context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.error_context = error_context


class MalformedDatagram(HostnameDiscoveryError):
    """A received datagram could not be decoded as the expected message."""
    pass


class ProbeError(HostnameDiscoveryError):
    """
    A prober-level I/O failure (bind, multicast join, send or receive).

    Recorded in the session instead of aborting the other prober.
    """

    def __init__(self, message: str, protocol: Any = None,
                 error_context: Optional[ErrorContext] = None):
        super().__init__(message, error_context)
        self.protocol = protocol

    def __str__(self) -> str:
        if self.protocol is None:
            return self.message
        return f"[{self.protocol.value.upper()}] {self.message}"


class SessionFailure(HostnameDiscoveryError):
    """Every enabled prober failed before producing a single result."""

    def __init__(self, message: str, errors: Optional[List[ProbeError]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class ConfigurationError(HostnameDiscoveryError):
    """Exception for configuration-related errors."""
    pass


class ValidationError(HostnameDiscoveryError):
    """Exception for invalid scan targets or parameters."""
    pass


_ERRNO_TYPES = {
    errno.EACCES: ErrorType.PERMISSION_ERROR,
    errno.EPERM: ErrorType.PERMISSION_ERROR,
    errno.EADDRINUSE: ErrorType.ADDRESS_IN_USE_ERROR,
    errno.EADDRNOTAVAIL: ErrorType.MULTICAST_ERROR,
    errno.ENODEV: ErrorType.MULTICAST_ERROR,
}


class ErrorHandler:
    """
    Centralized error handling for discovery operations.

    Classifies socket errors, logs them at a level matching their severity,
    counts them per type and prints user-facing troubleshooting hints.
    Discovery does not retry: a caller wanting more coverage runs it again.
    """

    def __init__(self, logger: Optional[Logger] = None):
        """
        Initialize the ErrorHandler.

        Args:
            logger: Logger instance for error reporting
        """
        self.logger = logger or get_logger(__name__)
        self.error_statistics: Dict[ErrorType, int] = {
            error_type: 0 for error_type in ErrorType
        }

    @staticmethod
    def classify_socket_error(error: OSError) -> ErrorType:
        """
        Map an OSError raised by a socket call to an ErrorType.

        Args:
            error: The socket exception

        Returns:
            ErrorType best describing the failure
        """
        return _ERRNO_TYPES.get(error.errno, ErrorType.NETWORK_ERROR)

    def handle_error(self, error: Exception, context: ErrorContext) -> None:
        """
        Record and report an error.

        Args:
            error: The exception that occurred
            context: Error context information
        """
        self.error_statistics[context.error_type] += 1
        self._log_error(error, context)

        suggestions = self._suggestions_for(context)
        if suggestions and context.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            self.logger.info(f"Troubleshooting suggestions for {context.operation}:")
            for suggestion in suggestions:
                self.logger.info(f"  • {suggestion}")

    def socket_failure(self, error: OSError, operation: str, component: str,
                       protocol: Any = None, **additional_info) -> ProbeError:
        """
        Turn a socket OSError into a ProbeError after handling it.

        Args:
            error: The socket exception
            operation: What the prober was doing (bind, join, send, receive)
            component: Name of the prober class
            protocol: Protocol tag of the prober
            **additional_info: Extra context (port, group, target)

        Returns:
            ProbeError ready to be raised by the prober
        """
        context = ErrorContext(
            error_type=self.classify_socket_error(error),
            severity=ErrorSeverity.HIGH,
            operation=operation,
            component=component,
            additional_info=additional_info,
        )
        self.handle_error(error, context)
        return ProbeError(f"{operation} failed: {error}", protocol, context)

    def input_failure(self, error: HostnameDiscoveryError, operation: str,
                      component: str) -> None:
        """
        Handle a ConfigurationError or ValidationError raised before probing.

        Args:
            error: The rejected configuration or target error
            operation: What was being prepared
            component: Name of the component that rejected the input
        """
        error_type = (ErrorType.VALIDATION_ERROR if isinstance(error, ValidationError)
                      else ErrorType.CONFIGURATION_ERROR)
        error.error_context = ErrorContext(
            error_type=error_type,
            severity=ErrorSeverity.HIGH,
            operation=operation,
            component=component,
        )
        self.handle_error(error, error.error_context)

    def _log_error(self, error: Exception, context: ErrorContext) -> None:
        error_msg = f"Error in {context.component}.{context.operation}: {error}"

        if context.severity == ErrorSeverity.CRITICAL:
            self.logger.error(error_msg, exception=error)
        elif context.severity == ErrorSeverity.HIGH:
            self.logger.error(error_msg)
        elif context.severity == ErrorSeverity.MEDIUM:
            self.logger.warning(error_msg)
        else:
            self.logger.debug(error_msg)

    def _suggestions_for(self, context: ErrorContext) -> List[str]:
        port = context.additional_info.get("port")

        if context.error_type == ErrorType.PERMISSION_ERROR:
            return [
                "Run with elevated privileges: sudo python -m hostname_discovery",
                "Check that a local firewall allows outbound UDP broadcast/multicast",
                f"Use an unprivileged source port (port {port} was refused)" if port else
                "Use an unprivileged source port in discovery_config.yml",
            ]
        if context.error_type == ErrorType.ADDRESS_IN_USE_ERROR:
            return [
                f"Another process holds UDP port {port}" if port else
                "Another process holds the requested UDP port",
                "Stop the conflicting responder or set source_port: 0 in discovery_config.yml",
            ]
        if context.error_type == ErrorType.MULTICAST_ERROR:
            return [
                "Verify the selected interface has an IPv4 address: ip addr show",
                "Ensure a multicast route exists: ip route show 224.0.0.0/4",
                "Select a different interface with --interface",
            ]
        if context.error_type == ErrorType.NETWORK_ERROR:
            return [
                "Check that the interface is up and connected",
                "Verify the target addresses are on the local segment",
                "Check firewall rules for UDP ports 137 and 5353",
            ]
        if context.error_type == ErrorType.CONFIGURATION_ERROR:
            return [
                "Check YAML syntax and indentation",
                "Use the default configuration as reference",
            ]
        if context.error_type == ErrorType.VALIDATION_ERROR:
            return [
                "Targets must be IPv4/IPv6 addresses or CIDR networks",
                "Narrow large networks or raise max_targets",
            ]
        return []
