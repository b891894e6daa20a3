"""
Utility functions and helper classes.
"""

from .logger import Logger, LogLevel, logger, set_log_level, get_logger
from .error_handler import (
    ErrorHandler, ErrorContext, ErrorType, ErrorSeverity,
    HostnameDiscoveryError, MalformedDatagram, ProbeError, SessionFailure,
    ConfigurationError, ValidationError
)
from . import network_utils

__all__ = [
    'Logger',
    'LogLevel',
    'logger',
    'set_log_level',
    'get_logger',
    'ErrorHandler',
    'ErrorContext',
    'ErrorType',
    'ErrorSeverity',
    'HostnameDiscoveryError',
    'MalformedDatagram',
    'ProbeError',
    'SessionFailure',
    'ConfigurationError',
    'ValidationError',
    'network_utils'
]
