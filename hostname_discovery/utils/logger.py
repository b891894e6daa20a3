"""
Logging system with colored output for hostname discovery operations.

This module provides a Logger class that supports colored console output
using colorama, distinct colors per log level, section headers and simple
table rendering. Both probers log from their own worker threads, so every
line is written under a shared lock to keep output from interleaving.
"""

import sys
import threading
from datetime import datetime
from enum import Enum
from typing import Optional, List
from colorama import Fore, Style, init

# Initialize colorama for cross-platform colored output
init(autoreset=True)

_output_lock = threading.Lock()


class LogLevel(Enum):
    """Enumeration for different log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


_LEVEL_ORDER = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARNING: 2,
    LogLevel.ERROR: 3,
}


class Logger:
    """
    Logger class with colored console output.

    Provides structured logging with different levels, colors, and formatting
    utilities for the discovery pass and for rendering its results.
    """

    LEVEL_COLORS = {
        LogLevel.DEBUG: Fore.CYAN,
        LogLevel.INFO: Fore.GREEN,
        LogLevel.WARNING: Fore.YELLOW,
        LogLevel.ERROR: Fore.RED,
    }

    LEVEL_SYMBOLS = {
        LogLevel.DEBUG: "🔍",
        LogLevel.INFO: "ℹ️",
        LogLevel.WARNING: "⚠️",
        LogLevel.ERROR: "❌",
    }

    def __init__(
        self, name: str = "HostnameDiscovery", min_level: Optional[LogLevel] = None
    ):
        """
        Initialize the Logger.

        Args:
            name: Name of the logger (default: "HostnameDiscovery")
            min_level: Minimum log level to display. When omitted the
                process-wide level set with set_log_level() applies.
        """
        self.name = name
        self._min_level = min_level
        self._progress_active = False

    @property
    def min_level(self) -> LogLevel:
        return self._min_level or _global_level

    @min_level.setter
    def min_level(self, level: LogLevel) -> None:
        self._min_level = level

    def _should_log(self, level: LogLevel) -> bool:
        return _LEVEL_ORDER[level] >= _LEVEL_ORDER[self.min_level]

    @staticmethod
    def _timestamp() -> str:
        return datetime.now().strftime("%H:%M:%S")

    @staticmethod
    def _emit(text: str, stream=None) -> None:
        with _output_lock:
            print(text, file=stream or sys.stdout, flush=True)

    @staticmethod
    def _format_details(kwargs: dict) -> str:
        if not kwargs:
            return ""
        details = " | ".join(f"{k}={v}" for k, v in kwargs.items())
        return f" {Style.DIM}({details}){Style.RESET_ALL}"

    def _log(self, level: LogLevel, message: str, **kwargs) -> None:
        """
        Format and write one log line.

        Args:
            level: Log level
            message: Message to log
            **kwargs: Additional context rendered as key=value pairs
        """
        if not self._should_log(level):
            return

        color = self.LEVEL_COLORS[level]
        symbol = self.LEVEL_SYMBOLS[level]
        line = (
            f"{Style.DIM}[{self._timestamp()}]{Style.RESET_ALL} "
            f"{color}{symbol} {level.value:<7}{Style.RESET_ALL} "
            f"{message}"
        ) + self._format_details(kwargs)

        self._emit(line, sys.stderr if level == LogLevel.ERROR else sys.stdout)

    def debug(self, message: str, **kwargs) -> None:
        """Log a debug message."""
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log an info message."""
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log a warning message."""
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(
        self, message: str, exception: Optional[Exception] = None, **kwargs
    ) -> None:
        """
        Log an error message.

        Args:
            message: Error message
            exception: Optional exception object for additional context
            **kwargs: Additional context information
        """
        if exception:
            kwargs["exception"] = f"{type(exception).__name__}: {exception}"
        self._log(LogLevel.ERROR, message, **kwargs)

    def success(self, message: str, **kwargs) -> None:
        """Log a success message (INFO level with its own styling)."""
        if not self._should_log(LogLevel.INFO):
            return

        line = (
            f"{Style.DIM}[{self._timestamp()}]{Style.RESET_ALL} "
            f"{Fore.GREEN}✅ SUCCESS {Style.RESET_ALL} "
            f"{Style.BRIGHT}{message}{Style.RESET_ALL}"
        ) + self._format_details(kwargs)
        self._emit(line)

    def section(self, title: str) -> None:
        """Print a section header."""
        if not self._should_log(LogLevel.INFO):
            return

        separator = "=" * 60
        self._emit(
            f"\n{Fore.BLUE}{Style.BRIGHT}{separator}\n"
            f"  {title.upper()}\n"
            f"{separator}{Style.RESET_ALL}\n"
        )

    def progress_start(self, message: str) -> None:
        """Announce the start of a long-running operation."""
        if not self._should_log(LogLevel.INFO):
            return

        self._emit(
            f"{Style.DIM}[{self._timestamp()}]{Style.RESET_ALL} "
            f"{Fore.BLUE}⏳ PROGRESS{Style.RESET_ALL} "
            f"{message}..."
        )
        self._progress_active = True

    def progress_end(self, final_message: Optional[str] = None) -> None:
        """
        End the current progress indicator.

        Args:
            final_message: Optional final message logged as a success
        """
        if not self._progress_active:
            return

        self._progress_active = False
        if final_message:
            self.success(final_message)

    def table_header(self, headers: List[str], widths: List[int]) -> None:
        """
        Print a formatted table header.

        Args:
            headers: List of header names
            widths: List of column widths
        """
        header_row = " | ".join(
            f"{header:<{width}}" for header, width in zip(headers, widths)
        )
        separator = "-+-".join("-" * width for width in widths)
        self._emit(f"{Style.BRIGHT}{header_row}{Style.RESET_ALL}")
        self._emit(f"{Style.DIM}{separator}{Style.RESET_ALL}")

    def table_row(
        self, values: List[str], widths: List[int], highlight: bool = False
    ) -> None:
        """
        Print a formatted table row.

        Args:
            values: List of values to display
            widths: List of column widths
            highlight: Whether to highlight this row
        """
        row = " | ".join(
            f"{str(value):<{width}}" for value, width in zip(values, widths)
        )
        self._emit(f"{Style.BRIGHT}{row}{Style.RESET_ALL}" if highlight else row)

    def probe_plan(
        self, interface: str, host_ip: str, protocols: List[str], timeout: float
    ) -> None:
        """
        Display what the discovery pass is about to do.

        Args:
            interface: Interface the probes go out on
            host_ip: Local address of that interface
            protocols: Enabled protocol names
            timeout: Probe window in seconds
        """
        if not self._should_log(LogLevel.INFO):
            return

        self._emit(
            f"\n{Fore.CYAN}{Style.BRIGHT}🌐 DISCOVERY PLAN{Style.RESET_ALL}\n"
            f"  Interface:  {Style.BRIGHT}{interface}{Style.RESET_ALL}\n"
            f"  Host IP:    {Style.BRIGHT}{host_ip}{Style.RESET_ALL}\n"
            f"  Protocols:  {Style.BRIGHT}{', '.join(protocols)}{Style.RESET_ALL}\n"
            f"  Timeout:    {Style.BRIGHT}{timeout:.1f}s{Style.RESET_ALL}\n"
        )


_global_level = LogLevel.INFO

# Global logger instance
logger = Logger()


def set_log_level(level: LogLevel) -> None:
    """
    Set the process-wide log level.

    Loggers created without an explicit min_level follow this setting.

    Args:
        level: Minimum log level to display
    """
    global _global_level
    _global_level = level


def get_logger(name: str = "HostnameDiscovery") -> Logger:
    """
    Get a logger instance with the specified name.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return Logger(name)
