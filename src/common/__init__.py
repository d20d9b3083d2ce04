"""
localcluster Common Utilities

Shared exceptions, logging and configuration.
"""

from .exceptions import (
    LocalClusterError, HostError, HostAlreadyInStateError, HostNotImplementedError,
    InvalidHostNameError, DriverErrorKind, DriverError, DriverNotImplementedError,
    RemoteCallError, WaitError, WaitTimeoutError, WaitCancelledError, HostOSError,
    CommandError, OSReleaseError, LibvirtConnectionError, PreflightError,
    PreflightCheckError, CleanupError, ConfigError, InvalidConfigError,
    TemplateError, TemplateNotFoundError,
)
from .logging_config import setup_logging, LogContext
from .config import Config, NetworkMode

__all__ = [
    # Exceptions
    "LocalClusterError", "HostError", "HostAlreadyInStateError", "HostNotImplementedError",
    "InvalidHostNameError", "DriverErrorKind", "DriverError", "DriverNotImplementedError",
    "RemoteCallError", "WaitError", "WaitTimeoutError", "WaitCancelledError", "HostOSError",
    "CommandError", "OSReleaseError", "LibvirtConnectionError", "PreflightError",
    "PreflightCheckError", "CleanupError", "ConfigError", "InvalidConfigError",
    "TemplateError", "TemplateNotFoundError",
    # Logging
    "setup_logging", "LogContext",
    # Config
    "Config", "NetworkMode",
]
