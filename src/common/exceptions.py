"""
localcluster Exception Hierarchy

Provides clear, actionable error messages with structured information
for logging, user feedback, and programmatic error handling.
"""

from enum import Enum
from typing import Optional, Dict, Any, List


class LocalClusterError(Exception):
    """
    Base exception for all localcluster errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context as key-value pairs
        cause: Original exception that caused this error
        recoverable: Whether the error is recoverable
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        self.recoverable = recoverable

    def __str__(self):
        return self.message

    def describe(self) -> str:
        """Long form including code, details and cause, for logs."""
        s = f"[{self.code}] {self.message}"
        if self.details:
            s += f" (details: {self.details})"
        if self.cause:
            s += f" caused by: {self.cause}"
        return s

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# Host lifecycle errors
# =============================================================================

class HostError(LocalClusterError):
    """Base for host lifecycle errors."""
    pass


class HostAlreadyInStateError(HostError):
    """The host already satisfies the state an operation targets."""
    def __init__(self, name: str, state: Any):
        super().__init__(
            f"Machine {name!r} is already {str(state).lower()}",
            code="HOST_ALREADY_IN_STATE",
            details={"name": name, "state": str(state)},
        )
        self.name = name
        self.state = state


class HostNotImplementedError(HostError):
    """The host's driver does not support the requested operation."""
    def __init__(self, name: str, operation: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Not implemented: {operation} is not supported by the driver of {name!r}",
            code="NOT_IMPLEMENTED",
            details={"name": name, "operation": operation},
            cause=cause,
            recoverable=False,
        )
        self.name = name
        self.operation = operation


class InvalidHostNameError(HostError):
    """Host name does not match the hostname grammar."""
    def __init__(self, name: str):
        super().__init__(
            f"Invalid host name {name!r}: must start with a letter or digit "
            "and contain only letters, digits, '.' and '-'",
            code="INVALID_HOST_NAME",
            details={"name": name},
            recoverable=False,
        )


# =============================================================================
# Driver errors
# =============================================================================

class DriverErrorKind(Enum):
    """Closed set of failure kinds shared across the driver boundary."""
    CAPABILITY_UNSUPPORTED = "capability_unsupported"
    REMOTE_FAILURE = "remote_failure"
    BACKEND_FAILURE = "backend_failure"


class DriverError(LocalClusterError):
    """Failure reported by a virtualization driver."""
    def __init__(
        self,
        message: str,
        kind: DriverErrorKind = DriverErrorKind.BACKEND_FAILURE,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, code=code or "DRIVER_ERROR", details=details, cause=cause)
        self.kind = kind


class DriverNotImplementedError(DriverError):
    """Driver does not implement a capability."""
    def __init__(self, operation: str = ""):
        super().__init__(
            "Not Implemented",
            kind=DriverErrorKind.CAPABILITY_UNSUPPORTED,
            code="DRIVER_NOT_IMPLEMENTED",
            details={"operation": operation} if operation else None,
        )
        self.operation = operation


class RemoteCallError(DriverError):
    """Weakly typed failure carried back from a remote driver call."""
    def __init__(self, message: str, method: str = ""):
        super().__init__(
            message,
            kind=DriverErrorKind.REMOTE_FAILURE,
            code="REMOTE_CALL_FAILED",
            details={"method": method} if method else None,
        )
        self.method = method


# =============================================================================
# Wait errors
# =============================================================================

class WaitError(LocalClusterError):
    """Base for state-wait errors."""
    pass


class WaitTimeoutError(WaitError):
    """Predicate did not become true within the retry budget."""
    def __init__(self, attempts: int, reason: str = ""):
        message = reason or f"Maximum number of retries ({attempts}) exceeded"
        super().__init__(
            message,
            code="TIMEOUT",
            details={"attempts": attempts},
        )
        self.attempts = attempts


class WaitCancelledError(WaitError):
    """Wait was cancelled by its caller."""
    def __init__(self, attempts: int):
        super().__init__(
            f"Wait cancelled after {attempts} attempt(s)",
            code="CANCELLED",
            details={"attempts": attempts},
        )
        self.attempts = attempts


# =============================================================================
# Host OS errors
# =============================================================================

class HostOSError(LocalClusterError):
    """Base for host operating system errors."""
    pass


class CommandError(HostOSError):
    """External command failed."""
    def __init__(self, command: List[str], returncode: Optional[int], stderr: str = ""):
        cmdline = " ".join(command)
        reason = stderr.strip() or (
            f"exit status {returncode}" if returncode is not None else "not found"
        )
        super().__init__(
            f"{cmdline} failed: {reason}",
            code="COMMAND_FAILED",
            details={"command": cmdline, "returncode": returncode},
        )
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class OSReleaseError(HostOSError):
    """os-release could not be read or parsed."""
    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Cannot read {path}: {reason}",
            code="OS_RELEASE_UNREADABLE",
            details={"path": path},
        )


class LibvirtConnectionError(HostOSError):
    """Failed to connect to libvirt."""
    def __init__(self, uri: str, cause: Optional[Exception] = None):
        super().__init__(
            f"Cannot connect to libvirt at {uri}",
            code="LIBVIRT_CONNECTION_FAILED",
            details={"uri": uri},
            cause=cause,
        )


# =============================================================================
# Preflight errors
# =============================================================================

class PreflightError(LocalClusterError):
    """Base for preflight errors."""
    pass


class PreflightCheckError(PreflightError):
    """A preflight detection or remediation found a problem."""
    def __init__(self, message: str, check: str = "", cause: Optional[Exception] = None):
        super().__init__(
            message,
            code="PREFLIGHT_CHECK_FAILED",
            details={"check": check} if check else None,
            cause=cause,
        )
        self.check = check


class CleanupError(PreflightError):
    """One or more cleanup steps failed."""
    def __init__(self, failures: Dict[str, Exception]):
        summary = "; ".join(f"{desc}: {err}" for desc, err in failures.items())
        super().__init__(
            f"Cleanup finished with {len(failures)} error(s): {summary}",
            code="CLEANUP_FAILED",
            details={"failed": list(failures)},
        )
        self.failures = failures


# =============================================================================
# Configuration errors
# =============================================================================

class ConfigError(LocalClusterError):
    """Base for configuration errors."""
    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration."""
    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"Invalid configuration: {field}={value}: {reason}",
            code="INVALID_CONFIG",
            details={"field": field, "value": str(value), "reason": reason},
        )


# =============================================================================
# Template errors
# =============================================================================

class TemplateError(LocalClusterError):
    """Template-related errors."""
    pass


class TemplateNotFoundError(TemplateError):
    """Template not found."""
    def __init__(self, template_name: str):
        super().__init__(
            f"Template not found: {template_name}",
            code="TEMPLATE_NOT_FOUND",
            details={"template": template_name},
        )
