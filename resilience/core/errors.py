"""Error hierarchy for the resilience framework."""

from typing import Optional, Dict, Any, List


class ResilienceError(Exception):
    """Base exception for all resilience framework errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# Configuration and Setup Errors
class ConfigurationError(ResilienceError):
    """Error in framework configuration."""


# Network Errors
class NetworkError(ResilienceError):
    """Network-related error."""


class PortAllocationError(NetworkError):
    """No free port could be found in the scan window."""

    def __init__(self, message: str, host: str, start_port: int, end_port: int,
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.host = host
        self.start_port = start_port
        self.end_port = end_port


# Process Errors
class ProcessError(ResilienceError):
    """Base class for process-related errors."""


class ProcessStartupError(ProcessError):
    """Error during process startup."""


class ProcessTimeoutError(ProcessError):
    """Process operation timed out."""

    def __init__(self, message: str, timeout: float, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.timeout = timeout


class ContainerCommandError(ProcessError):
    """A docker CLI command failed."""

    def __init__(self, message: str, step: str, command: List[str],
                 returncode: Optional[int] = None, output: str = "",
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.step = step
        self.command = command
        self.returncode = returncode
        self.output = output


# Instance Errors
class InstanceError(ResilienceError):
    """Base class for errors concerning a single cluster member."""


class UnknownInstanceError(InstanceError):
    """Operation on an instance the manager does not track."""


class InstanceStateError(InstanceError):
    """Invalid status transition."""


class NoCoordinatorError(InstanceError):
    """Cluster entry point requested but no coordinator exists."""


# Cluster Errors
class ClusterError(ResilienceError):
    """Cluster operation error."""


# Filesystem Errors
class FilesystemError(ResilienceError):
    """Filesystem operation error."""


class AtomicWriteError(FilesystemError):
    """Atomic write operation failed."""


# Timeout Errors
class TimeoutError(ResilienceError):  # pylint: disable=redefined-builtin
    """Timeout management error."""


class DeadlineExceededError(TimeoutError):
    """A wait did not complete before its deadline."""

    def __init__(self, message: str, timeout: float, elapsed: float,
                 details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.timeout = timeout
        self.elapsed = elapsed
