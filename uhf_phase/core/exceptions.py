# uhf_phase/core/exceptions.py

"""Custom exceptions for the uhf_phase library."""

from typing import Optional


class UhfPhaseError(Exception):
    """Base exception class for all uhf_phase errors."""
    def __init__(self, message="An unspecified uhf_phase error occurred."):
        super().__init__(message)


# --- Event Source Exceptions ---

class SourceError(UhfPhaseError):
    """
    Base exception for errors raised by an event source (the reader layer
    that delivers decoded tag reads). It often wraps a lower-level exception.
    """
    def __init__(self, message="Event source error.", original_exception: Exception | None = None):
        """
        Args:
            message: A description of the source error.
            original_exception: The underlying exception that caused this error.
        """
        super().__init__(message)
        self.original_exception = original_exception

    def __str__(self):
        base_msg = super().__str__()
        if self.original_exception:
            orig_exc_type = type(self.original_exception).__name__
            orig_exc_msg = str(self.original_exception)
            return f"{base_msg} Original exception: [{orig_exc_type}] {orig_exc_msg}"
        return base_msg


class ConnectionError(SourceError):
    """Exception raised when the event source cannot be opened."""
    def __init__(self, message="Failed to connect event source.", original_exception: Exception | None = None):
        super().__init__(message, original_exception)


class ReadTimeoutError(SourceError):
    """
    Exception raised when a batch read does not complete within the
    cycle timeout.
    """
    def __init__(self, timeout_ms: Optional[int] = None, message: Optional[str] = None):
        if message is None:
            message = "Batch read timed out"
            if timeout_ms is not None:
                message += f" after {timeout_ms} ms"
            message += "."
        super().__init__(message)
        self.timeout_ms = timeout_ms


class DeviceError(SourceError):
    """
    Exception representing a fault reported by the reader device,
    optionally carrying the device status code.
    """
    def __init__(self, message="Device reported an error.", status_code: Optional[int] = None,
                 original_exception: Exception | None = None):
        if status_code is not None:
            message = f"{message} (status 0x{status_code:02X})"
        super().__init__(message, original_exception)
        self.status_code = status_code


# --- Subscription / Configuration Exceptions ---

class SubscriptionError(UhfPhaseError):
    """Exception raised when a background subscription cannot be established or torn down."""
    def __init__(self, message="Subscription error."):
        super().__init__(message)


class ConfigurationError(UhfPhaseError):
    """Exception raised for invalid or unreadable configuration."""
    def __init__(self, message="Invalid configuration.", path: Optional[str] = None):
        msg = message
        if path:
            msg = f"{message} (file: {path})"
        super().__init__(msg)
        self.path = path
