"""Domain-specific errors for idevctl."""

from __future__ import annotations


class IdevctlError(Exception):
    """Base error for idevctl."""


class ConfigValidationError(IdevctlError):
    """Raised when a configuration file does not conform to schema or semantics."""


class ConfigLoadError(IdevctlError):
    """Raised when reading configuration sources fails."""


class NotConnectedError(IdevctlError):
    """Raised when a client is used without an established connection."""


class TransportError(IdevctlError):
    """Base transport error. The connection must be discarded."""


class TransportConnectError(TransportError):
    """Raised when opening a connection or upgrading it to TLS fails."""


class TransportSendError(TransportError):
    """Raised when writing to the connection fails."""


class TransportReceiveError(TransportError):
    """Raised on read failures, including EOF before a full frame arrived."""


class TransportTimeoutError(TransportError):
    """Raised when the connection times out."""


class EncodingError(IdevctlError):
    """Raised when a value cannot be serialized or a body cannot be decoded."""


class ProtocolViolationError(IdevctlError):
    """Raised when a well-formed reply lacks a field or has the wrong shape."""


class ServiceFailureError(IdevctlError):
    """Raised when the device explicitly reports that an operation failed."""


class DeviceError(ServiceFailureError):
    """Raised for replies carrying a lockdown-style ``Error`` field."""

    def __init__(self, code: str, description: str | None = None) -> None:
        self.code = code
        self.description = description
        message = f"{code}: {description}" if description else code
        super().__init__(message)


class PendingError(DeviceError):
    """Raised while the device is still waiting for the user to trust the host."""


class InstallationFailedError(ServiceFailureError):
    """Raised when a long-running operation reports ``ErrorDescription``."""


class ProfileOperationError(ServiceFailureError):
    """Raised when a profile request returns an unsuccessful ``Status``."""

    def __init__(self, status: int) -> None:
        self.status = status
        super().__init__(f"Profile operation failed with status {status}")


class OperationFinishedError(IdevctlError):
    """Raised when a finished operation is fed another message."""
