"""
Print Service Exceptions

Error taxonomy shared by the encoder, transport, status monitor and
queue processor.

    PrintServiceError
    ├── ConfigurationError      fatal for the invocation, never retried
    ├── EncodingError           bad receipt document, job fails immediately
    ├── TransportError          transient, counted against attempts
    │   ├── TransportTimeout
    │   ├── ConnectionRefused
    │   └── WriteFailed
    ├── PrinterNotReadyError    status check found the printer unusable
    ├── PartialStatusError      degraded status, best-effort fields only
    └── InvalidJobStateError    queue operation not valid for the job status

Author: Khalil Bannouri
Version: 1.0.0
"""

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from kitchen_print.services.status_monitor import PrinterStatus


class PrintServiceError(Exception):
    """Base class for all print service errors."""


class ConfigurationError(PrintServiceError):
    """Printer or processor configuration is missing or invalid."""


class EncodingError(PrintServiceError):
    """A receipt document cannot be turned into printer bytes."""


class TransportErrorKind(str, Enum):
    """Machine-readable transport failure categories."""
    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    WRITE_FAILED = "write_failed"


class TransportError(PrintServiceError):
    """
    Raw TCP communication with the printer failed.

    Attributes:
        kind: Failure category
    """

    kind: TransportErrorKind = TransportErrorKind.WRITE_FAILED

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransportTimeout(TransportError):
    kind = TransportErrorKind.TIMEOUT


class ConnectionRefused(TransportError):
    kind = TransportErrorKind.CONNECTION_REFUSED


class WriteFailed(TransportError):
    kind = TransportErrorKind.WRITE_FAILED


class PrinterNotReadyError(PrintServiceError):
    """The printer answered, but is offline, open, or out of paper."""

    def __init__(self, message: str, status: Optional["PrinterStatus"] = None):
        super().__init__(message)
        self.status = status


class PartialStatusError(PrintServiceError):
    """Only part of the status could be read (older firmware)."""

    def __init__(self, message: str, status: Optional["PrinterStatus"] = None):
        super().__init__(message)
        self.status = status


class InvalidJobStateError(PrintServiceError):
    """A queue operation does not apply to the job in its current status."""
