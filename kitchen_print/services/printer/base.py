"""
Printer Transport Abstract Base Class

Defines the interface contract for all printer transport implementations.
Both MockPrinterTransport and TcpPrinterTransport implement these methods,
so the queue processor and the status monitor behave identically
regardless of which transport is active.

Design Pattern: Strategy Pattern
    - Development runs against the mock, production against the printer
    - Tests script failures and status bytes through the mock

A successful ``send`` only means the bytes were accepted by the socket.
Raw port 9100 has no acknowledgement, so paper-out or a jam is only
visible through the status monitor.

Author: Khalil Bannouri
Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from kitchen_print.core.exceptions import TransportError, TransportErrorKind


@dataclass
class PrintResult:
    """
    Standardized result of a send or a connectivity probe.

    Attributes:
        success: Whether the bytes were handed to the printer
        message: Human-readable outcome
        bytes_sent: Payload size written
        error_kind: Failure category if unsuccessful
        response_time_ms: Wall-clock time of the operation
    """
    success: bool
    message: str
    bytes_sent: int = 0
    error_kind: Optional[TransportErrorKind] = None
    response_time_ms: float = 0.0

    @classmethod
    def from_error(cls, error: TransportError, response_time_ms: float = 0.0) -> "PrintResult":
        return cls(
            success=False,
            message=error.message,
            error_kind=error.kind,
            response_time_ms=response_time_ms,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "message": self.message,
            "bytes_sent": self.bytes_sent,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "response_time_ms": self.response_time_ms,
        }


@dataclass
class QueryResult:
    """
    Result of a request/response exchange.

    ``data`` holds whatever arrived, even when the exchange failed part
    way (a timeout after the first status byte still returns that byte).
    """
    success: bool
    data: bytes = b""
    message: str = ""
    error_kind: Optional[TransportErrorKind] = None
    response_time_ms: float = 0.0

    @property
    def timed_out(self) -> bool:
        return self.error_kind == TransportErrorKind.TIMEOUT


class BasePrinterTransport(ABC):
    """
    Abstract base class for printer transports.

    Every operation opens its own connection and closes it before
    returning; thermal printers serialize one job per connection.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """
        Return the name of the transport.

        Returns:
            str: Provider name (e.g., "mock", "tcp")
        """
        pass

    @abstractmethod
    async def send(self, data: bytes, host: str, port: int, timeout: float) -> PrintResult:
        """
        Write a full payload to the printer and close.

        Args:
            data: Raw ESC/POS bytes
            host: Printer host
            port: Printer port (usually 9100)
            timeout: Hard wall-clock limit in seconds

        Returns:
            PrintResult: Never raises for network failures
        """
        pass

    @abstractmethod
    async def query(
        self,
        commands: Sequence[bytes],
        host: str,
        port: int,
        timeout: float,
        response_size: int = 1,
        command_delay: float = 0.0,
    ) -> QueryResult:
        """
        Write commands on one connection and read the answer.

        Commands are written in order with ``command_delay`` seconds
        between them, then up to ``response_size`` bytes are read until
        the printer closes the connection or the timeout expires.

        Returns:
            QueryResult: Bytes received; never raises for network failures
        """
        pass

    @abstractmethod
    async def test_connection(self, host: str, port: int, timeout: float) -> PrintResult:
        """Open and close a connection without writing anything."""
        pass

    async def health_check(self) -> bool:
        """Transport-level sanity check used by /health."""
        return True
