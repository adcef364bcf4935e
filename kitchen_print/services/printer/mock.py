"""
Mock Printer Transport Implementation

Simulates a network thermal printer without opening sockets.
Used in development mode (ENV_MODE=development) and in tests to:
    - Run the full queue flow without a printer on the desk
    - Script transport failures (timeouts, refused connections)
    - Script status bytes for the status monitor

Behavior:
    - Records every payload that was "printed"
    - Optional random failures and latency, like a flaky kitchen network
    - Scripted failures are consumed before the random ones

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import random
import logging
from collections import deque
from typing import Optional, Sequence

from kitchen_print.core.exceptions import TransportError, TransportTimeout
from kitchen_print.services.printer.base import (
    BasePrinterTransport,
    PrintResult,
    QueryResult,
)

logger = logging.getLogger(__name__)


class MockPrinterTransport(BasePrinterTransport):
    """
    In-memory printer.

    Attributes:
        failure_rate: Probability of a simulated send timeout (0.0-1.0)
        min_latency: Minimum simulated latency in seconds
        max_latency: Maximum simulated latency in seconds
        status_response: Bytes answered to status queries
        sent: Payloads accepted so far, in order
        send_attempts: Number of send() calls, successful or not

    Example:
        >>> transport = MockPrinterTransport()
        >>> transport.fail_next(TransportTimeout("Printer connection timeout (5000ms)"))
        >>> result = await transport.send(b"...", "printer", 9100, 5.0)
        >>> result.success
        False
    """

    def __init__(
        self,
        failure_rate: float = 0.0,
        min_latency: float = 0.0,
        max_latency: float = 0.0,
        status_response: bytes = b"\x00\x00",
    ):
        self.failure_rate = failure_rate
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.status_response = status_response

        self.sent: list[bytes] = []
        self.send_attempts = 0
        self.queries: list[tuple[bytes, ...]] = []
        self._scripted_failures: deque[TransportError] = deque()
        self._offline: Optional[TransportError] = None
        self._query_error: Optional[TransportError] = None

        logger.info(
            f"MockPrinterTransport initialized "
            f"(failure_rate={failure_rate:.0%}, "
            f"latency={min_latency}-{max_latency}s)"
        )

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "mock"

    # -------------------------------------------------------------------------
    # Scripting
    # -------------------------------------------------------------------------

    def fail_next(self, *errors: TransportError) -> None:
        """Make the next ``len(errors)`` sends fail with these errors."""
        self._scripted_failures.extend(errors)

    def set_offline(self, error: Optional[TransportError]) -> None:
        """Fail every send and query with ``error`` (``None`` to recover)."""
        self._offline = error

    def fail_queries(self, error: Optional[TransportError]) -> None:
        """Fail status queries with ``error``; received bytes still apply."""
        self._query_error = error

    def sends_containing(self, marker: bytes) -> int:
        """Count printed payloads that contain ``marker``."""
        return sum(1 for payload in self.sent if marker in payload)

    # -------------------------------------------------------------------------
    # Transport interface
    # -------------------------------------------------------------------------

    async def _simulate_latency(self) -> None:
        latency = random.uniform(self.min_latency, self.max_latency)
        # Always yield, so concurrent callers interleave like real I/O
        await asyncio.sleep(latency)

    def _next_failure(self) -> Optional[TransportError]:
        if self._scripted_failures:
            return self._scripted_failures.popleft()
        if self._offline is not None:
            return self._offline
        if self.failure_rate and random.random() < self.failure_rate:
            return TransportTimeout("Printer connection timeout (simulated)")
        return None

    async def send(self, data: bytes, host: str, port: int, timeout: float) -> PrintResult:
        """Simulate a transmission."""
        self.send_attempts += 1
        await self._simulate_latency()

        failure = self._next_failure()
        if failure is not None:
            logger.warning(f"⚠️ Mock printer send failed: {failure.message}")
            return PrintResult.from_error(failure)

        self.sent.append(bytes(data))
        logger.info(f"✓ Mock printer accepted {len(data)} bytes")
        return PrintResult(
            success=True,
            message="Print job sent successfully",
            bytes_sent=len(data),
        )

    async def query(
        self,
        commands: Sequence[bytes],
        host: str,
        port: int,
        timeout: float,
        response_size: int = 1,
        command_delay: float = 0.0,
    ) -> QueryResult:
        """Answer with the configured status bytes."""
        self.queries.append(tuple(commands))
        await self._simulate_latency()

        if self._offline is not None:
            return QueryResult(
                success=False,
                message=self._offline.message,
                error_kind=self._offline.kind,
            )

        data = self.status_response[:response_size]
        if self._query_error is not None:
            return QueryResult(
                success=False,
                data=data,
                message=self._query_error.message,
                error_kind=self._query_error.kind,
            )
        return QueryResult(success=True, data=data, message=f"Received {len(data)} byte(s)")

    async def test_connection(self, host: str, port: int, timeout: float) -> PrintResult:
        """Mock printer is online unless set offline."""
        await self._simulate_latency()
        if self._offline is not None:
            return PrintResult.from_error(self._offline)
        return PrintResult(success=True, message=f"Printer is online at {host}:{port} (mock)")
