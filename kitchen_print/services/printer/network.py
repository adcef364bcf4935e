"""
Network Printer Transport

Sends raw bytes to a thermal printer over TCP (port 9100) using asyncio
streams. Works with printers reachable over a VPN exactly as on the LAN.

Every operation:
    - opens its own connection (no pooling)
    - runs under a hard ``asyncio.wait_for`` deadline
    - aborts the socket on timeout or error, closes it cleanly otherwise

Failures are reported through PrintResult / QueryResult rather than
raised, so the caller decides what a failure costs.

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
import time
from typing import Sequence

from kitchen_print.core.exceptions import (
    ConnectionRefused,
    TransportError,
    TransportTimeout,
    WriteFailed,
)
from kitchen_print.services.printer.base import (
    BasePrinterTransport,
    PrintResult,
    QueryResult,
)

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class TcpPrinterTransport(BasePrinterTransport):
    """
    Raw TCP client for ESC/POS printers.

    Attributes:
        settle_delay: Seconds to wait after the last write before closing,
            giving the printer time to pull the payload off the socket
    """

    def __init__(self, settle_delay: float = 0.1):
        self.settle_delay = settle_delay
        logger.info(f"TcpPrinterTransport initialized (settle_delay={settle_delay}s)")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "tcp"

    # -------------------------------------------------------------------------
    # Connection helpers
    # -------------------------------------------------------------------------

    @staticmethod
    async def _open(host: str, port: int) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        logger.debug(f"Connecting to printer at {host}:{port}...")
        try:
            return await asyncio.open_connection(host, port)
        except ConnectionRefusedError as e:
            raise ConnectionRefused(f"Printer connection refused at {host}:{port}") from e
        except OSError as e:
            raise ConnectionRefused(f"Printer connection failed: {e}") from e

    @staticmethod
    async def _write(writer: asyncio.StreamWriter, data: bytes) -> None:
        try:
            writer.write(data)
            await writer.drain()
        except OSError as e:
            raise WriteFailed(f"Failed to send data to printer: {e}") from e

    @staticmethod
    async def _close(writer: asyncio.StreamWriter) -> None:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            # Printer dropped the connection first; the payload is already out
            logger.debug(f"Printer closed connection abruptly: {e}")

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def _send(self, data: bytes, host: str, port: int) -> None:
        _, writer = await self._open(host, port)
        try:
            await self._write(writer, data)
            if self.settle_delay:
                await asyncio.sleep(self.settle_delay)
        except BaseException:
            writer.transport.abort()
            raise
        await self._close(writer)

    async def send(self, data: bytes, host: str, port: int, timeout: float) -> PrintResult:
        """Write the payload under a hard deadline; see BasePrinterTransport."""
        start = time.perf_counter()
        try:
            await asyncio.wait_for(self._send(data, host, port), timeout=timeout)
        except asyncio.TimeoutError:
            error = TransportTimeout(f"Printer connection timeout ({int(timeout * 1000)}ms)")
            logger.error(f"✗ {error.message} at {host}:{port}")
            return PrintResult.from_error(error, _elapsed_ms(start))
        except TransportError as e:
            logger.error(f"✗ {e.message}")
            return PrintResult.from_error(e, _elapsed_ms(start))

        logger.info(f"✓ Sent {len(data)} bytes to printer at {host}:{port}")
        return PrintResult(
            success=True,
            message="Print job sent successfully",
            bytes_sent=len(data),
            response_time_ms=_elapsed_ms(start),
        )

    async def _query(
        self,
        commands: Sequence[bytes],
        host: str,
        port: int,
        response_size: int,
        command_delay: float,
        received: bytearray,
    ) -> None:
        reader, writer = await self._open(host, port)
        try:
            for index, command in enumerate(commands):
                if index and command_delay:
                    await asyncio.sleep(command_delay)
                await self._write(writer, command)

            while len(received) < response_size:
                chunk = await reader.read(response_size - len(received))
                if not chunk:
                    break  # Printer closed the connection
                received += chunk
        except BaseException:
            writer.transport.abort()
            raise
        await self._close(writer)

    async def query(
        self,
        commands: Sequence[bytes],
        host: str,
        port: int,
        timeout: float,
        response_size: int = 1,
        command_delay: float = 0.0,
    ) -> QueryResult:
        """Request/response exchange under a hard deadline; see BasePrinterTransport."""
        start = time.perf_counter()
        received = bytearray()
        try:
            await asyncio.wait_for(
                self._query(commands, host, port, response_size, command_delay, received),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"⚠ Printer query timed out after {int(timeout * 1000)}ms "
                f"({len(received)}/{response_size} bytes received)"
            )
            return QueryResult(
                success=False,
                data=bytes(received),
                message="Connection timeout",
                error_kind=TransportTimeout.kind,
                response_time_ms=_elapsed_ms(start),
            )
        except TransportError as e:
            logger.error(f"✗ Printer query failed: {e.message}")
            return QueryResult(
                success=False,
                data=bytes(received),
                message=e.message,
                error_kind=e.kind,
                response_time_ms=_elapsed_ms(start),
            )

        return QueryResult(
            success=True,
            data=bytes(received),
            message=f"Received {len(received)} byte(s)",
            response_time_ms=_elapsed_ms(start),
        )

    async def test_connection(self, host: str, port: int, timeout: float) -> PrintResult:
        """Connect-only probe."""
        start = time.perf_counter()

        async def probe() -> None:
            _, writer = await self._open(host, port)
            await self._close(writer)

        try:
            await asyncio.wait_for(probe(), timeout=timeout)
        except asyncio.TimeoutError:
            error = TransportTimeout(f"Printer not responding (timeout: {int(timeout * 1000)}ms)")
            return PrintResult.from_error(error, _elapsed_ms(start))
        except TransportError as e:
            return PrintResult.from_error(e, _elapsed_ms(start))

        return PrintResult(
            success=True,
            message=f"Printer is online at {host}:{port}",
            response_time_ms=_elapsed_ms(start),
        )
