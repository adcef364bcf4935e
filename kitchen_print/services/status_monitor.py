"""
Printer Status Monitor

Asks the printer for its real-time status without using a queue slot.

Protocol (one connection, semi-duplex):
    1. write DLE EOT 1  (transmit printer status)
    2. wait a short fixed delay; some firmware drops a second command
       that arrives while the first is being answered
    3. write DLE EOT 4  (transmit paper roll sensor status)
    4. read up to two single-byte answers: status byte, then paper byte

Bit meanings:
    status byte  0x08  off-line
                 0x20  cover open
    paper byte   0x60  paper end (roll sensor)
                 0x0C  paper near end

Older firmware may never answer the second query. That is reported as a
partial status rather than a failure.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from kitchen_print.core.config import Settings, get_settings
from kitchen_print.core.exceptions import PartialStatusError, PrinterNotReadyError
from kitchen_print.services.escpos import TRANSMIT_PAPER_STATUS, TRANSMIT_PRINTER_STATUS
from kitchen_print.services.printer.base import BasePrinterTransport

logger = logging.getLogger(__name__)

STATUS_OFFLINE = 0x08
STATUS_COVER_OPEN = 0x20
PAPER_END = 0x60
PAPER_NEAR_END = 0x0C

PAPER_STATUS_UNAVAILABLE = "Paper status not available"
CONNECTION_TIMEOUT = "Connection timeout"
NO_RESPONSE = "No response from printer"


@dataclass
class PrinterStatus:
    """
    Decoded printer health. ``None`` means "not reported", not "false".

    A ``printed`` job only proves the bytes left the socket; this is the
    separate signal that says whether paper actually came out.
    """
    connected: bool
    online: Optional[bool] = None
    cover_closed: Optional[bool] = None
    paper_present: Optional[bool] = None
    paper_near_end: Optional[bool] = None
    raw_status_byte: Optional[int] = None
    raw_paper_byte: Optional[int] = None
    error: Optional[str] = None

    @property
    def ready(self) -> bool:
        return (
            self.connected
            and self.online is not False
            and self.cover_closed is not False
            and self.paper_present is not False
        )

    @property
    def partial(self) -> bool:
        """Status byte answered, paper byte missing."""
        return self.connected and self.raw_status_byte is not None and self.raw_paper_byte is None

    def problems(self) -> list[str]:
        """Human-readable reasons the printer is not ready."""
        if not self.connected:
            return [f"Printer not reachable: {self.error or 'unknown error'}"]
        issues = []
        if self.online is False:
            issues.append("Printer is offline")
        if self.cover_closed is False:
            issues.append("Printer cover is open")
        if self.paper_present is False:
            issues.append("No paper loaded")
        return issues

    def raise_for_status(self) -> None:
        """
        Raises:
            PrinterNotReadyError: Unreachable, offline, cover open, or no paper
            PartialStatusError: Ready as far as known, paper byte missing
        """
        if not self.ready:
            raise PrinterNotReadyError("; ".join(self.problems()), self)
        if self.partial:
            raise PartialStatusError(self.error or PAPER_STATUS_UNAVAILABLE, self)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["ready"] = self.ready
        return data


# =============================================================================
# BITMASK DECODING
# =============================================================================

def decode_printer_byte(status_byte: int) -> tuple[bool, bool]:
    """Return ``(online, cover_closed)`` for a DLE EOT 1 answer."""
    return not (status_byte & STATUS_OFFLINE), not (status_byte & STATUS_COVER_OPEN)


def decode_paper_byte(paper_byte: int) -> tuple[bool, bool]:
    """Return ``(paper_present, paper_near_end)`` for a DLE EOT 4 answer."""
    return not (paper_byte & PAPER_END), (paper_byte & PAPER_NEAR_END) != 0


def decode_status(status_byte: int, paper_byte: Optional[int] = None) -> PrinterStatus:
    """
    Build a PrinterStatus from raw answer bytes.

    Examples:
        >>> decode_status(0x00, 0x00).ready
        True
        >>> decode_status(0x28, 0x00).online
        False
    """
    online, cover_closed = decode_printer_byte(status_byte)
    status = PrinterStatus(
        connected=True,
        online=online,
        cover_closed=cover_closed,
        raw_status_byte=status_byte,
    )
    if paper_byte is None:
        status.error = PAPER_STATUS_UNAVAILABLE
        return status

    status.paper_present, status.paper_near_end = decode_paper_byte(paper_byte)
    status.raw_paper_byte = paper_byte
    return status


# =============================================================================
# MONITOR
# =============================================================================

class PrinterStatusMonitor:
    """
    Runs the two-query status exchange over a printer transport.

    Attributes:
        transport: Printer transport (mock or TCP)
        timeout: Hard limit for the whole exchange in seconds
        command_delay: Pause between the two queries in seconds
    """

    def __init__(
        self,
        transport: BasePrinterTransport,
        timeout: float = 3.0,
        command_delay: float = 0.05,
    ):
        self.transport = transport
        self.timeout = timeout
        self.command_delay = command_delay

    @classmethod
    def from_settings(
        cls,
        transport: BasePrinterTransport,
        settings: Optional[Settings] = None,
    ) -> "PrinterStatusMonitor":
        settings = settings or get_settings()
        return cls(
            transport,
            timeout=settings.printer_status_timeout_ms / 1000,
            command_delay=settings.status_command_delay_ms / 1000,
        )

    async def check_status(self, host: str, port: int = 9100) -> PrinterStatus:
        """
        Query printer and paper status on a single connection.

        Never raises for network problems: an unreachable printer comes
        back as ``connected=False`` with the reason in ``error``.
        """
        result = await self.transport.query(
            [TRANSMIT_PRINTER_STATUS, TRANSMIT_PAPER_STATUS],
            host,
            port,
            timeout=self.timeout,
            response_size=2,
            command_delay=self.command_delay,
        )

        if not result.data:
            if result.timed_out:
                error = CONNECTION_TIMEOUT
            elif result.success:
                error = NO_RESPONSE
            else:
                error = result.message
            logger.warning(f"⚠️ Printer status unavailable at {host}:{port}: {error}")
            return PrinterStatus(connected=False, error=error)

        status_byte = result.data[0]
        paper_byte = result.data[1] if len(result.data) > 1 else None
        status = decode_status(status_byte, paper_byte)

        logger.info(
            f"📊 Printer status 0x{status_byte:02x}"
            + (f" / paper 0x{paper_byte:02x}" if paper_byte is not None else " / paper n/a")
            + f" → {'ready' if status.ready else 'NOT READY'}"
        )
        return status
