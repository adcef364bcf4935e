"""
Printer Transport Factory

Provides a single entry point for obtaining a printer transport instance.
The factory pattern keeps the queue processor and the status monitor
agnostic about which implementation is being used.

Usage:
    from kitchen_print.services.printer import get_printer_transport

    # Returns MockPrinterTransport or TcpPrinterTransport based on ENV_MODE
    transport = get_printer_transport()

    result = await transport.send(payload, "192.168.1.100", 9100, timeout=5.0)

Environment Switching:
    - ENV_MODE=development → MockPrinterTransport (no sockets)
    - ENV_MODE=staging → TcpPrinterTransport (bench printer)
    - ENV_MODE=production → TcpPrinterTransport (kitchen printer)

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from functools import lru_cache

from kitchen_print.core.config import get_settings
from kitchen_print.services.printer.base import (
    BasePrinterTransport,
    PrintResult,
    QueryResult,
)
from kitchen_print.services.printer.mock import MockPrinterTransport
from kitchen_print.services.printer.network import TcpPrinterTransport

logger = logging.getLogger(__name__)


@lru_cache()
def get_printer_transport() -> BasePrinterTransport:
    """
    Get the configured printer transport instance.

    The instance is cached (singleton pattern); transports hold no
    connection state between calls, so sharing one is safe.

    Returns:
        BasePrinterTransport: Configured transport instance
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Printer Transport: Using MockPrinterTransport (development mode)")
        return MockPrinterTransport(
            failure_rate=0.05,  # 5% simulated timeouts
            min_latency=0.05,
            max_latency=0.3,
        )
    else:
        logger.info(
            f"Printer Transport: Using TcpPrinterTransport "
            f"({settings.env_mode.value} mode)"
        )
        return TcpPrinterTransport()


def reset_printer_transport() -> None:
    """
    Clear the cached transport instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_printer_transport.cache_clear()
    logger.debug("Printer transport cache cleared")


__all__ = [
    "get_printer_transport",
    "reset_printer_transport",
    "BasePrinterTransport",
    "PrintResult",
    "QueryResult",
    "MockPrinterTransport",
    "TcpPrinterTransport",
]
