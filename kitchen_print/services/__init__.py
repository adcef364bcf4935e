"""
                        Services Module

Contains the receipt printing pipeline, leaf-first:

Services:
    - receipt_formatter: Order record → ReceiptDocument
    - escpos: ReceiptDocument → ESC/POS bytes
    - printer: Raw TCP transport (Mock in development, TCP otherwise)
    - status_monitor: DLE EOT printer/paper status queries
    - print_queue: Durable print_queue table access
    - processor: Claim, send, and retry queued jobs
"""

from kitchen_print.services.escpos import EscPosEncoder
from kitchen_print.services.print_queue import PrintQueueRepository
from kitchen_print.services.processor import (
    PrintQueueProcessor,
    ProcessorConfig,
    ProcessResult,
)
from kitchen_print.services.receipt_formatter import format_receipt
from kitchen_print.services.status_monitor import PrinterStatus, PrinterStatusMonitor

__all__ = [
    "EscPosEncoder",
    "PrintQueueRepository",
    "PrintQueueProcessor",
    "ProcessorConfig",
    "ProcessResult",
    "format_receipt",
    "PrinterStatus",
    "PrinterStatusMonitor",
]
