"""
Print Queue Processor

Drains the print queue in small batches:

    1. release claims left behind by crashed processors
    2. optionally ask the printer whether it can print at all
    3. for each pending job, oldest first:
         encode  ->  claim  ->  send  ->  printed | pending (retry) | failed

Delivery is at-least-once: a job whose bytes reached the printer but whose
``printed`` update was lost will be sent again after its claim goes stale.
Each job is sent at most ``max_attempts`` times.

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from typing import Optional

from pydantic import ValidationError

from kitchen_print.core.config import Settings, get_settings
from kitchen_print.core.exceptions import (
    ConfigurationError,
    EncodingError,
    PartialStatusError,
    PrinterNotReadyError,
    TransportErrorKind,
)
from kitchen_print.models import PrintJob
from kitchen_print.schemas import ReceiptDocument
from kitchen_print.services.escpos import EscPosEncoder
from kitchen_print.services.print_queue import PrintQueueRepository
from kitchen_print.services.printer.base import BasePrinterTransport
from kitchen_print.services.status_monitor import PrinterStatusMonitor

logger = logging.getLogger(__name__)

RETRY_BUDGET_EXHAUSTED = "Retry budget exhausted"
UNREACHABLE_KINDS = (TransportErrorKind.TIMEOUT, TransportErrorKind.CONNECTION_REFUSED)


# =============================================================================
# CONFIGURATION & RESULT
# =============================================================================

@dataclass
class PrinterConfig:
    host: Optional[str]
    port: int = 9100
    timeout_ms: int = 5000

    @property
    def timeout(self) -> float:
        return self.timeout_ms / 1000


@dataclass
class ProcessorConfig:
    """
    Per-invocation processor settings.

    Attributes:
        printer: Where to send receipts
        max_attempts: Sends allowed per job before it is marked failed
        batch_size: Pending jobs fetched per invocation
        job_delay_ms: Pause between jobs so the printer can keep up
        claim_timeout_seconds: Age after which an in_progress claim is stale
        preflight_status_check: Query printer status before the batch
    """
    printer: PrinterConfig
    max_attempts: int = 3
    batch_size: int = 10
    job_delay_ms: int = 500
    claim_timeout_seconds: int = 120
    preflight_status_check: bool = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ProcessorConfig":
        settings = settings or get_settings()
        return cls(
            printer=PrinterConfig(
                host=settings.printer_ip_address,
                port=settings.printer_port,
                timeout_ms=settings.printer_timeout_ms,
            ),
            max_attempts=settings.print_max_attempts,
            batch_size=settings.print_batch_size,
            job_delay_ms=settings.print_job_delay_ms,
            claim_timeout_seconds=settings.print_claim_timeout_seconds,
            preflight_status_check=settings.print_preflight_status_check,
        )


@dataclass
class ProcessResult:
    """
    Outcome of one batch.

    ``processed`` counts jobs this invocation claimed; jobs another
    processor claimed first are ``skipped``.
    """
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    printer_unreachable: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data.pop("printer_unreachable")
        return data


# =============================================================================
# PROCESSOR
# =============================================================================

class PrintQueueProcessor:
    """
    Claims, encodes, and transmits queued receipts.

    Example:
        >>> processor = PrintQueueProcessor(repository, get_printer_transport())
        >>> result = await processor.process_batch(ProcessorConfig.from_settings())
        >>> result.succeeded
        3
    """

    def __init__(
        self,
        repository: PrintQueueRepository,
        transport: BasePrinterTransport,
        encoder: Optional[EscPosEncoder] = None,
        monitor: Optional[PrinterStatusMonitor] = None,
    ):
        self.repository = repository
        self.transport = transport
        self.encoder = encoder or EscPosEncoder.from_settings()
        self.monitor = monitor or PrinterStatusMonitor.from_settings(transport)

    async def process_batch(self, config: ProcessorConfig) -> ProcessResult:
        """
        Process up to ``config.batch_size`` pending jobs.

        Per-job failures are recorded in the result and never stop the
        batch.

        Raises:
            ConfigurationError: No printer host configured
        """
        if not config.printer.host:
            raise ConfigurationError("Printer IP address not configured (PRINTER_IP_ADDRESS)")

        result = ProcessResult()

        await self.repository.release_stale_claims(timedelta(seconds=config.claim_timeout_seconds))

        if config.preflight_status_check and not await self._preflight(config, result):
            return result

        jobs = await self.repository.fetch_pending(config.batch_size)
        if not jobs:
            logger.debug("Print queue empty")
            return result

        logger.info(f"🖨️ Processing {len(jobs)} print job(s) → {config.printer.host}:{config.printer.port}")

        for index, job in enumerate(jobs):
            if index and config.job_delay_ms:
                await asyncio.sleep(config.job_delay_ms / 1000)
            try:
                await self._process_job(job, config, result)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"✗ Unexpected error on print job {job.id}: {e}")
                await self._fail_after_error(job, e, result)

        logger.info(
            f"📋 Batch done: {result.succeeded} printed, {result.failed} failed, "
            f"{result.skipped} skipped ({result.processed} claimed)"
        )
        return result

    async def _preflight(self, config: ProcessorConfig, result: ProcessResult) -> bool:
        status = await self.monitor.check_status(config.printer.host, config.printer.port)
        try:
            status.raise_for_status()
        except PartialStatusError as e:
            logger.warning(f"⚠️ Printer status incomplete, printing anyway: {e}")
        except PrinterNotReadyError as e:
            logger.warning(f"⚠️ Printer not ready, batch skipped: {e}")
            result.errors.append(f"Printer not ready: {e}")
            result.printer_unreachable = not status.connected
            return False
        return True

    async def _fail_without_sending(self, job: PrintJob, message: str, result: ProcessResult) -> None:
        if await self.repository.claim(job.id, count_attempt=False) is None:
            result.skipped += 1
            return
        await self.repository.mark_failed(job.id, message)
        result.processed += 1
        result.failed += 1
        result.errors.append(f"Job {job.id}: {message}")
        logger.error(f"✗ Print job {job.id} failed: {message}")

    async def _fail_after_error(self, job: PrintJob, error: Exception, result: ProcessResult) -> None:
        """A job still pending after an unexpected error is failed so it cannot block the queue."""
        message = f"Unexpected error: {error}"
        result.errors.append(f"Job {job.id}: {message}")
        try:
            if await self.repository.claim(job.id, count_attempt=False) is None:
                return
            await self.repository.mark_failed(job.id, message)
        except Exception as e:
            logger.error(f"✗ Could not mark print job {job.id} failed: {e}")
            return
        result.processed += 1
        result.failed += 1

    async def _process_job(self, job: PrintJob, config: ProcessorConfig, result: ProcessResult) -> None:
        try:
            document = ReceiptDocument.model_validate(job.print_data)
            payload = self.encoder.encode(document)
        except (ValidationError, EncodingError) as e:
            await self._fail_without_sending(job, f"Invalid print data: {e}", result)
            return

        if job.attempts >= config.max_attempts:
            await self._fail_without_sending(job, RETRY_BUDGET_EXHAUSTED, result)
            return

        attempts = await self.repository.claim(job.id)
        if attempts is None:
            result.skipped += 1
            return
        result.processed += 1

        if attempts > config.max_attempts:
            # Another processor spent the budget after this job was fetched
            await self.repository.mark_failed(job.id, RETRY_BUDGET_EXHAUSTED)
            result.failed += 1
            result.errors.append(f"Job {job.id}: {RETRY_BUDGET_EXHAUSTED}")
            logger.error(f"✗ Print job {job.id} failed: {RETRY_BUDGET_EXHAUSTED}")
            return

        try:
            sent = await self.transport.send(
                payload, config.printer.host, config.printer.port, config.printer.timeout
            )
        except asyncio.CancelledError:
            await self.repository.release(job.id)
            logger.warning(f"⚠️ Print job {job.id} released after cancellation")
            raise

        if sent.success:
            await self.repository.mark_printed(job.id)
            result.succeeded += 1
            logger.info(f"✓ Print job {job.id} printed (order {job.order_id}, {sent.bytes_sent} bytes)")
            return

        if sent.error_kind in UNREACHABLE_KINDS:
            result.printer_unreachable = True

        if attempts >= config.max_attempts:
            await self.repository.mark_failed(job.id, sent.message)
            result.failed += 1
            result.errors.append(f"Job {job.id}: {sent.message}")
            logger.error(f"✗ Print job {job.id} failed after {attempts} attempt(s): {sent.message}")
        else:
            await self.repository.release(job.id, sent.message)
            result.errors.append(
                f"Job {job.id}: {sent.message} (attempt {attempts}/{config.max_attempts}, will retry)"
            )
            logger.warning(f"⚠ Print job {job.id} attempt {attempts}/{config.max_attempts} failed: {sent.message}")
