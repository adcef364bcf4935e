"""
Background Print Queue Worker

Runs continuously and processes the print queue at a fixed interval.
Alternative to Celery beat for single-box deployments.

Usage:
    python -m kitchen_print.worker

Behavior:
    - SIGINT / SIGTERM finish the current batch, then exit cleanly
    - After a batch that could not reach the printer, batches are paused
      for PRINT_UNREACHABLE_COOLDOWN_SECONDS so jobs do not burn their
      attempts against a printer that is switched off
    - Exits with status 1 after WORKER_MAX_CONSECUTIVE_ERRORS failed runs,
      so a process manager can restart it

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import logging
import signal
import sys
import time
from dataclasses import dataclass
from typing import Callable, Optional

from kitchen_print.core.config import get_settings, setup_logging
from kitchen_print.database import standalone_session_maker
from kitchen_print.services.print_queue import PrintQueueRepository
from kitchen_print.services.printer import get_printer_transport
from kitchen_print.services.processor import (
    PrintQueueProcessor,
    ProcessorConfig,
    ProcessResult,
)

logger = logging.getLogger(__name__)


@dataclass
class WorkerState:
    """Mutable loop state, kept explicit so it can be inspected and tested."""
    runs: int = 0
    consecutive_errors: int = 0
    cooldown_until: float = 0.0
    last_result: Optional[ProcessResult] = None


class PrintWorker:
    """
    Interval loop around PrintQueueProcessor.process_batch.

    Attributes:
        interval: Seconds between batches
        cooldown: Pause after an unreachable-printer batch, in seconds
        max_consecutive_errors: Failed runs tolerated before giving up
    """

    def __init__(
        self,
        processor: PrintQueueProcessor,
        config: ProcessorConfig,
        interval: float = 15.0,
        cooldown: float = 60.0,
        max_consecutive_errors: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.processor = processor
        self.config = config
        self.interval = interval
        self.cooldown = cooldown
        self.max_consecutive_errors = max_consecutive_errors
        self.clock = clock
        self.state = WorkerState()
        self._stop = asyncio.Event()

    @property
    def cooling_down(self) -> bool:
        return self.clock() < self.state.cooldown_until

    def stop(self) -> None:
        if not self._stop.is_set():
            logger.info("🛑 Shutdown requested, finishing current batch...")
        self._stop.set()

    async def run_once(self) -> Optional[ProcessResult]:
        """
        Run a single batch unless cooling down.

        Returns:
            The batch result, or ``None`` when skipped or failed
        """
        if self.cooling_down:
            remaining = self.state.cooldown_until - self.clock()
            logger.info(f"⏭️ Printer cooldown, skipping batch ({remaining:.0f}s left)")
            return None

        self.state.runs += 1
        try:
            result = await self.processor.process_batch(self.config)
        except Exception as e:
            self.state.consecutive_errors += 1
            logger.error(
                f"❌ Batch failed ({self.state.consecutive_errors}/"
                f"{self.max_consecutive_errors}): {e}"
            )
            return None

        self.state.consecutive_errors = 0
        self.state.last_result = result

        if result.printer_unreachable:
            self.state.cooldown_until = self.clock() + self.cooldown
            logger.warning(f"⚠️ Printer unreachable, pausing batches for {self.cooldown:.0f}s")
        elif result.processed:
            logger.info(
                f"✅ Processed {result.processed}: {result.succeeded} printed, {result.failed} failed"
            )
        return result

    async def run(self) -> int:
        """
        Loop until stopped.

        Returns:
            Process exit code
        """
        logger.info(f"🖨️ Print worker started (interval {self.interval}s)")

        while not self._stop.is_set():
            await self.run_once()

            if self.state.consecutive_errors >= self.max_consecutive_errors:
                logger.error("❌ Too many consecutive errors, exiting")
                return 1

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info("✅ Print worker stopped")
        return 0

    def install_signal_handlers(self) -> None:
        """Stop gracefully on SIGINT and SIGTERM."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except NotImplementedError:
                # Windows event loops
                signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(self.stop))


async def main() -> int:
    settings = get_settings()
    setup_logging()

    if not settings.printer_ip_address:
        logger.error("❌ PRINTER_IP_ADDRESS environment variable required")
        return 1

    async with standalone_session_maker() as session_maker:
        processor = PrintQueueProcessor(PrintQueueRepository(session_maker), get_printer_transport())
        worker = PrintWorker(
            processor,
            ProcessorConfig.from_settings(settings),
            interval=settings.print_process_interval_seconds,
            cooldown=settings.print_unreachable_cooldown_seconds,
            max_consecutive_errors=settings.worker_max_consecutive_errors,
        )
        worker.install_signal_handlers()
        return await worker.run()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
