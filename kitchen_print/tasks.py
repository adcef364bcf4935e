"""
Celery Tasks
Background tasks that drain and maintain the print queue.

Each task runs its coroutine on a fresh event loop with a private,
unpooled database engine.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Optional

from kitchen_print.celery_worker import celery_app
from kitchen_print.core.config import get_settings
from kitchen_print.core.exceptions import ConfigurationError
from kitchen_print.database import standalone_session_maker
from kitchen_print.services.print_queue import PrintQueueRepository
from kitchen_print.services.printer import get_printer_transport
from kitchen_print.services.processor import PrintQueueProcessor, ProcessorConfig

logger = logging.getLogger(__name__)


async def _process_print_queue() -> dict:
    async with standalone_session_maker() as session_maker:
        processor = PrintQueueProcessor(PrintQueueRepository(session_maker), get_printer_transport())
        result = await processor.process_batch(ProcessorConfig.from_settings())
    return result.to_dict()


async def _purge_old_print_jobs(retention_days: int) -> int:
    async with standalone_session_maker() as session_maker:
        return await PrintQueueRepository(session_maker).purge_finished(timedelta(days=retention_days))


@celery_app.task(bind=True)
def process_print_queue(self) -> dict:
    """
    Process one batch of pending print jobs.

    Not auto-retried: the next beat tick is the retry, and per-job
    attempts are already bounded by the processor.

    Returns:
        dict: Batch result
    """
    task_id = self.request.id
    start_time = time.time()

    try:
        result = asyncio.run(_process_print_queue())
    except ConfigurationError as e:
        logger.error(f"❌ Task {task_id}: printer not configured - {e}")
        return {
            'success': False,
            'error': 'Printer not configured',
            'message': str(e),
        }

    elapsed = round(time.time() - start_time, 3)
    result['task_id'] = task_id
    result['processing_time_seconds'] = elapsed

    if result['processed']:
        logger.info(
            f"✅ Task {task_id}: {result['succeeded']}/{result['processed']} printed in {elapsed}s"
        )
    return result


@celery_app.task
def purge_old_print_jobs(retention_days: Optional[int] = None) -> dict:
    """
    Delete printed and failed jobs older than the retention window.
    Pending and in-progress jobs are never touched.
    """
    days = retention_days or get_settings().print_job_retention_days
    deleted = asyncio.run(_purge_old_print_jobs(days))
    return {
        'success': True,
        'deleted': deleted,
        'retention_days': days,
        'timestamp': datetime.now().isoformat()
    }


@celery_app.task
def health_check() -> dict:
    """
    Simple health check task to verify Celery is working.
    """
    return {
        'status': 'healthy',
        'worker': 'celery',
        'timestamp': datetime.now().isoformat()
    }
