"""
Print Queue Repository

Durable storage for print jobs in the ``print_queue`` table. Every
operation runs in its own short transaction so that a slow printer never
holds a database connection.

State changes are conditional updates (``WHERE status = ...``), which
makes them safe when several processors share one queue: only one of
them can win the ``pending -> in_progress`` claim.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional, Union

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kitchen_print.core.exceptions import InvalidJobStateError
from kitchen_print.models import PrintJob, PrintJobStatus, utcnow
from kitchen_print.schemas import ReceiptDocument

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (PrintJobStatus.PRINTED, PrintJobStatus.FAILED)


@dataclass
class QueueStats:
    """Per-status job counts."""
    pending: int = 0
    in_progress: int = 0
    printed: int = 0
    failed: int = 0
    recent_pending: list[PrintJob] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.pending + self.in_progress + self.printed + self.failed


class PrintQueueRepository:
    """
    Data access for print jobs.

    Attributes:
        session_maker: Factory for short-lived async sessions
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    # =========================================================================
    # PRODUCER SIDE
    # =========================================================================

    async def enqueue(
        self,
        order_id: str,
        document: Union[ReceiptDocument, dict[str, Any]],
    ) -> PrintJob:
        """Insert a new pending job carrying a pre-rendered receipt."""
        print_data = document.to_print_data() if isinstance(document, ReceiptDocument) else document
        job = PrintJob(
            order_id=order_id,
            print_data=print_data,
            status=PrintJobStatus.PENDING,
            attempts=0,
            created_at=utcnow(),
        )
        async with self.session_maker() as session:
            session.add(job)
            await session.commit()
            await session.refresh(job)

        logger.info(f"🧾 Print job {job.id} queued for order {order_id}")
        return job

    async def requeue(self, job_id: str) -> PrintJob:
        """
        Insert a fresh pending copy of a finished job.

        The original row is left untouched so the history of what was
        printed (or not) stays intact.

        Raises:
            LookupError: Job does not exist
            InvalidJobStateError: Job is still pending or in progress
        """
        original = await self.get(job_id)
        if original is None:
            raise LookupError(f"Print job {job_id} not found")
        if original.status not in TERMINAL_STATUSES:
            raise InvalidJobStateError(
                f"Print job {job_id} is {original.status.value}; only printed or failed jobs can be requeued"
            )

        job = await self.enqueue(original.order_id, original.print_data)
        logger.info(f"🔁 Print job {job_id} requeued as {job.id}")
        return job

    # =========================================================================
    # READS
    # =========================================================================

    async def get(self, job_id: str) -> Optional[PrintJob]:
        async with self.session_maker() as session:
            return await session.get(PrintJob, job_id)

    async def fetch_pending(self, limit: int) -> list[PrintJob]:
        """Oldest pending jobs first."""
        query = (
            select(PrintJob)
            .where(PrintJob.status == PrintJobStatus.PENDING)
            .order_by(PrintJob.created_at.asc(), PrintJob.id.asc())
            .limit(limit)
        )
        async with self.session_maker() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def stats(self, recent_limit: int = 10) -> QueueStats:
        """Counts per status plus the oldest pending jobs."""
        counts_query = select(PrintJob.status, func.count(PrintJob.id)).group_by(PrintJob.status)
        recent_query = (
            select(PrintJob)
            .where(PrintJob.status == PrintJobStatus.PENDING)
            .order_by(PrintJob.created_at.asc())
            .limit(recent_limit)
        )
        async with self.session_maker() as session:
            counts = dict((await session.execute(counts_query)).all())
            recent = list((await session.execute(recent_query)).scalars().all())

        return QueueStats(
            pending=counts.get(PrintJobStatus.PENDING, 0),
            in_progress=counts.get(PrintJobStatus.IN_PROGRESS, 0),
            printed=counts.get(PrintJobStatus.PRINTED, 0),
            failed=counts.get(PrintJobStatus.FAILED, 0),
            recent_pending=recent,
        )

    # =========================================================================
    # STATE TRANSITIONS
    # =========================================================================

    async def _transition(self, job_id: str, from_status: PrintJobStatus, **values: Any) -> bool:
        statement = (
            update(PrintJob)
            .where(PrintJob.id == job_id, PrintJob.status == from_status)
            .values(**values)
        )
        async with self.session_maker() as session:
            result = await session.execute(statement)
            await session.commit()
        return result.rowcount == 1

    async def claim(self, job_id: str, count_attempt: bool = True) -> Optional[int]:
        """
        Atomically move a job from pending to in_progress.

        Returns:
            The job's attempt count after the claim, or ``None`` when
            another processor got there first.
        """
        attempts = PrintJob.attempts + 1 if count_attempt else PrintJob.attempts
        statement = (
            update(PrintJob)
            .where(PrintJob.id == job_id, PrintJob.status == PrintJobStatus.PENDING)
            .values(status=PrintJobStatus.IN_PROGRESS, attempts=attempts, claimed_at=utcnow())
        )
        async with self.session_maker() as session:
            result = await session.execute(statement)
            if result.rowcount != 1:
                await session.rollback()
                logger.debug(f"Print job {job_id} already claimed elsewhere")
                return None
            claimed = await session.scalar(select(PrintJob.attempts).where(PrintJob.id == job_id))
            await session.commit()
        return claimed

    async def mark_printed(self, job_id: str) -> bool:
        return await self._transition(
            job_id,
            PrintJobStatus.IN_PROGRESS,
            status=PrintJobStatus.PRINTED,
            processed_at=utcnow(),
            claimed_at=None,
            error_message=None,
        )

    async def mark_failed(self, job_id: str, error_message: str) -> bool:
        return await self._transition(
            job_id,
            PrintJobStatus.IN_PROGRESS,
            status=PrintJobStatus.FAILED,
            processed_at=utcnow(),
            claimed_at=None,
            error_message=error_message,
        )

    async def release(self, job_id: str, error_message: Optional[str] = None) -> bool:
        """Hand a claimed job back to the queue for a later attempt."""
        values: dict[str, Any] = {"status": PrintJobStatus.PENDING, "claimed_at": None}
        if error_message is not None:
            values["error_message"] = error_message
        return await self._transition(job_id, PrintJobStatus.IN_PROGRESS, **values)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    async def release_stale_claims(self, older_than: timedelta) -> int:
        """Return jobs whose processor died mid-claim to pending."""
        cutoff = utcnow() - older_than
        statement = (
            update(PrintJob)
            .where(
                PrintJob.status == PrintJobStatus.IN_PROGRESS,
                PrintJob.claimed_at < cutoff,
            )
            .values(status=PrintJobStatus.PENDING, claimed_at=None)
        )
        async with self.session_maker() as session:
            result = await session.execute(statement)
            await session.commit()

        if result.rowcount:
            logger.warning(f"⚠️ Released {result.rowcount} stale print job claim(s)")
        return result.rowcount

    async def purge_finished(self, older_than: timedelta) -> int:
        """Delete printed and failed jobs processed before the cutoff."""
        cutoff = utcnow() - older_than
        statement = delete(PrintJob).where(
            PrintJob.status.in_(TERMINAL_STATUSES),
            PrintJob.processed_at < cutoff,
        )
        async with self.session_maker() as session:
            result = await session.execute(statement)
            await session.commit()

        logger.info(f"🧹 Purged {result.rowcount} finished print job(s) older than {older_than}")
        return result.rowcount
