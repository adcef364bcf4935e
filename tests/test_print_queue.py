"""Tests for the print queue repository."""

from datetime import timedelta

import pytest
from sqlalchemy import update

from kitchen_print.core.exceptions import InvalidJobStateError
from kitchen_print.models import PrintJob, PrintJobStatus, utcnow
from tests.conftest import make_document


async def force(session_maker, job_id: str, **values) -> None:
    """Set columns directly, bypassing the repository state checks."""
    async with session_maker() as session:
        await session.execute(update(PrintJob).where(PrintJob.id == job_id).values(**values))
        await session.commit()


class TestEnqueue:
    async def test_new_job_is_pending(self, repository, document):
        job = await repository.enqueue("order-1", document)
        stored = await repository.get(job.id)

        assert stored.status == PrintJobStatus.PENDING
        assert stored.attempts == 0
        assert stored.order_id == "order-1"
        assert stored.print_data["orderNumber"] == "JE-0001"
        assert stored.created_at is not None

    async def test_fetch_pending_oldest_first(self, repository):
        ids = [(await repository.enqueue(f"o{i}", make_document(f"JE-{i}"))).id for i in range(5)]

        pending = await repository.fetch_pending(limit=3)

        assert [job.id for job in pending] == ids[:3]

    async def test_get_missing(self, repository):
        assert await repository.get("does-not-exist") is None


class TestClaim:
    async def test_claim_is_exclusive(self, repository, document):
        job = await repository.enqueue("order-1", document)

        assert await repository.claim(job.id) == 1
        assert await repository.claim(job.id) is None

        stored = await repository.get(job.id)
        assert stored.status == PrintJobStatus.IN_PROGRESS
        assert stored.claimed_at is not None

    async def test_claim_without_counting(self, repository, document):
        job = await repository.enqueue("order-1", document)

        assert await repository.claim(job.id, count_attempt=False) == 0

    async def test_transitions_require_claim(self, repository, document):
        job = await repository.enqueue("order-1", document)

        assert not await repository.mark_printed(job.id)
        assert not await repository.mark_failed(job.id, "nope")
        assert (await repository.get(job.id)).status == PrintJobStatus.PENDING

    async def test_mark_printed_clears_error(self, repository, document):
        job = await repository.enqueue("order-1", document)
        await repository.claim(job.id)
        await repository.release(job.id, "Printer connection timeout (5000ms)")
        await repository.claim(job.id)

        assert await repository.mark_printed(job.id)

        stored = await repository.get(job.id)
        assert stored.status == PrintJobStatus.PRINTED
        assert stored.attempts == 2
        assert stored.error_message is None
        assert stored.processed_at is not None

    async def test_printed_job_cannot_be_claimed_again(self, repository, document):
        job = await repository.enqueue("order-1", document)
        await repository.claim(job.id)
        await repository.mark_printed(job.id)

        assert await repository.claim(job.id) is None
        assert not await repository.release(job.id)

    async def test_release_stale_claims(self, repository, session_maker, document):
        stale = await repository.enqueue("order-1", document)
        fresh = await repository.enqueue("order-2", document)
        await repository.claim(stale.id)
        await repository.claim(fresh.id)
        await force(session_maker, stale.id, claimed_at=utcnow() - timedelta(minutes=10))

        assert await repository.release_stale_claims(timedelta(seconds=120)) == 1
        assert (await repository.get(stale.id)).status == PrintJobStatus.PENDING
        assert (await repository.get(fresh.id)).status == PrintJobStatus.IN_PROGRESS


class TestRequeue:
    async def test_inserts_new_row(self, repository, document):
        job = await repository.enqueue("order-1", document)
        await repository.claim(job.id)
        await repository.mark_failed(job.id, "Printer connection timeout (5000ms)")

        copy = await repository.requeue(job.id)

        assert copy.id != job.id
        assert copy.status == PrintJobStatus.PENDING
        assert copy.attempts == 0
        assert copy.print_data == job.print_data
        original = await repository.get(job.id)
        assert original.status == PrintJobStatus.FAILED
        assert original.error_message == "Printer connection timeout (5000ms)"

    async def test_pending_job_rejected(self, repository, document):
        job = await repository.enqueue("order-1", document)

        with pytest.raises(InvalidJobStateError):
            await repository.requeue(job.id)

    async def test_missing_job(self, repository):
        with pytest.raises(LookupError):
            await repository.requeue("does-not-exist")


class TestMaintenance:
    async def test_stats(self, repository, document):
        printed = await repository.enqueue("a", document)
        await repository.claim(printed.id)
        await repository.mark_printed(printed.id)
        await repository.enqueue("b", document)
        await repository.enqueue("c", document)

        stats = await repository.stats()

        assert (stats.pending, stats.in_progress, stats.printed, stats.failed) == (2, 0, 1, 0)
        assert stats.total == 3
        assert [job.order_id for job in stats.recent_pending] == ["b", "c"]

    async def test_purge_only_old_finished_jobs(self, repository, session_maker, document):
        old_printed = await repository.enqueue("a", document)
        old_failed = await repository.enqueue("b", document)
        new_printed = await repository.enqueue("c", document)
        pending = await repository.enqueue("d", document)
        for job in (old_printed, old_failed, new_printed):
            await repository.claim(job.id)
        await repository.mark_printed(old_printed.id)
        await repository.mark_failed(old_failed.id, "boom")
        await repository.mark_printed(new_printed.id)
        long_ago = utcnow() - timedelta(days=30)
        await force(session_maker, old_printed.id, processed_at=long_ago)
        await force(session_maker, old_failed.id, processed_at=long_ago)
        await force(session_maker, pending.id, created_at=long_ago)

        deleted = await repository.purge_finished(timedelta(days=7))

        assert deleted == 2
        assert await repository.get(old_printed.id) is None
        assert await repository.get(new_printed.id) is not None
        assert (await repository.get(pending.id)).status == PrintJobStatus.PENDING
