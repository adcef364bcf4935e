"""Tests for the print queue processor."""

import asyncio
from dataclasses import replace
from datetime import timedelta

import pytest

from kitchen_print.core.exceptions import ConfigurationError, ConnectionRefused, TransportTimeout
from kitchen_print.models import PrintJobStatus, utcnow
from kitchen_print.services.escpos import EscPosEncoder
from kitchen_print.services.printer import MockPrinterTransport
from kitchen_print.services.processor import (
    PrinterConfig,
    PrintQueueProcessor,
    ProcessResult,
)
from kitchen_print.services.status_monitor import PrinterStatusMonitor
from tests.conftest import make_document
from tests.test_print_queue import force

TIMEOUT = TransportTimeout("Printer connection timeout (5000ms)")


def make_processor(repository, transport) -> PrintQueueProcessor:
    return PrintQueueProcessor(
        repository,
        transport,
        encoder=EscPosEncoder(restaurant_name="JOLLOF EXPRESS"),
        monitor=PrinterStatusMonitor(transport, timeout=1.0, command_delay=0.0),
    )


@pytest.fixture
def processor(repository, transport) -> PrintQueueProcessor:
    return make_processor(repository, transport)


class TestProcessBatch:
    async def test_prints_pending_jobs_in_order(self, processor, repository, transport, config):
        jobs = [await repository.enqueue(f"o{i}", make_document(f"JE-{i}")) for i in range(3)]

        result = await processor.process_batch(config)

        assert (result.processed, result.succeeded, result.failed, result.skipped) == (3, 3, 0, 0)
        assert result.errors == []
        assert [b"ORDER #JE-%d" % i in payload for i, payload in enumerate(transport.sent)] == [True] * 3
        for job in jobs:
            stored = await repository.get(job.id)
            assert stored.status == PrintJobStatus.PRINTED
            assert stored.attempts == 1
            assert stored.processed_at is not None

    async def test_empty_queue(self, processor, transport, config):
        result = await processor.process_batch(config)

        assert result.to_dict() == {"processed": 0, "succeeded": 0, "failed": 0, "skipped": 0, "errors": []}
        assert transport.send_attempts == 0

    async def test_batch_size_limits_work(self, processor, repository, transport, config):
        for i in range(5):
            await repository.enqueue(f"o{i}", make_document(f"JE-{i}"))

        result = await processor.process_batch(replace(config, batch_size=2))

        assert result.processed == 2
        assert len(transport.sent) == 2

    async def test_missing_host_is_fatal(self, processor, repository, transport, config, document):
        job = await repository.enqueue("o1", document)

        with pytest.raises(ConfigurationError):
            await processor.process_batch(replace(config, printer=PrinterConfig(host=None)))

        assert transport.send_attempts == 0
        assert (await repository.get(job.id)).attempts == 0


class TestRetries:
    async def test_failure_returns_job_to_pending(self, processor, repository, transport, config, document):
        job = await repository.enqueue("o1", document)
        transport.fail_next(TIMEOUT)

        result = await processor.process_batch(config)

        stored = await repository.get(job.id)
        assert stored.status == PrintJobStatus.PENDING
        assert stored.attempts == 1
        assert stored.error_message == TIMEOUT.message
        assert (result.processed, result.succeeded, result.failed) == (1, 0, 0)
        assert len(result.errors) == 1
        assert "will retry" in result.errors[0]

        result = await processor.process_batch(config)

        assert result.succeeded == 1
        stored = await repository.get(job.id)
        assert stored.status == PrintJobStatus.PRINTED
        assert stored.attempts == 2
        assert stored.error_message is None

    async def test_retry_bound_is_exact(self, processor, repository, transport, config, document):
        job = await repository.enqueue("o1", document)
        transport.set_offline(TIMEOUT)

        for _ in range(config.max_attempts + 3):
            await processor.process_batch(config)

        stored = await repository.get(job.id)
        assert transport.send_attempts == config.max_attempts
        assert stored.attempts == config.max_attempts
        assert stored.status == PrintJobStatus.FAILED
        assert stored.error_message == TIMEOUT.message

    async def test_timeout_on_last_attempt_fails_job(self, processor, repository, session_maker, transport, config, document):
        job = await repository.enqueue("o1", document)
        await force(session_maker, job.id, attempts=config.max_attempts - 1)
        transport.fail_next(TIMEOUT)

        result = await processor.process_batch(config)

        stored = await repository.get(job.id)
        assert stored.status == PrintJobStatus.FAILED
        assert stored.attempts == config.max_attempts
        assert stored.error_message == "Printer connection timeout (5000ms)"
        assert stored.processed_at is not None
        assert (result.processed, result.failed) == (1, 1)

    async def test_exhausted_budget_fails_without_sending(self, processor, repository, session_maker, transport, config, document):
        job = await repository.enqueue("o1", document)
        await force(session_maker, job.id, attempts=config.max_attempts)

        result = await processor.process_batch(config)

        stored = await repository.get(job.id)
        assert transport.send_attempts == 0
        assert stored.status == PrintJobStatus.FAILED
        assert stored.error_message == "Retry budget exhausted"
        assert stored.attempts == config.max_attempts
        assert result.failed == 1

    async def test_budget_spent_after_fetch_fails_without_sending(self, processor, repository, session_maker, transport, config, document):
        queued = await repository.enqueue("o1", document)
        job = await repository.get(queued.id)
        await force(session_maker, job.id, attempts=config.max_attempts)
        result = ProcessResult()

        await processor._process_job(job, config, result)

        stored = await repository.get(job.id)
        assert transport.send_attempts == 0
        assert stored.status == PrintJobStatus.FAILED
        assert stored.error_message == "Retry budget exhausted"
        assert (result.processed, result.failed) == (1, 1)

    async def test_unreachable_printer_flagged(self, processor, repository, transport, config, document):
        await repository.enqueue("o1", document)
        transport.set_offline(ConnectionRefused("Printer connection refused at 192.0.2.10:9100"))

        result = await processor.process_batch(config)

        assert result.printer_unreachable
        assert "printer_unreachable" not in result.to_dict()


class TestBadJobs:
    async def test_batch_survives_bad_jobs(self, processor, repository, transport, config):
        flaky = await repository.enqueue("o1", make_document("JE-1"))
        garbage = await repository.enqueue("o2", {"orderNumber": "JE-2"})
        no_items = await repository.enqueue("o3", make_document("JE-3", items=()))
        good = await repository.enqueue("o4", make_document("JE-4"))
        last = await repository.enqueue("o5", make_document("JE-5"))
        transport.fail_next(TIMEOUT)

        result = await processor.process_batch(config)

        assert (result.processed, result.succeeded, result.failed) == (5, 2, 2)
        assert len(result.errors) == 3
        for job, status in [
            (flaky, PrintJobStatus.PENDING),
            (garbage, PrintJobStatus.FAILED),
            (no_items, PrintJobStatus.FAILED),
            (good, PrintJobStatus.PRINTED),
            (last, PrintJobStatus.PRINTED),
        ]:
            assert (await repository.get(job.id)).status == status

        stored = await repository.get(garbage.id)
        assert stored.attempts == 0
        assert stored.error_message.startswith("Invalid print data")
        assert (await repository.get(no_items.id)).attempts == 0
        assert transport.send_attempts == 3

    async def test_unprintable_amount_fails_job(self, processor, repository, transport, config):
        print_data = make_document().to_print_data()
        print_data["items"][0]["price"] = "1e30"
        job = await repository.enqueue("o1", print_data)

        result = await processor.process_batch(config)

        stored = await repository.get(job.id)
        assert stored.status == PrintJobStatus.FAILED
        assert stored.attempts == 0
        assert stored.error_message.startswith("Invalid print data")
        assert (result.processed, result.failed) == (1, 1)
        assert transport.send_attempts == 0

    async def test_unexpected_error_fails_job(self, processor, repository, transport, config, monkeypatch):
        def broken(document):
            raise RuntimeError("encoder exploded")

        monkeypatch.setattr(processor.encoder, "encode", broken)
        job = await repository.enqueue("o1", make_document())

        result = await processor.process_batch(config)

        stored = await repository.get(job.id)
        assert stored.status == PrintJobStatus.FAILED
        assert stored.error_message == "Unexpected error: encoder exploded"
        assert stored.attempts == 0
        assert (result.processed, result.failed) == (1, 1)
        assert result.errors == [f"Job {job.id}: Unexpected error: encoder exploded"]

        assert (await processor.process_batch(config)).processed == 0


class TestConcurrency:
    async def test_concurrent_batches_never_double_print(self, repository, config):
        transport = MockPrinterTransport(min_latency=0.005, max_latency=0.02)
        jobs = [await repository.enqueue(f"o{i}", make_document(f"JE-{i:03d}")) for i in range(12)]
        processors = [make_processor(repository, transport) for _ in range(3)]

        batch = replace(config, batch_size=len(jobs))
        results = await asyncio.gather(*[p.process_batch(batch) for p in processors])

        assert sum(r.succeeded for r in results) == len(jobs)
        assert sum(r.processed for r in results) == len(jobs)
        for i in range(len(jobs)):
            assert transport.sends_containing(b"ORDER #JE-%03d" % i) == 1
        for job in jobs:
            stored = await repository.get(job.id)
            assert stored.status == PrintJobStatus.PRINTED
            assert stored.attempts == 1

    async def test_cancelled_send_releases_job(self, repository, config, document):
        transport = MockPrinterTransport(min_latency=30, max_latency=30)
        processor = make_processor(repository, transport)
        job = await repository.enqueue("o1", document)

        task = asyncio.create_task(processor.process_batch(config))
        for _ in range(200):
            if transport.send_attempts:
                break
            await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        stored = await repository.get(job.id)
        assert stored.status == PrintJobStatus.PENDING
        assert stored.claimed_at is None
        assert transport.sent == []

    async def test_stale_claim_is_recovered(self, processor, repository, session_maker, transport, config, document):
        job = await repository.enqueue("o1", document)
        await repository.claim(job.id)
        await force(session_maker, job.id, claimed_at=utcnow() - timedelta(minutes=5))

        result = await processor.process_batch(config)

        assert result.succeeded == 1
        stored = await repository.get(job.id)
        assert stored.status == PrintJobStatus.PRINTED
        assert stored.attempts == 2


class TestPreflight:
    async def test_not_ready_skips_batch(self, processor, repository, transport, config, document):
        job = await repository.enqueue("o1", document)
        transport.status_response = b"\x00\x60"

        result = await processor.process_batch(replace(config, preflight_status_check=True))

        assert transport.send_attempts == 0
        assert result.processed == 0
        assert result.errors == ["Printer not ready: No paper loaded"]
        assert not result.printer_unreachable
        assert (await repository.get(job.id)).attempts == 0

    async def test_partial_status_still_prints(self, processor, repository, transport, config, document):
        await repository.enqueue("o1", document)
        transport.status_response = b"\x00"

        result = await processor.process_batch(replace(config, preflight_status_check=True))

        assert result.succeeded == 1

    async def test_unreachable_printer(self, processor, repository, transport, config, document):
        await repository.enqueue("o1", document)
        transport.status_response = b""

        result = await processor.process_batch(replace(config, preflight_status_check=True))

        assert result.printer_unreachable
        assert transport.send_attempts == 0


def test_process_result_to_dict():
    result = ProcessResult(processed=2, succeeded=1, failed=1, errors=["Job x: boom"])

    assert result.to_dict() == {
        "processed": 2,
        "succeeded": 1,
        "failed": 1,
        "skipped": 0,
        "errors": ["Job x: boom"],
    }
