"""Tests for the printer transports."""

import asyncio

import pytest

from kitchen_print.core.config import get_settings
from kitchen_print.core.exceptions import (
    ConnectionRefused,
    TransportErrorKind,
    TransportTimeout,
    WriteFailed,
)
from kitchen_print.services.printer import (
    MockPrinterTransport,
    TcpPrinterTransport,
    get_printer_transport,
    reset_printer_transport,
)
from tests.fake_printer import FakePrinter


@pytest.fixture
async def printer():
    printer = await FakePrinter(status_byte=None, paper_byte=None).start()
    yield printer
    await printer.stop()


async def closed_port() -> int:
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()
    return port


class TestTcpPrinterTransport:
    async def test_send_delivers_whole_payload(self, printer):
        transport = TcpPrinterTransport(settle_delay=0.05)
        payload = bytes(range(0x20, 0x7F)) * 200

        result = await transport.send(payload, "127.0.0.1", printer.port, timeout=2.0)
        for _ in range(50):
            if len(printer.received) == len(payload):
                break
            await asyncio.sleep(0.01)

        assert result.success
        assert result.bytes_sent == len(payload)
        assert bytes(printer.received) == payload

    async def test_send_refused(self):
        port = await closed_port()
        result = await TcpPrinterTransport().send(b"data", "127.0.0.1", port, timeout=1.0)

        assert not result.success
        assert result.error_kind == TransportErrorKind.CONNECTION_REFUSED

    async def test_send_hard_timeout(self, printer):
        transport = TcpPrinterTransport(settle_delay=5.0)
        result = await transport.send(b"data", "127.0.0.1", printer.port, timeout=0.2)

        assert not result.success
        assert result.error_kind == TransportErrorKind.TIMEOUT
        assert result.message == "Printer connection timeout (200ms)"
        assert result.response_time_ms < 2000

    async def test_query_reads_until_peer_closes(self, printer):
        printer.close_after = 3
        result = await TcpPrinterTransport().query([b"\x10\x04\x01"], "127.0.0.1", printer.port, timeout=1.0)

        assert result.success
        assert result.data == b""

    async def test_test_connection(self, printer):
        result = await TcpPrinterTransport().test_connection("127.0.0.1", printer.port, timeout=1.0)

        assert result.success
        assert "online" in result.message

    async def test_test_connection_refused(self):
        port = await closed_port()
        result = await TcpPrinterTransport().test_connection("127.0.0.1", port, timeout=1.0)

        assert not result.success
        assert result.to_dict()["error_kind"] == "connection_refused"


class TestMockPrinterTransport:
    async def test_records_payloads(self, transport):
        await transport.send(b"one", "p", 9100, 1.0)
        await transport.send(b"two", "p", 9100, 1.0)

        assert transport.sent == [b"one", b"two"]
        assert transport.send_attempts == 2
        assert transport.sends_containing(b"t") == 1

    async def test_scripted_failures_consumed_in_order(self, transport):
        transport.fail_next(TransportTimeout("slow"), WriteFailed("broken pipe"))

        first = await transport.send(b"x", "p", 9100, 1.0)
        second = await transport.send(b"x", "p", 9100, 1.0)
        third = await transport.send(b"x", "p", 9100, 1.0)

        assert first.error_kind == TransportErrorKind.TIMEOUT
        assert second.error_kind == TransportErrorKind.WRITE_FAILED
        assert third.success

    async def test_offline_until_recovered(self, transport):
        transport.set_offline(ConnectionRefused("refused"))
        assert not (await transport.send(b"x", "p", 9100, 1.0)).success
        assert not (await transport.test_connection("p", 9100, 1.0)).success

        transport.set_offline(None)
        assert (await transport.send(b"x", "p", 9100, 1.0)).success

    async def test_random_failures(self):
        transport = MockPrinterTransport(failure_rate=1.0)
        result = await transport.send(b"x", "p", 9100, 1.0)

        assert result.error_kind == TransportErrorKind.TIMEOUT
        assert transport.sent == []


class TestTransportFactory:
    def test_development_uses_mock(self):
        reset_printer_transport()
        assert get_settings().is_development
        assert isinstance(get_printer_transport(), MockPrinterTransport)

    def test_cached(self):
        reset_printer_transport()
        assert get_printer_transport() is get_printer_transport()
        reset_printer_transport()


@pytest.mark.parametrize("error,kind", [
    (TransportTimeout("Printer connection timeout (5000ms)"), TransportErrorKind.TIMEOUT),
    (ConnectionRefused("Printer connection refused"), TransportErrorKind.CONNECTION_REFUSED),
    (WriteFailed("broken pipe"), TransportErrorKind.WRITE_FAILED),
])
def test_transport_error_carries_kind_and_message(error, kind):
    assert error.kind == kind
    assert error.message == str(error)
    assert vars(error) == {"message": error.message}
