"""Shared pytest fixtures for print service tests."""

import os
import tempfile
from datetime import datetime
from decimal import Decimal
from pathlib import Path

# Settings are cached on first import; configure the environment before that.
_TEST_DIR = Path(tempfile.mkdtemp(prefix="kitchen_print_tests_"))
os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR / 'app.db'}"
os.environ["PRINT_PROCESSOR_SECRET"] = "test-secret"
os.environ["PRINTER_IP_ADDRESS"] = "192.0.2.10"
os.environ["REDIS_URL"] = "redis://localhost:6399/0"

import pytest

from kitchen_print.database import create_engine_for, create_session_maker, init_db
from kitchen_print.schemas import (
    OrderItemRecord,
    OrderAddonRecord,
    OrderRecord,
    OrderTypeEnum,
    ReceiptDocument,
    ReceiptItem,
)
from kitchen_print.services.escpos import EscPosEncoder
from kitchen_print.services.print_queue import PrintQueueRepository
from kitchen_print.services.printer import MockPrinterTransport
from kitchen_print.services.processor import PrinterConfig, ProcessorConfig
from kitchen_print.services.status_monitor import PrinterStatusMonitor

TEST_SECRET = "test-secret"
PRINTER_HOST = "192.0.2.10"


def make_document(order_number: str = "JE-0001", **overrides) -> ReceiptDocument:
    """The Jollof Rice receipt: 2 x 1,500 + 500 delivery = 3,500."""
    fields = dict(
        order_number=order_number,
        order_date="18 Oct 2026",
        order_time="12:30 PM",
        order_type=OrderTypeEnum.DELIVERY,
        customer_name="Adaeze Okafor",
        customer_phone="0801 234 5678",
        delivery_address="12 Admiralty Way",
        delivery_city="Lekki",
        items=(ReceiptItem(name="Jollof Rice", quantity=2, price=Decimal("1500.00")),),
        subtotal=Decimal("3000.00"),
        delivery_fee=Decimal("500.00"),
        total=Decimal("3500.00"),
        payment_status="PAID",
        payment_method="Paystack",
        estimated_prep_time=25,
    )
    fields.update(overrides)
    return ReceiptDocument(**fields)


@pytest.fixture
def document() -> ReceiptDocument:
    return make_document()


@pytest.fixture
def order() -> OrderRecord:
    return OrderRecord(
        order_number="JE-20261018-0042",
        created_at=datetime(2026, 10, 18, 14, 5),
        order_type=OrderTypeEnum.DELIVERY,
        customer_name="Tunde Adeyemi",
        customer_phone="08012345678",
        delivery_address="5 Awolowo Road",
        delivery_city="Ikoyi",
        items=[
            OrderItemRecord(
                item_name="Jollof Rice",
                quantity=2,
                unit_price=Decimal("1500.00"),
                selected_addons=[OrderAddonRecord(name="Extra Chicken", price=Decimal("800"))],
                special_instructions="No pepper",
            ),
            OrderItemRecord(item_name="Chapman", quantity=1, unit_price=Decimal("1200.00")),
        ],
        special_instructions="Call on arrival",
        delivery_fee=Decimal("1000.00"),
        discount=Decimal("200.00"),
        payment_status="success",
    )


@pytest.fixture
def encoder() -> EscPosEncoder:
    return EscPosEncoder(restaurant_name="JOLLOF EXPRESS", columns=42, currency_symbol="₦")


@pytest.fixture
def transport() -> MockPrinterTransport:
    return MockPrinterTransport()


@pytest.fixture
def monitor(transport) -> PrinterStatusMonitor:
    return PrinterStatusMonitor(transport, timeout=1.0, command_delay=0.0)


@pytest.fixture
async def session_maker(tmp_path):
    """Fresh file-backed database per test."""
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}", pooled=False)
    await init_db(engine)
    yield create_session_maker(engine)
    await engine.dispose()


@pytest.fixture
def repository(session_maker) -> PrintQueueRepository:
    return PrintQueueRepository(session_maker)


@pytest.fixture
def config() -> ProcessorConfig:
    return ProcessorConfig(
        printer=PrinterConfig(host=PRINTER_HOST, port=9100, timeout_ms=500),
        max_attempts=3,
        batch_size=10,
        job_delay_ms=0,
    )
