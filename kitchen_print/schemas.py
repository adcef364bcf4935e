"""
Pydantic Schemas for Request/Response Validation

Holds the receipt document that travels through the print queue, the
order record accepted by the receipt formatter, and the API payloads.

Receipt documents use camelCase on the wire (``orderNumber``,
``deliveryFee``...) because that is what order-system producers write
into ``print_queue.print_data``; Python code uses snake_case.

Author: Khalil Bannouri
Version: 1.0.0
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


ZERO = Decimal("0")

# Upper bounds keep every amount printable with two decimals
MAX_QUANTITY = 9999
MAX_UNIT_PRICE = Decimal("100000000")
MAX_AMOUNT = Decimal("1000000000000000")
MAX_ITEMS = 200


# =============================================================================
# ENUMS
# =============================================================================

class OrderTypeEnum(str, Enum):
    DELIVERY = "delivery"
    CARRYOUT = "carryout"


# =============================================================================
# RECEIPT DOCUMENT
# =============================================================================

class ReceiptItem(BaseModel):
    """One line on the receipt. ``price`` is the unit price."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., min_length=1, examples=["Jollof Rice"])
    quantity: int = Field(..., gt=0, le=MAX_QUANTITY, examples=[2])
    price: Decimal = Field(..., ge=0, le=MAX_UNIT_PRICE, examples=["1500.00"])
    addons: tuple[str, ...] = ()
    variation: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class ReceiptDocument(BaseModel):
    """
    Structured receipt, ready for the ESC/POS encoder.

    Immutable once built. Money fields are non-negative decimals and
    ``total`` is clamped at zero.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    order_number: str
    order_date: str
    order_time: str
    order_type: OrderTypeEnum

    customer_name: str
    customer_phone: str
    customer_phone_alt: Optional[str] = None

    delivery_address: Optional[str] = None
    delivery_city: Optional[str] = None
    address_type: Optional[str] = None
    unit_number: Optional[str] = None
    delivery_instructions: Optional[str] = None

    items: tuple[ReceiptItem, ...] = Field(default=(), max_length=MAX_ITEMS)

    subtotal: Decimal = Field(default=ZERO, ge=0, le=MAX_AMOUNT)
    tax: Decimal = Field(default=ZERO, ge=0, le=MAX_AMOUNT)
    delivery_fee: Decimal = Field(default=ZERO, ge=0, le=MAX_AMOUNT)
    discount: Decimal = Field(default=ZERO, ge=0, le=MAX_AMOUNT)
    total: Decimal = Field(default=ZERO, le=MAX_AMOUNT)

    payment_status: str = "PENDING"
    payment_method: str = ""

    estimated_prep_time: Optional[int] = Field(default=None, ge=0)
    special_instructions: tuple[str, ...] = ()

    is_test: bool = False

    @field_validator("total")
    @classmethod
    def clamp_total(cls, v: Decimal) -> Decimal:
        """A receipt never shows a negative amount due."""
        return v if v > ZERO else ZERO

    def to_print_data(self) -> dict[str, Any]:
        """JSON-safe form stored in ``print_queue.print_data``."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# ORDER RECORD (formatter input)
# =============================================================================

class OrderAddonRecord(BaseModel):
    name: str
    price: Decimal = ZERO


class OrderVariationRecord(BaseModel):
    option: str


class OrderItemRecord(BaseModel):
    """Order line as persisted by the ordering platform."""
    item_name: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1, le=MAX_QUANTITY)
    unit_price: Decimal = Field(..., ge=0, le=MAX_UNIT_PRICE)
    selected_variation: Optional[OrderVariationRecord] = None
    selected_addons: List[OrderAddonRecord] = Field(default_factory=list)
    special_instructions: Optional[str] = None


class OrderRecord(BaseModel):
    """Order entity handed to the receipt formatter."""
    order_number: str = Field(..., min_length=1, examples=["JE-20261018-0042"])
    created_at: datetime
    order_type: OrderTypeEnum = OrderTypeEnum.DELIVERY

    customer_name: str
    customer_phone: str
    customer_phone_alt: Optional[str] = None

    delivery_address: Optional[str] = None
    delivery_city: Optional[str] = None
    address_type: Optional[str] = None
    unit_number: Optional[str] = None
    delivery_instructions: Optional[str] = None

    items: List[OrderItemRecord] = Field(default_factory=list, max_length=MAX_ITEMS)
    special_instructions: Optional[str] = None

    tax: Decimal = Field(default=ZERO, ge=0, le=MAX_UNIT_PRICE)
    delivery_fee: Decimal = Field(default=ZERO, ge=0, le=MAX_UNIT_PRICE)
    discount: Decimal = Field(default=ZERO, ge=0, le=MAX_UNIT_PRICE)

    payment_status: str = "pending"
    payment_method: Optional[str] = None
    estimated_prep_time: Optional[int] = Field(default=None, ge=0)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class PrintJobCreate(BaseModel):
    """
    Enqueue a receipt. Either a raw ``order`` (formatted server-side) or a
    pre-rendered ``print_data`` document must be supplied.
    """
    order_id: str = Field(..., min_length=1, max_length=64)
    order: Optional[OrderRecord] = None
    print_data: Optional[ReceiptDocument] = None

    @model_validator(mode="after")
    def exactly_one_payload(self) -> "PrintJobCreate":
        if (self.order is None) == (self.print_data is None):
            raise ValueError("Provide exactly one of 'order' or 'print_data'")
        return self


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class PrintJobResponse(BaseModel):
    """Response schema for a single print job."""
    id: str
    order_id: str
    status: str
    attempts: int
    error_message: Optional[str]
    created_at: Optional[datetime]
    processed_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)

    @field_validator("status", mode="before")
    @classmethod
    def status_value(cls, v: Any) -> str:
        return getattr(v, "value", v)


class ProcessResultResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int
    skipped: int = 0
    errors: Optional[List[str]] = None


class ProcessQueueResponse(BaseModel):
    """Response of the batch trigger endpoint."""
    success: bool
    result: ProcessResultResponse
    duration_ms: int
    timestamp: datetime


class PrinterConnectivityResponse(BaseModel):
    status: str
    message: str
    timestamp: datetime


class PrinterStatusResponse(BaseModel):
    """Decoded printer health; paper fields are null on partial answers."""
    success: bool
    ready: bool
    connected: bool
    online: Optional[bool] = None
    cover_closed: Optional[bool] = None
    paper_present: Optional[bool] = None
    paper_near_end: Optional[bool] = None
    raw_status_byte: Optional[int] = None
    raw_paper_byte: Optional[int] = None
    error: Optional[str] = None
    timestamp: datetime


class PendingJobSummary(BaseModel):
    id: str
    created_at: Optional[datetime]
    attempts: int


class QueueStatusResponse(BaseModel):
    success: bool
    pending: int
    in_progress: int
    printed: int
    failed: int
    total: int
    recent_pending: List[PendingJobSummary]
    timestamp: datetime


class PrintTestResponse(BaseModel):
    success: bool
    message: str
    data_size: int
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    redis: str
    printer_transport: str
    timestamp: datetime
