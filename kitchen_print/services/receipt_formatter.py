"""
Receipt Formatter

Pure transform from an order record to a ``ReceiptDocument``. No I/O and
no clock reads: the same order always yields the same document, which is
what lets the encoder and the printer transport be tested without a real
order.

Author: Khalil Bannouri
Version: 1.0.0
"""

import re
from decimal import Decimal
from typing import Optional

from kitchen_print.schemas import (
    OrderRecord,
    ReceiptDocument,
    ReceiptItem,
    ZERO,
)

DEFAULT_PREP_TIME_MINUTES = 25
DEFAULT_PAYMENT_METHOD = "Paystack"


def format_phone_number(phone: str) -> str:
    """
    Pretty-print Nigerian numbers; anything else is returned untouched.

    Examples:
        >>> format_phone_number("08012345678")
        '0801 234 5678'
        >>> format_phone_number("+2348012345678")
        '+234 801 234 5678'
    """
    cleaned = re.sub(r"\D", "", phone)

    if len(cleaned) == 11 and cleaned.startswith("0"):
        return f"{cleaned[:4]} {cleaned[4:7]} {cleaned[7:]}"

    if len(cleaned) == 13 and cleaned.startswith("234"):
        return f"+{cleaned[:3]} {cleaned[3:6]} {cleaned[6:9]} {cleaned[9:]}"

    return phone


def format_payment_status(status: str) -> str:
    if status.lower() == "success":
        return "PAID"
    return status.upper()


def compute_total(subtotal: Decimal, tax: Decimal, delivery_fee: Decimal, discount: Decimal) -> Decimal:
    """Amount due, never below zero."""
    return max(ZERO, subtotal + tax + delivery_fee - discount)


def format_receipt(
    order: OrderRecord,
    default_payment_method: Optional[str] = None,
) -> ReceiptDocument:
    """
    Convert an order into a receipt document.

    Missing optional data falls back to documented defaults: no addons,
    no instructions, the configured payment method, a 25 minute prep time.

    Args:
        order: Order entity from the ordering platform
        default_payment_method: Printed when the order carries none

    Returns:
        ReceiptDocument: Immutable, encoder-ready receipt
    """
    items = tuple(
        ReceiptItem(
            name=item.item_name,
            quantity=item.quantity,
            price=item.unit_price,
            addons=tuple(addon.name for addon in item.selected_addons),
            variation=item.selected_variation.option if item.selected_variation else None,
        )
        for item in order.items
    )

    # Item notes first, then the order-level note
    special_instructions = [
        f"{item.item_name}: {item.special_instructions.strip()}"
        for item in order.items
        if item.special_instructions and item.special_instructions.strip()
    ]
    if order.special_instructions and order.special_instructions.strip():
        special_instructions.append(order.special_instructions.strip())

    subtotal = sum((item.line_total for item in items), ZERO)

    return ReceiptDocument(
        order_number=order.order_number,
        order_date=order.created_at.strftime("%d %b %Y"),
        order_time=order.created_at.strftime("%I:%M %p"),
        order_type=order.order_type,
        customer_name=order.customer_name,
        customer_phone=format_phone_number(order.customer_phone),
        customer_phone_alt=(
            format_phone_number(order.customer_phone_alt) if order.customer_phone_alt else None
        ),
        delivery_address=order.delivery_address or None,
        delivery_city=order.delivery_city or None,
        address_type=order.address_type or None,
        unit_number=order.unit_number or None,
        delivery_instructions=order.delivery_instructions or None,
        items=items,
        subtotal=subtotal,
        tax=order.tax,
        delivery_fee=order.delivery_fee,
        discount=order.discount,
        total=compute_total(subtotal, order.tax, order.delivery_fee, order.discount),
        payment_status=format_payment_status(order.payment_status),
        payment_method=(
            order.payment_method or default_payment_method or DEFAULT_PAYMENT_METHOD
        ),
        estimated_prep_time=(
            order.estimated_prep_time
            if order.estimated_prep_time is not None
            else DEFAULT_PREP_TIME_MINUTES
        ),
        special_instructions=tuple(special_instructions),
    )
