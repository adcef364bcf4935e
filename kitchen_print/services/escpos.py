"""
ESC/POS Encoder for 80mm Thermal Printers

Turns a ``ReceiptDocument`` into the raw byte stream understood by
ESC/POS receipt printers (Epson TM series and clones).

The encoder works in two steps:
    1. layout(): document -> list of ReceiptLine(text, align, style), with
       every text already wrapped to the paper width and reduced to ASCII
    2. encode(): lines -> bytes, written through a python-escpos ``Dummy``
       printer that buffers commands instead of sending them. Alignment
       and style are only set when they change; the stream is framed by
       the initialize preamble and the feed-and-cut

Sending is left to the asyncio transport, which owns the connection and
its hard timeouts.

Character handling:
    The printer runs code page PC437 with the USA international set. Any
    character outside printable ASCII is substituted before it reaches
    the wire (see ``to_printable``): currency glyphs become their ISO
    code (₦ -> NGN), typographic punctuation becomes its ASCII cousin,
    accents are stripped, control bytes become spaces, and anything left
    becomes "?". A customer name can therefore never smuggle an ESC
    sequence onto the printer.

Usage:
    encoder = EscPosEncoder(restaurant_name="JOLLOF EXPRESS", columns=42)
    payload = encoder.encode(document)

Author: Khalil Bannouri
Version: 1.0.0
"""

import unicodedata
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional

from escpos.constants import CODEPAGE_CHANGE, ESC, GS, HW_INIT, RT_STATUS_ONLINE, RT_STATUS_PAPER
from escpos.printer import Dummy

from kitchen_print.core.config import Settings, get_settings
from kitchen_print.core.exceptions import EncodingError
from kitchen_print.schemas import OrderTypeEnum, ReceiptDocument


# =============================================================================
# COMMANDS
# =============================================================================

INITIALIZE = HW_INIT
CODE_PAGE = "CP437"
CODE_PAGE_PC437 = CODEPAGE_CHANGE + b"\x00"
LINE_SPACING_DOTS = 16

# ESC R n and GS V 65 n have no python-escpos call; written raw
CHARSET_USA = ESC + b"R" + b"\x00"
# Feed to the cutter position (+3 motion units), then full cut
CUT = GS + b"V" + b"\x41" + b"\x03"
CUT_FEED_LINES = 4

PREAMBLE = INITIALIZE + CHARSET_USA + CODE_PAGE_PC437 + ESC + b"3" + bytes([LINE_SPACING_DOTS])

# Real-time status requests (DLE EOT n)
TRANSMIT_PRINTER_STATUS = RT_STATUS_ONLINE
TRANSMIT_PAPER_STATUS = RT_STATUS_PAPER

DEFAULT_COLUMNS = 42
CENT = Decimal("0.01")


# =============================================================================
# CHARACTER SUBSTITUTION
# =============================================================================

CURRENCY_SUBSTITUTIONS = {
    "₦": "NGN",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "₹": "INR",
    "₵": "GHS",
    "₩": "KRW",
    "₽": "RUB",
    "¢": "c",
}

CHARACTER_SUBSTITUTIONS = {
    "•": "*",
    "·": "*",
    "–": "-",
    "—": "-",
    "‘": "'",
    "’": "'",
    "“": '"',
    "”": '"',
    "…": "...",
    "×": "x",
    "\u00a0": " ",
}


def _is_printable_ascii(text: str) -> bool:
    return all(" " <= ch <= "~" for ch in text)


def to_printable(text: str) -> str:
    """
    Reduce text to printable ASCII using the substitution tables.

    Examples:
        >>> to_printable("₦1,500.00")
        'NGN1,500.00'
        >>> to_printable("Crème brûlée • extra")
        'Creme brulee * extra'
    """
    out = []
    for ch in text:
        if " " <= ch <= "~":
            out.append(ch)
        elif ch in CURRENCY_SUBSTITUTIONS:
            out.append(CURRENCY_SUBSTITUTIONS[ch])
        elif ch in CHARACTER_SUBSTITUTIONS:
            out.append(CHARACTER_SUBSTITUTIONS[ch])
        else:
            category = unicodedata.category(ch)
            if category == "Cc":
                out.append(" ")
                continue
            if category in ("Mn", "Cf"):
                # Combining marks, emoji variation selectors, zero-width joiners
                continue
            stripped = unicodedata.normalize("NFKD", ch).encode("ascii", "ignore").decode("ascii")
            out.append(stripped if stripped and _is_printable_ascii(stripped) else "?")
    return "".join(out)


# =============================================================================
# TEXT LAYOUT HELPERS
# =============================================================================

def wrap_text(text: str, width: int) -> list[str]:
    """Greedy word wrap; words longer than ``width`` are hard-split."""
    width = max(1, width)
    words = text.split()
    if not words:
        return [""]

    lines: list[str] = []
    current = ""
    for word in words:
        while len(word) > width:
            if current:
                lines.append(current)
                current = ""
            lines.append(word[:width])
            word = word[width:]
        if not word:
            continue
        if not current:
            current = word
        elif len(current) + 1 + len(word) <= width:
            current = f"{current} {word}"
        else:
            lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def pad_lr(left: str, right: str, width: int) -> str:
    """Left text and right text on one line of exactly ``width`` chars."""
    space = width - len(left) - len(right)
    if space < 1:
        left = left[: max(0, width - len(right) - 1)]
        space = width - len(left) - len(right)
    return f"{left}{' ' * space}{right}"


class Alignment(str, Enum):
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class TextStyle(Enum):
    """Print modes used on the receipt: (bold, double height, double width)."""
    NORMAL = (False, False, False)
    BOLD = (True, False, False)
    TALL = (True, True, False)
    LARGE = (True, True, True)

    @property
    def width_factor(self) -> int:
        return 2 if self.value[2] else 1

    def escpos_args(self) -> dict[str, Any]:
        """Keyword arguments for ``Escpos.set``."""
        bold, double_height, double_width = self.value
        return {
            "bold": bold,
            "double_height": double_height,
            "double_width": double_width,
            "normal_textsize": not (double_height or double_width),
        }


@dataclass(frozen=True)
class ReceiptLine:
    """One printed line. ``text`` is printable ASCII and fits the paper."""
    text: str
    align: Alignment = Alignment.LEFT
    style: TextStyle = TextStyle.NORMAL


# =============================================================================
# ENCODER
# =============================================================================

class EscPosEncoder:
    """
    Receipt document to ESC/POS byte stream.

    Attributes:
        restaurant_name: Header text
        columns: Characters per line in Font A (42 on 80mm paper)
        currency: Printable currency prefix (``₦`` is stored as ``NGN``)
        footer: Centered line printed before the cut
    """

    ITEM_INDENT = "   "

    def __init__(
        self,
        restaurant_name: str = "JOLLOF EXPRESS",
        columns: int = DEFAULT_COLUMNS,
        currency_symbol: str = "₦",
        footer: Optional[str] = "Kitchen - Start Prep Now!",
    ):
        if columns < 24:
            raise ValueError(f"Receipt width too small: {columns} columns")
        self.restaurant_name = restaurant_name
        self.columns = columns
        self.currency = to_printable(currency_symbol)
        self.footer = footer

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EscPosEncoder":
        settings = settings or get_settings()
        return cls(
            restaurant_name=settings.restaurant_name,
            columns=settings.printer_columns,
            currency_symbol=settings.currency_symbol,
            footer=settings.receipt_footer,
        )

    # -------------------------------------------------------------------------
    # Formatting
    # -------------------------------------------------------------------------

    def format_money(self, amount: Decimal, negative: bool = False) -> str:
        """
        Fixed two-decimal amount with thousands separators.

        Examples:
            >>> EscPosEncoder().format_money(Decimal("3500"))
            'NGN3,500.00'
        """
        try:
            value = Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise EncodingError(f"Amount cannot be printed: {amount}")
        sign = "-" if negative else ""
        return f"{sign}{self.currency}{value:,.2f}"

    def _rule(self, char: str = "-") -> ReceiptLine:
        return ReceiptLine(char * self.columns)

    def _wrapped(
        self,
        text: str,
        align: Alignment = Alignment.LEFT,
        style: TextStyle = TextStyle.NORMAL,
        prefix: str = "",
    ) -> list[ReceiptLine]:
        """Wrap text, repeating ``prefix`` width as indent on continuation lines."""
        width = self.columns // style.width_factor - len(prefix)
        chunks = wrap_text(to_printable(text), width)
        indent = " " * len(prefix)
        return [
            ReceiptLine((prefix if i == 0 else indent) + chunk, align, style)
            for i, chunk in enumerate(chunks)
        ]

    def _item_lines(self, quantity: int, name: str, amount: str) -> list[ReceiptLine]:
        """
        ``2x Jollof Rice ...... NGN3,000.00`` with the amount pinned to the
        right edge. Long names wrap under the name, never into the amount.
        """
        prefix = f"{quantity}x "
        name_width = self.columns - len(amount) - 1 - len(prefix)
        if name_width < 8:
            # Amount too wide to share a line
            lines = self._wrapped(name, prefix=prefix)
            lines.append(ReceiptLine(pad_lr("", amount, self.columns)))
            return lines

        chunks = wrap_text(to_printable(name), name_width)
        lines = [ReceiptLine(pad_lr(prefix + chunks[0], amount, self.columns))]
        indent = " " * len(prefix)
        lines.extend(ReceiptLine(indent + chunk) for chunk in chunks[1:])
        return lines

    # -------------------------------------------------------------------------
    # Layout
    # -------------------------------------------------------------------------

    def layout(self, doc: ReceiptDocument) -> list[ReceiptLine]:
        """
        Build the printed lines for a document.

        Raises:
            EncodingError: If a real (non-test) receipt has no items
        """
        if not doc.items and not doc.is_test:
            raise EncodingError(f"Receipt for order {doc.order_number} has no items")

        lines: list[ReceiptLine] = []
        blank = ReceiptLine("")

        # Header
        lines.extend(self._wrapped(self.restaurant_name, Alignment.CENTER, TextStyle.LARGE))
        lines.append(self._rule("="))
        lines.extend(self._wrapped(f"ORDER #{doc.order_number}", Alignment.CENTER, TextStyle.TALL))
        if doc.is_test:
            lines.append(ReceiptLine("*** TEST PRINT ***", Alignment.CENTER, TextStyle.BOLD))
        lines.extend(self._wrapped(f"Date: {doc.order_date} {doc.order_time}"))
        lines.append(self._rule())

        # Customer
        lines.append(ReceiptLine("CUSTOMER DETAILS", style=TextStyle.BOLD))
        lines.extend(self._wrapped(f"Name: {doc.customer_name}"))
        lines.extend(self._wrapped(f"Phone: {doc.customer_phone}"))
        if doc.customer_phone_alt:
            lines.extend(self._wrapped(f"Alt: {doc.customer_phone_alt}"))
        lines.append(ReceiptLine(f"Type: {doc.order_type.value.upper()}"))
        lines.append(blank)

        if doc.order_type == OrderTypeEnum.DELIVERY and doc.delivery_address:
            lines.append(ReceiptLine("DELIVERY ADDRESS", style=TextStyle.BOLD))
            if doc.delivery_city:
                lines.extend(self._wrapped(doc.delivery_city))
            lines.extend(self._wrapped(doc.delivery_address))
            if doc.address_type:
                lines.extend(self._wrapped(f"Type: {doc.address_type}"))
            if doc.unit_number:
                lines.extend(self._wrapped(f"Unit: {doc.unit_number}"))
            if doc.delivery_instructions:
                lines.append(ReceiptLine("Delivery Instructions:", style=TextStyle.BOLD))
                lines.extend(self._wrapped(doc.delivery_instructions))
            lines.append(blank)

        # Items
        lines.append(self._rule())
        lines.append(ReceiptLine("ITEMS", style=TextStyle.BOLD))
        lines.append(self._rule())
        for item in doc.items:
            lines.extend(self._item_lines(item.quantity, item.name, self.format_money(item.line_total)))
            if item.variation:
                lines.extend(self._wrapped(item.variation, prefix=f"{self.ITEM_INDENT}* "))
            for addon in item.addons:
                lines.extend(self._wrapped(addon, prefix=f"{self.ITEM_INDENT}+ "))

        if doc.special_instructions:
            lines.append(self._rule())
            lines.append(ReceiptLine("SPECIAL INSTRUCTIONS:", style=TextStyle.BOLD))
            for instruction in doc.special_instructions:
                lines.extend(self._wrapped(instruction, prefix=f"{self.ITEM_INDENT}* "))

        # Totals
        lines.append(self._rule())
        lines.append(ReceiptLine(pad_lr("Subtotal:", self.format_money(doc.subtotal), self.columns)))
        if doc.tax > 0:
            lines.append(ReceiptLine(pad_lr("Tax:", self.format_money(doc.tax), self.columns)))
        if doc.delivery_fee > 0:
            lines.append(ReceiptLine(pad_lr("Delivery Fee:", self.format_money(doc.delivery_fee), self.columns)))
        if doc.discount > 0:
            lines.append(ReceiptLine(
                pad_lr("Discount:", self.format_money(doc.discount, negative=True), self.columns)
            ))
        lines.append(self._rule("="))
        lines.append(ReceiptLine(
            pad_lr("TOTAL:", self.format_money(doc.total), self.columns), style=TextStyle.TALL
        ))
        lines.append(self._rule("="))
        lines.append(blank)

        # Payment
        payment = doc.payment_status
        if doc.payment_method:
            payment = f"{payment} ({doc.payment_method})"
        lines.extend(self._wrapped(f"Payment: {payment}"))
        lines.append(blank)

        # Kitchen footer
        lines.append(self._rule())
        if self.footer:
            lines.extend(self._wrapped(self.footer, Alignment.CENTER, TextStyle.TALL))
        if doc.estimated_prep_time:
            lines.append(ReceiptLine(f"Estimated Time: {doc.estimated_prep_time} min", Alignment.CENTER))
        lines.append(self._rule("="))

        return lines

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def encode(self, doc: ReceiptDocument) -> bytes:
        """
        Encode a document into printer bytes.

        Output always starts with the initialize command and ends with the
        cut command. Deterministic: equal documents give equal bytes.

        Raises:
            EncodingError: If a real (non-test) receipt has no items or
                an amount cannot be printed
        """
        lines = self.layout(doc)

        printer = Dummy()
        printer.hw("INIT")
        printer._raw(CHARSET_USA)
        printer.charcode(CODE_PAGE)
        printer.line_spacing(LINE_SPACING_DOTS, divisor=180)

        align = Alignment.LEFT
        style = TextStyle.NORMAL
        for line in lines:
            if line.align != align:
                printer.set(align=line.align.value)
                align = line.align
            if line.style != style:
                printer.set(**line.style.escpos_args())
                style = line.style
            printer.text(line.text + "\n")

        printer.set(align=Alignment.LEFT.value, **TextStyle.NORMAL.escpos_args())
        printer.print_and_feed(CUT_FEED_LINES)
        printer._raw(CUT)
        return printer.output

    def render_text(self, doc: ReceiptDocument) -> str:
        """Plain-text preview of the receipt (same wrapping as the print)."""
        rendered = []
        for line in self.layout(doc):
            width = self.columns // line.style.width_factor
            if line.align == Alignment.CENTER:
                rendered.append(line.text.center(width).rstrip())
            elif line.align == Alignment.RIGHT:
                rendered.append(line.text.rjust(width))
            else:
                rendered.append(line.text)
        return "\n".join(rendered)
