"""Parsing and formatting helpers for money, chip counts and dates."""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from chips_tracker.config import get_settings

ZERO = Decimal("0")
_CENTS = Decimal("0.01")


def parse_amount(value: Any) -> Decimal:
    """Parse a user or wire amount into a Decimal.

    Thousands separators are stripped. Blank, ``None`` and unparseable
    values become zero instead of raising.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        value = repr(value)
    text = str(value).replace(",", "").strip()
    if not text:
        return ZERO
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return ZERO
    return amount if amount.is_finite() else ZERO


def sum_amounts(values: Any) -> Decimal:
    """Sum amounts, treating bad entries as zero. Empty input sums to zero."""
    total = ZERO
    for value in values:
        total += parse_amount(value)
    return total


def format_with_commas(value: Any) -> str:
    """Format with thousands separators and up to two decimals.

    ``10000 -> "10,000"``, ``1234.5 -> "1,234.5"``.
    """
    amount = parse_amount(value).quantize(_CENTS, rounding=ROUND_HALF_UP)
    text = f"{amount:,.2f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def format_number(value: Any) -> str:
    """Format with thousands separators and exactly two decimals."""
    amount = parse_amount(value).quantize(_CENTS, rounding=ROUND_HALF_UP)
    return f"{amount:,.2f}"


def format_currency(value: Any, symbol: str | None = None) -> str:
    """Format as money, e.g. ``"₱1,234.50"``. Negative values keep their sign."""
    symbol = get_settings().currency if symbol is None else symbol
    amount = parse_amount(value)
    if amount < 0:
        return f"-{symbol}{format_number(-amount)}"
    return f"{symbol}{format_number(amount)}"


def format_percent(ratio: Any) -> str:
    """Format a ratio as a percentage with two decimals (``0.985 -> "98.50%"``)."""
    percent = (parse_amount(ratio) * 100).quantize(_CENTS, rounding=ROUND_HALF_UP)
    return f"{percent:.2f}%"


def to_iso_date(value: Any) -> date | None:
    """Coerce a wire date into a ``date``.

    Accepts ``date``/``datetime`` objects, ``YYYY-MM-DD`` strings and ISO
    datetime strings such as ``2025-01-01T16:00:00.000Z`` (the date part is
    kept as written). Returns ``None`` for blank or unparseable input.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text.split("T")[0][:10])
    except ValueError:
        return None


def format_date(value: Any) -> str:
    """Short display date (``"Jan 7, 2025"``); ``"-"`` when blank."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return "-"
    parsed = to_iso_date(value)
    if parsed is None:
        return str(value)
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


def format_date_long(value: Any) -> str:
    """Long display date (``"Tuesday, January 7, 2025"``); empty when blank."""
    parsed = to_iso_date(value)
    if parsed is None:
        return ""
    return f"{parsed:%A, %B} {parsed.day}, {parsed.year}"


def value_class(value: Any) -> str:
    """CSS-style sign class for a figure: ``positive``, ``negative`` or ``""``."""
    amount = parse_amount(value)
    if amount > 0:
        return "positive"
    if amount < 0:
        return "negative"
    return ""


SHIFT_LABELS: dict[str, str] = {
    "12:00PM to 8:00PM": "12PM - 8PM",
    "8:00PM to 4:00AM": "8PM - 4AM",
    "4:00AM to 12:00PM": "4AM - 12PM",
}


def shift_label(shift: Any) -> str:
    """Short label for a shift window; unknown values are returned unchanged."""
    key = getattr(shift, "value", shift)
    return SHIFT_LABELS.get(str(key), str(key))
