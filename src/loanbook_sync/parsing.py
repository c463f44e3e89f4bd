"""Cell value parsing for the loan-book feed.

Every function here is pure and total: raw spreadsheet or CSV cells go in,
typed values or ``None`` come out. ``None`` always means "no usable value"
(empty cell, sentinel such as ``N/A``, or unparseable text); it never raises.

Zero is a real value for amounts and integers. A zero arrears amount means the
account was cleared, so it must not collapse into ``None``.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from openpyxl.utils.datetime import from_excel  # Excel serial -> datetime

from .config import EMPTY_SENTINELS, MAX_DATE_YEAR, MIN_DATE_YEAR

CENTS = Decimal("0.01")

# Longest first so "ZMW" is removed before a bare "K" could match
CURRENCY_TOKENS = ("ZMW", "USD", "K", "$", "£", "€")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%Y/%m/%d",
    "%d.%m.%Y",
    "%d %b %Y",
    "%d-%b-%Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%d/%m/%y",
)


def is_empty(raw: Any) -> bool:
    """True for ``None`` and for text that is blank or an empty sentinel."""
    if raw is None:
        return True
    if isinstance(raw, float) and math.isnan(raw):
        return True
    if isinstance(raw, str):
        return raw.strip().upper() in EMPTY_SENTINELS
    return False


def _strip_currency(text: str) -> str:
    upper = text.upper()
    for token in CURRENCY_TOKENS:
        if upper.startswith(token):
            text = text[len(token):].strip()
            upper = text.upper()
        if upper.endswith(token):
            text = text[: -len(token)].strip()
            upper = text.upper()
    return text


def _to_decimal(raw: Any) -> Decimal | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else None
    if isinstance(raw, int):
        return Decimal(raw)
    if isinstance(raw, float):
        if not math.isfinite(raw):
            return None
        return Decimal(str(raw))  # str() avoids binary float artefacts

    text = str(raw).strip()
    negative = False
    if text.startswith("(") and text.endswith(")"):  # Accounting negative
        negative = True
        text = text[1:-1].strip()
    if text.startswith("-"):
        negative = not negative
        text = text[1:].strip()

    text = _strip_currency(text)
    text = text.replace(",", "").replace(" ", "").replace(" ", "")
    if not text:
        return None
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    if not value.is_finite():
        return None
    return -value if negative else value


def parse_amount(raw: Any) -> Decimal | None:
    """Parse a money cell into a two-decimal :class:`Decimal`.

    Thousands separators and currency markers are stripped
    (``"K 1,500.50"`` -> ``Decimal("1500.50")``); empty sentinels and
    unparseable text return ``None``.
    """
    if is_empty(raw):
        return None
    value = _to_decimal(raw)
    if value is None:
        return None
    try:
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:  # Too many digits for the decimal context
        return None


def parse_integer(raw: Any) -> int | None:
    """Parse a whole-number cell; fractional or non-numeric input returns ``None``."""
    if is_empty(raw):
        return None
    value = _to_decimal(raw)
    if value is None or value != value.to_integral_value():
        return None
    return int(value)


def _in_range(value: date) -> date | None:
    if MIN_DATE_YEAR <= value.year <= MAX_DATE_YEAR:
        return value
    return None


def parse_date(raw: Any) -> date | None:
    """Parse a date cell, rejecting any year outside the accepted range.

    Accepts ``date``/``datetime`` objects, Excel serial numbers, ISO strings
    and common day-first formats (``10/01/2026`` is 10 January).
    """
    if is_empty(raw):
        return None
    if isinstance(raw, datetime):
        return _in_range(raw.date())
    if isinstance(raw, date):
        return _in_range(raw)
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float, Decimal)):
        return _from_serial(raw)

    text = str(raw).strip()
    try:
        return _in_range(datetime.fromisoformat(text).date())
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return _in_range(datetime.strptime(text, fmt).date())
        except ValueError:
            continue

    serial = _to_decimal(text)
    if serial is not None:
        return _from_serial(serial)
    return None


def _from_serial(raw: Any) -> date | None:
    try:
        value = from_excel(float(raw))
    except (OverflowError, ValueError):
        return None
    if not isinstance(value, datetime):  # Fractions of a day come back as time
        return None
    return _in_range(value.date())


def parse_identifier(raw: Any) -> str | None:
    """Normalise an NRC cell to trimmed text (``123.0`` -> ``"123"``)."""
    if is_empty(raw) or isinstance(raw, bool):
        return None
    if isinstance(raw, float):
        if raw.is_integer():
            return str(int(raw))
        return str(raw)
    text = str(raw).strip()
    return text or None


__all__ = [
    "is_empty",
    "parse_amount",
    "parse_integer",
    "parse_date",
    "parse_identifier",
]
