"""Row validation for the loan-book feed.

Turns one raw feed row (a header -> cell mapping) into a tagged result:
:class:`Valid` wrapping a parsed :class:`SyncInputRecord`, or :class:`Skipped`
with the reason. Validation never raises; the orchestrator collects skipped
rows into the run's error list.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping

from .config import COLUMN_ALIASES
from .model import Skipped, SyncInputRecord, Valid
from .parsing import is_empty, parse_amount, parse_date, parse_identifier, parse_integer

MISSING_IDENTIFIER = "Missing NRC Number"


def _normalise_header(header: Any) -> str:
    return str(header).strip().casefold() if header is not None else ""


def resolve_field(row: Mapping[str, Any], field_name: str) -> Any:
    """Return the raw cell for ``field_name`` using the alias table.

    Headers are matched ignoring surrounding whitespace and case. The first
    alias whose cell is non-blank wins; when every present alias is blank the
    first present cell is returned, and ``None`` when no alias is present.
    """
    aliases = COLUMN_ALIASES[field_name]
    by_header = {}
    for header, value in row.items():
        by_header.setdefault(_normalise_header(header), value)

    present = [by_header[key] for key in map(_normalise_header, aliases) if key in by_header]
    for value in present:
        if not is_empty(value):
            return value
    return present[0] if present else None


def validate(
    raw_row: Mapping[str, Any] | SyncInputRecord, row_number: int | None = None
) -> Valid | Skipped:
    """Validate one feed row; rows without an identifier are skipped."""

    if isinstance(raw_row, SyncInputRecord):
        number = raw_row.row_number if raw_row.row_number is not None else row_number
        nrc = parse_identifier(raw_row.nrc_number)
        if nrc is None:
            return Skipped(row_number=number, reason=MISSING_IDENTIFIER)
        # Pre-built records get the same value policy as spreadsheet cells
        record = replace(
            raw_row,
            nrc_number=nrc,
            arrears_amount=parse_amount(raw_row.arrears_amount),
            days_in_arrears=parse_integer(raw_row.days_in_arrears),
            last_payment_date=parse_date(raw_row.last_payment_date),
            row_number=number,
        )
        return Valid(record=record)

    nrc = parse_identifier(resolve_field(raw_row, "nrc_number"))
    if nrc is None:
        return Skipped(row_number=row_number, reason=MISSING_IDENTIFIER)

    record = SyncInputRecord(
        nrc_number=nrc,
        arrears_amount=parse_amount(resolve_field(raw_row, "arrears_amount")),
        days_in_arrears=parse_integer(resolve_field(raw_row, "days_in_arrears")),
        last_payment_date=parse_date(resolve_field(raw_row, "last_payment_date")),
        row_number=row_number,
    )
    return Valid(record=record)


__all__ = ["MISSING_IDENTIFIER", "resolve_field", "validate"]
