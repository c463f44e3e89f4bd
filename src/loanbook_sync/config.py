"""Central configuration for the loan-book reconciliation engine.

This module is the single source of truth for:

- Column aliases accepted in the loan-book feed (raw header -> canonical field)
- Template headers written for the identifier-only sync template
- Run defaults (chunk size, chunk failure policy, operator, database URL)

Values that differ per deployment are read from the environment by
:func:`load_config`::

    LOANBOOK_DB_URL                 SQLAlchemy database URL
    LOANBOOK_CHUNK_SIZE             records per chunk (positive integer)
    LOANBOOK_HALT_ON_CHUNK_FAILURE  "true"/"false"
    LOANBOOK_OPERATOR_ID            operator recorded on the sync batch
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

# --- Feed columns ---------------------------------------------------------------

# Canonical field -> accepted raw headers, in priority order. The feed format
# drifts between loan-book extracts, so every field tolerates several labels.
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "nrc_number": ("NRC Number", "nrc_number", "NRC"),
    "arrears_amount": ("Amount Owed", "Arrears Amount", "arrears_amount"),
    "days_in_arrears": ("Days in Arrears", "days_in_arrears"),
    "last_payment_date": (
        "Last Payment Date - Loan Book",
        "Last Payment Date",
        "last_payment_date",
    ),
}

TEMPLATE_HEADERS: tuple[str, ...] = (
    "NRC Number",
    "Arrears Amount",
    "Days in Arrears",
    "Last Payment Date",
)

# Cell values that mean "no value supplied" (compared case-insensitively)
EMPTY_SENTINELS = frozenset({"", "N/A", "#N/A", "NA", "NULL", "NONE", "NAN", "-"})

# Accepted range for loan-book dates; anything else is spreadsheet corruption
MIN_DATE_YEAR = 1900
MAX_DATE_YEAR = 2100


# --- Run defaults ---------------------------------------------------------------

DEFAULT_CHUNK_SIZE = 500
DEFAULT_OPERATOR_ID = "system"
DEFAULT_DATABASE_URL = "sqlite:///loanbook.db"


@dataclass(frozen=True)
class SyncConfig:
    """
    Settings for one reconciliation run.

    chunk_size:
        Number of feed rows applied per store transaction.
    halt_on_chunk_failure:
        When True a chunk that fails at the store stops the run; later chunks
        are never attempted. When False later chunks are attempted
        independently.
    operator_id:
        Recorded on the sync batch and every audit row.
    database_url:
        SQLAlchemy URL of the customer/ticket store.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    halt_on_chunk_failure: bool = True
    operator_id: str = DEFAULT_OPERATOR_ID
    database_url: str = DEFAULT_DATABASE_URL

    def __post_init__(self) -> None:
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")


DEFAULT_CONFIG = SyncConfig()

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_bool(value: str, name: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {name}: {value!r}")


def load_config(environ: Mapping[str, str] | None = None) -> SyncConfig:
    """Build a :class:`SyncConfig` from environment variables over the defaults."""

    env = os.environ if environ is None else environ

    chunk_size = DEFAULT_CHUNK_SIZE
    raw_chunk = env.get("LOANBOOK_CHUNK_SIZE")
    if raw_chunk:
        try:
            chunk_size = int(raw_chunk)
        except ValueError as exc:
            raise ValueError(f"Invalid LOANBOOK_CHUNK_SIZE: {raw_chunk!r}") from exc

    halt = True
    raw_halt = env.get("LOANBOOK_HALT_ON_CHUNK_FAILURE")
    if raw_halt:
        halt = _env_bool(raw_halt, "LOANBOOK_HALT_ON_CHUNK_FAILURE")

    return SyncConfig(
        chunk_size=chunk_size,
        halt_on_chunk_failure=halt,
        operator_id=env.get("LOANBOOK_OPERATOR_ID") or DEFAULT_OPERATOR_ID,
        database_url=env.get("LOANBOOK_DB_URL") or DEFAULT_DATABASE_URL,
    )


__all__ = [
    "COLUMN_ALIASES",
    "TEMPLATE_HEADERS",
    "EMPTY_SENTINELS",
    "MIN_DATE_YEAR",
    "MAX_DATE_YEAR",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_OPERATOR_ID",
    "DEFAULT_DATABASE_URL",
    "SyncConfig",
    "DEFAULT_CONFIG",
    "load_config",
]
