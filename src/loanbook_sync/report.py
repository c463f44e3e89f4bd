from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from loanbook_sync.model import SyncSummary

SYNC_TIME_FORMAT = "%d/%m/%Y %H:%M"
NEVER_SYNCED = "Not yet run"


def iso_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def format_sync_time(timestamp: datetime | None) -> str:
    """Render the last sync time in local time; naive values are taken as UTC."""
    if timestamp is None:
        return NEVER_SYNCED
    if timestamp.tzinfo is None:  # SQLite drops the offset of stored UTC values
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone().strftime(SYNC_TIME_FORMAT)


def build_report_payload(summary: SyncSummary) -> Dict[str, Any]:
    """Build JSON payload for a finished sync run."""

    payload = summary.to_payload()
    payload["timestamp"] = iso_timestamp()
    payload["error"] = None if summary.success else "; ".join(summary.errors)
    return payload


def build_error_payload(exc: BaseException) -> Dict[str, Any]:
    payload = SyncSummary.failed(str(exc)).to_payload()
    payload["timestamp"] = iso_timestamp()
    payload["error"] = str(exc)
    return payload


def write_payload(payload: Dict[str, Any], output_path: Path) -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    return output_path


def write_report_to_json(summary: SyncSummary, output_path: Path) -> Path:
    return write_payload(build_report_payload(summary), output_path)


__all__ = [
    "iso_timestamp",
    "format_sync_time",
    "build_report_payload",
    "build_error_payload",
    "write_report_to_json",
    "write_payload",
]
