"""Loan-book feed extraction.

This module reads the uploaded loan-book snapshot from an Excel workbook
(``openpyxl``) or a CSV file and returns one ``header -> cell`` mapping per
data row. No parsing happens here; cells are passed on untouched so the
validator can apply the alias table and the empty-value policy.
"""

from __future__ import annotations

import csv
from pathlib import Path  # Filesystem path management
from typing import Any, Dict, List

from openpyxl import load_workbook  # Excel file loader

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}
CSV_SUFFIXES = {".csv"}


def _is_blank_row(row: Dict[str, Any]) -> bool:
    return all(value is None or str(value).strip() == "" for value in row.values())


def read_feed_rows(feed_path: Path | str, sheet_name: str | None = None) -> List[Dict[str, Any]]:
    """Return the feed's data rows keyed by their header text.

    Raises :class:`FileNotFoundError` when the file is missing and
    :class:`ValueError` for unsupported file types or a missing worksheet.
    Fully blank rows are dropped.
    """

    feed_path = Path(feed_path)  # Ensure we have a Path instance
    if not feed_path.exists():
        raise FileNotFoundError(f"Feed not found: {feed_path}")

    suffix = feed_path.suffix.lower()
    if suffix in EXCEL_SUFFIXES:
        return _read_workbook(feed_path, sheet_name)
    if suffix in CSV_SUFFIXES:
        return _read_csv(feed_path)
    raise ValueError(f"Unsupported feed type '{feed_path.suffix}': expected .xlsx or .csv")


def _read_workbook(workbook_path: Path, sheet_name: str | None) -> List[Dict[str, Any]]:
    # Read-only mode for large extracts; cached values instead of formulas
    workbook = load_workbook(filename=workbook_path, read_only=True, data_only=True)
    try:
        if sheet_name is None:
            sheet = workbook.worksheets[0]
        else:
            try:
                sheet = workbook[sheet_name]
            except KeyError as exc:
                raise ValueError(f"Worksheet '{sheet_name}' not found in workbook") from exc

        rows = sheet.iter_rows(values_only=True)
        headers_row = next(rows, None)  # First row holds the column headers
        if headers_row is None:
            return []
        headers = [str(h).strip() if h is not None else "" for h in headers_row]

        records: List[Dict[str, Any]] = []
        for row in rows:
            record = {
                header: row[idx] if idx < len(row) else None
                for idx, header in enumerate(headers)
                if header
            }
            if not _is_blank_row(record):
                records.append(record)
        return records
    finally:
        workbook.close()  # Always close the workbook handle


def _read_csv(csv_path: Path) -> List[Dict[str, Any]]:
    # utf-8-sig drops the BOM spreadsheet tools put in front of the first header
    with csv_path.open(newline="", encoding="utf-8-sig") as handle:
        reader = csv.DictReader(handle)
        records = []
        for row in reader:
            record = {
                key.strip(): value for key, value in row.items() if key is not None
            }
            if not _is_blank_row(record):
                records.append(record)
        return records


__all__ = ["read_feed_rows"]
