"""Identifier-only template for the loan-book sync upload.

The template lists every known NRC with blank value columns so the loan-book
team can fill in arrears figures and upload the sheet back.
"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

from openpyxl import Workbook

from .config import TEMPLATE_HEADERS

SHEET_TITLE = "loan_book_sync"


def write_sync_template(identifiers: Iterable[str], output_path: Path | str) -> Path:
    """Write the template as ``.xlsx`` (default) or ``.csv`` and return its path."""

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    blank = [""] * (len(TEMPLATE_HEADERS) - 1)

    if output_path.suffix.lower() == ".csv":
        with output_path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.writer(handle)
            writer.writerow(TEMPLATE_HEADERS)
            for nrc in identifiers:
                writer.writerow([nrc, *blank])
        return output_path

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE
    sheet.append(list(TEMPLATE_HEADERS))
    for nrc in identifiers:
        sheet.append([nrc])
    workbook.save(output_path)
    return output_path


def export_store_template(store, output_path: Path | str) -> Path:
    """Write the template for every identifier currently in ``store``."""
    return write_sync_template(store.list_all_identifiers(), output_path)


__all__ = ["write_sync_template", "export_store_template"]
