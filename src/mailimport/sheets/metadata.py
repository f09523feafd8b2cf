"""
Append-only record of completed imports.

One metadata row per finished (month, year). Its presence is the only
"already imported" signal; rows are never updated or deduplicated, so
re-importing a month means deleting its row by hand first.
"""

from __future__ import annotations
from typing import List, Optional

from mailimport.logging import logger
from mailimport.models import METADATA_HEADERS, MetadataRecord
from mailimport.sheets.client import TableStore


def _parse_record(row: List[str]) -> Optional[MetadataRecord]:
    cells = list(row) + [""] * (len(METADATA_HEADERS) - len(row))
    try:
        return MetadataRecord(
            month=int(float(cells[0])),
            year=int(float(cells[1])),
            email_count=int(float(cells[2] or 0)),
            import_timestamp=cells[3],
            notes=cells[4],
        )
    except (TypeError, ValueError):
        return None


class MetadataLedger:
    def __init__(self, table: TableStore) -> None:
        self.table = table

    def records(self) -> List[MetadataRecord]:
        """Parsed metadata rows in sheet order; unparseable rows are logged and skipped."""
        out: List[MetadataRecord] = []
        for offset, row in enumerate(self.table.get_rows(2), start=2):
            if not any(cell.strip() for cell in row if isinstance(cell, str)):
                continue
            rec = _parse_record(row)
            if rec is None:
                logger.warning(f"Skipping malformed metadata row {offset}: {row}")
                continue
            out.append(rec)
        return out

    def is_imported(self, month: int, year: int) -> bool:
        for rec in self.records():
            if rec.month == month and rec.year == year:
                return True
        return False

    def record(self, month: int, year: int, count: int, timestamp: str, notes: str = "") -> MetadataRecord:
        rec = MetadataRecord(month=month, year=year, email_count=count, import_timestamp=timestamp, notes=notes)
        self.table.append_rows([rec.as_cells()])
        logger.info(f"Recorded completed import {year}-{month:02d} ({count})")
        return rec

    def clear(self) -> None:
        self.table.clear_data_rows(len(METADATA_HEADERS))
