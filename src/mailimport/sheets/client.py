from __future__ import annotations
from typing import Any, List, Protocol, Sequence

import gspread.exceptions
from gspread.utils import rowcol_to_a1

from mailimport.logging import logger
from mailimport.utils.retry import retry_with_backoff


class TableStore(Protocol):
    """Row-oriented sheet with one header row."""
    def last_row(self) -> int: ...
    def append_rows(self, rows: List[List[Any]]) -> None: ...
    def set_values(self, range_name: str, rows: List[List[Any]]) -> None: ...
    def get_rows(self, start_row: int = 2) -> List[List[str]]: ...
    def count_rows_with(self, column: int, value: str) -> int: ...
    def auto_resize_columns(self, count: int) -> None: ...
    def clear_data_rows(self, width: int) -> None: ...


class SheetsTableStore:
    """
    Thin wrapper around one gspread worksheet.

    Row numbers are 1-based like in the Sheets UI; row 1 is the header.
    """

    HEADER_ROWS = 1

    def __init__(self, worksheet) -> None:
        self.ws = worksheet

    @retry_with_backoff(max_retries=3, initial_delay=1.0, exceptions=(gspread.exceptions.APIError,))
    def last_row(self) -> int:
        """Index of the last non-empty row (0 for an empty sheet), judged by column A."""
        return len(self.ws.col_values(1))

    def append_rows(self, rows: List[List[Any]]) -> None:
        """
        Append all `rows` with a single API call.

        Never retried; on failure the caller keeps its cursor where it was.
        """
        if not rows:
            return
        try:
            self.ws.append_rows(rows, value_input_option="RAW", insert_data_option="INSERT_ROWS")
            logger.debug(f"Appended {len(rows)} rows to '{self.ws.title}'")
        except gspread.exceptions.APIError as e:
            logger.error(f"Google Sheets API error appending {len(rows)} rows: {e}")
            raise

    @retry_with_backoff(max_retries=3, initial_delay=1.0, exceptions=(gspread.exceptions.APIError,))
    def set_values(self, range_name: str, rows: List[List[Any]]) -> None:
        self.ws.update(range_name=range_name, values=rows, value_input_option="RAW")

    @retry_with_backoff(max_retries=3, initial_delay=1.0, exceptions=(gspread.exceptions.APIError,))
    def get_rows(self, start_row: int = 2) -> List[List[str]]:
        """All rows from `start_row` on, as lists of strings."""
        return self.ws.get_all_values()[start_row - 1:]

    @retry_with_backoff(max_retries=3, initial_delay=1.0, exceptions=(gspread.exceptions.APIError,))
    def count_rows_with(self, column: int, value: str) -> int:
        """Number of data rows whose `column` (1-based) equals `value`."""
        cells = self.ws.col_values(column)[self.HEADER_ROWS:]
        return sum(1 for cell in cells if cell == value)

    def auto_resize_columns(self, count: int) -> None:
        """Fit the first `count` columns to their content."""
        try:
            self.ws.columns_auto_resize(0, count)
        except gspread.exceptions.APIError as e:
            # cosmetic; rows are already written
            logger.warning(f"Column auto-resize failed on '{self.ws.title}': {e}")

    def format_header(self, width: int) -> None:
        header = f"A1:{rowcol_to_a1(1, width)}"
        self.ws.format(header, {"textFormat": {"bold": True}})
        self.ws.freeze(rows=self.HEADER_ROWS)

    def clear_data_rows(self, width: int) -> None:
        """Clear every row below the header."""
        last = self.last_row()
        if last <= self.HEADER_ROWS:
            return
        rng = f"A{self.HEADER_ROWS + 1}:{rowcol_to_a1(last, width)}"
        self.ws.batch_clear([rng])
        logger.info(f"Cleared {last - self.HEADER_ROWS} data rows from '{self.ws.title}'")


def open_table(gspread_client, spreadsheet_id: str, sheet_name: str, headers: Sequence[str]) -> SheetsTableStore:
    """
    Open `sheet_name`, creating it when missing, and make sure row 1 holds
    `headers`.

    Raises:
        gspread.exceptions.APIError: If API call fails
        gspread.exceptions.SpreadsheetNotFound: If the spreadsheet doesn't exist
    """
    sh = gspread_client.open_by_key(spreadsheet_id)
    try:
        ws = sh.worksheet(sheet_name)
    except gspread.exceptions.WorksheetNotFound:
        logger.info(f"Worksheet '{sheet_name}' not found, creating it")
        ws = sh.add_worksheet(title=sheet_name, rows=1000, cols=len(headers))

    table = SheetsTableStore(ws)
    if table.last_row() == 0:
        table.set_values("A1", [list(headers)])
        table.format_header(len(headers))
        logger.info(f"Wrote header row to '{sheet_name}'")
    return table
