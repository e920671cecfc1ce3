"""
Google Sheets Remote Store

DESIGN DECISION: A Google Sheet can serve as the shared remote store
for a small operation because:
1. The owner can read the ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for one lending business)
- No transactions (the replay queue gives us per-row retries instead)
- No access policies, so writes never come back empty unless the row
  is missing

One worksheet per collection, header row first, one record per row.
gspread is synchronous; calls run in a worker thread so the event loop
keeps serving local mutations while a sheet request is in flight.
"""

import asyncio
from typing import Any, Callable, Optional, TypeVar

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from microledger.config import GoogleSheetsSettings
from microledger.models.sync import RemoteCollection
from microledger.models.wire import COLUMNS
from microledger.services.remote.interface import (
    RemoteConnectionError,
    RemoteRequestError,
    RemoteStoreInterface,
    Row,
)


T = TypeVar("T")

_NUMERIC_COLUMNS = {"loan_amount", "interest_rate", "installments", "amount"}
_BOOLEAN_COLUMNS = {"is_edited"}


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self, settings: GoogleSheetsSettings):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise RemoteConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise RemoteConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise RemoteRequestError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}",
                    status_code=404,
                )
        return self._spreadsheet

    def get_sheet(self, collection: RemoteCollection) -> gspread.Worksheet:
        """Get or create the worksheet for a collection."""
        collection = RemoteCollection(collection)
        title = (
            self._settings.customers_sheet_name
            if collection == RemoteCollection.CUSTOMERS
            else self._settings.transactions_sheet_name
        )
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(COLUMNS[collection]),
            )
            sheet.append_row(COLUMNS[collection])
        return sheet


class GoogleSheetsRemoteStore(RemoteStoreInterface):
    """
    Google Sheets implementation of the remote store.

    Cells hold strings; numeric and boolean columns are converted back
    on read so rows leave this class in the same shape as any other
    backend's.
    """

    def __init__(self, client: GoogleSheetsClient):
        self._client = client

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_cells(collection: RemoteCollection, row: Row) -> list:
        """Convert a wire row to spreadsheet cells in column order."""
        cells = []
        for column in COLUMNS[collection]:
            value = row.get(column)
            if value is None:
                cells.append("")
            elif isinstance(value, bool):
                cells.append("TRUE" if value else "FALSE")
            else:
                cells.append(value if isinstance(value, (int, float)) else str(value))
        return cells

    @staticmethod
    def _cells_to_row(collection: RemoteCollection, cells: list) -> Row:
        """Convert spreadsheet cells back to a wire row."""
        # Handle missing columns gracefully
        def safe_get(index: int) -> str:
            try:
                return str(cells[index])
            except IndexError:
                return ""

        row: Row = {}
        for idx, column in enumerate(COLUMNS[collection]):
            raw = safe_get(idx).strip()
            if column in _BOOLEAN_COLUMNS:
                row[column] = raw.upper() == "TRUE"
            elif column in _NUMERIC_COLUMNS:
                if not raw:
                    row[column] = 0
                else:
                    number = float(raw)
                    row[column] = int(number) if number.is_integer() else number
            else:
                row[column] = raw or None
        return row

    # ------------------------------------------------------------------
    # Sheet access
    # ------------------------------------------------------------------

    async def _run(self, fn: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(fn)
        except (RemoteConnectionError, RemoteRequestError):
            raise
        except gspread.exceptions.APIError as e:
            raise RemoteRequestError(
                f"Google Sheets request failed: {e}",
                status_code=getattr(e.response, "status_code", None),
            )
        except Exception as e:
            raise RemoteConnectionError(f"Google Sheets unreachable: {e}")

    def _read_all(self, collection: RemoteCollection) -> tuple[gspread.Worksheet, list[list]]:
        sheet = self._client.get_sheet(collection)
        # Row 1 is the header
        return sheet, sheet.get_all_values()[1:]

    @staticmethod
    def _find(values: list[list], record_id: str) -> Optional[int]:
        """1-based sheet row number of a record, header included."""
        for idx, cells in enumerate(values, start=2):
            if cells and cells[0] == record_id:
                return idx
        return None

    def _write_row(self, sheet: gspread.Worksheet, row_number: int, cells: list) -> None:
        sheet.update(range_name=f"A{row_number}", values=[cells], value_input_option="RAW")

    # ------------------------------------------------------------------
    # RemoteStoreInterface
    # ------------------------------------------------------------------

    async def select_all(self, collection: RemoteCollection) -> list[Row]:
        collection = RemoteCollection(collection)

        def op() -> list[Row]:
            _, values = self._read_all(collection)
            return [self._cells_to_row(collection, c) for c in values if c and c[0]]

        return await self._run(op)

    async def select_range(
        self,
        collection: RemoteCollection,
        start: int,
        end: int,
    ) -> list[Row]:
        rows = await self.select_all(collection)
        return rows[start:end + 1]

    async def insert(self, collection: RemoteCollection, rows: list[Row]) -> list[Row]:
        collection = RemoteCollection(collection)

        def op() -> list[Row]:
            sheet, values = self._read_all(collection)
            existing = {c[0] for c in values if c}
            for row in rows:
                if row["id"] in existing:
                    raise RemoteRequestError(f"Duplicate id: {row['id']}", status_code=409)
            for row in rows:
                sheet.append_row(self._row_to_cells(collection, row), value_input_option="RAW")
            return list(rows)

        return await self._run(op)

    async def upsert(self, collection: RemoteCollection, rows: list[Row]) -> list[Row]:
        collection = RemoteCollection(collection)

        def op() -> list[Row]:
            sheet, values = self._read_all(collection)
            written = []
            for row in rows:
                row_number = self._find(values, row["id"])
                if row_number is None:
                    sheet.append_row(self._row_to_cells(collection, row), value_input_option="RAW")
                else:
                    current = self._cells_to_row(collection, values[row_number - 2])
                    row = {**current, **row}
                    self._write_row(sheet, row_number, self._row_to_cells(collection, row))
                written.append(row)
            return written

        return await self._run(op)

    async def update(
        self,
        collection: RemoteCollection,
        record_id: str,
        fields: Row,
    ) -> list[Row]:
        collection = RemoteCollection(collection)

        def op() -> list[Row]:
            sheet, values = self._read_all(collection)
            row_number = self._find(values, record_id)
            if row_number is None:
                return []
            current = self._cells_to_row(collection, values[row_number - 2])
            merged = {**current, **fields, "id": record_id}
            self._write_row(sheet, row_number, self._row_to_cells(collection, merged))
            return [merged]

        return await self._run(op)

    async def delete(self, collection: RemoteCollection, record_id: str) -> list[Row]:
        collection = RemoteCollection(collection)

        def op() -> list[Row]:
            sheet, values = self._read_all(collection)
            row_number = self._find(values, record_id)
            if row_number is not None:
                sheet.delete_rows(row_number)
            return []

        return await self._run(op)

    async def delete_where(
        self,
        collection: RemoteCollection,
        column: str,
        value: Any,
    ) -> list[Row]:
        collection = RemoteCollection(collection)
        col_idx = COLUMNS[collection].index(column)

        def op() -> list[Row]:
            sheet, values = self._read_all(collection)
            matches = [
                idx for idx, cells in enumerate(values, start=2)
                if len(cells) > col_idx and cells[col_idx] == str(value)
            ]
            # Bottom-up so earlier row numbers stay valid
            for row_number in reversed(matches):
                sheet.delete_rows(row_number)
            return []

        return await self._run(op)

    async def ping(self) -> bool:
        try:
            await self._run(self._client.get_spreadsheet)
            return True
        except (RemoteConnectionError, RemoteRequestError):
            return False
