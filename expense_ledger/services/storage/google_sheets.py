"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the storage backend because:
1. The household can open the ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for a personal ledger)
- No transactions (the reconciler does not need them)
- Limited query capabilities (we filter in Python)
- Calls run on the event loop thread, so a batch of balance writes
  is issued one after another rather than in parallel

Transport retries live here, not in the engine. Reads and field updates
are retried because repeating them is harmless. Inserts are not: a
retried insert could add the same entry twice.
"""

import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from pydantic import ValidationError
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from expense_ledger.config import get_settings
from expense_ledger.config.settings import GoogleSheetsSettings
from expense_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from expense_ledger.models.entry import Entry, EntryFilter, EntryType, NewEntry
from expense_ledger.queries.predicates import filter_entries
from expense_ledger.services.storage.interface import (
    AuditStorageInterface,
    EntryNotFoundError,
    LedgerStoreInterface,
    StoreConnectionError,
    StoreError,
)


logger = structlog.get_logger(__name__)


# Column mappings for Entries sheet
ENTRY_COLUMNS = [
    "id",
    "date",
    "particulars",
    "type",
    "comments",
    "amount",
    "balance",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# The id sequence lives in its own sheet so deleting the newest entry
# never lets its id be handed out again.
META_SHEET_NAME = "LedgerMeta"
NEXT_ID_KEY = "next_id"

transport_retry = retry(
    retry=retry_if_exception_type(gspread.exceptions.APIError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet lookup.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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
                raise StoreConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}",
                    operation="connect",
                )
            except Exception as e:
                raise StoreConnectionError(
                    f"Failed to connect to Google Sheets: {e}",
                    operation="connect",
                )

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
                raise StoreConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}",
                    operation="connect",
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, header: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(header),
            )
            sheet.append_row(header)
        return sheet

    def get_entries_sheet(self) -> gspread.Worksheet:
        """Get or create the Entries worksheet."""
        return self._get_or_create(
            self._settings.entries_sheet_name, ENTRY_COLUMNS, rows=1000
        )

    def get_meta_sheet(self) -> gspread.Worksheet:
        """Get or create the worksheet holding the id sequence."""
        return self._get_or_create(META_SHEET_NAME, [NEXT_ID_KEY, "1"], rows=10)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


def _format_decimal(value: Optional[Decimal]) -> str:
    return f"{value:.2f}" if value is not None else ""


def _format_cell(field: str, value: Any) -> str:
    """Serialize one field value the way it is stored in its column."""
    if value is None:
        return ""
    if field == "date":
        return value.isoformat() if isinstance(value, date) else str(value)
    if field == "type":
        return value.value if isinstance(value, EntryType) else str(value)
    if field in ("amount", "balance"):
        return _format_decimal(Decimal(str(value)))
    return str(value)


class GoogleSheetsLedgerStore(LedgerStoreInterface):
    """
    Google Sheets implementation of the ledger store.

    One entry per row. Balances are written as text with two fraction
    digits so the sheet shows exactly what the engine computed.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _entry_to_row(self, entry: Entry) -> list:
        """Convert an Entry to a spreadsheet row."""
        return [_format_cell(field, getattr(entry, field)) for field in ENTRY_COLUMNS]

    def _row_to_entry(self, row: list) -> Entry:
        """Convert a spreadsheet row to an Entry."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return Entry(
            id=int(safe_get(0)),
            date=date.fromisoformat(safe_get(1)),
            particulars=safe_get(2),
            type=EntryType(safe_get(3)),
            comments=safe_get(4),
            amount=Decimal(safe_get(5)),
            balance=Decimal(safe_get(6)) if safe_get(6) else None,
        )

    @transport_retry
    def _fetch_rows(self) -> list[list[str]]:
        return self._client.get_entries_sheet().get_all_values()[1:]

    def _find_row(self, entry_id: int, operation: str) -> int:
        """1-based sheet row of an entry (row 1 is the header)."""
        ids = self._client.get_entries_sheet().col_values(1)
        for idx, value in enumerate(ids[1:], start=2):
            if value == str(entry_id):
                return idx
        raise EntryNotFoundError(
            f"Entry not found: {entry_id}",
            operation=operation,
            entry_id=entry_id,
        )

    def _next_id(self, rows: list[list[str]]) -> int:
        meta = self._client.get_meta_sheet()
        values = meta.get_all_values()
        try:
            counter = int(values[0][1])
        except (IndexError, ValueError):
            counter = 1
        highest = max((int(row[0]) for row in rows if row and row[0].isdigit()), default=0)
        return max(counter, highest + 1)

    async def list_entries(
        self,
        entry_filter: Optional[EntryFilter] = None,
    ) -> list[Entry]:
        """List entries, filtering in Python."""
        try:
            rows = self._fetch_rows()
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Failed to list entries: {e}", operation="list")

        entries = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                entries.append(self._row_to_entry(row))
            except (ValueError, InvalidOperation, ValidationError) as e:
                logger.warning("malformed_entry_row", row=row, error=str(e))

        return filter_entries(entries, entry_filter)

    async def insert_entry(self, entry: NewEntry) -> Entry:
        """Append a new entry row and advance the id sequence."""
        try:
            rows = self._fetch_rows()
            new_id = self._next_id(rows)
            stored = Entry(id=new_id, **entry.entry_fields())

            # Reserve the id first: a failure here wastes an id, never a row
            self._client.get_meta_sheet().update(
                values=[[NEXT_ID_KEY, str(new_id + 1)]],
                range_name="A1:B1",
                value_input_option="RAW",
            )
            sheet = self._client.get_entries_sheet()
            sheet.append_row(self._entry_to_row(stored), value_input_option="RAW")
            return stored
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(f"Failed to insert entry: {e}", operation="insert")

    @transport_retry
    def _write_cells(self, row_idx: int, fields: dict[str, Any]) -> None:
        sheet = self._client.get_entries_sheet()
        updates = [
            {
                "range": rowcol_to_a1(row_idx, ENTRY_COLUMNS.index(field) + 1),
                "values": [[_format_cell(field, value)]],
            }
            for field, value in fields.items()
        ]
        sheet.batch_update(updates, value_input_option="RAW")

    async def update_entry_fields(
        self,
        entry_id: int,
        fields: dict[str, Any],
    ) -> None:
        """Overwrite only the given cells of one row."""
        unknown = [field for field in fields if field not in ENTRY_COLUMNS]
        if "id" in fields or unknown:
            raise StoreError(
                f"Cannot update fields {sorted(set(unknown) | ({'id'} & set(fields)))}",
                operation="update",
                entry_id=entry_id,
            )
        try:
            row_idx = self._find_row(entry_id, operation="update")
            self._write_cells(row_idx, fields)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(
                f"Failed to update entry {entry_id}: {e}",
                operation="update",
                entry_id=entry_id,
            )

    async def delete_entry(self, entry_id: int) -> None:
        """Delete an entry row."""
        try:
            row_idx = self._find_row(entry_id, operation="delete")
            self._client.get_entries_sheet().delete_rows(row_idx)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(
                f"Failed to delete entry {entry_id}: {e}",
                operation="delete",
                entry_id=entry_id,
            )


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _read_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, ValidationError) as e:
                logger.warning("malformed_audit_row", row=row, error=str(e))
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging must not break the main flow
            logger.error(
                "audit_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [
                e for e in self._read_events() if e.correlation_id == correlation_id
            ]
        except Exception as e:
            raise StoreError(f"Failed to get audit events: {e}", operation="audit_read")

        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._read_events()
        except Exception as e:
            raise StoreError(f"Failed to get audit events: {e}", operation="audit_read")

        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
