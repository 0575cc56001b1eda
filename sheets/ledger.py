"""Monthly expense sheets in a user's spreadsheet.

Each month lives in its own worksheet named ``YYYY_MM``, duplicated from the
``_base`` template. The template fixes the layout:

- rows 2-26 are the entry window; column A is pre-filled with 1..25
- columns B-E hold date, amount, details and memo (plus receipt link)
- C27 holds the total formula
- D3 holds the first day of the month, G3 an optional link to the receipt folder;
  D3 is ignored when looking for a free row

Finding a free row and writing it are two separate calls, so concurrent
submissions for the same month may land on the same row.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from keihi import year_month_of
from keihi.errors import SheetsError, SheetFullError

if TYPE_CHECKING:
    from sheets.settings import SettingsStore


logger = logging.getLogger(__name__)

BASE_SHEET_NAME = '_base'
FIRST_ENTRY_ROW = 2
LAST_ENTRY_ROW = 26
TOTAL_CELL = 'C27'
# (row, column index) written by get_or_create_sheet; not part of any entry
MONTH_START_CELL = (3, 3)
NO_DETAILS = '（内容なし）'
FOLDER_LINK_LABEL = '領収書フォルダ'

_AMOUNT_RE = re.compile(r'^-?\d+$')


def format_sheet_name(year_month: str) -> str:
    """'2025-02' -> '2025_02'"""
    return year_month.replace('-', '_')


def parse_sheet_name(sheet_name: str) -> str:
    """'2025_02' -> '2025-02'"""
    return sheet_name.replace('_', '-')


def format_date(date_str: str, use_slashes: bool = True) -> str:
    """Format a YYYY-MM-DD date for display in a sheet cell."""
    if not use_slashes:
        return date_str
    return date_str.replace('-', '/')


def parse_amount(value) -> Optional[int]:
    """Parse an amount as shown in a sheet cell.

    Currency symbols, thousands separators and whitespace are ignored.

    Returns:
        The amount, or None if the value is not an integer amount
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None

    cleaned = re.sub(r'[¥￥,\s]', '', str(value))
    if not _AMOUNT_RE.match(cleaned):
        return None
    return int(cleaned)


def sheet_url(spreadsheet_id: str, sheet_id) -> str:
    return f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}/edit#gid={sheet_id}"


def _is_blank(row: List, index: int) -> bool:
    return index >= len(row) or str(row[index]).strip() == ''


@dataclass
class SheetInfo:
    sheet_id: int
    title: str


@dataclass
class ExpenseEntry:
    date: str
    amount: int
    details: str


@dataclass
class EntryResult:
    """Outcome of add_entry.

    Attributes:
        success: False only when the month sheet has no free row
        message: Text for the user
        sheet_url: Link to the month sheet
    """
    success: bool
    message: str
    sheet_url: Optional[str] = None
    row: Optional[int] = None


@dataclass
class MonthStatus:
    year_month: str
    count: int = 0
    total: int = 0
    last_update: Optional[str] = None
    sheet_url: Optional[str] = None


@dataclass
class MonthList:
    year_month: str
    entries: List[ExpenseEntry] = field(default_factory=list)
    total: int = 0
    sheet_url: Optional[str] = None


class ExpenseSheets:
    """Row allocator and reader for the monthly expense sheets."""

    EXPORT_URL = "https://docs.google.com/spreadsheets/d/{spreadsheet_id}/export"

    def __init__(self, service, settings: "SettingsStore", http=None) -> None:
        """
        Args:
            service: Sheets v4 API resource (googleapiclient)
            settings: Settings store resolving user -> spreadsheet
            http: Authorised HTTP session used for PDF export (e.g.
                google.auth.transport.requests.AuthorizedSession)
        """
        self.service = service
        self.settings = settings
        self.http = http

    @classmethod
    def from_credentials(cls, creds, settings: "SettingsStore") -> "ExpenseSheets":
        from keihi.credentials import build_http_session, build_sheets_service
        return cls(build_sheets_service(creds), settings, build_http_session(creds))

    # =========================================================================
    # Sheets
    # =========================================================================

    def list_sheets(self, spreadsheet_id: str) -> List[dict]:
        response = self.service.spreadsheets().get(
            spreadsheetId=spreadsheet_id,
            fields='sheets.properties',
        ).execute()
        return [s['properties'] for s in response.get('sheets', [])]

    @staticmethod
    def _match(sheets: List[dict], year_month: str) -> Optional[SheetInfo]:
        # Older spreadsheets name their sheets YYYY-MM
        for title in (format_sheet_name(year_month), year_month):
            for props in sheets:
                if props.get('title') == title:
                    return SheetInfo(sheet_id=props['sheetId'], title=title)
        return None

    def find_sheet(self, spreadsheet_id: str, year_month: str) -> Optional[SheetInfo]:
        """Return the month sheet if it exists."""
        return self._match(self.list_sheets(spreadsheet_id), year_month)

    def get_or_create_sheet(self, user_id: str, year_month: str,
                            folder_url: Optional[str] = None) -> SheetInfo:
        """Return the month sheet, duplicating _base if it doesn't exist yet.

        Args:
            user_id: Slack user ID
            year_month: Month as YYYY-MM
            folder_url: Drive folder linked from G3 of a new sheet

        Raises:
            SettingsError: If the user has no spreadsheet configured
            SheetsError: If _base is missing or an API call fails
        """
        spreadsheet_id = self.settings.get_spreadsheet_id(user_id)
        sheet_name = format_sheet_name(year_month)
        logger.debug("Getting sheet %s for user %s", sheet_name, user_id)

        try:
            sheets = self.list_sheets(spreadsheet_id)
            existing = self._match(sheets, year_month)
            if existing:
                return existing

            base = next((s for s in sheets if s.get('title') == BASE_SHEET_NAME), None)
            if base is None:
                raise SheetsError("_baseシートが見つかりません。", user_id, 'getOrCreateSheet')

            reply = self.service.spreadsheets().batchUpdate(
                spreadsheetId=spreadsheet_id,
                body={'requests': [{
                    'duplicateSheet': {
                        'sourceSheetId': base['sheetId'],
                        'insertSheetIndex': len(sheets),
                        'newSheetName': sheet_name,
                    }
                }]},
            ).execute()
            props = reply['replies'][0]['duplicateSheet']['properties']
            logger.info("Created sheet %s for user %s", sheet_name, user_id)

            self.service.spreadsheets().values().update(
                spreadsheetId=spreadsheet_id,
                range=f"{sheet_name}!D3",
                valueInputOption='USER_ENTERED',
                body={'values': [[format_date(f"{year_month}-01")]]},
            ).execute()

            if folder_url:
                self.service.spreadsheets().values().update(
                    spreadsheetId=spreadsheet_id,
                    range=f"{sheet_name}!G3",
                    valueInputOption='USER_ENTERED',
                    body={'values': [[f'=HYPERLINK("{folder_url}", "{FOLDER_LINK_LABEL}")']]},
                ).execute()

            return SheetInfo(sheet_id=props['sheetId'], title=props.get('title', sheet_name))
        except SheetsError:
            raise
        except Exception as e:
            logger.error("getOrCreateSheet failed for user %s, %s: %s", user_id, year_month, e)
            raise SheetsError("シートの取得/作成に失敗しました。", user_id, 'getOrCreateSheet')

    def find_empty_row(self, spreadsheet_id: str, sheet_title: str,
                       user_id: Optional[str] = None) -> int:
        """Return the first row in the entry window with a number but no data.

        Raises:
            SheetFullError: If every row in the window is taken
        """
        response = self.service.spreadsheets().values().get(
            spreadsheetId=spreadsheet_id,
            range=f"{sheet_title}!A{FIRST_ENTRY_ROW}:E{LAST_ENTRY_ROW}",
        ).execute()
        values = response.get('values', [])

        for offset, row in enumerate(values):
            number = FIRST_ENTRY_ROW + offset
            if _is_blank(row, 0):
                continue
            if all(_is_blank(row, col) or (number, col) == MONTH_START_CELL
                   for col in range(1, 5)):
                return number

        raise SheetFullError(
            "シートに空き行がありません。新しいシートを作成してください。",
            user_id,
        )

    # =========================================================================
    # Entries
    # =========================================================================

    def add_entry(self, user_id: str, date: str, amount: int, details: str,
                  memo: str, file_url: str = "",
                  folder_url: Optional[str] = None) -> EntryResult:
        """Write an expense into the next free row of the month sheet.

        Args:
            user_id: Slack user ID
            date: YYYY-MM-DD; selects the month sheet
            amount: Amount in yen
            details: What the expense was for
            memo: Free-form memo
            file_url: Receipt link, appended to the memo and written to G
            folder_url: Drive folder linked from a newly created sheet

        Returns:
            EntryResult; success is False when the sheet is full

        Raises:
            SettingsError: If the user has no spreadsheet configured
            SheetsError: If any other step fails
        """
        logger.info("Adding entry for user %s on %s", user_id, date)
        spreadsheet_id = self.settings.get_spreadsheet_id(user_id)
        sheet = self.get_or_create_sheet(user_id, year_month_of(date), folder_url)
        url = sheet_url(spreadsheet_id, sheet.sheet_id)

        try:
            row = self.find_empty_row(spreadsheet_id, sheet.title, user_id)
        except SheetFullError as e:
            logger.warning("Sheet %s is full for user %s", sheet.title, user_id)
            return EntryResult(success=False, message=e.message, sheet_url=url)
        except Exception as e:
            logger.error("findEmptyRow failed for user %s: %s", user_id, e)
            raise SheetsError("エントリーの追加に失敗しました。", user_id, 'addEntry')

        memo = memo or ''
        memo_cell = f"{memo}\n{file_url}" if file_url else memo

        try:
            self.service.spreadsheets().values().update(
                spreadsheetId=spreadsheet_id,
                range=f"{sheet.title}!B{row}:E{row}",
                valueInputOption='USER_ENTERED',
                body={'values': [[date, amount, details or NO_DETAILS, memo_cell]]},
            ).execute()

            if file_url:
                self.service.spreadsheets().values().update(
                    spreadsheetId=spreadsheet_id,
                    range=f"{sheet.title}!G{row}",
                    valueInputOption='USER_ENTERED',
                    body={'values': [[file_url]]},
                ).execute()
        except Exception as e:
            logger.error("addEntry failed for user %s, row %d: %s", user_id, row, e)
            raise SheetsError("エントリーの追加に失敗しました。", user_id, 'addEntry')

        logger.info("Entry written to %s row %d", sheet.title, row)
        return EntryResult(success=True, message="経費を登録しました。",
                           sheet_url=url, row=row)

    def _read_month(self, spreadsheet_id: str, sheet: SheetInfo):
        response = self.service.spreadsheets().values().batchGet(
            spreadsheetId=spreadsheet_id,
            ranges=[
                f"{sheet.title}!B{FIRST_ENTRY_ROW}:D{LAST_ENTRY_ROW}",
                f"{sheet.title}!{TOTAL_CELL}",
            ],
        ).execute()
        value_ranges = response.get('valueRanges', [])
        rows = value_ranges[0].get('values', []) if value_ranges else []
        total_values = value_ranges[1].get('values', []) if len(value_ranges) > 1 else []

        entries = []
        for row in rows:
            if _is_blank(row, 0) or _is_blank(row, 1):
                continue
            amount = parse_amount(row[1])
            if amount is None:
                continue
            details = row[2] if not _is_blank(row, 2) else NO_DETAILS
            entries.append(ExpenseEntry(date=str(row[0]), amount=amount, details=details))

        total = None
        if total_values and total_values[0]:
            total = parse_amount(total_values[0][0])
        if total is None:
            total = sum(entry.amount for entry in entries)

        return entries, total

    def get_status(self, user_id: str, year_month: str) -> MonthStatus:
        """Summarise a month: entry count, total and last entry date.

        A month without a sheet is reported as empty; nothing is created.

        Raises:
            SettingsError: If the user has no spreadsheet configured
            SheetsError: If reading the sheet fails
        """
        spreadsheet_id = self.settings.get_spreadsheet_id(user_id)
        try:
            sheet = self.find_sheet(spreadsheet_id, year_month)
            if sheet is None:
                return MonthStatus(year_month=year_month)
            entries, total = self._read_month(spreadsheet_id, sheet)
        except Exception as e:
            logger.error("getStatus failed for user %s, %s: %s", user_id, year_month, e)
            raise SheetsError("ステータスの取得に失敗しました。", user_id, 'getStatus')

        return MonthStatus(
            year_month=year_month,
            count=len(entries),
            total=total,
            last_update=entries[-1].date if entries else None,
            sheet_url=sheet_url(spreadsheet_id, sheet.sheet_id),
        )

    def get_list(self, user_id: str, year_month: str) -> MonthList:
        """Return the month's entries and total.

        Raises:
            SettingsError: If the user has no spreadsheet configured
            SheetsError: If reading the sheet fails
        """
        spreadsheet_id = self.settings.get_spreadsheet_id(user_id)
        try:
            sheet = self.find_sheet(spreadsheet_id, year_month)
            if sheet is None:
                return MonthList(year_month=year_month)
            entries, total = self._read_month(spreadsheet_id, sheet)
        except Exception as e:
            logger.error("getList failed for user %s, %s: %s", user_id, year_month, e)
            raise SheetsError("一覧の取得に失敗しました。", user_id, 'getList')

        return MonthList(
            year_month=year_month,
            entries=entries,
            total=total,
            sheet_url=sheet_url(spreadsheet_id, sheet.sheet_id),
        )

    # =========================================================================
    # Export
    # =========================================================================

    def export_pdf(self, spreadsheet_id: str, sheet: SheetInfo) -> bytes:
        """Export the used range of a month sheet as a one-sheet A4 PDF.

        Raises:
            SheetsError: If no HTTP session is configured or the export fails
        """
        if self.http is None:
            logger.error("PDF export of %s needs an authorised HTTP session", sheet.title)
            raise SheetsError("シートのPDF出力に失敗しました。", operation='exportPdf')

        params = {
            'format': 'pdf',
            'gid': sheet.sheet_id,
            'size': 'A4',
            'portrait': 'true',
            'fitw': 'true',
            'scale': '4',
            'gridlines': 'false',
            'printtitle': 'false',
            'sheetnames': 'false',
            'pagenum': 'false',
            'fzr': 'false',
            'fzc': 'false',
            'top_margin': '0.25',
            'bottom_margin': '0.25',
            'left_margin': '0.25',
            'right_margin': '0.25',
            'range': f"{sheet.title}!A1:E",
        }
        url = self.EXPORT_URL.format(spreadsheet_id=spreadsheet_id)
        logger.debug("Exporting sheet %s as PDF", sheet.title)

        try:
            response = self.http.get(url, params=params)
        except Exception as e:
            logger.error("PDF export request failed for %s: %s", sheet.title, e)
            raise SheetsError("シートのPDF出力に失敗しました。", operation='exportPdf')

        if response.status_code != 200:
            logger.error("PDF export of %s returned HTTP %s", sheet.title, response.status_code)
            raise SheetsError("シートのPDF出力に失敗しました。", operation='exportPdf')
        return response.content

