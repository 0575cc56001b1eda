"""Per-user settings stored in a shared spreadsheet.

Layout of the ``user_settings`` sheet (row 1 is the header)::

    A: user_id | B: spreadsheet_id | C: email | D: created_at | E: updated_at

Lookups scan every row; the user population is small.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from keihi.errors import SettingsError


logger = logging.getLogger(__name__)

SETTINGS_SHEET_NAME = 'user_settings'
HEADER = ['user_id', 'spreadsheet_id', 'email', 'created_at', 'updated_at']

SPREADSHEET_ID_RE = re.compile(r'^[A-Za-z0-9_-]{20,}$')
EMAIL_RE = re.compile(r'^[^@]+@[^@]+\.[^@]+$')

SETUP_HINT = "/keihi setup [スプレッドシートID] [メールアドレス] で設定してください。"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@dataclass
class UserSettings:
    """One row of the user_settings sheet."""
    user_id: str
    spreadsheet_id: str
    email: str
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: List[str]) -> "UserSettings":
        padded = list(row) + [''] * (len(HEADER) - len(row))
        return cls(*padded[:len(HEADER)])

    def to_row(self) -> List[str]:
        return [self.user_id, self.spreadsheet_id, self.email,
                self.created_at, self.updated_at]


class SettingsStore:
    """Reads and writes the user_settings sheet."""

    def __init__(self, service, spreadsheet_id: str,
                 sheet_name: str = SETTINGS_SHEET_NAME,
                 clock: Callable[[], str] = _utc_now) -> None:
        """
        Args:
            service: Sheets v4 API resource (googleapiclient)
            spreadsheet_id: Spreadsheet holding the settings sheet
            sheet_name: Name of the settings sheet
            clock: Returns the timestamp written to created_at/updated_at
        """
        self.service = service
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self._clock = clock

    @classmethod
    def from_credentials(cls, creds, spreadsheet_id: str) -> "SettingsStore":
        from keihi.credentials import build_sheets_service
        return cls(build_sheets_service(creds), spreadsheet_id)

    @staticmethod
    def is_valid_spreadsheet_id(spreadsheet_id: str) -> bool:
        """Alphanumerics, '-' and '_' only, at least 20 characters."""
        return bool(spreadsheet_id) and bool(SPREADSHEET_ID_RE.match(spreadsheet_id))

    @staticmethod
    def is_valid_email(email: str) -> bool:
        return bool(email) and bool(EMAIL_RE.match(email))

    def _read_rows(self) -> List[List[str]]:
        response = self.service.spreadsheets().values().get(
            spreadsheetId=self.spreadsheet_id,
            range=f"{self.sheet_name}!A2:E",
        ).execute()
        return response.get('values', [])

    def get(self, user_id: str) -> Optional[UserSettings]:
        """Return the settings for a user, or None if there are none.

        Raises:
            SettingsError: If the sheet can't be read
        """
        try:
            rows = self._read_rows()
        except Exception as e:
            logger.error("Failed to read settings for %s: %s", user_id, e)
            raise SettingsError("設定の取得に失敗しました。", user_id, 'getUserSettings')

        for row in rows:
            if row and row[0] == user_id:
                return UserSettings.from_row(row)

        logger.debug("No settings found for user %s", user_id)
        return None

    def save(self, user_id: str, spreadsheet_id: str, email: str) -> UserSettings:
        """Create or update a user's settings row.

        Existing rows keep their created_at; updated_at is always refreshed.

        Raises:
            SettingsError: If the sheet can't be read or written
        """
        now = self._clock()
        try:
            rows = self._read_rows()
            index = next((i for i, row in enumerate(rows) if row and row[0] == user_id), None)

            if index is None:
                settings = UserSettings(user_id, spreadsheet_id, email, now, now)
                self.service.spreadsheets().values().append(
                    spreadsheetId=self.spreadsheet_id,
                    range=f"{self.sheet_name}!A2:E",
                    valueInputOption='RAW',
                    insertDataOption='INSERT_ROWS',
                    body={'values': [settings.to_row()]},
                ).execute()
                logger.info("Created settings for user %s", user_id)
            else:
                existing = UserSettings.from_row(rows[index])
                settings = UserSettings(user_id, spreadsheet_id, email,
                                        existing.created_at or now, now)
                row_number = index + 2
                self.service.spreadsheets().values().update(
                    spreadsheetId=self.spreadsheet_id,
                    range=f"{self.sheet_name}!A{row_number}:E{row_number}",
                    valueInputOption='RAW',
                    body={'values': [settings.to_row()]},
                ).execute()
                logger.info("Updated settings for user %s (row %d)", user_id, row_number)
            return settings
        except Exception as e:
            logger.error("Failed to save settings for %s: %s", user_id, e)
            raise SettingsError("設定の保存に失敗しました。", user_id, 'saveUserSettings')

    def get_spreadsheet_id(self, user_id: str) -> str:
        """Return the user's expense spreadsheet ID.

        Raises:
            SettingsError: If the user hasn't run setup yet
        """
        settings = self.get(user_id)
        if not settings or not settings.spreadsheet_id:
            raise SettingsError(
                f"スプレッドシートが設定されていません。{SETUP_HINT}",
                user_id, 'getSpreadsheetId',
            )
        return settings.spreadsheet_id

    def get_user_email(self, user_id: str) -> str:
        """Return the e-mail address receipts are shared with.

        Raises:
            SettingsError: If no e-mail is configured
        """
        settings = self.get(user_id)
        if not settings or not settings.email:
            raise SettingsError(
                f"メールアドレスが設定されていません。{SETUP_HINT}",
                user_id, 'getUserEmail',
            )
        return settings.email

    def init_sheet(self) -> None:
        """Create the settings sheet with a formatted header row.

        Safe to run more than once: an existing sheet only gets its header
        rewritten.
        """
        try:
            self._init_sheet()
        except Exception as e:
            logger.error("Failed to initialise %s: %s", self.sheet_name, e)
            raise SettingsError("設定シートの作成に失敗しました。", operation='initSheet')

    def _init_sheet(self) -> None:
        meta = self.service.spreadsheets().get(
            spreadsheetId=self.spreadsheet_id,
            fields='sheets.properties',
        ).execute()
        sheet = next((s['properties'] for s in meta.get('sheets', [])
                      if s['properties']['title'] == self.sheet_name), None)

        if sheet is None:
            reply = self.service.spreadsheets().batchUpdate(
                spreadsheetId=self.spreadsheet_id,
                body={'requests': [{'addSheet': {'properties': {'title': self.sheet_name}}}]},
            ).execute()
            sheet_id = reply['replies'][0]['addSheet']['properties']['sheetId']
            logger.info("Created sheet %s", self.sheet_name)
        else:
            sheet_id = sheet['sheetId']

        self.service.spreadsheets().values().update(
            spreadsheetId=self.spreadsheet_id,
            range=f"{self.sheet_name}!A1:E1",
            valueInputOption='RAW',
            body={'values': [HEADER]},
        ).execute()

        self.service.spreadsheets().batchUpdate(
            spreadsheetId=self.spreadsheet_id,
            body={'requests': [
                {
                    'repeatCell': {
                        'range': {'sheetId': sheet_id, 'startRowIndex': 0, 'endRowIndex': 1},
                        'cell': {'userEnteredFormat': {
                            'backgroundColor': {'red': 0.8, 'green': 0.8, 'blue': 0.8},
                            'textFormat': {'bold': True},
                            'horizontalAlignment': 'CENTER',
                        }},
                        'fields': 'userEnteredFormat(backgroundColor,textFormat,horizontalAlignment)',
                    }
                },
                {
                    'updateSheetProperties': {
                        'properties': {'sheetId': sheet_id,
                                       'gridProperties': {'frozenRowCount': 1}},
                        'fields': 'gridProperties.frozenRowCount',
                    }
                },
            ]},
        ).execute()
