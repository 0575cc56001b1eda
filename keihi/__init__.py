"""Keihi - Slack expense report bot. Configuration and shared helpers."""

import logging
import os
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Mapping, Optional
from zoneinfo import ZoneInfo

from rich.logging import RichHandler

from .errors import (
    ErrorKind,
    KeihiError,
    ConfigError,
    SettingsError,
    ValidationError,
    SheetsError,
    SheetFullError,
    ExportError,
    PDFError,
    OCRError,
)

__version__ = "0.1.0"

YEAR_MONTH_RE = re.compile(r'^(\d{4})-(0[1-9]|1[0-2])$')
DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Config:
    """Runtime configuration, read from environment variables.

    Attributes:
        slack_bot_token: Bot token (xoxb-...)
        slack_app_token: App-level token for Socket Mode (xapp-...)
        slack_signing_secret: Request signing secret (optional in Socket Mode)
        google_client_email: Service account e-mail
        google_private_key: Service account private key (PEM)
        google_service_account_json: Whole service account key as JSON, used
            when client e-mail/private key are not given separately
        settings_spreadsheet_id: Spreadsheet holding the user_settings sheet
        drive_root_folder_id: Drive folder under which user folders live
        ocr_enabled: Pre-fill the receipt modal with OCR results
        mistral_api_key: API key for the OCR provider
        timezone: Timezone used to compute "today" and the current month
        temp_dir: Directory for export artefacts
        log_level: Logging level name
    """
    slack_bot_token: str
    slack_app_token: Optional[str] = None
    slack_signing_secret: Optional[str] = None
    google_client_email: Optional[str] = None
    google_private_key: Optional[str] = None
    google_service_account_json: Optional[str] = None
    settings_spreadsheet_id: str = ""
    drive_root_folder_id: str = ""
    ocr_enabled: bool = False
    mistral_api_key: Optional[str] = None
    timezone: str = "Asia/Tokyo"
    temp_dir: Optional[str] = None
    log_level: str = "INFO"
    session_timeout: float = 5 * 60
    temp_file_max_age: float = 60 * 60
    cleanup_interval: float = 5 * 60

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Build configuration from the environment.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Config instance

        Raises:
            ConfigError: If a required variable is missing
        """
        env = os.environ if environ is None else environ

        missing = [name for name in (
            'SLACK_BOT_TOKEN',
            'SETTINGS_SPREADSHEET_ID',
            'GOOGLE_DRIVE_ROOT_FOLDER_ID',
        ) if not env.get(name)]

        has_key_pair = env.get('GOOGLE_CLIENT_EMAIL') and env.get('GOOGLE_PRIVATE_KEY')
        if not has_key_pair and not env.get('GOOGLE_SERVICE_ACCOUNT_JSON'):
            missing.append('GOOGLE_CLIENT_EMAIL/GOOGLE_PRIVATE_KEY')

        if missing:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        private_key = env.get('GOOGLE_PRIVATE_KEY')
        if private_key:
            # Keys pasted into .env files usually carry literal "\n"
            private_key = private_key.replace('\\n', '\n')

        return cls(
            slack_bot_token=env['SLACK_BOT_TOKEN'],
            slack_app_token=env.get('SLACK_APP_TOKEN'),
            slack_signing_secret=env.get('SLACK_SIGNING_SECRET'),
            google_client_email=env.get('GOOGLE_CLIENT_EMAIL'),
            google_private_key=private_key,
            google_service_account_json=env.get('GOOGLE_SERVICE_ACCOUNT_JSON'),
            settings_spreadsheet_id=env['SETTINGS_SPREADSHEET_ID'],
            drive_root_folder_id=env['GOOGLE_DRIVE_ROOT_FOLDER_ID'],
            ocr_enabled=env.get('OCR_ENABLED', '').strip().lower() in _TRUE_VALUES,
            mistral_api_key=env.get('MISTRAL_API_KEY'),
            timezone=env.get('KEIHI_TZ', 'Asia/Tokyo'),
            temp_dir=env.get('KEIHI_TEMP_DIR'),
            log_level=env.get('LOG_LEVEL', 'INFO').upper(),
        )

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def configure_logging(level: str = "INFO") -> None:
    """Route all log records through a Rich console handler."""
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="[%Y-%m-%d %H:%M:%S]",
        handlers=[RichHandler(rich_tracebacks=True, markup=False)],
        force=True,
    )
    # googleapiclient logs every discovery document fetch at INFO
    logging.getLogger('googleapiclient.discovery_cache').setLevel(logging.ERROR)


# ---------------------------------------------------------------------------
# Year-month helpers
# ---------------------------------------------------------------------------

def today(tz: Optional[ZoneInfo] = None) -> date:
    """Return today's date in the given timezone."""
    return datetime.now(tz).date()


def current_year_month(tz: Optional[ZoneInfo] = None) -> str:
    """Return the current month as YYYY-MM."""
    return today(tz).strftime("%Y-%m")


def year_month_of(date_str: str) -> str:
    """Return the YYYY-MM part of a YYYY-MM-DD date string."""
    return date_str[:7]


def is_valid_year_month(value: str) -> bool:
    return bool(YEAR_MONTH_RE.match(value))


def validate_year_month(value: str, user_id: Optional[str] = None) -> str:
    """Normalise a user-supplied month and check its format.

    Accepts YYYY-MM, YYYY_MM and YYYY/MM.

    Raises:
        ValidationError: If the value is not a valid month
    """
    normalized = value.strip().replace('_', '-').replace('/', '-')
    if not is_valid_year_month(normalized):
        raise ValidationError(
            f"年月の形式が正しくありません: {value}（例: 2025-02）",
            user_id,
        )
    return normalized


def validate_date(value: str, user_id: Optional[str] = None) -> str:
    """Check that a date is a real calendar day in YYYY-MM-DD form.

    Raises:
        ValidationError: If the value is not a valid date
    """
    if not DATE_RE.match(value or ''):
        raise ValidationError(f"日付の形式が正しくありません: {value}", user_id)
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise ValidationError(f"存在しない日付です: {value}", user_id)
    return value


__all__ = [
    '__version__',
    'Config',
    'configure_logging',
    'today',
    'current_year_month',
    'year_month_of',
    'is_valid_year_month',
    'validate_year_month',
    'validate_date',
    'ErrorKind',
    'KeihiError',
    'ConfigError',
    'SettingsError',
    'ValidationError',
    'SheetsError',
    'SheetFullError',
    'ExportError',
    'PDFError',
    'OCRError',
]
