"""Shared fixtures: keihi services wired to in-memory Google fakes."""

import io

import pytest
from PIL import Image
from reportlab.pdfgen import canvas

from fakes import FakeDriveService, FakeHttp, FakeSheetsService, FakeSlackClient
from keihi import Config
from sheets import ExpenseSheets, SettingsStore
from storage import GDriveDriver
from utils import TTLCache, TempFiles
from workflows import ExpenseSubmitter, ReportExporter


SETTINGS_ID = 'SETTINGS_SPREADSHEET_0001'
USER_SHEET_ID = 'AAAAAAAAAAAAAAAAAAAA'
USER_ID = 'U012345'
USER_EMAIL = 'taro@example.com'
ROOT_FOLDER = 'root'


def make_pdf(*texts: str) -> bytes:
    """Build a small A4 PDF with one page per text."""
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(595, 842))
    for text in texts:
        c.drawString(72, 770, text)
        c.showPage()
    c.save()
    return buf.getvalue()


def make_png(width: int, height: int, color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new('RGB', (width, height), color).save(buf, format='PNG')
    return buf.getvalue()


@pytest.fixture
def sheets_service():
    service = FakeSheetsService()
    service.add_spreadsheet(SETTINGS_ID)
    service.add_sheet(SETTINGS_ID, 'user_settings', {
        (1, 0): 'user_id', (1, 1): 'spreadsheet_id', (1, 2): 'email',
        (1, 3): 'created_at', (1, 4): 'updated_at',
    })
    service.add_spreadsheet(USER_SHEET_ID)
    service.add_base_sheet(USER_SHEET_ID)
    return service


@pytest.fixture
def drive_service():
    return FakeDriveService()


@pytest.fixture
def http():
    return FakeHttp(make_pdf("sheet"))


@pytest.fixture
def settings(sheets_service):
    ticks = iter(f"2025-02-0{i}T00:00:00.000Z" for i in range(1, 10))
    return SettingsStore(sheets_service, SETTINGS_ID, clock=lambda: next(ticks))


@pytest.fixture
def configured_settings(settings):
    """Settings store with USER_ID already set up."""
    settings.save(USER_ID, USER_SHEET_ID, USER_EMAIL)
    return settings


@pytest.fixture
def expense_sheets(sheets_service, settings, http):
    return ExpenseSheets(sheets_service, settings, http)


@pytest.fixture
def drive(drive_service, settings):
    return GDriveDriver(drive_service, ROOT_FOLDER, settings)


@pytest.fixture
def config(tmp_path):
    return Config(
        slack_bot_token='xoxb-test',
        settings_spreadsheet_id=SETTINGS_ID,
        drive_root_folder_id=ROOT_FOLDER,
        temp_dir=str(tmp_path / 'tmp'),
    )


@pytest.fixture
def services(config, settings, expense_sheets, drive):
    from slackbot import Services
    return Services(
        config=config,
        settings=settings,
        sheets=expense_sheets,
        drive=drive,
        submitter=ExpenseSubmitter(expense_sheets, drive),
        exporter=ReportExporter(settings, expense_sheets, drive),
        sessions=TTLCache(config.session_timeout),
        temp_files=TempFiles(config.temp_dir),
    )


@pytest.fixture
def slack_client():
    return FakeSlackClient(email=USER_EMAIL)
