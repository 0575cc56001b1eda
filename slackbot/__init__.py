"""Slack front end for keihi, built on Slack Bolt.

Usage:
    from slackbot import build_services, create_app

    services = build_services(config)
    app = create_app(services)
    SocketModeHandler(app, config.slack_app_token).start()
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from slack_bolt import App

from keihi import Config
from keihi.credentials import load_credentials
from ocr import OCRBackend, create_scanner
from sheets import ExpenseSheets, SettingsStore
from storage import GDriveDriver
from utils import TTLCache, TempFiles
from workflows import ExpenseSubmitter, ReportExporter
from .handlers import ExpenseBot, download_slack_file


logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything the Slack listeners need, constructed once at start-up."""
    config: Config
    settings: SettingsStore
    sheets: ExpenseSheets
    drive: GDriveDriver
    submitter: ExpenseSubmitter
    exporter: ReportExporter
    sessions: TTLCache[Dict[str, Any]]
    temp_files: TempFiles
    scanner: Optional[OCRBackend] = None


def build_services(config: Config) -> Services:
    """Construct the Google API clients and services from configuration.

    Raises:
        ConfigError: If the Google credentials are invalid
        OCRError: If OCR is enabled without an API key
    """
    creds = load_credentials(config)
    settings = SettingsStore.from_credentials(creds, config.settings_spreadsheet_id)
    sheets = ExpenseSheets.from_credentials(creds, settings)
    drive = GDriveDriver.from_credentials(creds, config.drive_root_folder_id, settings)

    scanner = create_scanner(config)
    if scanner is not None:
        logger.info("Receipt OCR enabled (%s)", scanner.name)

    return Services(
        config=config,
        settings=settings,
        sheets=sheets,
        drive=drive,
        submitter=ExpenseSubmitter(sheets, drive),
        exporter=ReportExporter(settings, sheets, drive),
        sessions=TTLCache(config.session_timeout),
        temp_files=TempFiles(config.temp_dir),
        scanner=scanner,
    )


def create_app(services: Services, **app_kwargs) -> App:
    """Create the Bolt app with all keihi listeners registered."""
    config = services.config
    kwargs = {'token': config.slack_bot_token}
    if config.slack_signing_secret:
        kwargs['signing_secret'] = config.slack_signing_secret
    kwargs.update(app_kwargs)

    app = App(**kwargs)
    ExpenseBot(services).register(app)
    return app


__all__ = [
    'Services',
    'build_services',
    'create_app',
    'ExpenseBot',
    'download_slack_file',
]
