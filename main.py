#!/usr/bin/env python3
"""Keihi - Slack expense report bot."""

import argparse
import logging
import sys

from dotenv import load_dotenv
from slack_bolt.adapter.socket_mode import SocketModeHandler

from keihi import Config, ConfigError, KeihiError, SheetsError, configure_logging, __version__
from keihi.credentials import load_credentials
from sheets import ExpenseSheets, SettingsStore
from sheets.ledger import BASE_SHEET_NAME
from slackbot import build_services, create_app
from utils import Housekeeper


logger = logging.getLogger("keihi")


def run_bot(config: Config) -> None:
    """Start the bot in Socket Mode and block until interrupted."""
    if not config.slack_app_token:
        raise ConfigError("SLACK_APP_TOKEN is required to run in Socket Mode")

    services = build_services(config)
    root_name = services.drive.check_root()
    logger.info("Receipts are filed under Drive folder %r", root_name)
    app = create_app(services)

    def cleanup_temp_files():
        services.temp_files.cleanup(config.temp_file_max_age)

    def prune_sessions():
        services.sessions.prune()

    housekeeper = Housekeeper(config.cleanup_interval, [cleanup_temp_files, prune_sessions])
    housekeeper.start()

    logger.info("keihi %s starting (Socket Mode)", __version__)
    try:
        SocketModeHandler(app, config.slack_app_token).start()
    finally:
        housekeeper.stop()


def init_settings(config: Config) -> None:
    """Create or repair the user_settings sheet."""
    creds = load_credentials(config)
    store = SettingsStore.from_credentials(creds, config.settings_spreadsheet_id)
    store.init_sheet()
    print(f"Settings sheet '{store.sheet_name}' ready in {config.settings_spreadsheet_id}")


def inspect_spreadsheet(config: Config, spreadsheet_id: str) -> None:
    """Print the sheets of a user spreadsheet and check for the template."""
    creds = load_credentials(config)
    store = SettingsStore.from_credentials(creds, config.settings_spreadsheet_id)
    sheets = ExpenseSheets.from_credentials(creds, store)

    try:
        found = sheets.list_sheets(spreadsheet_id)
    except Exception as e:
        raise SheetsError(f"Failed to read spreadsheet {spreadsheet_id}: {e}", operation='inspect')
    print(f"Spreadsheet {spreadsheet_id}:")
    for props in found:
        print(f"  - {props['title']} (ID: {props['sheetId']})")

    if any(props['title'] == BASE_SHEET_NAME for props in found):
        print(f"Template sheet '{BASE_SHEET_NAME}' found.")
    else:
        print(f"Warning: template sheet '{BASE_SHEET_NAME}' is missing; "
              "new months can't be created.")


def cli(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Slack expense report bot")
    parser.add_argument("--init-settings", action="store_true",
                        help="Create the user_settings sheet in the settings spreadsheet")
    parser.add_argument("--inspect", metavar="SPREADSHEET_ID",
                        help="List the sheets of a user spreadsheet and exit")
    parser.add_argument("--env-file", default=None,
                        help="Load environment variables from this file (default: .env)")
    parser.add_argument("--version", action="version", version=f"keihi {__version__}")
    args = parser.parse_args(argv)

    load_dotenv(args.env_file)

    try:
        config = Config.from_env()
    except ConfigError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2

    configure_logging(config.log_level)

    try:
        if args.init_settings:
            init_settings(config)
        elif args.inspect:
            inspect_spreadsheet(config, args.inspect)
        else:
            run_bot(config)
    except KeihiError as e:
        logger.error("%s", e.message)
        return 1
    except KeyboardInterrupt:
        logger.info("Stopped")
    return 0


if __name__ == "__main__":
    sys.exit(cli())
