"""Slack listeners for the `/keihi` command, the message shortcut and modals.

Every listener acknowledges first and then does the work. Errors are turned
into chat text by ``messages.render_error`` and sent to the user.
"""

import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, Optional

import requests
from slack_sdk.errors import SlackApiError

from keihi import current_year_month, today, validate_year_month
from keihi.errors import KeihiError, SettingsError, ValidationError
from sheets.settings import SettingsStore
from utils.ttl_cache import session_key
from workflows.entry import Receipt, validate_amount
from . import messages
from .commands import parse_add_args, parse_command
from .views import (
    EXPENSE_DIRECT_MODAL,
    EXPENSE_MODAL,
    SHORTCUT_CALLBACK,
    expense_modal,
    read_metadata,
    read_modal,
)

if TYPE_CHECKING:
    from slack_bolt import App
    from . import Services


logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT = 60
WAITING_FOR_FILE = 'waiting_for_file'


def download_slack_file(url: str, token: str) -> bytes:
    """Fetch a private Slack file with the bot token.

    Raises:
        KeihiError: If the download fails
    """
    try:
        response = requests.get(
            url,
            headers={'Authorization': f'Bearer {token}'},
            timeout=DOWNLOAD_TIMEOUT,
        )
    except requests.RequestException as e:
        logger.error("Slack file download failed: %s", e)
        raise KeihiError("ファイルのダウンロードに失敗しました。", operation='downloadSlackFile')

    if response.status_code != 200:
        logger.error("Slack file download returned HTTP %s", response.status_code)
        raise KeihiError("ファイルのダウンロードに失敗しました。", operation='downloadSlackFile')
    return response.content


class ExpenseBot:
    """Slack listeners bound to a set of services."""

    def __init__(self, services: "Services") -> None:
        self.services = services
        self.config = services.config

    def register(self, app: "App") -> None:
        app.command('/keihi')(self.handle_command)
        app.shortcut(SHORTCUT_CALLBACK)(self.handle_shortcut)
        app.view(EXPENSE_MODAL)(self.handle_expense_modal)
        app.view(EXPENSE_DIRECT_MODAL)(self.handle_expense_modal)
        app.event({'type': 'message', 'subtype': 'file_share'})(self.handle_file_share)
        # All other message events
        app.event('message')(self.ignore_event)

    def ignore_event(self) -> None:
        pass

    def today(self) -> str:
        return today(self.config.tz).isoformat()

    def notify(self, client, user_id: str, text: str, thread_ts: Optional[str] = None,
               channel: Optional[str] = None) -> None:
        """Post a message, by default as a DM to the user."""
        try:
            client.chat_postMessage(channel=channel or user_id, text=text, thread_ts=thread_ts)
        except SlackApiError as e:
            logger.error("Failed to send message to %s: %s", channel or user_id, e)

    def open_modal(self, client, trigger_id: str, metadata: Dict[str, Any],
                   has_file: bool = False, initial_date: Optional[str] = None,
                   initial_amount: Optional[int] = None) -> None:
        view = expense_modal(initial_date or self.today(), metadata, has_file, initial_amount)
        client.views_open(trigger_id=trigger_id, view=view)

    # =========================================================================
    # Slash command
    # =========================================================================

    def handle_command(self, ack, command, respond, client) -> None:
        """Dispatch `/keihi [subcommand] [args]`."""
        ack()
        user_id = command['user_id']
        cmd = parse_command(command.get('text'))
        logger.info("/keihi %s from %s", cmd.name, user_id)

        try:
            if not cmd.known or cmd.name == 'help':
                respond(messages.HELP_TEXT)
            elif cmd.name == 'add' and not cmd.args:
                self.open_modal(client, command['trigger_id'], {
                    'user_id': user_id,
                    'channel_id': command.get('channel_id'),
                })
            elif cmd.name == 'add':
                self.command_add(cmd.args, user_id, command.get('channel_id'), respond)
            elif cmd.name == 'setup':
                self.command_setup(cmd.args, user_id, respond, client)
            elif cmd.name == 'config':
                respond(messages.config_text(self.services.settings.get(user_id)))
            elif cmd.name == 'status':
                year_month = self.month_arg(cmd.arg(0), user_id)
                respond(messages.status_text(self.services.sheets.get_status(user_id, year_month)))
            elif cmd.name == 'list':
                year_month = self.month_arg(cmd.arg(0), user_id)
                respond(messages.list_text(self.services.sheets.get_list(user_id, year_month)))
            elif cmd.name == 'export':
                year_month = self.month_arg(cmd.arg(0), user_id)
                self.start_export(client, user_id, year_month)
        except Exception as e:
            respond(messages.render_error(e))

    def month_arg(self, value: Optional[str], user_id: str) -> str:
        if not value:
            return current_year_month(self.config.tz)
        return validate_year_month(value, user_id)

    def command_add(self, args, user_id: str, channel_id: Optional[str], respond) -> None:
        amount, details = parse_add_args(args, user_id)
        self.services.settings.get_spreadsheet_id(user_id)
        self.services.sessions.set(session_key(user_id, channel_id), {
            'status': WAITING_FOR_FILE,
            'amount': amount,
            'details': details,
        })
        minutes = int(self.services.sessions.ttl // 60)
        respond(messages.waiting_for_file_text(amount, details, minutes))

    def command_setup(self, args, user_id: str, respond, client) -> None:
        spreadsheet_id = args[0] if args else ''
        if not SettingsStore.is_valid_spreadsheet_id(spreadsheet_id):
            raise ValidationError(
                "スプレッドシートIDの形式が正しくありません。\n"
                "/keihi setup [スプレッドシートID] [メールアドレス] で設定してください。",
                user_id,
            )

        email = args[1] if len(args) > 1 else self.profile_email(client, user_id)
        if not SettingsStore.is_valid_email(email):
            raise ValidationError(f"メールアドレスの形式が正しくありません: {email}", user_id)

        settings = self.services.settings.save(user_id, spreadsheet_id, email)
        respond(messages.setup_text(settings))

    def profile_email(self, client, user_id: str) -> str:
        """Return the e-mail address from the user's Slack profile.

        Raises:
            SettingsError: If the profile has no e-mail or can't be read
        """
        try:
            info = client.users_info(user=user_id)
            email = info['user']['profile'].get('email')
        except (SlackApiError, KeyError) as e:
            logger.error("users.info failed for %s: %s", user_id, e)
            email = None
        if not email:
            raise SettingsError(
                "メールアドレスの取得に失敗しました。Slack管理者に連絡してください。",
                user_id, 'getUserEmail',
            )
        return email

    # =========================================================================
    # Export
    # =========================================================================

    def start_export(self, client, user_id: str, year_month: str) -> threading.Thread:
        """Announce the export and run it on a background thread.

        The result is posted as a reply to the announcement.
        """
        started = client.chat_postMessage(
            channel=user_id, text=messages.export_started_text(year_month))
        channel = started['channel']
        thread_ts = started['ts']

        thread = threading.Thread(
            target=self.run_export,
            args=(client, user_id, year_month, channel, thread_ts),
            name=f"export-{user_id}-{year_month}",
            daemon=True,
        )
        thread.start()
        return thread

    def run_export(self, client, user_id: str, year_month: str,
                   channel: str, thread_ts: str) -> None:
        try:
            result = self.services.exporter.export_expense_report(user_id, year_month)
        except Exception as e:
            self.notify(client, user_id, messages.render_error(e),
                        thread_ts=thread_ts, channel=channel)
            return

        path = self.services.temp_files.save(result.pdf_bytes, suffix='.pdf')
        try:
            client.files_upload_v2(
                channel=channel,
                thread_ts=thread_ts,
                file=path,
                filename=result.file_name,
                title=result.file_name,
                initial_comment=messages.export_done_text(result.file_name, result.file_url),
            )
        except SlackApiError as e:
            logger.error("Failed to upload %s to Slack: %s", result.file_name, e)
            self.notify(client, user_id,
                        messages.export_done_text(result.file_name, result.file_url),
                        thread_ts=thread_ts, channel=channel)
        finally:
            self.services.temp_files.delete(path)

    # =========================================================================
    # Message shortcut and modals
    # =========================================================================

    def handle_shortcut(self, ack, shortcut, client) -> None:
        """Open the entry modal for the first file attached to a message."""
        ack()
        user_id = shortcut['user']['id']
        message = shortcut.get('message') or {}
        files = message.get('files') or []

        try:
            if not files:
                raise ValidationError("このメッセージにはファイルが添付されていません。", user_id)

            file = files[0]
            metadata = {
                'user_id': user_id,
                'channel_id': (shortcut.get('channel') or {}).get('id'),
                'message_ts': message.get('ts'),
                'file_id': file.get('id'),
                'file_name': file.get('name'),
                'file_type': file.get('mimetype'),
                'file_url': file.get('url_private'),
            }
            initial_date, initial_amount = self.prefill_from_receipt(file)
            self.open_modal(client, shortcut['trigger_id'], metadata, has_file=True,
                            initial_date=initial_date, initial_amount=initial_amount)
        except Exception as e:
            self.notify(client, user_id, messages.render_error(e))

    def prefill_from_receipt(self, file: Dict[str, Any]):
        """Return (date, amount) read from the receipt, when OCR is enabled.

        OCR problems only cost the pre-fill; they are logged and the modal
        opens empty.
        """
        scanner = self.services.scanner
        if scanner is None or not file.get('url_private'):
            return None, None
        try:
            content = download_slack_file(file['url_private'], self.config.slack_bot_token)
            scan = scanner.scan(content, file.get('mimetype') or '')
        except KeihiError as e:
            logger.warning("Receipt pre-fill failed for %s: %s", file.get('name'), e.message)
            return None, None
        return scan.date, scan.amount

    def handle_expense_modal(self, ack, body, view, client) -> None:
        """Record the expense submitted from the entry modal."""
        form = read_modal(view)
        if not form.amount:
            ack(response_action='errors',
                errors={'amount_block': '金額を入力してください。'})
            return
        ack()

        user_id = body['user']['id']
        metadata = read_metadata(view)
        date = form.date or self.today()

        try:
            amount = validate_amount(form.amount, user_id)
            receipt = None
            if metadata.get('file_url'):
                content = download_slack_file(metadata['file_url'], self.config.slack_bot_token)
                receipt = Receipt(
                    content=content,
                    file_name=metadata.get('file_name') or 'receipt',
                    mime_type=metadata.get('file_type') or 'application/octet-stream',
                )

            submission = self.services.submitter.submit(
                user_id, date, amount, form.details, form.memo, receipt=receipt)
            text = messages.submission_text(
                submission.entry, date, amount, form.details, form.memo,
                receipt_url=submission.receipt_url)
        except Exception as e:
            text = messages.render_error(e)

        self.notify(client, user_id, text)

    # =========================================================================
    # Receipt upload after `/keihi add <amount>`
    # =========================================================================

    def handle_file_share(self, event, client) -> None:
        """Complete a pending `add` with the file the user just shared."""
        user_id = event.get('user')
        channel_id = event.get('channel')
        files = event.get('files') or []
        if not user_id or not files:
            return

        pending = self.services.sessions.pop(session_key(user_id, channel_id))
        if not pending or pending.get('status') != WAITING_FOR_FILE:
            return

        file = files[0]
        date = self.today()
        amount = pending['amount']
        details = pending.get('details', '')
        logger.info("Received receipt %s from %s", file.get('name'), user_id)

        try:
            content = download_slack_file(file['url_private'], self.config.slack_bot_token)
            receipt = Receipt(
                content=content,
                file_name=file.get('name') or 'receipt',
                mime_type=file.get('mimetype') or 'application/octet-stream',
            )
            submission = self.services.submitter.submit(
                user_id, date, amount, details, '', receipt=receipt)
            text = messages.submission_text(
                submission.entry, date, amount, details, '',
                receipt_url=submission.receipt_url)
        except Exception as e:
            text = messages.render_error(e)

        self.notify(client, user_id, text, thread_ts=event.get('ts'), channel=channel_id)
