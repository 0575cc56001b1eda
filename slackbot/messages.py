"""User-facing message text.

``render_error`` is the only place where exceptions become chat text.
"""

import logging
from typing import Optional

from keihi.errors import ErrorKind, KeihiError
from sheets.ledger import EntryResult, MonthList, MonthStatus, NO_DETAILS
from sheets.settings import UserSettings


logger = logging.getLogger(__name__)

NO_MEMO = '（なし）'

HELP_TEXT = "\n".join([
    "*経費精算ボットの使い方*",
    "• `/keihi` : 経費入力フォームを開く",
    "• `/keihi add [金額] [内容]` : 金額を指定して領収書のアップロードを待つ",
    "• `/keihi setup [スプレッドシートID] [メールアドレス]` : 初期設定（メールアドレス省略時はSlackのメールアドレス）",
    "• `/keihi config` : 現在の設定を表示",
    "• `/keihi status [YYYY-MM]` : 月の登録件数と合計金額を表示",
    "• `/keihi list [YYYY-MM]` : 月の明細を表示",
    "• `/keihi export [YYYY-MM]` : 月の経費精算書PDFを作成",
    "• `/keihi help` : このヘルプを表示",
    "",
    "ファイル付きメッセージのショートカット「経費精算書を作成」からも登録できます。",
])

GENERIC_FAILURE = "処理に失敗しました。"


def yen(amount: int) -> str:
    return f"¥{amount:,}"


def error_text(message: str) -> str:
    return f"エラーが発生しました: {message}\nもう一度お試しください。"


def render_error(error: Exception) -> str:
    """Turn an exception into the text shown to the user.

    Settings and validation problems are shown as-is since the user can fix
    them. Operation failures only show the failed step; unknown exceptions
    show nothing of their content.
    """
    if not isinstance(error, KeihiError):
        logger.error("Unexpected error: %r", error)
        return error_text(GENERIC_FAILURE)

    if error.kind in (ErrorKind.SETTINGS, ErrorKind.VALIDATION):
        return error_text(error.message)
    if error.kind is ErrorKind.CAPACITY:
        text = error.message
        sheet_url = getattr(error, 'sheet_url', None)
        if sheet_url:
            text += f"\n\n経費精算書を確認: {sheet_url}"
        return text

    logger.error("Operation %s failed for user %s: %s",
                 error.operation, error.user_id, error.message)
    return error_text(error.message or GENERIC_FAILURE)


def entry_summary(date: str, amount: int, details: str, memo: str) -> str:
    return (f"• 日付: {date}\n"
            f"• 金額: {yen(amount)}\n"
            f"• 内容: {details or NO_DETAILS}\n"
            f"• メモ: {memo or NO_MEMO}")


def submission_text(result: EntryResult, date: str, amount: int, details: str,
                    memo: str, receipt_url: Optional[str] = None) -> str:
    """Reply for a recorded (or rejected because full) expense."""
    summary = entry_summary(date, amount, details, memo)
    if not result.success:
        return f"{result.message}\n{summary}\n\n経費精算書を確認: {result.sheet_url}"

    links = f"<{result.sheet_url}|スプレッドシートで開く>"
    if receipt_url:
        links += f" | <{receipt_url}|領収書を確認>"
    return f"経費精算書を作成しました。\n{summary}\n\n{links}"


def waiting_for_file_text(amount: int, details: str, timeout_minutes: int) -> str:
    text = f"金額 {yen(amount)}"
    if details:
        text += f"（{details}）"
    return (f"{text} で登録します。\n"
            f"{timeout_minutes}分以内にこのチャンネルに領収書ファイルをアップロードしてください。")


def setup_text(settings: UserSettings) -> str:
    return ("設定を保存しました。\n"
            f"• スプレッドシートID: {settings.spreadsheet_id}\n"
            f"• メールアドレス: {settings.email}")


def config_text(settings: Optional[UserSettings]) -> str:
    if settings is None:
        return ("設定がありません。\n"
                "/keihi setup [スプレッドシートID] [メールアドレス] で設定してください。")
    return ("*現在の設定*\n"
            f"• スプレッドシートID: {settings.spreadsheet_id}\n"
            f"• メールアドレス: {settings.email}\n"
            f"• 更新日時: {settings.updated_at or '不明'}")


def status_text(status: MonthStatus) -> str:
    if status.sheet_url is None:
        return f"{status.year_month} の経費はまだ登録されていません。"
    return (f"*{status.year_month} の経費状況*\n"
            f"• 登録件数: {status.count}件\n"
            f"• 合計金額: {yen(status.total)}\n"
            f"• 最終更新: {status.last_update or 'なし'}\n\n"
            f"<{status.sheet_url}|スプレッドシートで開く>")


def list_text(month: MonthList) -> str:
    if month.sheet_url is None or not month.entries:
        return f"{month.year_month} の経費はまだ登録されていません。"

    lines = [f"*{month.year_month} の経費一覧*"]
    for number, entry in enumerate(month.entries, start=1):
        lines.append(f"{number}. {entry.date} {yen(entry.amount)} {entry.details}")
    lines.append("")
    lines.append(f"合計: {yen(month.total)}")
    lines.append(f"<{month.sheet_url}|スプレッドシートで開く>")
    return "\n".join(lines)


def export_started_text(year_month: str) -> str:
    return f"{year_month} の経費精算書を作成しています。完了したらこのスレッドでお知らせします。"


def export_done_text(file_name: str, file_url: str) -> str:
    return f"経費精算書を作成しました: <{file_url}|{file_name}>"


__all__ = [
    'HELP_TEXT',
    'render_error',
    'error_text',
    'submission_text',
    'waiting_for_file_text',
    'setup_text',
    'config_text',
    'status_text',
    'list_text',
    'export_started_text',
    'export_done_text',
]
