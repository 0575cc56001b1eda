"""Expense submission: receipt upload followed by a sheet entry."""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from keihi import validate_date, year_month_of
from keihi.errors import ValidationError

if TYPE_CHECKING:
    from sheets.ledger import EntryResult, ExpenseSheets
    from storage.gdrive import GDriveDriver


logger = logging.getLogger(__name__)


@dataclass
class Receipt:
    content: bytes
    file_name: str
    mime_type: str


@dataclass
class Submission:
    """Result of submit().

    Attributes:
        entry: Outcome of writing the sheet row
        receipt_url: Drive link of the uploaded receipt, if any
    """
    entry: "EntryResult"
    receipt_url: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.entry.success


def validate_amount(amount, user_id: Optional[str] = None) -> int:
    """Return the amount as a positive int.

    Raises:
        ValidationError: If the amount is missing, not a whole number, or <= 0
    """
    if amount is None or str(amount).strip() == '':
        raise ValidationError("金額を入力してください。", user_id)
    try:
        value = int(str(amount).strip().replace(',', ''))
    except ValueError:
        raise ValidationError(f"金額の形式が正しくありません: {amount}", user_id)
    if value <= 0:
        raise ValidationError("金額は1円以上で入力してください。", user_id)
    return value


class ExpenseSubmitter:
    """Records one expense: uploads the receipt, then writes the sheet row."""

    def __init__(self, sheets: "ExpenseSheets", drive: "GDriveDriver") -> None:
        self.sheets = sheets
        self.drive = drive

    def submit(self, user_id: str, date: str, amount, details: str = "",
               memo: str = "", receipt: Optional[Receipt] = None) -> Submission:
        """Record an expense for a user.

        Input is validated before any remote call is made.

        Args:
            user_id: Slack user ID
            date: YYYY-MM-DD
            amount: Amount in yen (int or numeric string)
            details: What the expense was for
            memo: Free-form memo
            receipt: Receipt file to upload into the month folder

        Returns:
            Submission; entry.success is False when the month sheet is full

        Raises:
            ValidationError: If the amount or date is invalid
            SettingsError: If the user hasn't run setup
            SheetsError, StorageError: If a remote call fails
        """
        value = validate_amount(amount, user_id)
        validate_date(date, user_id)
        year_month = year_month_of(date)

        folder_id = self.drive.get_or_create_month_folder(user_id, year_month)
        folder_url = self.drive.folder_url(folder_id)

        receipt_url = None
        if receipt is not None:
            uploaded = self.drive.upload_file(
                user_id, year_month, receipt.content, receipt.file_name, receipt.mime_type)
            receipt_url = uploaded.web_view_link
            logger.info("Uploaded receipt %s for user %s", receipt.file_name, user_id)

        entry = self.sheets.add_entry(
            user_id, date, value, details, memo,
            file_url=receipt_url or "",
            folder_url=folder_url,
        )
        return Submission(entry=entry, receipt_url=receipt_url)
