"""Monthly expense report export.

The report is the month sheet exported as PDF, followed by every receipt in
the month's Drive folder, with one bookmark per document. It is uploaded back
into the same folder, replacing the previous export.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Tuple

from keihi.errors import ErrorKind, ExportError, KeihiError, PDFError
from storage.base import PDF_MIME_TYPE
from .pdf import Bookmark, convert_image_to_pdf, count_pages, merge_pdfs

if TYPE_CHECKING:
    from sheets.ledger import ExpenseSheets
    from sheets.settings import SettingsStore
    from storage.gdrive import GDriveDriver
    from storage.base import FileInfo


logger = logging.getLogger(__name__)

REPORT_TITLE = "経費精算書"


def report_file_name(year_month: str) -> str:
    return f"{REPORT_TITLE}_{year_month}.pdf"


@dataclass
class ExportResult:
    pdf_bytes: bytes
    file_url: str
    file_name: str


class ReportExporter:
    """Builds and uploads the monthly expense report PDF."""

    def __init__(self, settings: "SettingsStore", sheets: "ExpenseSheets",
                 drive: "GDriveDriver") -> None:
        self.settings = settings
        self.sheets = sheets
        self.drive = drive

    def _receipt_pdf(self, info: "FileInfo") -> bytes:
        content = self.drive.download(info.id)
        if info.is_pdf:
            return content
        return convert_image_to_pdf(content)

    def collect_receipts(self, folder_id: str, exclude: str) -> List[Tuple[str, bytes]]:
        """Download the receipts in a folder as (file name, PDF) pairs.

        Receipts that can't be converted or read are logged and left out.
        """
        receipts = []
        for info in self.drive.list_files(folder_id, exclude=exclude):
            try:
                pdf = self._receipt_pdf(info)
            except PDFError as e:
                logger.warning("Skipping receipt %s: %s", info.name, e.message)
                continue

            if count_pages(pdf) == 0:
                logger.warning("Skipping unreadable receipt %s", info.name)
                continue
            receipts.append((info.name, pdf))
        return receipts

    def export_expense_report(self, user_id: str, year_month: str) -> ExportResult:
        """Build the report for a month and upload it to Drive.

        Args:
            user_id: Slack user ID
            year_month: Month as YYYY-MM

        Returns:
            ExportResult with the merged PDF and its Drive viewer URL

        Raises:
            SettingsError: If the user has no spreadsheet or e-mail configured
            ExportError: If the month has no sheet (kind VALIDATION) or any
                step fails
        """
        logger.info("Exporting expense report for user %s, %s", user_id, year_month)
        file_name = report_file_name(year_month)

        try:
            spreadsheet_id = self.settings.get_spreadsheet_id(user_id)
            sheet = self.sheets.find_sheet(spreadsheet_id, year_month)
            if sheet is None:
                raise ExportError(
                    f"{year_month} の経費データが見つかりません。",
                    user_id, 'exportExpenseReport', kind=ErrorKind.VALIDATION,
                )

            sheet_pdf = self.sheets.export_pdf(spreadsheet_id, sheet)
            sheet_pages = count_pages(sheet_pdf)
            if sheet_pages == 0:
                raise ExportError("シートのPDF出力が空でした。", user_id, 'exportExpenseReport')

            folder_id = self.drive.get_or_create_month_folder(user_id, year_month)
            receipts = self.collect_receipts(folder_id, exclude=file_name)

            buffers = [sheet_pdf]
            bookmarks = [Bookmark(REPORT_TITLE, 1)]
            next_page = sheet_pages + 1
            for name, pdf in receipts:
                buffers.append(pdf)
                bookmarks.append(Bookmark(name, next_page))
                next_page += count_pages(pdf)

            merged = merge_pdfs(buffers, bookmarks)
            uploaded = self.drive.upload_file(
                user_id, year_month, merged, file_name, PDF_MIME_TYPE)
        except KeihiError as e:
            if e.user_id is None:
                e.user_id = user_id
            raise
        except Exception as e:
            logger.error("exportExpenseReport failed for user %s, %s: %s",
                         user_id, year_month, e)
            raise ExportError("経費精算書の作成に失敗しました。",
                              user_id, 'exportExpenseReport')

        logger.info("Uploaded %s (%d receipts)", file_name, len(receipts))
        return ExportResult(
            pdf_bytes=merged,
            file_url=self.drive.file_url(uploaded.id),
            file_name=file_name,
        )
