"""Workflow layer for keihi.

- entry: record an expense (receipt upload + sheet row)
- export: build and upload the monthly report PDF
- pdf: image conversion and PDF merging
"""

from .pdf import Bookmark, fit_image, convert_image_to_pdf, count_pages, merge_pdfs
from .entry import ExpenseSubmitter, Receipt, Submission, validate_amount
from .export import ReportExporter, ExportResult, report_file_name


__all__ = [
    # PDF assembly
    'Bookmark',
    'fit_image',
    'convert_image_to_pdf',
    'count_pages',
    'merge_pdfs',

    # Expense submission
    'ExpenseSubmitter',
    'Receipt',
    'Submission',
    'validate_amount',

    # Report export
    'ReportExporter',
    'ExportResult',
    'report_file_name',
]
