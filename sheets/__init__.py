"""Google Sheets access for keihi.

- SettingsStore: the shared user_settings sheet (user -> spreadsheet, e-mail)
- ExpenseSheets: monthly expense sheets in each user's own spreadsheet
"""

from .settings import SettingsStore, UserSettings
from .ledger import (
    ExpenseSheets,
    SheetInfo,
    ExpenseEntry,
    EntryResult,
    MonthStatus,
    MonthList,
    format_sheet_name,
    parse_sheet_name,
    format_date,
    parse_amount,
    sheet_url,
)


__all__ = [
    'SettingsStore',
    'UserSettings',
    'ExpenseSheets',
    'SheetInfo',
    'ExpenseEntry',
    'EntryResult',
    'MonthStatus',
    'MonthList',
    'format_sheet_name',
    'parse_sheet_name',
    'format_date',
    'parse_amount',
    'sheet_url',
]
