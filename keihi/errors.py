"""Error taxonomy for the keihi bot.

Every error raised by a service carries a kind, the Slack user it was raised
for, and the name of the operation that failed. The Slack layer inspects
``kind`` to decide what the user gets to see.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """What went wrong, from the user's point of view."""
    SETTINGS = "settings"      # missing/invalid spreadsheet id or email
    OPERATION = "operation"    # a remote call failed
    CAPACITY = "capacity"      # the month sheet has no free row
    VALIDATION = "validation"  # bad user input, rejected before any remote call


class KeihiError(Exception):
    """Base exception for keihi operations.

    Attributes:
        message: Human-readable description
        user_id: Slack user ID the operation ran for (optional)
        operation: Name of the failed operation, e.g. 'addEntry' (optional)
        kind: ErrorKind tag
    """

    default_kind = ErrorKind.OPERATION

    def __init__(self, message: str, user_id: Optional[str] = None,
                 operation: Optional[str] = None,
                 kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.operation = operation
        self.kind = kind or self.default_kind

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(kind={self.kind.value!r}, "
                f"user_id={self.user_id!r}, operation={self.operation!r}, "
                f"message={self.message!r})")


class ConfigError(KeihiError):
    """Raised when required configuration is missing."""
    default_kind = ErrorKind.SETTINGS


class SettingsError(KeihiError):
    """Raised when a user's settings are missing, invalid, or unreadable."""
    default_kind = ErrorKind.SETTINGS


class ValidationError(KeihiError):
    """Raised for user input that is rejected before any remote call."""
    default_kind = ErrorKind.VALIDATION


class SheetsError(KeihiError):
    """Raised when a Google Sheets operation fails."""
    pass


class SheetFullError(SheetsError):
    """Raised when the entry window of a month sheet has no free row."""
    default_kind = ErrorKind.CAPACITY

    def __init__(self, message: str, user_id: Optional[str] = None,
                 operation: Optional[str] = "findEmptyRow",
                 sheet_url: Optional[str] = None) -> None:
        super().__init__(message, user_id, operation)
        self.sheet_url = sheet_url


class ExportError(KeihiError):
    """Raised when building or uploading the monthly report fails."""
    pass


class PDFError(KeihiError):
    """Raised when PDF conversion or merging fails."""
    pass


class OCRError(KeihiError):
    """Raised when receipt text recognition fails."""
    pass
