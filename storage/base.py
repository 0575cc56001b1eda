"""Base types for the receipt storage layer."""

from dataclasses import dataclass
from typing import Optional

from keihi.errors import KeihiError


FOLDER_MIME_TYPE = 'application/vnd.google-apps.folder'
PDF_MIME_TYPE = 'application/pdf'


class StorageError(KeihiError):
    """Base exception for storage operations."""
    pass


@dataclass
class FileInfo:
    """Information about a file in storage.

    Attributes:
        id: Backend-specific identifier (e.g., Google Drive file ID)
        name: Filename only (no directory)
        mime_type: MIME type reported by the backend
        web_view_link: Browser URL for the file (optional)
    """
    id: str
    name: str
    mime_type: Optional[str] = None
    web_view_link: Optional[str] = None

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == PDF_MIME_TYPE or self.name.lower().endswith('.pdf')


@dataclass
class UploadedFile:
    """Result of an upload.

    Attributes:
        id: Backend-specific identifier of the new file
        web_view_link: Browser URL for the new file
    """
    id: str
    web_view_link: str
