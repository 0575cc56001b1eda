"""Receipt storage on Google Drive.

Usage:
    from storage import GDriveDriver

    drive = GDriveDriver.from_credentials(creds, root_folder_id, settings)
    folder_id = drive.get_or_create_month_folder(user_id, "2025-02")
    uploaded = drive.upload_file(user_id, "2025-02", content, "receipt.jpg", "image/jpeg")
"""

from .base import StorageError, FileInfo, UploadedFile, FOLDER_MIME_TYPE, PDF_MIME_TYPE
from .gdrive import GDriveDriver


__all__ = [
    'StorageError',
    'FileInfo',
    'UploadedFile',
    'FOLDER_MIME_TYPE',
    'PDF_MIME_TYPE',
    'GDriveDriver',
]
