"""Google Drive receipt storage.

Receipts are kept in a two-level hierarchy under a configured root folder::

    <root>/<slack user id>/<YYYY-MM>/<receipt files, monthly report>

The user folder is shared read-only with the user's e-mail address when it is
created; month folders inherit that permission.
"""

import io
import logging
from typing import TYPE_CHECKING, List, Optional

from googleapiclient.http import MediaIoBaseUpload

from keihi.errors import ErrorKind, KeihiError
from .base import StorageError, FileInfo, UploadedFile, FOLDER_MIME_TYPE

if TYPE_CHECKING:
    from sheets.settings import SettingsStore


logger = logging.getLogger(__name__)


def _escape_query_value(value: str) -> str:
    """Escape a value for use in Google Drive API query strings."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class GDriveDriver:
    """Folder and file manager for receipts on Google Drive.

    Lookups and creates are not atomic: two concurrent calls for a folder
    that does not exist yet may both create it.
    """

    def __init__(self, service, root_folder_id: str,
                 settings: "SettingsStore") -> None:
        """Initialize the driver.

        Args:
            service: Drive v3 API resource (googleapiclient)
            root_folder_id: Drive folder ID under which user folders live
            settings: Settings store, used to look up the user's e-mail
        """
        self.service = service
        self.root_folder_id = root_folder_id
        self.settings = settings

    @classmethod
    def from_credentials(cls, creds, root_folder_id: str,
                         settings: "SettingsStore") -> "GDriveDriver":
        from keihi.credentials import build_drive_service
        return cls(build_drive_service(creds), root_folder_id, settings)

    def check_root(self) -> str:
        """Verify the root folder is reachable and return its name.

        Raises:
            StorageError: If the folder can't be accessed
        """
        try:
            result = self.service.files().get(
                fileId=self.root_folder_id,
                fields="id, name",
                supportsAllDrives=True,
            ).execute()
            return result['name']
        except Exception as e:
            logger.error("checkRoot failed for folder %s: %s", self.root_folder_id, e)
            raise StorageError("ルートフォルダにアクセスできません。", operation='checkRoot')

    @staticmethod
    def folder_url(folder_id: str) -> str:
        return f"https://drive.google.com/drive/folders/{folder_id}"

    @staticmethod
    def file_url(file_id: str) -> str:
        return f"https://drive.google.com/file/d/{file_id}/view"

    # =========================================================================
    # Folders
    # =========================================================================

    def _find_folder(self, name: str, parent_id: str) -> Optional[str]:
        escaped_name = _escape_query_value(name)
        results = self.service.files().list(
            q=f"mimeType='{FOLDER_MIME_TYPE}' and name='{escaped_name}' and '{parent_id}' in parents and trashed=false",
            fields="files(id)",
            spaces='drive',
            supportsAllDrives=True,
            includeItemsFromAllDrives=True,
        ).execute()
        items = results.get('files', [])
        return items[0]['id'] if items else None

    def ensure_folder(self, user_id: str, name: str, parent_id: str,
                      user_email: Optional[str] = None) -> str:
        """Get or create a folder by exact name under a parent.

        Args:
            user_id: Slack user ID (for error reporting)
            name: Folder name
            parent_id: Parent folder ID
            user_email: If given, grant this address reader access when the
                folder is newly created

        Returns:
            Folder ID

        Raises:
            StorageError: If the lookup, create, or permission grant fails
        """
        try:
            folder_id = self._find_folder(name, parent_id)
            if folder_id:
                logger.debug("Found existing folder %s (%s)", name, folder_id)
                return folder_id

            folder = self.service.files().create(
                body={
                    'name': name,
                    'mimeType': FOLDER_MIME_TYPE,
                    'parents': [parent_id],
                },
                fields='id',
                supportsAllDrives=True,
            ).execute()
            folder_id = folder['id']
            logger.info("Created folder %s (%s) in %s", name, folder_id, parent_id)

            if user_email:
                logger.info("Sharing folder %s with %s", folder_id, user_email)
                self.service.permissions().create(
                    fileId=folder_id,
                    body={
                        'role': 'reader',
                        'type': 'user',
                        'emailAddress': user_email,
                    },
                    supportsAllDrives=True,
                ).execute()

            return folder_id
        except Exception as e:
            logger.error("ensureFolder failed for user %s, folder %s: %s", user_id, name, e)
            raise StorageError(f"フォルダの作成に失敗しました: {name}",
                               user_id, 'ensureFolder')

    def get_or_create_month_folder(self, user_id: str, year_month: str) -> str:
        """Return the ID of <root>/<user_id>/<year_month>, creating as needed.

        Raises:
            SettingsError: If the user's e-mail isn't configured
            StorageError: If a Drive call fails
        """
        try:
            user_email = self.settings.get_user_email(user_id)
            user_folder_id = self.ensure_folder(
                user_id, user_id, self.root_folder_id, user_email=user_email)
            return self.ensure_folder(user_id, year_month, user_folder_id)
        except KeihiError as e:
            if e.kind is not ErrorKind.OPERATION:
                raise
            raise StorageError("月別フォルダの取得に失敗しました。",
                               user_id, 'getOrCreateMonthFolder')

    # =========================================================================
    # Files
    # =========================================================================

    def list_files(self, folder_id: str, exclude: Optional[str] = None) -> List[FileInfo]:
        """List the files (not folders) in a folder, ordered by name.

        Args:
            folder_id: Folder to list
            exclude: Optional file name to leave out

        Raises:
            StorageError: If the listing fails
        """
        query = f"'{folder_id}' in parents and trashed=false and mimeType!='{FOLDER_MIME_TYPE}'"
        if exclude:
            query += f" and name!='{_escape_query_value(exclude)}'"

        results = []
        page_token = None
        try:
            while True:
                response = self.service.files().list(
                    q=query,
                    pageSize=100,
                    orderBy='name',
                    fields="nextPageToken, files(id, name, mimeType, webViewLink)",
                    pageToken=page_token,
                    supportsAllDrives=True,
                    includeItemsFromAllDrives=True,
                ).execute()

                for item in response.get('files', []):
                    results.append(FileInfo(
                        id=item['id'],
                        name=item['name'],
                        mime_type=item.get('mimeType'),
                        web_view_link=item.get('webViewLink'),
                    ))

                page_token = response.get('nextPageToken')
                if not page_token:
                    break
        except Exception as e:
            logger.error("listFiles failed for folder %s: %s", folder_id, e)
            raise StorageError("ファイル一覧の取得に失敗しました。", operation='listFiles')

        return results

    def download(self, file_id: str) -> bytes:
        """Download a file's content into memory.

        Raises:
            StorageError: If the download fails
        """
        try:
            return self.service.files().get_media(
                fileId=file_id,
                supportsAllDrives=True,
            ).execute()
        except Exception as e:
            logger.error("download failed for file %s: %s", file_id, e)
            raise StorageError("ファイルの取得に失敗しました。", operation='download')

    def delete_file_by_name(self, folder_id: str, file_name: str) -> None:
        """Delete every file with the given name in a folder.

        Having nothing to delete is not an error.

        Raises:
            StorageError: If the lookup or a delete fails
        """
        try:
            escaped_name = _escape_query_value(file_name)
            results = self.service.files().list(
                q=f"name='{escaped_name}' and '{folder_id}' in parents and trashed=false",
                fields="files(id)",
                supportsAllDrives=True,
                includeItemsFromAllDrives=True,
            ).execute()

            for item in results.get('files', []):
                logger.debug("Deleting %s (%s)", file_name, item['id'])
                self.service.files().delete(
                    fileId=item['id'],
                    supportsAllDrives=True,
                ).execute()
        except Exception as e:
            logger.error("deleteFileByName failed for %s in %s: %s", file_name, folder_id, e)
            raise StorageError("既存ファイルの削除に失敗しました。",
                               operation='deleteFileByName')

    def put_file(self, folder_id: str, content: bytes, file_name: str,
                 mime_type: str) -> UploadedFile:
        """Replace any same-named file in a folder with new content.

        The old file is deleted before the new one is created.
        """
        self.delete_file_by_name(folder_id, file_name)

        media = MediaIoBaseUpload(io.BytesIO(content), mimetype=mime_type, resumable=False)
        created = self.service.files().create(
            body={
                'name': file_name,
                'parents': [folder_id],
                'mimeType': mime_type,
            },
            media_body=media,
            fields='id, webViewLink',
            supportsAllDrives=True,
        ).execute()

        file_id = created['id']
        return UploadedFile(
            id=file_id,
            web_view_link=created.get('webViewLink') or self.file_url(file_id),
        )

    def upload_file(self, user_id: str, year_month: str, content: bytes,
                    file_name: str, mime_type: str) -> UploadedFile:
        """Upload a receipt into the user's month folder.

        A file with the same name in that folder is replaced.

        Args:
            user_id: Slack user ID
            year_month: Month as YYYY-MM
            content: File content
            file_name: Name to store the file under
            mime_type: MIME type of the content

        Returns:
            UploadedFile with ID and viewer link

        Raises:
            SettingsError: If the user's e-mail isn't configured
            StorageError: If any Drive call fails
        """
        logger.info("Uploading %s for user %s into %s", file_name, user_id, year_month)
        try:
            folder_id = self.get_or_create_month_folder(user_id, year_month)
            return self.put_file(folder_id, content, file_name, mime_type)
        except KeihiError as e:
            if e.kind is not ErrorKind.OPERATION:
                raise
            logger.error("uploadFile failed for user %s: %s", user_id, e.message)
            raise StorageError("ファイルのアップロードに失敗しました。",
                               user_id, 'uploadFile')
        except Exception as e:
            logger.error("uploadFile failed for user %s: %s", user_id, e)
            raise StorageError("ファイルのアップロードに失敗しました。",
                               user_id, 'uploadFile')
