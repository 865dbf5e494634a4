"""
Google Drive client for the document pipeline.

Uses Application Default Credentials; the function's service account must be
shared on the scanned and category folders.
"""

import io
import logging
from typing import Any, Dict, List, Optional

import google.auth
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = 'application/vnd.google-apps.folder'
GOOGLE_APPS_PREFIX = 'application/vnd.google-apps.'
EXPORT_MIME_TYPE = 'application/pdf'


class DriveClient:
    """Thin wrapper over the Drive v3 files API."""

    READONLY_SCOPES = ['https://www.googleapis.com/auth/drive.readonly']
    FULL_SCOPES = ['https://www.googleapis.com/auth/drive']

    def __init__(self, scopes: List[str] = None, service: Any = None):
        """Initialize the Drive client.

        Args:
            scopes: OAuth scopes for Application Default Credentials
            service: Existing Drive API resource (or None to build one)
        """
        if service is not None:
            self.service = service
        else:
            credentials, _ = google.auth.default(scopes=scopes or self.READONLY_SCOPES)
            self.service = build('drive', 'v3', credentials=credentials, cache_discovery=False)

    def get_file_metadata(self, file_id: str, fields: str = 'id,name,mimeType,size,modifiedTime') -> Dict[str, Any]:
        """Get metadata for a single file or folder."""
        try:
            return self.service.files().get(
                fileId=file_id,
                fields=fields,
                supportsAllDrives=True
            ).execute()
        except HttpError as e:
            logger.error(f"Failed to fetch metadata for {file_id}: {e}")
            raise

    def list_files(
        self,
        query: str,
        fields: str = 'nextPageToken,files(id,name,mimeType,size,modifiedTime,webViewLink)',
        order_by: Optional[str] = None,
        page_size: int = 100
    ) -> List[Dict[str, Any]]:
        """List every file matching a query, following page tokens.

        Args:
            query: Drive search query
            fields: Partial response fields; must include nextPageToken
            order_by: Optional sort order
            page_size: Files per page

        Returns:
            List of file metadata dicts
        """
        files = []
        page_token = None

        while True:
            params = {
                "q": query,
                "fields": fields,
                "pageSize": page_size,
                "supportsAllDrives": True,
                "includeItemsFromAllDrives": True,
            }
            if page_token:
                params["pageToken"] = page_token
            if order_by:
                params["orderBy"] = order_by

            try:
                response = self.service.files().list(**params).execute()
            except HttpError as e:
                logger.error(f"Drive API error listing files for query {query!r}: {e}")
                raise

            files.extend(response.get('files', []))
            page_token = response.get('nextPageToken')

            if not page_token:
                break

        return files

    def download_file_bytes(self, file_id: str, mime_type: Optional[str] = None) -> bytes:
        """Download file content.

        Google Docs, Sheets and Slides have no binary content and are exported
        as PDF instead.

        Args:
            file_id: Google Drive file ID
            mime_type: The file's MIME type, used to pick download or export

        Returns:
            File content bytes
        """
        if mime_type and mime_type.startswith(GOOGLE_APPS_PREFIX):
            request = self.service.files().export_media(fileId=file_id, mimeType=EXPORT_MIME_TYPE)
        else:
            request = self.service.files().get_media(fileId=file_id, supportsAllDrives=True)

        buffer = io.BytesIO()
        downloader = MediaIoBaseDownload(buffer, request)

        try:
            done = False
            while not done:
                _, done = downloader.next_chunk()
        except HttpError as e:
            logger.error(f"Failed to download file {file_id}: {e}")
            raise

        return buffer.getvalue()

    def list_subfolders(self, parent_folder_id: str) -> List[Dict[str, str]]:
        """List the immediate subfolders of a folder, ordered by name."""
        query = (f"'{parent_folder_id}' in parents and "
                 f"mimeType='{FOLDER_MIME_TYPE}' and trashed=false")
        return self.list_files(
            query,
            fields='nextPageToken,files(id,name)',
            order_by='name'
        )

    def move_file(self, file_id: str, target_folder_id: str) -> Dict[str, Any]:
        """Move a file by replacing all of its parents with the target folder."""
        current = self.get_file_metadata(file_id, fields='parents')
        previous_parents = ",".join(current.get('parents', []))

        try:
            return self.service.files().update(
                fileId=file_id,
                addParents=target_folder_id,
                removeParents=previous_parents,
                fields='id,parents',
                supportsAllDrives=True
            ).execute()
        except HttpError as e:
            logger.error(f"Failed to move file {file_id} to {target_folder_id}: {e}")
            raise
