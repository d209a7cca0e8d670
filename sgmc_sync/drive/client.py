"""
Google Drive REST v3 client for the backup folder tree.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..exceptions import (
    DownloadError,
    DriveAPIError,
    NetworkError,
    UploadError,
    create_error_context,
)
from .models import FOLDER_MIME_TYPE, BackupEntry, BackupPage

logger = logging.getLogger(__name__)

DRIVE_API_URL = "https://www.googleapis.com/drive/v3/files"
UPLOAD_API_URL = "https://www.googleapis.com/upload/drive/v3/files"

LIST_PAGE_SIZE = 1000
DEFAULT_BACKUP_PAGE_SIZE = 10


def escape_query_value(value: str) -> str:
    """Escape a string literal for use inside a Drive ``q`` expression."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


class DriveClient:
    """
    Thin async wrapper over the Drive ``files`` endpoints.

    Every request is authorized with a token from ``token_provider``, which
    must expose ``async get_access_token() -> str``.
    """

    def __init__(self, token_provider, transport: Optional[httpx.AsyncBaseTransport] = None,
                 timeout: float = 60.0):
        """
        Initialize the Drive client.

        Args:
            token_provider: Object that yields valid access tokens
            transport: Optional httpx transport (used by tests)
            timeout: Per-request timeout in seconds
        """
        self.token_provider = token_provider
        self._transport = transport
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None
        self._folder_cache: Dict[str, str] = {}

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is None:
            # Retries once on connection failures only
            transport = self._transport or httpx.AsyncHTTPTransport(retries=1)
            self._client = httpx.AsyncClient(transport=transport, timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def clear_cache(self) -> None:
        """Forget resolved folder ids (e.g. after switching accounts)."""
        self._folder_cache.clear()

    async def _request(self, method: str, url: str, operation: str, **kwargs) -> httpx.Response:
        token = await self.token_provider.get_access_token()
        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {token}"

        try:
            return await self._get_client().request(method, url, headers=headers, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"Drive request failed during {operation}: {e}")
            raise NetworkError(
                f"Drive unreachable during {operation}: {e}",
                context=create_error_context(operation=operation),
                cause=e,
            ) from e

    def _raise_for_status(self, response: httpx.Response, operation: str, **context) -> None:
        if response.is_success:
            return
        logger.error(f"Drive {operation} failed with status {response.status_code}: {response.text}")
        raise DriveAPIError(
            f"Drive {operation} failed ({response.status_code})",
            status_code=response.status_code,
            response_body=response.text,
            context=create_error_context(operation=operation, **context),
        )

    async def get_or_create_folder(self, name: str, parent_id: Optional[str] = None) -> str:
        """
        Return the id of the folder ``name`` under ``parent_id``, creating it if absent.

        Args:
            name: Folder name
            parent_id: Parent folder id, or None for the Drive root

        Returns:
            Folder id
        """
        cache_key = f"{parent_id or ''}/{name}"
        if cache_key in self._folder_cache:
            return self._folder_cache[cache_key]

        query = (
            f"name = '{escape_query_value(name)}' "
            f"and mimeType = '{FOLDER_MIME_TYPE}' and trashed = false"
        )
        if parent_id:
            query += f" and '{escape_query_value(parent_id)}' in parents"

        response = await self._request(
            "GET", DRIVE_API_URL, "find_folder",
            params={"q": query, "fields": "files(id, name)", "orderBy": "createdTime", "spaces": "drive"},
        )
        self._raise_for_status(response, "find_folder", folder_name=name)

        files = response.json().get("files", [])
        if files:
            # Concurrent creation can leave duplicates; the oldest wins
            folder_id = files[0]["id"]
        else:
            metadata: Dict[str, Any] = {"name": name, "mimeType": FOLDER_MIME_TYPE}
            if parent_id:
                metadata["parents"] = [parent_id]
            response = await self._request(
                "POST", DRIVE_API_URL, "create_folder",
                params={"fields": "id"}, json=metadata,
            )
            self._raise_for_status(response, "create_folder", folder_name=name)
            folder_id = response.json()["id"]
            logger.info(f"Created Drive folder: {name}")

        self._folder_cache[cache_key] = folder_id
        return folder_id

    async def list_remote_files(self, folder_id: str) -> Dict[str, str]:
        """
        Map every non-trashed file name in ``folder_id`` to its id.

        Duplicate names collapse to the last one listed.
        """
        results: Dict[str, str] = {}
        page_token = None

        while True:
            params = {
                "q": f"'{escape_query_value(folder_id)}' in parents and trashed = false",
                "fields": "nextPageToken, files(id, name)",
                "pageSize": LIST_PAGE_SIZE,
                "spaces": "drive",
            }
            if page_token:
                params["pageToken"] = page_token

            response = await self._request("GET", DRIVE_API_URL, "list_files", params=params)
            self._raise_for_status(response, "list_files", folder_id=folder_id)

            data = response.json()
            for file in data.get("files", []):
                results[file["name"]] = file["id"]

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        return results

    async def list_backups(self, folder_id: str, page_token: Optional[str] = None,
                           page_size: int = DEFAULT_BACKUP_PAGE_SIZE) -> BackupPage:
        """
        List one page of backup files in ``folder_id``, newest first.

        Sub-folders (such as the attachments folder) are excluded.
        """
        params = {
            "q": (
                f"'{escape_query_value(folder_id)}' in parents "
                f"and mimeType != '{FOLDER_MIME_TYPE}' and trashed = false"
            ),
            "fields": "nextPageToken, files(id, name, createdTime, properties)",
            "orderBy": "createdTime desc",
            "pageSize": page_size,
            "spaces": "drive",
        }
        if page_token:
            params["pageToken"] = page_token

        response = await self._request("GET", DRIVE_API_URL, "list_backups", params=params)
        self._raise_for_status(response, "list_backups", folder_id=folder_id)

        data = response.json()
        return BackupPage(
            entries=[BackupEntry.from_api(f) for f in data.get("files", [])],
            next_page_token=data.get("nextPageToken"),
        )

    async def upload_file(self, name: str, data: bytes, parent_id: str,
                          mime_type: str = "application/octet-stream",
                          properties: Optional[Dict[str, str]] = None) -> str:
        """
        Upload ``data`` as a new file using a multipart request.

        Returns:
            The new file id

        Raises:
            UploadError: Drive rejected the upload
        """
        metadata: Dict[str, Any] = {"name": name, "parents": [parent_id]}
        if properties:
            metadata["properties"] = properties

        files = {
            "metadata": (None, json.dumps(metadata).encode("utf-8"), "application/json; charset=UTF-8"),
            "file": (name, data, mime_type),
        }
        response = await self._request(
            "POST", UPLOAD_API_URL, "upload_file",
            params={"uploadType": "multipart", "fields": "id"}, files=files,
        )

        if not response.is_success:
            logger.error(f"Upload of {name} failed with status {response.status_code}: {response.text}")
            raise UploadError(
                f"Upload of {name} failed ({response.status_code})",
                status_code=response.status_code,
                response_body=response.text,
                context=create_error_context(operation="upload_file", file_name=name, folder_id=parent_id),
            )

        file_id = response.json()["id"]
        logger.debug(f"Uploaded {name} ({len(data)} bytes) as {file_id}")
        return file_id

    async def download_file(self, file_id: str) -> bytes:
        """
        Download the raw content of a file.

        Raises:
            DownloadError: Drive refused the download
        """
        response = await self._request(
            "GET", f"{DRIVE_API_URL}/{file_id}", "download_file", params={"alt": "media"},
        )

        if not response.is_success:
            logger.error(f"Download of {file_id} failed with status {response.status_code}")
            raise DownloadError(
                f"Download of {file_id} failed ({response.status_code})",
                status_code=response.status_code,
                response_body=response.text,
                context=create_error_context(operation="download_file", entry_id=file_id),
            )

        return response.content

    async def get_file_metadata(self, file_id: str,
                                fields: str = "id, name, createdTime, properties") -> Dict[str, Any]:
        """Fetch metadata fields for a single file."""
        response = await self._request(
            "GET", f"{DRIVE_API_URL}/{file_id}", "get_metadata", params={"fields": fields},
        )
        if response.status_code == 404:
            raise DownloadError(
                f"Backup {file_id} not found",
                status_code=404,
                response_body=response.text,
                context=create_error_context(operation="get_metadata", entry_id=file_id),
            )
        self._raise_for_status(response, "get_metadata", entry_id=file_id)
        return response.json()
