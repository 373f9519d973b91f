"""
Google Drive folder listing.

Walks a folder tree through the Drive v3 ``files.list`` endpoint and returns
a flat list of files. The walk is breadth first over an explicit queue and
is bounded by depth and by the number of files collected.
"""

import logging
import re
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from tabingest.common.resilience import retry_download
from tabingest.config.settings import get_settings
from tabingest.ingest.errors import DownloadError

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"
XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

FOLDER_ID_PATTERN = re.compile(r"[-\w]{25,}")
ROOT_PATH = "root"


def extract_folder_id(url: str) -> Optional[str]:
    """Pull the folder id out of a Drive folder URL (or a bare id)."""
    match = FOLDER_ID_PATTERN.search(url or "")
    return match.group(0) if match else None


@dataclass
class RemoteFile:
    """One file found under a remote folder."""
    id: str
    name: str
    mime_type: str
    locator: str
    containing_path: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "mime_type": self.mime_type,
            "locator": self.locator,
            "containing_path": self.containing_path,
        }


class DriveClient:
    """Minimal Drive v3 client for listing folders."""

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        api_base: Optional[str] = None,
        access_token: Optional[str] = None,
        max_depth: Optional[int] = None,
        max_files: Optional[int] = None,
        page_size: Optional[int] = None,
    ):
        settings = get_settings()

        self.api_base = (api_base or settings.drive_api_base).rstrip("/")
        self.access_token = access_token if access_token is not None else settings.drive_access_token
        self.max_depth = max_depth if max_depth is not None else settings.drive_max_depth
        self.max_files = max_files or settings.drive_max_files
        self.page_size = page_size or settings.drive_page_size
        self.client = client or httpx.Client(
            timeout=settings.download_timeout_seconds)

    def auth_headers(self) -> Dict[str, str]:
        if not self.access_token:
            return {}
        return {"Authorization": f"Bearer {self.access_token}"}

    def locator_for(self, file_id: str, mime_type: str) -> str:
        """Download URL for a listed file; native sheets are exported as xlsx."""
        if mime_type == SPREADSHEET_MIME_TYPE:
            return f"{self.api_base}/files/{file_id}/export?mimeType={XLSX_MIME_TYPE}"
        return f"{self.api_base}/files/{file_id}?alt=media"

    @retry_download
    def _fetch_page(self, folder_id: str, page_token: Optional[str]) -> Dict[str, Any]:
        params = {
            "q": f"'{folder_id}' in parents and trashed = false",
            "fields": "nextPageToken, files(id, name, mimeType, webViewLink)",
            "pageSize": self.page_size,
        }
        if page_token:
            params["pageToken"] = page_token

        response = self.client.get(
            f"{self.api_base}/files", params=params, headers=self.auth_headers())
        response.raise_for_status()
        return response.json()

    def list_children(self, folder_id: str) -> List[Dict[str, Any]]:
        """All direct children of a folder, following pagination."""
        children: List[Dict[str, Any]] = []
        page_token = None
        try:
            while True:
                page = self._fetch_page(folder_id, page_token)
                children.extend(page.get("files", []))
                page_token = page.get("nextPageToken")
                if not page_token:
                    return children
        except httpx.HTTPError as e:
            raise DownloadError(f"Listing folder {folder_id} failed: {e}") from e

    def list_files(self, folder_id: str) -> List[RemoteFile]:
        """
        Flatten a folder tree into its files.

        Folders deeper than ``max_depth`` below the root are not expanded;
        the walk stops once ``max_files`` files have been collected.

        Args:
            folder_id: Root folder id

        Returns:
            Files in breadth-first order, each with its containing path
        """
        files: List[RemoteFile] = []
        queue = deque([(folder_id, ROOT_PATH, 0)])

        while queue and len(files) < self.max_files:
            current_id, current_path, depth = queue.popleft()

            for entry in self.list_children(current_id):
                entry_id = entry.get("id")
                name = entry.get("name")
                if not entry_id or not name:
                    continue

                mime_type = entry.get("mimeType", "")
                if mime_type == FOLDER_MIME_TYPE:
                    if depth < self.max_depth:
                        queue.append((entry_id, f"{current_path}/{name}", depth + 1))
                    else:
                        logger.warning(
                            f"Not descending into {current_path}/{name}: depth limit {self.max_depth}")
                    continue

                if mime_type == SPREADSHEET_MIME_TYPE and not Path(name).suffix:
                    name = f"{name}.xlsx"

                files.append(RemoteFile(
                    id=entry_id,
                    name=name,
                    mime_type=mime_type,
                    locator=self.locator_for(entry_id, mime_type),
                    containing_path=current_path,
                ))
                if len(files) >= self.max_files:
                    logger.warning(f"File limit {self.max_files} reached; listing truncated")
                    break

        logger.info(f"Listed {len(files)} files under folder {folder_id}")
        return files

    def close(self) -> None:
        self.client.close()
