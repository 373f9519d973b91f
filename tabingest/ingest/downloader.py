"""
Remote file download.

Share links are normalized to direct-download URLs, then streamed into the
download directory under a unique name.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, quote, unquote, urlparse

import httpx

from tabingest.common.resilience import retry_download
from tabingest.config.settings import get_settings
from tabingest.ingest.errors import DownloadError

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (tabingest)"
DEFAULT_FILENAME = "remote_file"

SHEETS_PATH = re.compile(r"/spreadsheets/d/([^/]+)")
DRIVE_FILE_PATH = re.compile(r"/file/d/([^/]+)")
DISPOSITION_FILENAME = re.compile(
    r"filename\*=UTF-8''([^;]+)|filename=\"?([^\";]+)\"?", re.IGNORECASE)


def normalize_download_url(url: str) -> str:
    """
    Rewrite Google share links to URLs that return the file bytes.

    Sheets links become the CSV export of the sheet (keeping ``gid`` from the
    query or fragment); Drive file links become ``uc?export=download``.
    Anything else is returned unchanged.
    """
    parsed = urlparse(url)
    host = parsed.hostname or ""

    if "docs.google.com" in host and "/spreadsheets/" in parsed.path:
        match = SHEETS_PATH.search(parsed.path)
        if match:
            gid = parse_qs(parsed.query).get("gid", [""])[0]
            if not gid and parsed.fragment:
                gid = parse_qs(parsed.fragment).get("gid", [""])[0]
            export = f"https://docs.google.com/spreadsheets/d/{match.group(1)}/export?format=csv"
            return f"{export}&gid={gid}" if gid else export

    if "drive.google.com" in host:
        match = DRIVE_FILE_PATH.search(parsed.path)
        file_id = match.group(1) if match else parse_qs(parsed.query).get("id", [""])[0]
        if file_id:
            return f"https://drive.google.com/uc?export=download&id={quote(file_id)}"

    return url


def filename_from_response(url: str, content_disposition: Optional[str], content_type: Optional[str]) -> str:
    """
    Pick a file name for a download.

    ``Content-Disposition`` wins, then the last URL path segment. A name
    without an extension gets one inferred from the content type.
    """
    name = ""
    if content_disposition:
        match = DISPOSITION_FILENAME.search(content_disposition)
        if match:
            name = unquote((match.group(1) or match.group(2) or "").strip())
    if not name:
        name = Path(urlparse(url).path).name
    name = Path(name).name or DEFAULT_FILENAME

    if not Path(name).suffix:
        content_type = (content_type or "").lower()
        if "text/csv" in content_type or "application/csv" in content_type:
            name += ".csv"
        elif "sheet" in content_type or "excel" in content_type:
            name += ".xlsx"
    return name


@dataclass
class DownloadedFile:
    """A remote file saved locally."""
    path: str
    filename: str
    content_type: Optional[str] = None


class Downloader:
    """Streams remote files into ``download_dir``."""

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        download_dir: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()

        self.download_dir = Path(download_dir or settings.download_dir)
        self.client = client or httpx.Client(
            timeout=timeout or settings.download_timeout_seconds,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    def download(self, url: str, headers: Optional[dict] = None) -> DownloadedFile:
        """
        Download ``url`` to a unique local file.

        Raises:
            DownloadError: On a non-success response or a transport failure
                that persists after retries
        """
        target_url = normalize_download_url(url)
        try:
            return self._download(target_url, headers or {})
        except httpx.HTTPStatusError as e:
            raise DownloadError(
                f"Download of {target_url} failed with HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise DownloadError(f"Download of {target_url} failed: {e}") from e

    @retry_download
    def _download(self, url: str, headers: dict) -> DownloadedFile:
        self.download_dir.mkdir(parents=True, exist_ok=True)

        with self.client.stream("GET", url, headers=headers) as response:
            response.raise_for_status()
            content_type = response.headers.get("content-type")
            name = filename_from_response(
                url, response.headers.get("content-disposition"), content_type)
            path = self.download_dir / f"{uuid.uuid4().hex}-{name}"

            try:
                with open(path, "wb") as f:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
            except (httpx.HTTPError, OSError):
                path.unlink(missing_ok=True)
                logger.warning(f"Download of {url} interrupted; removed partial file {path}")
                raise

        logger.info(f"Downloaded {url} to {path}")
        return DownloadedFile(path=str(path), filename=name, content_type=content_type)

    def close(self) -> None:
        self.client.close()
