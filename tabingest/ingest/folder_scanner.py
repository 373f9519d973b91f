"""
Local folder scanner.

Walks a directory, honours an ignore file, and returns the tabular files it
finds in the same flattened shape as a remote folder listing.
"""

import hashlib
import logging
import mimetypes
import os
from pathlib import Path
from typing import List

from tabingest.ingest.drive import ROOT_PATH, RemoteFile
from tabingest.ingest.parsers import SUPPORTED_EXTENSIONS

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_FILE = ".tabingestignore"


def local_source_id(path: Path) -> str:
    """Stable id for a local file, so re-scanning upserts the same record."""
    return "local-" + hashlib.sha1(str(path).encode("utf-8")).hexdigest()[:24]


class FolderScanner:
    """
    Discovers tabular files under a directory.

    Supports an ignore file (one pattern per line, ``#`` comments) whose
    patterns exclude any path containing them.
    """

    def __init__(self, ignore_file: str = DEFAULT_IGNORE_FILE):
        self.ignore_file = ignore_file
        self.ignore_patterns: List[str] = []

    def load_ignore_patterns(self, root_path: Path) -> None:
        ignore_path = root_path / self.ignore_file
        if not ignore_path.exists():
            logger.debug(f"No ignore file found at {ignore_path}")
            self.ignore_patterns = []
            return

        with open(ignore_path, "r", encoding="utf-8") as f:
            self.ignore_patterns = [
                line.strip() for line in f
                if line.strip() and not line.startswith("#")
            ]
        logger.info(f"Loaded {len(self.ignore_patterns)} ignore patterns from {ignore_path}")

    def should_ignore(self, path: Path) -> bool:
        path_str = str(path)
        return any(pattern in path_str for pattern in self.ignore_patterns)

    def scan_folder(self, folder_path: str) -> List[RemoteFile]:
        """
        Scan a folder for tabular files.

        Args:
            folder_path: Directory to scan

        Returns:
            Files in sorted walk order; ``locator`` is the absolute path and
            ``containing_path`` the directory relative to the root

        Raises:
            ValueError: If the folder doesn't exist or is not a directory
        """
        root = Path(folder_path).resolve()
        if not root.exists():
            raise ValueError(f"Folder not found: {folder_path}")
        if not root.is_dir():
            raise ValueError(f"Not a directory: {folder_path}")

        self.load_ignore_patterns(root)

        files: List[RemoteFile] = []
        ignored_count = 0

        for dirpath, dirnames, filenames in os.walk(root):
            current_dir = Path(dirpath)

            kept = sorted(d for d in dirnames if not self.should_ignore(current_dir / d))
            ignored_count += len(dirnames) - len(kept)
            dirnames[:] = kept

            relative_dir = current_dir.relative_to(root)
            containing_path = ROOT_PATH if str(relative_dir) == "." else f"{ROOT_PATH}/{relative_dir.as_posix()}"

            for filename in sorted(filenames):
                file_path = current_dir / filename
                if filename == self.ignore_file or self.should_ignore(file_path):
                    ignored_count += 1
                    continue
                if file_path.suffix.lower() not in SUPPORTED_EXTENSIONS:
                    continue

                mime_type, _ = mimetypes.guess_type(filename)
                files.append(RemoteFile(
                    id=local_source_id(file_path),
                    name=filename,
                    mime_type=mime_type or "application/octet-stream",
                    locator=str(file_path),
                    containing_path=containing_path,
                ))

        logger.info(f"Scan complete: {len(files)} files found, {ignored_count} paths ignored")
        return files
