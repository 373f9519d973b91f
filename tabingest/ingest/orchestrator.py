"""
Ingestion orchestrator.

Registers sources (uploads, remote folders, local folders) and runs them
through the pipeline one at a time, in registration order, on a single
store. Per-source failures end up in the source's status; a store
connectivity failure aborts the rest of the run.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional, Tuple

from tabingest.catalog.models import SourceFile
from tabingest.catalog.registry import SourceRegistry
from tabingest.common.logging_config import clear_run_id, set_run_id
from tabingest.config.settings import get_settings
from tabingest.ingest.downloader import Downloader
from tabingest.ingest.drive import DriveClient, extract_folder_id
from tabingest.ingest.errors import (
    DownloadError,
    InvalidStatusTransition,
    SourceParseError,
    UnsupportedFormatError,
)
from tabingest.ingest.folder_scanner import FolderScanner
from tabingest.ingest.parsers import ParsedSource, parse_file, resolve_format
from tabingest.ingest.pipeline import (
    ConflictPolicy,
    IngestionOutcome,
    IngestionPipeline,
    IngestionRequest,
)
from tabingest.ingest.schema_builder import NullabilityPolicy
from tabingest.ingest.status import SourceStatus
from tabingest.ingest.type_detector import StrictnessMode

logger = logging.getLogger(__name__)

REMOTE_SCHEMES = ("http://", "https://")


@dataclass
class IngestionOptions:
    """Caller-selected policies for a run."""
    conflict_policy: ConflictPolicy = ConflictPolicy.APPEND
    nullability_policy: NullabilityPolicy = NullabilityPolicy.ALL_NULLABLE
    strictness_mode: Optional[StrictnessMode] = None
    table_name: Optional[str] = None
    file_type: Optional[str] = None


class SourceLoader:
    """Turns a registered source into parsed headers and rows."""

    def __init__(self, downloader: Downloader, drive_client: Optional[DriveClient] = None):
        self.downloader = downloader
        self.drive_client = drive_client

    def fetch(self, record: SourceFile) -> Tuple[str, bool]:
        """
        Make the source available as a local file.

        Returns:
            (local path, whether the file is a temporary download)
        """
        location = record.origin_location
        if location.startswith(REMOTE_SCHEMES):
            headers = self.drive_client.auth_headers() if self.drive_client else {}
            downloaded = self.downloader.download(location, headers=headers)
            return downloaded.path, True

        if not Path(location).is_file():
            raise DownloadError(f"Local file not found: {location}", source_id=record.id)
        return location, False

    def load(self, record: SourceFile, file_type: Optional[str] = None) -> ParsedSource:
        """
        Fetch and parse a source, removing any temporary download afterwards.

        Raises:
            UnsupportedFormatError: Before anything is fetched, when the name
                does not resolve to a parser
            DownloadError: If the file cannot be fetched
            SourceParseError: If the file cannot be parsed
        """
        resolve_format(record.display_name, file_type)

        path, temporary = self.fetch(record)
        try:
            return parse_file(path, filename=record.display_name, override=file_type)
        finally:
            if temporary:
                cleanup_file(path)


def cleanup_file(path: str) -> None:
    try:
        Path(path).unlink(missing_ok=True)
        logger.debug(f"Removed temporary file {path}")
    except OSError as e:
        logger.warning(f"Failed to remove temporary file {path}: {e}")


class IngestionOrchestrator:
    """Registers sources and runs them through the pipeline."""

    def __init__(
        self,
        pipeline: IngestionPipeline,
        registry: SourceRegistry,
        loader: SourceLoader,
        drive_client: Optional[DriveClient] = None,
        folder_scanner: Optional[FolderScanner] = None,
    ):
        self.pipeline = pipeline
        self.registry = registry
        self.loader = loader
        self.drive_client = drive_client
        self.folder_scanner = folder_scanner or FolderScanner()

    # ---------- registration ----------

    def register_upload(self, display_name: str, local_path: str,
                        mime_type: Optional[str] = None) -> SourceFile:
        return self.registry.register_upload(display_name, local_path, mime_type)

    def register_remote_folder(self, folder_url: str) -> List[SourceFile]:
        """
        List a remote folder and upsert every file in it as pending.

        Raises:
            ValueError: If no folder id can be found in ``folder_url``
            DownloadError: If the listing fails
        """
        folder_id = extract_folder_id(folder_url)
        if not folder_id:
            raise ValueError(f"Invalid folder URL: {folder_url}")
        if self.drive_client is None:
            raise ValueError("Remote folder listing is not configured")

        remote_files = self.drive_client.list_files(folder_id)
        records = [
            self.registry.register(
                source_id=f.id,
                display_name=f.name,
                origin_location=f.locator,
                mime_type=f.mime_type,
                folder_path=f.containing_path,
            )
            for f in remote_files
        ]
        logger.info(f"Registered {len(records)} sources from folder {folder_id}")
        return records

    def register_local_folder(self, folder_path: str) -> List[SourceFile]:
        """Scan a local directory and upsert every tabular file as pending."""
        records = [
            self.registry.register(
                source_id=f.id,
                display_name=f.name,
                origin_location=f.locator,
                mime_type=f.mime_type,
                folder_path=f.containing_path,
            )
            for f in self.folder_scanner.scan_folder(folder_path)
        ]
        logger.info(f"Registered {len(records)} sources from {folder_path}")
        return records

    # ---------- recovery ----------

    def reset_source(self, record: SourceFile) -> SourceFile:
        """Fail a source stuck in processing so it can be ingested again."""
        self.pipeline.mark_interrupted(record, "Reset by administrator while processing")
        return record

    def recover_stale(self, max_age_seconds: Optional[int] = None) -> List[SourceFile]:
        """
        Fail every source left processing for longer than ``max_age_seconds``.

        A source only stays processing past a run when the process died
        mid-ingest; its last update then dates from its last committed batch.
        """
        if max_age_seconds is None:
            max_age_seconds = get_settings().stale_processing_seconds
        cutoff = datetime.utcnow() - timedelta(seconds=max_age_seconds)

        stale = self.registry.list_stale_processing(cutoff)
        for record in stale:
            self.pipeline.mark_interrupted(
                record, f"Interrupted: still processing since {record.updated_at.isoformat()}")
        if stale:
            logger.warning(f"Reset {len(stale)} stale processing sources")
        return stale

    # ---------- ingestion ----------

    def ingest_source(self, record: SourceFile,
                      options: Optional[IngestionOptions] = None) -> IngestionOutcome:
        """
        Load and ingest one source.

        Raises:
            InvalidStatusTransition: If the source is already processing
            StoreConnectivityError: If the store cannot be reached
        """
        options = options or IngestionOptions()
        if record.status == SourceStatus.PROCESSING.value:
            raise InvalidStatusTransition(
                record.status, SourceStatus.PROCESSING.value, source_id=record.id)

        try:
            parsed = self.loader.load(record, options.file_type)
        except UnsupportedFormatError as e:
            return self.pipeline.mark_unsupported(record, e)
        except (DownloadError, SourceParseError) as e:
            return self.pipeline.mark_failed(record, e)

        request = IngestionRequest(
            headers=parsed.headers,
            rows=parsed.rows,
            file_name=record.display_name,
            target_table_name=options.table_name,
            conflict_policy=options.conflict_policy,
            nullability_policy=options.nullability_policy,
            strictness_mode=options.strictness_mode,
        )
        return self.pipeline.ingest(request, record)

    def ingest_many(self, records: List[SourceFile],
                    options: Optional[IngestionOptions] = None) -> List[IngestionOutcome]:
        """
        Ingest sources sequentially in the given order.

        A StoreConnectivityError stops the run and propagates; sources after
        the failing one are left as registered.
        """
        run_id = set_run_id()
        logger.info(f"Run {run_id}: ingesting {len(records)} sources")
        self.recover_stale()
        outcomes: List[IngestionOutcome] = []

        try:
            for record in records:
                outcomes.append(self.ingest_source(record, options))
        except Exception:
            logger.error(
                f"Run {run_id} aborted after {len(outcomes)} of {len(records)} sources")
            raise
        finally:
            clear_run_id()

        processed = sum(1 for o in outcomes if o.status == SourceStatus.PROCESSED)
        logger.info(f"Run {run_id} finished: {processed}/{len(outcomes)} processed")
        return outcomes

    def ingest_remote_folder(self, folder_url: str,
                             options: Optional[IngestionOptions] = None) -> List[IngestionOutcome]:
        return self.ingest_many(self.register_remote_folder(folder_url), options)

    def ingest_local_folder(self, folder_path: str,
                            options: Optional[IngestionOptions] = None) -> List[IngestionOutcome]:
        return self.ingest_many(self.register_local_folder(folder_path), options)
