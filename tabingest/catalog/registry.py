"""Source registry: persistence of SourceFile rows."""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from tabingest.catalog.models import SourceFile
from tabingest.ingest.status import SourceStatus, check_transition

logger = logging.getLogger(__name__)


class SourceRegistry:
    """
    Repository over the ``files`` table.

    Registration is an upsert keyed by source id: registering a known id
    refreshes its metadata and puts it back to ``pending`` instead of adding
    a second row.
    """

    def __init__(self, db: Session):
        self.db = db

    def register(
        self,
        source_id: str,
        display_name: str,
        origin_location: str,
        mime_type: Optional[str] = None,
        folder_path: Optional[str] = None,
    ) -> SourceFile:
        """
        Register (or re-register) a source as pending.

        Raises:
            InvalidStatusTransition: If the source is currently processing
        """
        record = self.db.get(SourceFile, source_id)

        if record is None:
            record = SourceFile(
                id=source_id,
                display_name=display_name,
                origin_location=origin_location,
                mime_type=mime_type,
                folder_path=folder_path,
                row_count=0,
                status=SourceStatus.PENDING.value,
            )
            self.db.add(record)
            logger.info(f"Registered source {source_id} ({display_name})")
        else:
            check_transition(record.status, SourceStatus.PENDING, source_id=source_id)
            record.display_name = display_name
            record.origin_location = origin_location
            record.mime_type = mime_type
            record.folder_path = folder_path
            record.status = SourceStatus.PENDING.value
            record.error_message = None
            logger.info(f"Re-registered source {source_id}; reset to pending")

        self.db.commit()
        return record

    def register_upload(
        self,
        display_name: str,
        local_path: str,
        mime_type: Optional[str] = None,
    ) -> SourceFile:
        """Register an uploaded file under a freshly generated id."""
        return self.register(
            source_id=uuid.uuid4().hex,
            display_name=display_name,
            origin_location=local_path,
            mime_type=mime_type,
        )

    def get(self, source_id: str) -> Optional[SourceFile]:
        return self.db.get(SourceFile, source_id)

    def list(self, status: Optional[str] = None) -> List[SourceFile]:
        query = select(SourceFile).order_by(SourceFile.created_at, SourceFile.id)
        if status:
            query = query.where(SourceFile.status == SourceStatus(status).value)
        return list(self.db.scalars(query))

    def list_stale_processing(self, updated_before: datetime) -> List[SourceFile]:
        """Sources still processing whose last update is older than ``updated_before``."""
        query = (
            select(SourceFile)
            .where(SourceFile.status == SourceStatus.PROCESSING.value)
            .where(SourceFile.updated_at < updated_before)
            .order_by(SourceFile.updated_at)
        )
        return list(self.db.scalars(query))

    def save(self, record: SourceFile) -> SourceFile:
        self.db.add(record)
        self.db.commit()
        return record
