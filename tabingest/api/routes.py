# API routes

import logging
import shutil
import uuid
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from tabingest.catalog.database import get_db, get_engine
from tabingest.catalog.registry import SourceRegistry
from tabingest.config.settings import get_settings
from tabingest.ingest.downloader import Downloader
from tabingest.ingest.drive import DriveClient
from tabingest.ingest.errors import (
    DownloadError,
    InvalidStatusTransition,
    StoreConnectivityError,
)
from tabingest.ingest.orchestrator import (
    IngestionOptions,
    IngestionOrchestrator,
    SourceLoader,
)
from tabingest.ingest.pipeline import ConflictPolicy, IngestionPipeline
from tabingest.ingest.schema_builder import NullabilityPolicy
from tabingest.ingest.status import SourceStatus
from tabingest.ingest.store import TableStore
from tabingest.ingest.type_detector import StrictnessMode

logger = logging.getLogger(__name__)

router = APIRouter()


class FolderRequest(BaseModel):
    folder_url: Optional[str] = None
    folder_path: Optional[str] = None


class SourceResponse(BaseModel):
    id: str
    display_name: str
    mime_type: Optional[str] = None
    origin_location: str
    folder_path: Optional[str] = None
    row_count: int
    status: str
    table_name: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class OutcomeResponse(BaseModel):
    source_id: str
    status: str
    table_name: Optional[str] = None
    row_count: int
    batches: int
    repairs: List[str]
    error: Optional[str] = None


class UploadResponse(BaseModel):
    source: SourceResponse
    outcome: Optional[OutcomeResponse] = None


class RunResponse(BaseModel):
    outcomes: List[OutcomeResponse]


class ColumnResponse(BaseModel):
    name: str
    type: str
    nullable: bool


# ---------- dependencies ----------

def get_table_store() -> TableStore:
    return TableStore(get_engine())


def get_drive_client() -> Generator[DriveClient, None, None]:
    client = DriveClient()
    try:
        yield client
    finally:
        client.close()


def get_downloader() -> Generator[Downloader, None, None]:
    downloader = Downloader()
    try:
        yield downloader
    finally:
        downloader.close()


def get_orchestrator(
    db: Session = Depends(get_db),
    store: TableStore = Depends(get_table_store),
    drive_client: DriveClient = Depends(get_drive_client),
    downloader: Downloader = Depends(get_downloader),
) -> IngestionOrchestrator:
    registry = SourceRegistry(db)
    return IngestionOrchestrator(
        pipeline=IngestionPipeline(store, registry),
        registry=registry,
        loader=SourceLoader(downloader, drive_client),
        drive_client=drive_client,
    )


def ingestion_options(
    conflict_policy: Optional[ConflictPolicy] = Query(None),
    nullability_policy: Optional[NullabilityPolicy] = Query(None),
    strictness_mode: Optional[StrictnessMode] = Query(None),
    table_name: Optional[str] = Query(None),
    file_type: Optional[str] = Query(None),
) -> IngestionOptions:
    settings = get_settings()
    return IngestionOptions(
        conflict_policy=conflict_policy or ConflictPolicy(settings.conflict_policy),
        nullability_policy=nullability_policy or NullabilityPolicy(settings.nullability_policy),
        strictness_mode=strictness_mode,
        table_name=table_name,
        file_type=file_type,
    )


def _run_errors_to_http(error: Exception) -> HTTPException:
    if isinstance(error, InvalidStatusTransition):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, StoreConnectivityError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                             detail=f"Store unavailable: {error}")
    if isinstance(error, DownloadError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


RUN_ERRORS = (InvalidStatusTransition, StoreConnectivityError, DownloadError, ValueError)


# ---------- sources ----------

@router.post("/sources/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
def upload_source(
    file: UploadFile = File(...),
    ingest: bool = Query(True),
    options: IngestionOptions = Depends(ingestion_options),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """
    Upload a CSV or Excel file and register it.

    - **ingest**: ingest immediately (default) or only register
    - **conflict_policy**: append, replace or fail when the table exists
    - **nullability_policy**: all-nullable or inferred
    - **strictness_mode**: conservative (all text) or adaptive typing
    - **table_name**: explicit target table
    - **file_type**: csv, xlsx or xls, used when the file name has no usable extension
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="Uploaded file has no name")

    upload_dir = Path(get_settings().upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    display_name = Path(file.filename).name
    local_path = upload_dir / f"{uuid.uuid4().hex}-{display_name}"

    with open(local_path, "wb") as f:
        shutil.copyfileobj(file.file, f)

    record = orchestrator.register_upload(display_name, str(local_path), file.content_type)

    outcome = None
    if ingest:
        try:
            outcome = orchestrator.ingest_source(record, options)
        except RUN_ERRORS as e:
            raise _run_errors_to_http(e)

    return {
        "source": record.to_dict(),
        "outcome": outcome.to_dict() if outcome else None,
    }


@router.post("/sources/{source_id}/ingest", response_model=OutcomeResponse)
def ingest_source(
    source_id: str,
    options: IngestionOptions = Depends(ingestion_options),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """(Re)ingest one registered source. 409 while it is processing."""
    record = orchestrator.registry.get(source_id)
    if not record:
        raise HTTPException(status_code=404, detail="Source not found")

    try:
        outcome = orchestrator.ingest_source(record, options)
    except RUN_ERRORS as e:
        raise _run_errors_to_http(e)
    return outcome.to_dict()


@router.post("/sources/{source_id}/reset", response_model=SourceResponse)
def reset_source(
    source_id: str,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """Mark a source stuck in processing as failed. 409 if it is not processing."""
    record = orchestrator.registry.get(source_id)
    if not record:
        raise HTTPException(status_code=404, detail="Source not found")

    try:
        orchestrator.reset_source(record)
    except InvalidStatusTransition as e:
        raise _run_errors_to_http(e)
    return record.to_dict()


@router.get("/sources", response_model=List[SourceResponse])
def list_sources(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
):
    """List registered sources, optionally filtered by status."""
    if status_filter and status_filter not in {s.value for s in SourceStatus}:
        raise HTTPException(status_code=400, detail=f"Unknown status: {status_filter}")
    return [r.to_dict() for r in SourceRegistry(db).list(status=status_filter)]


@router.get("/sources/{source_id}", response_model=SourceResponse)
def get_source(source_id: str, db: Session = Depends(get_db)):
    record = SourceRegistry(db).get(source_id)
    if not record:
        raise HTTPException(status_code=404, detail="Source not found")
    return record.to_dict()


# ---------- folders ----------

def _local_folder_path(folder_path: str) -> str:
    """Resolve a requested folder against the local folder root, refusing anything outside it."""
    root = Path(get_settings().local_folder_root).resolve()
    candidate = (root / folder_path).resolve()
    if candidate != root and root not in candidate.parents:
        raise HTTPException(status_code=400, detail="folder_path must be inside the local folder root")
    return str(candidate)


def _register_folder(orchestrator: IngestionOrchestrator, request: FolderRequest):
    if request.folder_url:
        return orchestrator.register_remote_folder(request.folder_url)
    if request.folder_path:
        return orchestrator.register_local_folder(_local_folder_path(request.folder_path))
    raise HTTPException(status_code=400, detail="Provide folder_url or folder_path")


@router.post("/folders/register", response_model=List[SourceResponse])
def register_folder(
    request: FolderRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """List a remote (or local) folder and register every tabular file as pending."""
    try:
        records = _register_folder(orchestrator, request)
    except RUN_ERRORS as e:
        raise _run_errors_to_http(e)
    return [r.to_dict() for r in records]


@router.post("/folders/ingest", response_model=RunResponse)
def ingest_folder(
    request: FolderRequest,
    options: IngestionOptions = Depends(ingestion_options),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
):
    """Register every file in a folder and ingest them one by one, in order."""
    try:
        records = _register_folder(orchestrator, request)
        outcomes = orchestrator.ingest_many(records, options)
    except RUN_ERRORS as e:
        raise _run_errors_to_http(e)
    return {"outcomes": [o.to_dict() for o in outcomes]}


# ---------- introspection ----------

@router.get("/tables", response_model=List[str])
def list_tables(store: TableStore = Depends(get_table_store)):
    try:
        return store.list_tables()
    except StoreConnectivityError as e:
        raise _run_errors_to_http(e)


@router.get("/tables/{table_name}/columns", response_model=List[ColumnResponse])
def list_columns(table_name: str, store: TableStore = Depends(get_table_store)) -> List[Dict[str, Any]]:
    try:
        if table_name not in store.list_tables():
            raise HTTPException(status_code=404, detail="Table not found")
        return store.list_columns(table_name)
    except StoreConnectivityError as e:
        raise _run_errors_to_http(e)
