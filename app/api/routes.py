"""API routes for incidents."""
from typing import Any, List, Optional
from fastapi import APIRouter, Body, Depends, File, HTTPException, Query, Request, UploadFile, status
from app.models import BulkUploadResponse, IncidentResponse, InvalidTransitionDetail, StatusChangeRequest
from core.config import settings
from core.logging import get_logger
from incidents.errors import (
    IncidentNotFoundError,
    IncidentValidationError,
    InvalidStateError,
    InvalidTransitionError,
    PersistenceError,
)
from incidents.models import Incident
from incidents.store import IncidentStore
from incidents.validation import require_valid_incident
from ingestion.csv_reader import CsvFormatError
from ingestion.service import BulkIngestionService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/incidents", tags=["incidents"])


def get_incident_store(request: Request) -> IncidentStore:
    """Store owned by the running application."""
    return request.app.state.incident_store


def _persistence_failed(e: PersistenceError) -> HTTPException:
    # The message says whether the change was rolled back or kept in memory.
    return HTTPException(status_code=500, detail=str(e))


def _load(store: IncidentStore, incident_id: str) -> Incident:
    incident = store.find_by_id(incident_id)
    if incident is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    return incident


@router.get("", response_model=List[IncidentResponse])
async def list_incidents(
    include_archived: Optional[bool] = Query(default=None, alias="includeArchived"),
    store: IncidentStore = Depends(get_incident_store)
) -> List[IncidentResponse]:
    """
    List incidents in creation order.

    Args:
        include_archived: Include ARCHIVED incidents (defaults to settings.show_archived_by_default)
    """
    if include_archived is None:
        include_archived = settings.show_archived_by_default
    return [IncidentResponse.from_incident(i) for i in store.list_all(include_archived)]


@router.get("/{incident_id}", response_model=IncidentResponse)
async def get_incident(
    incident_id: str,
    store: IncidentStore = Depends(get_incident_store)
) -> IncidentResponse:
    """Get a single incident."""
    return IncidentResponse.from_incident(_load(store, incident_id))


@router.post("", response_model=IncidentResponse, status_code=status.HTTP_201_CREATED)
async def create_incident(
    payload: Any = Body(...),
    store: IncidentStore = Depends(get_incident_store)
) -> IncidentResponse:
    """
    Create an incident.

    Field errors are returned together as a 400 with a list of messages.
    """
    try:
        value = require_valid_incident(payload)
    except IncidentValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors)

    try:
        incident = await store.create(value)
    except PersistenceError as e:
        raise _persistence_failed(e)
    return IncidentResponse.from_incident(incident)


@router.patch(
    "/{incident_id}/status",
    response_model=IncidentResponse,
    responses={400: {"model": InvalidTransitionDetail}}
)
async def change_incident_status(
    incident_id: str,
    request: StatusChangeRequest,
    store: IncidentStore = Depends(get_incident_store)
) -> IncidentResponse:
    """Move an incident along the workflow (OPEN → INVESTIGATING → RESOLVED → ARCHIVED → OPEN)."""
    try:
        incident = await store.change_status(incident_id, request.status)
    except IncidentNotFoundError:
        raise HTTPException(status_code=404, detail="Incident not found")
    except InvalidTransitionError as e:
        detail = InvalidTransitionDetail(error=str(e), current_status=e.current, allowed=e.allowed)
        raise HTTPException(status_code=400, detail=detail.model_dump(by_alias=True))
    except PersistenceError as e:
        raise _persistence_failed(e)
    return IncidentResponse.from_incident(incident)


@router.post("/{incident_id}/archive", response_model=IncidentResponse)
async def archive_incident(
    incident_id: str,
    store: IncidentStore = Depends(get_incident_store)
) -> IncidentResponse:
    """Archive an OPEN or RESOLVED incident."""
    try:
        incident = await store.archive(incident_id)
    except IncidentNotFoundError:
        raise HTTPException(status_code=404, detail="Incident not found")
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=InvalidStateError.MESSAGES["archive"]) from e
    except PersistenceError as e:
        raise _persistence_failed(e)
    return IncidentResponse.from_incident(incident)


@router.post("/{incident_id}/reset", response_model=IncidentResponse)
async def reset_incident(
    incident_id: str,
    store: IncidentStore = Depends(get_incident_store)
) -> IncidentResponse:
    """Reopen an ARCHIVED incident."""
    try:
        incident = await store.reset(incident_id)
    except IncidentNotFoundError:
        raise HTTPException(status_code=404, detail="Incident not found")
    except InvalidStateError as e:
        raise HTTPException(status_code=400, detail=InvalidStateError.MESSAGES["reset"]) from e
    except PersistenceError as e:
        raise _persistence_failed(e)
    return IncidentResponse.from_incident(incident)


@router.post("/bulk-upload", response_model=BulkUploadResponse)
async def bulk_upload(
    file: Optional[UploadFile] = File(default=None),
    store: IncidentStore = Depends(get_incident_store)
) -> BulkUploadResponse:
    """
    Create incidents from an uploaded CSV file.

    Invalid rows are skipped and counted; the response is a summary only.
    """
    if file is None:
        raise HTTPException(status_code=400, detail="No file uploaded")

    allowed_types = settings.allowed_mime_types_list
    content_type = (file.content_type or "").split(";")[0].strip()
    if allowed_types and content_type not in allowed_types:
        raise HTTPException(
            status_code=415,
            detail=f"Unsupported file type '{content_type}'. Allowed: {', '.join(allowed_types)}"
        )

    content = await file.read(settings.bulk_upload_max_file_size + 1)
    if len(content) > settings.bulk_upload_max_file_size:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds {settings.bulk_upload_max_file_size} bytes"
        )

    service = BulkIngestionService(store)
    try:
        summary = await service.ingest_csv(content)
    except CsvFormatError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PersistenceError as e:
        logger.error("Bulk upload aborted", filename=file.filename, error=str(e))
        raise _persistence_failed(e)

    return BulkUploadResponse.model_validate(summary.to_dict())
