import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from leadmail.config import settings
from leadmail.db import get_db
from leadmail.errors import AuthError
from leadmail.ingestion.ledger import list_import_logs
from leadmail.ingestion.schemas import (
    AgencyImportResponse,
    ConnectionStatusResponse,
    ImportLogResponse,
    TriggerResponse,
    WorkerStatusResponse,
)
from leadmail.ingestion.services import check_gmail_connection, run_email_import_for_agency
from leadmail.models import IMPORT_STATUSES
from leadmail.worker import get_worker_status, trigger_manual_import

logger = logging.getLogger("leadmail.routers.email_import")


def require_admin_key(x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key")) -> None:
    """Validate the operator key against ADMIN_API_KEYS."""
    if not settings.admin_api_keys:
        logger.warning(
            "ADMIN_API_KEYS not configured. Accepting operator request without API key restriction."
        )
        return

    if not x_admin_key or x_admin_key not in settings.admin_api_keys:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid admin API key.",
        )


router = APIRouter(
    prefix="/admin/email-import",
    tags=["email-import"],
    dependencies=[Depends(require_admin_key)],
)


@router.get(
    "/status",
    response_model=WorkerStatusResponse,
    summary="Email import worker status",
)
def worker_status() -> WorkerStatusResponse:
    return WorkerStatusResponse(**get_worker_status())


@router.post(
    "/trigger",
    response_model=TriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Run one import cycle now",
    description=(
        "Runs a full import cycle in the request. "
        "Returns started=false when a cycle is already in flight."
    ),
)
def trigger_import() -> TriggerResponse:
    return TriggerResponse(started=trigger_manual_import())


@router.post(
    "/agencies/{agency_id}/run",
    response_model=AgencyImportResponse,
    summary="Import email leads for one agency",
)
def run_agency_import(agency_id: str) -> AgencyImportResponse:
    try:
        totals = run_email_import_for_agency(agency_id)
    except AuthError as exc:
        logger.warning("Email import for agency %s not authorized: %s", agency_id, exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc

    return AgencyImportResponse(agency_id=agency_id, **totals.to_dict())


@router.get(
    "/logs",
    response_model=List[ImportLogResponse],
    summary="Recent import ledger entries",
)
def import_logs(
    agency_id: Optional[str] = None,
    source_id: Optional[int] = None,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
) -> List[ImportLogResponse]:
    if status_filter and status_filter not in IMPORT_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"status must be one of: {', '.join(IMPORT_STATUSES)}",
        )

    entries = list_import_logs(
        db,
        agency_id=agency_id,
        source_id=source_id,
        status=status_filter,
        limit=limit,
    )
    return [ImportLogResponse.model_validate(entry) for entry in entries]


@router.get(
    "/connection",
    response_model=ConnectionStatusResponse,
    summary="Check the Gmail connector",
)
def gmail_connection() -> ConnectionStatusResponse:
    return ConnectionStatusResponse(**check_gmail_connection())
