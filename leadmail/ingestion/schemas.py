import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ImportTotalsResponse(BaseModel):
    """Counts produced by one import pass."""

    imported: int = 0
    duplicates: int = 0
    errors: int = 0
    skipped: int = Field(
        default=0,
        description="Messages already present in the import ledger.",
    )


class AgencyImportResponse(ImportTotalsResponse):
    agency_id: str


class TriggerResponse(BaseModel):
    started: bool = Field(
        ...,
        description="False when a previous cycle was still running and this trigger was skipped.",
    )


class WorkerStatusResponse(BaseModel):
    is_running: bool
    interval_ms: int
    enabled: bool
    next_run_at: Optional[datetime.datetime] = None


class ConnectionStatusResponse(BaseModel):
    connected: bool
    email_address: Optional[str] = None
    error: Optional[str] = None


class ImportLogResponse(BaseModel):
    """One import ledger entry."""

    id: int
    agency_id: str
    source_id: int
    gmail_message_id: str
    gmail_thread_id: Optional[str] = None
    email_subject: Optional[str] = None
    email_from: Optional[str] = None
    email_date: Optional[datetime.datetime] = None
    status: str
    parsed_data: Optional[Dict[str, Any]] = None
    lead_id: Optional[str] = None
    duplicate_of_lead_id: Optional[str] = None
    duplicate_reason: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)
