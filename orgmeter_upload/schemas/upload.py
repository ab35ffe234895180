"""Upload request and response schemas."""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class UploadValidationSummary(BaseModel):
    """Columns resolved from the header row."""

    found_fields: List[str]
    column_indexes: Dict[str, int]


class UploadJobCreateResponse(BaseModel):
    """Response after an upload job is accepted."""

    job_id: str
    entity_type: str
    status: str
    file_name: str
    file_size: int
    total_rows: int
    validation: UploadValidationSummary
    message: str = "Upload job created, processing in background"


class JobProgress(BaseModel):
    total: int
    processed: int
    percentage: int
    current_record: Optional[int] = None


class JobParameters(BaseModel):
    funder: str
    file_name: str
    field_mappings: Dict[str, Any]
    skip_first_row: bool


class JobResults(BaseModel):
    created: int
    updated: int
    errors: int
    skipped: int
    details: Optional[Dict[str, Any]] = None
    error_details: List[Dict[str, Any]] = []
    skip_details: List[Dict[str, Any]] = []


class JobError(BaseModel):
    message: Optional[str] = None
    stack: Optional[str] = None
    timestamp: Optional[datetime] = None


class CreatorResponse(BaseModel):
    """Identity of the user who created a job."""

    id: int
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None

    class Config:
        from_attributes = True


class UploadJobResponse(BaseModel):
    """Upload job status snapshot."""

    job_id: str
    entity_type: str
    status: str
    progress: JobProgress
    parameters: JobParameters
    file_size: int
    total_rows: int
    results: JobResults
    error: Optional[JobError] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_time_remaining: Optional[int] = None
    last_progress_update: Optional[datetime] = None
    created_at: datetime
    created_by: Optional[CreatorResponse] = None
    is_running: bool


class UploadJobListRequest(BaseModel):
    """Filters for listing upload jobs."""

    funder: Optional[str] = None
    status: Optional[Literal["pending", "running", "completed", "failed", "cancelled"]] = None
    entity_type: Optional[Literal["payment"]] = Field(None, alias="entityType")

    class Config:
        populate_by_name = True
        extra = "forbid"


class UploadJobListResponse(BaseModel):
    """Upload jobs with per-status counts."""

    jobs: List[UploadJobResponse]
    total: int
    statistics: Dict[str, int]
    running_jobs: int


class UploadJobCancelResponse(BaseModel):
    """Response after cancelling an upload job."""

    job_id: str
    status: str
    completed_at: Optional[datetime] = None
    was_running: bool
    message: str = "Upload job cancellation initiated"
