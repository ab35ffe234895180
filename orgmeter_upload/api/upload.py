"""OrgMeter CSV upload API endpoints."""
import json
import logging
from typing import Optional

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    Header,
    HTTPException,
    Request,
    UploadFile,
)
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from orgmeter_upload.config import get_settings
from orgmeter_upload.database import get_db
from orgmeter_upload.exceptions import (
    CsvParseError,
    EmptyInputError,
    InvalidTransitionError,
    UploadError,
)
from orgmeter_upload.models.reference import User
from orgmeter_upload.models.upload_job import ENTITY_TYPES, UploadJob
from orgmeter_upload.schemas.upload import (
    CreatorResponse,
    JobError,
    JobParameters,
    JobProgress,
    JobResults,
    UploadJobCancelResponse,
    UploadJobCreateResponse,
    UploadJobListRequest,
    UploadJobListResponse,
    UploadJobResponse,
    UploadValidationSummary,
)
from orgmeter_upload.services.csv_processor import (
    ADVERTISED_REQUIRED_FIELDS,
    count_data_rows,
    parse_csv,
    validate_csv_structure,
)
from orgmeter_upload.services.job_registry import JobRegistry
from orgmeter_upload.services.job_store import UploadJobStore
from orgmeter_upload.services.scheduler import JobScheduler

router = APIRouter(prefix="/api/upload/orgmeter", tags=["upload"])

settings = get_settings()
logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


def get_registry(request: Request) -> JobRegistry:
    """Dependency for the process-wide running job registry."""
    return request.app.state.job_registry


def get_scheduler(request: Request) -> JobScheduler:
    """Dependency for the configured job scheduler."""
    return request.app.state.job_scheduler


def build_job_response(job: UploadJob, registry: JobRegistry) -> UploadJobResponse:
    """Flatten an UploadJob row into the status snapshot returned to clients."""
    error = None
    if job.error_message:
        error = JobError(
            message=job.error_message,
            stack=job.error_stack,
            timestamp=job.error_timestamp,
        )

    return UploadJobResponse(
        job_id=job.job_id,
        entity_type=job.entity_type,
        status=job.status,
        progress=JobProgress(
            total=job.progress_total,
            processed=job.progress_processed,
            percentage=job.progress_percentage,
            current_record=job.current_record,
        ),
        parameters=JobParameters(
            funder=job.funder,
            file_name=job.file_name,
            field_mappings=job.field_mappings or {},
            skip_first_row=job.skip_first_row,
        ),
        file_size=job.file_size,
        total_rows=job.total_rows,
        results=JobResults(
            created=job.created_count,
            updated=job.updated_count,
            errors=job.error_count,
            skipped=job.skipped_count,
            details=job.results_details,
            error_details=job.error_details or [],
            skip_details=job.skip_details or [],
        ),
        error=error,
        started_at=job.started_at,
        completed_at=job.completed_at,
        estimated_time_remaining=job.estimated_time_remaining,
        last_progress_update=job.last_progress_update,
        created_at=job.created_at,
        created_by=CreatorResponse.model_validate(job.creator) if job.creator else None,
        is_running=registry.is_running(job.job_id),
    )


def _parse_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    normalized = value.strip().lower()
    if normalized in ("true", "1", "yes"):
        return True
    if normalized in ("false", "0", "no"):
        return False
    raise HTTPException(status_code=400, detail=f"Invalid skipFirstRow value: {value}")


def _conflict(job: UploadJob, entity_type: str) -> HTTPException:
    return HTTPException(
        status_code=409,
        detail={
            "message": f"An upload job for {entity_type} is already running for this funder",
            "job_id": job.job_id,
            "status": job.status,
            "progress": {
                "total": job.progress_total,
                "processed": job.progress_processed,
                "percentage": job.progress_percentage,
            },
        },
    )


async def _read_upload(csv_file: UploadFile) -> bytes:
    """Read the uploaded file, enforcing the size limit while streaming."""
    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    chunks = []
    size = 0
    chunk = await csv_file.read(CHUNK_SIZE)
    while chunk:
        size += len(chunk)
        if size > max_bytes:
            logger.warning(f"❌ File too large: more than {max_bytes} bytes")
            raise HTTPException(
                status_code=413,
                detail=f"File too large (max {settings.max_upload_size_mb}MB)",
            )
        chunks.append(chunk)
        chunk = await csv_file.read(CHUNK_SIZE)
    return b"".join(chunks)


def _accept_upload(
    db: Session,
    scheduler: JobScheduler,
    background_tasks: BackgroundTasks,
    entity_type: str,
    funder: str,
    field_mappings: dict,
    skip_first_row: bool,
    file_name: str,
    content: bytes,
    user_id: Optional[int],
) -> UploadJobCreateResponse:
    """Parse and validate the file, store the pending job and schedule it."""
    try:
        csv_data = parse_csv(content)
    except EmptyInputError:
        raise HTTPException(status_code=400, detail="CSV file is empty")
    except CsvParseError as e:
        raise HTTPException(status_code=400, detail=f"Error parsing CSV file: {e}")

    validation = validate_csv_structure(csv_data[0], field_mappings)
    if not validation.is_valid:
        logger.warning(f"❌ CSV structure invalid, missing: {validation.missing_fields}")
        raise HTTPException(
            status_code=400,
            detail={
                "message": "CSV file structure is invalid",
                "missing_fields": validation.missing_fields,
                "found_fields": validation.found_fields,
                "required_fields": list(ADVERTISED_REQUIRED_FIELDS),
            },
        )

    store = UploadJobStore(db)
    existing_job = store.find_active_job(entity_type, funder)
    if existing_job:
        raise _conflict(existing_job, entity_type)

    creator = db.get(User, user_id) if user_id is not None else None
    total_rows = count_data_rows(csv_data, skip_first_row)

    try:
        job = store.create_job(
            entity_type=entity_type,
            funder=funder,
            file_name=file_name,
            field_mappings=field_mappings,
            column_indexes=validation.column_indexes,
            skip_first_row=skip_first_row,
            file_size=len(content),
            total_rows=total_rows,
            csv_data=csv_data,
            created_by=creator.id if creator else None,
        )
    except IntegrityError:
        # Another request created an active job between the check and the insert
        existing_job = store.find_active_job(entity_type, funder)
        if existing_job:
            raise _conflict(existing_job, entity_type)
        raise

    try:
        scheduler.schedule(job.job_id, entity_type, background_tasks)
    except Exception as e:
        logger.error(f"💥 Could not schedule upload job {job.job_id}: {e}", exc_info=True)
        try:
            store.mark_failed(job.job_id, e)
        except UploadError as mark_error:
            logger.warning(f"⚠️ Could not mark job {job.job_id} as failed: {mark_error}")
        raise HTTPException(status_code=500, detail=f"Error scheduling upload job: {e}")

    logger.info(f"🎉 Upload job {job.job_id} accepted: {total_rows} rows")

    return UploadJobCreateResponse(
        job_id=job.job_id,
        entity_type=job.entity_type,
        status=job.status,
        file_name=file_name,
        file_size=len(content),
        total_rows=total_rows,
        validation=UploadValidationSummary(
            found_fields=validation.found_fields,
            column_indexes=validation.column_indexes,
        ),
        message=f"Upload job for {entity_type} created successfully",
    )


@router.post("/jobs", response_model=UploadJobListResponse)
def list_upload_jobs(
    filters: Optional[UploadJobListRequest] = None,
    db: Session = Depends(get_db),
    registry: JobRegistry = Depends(get_registry),
):
    """
    List upload jobs, newest first.

    Body filters (all optional): funder, status, entityType. Statistics
    count jobs per status for the funder filter only.
    """
    filters = filters or UploadJobListRequest()
    try:
        store = UploadJobStore(db)
        jobs = store.find_jobs(
            funder=filters.funder,
            status=filters.status,
            entity_type=filters.entity_type,
        )
        return UploadJobListResponse(
            jobs=[build_job_response(job, registry) for job in jobs],
            total=len(jobs),
            statistics=store.status_counts(filters.funder),
            running_jobs=registry.running_count(),
        )
    except Exception as e:
        logger.error(f"💥 Error listing upload jobs: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error retrieving upload jobs: {e}")


@router.get("/job/{job_id}/status", response_model=UploadJobResponse)
def get_upload_job_status(
    job_id: str,
    db: Session = Depends(get_db),
    registry: JobRegistry = Depends(get_registry),
):
    """
    Get upload job status and progress.

    Clients poll this endpoint until the status is completed, failed or
    cancelled.
    """
    try:
        job = UploadJobStore(db).get_job(job_id)
        if not job:
            raise HTTPException(status_code=404, detail="Upload job not found")
        return build_job_response(job, registry)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"💥 Error getting upload job status for {job_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error retrieving upload job status: {e}")


@router.post("/job/{job_id}/cancel", response_model=UploadJobCancelResponse)
def cancel_upload_job(
    job_id: str,
    db: Session = Depends(get_db),
    registry: JobRegistry = Depends(get_registry),
):
    """
    Cancel a pending or running upload job.

    Rows already processed are kept. A job running in this process stops
    before its next row.
    """
    try:
        store = UploadJobStore(db)
        job = store.get_job(job_id)
        if not job:
            raise HTTPException(status_code=404, detail="Upload job not found")

        if job.is_terminal:
            raise HTTPException(
                status_code=400,
                detail=(
                    f"Cannot cancel job with status: {job.status}. "
                    "Only pending or running jobs can be cancelled."
                ),
            )

        was_running = registry.signal_cancel(job_id)
        if was_running:
            logger.info(f"⏹️ Signaled cancellation for running upload job {job_id}")

        try:
            store.mark_cancelled(job_id)
        except InvalidTransitionError as e:
            raise HTTPException(status_code=400, detail=str(e))

        job = store.get_job(job_id)
        return UploadJobCancelResponse(
            job_id=job.job_id,
            status=job.status,
            completed_at=job.completed_at,
            was_running=was_running,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"💥 Error cancelling upload job {job_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error cancelling upload job: {e}")


@router.post("/{entity_type}", response_model=UploadJobCreateResponse, status_code=202)
async def create_upload_job(
    entity_type: str,
    background_tasks: BackgroundTasks,
    csv_file: Optional[UploadFile] = File(None, alias="csvFile"),
    funder: Optional[str] = Form(None),
    field_mappings: Optional[str] = Form(None, alias="fieldMappings"),
    skip_first_row: Optional[str] = Form(None, alias="skipFirstRow"),
    user_id: Optional[int] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
    scheduler: JobScheduler = Depends(get_scheduler),
):
    """
    Accept a CSV upload and start processing it in the background.

    This endpoint:
    1. Validates the entity type, form fields and file
    2. Parses the CSV and checks the header against fieldMappings
    3. Rejects the upload if a job is already active for this funder
    4. Stores a pending job holding the parsed rows
    5. Schedules the job and returns its id for status polling
    """
    try:
        if entity_type not in ENTITY_TYPES:
            raise HTTPException(
                status_code=400,
                detail=(
                    f"Unsupported entity type: {entity_type}. "
                    f"Supported types: {', '.join(ENTITY_TYPES)}"
                ),
            )

        if not funder or not funder.strip():
            raise HTTPException(status_code=400, detail="funder is required")
        funder = funder.strip()

        if field_mappings is None:
            raise HTTPException(status_code=400, detail="fieldMappings is required")
        try:
            parsed_mappings = json.loads(field_mappings)
        except json.JSONDecodeError:
            parsed_mappings = None
        if not isinstance(parsed_mappings, dict):
            raise HTTPException(
                status_code=400,
                detail="Invalid fieldMappings format. Must be a valid JSON object.",
            )

        skip_header = _parse_bool(skip_first_row, default=True)

        if csv_file is None or not csv_file.filename:
            raise HTTPException(status_code=400, detail="CSV file is required")

        logger.info(
            f"📁 Starting CSV upload: filename={csv_file.filename}, "
            f"content_type={csv_file.content_type}, funder={funder}"
        )

        if csv_file.content_type != "text/csv" and not csv_file.filename.lower().endswith(".csv"):
            logger.warning(f"❌ Invalid file type: {csv_file.filename}")
            raise HTTPException(status_code=400, detail="Only CSV files are allowed")

        content = await _read_upload(csv_file)

        # Parsing and database writes block, keep them off the event loop
        return await run_in_threadpool(
            _accept_upload,
            db,
            scheduler,
            background_tasks,
            entity_type,
            funder,
            parsed_mappings,
            skip_header,
            csv_file.filename,
            content,
            user_id,
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"💥 Error creating upload job: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Error creating upload job: {e}")
