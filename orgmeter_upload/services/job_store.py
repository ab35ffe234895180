"""Persistence and status transitions for upload jobs."""
import logging
import secrets
import string
import time
import traceback
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from orgmeter_upload.exceptions import InvalidTransitionError, JobNotFoundError
from orgmeter_upload.models.upload_job import (
    ACTIVE_STATUSES,
    CANCELLED,
    COMPLETED,
    FAILED,
    PENDING,
    RUNNING,
    UploadJob,
    utcnow,
)

logger = logging.getLogger(__name__)

_JOB_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_job_id(entity_type: str) -> str:
    """Build a job id such as upload_payment_1718000000000_k3j9x0a1b."""
    suffix = "".join(secrets.choice(_JOB_ID_ALPHABET) for _ in range(9))
    return f"upload_{entity_type}_{int(time.time() * 1000)}_{suffix}"


class UploadJobStore:
    """
    Reads and writes upload jobs for one database session.

    Status changes are conditional UPDATE statements, so a transition only
    lands if the job is still in one of the allowed source states; otherwise
    InvalidTransitionError is raised. Every write commits immediately.
    """

    def __init__(self, db: Session):
        self.db = db

    # Queries

    def get_job(self, job_id: str) -> Optional[UploadJob]:
        return self.db.query(UploadJob).filter(UploadJob.job_id == job_id).first()

    def get_job_or_raise(self, job_id: str) -> UploadJob:
        job = self.get_job(job_id)
        if not job:
            raise JobNotFoundError(job_id)
        return job

    def get_status(self, job_id: str) -> Optional[str]:
        """Read the persisted status, bypassing anything cached in the session."""
        return (
            self.db.query(UploadJob.status)
            .filter(UploadJob.job_id == job_id)
            .scalar()
        )

    def find_active_job(self, entity_type: str, funder: str) -> Optional[UploadJob]:
        return (
            self.db.query(UploadJob)
            .filter(
                UploadJob.entity_type == entity_type,
                UploadJob.funder == funder,
                UploadJob.status.in_(ACTIVE_STATUSES),
            )
            .first()
        )

    def find_jobs(
        self,
        funder: Optional[str] = None,
        status: Optional[str] = None,
        entity_type: Optional[str] = None,
    ) -> list[UploadJob]:
        query = self.db.query(UploadJob)
        if funder:
            query = query.filter(UploadJob.funder == funder)
        if status:
            query = query.filter(UploadJob.status == status)
        if entity_type:
            query = query.filter(UploadJob.entity_type == entity_type)
        return query.order_by(UploadJob.created_at.desc(), UploadJob.job_id.desc()).all()

    def status_counts(self, funder: Optional[str] = None) -> Dict[str, int]:
        """Count jobs per status, optionally for one funder."""
        query = self.db.query(UploadJob.status, func.count(UploadJob.id))
        if funder:
            query = query.filter(UploadJob.funder == funder)
        return {status: count for status, count in query.group_by(UploadJob.status).all()}

    # Creation

    def create_job(
        self,
        entity_type: str,
        funder: str,
        file_name: str,
        field_mappings: Dict[str, Any],
        column_indexes: Dict[str, int],
        skip_first_row: bool,
        file_size: int,
        total_rows: int,
        csv_data: list[list[str]],
        created_by: Optional[int] = None,
    ) -> UploadJob:
        """
        Insert a pending job.

        Raises:
            sqlalchemy.exc.IntegrityError: If an active job already exists
                for this entity type and funder
        """
        job = UploadJob(
            job_id=generate_job_id(entity_type),
            entity_type=entity_type,
            status=PENDING,
            funder=funder,
            file_name=file_name,
            field_mappings=field_mappings,
            column_indexes=column_indexes,
            skip_first_row=skip_first_row,
            file_size=file_size,
            total_rows=total_rows,
            csv_data=csv_data,
            error_details=[],
            skip_details=[],
            created_by=created_by,
        )
        self.db.add(job)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(job)
        logger.info(f"💾 Upload job created: {job.job_id} ({total_rows} rows)")
        return job

    # Transitions

    def _transition(self, job_id: str, target: str, allowed: tuple, values: Dict[str, Any]) -> None:
        values = {**values, "status": target}
        count = (
            self.db.query(UploadJob)
            .filter(UploadJob.job_id == job_id, UploadJob.status.in_(allowed))
            .update(values, synchronize_session=False)
        )
        if count == 0:
            self.db.rollback()
            current = self.get_status(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            raise InvalidTransitionError(job_id, target, current)
        self.db.commit()
        self.db.expire_all()

    def mark_started(self, job_id: str) -> None:
        """pending/running -> running, recording started_at the first time."""
        job = self.get_job_or_raise(job_id)
        values = {}
        if job.started_at is None:
            values["started_at"] = utcnow()
        self._transition(job_id, RUNNING, ACTIVE_STATUSES, values)

    def mark_completed(self, job_id: str, results: Dict[str, Any]) -> None:
        """running -> completed with the final counters."""
        self._transition(
            job_id,
            COMPLETED,
            (RUNNING,),
            {
                "completed_at": utcnow(),
                "estimated_time_remaining": 0,
                "created_count": results.get("created", 0),
                "updated_count": results.get("updated", 0),
                "error_count": results.get("errors", 0),
                "skipped_count": results.get("skipped", 0),
                "results_details": results.get("details"),
            },
        )

    def mark_failed(self, job_id: str, error: BaseException) -> None:
        """Any non-terminal state -> failed with the top-level error."""
        stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        self._transition(
            job_id,
            FAILED,
            ACTIVE_STATUSES,
            {
                "completed_at": utcnow(),
                "estimated_time_remaining": 0,
                "error_message": str(error) or type(error).__name__,
                "error_stack": stack,
                "error_timestamp": utcnow(),
            },
        )

    def mark_cancelled(self, job_id: str) -> None:
        """pending/running -> cancelled."""
        self._transition(
            job_id,
            CANCELLED,
            ACTIVE_STATUSES,
            {"completed_at": utcnow(), "estimated_time_remaining": 0},
        )

    # Progress and per-row records

    def update_progress(
        self,
        job_id: str,
        processed: int,
        total: int,
        current_record: Optional[int] = None,
    ) -> None:
        """
        Persist progress counters and recompute the time-remaining estimate.

        The estimate extrapolates the processing rate since started_at.
        """
        job = self.get_job_or_raise(job_id)
        now = utcnow()

        job.progress_processed = processed
        job.progress_total = total
        job.progress_percentage = round(processed / total * 100) if total > 0 else 0
        job.current_record = current_record
        job.last_progress_update = now

        if processed > 0 and job.started_at:
            elapsed_ms = max((now - job.started_at).total_seconds() * 1000, 1)
            rate = processed / elapsed_ms
            remaining = total - processed
            job.estimated_time_remaining = round(remaining / rate) if remaining > 0 else 0

        self.db.commit()

    def add_error_detail(
        self, job_id: str, row_index: int, error: Any, row_data: Optional[list] = None
    ) -> None:
        """Append a row failure; the job status is left alone."""
        job = self.get_job_or_raise(job_id)
        entry = {
            "rowIndex": row_index,
            "error": str(error),
            "timestamp": utcnow().isoformat(),
            "rowData": row_data,
        }
        # Reassign so the JSON column is flagged as changed
        job.error_details = [*(job.error_details or []), entry]
        self.db.commit()

    def add_skip_detail(
        self, job_id: str, row_index: int, reason: str, row_data: Optional[list] = None
    ) -> None:
        """Append the reason a row was skipped."""
        job = self.get_job_or_raise(job_id)
        entry = {
            "rowIndex": row_index,
            "reason": reason,
            "timestamp": utcnow().isoformat(),
            "rowData": row_data,
        }
        job.skip_details = [*(job.skip_details or []), entry]
        self.db.commit()
