"""Upload job model for tracking CSV import progress."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from orgmeter_upload.database import Base

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

ACTIVE_STATUSES = (PENDING, RUNNING)
TERMINAL_STATUSES = (COMPLETED, FAILED, CANCELLED)

ENTITY_TYPES = ("payment",)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class UploadJob(Base):
    """Model for tracking CSV upload and processing jobs."""

    __tablename__ = "upload_jobs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_id = Column(String(100), nullable=False, unique=True, index=True)
    entity_type = Column(String(50), nullable=False)
    status = Column(
        String(50), nullable=False, default=PENDING
    )  # pending, running, completed, failed, cancelled

    # Parameters
    funder = Column(String(100), nullable=False, index=True)
    file_name = Column(String(500), nullable=False)
    field_mappings = Column(JSON, nullable=False, default=dict)
    column_indexes = Column(JSON, nullable=False, default=dict)
    skip_first_row = Column(Boolean, nullable=False, default=True)

    # Upload data, kept for the lifetime of the job
    file_size = Column(Integer, default=0, nullable=False)
    total_rows = Column(Integer, default=0, nullable=False)
    csv_data = Column(JSON, nullable=False, default=list)

    # Progress
    progress_total = Column(Integer, default=0, nullable=False)
    progress_processed = Column(Integer, default=0, nullable=False)
    progress_percentage = Column(Integer, default=0, nullable=False)
    current_record = Column(Integer, nullable=True)
    estimated_time_remaining = Column(Integer, nullable=True)  # milliseconds
    last_progress_update = Column(DateTime, nullable=True)

    # Results
    created_count = Column(Integer, default=0, nullable=False)
    updated_count = Column(Integer, default=0, nullable=False)
    error_count = Column(Integer, default=0, nullable=False)
    skipped_count = Column(Integer, default=0, nullable=False)
    results_details = Column(JSON, nullable=True)
    error_details = Column(JSON, nullable=False, default=list)
    skip_details = Column(JSON, nullable=False, default=list)

    # Top-level failure, set only when the whole job fails
    error_message = Column(Text, nullable=True)
    error_stack = Column(Text, nullable=True)
    error_timestamp = Column(DateTime, nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    creator = relationship("User")

    __table_args__ = (
        # At most one pending/running job per entity type and funder
        Index(
            "uq_upload_jobs_active_funder",
            "entity_type",
            "funder",
            unique=True,
            postgresql_where=text("status IN ('pending', 'running')"),
            sqlite_where=text("status IN ('pending', 'running')"),
        ),
        Index("idx_upload_jobs_status_created", "status", "created_at"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f"<UploadJob(job_id='{self.job_id}', status='{self.status}')>"
