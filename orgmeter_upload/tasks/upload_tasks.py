"""Upload job execution, in-process or as Celery tasks."""
import logging

from sqlalchemy.orm import sessionmaker

from orgmeter_upload.database import SessionLocal
from orgmeter_upload.exceptions import UploadError
from orgmeter_upload.services.job_registry import JobRegistry
from orgmeter_upload.services.job_store import UploadJobStore
from orgmeter_upload.services.payment_upload_service import PaymentUploadService
from orgmeter_upload.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

# Jobs executing inside this worker process
worker_registry = JobRegistry()


def execute_upload_job(
    job_id: str,
    entity_type: str,
    registry: JobRegistry,
    session_factory: sessionmaker = SessionLocal,
) -> None:
    """
    Run an upload job with its own database session.

    The job is listed in the registry while it runs. Any error escaping the
    entity-specific processor marks the job as failed.

    Args:
        job_id: Upload job ID
        entity_type: Entity type being uploaded
        registry: Registry of jobs running in this process
        session_factory: Factory for the job's database session
    """
    logger.info(f"🚀 Starting upload job: job_id={job_id}, entity_type={entity_type}")
    registry.register(job_id)
    db = session_factory()

    try:
        if entity_type == "payment":
            job = UploadJobStore(db).get_job(job_id)
            if not job:
                logger.error(f"❌ Upload job {job_id} not found")
                return

            service = PaymentUploadService(
                db, job.funder, user_id=job.created_by, registry=registry
            )
            service.process_payment_upload(job_id)
        else:
            raise UploadError(
                f"Upload processing for entity type '{entity_type}' is not yet implemented"
            )

    except Exception as e:
        logger.error(f"💥 Upload job {job_id} failed: {e}", exc_info=True)
        db.rollback()
        try:
            UploadJobStore(db).mark_failed(job_id, e)
        except UploadError as mark_error:
            logger.warning(f"⚠️ Could not mark job {job_id} as failed: {mark_error}")

    finally:
        db.close()
        registry.unregister(job_id)
        logger.info(f"🔌 Upload job {job_id} finished, database session closed")


@celery_app.task(bind=True)
def run_upload_job(self, job_id: str, entity_type: str) -> dict:
    """
    Celery entry point for an upload job.

    Re-delivery after a worker crash is safe: a job that already reached a
    terminal state is left untouched.

    Args:
        self: Celery task instance
        job_id: Upload job ID
        entity_type: Entity type being uploaded

    Returns:
        Dict with the job id and its final status
    """
    execute_upload_job(job_id, entity_type, worker_registry)

    db = SessionLocal()
    try:
        status = UploadJobStore(db).get_status(job_id)
    finally:
        db.close()

    return {"job_id": job_id, "status": status}
