"""Scheduling of upload jobs after they are accepted."""
import logging

from fastapi import BackgroundTasks
from sqlalchemy.orm import sessionmaker

from orgmeter_upload.database import SessionLocal
from orgmeter_upload.services.job_registry import JobRegistry
from orgmeter_upload.tasks.upload_tasks import execute_upload_job, run_upload_job

logger = logging.getLogger(__name__)


class JobScheduler:
    """Hands an accepted upload job to whatever executes it."""

    def schedule(self, job_id: str, entity_type: str, background_tasks: BackgroundTasks) -> None:
        raise NotImplementedError


class BackgroundTaskScheduler(JobScheduler):
    """Runs jobs in this process once the response has been sent."""

    def __init__(self, registry: JobRegistry, session_factory: sessionmaker = SessionLocal):
        self.registry = registry
        self.session_factory = session_factory

    def schedule(self, job_id: str, entity_type: str, background_tasks: BackgroundTasks) -> None:
        background_tasks.add_task(
            execute_upload_job, job_id, entity_type, self.registry, self.session_factory
        )
        logger.info(f"📅 Upload job {job_id} scheduled in-process")


class CeleryJobScheduler(JobScheduler):
    """Enqueues jobs for Celery workers."""

    def schedule(self, job_id: str, entity_type: str, background_tasks: BackgroundTasks) -> None:
        result = run_upload_job.delay(job_id, entity_type)
        logger.info(f"📅 Upload job {job_id} queued as Celery task {result.id}")


def build_scheduler(task_backend: str, registry: JobRegistry) -> JobScheduler:
    if task_backend == "celery":
        return CeleryJobScheduler()
    if task_backend == "background":
        return BackgroundTaskScheduler(registry)
    raise ValueError(f"Unknown task backend: {task_backend}")
