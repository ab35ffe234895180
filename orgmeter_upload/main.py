"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orgmeter_upload.api.upload import router as upload_router
from orgmeter_upload.config import get_settings
from orgmeter_upload.database import engine, Base
from orgmeter_upload.models import (  # noqa: F401 - Import to register models
    Advance,
    Payout,
    Syndicator,
    UploadJob,
    UploadPayment,
    User,
)
from orgmeter_upload.services.job_registry import JobRegistry
from orgmeter_upload.services.scheduler import build_scheduler

settings = get_settings()

# Configure logging
handlers = [logging.StreamHandler()]  # Console output
if settings.log_file:
    handlers.append(logging.FileHandler(settings.log_file))  # File output

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=handlers,
)

# Set specific log levels for noisy libraries
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables on startup."""
    Base.metadata.create_all(bind=engine)
    logger.info(f"🚀 OrgMeter upload service started (task backend: {settings.task_backend})")
    yield


app = FastAPI(
    title="OrgMeter Upload",
    description="Bulk import of OrgMeter payment CSV exports as background jobs",
    version="0.1.0",
    lifespan=lifespan,
)

# One registry per process, shared by the API and in-process jobs
app.state.job_registry = JobRegistry()
app.state.job_scheduler = build_scheduler(settings.task_backend, app.state.job_registry)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(upload_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
