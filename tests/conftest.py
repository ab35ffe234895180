"""Pytest configuration and fixtures."""
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("TASK_BACKEND", "background")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from orgmeter_upload.api.upload import get_registry, get_scheduler
from orgmeter_upload.database import Base, get_db
from orgmeter_upload.main import app
from orgmeter_upload.models import Advance, Syndicator, User
from orgmeter_upload.services.job_registry import JobRegistry
from orgmeter_upload.services.job_store import UploadJobStore
from orgmeter_upload.services.scheduler import BackgroundTaskScheduler, JobScheduler

FUNDER_ID = "funder-1"

HEADER = ["Payment ID", "Advance", "From", "To", "Type", "Amount", "Paid Date", "Due Date", "Paid"]

FIELD_MAPPINGS = {
    "paymentId": "Payment ID",
    "advanceId": "Advance",
    "from": "From",
    "to": "To",
    "type": "Type",
    "amount": "Amount",
    "paidDate": "Paid Date",
    "dueAt": "Due Date",
    "paid": "Paid",
}


def payment_row(payment_id, payment_type="Syndication Payout", amount="$1,000.00",
                sender="Funder", receiver="Atlas Capital", advance="ADV-00001"):
    """Build one CSV row in HEADER order."""
    return [str(payment_id), advance, sender, receiver, payment_type, amount,
            "01/15/2024", "01/10/2024", "true"]


def to_csv_bytes(rows):
    lines = []
    for row in rows:
        lines.append(",".join(f'"{cell}"' if "," in cell else cell for cell in row))
    return ("\n".join(lines) + "\n").encode("utf-8")


class RecordingScheduler(JobScheduler):
    """Scheduler that only records jobs, leaving them pending."""

    def __init__(self):
        self.scheduled = []

    def schedule(self, job_id, entity_type, background_tasks):
        self.scheduled.append((job_id, entity_type))


@pytest.fixture
def engine():
    """In-memory SQLite shared by every session in a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def reference_data(db):
    """Syndicators, advances and a user that CSV rows resolve against."""
    db.add_all([
        Syndicator(name="Atlas Capital", funder=FUNDER_ID, sync_id="synd-atlas"),
        Syndicator(name="Cedar Ridge Fund", funder=FUNDER_ID, sync_id="synd-cedar"),
        Advance(id=501, id_text="ADV-00001", funder=FUNDER_ID),
        User(id=7, first_name="Dana", last_name="Reyes", email="dana@example.com"),
    ])
    db.commit()


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def store(db):
    return UploadJobStore(db)


@pytest.fixture
def make_job(store):
    """Create a pending payment job from a list of rows (header first)."""

    def _make_job(rows, funder=FUNDER_ID, skip_first_row=True, column_indexes=None):
        if column_indexes is None:
            column_indexes = {
                "paymentId": 0, "advanceId": 1, "from": 2, "to": 3, "type": 4,
                "amount": 5, "paidDate": 6, "dueAt": 7, "paid": 8,
            }
        total = len(rows) - (1 if skip_first_row else 0)
        return store.create_job(
            entity_type="payment",
            funder=funder,
            file_name="payments.csv",
            field_mappings=FIELD_MAPPINGS,
            column_indexes=column_indexes,
            skip_first_row=skip_first_row,
            file_size=0,
            total_rows=total,
            csv_data=rows,
            created_by=None,
        )

    return _make_job


def _client(session_factory, registry, scheduler):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    return TestClient(app)


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def client(session_factory, registry, scheduler):
    """API client whose jobs are recorded but never run."""
    yield _client(session_factory, registry, scheduler)
    app.dependency_overrides.clear()


@pytest.fixture
def running_client(session_factory, registry):
    """API client that runs accepted jobs in-process after each response."""
    yield _client(session_factory, registry, BackgroundTaskScheduler(registry, session_factory))
    app.dependency_overrides.clear()


@pytest.fixture
def upload_form():
    """Multipart form fields for a payment upload."""

    def _upload_form(funder=FUNDER_ID, mappings=None, skip_first_row="true"):
        return {
            "funder": funder,
            "fieldMappings": json.dumps(mappings if mappings is not None else FIELD_MAPPINGS),
            "skipFirstRow": skip_first_row,
        }

    return _upload_form
