"""Row processing loop for OrgMeter payment uploads."""
import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from orgmeter_upload.config import get_settings
from orgmeter_upload.exceptions import InvalidTransitionError, UploadError
from orgmeter_upload.models.payout import Payout
from orgmeter_upload.models.upload_job import ACTIVE_STATUSES, CANCELLED, utcnow
from orgmeter_upload.models.upload_payment import (
    PARTY_TYPES,
    PAYMENT_TYPES,
    SYNDICATION_PAYOUT,
    UPLOAD_SOURCE,
    UploadPayment,
)
from orgmeter_upload.services.csv_processor import count_data_rows
from orgmeter_upload.services.job_registry import JobRegistry
from orgmeter_upload.services.job_store import UploadJobStore
from orgmeter_upload.services.payment_transformer import PaymentRowTransformer
from orgmeter_upload.services.payout_service import create_payout

settings = get_settings()
logger = logging.getLogger(__name__)

CREATED = "created"
UPDATED = "updated"
SKIPPED = "skipped"


def _dialect_insert(db: Session):
    """Pick the INSERT construct that supports ON CONFLICT for this database."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise UploadError(f"Upsert is not supported on {dialect}")


class PaymentUploadService:
    """
    Processes the rows of a payment upload job for one funder.

    Rows are handled strictly in file order. A row that fails is recorded on
    the job and the loop moves on; only setup failures fail the whole job.
    Cancellation is checked once per row, before the row is touched.
    """

    def __init__(
        self,
        db: Session,
        funder_id: str,
        user_id: Optional[int] = None,
        registry: Optional[JobRegistry] = None,
        payout_creator: Callable[[Session, Dict[str, Any]], Payout] = create_payout,
        progress_interval: Optional[int] = None,
    ):
        self.db = db
        self.funder_id = funder_id
        self.user_id = user_id
        self.registry = registry
        self.payout_creator = payout_creator
        self.progress_interval = progress_interval or settings.progress_update_interval
        self.store = UploadJobStore(db)
        self.transformer = PaymentRowTransformer(db, funder_id)

    def process_payment_upload(self, job_id: str) -> None:
        """
        Run a payment upload job to completion, failure or cancellation.

        Args:
            job_id: Upload job ID
        """
        job = None
        try:
            job = self.store.get_job(job_id)
            if not job:
                logger.error(f"❌ Upload job {job_id} not found")
                return

            if job.status not in ACTIVE_STATUSES:
                logger.info(f"⏹️ Upload job {job_id} is {job.status}, stopping processing")
                return

            self.store.mark_started(job_id)
            logger.info(f"🚀 Upload job {job_id} started for funder {self.funder_id}")

            csv_data = job.csv_data
            column_indexes = job.column_indexes
            start_index = 1 if job.skip_first_row else 0
            total_records = count_data_rows(csv_data, job.skip_first_row)

            self.store.update_progress(job_id, 0, total_records)

            counts = {CREATED: 0, UPDATED: 0, SKIPPED: 0}
            errors = 0
            processed = 0

            for index in range(start_index, len(csv_data)):
                if self._is_cancelled(job_id):
                    logger.info(f"⏹️ Upload job {job_id} was cancelled, stopping processing")
                    return

                row = csv_data[index]
                try:
                    outcome = self.process_row(job_id, index, row, column_indexes)
                    counts[outcome] += 1
                except Exception as e:
                    self.db.rollback()
                    errors += 1
                    logger.error(f"💥 Error processing row {index} of job {job_id}: {e}")
                    self.store.add_error_detail(job_id, index, e, row)

                processed += 1

                if processed % self.progress_interval == 0 or processed == total_records:
                    self.store.update_progress(job_id, processed, total_records, index + 1)

            summary = (
                f"Created {counts[CREATED]} transactions, {counts[UPDATED]} already synced, "
                f"{errors} errors, {counts[SKIPPED]} skipped"
            )
            try:
                self.store.mark_completed(
                    job_id,
                    {
                        "created": counts[CREATED],
                        "updated": counts[UPDATED],
                        "errors": errors,
                        "skipped": counts[SKIPPED],
                        "details": {
                            "totalRecords": total_records,
                            "processed": processed,
                            "summary": summary,
                        },
                    },
                )
            except InvalidTransitionError:
                logger.info(f"⏹️ Upload job {job_id} was cancelled before it could complete")
                return

            logger.info(f"🏁 Upload job {job_id} completed: {summary}")

        except Exception as e:
            logger.error(f"💥 Upload job {job_id} failed: {e}", exc_info=True)
            self.db.rollback()
            if job is not None:
                try:
                    self.store.mark_failed(job_id, e)
                except UploadError as mark_error:
                    logger.warning(f"⚠️ Could not mark job {job_id} as failed: {mark_error}")

    def _is_cancelled(self, job_id: str) -> bool:
        if self.registry and self.registry.is_cancel_signalled(job_id):
            return True
        return self.store.get_status(job_id) == CANCELLED

    def process_row(
        self, job_id: str, index: int, row: list[str], column_indexes: Dict[str, int]
    ) -> str:
        """
        Transform, upsert and sync one row.

        Returns:
            One of "created", "updated" or "skipped"
        """
        draft = self.transformer.transform_row(row, column_indexes)
        if draft is None:
            reason = self.transformer.last_skip_reason or "Invalid or insufficient data"
            logger.warning(f"⚠️ Skipped row {index}: {reason}")
            self.store.add_skip_detail(job_id, index, reason, row)
            return SKIPPED

        upload_payment = self.create_upload_payment(draft)

        if upload_payment.sync_id:
            logger.info(
                f"Upload payment {upload_payment.payment_id} already synced "
                f"to {upload_payment.sync_id}"
            )
            return UPDATED

        system_object = self.create_system_object(upload_payment)
        if system_object is None:
            self.store.add_skip_detail(
                job_id,
                index,
                f"No system object created for payment type '{upload_payment.type}'",
                row,
            )
            return SKIPPED

        # Payout and sync metadata land in one transaction, or neither does
        self.update_payment_sync_data(upload_payment, system_object.id)
        self.db.commit()
        logger.info(
            f"✅ Created system object {system_object.id} for payment {upload_payment.payment_id}"
        )
        return CREATED

    def find_upload_payment(self, payment_id: int) -> Optional[UploadPayment]:
        return (
            self.db.query(UploadPayment)
            .filter(
                UploadPayment.payment_id == payment_id,
                UploadPayment.funder == self.funder_id,
            )
            .first()
        )

    def create_upload_payment(self, draft: Dict[str, Any]) -> UploadPayment:
        """
        Insert the staging record unless one exists for (payment_id, funder).

        An existing record is returned unchanged. The insert itself is
        ON CONFLICT DO NOTHING, so a concurrent insert of the same key is
        absorbed rather than duplicated.

        Raises:
            UploadError: If a sender or receiver type is not a known party type
        """
        for key in ("sender_type", "receiver_type"):
            party_type = draft.get(key)
            if party_type is not None and party_type not in PARTY_TYPES:
                raise UploadError(f"Unknown {key.replace('_', ' ')}: {party_type}")

        existing = self.find_upload_payment(draft["payment_id"])
        if existing:
            logger.debug(f"Upload payment {draft['payment_id']} already exists, skipping insert")
            return existing

        now = utcnow()
        values = {
            **draft,
            "funder": self.funder_id,
            "source": UPLOAD_SOURCE,
            "imported_at": now,
            "imported_by": self.user_id,
            "last_updated_at": now,
            "last_updated_by": self.user_id,
            "needs_sync": True,
            "sync_id": None,
        }
        insert = _dialect_insert(self.db)
        stmt = insert(UploadPayment).values(**values)
        stmt = stmt.on_conflict_do_nothing(index_elements=["payment_id", "funder"])
        self.db.execute(stmt)
        self.db.commit()

        logger.debug(f"Created upload payment {draft['payment_id']}")
        return self.find_upload_payment(draft["payment_id"])

    def create_system_object(self, upload_payment: UploadPayment) -> Optional[Payout]:
        """Create the downstream ledger object for this payment type, if any."""
        if upload_payment.type == SYNDICATION_PAYOUT:
            return self.create_syndication_payout(upload_payment)

        if upload_payment.type in PAYMENT_TYPES:
            # Deposits, withdrawals, purchases, adjustments and fees have no
            # downstream object yet
            logger.debug(f"No system object for payment type '{upload_payment.type}'")
        else:
            logger.warning(f"⚠️ Unknown payment type: {upload_payment.type}")
        return None

    def create_syndication_payout(self, upload_payment: UploadPayment) -> Optional[Payout]:
        payout_data = {
            "funder": self.funder_id,
            "payout_amount": upload_payment.amount,
            "fee_amount": 0,
            "credit_amount": 0,
            "created_date": upload_payment.paid_date,
            "created_by_user": self.user_id,
            "pending": True,
            "inactive": False,
        }
        try:
            return self.payout_creator(self.db, payout_data)
        except Exception as e:
            self.db.rollback()
            logger.error(f"💥 Error creating syndication payout: {e}")
            return None

    def update_payment_sync_data(self, upload_payment: UploadPayment, sync_id: int) -> None:
        """Record the downstream object so the payment is never synced twice; the caller commits."""
        upload_payment.sync_id = sync_id
        upload_payment.last_synced_at = utcnow()
        upload_payment.last_synced_by = self.user_id
        upload_payment.needs_sync = False
