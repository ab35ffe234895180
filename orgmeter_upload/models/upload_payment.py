"""Staging model for payments imported from OrgMeter CSV exports."""
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from orgmeter_upload.database import Base

# Payment types found in OrgMeter exports
SYNDICATOR_DEPOSIT = "Syndicator Deposit"
SYNDICATOR_WITHDRAWAL = "Syndicator Withdrawal"
SYNDICATION_PURCHASE = "Syndication Purchase"
SYNDICATION_PAYOUT = "Syndication Payout"
SYNDICATION_PAYOUT_ADJUSTMENT = "Syndication Payout (Adjustment)"
SYNDICATION_PAYOUT_FEE = "Syndication Payout Fee"
SYNDICATION_PAYOUT_FEE_ADJUSTMENT = "Syndication Payout Fee (Adjustment)"

PAYMENT_TYPES = (
    SYNDICATOR_DEPOSIT,
    SYNDICATOR_WITHDRAWAL,
    SYNDICATION_PURCHASE,
    SYNDICATION_PAYOUT,
    SYNDICATION_PAYOUT_ADJUSTMENT,
    SYNDICATION_PAYOUT_FEE,
    SYNDICATION_PAYOUT_FEE_ADJUSTMENT,
)

# Sender / receiver party types
FUNDER = "FUNDER"
LENDER = "LENDER"
MERCHANT = "MERCHANT"
ISO = "ISO"
SYNDICATOR = "SYNDICATOR"
OTHER = "OTHER"

PARTY_TYPES = (FUNDER, LENDER, MERCHANT, ISO, SYNDICATOR, OTHER)

UPLOAD_SOURCE = "CSV Upload"


class UploadPayment(Base):
    """One transformed CSV row, keyed by OrgMeter payment id and funder."""

    __tablename__ = "upload_payments"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, nullable=False)
    funder = Column(String(100), nullable=False)

    advance_id = Column(Integer, nullable=True)
    type = Column(String(100), nullable=False)
    amount = Column(Float, nullable=False)
    paid_date = Column(DateTime, nullable=True)
    due_at = Column(DateTime, nullable=True)
    paid = Column(Boolean, default=False, nullable=False)

    sender_id = Column(String(100), nullable=True)
    sender_type = Column(String(50), nullable=True)
    receiver_id = Column(String(100), nullable=True)
    receiver_type = Column(String(50), nullable=True)

    # Import metadata
    source = Column(String(100), default=UPLOAD_SOURCE, nullable=False)
    imported_at = Column(DateTime, nullable=True)
    imported_by = Column(Integer, nullable=True)
    last_updated_at = Column(DateTime, nullable=True)
    last_updated_by = Column(Integer, nullable=True)

    # Sync metadata; sync_id points at the downstream object once created
    needs_sync = Column(Boolean, default=True, nullable=False)
    sync_id = Column(Integer, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)
    last_synced_by = Column(Integer, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("payment_id", "funder", name="uq_upload_payments_payment_funder"),
    )

    def __repr__(self):
        return (
            f"<UploadPayment(payment_id={self.payment_id}, funder='{self.funder}', "
            f"type='{self.type}')>"
        )
