"""Payout model."""
from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String
from sqlalchemy.sql import func

from orgmeter_upload.database import Base


class Payout(Base):
    """Ledger payout created from a processed syndication payout row."""

    __tablename__ = "payouts"

    id = Column(Integer, primary_key=True, index=True)
    funder = Column(String(100), nullable=False, index=True)
    payout_amount = Column(Float, default=0, nullable=False)
    fee_amount = Column(Float, default=0, nullable=False)
    credit_amount = Column(Float, default=0, nullable=False)
    created_date = Column(DateTime, nullable=False)
    created_by_user = Column(Integer, nullable=True)
    redeemed_date = Column(DateTime, nullable=True)
    pending = Column(Boolean, default=True, nullable=False)
    inactive = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Payout(id={self.id}, funder='{self.funder}', amount={self.payout_amount})>"
