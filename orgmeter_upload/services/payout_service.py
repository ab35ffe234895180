"""Payout creation."""
import logging
from typing import Any, Dict

from sqlalchemy.orm import Session

from orgmeter_upload.models.payout import Payout
from orgmeter_upload.models.upload_job import utcnow

logger = logging.getLogger(__name__)


def create_payout(db: Session, data: Dict[str, Any]) -> Payout:
    """
    Create a payout in the caller's transaction.

    The payout is flushed so it has an id, but not committed: the caller
    commits it together with whatever records the payout was made for.

    Args:
        db: Database session
        data: Payout column values; created_date defaults to now

    Returns:
        The pending payout
    """
    data = dict(data)
    if not data.get("created_date"):
        data["created_date"] = utcnow()

    payout = Payout(**data)
    db.add(payout)
    db.flush()

    logger.info(f"💸 Payout {payout.id} staged for funder {payout.funder}: {payout.payout_amount}")
    return payout
