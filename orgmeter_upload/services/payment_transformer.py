"""Transform OrgMeter payment CSV rows into upload payment records."""
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dateutil import parser as date_parser
from sqlalchemy.orm import Session

from orgmeter_upload.models.reference import Advance, Syndicator
from orgmeter_upload.models.upload_payment import (
    FUNDER,
    SYNDICATION_PAYOUT,
    SYNDICATION_PAYOUT_ADJUSTMENT,
    SYNDICATION_PAYOUT_FEE,
    SYNDICATION_PAYOUT_FEE_ADJUSTMENT,
    SYNDICATION_PURCHASE,
    SYNDICATOR,
    SYNDICATOR_DEPOSIT,
    SYNDICATOR_WITHDRAWAL,
)
from orgmeter_upload.services.csv_processor import REQUIRED_FIELDS

logger = logging.getLogger(__name__)

# Syndicator sends money to the funder
INBOUND_TYPES = (SYNDICATOR_DEPOSIT, SYNDICATION_PURCHASE)

# Funder sends money to the syndicator
OUTBOUND_TYPES = (
    SYNDICATOR_WITHDRAWAL,
    SYNDICATION_PAYOUT,
    SYNDICATION_PAYOUT_ADJUSTMENT,
    SYNDICATION_PAYOUT_FEE,
    SYNDICATION_PAYOUT_FEE_ADJUSTMENT,
)

_AMOUNT_NOISE = re.compile(r"[$,\s()]")


class RowSkipped(Exception):
    """Raised internally when a row lacks usable data."""


def parse_amount(value: str) -> float:
    """
    Parse an accounting-formatted amount.

    "$1,234.56" -> 1234.56 and "(500)" -> -500.0. Parentheses force the
    result negative whatever sign is already present.

    Raises:
        ValueError: If nothing numeric is left after stripping
    """
    is_negative = "(" in value and ")" in value
    amount = float(_AMOUNT_NOISE.sub("", value))
    if not math.isfinite(amount):
        raise ValueError(f"Amount is not a finite number: {value}")
    return -abs(amount) if is_negative else amount


def parse_date(value: str) -> Optional[datetime]:
    """
    Parse a date string as naive UTC, None if empty or unparseable.

    Accepts ISO-8601, US numeric dates (month first) and written-out forms
    such as "Jan 15, 2024". Values with a timezone are converted to UTC.
    """
    value = value.strip()
    if not value:
        return None

    try:
        parsed = date_parser.parse(value)
    except (ValueError, OverflowError):
        return None

    if parsed.tzinfo:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_paid(value: str) -> bool:
    value = value.strip().lower()
    return value in ("true", "1", "yes")


class PaymentRowTransformer:
    """Converts raw CSV rows into upload payment drafts for one funder."""

    def __init__(self, db: Session, funder_id: str):
        self.db = db
        self.funder_id = funder_id
        self.last_skip_reason: Optional[str] = None

    def transform_row(
        self, row: list[str], column_indexes: Dict[str, int]
    ) -> Optional[Dict[str, Any]]:
        """
        Transform one CSV row into an upload payment draft.

        Never raises: rows with missing or invalid data, and unexpected
        errors, produce None and the reason is kept on last_skip_reason.

        Args:
            row: Raw CSV cells
            column_indexes: Logical field name -> column index (-1 if unmapped)

        Returns:
            Draft dict ready for upsert, or None if the row should be skipped
        """
        self.last_skip_reason = None
        try:
            return self._transform(row, column_indexes)
        except RowSkipped as e:
            self.last_skip_reason = str(e)
            logger.warning(f"⚠️ Skipping row: {e}")
        except Exception as e:
            self.last_skip_reason = f"Transform error: {e}"
            logger.warning(f"⚠️ Error transforming row to payment: {e}", exc_info=True)
        return None

    def _transform(self, row: list[str], column_indexes: Dict[str, int]) -> Dict[str, Any]:
        values = {}
        for field_name, index in column_indexes.items():
            if 0 <= index < len(row):
                values[field_name] = str(row[index]).strip()
            else:
                values[field_name] = ""

        for field_name in REQUIRED_FIELDS:
            if not values.get(field_name):
                raise RowSkipped(f"Missing required field {field_name}")

        payment: Dict[str, Any] = {}

        try:
            payment["payment_id"] = int(values["paymentId"])
        except ValueError:
            raise RowSkipped(f"Invalid payment id: {values['paymentId']}")

        payment["advance_id"] = self.get_advance_id(values.get("advanceId", ""))
        payment["type"] = values["type"]

        try:
            payment["amount"] = parse_amount(values["amount"])
        except ValueError:
            raise RowSkipped(f"Invalid amount: {values['amount']}")

        payment["paid_date"] = parse_date(values.get("paidDate", ""))
        if payment["paid_date"] is None:
            raise RowSkipped(f"Invalid paid date: {values.get('paidDate', '')}")

        payment["due_at"] = parse_date(values.get("dueAt", ""))
        if payment["due_at"] is None:
            raise RowSkipped(f"Invalid due date: {values.get('dueAt', '')}")

        payment["paid"] = parse_paid(values.get("paid", ""))

        payment_type = payment["type"]
        if payment_type in INBOUND_TYPES:
            payment["sender_id"] = self.get_syndicator_id(values["from"])
            payment["sender_type"] = SYNDICATOR
            payment["receiver_id"] = self.funder_id
            payment["receiver_type"] = FUNDER
        elif payment_type in OUTBOUND_TYPES:
            payment["sender_id"] = self.funder_id
            payment["sender_type"] = FUNDER
            payment["receiver_id"] = self.get_syndicator_id(values["to"])
            payment["receiver_type"] = SYNDICATOR
        else:
            logger.warning(f"⚠️ Unknown payment type: {payment_type}")

        return payment

    def get_advance_id(self, id_text: str) -> Optional[int]:
        """Resolve an OrgMeter advance display id to its internal id."""
        if not id_text:
            return None
        advance = (
            self.db.query(Advance)
            .filter(Advance.id_text == id_text, Advance.funder == self.funder_id)
            .first()
        )
        return advance.id if advance else None

    def get_syndicator_id(self, name: str) -> Optional[str]:
        """Resolve a syndicator name to its internal syndicator id."""
        syndicator = (
            self.db.query(Syndicator)
            .filter(Syndicator.name == name, Syndicator.funder == self.funder_id)
            .first()
        )
        return syndicator.sync_id if syndicator else None
