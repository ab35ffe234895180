"""Tests for turning CSV rows into upload payment drafts."""
from datetime import datetime

import pytest

from conftest import FUNDER_ID, payment_row
from orgmeter_upload.services.payment_transformer import (
    PaymentRowTransformer,
    parse_amount,
    parse_date,
    parse_paid,
)

COLUMN_INDEXES = {
    "paymentId": 0, "advanceId": 1, "from": 2, "to": 3, "type": 4,
    "amount": 5, "paidDate": 6, "dueAt": 7, "paid": 8,
}


@pytest.fixture
def transformer(db, reference_data):
    return PaymentRowTransformer(db, FUNDER_ID)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("$1,234.56", 1234.56),
        ("(500)", -500.0),
        ("  42 ", 42.0),
        ("($1,000.25)", -1000.25),
        ("(-75)", -75.0),
        ("-12.5", -12.5),
    ],
)
def test_parse_amount(raw, expected):
    """Test accounting amount formats."""
    assert parse_amount(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "$", "()", "1.2.3", "nan", "inf"])
def test_parse_amount_rejects_non_numeric(raw):
    """Test that non-numeric leftovers raise ValueError."""
    with pytest.raises(ValueError):
        parse_amount(raw)


def test_parse_date_formats():
    """Test ISO and US export date formats."""
    assert parse_date("2024-01-15") == datetime(2024, 1, 15)
    assert parse_date("2024-01-15T10:30:00Z") == datetime(2024, 1, 15, 10, 30)
    assert parse_date("01/15/2024") == datetime(2024, 1, 15)
    assert parse_date("1/5/24") == datetime(2024, 1, 5)
    assert parse_date("not a date") is None
    assert parse_date("") is None
    assert parse_date("   ") is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Jan 15, 2024", datetime(2024, 1, 15)),
        ("January 15, 2024", datetime(2024, 1, 15)),
        ("15 Jan 2024", datetime(2024, 1, 15)),
        ("2024-01-15 10:00:00 UTC", datetime(2024, 1, 15, 10)),
        ("2024-01-15T10:30:00+02:00", datetime(2024, 1, 15, 8, 30)),
    ],
)
def test_parse_date_written_and_zoned_forms(raw, expected):
    """Test written-out months and timezone-aware values, normalised to naive UTC."""
    parsed = parse_date(raw)
    assert parsed == expected
    assert parsed.tzinfo is None


def test_transform_accepts_written_dates(transformer):
    """Test a row with written-out dates is imported."""
    row = payment_row(1011)
    row[6] = "Jan 15, 2024"
    row[7] = "10 Jan 2024"
    draft = transformer.transform_row(row, COLUMN_INDEXES)
    assert draft["paid_date"] == datetime(2024, 1, 15)
    assert draft["due_at"] == datetime(2024, 1, 10)


@pytest.mark.parametrize(
    "raw, expected",
    [("true", True), ("TRUE", True), ("1", True), ("Yes", True),
     ("false", False), ("0", False), ("no", False), ("", False), ("y", False)],
)
def test_parse_paid(raw, expected):
    """Test paid flag parsing."""
    assert parse_paid(raw) is expected


def test_transform_syndication_payout(transformer):
    """Test a payout row: funder sends, syndicator receives."""
    row = payment_row(1001, "Syndication Payout", "$1,234.56", "Funder", "Atlas Capital")
    draft = transformer.transform_row(row, COLUMN_INDEXES)

    assert draft == {
        "payment_id": 1001,
        "advance_id": 501,
        "type": "Syndication Payout",
        "amount": 1234.56,
        "paid_date": datetime(2024, 1, 15),
        "due_at": datetime(2024, 1, 10),
        "paid": True,
        "sender_id": FUNDER_ID,
        "sender_type": "FUNDER",
        "receiver_id": "synd-atlas",
        "receiver_type": "SYNDICATOR",
    }


@pytest.mark.parametrize("payment_type", ["Syndicator Deposit", "Syndication Purchase"])
def test_transform_inbound_types(transformer, payment_type):
    """Test deposits and purchases: syndicator sends, funder receives."""
    row = payment_row(1002, payment_type, "500", "Cedar Ridge Fund", "Funder")
    draft = transformer.transform_row(row, COLUMN_INDEXES)

    assert draft["sender_id"] == "synd-cedar"
    assert draft["sender_type"] == "SYNDICATOR"
    assert draft["receiver_id"] == FUNDER_ID
    assert draft["receiver_type"] == "FUNDER"


@pytest.mark.parametrize(
    "payment_type",
    [
        "Syndicator Withdrawal",
        "Syndication Payout (Adjustment)",
        "Syndication Payout Fee",
        "Syndication Payout Fee (Adjustment)",
    ],
)
def test_transform_outbound_types(transformer, payment_type):
    """Test withdrawals and payout variants: funder sends, syndicator receives."""
    row = payment_row(1003, payment_type, "(25)", "Funder", "Atlas Capital")
    draft = transformer.transform_row(row, COLUMN_INDEXES)

    assert draft["amount"] == -25.0
    assert draft["sender_type"] == "FUNDER"
    assert draft["receiver_id"] == "synd-atlas"


def test_transform_unresolved_references_are_null(transformer):
    """Test that unknown advances and syndicators do not skip the row."""
    row = payment_row(1004, "Syndication Payout", "10", "Funder", "Unknown Syndicator", advance="ADV-404")
    draft = transformer.transform_row(row, COLUMN_INDEXES)

    assert draft is not None
    assert draft["advance_id"] is None
    assert draft["receiver_id"] is None


def test_transform_unknown_type_leaves_parties_unset(transformer):
    """Test that an unknown type still transforms, without sender/receiver."""
    row = payment_row(1005, "Mystery Transfer")
    draft = transformer.transform_row(row, COLUMN_INDEXES)

    assert draft is not None
    assert draft["type"] == "Mystery Transfer"
    for key in ("sender_id", "sender_type", "receiver_id", "receiver_type"):
        assert key not in draft


@pytest.mark.parametrize("column", [0, 2, 3, 4, 5])
def test_transform_missing_required_field_skips(transformer, column):
    """Test that an empty required cell skips the row."""
    row = payment_row(1006)
    row[column] = "  "
    assert transformer.transform_row(row, COLUMN_INDEXES) is None
    assert transformer.last_skip_reason.startswith("Missing required field")


def test_transform_short_row_skips(transformer):
    """Test that out-of-range columns read as empty."""
    assert transformer.transform_row(["1001", "ADV-00001"], COLUMN_INDEXES) is None


@pytest.mark.parametrize(
    "column, value, reason",
    [
        (0, "abc", "Invalid payment id"),
        (5, "twelve", "Invalid amount"),
        (6, "someday", "Invalid paid date"),
        (7, "13/45/2024", "Invalid due date"),
    ],
)
def test_transform_invalid_values_skip(transformer, column, value, reason):
    """Test that unparseable values skip the row instead of raising."""
    row = payment_row(1007)
    row[column] = value
    assert transformer.transform_row(row, COLUMN_INDEXES) is None
    assert transformer.last_skip_reason.startswith(reason)


def test_transform_unmapped_dates_skip(transformer):
    """Test that rows without date columns are skipped."""
    indexes = dict(COLUMN_INDEXES, paidDate=-1, dueAt=-1)
    assert transformer.transform_row(payment_row(1008), indexes) is None


def test_transform_unmapped_paid_is_false(transformer):
    """Test that a missing paid column reads as unpaid."""
    indexes = dict(COLUMN_INDEXES, paid=-1)
    draft = transformer.transform_row(payment_row(1009), indexes)
    assert draft["paid"] is False


def test_transform_never_raises(transformer, monkeypatch):
    """Test that lookup failures become a skipped row."""

    def broken_lookup(id_text):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(transformer, "get_advance_id", broken_lookup)
    assert transformer.transform_row(payment_row(1010), COLUMN_INDEXES) is None
    assert "database unavailable" in transformer.last_skip_reason
