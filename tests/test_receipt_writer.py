"""Tests for receipt persistence."""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import patch

import pytest

from src.models.receipt import Receipt, ReceiptItem
from src.services.errors import PartialPersistenceError, PersistenceError
from src.services.job_ledger import JobLedger
from src.services.receipt_parsers.base import (
    ParsedReceipt,
    ParsedReceiptItem,
    ReceiptHeader,
    line_item,
)
from src.services.receipt_writer import ReceiptWriter


@pytest.fixture
def job(db, test_settings, make_scanned_url):
    scanned_url = make_scanned_url("https://www.e-invoicing.gr/receipt?id=9")
    return JobLedger(db, test_settings).create(scanned_url.id)


@pytest.fixture
def parsed():
    return ParsedReceipt(
        header=ReceiptHeader(
            store_name="ΜΑΣΟΥΤΗΣ Δ. ΑΕ",
            receipt_date=datetime(2025, 3, 22, tzinfo=UTC),
            total_amount=Decimal("4.95"),
            uid="A1B2C3D4E5F60718",
        ),
        items=[
            line_item("ΓΑΛΑ ΦΡΕΣΚΟ 1L", Decimal("2"), Decimal("3.10")),
            line_item("ΨΩΜΙ ΤΟΣΤ", Decimal("1"), Decimal("1.85")),
        ],
    )


class TestReceiptWriter:
    """Tests for ReceiptWriter.write."""

    def test_writes_header_and_items(self, db, job, parsed):
        """Test the header and every item are stored."""
        receipt_id = ReceiptWriter(db).write(job, parsed)

        receipt = db.get(Receipt, receipt_id)
        assert receipt.scanned_url_id == job.scanned_url_id
        assert receipt.user_id == job.scanned_url.user_id
        assert receipt.store_name == "ΜΑΣΟΥΤΗΣ Δ. ΑΕ"
        assert receipt.total_amount == Decimal("4.95")
        assert [item.name for item in receipt.items] == ["ΓΑΛΑ ΦΡΕΣΚΟ 1L", "ΨΩΜΙ ΤΟΣΤ"]
        assert receipt.items[0].unit_price == Decimal("1.55")

    def test_header_only_receipt(self, db, job):
        """Test a receipt with header fields but no items is stored."""
        receipt_id = ReceiptWriter(db).write(
            job, ParsedReceipt(header=ReceiptHeader(total_amount=Decimal("9.99")))
        )

        assert db.get(Receipt, receipt_id) is not None
        assert db.query(ReceiptItem).count() == 0

    def test_header_failure_writes_nothing(self, db, job, parsed):
        """Test a failed header insert leaves no receipt behind."""
        writer = ReceiptWriter(db)

        with patch.object(db, "commit", side_effect=_integrity_error()):
            with pytest.raises(PersistenceError) as exc_info:
                writer.write(job, parsed)

        assert not isinstance(exc_info.value, PartialPersistenceError)
        assert db.query(Receipt).count() == 0

    def test_item_failure_is_partial(self, db, job, parsed):
        """Test an item batch failure keeps the header and reports its id."""
        parsed.items.append(
            ParsedReceiptItem(name=None, quantity=Decimal("1"), price=Decimal("1.00"))
        )

        with pytest.raises(PartialPersistenceError) as exc_info:
            ReceiptWriter(db).write(job, parsed)

        receipt_id = exc_info.value.receipt_id
        assert f"Receipt ID: {receipt_id}" in str(exc_info.value)
        assert db.get(Receipt, receipt_id) is not None
        # The batch is all or nothing
        assert db.query(ReceiptItem).count() == 0


def _integrity_error():
    from sqlalchemy.exc import IntegrityError

    return IntegrityError("INSERT INTO receipts", {}, Exception("value too long"))
