"""Persistence of parsed receipts."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.processing_job import ProcessingJob
from src.models.receipt import Receipt, ReceiptItem
from src.services.errors import PartialPersistenceError, PersistenceError
from src.services.receipt_parsers.base import ParsedReceipt, ParsedReceiptItem

logger = logging.getLogger(__name__)


class ReceiptWriter:
    """Writes a receipt header, then its items in one batch."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def write(self, job: ProcessingJob, parsed: ParsedReceipt) -> int:
        """Persist parsed for the job's scanned URL and return the receipt id.

        Raises:
            PersistenceError: the header could not be written; nothing was stored
            PartialPersistenceError: the header exists but the items do not
        """
        receipt_id = self._insert_header(job, parsed)

        if parsed.items:
            logger.info(f"Job {job.id}: Inserting {len(parsed.items)} items...")
            self._insert_items(receipt_id, parsed.items)
            logger.info(f"Job {job.id}: Inserted {len(parsed.items)} items for receipt {receipt_id}")
        else:
            logger.info(f"Job {job.id}: No items to insert for receipt {receipt_id}")

        return receipt_id

    def _insert_header(self, job: ProcessingJob, parsed: ParsedReceipt) -> int:
        header = parsed.header
        scanned_url = job.scanned_url
        receipt = Receipt(
            scanned_url_id=scanned_url.id,
            user_id=scanned_url.user_id,
            receipt_date=header.receipt_date,
            total_amount=header.total_amount,
            store_name=header.store_name,
            uid=header.uid,
        )
        try:
            self.db.add(receipt)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to insert receipt header: {e}") from e

        logger.info(f"Job {job.id}: Inserted receipt header with ID: {receipt.id}")
        return receipt.id

    def _insert_items(self, receipt_id: int, items: list[ParsedReceiptItem]) -> None:
        rows = [
            ReceiptItem(
                receipt_id=receipt_id,
                name=item.name,
                quantity=item.quantity,
                price=item.price,
                unit_price=item.unit_price,
                vat_percentage=item.vat_percentage,
            )
            for item in items
        ]
        try:
            self.db.add_all(rows)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PartialPersistenceError(receipt_id, str(e)) from e
