"""Ingestion dispatcher: turns a scanned URL insert event into a stored receipt.

Every event is acknowledged once a processing job has recorded its outcome.
Only a timeout propagates, so the delivery mechanism (Celery or the webhook
caller) tries again and the job ledger lets that redelivery re-claim the row.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models.processing_job import ProcessingJob
from src.models.scanned_url import ScannedURL
from src.schemas.scan import ScanEvent, ScanEventRecord
from src.services.errors import (
    DuplicateJobError,
    ExtractionError,
    MissingRenderedContentError,
    NetworkTimeoutError,
    NoParserError,
    ReceiptPipelineError,
    ValidationError,
)
from src.services.job_ledger import JobLedger
from src.services.receipt_parsers.registry import (
    ParserRegistry,
    get_parser_registry,
    hostname_of,
)
from src.services.receipt_writer import ReceiptWriter

if TYPE_CHECKING:
    from src.services.browser import BrowserManager

logger = logging.getLogger(__name__)

SCANNED_URLS_TABLE = "scanned_urls"


class AckStatus(str, Enum):
    """Outcome reported back to the event source."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass
class Ack:
    """Acknowledgement for one scan event."""

    status: AckStatus
    message: str
    job_id: int | None = None
    receipt_id: int | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "job_id": self.job_id,
            "receipt_id": self.receipt_id,
        }


class IngestionDispatcher:
    """Runs one scan event through job creation, parsing and persistence."""

    def __init__(
        self,
        db: Session,
        registry: ParserRegistry | None = None,
        settings: Settings | None = None,
        browser: "BrowserManager | None" = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.db = db
        self.registry = registry or get_parser_registry()
        self.settings = settings or get_settings()
        self.browser = browser
        self.transport = transport
        self.ledger = JobLedger(db, self.settings)
        self.writer = ReceiptWriter(db)

    def validate(self, payload: Any) -> ScanEventRecord:
        """Check the event shape and that it refers to a stored scanned URL.

        A missing html_snapshot in the event is filled in from the stored row.

        Raises:
            ValidationError: the event is malformed, not an insert, or stale
        """
        try:
            event = ScanEvent.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid scan event: {e.error_count()} validation error(s)"
            ) from e

        if event.table is not None and event.table != SCANNED_URLS_TABLE:
            raise ValidationError(f"Unexpected table in scan event: {event.table}")

        record = event.record
        scanned_url = self.db.get(ScannedURL, record.id)
        if scanned_url is None:
            raise ValidationError(f"Scanned URL {record.id} does not exist")
        if scanned_url.url != record.url or scanned_url.user_id != record.user_id:
            raise ValidationError(f"Scan event does not match scanned URL {record.id}")

        if not record.html_snapshot and scanned_url.html_snapshot:
            record.html_snapshot = scanned_url.html_snapshot
        return record

    async def handle(self, payload: Any) -> Ack:
        """Process one scan event and return its acknowledgement.

        Raises:
            NetworkTimeoutError: fetching or rendering timed out; the job is
                marked failed and retryable
        """
        try:
            record = self.validate(payload)
        except ValidationError as e:
            logger.warning(f"Ignoring scan event: {e}")
            return Ack(AckStatus.IGNORED, str(e))

        try:
            job = self.ledger.create(record.id)
        except DuplicateJobError as e:
            logger.info(str(e))
            return Ack(AckStatus.DUPLICATE, "Job already exists or processing", job_id=e.job_id)

        return await self._process(job, record)

    async def _process(self, job: ProcessingJob, record: ScanEventRecord) -> Ack:
        prefix = f"Job {job.id}: "
        logger.info(f"{prefix}Processing scanned_url_id {record.id}, URL {record.url}")
        self.ledger.mark_processing(job)

        try:
            handle = self.registry.resolve(record.url)
            if handle is None:
                raise NoParserError(record.url, hostname_of(record.url))

            parser = self.registry.create_parser(
                handle,
                settings=self.settings,
                browser=self.browser,
                transport=self.transport,
            )
            parsed = await parser.parse(record.url, job.id, record.html_snapshot)
            if parsed.is_empty:
                raise ExtractionError("Parser returned no significant data")

            receipt_id = self.writer.write(job, parsed)
        except NetworkTimeoutError as e:
            logger.warning(f"{prefix}{e}, leaving job retryable")
            self.ledger.mark_failed(job, e, retryable=True)
            raise
        except ReceiptPipelineError as e:
            logger.error(f"{prefix}{e}")
            self.ledger.mark_failed(
                job, e, awaiting_snapshot=isinstance(e, MissingRenderedContentError)
            )
            return Ack(
                AckStatus.FAILED,
                str(e),
                job_id=job.id,
                receipt_id=getattr(e, "receipt_id", None),
            )
        except Exception as e:
            logger.error(f"{prefix}Unexpected error processing {record.url}: {e}", exc_info=True)
            self.ledger.mark_failed(job, f"Unexpected error: {e}")
            return Ack(AckStatus.FAILED, f"Unexpected error: {e}", job_id=job.id)

        self.ledger.mark_completed(job)
        logger.info(f"{prefix}Stored receipt {receipt_id} with {len(parsed.items)} items")
        return Ack(
            AckStatus.PROCESSED,
            f"Processed {len(parsed.items)} items",
            job_id=job.id,
            receipt_id=receipt_id,
        )
