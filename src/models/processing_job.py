"""ProcessingJob model: the ledger of ingestion attempts."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database import Base
from src.models.enums import JobStatus
from src.models.mixins import TimestampMixin


class ProcessingJob(Base, TimestampMixin):
    """One processing lifecycle per scanned URL.

    The unique constraint on scanned_url_id is what makes duplicate event
    deliveries harmless: the second insert fails and the caller backs off.
    Rows are never deleted.
    """

    __tablename__ = "processing_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    scanned_url_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("scanned_urls.id"), nullable=False, unique=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.PENDING.value, index=True
    )  # pending, processing, completed, failed
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    # Set only when the last failure was an infrastructure timeout
    retryable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Set when the site needs a device-rendered snapshot the scan did not carry
    awaiting_snapshot: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_attempted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    scanned_url = relationship("ScannedURL", back_populates="job")

    def __repr__(self) -> str:
        return (
            f"<ProcessingJob(id={self.id}, scanned_url_id={self.scanned_url_id}, "
            f"status={self.status}, attempts={self.attempts})>"
        )
