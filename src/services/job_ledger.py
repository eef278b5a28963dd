"""Processing job bookkeeping for scanned URLs.

Status changes are conditional UPDATEs on the current status, so two workers
racing on the same row cannot both move it forward. The unique constraint on
scanned_url_id is the only other synchronisation point.
"""

import logging
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.config import Settings, get_settings
from src.models.enums import JobStatus
from src.models.processing_job import ProcessingJob
from src.services.errors import DuplicateJobError, PersistenceError

logger = logging.getLogger(__name__)


def truncate_message(message: str, max_length: int) -> str:
    """Shorten message to max_length characters, marking the cut."""
    if len(message) <= max_length:
        return message
    return message[: max_length - 3] + "..."


class JobLedger:
    """Creates processing jobs and moves them through their states.

    pending -> processing -> completed | failed
    """

    def __init__(self, db: Session, settings: Settings | None = None) -> None:
        self.db = db
        self.settings = settings or get_settings()

    def get_for_scanned_url(self, scanned_url_id: int) -> ProcessingJob | None:
        return (
            self.db.query(ProcessingJob)
            .filter(ProcessingJob.scanned_url_id == scanned_url_id)
            .first()
        )

    def create(self, scanned_url_id: int) -> ProcessingJob:
        """Insert a pending job for the scanned URL.

        Raises:
            DuplicateJobError: a job already exists and cannot be re-claimed
        """
        job = ProcessingJob(
            scanned_url_id=scanned_url_id,
            status=JobStatus.PENDING.value,
            attempts=1,
        )
        self.db.add(job)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            existing = self.get_for_scanned_url(scanned_url_id)
            if existing is None:
                raise PersistenceError(f"Failed to create processing job: {e.orig}") from e
            return self._reclaim(existing)

        self.db.refresh(job)
        logger.info(f"Created new job {job.id} for scanned_url_id {scanned_url_id}")
        return job

    def _reclaim(self, job: ProcessingJob) -> ProcessingJob:
        """Reuse a job whose last attempt timed out, bumping its attempt count."""
        if not (
            job.status == JobStatus.FAILED.value
            and job.retryable
            and job.attempts < self.settings.job_max_attempts
        ):
            raise DuplicateJobError(job.scanned_url_id, job.id)

        seen_attempts = job.attempts
        updated = (
            self.db.query(ProcessingJob)
            .filter(
                ProcessingJob.id == job.id,
                ProcessingJob.status == JobStatus.FAILED.value,
                ProcessingJob.attempts == seen_attempts,
            )
            .update(
                {
                    ProcessingJob.status: JobStatus.PENDING.value,
                    ProcessingJob.attempts: seen_attempts + 1,
                    ProcessingJob.retryable: False,
                    ProcessingJob.updated_at: datetime.now(UTC),
                },
                synchronize_session=False,
            )
        )
        self.db.commit()
        if updated != 1:
            # Another invocation re-claimed it first
            raise DuplicateJobError(job.scanned_url_id, job.id)

        self.db.refresh(job)
        logger.info(f"Re-claimed job {job.id} after timeout, attempt {job.attempts}")
        return job

    def mark_processing(self, job: ProcessingJob) -> bool:
        return self._transition(
            job,
            (JobStatus.PENDING,),
            JobStatus.PROCESSING,
            last_attempted_at=datetime.now(UTC),
        )

    def mark_completed(self, job: ProcessingJob) -> bool:
        return self._transition(job, (JobStatus.PROCESSING,), JobStatus.COMPLETED)

    def mark_failed(
        self,
        job: ProcessingJob,
        error: Exception | str,
        retryable: bool = False,
        awaiting_snapshot: bool = False,
    ) -> bool:
        message = truncate_message(str(error), self.settings.job_error_max_length)
        return self._transition(
            job,
            (JobStatus.PENDING, JobStatus.PROCESSING),
            JobStatus.FAILED,
            error_message=message,
            retryable=retryable,
            awaiting_snapshot=awaiting_snapshot,
        )

    def reopen_for_snapshot(self, job: ProcessingJob) -> bool:
        """Let the next delivery re-claim a job that failed for want of a snapshot.

        Pending changes in the session, such as the snapshot itself, are
        committed together with the job update or rolled back with it.
        """
        updated = (
            self.db.query(ProcessingJob)
            .filter(
                ProcessingJob.id == job.id,
                ProcessingJob.status == JobStatus.FAILED.value,
                ProcessingJob.awaiting_snapshot.is_(True),
                ProcessingJob.attempts < self.settings.job_max_attempts,
            )
            .update(
                {
                    ProcessingJob.retryable: True,
                    ProcessingJob.awaiting_snapshot: False,
                    ProcessingJob.updated_at: datetime.now(UTC),
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            self.db.rollback()
            logger.info(f"Job {job.id} is not waiting for a snapshot, leaving it")
            return False

        self.db.commit()
        self.db.refresh(job)
        logger.info(f"Job {job.id} received a rendered snapshot, ready for another attempt")
        return True

    def _transition(
        self,
        job: ProcessingJob,
        from_states: tuple[JobStatus, ...],
        to_state: JobStatus,
        **values,
    ) -> bool:
        """Apply a status change if the row is still in one of from_states.

        Failures are logged, not raised: bookkeeping never blocks the caller.
        """
        values["status"] = to_state.value
        values["updated_at"] = datetime.now(UTC)
        try:
            updated = (
                self.db.query(ProcessingJob)
                .filter(
                    ProcessingJob.id == job.id,
                    ProcessingJob.status.in_([state.value for state in from_states]),
                )
                .update(values, synchronize_session=False)
            )
            self.db.commit()
            self.db.refresh(job)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update job {job.id} status to {to_state.value}: {e}")
            return False

        if updated != 1:
            logger.warning(
                f"Job {job.id} is {job.status}, not moving it to {to_state.value}"
            )
            return False

        logger.info(f"Updated job {job.id} status to {to_state.value}")
        return True
