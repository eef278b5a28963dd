"""Periodic drain of the local scan queue against the server."""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from src.device.client import IngestionClient, SubmissionError
from src.device.queue import LocalScanQueue
from src.device.session import SessionProvider
from src.services.receipt_parsers.registry import ParserRegistry, get_parser_registry

logger = logging.getLogger(__name__)


class SyncResult(str, Enum):
    SUCCESS = "success"
    RETRY = "retry"  # at least one submission failed; back off and run again
    SKIPPED = "skipped"  # offline, or another run was in progress


@dataclass
class SyncReport:
    """What one reconciler run did with each queued URL."""

    result: SyncResult
    submitted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    awaiting_user: list[str] = field(default_factory=list)
    awaiting_snapshot: list[str] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return len(self.failed) + len(self.awaiting_user) + len(self.awaiting_snapshot)


class SyncReconciler:
    """Resubmits queued scans and removes the ones the server accepted.

    Entries are never dropped: a scan is deleted only after the server has
    confirmed it, and entries that cannot be sent yet (no user, missing
    snapshot) are left for a later run without counting as failures.
    """

    def __init__(
        self,
        queue: LocalScanQueue,
        client: IngestionClient,
        session: SessionProvider,
        registry: ParserRegistry | None = None,
        is_online: Callable[[], bool] | None = None,
    ) -> None:
        self.queue = queue
        self.client = client
        self.session = session
        self.registry = registry or get_parser_registry()
        self.is_online = is_online or client.is_reachable
        self._lock = threading.Lock()

    def run(self) -> SyncReport:
        """Drain the queue once. Overlapping calls return SKIPPED."""
        if not self._lock.acquire(blocking=False):
            logger.info("Sync already in progress, skipping this run")
            return SyncReport(SyncResult.SKIPPED)
        try:
            return self._drain()
        finally:
            self._lock.release()

    def _drain(self) -> SyncReport:
        if not self.is_online():
            logger.info("Offline, skipping sync")
            return SyncReport(SyncResult.SKIPPED)

        entries = self.queue.list_pending()
        if not entries:
            logger.debug("No pending scans to sync")
            return SyncReport(SyncResult.SUCCESS)

        logger.info(f"Found {len(entries)} pending scans to sync")
        report = SyncReport(SyncResult.SUCCESS)
        user_id = self.session.current_user_id()
        token = self.session.access_token()

        for entry in entries:
            if entry.user_id is None or entry.user_id != user_id or token is None:
                # Scanned while logged out or by another account
                logger.info(f"Scan {entry.url} has no matching signed-in user, keeping it")
                report.awaiting_user.append(entry.url)
                continue

            if not entry.html_snapshot and self.registry.requires_rendered_snapshot(entry.url):
                logger.warning(f"Scan {entry.url} needs a rendered snapshot, re-scan to complete it")
                report.awaiting_snapshot.append(entry.url)
                continue

            try:
                self.client.submit(entry.url, token, entry.html_snapshot)
                # Resubmitting after a failed delete is harmless: the server
                # answers with the existing scan
                self.queue.delete_by_url(entry.url)
            except SubmissionError as e:
                logger.error(f"Failed to sync scan {entry.url}: {e}")
                report.failed.append(entry.url)
                continue
            except Exception as e:
                logger.error(f"Error syncing scan {entry.url}: {e}", exc_info=True)
                report.failed.append(entry.url)
                continue

            report.submitted.append(entry.url)

        if report.failed:
            report.result = SyncResult.RETRY
            logger.info(
                f"Sync finished with {len(report.failed)} failures, "
                f"{len(report.submitted)} submitted; retrying later"
            )
        else:
            logger.info(f"Sync finished, {len(report.submitted)} submitted")
        return report
