"""Capture path: queue a scan, then try to deliver it right away."""

import logging
from enum import Enum

from src.device.client import IngestionClient, SubmissionError
from src.device.queue import LocalScanQueue
from src.device.session import SessionProvider
from src.services.receipt_parsers.registry import ParserRegistry, get_parser_registry

logger = logging.getLogger(__name__)


class CaptureOutcome(str, Enum):
    SUBMITTED = "submitted"  # server accepted, queue entry removed
    QUEUED = "queued"  # left for the sync reconciler


class ScanCapture:
    """Entry point for a freshly scanned receipt URL."""

    def __init__(
        self,
        queue: LocalScanQueue,
        client: IngestionClient,
        session: SessionProvider,
        registry: ParserRegistry | None = None,
    ) -> None:
        self.queue = queue
        self.client = client
        self.session = session
        self.registry = registry or get_parser_registry()

    def capture(self, url: str, html_snapshot: str | None = None) -> CaptureOutcome:
        """Stage the scan durably, then submit it inline if possible."""
        user_id = self.session.current_user_id()
        self.queue.enqueue(url, user_id=user_id, html_snapshot=html_snapshot)

        token = self.session.access_token()
        if user_id is None or token is None:
            logger.info(f"No signed-in user, leaving {url} queued")
            return CaptureOutcome.QUEUED

        if not html_snapshot and self.registry.requires_rendered_snapshot(url):
            logger.warning(f"{url} needs a rendered page snapshot, leaving it queued")
            return CaptureOutcome.QUEUED

        try:
            self.client.submit(url, token, html_snapshot)
        except SubmissionError as e:
            logger.warning(f"Inline submission of {url} failed, will sync later: {e}")
            return CaptureOutcome.QUEUED

        self.queue.delete_by_url(url)
        return CaptureOutcome.SUBMITTED
