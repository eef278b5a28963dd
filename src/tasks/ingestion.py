"""Celery task that runs submitted scans through the ingestion dispatcher."""

import asyncio
import logging

from celery.signals import worker_process_init, worker_process_shutdown

from src.celery_app import app as celery_app
from src.config import get_settings
from src.database import SessionLocal
from src.models.scanned_url import ScannedURL
from src.services.browser import BrowserManager
from src.services.dispatcher import SCANNED_URLS_TABLE, IngestionDispatcher
from src.services.errors import NetworkTimeoutError

logger = logging.getLogger(__name__)

settings = get_settings()

RETRY_BASE_COUNTDOWN = 30  # seconds, doubled on each retry

# Per worker process. Playwright handles are tied to the loop that created
# them, so every task in the process runs on the same loop.
_loop: asyncio.AbstractEventLoop | None = None
_browser: BrowserManager | None = None


def get_worker_loop() -> asyncio.AbstractEventLoop:
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


def get_worker_browser() -> BrowserManager:
    global _browser
    if _browser is None:
        _browser = BrowserManager()
    return _browser


@worker_process_init.connect
def init_worker_process(**kwargs) -> None:
    get_worker_loop()
    get_worker_browser()
    logger.info("Worker process ready for ingestion tasks")


@worker_process_shutdown.connect
def shutdown_worker_process(**kwargs) -> None:
    global _loop, _browser
    if _loop is not None and not _loop.is_closed():
        if _browser is not None:
            try:
                _loop.run_until_complete(_browser.shutdown())
            except Exception as e:
                logger.error(f"Failed to shut down browser: {e}", exc_info=True)
        _loop.close()
    _loop = None
    _browser = None


def build_insert_event(scanned_url: ScannedURL) -> dict:
    """Build the INSERT event the webhook would have received for this row.

    The HTML snapshot is left out; the dispatcher reads it from the row.
    """
    return {
        "type": "INSERT",
        "table": SCANNED_URLS_TABLE,
        "record": {
            "id": scanned_url.id,
            "url": scanned_url.url,
            "user_id": scanned_url.user_id,
            "created_at": scanned_url.created_at.isoformat() if scanned_url.created_at else None,
        },
    }


@celery_app.task(
    name="tasks.dispatch_scanned_url",
    bind=True,
    max_retries=settings.job_max_attempts - 1,
)
def dispatch_scanned_url(self, scanned_url_id: int) -> dict:
    """Extract and store the receipt behind a submitted scan.

    Args:
        scanned_url_id: ID of the ScannedURL record

    Returns:
        Dict with the dispatcher's acknowledgement
    """
    db = SessionLocal()
    try:
        scanned_url = db.get(ScannedURL, scanned_url_id)
        if not scanned_url:
            logger.error(f"ScannedURL {scanned_url_id} not found")
            return {"status": "ignored", "message": "Scanned URL not found"}

        event = build_insert_event(scanned_url)
        dispatcher = IngestionDispatcher(db, browser=get_worker_browser())
        try:
            ack = get_worker_loop().run_until_complete(dispatcher.handle(event))
        except NetworkTimeoutError as e:
            countdown = RETRY_BASE_COUNTDOWN * 2**self.request.retries
            logger.warning(
                f"Timeout processing scanned_url_id {scanned_url_id}, "
                f"retrying in {countdown}s: {e}"
            )
            raise self.retry(exc=e, countdown=countdown) from e

        logger.info(f"Scanned URL {scanned_url_id}: {ack.status.value} ({ack.message})")
        return ack.as_dict()
    finally:
        db.close()
