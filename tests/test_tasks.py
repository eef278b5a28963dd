"""Tests for the ingestion Celery task."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.services.dispatcher import Ack, AckStatus
from src.services.errors import NetworkTimeoutError
from src.tasks import ingestion
from src.tasks.ingestion import build_insert_event, dispatch_scanned_url
from tests.conftest import TestingSessionLocal

ENTERSOFT_URL = "https://www.e-invoicing.gr/receipt?id=7f3c2a"


@pytest.fixture
def task_session():
    """Point the task at the test database."""
    with patch.object(ingestion, "SessionLocal", TestingSessionLocal):
        yield


@pytest.fixture
def mock_dispatcher():
    dispatcher = MagicMock()
    dispatcher.handle = AsyncMock(
        return_value=Ack(AckStatus.PROCESSED, "Processed 2 items", job_id=1, receipt_id=5)
    )
    with patch.object(ingestion, "IngestionDispatcher", return_value=dispatcher):
        yield dispatcher


@pytest.fixture(autouse=True)
def worker_state():
    """Give each test a fresh worker loop and browser."""
    yield
    ingestion.shutdown_worker_process()


class TestDispatchScannedUrl:
    """Tests for dispatch_scanned_url."""

    def test_missing_scan_is_ignored(self, task_session, mock_dispatcher):
        """Test a deleted or unknown row is not dispatched."""
        result = dispatch_scanned_url(999)

        assert result["status"] == "ignored"
        mock_dispatcher.handle.assert_not_awaited()

    def test_dispatches_insert_event(self, task_session, mock_dispatcher, make_scanned_url):
        """Test the task hands the dispatcher the row's INSERT event."""
        scanned_url = make_scanned_url(ENTERSOFT_URL, html_snapshot="<html></html>")

        result = dispatch_scanned_url(scanned_url.id)

        assert result == {
            "status": "processed",
            "message": "Processed 2 items",
            "job_id": 1,
            "receipt_id": 5,
        }
        event = mock_dispatcher.handle.await_args.args[0]
        assert event["type"] == "INSERT"
        assert event["record"]["id"] == scanned_url.id
        assert event["record"]["url"] == ENTERSOFT_URL
        assert "html_snapshot" not in event["record"]

    def test_timeout_retries_with_backoff(self, task_session, mock_dispatcher, make_scanned_url):
        """Test a timeout schedules a retry with an exponential countdown."""
        scanned_url = make_scanned_url(ENTERSOFT_URL)
        mock_dispatcher.handle.side_effect = NetworkTimeoutError("Timed out after 15s")

        with patch.object(
            dispatch_scanned_url, "retry", side_effect=RuntimeError("retry scheduled")
        ) as mock_retry:
            with pytest.raises(RuntimeError, match="retry scheduled"):
                dispatch_scanned_url(scanned_url.id)

        assert mock_retry.call_args.kwargs["countdown"] == ingestion.RETRY_BASE_COUNTDOWN
        assert isinstance(mock_retry.call_args.kwargs["exc"], NetworkTimeoutError)

    def test_tasks_share_worker_loop(self, task_session, mock_dispatcher, make_scanned_url):
        """Test consecutive tasks run on the same event loop."""
        scanned_url = make_scanned_url(ENTERSOFT_URL)

        dispatch_scanned_url(scanned_url.id)
        loop = ingestion.get_worker_loop()
        dispatch_scanned_url(scanned_url.id)

        assert ingestion.get_worker_loop() is loop
        assert not loop.is_closed()


def test_build_insert_event(make_scanned_url):
    """Test the event matches the webhook payload shape."""
    scanned_url = make_scanned_url(ENTERSOFT_URL)

    event = build_insert_event(scanned_url)

    assert event["table"] == "scanned_urls"
    assert event["record"]["user_id"] == scanned_url.user_id
    assert event["record"]["created_at"] is not None


def test_worker_shutdown_closes_loop():
    """Test the worker shutdown signal closes the loop and drops the browser."""
    ingestion.init_worker_process()
    loop = ingestion.get_worker_loop()
    browser = ingestion.get_worker_browser()

    ingestion.shutdown_worker_process()

    assert loop.is_closed()
    assert ingestion.get_worker_browser() is not browser
