"""Tests for the receipt page parsers."""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest

from src.services.errors import ExtractionError, MissingRenderedContentError, NetworkTimeoutError
from src.services.receipt_parsers.entersoft import EntersoftParser
from src.services.receipt_parsers.epsilon_digital import EpsilonDigitalParser
from tests.conftest import load_fixture

RECEIPT_URL = "https://www.e-invoicing.gr/receipt?id=7f3c2a"
FRAME_URL = "https://www.e-invoicing.gr/receipt/document?id=7f3c2a"
EPSILON_URL = "https://sklavenitis.epsilonnet.gr/receipt/0a1b2c"


def entersoft_transport(requests: list | None = None, frame_status: int = 200):
    """Serve the wrapper page and the framed receipt document."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        if request.url.path == "/receipt/document":
            return httpx.Response(frame_status, text=load_fixture("entersoft_receipt.html"))
        return httpx.Response(200, text=load_fixture("entersoft_wrapper.html"))

    return httpx.MockTransport(handler)


def offline_transport():
    """Transport that fails the test if any request is made."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"Unexpected request to {request.url}")

    return httpx.MockTransport(handler)


class TestEntersoftParser:
    """Tests for the remote-fetch Entersoft parser."""

    @pytest.mark.asyncio
    async def test_fetches_frame_and_parses(self, test_settings):
        """Test the wrapper page is followed to the receipt document."""
        requests = []
        parser = EntersoftParser(settings=test_settings, transport=entersoft_transport(requests))

        receipt = await parser.parse(RECEIPT_URL, job_id=7)

        assert [str(r.url) for r in requests] == [RECEIPT_URL, FRAME_URL]
        assert requests[1].headers["Referer"] == RECEIPT_URL
        assert requests[0].headers["User-Agent"] == test_settings.user_agent

        header = receipt.header
        assert header.store_name == "ΜΑΣΟΥΤΗΣ Δ. ΑΕ"
        assert header.receipt_date == datetime(2025, 3, 22, tzinfo=UTC)
        assert header.total_amount == Decimal("4.95")
        assert header.uid == "A1B2C3D4E5F60718"

    @pytest.mark.asyncio
    async def test_extracts_items(self, test_settings):
        """Test comment rows and zero-quantity rows are skipped."""
        parser = EntersoftParser(settings=test_settings, transport=entersoft_transport())

        receipt = await parser.parse(RECEIPT_URL)

        assert [item.name for item in receipt.items] == ["ΓΑΛΑ ΦΡΕΣΚΟ 1L", "ΨΩΜΙ ΤΟΣΤ"]
        milk = receipt.items[0]
        assert milk.quantity == Decimal("2")
        assert milk.price == Decimal("3.10")
        assert milk.unit_price == Decimal("1.55")
        assert milk.vat_percentage is None

    @pytest.mark.asyncio
    async def test_missing_iframe_fails(self, test_settings):
        """Test a page without the embedded document is a hard failure."""
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, text="<html><body>Not found</body></html>")
        )
        parser = EntersoftParser(settings=test_settings, transport=transport)

        with pytest.raises(ExtractionError) as exc_info:
            await parser.parse(RECEIPT_URL)

        assert "iframe#iframeContent" in str(exc_info.value)
        assert exc_info.value.missing_rendered_content is False

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self, test_settings):
        """Test a fetch timeout surfaces as NetworkTimeoutError."""

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        parser = EntersoftParser(settings=test_settings, transport=httpx.MockTransport(handler))

        with pytest.raises(NetworkTimeoutError) as exc_info:
            await parser.parse(RECEIPT_URL)

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_error_status_fails(self, test_settings):
        """Test an HTTP error from the receipt site is an extraction failure."""
        parser = EntersoftParser(
            settings=test_settings, transport=entersoft_transport(frame_status=503)
        )

        with pytest.raises(ExtractionError, match="HTTP 503"):
            await parser.parse(RECEIPT_URL)

    @pytest.mark.asyncio
    async def test_snapshot_with_frame_fetches_only_frame(self, test_settings):
        """Test a supplied wrapper snapshot skips the first request."""
        requests = []
        parser = EntersoftParser(settings=test_settings, transport=entersoft_transport(requests))

        receipt = await parser.parse(
            RECEIPT_URL, html_snapshot=load_fixture("entersoft_wrapper.html")
        )

        assert [str(r.url) for r in requests] == [FRAME_URL]
        assert len(receipt.items) == 2

    @pytest.mark.asyncio
    async def test_snapshot_without_frame_is_the_document(self, test_settings):
        """Test a snapshot of the receipt itself is parsed without fetching."""
        parser = EntersoftParser(settings=test_settings, transport=offline_transport())

        receipt = await parser.parse(
            RECEIPT_URL, html_snapshot=load_fixture("entersoft_receipt.html")
        )

        assert receipt.header.total_amount == Decimal("4.95")
        assert len(receipt.items) == 2

    @pytest.mark.asyncio
    async def test_unparsable_date_downgrades_to_none(self, test_settings):
        """Test optional header fields do not fail the parse."""
        html = load_fixture("entersoft_receipt.html").replace("22-03-2025", "--")
        parser = EntersoftParser(settings=test_settings, transport=offline_transport())

        receipt = await parser.parse(RECEIPT_URL, html_snapshot=html)

        assert receipt.header.receipt_date is None
        assert receipt.header.store_name == "ΜΑΣΟΥΤΗΣ Δ. ΑΕ"

    @pytest.mark.asyncio
    async def test_uid_label_fallback(self, test_settings):
        """Test the UID is found from the Greek label when the layout differs."""
        html = load_fixture("entersoft_receipt.html").replace(
            '<div class="col fontSize8pt mr-0 pr-0">UID:</div>',
            "<div>Αρ. Σήμανσης:</div>",
        )
        parser = EntersoftParser(settings=test_settings, transport=offline_transport())

        receipt = await parser.parse(RECEIPT_URL, html_snapshot=html)

        assert receipt.header.uid == "A1B2C3D4E5F60718"

    @pytest.mark.asyncio
    async def test_empty_page_fails(self, test_settings):
        """Test a page with no items and no header fields fails."""
        parser = EntersoftParser(settings=test_settings, transport=offline_transport())

        with pytest.raises(ExtractionError, match="no items and no header fields"):
            await parser.parse(RECEIPT_URL, html_snapshot="<html><body><p>Σφάλμα</p></body></html>")

    @pytest.mark.asyncio
    async def test_renders_when_item_table_missing(self, test_settings):
        """Test the browser fallback is used for script-built item tables."""
        settings = test_settings.model_copy(update={"browser_rendering_enabled": True})
        browser = AsyncMock()
        browser.render.return_value = load_fixture("entersoft_receipt.html")
        parser = EntersoftParser(settings=settings, browser=browser, transport=offline_transport())

        receipt = await parser.parse(
            RECEIPT_URL, html_snapshot="<html><body><div id='app'></div></body></html>"
        )

        browser.render.assert_awaited_once()
        assert browser.render.await_args.args[0] == RECEIPT_URL
        assert browser.render.await_args.kwargs["wait_for_selector"] == "#no-more-tables"
        assert len(receipt.items) == 2

    @pytest.mark.asyncio
    async def test_no_render_when_disabled(self, test_settings):
        """Test the browser is not touched unless rendering is enabled."""
        browser = AsyncMock()
        parser = EntersoftParser(
            settings=test_settings, browser=browser, transport=offline_transport()
        )

        with pytest.raises(ExtractionError):
            await parser.parse(RECEIPT_URL, html_snapshot="<html><body></body></html>")

        browser.render.assert_not_awaited()


class TestEpsilonDigitalParser:
    """Tests for the client-supplied HTML Epsilon Digital parser."""

    @pytest.mark.asyncio
    async def test_parses_snapshot(self, test_settings):
        """Test header fields are read from the rendered page."""
        parser = EpsilonDigitalParser(settings=test_settings, transport=offline_transport())

        receipt = await parser.parse(
            EPSILON_URL, job_id=3, html_snapshot=load_fixture("epsilon_receipt.html")
        )

        header = receipt.header
        assert header.store_name == "ΣΚΛΑΒΕΝΙΤΗΣ"
        assert header.receipt_date == datetime(2025, 3, 22, tzinfo=UTC)
        assert header.total_amount == Decimal("17.48")
        assert header.uid == "9F8E7D6C5B4A3210"

    @pytest.mark.asyncio
    async def test_item_price_is_net_plus_vat(self, test_settings):
        """Test line totals and derived VAT percentage."""
        parser = EpsilonDigitalParser(settings=test_settings)

        receipt = await parser.parse(
            EPSILON_URL, html_snapshot=load_fixture("epsilon_receipt.html")
        )

        feta, coffee = receipt.items
        assert feta.name == "ΦΕΤΑ ΠΟΠ"
        assert feta.quantity == Decimal("0.450")
        assert feta.price == Decimal("5.08")
        assert feta.unit_price == Decimal("11.29")
        assert feta.vat_percentage == Decimal("12.89")

        assert coffee.price == Decimal("12.40")
        assert coffee.vat_percentage == Decimal("24.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("snapshot", [None, ""])
    async def test_missing_snapshot(self, test_settings, snapshot):
        """Test a missing snapshot always fails with missing rendered content."""
        parser = EpsilonDigitalParser(settings=test_settings, transport=offline_transport())

        with pytest.raises(MissingRenderedContentError) as exc_info:
            await parser.parse(EPSILON_URL, html_snapshot=snapshot)

        assert exc_info.value.missing_rendered_content is True

    @pytest.mark.asyncio
    async def test_total_falls_back_to_gross_value(self, test_settings):
        """Test the hidden gross value is used without a payment table."""
        html = load_fixture("epsilon_receipt.html").replace("Τρόποι Πληρωμής", "Σημειώσεις")
        html = html.replace('value="17.48"', 'value="17.50"')
        parser = EpsilonDigitalParser(settings=test_settings)

        receipt = await parser.parse(EPSILON_URL, html_snapshot=html)

        assert receipt.header.total_amount == Decimal("17.50")

    @pytest.mark.asyncio
    async def test_gross_value_is_dot_decimal(self, test_settings):
        """Test a three-decimal gross value is not read as thousands."""
        html = load_fixture("epsilon_receipt.html").replace("Τρόποι Πληρωμής", "Σημειώσεις")
        html = html.replace('value="17.48"', 'value="29.220"')
        parser = EpsilonDigitalParser(settings=test_settings)

        receipt = await parser.parse(EPSILON_URL, html_snapshot=html)

        assert receipt.header.total_amount == Decimal("29.22")

    @pytest.mark.asyncio
    async def test_unreadable_gross_value_is_none(self, test_settings):
        """Test a malformed gross value leaves the total empty."""
        html = load_fixture("epsilon_receipt.html").replace("Τρόποι Πληρωμής", "Σημειώσεις")
        html = html.replace('value="17.48"', 'value="n/a"')
        parser = EpsilonDigitalParser(settings=test_settings)

        receipt = await parser.parse(EPSILON_URL, html_snapshot=html)

        assert receipt.header.total_amount is None

    @pytest.mark.asyncio
    async def test_missing_uid_downgrades_to_none(self, test_settings):
        """Test a missing UID does not fail the parse."""
        html = load_fixture("epsilon_receipt.html").replace("UID: 9F8E7D6C5B4A3210", "")
        parser = EpsilonDigitalParser(settings=test_settings)

        receipt = await parser.parse(EPSILON_URL, html_snapshot=html)

        assert receipt.header.uid is None
        assert len(receipt.items) == 2
