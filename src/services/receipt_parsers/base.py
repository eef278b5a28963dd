"""Shared types and behaviour for receipt page parsers."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, ClassVar

import httpx

from src.config import Settings, get_settings
from src.services.errors import ExtractionError, NetworkTimeoutError
from src.services.receipt_parsers.normalize import to_cents

if TYPE_CHECKING:
    from src.services.browser import BrowserManager

logger = logging.getLogger(__name__)


@dataclass
class ReceiptHeader:
    """Header fields of a receipt. Any of them may be missing."""

    store_name: str | None = None
    receipt_date: datetime | None = None
    total_amount: Decimal | None = None
    uid: str | None = None

    @property
    def has_fields(self) -> bool:
        """Check if at least one header field was recovered."""
        return any(
            value is not None
            for value in (self.store_name, self.receipt_date, self.total_amount, self.uid)
        )


@dataclass
class ParsedReceiptItem:
    """A line item parsed from a receipt page."""

    name: str
    quantity: Decimal
    price: Decimal  # line total
    unit_price: Decimal | None = None
    vat_percentage: Decimal | None = None


@dataclass
class ParsedReceipt:
    """Parser output, consumed once by the receipt writer."""

    header: ReceiptHeader = field(default_factory=ReceiptHeader)
    items: list[ParsedReceiptItem] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """No items and no header fields: the selectors no longer match the page."""
        return not self.items and not self.header.has_fields


def line_item(
    name: str,
    quantity: Decimal,
    price: Decimal,
    vat_percentage: Decimal | None = None,
) -> ParsedReceiptItem:
    """Build an item, deriving the unit price from the line total."""
    price = to_cents(price)
    unit_price = to_cents(price / quantity) if quantity > 0 else None
    return ParsedReceiptItem(
        name=name,
        quantity=quantity,
        price=price,
        unit_price=unit_price,
        vat_percentage=vat_percentage,
    )


def log_prefix(job_id: int | str | None) -> str:
    """Prefix for log lines that belong to a processing job."""
    return f"Job {job_id}: " if job_id else ""


class ReceiptParser(ABC):
    """Interface implemented by every receipt site family.

    New site families are added by subclassing this and registering a hostname
    suffix in the parser registry.
    """

    parser_id: ClassVar[str]
    requires_rendered_snapshot: ClassVar[bool] = False

    def __init__(
        self,
        settings: Settings | None = None,
        browser: "BrowserManager | None" = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.browser = browser
        self._transport = transport

    @abstractmethod
    async def parse(
        self,
        url: str,
        job_id: int | str | None = None,
        html_snapshot: str | None = None,
    ) -> ParsedReceipt:
        """Extract a receipt from the page at url.

        Raises:
            ExtractionError: the page could not be fetched or parsed
            NetworkTimeoutError: a fetch exceeded its timeout
        """

    def http_client(self) -> httpx.AsyncClient:
        """Create an HTTP client that identifies as a desktop browser."""
        return httpx.AsyncClient(
            headers={"User-Agent": self.settings.user_agent},
            follow_redirects=True,
            transport=self._transport,
        )

    async def fetch(
        self,
        client: httpx.AsyncClient,
        url: str,
        timeout: float,
        referer: str | None = None,
    ) -> str:
        """GET a document as text, translating transport failures."""
        headers = {"Referer": referer} if referer else None
        try:
            response = await client.get(url, headers=headers, timeout=timeout)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(f"Timed out after {timeout:g}s fetching {url}") from e
        except httpx.HTTPStatusError as e:
            raise ExtractionError(
                f"Receipt site answered HTTP {e.response.status_code} for {url}"
            ) from e
        except httpx.HTTPError as e:
            raise ExtractionError(f"Could not fetch {url}: {e}") from e
        return response.text

    def assemble(
        self,
        url: str,
        header: ReceiptHeader,
        extract_items: Callable[[], list[ParsedReceiptItem]],
        prefix: str = "",
    ) -> ParsedReceipt:
        """Run item extraction and reject results that carry no data at all.

        Unparsable optional header fields are already None at this point; only
        a crash in item extraction or a completely empty result fails the parse.
        """
        try:
            items = extract_items()
        except Exception as e:
            raise ExtractionError(f"Could not extract line items from {url}: {e}") from e

        receipt = ParsedReceipt(header=header, items=items)
        logger.info(f"{prefix}Parsed header {header} and {len(items)} items")

        if receipt.is_empty:
            raise ExtractionError(
                f"Receipt page from {url} yielded no items and no header fields; "
                f"the {self.parser_id} selectors may be out of date"
            )
        return receipt
