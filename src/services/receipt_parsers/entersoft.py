"""Parser for Entersoft e-invoicing receipt pages (e-invoicing.gr).

The receipt URL serves a wrapper page whose iframe#iframeContent points at the
actual document, so fetching takes two requests.
"""

import logging
from decimal import Decimal
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from src.services.errors import ExtractionError
from src.services.receipt_parsers.base import (
    ParsedReceipt,
    ParsedReceiptItem,
    ReceiptHeader,
    ReceiptParser,
    line_item,
    log_prefix,
)
from src.services.receipt_parsers.normalize import (
    clean_text,
    parse_day_month_year,
    parse_locale_number,
)

logger = logging.getLogger(__name__)

FRAME_SELECTOR = "iframe#iframeContent"
ITEMS_TABLE_SELECTOR = "#no-more-tables"
ITEM_ROWS_SELECTOR = "#no-more-tables table tbody tr"

DATE_LABEL = "Ημ/νία έκδοσης:"
TOTAL_LABEL = "ΤΕΛΙΚΗ ΑΞΙΑ"
UID_LABELS = ("UID:", "Αρ. Σήμανσης:")

NAME_COLUMN = "Περιγραφή"
QUANTITY_COLUMN = "Ποσότητα"
TOTAL_COLUMN = "Συνολική Αξία"


def _label_element(soup: BeautifulSoup, label: str) -> Tag | None:
    """Return the innermost div whose own text contains label."""
    node = soup.find(string=lambda text: text is not None and label in text)
    if node is None:
        return None
    return node.find_parent("div")


class EntersoftParser(ReceiptParser):
    """Remote-fetch parser: downloads the page and its embedded document."""

    parser_id = "entersoft"

    async def parse(
        self,
        url: str,
        job_id: int | str | None = None,
        html_snapshot: str | None = None,
    ) -> ParsedReceipt:
        prefix = log_prefix(job_id)
        logger.info(f"{prefix}Using Entersoft parser for URL: {url}")

        receipt_html, document_url = await self._load_document(url, html_snapshot, prefix)

        if self._should_render(receipt_html):
            logger.info(f"{prefix}No item table in static HTML, rendering {document_url}")
            receipt_html = await self.browser.render(
                document_url,
                wait_for_selector=ITEMS_TABLE_SELECTOR,
                timeout=self.settings.render_timeout_seconds,
                user_agent=self.settings.user_agent,
            )

        soup = BeautifulSoup(receipt_html, "html.parser")
        header = self._extract_header(soup, prefix)
        return self.assemble(url, header, lambda: self._extract_items(soup, prefix), prefix)

    async def _load_document(
        self, url: str, html_snapshot: str | None, prefix: str
    ) -> tuple[str, str]:
        """Return the receipt document HTML and the URL it came from."""
        async with self.http_client() as client:
            if html_snapshot:
                logger.info(f"{prefix}Using provided HTML content (length: {len(html_snapshot)})")
                frame_src = self._frame_src(html_snapshot)
                if not frame_src:
                    logger.warning(
                        f"{prefix}No iframe in provided HTML, treating it as the receipt document"
                    )
                    return html_snapshot, url
            else:
                logger.info(f"{prefix}Fetching initial URL: {url}")
                initial_html = await self.fetch(
                    client, url, timeout=self.settings.fetch_timeout_seconds
                )
                frame_src = self._frame_src(initial_html)
                if not frame_src:
                    raise ExtractionError(
                        f"Could not find {FRAME_SELECTOR} src in initial HTML from {url}"
                    )

            frame_url = urljoin(url, frame_src)
            logger.info(f"{prefix}Found iframe URL: {frame_url}. Fetching content...")
            receipt_html = await self.fetch(
                client, frame_url, timeout=self.settings.frame_timeout_seconds, referer=url
            )
            logger.info(f"{prefix}Fetched receipt HTML (length: {len(receipt_html)})")
            return receipt_html, frame_url

    @staticmethod
    def _frame_src(html: str) -> str | None:
        frame = BeautifulSoup(html, "html.parser").select_one(FRAME_SELECTOR)
        if frame is None:
            return None
        return frame.get("src") or None

    def _should_render(self, receipt_html: str) -> bool:
        if not self.settings.browser_rendering_enabled or self.browser is None:
            return False
        return BeautifulSoup(receipt_html, "html.parser").select_one(ITEMS_TABLE_SELECTOR) is None

    def _extract_header(self, soup: BeautifulSoup, prefix: str) -> ReceiptHeader:
        header = ReceiptHeader()

        store = soup.select_one("div.BoldBlueHeader.fontSize12pt")
        header.store_name = (clean_text(store.get_text()) if store else "") or None

        date_text = " ".join(
            element.get_text(" ")
            for element in soup.select(f'div.fontSize8pt:-soup-contains("{DATE_LABEL}")')
        )
        header.receipt_date = parse_day_month_year(date_text)
        if date_text and header.receipt_date is None:
            logger.warning(f"{prefix}Could not parse date from {clean_text(date_text)!r}")

        header.total_amount = self._extract_total(soup)
        header.uid = self._extract_uid(soup, prefix)
        return header

    @staticmethod
    def _extract_total(soup: BeautifulSoup) -> Decimal | None:
        label = _label_element(soup, TOTAL_LABEL)
        if label is None:
            return None
        # The amount sits in a sibling block of the label's container
        for ancestor in list(label.parents)[:3]:
            value = ancestor.select_one("div.backgrey")
            if value is not None:
                return parse_locale_number(value.get_text())
        return None

    @staticmethod
    def _extract_uid(soup: BeautifulSoup, prefix: str) -> str | None:
        for label in soup.select("div.col.fontSize8pt.mr-0.pr-0"):
            if "UID:" not in label.get_text() or label.parent is None:
                continue
            value = label.parent.select_one(":scope > div.col-8.fontSize8pt.ml-0.pl-0")
            if value is not None and clean_text(value.get_text()):
                return clean_text(value.get_text())

        logger.info(f"{prefix}Specific UID selector failed, trying fallback...")
        for text in UID_LABELS:
            label = _label_element(soup, text)
            value = label.find_next_sibling("div") if label is not None else None
            if value is not None and clean_text(value.get_text()):
                return clean_text(value.get_text())

        logger.warning(f"{prefix}Could not find UID element")
        return None

    @staticmethod
    def _extract_items(soup: BeautifulSoup, prefix: str) -> list[ParsedReceiptItem]:
        items = []
        for index, row in enumerate(soup.select(ITEM_ROWS_SELECTOR), start=1):
            if "comments" in (row.get("class") or []):
                continue

            name_cell = row.select_one(f'td[data-title="{NAME_COLUMN}"]')
            quantity_cell = row.select_one(f'td[data-title="{QUANTITY_COLUMN}"]')
            price_cell = row.select_one(f'td[data-title="{TOTAL_COLUMN}"]')
            if name_cell is None or quantity_cell is None or price_cell is None:
                logger.warning(f"{prefix}Skipping row {index}: missing name, quantity or price cell")
                continue

            name = clean_text(name_cell.get_text())
            quantity_text = clean_text(quantity_cell.get_text())
            price_text = clean_text(price_cell.get_text())
            quantity = parse_locale_number(quantity_text)
            price = parse_locale_number(price_text) or Decimal("0")

            if name and quantity is not None and quantity > 0:
                items.append(line_item(name, quantity, price))
            elif name or quantity_text or price_text:
                logger.warning(
                    f"{prefix}Skipping row {index}: could not parse "
                    f"(name={name!r}, quantity={quantity_text!r}, price={price_text!r})"
                )
        return items
