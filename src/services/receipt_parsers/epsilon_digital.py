"""Parser for Epsilon Digital receipt pages (epsilonnet.gr), used by Sklavenitis.

These pages are assembled by client-side script behind a bot challenge, so the
server never fetches them. The device renders the page in a WebView and
submits the resulting HTML with the scan.
"""

import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation

from bs4 import BeautifulSoup

from src.services.errors import MissingRenderedContentError
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
    to_cents,
)

logger = logging.getLogger(__name__)

DEFAULT_STORE_NAME = "ΣΚΛΑΒΕΝΙΤΗΣ"

PAYMENT_TOTAL_SELECTOR = (
    'div.form-section__container:has(h6:-soup-contains("Τρόποι Πληρωμής")) '
    "table tbody td:last-child"
)
ITEM_ROWS_SELECTOR = "div.document-lines-table table.table tbody tr"

_UID_RE = re.compile(r"UID:\s*([A-F0-9]+)", re.IGNORECASE)
_HEX_RE = re.compile(r"^[A-F0-9]+$", re.IGNORECASE)


class EpsilonDigitalParser(ReceiptParser):
    """Client-supplied HTML parser. Never touches the network."""

    parser_id = "epsilon_digital"
    requires_rendered_snapshot = True

    async def parse(
        self,
        url: str,
        job_id: int | str | None = None,
        html_snapshot: str | None = None,
    ) -> ParsedReceipt:
        prefix = log_prefix(job_id)
        logger.info(f"{prefix}Using Epsilon Digital parser for URL: {url}")

        if not html_snapshot:
            logger.error(f"{prefix}HTML content is required for {url} but was not provided")
            raise MissingRenderedContentError(url)

        logger.info(f"{prefix}Parsing provided HTML content (length: {len(html_snapshot)})")
        soup = BeautifulSoup(html_snapshot, "html.parser")

        header = ReceiptHeader(
            receipt_date=self._extract_date(soup, prefix),
            total_amount=self._extract_total(soup, prefix),
            uid=self._extract_uid(soup, prefix),
        )
        receipt = self.assemble(url, header, lambda: self._extract_items(soup, prefix), prefix)

        # The page never names the store; the site family implies it
        if receipt.header.store_name is None:
            receipt.header.store_name = DEFAULT_STORE_NAME
        return receipt

    @staticmethod
    def _extract_date(soup: BeautifulSoup, prefix: str) -> datetime | None:
        element = soup.select_one("span#issue-date")
        text = clean_text(element.get_text()) if element else ""  # e.g. "22/03/2025 12:30"
        receipt_date = parse_day_month_year(text)
        if receipt_date is None:
            logger.warning(f"{prefix}Could not find a DD/MM/YYYY date in {text!r}")
        return receipt_date

    @staticmethod
    def _extract_total(soup: BeautifulSoup, prefix: str) -> Decimal | None:
        cell = soup.select_one(PAYMENT_TOTAL_SELECTOR)
        if cell is not None:
            return parse_locale_number(cell.get_text())

        logger.warning(f"{prefix}No total in payment methods table, trying input#gross-value")
        gross = soup.select_one("input#gross-value")
        if gross is not None and gross.get("value"):
            # Machine formatted, always a dot decimal
            try:
                return Decimal(gross["value"].strip())
            except InvalidOperation:
                logger.warning(f"{prefix}Unreadable gross value {gross['value']!r}")
                return None

        logger.warning(f"{prefix}Could not find total amount")
        return None

    @staticmethod
    def _extract_uid(soup: BeautifulSoup, prefix: str) -> str | None:
        span = soup.select_one('div.doc-info__container span:-soup-contains("UID:")')
        if span is None:
            logger.warning(f"{prefix}Could not find element containing 'UID:'")
            return None

        match = _UID_RE.search(span.get_text())
        if match:
            return match.group(1)

        sibling = span.find_next_sibling()
        sibling_text = clean_text(sibling.get_text()) if sibling is not None else ""
        if _HEX_RE.match(sibling_text):
            return sibling_text

        logger.warning(f"{prefix}Could not extract UID from {clean_text(span.get_text())!r}")
        return None

    @staticmethod
    def _extract_items(soup: BeautifulSoup, prefix: str) -> list[ParsedReceiptItem]:
        items = []
        for index, row in enumerate(soup.select(ITEM_ROWS_SELECTOR), start=1):
            columns = row.find_all("td")
            if len(columns) < 6:
                logger.warning(f"{prefix}Skipping item row {index}: only {len(columns)} columns")
                continue

            name = clean_text(columns[1].get_text())
            quantity_text = clean_text(columns[2].get_text())
            vat_text = clean_text(columns[4].get_text())
            net_text = clean_text(columns[5].get_text())

            quantity = parse_locale_number(quantity_text)
            vat_amount = parse_locale_number(vat_text) or Decimal("0")
            net_value = parse_locale_number(net_text) or Decimal("0")

            if not name or quantity is None or quantity <= 0:
                if name or quantity_text or vat_text or net_text:
                    logger.warning(
                        f"{prefix}Skipping item row {index}: could not parse "
                        f"(name={name!r}, quantity={quantity_text!r}, "
                        f"vat={vat_text!r}, net={net_text!r})"
                    )
                continue

            vat_percentage = to_cents(vat_amount / net_value * 100) if net_value > 0 else None
            items.append(line_item(name, quantity, net_value + vat_amount, vat_percentage))
        return items
