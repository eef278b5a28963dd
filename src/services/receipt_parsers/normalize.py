"""Helpers for turning receipt page text into numbers and dates.

Receipt sites in the supported locale write decimals with a comma and group
thousands with a dot ("1.234,56"). Dates are day-month-year.
"""

import re
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation

CENTS = Decimal("0.01")

_NUMBER_RE = re.compile(r"-?\d[\d.,]*")
_DOT_THOUSANDS_RE = re.compile(r"-?[1-9]\d{0,2}\.\d{3}")
_DAY_MONTH_YEAR_RE = re.compile(r"(\d{1,2})[-/.](\d{1,2})[-/.](\d{4})")
_WHITESPACE_RE = re.compile(r"\s+")


def clean_text(text: str | None) -> str:
    """Collapse runs of whitespace and strip the ends."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def parse_locale_number(text: str | None) -> Decimal | None:
    """Parse the first number in text, honouring comma decimals.

    Examples:
    - "1.234,56 €" -> 1234.56
    - "12,40" -> 12.40
    - "29.22" -> 29.22 (a lone dot followed by other than three digits is a decimal point)
    - "1.500" -> 1500
    - "0.500" -> 0.500 (a leading zero never starts a thousands group)
    """
    if not text:
        return None

    match = _NUMBER_RE.search(text.replace("\xa0", "").replace(" ", ""))
    if not match:
        return None

    raw = match.group(0).rstrip(".,")
    if "," in raw:
        raw = raw.replace(".", "").replace(",", ".")
    elif raw.count(".") > 1 or _DOT_THOUSANDS_RE.fullmatch(raw):
        raw = raw.replace(".", "")

    try:
        return Decimal(raw)
    except InvalidOperation:
        return None


def to_cents(value: Decimal) -> Decimal:
    """Round a monetary amount to two decimal places."""
    return value.quantize(CENTS)


def parse_day_month_year(text: str | None) -> datetime | None:
    """Find a day-month-year date in text and return it as UTC midnight.

    Dates are pinned to midnight UTC so the calendar day survives conversion
    to ISO-8601 regardless of the server's timezone.
    """
    if not text:
        return None

    match = _DAY_MONTH_YEAR_RE.search(text)
    if not match:
        return None

    day, month, year = (int(part) for part in match.groups())
    try:
        return datetime(year, month, day, tzinfo=UTC)
    except ValueError:
        return None
