"""Hostname-based lookup of receipt parsers."""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import httpx

from src.config import Settings
from src.services.receipt_parsers.base import ReceiptParser
from src.services.receipt_parsers.entersoft import EntersoftParser
from src.services.receipt_parsers.epsilon_digital import EpsilonDigitalParser

if TYPE_CHECKING:
    from src.services.browser import BrowserManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParserHandle:
    """A registry match: which parser serves a host suffix."""

    host_suffix: str
    parser_class: type[ReceiptParser]

    @property
    def parser_id(self) -> str:
        return self.parser_class.parser_id

    @property
    def requires_rendered_snapshot(self) -> bool:
        return self.parser_class.requires_rendered_snapshot


DEFAULT_PARSERS: tuple[ParserHandle, ...] = (
    ParserHandle("e-invoicing.gr", EntersoftParser),
    ParserHandle("epsilonnet.gr", EpsilonDigitalParser),
)


def hostname_of(url: str) -> str | None:
    """Lower-cased hostname of url, or None when url has none."""
    try:
        hostname = urlsplit(url.strip()).hostname
    except ValueError:
        return None
    return hostname.rstrip(".") if hostname else None


def host_matches(hostname: str, suffix: str) -> bool:
    """Suffix match on label boundaries: shop.example.gr matches example.gr."""
    return hostname == suffix or hostname.endswith(f".{suffix}")


class ParserRegistry:
    """Maps receipt URLs to parser implementations.

    Resolution is a pure function of the URL's hostname; the first entry whose
    suffix matches wins.
    """

    def __init__(self, handles: tuple[ParserHandle, ...] = DEFAULT_PARSERS) -> None:
        self.handles = handles

    def resolve(self, url: str) -> ParserHandle | None:
        """Find the parser for url, or None when no entry matches."""
        hostname = hostname_of(url)
        if hostname is None:
            logger.warning(f"Could not determine hostname for URL {url!r}")
            return None

        for handle in self.handles:
            if host_matches(hostname, handle.host_suffix):
                logger.info(
                    f"Found parser {handle.parser_id} for hostname {hostname} "
                    f"(matched {handle.host_suffix})"
                )
                return handle

        logger.warning(f"No parser found for hostname: {hostname}")
        return None

    def requires_rendered_snapshot(self, url: str) -> bool:
        """Check if url belongs to a site family that only works with device-rendered HTML."""
        handle = self.resolve(url)
        return handle is not None and handle.requires_rendered_snapshot

    def create_parser(
        self,
        handle: ParserHandle,
        settings: Settings | None = None,
        browser: "BrowserManager | None" = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ReceiptParser:
        """Instantiate the parser behind a resolved handle."""
        return handle.parser_class(settings=settings, browser=browser, transport=transport)


@lru_cache
def get_parser_registry() -> ParserRegistry:
    """Get the registry of built-in parsers."""
    return ParserRegistry()
