"""Receipt page parsers, one per receipt site family."""

from src.services.receipt_parsers.base import (
    ParsedReceipt,
    ParsedReceiptItem,
    ReceiptHeader,
    ReceiptParser,
)
from src.services.receipt_parsers.entersoft import EntersoftParser
from src.services.receipt_parsers.epsilon_digital import EpsilonDigitalParser
from src.services.receipt_parsers.registry import (
    ParserHandle,
    ParserRegistry,
    get_parser_registry,
    hostname_of,
)

__all__ = [
    "ParsedReceipt",
    "ParsedReceiptItem",
    "ReceiptHeader",
    "ReceiptParser",
    "EntersoftParser",
    "EpsilonDigitalParser",
    "ParserHandle",
    "ParserRegistry",
    "get_parser_registry",
    "hostname_of",
]
