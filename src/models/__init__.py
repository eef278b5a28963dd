"""SQLAlchemy models."""

from src.models.processing_job import ProcessingJob
from src.models.receipt import Receipt, ReceiptItem
from src.models.scanned_url import ScannedURL
from src.models.user import User

__all__ = [
    "User",
    "ScannedURL",
    "ProcessingJob",
    "Receipt",
    "ReceiptItem",
]
