"""Pydantic schemas for API requests and responses."""

from src.schemas.receipt import ReceiptItemResponse, ReceiptResponse, ReceiptSummaryResponse
from src.schemas.scan import (
    JobStatusResponse,
    ScanEvent,
    ScanEventRecord,
    ScanResponse,
    ScanSubmit,
    ScanSubmitResponse,
)

__all__ = [
    "ScanSubmit",
    "ScanSubmitResponse",
    "ScanResponse",
    "JobStatusResponse",
    "ScanEvent",
    "ScanEventRecord",
    "ReceiptResponse",
    "ReceiptSummaryResponse",
    "ReceiptItemResponse",
]
