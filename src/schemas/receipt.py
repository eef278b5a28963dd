"""Receipt schemas."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class ReceiptItemResponse(BaseModel):
    """A purchased line on a receipt."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    quantity: Decimal
    price: Decimal
    unit_price: Decimal | None = None
    vat_percentage: Decimal | None = None


class ReceiptSummaryResponse(BaseModel):
    """Receipt header without its items."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    scanned_url_id: int
    store_name: str | None = None
    receipt_date: datetime | None = None
    total_amount: Decimal | None = None
    uid: str | None = None
    created_at: datetime


class ReceiptResponse(ReceiptSummaryResponse):
    """Receipt header with its items."""

    items: list[ReceiptItemResponse] = []
