"""Receipt and ReceiptItem models."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.mixins import CreatedAtMixin


class Receipt(Base, CreatedAtMixin):
    """Receipt header extracted from a scanned URL, at most one per scan."""

    __tablename__ = "receipts"

    id = Column(Integer, primary_key=True, index=True)
    scanned_url_id = Column(Integer, ForeignKey("scanned_urls.id"), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    receipt_date = Column(DateTime(timezone=True), nullable=True)
    total_amount = Column(Numeric(12, 2), nullable=True)
    store_name = Column(String(255), nullable=True)
    uid = Column(String(255), nullable=True)

    user = relationship("User", back_populates="receipts")
    scanned_url = relationship("ScannedURL", back_populates="receipt")
    items = relationship(
        "ReceiptItem",
        back_populates="receipt",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ReceiptItem.id",
    )


class ReceiptItem(Base):
    """A single purchased line. price is the line total, not the unit price."""

    __tablename__ = "receipt_items"

    id = Column(Integer, primary_key=True, index=True)
    receipt_id = Column(
        Integer, ForeignKey("receipts.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(500), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=True)
    vat_percentage = Column(Numeric(5, 2), nullable=True)

    receipt = relationship("Receipt", back_populates="items")
