"""ScannedURL model for QR code submissions."""

from sqlalchemy import Column, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.mixins import CreatedAtMixin


class ScannedURL(Base, CreatedAtMixin):
    """A receipt URL read from a QR code and submitted by a device.

    The url and owner never change. The optional HTML snapshot is the page as
    rendered on the device, for receipt sites that only build their content in
    the browser; a re-scan may supply it once if the first submission lacked it.
    """

    __tablename__ = "scanned_urls"
    __table_args__ = (UniqueConstraint("user_id", "url", name="uq_scanned_url_user_url"),)

    id = Column(Integer, primary_key=True, index=True)
    url = Column(Text, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    html_snapshot = Column(Text, nullable=True)

    user = relationship("User", back_populates="scanned_urls")
    job = relationship("ProcessingJob", back_populates="scanned_url", uselist=False)
    receipt = relationship("Receipt", back_populates="scanned_url", uselist=False)

    @property
    def has_html_snapshot(self) -> bool:
        return bool(self.html_snapshot)

    @property
    def receipt_id(self) -> int | None:
        return self.receipt.id if self.receipt is not None else None

    def __repr__(self) -> str:
        return f"<ScannedURL(id={self.id}, user_id={self.user_id}, url={self.url!r})>"
