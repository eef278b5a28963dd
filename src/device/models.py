"""Local queue table, kept in its own SQLite database on the device."""

from sqlalchemy import Column, DateTime, Integer, Text, func
from sqlalchemy.orm import declarative_base

QueueBase = declarative_base()


class PendingScan(QueueBase):
    """A captured scan the server has not confirmed yet.

    The URL is the natural key: the entry exists before any server id does.
    """

    __tablename__ = "pending_scans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(Text, nullable=False, unique=True)
    html_snapshot = Column(Text, nullable=True)
    user_id = Column(Integer, nullable=True)  # None when scanned while logged out
    captured_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self) -> str:
        return f"<PendingScan(id={self.id}, url={self.url!r}, user_id={self.user_id})>"
