"""Mixins for SQLAlchemy models."""

from sqlalchemy import Column, DateTime, func


class CreatedAtMixin:
    """Mixin for insert-only rows that only record their creation time."""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class TimestampMixin(CreatedAtMixin):
    """Mixin to add created_at and updated_at timestamp columns."""

    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
