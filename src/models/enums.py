"""Enums for model fields."""

from enum import Enum


class JobStatus(str, Enum):
    """Lifecycle states of a receipt processing job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
