"""
Review decision and review-screen payloads.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from billing_intake.core.models.batch_record import BatchRecord


class ReviewAction(str, Enum):
    """Human decision on a pending batch"""

    APPROVE = "APPROVE"
    REJECT = "REJECT"

    @classmethod
    def parse(cls, value: "str | ReviewAction") -> "ReviewAction":
        if isinstance(value, cls):
            return value
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"Unknown review action: {value}") from None


class BatchReview(BaseModel):
    """
    Pending batch with its staged records.

    Attributes:
        batch: Batch metadata
        records: Staged records serialized for display
    """

    batch: BatchRecord
    records: list[dict[str, Any]] = Field(default_factory=list)


class ApprovedBatch(BaseModel):
    """
    Approved batch with the final records it produced.

    Attributes:
        batch: Batch metadata
        records: Final records serialized for display
    """

    batch: BatchRecord
    records: list[dict[str, Any]] = Field(default_factory=list)
