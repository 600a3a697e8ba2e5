"""
BatchRecord model representing one upload and its review outcome.
"""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class BatchStatus(str, Enum):
    """Lifecycle status of a batch; PENDING_APPROVAL is the only non-terminal one"""

    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not BatchStatus.PENDING_APPROVAL


class FileType(str, Enum):
    """Kind of carrier document a batch was created from"""

    INVOICE = "INVOICE"
    INVENTORY = "INVENTORY"


def new_batch_id() -> str:
    """Allocate an opaque batch id"""
    return str(uuid.uuid4())


class BatchRecord(BaseModel):
    """
    One upload grouping every record parsed from a submitted file.

    Attributes:
        batch_id: Opaque unique token, primary correlation key
        carrier: Carrier display name the upload was declared for
        file_type: INVOICE or INVENTORY
        status: Current lifecycle status
        filename: Name of the uploaded file
        content_type: Declared media type or extension of the upload
        file_size: Upload size in bytes
        uploaded_by: Identity of the uploader
        created_at: When the batch was created
        reviewed_by: Reviewer recorded on a terminal transition
        reviewed_at: When the terminal transition happened
        rejection_reason: Reviewer or failure reason, bounded length
    """

    batch_id: str = Field(default_factory=new_batch_id, min_length=1)
    carrier: str = Field(..., min_length=1)
    file_type: FileType = FileType.INVOICE
    status: BatchStatus = BatchStatus.PENDING_APPROVAL
    filename: str = Field(..., min_length=1)
    content_type: str | None = None
    file_size: int = Field(0, ge=0)
    uploaded_by: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None

    @field_validator("filename", "uploaded_by")
    @classmethod
    def strip_text(cls, v: str) -> str:
        """Reject values that are blank once trimmed."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("must not be blank")
        return stripped

    class Config:
        json_schema_extra = {
            "example": {
                "batch_id": "8d6f1e7a-4c1b-4f25-9a57-0b8c5d2e3f10",
                "carrier": "AT&T Mobility",
                "file_type": "INVOICE",
                "status": "PENDING_APPROVAL",
                "filename": "att_march.csv",
                "content_type": "text/csv",
                "file_size": 48213,
                "uploaded_by": "analyst@example.gov",
            }
        }
