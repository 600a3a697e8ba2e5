"""
Base model for carrier-typed staged and final billing records.

A record carries batch metadata (batch id, source file, status) plus the
carrier-specific payload. Staged and final tables store the payload as
JSONB next to the promoted natural-key columns.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

from pydantic import BaseModel, Field, field_validator

from billing_intake.core.models.batch_record import BatchStatus

DATE_FORMATS = ("%m-%d-%Y", "%m/%d/%Y", "%m/%d/%y", "%Y-%m-%d")


def parse_date(value: Any) -> date | None:
    """
    Parse a carrier date in any of the accepted layouts.

    Raises:
        ValueError: If a non-blank string matches no layout
    """
    if value is None or isinstance(value, date):
        if isinstance(value, datetime):
            return value.date()
        return value
    text = str(value).strip()
    if not text:
        return None
    # spreadsheets export datetimes as "2024-03-01T00:00:00"
    text = text.split("T")[0].split(" ")[0]
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized date: {value!r}")


def parse_amount(value: Any) -> Decimal:
    """
    Parse a currency string, dropping symbols and separators.

    Blank input is zero.

    Raises:
        ValueError: If nothing numeric remains
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    cleaned = "".join(ch for ch in str(value) if ch.isdigit() or ch in ".-")
    if not cleaned:
        return Decimal("0")
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Not a monetary amount: {value!r}") from None


class BillingRecord(BaseModel):
    """
    Common fields of every staged or final carrier record.

    Attributes:
        record_id: Row id assigned by the store
        batch_id: Owning batch
        source_filename: File the row came from (may be a ZIP entry)
        status: Mirrors the owning batch status
        invoice_number: Invoice the row belongs to, when known
        department: Department the charge or device is attributed to
        created_at: When the row was created
    """

    METADATA_FIELDS: ClassVar[frozenset[str]] = frozenset(
        {"record_id", "batch_id", "source_filename", "status", "created_at"}
    )
    # payload fields making up the final-table natural key
    KEY_FIELDS: ClassVar[tuple[str, ...]] = ("invoice_number",)
    DATE_FIELDS: ClassVar[tuple[str, ...]] = ()

    record_id: int | None = None
    batch_id: str | None = None
    source_filename: str | None = None
    status: BatchStatus = BatchStatus.PENDING_APPROVAL
    invoice_number: str | None = None
    department: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @field_validator("*", mode="before")
    @classmethod
    def blank_to_none(cls, v, info):
        """Treat blank cells as missing and normalize declared date fields."""
        if isinstance(v, str) and not v.strip():
            return None
        if info.field_name in cls.DATE_FIELDS:
            return parse_date(v)
        return v

    def payload(self) -> dict[str, Any]:
        """Carrier-specific fields, JSON-serializable"""
        return self.model_dump(mode="json", exclude=set(self.METADATA_FIELDS))

    def natural_key(self) -> str:
        """Identity of the row in the final table"""
        parts = []
        for name in self.KEY_FIELDS:
            value = getattr(self, name, None)
            parts.append("" if value is None else str(value))
        return "|".join(parts)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "BillingRecord":
        """Rebuild a record from a staged or final table row"""
        data = dict(row.get("payload") or {})
        for name in ("batch_id", "source_filename", "status", "created_at"):
            if row.get(name) is not None:
                data[name] = row[name]
        data["record_id"] = row.get("record_id")
        return cls.model_validate(data)

    class Config:
        extra = "ignore"
