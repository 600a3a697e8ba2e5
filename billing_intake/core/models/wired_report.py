"""
CALNET wired report models produced by the Detail of Charges parser.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class InvoiceHeader(BaseModel):
    """
    Invoice identity read from the first page of a CALNET statement.

    Attributes:
        invoice_number: Invoice number zero-padded to 12 digits
        invoice_date: Statement date
        ban: Billing account number
    """

    invoice_number: str
    invoice_date: date
    ban: str


class ServiceAddress(BaseModel):
    """Service location declared on a "Svc ID :" row"""

    address1: str | None = None
    address2: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None


class WiredReport(BaseModel):
    """
    One charge line item from a CALNET "Detail of Charges" section.

    Header fields repeat on every line; btn, svc_id, node and the service
    address are inherited from the most recent context rows.

    Attributes:
        item_number: Leading item number of the charge row
        contract: Y/N contract flag
        provider: Provider token, e.g. "AT&T" or "AT&T Corp"
        product_id: Text before the "|" delimiter
        feature_name: Text after the "|" delimiter
        description: Continuation rows, newline-joined
        quantity: Trailing integer quantity
        minutes: Usage duration in fractional minutes (4 decimal places)
        contract_rate: Second trailing amount
        total_charge: Last trailing amount
        bill_period: Trailing MM/DD/YY[YY] date, as printed
        charge_type: Trailing charge type code
    """

    report_id: int | None = None
    carrier: str = "CALNET"
    section: str = "Detail of Charges"
    invoice_number: str
    invoice_date: date
    ban: str
    subgroup: str = "No Subgroup"
    btn: str | None = None
    btn_description: str | None = None
    svc_id: str | None = None
    node: str | None = None
    svc_address1: str | None = None
    svc_address2: str | None = None
    svc_city: str | None = None
    svc_state: str | None = None
    svc_zip: str | None = None
    item_number: str | None = None
    contract: str | None = None
    provider: str | None = None
    product_id: str | None = None
    feature_name: str | None = None
    description: str | None = None
    quantity: int | None = None
    minutes: Decimal | None = None
    contract_rate: Decimal | None = None
    total_charge: Decimal | None = None
    bill_period: str | None = None
    charge_type: str | None = None
    viscode: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "invoice_number": "000012345678",
                "invoice_date": "2024-03-01",
                "ban": "9391012345",
                "btn": "916 555-0100",
                "svc_id": "CKT 12345",
                "item_number": "1",
                "contract": "Y",
                "provider": "AT&T",
                "product_id": "Product A",
                "quantity": 1,
                "minutes": "90.0000",
                "contract_rate": "10.00",
                "total_charge": "10.00",
                "bill_period": "01/01/23",
                "charge_type": "MRC",
            }
        }
