"""
Line-level wireless invoice records for AT&T Mobility and FirstNet.

Both carriers export the same billing report layout, one row per
wireless number per invoice.
"""

from datetime import date
from typing import ClassVar
from decimal import Decimal

from billing_intake.core.models.billing_record import BillingRecord


class WirelessInvoice(BillingRecord):
    """
    One wireless line on an AT&T-family invoice.

    Attributes:
        account_number: Billing account, plain digits
        wireless_number: Line the charges belong to
        invoice_date: Invoice date used to derive invoice_number
        total_current_charges: Raw current-charges cell
        total_activity_since_last_bill: Raw one-time activity cell
        total_reoccurring_charges: current charges minus activity since last bill
    """

    KEY_FIELDS: ClassVar[tuple[str, ...]] = ("invoice_number", "wireless_number")
    DATE_FIELDS: ClassVar[tuple[str, ...]] = ("market_cycle_end_date", "invoice_date")

    foundation_account: str | None = None
    foundation_account_name: str | None = None
    account_number: str | None = None
    account_and_descriptions: str | None = None
    billing_account_name: str | None = None
    wireless_number_and_descriptions: str | None = None
    wireless_number: str | None = None
    user_name: str | None = None
    vis_code: str | None = None
    asset_tag: str | None = None
    market_cycle_end_date: date | None = None
    invoice_date: date | None = None
    rate_code: str | None = None
    rate_plan_name: str | None = None
    group_id: str | None = None
    total_current_charges: str | None = None
    total_monthly_charges: str | None = None
    total_activity_since_last_bill: str | None = None
    total_taxes: str | None = None
    total_company_fees_and_surcharges: str | None = None
    total_kb_usage: str | None = None
    total_minutes_usage: str | None = None
    total_messages: str | None = None
    total_fan_level_charges: str | None = None
    total_adjustments: str | None = None
    total_reoccurring_charges: Decimal | None = None


class ATTInvoice(WirelessInvoice):
    """AT&T Mobility invoice line"""

    class Config:
        json_schema_extra = {
            "example": {
                "batch_id": "8d6f1e7a-4c1b-4f25-9a57-0b8c5d2e3f10",
                "invoice_number": "287301234567X03092024",
                "account_number": "287301234567",
                "wireless_number": "916-555-0100",
                "department": "Public Works",
                "invoice_date": "2024-03-15",
                "total_current_charges": "45.10",
                "total_activity_since_last_bill": "5.10",
                "total_reoccurring_charges": "40.00",
            }
        }


class FirstNetInvoice(WirelessInvoice):
    """
    FirstNet invoice line.

    FirstNet reports the division in the "Department" column and the
    department in "Billing Account Name"; the line's VIS code arrives as
    "UDL 2".
    """

    division: str | None = None
