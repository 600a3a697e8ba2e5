"""
Account-level Verizon Wireless invoice record.
"""

from datetime import date
from typing import ClassVar
from decimal import Decimal

from billing_intake.core.models.billing_record import BillingRecord


class VerizonWirelessInvoice(BillingRecord):
    """
    One Verizon Wireless billing account for one bill period.

    Attributes:
        account_number: Billing account number
        bill_period: Raw "MMM dd yyyy - MMM dd yyyy" period
        bill_period_start: Parsed start of bill_period
        bill_period_end: Parsed end of bill_period
        monthly_charges: Recurring monthly charges for the account
        total_reoccurring_charges: Copied from monthly_charges
    """

    KEY_FIELDS: ClassVar[tuple[str, ...]] = ("invoice_number", "account_number")
    DATE_FIELDS: ClassVar[tuple[str, ...]] = ("bill_account_create_date", "bill_period_start", "bill_period_end", "date_due")

    account_number: str | None = None
    account_status_code: str | None = None
    account_status_description: str | None = None
    bill_account_create_date: date | None = None
    bill_address_level_2: str | None = None
    bill_address_level_3: str | None = None
    bill_business_number: str | None = None
    bill_city: str | None = None
    bill_contact_name: str | None = None
    bill_state: str | None = None
    bill_zip: str | None = None
    account_charges_and_credits: Decimal | None = None
    adjustments: Decimal | None = None
    balance_forward: Decimal | None = None
    equipment_charges: Decimal | None = None
    late_fee: Decimal | None = None
    monthly_charges: Decimal | None = None
    payments: Decimal | None = None
    previous_balance: Decimal | None = None
    surcharges_and_occs: Decimal | None = None
    taxes_gov_surcharges_and_fees: Decimal | None = None
    third_party_charges_to_account: Decimal | None = None
    third_party_charges_to_lines: Decimal | None = None
    total_amount_due: Decimal | None = None
    total_current_charges: Decimal | None = None
    usage_and_purchase_charges: Decimal | None = None
    bill_name: str | None = None
    bill_period: str | None = None
    bill_period_start: date | None = None
    bill_period_end: date | None = None
    date_due: date | None = None
    remittance_address: str | None = None
    total_reoccurring_charges: Decimal | None = None
