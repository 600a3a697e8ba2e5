"""
Invoice strategies for AT&T Mobility, FirstNet and Verizon Wireless.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Mapping

from billing_intake.core.carriers import Carrier
from billing_intake.core.models import (
    ATTInvoice,
    FirstNetInvoice,
    FileType,
    VerizonWirelessInvoice,
    WirelessInvoice,
    parse_amount,
)
from billing_intake.observability.logger import get_logger
from billing_intake.strategies.base import CarrierStrategy

logger = get_logger(__name__)


class WirelessInvoiceStrategy(CarrierStrategy):
    """
    Shared enrichment for the AT&T billing report layout.

    - account numbers exported in scientific notation become plain digits
    - invoice_number is <account>X<MM>09<YYYY> from the invoice date
    - total_reoccurring_charges is current charges minus one-time activity
    """

    file_type = FileType.INVOICE

    def enrich(self, invoice: WirelessInvoice) -> None:
        self._generate_invoice_number(invoice)
        self._calculate_reoccurring_charges(invoice)

    def _generate_invoice_number(self, invoice: WirelessInvoice) -> None:
        raw = invoice.account_number
        if not raw:
            return
        try:
            account = format(Decimal(raw), "f")
        except InvalidOperation:
            logger.warning(f"Could not parse account number '{raw}'; invoice number not generated")
            return
        invoice.account_number = account
        if invoice.invoice_date is not None:
            invoice.invoice_number = f"{account}X{invoice.invoice_date:%m}09{invoice.invoice_date:%Y}"

    def _calculate_reoccurring_charges(self, invoice: WirelessInvoice) -> None:
        try:
            invoice.total_reoccurring_charges = parse_amount(
                invoice.total_current_charges
            ) - parse_amount(invoice.total_activity_since_last_bill)
        except ValueError:
            logger.warning(
                f"Could not parse charges for wireless number '{invoice.wireless_number}'; "
                "total reoccurring charges left empty"
            )
            invoice.total_reoccurring_charges = None


class ATTInvoiceStrategy(WirelessInvoiceStrategy):
    """AT&T Mobility; department falls back to the Account Name column"""

    carrier = Carrier.ATT_MOBILITY
    record_model = ATTInvoice
    staged_table = "staged_att_invoice"
    final_table = "att_invoice"

    def convert_row(self, data, department_mapping: Mapping[str, str]) -> ATTInvoice:
        invoice = ATTInvoice.model_validate(data)
        self.enrich(invoice)

        account = invoice.account_number
        if account is not None and account in department_mapping:
            invoice.department = department_mapping[account]
        else:
            invoice.department = data.get("account_name")
            if account is not None:
                logger.warning(
                    f"No department mapping for AT&T account '{account}'. "
                    f"Used fallback: '{invoice.department}'"
                )
        return invoice


class FirstNetInvoiceStrategy(WirelessInvoiceStrategy):
    """
    FirstNet; column meanings differ from AT&T:
    Department -> division, Billing Account Name -> department, UDL 2 -> vis_code
    """

    carrier = Carrier.FIRSTNET
    record_model = FirstNetInvoice
    staged_table = "staged_firstnet_invoice"
    final_table = "firstnet_invoice"

    def convert_row(self, data, department_mapping: Mapping[str, str]) -> FirstNetInvoice:
        data = dict(data)
        data["division"] = data.get("department")
        data["department"] = data.get("billing_account_name")
        udl2 = data.pop("udl_2", None) or data.pop("udl2", None)
        if udl2 is not None:
            data["vis_code"] = udl2

        invoice = FirstNetInvoice.model_validate(data)
        self.enrich(invoice)

        account = invoice.account_number
        if account is not None and account in department_mapping:
            invoice.department = department_mapping[account]
        elif account is not None:
            logger.warning(f"No department mapping found for FirstNet account '{account}'")
        return invoice


class VerizonWirelessInvoiceStrategy(CarrierStrategy):
    """
    Verizon Wireless account-level invoices.

    Monetary columns arrive with thousands separators; the bill period
    arrives as "MMM dd yyyy - MMM dd yyyy".
    """

    carrier = Carrier.VERIZON_WIRELESS
    file_type = FileType.INVOICE
    record_model = VerizonWirelessInvoice
    staged_table = "staged_verizon_wireless_invoice"
    final_table = "verizon_wireless_invoice"

    NUMERIC_FIELDS = (
        "account_charges_and_credits",
        "adjustments",
        "balance_forward",
        "equipment_charges",
        "late_fee",
        "monthly_charges",
        "payments",
        "previous_balance",
        "surcharges_and_occs",
        "taxes_gov_surcharges_and_fees",
        "third_party_charges_to_account",
        "third_party_charges_to_lines",
        "total_amount_due",
        "total_current_charges",
        "usage_and_purchase_charges",
    )

    def convert_row(self, data, department_mapping: Mapping[str, str]) -> VerizonWirelessInvoice:
        data = dict(data)
        for key in self.NUMERIC_FIELDS:
            if data.get(key):
                data[key] = data[key].replace(",", "").replace("$", "").strip()
        if data.get("invoice_number"):
            data["invoice_number"] = data["invoice_number"].replace(",", "").strip()
        if not data.get("department"):
            data["department"] = data.get("bill_address_level_1")

        invoice = VerizonWirelessInvoice.model_validate(data)

        if invoice.monthly_charges is not None:
            invoice.total_reoccurring_charges = invoice.monthly_charges
        else:
            invoice.total_reoccurring_charges = Decimal("0")
            logger.warning(
                f"Monthly charges empty for account '{invoice.account_number}'; "
                "recurring charges set to zero"
            )

        self._parse_bill_period(invoice)

        account = invoice.account_number
        if account is not None and account in department_mapping:
            invoice.department = department_mapping[account]
        elif account is not None:
            logger.warning(
                f"No department mapping for Verizon account '{account}'. "
                f"Using bill address level 1: '{invoice.department}'"
            )
        return invoice

    def _parse_bill_period(self, invoice: VerizonWirelessInvoice) -> None:
        period = invoice.bill_period
        if not period or " - " not in period:
            return
        start, _, end = period.partition(" - ")
        try:
            invoice.bill_period_start = datetime.strptime(start.strip(), "%b %d %Y").date()
            invoice.bill_period_end = datetime.strptime(end.strip(), "%b %d %Y").date()
        except ValueError:
            logger.warning(f"Could not parse bill period '{period}'")
