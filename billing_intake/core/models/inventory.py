"""
Device inventory records for AT&T Mobility, FirstNet and Verizon Wireless.
"""

from datetime import date
from typing import ClassVar

from billing_intake.core.models.billing_record import BillingRecord


class InventoryRecord(BillingRecord):
    """
    One device line in a carrier inventory export.

    Attributes:
        wireless_number: Line the device is attached to
        device_status: Carrier-reported line status
    """

    KEY_FIELDS: ClassVar[tuple[str, ...]] = ("batch_id", "wireless_number")

    wireless_number: str | None = None
    device_status: str | None = None
    device_type: str | None = None
    device_model: str | None = None
    email_address: str | None = None
    activation_date: date | None = None

    def natural_key(self) -> str:
        # batch_id is metadata, so read it directly rather than from the payload
        return f"{self.batch_id or ''}|{self.wireless_number or ''}"


class ATTInventory(InventoryRecord):
    """AT&T Mobility inventory line"""

    DATE_FIELDS: ClassVar[tuple[str, ...]] = (
        "last_updated_date",
        "status_effective_date",
        "activation_date",
        "last_upgrade_date",
        "contract_start_date",
        "contract_end_date",
        "device_effective_date",
    )

    last_updated_date: date | None = None
    foundation_account: str | None = None
    foundation_account_name: str | None = None
    billing_account_number: str | None = None
    billing_account_name: str | None = None
    wireless_user_name: str | None = None
    status_effective_date: date | None = None
    rate_plan_name: str | None = None
    vis_code: str | None = None
    asset_tag: str | None = None
    device_imei: str | None = None
    device_make: str | None = None
    operating_system: str | None = None
    sim_number_iccid: str | None = None
    group_id: str | None = None
    primary_line: str | None = None
    last_upgrade_date: date | None = None
    contract_type: str | None = None
    contract_start_date: date | None = None
    contract_end_date: date | None = None
    contract_status: str | None = None
    device_effective_date: date | None = None


class FirstNetInventory(ATTInventory):
    """FirstNet inventory line; user-defined labels replace the VIS code"""

    udl_2: str | None = None
    udl_4: str | None = None


class VerizonWirelessInventory(InventoryRecord):
    """Verizon Wireless inventory line"""

    DATE_FIELDS: ClassVar[tuple[str, ...]] = (
        "bill_cycle_date",
        "activation_date",
        "upgrade_eligibility_date",
        "wireless_number_disconnect_date",
    )

    account_name: str | None = None
    account_number: str | None = None
    bill_cycle_date: date | None = None
    cost_center: str | None = None
    price_plan_id: str | None = None
    price_plan_description: str | None = None
    user_name: str | None = None
    device_manufacturer: str | None = None
    sim: str | None = None
    upgrade_eligibility_date: date | None = None
    wireless_number_status: str | None = None
    wireless_number_disconnect_date: date | None = None
    monthly_access_charges: str | None = None
    total_current_charges: str | None = None
