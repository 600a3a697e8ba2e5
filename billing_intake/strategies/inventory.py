"""
Inventory strategies.

Inventory rows carry the line status in a "Status" column and are
attributed to a department through the billing account number.
"""

from typing import Mapping

from billing_intake.core.carriers import Carrier
from billing_intake.core.models import (
    ATTInventory,
    FileType,
    FirstNetInventory,
    InventoryRecord,
    VerizonWirelessInventory,
)
from billing_intake.strategies.base import CarrierStrategy


class InventoryStrategy(CarrierStrategy):
    file_type = FileType.INVENTORY
    # field holding the account the department mapping is keyed by
    mapping_field = "billing_account_number"

    def prepare_row(self, data):
        # "Status" is the device line status, not the batch status
        data = dict(data)
        status = data.pop("status", None)
        if status is not None:
            data["device_status"] = status
        return data

    def convert_row(self, data, department_mapping: Mapping[str, str]) -> InventoryRecord:
        record = self.record_model.model_validate(data)
        account = getattr(record, self.mapping_field, None)
        if account is not None and account in department_mapping:
            record.department = department_mapping[account]
        return record


class ATTInventoryStrategy(InventoryStrategy):
    carrier = Carrier.ATT_MOBILITY
    record_model = ATTInventory
    staged_table = "staged_att_inventory"
    final_table = "att_inventory"


class FirstNetInventoryStrategy(InventoryStrategy):
    carrier = Carrier.FIRSTNET
    record_model = FirstNetInventory
    staged_table = "staged_firstnet_inventory"
    final_table = "firstnet_inventory"


class VerizonWirelessInventoryStrategy(InventoryStrategy):
    carrier = Carrier.VERIZON_WIRELESS
    record_model = VerizonWirelessInventory
    staged_table = "staged_verizon_wireless_inventory"
    final_table = "verizon_wireless_inventory"
    mapping_field = "account_number"
