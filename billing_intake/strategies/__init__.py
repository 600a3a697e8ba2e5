"""Carrier-specific conversion and approval strategies."""

from .base import CarrierStrategy, normalize_key, normalize_keys
from .inventory import (
    ATTInventoryStrategy,
    FirstNetInventoryStrategy,
    InventoryStrategy,
    VerizonWirelessInventoryStrategy,
)
from .invoices import (
    ATTInvoiceStrategy,
    FirstNetInvoiceStrategy,
    VerizonWirelessInvoiceStrategy,
    WirelessInvoiceStrategy,
)
from .registry import StrategyRegistry, default_registry

__all__ = [
    "CarrierStrategy",
    "normalize_key",
    "normalize_keys",
    "WirelessInvoiceStrategy",
    "ATTInvoiceStrategy",
    "FirstNetInvoiceStrategy",
    "VerizonWirelessInvoiceStrategy",
    "InventoryStrategy",
    "ATTInventoryStrategy",
    "FirstNetInventoryStrategy",
    "VerizonWirelessInventoryStrategy",
    "StrategyRegistry",
    "default_registry",
]
