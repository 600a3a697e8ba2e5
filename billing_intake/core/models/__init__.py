"""
Domain models for the billing intake pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .batch_record import BatchRecord, BatchStatus, FileType, new_batch_id
from .billing_record import BillingRecord, parse_amount, parse_date
from .inventory import (
    ATTInventory,
    FirstNetInventory,
    InventoryRecord,
    VerizonWirelessInventory,
)
from .review import ApprovedBatch, BatchReview, ReviewAction
from .verizon_invoice import VerizonWirelessInvoice
from .wired_report import InvoiceHeader, ServiceAddress, WiredReport
from .wireless_invoice import ATTInvoice, FirstNetInvoice, WirelessInvoice

__all__ = [
    "BatchRecord",
    "BatchStatus",
    "FileType",
    "new_batch_id",
    "BillingRecord",
    "parse_amount",
    "parse_date",
    "WirelessInvoice",
    "ATTInvoice",
    "FirstNetInvoice",
    "VerizonWirelessInvoice",
    "InventoryRecord",
    "ATTInventory",
    "FirstNetInventory",
    "VerizonWirelessInventory",
    "ReviewAction",
    "BatchReview",
    "ApprovedBatch",
    "InvoiceHeader",
    "ServiceAddress",
    "WiredReport",
]
