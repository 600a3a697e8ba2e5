"""
Carrier strategy registry.

Strategies are keyed by (carrier, file type). A miss is a configuration
error; there is no fallback strategy.
"""

from typing import Iterator

from billing_intake.core.carriers import Carrier, normalize_carrier
from billing_intake.core.errors import UnknownCarrierError
from billing_intake.core.models import FileType
from billing_intake.strategies.base import CarrierStrategy
from billing_intake.strategies.inventory import (
    ATTInventoryStrategy,
    FirstNetInventoryStrategy,
    VerizonWirelessInventoryStrategy,
)
from billing_intake.strategies.invoices import (
    ATTInvoiceStrategy,
    FirstNetInvoiceStrategy,
    VerizonWirelessInvoiceStrategy,
)


class StrategyRegistry:
    """Lookup table of carrier strategies"""

    def __init__(self, strategies: list[CarrierStrategy] | None = None):
        self._strategies: dict[tuple[Carrier, FileType], CarrierStrategy] = {}
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: CarrierStrategy) -> None:
        self._strategies[(strategy.carrier, strategy.file_type)] = strategy

    def resolve(
        self,
        carrier: str | Carrier,
        file_type: FileType = FileType.INVOICE,
    ) -> CarrierStrategy:
        """
        Find the strategy for a carrier, case-insensitively.

        Raises:
            UnknownCarrierError: If no strategy is registered
        """
        key = (normalize_carrier(carrier), FileType(file_type))
        strategy = self._strategies.get(key)
        if strategy is None:
            raise UnknownCarrierError(key[0].value, key[1].value)
        return strategy

    def __iter__(self) -> Iterator[CarrierStrategy]:
        return iter(self._strategies.values())

    def __len__(self) -> int:
        return len(self._strategies)


def default_registry() -> StrategyRegistry:
    """Registry with every built-in invoice and inventory strategy"""
    return StrategyRegistry(
        [
            ATTInvoiceStrategy(),
            FirstNetInvoiceStrategy(),
            VerizonWirelessInvoiceStrategy(),
            ATTInventoryStrategy(),
            FirstNetInventoryStrategy(),
            VerizonWirelessInventoryStrategy(),
        ]
    )
