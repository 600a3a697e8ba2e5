"""
Carrier identifiers.

Carrier names arrive from uploads and configuration in whatever case the
caller used; every lookup goes through normalize_carrier().
"""

from enum import Enum

from billing_intake.core.errors import UnknownCarrierError


class Carrier(str, Enum):
    """Carriers with registered conversion strategies"""

    FIRSTNET = "FirstNet"
    ATT_MOBILITY = "AT&T Mobility"
    VERIZON_WIRELESS = "Verizon Wireless"
    CALNET = "CALNET"

    @property
    def key(self) -> str:
        return self.value.lower()


_BY_KEY = {carrier.key: carrier for carrier in Carrier}


def normalize_carrier(name: str | Carrier) -> Carrier:
    """
    Resolve a carrier name case-insensitively.

    Args:
        name: Carrier display name or Carrier member

    Returns:
        Matching Carrier

    Raises:
        UnknownCarrierError: If the name matches no carrier
    """
    if isinstance(name, Carrier):
        return name
    carrier = _BY_KEY.get((name or "").strip().lower())
    if carrier is None:
        raise UnknownCarrierError(name)
    return carrier
