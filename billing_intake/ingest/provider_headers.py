"""
Provider header configuration.

Maps a carrier (or carrier + "Inventory" for inventory uploads) to the
column names its export must contain.

Expected YAML format:
```yaml
providers:
  AT&T Mobility:
    expected_headers:
      - Account number
      - Wireless number
  AT&T Mobility Inventory:
    expected_headers:
      - Billing Account Number
```
"""

import re
from pathlib import Path
from typing import Iterable

import yaml

from billing_intake.core.errors import (
    MissingHeadersError,
    ProviderConfigError,
    UnknownCarrierError,
)
from billing_intake.core.models import FileType
from billing_intake.observability.logger import get_logger

logger = get_logger(__name__)

INVENTORY_SUFFIX = "Inventory"


def config_key(carrier: str, file_type: FileType = FileType.INVOICE) -> str:
    """Lookup key for a carrier; case and whitespace insensitive"""
    key = carrier + INVENTORY_SUFFIX if file_type == FileType.INVENTORY else carrier
    return re.sub(r"\s+", "", key).lower()


class ProviderHeaderConfig:
    """
    Read-only carrier to expected-headers mapping.

    Args:
        providers: Mapping of configuration key to expected header names
    """

    def __init__(self, providers: dict[str, list[str]]):
        self._providers = {
            re.sub(r"\s+", "", key).lower(): [h.strip() for h in headers]
            for key, headers in providers.items()
        }

    @classmethod
    def load(cls, path: str | Path) -> "ProviderHeaderConfig":
        """
        Load the configuration file.

        Args:
            path: YAML file path

        Returns:
            ProviderHeaderConfig

        Raises:
            ProviderConfigError: If the file is missing, unparsable or malformed
        """
        path = Path(path)
        if not path.exists():
            raise ProviderConfigError(f"Provider header configuration not found: {path}")

        try:
            with open(path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ProviderConfigError(f"Failed to parse provider header configuration {path}: {e}") from e

        if not isinstance(config, dict) or not isinstance(config.get("providers"), dict):
            raise ProviderConfigError("Configuration file must contain a 'providers' mapping")

        providers = {}
        for name, entry in config["providers"].items():
            headers = entry.get("expected_headers") if isinstance(entry, dict) else None
            if not isinstance(headers, list) or not headers:
                raise ProviderConfigError(
                    f"Provider '{name}' must define a non-empty expected_headers list"
                )
            providers[str(name)] = [str(h) for h in headers]

        logger.info(f"Loaded header configuration for {len(providers)} providers from {path}")
        return cls(providers)

    def expected_headers(self, carrier: str, file_type: FileType = FileType.INVOICE) -> list[str]:
        """
        Raises:
            UnknownCarrierError: If no configuration exists for the key
        """
        headers = self._providers.get(config_key(carrier, file_type))
        if headers is None:
            raise UnknownCarrierError(carrier, file_type.value)
        return list(headers)

    def validate_headers(
        self,
        headers: Iterable[str],
        carrier: str,
        file_type: FileType = FileType.INVOICE,
    ) -> None:
        """
        Check that every expected header is present.

        Args:
            headers: Header row of the uploaded file
            carrier: Declared carrier
            file_type: INVOICE or INVENTORY

        Raises:
            UnknownCarrierError: If the carrier has no configuration
            MissingHeadersError: Naming exactly the absent headers
        """
        expected = self.expected_headers(carrier, file_type)
        actual = {h.strip() for h in headers if h is not None}
        missing = [h for h in expected if h not in actual]
        if missing:
            raise MissingHeadersError(missing, carrier)
