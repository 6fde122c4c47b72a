"""
Purchasing Configuration Schema.

Defines the structure and sensible defaults for purchasing settings.
Actual values are loaded from firm configuration (a dict or a YAML file)
at runtime.
"""

from dataclasses import dataclass, fields
from decimal import Decimal
from pathlib import Path
from typing import Self

import yaml

from farm_kernel.domain.currency import CurrencyRegistry
from farm_kernel.logging_config import get_logger
from farm_modules.purchasing.workflows import WORKFLOWS

logger = get_logger("modules.purchasing.config")

_SCHEDULE_TRIGGERS = ("approve", "create")


@dataclass
class PurchasingConfig:
    """
    Configuration schema for the purchasing module.

    Override at instantiation with firm-specific values:

        config = PurchasingConfig(
            base_currency="USD",
            workflow="three_state",
            **load_from_database("purchasing_settings"),
        )
    """

    # Firm base currency; orders in another currency need an exchange rate
    base_currency: str = "UYU"

    # "five_state" or "three_state"
    workflow: str = "five_state"

    # When the payment schedule materializes: "approve" or "create"
    generate_schedule_on: str = "approve"

    # Applied to items that omit tax_rate (percent)
    default_tax_rate: Decimal = Decimal("22")

    # Days before due date an expense counts as upcoming
    expense_alert_days: int = 7

    # Order numbers: <prefix>-<year>-<5-digit sequence>
    order_number_prefix: str = "OC"

    def __post_init__(self):
        self.base_currency = CurrencyRegistry.validate(self.base_currency)
        if self.workflow not in WORKFLOWS:
            raise ValueError(
                f"workflow must be one of {sorted(WORKFLOWS)}, got {self.workflow!r}"
            )
        if self.generate_schedule_on not in _SCHEDULE_TRIGGERS:
            raise ValueError(
                f"generate_schedule_on must be one of {_SCHEDULE_TRIGGERS}, "
                f"got {self.generate_schedule_on!r}"
            )
        self.default_tax_rate = Decimal(str(self.default_tax_rate))
        if self.default_tax_rate < 0:
            raise ValueError(f"default_tax_rate must be >= 0, got {self.default_tax_rate}")
        if self.expense_alert_days < 0:
            raise ValueError(
                f"expense_alert_days must be >= 0, got {self.expense_alert_days}"
            )
        if not self.order_number_prefix:
            raise ValueError("order_number_prefix must not be empty")

        logger.info(
            "purchasing_config_initialized",
            extra={
                "base_currency": self.base_currency,
                "workflow": self.workflow,
                "generate_schedule_on": self.generate_schedule_on,
                "default_tax_rate": str(self.default_tax_rate),
                "order_number_prefix": self.order_number_prefix,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard defaults."""
        logger.info("purchasing_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from dictionary (e.g., loaded from database/file)."""
        logger.info(
            "purchasing_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown purchasing config keys: {unknown}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """
        Load config from a YAML file.

        The file holds either the settings mapping itself or a top-level
        ``purchasing:`` section.
        """
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Purchasing config in {path} must be a mapping")
        section = raw.get("purchasing", raw)
        if not isinstance(section, dict):
            raise ValueError(f"'purchasing' section in {path} must be a mapping")
        return cls.from_dict(section)
