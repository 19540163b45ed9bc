"""Central configuration for the NAV reconciliation package."""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import timezone
from decimal import Context, Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

from nav_recon.domain.errors import ConfigurationError

BASE_DIR = Path(__file__).resolve().parent.parent
MAPPING_OVERRIDE_PATH = BASE_DIR / "mapping_override.json"

# Fixed severity bands. Only the thresholds below are tunable per run.
POSITION_MAJOR_PERCENT = Decimal("5")
CASH_MAJOR_PERCENT = Decimal("1")
MAJOR_POSITION_RATIO = Decimal("0.1")
TOTAL_VALUE_FAILED_PERCENT = Decimal("5")
TOTAL_VALUE_FLAG_PERCENT = Decimal("1")


@dataclass(slots=True, frozen=True)
class Settings:
    decimal_context: Context
    timezone: timezone.__class__
    min_extraction_confidence: Decimal


SETTINGS = Settings(
    decimal_context=Context(prec=28),
    timezone=timezone.utc,
    min_extraction_confidence=Decimal("0.8"),
)


@dataclass(frozen=True)
class ReconciliationThresholds:
    """Tolerances applied to a single reconciliation run.

    Percent values are expressed in percent (``0.1`` means 0.1%). The cash
    check triggers when either the percent or the absolute tolerance is
    exceeded; ``missing_position_value`` is the market value at which a
    position present on one side only becomes a major difference.
    """

    cash_difference_percent: Decimal = Decimal("0.1")
    cash_difference_absolute: Decimal = Decimal("10000")
    position_quantity_percent: Decimal = Decimal("0.5")
    position_price_percent: Decimal = Decimal("1.0")
    missing_position_value: Decimal = Decimal("100000")

    def __post_init__(self) -> None:
        for item in fields(self):
            value = getattr(self, item.name)
            if not isinstance(value, Decimal):
                object.__setattr__(self, item.name, Decimal(str(value)))
            if getattr(self, item.name) < 0:
                raise ConfigurationError(f"Threshold {item.name} must not be negative")


# camelCase names used by the JSON result contract and upstream callers.
_THRESHOLD_ALIASES = {
    "cashDifferencePercent": "cash_difference_percent",
    "cashDifferenceAbsolute": "cash_difference_absolute",
    "positionDifferencePercent": "position_quantity_percent",
    "positionQuantityPercent": "position_quantity_percent",
    "priceDifferencePercent": "position_price_percent",
    "positionPricePercent": "position_price_percent",
    "missingPositionValue": "missing_position_value",
}


@dataclass(frozen=True)
class ReconciliationConfig:
    thresholds: ReconciliationThresholds = ReconciliationThresholds()

    def merged(
        self,
        overrides: "ReconciliationConfig | ReconciliationThresholds | Mapping[str, Any] | None" = None,
    ) -> "ReconciliationConfig":
        """Return a copy with ``overrides`` applied field by field."""
        if overrides is None:
            return self
        if isinstance(overrides, ReconciliationConfig):
            return overrides
        if isinstance(overrides, ReconciliationThresholds):
            return replace(self, thresholds=overrides)
        if "thresholds" in overrides:
            overrides = overrides["thresholds"] or {}
        known = {item.name for item in fields(ReconciliationThresholds)}
        changes: dict[str, Decimal] = {}
        for key, value in overrides.items():
            name = _THRESHOLD_ALIASES.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown threshold: {key}")
            if value is None:
                continue
            try:
                changes[name] = Decimal(str(value))
            except InvalidOperation as exc:
                raise ConfigurationError(f"Threshold {key} is not a number: {value!r}") from exc
        return replace(self, thresholds=replace(self.thresholds, **changes))


DEFAULT_CONFIG = ReconciliationConfig()
