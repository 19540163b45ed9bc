"""Domain-level results for NAV reconciliation."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Sequence

from .models import CashStatus, FlagLevel, OverallStatus, PositionStatus


@dataclass(frozen=True)
class Figures:
    quantity: Decimal
    price: Decimal
    value: Decimal


@dataclass(frozen=True)
class Differences:
    quantity_diff: Decimal
    quantity_diff_percent: Decimal
    price_diff: Decimal
    price_diff_percent: Decimal
    value_diff: Decimal
    value_diff_percent: Decimal


@dataclass(frozen=True)
class PositionComparison:
    """One row per security identifier seen in either snapshot."""

    security_id: str
    instrument_name: str
    internal: Figures | None
    custody: Figures | None
    differences: Differences
    status: PositionStatus
    flags: Sequence[str] = field(default_factory=tuple)

    @property
    def is_missing_in_custody(self) -> bool:
        return self.custody is None

    @property
    def is_missing_in_internal(self) -> bool:
        return self.internal is None


@dataclass(frozen=True)
class CashComparison:
    currency: str
    internal_balance: Decimal
    custody_balance: Decimal
    difference: Decimal
    difference_percent: Decimal
    status: CashStatus
    flags: Sequence[str] = field(default_factory=tuple)


@dataclass(frozen=True)
class Summary:
    total_positions: int
    matching_positions: int
    minor_differences: int
    major_differences: int
    missing_in_internal: int
    missing_in_custody: int
    internal_total_value: Decimal
    custody_total_value: Decimal
    total_value_difference: Decimal
    total_value_difference_percent: Decimal
    overall_status: OverallStatus


@dataclass(frozen=True)
class Flag:
    level: FlagLevel
    message: str
    details: str | None = None


@dataclass(frozen=True)
class SourceInfo:
    """Audit trail for one side of a reconciliation."""

    source: str
    timestamp: datetime
    data_points: int


@dataclass(frozen=True)
class ReconciliationSources:
    internal: SourceInfo
    custody: SourceInfo


@dataclass(frozen=True)
class ReconciliationResult:
    fund_id: str
    fund_name: str
    reconciliation_date: date
    generated_at: datetime
    summary: Summary
    cash_comparison: CashComparison
    positions: Sequence[PositionComparison]
    flags: Sequence[Flag]
    sources: ReconciliationSources

    @property
    def overall_status(self) -> OverallStatus:
        return self.summary.overall_status

    def is_approved(self) -> bool:
        return self.summary.overall_status is OverallStatus.APPROVED

    def iter_discrepancies(self) -> Iterable[PositionComparison]:
        for comparison in self.positions:
            if comparison.status is not PositionStatus.MATCH:
                yield comparison
