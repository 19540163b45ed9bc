"""Domain models for NAV reconciliation.

Snapshots are point-in-time facts captured from one source. They are frozen
and are only ever compared, never updated.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Sequence

from .errors import DuplicateSecurityError


class PositionStatus(str, Enum):
    MATCH = "MATCH"
    MINOR_DIFF = "MINOR_DIFF"
    MAJOR_DIFF = "MAJOR_DIFF"
    MISSING_INTERNAL = "MISSING_INTERNAL"
    MISSING_CUSTODY = "MISSING_CUSTODY"


class CashStatus(str, Enum):
    MATCH = "MATCH"
    MINOR_DIFF = "MINOR_DIFF"
    MAJOR_DIFF = "MAJOR_DIFF"


class OverallStatus(str, Enum):
    APPROVED = "APPROVED"
    REVIEW_REQUIRED = "REVIEW_REQUIRED"
    FAILED = "FAILED"


class FlagLevel(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class CustodySource(str, Enum):
    API = "API"
    DOCUMENT = "DOCUMENT"


@dataclass(frozen=True)
class Position:
    """A single security holding as reported by one source."""

    security_id: str
    instrument_name: str
    quantity: Decimal
    unit_price: Decimal
    market_value: Decimal
    currency: str


def find_duplicate_ids(positions: Iterable[Position]) -> list[str]:
    counts = Counter(position.security_id for position in positions)
    return sorted(security_id for security_id, count in counts.items() if count > 1)


def _check_unique(side: str, positions: Sequence[Position]) -> None:
    duplicates = find_duplicate_ids(positions)
    if duplicates:
        raise DuplicateSecurityError(side, duplicates)


@dataclass(frozen=True)
class InternalSnapshot:
    """The fund administrator's own view of holdings and cash."""

    fund_id: str
    fund_name: str
    currency: str
    as_of_date: date
    holdings: Sequence[Position]
    cash_balance: Decimal
    captured_at: datetime
    source_id: str = "REGISTRY"

    def __post_init__(self) -> None:
        object.__setattr__(self, "holdings", tuple(self.holdings))
        _check_unique("internal", self.holdings)

    @property
    def total_value(self) -> Decimal:
        return sum((position.market_value for position in self.holdings), Decimal("0"))


@dataclass(frozen=True)
class CustodySnapshot:
    """Holdings and cash as reported by the custodian bank."""

    account_id: str
    currency: str
    as_of_date: date
    source: CustodySource
    positions: Sequence[Position]
    cash_balance: Decimal
    captured_at: datetime
    custodian: str = ""
    metadata: dict[str, str] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "positions", tuple(self.positions))
        object.__setattr__(self, "source", CustodySource(self.source))
        _check_unique("custody", self.positions)

    @property
    def total_value(self) -> Decimal:
        return sum((position.market_value for position in self.positions), Decimal("0"))
