"""Snapshot provider interfaces anchoring the domain layer."""
from __future__ import annotations

from datetime import date
from typing import Protocol

from .models import CustodySnapshot, InternalSnapshot


class InternalSnapshotProvider(Protocol):
    """Provides the fund registry view of holdings and cash."""

    def get_snapshot(self, fund_id: str, as_of: date | None = None) -> InternalSnapshot:
        ...


class CustodySnapshotProvider(Protocol):
    """Provides the custodian's view, normalized to a ``CustodySnapshot``."""

    def get_snapshot(self, account_id: str, as_of: date | None = None) -> CustodySnapshot:
        ...
