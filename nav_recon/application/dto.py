"""Application-level request objects for reconciliation runs."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping

from nav_recon.config import ReconciliationConfig, ReconciliationThresholds
from nav_recon.domain.models import CustodySnapshot, InternalSnapshot

ConfigOverrides = ReconciliationConfig | ReconciliationThresholds | Mapping[str, Any] | None


@dataclass(slots=True, frozen=True)
class ApiReconciliationRequest:
    """Reconcile a fund against positions pulled from the custodian's API."""

    fund_id: str
    account_id: str
    reconciliation_date: date | None = None
    config: ConfigOverrides = None
    internal_snapshot: InternalSnapshot | None = None
    custody_snapshot: CustodySnapshot | None = None


@dataclass(slots=True, frozen=True)
class DocumentReconciliationRequest:
    """Reconcile a fund against an extracted custody statement."""

    fund_id: str
    document: Any
    reconciliation_date: date | None = None
    config: ConfigOverrides = None
    internal_snapshot: InternalSnapshot | None = None
