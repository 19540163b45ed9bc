"""NAV reconciliation of fund registry records against custodian data."""
from nav_recon.application.use_cases import ReconcileFundUseCase, ReconciliationContext
from nav_recon.config import DEFAULT_CONFIG, ReconciliationConfig, ReconciliationThresholds
from nav_recon.domain.services import (
    ReconciliationEngine,
    compare_cash,
    compare_positions,
    generate_flags,
    reconcile,
    summarize,
)
from nav_recon.infrastructure.repositories.api_repositories import ApiCustodyProvider, CustodyApiClient
from nav_recon.infrastructure.repositories.excel_repositories import (
    CustodyStatementProvider,
    RegistryWorkbookProvider,
)

__all__ = [
    "DEFAULT_CONFIG",
    "ReconciliationConfig",
    "ReconciliationThresholds",
    "ReconciliationEngine",
    "ReconcileFundUseCase",
    "ReconciliationContext",
    "compare_positions",
    "compare_cash",
    "summarize",
    "generate_flags",
    "reconcile",
    "RegistryWorkbookProvider",
    "CustodyStatementProvider",
    "CustodyApiClient",
    "ApiCustodyProvider",
]
