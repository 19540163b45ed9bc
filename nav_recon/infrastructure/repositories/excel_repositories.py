"""File-backed snapshot providers."""
from __future__ import annotations

from datetime import date
from io import BytesIO
from pathlib import Path
from typing import Any, Mapping

from nav_recon.domain.errors import SnapshotAcquisitionError
from nav_recon.domain.models import CustodySnapshot, InternalSnapshot
from nav_recon.domain.repositories import InternalSnapshotProvider
from nav_recon.infrastructure.parsing.custody_statement import (
    statement_to_snapshot,
    statement_workbook_to_snapshot,
)
from nav_recon.infrastructure.parsing.registry import registry_to_snapshot

Source = BytesIO | Path | str | bytes


class RegistryWorkbookProvider(InternalSnapshotProvider):
    """Serves internal snapshots from registry holdings exports, one file per fund."""

    def __init__(
        self,
        sources: Mapping[str, Source],
        fund_names: Mapping[str, str] | None = None,
        currency: str = "SEK",
        mapping: dict[str, str] | None = None,
    ) -> None:
        self._sources = dict(sources)
        self._fund_names = dict(fund_names or {})
        self._currency = currency
        self._mapping = mapping

    def get_snapshot(self, fund_id: str, as_of: date | None = None) -> InternalSnapshot:
        if fund_id not in self._sources:
            raise SnapshotAcquisitionError("registry", f"no export configured for fund {fund_id}")
        return registry_to_snapshot(
            self._sources[fund_id],
            fund_id=fund_id,
            fund_name=self._fund_names.get(fund_id),
            as_of=as_of,
            currency=self._currency,
            mapping=self._mapping,
        )


class CustodyStatementProvider:
    """Normalizes custody statements from the document extraction pipeline.

    ``from_document`` accepts either the pipeline's structured mapping or a
    statement workbook path/bytes.
    """

    def __init__(
        self,
        account_id: str | None = None,
        mapping: Mapping[str, str] | None = None,
        custodian: str = "",
        currency: str = "SEK",
    ) -> None:
        self._account_id = account_id
        self._mapping = mapping
        self._custodian = custodian
        self._currency = currency

    def from_document(self, document: Any) -> CustodySnapshot:
        if isinstance(document, Mapping):
            return statement_to_snapshot(document, mapping=self._mapping, custodian=self._custodian)
        if self._account_id is None:
            raise ValueError("account_id is required for workbook statements")
        return statement_workbook_to_snapshot(
            document,
            account_id=self._account_id,
            currency=self._currency,
            mapping=self._mapping,
            custodian=self._custodian,
        )

