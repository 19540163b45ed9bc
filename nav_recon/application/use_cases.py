"""Application services orchestrating the reconciliation workflow."""
from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Protocol, TypeVar

from nav_recon.application.dto import ApiReconciliationRequest, DocumentReconciliationRequest
from nav_recon.domain.models import CustodySnapshot, InternalSnapshot
from nav_recon.domain.repositories import CustodySnapshotProvider, InternalSnapshotProvider
from nav_recon.domain.results import ReconciliationResult
from nav_recon.domain.services import ReconciliationEngine, reconcile

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DocumentCustodyProvider(Protocol):
    """Normalizes an extracted custody statement into a ``CustodySnapshot``."""

    def from_document(self, document: Any) -> CustodySnapshot:
        ...


@dataclass(slots=True)
class ReconciliationContext:
    internal_provider: InternalSnapshotProvider
    api_custody_provider: CustodySnapshotProvider | None = None
    document_custody_provider: DocumentCustodyProvider | None = None
    engine: ReconciliationEngine | None = None


def _ready(value: T) -> Future[T]:
    future: Future[T] = Future()
    future.set_result(value)
    return future


class ReconcileFundUseCase:
    """Acquires both snapshots concurrently, then runs the engine."""

    def __init__(self, context: ReconciliationContext) -> None:
        self._context = context
        self._engine = context.engine or ReconciliationEngine()

    def reconcile_with_api(self, request: ApiReconciliationRequest) -> ReconciliationResult:
        provider = self._context.api_custody_provider
        if request.custody_snapshot is None and provider is None:
            raise ValueError("No API custody provider configured")
        logger.info("Starting API reconciliation for fund %s (account %s)", request.fund_id, request.account_id)

        internal, custody = self._acquire(
            lambda: self._context.internal_provider.get_snapshot(request.fund_id, request.reconciliation_date),
            lambda: provider.get_snapshot(request.account_id, request.reconciliation_date),
            request.internal_snapshot,
            request.custody_snapshot,
        )
        return self._run(request.fund_id, internal, custody, request.config, request.reconciliation_date)

    def reconcile_with_document(self, request: DocumentReconciliationRequest) -> ReconciliationResult:
        provider = self._context.document_custody_provider
        if provider is None:
            raise ValueError("No document custody provider configured")
        logger.info("Starting document reconciliation for fund %s", request.fund_id)

        internal, custody = self._acquire(
            lambda: self._context.internal_provider.get_snapshot(request.fund_id, request.reconciliation_date),
            lambda: provider.from_document(request.document),
            request.internal_snapshot,
            None,
        )
        # A statement carries its own report date.
        reconciliation_date = request.reconciliation_date or custody.as_of_date
        return self._run(request.fund_id, internal, custody, request.config, reconciliation_date)

    def _acquire(
        self,
        fetch_internal: Callable[[], InternalSnapshot],
        fetch_custody: Callable[[], CustodySnapshot],
        internal: InternalSnapshot | None,
        custody: CustodySnapshot | None,
    ) -> tuple[InternalSnapshot, CustodySnapshot]:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="snapshot") as executor:
            internal_future = _ready(internal) if internal is not None else executor.submit(fetch_internal)
            custody_future = _ready(custody) if custody is not None else executor.submit(fetch_custody)
            try:
                return internal_future.result(), custody_future.result()
            except Exception:
                internal_future.cancel()
                custody_future.cancel()
                logger.exception("Snapshot acquisition failed; aborting reconciliation")
                raise

    def _run(
        self,
        fund_id: str,
        internal: InternalSnapshot,
        custody: CustodySnapshot,
        config: Any,
        reconciliation_date: date | None,
    ) -> ReconciliationResult:
        if config is None:
            return self._engine.reconcile(
                fund_id, internal, custody, reconciliation_date=reconciliation_date
            )
        return reconcile(
            fund_id,
            internal,
            custody,
            self._engine.config.merged(config),
            reconciliation_date=reconciliation_date,
        )
