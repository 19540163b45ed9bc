import threading
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from nav_recon.application.dto import ApiReconciliationRequest, DocumentReconciliationRequest
from nav_recon.application.use_cases import ReconcileFundUseCase, ReconciliationContext
from nav_recon.domain.models import CustodySnapshot, CustodySource, InternalSnapshot, OverallStatus, Position
from nav_recon.domain.services import ReconciliationEngine
from nav_recon.infrastructure.repositories.excel_repositories import CustodyStatementProvider

AS_OF = date(2024, 3, 28)
CAPTURED = datetime(2024, 3, 29, tzinfo=timezone.utc)


def make_position(security_id: str, quantity: str = "100", price: str = "10") -> Position:
    return Position(
        security_id=security_id,
        instrument_name=security_id,
        quantity=Decimal(quantity),
        unit_price=Decimal(price),
        market_value=Decimal(quantity) * Decimal(price),
        currency="SEK",
    )


def make_internal() -> InternalSnapshot:
    return InternalSnapshot(
        fund_id="FUND001",
        fund_name="Gold Rush",
        currency="SEK",
        as_of_date=AS_OF,
        holdings=[make_position("SE0001")],
        cash_balance=Decimal("1000"),
        captured_at=CAPTURED,
    )


def make_custody() -> CustodySnapshot:
    return CustodySnapshot(
        account_id="ACC-1",
        currency="SEK",
        as_of_date=AS_OF,
        source=CustodySource.API,
        positions=[make_position("SE0001")],
        cash_balance=Decimal("1000"),
        captured_at=CAPTURED,
    )


class FakeInternalProvider:
    def __init__(self, barrier: threading.Barrier | None = None, error: Exception | None = None) -> None:
        self.calls: list[tuple[str, date | None]] = []
        self._barrier = barrier
        self._error = error

    def get_snapshot(self, fund_id, as_of=None):
        self.calls.append((fund_id, as_of))
        if self._barrier is not None:
            self._barrier.wait()
        if self._error is not None:
            raise self._error
        return make_internal()


class FakeCustodyProvider:
    def __init__(self, barrier: threading.Barrier | None = None, error: Exception | None = None) -> None:
        self.calls: list[tuple[str, date | None]] = []
        self._barrier = barrier
        self._error = error

    def get_snapshot(self, account_id, as_of=None):
        self.calls.append((account_id, as_of))
        if self._barrier is not None:
            self._barrier.wait()
        if self._error is not None:
            raise self._error
        return make_custody()


def test_api_reconciliation_fetches_both_snapshots_concurrently():
    # Each provider blocks until the other has started.
    barrier = threading.Barrier(2, timeout=5)
    internal = FakeInternalProvider(barrier)
    custody = FakeCustodyProvider(barrier)
    use_case = ReconcileFundUseCase(
        ReconciliationContext(internal_provider=internal, api_custody_provider=custody)
    )

    result = use_case.reconcile_with_api(ApiReconciliationRequest(fund_id="FUND001", account_id="ACC-1"))

    assert result.summary.overall_status is OverallStatus.APPROVED
    assert internal.calls == [("FUND001", None)]
    assert custody.calls == [("ACC-1", None)]


def test_provider_failure_propagates_unchanged():
    error = ConnectionError("custody API unreachable")
    use_case = ReconcileFundUseCase(
        ReconciliationContext(
            internal_provider=FakeInternalProvider(),
            api_custody_provider=FakeCustodyProvider(error=error),
        )
    )

    with pytest.raises(ConnectionError) as excinfo:
        use_case.reconcile_with_api(ApiReconciliationRequest(fund_id="FUND001", account_id="ACC-1"))

    assert excinfo.value is error


def test_internal_failure_aborts_run():
    use_case = ReconcileFundUseCase(
        ReconciliationContext(
            internal_provider=FakeInternalProvider(error=KeyError("FUND001")),
            api_custody_provider=FakeCustodyProvider(),
        )
    )

    with pytest.raises(KeyError):
        use_case.reconcile_with_api(ApiReconciliationRequest(fund_id="FUND001", account_id="ACC-1"))


def test_supplied_snapshots_skip_providers():
    internal = FakeInternalProvider()
    custody = FakeCustodyProvider()
    use_case = ReconcileFundUseCase(
        ReconciliationContext(internal_provider=internal, api_custody_provider=custody)
    )

    use_case.reconcile_with_api(
        ApiReconciliationRequest(
            fund_id="FUND001",
            account_id="ACC-1",
            internal_snapshot=make_internal(),
            custody_snapshot=make_custody(),
        )
    )

    assert internal.calls == []
    assert custody.calls == []


def test_request_overrides_apply_on_top_of_engine_config():
    use_case = ReconcileFundUseCase(
        ReconciliationContext(
            internal_provider=FakeInternalProvider(),
            api_custody_provider=FakeCustodyProvider(),
            engine=ReconciliationEngine({"position_quantity_percent": 20}),
        )
    )
    custody = CustodySnapshot(
        account_id="ACC-1",
        currency="SEK",
        as_of_date=AS_OF,
        source=CustodySource.API,
        positions=[make_position("SE0001", quantity="90")],
        cash_balance=Decimal("1000"),
        captured_at=CAPTURED,
    )

    result = use_case.reconcile_with_api(
        ApiReconciliationRequest(
            fund_id="FUND001",
            account_id="ACC-1",
            config={"cash_difference_absolute": 5},
            custody_snapshot=custody,
        )
    )

    assert result.positions[0].flags == ()
    assert result.summary.major_differences == 0


def test_document_reconciliation_uses_statement_date():
    statement = {
        "reportDate": "2024-03-27",
        "accountNumber": "8327-9",
        "currency": "SEK",
        "positions": [
            {"isin": "SE0001", "instrumentName": "SE0001", "quantity": 100, "marketPrice": 10, "marketValue": 1000},
        ],
        "cashBalance": 1000,
        "extractedAt": "2024-03-28T06:00:00Z",
        "confidence": 0.95,
    }
    use_case = ReconcileFundUseCase(
        ReconciliationContext(
            internal_provider=FakeInternalProvider(),
            document_custody_provider=CustodyStatementProvider(),
        )
    )

    result = use_case.reconcile_with_document(DocumentReconciliationRequest(fund_id="FUND001", document=statement))

    assert result.reconciliation_date == date(2024, 3, 27)
    assert result.sources.custody.source == "DOCUMENT"
    assert result.summary.overall_status is OverallStatus.APPROVED


def test_document_reconciliation_requires_provider():
    use_case = ReconcileFundUseCase(ReconciliationContext(internal_provider=FakeInternalProvider()))

    with pytest.raises(ValueError):
        use_case.reconcile_with_document(DocumentReconciliationRequest(fund_id="FUND001", document={}))
