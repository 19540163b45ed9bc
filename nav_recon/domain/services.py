"""Domain services implementing the reconciliation rules.

Everything in this module is a pure function over in-memory snapshots. The
functions are exposed individually so each rule can be exercised on its own;
``reconcile`` wires them together for one fund.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Sequence

from nav_recon.config import (
    CASH_MAJOR_PERCENT,
    DEFAULT_CONFIG,
    MAJOR_POSITION_RATIO,
    POSITION_MAJOR_PERCENT,
    SETTINGS,
    TOTAL_VALUE_FAILED_PERCENT,
    TOTAL_VALUE_FLAG_PERCENT,
    ReconciliationConfig,
    ReconciliationThresholds,
)

from .errors import DuplicateSecurityError
from .models import (
    CashStatus,
    CustodySnapshot,
    FlagLevel,
    InternalSnapshot,
    OverallStatus,
    Position,
    PositionStatus,
    find_duplicate_ids,
)
from .results import (
    CashComparison,
    Differences,
    Figures,
    Flag,
    PositionComparison,
    ReconciliationResult,
    ReconciliationSources,
    SourceInfo,
    Summary,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

MISSING_IN_CUSTODY_FLAG = "Position missing in custody"
MISSING_IN_INTERNAL_FLAG = "Position missing in internal records"


def percent_of(difference: Decimal, base: Decimal) -> Decimal:
    """``difference`` as a percentage of ``base``; zero when ``base`` is zero."""
    if base == 0:
        return ZERO
    ctx = SETTINGS.decimal_context
    return ctx.multiply(ctx.divide(difference, base), HUNDRED)


def _figures(position: Position) -> Figures:
    return Figures(
        quantity=position.quantity,
        price=position.unit_price,
        value=position.market_value,
    )


def _severity(percent: Decimal) -> PositionStatus:
    return PositionStatus.MAJOR_DIFF if abs(percent) > POSITION_MAJOR_PERCENT else PositionStatus.MINOR_DIFF


def _compare_matched(
    internal: Position, custody: Position, thresholds: ReconciliationThresholds
) -> PositionComparison:
    quantity_diff = internal.quantity - custody.quantity
    quantity_diff_percent = percent_of(quantity_diff, custody.quantity)
    price_diff = internal.unit_price - custody.unit_price
    price_diff_percent = percent_of(price_diff, custody.unit_price)
    value_diff = internal.market_value - custody.market_value
    value_diff_percent = percent_of(value_diff, custody.market_value)

    flags: list[str] = []
    status = PositionStatus.MATCH

    if abs(quantity_diff_percent) > thresholds.position_quantity_percent:
        flags.append(f"Quantity differs by {quantity_diff_percent:.2f}%")
        status = _severity(quantity_diff_percent)

    if abs(price_diff_percent) > thresholds.position_price_percent:
        flags.append(f"Price differs by {price_diff_percent:.2f}%")
        if status is not PositionStatus.MAJOR_DIFF:
            status = _severity(price_diff_percent)

    return PositionComparison(
        security_id=internal.security_id,
        instrument_name=internal.instrument_name,
        internal=_figures(internal),
        custody=_figures(custody),
        differences=Differences(
            quantity_diff=quantity_diff,
            quantity_diff_percent=quantity_diff_percent,
            price_diff=price_diff,
            price_diff_percent=price_diff_percent,
            value_diff=value_diff,
            value_diff_percent=value_diff_percent,
        ),
        status=status,
        flags=tuple(flags),
    )


def _missing_in_custody(internal: Position, thresholds: ReconciliationThresholds) -> PositionComparison:
    if internal.market_value >= thresholds.missing_position_value:
        status = PositionStatus.MAJOR_DIFF
    else:
        status = PositionStatus.MINOR_DIFF
    return PositionComparison(
        security_id=internal.security_id,
        instrument_name=internal.instrument_name,
        internal=_figures(internal),
        custody=None,
        differences=Differences(
            quantity_diff=internal.quantity,
            quantity_diff_percent=HUNDRED,
            price_diff=internal.unit_price,
            price_diff_percent=HUNDRED,
            value_diff=internal.market_value,
            value_diff_percent=HUNDRED,
        ),
        status=status,
        flags=(MISSING_IN_CUSTODY_FLAG,),
    )


def _missing_in_internal(custody: Position, thresholds: ReconciliationThresholds) -> PositionComparison:
    # Small custody-only positions keep their own terminal status.
    if custody.market_value >= thresholds.missing_position_value:
        status = PositionStatus.MAJOR_DIFF
    else:
        status = PositionStatus.MISSING_INTERNAL
    return PositionComparison(
        security_id=custody.security_id,
        instrument_name=custody.instrument_name,
        internal=None,
        custody=_figures(custody),
        differences=Differences(
            quantity_diff=-custody.quantity,
            quantity_diff_percent=-HUNDRED,
            price_diff=-custody.unit_price,
            price_diff_percent=-HUNDRED,
            value_diff=-custody.market_value,
            value_diff_percent=-HUNDRED,
        ),
        status=status,
        flags=(MISSING_IN_INTERNAL_FLAG,),
    )


def compare_positions(
    internal_positions: Sequence[Position],
    custody_positions: Sequence[Position],
    thresholds: ReconciliationThresholds,
) -> list[PositionComparison]:
    """Pair holdings by security identifier and classify every pairing.

    The result holds exactly one row per identifier seen on either side,
    ordered by descending absolute value difference. Ties keep input order:
    internal positions first, then custody-only positions.
    """
    for side, positions in (("internal", internal_positions), ("custody", custody_positions)):
        duplicates = find_duplicate_ids(positions)
        if duplicates:
            raise DuplicateSecurityError(side, duplicates)

    custody_by_id = {position.security_id: position for position in custody_positions}
    processed: set[str] = set()
    comparisons: list[PositionComparison] = []

    for internal in internal_positions:
        processed.add(internal.security_id)
        custody = custody_by_id.get(internal.security_id)
        if custody is None:
            comparisons.append(_missing_in_custody(internal, thresholds))
        else:
            comparisons.append(_compare_matched(internal, custody, thresholds))

    for custody in custody_positions:
        if custody.security_id not in processed:
            comparisons.append(_missing_in_internal(custody, thresholds))

    return sorted(comparisons, key=lambda item: abs(item.differences.value_diff), reverse=True)


def compare_cash(
    internal_balance: Decimal,
    custody_balance: Decimal,
    currency: str,
    thresholds: ReconciliationThresholds,
) -> CashComparison:
    """Compare the cash line of both snapshots.

    Either tolerance alone flags the difference, but severity is judged on the
    percent figure only.
    """
    difference = internal_balance - custody_balance
    difference_percent = percent_of(difference, custody_balance)

    flags: list[str] = []
    status = CashStatus.MATCH

    if (
        abs(difference_percent) > thresholds.cash_difference_percent
        or abs(difference) > thresholds.cash_difference_absolute
    ):
        flags.append(f"Cash difference: {difference:,.2f} {currency}")
        status = CashStatus.MAJOR_DIFF if abs(difference_percent) > CASH_MAJOR_PERCENT else CashStatus.MINOR_DIFF

    return CashComparison(
        currency=currency,
        internal_balance=internal_balance,
        custody_balance=custody_balance,
        difference=difference,
        difference_percent=difference_percent,
        status=status,
        flags=tuple(flags),
    )


def summarize(
    positions: Sequence[PositionComparison],
    cash: CashComparison,
    internal_total_value: Decimal,
    custody_total_value: Decimal,
) -> Summary:
    matching = minor = major = missing_internal = 0
    for comparison in positions:
        match comparison.status:
            case PositionStatus.MATCH:
                matching += 1
            case PositionStatus.MINOR_DIFF:
                minor += 1
            case PositionStatus.MAJOR_DIFF:
                major += 1
            case PositionStatus.MISSING_INTERNAL:
                missing_internal += 1
            case PositionStatus.MISSING_CUSTODY:
                pass
            case _:
                raise ValueError(f"Unhandled position status: {comparison.status!r}")
    missing_custody = sum(1 for comparison in positions if comparison.is_missing_in_custody)

    total_value_difference = internal_total_value - custody_total_value
    total_value_difference_percent = percent_of(total_value_difference, custody_total_value)

    # Escalation only ever moves forward.
    overall_status = OverallStatus.APPROVED
    if major > 0 or cash.status is CashStatus.MAJOR_DIFF:
        overall_status = OverallStatus.REVIEW_REQUIRED
    if (
        major > len(positions) * MAJOR_POSITION_RATIO
        or abs(total_value_difference_percent) > TOTAL_VALUE_FAILED_PERCENT
    ):
        overall_status = OverallStatus.FAILED

    return Summary(
        total_positions=len(positions),
        matching_positions=matching,
        minor_differences=minor,
        major_differences=major,
        missing_in_internal=missing_internal,
        missing_in_custody=missing_custody,
        internal_total_value=internal_total_value,
        custody_total_value=custody_total_value,
        total_value_difference=total_value_difference,
        total_value_difference_percent=total_value_difference_percent,
        overall_status=overall_status,
    )


def generate_flags(
    positions: Sequence[PositionComparison],
    cash: CashComparison,
    summary: Summary,
) -> list[Flag]:
    flags: list[Flag] = []

    if summary.overall_status is OverallStatus.APPROVED:
        flags.append(
            Flag(
                level=FlagLevel.INFO,
                message="Reconciliation approved",
                details=f"{summary.matching_positions}/{summary.total_positions} positions match",
            )
        )

    match cash.status:
        case CashStatus.MATCH:
            pass
        case CashStatus.MINOR_DIFF | CashStatus.MAJOR_DIFF:
            flags.append(
                Flag(
                    level=FlagLevel.ERROR if cash.status is CashStatus.MAJOR_DIFF else FlagLevel.WARNING,
                    message=f"Cash difference: {cash.difference:,.2f} {cash.currency}",
                    details=f"Internal: {cash.internal_balance:,.2f}, Custody: {cash.custody_balance:,.2f}",
                )
            )
        case _:
            raise ValueError(f"Unhandled cash status: {cash.status!r}")

    major_positions = [p for p in positions if p.status is PositionStatus.MAJOR_DIFF]
    if major_positions:
        flags.append(
            Flag(
                level=FlagLevel.ERROR,
                message=f"{len(major_positions)} positions have major differences",
                details=", ".join(p.instrument_name for p in major_positions),
            )
        )

    if summary.missing_in_custody > 0:
        flags.append(
            Flag(
                level=FlagLevel.WARNING,
                message=f"{summary.missing_in_custody} positions missing in custody data",
            )
        )

    if summary.missing_in_internal > 0:
        flags.append(
            Flag(
                level=FlagLevel.WARNING,
                message=f"{summary.missing_in_internal} positions missing in internal records",
            )
        )

    if abs(summary.total_value_difference_percent) > TOTAL_VALUE_FLAG_PERCENT:
        flags.append(
            Flag(
                level=FlagLevel.ERROR,
                message=f"Total value differs by {summary.total_value_difference_percent:.2f}%",
                details=f"Difference: {summary.total_value_difference:,.2f} {cash.currency}",
            )
        )

    return flags


def reconcile(
    fund_id: str,
    internal_snapshot: InternalSnapshot,
    custody_snapshot: CustodySnapshot,
    config: ReconciliationConfig | ReconciliationThresholds | Mapping[str, Any] | None = None,
    *,
    fund_name: str | None = None,
    reconciliation_date: date | None = None,
    generated_at: datetime | None = None,
) -> ReconciliationResult:
    """Reconcile one fund's internal snapshot against its custody snapshot."""
    effective = DEFAULT_CONFIG.merged(config)
    thresholds = effective.thresholds
    reconciliation_date = reconciliation_date or internal_snapshot.as_of_date

    if internal_snapshot.currency != custody_snapshot.currency:
        logger.warning(
            "Currency mismatch for fund %s: internal %s, custody %s",
            fund_id,
            internal_snapshot.currency,
            custody_snapshot.currency,
        )

    positions = compare_positions(internal_snapshot.holdings, custody_snapshot.positions, thresholds)
    cash = compare_cash(
        internal_snapshot.cash_balance,
        custody_snapshot.cash_balance,
        internal_snapshot.currency,
        thresholds,
    )
    summary = summarize(positions, cash, internal_snapshot.total_value, custody_snapshot.total_value)
    flags = generate_flags(positions, cash, summary)

    logger.info(
        "Reconciled fund %s on %s: %s (%d positions, %d major)",
        fund_id,
        reconciliation_date,
        summary.overall_status.value,
        summary.total_positions,
        summary.major_differences,
    )

    return ReconciliationResult(
        fund_id=fund_id,
        fund_name=fund_name or internal_snapshot.fund_name,
        reconciliation_date=reconciliation_date,
        generated_at=generated_at or datetime.now(SETTINGS.timezone),
        summary=summary,
        cash_comparison=cash,
        positions=tuple(positions),
        flags=tuple(flags),
        sources=ReconciliationSources(
            internal=SourceInfo(
                source=internal_snapshot.source_id,
                timestamp=internal_snapshot.captured_at,
                data_points=len(internal_snapshot.holdings) + 1,
            ),
            custody=SourceInfo(
                source=custody_snapshot.source.value,
                timestamp=custody_snapshot.captured_at,
                data_points=len(custody_snapshot.positions) + 1,
            ),
        ),
    )


class ReconciliationEngine:
    """Binds a threshold configuration to ``reconcile``."""

    def __init__(
        self,
        config: ReconciliationConfig | ReconciliationThresholds | Mapping[str, Any] | None = None,
    ) -> None:
        self._config = DEFAULT_CONFIG.merged(config)

    @property
    def config(self) -> ReconciliationConfig:
        return self._config

    def reconcile(
        self,
        fund_id: str,
        internal_snapshot: InternalSnapshot,
        custody_snapshot: CustodySnapshot,
        *,
        reconciliation_date: date | None = None,
    ) -> ReconciliationResult:
        return reconcile(
            fund_id,
            internal_snapshot,
            custody_snapshot,
            self._config,
            reconciliation_date=reconciliation_date,
        )
