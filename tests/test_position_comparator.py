from decimal import Decimal

import pytest

from nav_recon.config import ReconciliationThresholds
from nav_recon.domain.errors import DuplicateSecurityError
from nav_recon.domain.models import Position, PositionStatus
from nav_recon.domain.services import compare_positions


def make_position(security_id: str, quantity: str, price: str, value: str | None = None, name: str | None = None) -> Position:
    quantity_dec = Decimal(quantity)
    price_dec = Decimal(price)
    return Position(
        security_id=security_id,
        instrument_name=name or f"Instrument {security_id}",
        quantity=quantity_dec,
        unit_price=price_dec,
        market_value=Decimal(value) if value is not None else quantity_dec * price_dec,
        currency="SEK",
    )


THRESHOLDS = ReconciliationThresholds(missing_position_value=Decimal("50000"))


def test_identical_positions_match_without_flags():
    internal = [make_position("SE0001", "1000", "100")]
    custody = [make_position("SE0001", "1000", "100")]

    result = compare_positions(internal, custody, THRESHOLDS)

    assert len(result) == 1
    assert result[0].status is PositionStatus.MATCH
    assert result[0].flags == ()
    assert result[0].differences.value_diff == 0


def test_small_quantity_difference_is_minor():
    internal = [make_position("SE0001", "1020", "100")]
    custody = [make_position("SE0001", "1000", "100")]

    [row] = compare_positions(internal, custody, THRESHOLDS)

    assert row.differences.quantity_diff == Decimal("20")
    assert row.differences.quantity_diff_percent == Decimal("2")
    assert row.status is PositionStatus.MINOR_DIFF
    assert row.flags == ("Quantity differs by 2.00%",)


def test_large_quantity_difference_is_major():
    internal = [make_position("SE0001", "1100", "100")]
    custody = [make_position("SE0001", "1000", "100")]

    [row] = compare_positions(internal, custody, THRESHOLDS)

    assert row.status is PositionStatus.MAJOR_DIFF


def test_quantity_within_tolerance_is_match():
    internal = [make_position("SE0001", "1004", "100")]
    custody = [make_position("SE0001", "1000", "100")]

    [row] = compare_positions(internal, custody, THRESHOLDS)

    assert row.status is PositionStatus.MATCH
    assert row.flags == ()


def test_price_check_never_downgrades_major():
    internal = [make_position("SE0001", "1100", "102")]
    custody = [make_position("SE0001", "1000", "100")]

    [row] = compare_positions(internal, custody, THRESHOLDS)

    assert row.status is PositionStatus.MAJOR_DIFF
    assert row.flags == ("Quantity differs by 10.00%", "Price differs by 2.00%")


def test_price_check_upgrades_minor_to_major():
    internal = [make_position("SE0001", "1010", "110")]
    custody = [make_position("SE0001", "1000", "100")]

    [row] = compare_positions(internal, custody, THRESHOLDS)

    assert row.status is PositionStatus.MAJOR_DIFF
    assert len(row.flags) == 2


def test_missing_in_custody_above_threshold_is_major():
    internal = [make_position("SE0001", "1000", "100")]

    [row] = compare_positions(internal, [], THRESHOLDS)

    assert row.custody is None
    assert row.status is PositionStatus.MAJOR_DIFF
    assert row.differences.value_diff == Decimal("100000")
    assert row.differences.quantity_diff_percent == Decimal("100")
    assert row.flags == ("Position missing in custody",)


def test_missing_in_custody_below_threshold_is_minor():
    internal = [make_position("SE0001", "10", "100")]

    [row] = compare_positions(internal, [], THRESHOLDS)

    assert row.status is PositionStatus.MINOR_DIFF


def test_missing_in_internal_below_threshold_keeps_missing_status():
    custody = [make_position("SE0002", "10", "100")]

    [row] = compare_positions([], custody, THRESHOLDS)

    assert row.internal is None
    assert row.status is PositionStatus.MISSING_INTERNAL
    assert row.differences.value_diff == Decimal("-1000")
    assert row.differences.price_diff_percent == Decimal("-100")


def test_missing_in_internal_above_threshold_is_major():
    custody = [make_position("SE0002", "1000", "100")]

    [row] = compare_positions([], custody, THRESHOLDS)

    assert row.status is PositionStatus.MAJOR_DIFF


def test_zero_custody_figures_give_zero_percent():
    internal = [make_position("SE0001", "5", "3", value="15")]
    custody = [make_position("SE0001", "0", "0", value="0")]

    [row] = compare_positions(internal, custody, THRESHOLDS)

    assert row.differences.quantity_diff_percent == 0
    assert row.differences.price_diff_percent == 0
    assert row.differences.value_diff_percent == 0
    assert row.status is PositionStatus.MATCH


def test_every_identifier_appears_exactly_once():
    internal = [make_position(f"SE{i:04d}", "100", "10") for i in range(0, 8)]
    custody = [make_position(f"SE{i:04d}", "100", "11") for i in range(4, 12)]

    result = compare_positions(internal, custody, THRESHOLDS)

    ids = [row.security_id for row in result]
    assert len(ids) == len(set(ids))
    assert set(ids) == {p.security_id for p in internal} | {p.security_id for p in custody}


def test_sorted_by_descending_absolute_value_difference():
    internal = [
        make_position("SMALL", "100", "10"),
        make_position("BIG", "100", "10"),
        make_position("ONLY_INTERNAL", "50", "10"),
    ]
    custody = [
        make_position("SMALL", "99", "10"),
        make_position("BIG", "200", "10"),
        make_position("ONLY_CUSTODY", "30", "10"),
    ]

    result = compare_positions(internal, custody, THRESHOLDS)

    assert [row.security_id for row in result] == ["BIG", "ONLY_INTERNAL", "ONLY_CUSTODY", "SMALL"]
    for first, second in zip(result, result[1:]):
        assert abs(first.differences.value_diff) >= abs(second.differences.value_diff)


def test_ties_keep_input_order():
    internal = [make_position("B", "1", "1"), make_position("A", "1", "1")]
    custody = [make_position("B", "1", "1"), make_position("A", "1", "1")]

    result = compare_positions(internal, custody, THRESHOLDS)

    assert [row.security_id for row in result] == ["B", "A"]


def test_duplicate_identifiers_are_rejected():
    internal = [make_position("SE0001", "1", "1"), make_position("SE0001", "2", "1")]

    with pytest.raises(DuplicateSecurityError) as excinfo:
        compare_positions(internal, [], THRESHOLDS)

    assert excinfo.value.security_ids == ["SE0001"]
