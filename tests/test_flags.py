from decimal import Decimal

from nav_recon.config import ReconciliationThresholds
from nav_recon.domain.models import FlagLevel, Position
from nav_recon.domain.services import compare_cash, compare_positions, generate_flags, summarize


def make_position(security_id: str, quantity: str, price: str, name: str | None = None) -> Position:
    return Position(
        security_id=security_id,
        instrument_name=name or security_id,
        quantity=Decimal(quantity),
        unit_price=Decimal(price),
        market_value=Decimal(quantity) * Decimal(price),
        currency="SEK",
    )


THRESHOLDS = ReconciliationThresholds()


def build(internal, custody, internal_cash="0", custody_cash="0"):
    positions = compare_positions(internal, custody, THRESHOLDS)
    cash = compare_cash(Decimal(internal_cash), Decimal(custody_cash), "SEK", THRESHOLDS)
    summary = summarize(
        positions,
        cash,
        sum((p.market_value for p in internal), Decimal("0")),
        sum((p.market_value for p in custody), Decimal("0")),
    )
    return positions, cash, summary


def test_approved_run_has_single_info_flag():
    positions, cash, summary = build([make_position("A", "10", "10")], [make_position("A", "10", "10")])

    flags = generate_flags(positions, cash, summary)

    assert len(flags) == 1
    assert flags[0].level is FlagLevel.INFO
    assert flags[0].message == "Reconciliation approved"
    assert flags[0].details == "1/1 positions match"


def test_flag_order_and_levels():
    internal = [
        make_position("BIG", "2000", "100", name="Big Holding"),
        make_position("ORPHAN", "10", "10", name="Orphan Internal"),
    ]
    custody = [
        make_position("BIG", "1000", "100", name="Big Holding"),
        make_position("EXTRA", "5", "10", name="Extra Custody"),
    ]
    positions, cash, summary = build(internal, custody, internal_cash="1000000", custody_cash="950000")

    flags = generate_flags(positions, cash, summary)

    assert [(f.level, f.message) for f in flags] == [
        (FlagLevel.ERROR, "Cash difference: 50,000.00 SEK"),
        (FlagLevel.ERROR, "1 positions have major differences"),
        (FlagLevel.WARNING, "1 positions missing in custody data"),
        (FlagLevel.WARNING, "1 positions missing in internal records"),
        (FlagLevel.ERROR, "Total value differs by 100.00%"),
    ]
    assert flags[0].details == "Internal: 1,000,000.00, Custody: 950,000.00"
    assert flags[1].details == "Big Holding"


def test_minor_cash_difference_is_warning():
    positions, cash, summary = build(
        [make_position("A", "10", "10")],
        [make_position("A", "10", "10")],
        internal_cash="1005",
        custody_cash="1000",
    )

    flags = generate_flags(positions, cash, summary)

    assert flags[0].level is FlagLevel.INFO
    assert flags[1].level is FlagLevel.WARNING
    assert flags[1].message == "Cash difference: 5.00 SEK"


def test_generate_flags_is_deterministic():
    internal = [make_position(f"S{i}", "100", str(10 + i)) for i in range(6)]
    custody = [make_position(f"S{i}", "100", "10") for i in range(3, 9)]
    positions, cash, summary = build(internal, custody, internal_cash="10", custody_cash="20")

    assert generate_flags(positions, cash, summary) == generate_flags(positions, cash, summary)
