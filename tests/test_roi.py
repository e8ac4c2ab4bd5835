from decimal import Decimal

from app.vendops.domain.models import CommissionBase, CommissionPolicy, FinanceTerms, RoiStatus
from app.vendops.services.aggregation import aggregate_by_location, aggregate_by_machine, index_machine_locations
from app.vendops.services.roi import (
    allocate_cents,
    build_roi_rows,
    classify_roi,
    owner_net_cents,
    payback_months,
    rank_worst_first,
)
from tests.report_helpers import aggregate, sale

MACHINE_AGGREGATES = {
    "m1": aggregate("m1", gross=60000, cogs=20000),
    "m2": aggregate("m2", gross=40000, cogs=10000),
    "m3": aggregate("m3", gross=10000, cogs=5000),
}
MACHINE_LOCATIONS = {"m1": "LOC-A", "m2": "LOC-A", "m3": "LOC-B", "m4": "LOC-B"}
POLICIES = {
    "LOC-A": CommissionPolicy(location_id="LOC-A", base=CommissionBase.GROSS, rate_percent=Decimal("10")),
}
FINANCE = {
    "m1": FinanceTerms(machine_id="m1", monthly_payment_cents=10000, purchase_price_cents=300000),
    "m2": FinanceTerms(machine_id="m2", purchase_price_cents=1000000),
    "m3": FinanceTerms(machine_id="m3", monthly_payment_cents=5500, purchase_price_cents=100000),
    "m4": FinanceTerms(machine_id="m4", monthly_payment_cents=5000, purchase_price_cents=50000),
}


def _rows(group_by: str = "machine"):
    rows = build_roi_rows(
        machine_aggregates=MACHINE_AGGREGATES,
        machine_locations=MACHINE_LOCATIONS,
        policies=POLICIES,
        finance=FINANCE,
        months_factor=1,
        group_by=group_by,
    )
    return {row.entity_id: row for row in rows}


def test_owner_net_subtracts_financing_and_commission():
    assert owner_net_cents(60000, 10000, 1, 5000) == 45000
    assert owner_net_cents(60000, 10000, Decimal("0.5"), 5000, 1000) == 49000


def test_allocation_sums_to_total():
    assert allocate_cents(100, {"a": 1, "b": 1, "c": 1}) == {"a": 34, "b": 33, "c": 33}
    assert allocate_cents(10000, {"m1": 60000, "m2": 40000}) == {"m1": 6000, "m2": 4000}
    assert allocate_cents(7, {"x": 0, "y": 0}) == {"x": 4, "y": 3}
    assert sum(allocate_cents(-101, {"a": 2, "b": 1}).values()) == -101
    assert allocate_cents(50, {}) == {}


def test_classification_band():
    assert classify_roi(Decimal("5.01")) == RoiStatus.POSITIVE
    assert classify_roi(Decimal("5")) == RoiStatus.BREAKING_EVEN
    assert classify_roi(Decimal("-5")) == RoiStatus.BREAKING_EVEN
    assert classify_roi(Decimal("-5.01")) == RoiStatus.NEGATIVE


def test_payback_requires_profit_and_investment():
    assert payback_months(300000, 24000, Decimal("1")) == Decimal("12.50")
    assert payback_months(300000, 0, Decimal("1")) is None
    assert payback_months(0, 24000, Decimal("1")) is None
    assert payback_months(300000, 24000, Decimal("0")) is None


def test_machine_rows():
    rows = _rows()

    m1 = rows["m1"]
    assert m1.net_revenue_cents == 40000
    assert m1.commission_cents == 6000
    assert m1.owner_net_cents == 24000
    assert m1.roi_percent == Decimal("8.00")
    assert m1.status == RoiStatus.POSITIVE
    assert m1.payback_months == Decimal("12.50")

    m2 = rows["m2"]
    assert m2.owner_net_cents == 26000
    assert m2.roi_percent == Decimal("2.60")
    assert m2.status == RoiStatus.BREAKING_EVEN

    m3 = rows["m3"]
    assert m3.commission_cents == 0
    assert m3.owner_net_cents == -500
    assert m3.roi_percent == Decimal("-0.50")
    assert m3.payback_months is None

    m4 = rows["m4"]
    assert m4.gross_cents == 0
    assert m4.owner_net_cents == -5000
    assert m4.roi_percent == Decimal("-10.00")
    assert m4.status == RoiStatus.NEGATIVE


def test_location_rows_roll_up_machines():
    rows = _rows("location")
    assert sorted(rows) == ["LOC-A", "LOC-B"]

    loc_a = rows["LOC-A"]
    assert loc_a.machine_ids == ("m1", "m2")
    assert loc_a.commission_cents == 10000
    assert loc_a.owner_net_cents == 50000
    assert loc_a.investment_cents == 1300000
    assert loc_a.roi_percent == Decimal("3.85")

    loc_b = rows["LOC-B"]
    assert loc_b.owner_net_cents == -5500
    assert loc_b.roi_percent == Decimal("-3.67")


def test_machine_commission_matches_location_commission():
    machine_rows = _rows()
    location_rows = _rows("location")
    assert machine_rows["m1"].commission_cents + machine_rows["m2"].commission_cents == (
        location_rows["LOC-A"].commission_cents
    )


def test_zero_investment_gives_zero_roi():
    rows = build_roi_rows(
        machine_aggregates={"m9": aggregate("m9", gross=1000)},
        machine_locations={},
        policies={},
        finance={},
    )
    assert rows[0].roi_percent == Decimal("0")
    assert rows[0].status == RoiStatus.BREAKING_EVEN


def test_rank_worst_first():
    ranked = rank_worst_first(_rows().values())
    assert [row.entity_id for row in ranked] == ["m4", "m3", "m1", "m2"]


def test_term_amortizes_purchase_without_explicit_payment():
    terms = FinanceTerms(machine_id="m5", purchase_price_cents=120000, term_months=24)
    assert terms.scheduled_payment_cents == 5000
    explicit = FinanceTerms(machine_id="m5", monthly_payment_cents=4000, purchase_price_cents=120000, term_months=24)
    assert explicit.scheduled_payment_cents == 4000

    rows = build_roi_rows(
        machine_aggregates={"m5": aggregate("m5", gross=30000, cogs=10000)},
        machine_locations={"m5": "LOC-C"},
        policies={},
        finance={"m5": terms},
        months_factor=Decimal("0.5"),
    )
    assert rows[0].financing_cents == 2500
    assert rows[0].owner_net_cents == owner_net_cents(20000, 5000, Decimal("0.5"), 0)
    assert rows[0].owner_net_cents == 17500


def test_location_rows_agree_with_location_revenue():
    sales = [
        sale("M-1", 2, 500, location_id="LOC-B"),
        sale("M-2", 1, 300),
        sale("M-9", 4, 100, location_id="LOC-Z"),
    ]
    locations = index_machine_locations({"M-1": "LOC-A", "M-2": "LOC-B"}, sales)
    by_location = aggregate_by_location(sales, locations)
    rows = build_roi_rows(
        machine_aggregates=aggregate_by_machine(sales),
        machine_locations=locations,
        policies={},
        finance={},
        group_by="location",
    )

    assert sorted(by_location) == ["LOC-A", "LOC-B", "LOC-Z"]
    assert {row.entity_id: row.gross_cents for row in rows} == {
        location_id: item.gross_cents for location_id, item in by_location.items()
    }
