from datetime import date, datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from app.vendops.domain.models import FeeRule
from app.vendops.services.aggregation import (
    aggregate_by_day,
    aggregate_by_location,
    aggregate_by_machine,
    combine_aggregates,
    index_machine_locations,
)
from app.vendops.services.fees import SCOPE_DEFAULT, FeeKey, FeeRuleTable
from tests.report_helpers import sale

FIFTEEN_PER_UNIT = FeeRuleTable({FeeKey(SCOPE_DEFAULT): [FeeRule(fixed_cents=15)]})
LOCATIONS = {"M-1": "LOC-A", "M-2": "LOC-A", "M-3": "LOC-B"}


def _sales():
    return [
        sale("M-1", 2, 250, 60),
        sale("M-2", 1, 300, 120),
        sale("M-2", 1, 0, 0),
        sale("M-3", -1, 150, 60),
    ]


def test_machine_totals_and_net_identity():
    result = aggregate_by_machine(_sales(), FIFTEEN_PER_UNIT.fee_for)

    m1 = result["M-1"]
    assert (m1.gross_cents, m1.fees_cents, m1.cogs_cents, m1.net_cents) == (500, 30, 120, 350)
    m2 = result["M-2"]
    assert (m2.gross_cents, m2.fees_cents, m2.cogs_cents, m2.net_cents) == (300, 30, 120, 150)
    assert m2.sale_count == 2
    for aggregate in result.values():
        assert aggregate.net_cents == aggregate.gross_cents - aggregate.fees_cents - aggregate.cogs_cents


def test_returns_reduce_gross_and_cogs_without_negative_fees():
    m3 = aggregate_by_machine(_sales(), FIFTEEN_PER_UNIT.fee_for)["M-3"]
    assert m3.gross_cents == -150
    assert m3.cogs_cents == -60
    assert m3.fees_cents == 0
    assert m3.net_cents == -90
    assert m3.units == -1
    assert m3.margin_pct == Decimal("0")


def test_location_rollup_and_margins():
    result = aggregate_by_location(_sales(), LOCATIONS, FIFTEEN_PER_UNIT.fee_for)
    loc_a = result["LOC-A"]
    assert (loc_a.gross_cents, loc_a.fees_cents, loc_a.cogs_cents, loc_a.net_cents) == (800, 60, 240, 500)
    assert loc_a.margin_pct == Decimal("70.00")
    assert loc_a.net_margin_pct == Decimal("62.50")


def test_location_sum_matches_machine_sum():
    by_machine = aggregate_by_machine(_sales(), FIFTEEN_PER_UNIT.fee_for)
    by_location = aggregate_by_location(_sales(), LOCATIONS, FIFTEEN_PER_UNIT.fee_for)
    machine_total = combine_aggregates(by_machine.values(), "all")
    location_total = combine_aggregates(by_location.values(), "all")
    assert machine_total == location_total


def test_unmapped_machines_are_skipped_for_locations():
    result = aggregate_by_location([sale("M-9", 3, 100)], LOCATIONS)
    assert result == {}


def test_registered_location_wins_over_sale_location():
    result = aggregate_by_location([sale("M-1", 1, 100, location_id="LOC-Z")], LOCATIONS)
    assert list(result) == ["LOC-A"]


def test_sale_location_used_for_unregistered_machine():
    result = aggregate_by_location([sale("M-9", 1, 100, location_id="LOC-Z")], LOCATIONS)
    assert list(result) == ["LOC-Z"]


def test_location_index_fills_unregistered_machines_from_sales():
    index = index_machine_locations(
        {"M-1": "LOC-A"},
        [sale("M-1", 1, 100, location_id="LOC-B"), sale("M-9", 1, 100, location_id="LOC-Z")],
    )
    assert index == {"M-1": "LOC-A", "M-9": "LOC-Z"}


def test_empty_input_produces_no_groups():
    assert aggregate_by_machine([]) == {}
    assert aggregate_by_location([], LOCATIONS) == {}


def test_fees_default_to_zero_without_lookup():
    result = aggregate_by_machine([sale("M-1", 3, 100)])
    assert result["M-1"].fees_cents == 0


def test_daily_buckets_use_report_timezone():
    late_evening_utc = datetime(2024, 3, 10, 2, 30, tzinfo=timezone.utc)
    midday_utc = datetime(2024, 3, 10, 17, 0, tzinfo=timezone.utc)
    result = aggregate_by_day(
        [sale("M-1", 1, 100, at=late_evening_utc), sale("M-1", 1, 200, at=midday_utc)],
        ZoneInfo("America/New_York"),
    )
    assert sorted(result) == [date(2024, 3, 9), date(2024, 3, 10)]
    assert result[date(2024, 3, 9)].gross_cents == 100
    assert result[date(2024, 3, 9)].entity_id == "2024-03-09"
    assert result[date(2024, 3, 10)].gross_cents == 200
