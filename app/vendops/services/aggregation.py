from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, Hashable, Iterable, Mapping, TypeVar

from app.vendops.domain.models import RevenueAggregate, Sale

K = TypeVar("K", bound=Hashable)

FeeFunction = Callable[[Sale], int]


def _no_fees(_sale: Sale) -> int:
    return 0


class _Accumulator:
    __slots__ = ("gross_cents", "fees_cents", "cogs_cents", "sale_count", "units")

    def __init__(self) -> None:
        self.gross_cents = 0
        self.fees_cents = 0
        self.cogs_cents = 0
        self.sale_count = 0
        self.units = 0

    def add(self, sale: Sale, fee_cents: int) -> None:
        self.gross_cents += sale.quantity * sale.unit_price_cents
        self.cogs_cents += sale.quantity * (sale.unit_cost_cents or 0)
        self.fees_cents += fee_cents
        self.sale_count += 1
        self.units += sale.quantity

    def freeze(self, entity_id: str) -> RevenueAggregate:
        return RevenueAggregate(
            entity_id=entity_id,
            gross_cents=self.gross_cents,
            fees_cents=self.fees_cents,
            cogs_cents=self.cogs_cents,
            sale_count=self.sale_count,
            units=self.units,
        )


def aggregate_revenue(
    sales: Iterable[Sale],
    key: Callable[[Sale], K | None],
    fee_for: FeeFunction | None = None,
) -> dict[K, RevenueAggregate]:
    """Fold sales into one ``RevenueAggregate`` per group key.

    Sales whose key is ``None`` are skipped. Quantities are netted as given,
    so returns (negative quantities) reduce gross and cost of goods. Net is
    never accumulated: ``RevenueAggregate.net_cents`` derives it from the
    three totals.
    """
    fee_for = fee_for or _no_fees
    groups: dict[K, _Accumulator] = defaultdict(_Accumulator)
    for sale in sales:
        group = key(sale)
        if group is None:
            continue
        groups[group].add(sale, fee_for(sale))
    return {group: acc.freeze(_entity_id(group)) for group, acc in groups.items()}


def _entity_id(group: Hashable) -> str:
    if isinstance(group, date):
        return group.isoformat()
    return str(group)


def aggregate_by_machine(sales: Iterable[Sale], fee_for: FeeFunction | None = None) -> dict[str, RevenueAggregate]:
    return aggregate_revenue(sales, lambda sale: sale.machine_id or None, fee_for)


def resolve_location(sale: Sale, machine_locations: Mapping[str, str | None]) -> str | None:
    """A mapped machine reports to its registered location. The sale's own
    location only counts for machines missing from the map."""
    return machine_locations.get(sale.machine_id) or sale.location_id


def index_machine_locations(
    machine_locations: Mapping[str, str | None],
    sales: Iterable[Sale],
) -> dict[str, str | None]:
    locations = dict(machine_locations)
    for sale in sales:
        if sale.machine_id and not locations.get(sale.machine_id):
            locations[sale.machine_id] = sale.location_id
    return locations


def aggregate_by_location(
    sales: Iterable[Sale],
    machine_locations: Mapping[str, str | None],
    fee_for: FeeFunction | None = None,
) -> dict[str, RevenueAggregate]:
    def _location(sale: Sale) -> str | None:
        return resolve_location(sale, machine_locations)

    return aggregate_revenue(sales, _location, fee_for)


def _ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def aggregate_by_day(
    sales: Iterable[Sale],
    tz: tzinfo,
    fee_for: FeeFunction | None = None,
) -> dict[date, RevenueAggregate]:
    def _local_date(sale: Sale) -> date | None:
        if sale.occurred_at is None:
            return None
        return _ensure_utc(sale.occurred_at).astimezone(tz).date()

    return aggregate_revenue(sales, _local_date, fee_for)


def combine_aggregates(aggregates: Iterable[RevenueAggregate], entity_id: str) -> RevenueAggregate:
    gross = fees = cogs = count = units = 0
    for aggregate in aggregates:
        gross += aggregate.gross_cents
        fees += aggregate.fees_cents
        cogs += aggregate.cogs_cents
        count += aggregate.sale_count
        units += aggregate.units
    return RevenueAggregate(
        entity_id=entity_id,
        gross_cents=gross,
        fees_cents=fees,
        cogs_cents=cogs,
        sale_count=count,
        units=units,
    )


def empty_aggregate(entity_id: str) -> RevenueAggregate:
    return RevenueAggregate(entity_id=entity_id)
