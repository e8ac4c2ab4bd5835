from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Mapping

from app.vendops.core.money import CENT, ZERO, ratio_percent, round_half_up
from app.vendops.domain.models import (
    CommissionPolicy,
    FinanceTerms,
    RevenueAggregate,
    RoiRow,
    RoiStatus,
)
from app.vendops.services.aggregation import combine_aggregates, empty_aggregate
from app.vendops.services.commission import as_months_factor, compute_commission

GROUP_BY_MACHINE = "machine"
GROUP_BY_LOCATION = "location"
DEFAULT_BREAK_EVEN_BAND = Decimal("5")


def prorate_cents(monthly_cents: int, months_factor: Decimal | int | float | str) -> int:
    return round_half_up(Decimal(monthly_cents) * as_months_factor(months_factor))


def owner_net_cents(
    net_revenue_cents: int,
    monthly_payment_cents: int,
    months_factor: Decimal | int | float | str,
    commission_cents: int,
    operating_costs_cents: int = 0,
) -> int:
    financing = prorate_cents(monthly_payment_cents, months_factor)
    return net_revenue_cents - financing - commission_cents - operating_costs_cents


def classify_roi(roi_percent: Decimal, band: Decimal = DEFAULT_BREAK_EVEN_BAND) -> RoiStatus:
    if roi_percent > band:
        return RoiStatus.POSITIVE
    if roi_percent < -band:
        return RoiStatus.NEGATIVE
    return RoiStatus.BREAKING_EVEN


def payback_months(investment_cents: int, owner_net: int, months_factor: Decimal) -> Decimal | None:
    if investment_cents <= 0 or owner_net <= 0 or months_factor <= 0:
        return None
    monthly_profit = Decimal(owner_net) / months_factor
    return (Decimal(investment_cents) / monthly_profit).quantize(CENT)


def allocate_cents(total: int, weights: Mapping[str, int]) -> dict[str, int]:
    """Split ``total`` across keys in proportion to non-negative weights.

    Shares are floored and the remainder goes to the largest fractional
    parts, so the shares always sum to ``total``. All-zero weights split
    evenly.
    """
    if not weights:
        return {}
    sign = -1 if total < 0 else 1
    magnitude = abs(total)
    keys = sorted(weights)
    clamped = {key: max(0, weights[key]) for key in keys}
    weight_total = sum(clamped.values())
    if weight_total == 0:
        clamped = {key: 1 for key in keys}
        weight_total = len(keys)

    shares: dict[str, int] = {}
    remainders: list[tuple[int, str]] = []
    for key in keys:
        exact = magnitude * clamped[key]
        shares[key] = exact // weight_total
        remainders.append((exact % weight_total, key))
    leftover = magnitude - sum(shares.values())
    for _remainder, key in sorted(remainders, key=lambda item: (-item[0], item[1]))[:leftover]:
        shares[key] += 1
    return {key: sign * share for key, share in shares.items()}


def _roi_row(
    *,
    entity_id: str,
    aggregate: RevenueAggregate,
    factor: Decimal,
    monthly_payment_cents: int,
    operating_costs_cents: int,
    commission_cents: int,
    investment_cents: int,
    band: Decimal,
    machine_ids: tuple[str, ...],
) -> RoiRow:
    financing_cents = prorate_cents(monthly_payment_cents, factor)
    owner_net = owner_net_cents(
        aggregate.net_cents, monthly_payment_cents, factor, commission_cents, operating_costs_cents
    )
    roi_percent = ratio_percent(owner_net, investment_cents) if investment_cents > 0 else ZERO
    return RoiRow(
        entity_id=entity_id,
        months_factor=factor,
        gross_cents=aggregate.gross_cents,
        fees_cents=aggregate.fees_cents,
        cogs_cents=aggregate.cogs_cents,
        net_revenue_cents=aggregate.net_cents,
        financing_cents=financing_cents,
        operating_costs_cents=operating_costs_cents,
        commission_cents=commission_cents,
        owner_net_cents=owner_net,
        investment_cents=investment_cents,
        roi_percent=roi_percent,
        payback_months=payback_months(investment_cents, owner_net, factor),
        status=classify_roi(roi_percent, band),
        machine_ids=machine_ids,
    )


def build_roi_rows(
    *,
    machine_aggregates: Mapping[str, RevenueAggregate],
    machine_locations: Mapping[str, str | None],
    policies: Mapping[str, CommissionPolicy],
    finance: Mapping[str, FinanceTerms],
    months_factor: Decimal | int | float | str = 1,
    group_by: str = GROUP_BY_MACHINE,
    band: Decimal = DEFAULT_BREAK_EVEN_BAND,
) -> list[RoiRow]:
    """Owner profitability per machine or per location for one period.

    Commission is a location obligation, so it is computed once per location
    on the combined location revenue and then allocated to the location's
    machines by gross share.
    """
    factor = as_months_factor(months_factor)
    machine_ids = sorted(set(machine_aggregates) | set(machine_locations) | set(finance))

    machines_by_location: dict[str, list[str]] = defaultdict(list)
    for machine_id in machine_ids:
        location_id = machine_locations.get(machine_id)
        if location_id:
            machines_by_location[location_id].append(machine_id)

    def _aggregate(machine_id: str) -> RevenueAggregate:
        return machine_aggregates.get(machine_id) or empty_aggregate(machine_id)

    commission_by_location: dict[str, int] = {}
    commission_by_machine: dict[str, int] = {}
    for location_id, members in machines_by_location.items():
        location_aggregate = combine_aggregates((_aggregate(mid) for mid in members), location_id)
        result = compute_commission(location_aggregate, policies.get(location_id), factor)
        commission_by_location[location_id] = result.commission_cents
        commission_by_machine.update(
            allocate_cents(result.commission_cents, {mid: _aggregate(mid).gross_cents for mid in members})
        )

    machine_rows: dict[str, RoiRow] = {}
    payments: dict[str, int] = {}
    for machine_id in machine_ids:
        terms = finance.get(machine_id) or FinanceTerms(machine_id=machine_id)
        payments[machine_id] = terms.scheduled_payment_cents
        machine_rows[machine_id] = _roi_row(
            entity_id=machine_id,
            aggregate=_aggregate(machine_id),
            factor=factor,
            monthly_payment_cents=payments[machine_id],
            operating_costs_cents=prorate_cents(terms.operating_monthly_cents, factor),
            commission_cents=commission_by_machine.get(machine_id, 0),
            investment_cents=terms.investment_cents,
            band=band,
            machine_ids=(machine_id,),
        )

    if group_by != GROUP_BY_LOCATION:
        return list(machine_rows.values())

    location_rows: list[RoiRow] = []
    for location_id in sorted(machines_by_location):
        members = machines_by_location[location_id]
        rows = [machine_rows[mid] for mid in members]
        location_rows.append(
            _roi_row(
                entity_id=location_id,
                aggregate=combine_aggregates((_aggregate(mid) for mid in members), location_id),
                factor=factor,
                monthly_payment_cents=sum(payments[mid] for mid in members),
                operating_costs_cents=sum(row.operating_costs_cents for row in rows),
                commission_cents=commission_by_location[location_id],
                investment_cents=sum(row.investment_cents for row in rows),
                band=band,
                machine_ids=tuple(members),
            )
        )
    return location_rows


def rank_worst_first(rows: Iterable[RoiRow]) -> list[RoiRow]:
    return sorted(rows, key=lambda row: (row.owner_net_cents, row.entity_id))
