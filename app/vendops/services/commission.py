from __future__ import annotations

from collections import Counter
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping

from app.vendops.core.money import HUNDRED, ZERO, parse_decimal, percent_of, record_coercion, round_half_up
from app.vendops.domain.models import (
    DEFAULT_POLICY,
    CommissionBase,
    CommissionMethod,
    CommissionPolicy,
    CommissionResult,
    CommissionStatement,
    CommissionStatementRow,
    CommissionTier,
    RevenueAggregate,
)
from app.vendops.services.aggregation import empty_aggregate

ROI_MODEL_METHODS = {
    "none": CommissionMethod.NONE,
    "percent_gross": CommissionMethod.PERCENT,
    "flat_month": CommissionMethod.FLAT,
    "hybrid": CommissionMethod.HYBRID,
}


MAX_MONTHS_FACTOR = Decimal("1200")


def as_months_factor(value: Decimal | int | float | str | None) -> Decimal:
    """``None`` means one month. Unparseable, non-positive or implausibly
    large factors become 0."""
    if value is None:
        return Decimal("1")
    factor = parse_decimal(value, ZERO, field="months_factor")
    if factor > MAX_MONTHS_FACTOR:
        record_coercion("months_factor", value)
        return ZERO
    return factor if factor > 0 else ZERO


def select_base_cents(aggregate: RevenueAggregate, base: CommissionBase) -> int:
    if base == CommissionBase.GROSS:
        amount = aggregate.gross_cents
    elif base == CommissionBase.GROSS_LESS_FEES:
        amount = aggregate.gross_cents - aggregate.fees_cents
    else:
        amount = aggregate.net_cents
    return max(0, amount)


def normalize_tiers(tiers: Iterable[CommissionTier]) -> tuple[CommissionTier, ...]:
    """Sort tiers ascending; negative thresholds become 0 and a repeated
    threshold keeps the last tier given for it."""
    by_threshold: dict[int, CommissionTier] = {}
    for tier in tiers:
        threshold = max(0, tier.threshold_cents)
        by_threshold[threshold] = CommissionTier(threshold_cents=threshold, rate_percent=tier.rate_percent)
    return tuple(by_threshold[threshold] for threshold in sorted(by_threshold))


def duplicate_thresholds(tiers: Iterable[CommissionTier]) -> list[int]:
    counts = Counter(max(0, tier.threshold_cents) for tier in tiers)
    return sorted(threshold for threshold, count in counts.items() if count > 1)


def tiered_commission(base_cents: int | Decimal, tiers: Iterable[CommissionTier]) -> Decimal:
    """Marginal bracket commission, in fractional cents.

    Each bracket runs from its threshold up to the next threshold (the last
    is open-ended) and only the slice of ``base_cents`` inside it is charged
    at that bracket's rate. Amounts below the lowest threshold earn nothing.
    """
    ordered = normalize_tiers(tiers)
    base = Decimal(base_cents)
    total = ZERO
    for index, tier in enumerate(ordered):
        lower = Decimal(tier.threshold_cents)
        if base <= lower:
            break
        upper = Decimal(ordered[index + 1].threshold_cents) if index + 1 < len(ordered) else None
        top = base if upper is None else min(base, upper)
        total += (top - lower) * tier.rate_percent / HUNDRED
    return total


def raw_commission(policy: CommissionPolicy, base_cents: int, months_factor: Decimal) -> Decimal:
    flat = Decimal(policy.flat_cents_per_month) * months_factor
    if policy.method == CommissionMethod.NONE:
        return ZERO
    if policy.method == CommissionMethod.PERCENT:
        return percent_of(base_cents, policy.rate_percent)
    if policy.method == CommissionMethod.FLAT:
        return flat
    if policy.method == CommissionMethod.TIERED_PERCENT:
        return tiered_commission(base_cents, policy.tiers)
    return percent_of(base_cents, policy.rate_percent) + flat


def compute_commission(
    aggregate: RevenueAggregate | None,
    policy: CommissionPolicy | None,
    months_factor: Decimal | int | float | str = 1,
) -> CommissionResult:
    policy = policy or DEFAULT_POLICY
    factor = as_months_factor(months_factor)
    aggregate = aggregate or empty_aggregate(policy.location_id or "")
    base_cents = select_base_cents(aggregate, policy.base)

    raw = raw_commission(policy, base_cents, factor)
    final = raw
    floor_applied = False
    if policy.minimum_guarantee_cents_per_month > 0:
        floor = Decimal(policy.minimum_guarantee_cents_per_month) * factor
        if floor > raw:
            final = floor
            floor_applied = True

    return CommissionResult(
        location_id=policy.location_id or aggregate.entity_id or None,
        method=policy.method,
        months_factor=factor,
        base_cents=base_cents,
        raw_commission_cents=round_half_up(raw),
        commission_cents=round_half_up(final),
        floor_applied=floor_applied,
    )


def policy_from_roi_model(
    model: str | None,
    *,
    location_id: str | None = None,
    rate_percent: Decimal = ZERO,
    flat_cents_per_month: int = 0,
    minimum_cents_per_month: int = 0,
) -> CommissionPolicy:
    method = ROI_MODEL_METHODS.get((model or "none").strip().lower(), CommissionMethod.NONE)
    return CommissionPolicy(
        location_id=location_id,
        method=method,
        base=CommissionBase.GROSS,
        rate_percent=rate_percent,
        flat_cents_per_month=flat_cents_per_month,
        minimum_guarantee_cents_per_month=minimum_cents_per_month,
    )


def select_policy(
    policies: Iterable[CommissionPolicy],
    location_id: str,
    on_date: date | None = None,
) -> CommissionPolicy:
    candidates = [
        policy for policy in policies if policy.location_id == location_id and policy.covers(on_date)
    ]
    if not candidates:
        return CommissionPolicy(location_id=location_id)
    return max(
        candidates,
        key=lambda policy: (policy.effective_from is not None, policy.effective_from or date.min),
    )


def policies_by_location(
    policies: Iterable[CommissionPolicy],
    on_date: date | None = None,
) -> dict[str, CommissionPolicy]:
    policies = list(policies)
    location_ids = sorted({policy.location_id for policy in policies if policy.location_id})
    return {location_id: select_policy(policies, location_id, on_date) for location_id in location_ids}


def build_commission_statement(
    aggregates: Mapping[str, RevenueAggregate],
    policies: Mapping[str, CommissionPolicy],
    months_factor: Decimal | int | float | str = 1,
) -> CommissionStatement:
    factor = as_months_factor(months_factor)
    rows: list[CommissionStatementRow] = []

    for location_id, aggregate in aggregates.items():
        policy = policies.get(location_id) or CommissionPolicy(location_id=location_id)
        result = compute_commission(aggregate, policy, factor)
        rows.append(CommissionStatementRow(location_id=location_id, gross_cents=aggregate.gross_cents, result=result))

    for location_id, policy in policies.items():
        if location_id in aggregates:
            continue
        result = compute_commission(empty_aggregate(location_id), policy, factor)
        if result.commission_cents > 0:
            rows.append(CommissionStatementRow(location_id=location_id, gross_cents=0, result=result))

    rows.sort(key=lambda row: (-row.result.commission_cents, row.location_id))
    return CommissionStatement(months_factor=factor, rows=tuple(rows))
