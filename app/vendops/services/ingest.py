"""Parse rows from the data-access layer into typed records.

This is the only place raw ``dict`` rows are inspected. Every numeric field
goes through the ``parse_or_default`` family so malformed values become 0
(or empty) instead of failing a whole report.
"""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping

from app.vendops.core.config import settings
from app.vendops.core.error_catalog import AppError, ErrorCatalog
from app.vendops.core.money import (
    parse_cents,
    parse_decimal,
    parse_dollars_as_cents,
    parse_int,
    parse_or_default,
    parse_percent_as_bps,
    record_coercion,
)
from app.vendops.domain.models import (
    CommissionBase,
    CommissionMethod,
    CommissionPolicy,
    CommissionTier,
    FeeRule,
    FinanceTerms,
    Machine,
    Sale,
)
from app.vendops.services.commission import duplicate_thresholds, normalize_tiers, policy_from_roi_model
from app.vendops.services.fees import (
    SCOPE_DEFAULT,
    SCOPE_LOCATION,
    SCOPE_MACHINE,
    FeeKey,
    FeeRuleTable,
    build_fee_table,
    normalize_payment_method,
)

Row = Mapping[str, Any]

METHOD_ALIASES = {
    "none": CommissionMethod.NONE,
    "percent": CommissionMethod.PERCENT,
    "percentage": CommissionMethod.PERCENT,
    "percent_gross": CommissionMethod.PERCENT,
    "flat": CommissionMethod.FLAT,
    "flat_month": CommissionMethod.FLAT,
    "flat_monthly": CommissionMethod.FLAT,
    "tiered": CommissionMethod.TIERED_PERCENT,
    "tiered_percent": CommissionMethod.TIERED_PERCENT,
    "hybrid": CommissionMethod.HYBRID,
}

BASE_ALIASES = {
    "gross": CommissionBase.GROSS,
    "gross_less_fees": CommissionBase.GROSS_LESS_FEES,
    "gross_minus_fees": CommissionBase.GROSS_LESS_FEES,
    "net_of_fees": CommissionBase.GROSS_LESS_FEES,
    "net": CommissionBase.NET,
}


def _text(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _first(row: Row, *names: str) -> Any:
    for name in names:
        value = row.get(name)
        if value is not None and value != "":
            return value
    return None


def _parse_timestamp(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        parsed = raw
    elif isinstance(raw, date):
        parsed = datetime.combine(raw, datetime.min.time())
    else:
        text = str(raw).strip().replace("Z", "+00:00")
        if "T" in text or ":" in text:
            parsed = datetime.fromisoformat(text)
        else:
            parsed = datetime.combine(date.fromisoformat(text), datetime.min.time())
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_date(raw: Any) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return _parse_timestamp(raw).date()


def parse_timestamp(value: Any, *, field: str | None = None) -> datetime | None:
    return parse_or_default(value, _parse_timestamp, None, field=field)


def parse_date(value: Any, *, field: str | None = None) -> date | None:
    return parse_or_default(value, _parse_date, None, field=field)


def parse_sale(row: Row) -> Sale:
    return Sale(
        machine_id=_text(row.get("machine_id")) or "",
        occurred_at=parse_timestamp(_first(row, "occurred_at", "sale_date"), field="sale.occurred_at"),
        quantity=parse_int(_first(row, "qty", "quantity", "quantity_sold"), field="sale.qty"),
        unit_price_cents=parse_cents(row.get("unit_price_cents"), field="sale.unit_price_cents"),
        unit_cost_cents=parse_cents(row.get("unit_cost_cents"), field="sale.unit_cost_cents"),
        payment_method=normalize_payment_method(_text(row.get("payment_method"))),
        location_id=_text(row.get("location_id")),
    )


def parse_sales(rows: Iterable[Row]) -> list[Sale]:
    return [parse_sale(row) for row in rows]


def parse_machines(rows: Iterable[Row]) -> list[Machine]:
    machines = []
    for row in rows:
        machine_id = _text(_first(row, "id", "machine_id"))
        if machine_id is None:
            continue
        machines.append(Machine(id=machine_id, location_id=_text(row.get("location_id"))))
    return machines


def machine_location_map(machines: Iterable[Machine]) -> dict[str, str | None]:
    return {machine.id: machine.location_id for machine in machines}


def _parse_tier(item: Any) -> CommissionTier | None:
    if not isinstance(item, Mapping):
        record_coercion("policy.tiers", item)
        return None
    if item.get("threshold_cents") is not None:
        threshold = parse_cents(item.get("threshold_cents"), field="policy.tiers.threshold")
    else:
        threshold = parse_dollars_as_cents(
            _first(item, "threshold", "min_revenue", "min"), field="policy.tiers.threshold"
        )
    rate = parse_decimal(_first(item, "rate_percent", "rate", "pct"), field="policy.tiers.rate")
    return CommissionTier(threshold_cents=threshold, rate_percent=rate)


def parse_tiers(
    raw: Any,
    *,
    strict: bool | None = None,
    location_id: str | None = None,
) -> tuple[CommissionTier, ...]:
    """Tier thresholds are dollars unless given as ``threshold_cents``."""
    if raw is None or raw == "":
        return ()
    items = raw
    if isinstance(raw, (str, bytes)):
        try:
            items = json.loads(raw)
        except ValueError:
            record_coercion("policy.tiers", raw)
            return ()
    if isinstance(items, Mapping):
        items = items.get("tiers", [])
    if not isinstance(items, list):
        record_coercion("policy.tiers", raw)
        return ()

    tiers = [tier for tier in (_parse_tier(item) for item in items) if tier is not None]
    strict = settings.COMMISSION_TIERS_STRICT if strict is None else strict
    if strict:
        duplicates = duplicate_thresholds(tiers)
        if duplicates:
            raise AppError(
                ErrorCatalog.INVALID_COMMISSION_TIERS,
                details={"location_id": location_id, "duplicate_thresholds_cents": duplicates},
            )
    return normalize_tiers(tiers)


def _parse_alias(value: Any, aliases: Mapping[str, Any], default: Any, *, field: str) -> Any:
    text = _text(value)
    if text is None:
        return default
    resolved = aliases.get(text.lower())
    if resolved is None:
        record_coercion(field, value)
        return default
    return resolved


def _rate_percent(row: Row) -> Decimal:
    if row.get("commission_rate") not in (None, ""):
        return parse_decimal(row.get("commission_rate"), field="policy.commission_rate")
    bps = parse_int(row.get("commission_pct_bps"), field="policy.commission_pct_bps")
    return Decimal(bps) / Decimal(100)


def parse_policy(row: Row, *, strict: bool | None = None) -> CommissionPolicy:
    location_id = _text(_first(row, "location_id", "id"))
    minimum = parse_cents(
        _first(row, "commission_min_guarantee_cents", "commission_min_cents"),
        field="policy.commission_min_guarantee_cents",
    )
    effective_from = parse_date(row.get("effective_from"), field="policy.effective_from")
    effective_to = parse_date(row.get("effective_to"), field="policy.effective_to")

    if _text(row.get("commission_type")) is None and _text(row.get("commission_model")) is not None:
        policy = policy_from_roi_model(
            _text(row.get("commission_model")),
            location_id=location_id,
            rate_percent=_rate_percent(row),
            flat_cents_per_month=parse_cents(row.get("commission_flat_cents"), field="policy.commission_flat_cents"),
            minimum_cents_per_month=minimum,
        )
        return replace(policy, effective_from=effective_from, effective_to=effective_to)

    return CommissionPolicy(
        location_id=location_id,
        method=_parse_alias(
            row.get("commission_type"), METHOD_ALIASES, CommissionMethod.PERCENT, field="policy.commission_type"
        ),
        base=_parse_alias(
            row.get("commission_base"), BASE_ALIASES, CommissionBase.GROSS_LESS_FEES, field="policy.commission_base"
        ),
        rate_percent=_rate_percent(row),
        flat_cents_per_month=parse_cents(row.get("commission_flat_cents"), field="policy.commission_flat_cents"),
        tiers=parse_tiers(row.get("commission_tiers_json"), strict=strict, location_id=location_id),
        minimum_guarantee_cents_per_month=minimum,
        effective_from=effective_from,
        effective_to=effective_to,
    )


def parse_policies(rows: Iterable[Row], *, strict: bool | None = None) -> list[CommissionPolicy]:
    return [parse_policy(row, strict=strict) for row in rows]


def parse_finance_terms(row: Row) -> FinanceTerms:
    return FinanceTerms(
        machine_id=_text(row.get("machine_id")) or "",
        monthly_payment_cents=parse_cents(row.get("monthly_payment_cents"), field="finance.monthly_payment_cents"),
        purchase_price_cents=parse_cents(row.get("purchase_price_cents"), field="finance.purchase_price_cents"),
        term_months=parse_int(_first(row, "term_months", "term"), field="finance.term_months"),
        other_onetime_cents=parse_cents(row.get("other_onetime_cents"), field="finance.other_onetime_cents"),
        insurance_monthly_cents=parse_cents(
            row.get("insurance_monthly_cents"), field="finance.insurance_monthly_cents"
        ),
        telemetry_monthly_cents=parse_cents(
            row.get("telemetry_monthly_cents"), field="finance.telemetry_monthly_cents"
        ),
        software_monthly_cents=parse_cents(
            row.get("software_monthly_cents"), field="finance.software_monthly_cents"
        ),
    )


def finance_by_machine(rows: Iterable[Row]) -> dict[str, FinanceTerms]:
    terms = (parse_finance_terms(row) for row in rows)
    return {term.machine_id: term for term in terms if term.machine_id}


def parse_processor_rules(rows: Iterable[Row]) -> dict[str, FeeRule]:
    rules: dict[str, FeeRule] = {}
    for row in rows:
        processor_id = _text(_first(row, "id", "processor_id"))
        if processor_id is None:
            continue
        rules[processor_id] = FeeRule(
            percent_bps=parse_percent_as_bps(row.get("default_percent_fee"), field="processor.default_percent_fee"),
            fixed_cents=parse_dollars_as_cents(row.get("default_fixed_fee"), field="processor.default_fixed_fee"),
            processor_id=processor_id,
        )
    return rules


def parse_processor_mappings(rows: Iterable[Row]) -> dict[str, str]:
    mappings: dict[str, str] = {}
    for row in rows:
        machine_id = _text(row.get("machine_id"))
        processor_id = _text(row.get("processor_id"))
        if machine_id and processor_id:
            mappings[machine_id] = processor_id
    return mappings


def parse_fee_rule(row: Row) -> tuple[FeeKey, FeeRule]:
    machine_id = _text(row.get("machine_id"))
    location_id = _text(row.get("location_id"))
    method = normalize_payment_method(_text(row.get("payment_method")))
    if machine_id:
        key = FeeKey(SCOPE_MACHINE, machine_id, method)
    elif location_id:
        key = FeeKey(SCOPE_LOCATION, location_id, method)
    else:
        key = FeeKey(SCOPE_DEFAULT, None, method)
    rule = FeeRule(
        percent_bps=parse_int(row.get("percent_bps"), field="fee_rule.percent_bps"),
        fixed_cents=parse_cents(row.get("fixed_cents"), field="fee_rule.fixed_cents"),
        processor_id=_text(row.get("processor_id")),
        effective_date=parse_date(row.get("effective_date"), field="fee_rule.effective_date"),
    )
    return key, rule


def fee_table_from_rows(
    *,
    processors: Iterable[Row] = (),
    mappings: Iterable[Row] = (),
    rules: Iterable[Row] = (),
    machine_locations: Mapping[str, str | None] | None = None,
) -> FeeRuleTable:
    return build_fee_table(
        processor_rules=parse_processor_rules(processors),
        machine_processors=parse_processor_mappings(mappings),
        explicit_rules=[parse_fee_rule(row) for row in rules],
        machine_locations=machine_locations,
    )
