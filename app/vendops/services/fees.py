from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping

from app.vendops.core.money import BPS_DIVISOR, round_half_up
from app.vendops.domain.models import FeeContext, FeeRule, Sale
from app.vendops.services.aggregation import resolve_location

SCOPE_MACHINE = "machine"
SCOPE_LOCATION = "location"
SCOPE_DEFAULT = "default"


@dataclass(frozen=True)
class FeeKey:
    scope: str
    entity_id: str | None = None
    payment_method: str | None = None


def normalize_payment_method(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = str(value).strip().lower()
    return cleaned or None


def calc_fee_cents(unit_price_cents: int, quantity: int, rule: FeeRule | None) -> int:
    if rule is None:
        return 0
    percent_per_unit = round_half_up(Decimal(unit_price_cents) * Decimal(rule.percent_bps) / BPS_DIVISOR)
    per_unit = percent_per_unit + rule.fixed_cents
    return max(0, quantity * per_unit)


def _effective_rule(rules: Iterable[FeeRule], on_date: date | None) -> FeeRule | None:
    candidates = [
        rule
        for rule in rules
        if rule.effective_date is None or on_date is None or rule.effective_date <= on_date
    ]
    if not candidates:
        return None
    return max(
        candidates,
        key=lambda rule: (rule.effective_date is not None, rule.effective_date or date.min),
    )


class FeeRuleTable:
    def __init__(
        self,
        rules: Mapping[FeeKey, Iterable[FeeRule]] | None = None,
        *,
        machine_locations: Mapping[str, str | None] | None = None,
    ) -> None:
        self._rules: dict[FeeKey, tuple[FeeRule, ...]] = {
            key: tuple(values) for key, values in (rules or {}).items()
        }
        self._machine_locations = dict(machine_locations or {})

    def __len__(self) -> int:
        return sum(len(values) for values in self._rules.values())

    def context_for(self, sale: Sale) -> FeeContext:
        location_id = resolve_location(sale, self._machine_locations)
        on_date = sale.occurred_at.date() if sale.occurred_at is not None else None
        return FeeContext(
            machine_id=sale.machine_id,
            location_id=location_id,
            payment_method=normalize_payment_method(sale.payment_method),
            on_date=on_date,
        )

    def _candidate_keys(self, context: FeeContext) -> list[FeeKey]:
        method = normalize_payment_method(context.payment_method)
        keys: list[FeeKey] = []
        if context.machine_id:
            if method:
                keys.append(FeeKey(SCOPE_MACHINE, context.machine_id, method))
            keys.append(FeeKey(SCOPE_MACHINE, context.machine_id))
        if context.location_id:
            if method:
                keys.append(FeeKey(SCOPE_LOCATION, context.location_id, method))
            keys.append(FeeKey(SCOPE_LOCATION, context.location_id))
        if method:
            keys.append(FeeKey(SCOPE_DEFAULT, None, method))
        keys.append(FeeKey(SCOPE_DEFAULT))
        return keys

    def resolve(self, context: FeeContext) -> FeeRule | None:
        for key in self._candidate_keys(context):
            rules = self._rules.get(key)
            if not rules:
                continue
            rule = _effective_rule(rules, context.on_date)
            if rule is not None:
                return rule
        return None

    def fee_for(self, sale: Sale) -> int:
        rule = self.resolve(self.context_for(sale))
        return calc_fee_cents(sale.unit_price_cents, sale.quantity, rule)


def build_fee_table(
    *,
    processor_rules: Mapping[str, FeeRule] | None = None,
    machine_processors: Mapping[str, str] | None = None,
    explicit_rules: Iterable[tuple[FeeKey, FeeRule]] = (),
    machine_locations: Mapping[str, str | None] | None = None,
) -> FeeRuleTable:
    rules: dict[FeeKey, list[FeeRule]] = defaultdict(list)
    processor_rules = processor_rules or {}
    for machine_id, processor_id in (machine_processors or {}).items():
        rule = processor_rules.get(processor_id)
        if rule is not None:
            rules[FeeKey(SCOPE_MACHINE, machine_id)].append(rule)
    for key, rule in explicit_rules:
        rules[key].append(rule)
    return FeeRuleTable(rules, machine_locations=machine_locations)
