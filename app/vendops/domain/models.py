from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from app.vendops.core.money import ZERO, ratio_percent, round_half_up


class CommissionMethod(str, Enum):
    NONE = "none"
    PERCENT = "percent"
    FLAT = "flat"
    TIERED_PERCENT = "tiered_percent"
    HYBRID = "hybrid"


class CommissionBase(str, Enum):
    GROSS = "gross"
    GROSS_LESS_FEES = "gross_less_fees"
    NET = "net"


class RoiStatus(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    BREAKING_EVEN = "breaking_even"


@dataclass(frozen=True)
class Sale:
    machine_id: str
    occurred_at: datetime | None
    quantity: int
    unit_price_cents: int
    unit_cost_cents: int = 0
    payment_method: str | None = None
    location_id: str | None = None


@dataclass(frozen=True)
class Machine:
    id: str
    location_id: str | None


@dataclass(frozen=True)
class FeeRule:
    percent_bps: int = 0
    fixed_cents: int = 0
    processor_id: str | None = None
    effective_date: date | None = None


@dataclass(frozen=True)
class FeeContext:
    machine_id: str | None
    location_id: str | None = None
    payment_method: str | None = None
    on_date: date | None = None


@dataclass(frozen=True)
class RevenueAggregate:
    entity_id: str
    gross_cents: int = 0
    fees_cents: int = 0
    cogs_cents: int = 0
    sale_count: int = 0
    units: int = 0

    @property
    def net_cents(self) -> int:
        return self.gross_cents - self.fees_cents - self.cogs_cents

    @property
    def margin_pct(self) -> Decimal:
        if self.gross_cents <= 0:
            return ZERO
        return ratio_percent(self.gross_cents - self.cogs_cents, self.gross_cents)

    @property
    def net_margin_pct(self) -> Decimal:
        if self.gross_cents <= 0:
            return ZERO
        return ratio_percent(self.net_cents, self.gross_cents)


@dataclass(frozen=True)
class CommissionTier:
    threshold_cents: int
    rate_percent: Decimal


@dataclass(frozen=True)
class CommissionPolicy:
    location_id: str | None = None
    method: CommissionMethod = CommissionMethod.PERCENT
    base: CommissionBase = CommissionBase.GROSS_LESS_FEES
    rate_percent: Decimal = ZERO
    flat_cents_per_month: int = 0
    tiers: tuple[CommissionTier, ...] = ()
    minimum_guarantee_cents_per_month: int = 0
    effective_from: date | None = None
    effective_to: date | None = None

    def covers(self, on_date: date | None) -> bool:
        if on_date is None:
            return True
        if self.effective_from is not None and on_date < self.effective_from:
            return False
        if self.effective_to is not None and on_date > self.effective_to:
            return False
        return True


DEFAULT_POLICY = CommissionPolicy()


@dataclass(frozen=True)
class CommissionResult:
    location_id: str | None
    method: CommissionMethod
    months_factor: Decimal
    base_cents: int
    raw_commission_cents: int
    commission_cents: int
    floor_applied: bool


@dataclass(frozen=True)
class CommissionStatementRow:
    location_id: str
    gross_cents: int
    result: CommissionResult


@dataclass(frozen=True)
class CommissionStatement:
    months_factor: Decimal
    rows: tuple[CommissionStatementRow, ...] = ()

    @property
    def total_gross_cents(self) -> int:
        return sum(row.gross_cents for row in self.rows)

    @property
    def total_commission_cents(self) -> int:
        return sum(row.result.commission_cents for row in self.rows)


@dataclass(frozen=True)
class FinanceTerms:
    machine_id: str
    monthly_payment_cents: int = 0
    purchase_price_cents: int = 0
    term_months: int = 0
    other_onetime_cents: int = 0
    insurance_monthly_cents: int = 0
    telemetry_monthly_cents: int = 0
    software_monthly_cents: int = 0

    @property
    def scheduled_payment_cents(self) -> int:
        if self.monthly_payment_cents > 0:
            return self.monthly_payment_cents
        if self.term_months > 0 and self.purchase_price_cents > 0:
            return round_half_up(Decimal(self.purchase_price_cents) / self.term_months)
        return 0

    @property
    def investment_cents(self) -> int:
        return self.purchase_price_cents + self.other_onetime_cents

    @property
    def operating_monthly_cents(self) -> int:
        return self.insurance_monthly_cents + self.telemetry_monthly_cents + self.software_monthly_cents


@dataclass(frozen=True)
class RoiRow:
    entity_id: str
    months_factor: Decimal
    gross_cents: int
    fees_cents: int
    cogs_cents: int
    net_revenue_cents: int
    financing_cents: int
    operating_costs_cents: int
    commission_cents: int
    owner_net_cents: int
    investment_cents: int
    roi_percent: Decimal
    payback_months: Decimal | None
    status: RoiStatus
    machine_ids: tuple[str, ...] = field(default_factory=tuple)
