from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ReportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_value: str | None = Field(None, alias="from")
    to_value: str | None = Field(None, alias="to")
    timezone: str | None = None
    months_factor: Decimal | None = Field(None, ge=0, le=1200)
    org_id: str | None = None
    sales: list[dict[str, Any]] = Field(default_factory=list)
    machines: list[dict[str, Any]] = Field(default_factory=list)
    fee_processors: list[dict[str, Any]] = Field(default_factory=list)
    fee_mappings: list[dict[str, Any]] = Field(default_factory=list)
    fee_rules: list[dict[str, Any]] = Field(default_factory=list)


class RevenueReportRequest(ReportRequest):
    group_by: Literal["machine", "location", "day"] = "location"


class CommissionReportRequest(ReportRequest):
    locations: list[dict[str, Any]] = Field(default_factory=list)


class RoiReportRequest(CommissionReportRequest):
    finance: list[dict[str, Any]] = Field(default_factory=list)
    group_by: Literal["machine", "location"] = "machine"


class ReportMeta(BaseModel):
    org_id: str | None
    timezone: str
    from_datetime: datetime
    to_datetime: datetime
    days: int
    months_factor: Decimal
    trace_id: str | None
    compute_ms: float
    sales_received: int
    sales_in_period: int


class RevenueRow(BaseModel):
    entity_id: str
    gross_cents: int
    fees_cents: int
    cogs_cents: int
    net_cents: int
    sale_count: int
    units: int
    gross: Decimal
    fees: Decimal
    cogs: Decimal
    net: Decimal
    margin_pct: Decimal
    net_margin_pct: Decimal


class RevenueReportResponse(BaseModel):
    meta: ReportMeta
    group_by: str
    totals: RevenueRow
    rows: list[RevenueRow]


class CommissionRow(BaseModel):
    location_id: str
    method: str
    months_factor: Decimal
    gross_cents: int
    base_cents: int
    raw_commission_cents: int
    commission_cents: int
    floor_applied: bool
    gross: Decimal
    commission: Decimal


class CommissionTotals(BaseModel):
    gross_cents: int
    commission_cents: int
    gross: Decimal
    commission: Decimal


class CommissionReportResponse(BaseModel):
    meta: ReportMeta
    totals: CommissionTotals
    rows: list[CommissionRow]


class RoiRowOut(BaseModel):
    entity_id: str
    machine_ids: list[str]
    gross_cents: int
    fees_cents: int
    cogs_cents: int
    net_revenue_cents: int
    financing_cents: int
    operating_costs_cents: int
    commission_cents: int
    owner_net_cents: int
    investment_cents: int
    owner_net: Decimal
    roi_percent: Decimal
    payback_months: Decimal | None
    status: str


class RoiTotals(BaseModel):
    net_revenue_cents: int
    commission_cents: int
    owner_net_cents: int
    investment_cents: int
    average_roi_percent: Decimal


class RoiReportResponse(BaseModel):
    meta: ReportMeta
    group_by: str
    totals: RoiTotals
    rows: list[RoiRowOut]
