from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from decimal import Decimal

from fastapi import APIRouter, Request

from app.vendops.core.config import settings
from app.vendops.core.logging import log_json
from app.vendops.core.metrics import metrics
from app.vendops.core.money import CENT, ZERO, cents_to_dollars
from app.vendops.domain.models import RevenueAggregate, RoiRow, Sale
from app.vendops.schemas.errors import ApiErrorResponse, ApiReportErrorResponse
from app.vendops.schemas.reports import (
    CommissionReportRequest,
    CommissionReportResponse,
    CommissionRow,
    CommissionTotals,
    ReportMeta,
    ReportRequest,
    RevenueReportRequest,
    RevenueReportResponse,
    RevenueRow,
    RoiReportRequest,
    RoiReportResponse,
    RoiRowOut,
    RoiTotals,
)
from app.vendops.services.aggregation import (
    aggregate_by_day,
    aggregate_by_location,
    aggregate_by_machine,
    combine_aggregates,
    index_machine_locations,
)
from app.vendops.services.commission import build_commission_statement, policies_by_location
from app.vendops.services.fees import FeeRuleTable
from app.vendops.services.ingest import (
    fee_table_from_rows,
    finance_by_machine,
    machine_location_map,
    parse_machines,
    parse_policies,
    parse_sales,
)
from app.vendops.services.periods import ReportPeriod, resolve_period, resolve_timezone, validate_period
from app.vendops.services.roi import build_roi_rows, rank_worst_first

logger = logging.getLogger("vendops.reports")

router = APIRouter()

ERROR_RESPONSES = {
    422: {"model": ApiReportErrorResponse},
    500: {"model": ApiErrorResponse},
}


@dataclass(frozen=True)
class _PreparedReport:
    tz: object
    period: ReportPeriod
    months_factor: Decimal
    sales: list[Sale]
    sales_received: int
    machine_locations: dict[str, str | None]
    fee_table: FeeRuleTable


def _prepare(request: Request, payload: ReportRequest) -> _PreparedReport:
    request.state.org_id = payload.org_id
    tz = resolve_timezone(payload.timezone)
    period = resolve_period(payload.from_value, payload.to_value, tz)
    validate_period(period, max_days=settings.REPORTS_MAX_DATE_RANGE_DAYS)
    months_factor = payload.months_factor if payload.months_factor is not None else period.months_factor()

    all_sales = parse_sales(payload.sales)
    sales = [sale for sale in all_sales if sale.occurred_at is None or period.contains(sale.occurred_at)]
    registered = machine_location_map(parse_machines(payload.machines))
    machine_locations = index_machine_locations(registered, all_sales)
    fee_table = fee_table_from_rows(
        processors=payload.fee_processors,
        mappings=payload.fee_mappings,
        rules=payload.fee_rules,
        machine_locations=machine_locations,
    )
    return _PreparedReport(
        tz=tz,
        period=period,
        months_factor=months_factor,
        sales=sales,
        sales_received=len(all_sales),
        machine_locations=machine_locations,
        fee_table=fee_table,
    )


def _build_meta(request: Request, payload: ReportRequest, prepared: _PreparedReport, compute_ms: float) -> ReportMeta:
    return ReportMeta(
        org_id=payload.org_id,
        timezone=prepared.period.timezone_name,
        from_datetime=prepared.period.start_local,
        to_datetime=prepared.period.end_local,
        days=prepared.period.days,
        months_factor=prepared.months_factor,
        trace_id=getattr(request.state, "trace_id", None),
        compute_ms=compute_ms,
        sales_received=prepared.sales_received,
        sales_in_period=len(prepared.sales),
    )


def _log_report(request: Request, report: str, payload: ReportRequest, *, rows: int, compute_ms: float) -> None:
    metrics.increment_report(report)
    log_json(
        logger,
        {
            "event": "report_computed",
            "report": report,
            "trace_id": getattr(request.state, "trace_id", ""),
            "org_id": payload.org_id,
            "rows": rows,
            "compute_ms": round(compute_ms, 2),
        },
    )


def _revenue_row(aggregate: RevenueAggregate) -> RevenueRow:
    return RevenueRow(
        entity_id=aggregate.entity_id,
        gross_cents=aggregate.gross_cents,
        fees_cents=aggregate.fees_cents,
        cogs_cents=aggregate.cogs_cents,
        net_cents=aggregate.net_cents,
        sale_count=aggregate.sale_count,
        units=aggregate.units,
        gross=cents_to_dollars(aggregate.gross_cents),
        fees=cents_to_dollars(aggregate.fees_cents),
        cogs=cents_to_dollars(aggregate.cogs_cents),
        net=cents_to_dollars(aggregate.net_cents),
        margin_pct=aggregate.margin_pct,
        net_margin_pct=aggregate.net_margin_pct,
    )


def _roi_row_out(row: RoiRow) -> RoiRowOut:
    return RoiRowOut(
        entity_id=row.entity_id,
        machine_ids=list(row.machine_ids),
        gross_cents=row.gross_cents,
        fees_cents=row.fees_cents,
        cogs_cents=row.cogs_cents,
        net_revenue_cents=row.net_revenue_cents,
        financing_cents=row.financing_cents,
        operating_costs_cents=row.operating_costs_cents,
        commission_cents=row.commission_cents,
        owner_net_cents=row.owner_net_cents,
        investment_cents=row.investment_cents,
        owner_net=cents_to_dollars(row.owner_net_cents),
        roi_percent=row.roi_percent,
        payback_months=row.payback_months,
        status=row.status.value,
    )


@router.post("/vendops/reports/revenue", response_model=RevenueReportResponse, responses=ERROR_RESPONSES)
def report_revenue(request: Request, payload: RevenueReportRequest):
    start_time = time.perf_counter()
    prepared = _prepare(request, payload)
    fee_for = prepared.fee_table.fee_for
    if payload.group_by == "machine":
        aggregates = aggregate_by_machine(prepared.sales, fee_for)
    elif payload.group_by == "day":
        aggregates = aggregate_by_day(prepared.sales, prepared.tz, fee_for)
    else:
        aggregates = aggregate_by_location(prepared.sales, prepared.machine_locations, fee_for)

    rows = [_revenue_row(aggregates[key]) for key in sorted(aggregates)]
    totals = _revenue_row(combine_aggregates(aggregates.values(), "total"))
    compute_ms = (time.perf_counter() - start_time) * 1000
    _log_report(request, "revenue", payload, rows=len(rows), compute_ms=compute_ms)
    return RevenueReportResponse(
        meta=_build_meta(request, payload, prepared, compute_ms),
        group_by=payload.group_by,
        totals=totals,
        rows=rows,
    )


@router.post("/vendops/reports/commissions", response_model=CommissionReportResponse, responses=ERROR_RESPONSES)
def report_commissions(request: Request, payload: CommissionReportRequest):
    start_time = time.perf_counter()
    prepared = _prepare(request, payload)
    policies = policies_by_location(parse_policies(payload.locations), prepared.period.start_date)
    aggregates = aggregate_by_location(prepared.sales, prepared.machine_locations, prepared.fee_table.fee_for)
    statement = build_commission_statement(aggregates, policies, prepared.months_factor)

    rows = [
        CommissionRow(
            location_id=row.location_id,
            method=row.result.method.value,
            months_factor=row.result.months_factor,
            gross_cents=row.gross_cents,
            base_cents=row.result.base_cents,
            raw_commission_cents=row.result.raw_commission_cents,
            commission_cents=row.result.commission_cents,
            floor_applied=row.result.floor_applied,
            gross=cents_to_dollars(row.gross_cents),
            commission=cents_to_dollars(row.result.commission_cents),
        )
        for row in statement.rows
    ]
    totals = CommissionTotals(
        gross_cents=statement.total_gross_cents,
        commission_cents=statement.total_commission_cents,
        gross=cents_to_dollars(statement.total_gross_cents),
        commission=cents_to_dollars(statement.total_commission_cents),
    )
    compute_ms = (time.perf_counter() - start_time) * 1000
    _log_report(request, "commissions", payload, rows=len(rows), compute_ms=compute_ms)
    return CommissionReportResponse(
        meta=_build_meta(request, payload, prepared, compute_ms),
        totals=totals,
        rows=rows,
    )


@router.post("/vendops/reports/roi", response_model=RoiReportResponse, responses=ERROR_RESPONSES)
def report_roi(request: Request, payload: RoiReportRequest):
    start_time = time.perf_counter()
    prepared = _prepare(request, payload)
    policies = policies_by_location(parse_policies(payload.locations), prepared.period.start_date)
    roi_rows = build_roi_rows(
        machine_aggregates=aggregate_by_machine(prepared.sales, prepared.fee_table.fee_for),
        machine_locations=prepared.machine_locations,
        policies=policies,
        finance=finance_by_machine(payload.finance),
        months_factor=prepared.months_factor,
        group_by=payload.group_by,
        band=Decimal(str(settings.ROI_BREAK_EVEN_BAND_PERCENT)),
    )
    ranked = rank_worst_first(roi_rows)

    average_roi = (
        (sum((row.roi_percent for row in ranked), ZERO) / len(ranked)).quantize(CENT) if ranked else ZERO
    )
    totals = RoiTotals(
        net_revenue_cents=sum(row.net_revenue_cents for row in ranked),
        commission_cents=sum(row.commission_cents for row in ranked),
        owner_net_cents=sum(row.owner_net_cents for row in ranked),
        investment_cents=sum(row.investment_cents for row in ranked),
        average_roi_percent=average_roi,
    )
    compute_ms = (time.perf_counter() - start_time) * 1000
    _log_report(request, "roi", payload, rows=len(ranked), compute_ms=compute_ms)
    return RoiReportResponse(
        meta=_build_meta(request, payload, prepared, compute_ms),
        group_by=payload.group_by,
        totals=totals,
        rows=[_roi_row_out(row) for row in ranked],
    )
