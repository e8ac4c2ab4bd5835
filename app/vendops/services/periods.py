from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.vendops.core.config import settings
from app.vendops.core.error_catalog import AppError, ErrorCatalog


@dataclass(frozen=True)
class ReportPeriod:
    start_local: datetime
    end_local: datetime
    timezone_name: str

    @property
    def start_date(self) -> date:
        return self.start_local.date()

    @property
    def end_date(self) -> date:
        return self.end_local.date()

    @property
    def start_utc(self) -> datetime:
        return self.start_local.astimezone(timezone.utc)

    @property
    def end_utc(self) -> datetime:
        return self.end_local.astimezone(timezone.utc)

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def months_factor(self, days_per_month: int | None = None) -> Decimal:
        return months_factor_for_days(self.days, days_per_month)

    def contains(self, moment: datetime) -> bool:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return self.start_local <= moment <= self.end_local


def months_factor_for_days(days: int, days_per_month: int | None = None) -> Decimal:
    per_month = days_per_month or settings.DAYS_PER_MONTH
    if days <= 0 or per_month <= 0:
        return Decimal("0")
    return Decimal(days) / Decimal(per_month)


def resolve_timezone(timezone_name: str | None) -> ZoneInfo | timezone:
    tz_name = timezone_name or settings.DEFAULT_TIMEZONE
    if tz_name in ("UTC", "Z", "Etc/UTC"):
        return timezone.utc
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "invalid timezone"}) from exc


def last_full_month(today: date) -> tuple[date, date]:
    first_of_this_month = today.replace(day=1)
    end = first_of_this_month - timedelta(days=1)
    return end.replace(day=1), end


def _parse_datetime_or_date(value: str | None, tz, *, default: datetime) -> tuple[datetime, bool]:
    if not value:
        return default, False
    normalized = value.replace("Z", "+00:00")
    if "T" in normalized or ":" in normalized:
        try:
            parsed = datetime.fromisoformat(normalized)
        except ValueError as exc:
            raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "invalid datetime"}) from exc
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=tz), False
        return parsed.astimezone(tz), False
    try:
        parsed_date = date.fromisoformat(normalized)
    except ValueError as exc:
        raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "invalid date"}) from exc
    return datetime.combine(parsed_date, time.min, tzinfo=tz), True


def resolve_period(
    from_value: str | None,
    to_value: str | None,
    tz,
    *,
    now: datetime | None = None,
) -> ReportPeriod:
    now_local = (now or datetime.now(timezone.utc)).astimezone(tz)
    if not from_value and not to_value:
        first, last = last_full_month(now_local.date())
        from_value, to_value = first.isoformat(), last.isoformat()

    start_local, _ = _parse_datetime_or_date(
        from_value, tz, default=now_local.replace(hour=0, minute=0, second=0, microsecond=0)
    )
    end_local, to_is_date = _parse_datetime_or_date(to_value, tz, default=now_local)
    if to_is_date:
        end_local = end_local + timedelta(days=1) - timedelta(microseconds=1)
    if end_local < start_local:
        raise AppError(ErrorCatalog.VALIDATION_ERROR, details={"message": "to must be after from"})
    return ReportPeriod(start_local=start_local, end_local=end_local, timezone_name=str(tz))


def validate_period(period: ReportPeriod, *, max_days: int) -> None:
    if max_days <= 0:
        return
    if period.days > max_days:
        raise AppError(
            ErrorCatalog.VALIDATION_ERROR,
            details={
                "message": "date range exceeds limit",
                "reason_code": "REPORT_DATE_RANGE_LIMIT_EXCEEDED",
                "max_days": max_days,
            },
        )
