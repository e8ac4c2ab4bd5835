"""Money representation and the fail-open coercion policy.

Records carry money as integer cents. Rates are ``Decimal`` percentages or
integer basis points. Anything arriving from the data-access layer goes
through ``parse_or_default``: absent values (``None`` or ``""``) silently
take the default, present-but-invalid values take the default and are
counted in ``ingest_coerced_fields_total``.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, TypeVar

from app.vendops.core.logging import log_json
from app.vendops.core.metrics import metrics

logger = logging.getLogger("vendops.ingest")

T = TypeVar("T")

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")
BPS_DIVISOR = Decimal("10000")


def record_coercion(field: str | None, value: Any) -> None:
    name = field or "unknown"
    metrics.increment_coerced_field(name)
    log_json(
        logger,
        {"event": "ingest_field_coerced", "field": name, "value": repr(value)[:80]},
        level=logging.DEBUG,
    )


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        result = Decimal(str(value).strip())
    else:
        raise TypeError(f"unsupported numeric type {type(value).__name__}")
    if not result.is_finite():
        raise ValueError("non-finite number")
    return result


def parse_or_default(value: Any, parser: Callable[[Any], T], default: T, *, field: str | None = None) -> T:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        return parser(value)
    except (ValueError, TypeError, InvalidOperation, ArithmeticError):
        record_coercion(field, value)
        return default


def parse_decimal(value: Any, default: Decimal = ZERO, *, field: str | None = None) -> Decimal:
    return parse_or_default(value, _to_decimal, default, field=field)


def parse_int(value: Any, default: int = 0, *, field: str | None = None) -> int:
    return parse_or_default(value, lambda raw: round_half_up(_to_decimal(raw)), default, field=field)


def parse_cents(value: Any, default: int = 0, *, field: str | None = None) -> int:
    return parse_int(value, default, field=field)


def parse_dollars_as_cents(value: Any, default: int = 0, *, field: str | None = None) -> int:
    return parse_or_default(value, lambda raw: round_half_up(_to_decimal(raw) * HUNDRED), default, field=field)


def parse_percent_as_bps(value: Any, default: int = 0, *, field: str | None = None) -> int:
    return parse_or_default(value, lambda raw: round_half_up(_to_decimal(raw) * HUNDRED), default, field=field)


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_dollars(cents: int | Decimal) -> Decimal:
    return (Decimal(cents) / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def dollars_to_cents(amount: Decimal | int | str) -> int:
    return round_half_up(Decimal(str(amount)) * HUNDRED)


def percent_of(amount_cents: int | Decimal, rate_percent: Decimal) -> Decimal:
    return Decimal(amount_cents) * rate_percent / HUNDRED


def ratio_percent(numerator: int | Decimal, denominator: int | Decimal) -> Decimal:
    if not denominator:
        return ZERO
    return (Decimal(numerator) / Decimal(denominator) * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)
