from decimal import Decimal

from app.vendops.core.metrics import metrics
from app.vendops.core.money import (
    cents_to_dollars,
    dollars_to_cents,
    parse_cents,
    parse_decimal,
    parse_dollars_as_cents,
    parse_int,
    parse_percent_as_bps,
    ratio_percent,
)


def _coerced(field: str) -> float | None:
    return metrics.sample("ingest_coerced_fields_total", {"field": field})


def test_absent_values_default_without_counting():
    assert parse_cents(None, field="sale.unit_price_cents") == 0
    assert parse_cents("", field="sale.unit_price_cents") == 0
    assert parse_decimal("   ", field="policy.commission_rate") == Decimal("0")
    assert _coerced("sale.unit_price_cents") is None


def test_invalid_values_default_and_are_counted():
    assert parse_cents("abc", field="sale.unit_price_cents") == 0
    assert parse_decimal("NaN", field="policy.commission_rate") == Decimal("0")
    assert parse_int(float("inf"), field="sale.qty") == 0
    assert parse_int(True, field="sale.qty") == 0
    assert parse_int({"qty": 2}, field="sale.qty") == 0
    assert _coerced("sale.unit_price_cents") == 1.0
    assert _coerced("policy.commission_rate") == 1.0
    assert _coerced("sale.qty") == 3.0


def test_valid_numeric_strings_are_parsed():
    assert parse_cents("250") == 250
    assert parse_cents(" 99.5 ") == 100
    assert parse_int("-3") == -3
    assert parse_decimal("12.5") == Decimal("12.5")


def test_custom_default_is_returned_for_invalid_input():
    assert parse_int("oops", 7) == 7


def test_dollar_and_percent_conversions_round_half_up():
    assert parse_dollars_as_cents("1.005") == 101
    assert parse_dollars_as_cents(0.10) == 10
    assert parse_percent_as_bps(2.9) == 290
    assert dollars_to_cents("116.40") == 11640
    assert cents_to_dollars(11640) == Decimal("116.40")
    assert cents_to_dollars(-9) == Decimal("-0.09")


def test_ratio_percent_is_zero_for_zero_denominator():
    assert ratio_percent(50, 0) == Decimal("0")
    assert ratio_percent(1, 3) == Decimal("33.33")
