from datetime import datetime, timezone

from app.vendops.domain.models import RevenueAggregate, Sale


def sale(
    machine_id: str,
    qty: int,
    price_cents: int,
    cost_cents: int = 0,
    *,
    at: datetime | None = None,
    payment_method: str | None = None,
    location_id: str | None = None,
) -> Sale:
    return Sale(
        machine_id=machine_id,
        occurred_at=at or datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc),
        quantity=qty,
        unit_price_cents=price_cents,
        unit_cost_cents=cost_cents,
        payment_method=payment_method,
        location_id=location_id,
    )


def aggregate(entity_id: str = "LOC-1", *, gross: int = 0, fees: int = 0, cogs: int = 0) -> RevenueAggregate:
    return RevenueAggregate(entity_id=entity_id, gross_cents=gross, fees_cents=fees, cogs_cents=cogs)


def sale_row(machine_id: str, qty, price_cents, cost_cents=None, *, occurred_at="2024-03-10T12:00:00Z", **extra) -> dict:
    row = {
        "machine_id": machine_id,
        "occurred_at": occurred_at,
        "qty": qty,
        "unit_price_cents": price_cents,
        "unit_cost_cents": cost_cents,
    }
    row.update(extra)
    return row


def report_payload(**overrides) -> dict:
    payload = {
        "from": "2024-03-01",
        "to": "2024-03-31",
        "timezone": "UTC",
        "months_factor": 1,
        "org_id": "org-1",
        "machines": [
            {"id": "M-1", "location_id": "LOC-A"},
            {"id": "M-2", "location_id": "LOC-A"},
            {"id": "M-3", "location_id": "LOC-B"},
        ],
        "sales": [
            sale_row("M-1", 4, 250, 100),
            sale_row("M-2", 2, 300, 120),
            sale_row("M-3", 10, 150, 50),
            sale_row("M-3", 5, 150, 50, occurred_at="2024-04-02T09:00:00Z"),
        ],
    }
    payload.update(overrides)
    return payload
