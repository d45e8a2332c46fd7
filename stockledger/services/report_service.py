from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Literal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockledger.core.config import settings
from stockledger.core.errors import NotFound, ValidationError
from stockledger.core.quantities import ZERO_QTY, amount_out, qty_out, to_qty
from stockledger.db.base import utc_now
from stockledger.models.counterparty import Counterparty
from stockledger.models.item import Item
from stockledger.models.movement import Dispatch, Receipt, StockAdjustment
from stockledger.services.replay import read_item_snapshot


def get_low_stock_items(db: Session) -> list[dict]:
    items = db.execute(
        select(Item)
        .where(
            Item.active.is_(True),
            Item.current_quantity <= Item.minimum_quantity,
        )
        .order_by(Item.current_quantity.asc(), Item.name.asc())
    ).scalars()
    return [
        {
            "item_id": item.id,
            "name": item.name,
            "category": item.category,
            "unit": item.unit,
            "current_quantity": qty_out(item.current_quantity),
            "minimum_quantity": qty_out(item.minimum_quantity),
        }
        for item in items
    ]


def _totals_by_item(db: Session, model, *columns) -> dict[str, tuple[Decimal, ...]]:
    item_column = model.item_id
    rows = db.execute(
        select(item_column, *(func.coalesce(func.sum(column), 0) for column in columns)).group_by(
            item_column
        )
    ).all()
    return {row[0]: tuple(to_qty(value) for value in row[1:]) for row in rows}


def get_stock_statement(db: Session, *, include_inactive: bool = False) -> dict:
    stmt = select(Item).order_by(Item.category.asc(), Item.name.asc())
    if not include_inactive:
        stmt = stmt.where(Item.active.is_(True))
    items = list(db.execute(stmt).scalars())

    received = _totals_by_item(db, Receipt, Receipt.quantity_received)
    dispatched = _totals_by_item(
        db, Dispatch, Dispatch.approved_qty, Dispatch.customer_return_qty, Dispatch.reject_qty
    )
    adjusted = _totals_by_item(db, StockAdjustment, StockAdjustment.signed_delta)

    rows: list[dict] = []
    for item in items:
        (total_received,) = received.get(item.id, (ZERO_QTY,))
        total_dispatched, total_returned, total_rejected = dispatched.get(
            item.id, (ZERO_QTY, ZERO_QTY, ZERO_QTY)
        )
        (total_adjusted,) = adjusted.get(item.id, (ZERO_QTY,))
        rows.append(
            {
                "item_id": item.id,
                "name": item.name,
                "category": item.category,
                "unit": item.unit,
                "active": item.active,
                "current_quantity": qty_out(item.current_quantity),
                "minimum_quantity": qty_out(item.minimum_quantity),
                "total_received": qty_out(total_received),
                "total_dispatched": qty_out(total_dispatched),
                "total_returned": qty_out(total_returned),
                "total_rejected": qty_out(total_rejected),
                "total_adjusted": qty_out(total_adjusted),
                "is_low_stock": item.is_low_stock,
            }
        )

    summary_keys = (
        "total_received",
        "total_dispatched",
        "total_returned",
        "total_rejected",
        "total_adjusted",
    )
    summary = {
        "total_items": len(rows),
        "total_current_quantity": qty_out(sum((to_qty(item.current_quantity) for item in items), ZERO_QTY)),
        "low_stock_items": sum(1 for row in rows if row["is_low_stock"]),
    }
    for key in summary_keys:
        summary[key] = qty_out(sum((to_qty(row[key]) for row in rows), ZERO_QTY))

    return {"summary": summary, "items": rows}


def get_reject_alerts(db: Session, *, today: date | None = None) -> dict:
    """
    Items whose customer returns plus rejects are a notable share of what
    was dispatched in the look-back window.
    """
    window_start = (today or utc_now().date()) - timedelta(days=settings.reject_alert_window_days)
    threshold = Decimal(str(settings.reject_alert_rate_threshold))

    rows = db.execute(
        select(Dispatch, Item.name, Item.category)
        .join(Item, Item.id == Dispatch.item_id)
        .where(Dispatch.movement_date >= window_start)
    ).all()

    per_item: dict[str, dict] = {}
    for dispatch, name, category in rows:
        entry = per_item.setdefault(
            dispatch.item_id,
            {
                "item_id": dispatch.item_id,
                "name": name,
                "category": category,
                "approved": ZERO_QTY,
                "returned": ZERO_QTY,
                "rejected": ZERO_QTY,
                "last_reject_date": None,
            },
        )
        entry["approved"] += to_qty(dispatch.approved_qty)
        entry["returned"] += to_qty(dispatch.customer_return_qty)
        entry["rejected"] += to_qty(dispatch.reject_qty)
        if to_qty(dispatch.reject_qty) > 0:
            last = entry["last_reject_date"]
            if last is None or dispatch.movement_date > last:
                entry["last_reject_date"] = dispatch.movement_date

    alerts: list[dict] = []
    for entry in per_item.values():
        approved = entry["approved"]
        if approved <= 0:
            continue
        rate = ((entry["returned"] + entry["rejected"]) / approved * 100).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
        if rate < threshold and entry["rejected"] <= 0:
            continue
        alerts.append(
            {
                "item_id": entry["item_id"],
                "name": entry["name"],
                "category": entry["category"],
                "total_approved": qty_out(approved),
                "total_returned": qty_out(entry["returned"]),
                "total_rejected": qty_out(entry["rejected"]),
                "rejection_rate": float(rate),
                "last_reject_date": entry["last_reject_date"],
            }
        )

    alerts.sort(key=lambda alert: (-alert["rejection_rate"], alert["name"]))
    return {"window_start": window_start, "items": alerts, "count": len(alerts)}


def verify_item_quantity(db: Session, item_id: str) -> dict:
    """Replay the whole movement log and compare with the stored quantity."""
    snapshot = read_item_snapshot(db, item_id)
    expected = sum((event.effect for event in snapshot.events), ZERO_QTY)
    difference = snapshot.current_quantity - expected
    return {
        "item_id": item_id,
        "current_quantity": qty_out(snapshot.current_quantity),
        "expected_quantity": qty_out(expected),
        "difference": qty_out(difference),
        "in_sync": difference == 0,
    }


# Movement aggregates

MovementKind = Literal["receipt", "dispatch"]

_MOVEMENT_KIND_BY_COUNTERPARTY: dict[str, MovementKind] = {
    "supplier": "receipt",
    "customer": "dispatch",
}

Aggregate = tuple[str, Any, Callable[[Any], Any]]


def _movement_model(kind: MovementKind) -> type[Receipt] | type[Dispatch]:
    return Receipt if kind == "receipt" else Dispatch


def _quantity_column(kind: MovementKind):
    # Dispatches are counted by what left the warehouse.
    return Receipt.quantity_received if kind == "receipt" else Dispatch.approved_qty


def _totals(kind: MovementKind) -> list[Aggregate]:
    model = _movement_model(kind)
    aggregates: list[Aggregate] = [
        ("total_entries", func.count(model.id), int),
        ("total_quantity", func.coalesce(func.sum(_quantity_column(kind)), 0), qty_out),
        ("total_amount", func.coalesce(func.sum(model.total_amount), 0), amount_out),
    ]
    if kind == "dispatch":
        aggregates += [
            ("total_returned", func.coalesce(func.sum(Dispatch.customer_return_qty), 0), qty_out),
            ("total_rejected", func.coalesce(func.sum(Dispatch.reject_qty), 0), qty_out),
        ]
    return aggregates


def _averages(kind: MovementKind) -> list[Aggregate]:
    model = _movement_model(kind)
    return [
        ("average_quantity", func.avg(_quantity_column(kind)), qty_out),
        ("average_amount", func.avg(model.total_amount), amount_out),
    ]


def _row_values(aggregates: list[Aggregate], values) -> dict[str, Any]:
    return {key: convert(value) for (key, _, convert), value in zip(aggregates, values)}


def _date_conditions(model, start_date: date | None, end_date: date | None) -> list:
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ValidationError("end_date cannot be before start_date")
    conditions = []
    if start_date is not None:
        conditions.append(model.movement_date >= start_date)
    if end_date is not None:
        conditions.append(model.movement_date <= end_date)
    return conditions


def _by_quantity(rows: list[dict]) -> list[dict]:
    return sorted(rows, key=lambda row: (-row["total_quantity"], row["name"]))


def movement_summary(
    db: Session,
    kind: MovementKind,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    """
    Totals for receipts or dispatches in a date range, overall and for the
    top counterparties and items by quantity.
    """
    model = _movement_model(kind)
    conditions = _date_conditions(model, start_date, end_date)
    totals = _totals(kind)
    top = settings.report_top_n

    overall = db.execute(
        select(*(column for _, column, _ in totals + _averages(kind)))
        .select_from(model)
        .where(*conditions)
    ).one()

    counterparty_rows = db.execute(
        select(Counterparty.id, Counterparty.name, *(column for _, column, _ in totals))
        .select_from(model)
        .join(Counterparty, Counterparty.id == model.counterparty_id)
        .where(*conditions)
        .group_by(Counterparty.id, Counterparty.name)
    ).all()

    item_rows = db.execute(
        select(Item.id, Item.name, Item.category, *(column for _, column, _ in totals))
        .select_from(model)
        .join(Item, Item.id == model.item_id)
        .where(*conditions)
        .group_by(Item.id, Item.name, Item.category)
    ).all()

    by_counterparty = [
        {"counterparty_id": row[0], "name": row[1], **_row_values(totals, row[2:])}
        for row in counterparty_rows
    ]
    by_item = [
        {"item_id": row[0], "name": row[1], "category": row[2], **_row_values(totals, row[3:])}
        for row in item_rows
    ]
    return {
        "kind": kind,
        "start_date": start_date,
        "end_date": end_date,
        "summary": _row_values(totals + _averages(kind), overall),
        "by_counterparty": _by_quantity(by_counterparty)[:top],
        "by_item": _by_quantity(by_item)[:top],
    }


def _rejection_rate(row: dict) -> float:
    approved = Decimal(str(row["total_quantity"]))
    if approved <= 0:
        return 0.0
    returned = Decimal(str(row["total_returned"])) + Decimal(str(row["total_rejected"]))
    return float((returned / approved * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def counterparty_performance(
    db: Session,
    counterparty_kind: Literal["supplier", "customer"],
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> list[dict]:
    kind = _MOVEMENT_KIND_BY_COUNTERPARTY[counterparty_kind]
    model = _movement_model(kind)
    aggregates = _totals(kind) + _averages(kind) + [
        ("first_movement", func.min(model.movement_date), lambda value: value),
        ("last_movement", func.max(model.movement_date), lambda value: value),
    ]
    rows = db.execute(
        select(
            Counterparty.id,
            Counterparty.name,
            Counterparty.contact_person,
            Counterparty.email,
            Counterparty.phone,
            *(column for _, column, _ in aggregates),
        )
        .select_from(model)
        .join(Counterparty, Counterparty.id == model.counterparty_id)
        .where(*_date_conditions(model, start_date, end_date))
        .group_by(
            Counterparty.id,
            Counterparty.name,
            Counterparty.contact_person,
            Counterparty.email,
            Counterparty.phone,
        )
    ).all()

    performance: list[dict] = []
    for row in rows:
        entry = {
            "counterparty_id": row[0],
            "name": row[1],
            "contact_person": row[2],
            "email": row[3],
            "phone": row[4],
            **_row_values(aggregates, row[5:]),
        }
        entry["rejection_rate"] = _rejection_rate(entry) if kind == "dispatch" else None
        performance.append(entry)

    performance.sort(key=lambda entry: (-entry["total_amount"], -entry["total_quantity"], entry["name"]))
    return performance


def counterparty_stats(db: Session, counterparty_id: str) -> dict:
    counterparty = db.get(Counterparty, counterparty_id)
    if counterparty is None:
        raise NotFound("Counterparty not found", details={"id": counterparty_id})

    kind = _MOVEMENT_KIND_BY_COUNTERPARTY[counterparty.kind]
    model = _movement_model(kind)
    totals = _totals(kind)
    statistics = db.execute(
        select(*(column for _, column, _ in totals), func.max(model.movement_date))
        .select_from(model)
        .where(model.counterparty_id == counterparty.id)
    ).one()

    item_rows = db.execute(
        select(Item.id, Item.name, Item.category, *(column for _, column, _ in totals))
        .select_from(model)
        .join(Item, Item.id == model.item_id)
        .where(model.counterparty_id == counterparty.id)
        .group_by(Item.id, Item.name, Item.category)
    ).all()
    top_items = [
        {"item_id": row[0], "name": row[1], "category": row[2], **_row_values(totals, row[3:])}
        for row in item_rows
    ]

    return {
        "counterparty": {"id": counterparty.id, "name": counterparty.name, "kind": counterparty.kind},
        "statistics": {**_row_values(totals, statistics[:-1]), "last_movement": statistics[-1]},
        "top_items": _by_quantity(top_items)[: settings.report_top_n],
    }


def _resolve_recent_limit(limit: int | None) -> int:
    if limit is None:
        return settings.recent_movements_default_limit
    if limit < 1 or limit > settings.recent_movements_max_limit:
        raise ValidationError(
            f"limit must be between 1 and {settings.recent_movements_max_limit}",
            details={"limit": limit},
        )
    return limit


def recent_movements(db: Session, *, limit: int | None = None) -> list[dict]:
    """Latest receipts and dispatches across all items, most recently recorded first."""
    limit = _resolve_recent_limit(limit)

    movements: list[dict] = []
    for kind in ("receipt", "dispatch"):
        model = _movement_model(kind)
        rows = db.execute(
            select(model, Item.name, Counterparty.name)
            .join(Item, Item.id == model.item_id)
            .join(Counterparty, Counterparty.id == model.counterparty_id)
            .order_by(model.created_at.desc(), model.id.desc())
            .limit(limit)
        ).all()
        for record, item_name, counterparty_name in rows:
            quantity = record.quantity_received if kind == "receipt" else record.approved_qty
            movements.append(
                {
                    "id": record.id,
                    "type": kind,
                    "date": record.movement_date,
                    "recorded_at": record.created_at,
                    "document_no": record.document_no,
                    "quantity": qty_out(quantity),
                    "total_amount": amount_out(record.total_amount),
                    "item_id": record.item_id,
                    "item_name": item_name,
                    "counterparty_id": record.counterparty_id,
                    "counterparty_name": counterparty_name,
                }
            )

    movements.sort(key=lambda movement: (movement["recorded_at"], movement["id"]), reverse=True)
    return movements[:limit]
