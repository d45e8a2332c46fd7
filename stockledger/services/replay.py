"""
Shared replay primitive for the movement log.

Both the period reconstructor and the history assembler walk an item's
events backward from its current quantity. They do it through ``rewind``
and ``running_balances`` here so the two reports can never disagree.
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Literal

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.core.config import settings
from stockledger.core.errors import ConcurrencyConflict, NotFound
from stockledger.core.quantities import ZERO_QTY, to_qty
from stockledger.models.counterparty import Counterparty
from stockledger.models.item import Item
from stockledger.models.movement import Dispatch, Receipt, StockAdjustment

logger = logging.getLogger("stockledger.replay")

EventKind = Literal["receipt", "dispatch", "adjustment"]


@dataclass(frozen=True)
class StockEvent:
    id: str
    kind: EventKind
    movement_date: date
    recorded_at: datetime
    quantity: Decimal
    effect: Decimal
    document_no: str | None = None
    counterparty: str | None = None
    note: str | None = None
    details: dict[str, Any] | None = None

    @property
    def sort_key(self) -> tuple[date, datetime, str]:
        return (self.movement_date, self.recorded_at, self.id)


@dataclass(frozen=True)
class ItemSnapshot:
    item: Item
    current_quantity: Decimal
    version: int
    events: list[StockEvent]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def load_item_events(db: Session, item_id: str, *, since: date | None = None) -> list[StockEvent]:
    """All stock-affecting events for an item, oldest first by (date, created_at)."""
    receipts = select(Receipt, Counterparty.name).join(
        Counterparty, Counterparty.id == Receipt.counterparty_id
    ).where(Receipt.item_id == item_id)
    dispatches = select(Dispatch, Counterparty.name).join(
        Counterparty, Counterparty.id == Dispatch.counterparty_id
    ).where(Dispatch.item_id == item_id)
    adjustments = select(StockAdjustment).where(StockAdjustment.item_id == item_id)

    if since is not None:
        receipts = receipts.where(Receipt.movement_date >= since)
        dispatches = dispatches.where(Dispatch.movement_date >= since)
        adjustments = adjustments.where(StockAdjustment.movement_date >= since)

    events: list[StockEvent] = []
    for receipt, supplier_name in db.execute(receipts).all():
        quantity = to_qty(receipt.quantity_received)
        events.append(
            StockEvent(
                id=receipt.id,
                kind="receipt",
                movement_date=receipt.movement_date,
                recorded_at=_as_utc(receipt.created_at),
                quantity=quantity,
                effect=quantity,
                document_no=receipt.document_no,
                counterparty=supplier_name,
                note=receipt.remarks,
            )
        )

    for dispatch, customer_name in db.execute(dispatches).all():
        approved = to_qty(dispatch.approved_qty)
        events.append(
            StockEvent(
                id=dispatch.id,
                kind="dispatch",
                movement_date=dispatch.movement_date,
                recorded_at=_as_utc(dispatch.created_at),
                quantity=approved,
                effect=-approved,
                document_no=dispatch.document_no,
                counterparty=customer_name,
                note=dispatch.remarks,
                details={
                    "approved_qty": float(approved),
                    "return_qty": float(to_qty(dispatch.customer_return_qty)),
                    "reject_qty": float(to_qty(dispatch.reject_qty)),
                    "retained_qty": float(to_qty(dispatch.retained_qty)),
                    "total_qty": float(to_qty(dispatch.total_qty)),
                },
            )
        )

    for adjustment in db.execute(adjustments).scalars():
        delta = to_qty(adjustment.signed_delta)
        events.append(
            StockEvent(
                id=adjustment.id,
                kind="adjustment",
                movement_date=adjustment.movement_date,
                recorded_at=_as_utc(adjustment.created_at),
                quantity=abs(delta),
                effect=delta,
                note=adjustment.reason,
            )
        )

    events.sort(key=lambda event: event.sort_key)
    return events


def rewind(current_quantity: Decimal, events: list[StockEvent]) -> Decimal:
    """Quantity on hand before the given events happened."""
    return to_qty(current_quantity) - sum((event.effect for event in events), ZERO_QTY)


def running_balances(
    current_quantity: Decimal, events: list[StockEvent]
) -> list[tuple[StockEvent, Decimal]]:
    """
    Pair each event (oldest first) with the absolute quantity right after it.

    events must be the item's complete list, or every event since some cutoff,
    for the balances to be absolute.
    """
    balance = rewind(current_quantity, events)
    balances: list[tuple[StockEvent, Decimal]] = []
    for event in events:
        balance += event.effect
        balances.append((event, balance))
    return balances


def read_item_snapshot(db: Session, item_id: str, *, since: date | None = None) -> ItemSnapshot:
    """
    Read the item and its events as one consistent view.

    Every stock write bumps Item.version, so an unchanged version after the
    event query means no writer landed in between.
    """
    max_attempts = settings.snapshot_read_max_attempts
    for attempt in range(1, max_attempts + 1):
        item = db.execute(
            select(Item).where(Item.id == item_id).execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None:
            raise NotFound("Item not found", details={"item_id": item_id})

        version = item.version
        current_quantity = to_qty(item.current_quantity)
        events = load_item_events(db, item_id, since=since)
        latest_version = db.execute(select(Item.version).where(Item.id == item_id)).scalar_one()
        if latest_version == version:
            return ItemSnapshot(
                item=item,
                current_quantity=current_quantity,
                version=version,
                events=events,
            )

        logger.warning(
            json.dumps(
                {
                    "event": "snapshot_read_retry",
                    "item_id": item_id,
                    "attempt": attempt,
                    "read_version": version,
                    "latest_version": latest_version,
                }
            )
        )
        db.rollback()

    raise ConcurrencyConflict(
        "Item changed while its history was being read, please retry",
        details={"item_id": item_id},
    )
