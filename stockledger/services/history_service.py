from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from stockledger.core.config import settings
from stockledger.core.errors import ValidationError
from stockledger.core.quantities import ZERO_QTY
from stockledger.models.item import Item
from stockledger.services.replay import ItemSnapshot, StockEvent, read_item_snapshot, running_balances


@dataclass(frozen=True)
class HistoryEntry:
    event: StockEvent
    balance_after: Decimal


@dataclass(frozen=True)
class ItemHistory:
    """
    One page of history. matched_count and the totals cover every entry
    inside the date filter, including those cut off by the limit.
    """

    item: Item
    current_quantity: Decimal
    entries: list[HistoryEntry]
    matched_count: int
    total_received: Decimal
    total_dispatched: Decimal
    total_adjusted: Decimal


def _kind_total(entries: list[HistoryEntry], kind: str, *, signed: bool = False) -> Decimal:
    return sum(
        (entry.event.effect if signed else entry.event.quantity for entry in entries if entry.event.kind == kind),
        ZERO_QTY,
    )


def _entries_newest_first(
    snapshot: ItemSnapshot,
    *,
    start_date: date | None,
    end_date: date | None,
) -> Iterator[HistoryEntry]:
    # Balances come from the full event list; date filters apply afterwards.
    for event, balance in reversed(running_balances(snapshot.current_quantity, snapshot.events)):
        if end_date is not None and event.movement_date > end_date:
            continue
        if start_date is not None and event.movement_date < start_date:
            break
        yield HistoryEntry(event=event, balance_after=balance)


def iter_history(
    db: Session,
    item_id: str,
    *,
    start_date: date | None = None,
    end_date: date | None = None,
) -> Iterator[HistoryEntry]:
    """
    Newest-first history entries with absolute running balances.

    Nothing is read until the first entry is requested; each call performs
    one fresh snapshot read, so the sequence can be restarted by calling again.
    """
    snapshot = read_item_snapshot(db, item_id)
    yield from _entries_newest_first(snapshot, start_date=start_date, end_date=end_date)


def _resolve_limit(limit: int | None) -> int:
    if limit is None:
        return settings.history_default_limit
    if limit < 1 or limit > settings.history_max_limit:
        raise ValidationError(
            f"limit must be between 1 and {settings.history_max_limit}",
            details={"limit": limit},
        )
    return limit


def history(
    db: Session,
    item_id: str,
    *,
    limit: int | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> ItemHistory:
    limit = _resolve_limit(limit)
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ValidationError("end_date cannot be before start_date")

    snapshot = read_item_snapshot(db, item_id)
    matched = list(_entries_newest_first(snapshot, start_date=start_date, end_date=end_date))

    return ItemHistory(
        item=snapshot.item,
        current_quantity=snapshot.current_quantity,
        entries=matched[:limit],
        matched_count=len(matched),
        total_received=_kind_total(matched, "receipt"),
        total_dispatched=_kind_total(matched, "dispatch"),
        total_adjusted=_kind_total(matched, "adjustment", signed=True),
    )
