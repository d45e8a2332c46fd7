import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from stockledger.core.errors import ValidationError
from stockledger.core.quantities import ZERO_QTY
from stockledger.services.replay import StockEvent, read_item_snapshot, rewind


@dataclass(frozen=True)
class PeriodSummary:
    item_id: str
    window_start: date
    window_end: date
    opening_quantity: Decimal
    received: Decimal
    dispatched: Decimal
    adjusted: Decimal
    closing_quantity: Decimal
    receipt_count: int
    dispatch_count: int
    adjustment_count: int


def month_window(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12", details={"month": month})
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def _validate_window(window_start: date, window_end: date) -> None:
    if window_end < window_start:
        raise ValidationError(
            "window_end cannot be before window_start",
            details={"window_start": window_start.isoformat(), "window_end": window_end.isoformat()},
        )


def opening_quantity(db: Session, item_id: str, window_start: date, window_end: date) -> Decimal:
    """
    Quantity on hand immediately before window_start.

    Every event dated on or after window_start is reversed, including events
    after window_end, so any past window reconstructs exactly.
    """
    _validate_window(window_start, window_end)
    snapshot = read_item_snapshot(db, item_id, since=window_start)
    return rewind(snapshot.current_quantity, snapshot.events)


def _sum_quantities(events: list[StockEvent]) -> Decimal:
    return sum((event.quantity for event in events), ZERO_QTY)


def period_summary(db: Session, item_id: str, window_start: date, window_end: date) -> PeriodSummary:
    _validate_window(window_start, window_end)
    snapshot = read_item_snapshot(db, item_id, since=window_start)
    opening = rewind(snapshot.current_quantity, snapshot.events)

    in_window = [event for event in snapshot.events if event.movement_date <= window_end]
    receipts = [event for event in in_window if event.kind == "receipt"]
    dispatches = [event for event in in_window if event.kind == "dispatch"]
    adjustments = [event for event in in_window if event.kind == "adjustment"]

    received = _sum_quantities(receipts)
    dispatched = _sum_quantities(dispatches)
    adjusted = sum((event.effect for event in adjustments), ZERO_QTY)

    return PeriodSummary(
        item_id=item_id,
        window_start=window_start,
        window_end=window_end,
        opening_quantity=opening,
        received=received,
        dispatched=dispatched,
        adjusted=adjusted,
        closing_quantity=opening + received - dispatched + adjusted,
        receipt_count=len(receipts),
        dispatch_count=len(dispatches),
        adjustment_count=len(adjustments),
    )
