from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_actor_id, get_db
from stockledger.core.quantities import qty_out
from stockledger.schemas.movement import StockAdjustmentCreate, StockAdjustmentListOut, StockAdjustmentOut
from stockledger.schemas.report import (
    AuditLogListOut,
    AuditLogOut,
    HistoryEntryOut,
    HistoryItemOut,
    HistoryOut,
    LedgerCheckOut,
    OpeningQuantityOut,
    PeriodSummaryOut,
    StockAdjustResultOut,
    StockLevelOut,
)
from stockledger.services import history_service, movement_service, period_service, registry_service
from stockledger.services.audit_service import list_item_audit_events
from stockledger.services.history_service import HistoryEntry
from stockledger.services.period_service import PeriodSummary
from stockledger.services.report_service import verify_item_quantity

router = APIRouter(prefix="/inventory", tags=["inventory"])


def _history_entry_out(entry: HistoryEntry) -> HistoryEntryOut:
    event = entry.event
    return HistoryEntryOut(
        id=event.id,
        type=event.kind,
        date=event.movement_date,
        recorded_at=event.recorded_at,
        document_no=event.document_no,
        counterparty=event.counterparty,
        quantity=qty_out(event.quantity),
        effect=qty_out(event.effect),
        balance_after=qty_out(entry.balance_after),
        note=event.note,
        details=event.details,
    )


def _period_summary_out(summary: PeriodSummary) -> PeriodSummaryOut:
    return PeriodSummaryOut(
        item_id=summary.item_id,
        window_start=summary.window_start,
        window_end=summary.window_end,
        opening_quantity=qty_out(summary.opening_quantity),
        received=qty_out(summary.received),
        dispatched=qty_out(summary.dispatched),
        adjusted=qty_out(summary.adjusted),
        closing_quantity=qty_out(summary.closing_quantity),
        receipt_count=summary.receipt_count,
        dispatch_count=summary.dispatch_count,
        adjustment_count=summary.adjustment_count,
    )


@router.post(
    "/adjust",
    response_model=StockAdjustResultOut,
    summary="Manual stock adjustment",
    responses=error_responses(400, 401, 409, 422, 500),
)
def adjust_stock(
    payload: StockAdjustmentCreate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    adjustment = movement_service.adjust_stock(db, payload, actor_id=actor_id)
    return StockAdjustResultOut(
        adjustment_id=adjustment.id,
        item_id=adjustment.item_id,
        previous_quantity=qty_out(adjustment.previous_quantity),
        new_quantity=qty_out(adjustment.new_quantity),
    )


@router.get(
    "/stock/{item_id}",
    response_model=StockLevelOut,
    summary="Get stock level for an item",
    responses=error_responses(404, 500),
)
def get_stock(item_id: str, db: Session = Depends(get_db)):
    item = registry_service.get_item(db, item_id)
    return StockLevelOut(
        item_id=item.id,
        current_quantity=qty_out(item.current_quantity),
        minimum_quantity=qty_out(item.minimum_quantity),
        is_low_stock=item.is_low_stock,
    )


@router.get(
    "/{item_id}/adjustments",
    response_model=StockAdjustmentListOut,
    summary="List manual adjustments for an item",
    responses=error_responses(404, 500),
)
def list_adjustments(item_id: str, db: Session = Depends(get_db)):
    registry_service.get_item(db, item_id)
    adjustments = movement_service.list_adjustments(db, item_id)
    return StockAdjustmentListOut(
        items=[
            StockAdjustmentOut(
                id=adjustment.id,
                item_id=adjustment.item_id,
                signed_delta=qty_out(adjustment.signed_delta),
                reason=adjustment.reason,
                movement_date=adjustment.movement_date,
                previous_quantity=qty_out(adjustment.previous_quantity),
                new_quantity=qty_out(adjustment.new_quantity),
                actor_id=adjustment.actor_id,
                created_at=adjustment.created_at,
            )
            for adjustment in adjustments
        ]
    )


@router.get(
    "/{item_id}/opening",
    response_model=OpeningQuantityOut,
    summary="Reconstruct the quantity on hand at the start of a window",
    responses=error_responses(404, 409, 422, 500),
)
def get_opening_quantity(
    item_id: str,
    window_start: date = Query(...),
    window_end: date = Query(...),
    db: Session = Depends(get_db),
):
    opening = period_service.opening_quantity(db, item_id, window_start, window_end)
    return OpeningQuantityOut(
        item_id=item_id,
        window_start=window_start,
        window_end=window_end,
        opening_quantity=qty_out(opening),
    )


@router.get(
    "/{item_id}/summary",
    response_model=PeriodSummaryOut,
    summary="Opening, movements and closing quantity for a window",
    responses=error_responses(404, 409, 422, 500),
)
def get_period_summary(
    item_id: str,
    window_start: date = Query(...),
    window_end: date = Query(...),
    db: Session = Depends(get_db),
):
    summary = period_service.period_summary(db, item_id, window_start, window_end)
    return _period_summary_out(summary)


@router.get(
    "/{item_id}/monthly-summary",
    response_model=PeriodSummaryOut,
    summary="Period summary for a calendar month",
    responses=error_responses(404, 409, 422, 500),
)
def get_monthly_summary(
    item_id: str,
    year: int = Query(..., ge=1900, le=9999),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
):
    window_start, window_end = period_service.month_window(year, month)
    summary = period_service.period_summary(db, item_id, window_start, window_end)
    return _period_summary_out(summary)


@router.get(
    "/{item_id}/history",
    response_model=HistoryOut,
    summary="Chronological movements with running balances, newest first",
    responses=error_responses(404, 409, 422, 500),
)
def get_history(
    item_id: str,
    limit: int | None = Query(default=None, ge=1),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    result = history_service.history(
        db, item_id, limit=limit, start_date=start_date, end_date=end_date
    )
    return HistoryOut(
        item=HistoryItemOut(
            id=result.item.id,
            name=result.item.name,
            unit=result.item.unit,
            current_quantity=qty_out(result.current_quantity),
        ),
        transactions=[_history_entry_out(entry) for entry in result.entries],
        count=len(result.entries),
        total_count=result.matched_count,
        total_received=qty_out(result.total_received),
        total_dispatched=qty_out(result.total_dispatched),
        total_adjusted=qty_out(result.total_adjusted),
    )


@router.get(
    "/{item_id}/verify",
    response_model=LedgerCheckOut,
    summary="Compare stored quantity with the replayed movement log",
    responses=error_responses(404, 409, 500),
)
def verify_quantity(item_id: str, db: Session = Depends(get_db)):
    return LedgerCheckOut(**verify_item_quantity(db, item_id))


@router.get(
    "/{item_id}/audit",
    response_model=AuditLogListOut,
    summary="Audit trail for an item",
    responses=error_responses(422, 500),
)
def list_item_audit(
    item_id: str,
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    events = list_item_audit_events(db, item_id, limit=limit)
    return AuditLogListOut(
        items=[
            AuditLogOut(
                id=event.id,
                actor_id=event.actor_id,
                action=event.action,
                target_type=event.target_type,
                target_id=event.target_id,
                metadata_json=event.metadata_json,
                created_at=event.created_at,
            )
            for event in events
        ]
    )
