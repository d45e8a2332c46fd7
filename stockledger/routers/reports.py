from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_db
from stockledger.schemas.report import (
    CounterpartyPerformanceListOut,
    CounterpartyPerformanceOut,
    LowStockItemOut,
    LowStockListOut,
    MovementSummaryOut,
    RecentMovementListOut,
    RecentMovementOut,
    RejectAlertListOut,
    StockStatementOut,
)
from stockledger.services import report_service

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get(
    "/low-stock",
    response_model=LowStockListOut,
    summary="Active items at or below their minimum quantity",
    responses=error_responses(500),
)
def low_stock(db: Session = Depends(get_db)):
    items = [LowStockItemOut(**row) for row in report_service.get_low_stock_items(db)]
    return LowStockListOut(items=items, count=len(items))


@router.get(
    "/stock-statement",
    response_model=StockStatementOut,
    summary="Per-item movement totals with an overall summary",
    responses=error_responses(422, 500),
)
def stock_statement(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    return report_service.get_stock_statement(db, include_inactive=include_inactive)


@router.get(
    "/reject-alerts",
    response_model=RejectAlertListOut,
    summary="Items with high customer return and reject rates",
    responses=error_responses(422, 500),
)
def reject_alerts(
    as_of: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return report_service.get_reject_alerts(db, today=as_of)


@router.get(
    "/movement-summary",
    response_model=MovementSummaryOut,
    summary="Receipt or dispatch totals with top counterparties and items",
    responses=error_responses(422, 500),
)
def movement_summary(
    kind: Literal["receipt", "dispatch"] = Query(...),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return report_service.movement_summary(db, kind, start_date=start_date, end_date=end_date)


@router.get(
    "/counterparty-performance",
    response_model=CounterpartyPerformanceListOut,
    summary="Per-supplier or per-customer movement totals, highest amount first",
    responses=error_responses(422, 500),
)
def counterparty_performance(
    kind: Literal["supplier", "customer"] = Query(...),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    rows = report_service.counterparty_performance(db, kind, start_date=start_date, end_date=end_date)
    items = [CounterpartyPerformanceOut(**row) for row in rows]
    return CounterpartyPerformanceListOut(kind=kind, items=items, count=len(items))


@router.get(
    "/recent-movements",
    response_model=RecentMovementListOut,
    summary="Latest receipts and dispatches across all items",
    responses=error_responses(422, 500),
)
def recent_movements(
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
):
    items = [RecentMovementOut(**row) for row in report_service.recent_movements(db, limit=limit)]
    return RecentMovementListOut(items=items, count=len(items))
