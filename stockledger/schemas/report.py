from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel


class StockLevelOut(BaseModel):
    item_id: str
    current_quantity: float
    minimum_quantity: float
    is_low_stock: bool


class StockAdjustResultOut(BaseModel):
    adjustment_id: str
    item_id: str
    previous_quantity: float
    new_quantity: float


class OpeningQuantityOut(BaseModel):
    item_id: str
    window_start: date
    window_end: date
    opening_quantity: float


class HistoryEntryOut(BaseModel):
    id: str
    type: Literal["receipt", "dispatch", "adjustment"]
    date: date
    recorded_at: datetime
    document_no: str | None = None
    counterparty: str | None = None
    quantity: float
    effect: float
    balance_after: float
    note: str | None = None
    details: dict[str, float] | None = None


class HistoryItemOut(BaseModel):
    id: str
    name: str
    unit: str
    current_quantity: float


class HistoryOut(BaseModel):
    item: HistoryItemOut
    transactions: list[HistoryEntryOut]
    count: int
    total_count: int
    total_received: float
    total_dispatched: float
    total_adjusted: float


class PeriodSummaryOut(BaseModel):
    item_id: str
    window_start: date
    window_end: date
    opening_quantity: float
    received: float
    dispatched: float
    adjusted: float
    closing_quantity: float
    receipt_count: int
    dispatch_count: int
    adjustment_count: int


class LedgerCheckOut(BaseModel):
    item_id: str
    current_quantity: float
    expected_quantity: float
    difference: float
    in_sync: bool


class LowStockItemOut(BaseModel):
    item_id: str
    name: str
    category: str
    unit: str
    current_quantity: float
    minimum_quantity: float


class LowStockListOut(BaseModel):
    items: list[LowStockItemOut]
    count: int


class StockStatementRowOut(BaseModel):
    item_id: str
    name: str
    category: str
    unit: str
    active: bool
    current_quantity: float
    minimum_quantity: float
    total_received: float
    total_dispatched: float
    total_returned: float
    total_rejected: float
    total_adjusted: float
    is_low_stock: bool


class StockStatementSummaryOut(BaseModel):
    total_items: int
    total_current_quantity: float
    total_received: float
    total_dispatched: float
    total_returned: float
    total_rejected: float
    total_adjusted: float
    low_stock_items: int


class StockStatementOut(BaseModel):
    summary: StockStatementSummaryOut
    items: list[StockStatementRowOut]


class RejectAlertOut(BaseModel):
    item_id: str
    name: str
    category: str
    total_approved: float
    total_returned: float
    total_rejected: float
    rejection_rate: float
    last_reject_date: date | None = None


class RejectAlertListOut(BaseModel):
    window_start: date
    items: list[RejectAlertOut]
    count: int


class AuditLogOut(BaseModel):
    id: str
    actor_id: str
    action: str
    target_type: str
    target_id: str | None = None
    metadata_json: dict[str, Any] | None = None
    created_at: datetime


class AuditLogListOut(BaseModel):
    items: list[AuditLogOut]


class MovementTotalsOut(BaseModel):
    total_entries: int
    total_quantity: float
    total_amount: float
    total_returned: float | None = None
    total_rejected: float | None = None


class MovementSummaryTotalsOut(MovementTotalsOut):
    average_quantity: float
    average_amount: float | None = None


class CounterpartyMovementTotalsOut(MovementTotalsOut):
    counterparty_id: str
    name: str


class ItemMovementTotalsOut(MovementTotalsOut):
    item_id: str
    name: str
    category: str


class MovementSummaryOut(BaseModel):
    kind: Literal["receipt", "dispatch"]
    start_date: date | None = None
    end_date: date | None = None
    summary: MovementSummaryTotalsOut
    by_counterparty: list[CounterpartyMovementTotalsOut]
    by_item: list[ItemMovementTotalsOut]


class CounterpartyPerformanceOut(MovementSummaryTotalsOut):
    counterparty_id: str
    name: str
    contact_person: str | None = None
    email: str | None = None
    phone: str | None = None
    first_movement: date | None = None
    last_movement: date | None = None
    rejection_rate: float | None = None


class CounterpartyPerformanceListOut(BaseModel):
    kind: Literal["supplier", "customer"]
    items: list[CounterpartyPerformanceOut]
    count: int


class CounterpartyRefOut(BaseModel):
    id: str
    name: str
    kind: str


class CounterpartyStatisticsOut(MovementTotalsOut):
    last_movement: date | None = None


class CounterpartyStatsOut(BaseModel):
    counterparty: CounterpartyRefOut
    statistics: CounterpartyStatisticsOut
    top_items: list[ItemMovementTotalsOut]


class RecentMovementOut(BaseModel):
    id: str
    type: Literal["receipt", "dispatch"]
    date: date
    recorded_at: datetime
    document_no: str
    quantity: float
    total_amount: float | None = None
    item_id: str
    item_name: str
    counterparty_id: str
    counterparty_name: str


class RecentMovementListOut(BaseModel):
    items: list[RecentMovementOut]
    count: int
