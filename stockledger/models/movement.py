from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base, utc_now


class Receipt(Base):
    """Goods in from a supplier. Adds quantity_received to the item."""
    __tablename__ = "stock_receipts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), index=True)
    counterparty_id: Mapped[str] = mapped_column(String(36), ForeignKey("counterparties.id"), index=True)
    document_no: Mapped[str] = mapped_column(String(50), nullable=False)
    movement_date: Mapped[date] = mapped_column(Date, nullable=False)

    quantity_received: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    total_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("counterparty_id", "document_no", name="ux_stock_receipts_counterparty_document"),
        CheckConstraint("quantity_received > 0", name="ck_stock_receipts_quantity_positive"),
        Index("ix_stock_receipts_item_date_created_at", "item_id", "movement_date", "created_at"),
    )


class Dispatch(Base):
    """
    Goods out to a customer. Only approved_qty leaves the warehouse;
    customer_return_qty and reject_qty classify part of it, retained_qty is
    the on-hand snapshot that stayed behind.
    """
    __tablename__ = "stock_dispatches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), index=True)
    counterparty_id: Mapped[str] = mapped_column(String(36), ForeignKey("counterparties.id"), index=True)
    document_no: Mapped[str] = mapped_column(String(50), nullable=False)
    movement_date: Mapped[date] = mapped_column(Date, nullable=False)

    approved_qty: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    customer_return_qty: Mapped[Decimal] = mapped_column(
        Numeric(14, 3), nullable=False, default=Decimal("0"), server_default="0"
    )
    reject_qty: Mapped[Decimal] = mapped_column(
        Numeric(14, 3), nullable=False, default=Decimal("0"), server_default="0"
    )
    retained_qty: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    total_qty: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    # Priced on approved_qty, the quantity that actually left.
    rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    total_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(18, 2), nullable=True)

    return_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    reject_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("counterparty_id", "document_no", name="ux_stock_dispatches_counterparty_document"),
        CheckConstraint("approved_qty > 0", name="ck_stock_dispatches_approved_positive"),
        CheckConstraint(
            "customer_return_qty + reject_qty <= approved_qty",
            name="ck_stock_dispatches_sub_quantities_within_approved",
        ),
        Index("ix_stock_dispatches_item_date_created_at", "item_id", "movement_date", "created_at"),
    )


class StockAdjustment(Base):
    """Manual signed correction. Append-only: never edited or deleted."""
    __tablename__ = "stock_adjustments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("items.id"), index=True)
    movement_date: Mapped[date] = mapped_column(Date, nullable=False)

    signed_delta: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    previous_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)
    new_quantity: Mapped[Decimal] = mapped_column(Numeric(14, 3), nullable=False)

    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("signed_delta <> 0", name="ck_stock_adjustments_delta_non_zero"),
        Index("ix_stock_adjustments_item_date_created_at", "item_id", "movement_date", "created_at"),
    )
