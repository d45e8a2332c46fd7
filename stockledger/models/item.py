from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockledger.db.base import Base, utc_now

ITEM_UNITS = ("pcs", "kg", "g", "l", "ml", "m", "cm", "box", "packet")


class Item(Base):
    """
    A tracked good. current_quantity is derived from the movement log and is
    only ever written by the stock mutator; version guards concurrent writers.
    """
    __tablename__ = "items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    unit: Mapped[str] = mapped_column(String(10), nullable=False, default="pcs", server_default="pcs")

    current_quantity: Mapped[Decimal] = mapped_column(
        Numeric(14, 3), nullable=False, default=Decimal("0"), server_default="0"
    )
    minimum_quantity: Mapped[Decimal] = mapped_column(
        Numeric(14, 3), nullable=False, default=Decimal("0"), server_default="0"
    )
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="1")
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, server_default=func.now()
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("current_quantity >= 0", name="ck_items_current_quantity_non_negative"),
        CheckConstraint("minimum_quantity >= 0", name="ck_items_minimum_quantity_non_negative"),
        Index("ix_items_active_category_name", "active", "category", "name"),
    )

    @property
    def is_low_stock(self) -> bool:
        return self.current_quantity <= self.minimum_quantity
