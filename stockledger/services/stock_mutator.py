"""
Stock mutator: the only code path that writes Item.current_quantity.

Every stock-affecting operation runs through ``run_stock_operation``, which

* takes the in-process lock of every item it touches (sorted order, bounded wait),
* re-reads those items with ``SELECT ... FOR UPDATE``,
* lets the operation stage its deltas on a ``StockUnit``,
* commits once, or rolls the whole unit back on any error.

Item rows carry an optimistic ``version`` column. A writer in another process
that changed the row first makes the flush fail with ``StaleDataError``; the
unit is then rolled back and retried with exponential backoff, and surfaces as
``ConcurrencyConflict`` once the attempts are spent.
"""

import json
import logging
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from threading import Lock
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stockledger.core.config import settings
from stockledger.core.errors import ConcurrencyConflict, InsufficientStock, InvalidItem, ValidationError
from stockledger.core.quantities import MAX_QTY, to_qty
from stockledger.models.item import Item

logger = logging.getLogger("stockledger.stock")

T = TypeVar("T")


class ItemLockRegistry:
    """
    Per-item locks for writers in this process.

    An entry lives only while some caller holds or waits on it, so ids that
    were looked up once (including ones that turned out not to exist) do not
    accumulate.
    """

    def __init__(self, *, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        self._locks: dict[str, Lock] = {}
        self._users: dict[str, int] = {}
        self._guard = Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, item_id: str) -> Lock:
        with self._guard:
            lock = self._locks.get(item_id)
            if lock is None:
                lock = self._locks[item_id] = Lock()
            self._users[item_id] = self._users.get(item_id, 0) + 1
            return lock

    def _checkin(self, item_id: str) -> None:
        with self._guard:
            remaining = self._users.pop(item_id, 1) - 1
            if remaining > 0:
                self._users[item_id] = remaining
            else:
                self._locks.pop(item_id, None)

    @contextmanager
    def hold(self, item_ids: Iterable[str]) -> Iterator[None]:
        acquired: list[tuple[str, Lock]] = []
        try:
            for item_id in sorted(set(item_ids)):
                lock = self._checkout(item_id)
                if not lock.acquire(timeout=self.timeout_seconds):
                    self._checkin(item_id)
                    raise ConcurrencyConflict(f"Timed out waiting for stock lock on item {item_id}")
                acquired.append((item_id, lock))
            yield
        finally:
            for item_id, lock in reversed(acquired):
                lock.release()
                self._checkin(item_id)

    def clear(self) -> None:
        with self._guard:
            self._locks.clear()
            self._users.clear()


item_locks = ItemLockRegistry(timeout_seconds=settings.stock_lock_timeout_seconds)


@dataclass(frozen=True)
class StockChange:
    item_id: str
    delta: Decimal
    previous_quantity: Decimal
    new_quantity: Decimal


class StockUnit:
    """Deltas staged by one stock operation. Nothing is visible until commit."""

    def __init__(self, db: Session):
        self.db = db
        self.changes: list[StockChange] = []

    def lock_item(self, item_id: str, *, require_active: bool = True) -> Item:
        item = self.db.execute(
            select(Item)
            .where(Item.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None or (require_active and not item.active):
            raise InvalidItem("Invalid or inactive item", details={"item_id": item_id})
        return item

    def lock_items(self, item_ids: Iterable[str]) -> dict[str, Item]:
        """Row-lock several items in id order. Callers check the active flag themselves."""
        return {
            item_id: self.lock_item(item_id, require_active=False)
            for item_id in sorted(set(item_ids))
        }

    def apply(self, item: Item, delta: Decimal) -> StockChange:
        previous = to_qty(item.current_quantity)
        delta = to_qty(delta)
        new_quantity = previous + delta
        if new_quantity < 0:
            raise InsufficientStock(
                f"Insufficient stock. Available: {previous}, Required: {-delta}",
                details={"item_id": item.id, "available": float(previous), "required": float(-delta)},
            )
        if new_quantity > MAX_QTY:
            raise ValidationError(
                f"Resulting stock exceeds the maximum quantity of {MAX_QTY}",
                details={"item_id": item.id, "current_quantity": float(previous), "delta": float(delta)},
            )
        item.current_quantity = new_quantity
        change = StockChange(
            item_id=item.id,
            delta=delta,
            previous_quantity=previous,
            new_quantity=new_quantity,
        )
        self.changes.append(change)
        return change

    def reverse(self, item: Item, delta: Decimal) -> StockChange:
        return self.apply(item, -to_qty(delta))

    def apply_edit(self, old_item: Item, old_delta: Decimal, new_item: Item, new_delta: Decimal) -> None:
        """Reverse the old effect and apply the new one as a single step."""
        if old_item.id == new_item.id:
            # Only the end state must be non-negative.
            self.apply(new_item, to_qty(new_delta) - to_qty(old_delta))
            return
        self.reverse(old_item, old_delta)
        self.apply(new_item, new_delta)


def run_stock_operation(
    db: Session,
    operation: Callable[[StockUnit], T],
    *,
    item_ids: Callable[[], Iterable[str]],
    on_integrity_error: Callable[[IntegrityError], Exception | None] | None = None,
    registry: ItemLockRegistry | None = None,
) -> T:
    registry = registry or item_locks
    max_attempts = settings.stock_write_max_attempts

    for attempt in range(1, max_attempts + 1):
        unit = StockUnit(db)
        try:
            with registry.hold(item_ids()):
                result = operation(unit)
                db.commit()
        except (StaleDataError, ConcurrencyConflict) as exc:
            db.rollback()
            if attempt >= max_attempts:
                if isinstance(exc, ConcurrencyConflict):
                    raise
                raise ConcurrencyConflict(
                    "Item was modified concurrently, please retry"
                ) from exc
            logger.warning(
                json.dumps(
                    {
                        "event": "stock_write_retry",
                        "attempt": attempt,
                        "error": str(exc),
                    }
                )
            )
            time.sleep(settings.stock_write_backoff_seconds * (2 ** (attempt - 1)))
            continue
        except IntegrityError as exc:
            db.rollback()
            translated = on_integrity_error(exc) if on_integrity_error else None
            if translated is None:
                raise
            raise translated from exc
        except Exception:
            db.rollback()
            raise

        for change in unit.changes:
            logger.info(
                json.dumps(
                    {
                        "event": "stock_applied",
                        "item_id": change.item_id,
                        "delta": str(change.delta),
                        "previous_quantity": str(change.previous_quantity),
                        "new_quantity": str(change.new_quantity),
                    }
                )
            )
        return result

    raise ConcurrencyConflict("Item was modified concurrently, please retry")
