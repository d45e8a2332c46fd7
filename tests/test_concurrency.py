import threading
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import text

from stockledger.core.errors import ConcurrencyConflict, InsufficientStock, InvalidItem
from stockledger.models.item import Item
from stockledger.schemas.movement import DispatchCreate, ReceiptCreate
from stockledger.services import movement_service, period_service, replay
from stockledger.services.report_service import verify_item_quantity
from stockledger.services.stock_mutator import ItemLockRegistry, run_stock_operation

ACTOR_ID = "clerk-1"

pytestmark = pytest.mark.stress


def _receive(db, ledger, quantity, document_no: str, movement_date=date(2026, 1, 5)):
    return movement_service.create_receipt(
        db,
        ReceiptCreate(
            item_id=ledger.item_id,
            supplier_id=ledger.supplier_id,
            document_no=document_no,
            quantity=quantity,
            movement_date=movement_date,
        ),
        actor_id=ACTOR_ID,
    )


def _run_threads(worker, count: int) -> list:
    results: list = []
    results_lock = threading.Lock()
    start = threading.Barrier(count)

    def run(index: int) -> None:
        start.wait()
        try:
            outcome = worker(index)
        except Exception as exc:  # collected and asserted by the test
            outcome = exc
        with results_lock:
            results.append(outcome)

    threads = [threading.Thread(target=run, args=(index,)) for index in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return results


def _current_quantity(sessions, item_id: str) -> Decimal:
    with sessions() as db:
        return db.get(Item, item_id).current_quantity


def test_concurrent_dispatches_never_oversell(file_ledger):
    sessions = file_ledger.sessions
    with sessions() as db:
        _receive(db, file_ledger, 100, "CH-001")

    def dispatch(index: int):
        with sessions() as db:
            return movement_service.create_dispatch(
                db,
                DispatchCreate(
                    item_id=file_ledger.item_id,
                    customer_id=file_ledger.customer_id,
                    document_no=f"DC-{index:03d}",
                    approved_qty=15,
                    movement_date=date(2026, 1, 6),
                ),
                actor_id=ACTOR_ID,
            ).id

    results = _run_threads(dispatch, 10)

    successes = [result for result in results if isinstance(result, str)]
    rejected = [result for result in results if isinstance(result, InsufficientStock)]
    assert len(successes) == 6
    assert len(rejected) == 4
    assert _current_quantity(sessions, file_ledger.item_id) == Decimal("10")
    with sessions() as db:
        assert verify_item_quantity(db, file_ledger.item_id)["in_sync"] is True


def test_concurrent_mixed_movements_keep_ledger_in_sync(file_ledger):
    sessions = file_ledger.sessions
    with sessions() as db:
        _receive(db, file_ledger, 50, "CH-000")

    def move(index: int):
        with sessions() as db:
            if index % 2 == 0:
                return _receive(db, file_ledger, 5, f"CH-{index:03d}-R")
            return movement_service.create_dispatch(
                db,
                DispatchCreate(
                    item_id=file_ledger.item_id,
                    customer_id=file_ledger.customer_id,
                    document_no=f"DC-{index:03d}",
                    approved_qty=3,
                ),
                actor_id=ACTOR_ID,
            )

    results = _run_threads(move, 12)

    assert not [result for result in results if isinstance(result, Exception)]
    # 50 + 6 receipts of 5 - 6 dispatches of 3
    assert _current_quantity(sessions, file_ledger.item_id) == Decimal("62")
    with sessions() as db:
        check = verify_item_quantity(db, file_ledger.item_id)
    assert check["in_sync"] is True


def test_stale_item_version_is_retried(file_ledger, fast_retries):
    sessions = file_ledger.sessions
    attempts: list[int] = []

    def operation(unit):
        item = unit.lock_item(file_ledger.item_id)
        if not attempts:
            # Another process writes the row between our read and our commit.
            with sessions() as other:
                other.execute(
                    text(
                        "UPDATE items SET current_quantity = current_quantity + 5, "
                        "version = version + 1 WHERE id = :id"
                    ),
                    {"id": file_ledger.item_id},
                )
                other.commit()
        attempts.append(1)
        unit.apply(item, Decimal("10"))
        return item.id

    with sessions() as db:
        run_stock_operation(db, operation, item_ids=lambda: [file_ledger.item_id])

    assert len(attempts) == 2
    assert _current_quantity(sessions, file_ledger.item_id) == Decimal("15")


def test_persistent_conflicts_surface_as_concurrency_conflict(file_ledger, fast_retries, monkeypatch):
    monkeypatch.setattr(fast_retries, "stock_write_max_attempts", 2)
    sessions = file_ledger.sessions
    attempts: list[int] = []

    def operation(unit):
        item = unit.lock_item(file_ledger.item_id)
        with sessions() as other:
            other.execute(
                text("UPDATE items SET version = version + 1 WHERE id = :id"),
                {"id": file_ledger.item_id},
            )
            other.commit()
        attempts.append(1)
        unit.apply(item, Decimal("10"))

    with sessions() as db:
        with pytest.raises(ConcurrencyConflict):
            run_stock_operation(db, operation, item_ids=lambda: [file_ledger.item_id])

    assert len(attempts) == 2
    assert _current_quantity(sessions, file_ledger.item_id) == Decimal("0")


def test_lock_wait_is_bounded():
    registry = ItemLockRegistry(timeout_seconds=0.05)

    with registry.hold(["item-b"]):
        with pytest.raises(ConcurrencyConflict):
            with registry.hold(["item-b", "item-a"]):
                pass

        # item-a was taken first and released again when item-b timed out.
        with registry.hold(["item-a"]):
            pass

        assert len(registry) == 1

    assert len(registry) == 0


def test_lock_entries_are_dropped_once_released():
    registry = ItemLockRegistry(timeout_seconds=1)

    with registry.hold(["item-a", "item-b"]):
        assert len(registry) == 2
        with pytest.raises(RuntimeError):
            with registry.hold(["item-c"]):
                raise RuntimeError("boom")
        assert len(registry) == 2

    assert len(registry) == 0


def test_waiting_writers_share_one_entry_until_the_last_leaves():
    registry = ItemLockRegistry(timeout_seconds=2)
    holding = threading.Event()
    release = threading.Event()

    def first_writer():
        with registry.hold(["item-a"]):
            holding.set()
            release.wait(timeout=2)

    thread = threading.Thread(target=first_writer)
    thread.start()
    holding.wait(timeout=2)

    timer = threading.Timer(0.05, release.set)
    timer.start()
    with registry.hold(["item-a"]):
        assert len(registry) == 1
    thread.join(timeout=2)
    timer.join(timeout=2)

    assert len(registry) == 0


def test_unknown_item_ids_do_not_stay_in_the_registry(ledger):
    registry = ItemLockRegistry(timeout_seconds=1)

    for index in range(5):
        missing_id = f"missing-{index}"
        with pytest.raises(InvalidItem):
            run_stock_operation(
                ledger.db,
                lambda unit, item_id=missing_id: unit.lock_item(item_id),
                item_ids=lambda item_id=missing_id: [item_id],
                registry=registry,
            )

    assert len(registry) == 0


def test_snapshot_read_retries_when_a_write_lands_mid_read(file_ledger, monkeypatch):
    sessions = file_ledger.sessions
    with sessions() as db:
        _receive(db, file_ledger, 100, "CH-001", movement_date=date(2026, 1, 5))

    real_loader = replay.load_item_events
    calls: list[int] = []

    def racing_loader(db, item_id, *, since=None):
        events = real_loader(db, item_id, since=since)
        if not calls:
            with sessions() as other:
                _receive(other, file_ledger, 5, "CH-002", movement_date=date(2026, 1, 20))
        calls.append(1)
        return events

    monkeypatch.setattr(replay, "load_item_events", racing_loader)

    with sessions() as db:
        opening = period_service.opening_quantity(
            db, file_ledger.item_id, date(2026, 1, 1), date(2026, 1, 31)
        )

    assert len(calls) == 2
    assert opening == Decimal("0")
