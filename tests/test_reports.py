from datetime import date
from decimal import Decimal

import pytest

from stockledger.core.errors import NotFound, ValidationError
from stockledger.schemas.counterparty import CounterpartyCreate
from stockledger.schemas.item import ItemCreate
from stockledger.schemas.movement import (
    DispatchCreate,
    DispatchUpdate,
    ReceiptCreate,
    ReceiptUpdate,
    StockAdjustmentCreate,
)
from stockledger.services import movement_service, registry_service, report_service

ACTOR_ID = "clerk-1"


def _receive(ledger, item_id: str, quantity, document_no: str):
    movement_service.create_receipt(
        ledger.db,
        ReceiptCreate(
            item_id=item_id,
            supplier_id=ledger.supplier_id,
            document_no=document_no,
            quantity=quantity,
            movement_date=date(2026, 3, 1),
        ),
        actor_id=ACTOR_ID,
    )


def _dispatch(ledger, item_id: str, document_no: str, approved, return_qty=0, reject_qty=0, movement_date=date(2026, 3, 10)):
    movement_service.create_dispatch(
        ledger.db,
        DispatchCreate(
            item_id=item_id,
            customer_id=ledger.customer_id,
            document_no=document_no,
            approved_qty=approved,
            return_qty=return_qty,
            reject_qty=reject_qty,
            movement_date=movement_date,
        ),
        actor_id=ACTOR_ID,
    )


def test_low_stock_lists_active_items_at_or_below_minimum(ledger):
    healthy = registry_service.create_item(
        ledger.db, ItemCreate(name="Hub casting", category="castings", minimum_quantity=5), actor_id=ACTOR_ID
    )
    _receive(ledger, healthy.id, 50, "CH-001")
    _receive(ledger, ledger.item_id, 20, "CH-002")

    rows = report_service.get_low_stock_items(ledger.db)

    assert [row["item_id"] for row in rows] == [ledger.item_id]
    assert rows[0]["current_quantity"] == 20.0
    assert rows[0]["minimum_quantity"] == 20.0


def test_stock_statement_totals(ledger):
    _receive(ledger, ledger.item_id, 100, "CH-001")
    _dispatch(ledger, ledger.item_id, "DC-001", 30, return_qty=5, reject_qty=3)
    movement_service.adjust_stock(
        ledger.db,
        StockAdjustmentCreate(item_id=ledger.item_id, signed_delta=-10, reason="damage"),
        actor_id=ACTOR_ID,
    )

    statement = report_service.get_stock_statement(ledger.db)

    (row,) = statement["items"]
    assert row["current_quantity"] == 60.0
    assert row["total_received"] == 100.0
    assert row["total_dispatched"] == 30.0
    assert row["total_returned"] == 5.0
    assert row["total_rejected"] == 3.0
    assert row["total_adjusted"] == -10.0
    assert row["is_low_stock"] is False
    assert statement["summary"]["total_items"] == 1
    assert statement["summary"]["total_current_quantity"] == 60.0
    assert statement["summary"]["low_stock_items"] == 0


def test_reject_alerts_rank_by_rate_within_window(ledger):
    quiet = registry_service.create_item(
        ledger.db, ItemCreate(name="Hub casting", category="castings"), actor_id=ACTOR_ID
    )
    _receive(ledger, ledger.item_id, 100, "CH-001")
    _receive(ledger, quiet.id, 100, "CH-002")
    _dispatch(ledger, ledger.item_id, "DC-001", 40, return_qty=4, reject_qty=6)
    _dispatch(ledger, quiet.id, "DC-002", 50)
    # Outside the 30 day window.
    _dispatch(ledger, quiet.id, "DC-003", 10, reject_qty=10, movement_date=date(2026, 1, 2))

    alerts = report_service.get_reject_alerts(ledger.db, today=date(2026, 3, 20))

    assert alerts["window_start"] == date(2026, 2, 18)
    assert alerts["count"] == 1
    (alert,) = alerts["items"]
    assert alert["item_id"] == ledger.item_id
    assert alert["rejection_rate"] == 25.0
    assert alert["total_rejected"] == 6.0
    assert alert["last_reject_date"] == date(2026, 3, 10)


def test_reports_over_http(test_context):
    client, _ = test_context

    assert client.get("/reports/low-stock").json() == {"items": [], "count": 0}
    statement = client.get("/reports/stock-statement")
    assert statement.status_code == 200
    assert statement.json()["summary"]["total_items"] == 0
    alerts = client.get("/reports/reject-alerts", params={"as_of": "2026-03-20"})
    assert alerts.status_code == 200
    assert alerts.json()["window_start"] == "2026-02-18"


def _priced_receipt(ledger, document_no: str, quantity, *, rate=None, item_id=None, supplier_id=None, movement_date=date(2026, 3, 1)):
    return movement_service.create_receipt(
        ledger.db,
        ReceiptCreate(
            item_id=item_id or ledger.item_id,
            supplier_id=supplier_id or ledger.supplier_id,
            document_no=document_no,
            quantity=quantity,
            rate=rate,
            movement_date=movement_date,
        ),
        actor_id=ACTOR_ID,
    )


def _priced_dispatch(ledger, document_no: str, approved, *, rate=None, customer_id=None, return_qty=0, reject_qty=0):
    return movement_service.create_dispatch(
        ledger.db,
        DispatchCreate(
            item_id=ledger.item_id,
            customer_id=customer_id or ledger.customer_id,
            document_no=document_no,
            approved_qty=approved,
            return_qty=return_qty,
            reject_qty=reject_qty,
            rate=rate,
            movement_date=date(2026, 3, 10),
        ),
        actor_id=ACTOR_ID,
    )


@pytest.fixture()
def priced_ledger(ledger):
    """Receipts from two suppliers and dispatches to two customers, mostly priced."""
    hub = registry_service.create_item(
        ledger.db, ItemCreate(name="Hub casting", category="castings"), actor_id=ACTOR_ID
    )
    second_customer = registry_service.create_counterparty(
        ledger.db, CounterpartyCreate(kind="customer", name="Vega Motors"), actor_id=ACTOR_ID
    )
    ledger.hub_id = hub.id
    ledger.second_customer_id = second_customer.id

    _priced_receipt(ledger, "CH-001", 100, rate=10)
    _priced_receipt(ledger, "CH-002", 40, rate=25, item_id=hub.id, supplier_id=ledger.other_supplier_id)
    _priced_receipt(ledger, "CH-003", 60, supplier_id=ledger.other_supplier_id, movement_date=date(2026, 4, 1))
    _priced_dispatch(ledger, "DC-001", 30, rate=40, return_qty=5, reject_qty=3)
    _priced_dispatch(ledger, "DC-002", 20, rate=50, reject_qty=2, customer_id=second_customer.id)
    return ledger


def test_receipt_amount_is_rate_times_quantity_and_follows_edits(ledger):
    receipt = _priced_receipt(ledger, "CH-001", 100, rate=Decimal("12.5"))
    assert receipt.rate == Decimal("12.50")
    assert receipt.total_amount == Decimal("1250.00")

    receipt = movement_service.update_receipt(ledger.db, receipt.id, ReceiptUpdate(quantity=120), actor_id=ACTOR_ID)
    assert receipt.total_amount == Decimal("1500.00")

    receipt = movement_service.update_receipt(ledger.db, receipt.id, ReceiptUpdate(rate=None), actor_id=ACTOR_ID)
    assert receipt.rate is None
    assert receipt.total_amount is None


def test_dispatch_amount_is_priced_on_the_approved_quantity(ledger):
    _priced_receipt(ledger, "CH-001", 100)
    dispatch = _priced_dispatch(ledger, "DC-001", 30, rate=40, return_qty=5, reject_qty=3)

    assert dispatch.total_qty == Decimal("100")
    assert dispatch.total_amount == Decimal("1200.00")

    dispatch = movement_service.update_dispatch(ledger.db, dispatch.id, DispatchUpdate(approved_qty=20), actor_id=ACTOR_ID)
    assert dispatch.total_amount == Decimal("800.00")


def test_receipt_summary_overall_and_top_lists(priced_ledger):
    result = report_service.movement_summary(priced_ledger.db, "receipt")

    summary = result["summary"]
    assert summary["total_entries"] == 3
    assert summary["total_quantity"] == 200.0
    assert summary["total_amount"] == 2000.0
    assert summary["average_quantity"] == 66.667
    assert summary["average_amount"] == 1000.0
    assert "total_returned" not in summary
    assert [row["name"] for row in result["by_counterparty"]] == ["Deccan Alloys", "Shree Foundry Works"]
    assert [row["total_amount"] for row in result["by_counterparty"]] == [1000.0, 1000.0]
    assert [(row["name"], row["total_quantity"]) for row in result["by_item"]] == [
        ("Brake drum casting", 160.0),
        ("Hub casting", 40.0),
    ]


def test_movement_summary_date_filter(priced_ledger):
    result = report_service.movement_summary(
        priced_ledger.db, "receipt", start_date=date(2026, 3, 1), end_date=date(2026, 3, 31)
    )

    assert result["summary"]["total_entries"] == 2
    assert result["summary"]["total_quantity"] == 140.0

    with pytest.raises(ValidationError):
        report_service.movement_summary(
            priced_ledger.db, "receipt", start_date=date(2026, 3, 31), end_date=date(2026, 3, 1)
        )


def test_dispatch_summary_counts_returns_and_rejects(priced_ledger):
    summary = report_service.movement_summary(priced_ledger.db, "dispatch")["summary"]

    assert summary["total_entries"] == 2
    assert summary["total_quantity"] == 50.0
    assert summary["total_amount"] == 2200.0
    assert summary["total_returned"] == 5.0
    assert summary["total_rejected"] == 5.0


def test_customer_performance_ranks_by_amount_with_rejection_rate(priced_ledger):
    rows = report_service.counterparty_performance(priced_ledger.db, "customer")

    assert [row["name"] for row in rows] == ["Apex Axles", "Vega Motors"]
    apex, vega = rows
    assert apex["total_amount"] == 1200.0
    assert apex["rejection_rate"] == 26.67
    assert vega["rejection_rate"] == 10.0
    assert apex["first_movement"] == date(2026, 3, 10)


def test_supplier_performance_has_no_rejection_rate(priced_ledger):
    rows = report_service.counterparty_performance(
        priced_ledger.db, "supplier", end_date=date(2026, 3, 31)
    )

    assert [(row["name"], row["total_quantity"]) for row in rows] == [
        ("Shree Foundry Works", 100.0),
        ("Deccan Alloys", 40.0),
    ]
    assert all(row["rejection_rate"] is None for row in rows)


def test_counterparty_stats(priced_ledger):
    stats = report_service.counterparty_stats(priced_ledger.db, priced_ledger.other_supplier_id)

    assert stats["counterparty"]["kind"] == "supplier"
    assert stats["statistics"]["total_entries"] == 2
    assert stats["statistics"]["total_quantity"] == 100.0
    assert stats["statistics"]["total_amount"] == 1000.0
    assert stats["statistics"]["last_movement"] == date(2026, 4, 1)
    assert [row["name"] for row in stats["top_items"]] == ["Brake drum casting", "Hub casting"]

    customer = report_service.counterparty_stats(priced_ledger.db, priced_ledger.customer_id)
    assert customer["statistics"]["total_returned"] == 5.0

    with pytest.raises(NotFound):
        report_service.counterparty_stats(priced_ledger.db, "missing")


def test_recent_movements_merge_receipts_and_dispatches(priced_ledger):
    movements = report_service.recent_movements(priced_ledger.db)

    assert [movement["document_no"] for movement in movements] == [
        "DC-002",
        "DC-001",
        "CH-003",
        "CH-002",
        "CH-001",
    ]
    assert movements[0]["type"] == "dispatch"
    assert movements[0]["counterparty_name"] == "Vega Motors"
    assert movements[0]["total_amount"] == 1000.0
    assert movements[2]["total_amount"] is None

    latest = report_service.recent_movements(priced_ledger.db, limit=2)
    assert [movement["document_no"] for movement in latest] == ["DC-002", "DC-001"]

    with pytest.raises(ValidationError):
        report_service.recent_movements(priced_ledger.db, limit=0)
    with pytest.raises(ValidationError):
        report_service.recent_movements(priced_ledger.db, limit=1_000)


def test_movement_reports_over_http(test_context):
    client, _ = test_context
    headers = {"X-Actor-Id": "clerk-1"}
    item_id = client.post(
        "/items", json={"name": "Brake drum casting", "category": "castings"}, headers=headers
    ).json()["id"]
    supplier_id = client.post(
        "/counterparties", json={"kind": "supplier", "name": "Shree Foundry Works"}, headers=headers
    ).json()["id"]

    receipt = client.post(
        "/receipts",
        json={
            "item_id": item_id,
            "supplier_id": supplier_id,
            "document_no": "CH-001",
            "quantity": 100,
            "rate": 12.5,
            "movement_date": "2026-03-01",
        },
        headers=headers,
    )
    assert receipt.status_code == 201, receipt.text
    assert receipt.json()["rate"] == 12.5
    assert receipt.json()["total_amount"] == 1250.0

    summary = client.get("/reports/movement-summary", params={"kind": "receipt"})
    assert summary.status_code == 200, summary.text
    assert summary.json()["summary"]["total_amount"] == 1250.0

    performance = client.get("/reports/counterparty-performance", params={"kind": "supplier"})
    assert performance.status_code == 200
    assert performance.json()["count"] == 1
    assert performance.json()["items"][0]["rejection_rate"] is None

    stats = client.get(f"/counterparties/{supplier_id}/stats")
    assert stats.status_code == 200
    assert stats.json()["statistics"]["total_quantity"] == 100.0
    assert client.get("/counterparties/missing/stats").status_code == 404

    recent = client.get("/reports/recent-movements", params={"limit": 5})
    assert recent.status_code == 200
    assert recent.json()["items"][0]["document_no"] == "CH-001"

    assert client.get("/reports/movement-summary", params={"kind": "adjustment"}).status_code == 422
    assert client.get("/reports/recent-movements", params={"limit": 1_000}).status_code == 422
