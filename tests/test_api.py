ACTOR_HEADERS = {"X-Actor-Id": "clerk-1"}


def _create_item(client, **overrides) -> dict:
    payload = {"name": "Brake drum casting", "category": "castings", "minimum_quantity": 20}
    payload.update(overrides)
    response = client.post("/items", json=payload, headers=ACTOR_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


def _create_counterparty(client, kind: str, name: str) -> str:
    response = client.post("/counterparties", json={"kind": kind, "name": name}, headers=ACTOR_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()["id"]


def _setup(client) -> tuple[str, str, str]:
    item = _create_item(client)
    supplier_id = _create_counterparty(client, "supplier", "Shree Foundry Works")
    customer_id = _create_counterparty(client, "customer", "Apex Axles")
    return item["id"], supplier_id, customer_id


def _receipt(client, item_id: str, supplier_id: str, **overrides):
    payload = {
        "item_id": item_id,
        "supplier_id": supplier_id,
        "document_no": "CH-001",
        "quantity": 100,
        "movement_date": "2026-01-05",
    }
    payload.update(overrides)
    return client.post("/receipts", json=payload, headers=ACTOR_HEADERS)


def _dispatch(client, item_id: str, customer_id: str, **overrides):
    payload = {
        "item_id": item_id,
        "customer_id": customer_id,
        "document_no": "DC-001",
        "approved_qty": 30,
        "return_qty": 5,
        "reject_qty": 3,
        "movement_date": "2026-01-06",
    }
    payload.update(overrides)
    return client.post("/dispatches", json=payload, headers=ACTOR_HEADERS)


def test_receipt_dispatch_adjust_flow(test_context):
    client, _ = test_context
    item_id, supplier_id, customer_id = _setup(client)

    receipt = _receipt(client, item_id, supplier_id)
    assert receipt.status_code == 201, receipt.text
    assert receipt.json()["quantity_received"] == 100.0

    dispatch = _dispatch(client, item_id, customer_id)
    assert dispatch.status_code == 201, dispatch.text
    body = dispatch.json()
    assert body["retained_qty"] == 70.0
    assert body["total_qty"] == 100.0
    assert body["return_qty"] == 5.0

    adjust = client.post(
        "/inventory/adjust",
        json={"item_id": item_id, "signed_delta": -10, "reason": "damage", "movement_date": "2026-02-10"},
        headers=ACTOR_HEADERS,
    )
    assert adjust.status_code == 200, adjust.text
    assert adjust.json()["previous_quantity"] == 70.0
    assert adjust.json()["new_quantity"] == 60.0

    stock = client.get(f"/inventory/stock/{item_id}")
    assert stock.status_code == 200
    assert stock.json() == {
        "item_id": item_id,
        "current_quantity": 60.0,
        "minimum_quantity": 20.0,
        "is_low_stock": False,
    }

    opening = client.get(
        f"/inventory/{item_id}/opening",
        params={"window_start": "2026-02-01", "window_end": "2026-02-28"},
    )
    assert opening.status_code == 200
    assert opening.json()["opening_quantity"] == 70.0


def test_history_endpoint_returns_running_balances(test_context):
    client, _ = test_context
    item_id, supplier_id, customer_id = _setup(client)
    _receipt(client, item_id, supplier_id)
    _dispatch(client, item_id, customer_id)

    response = client.get(f"/inventory/{item_id}/history", params={"limit": 10})

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["item"]["current_quantity"] == 70.0
    assert body["count"] == 2
    first, second = body["transactions"]
    assert first["type"] == "dispatch"
    assert first["counterparty"] == "Apex Axles"
    assert first["effect"] == -30.0
    assert first["balance_after"] == 70.0
    assert first["details"]["reject_qty"] == 3.0
    assert second["type"] == "receipt"
    assert second["balance_after"] == 100.0
    assert body["total_received"] == 100.0
    assert body["total_dispatched"] == 30.0
    assert body["total_count"] == 2

    page = client.get(f"/inventory/{item_id}/history", params={"limit": 1}).json()
    assert page["count"] == 1
    assert page["total_count"] == 2
    assert page["total_received"] == 100.0
    assert page["total_dispatched"] == 30.0


def test_monthly_summary_and_verify(test_context):
    client, _ = test_context
    item_id, supplier_id, customer_id = _setup(client)
    _receipt(client, item_id, supplier_id)
    _dispatch(client, item_id, customer_id)

    summary = client.get(f"/inventory/{item_id}/monthly-summary", params={"year": 2026, "month": 1})
    assert summary.status_code == 200, summary.text
    assert summary.json()["opening_quantity"] == 0.0
    assert summary.json()["closing_quantity"] == 70.0
    assert summary.json()["window_end"] == "2026-01-31"

    verify = client.get(f"/inventory/{item_id}/verify")
    assert verify.status_code == 200
    assert verify.json()["in_sync"] is True
    assert verify.json()["expected_quantity"] == 70.0


def test_insufficient_stock_uses_error_envelope(test_context):
    client, _ = test_context
    item_id, supplier_id, customer_id = _setup(client)
    _receipt(client, item_id, supplier_id, quantity=10)

    response = _dispatch(client, item_id, customer_id, approved_qty=80, return_qty=0, reject_qty=0)

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "insufficient_stock"
    assert error["path"] == "/dispatches"
    assert error["request_id"] == response.headers["X-Request-ID"]
    assert error["details"] == {"available": 10.0, "required": 80.0}


def test_duplicate_document_conflict(test_context):
    client, _ = test_context
    item_id, supplier_id, _ = _setup(client)
    other_supplier_id = _create_counterparty(client, "supplier", "Deccan Alloys")

    assert _receipt(client, item_id, supplier_id).status_code == 201
    duplicate = _receipt(client, item_id, supplier_id, quantity=5)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "duplicate_document"

    assert _receipt(client, item_id, other_supplier_id, quantity=5).status_code == 201


def test_derived_fields_cannot_be_supplied(test_context):
    client, _ = test_context
    item_id, _, customer_id = _setup(client)

    item_response = client.post(
        "/items",
        json={"name": "Hub", "category": "castings", "current_quantity": 500},
        headers=ACTOR_HEADERS,
    )
    assert item_response.status_code == 422
    assert item_response.json()["error"]["code"] == "validation_error"

    dispatch_response = _dispatch(client, item_id, customer_id, retained_qty=10)
    assert dispatch_response.status_code == 422
    fields = {issue["field"] for issue in dispatch_response.json()["error"]["details"]}
    assert "retained_qty" in fields


def test_zero_approved_quantity_is_validation_error(test_context):
    client, _ = test_context
    item_id, supplier_id, customer_id = _setup(client)
    _receipt(client, item_id, supplier_id)

    response = _dispatch(client, item_id, customer_id, approved_qty=0, return_qty=0, reject_qty=0)

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"


def test_oversized_quantities_are_validation_errors(test_context):
    client, _ = test_context
    item_id, supplier_id, _ = _setup(client)

    too_large = _receipt(client, item_id, supplier_id, quantity=1e30)
    assert too_large.status_code == 422, too_large.text
    assert too_large.json()["error"]["code"] == "validation_error"

    past_column = _receipt(client, item_id, supplier_id, quantity=100_000_000_000)
    assert past_column.status_code == 422

    adjust = client.post(
        "/inventory/adjust",
        json={"item_id": item_id, "signed_delta": -1e30, "reason": "recount"},
        headers=ACTOR_HEADERS,
    )
    assert adjust.status_code == 422

    at_ceiling = _receipt(client, item_id, supplier_id, quantity=99999999999.999)
    assert at_ceiling.status_code == 201, at_ceiling.text
    overflow = _receipt(client, item_id, supplier_id, document_no="CH-002", quantity=1)
    assert overflow.status_code == 422
    assert overflow.json()["error"]["code"] == "validation_error"
    assert client.get(f"/inventory/stock/{item_id}").json()["current_quantity"] == 99999999999.999


def test_missing_actor_is_unauthorized(test_context):
    client, _ = test_context

    response = client.post("/items", json={"name": "Hub", "category": "castings"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "unauthorized"


def test_invalid_references_and_not_found(test_context):
    client, _ = test_context
    item_id, supplier_id, customer_id = _setup(client)

    bad_item = _receipt(client, "missing-item", supplier_id)
    assert bad_item.status_code == 400
    assert bad_item.json()["error"]["code"] == "invalid_item"

    bad_supplier = _receipt(client, item_id, customer_id)
    assert bad_supplier.status_code == 400
    assert bad_supplier.json()["error"]["code"] == "invalid_counterparty"

    missing = client.get("/receipts/missing")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "not_found"


def test_receipt_edit_and_delete(test_context):
    client, _ = test_context
    item_id, supplier_id, _ = _setup(client)
    receipt_id = _receipt(client, item_id, supplier_id).json()["id"]

    updated = client.patch(
        f"/receipts/{receipt_id}", json={"quantity": 120, "remarks": "recount"}, headers=ACTOR_HEADERS
    )
    assert updated.status_code == 200, updated.text
    assert updated.json()["quantity_received"] == 120.0
    assert client.get(f"/inventory/stock/{item_id}").json()["current_quantity"] == 120.0

    empty_update = client.patch(f"/receipts/{receipt_id}", json={}, headers=ACTOR_HEADERS)
    assert empty_update.status_code == 422

    deleted = client.delete(f"/receipts/{receipt_id}", headers=ACTOR_HEADERS)
    assert deleted.status_code == 200
    assert deleted.json() == {"ok": True, "id": receipt_id}
    assert client.get(f"/inventory/stock/{item_id}").json()["current_quantity"] == 0.0


def test_dispatch_edit_and_delete(test_context):
    client, _ = test_context
    item_id, supplier_id, customer_id = _setup(client)
    _receipt(client, item_id, supplier_id)
    dispatch_id = _dispatch(client, item_id, customer_id).json()["id"]

    updated = client.patch(
        f"/dispatches/{dispatch_id}", json={"approved_qty": 50}, headers=ACTOR_HEADERS
    )
    assert updated.status_code == 200, updated.text
    assert updated.json()["retained_qty"] == 50.0
    assert client.get(f"/inventory/stock/{item_id}").json()["current_quantity"] == 50.0

    assert client.get(f"/dispatches/{dispatch_id}").json()["approved_qty"] == 50.0

    deleted = client.delete(f"/dispatches/{dispatch_id}", headers=ACTOR_HEADERS)
    assert deleted.status_code == 200
    assert client.get(f"/inventory/stock/{item_id}").json()["current_quantity"] == 100.0


def test_item_registry_endpoints(test_context):
    client, _ = test_context
    item = _create_item(client)
    _create_item(client, name="Flywheel", category="machined", unit="kg")

    listing = client.get("/items", params={"category": "castings"})
    assert [row["name"] for row in listing.json()["items"]] == ["Brake drum casting"]

    categories = client.get("/items/categories")
    assert categories.json() == {"items": ["castings", "machined"]}

    deactivated = client.patch(f"/items/{item['id']}", json={"active": False}, headers=ACTOR_HEADERS)
    assert deactivated.status_code == 200
    assert deactivated.json()["active"] is False
    active = client.get("/items", params={"active_only": True}).json()["items"]
    assert [row["name"] for row in active] == ["Flywheel"]

    deleted = client.delete(f"/items/{item['id']}", headers=ACTOR_HEADERS)
    assert deleted.status_code == 200
    assert client.get(f"/items/{item['id']}").status_code == 404


def test_item_with_movements_cannot_be_deleted(test_context):
    client, _ = test_context
    item_id, supplier_id, _ = _setup(client)
    _receipt(client, item_id, supplier_id)

    response = client.delete(f"/items/{item_id}", headers=ACTOR_HEADERS)

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "item_in_use"


def test_item_audit_trail(test_context):
    client, _ = test_context
    item_id, supplier_id, _ = _setup(client)
    _receipt(client, item_id, supplier_id)

    response = client.get(f"/inventory/{item_id}/audit")

    assert response.status_code == 200
    events = response.json()["items"]
    receipt_events = [event for event in events if event["action"] == "receipt.create"]
    assert len(receipt_events) == 1
    assert receipt_events[0]["actor_id"] == "clerk-1"
    assert receipt_events[0]["metadata_json"]["new_quantity"] == 100.0


def test_health_endpoints(test_context):
    client, _ = test_context

    assert client.get("/health").json() == {"ok": True}
    root = client.get("/")
    assert root.json()["app"] == "Stock Ledger"
