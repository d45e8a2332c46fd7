"""
Movement log operations: receipts, dispatches and manual adjustments.

Each create, edit or delete runs as one stock unit (see stock_mutator), so
the record change, the item quantity change and the audit row commit
together or not at all.
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockledger.core.errors import (
    ConcurrencyConflict,
    DuplicateDocument,
    InvalidCounterparty,
    InvalidItem,
    NotFound,
)
from stockledger.core.id_utils import generate_shortuuid
from stockledger.core.quantities import amount_out, line_amount, qty_out, to_qty
from stockledger.db.base import utc_now
from stockledger.models.counterparty import Counterparty
from stockledger.models.movement import Dispatch, Receipt, StockAdjustment
from stockledger.schemas.movement import (
    DispatchCreate,
    DispatchUpdate,
    ReceiptCreate,
    ReceiptUpdate,
    StockAdjustmentCreate,
)
from stockledger.services.audit_service import log_audit_event
from stockledger.services.dispatch_accounting import resolve_dispatch
from stockledger.services.stock_mutator import StockUnit, run_stock_operation


def _duplicate_document_error(exc: IntegrityError) -> DuplicateDocument | None:
    message = str(exc.orig).lower()
    if "document_no" in message or "_counterparty_document" in message:
        return DuplicateDocument("Document number already exists for this counterparty")
    return None


def _require_counterparty(db: Session, counterparty_id: str, kind: str) -> Counterparty:
    counterparty = db.get(Counterparty, counterparty_id, populate_existing=True)
    if counterparty is None or counterparty.kind != kind or not counterparty.active:
        raise InvalidCounterparty(
            f"Invalid or inactive {kind}",
            details={f"{kind}_id": counterparty_id},
        )
    return counterparty


def _ensure_document_available(
    db: Session,
    model: type[Receipt] | type[Dispatch],
    *,
    counterparty_id: str,
    document_no: str,
    exclude_id: str | None = None,
) -> None:
    stmt = select(model.id).where(
        model.counterparty_id == counterparty_id,
        model.document_no == document_no,
    )
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    if db.execute(stmt).first() is not None:
        raise DuplicateDocument(
            "Document number already exists for this counterparty",
            details={"counterparty_id": counterparty_id, "document_no": document_no},
        )


def _lock_record(db: Session, model: type[Receipt] | type[Dispatch], record_id: str) -> Receipt | Dispatch:
    record = db.execute(
        select(model)
        .where(model.id == record_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if record is None:
        raise NotFound(f"{model.__name__} not found", details={"id": record_id})
    return record


def _record_item_ids(db: Session, model: type[Receipt] | type[Dispatch], record_id: str, *extra: str | None):
    def item_ids() -> set[str]:
        item_id = db.execute(select(model.item_id).where(model.id == record_id)).scalar_one_or_none()
        if item_id is None:
            raise NotFound(f"{model.__name__} not found", details={"id": record_id})
        return {item_id, *(value for value in extra if value)}

    return item_ids


def _check_still_locked(record: Receipt | Dispatch, locked_ids: set[str]) -> None:
    # The record moved to another item between lock planning and locking.
    if record.item_id not in locked_ids:
        raise ConcurrencyConflict("Record changed while waiting for its item lock, please retry")


# Receipts


def get_receipt(db: Session, receipt_id: str) -> Receipt:
    receipt = db.get(Receipt, receipt_id)
    if receipt is None:
        raise NotFound("Receipt not found", details={"id": receipt_id})
    return receipt


def create_receipt(db: Session, payload: ReceiptCreate, *, actor_id: str) -> Receipt:
    def operation(unit: StockUnit) -> Receipt:
        item = unit.lock_item(payload.item_id)
        _require_counterparty(db, payload.supplier_id, "supplier")
        _ensure_document_available(
            db, Receipt, counterparty_id=payload.supplier_id, document_no=payload.document_no
        )

        receipt = Receipt(
            id=generate_shortuuid(),
            item_id=item.id,
            counterparty_id=payload.supplier_id,
            document_no=payload.document_no,
            movement_date=payload.movement_date or utc_now().date(),
            quantity_received=payload.quantity,
            rate=payload.rate,
            total_amount=line_amount(payload.rate, payload.quantity),
            remarks=payload.remarks,
            created_by=actor_id,
        )
        change = unit.apply(item, payload.quantity)
        db.add(receipt)
        log_audit_event(
            db,
            actor_id=actor_id,
            action="receipt.create",
            target_type="receipt",
            target_id=receipt.id,
            item_id=item.id,
            metadata_json={
                "document_no": receipt.document_no,
                "quantity": qty_out(payload.quantity),
                "previous_quantity": qty_out(change.previous_quantity),
                "new_quantity": qty_out(change.new_quantity),
            },
        )
        return receipt

    receipt = run_stock_operation(
        db,
        operation,
        item_ids=lambda: [payload.item_id],
        on_integrity_error=_duplicate_document_error,
    )
    db.refresh(receipt)
    return receipt


def update_receipt(db: Session, receipt_id: str, payload: ReceiptUpdate, *, actor_id: str) -> Receipt:
    fields = payload.model_dump(exclude_unset=True)
    plan_item_ids = _record_item_ids(db, Receipt, receipt_id, fields.get("item_id"))

    def operation(unit: StockUnit) -> Receipt:
        record = _lock_record(db, Receipt, receipt_id)
        new_item_id = fields.get("item_id") or record.item_id
        items = unit.lock_items({record.item_id, new_item_id})
        _check_still_locked(record, set(items))

        old_item, new_item = items[record.item_id], items[new_item_id]
        if new_item.id != old_item.id and not new_item.active:
            raise InvalidItem("Invalid or inactive item", details={"item_id": new_item_id})

        supplier_id = fields.get("supplier_id") or record.counterparty_id
        document_no = fields.get("document_no") or record.document_no
        quantity = fields.get("quantity") or to_qty(record.quantity_received)
        rate = fields["rate"] if "rate" in fields else record.rate

        if supplier_id != record.counterparty_id:
            _require_counterparty(db, supplier_id, "supplier")
        if supplier_id != record.counterparty_id or document_no != record.document_no:
            _ensure_document_available(
                db,
                Receipt,
                counterparty_id=supplier_id,
                document_no=document_no,
                exclude_id=record.id,
            )

        before = _receipt_snapshot(record)
        unit.apply_edit(old_item, record.quantity_received, new_item, quantity)

        record.item_id = new_item.id
        record.counterparty_id = supplier_id
        record.document_no = document_no
        record.quantity_received = quantity
        record.rate = rate
        record.total_amount = line_amount(rate, quantity)
        if fields.get("movement_date") is not None:
            record.movement_date = fields["movement_date"]
        if "remarks" in fields:
            record.remarks = fields["remarks"]

        log_audit_event(
            db,
            actor_id=actor_id,
            action="receipt.update",
            target_type="receipt",
            target_id=record.id,
            item_id=new_item.id,
            metadata_json={
                "before": before,
                "after": _receipt_snapshot(record),
                "quantities": _change_summary(unit),
            },
        )
        return record

    receipt = run_stock_operation(
        db,
        operation,
        item_ids=plan_item_ids,
        on_integrity_error=_duplicate_document_error,
    )
    db.refresh(receipt)
    return receipt


def delete_receipt(db: Session, receipt_id: str, *, actor_id: str) -> None:
    def operation(unit: StockUnit) -> None:
        record = _lock_record(db, Receipt, receipt_id)
        item = unit.lock_item(record.item_id, require_active=False)
        _check_still_locked(record, {item.id})

        # Fails with InsufficientStock when the received goods were already dispatched.
        change = unit.reverse(item, record.quantity_received)
        log_audit_event(
            db,
            actor_id=actor_id,
            action="receipt.delete",
            target_type="receipt",
            target_id=record.id,
            item_id=item.id,
            metadata_json={
                "before": _receipt_snapshot(record),
                "previous_quantity": qty_out(change.previous_quantity),
                "new_quantity": qty_out(change.new_quantity),
            },
        )
        db.delete(record)

    run_stock_operation(db, operation, item_ids=_record_item_ids(db, Receipt, receipt_id))


def _receipt_snapshot(record: Receipt) -> dict[str, Any]:
    return {
        "item_id": record.item_id,
        "supplier_id": record.counterparty_id,
        "document_no": record.document_no,
        "movement_date": record.movement_date.isoformat(),
        "quantity_received": qty_out(record.quantity_received),
        "total_amount": amount_out(record.total_amount),
    }


def _change_summary(unit: StockUnit) -> list[dict[str, Any]]:
    return [
        {
            "item_id": change.item_id,
            "delta": qty_out(change.delta),
            "previous_quantity": qty_out(change.previous_quantity),
            "new_quantity": qty_out(change.new_quantity),
        }
        for change in unit.changes
    ]


# Dispatches


def get_dispatch(db: Session, dispatch_id: str) -> Dispatch:
    dispatch = db.get(Dispatch, dispatch_id)
    if dispatch is None:
        raise NotFound("Dispatch not found", details={"id": dispatch_id})
    return dispatch


def create_dispatch(db: Session, payload: DispatchCreate, *, actor_id: str) -> Dispatch:
    def operation(unit: StockUnit) -> Dispatch:
        item = unit.lock_item(payload.item_id)
        _require_counterparty(db, payload.customer_id, "customer")
        _ensure_document_available(
            db, Dispatch, counterparty_id=payload.customer_id, document_no=payload.document_no
        )

        quantities = resolve_dispatch(
            approved_qty=payload.approved_qty,
            return_qty=payload.return_qty,
            reject_qty=payload.reject_qty,
            on_hand=item.current_quantity,
        )
        dispatch = Dispatch(
            id=generate_shortuuid(),
            item_id=item.id,
            counterparty_id=payload.customer_id,
            document_no=payload.document_no,
            movement_date=payload.movement_date or utc_now().date(),
            approved_qty=quantities.approved_qty,
            customer_return_qty=quantities.return_qty,
            reject_qty=quantities.reject_qty,
            retained_qty=quantities.retained_qty,
            total_qty=quantities.total_qty,
            rate=payload.rate,
            total_amount=line_amount(payload.rate, quantities.approved_qty),
            return_reason=payload.return_reason,
            reject_reason=payload.reject_reason,
            remarks=payload.remarks,
            created_by=actor_id,
        )
        # Only the approved quantity leaves the warehouse.
        change = unit.apply(item, -quantities.approved_qty)
        db.add(dispatch)
        log_audit_event(
            db,
            actor_id=actor_id,
            action="dispatch.create",
            target_type="dispatch",
            target_id=dispatch.id,
            item_id=item.id,
            metadata_json={
                "document_no": dispatch.document_no,
                "approved_qty": qty_out(quantities.approved_qty),
                "retained_qty": qty_out(quantities.retained_qty),
                "previous_quantity": qty_out(change.previous_quantity),
                "new_quantity": qty_out(change.new_quantity),
            },
        )
        return dispatch

    dispatch = run_stock_operation(
        db,
        operation,
        item_ids=lambda: [payload.item_id],
        on_integrity_error=_duplicate_document_error,
    )
    db.refresh(dispatch)
    return dispatch


def update_dispatch(db: Session, dispatch_id: str, payload: DispatchUpdate, *, actor_id: str) -> Dispatch:
    fields = payload.model_dump(exclude_unset=True)
    plan_item_ids = _record_item_ids(db, Dispatch, dispatch_id, fields.get("item_id"))

    def field_or(name: str, current):
        value = fields.get(name)
        return current if value is None else value

    def operation(unit: StockUnit) -> Dispatch:
        record = _lock_record(db, Dispatch, dispatch_id)
        new_item_id = fields.get("item_id") or record.item_id
        items = unit.lock_items({record.item_id, new_item_id})
        _check_still_locked(record, set(items))

        old_item, new_item = items[record.item_id], items[new_item_id]
        same_item = new_item.id == old_item.id
        if not same_item and not new_item.active:
            raise InvalidItem("Invalid or inactive item", details={"item_id": new_item_id})

        customer_id = fields.get("customer_id") or record.counterparty_id
        document_no = fields.get("document_no") or record.document_no
        if customer_id != record.counterparty_id:
            _require_counterparty(db, customer_id, "customer")
        if customer_id != record.counterparty_id or document_no != record.document_no:
            _ensure_document_available(
                db,
                Dispatch,
                counterparty_id=customer_id,
                document_no=document_no,
                exclude_id=record.id,
            )

        old_approved = to_qty(record.approved_qty)
        # Stock on hand as if this dispatch had never happened.
        on_hand = to_qty(new_item.current_quantity) + (old_approved if same_item else 0)
        quantities = resolve_dispatch(
            approved_qty=field_or("approved_qty", record.approved_qty),
            return_qty=field_or("return_qty", record.customer_return_qty),
            reject_qty=field_or("reject_qty", record.reject_qty),
            on_hand=on_hand,
        )

        before = _dispatch_snapshot(record)
        unit.apply_edit(old_item, -old_approved, new_item, -quantities.approved_qty)

        record.item_id = new_item.id
        record.counterparty_id = customer_id
        record.document_no = document_no
        record.approved_qty = quantities.approved_qty
        record.customer_return_qty = quantities.return_qty
        record.reject_qty = quantities.reject_qty
        record.retained_qty = quantities.retained_qty
        record.total_qty = quantities.total_qty
        rate = fields["rate"] if "rate" in fields else record.rate
        record.rate = rate
        record.total_amount = line_amount(rate, quantities.approved_qty)
        if fields.get("movement_date") is not None:
            record.movement_date = fields["movement_date"]
        for name in ("return_reason", "reject_reason", "remarks"):
            if name in fields:
                setattr(record, name, fields[name])

        log_audit_event(
            db,
            actor_id=actor_id,
            action="dispatch.update",
            target_type="dispatch",
            target_id=record.id,
            item_id=new_item.id,
            metadata_json={
                "before": before,
                "after": _dispatch_snapshot(record),
                "quantities": _change_summary(unit),
            },
        )
        return record

    dispatch = run_stock_operation(
        db,
        operation,
        item_ids=plan_item_ids,
        on_integrity_error=_duplicate_document_error,
    )
    db.refresh(dispatch)
    return dispatch


def delete_dispatch(db: Session, dispatch_id: str, *, actor_id: str) -> None:
    def operation(unit: StockUnit) -> None:
        record = _lock_record(db, Dispatch, dispatch_id)
        item = unit.lock_item(record.item_id, require_active=False)
        _check_still_locked(record, {item.id})

        change = unit.reverse(item, -to_qty(record.approved_qty))
        log_audit_event(
            db,
            actor_id=actor_id,
            action="dispatch.delete",
            target_type="dispatch",
            target_id=record.id,
            item_id=item.id,
            metadata_json={
                "before": _dispatch_snapshot(record),
                "previous_quantity": qty_out(change.previous_quantity),
                "new_quantity": qty_out(change.new_quantity),
            },
        )
        db.delete(record)

    run_stock_operation(db, operation, item_ids=_record_item_ids(db, Dispatch, dispatch_id))


def _dispatch_snapshot(record: Dispatch) -> dict[str, Any]:
    return {
        "item_id": record.item_id,
        "customer_id": record.counterparty_id,
        "document_no": record.document_no,
        "movement_date": record.movement_date.isoformat(),
        "approved_qty": qty_out(record.approved_qty),
        "return_qty": qty_out(record.customer_return_qty),
        "reject_qty": qty_out(record.reject_qty),
        "retained_qty": qty_out(record.retained_qty),
        "total_qty": qty_out(record.total_qty),
        "total_amount": amount_out(record.total_amount),
    }


# Adjustments


def adjust_stock(db: Session, payload: StockAdjustmentCreate, *, actor_id: str) -> StockAdjustment:
    def operation(unit: StockUnit) -> StockAdjustment:
        item = unit.lock_item(payload.item_id)
        change = unit.apply(item, payload.signed_delta)
        adjustment = StockAdjustment(
            id=generate_shortuuid(),
            item_id=item.id,
            movement_date=payload.movement_date or utc_now().date(),
            signed_delta=change.delta,
            reason=payload.reason,
            previous_quantity=change.previous_quantity,
            new_quantity=change.new_quantity,
            actor_id=actor_id,
        )
        db.add(adjustment)
        log_audit_event(
            db,
            actor_id=actor_id,
            action="stock.adjust",
            target_type="stock_adjustment",
            target_id=adjustment.id,
            item_id=item.id,
            metadata_json={
                "signed_delta": qty_out(change.delta),
                "reason": payload.reason,
                "previous_quantity": qty_out(change.previous_quantity),
                "new_quantity": qty_out(change.new_quantity),
            },
        )
        return adjustment

    adjustment = run_stock_operation(db, operation, item_ids=lambda: [payload.item_id])
    db.refresh(adjustment)
    return adjustment


def list_adjustments(db: Session, item_id: str) -> list[StockAdjustment]:
    return list(
        db.execute(
            select(StockAdjustment)
            .where(StockAdjustment.item_id == item_id)
            .order_by(StockAdjustment.movement_date.desc(), StockAdjustment.created_at.desc())
        ).scalars()
    )
