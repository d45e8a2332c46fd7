from sqlalchemy import exists, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from stockledger.core.errors import ConcurrencyConflict, ItemInUse, NotFound
from stockledger.core.id_utils import generate_shortuuid
from stockledger.core.quantities import ZERO_QTY, qty_out
from stockledger.models.counterparty import Counterparty
from stockledger.models.item import Item
from stockledger.models.movement import Dispatch, Receipt, StockAdjustment
from stockledger.schemas.counterparty import CounterpartyCreate, CounterpartyUpdate
from stockledger.schemas.item import ItemCreate, ItemUpdate
from stockledger.services.audit_service import log_audit_event
from stockledger.services.stock_mutator import item_locks


def create_item(db: Session, payload: ItemCreate, *, actor_id: str) -> Item:
    item = Item(
        id=generate_shortuuid(),
        name=payload.name,
        description=payload.description,
        category=payload.category,
        unit=payload.unit,
        current_quantity=ZERO_QTY,
        minimum_quantity=payload.minimum_quantity,
        active=True,
        created_by=actor_id,
    )
    db.add(item)
    log_audit_event(
        db,
        actor_id=actor_id,
        action="item.create",
        target_type="item",
        target_id=item.id,
        item_id=item.id,
        metadata_json={"name": item.name, "category": item.category, "unit": item.unit},
    )
    db.commit()
    db.refresh(item)
    return item


def get_item(db: Session, item_id: str) -> Item:
    item = db.execute(select(Item).where(Item.id == item_id)).scalar_one_or_none()
    if not item:
        raise NotFound("Item not found", details={"item_id": item_id})
    return item


def list_items(
    db: Session,
    *,
    active_only: bool = False,
    category: str | None = None,
) -> list[Item]:
    stmt = select(Item)
    if active_only:
        stmt = stmt.where(Item.active.is_(True))
    if category:
        stmt = stmt.where(Item.category == category.strip())
    return list(db.execute(stmt.order_by(Item.category.asc(), Item.name.asc())).scalars())


def list_categories(db: Session) -> list[str]:
    return list(
        db.execute(
            select(Item.category).where(Item.active.is_(True)).distinct().order_by(Item.category.asc())
        ).scalars()
    )


def update_item(db: Session, item_id: str, payload: ItemUpdate, *, actor_id: str) -> Item:
    """Descriptive fields and the active flag only; current_quantity is never touched here."""
    updates = payload.model_dump(exclude_unset=True)
    try:
        with item_locks.hold([item_id]):
            item = db.execute(
                select(Item).where(Item.id == item_id).execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if not item:
                raise NotFound("Item not found", details={"item_id": item_id})

            for field in ("name", "category", "unit", "minimum_quantity", "active"):
                if field in updates and updates[field] is not None:
                    setattr(item, field, updates[field])
            if "description" in updates:
                item.description = updates["description"]

            changes = {
                key: qty_out(value) if key == "minimum_quantity" else value
                for key, value in updates.items()
            }
            log_audit_event(
                db,
                actor_id=actor_id,
                action="item.update",
                target_type="item",
                target_id=item.id,
                item_id=item.id,
                metadata_json={"changes": changes},
            )
            db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrencyConflict("Item was modified concurrently, please retry") from exc
    except Exception:
        db.rollback()
        raise

    db.refresh(item)
    return item


def _item_has_movements(db: Session, item_id: str) -> bool:
    return bool(
        db.execute(
            select(
                or_(
                    exists().where(Receipt.item_id == item_id),
                    exists().where(Dispatch.item_id == item_id),
                    exists().where(StockAdjustment.item_id == item_id),
                )
            )
        ).scalar()
    )


def delete_item(db: Session, item_id: str, *, actor_id: str) -> None:
    try:
        with item_locks.hold([item_id]):
            item = get_item(db, item_id)
            if _item_has_movements(db, item_id):
                raise ItemInUse(
                    "Item has stock movements and cannot be deleted. Deactivate it instead.",
                    details={"item_id": item_id},
                )
            log_audit_event(
                db,
                actor_id=actor_id,
                action="item.delete",
                target_type="item",
                target_id=item.id,
                item_id=item.id,
                metadata_json={"name": item.name},
            )
            db.delete(item)
            db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrencyConflict("Item was modified concurrently, please retry") from exc
    except Exception:
        db.rollback()
        raise


def create_counterparty(db: Session, payload: CounterpartyCreate, *, actor_id: str) -> Counterparty:
    counterparty = Counterparty(
        id=generate_shortuuid(),
        kind=payload.kind,
        name=payload.name,
        contact_person=payload.contact_person,
        email=payload.email,
        phone=payload.phone,
        address=payload.address,
        active=True,
        created_by=actor_id,
    )
    db.add(counterparty)
    log_audit_event(
        db,
        actor_id=actor_id,
        action=f"{payload.kind}.create",
        target_type="counterparty",
        target_id=counterparty.id,
        metadata_json={"name": counterparty.name},
    )
    db.commit()
    db.refresh(counterparty)
    return counterparty


def get_counterparty(db: Session, counterparty_id: str) -> Counterparty:
    counterparty = db.execute(
        select(Counterparty).where(Counterparty.id == counterparty_id)
    ).scalar_one_or_none()
    if not counterparty:
        raise NotFound("Counterparty not found", details={"counterparty_id": counterparty_id})
    return counterparty


def list_counterparties(
    db: Session,
    *,
    kind: str | None = None,
    active_only: bool = False,
) -> list[Counterparty]:
    stmt = select(Counterparty)
    if kind:
        stmt = stmt.where(Counterparty.kind == kind)
    if active_only:
        stmt = stmt.where(Counterparty.active.is_(True))
    return list(db.execute(stmt.order_by(Counterparty.name.asc())).scalars())


def update_counterparty(
    db: Session,
    counterparty_id: str,
    payload: CounterpartyUpdate,
    *,
    actor_id: str,
) -> Counterparty:
    counterparty = get_counterparty(db, counterparty_id)
    updates = payload.model_dump(exclude_unset=True)
    for field, value in updates.items():
        if field in {"name", "active"} and value is None:
            continue
        setattr(counterparty, field, value)

    log_audit_event(
        db,
        actor_id=actor_id,
        action=f"{counterparty.kind}.update",
        target_type="counterparty",
        target_id=counterparty.id,
        metadata_json={"changes": updates},
    )
    db.commit()
    db.refresh(counterparty)
    return counterparty
