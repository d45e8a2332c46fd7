from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_actor_id, get_db
from stockledger.core.quantities import qty_out
from stockledger.models.item import Item
from stockledger.schemas.common import DeletedOut
from stockledger.schemas.item import CategoryListOut, ItemCreate, ItemListOut, ItemOut, ItemUpdate
from stockledger.services import registry_service

router = APIRouter(prefix="/items", tags=["items"])


def _item_out(item: Item) -> ItemOut:
    return ItemOut(
        id=item.id,
        name=item.name,
        description=item.description,
        category=item.category,
        unit=item.unit,
        current_quantity=qty_out(item.current_quantity),
        minimum_quantity=qty_out(item.minimum_quantity),
        is_low_stock=item.is_low_stock,
        active=item.active,
        created_by=item.created_by,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


@router.post(
    "",
    response_model=ItemOut,
    status_code=status.HTTP_201_CREATED,
    summary="Register an item",
    responses=error_responses(401, 422, 500),
)
def create_item(
    payload: ItemCreate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    item = registry_service.create_item(db, payload, actor_id=actor_id)
    return _item_out(item)


@router.get(
    "",
    response_model=ItemListOut,
    summary="List items",
    responses=error_responses(422, 500),
)
def list_items(
    active_only: bool = Query(default=False),
    category: str | None = Query(default=None, max_length=50),
    db: Session = Depends(get_db),
):
    items = registry_service.list_items(db, active_only=active_only, category=category)
    return ItemListOut(items=[_item_out(item) for item in items])


@router.get(
    "/categories",
    response_model=CategoryListOut,
    summary="Distinct categories of active items",
    responses=error_responses(500),
)
def list_categories(db: Session = Depends(get_db)):
    return CategoryListOut(items=registry_service.list_categories(db))


@router.get(
    "/{item_id}",
    response_model=ItemOut,
    summary="Get an item",
    responses=error_responses(404, 500),
)
def get_item(item_id: str, db: Session = Depends(get_db)):
    return _item_out(registry_service.get_item(db, item_id))


@router.patch(
    "/{item_id}",
    response_model=ItemOut,
    summary="Update descriptive fields or deactivate an item",
    responses=error_responses(401, 404, 409, 422, 500),
)
def update_item(
    item_id: str,
    payload: ItemUpdate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    item = registry_service.update_item(db, item_id, payload, actor_id=actor_id)
    return _item_out(item)


@router.delete(
    "/{item_id}",
    response_model=DeletedOut,
    summary="Delete an item without movements",
    responses=error_responses(401, 404, 409, 500),
)
def delete_item(
    item_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    registry_service.delete_item(db, item_id, actor_id=actor_id)
    return DeletedOut(id=item_id)
