from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_actor_id, get_db
from stockledger.core.quantities import amount_out, qty_out
from stockledger.models.movement import Dispatch
from stockledger.schemas.common import DeletedOut
from stockledger.schemas.movement import DispatchCreate, DispatchOut, DispatchUpdate
from stockledger.services import movement_service

router = APIRouter(prefix="/dispatches", tags=["dispatches"])


def _dispatch_out(dispatch: Dispatch) -> DispatchOut:
    return DispatchOut(
        id=dispatch.id,
        item_id=dispatch.item_id,
        customer_id=dispatch.counterparty_id,
        document_no=dispatch.document_no,
        movement_date=dispatch.movement_date,
        approved_qty=qty_out(dispatch.approved_qty),
        return_qty=qty_out(dispatch.customer_return_qty),
        reject_qty=qty_out(dispatch.reject_qty),
        retained_qty=qty_out(dispatch.retained_qty),
        total_qty=qty_out(dispatch.total_qty),
        rate=amount_out(dispatch.rate),
        total_amount=amount_out(dispatch.total_amount),
        return_reason=dispatch.return_reason,
        reject_reason=dispatch.reject_reason,
        remarks=dispatch.remarks,
        created_by=dispatch.created_by,
        created_at=dispatch.created_at,
        updated_at=dispatch.updated_at,
    )


@router.post(
    "",
    response_model=DispatchOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record goods dispatched to a customer",
    responses=error_responses(400, 401, 409, 422, 500),
)
def create_dispatch(
    payload: DispatchCreate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    dispatch = movement_service.create_dispatch(db, payload, actor_id=actor_id)
    return _dispatch_out(dispatch)


@router.get(
    "/{dispatch_id}",
    response_model=DispatchOut,
    summary="Get a dispatch",
    responses=error_responses(404, 500),
)
def get_dispatch(dispatch_id: str, db: Session = Depends(get_db)):
    return _dispatch_out(movement_service.get_dispatch(db, dispatch_id))


@router.patch(
    "/{dispatch_id}",
    response_model=DispatchOut,
    summary="Edit a dispatch and rebalance stock",
    responses=error_responses(400, 401, 404, 409, 422, 500),
)
def update_dispatch(
    dispatch_id: str,
    payload: DispatchUpdate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    dispatch = movement_service.update_dispatch(db, dispatch_id, payload, actor_id=actor_id)
    return _dispatch_out(dispatch)


@router.delete(
    "/{dispatch_id}",
    response_model=DeletedOut,
    summary="Delete a dispatch and return its approved quantity to stock",
    responses=error_responses(401, 404, 409, 500),
)
def delete_dispatch(
    dispatch_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    movement_service.delete_dispatch(db, dispatch_id, actor_id=actor_id)
    return DeletedOut(id=dispatch_id)
