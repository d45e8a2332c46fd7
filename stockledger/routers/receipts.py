from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_actor_id, get_db
from stockledger.core.quantities import amount_out, qty_out
from stockledger.models.movement import Receipt
from stockledger.schemas.common import DeletedOut
from stockledger.schemas.movement import ReceiptCreate, ReceiptOut, ReceiptUpdate
from stockledger.services import movement_service

router = APIRouter(prefix="/receipts", tags=["receipts"])


def _receipt_out(receipt: Receipt) -> ReceiptOut:
    return ReceiptOut(
        id=receipt.id,
        item_id=receipt.item_id,
        supplier_id=receipt.counterparty_id,
        document_no=receipt.document_no,
        movement_date=receipt.movement_date,
        quantity_received=qty_out(receipt.quantity_received),
        rate=amount_out(receipt.rate),
        total_amount=amount_out(receipt.total_amount),
        remarks=receipt.remarks,
        created_by=receipt.created_by,
        created_at=receipt.created_at,
        updated_at=receipt.updated_at,
    )


@router.post(
    "",
    response_model=ReceiptOut,
    status_code=status.HTTP_201_CREATED,
    summary="Record goods received from a supplier",
    responses=error_responses(400, 401, 409, 422, 500),
)
def create_receipt(
    payload: ReceiptCreate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    receipt = movement_service.create_receipt(db, payload, actor_id=actor_id)
    return _receipt_out(receipt)


@router.get(
    "/{receipt_id}",
    response_model=ReceiptOut,
    summary="Get a receipt",
    responses=error_responses(404, 500),
)
def get_receipt(receipt_id: str, db: Session = Depends(get_db)):
    return _receipt_out(movement_service.get_receipt(db, receipt_id))


@router.patch(
    "/{receipt_id}",
    response_model=ReceiptOut,
    summary="Edit a receipt and rebalance stock",
    responses=error_responses(400, 401, 404, 409, 422, 500),
)
def update_receipt(
    receipt_id: str,
    payload: ReceiptUpdate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    receipt = movement_service.update_receipt(db, receipt_id, payload, actor_id=actor_id)
    return _receipt_out(receipt)


@router.delete(
    "/{receipt_id}",
    response_model=DeletedOut,
    summary="Delete a receipt and reverse its stock effect",
    responses=error_responses(401, 404, 409, 500),
)
def delete_receipt(
    receipt_id: str,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    movement_service.delete_receipt(db, receipt_id, actor_id=actor_id)
    return DeletedOut(id=receipt_id)
