from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockledger.core.api_docs import error_responses
from stockledger.core.deps import get_actor_id, get_db
from stockledger.models.counterparty import Counterparty
from stockledger.schemas.counterparty import (
    CounterpartyCreate,
    CounterpartyKind,
    CounterpartyListOut,
    CounterpartyOut,
    CounterpartyUpdate,
)
from stockledger.schemas.report import CounterpartyStatsOut
from stockledger.services import registry_service, report_service

router = APIRouter(prefix="/counterparties", tags=["counterparties"])


def _counterparty_out(counterparty: Counterparty) -> CounterpartyOut:
    return CounterpartyOut(
        id=counterparty.id,
        kind=counterparty.kind,
        name=counterparty.name,
        contact_person=counterparty.contact_person,
        email=counterparty.email,
        phone=counterparty.phone,
        address=counterparty.address,
        active=counterparty.active,
        created_at=counterparty.created_at,
    )


@router.post(
    "",
    response_model=CounterpartyOut,
    status_code=status.HTTP_201_CREATED,
    summary="Register a supplier or customer",
    responses=error_responses(401, 422, 500),
)
def create_counterparty(
    payload: CounterpartyCreate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    counterparty = registry_service.create_counterparty(db, payload, actor_id=actor_id)
    return _counterparty_out(counterparty)


@router.get(
    "",
    response_model=CounterpartyListOut,
    summary="List suppliers and customers",
    responses=error_responses(422, 500),
)
def list_counterparties(
    kind: CounterpartyKind | None = Query(default=None),
    active_only: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    counterparties = registry_service.list_counterparties(db, kind=kind, active_only=active_only)
    return CounterpartyListOut(items=[_counterparty_out(c) for c in counterparties])


@router.get(
    "/{counterparty_id}",
    response_model=CounterpartyOut,
    summary="Get a supplier or customer",
    responses=error_responses(404, 500),
)
def get_counterparty(counterparty_id: str, db: Session = Depends(get_db)):
    return _counterparty_out(registry_service.get_counterparty(db, counterparty_id))


@router.patch(
    "/{counterparty_id}",
    response_model=CounterpartyOut,
    summary="Update or deactivate a supplier or customer",
    responses=error_responses(401, 404, 422, 500),
)
def update_counterparty(
    counterparty_id: str,
    payload: CounterpartyUpdate,
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    counterparty = registry_service.update_counterparty(
        db, counterparty_id, payload, actor_id=actor_id
    )
    return _counterparty_out(counterparty)


@router.get(
    "/{counterparty_id}/stats",
    response_model=CounterpartyStatsOut,
    summary="Movement totals and top items for a supplier or customer",
    responses=error_responses(404, 500),
)
def get_counterparty_stats(counterparty_id: str, db: Session = Depends(get_db)):
    return report_service.counterparty_stats(db, counterparty_id)
