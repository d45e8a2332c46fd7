from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockledger.core.id_utils import generate_shortuuid
from stockledger.models.audit_log import AuditLog


def log_audit_event(
    db: Session,
    *,
    actor_id: str,
    action: str,
    target_type: str,
    target_id: str | None = None,
    item_id: str | None = None,
    metadata_json: dict[str, Any] | None = None,
) -> AuditLog:
    event = AuditLog(
        id=generate_shortuuid(),
        actor_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        item_id=item_id,
        metadata_json=metadata_json,
    )
    db.add(event)
    return event


def list_item_audit_events(db: Session, item_id: str, *, limit: int = 100) -> list[AuditLog]:
    return list(
        db.execute(
            select(AuditLog)
            .where(AuditLog.item_id == item_id)
            .order_by(AuditLog.created_at.desc())
            .limit(limit)
        ).scalars()
    )
