from collections.abc import Generator

from fastapi import Header, HTTPException
from sqlalchemy.orm import Session

from stockledger.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_actor_id(
    x_actor_id: str | None = Header(
        default=None,
        alias="X-Actor-Id",
        description="Opaque id of the authenticated actor, supplied by the auth gateway.",
    ),
) -> str:
    actor_id = (x_actor_id or "").strip()
    if not actor_id:
        raise HTTPException(status_code=401, detail="Missing actor identity")
    if len(actor_id) > 64:
        raise HTTPException(status_code=400, detail="Actor identity is too long")
    return actor_id
