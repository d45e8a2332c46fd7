import os
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")

import stockledger.models  # noqa: F401
from stockledger.core.config import settings
from stockledger.core.deps import get_db
from stockledger.db.base import Base
from stockledger.main import app
from stockledger.schemas.counterparty import CounterpartyCreate
from stockledger.schemas.item import ItemCreate
from stockledger.services import registry_service
from stockledger.services.stock_mutator import item_locks

ACTOR_ID = "clerk-1"


def _memory_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture()
def test_context():
    engine = _memory_engine()
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client, session_local

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
    item_locks.clear()


@pytest.fixture()
def db_session():
    engine = _memory_engine()
    Base.metadata.create_all(bind=engine)
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        item_locks.clear()


@pytest.fixture()
def file_sessions(tmp_path):
    """Session factory over a file-backed SQLite database shared by several threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()
    item_locks.clear()


@pytest.fixture()
def fast_retries(monkeypatch):
    monkeypatch.setattr(settings, "stock_write_backoff_seconds", 0)
    return settings


def seed_ledger(db) -> SimpleNamespace:
    item = registry_service.create_item(
        db,
        ItemCreate(name="Brake drum casting", category="castings", minimum_quantity=20),
        actor_id=ACTOR_ID,
    )
    supplier = registry_service.create_counterparty(
        db, CounterpartyCreate(kind="supplier", name="Shree Foundry Works"), actor_id=ACTOR_ID
    )
    other_supplier = registry_service.create_counterparty(
        db, CounterpartyCreate(kind="supplier", name="Deccan Alloys"), actor_id=ACTOR_ID
    )
    customer = registry_service.create_counterparty(
        db, CounterpartyCreate(kind="customer", name="Apex Axles"), actor_id=ACTOR_ID
    )
    return SimpleNamespace(
        db=db,
        item_id=item.id,
        supplier_id=supplier.id,
        other_supplier_id=other_supplier.id,
        customer_id=customer.id,
    )


@pytest.fixture()
def ledger(db_session):
    return seed_ledger(db_session)


@pytest.fixture()
def file_ledger(file_sessions):
    with file_sessions() as db:
        seeded = seed_ledger(db)
    seeded.db = None
    seeded.sessions = file_sessions
    return seeded
