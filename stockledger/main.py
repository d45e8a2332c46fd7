from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from stockledger.core.errors import StockLedgerError
from stockledger.core.observability import (
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    stock_ledger_exception_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from stockledger.core.config import settings
from stockledger.db.session import engine
from stockledger.routers import counterparties, dispatches, inventory, items, receipts, reports

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Stock ledger API: receipts, dispatches and manual adjustments keep each "
        "item's quantity on hand consistent, and reporting endpoints reconstruct "
        "opening quantities and running balances from the movement log.\n\n"
        "Write endpoints expect the caller's identity in the `X-Actor-Id` header."
    ),
    swagger_ui_parameters={
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "items", "description": "Item registry."},
        {"name": "counterparties", "description": "Suppliers and customers."},
        {"name": "receipts", "description": "Goods received; each one adds to stock."},
        {"name": "dispatches", "description": "Goods dispatched; the approved quantity leaves stock."},
        {"name": "inventory", "description": "Adjustments, stock levels, opening quantities, history and verification."},
        {"name": "reports", "description": "Low stock, stock statement and reject alerts."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(StockLedgerError, stock_ledger_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins
env_value = settings.env.lower().strip()
allow_origin_regex = settings.cors_origin_regex

if not allow_origin_regex and env_value in {"dev", "development"}:
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(items.router)
app.include_router(counterparties.router)
app.include_router(receipts.router)
app.include_router(dispatches.router)
app.include_router(inventory.router)
app.include_router(reports.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return {"ok": False}
    return {"ok": True}
