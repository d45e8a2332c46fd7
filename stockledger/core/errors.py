"""
Domain errors raised by the stock ledger services.

Each error carries a stable ``code`` and the HTTP status the API layer
answers with. Services never swallow them; callers decide whether to
correct input (validation, duplicates, stock) or retry (concurrency).
"""

from typing import Any


class StockLedgerError(Exception):
    code = "stock_ledger_error"
    status_code = 400

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(StockLedgerError):
    code = "validation_error"
    status_code = 422


class DuplicateDocument(StockLedgerError):
    code = "duplicate_document"
    status_code = 409


class InsufficientStock(StockLedgerError):
    code = "insufficient_stock"
    status_code = 409


class InvalidReference(StockLedgerError):
    code = "invalid_reference"
    status_code = 400


class InvalidItem(InvalidReference):
    code = "invalid_item"


class InvalidCounterparty(InvalidReference):
    code = "invalid_counterparty"


class NotFound(StockLedgerError):
    code = "not_found"
    status_code = 404


class ItemInUse(StockLedgerError):
    code = "item_in_use"
    status_code = 409


class ConcurrencyConflict(StockLedgerError):
    code = "concurrency_conflict"
    status_code = 409
