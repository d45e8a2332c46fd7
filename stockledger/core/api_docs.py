from stockledger.core import errors
from stockledger.schemas.common import ErrorOut

_DOMAIN_ERRORS: tuple[type[errors.StockLedgerError], ...] = (
    errors.ValidationError,
    errors.DuplicateDocument,
    errors.InsufficientStock,
    errors.InvalidItem,
    errors.InvalidCounterparty,
    errors.NotFound,
    errors.ItemInUse,
    errors.ConcurrencyConflict,
)

_MESSAGES: dict[str, str] = {
    "validation_error": "Validation failed",
    "duplicate_document": "Document number already exists for this counterparty",
    "insufficient_stock": "Insufficient stock. Available: 70.000, Required: 80.000",
    "invalid_item": "Invalid or inactive item",
    "invalid_counterparty": "Invalid or inactive supplier",
    "not_found": "Resource not found",
    "item_in_use": "Item has stock movements and cannot be deleted. Deactivate it instead.",
    "concurrency_conflict": "Item was modified concurrently, please retry",
    "unauthorized": "Missing actor identity",
    "internal_error": "Internal server error",
}

_TRANSPORT_CODES: dict[int, tuple[str, ...]] = {
    401: ("unauthorized",),
    422: ("validation_error",),
    500: ("internal_error",),
}


def _codes_for(status_code: int) -> list[str]:
    codes = [error.code for error in _DOMAIN_ERRORS if error.status_code == status_code]
    for code in _TRANSPORT_CODES.get(status_code, ()):
        if code not in codes:
            codes.append(code)
    return codes or ["http_error"]


def error_responses(*status_codes: int) -> dict[int, dict]:
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        codes = _codes_for(status_code)
        responses[status_code] = {
            "model": ErrorOut,
            "description": ", ".join(codes),
            "content": {
                "application/json": {
                    "examples": {
                        code: {
                            "value": {
                                "error": {
                                    "code": code,
                                    "message": _MESSAGES.get(code, "HTTP error"),
                                    "request_id": "request-id",
                                    "path": "/example",
                                    "details": None,
                                }
                            }
                        }
                        for code in codes
                    }
                }
            },
        }
    return responses
