from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stockledger.core.quantities import MAX_QTY, MAX_RATE, to_amount, to_qty


def _clean_document_no(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("document_no cannot be empty")
    return cleaned


def _clean_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _quantize(value: Decimal | None) -> Decimal | None:
    return to_qty(value) if value is not None else None


def _quantize_rate(value: Decimal | None) -> Decimal | None:
    return to_amount(value) if value is not None else None


class ReceiptCreate(BaseModel):
    item_id: str = Field(min_length=1, max_length=36)
    supplier_id: str = Field(min_length=1, max_length=36)
    document_no: str = Field(max_length=50)
    quantity: Decimal = Field(gt=0, le=MAX_QTY)
    rate: Optional[Decimal] = Field(default=None, ge=0, le=MAX_RATE)
    movement_date: Optional[date] = None
    remarks: Optional[str] = Field(default=None, max_length=500)

    @field_validator("document_no")
    @classmethod
    def normalize_document_no(cls, value: str | None) -> str | None:
        return _clean_document_no(value)

    @field_validator("remarks")
    @classmethod
    def normalize_remarks(cls, value: str | None) -> str | None:
        return _clean_optional_text(value)

    @field_validator("quantity")
    @classmethod
    def quantize_quantity(cls, value: Decimal) -> Decimal:
        quantized = to_qty(value)
        if quantized <= 0:
            raise ValueError("quantity must be greater than zero")
        return quantized

    @field_validator("rate")
    @classmethod
    def quantize_rate(cls, value: Decimal | None) -> Decimal | None:
        return _quantize_rate(value)

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "item_id": "item-id-here",
                "supplier_id": "supplier-id-here",
                "document_no": "CH-001",
                "quantity": 100,
                "rate": 12.5,
                "movement_date": "2026-01-05",
            }
        },
    )


class ReceiptUpdate(BaseModel):
    item_id: Optional[str] = Field(default=None, min_length=1, max_length=36)
    supplier_id: Optional[str] = Field(default=None, min_length=1, max_length=36)
    document_no: Optional[str] = Field(default=None, max_length=50)
    quantity: Optional[Decimal] = Field(default=None, gt=0, le=MAX_QTY)
    rate: Optional[Decimal] = Field(default=None, ge=0, le=MAX_RATE)
    movement_date: Optional[date] = None
    remarks: Optional[str] = Field(default=None, max_length=500)

    @field_validator("document_no")
    @classmethod
    def normalize_document_no(cls, value: str | None) -> str | None:
        return _clean_document_no(value)

    @field_validator("remarks")
    @classmethod
    def normalize_remarks(cls, value: str | None) -> str | None:
        return _clean_optional_text(value)

    @field_validator("quantity")
    @classmethod
    def quantize_quantity(cls, value: Decimal | None) -> Decimal | None:
        quantized = _quantize(value)
        if quantized is not None and quantized <= 0:
            raise ValueError("quantity must be greater than zero")
        return quantized

    @model_validator(mode="after")
    def validate_any_field_present(self) -> "ReceiptUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self

    @field_validator("rate")
    @classmethod
    def quantize_rate(cls, value: Decimal | None) -> Decimal | None:
        return _quantize_rate(value)

    model_config = ConfigDict(extra="forbid")


class ReceiptOut(BaseModel):
    id: str
    item_id: str
    supplier_id: str
    document_no: str
    movement_date: date
    quantity_received: float
    rate: float | None = None
    total_amount: float | None = None
    remarks: str | None = None
    created_by: str
    created_at: datetime
    updated_at: datetime


class DispatchCreate(BaseModel):
    """
    approved_qty is what leaves inventory. return_qty and reject_qty are
    classifications inside approved_qty; cross-field rules are enforced by
    the dispatch accounting resolver so they also hold on edits.
    """

    item_id: str = Field(min_length=1, max_length=36)
    customer_id: str = Field(min_length=1, max_length=36)
    document_no: str = Field(max_length=50)
    approved_qty: Decimal = Field(ge=0, le=MAX_QTY)
    return_qty: Decimal = Field(default=Decimal("0"), ge=0, le=MAX_QTY)
    reject_qty: Decimal = Field(default=Decimal("0"), ge=0, le=MAX_QTY)
    rate: Optional[Decimal] = Field(default=None, ge=0, le=MAX_RATE)
    movement_date: Optional[date] = None
    return_reason: Optional[str] = Field(default=None, max_length=500)
    reject_reason: Optional[str] = Field(default=None, max_length=500)
    remarks: Optional[str] = Field(default=None, max_length=500)

    @field_validator("document_no")
    @classmethod
    def normalize_document_no(cls, value: str | None) -> str | None:
        return _clean_document_no(value)

    @field_validator("return_reason", "reject_reason", "remarks")
    @classmethod
    def normalize_optional_text(cls, value: str | None) -> str | None:
        return _clean_optional_text(value)

    @field_validator("approved_qty", "return_qty", "reject_qty")
    @classmethod
    def quantize_quantities(cls, value: Decimal) -> Decimal:
        return to_qty(value)

    @field_validator("rate")
    @classmethod
    def quantize_rate(cls, value: Decimal | None) -> Decimal | None:
        return _quantize_rate(value)

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "item_id": "item-id-here",
                "customer_id": "customer-id-here",
                "document_no": "DC-2041",
                "approved_qty": 30,
                "return_qty": 5,
                "reject_qty": 3,
                "rate": 40,
                "movement_date": "2026-01-06",
                "reject_reason": "blow holes",
            }
        },
    )


class DispatchUpdate(BaseModel):
    item_id: Optional[str] = Field(default=None, min_length=1, max_length=36)
    customer_id: Optional[str] = Field(default=None, min_length=1, max_length=36)
    document_no: Optional[str] = Field(default=None, max_length=50)
    approved_qty: Optional[Decimal] = Field(default=None, ge=0, le=MAX_QTY)
    return_qty: Optional[Decimal] = Field(default=None, ge=0, le=MAX_QTY)
    reject_qty: Optional[Decimal] = Field(default=None, ge=0, le=MAX_QTY)
    rate: Optional[Decimal] = Field(default=None, ge=0, le=MAX_RATE)
    movement_date: Optional[date] = None
    return_reason: Optional[str] = Field(default=None, max_length=500)
    reject_reason: Optional[str] = Field(default=None, max_length=500)
    remarks: Optional[str] = Field(default=None, max_length=500)

    @field_validator("document_no")
    @classmethod
    def normalize_document_no(cls, value: str | None) -> str | None:
        return _clean_document_no(value)

    @field_validator("return_reason", "reject_reason", "remarks")
    @classmethod
    def normalize_optional_text(cls, value: str | None) -> str | None:
        return _clean_optional_text(value)

    @field_validator("approved_qty", "return_qty", "reject_qty")
    @classmethod
    def quantize_quantities(cls, value: Decimal | None) -> Decimal | None:
        return _quantize(value)

    @model_validator(mode="after")
    def validate_any_field_present(self) -> "DispatchUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self

    @field_validator("rate")
    @classmethod
    def quantize_rate(cls, value: Decimal | None) -> Decimal | None:
        return _quantize_rate(value)

    model_config = ConfigDict(extra="forbid")


class DispatchOut(BaseModel):
    id: str
    item_id: str
    customer_id: str
    document_no: str
    movement_date: date
    approved_qty: float
    return_qty: float
    reject_qty: float
    retained_qty: float
    total_qty: float
    rate: float | None = None
    total_amount: float | None = None
    return_reason: str | None = None
    reject_reason: str | None = None
    remarks: str | None = None
    created_by: str
    created_at: datetime
    updated_at: datetime


class StockAdjustmentCreate(BaseModel):
    item_id: str = Field(min_length=1, max_length=36)
    signed_delta: Decimal = Field(
        ...,
        ge=-MAX_QTY,
        le=MAX_QTY,
        description="Positive adds stock, negative removes stock. Cannot be zero."
    )
    reason: Optional[str] = Field(default=None, max_length=500)
    movement_date: Optional[date] = None

    @field_validator("reason")
    @classmethod
    def normalize_reason(cls, value: str | None) -> str | None:
        return _clean_optional_text(value)

    @field_validator("signed_delta")
    @classmethod
    def validate_non_zero_delta(cls, value: Decimal) -> Decimal:
        quantized = to_qty(value)
        if quantized == 0:
            raise ValueError("signed_delta cannot be zero")
        return quantized

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "item_id": "item-id-here",
                "signed_delta": -10,
                "reason": "damage",
            }
        },
    )


class StockAdjustmentOut(BaseModel):
    id: str
    item_id: str
    signed_delta: float
    reason: str | None = None
    movement_date: date
    previous_quantity: float
    new_quantity: float
    actor_id: str
    created_at: datetime


class StockAdjustmentListOut(BaseModel):
    items: list[StockAdjustmentOut]
