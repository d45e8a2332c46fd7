from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from stockledger.core.quantities import MAX_QTY, to_qty

ItemUnit = Literal["pcs", "kg", "g", "l", "ml", "m", "cm", "box", "packet"]


def _clean_required(value: str | None, field_name: str) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        raise ValueError(f"{field_name} cannot be empty")
    return cleaned


class ItemCreate(BaseModel):
    name: str = Field(max_length=100)
    category: str = Field(max_length=50)
    unit: ItemUnit = "pcs"
    description: Optional[str] = Field(default=None, max_length=500)
    minimum_quantity: Decimal = Field(default=Decimal("0"), ge=0, le=MAX_QTY)

    @field_validator("name", "category")
    @classmethod
    def validate_required_text(cls, value: str, info) -> str:
        return _clean_required(value, info.field_name)

    @field_validator("minimum_quantity")
    @classmethod
    def quantize_minimum(cls, value: Decimal) -> Decimal:
        return to_qty(value)

    model_config = ConfigDict(
        extra="forbid",
        json_schema_extra={
            "example": {
                "name": "Brake drum casting",
                "category": "castings",
                "unit": "pcs",
                "minimum_quantity": 20,
            }
        },
    )


class ItemUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    category: Optional[str] = Field(default=None, max_length=50)
    unit: Optional[ItemUnit] = None
    description: Optional[str] = Field(default=None, max_length=500)
    minimum_quantity: Optional[Decimal] = Field(default=None, ge=0, le=MAX_QTY)
    active: Optional[bool] = None

    @field_validator("name", "category")
    @classmethod
    def validate_required_text(cls, value: str | None, info) -> str | None:
        return _clean_required(value, info.field_name)

    @field_validator("minimum_quantity")
    @classmethod
    def quantize_minimum(cls, value: Decimal | None) -> Decimal | None:
        return to_qty(value) if value is not None else None

    @model_validator(mode="after")
    def validate_any_field_present(self) -> "ItemUpdate":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self

    model_config = ConfigDict(extra="forbid")


class ItemOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    category: str
    unit: str
    current_quantity: float
    minimum_quantity: float
    is_low_stock: bool
    active: bool
    created_by: str
    created_at: datetime
    updated_at: datetime


class ItemListOut(BaseModel):
    items: list[ItemOut]


class CategoryListOut(BaseModel):
    items: list[str]
