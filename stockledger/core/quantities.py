from decimal import Decimal, ROUND_HALF_UP

from stockledger.core.config import settings
from stockledger.core.errors import ValidationError

QTY_QUANT = Decimal(1).scaleb(-settings.quantity_decimal_places)
ZERO_QTY = Decimal(0).quantize(QTY_QUANT)

# Largest values the Numeric(14, 3), Numeric(14, 2) and Numeric(18, 2) columns hold.
MAX_QTY = Decimal("99999999999.999")
MAX_RATE = Decimal("999999999999.99")
MAX_AMOUNT = Decimal("9999999999999999.99")

AMOUNT_QUANT = Decimal("0.01")


def to_qty(value: Decimal | int | float | str | None) -> Decimal:
    if value is None:
        return ZERO_QTY
    return Decimal(str(value)).quantize(QTY_QUANT, rounding=ROUND_HALF_UP)


def qty_out(value: Decimal | None) -> float:
    return float(to_qty(value))


def to_amount(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(AMOUNT_QUANT, rounding=ROUND_HALF_UP)


def amount_out(value: Decimal | None) -> float | None:
    return float(to_amount(value)) if value is not None else None


def line_amount(rate: Decimal | None, quantity: Decimal) -> Decimal | None:
    """rate x quantity, or None when no rate was recorded."""
    if rate is None:
        return None
    amount = to_amount(to_amount(rate) * to_qty(quantity))
    if amount > MAX_AMOUNT:
        raise ValidationError(
            f"Total amount exceeds the maximum of {MAX_AMOUNT}",
            details={"rate": float(rate), "quantity": float(quantity)},
        )
    return amount
