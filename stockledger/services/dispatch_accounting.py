from dataclasses import dataclass
from decimal import Decimal

from stockledger.core.errors import InsufficientStock, ValidationError
from stockledger.core.quantities import ZERO_QTY, to_qty


@dataclass(frozen=True)
class DispatchQuantities:
    approved_qty: Decimal
    return_qty: Decimal
    reject_qty: Decimal
    retained_qty: Decimal
    total_qty: Decimal


def resolve_dispatch(
    *,
    approved_qty: Decimal,
    return_qty: Decimal | None,
    reject_qty: Decimal | None,
    on_hand: Decimal,
) -> DispatchQuantities:
    """
    Derive retained and total quantities for a dispatch.

    on_hand is the item quantity before this dispatch takes effect. For an
    edit on the same item the caller passes current_quantity + old approved_qty.
    Checks run in a fixed order: positive approved quantity, return + reject
    within approved, approved within on_hand.
    """
    approved = to_qty(approved_qty)
    returned = to_qty(return_qty)
    rejected = to_qty(reject_qty)
    available = to_qty(on_hand)

    if approved <= 0:
        raise ValidationError(
            "approved_qty must be greater than zero",
            details={"approved_qty": float(approved)},
        )
    if returned < 0 or rejected < 0:
        raise ValidationError("return_qty and reject_qty cannot be negative")
    if returned + rejected > approved:
        raise ValidationError(
            "return_qty + reject_qty cannot exceed approved_qty",
            details={
                "approved_qty": float(approved),
                "return_qty": float(returned),
                "reject_qty": float(rejected),
            },
        )
    if approved > available:
        raise InsufficientStock(
            f"Insufficient stock. Available: {available}, Required: {approved}",
            details={"available": float(available), "required": float(approved)},
        )

    retained = max(available - approved, ZERO_QTY)
    return DispatchQuantities(
        approved_qty=approved,
        return_qty=returned,
        reject_qty=rejected,
        retained_qty=retained,
        total_qty=approved + retained,
    )
