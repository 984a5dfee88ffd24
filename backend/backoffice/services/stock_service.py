# Overview: Service-layer operations for the stock ledger.

"""
Stock Ledger Invariants (authoritative)

- Product.stock_current is the balance; it is changed only by apply_movement.
- An outbound movement never drives the balance below zero: when the quantity
  exceeds the balance the whole movement is refused (no partial debit).
- After every movement:
    balance <= 0                       -> status = out_of_stock
    was out_of_stock and balance > 0   -> status = active
  on_promotion and inactive are never restored automatically.
- Each movement appends a StockMovement row in the same DB transaction.
- There is no dedup key: callers apply a movement at most once per business
  event (sales use Sale.stock_applied_at for that).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..models import Product, StockMovement
from ..models.catalog import PRODUCT_STATUS_ACTIVE, PRODUCT_STATUS_OUT_OF_STOCK
from ..money import to_decimal
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction


DIRECTION_IN = "in"
DIRECTION_OUT = "out"
VALID_DIRECTIONS = {DIRECTION_IN, DIRECTION_OUT}


@dataclass(frozen=True)
class Availability:
    available: bool
    remaining_if_debited: Decimal

    def to_dict(self) -> dict:
        return {"available": self.available, "remaining_if_debited": str(self.remaining_if_debited)}


@dataclass(frozen=True)
class MovementResult:
    previous: Decimal
    new: Decimal
    delta: Decimal

    def to_dict(self) -> dict:
        return {"previous": str(self.previous), "new": str(self.new), "delta": str(self.delta)}


def check_availability(product: Product, quantity) -> Availability:
    """Pure read: would debiting ``quantity`` be allowed?"""
    quantity = to_decimal(quantity, "quantity")
    current = to_decimal(product.stock_current)
    return Availability(available=current >= quantity, remaining_if_debited=current - quantity)


def derive_status(current_status: str, balance: Decimal) -> str:
    if balance <= 0:
        return PRODUCT_STATUS_OUT_OF_STOCK
    if current_status == PRODUCT_STATUS_OUT_OF_STOCK:
        return PRODUCT_STATUS_ACTIVE
    return current_status


def apply_movement(
    product: Product,
    quantity,
    direction: str,
    *,
    reason: str | None = None,
    sale_id: int | None = None,
) -> MovementResult:
    """
    Debit or credit a product inside the caller's transaction. Does not commit.

    Raises:
        ValidationError: unknown direction or non-positive quantity
        InsufficientStockError: outbound quantity larger than the balance
    """
    if direction not in VALID_DIRECTIONS:
        raise ValidationError(
            f"Invalid direction '{direction}'. Must be one of: {', '.join(sorted(VALID_DIRECTIONS))}",
            details={"product_id": product.id, "direction": direction},
        )
    quantity = to_decimal(quantity, "quantity")
    if quantity <= 0:
        raise ValidationError(
            "Movement quantity must be positive",
            details={"product_id": product.id, "quantity": str(quantity)},
        )

    previous = to_decimal(product.stock_current)
    if direction == DIRECTION_OUT:
        if quantity > previous:
            raise InsufficientStockError(
                f"Insufficient stock for product {product.code}",
                details={
                    "product_id": product.id,
                    "requested_quantity": str(quantity),
                    "on_hand": str(previous),
                },
            )
        new = previous - quantity
    else:
        new = previous + quantity

    product.stock_current = new
    product.status = derive_status(product.status, new)

    db.session.add(StockMovement(
        product_id=product.id,
        direction=direction,
        quantity=quantity,
        previous_balance=previous,
        new_balance=new,
        reason=reason,
        sale_id=sale_id,
        occurred_at=utcnow(),
    ))
    db.session.flush()

    current_app.logger.info(
        "Stock %s %s for product %s: %s -> %s", direction, quantity, product.id, previous, new
    )
    return MovementResult(previous=previous, new=new, delta=new - previous)


def get_product_locked(product_id: int) -> Product:
    product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def register_movement(product_id: int, quantity, direction: str, reason: str | None = None) -> MovementResult:
    """Standalone movement (receiving, adjustment) as its own unit of work."""
    def _op():
        product = get_product_locked(product_id)
        return apply_movement(product, quantity, direction, reason=reason)

    return run_in_transaction(_op)


def get_movements(product_id: int, limit: int = 100) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.id.desc())
        .limit(limit)
        .all()
    )
