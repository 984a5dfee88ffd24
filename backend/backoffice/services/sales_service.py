"""
Sales Service - sale aggregate, totals and status state machine

STATE MACHINE:
    pending -> approved -> picking -> invoiced -> shipping -> delivered
    cancelled is reachable from every state except delivered and cancelled.
    invoiced may skip shipping and go straight to delivered.

STOCK:
    pending -> approved (confirmation) debits every line, all-or-nothing.
    -> cancelled credits the debited quantities back.
    Sale.stock_applied_at keeps both at most once per sale.

EDITING:
    Lines and header amounts can only change while the sale is pending.
    Line and sale totals are recomputed on every change before commit.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import IllegalTransitionError, InsufficientStockError, NotFoundError, ValidationError
from ..models import Customer, Product, Sale, SaleLine, StockMovement
from ..models.sales import PAYMENT_METHODS, SALE_TYPES
from ..money import ZERO, to_decimal, to_int
from ..time_utils import parse_iso_datetime, utcnow
from . import catalog_service
from .concurrency import lock_for_update, run_in_transaction
from .pricing import apply_line_totals, apply_sale_totals
from .sequence_service import SALE_SEQUENCE, next_number
from .stock_service import DIRECTION_IN, DIRECTION_OUT, apply_movement, check_availability, get_product_locked


STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_PICKING = "picking"
STATUS_INVOICED = "invoiced"
STATUS_SHIPPING = "shipping"
STATUS_DELIVERED = "delivered"
STATUS_CANCELLED = "cancelled"

SALE_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_APPROVED, STATUS_CANCELLED}),
    STATUS_APPROVED: frozenset({STATUS_PICKING, STATUS_CANCELLED}),
    STATUS_PICKING: frozenset({STATUS_INVOICED, STATUS_CANCELLED}),
    STATUS_INVOICED: frozenset({STATUS_SHIPPING, STATUS_DELIVERED, STATUS_CANCELLED}),
    STATUS_SHIPPING: frozenset({STATUS_DELIVERED, STATUS_CANCELLED}),
    STATUS_DELIVERED: frozenset(),
    STATUS_CANCELLED: frozenset(),
}

VALID_STATUSES = set(SALE_TRANSITIONS)

# Header fields a caller may set on create / update
HEADER_FIELDS = {
    "sale_type",
    "discount_pct",
    "discount_value",
    "surcharge_pct",
    "surcharge_value",
    "freight",
    "payment_method",
    "installments",
    "payment_terms",
    "notes",
    "expected_delivery_at",
}

# Line fields a caller may set on create / update
LINE_FIELDS = {
    "quantity",
    "unit_price",
    "discount_pct",
    "discount_value",
    "surcharge_pct",
    "surcharge_value",
    "cfop",
    "ncm",
    "icms_rate",
    "pis_rate",
    "cofins_rate",
    "notes",
}

_DECIMAL_FIELDS = {
    "quantity",
    "unit_price",
    "discount_pct",
    "discount_value",
    "surcharge_pct",
    "surcharge_value",
    "freight",
    "icms_rate",
    "pis_rate",
    "cofins_rate",
}


# =============================================================================
# STATE MACHINE
# =============================================================================

def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in SALE_TRANSITIONS.get(from_status, frozenset())


def is_cancellable(sale: Sale) -> bool:
    return sale.status not in {STATUS_DELIVERED, STATUS_CANCELLED}


def transition(sale: Sale, target: str) -> Sale:
    """
    Move a sale to ``target`` inside the caller's transaction. Does not commit.

    Raises:
        IllegalTransitionError: target not in the current status' legal set
        InsufficientStockError: confirmation debit exceeds a product balance
    """
    if target not in VALID_STATUSES or not can_transition(sale.status, target):
        raise IllegalTransitionError(
            f"Cannot change sale status from {sale.status} to {target}",
            details={
                "sale_id": sale.id,
                "current_status": sale.status,
                "requested_status": target,
                "allowed": sorted(SALE_TRANSITIONS.get(sale.status, ())),
            },
        )

    if target == STATUS_APPROVED:
        _debit_stock(sale)
    elif target == STATUS_CANCELLED:
        _restore_stock(sale)
        sale.cancelled_at = utcnow()
    elif target == STATUS_DELIVERED:
        sale.delivered_at = utcnow()

    previous = sale.status
    sale.status = target
    current_app.logger.info("Sale %s moved from %s to %s", sale.number, previous, target)
    return sale


def _locked_products(sale: Sale) -> dict[int, Product]:
    # Lock in id order so concurrent confirmations cannot deadlock
    product_ids = sorted({line.product_id for line in sale.lines})
    return {product_id: get_product_locked(product_id) for product_id in product_ids}


def _debit_stock(sale: Sale) -> None:
    if sale.stock_applied_at is not None:
        return
    if not sale.lines:
        raise ValidationError("Cannot confirm a sale with no lines", details={"sale_id": sale.id})

    products = _locked_products(sale)

    # Validate every product before touching any balance
    requested: dict[int, Decimal] = {}
    for line in sale.lines:
        requested[line.product_id] = requested.get(line.product_id, ZERO) + to_decimal(line.quantity)
    for product_id, quantity in requested.items():
        product = products[product_id]
        if not check_availability(product, quantity).available:
            raise InsufficientStockError(
                f"Insufficient stock for product {product.code}",
                details={
                    "sale_id": sale.id,
                    "product_id": product_id,
                    "requested_quantity": str(quantity),
                    "on_hand": str(product.stock_current),
                },
            )

    for line in sale.lines:
        apply_movement(
            products[line.product_id],
            line.quantity,
            DIRECTION_OUT,
            reason=f"Sale {sale.number} line {line.sequence}",
            sale_id=sale.id,
        )
    sale.stock_applied_at = utcnow()


def _restore_stock(sale: Sale) -> None:
    if sale.stock_applied_at is None:
        return
    products = _locked_products(sale)
    for line in sale.lines:
        apply_movement(
            products[line.product_id],
            line.quantity,
            DIRECTION_IN,
            reason=f"Sale {sale.number} cancelled, line {line.sequence}",
            sale_id=sale.id,
        )
    sale.stock_applied_at = None


# =============================================================================
# LOOKUPS
# =============================================================================

def get_sale(sale_id: int, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def _require_pending(sale: Sale, action: str) -> None:
    if sale.status != STATUS_PENDING:
        raise IllegalTransitionError(
            f"Cannot {action} a sale in status {sale.status}",
            details={"sale_id": sale.id, "current_status": sale.status, "required_status": STATUS_PENDING},
        )


# =============================================================================
# HEADER / LINE BUILDING
# =============================================================================

def _clean(fields: dict, allowed: set[str], entity: str) -> dict:
    unknown = set(fields) - allowed
    if unknown:
        raise ValidationError(f"Unknown {entity} fields: {', '.join(sorted(unknown))}", details={"fields": sorted(unknown)})

    cleaned = {}
    for key, value in fields.items():
        if key in _DECIMAL_FIELDS:
            value = to_decimal(value, key)
            if value < 0:
                raise ValidationError(f"{key} cannot be negative", details={"field": key, "value": str(value)})
        cleaned[key] = value
    return cleaned


def _apply_header(sale: Sale, header: dict) -> None:
    header = _clean(header, HEADER_FIELDS, "sale")
    if "sale_type" in header and header["sale_type"] not in SALE_TYPES:
        raise ValidationError(f"Invalid sale_type {header['sale_type']!r}", details={"allowed": sorted(SALE_TYPES)})
    if "payment_method" in header and header["payment_method"] not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment_method {header['payment_method']!r}",
            details={"allowed": sorted(PAYMENT_METHODS)},
        )
    if "installments" in header:
        installments = to_int(header["installments"], "installments")
        if installments < 1:
            raise ValidationError("installments must be at least 1", details={"installments": installments})
        header["installments"] = installments
    if "expected_delivery_at" in header and isinstance(header["expected_delivery_at"], str):
        header["expected_delivery_at"] = parse_iso_datetime(header["expected_delivery_at"])

    for key, value in header.items():
        setattr(sale, key, value)


def _set_line_fields(line: SaleLine, fields: dict) -> None:
    for key, value in fields.items():
        setattr(line, key, value)
    if to_decimal(line.quantity) <= 0:
        raise ValidationError(
            "Line quantity must be greater than zero",
            details={"sale_id": line.sale_id, "sequence": line.sequence, "quantity": str(line.quantity)},
        )
    apply_line_totals(line)


def _build_line(sale: Sale, sequence: int, item: dict) -> SaleLine:
    item = dict(item)
    product_id = item.pop("product_id", None)
    if product_id is None:
        raise ValidationError("product_id is required for every line", details={"sequence": sequence})
    fields = _clean(item, LINE_FIELDS, "line")
    product = catalog_service.get_product(product_id)
    category = product.category

    price = catalog_service.current_price(product)
    line = SaleLine(
        sequence=sequence,
        product_id=product.id,
        product_code=product.code,
        product_description=product.description,
        unit=product.unit,
        unit_price=price,
        original_unit_price=price,
        unit_cost=to_decimal(product.cost_price),
        discount_pct=ZERO,
        discount_value=ZERO,
        surcharge_pct=ZERO,
        surcharge_value=ZERO,
        ncm=product.ncm or (category.default_ncm if category else None),
        icms_rate=_category_default(category, "default_icms_rate"),
        pis_rate=_category_default(category, "default_pis_rate"),
        cofins_rate=_category_default(category, "default_cofins_rate"),
    )
    sale.lines.append(line)
    _set_line_fields(line, fields)
    return line


def _category_default(category, attr: str) -> Decimal:
    if category is None:
        return ZERO
    value = getattr(category, attr)
    return to_decimal(value) if value is not None else ZERO


def _next_sequence(sale: Sale) -> int:
    return max((line.sequence for line in sale.lines), default=0) + 1


# =============================================================================
# OPERATIONS
# =============================================================================

def create_sale(header: dict, items: list[dict]) -> Sale:
    """
    Create a pending sale with its lines and computed totals.

    ``header`` must carry customer_id, seller_id and payment_method; every
    item carries product_id and quantity (unit_price defaults to the
    product's current price, which is also stored as original_unit_price).
    """
    def _op():
        data = dict(header)
        customer_id = data.pop("customer_id", None)
        seller_id = data.pop("seller_id", None)
        if customer_id is None or seller_id is None:
            raise ValidationError("customer_id and seller_id are required")
        if not data.get("payment_method"):
            raise ValidationError("payment_method is required")
        if not items:
            raise ValidationError("A sale needs at least one line")

        customer = db.session.query(Customer).filter_by(id=customer_id).first()
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": customer_id})

        sale = Sale(
            number=next_number(SALE_SEQUENCE),
            customer_id=customer.id,
            seller_id=seller_id,
            status=STATUS_PENDING,
            sale_type="counter",
            installments=1,
            discount_pct=ZERO,
            discount_value=ZERO,
            surcharge_pct=ZERO,
            surcharge_value=ZERO,
            freight=ZERO,
            sold_at=utcnow(),
        )
        _apply_header(sale, data)
        db.session.add(sale)

        for sequence, item in enumerate(items, start=1):
            _build_line(sale, sequence, item)

        apply_sale_totals(sale)
        db.session.flush()
        current_app.logger.info("Sale %s created with %d lines, total %s", sale.number, len(sale.lines), sale.total)
        return sale

    return run_in_transaction(_op)


def update_sale_header(sale_id: int, **header) -> Sale:
    def _op():
        sale = get_sale(sale_id, lock=True)
        _require_pending(sale, "edit")
        _apply_header(sale, header)
        apply_sale_totals(sale)
        return sale

    return run_in_transaction(_op)


def add_line(sale_id: int, item: dict) -> SaleLine:
    def _op():
        sale = get_sale(sale_id, lock=True)
        _require_pending(sale, "add lines to")
        line = _build_line(sale, _next_sequence(sale), item)
        apply_sale_totals(sale)
        db.session.flush()
        return line

    return run_in_transaction(_op)


def update_line(sale_id: int, line_id: int, **fields) -> SaleLine:
    def _op():
        sale = get_sale(sale_id, lock=True)
        _require_pending(sale, "edit lines of")
        line = next((l for l in sale.lines if l.id == line_id), None)
        if line is None:
            raise NotFoundError(f"Line {line_id} not found on sale {sale_id}", details={"sale_id": sale_id, "line_id": line_id})
        _set_line_fields(line, _clean(fields, LINE_FIELDS, "line"))
        apply_sale_totals(sale)
        return line

    return run_in_transaction(_op)


def remove_line(sale_id: int, line_id: int) -> Sale:
    def _op():
        sale = get_sale(sale_id, lock=True)
        _require_pending(sale, "remove lines from")
        line = next((l for l in sale.lines if l.id == line_id), None)
        if line is None:
            raise NotFoundError(f"Line {line_id} not found on sale {sale_id}", details={"sale_id": sale_id, "line_id": line_id})
        if len(sale.lines) == 1:
            raise ValidationError("A sale needs at least one line", details={"sale_id": sale_id})
        sale.lines.remove(line)
        apply_sale_totals(sale)
        return sale

    return run_in_transaction(_op)


def transition_sale(sale_id: int, target_status: str) -> Sale:
    """Status change, line totals and stock movements commit together."""
    def _op():
        sale = get_sale(sale_id, lock=True)
        transition(sale, target_status)
        apply_sale_totals(sale)
        return sale

    return run_in_transaction(_op)


def delete_sale(sale_id: int) -> None:
    """Delete a cancellable sale and its lines, returning any debited stock."""
    def _op():
        sale = get_sale(sale_id, lock=True)
        if not is_cancellable(sale):
            raise IllegalTransitionError(
                f"Cannot delete a sale in status {sale.status}",
                details={"sale_id": sale.id, "current_status": sale.status},
            )
        if sale.fiscal_documents:
            raise IllegalTransitionError(
                "Cannot delete a sale that has fiscal documents",
                details={"sale_id": sale.id, "fiscal_document_ids": [document.id for document in sale.fiscal_documents]},
            )
        if sale.receivables:
            raise IllegalTransitionError(
                "Cannot delete a sale that has ledger entries",
                details={"sale_id": sale.id, "entry_ids": [entry.id for entry in sale.receivables]},
            )
        _restore_stock(sale)
        # Movements outlive the sale; keep them but drop the link
        db.session.query(StockMovement).filter_by(sale_id=sale.id).update({"sale_id": None})
        db.session.delete(sale)
        current_app.logger.info("Sale %s deleted", sale.number)

    run_in_transaction(_op)
