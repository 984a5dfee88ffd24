"""
Tests for the sale aggregate: totals, pending-only editing, the status state
machine and the stock effects of approval and cancellation.
"""

from decimal import Decimal

import pytest

from backoffice.errors import IllegalTransitionError, InsufficientStockError, NotFoundError, ValidationError
from backoffice.models import Product, Sale, SaleLine, StockMovement
from backoffice.services import sales_service
from backoffice.services.sales_service import (
    SALE_TRANSITIONS,
    STATUS_APPROVED,
    STATUS_CANCELLED,
    STATUS_DELIVERED,
    STATUS_INVOICED,
    STATUS_PENDING,
    STATUS_PICKING,
    STATUS_SHIPPING,
)


def _walk(sale_id, *statuses):
    sale = None
    for status in statuses:
        sale = sales_service.transition_sale(sale_id, status)
    return sale


def _stock(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id).stock_current


# =============================================================================
# CREATION AND TOTALS
# =============================================================================

def test_create_sale_snapshots_product_and_computes_totals(db_session, customer, product):
    sale = sales_service.create_sale(
        {"customer_id": customer.id, "seller_id": 7, "payment_method": "pix"},
        [{"product_id": product.id, "quantity": Decimal("3")}],
    )

    assert sale.status == STATUS_PENDING
    assert sale.number >= 1
    line = sale.lines[0]
    assert line.sequence == 1
    assert line.product_code == "SKU-001"
    assert line.product_description == "Sparkling water 500ml"
    assert line.unit == "UN"
    assert line.unit_price == Decimal("10.00")
    assert line.original_unit_price == Decimal("10.00")
    assert line.total == Decimal("30.00")
    assert sale.subtotal == Decimal("30.00")
    assert sale.total == Decimal("30.00")


def test_line_captures_category_tax_defaults(db_session, make_sale, product):
    sale = make_sale(product)

    tax = sale.lines[0].tax_info()
    assert tax["ncm"] == "22021000"
    assert Decimal(tax["icms_rate"]) == Decimal("18.00")
    assert Decimal(tax["pis_rate"]) == Decimal("1.65")
    assert Decimal(tax["cofins_rate"]) == Decimal("7.60")


def test_explicit_line_values_override_defaults(db_session, customer, product):
    sale = sales_service.create_sale(
        {"customer_id": customer.id, "seller_id": 1, "payment_method": "cash"},
        [{"product_id": product.id, "quantity": 2, "unit_price": "9.00", "cfop": "5102", "icms_rate": "12"}],
    )

    line = sale.lines[0]
    assert line.unit_price == Decimal("9.00")
    assert line.original_unit_price == Decimal("10.00")
    assert line.cfop == "5102"
    assert line.icms_rate == Decimal("12")
    assert line.total == Decimal("18.00")


def test_header_adjustments_and_freight(db_session, make_sale, product, make_product):
    other = make_product(sale_price=Decimal("19.99"))
    sale = make_sale(
        product,
        other,
        quantity=Decimal("1"),
        discount_pct=Decimal("10"),
        discount_value=Decimal("50"),
        surcharge_value=Decimal("1.50"),
        freight=Decimal("12.00"),
    )

    # 10.00 + 19.99 = 29.99 ; 10% -> 3.00
    assert sale.subtotal == Decimal("29.99")
    assert sale.total == Decimal("29.99") - Decimal("3.00") + Decimal("1.50") + Decimal("12.00")


def test_sale_numbers_increase(db_session, make_sale, product):
    first = make_sale(product, quantity=Decimal("1"))
    second = make_sale(product, quantity=Decimal("1"))

    assert second.number == first.number + 1


@pytest.mark.parametrize("header", [
    {"seller_id": None},
    {"payment_method": None},
    {"payment_method": "barter"},
    {"sale_type": "teleport"},
    {"installments": 0},
    {"installments": "two"},
    {"installments": 2.7},
    {"installments": True},
])
def test_invalid_header_is_rejected(db_session, customer, product, header):
    data = {"customer_id": customer.id, "seller_id": 1, "payment_method": "cash"}
    data.update(header)

    with pytest.raises(ValidationError):
        sales_service.create_sale(data, [{"product_id": product.id, "quantity": 1}])

    assert db_session.query(Sale).count() == 0


def test_sale_needs_lines(db_session, customer):
    with pytest.raises(ValidationError):
        sales_service.create_sale({"customer_id": customer.id, "seller_id": 1, "payment_method": "cash"}, [])


@pytest.mark.parametrize("quantity", [0, -1, "NaN", "Infinity"])
def test_non_positive_line_quantity(db_session, customer, product, quantity):
    with pytest.raises(ValidationError):
        sales_service.create_sale(
            {"customer_id": customer.id, "seller_id": 1, "payment_method": "cash"},
            [{"product_id": product.id, "quantity": quantity}],
        )


def test_unknown_customer_or_product(db_session, customer, product):
    with pytest.raises(NotFoundError):
        sales_service.create_sale(
            {"customer_id": 424242, "seller_id": 1, "payment_method": "cash"},
            [{"product_id": product.id, "quantity": 1}],
        )
    with pytest.raises(NotFoundError):
        sales_service.create_sale(
            {"customer_id": customer.id, "seller_id": 1, "payment_method": "cash"},
            [{"product_id": 424242, "quantity": 1}],
        )


# =============================================================================
# EDITING WHILE PENDING
# =============================================================================

def test_add_update_remove_lines_recompute_totals(db_session, make_sale, product, make_product):
    sale = make_sale(product)
    other = make_product(sale_price=Decimal("5.00"))

    line = sales_service.add_line(sale.id, {"product_id": other.id, "quantity": 4})
    assert line.sequence == 2
    assert sales_service.get_sale(sale.id).total == Decimal("40.00")

    sales_service.update_line(sale.id, line.id, quantity=Decimal("1"), discount_value=Decimal("1.00"))
    assert sales_service.get_sale(sale.id).total == Decimal("24.00")

    sales_service.remove_line(sale.id, line.id)
    refreshed = sales_service.get_sale(sale.id)
    assert len(refreshed.lines) == 1
    assert refreshed.total == Decimal("20.00")


def test_last_line_cannot_be_removed(db_session, make_sale, product):
    sale = make_sale(product)

    with pytest.raises(ValidationError):
        sales_service.remove_line(sale.id, sale.lines[0].id)


def test_header_update_recomputes_total(db_session, make_sale, product):
    sale = make_sale(product)

    updated = sales_service.update_sale_header(sale.id, freight="7.50", installments=3)

    assert updated.total == Decimal("27.50")
    assert updated.installments == 3


@pytest.mark.parametrize("installments", ["two", "2.5", 2.7, ""])
def test_header_update_rejects_malformed_installments(db_session, make_sale, product, installments):
    sale = make_sale(product)

    with pytest.raises(ValidationError) as excinfo:
        sales_service.update_sale_header(sale.id, installments=installments)

    assert excinfo.value.details["field"] == "installments"
    db_session.expire_all()
    assert db_session.get(Sale, sale.id).installments == 1


def test_installments_accept_whole_number_strings(db_session, make_sale, product):
    sale = make_sale(product)

    assert sales_service.update_sale_header(sale.id, installments="4").installments == 4


def test_edits_rejected_after_approval(db_session, make_sale, product):
    sale = make_sale(product)
    sales_service.transition_sale(sale.id, STATUS_APPROVED)

    with pytest.raises(IllegalTransitionError):
        sales_service.add_line(sale.id, {"product_id": product.id, "quantity": 1})
    with pytest.raises(IllegalTransitionError):
        sales_service.update_sale_header(sale.id, freight="1.00")


def test_unknown_line_fields_are_rejected(db_session, make_sale, product):
    sale = make_sale(product)

    with pytest.raises(ValidationError):
        sales_service.update_line(sale.id, sale.lines[0].id, product_code="HACK")


# =============================================================================
# STATE MACHINE
# =============================================================================

def test_full_happy_path(db_session, make_sale, product):
    sale = make_sale(product)

    sale = _walk(sale.id, STATUS_APPROVED, STATUS_PICKING, STATUS_INVOICED, STATUS_SHIPPING, STATUS_DELIVERED)

    assert sale.status == STATUS_DELIVERED
    assert sale.delivered_at is not None


def test_invoiced_may_skip_shipping(db_session, make_sale, product):
    sale = make_sale(product)

    sale = _walk(sale.id, STATUS_APPROVED, STATUS_PICKING, STATUS_INVOICED, STATUS_DELIVERED)

    assert sale.status == STATUS_DELIVERED


def test_pending_cannot_jump_to_delivered(db_session, make_sale, product):
    sale = make_sale(product)

    with pytest.raises(IllegalTransitionError) as excinfo:
        sales_service.transition_sale(sale.id, STATUS_DELIVERED)

    assert excinfo.value.details["current_status"] == STATUS_PENDING
    assert excinfo.value.details["requested_status"] == STATUS_DELIVERED
    assert sales_service.get_sale(sale.id).status == STATUS_PENDING


@pytest.mark.parametrize("target", sorted(SALE_TRANSITIONS))
def test_delivered_is_terminal(db_session, make_sale, product, target):
    sale = make_sale(product)
    _walk(sale.id, STATUS_APPROVED, STATUS_PICKING, STATUS_INVOICED, STATUS_DELIVERED)

    with pytest.raises(IllegalTransitionError):
        sales_service.transition_sale(sale.id, target)


def test_cancelled_is_terminal(db_session, make_sale, product):
    sale = make_sale(product)
    sales_service.transition_sale(sale.id, STATUS_CANCELLED)

    with pytest.raises(IllegalTransitionError):
        sales_service.transition_sale(sale.id, STATUS_PENDING)


def test_unknown_status(db_session, make_sale, product):
    sale = make_sale(product)

    with pytest.raises(IllegalTransitionError):
        sales_service.transition_sale(sale.id, "teleported")


def test_every_non_terminal_state_can_cancel():
    for status, targets in SALE_TRANSITIONS.items():
        if status in (STATUS_DELIVERED, STATUS_CANCELLED):
            assert not targets
        else:
            assert STATUS_CANCELLED in targets


# =============================================================================
# STOCK EFFECTS
# =============================================================================

def test_approval_debits_stock_once(db_session, make_sale, product):
    sale = make_sale(product, quantity=Decimal("3"))
    assert _stock(db_session, product.id) == Decimal("10")

    sales_service.transition_sale(sale.id, STATUS_APPROVED)
    assert _stock(db_session, product.id) == Decimal("7")

    sales_service.transition_sale(sale.id, STATUS_PICKING)
    assert _stock(db_session, product.id) == Decimal("7")

    movements = db_session.query(StockMovement).filter_by(sale_id=sale.id).all()
    assert len(movements) == 1


def test_cancellation_restores_stock(db_session, make_sale, product):
    sale = make_sale(product, quantity=Decimal("3"))
    sales_service.transition_sale(sale.id, STATUS_APPROVED)

    cancelled = sales_service.transition_sale(sale.id, STATUS_CANCELLED)

    assert cancelled.cancelled_at is not None
    assert _stock(db_session, product.id) == Decimal("10")


def test_cancelling_pending_sale_does_not_touch_stock(db_session, make_sale, product):
    sale = make_sale(product, quantity=Decimal("3"))

    sales_service.transition_sale(sale.id, STATUS_CANCELLED)

    assert _stock(db_session, product.id) == Decimal("10")
    assert db_session.query(StockMovement).count() == 0


def test_insufficient_stock_blocks_approval_atomically(db_session, make_sale, product, make_product):
    plenty = make_product(stock_current=Decimal("50"))
    sale = make_sale(plenty, product, quantity=Decimal("11"))

    with pytest.raises(InsufficientStockError) as excinfo:
        sales_service.transition_sale(sale.id, STATUS_APPROVED)

    assert excinfo.value.details["product_id"] == product.id
    assert _stock(db_session, product.id) == Decimal("10")
    assert _stock(db_session, plenty.id) == Decimal("50")
    assert sales_service.get_sale(sale.id).status == STATUS_PENDING


def test_repeated_product_lines_are_checked_together(db_session, customer, product):
    sale = sales_service.create_sale(
        {"customer_id": customer.id, "seller_id": 1, "payment_method": "cash"},
        [{"product_id": product.id, "quantity": 6}, {"product_id": product.id, "quantity": 6}],
    )

    with pytest.raises(InsufficientStockError):
        sales_service.transition_sale(sale.id, STATUS_APPROVED)

    assert _stock(db_session, product.id) == Decimal("10")


# =============================================================================
# DELETION
# =============================================================================

def test_delete_pending_sale(db_session, make_sale, product):
    sale = make_sale(product)

    sales_service.delete_sale(sale.id)

    assert db_session.query(Sale).count() == 0
    assert db_session.query(SaleLine).count() == 0


def test_delete_approved_sale_restores_stock(db_session, make_sale, product):
    sale = make_sale(product, quantity=Decimal("4"))
    sales_service.transition_sale(sale.id, STATUS_APPROVED)

    sales_service.delete_sale(sale.id)

    assert _stock(db_session, product.id) == Decimal("10")
    assert db_session.query(StockMovement).filter(StockMovement.sale_id.isnot(None)).count() == 0


def test_delivered_sale_cannot_be_deleted(db_session, make_sale, product):
    sale = make_sale(product)
    _walk(sale.id, STATUS_APPROVED, STATUS_PICKING, STATUS_INVOICED, STATUS_DELIVERED)

    with pytest.raises(IllegalTransitionError):
        sales_service.delete_sale(sale.id)
