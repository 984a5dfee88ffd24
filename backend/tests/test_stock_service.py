"""Tests for stock movements and availability checks."""

from decimal import Decimal

import pytest

from backoffice.errors import InsufficientStockError, NotFoundError, ValidationError
from backoffice.models import Product, StockMovement
from backoffice.services import stock_service
from backoffice.services.stock_service import DIRECTION_IN, DIRECTION_OUT


def test_debit_reduces_balance_and_journals_movement(db_session, product):
    result = stock_service.register_movement(product.id, Decimal("4"), DIRECTION_OUT, "manual adjustment")

    assert result.previous == Decimal("10")
    assert result.new == Decimal("6")
    assert result.delta == Decimal("-4")

    db_session.refresh(product)
    assert product.stock_current == Decimal("6")

    movements = stock_service.get_movements(product.id)
    assert len(movements) == 1
    assert movements[0].direction == DIRECTION_OUT
    assert movements[0].previous_balance == Decimal("10")
    assert movements[0].new_balance == Decimal("6")
    assert movements[0].reason == "manual adjustment"


def test_credit_increases_balance(db_session, product):
    result = stock_service.register_movement(product.id, "2.5", DIRECTION_IN)

    assert result.new == Decimal("12.5")


def test_insufficient_stock_leaves_balance_unchanged(db_session, product):
    with pytest.raises(InsufficientStockError) as excinfo:
        stock_service.register_movement(product.id, Decimal("11"), DIRECTION_OUT)

    assert excinfo.value.details["product_id"] == product.id
    assert excinfo.value.details["requested_quantity"] == "11"

    db_session.expire_all()
    assert db_session.get(Product, product.id).stock_current == Decimal("10")
    assert db_session.query(StockMovement).count() == 0


def test_debit_of_whole_balance_marks_product_out_of_stock(db_session, product):
    stock_service.register_movement(product.id, Decimal("10"), DIRECTION_OUT)

    db_session.refresh(product)
    assert product.stock_current == Decimal("0")
    assert product.status == "out_of_stock"

    stock_service.register_movement(product.id, Decimal("1"), DIRECTION_IN)
    db_session.refresh(product)
    assert product.status == "active"


@pytest.mark.parametrize("status", ["on_promotion", "inactive"])
def test_inbound_movement_keeps_manual_status(db_session, make_product, status):
    product = make_product(stock_current=Decimal("0"))
    product.status = status
    db_session.commit()

    stock_service.register_movement(product.id, Decimal("5"), DIRECTION_IN)

    db_session.refresh(product)
    assert product.stock_current == Decimal("5")
    assert product.status == status


@pytest.mark.parametrize(
    "current, balance, expected",
    [
        ("out_of_stock", Decimal("1"), "active"),
        ("active", Decimal("0"), "out_of_stock"),
        ("on_promotion", Decimal("-1"), "out_of_stock"),
        ("on_promotion", Decimal("3"), "on_promotion"),
        ("inactive", Decimal("3"), "inactive"),
        ("active", Decimal("3"), "active"),
    ],
)
def test_derive_status(current, balance, expected):
    assert stock_service.derive_status(current, balance) == expected


@pytest.mark.parametrize("quantity", [Decimal("0"), Decimal("-1")])
def test_non_positive_quantity_is_rejected(db_session, product, quantity):
    with pytest.raises(ValidationError):
        stock_service.register_movement(product.id, quantity, DIRECTION_IN)


def test_unknown_direction_is_rejected(db_session, product):
    with pytest.raises(ValidationError):
        stock_service.register_movement(product.id, Decimal("1"), "sideways")


def test_unknown_product(db_session):
    with pytest.raises(NotFoundError):
        stock_service.register_movement(999999, Decimal("1"), DIRECTION_IN)


def test_check_availability(db_session, product):
    enough = stock_service.check_availability(product, Decimal("10"))
    short = stock_service.check_availability(product, Decimal("10.5"))

    assert enough.available is True
    assert enough.remaining_if_debited == Decimal("0")
    assert short.available is False
    assert short.remaining_if_debited == Decimal("-0.5")
