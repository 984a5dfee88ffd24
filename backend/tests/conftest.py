"""
Pytest fixtures for the back-office tests.

Provides the application, a database cleared before each test, a test client
and small factories for parties, catalog entries, sales and ledger entries.
"""

from decimal import Decimal

import pytest

from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Customer, Supplier
from backoffice.services import catalog_service, finance_service, sales_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'FISCAL_REGION_CODE': '35',
        'FISCAL_ISSUER_TAX_ID': '11222333000181',
        'FISCAL_SERIES': 1,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def customer(db_session):
    """Customer referenced by sales and receivables."""
    customer = Customer(name="Maria Silva", tax_id="12345678909", is_active=True)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def supplier(db_session):
    """Supplier referenced by payables."""
    supplier = Supplier(legal_name="Distribuidora Norte Ltda", trade_name="Norte", tax_id="44555666000199")
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def category(db_session):
    """Category carrying default tax rates."""
    return catalog_service.create_category(
        "Beverages",
        "BEV",
        default_icms_rate=Decimal("18.00"),
        default_pis_rate=Decimal("1.65"),
        default_cofins_rate=Decimal("7.60"),
        default_ncm="22021000",
    )


@pytest.fixture(scope='function')
def product(db_session, category):
    """Product with 10 units on hand at 10.00 (cost 6.00)."""
    return catalog_service.create_product(
        code="SKU-001",
        description="Sparkling water 500ml",
        sale_price=Decimal("10.00"),
        cost_price=Decimal("6.00"),
        stock_current=Decimal("10"),
        stock_min=Decimal("2"),
        category_id=category.id,
    )


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory for additional products."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "code": f"SKU-X{counter['n']:03d}",
            "description": f"Product {counter['n']}",
            "sale_price": Decimal("5.00"),
            "cost_price": Decimal("2.50"),
            "stock_current": Decimal("100"),
        }
        fields.update(overrides)
        return catalog_service.create_product(**fields)

    return _make


@pytest.fixture(scope='function')
def make_sale(db_session, customer):
    """Factory for pending sales; items default to 2 units of each product."""

    def _make(*products, quantity=Decimal("2"), **header):
        data = {"customer_id": customer.id, "seller_id": 1, "payment_method": "cash"}
        data.update(header)
        items = [{"product_id": p.id, "quantity": quantity} for p in products]
        return sales_service.create_sale(data, items)

    return _make


@pytest.fixture(scope='function')
def make_receivable(db_session, customer):
    """Factory for receivables; 100.00 due 2024-01-15 unless overridden."""

    def _make(**overrides):
        fields = {
            "document_number": "REC-001",
            "amount": Decimal("100.00"),
            "due_date": "2024-01-15",
            "issue_date": "2024-01-01",
            "category": "services",
        }
        fields.update(overrides)
        return finance_service.create_receivable(customer_id=customer.id, **fields)

    return _make
