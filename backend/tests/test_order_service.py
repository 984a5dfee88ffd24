"""Tests for sale confirmation: stock, fiscal document and receivables in one unit of work."""

from datetime import date
from decimal import Decimal

import pytest

from backoffice.errors import ConflictError, IllegalTransitionError, InsufficientStockError, ValidationError
from backoffice.models import FiscalDocument, LedgerEntry, Product, Sale
from backoffice.models.fiscal import DOCUMENT_TYPE_STANDARD_INVOICE
from backoffice.services import fiscal_service, order_service, sales_service
from backoffice.services.fiscal_service import FiscalIssuer


def _stock(db_session, product_id):
    db_session.expire_all()
    return db_session.get(Product, product_id).stock_current


def test_confirm_debits_stock_and_creates_receivables(db_session, make_sale, product):
    sale = make_sale(product, quantity=Decimal("4"), installments=2)

    result = order_service.confirm_sale(sale.id, first_due_date=date(2024, 5, 1))

    assert result.sale.status == sales_service.STATUS_APPROVED
    assert result.document is None
    assert [e.amount_original for e in result.receivables] == [Decimal("20.00"), Decimal("20.00")]
    assert _stock(db_session, product.id) == Decimal("6")


def test_confirm_with_fiscal_document(db_session, make_sale, product):
    sale = make_sale(product)

    result = order_service.confirm_sale(
        sale.id,
        issue_document=True,
        document_type=DOCUMENT_TYPE_STANDARD_INVOICE,
        first_due_date=date(2024, 5, 1),
    )

    document = result.document
    assert document.sale_id == sale.id
    assert document.access_key[20:22] == "55"
    assert fiscal_service.is_valid_access_key(document.access_key)
    payload = result.to_dict()
    assert payload["fiscal_document"]["access_key"] == document.access_key
    assert len(payload["receivables"]) == 1


def test_confirm_uses_configured_issuer_by_default(db_session, make_sale, product):
    sale = make_sale(product)

    result = order_service.confirm_sale(sale.id, issue_document=True, create_receivables=False)

    assert result.document.access_key[:2] == "35"
    assert result.document.access_key[6:20] == "11222333000181"
    assert result.receivables == []


def test_insufficient_stock_rolls_back_everything(db_session, make_sale, product):
    sale = make_sale(product, quantity=Decimal("11"))

    with pytest.raises(InsufficientStockError):
        order_service.confirm_sale(sale.id, issue_document=True)

    assert _stock(db_session, product.id) == Decimal("10")
    assert db_session.get(Sale, sale.id).status == sales_service.STATUS_PENDING
    assert db_session.query(FiscalDocument).count() == 0
    assert db_session.query(LedgerEntry).count() == 0


def test_fiscal_failure_rolls_back_stock(db_session, make_sale, product):
    sale = make_sale(product, quantity=Decimal("3"))
    bad_issuer = FiscalIssuer(region_code="35", tax_id="not-a-tax-id")

    with pytest.raises(ValidationError):
        order_service.confirm_sale(sale.id, issue_document=True, issuer=bad_issuer)

    assert _stock(db_session, product.id) == Decimal("10")
    assert db_session.get(Sale, sale.id).status == sales_service.STATUS_PENDING
    assert db_session.query(LedgerEntry).count() == 0


def test_sale_cannot_be_confirmed_twice(db_session, make_sale, product):
    sale = make_sale(product)
    order_service.confirm_sale(sale.id)

    with pytest.raises(IllegalTransitionError):
        order_service.confirm_sale(sale.id)

    assert _stock(db_session, product.id) == Decimal("8")


def test_sale_with_receivables_cannot_be_deleted(db_session, make_sale, product):
    sale = make_sale(product)
    order_service.confirm_sale(sale.id)

    with pytest.raises(IllegalTransitionError):
        sales_service.delete_sale(sale.id)


def test_fiscal_document_blocks_a_second_issue_after_confirmation(db_session, make_sale, product):
    sale = make_sale(product)
    order_service.confirm_sale(sale.id, issue_document=True, create_receivables=False)

    with pytest.raises(ConflictError):
        fiscal_service.issue_fiscal_document(sale.id, FiscalIssuer.from_config({
            "FISCAL_REGION_CODE": "35",
            "FISCAL_ISSUER_TAX_ID": "11222333000181",
            "FISCAL_SERIES": 1,
            "FISCAL_ENVIRONMENT": "homologation",
            "FISCAL_EMISSION_MODE": "1",
        }))
