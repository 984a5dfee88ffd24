# Overview: Sale confirmation that ties stock, receivables and fiscal issue into one unit of work.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from flask import current_app

from ..models import FiscalDocument, Receivable, Sale
from ..models.fiscal import DOCUMENT_TYPE_RETAIL_RECEIPT
from . import finance_service, fiscal_service, sales_service
from .concurrency import run_in_transaction


@dataclass
class ConfirmationResult:
    sale: Sale
    receivables: list[Receivable] = field(default_factory=list)
    document: Optional[FiscalDocument] = None

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(include_lines=True),
            "receivables": [entry.to_dict() for entry in self.receivables],
            "fiscal_document": self.document.to_dict() if self.document is not None else None,
        }


def confirm_sale(
    sale_id: int,
    *,
    create_receivables: bool = True,
    issue_document: bool = False,
    document_type: str = DOCUMENT_TYPE_RETAIL_RECEIPT,
    issuer: fiscal_service.FiscalIssuer | None = None,
    first_due_date: date | None = None,
) -> ConfirmationResult:
    """
    Approve a pending sale.

    The stock debit, the fiscal document (optional) and the installment
    receivables are written in one transaction: if any step fails nothing is
    persisted and product balances are untouched.
    """
    def _op():
        sale = sales_service.get_sale(sale_id, lock=True)
        sales_service.transition(sale, sales_service.STATUS_APPROVED)

        result = ConfirmationResult(sale=sale)
        if issue_document:
            result.document = fiscal_service.issue_for_sale(
                sale,
                issuer or fiscal_service.FiscalIssuer.from_config(current_app.config),
                document_type=document_type,
            )
        if create_receivables:
            result.receivables = finance_service.create_receivables_for_sale(sale, first_due_date=first_due_date)

        current_app.logger.info(
            "Sale %s confirmed: %d receivables, fiscal document %s",
            sale.number,
            len(result.receivables),
            result.document.access_key if result.document is not None else "-",
        )
        return result

    return run_in_transaction(_op)
