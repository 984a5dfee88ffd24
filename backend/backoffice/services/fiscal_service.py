"""
Fiscal Document Service - issuance, access key and status lifecycle

STATE MACHINE:
    drafting   -> pending, voided
    pending    -> processing, rejected, voided
    processing -> authorized, rejected, voided
    rejected   -> pending (resubmission), voided
    authorized -> cancelled
    cancelled, voided: terminal

ACCESS KEY (44 digits):
    region(2) + issue yymm(4) + issuer tax id(14) + model(2) + series(3)
    + number(9) + emission mode(1) + control number(8) -> 43-digit base
    + 1 mod-11 check digit

    Uniqueness is enforced by the database. A collision raises ConflictError;
    the caller regenerates with a new control number, never re-sends the
    same key.

No tax-authority communication happens here: submit / start_processing /
authorize / reject only record what the integration layer reports.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, IllegalTransitionError, InvalidStateError, NotFoundError, ValidationError
from ..models import FiscalDocument
from ..models.fiscal import (
    DOCUMENT_STATUS_VOIDED,
    DOCUMENT_TYPE_CODES,
    DOCUMENT_TYPE_RETAIL_RECEIPT,
    ENVIRONMENTS,
)
from ..money import ZERO, percent_of, quantize_money, to_decimal, to_int
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction
from .pricing import adjustment
from .sales_service import STATUS_CANCELLED as SALE_STATUS_CANCELLED, get_sale
from .sequence_service import fiscal_sequence_key, next_number


STATUS_DRAFTING = "drafting"
STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_AUTHORIZED = "authorized"
STATUS_REJECTED = "rejected"
STATUS_CANCELLED = "cancelled"
STATUS_VOIDED = DOCUMENT_STATUS_VOIDED

FISCAL_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_DRAFTING: frozenset({STATUS_PENDING, STATUS_VOIDED}),
    STATUS_PENDING: frozenset({STATUS_PROCESSING, STATUS_REJECTED, STATUS_VOIDED}),
    STATUS_PROCESSING: frozenset({STATUS_AUTHORIZED, STATUS_REJECTED, STATUS_VOIDED}),
    STATUS_REJECTED: frozenset({STATUS_PENDING, STATUS_VOIDED}),
    STATUS_AUTHORIZED: frozenset({STATUS_CANCELLED}),
    STATUS_CANCELLED: frozenset(),
    STATUS_VOIDED: frozenset(),
}

MIN_JUSTIFICATION_LENGTH = 15
ACCESS_KEY_LENGTH = 44


@dataclass(frozen=True)
class FiscalIssuer:
    """Issuer identity embedded in every access key."""

    region_code: str
    tax_id: str
    series: int = 1
    environment: str = "homologation"
    emission_mode: str = "1"

    @classmethod
    def from_config(cls, config) -> "FiscalIssuer":
        return cls(
            region_code=str(config["FISCAL_REGION_CODE"]),
            tax_id=str(config["FISCAL_ISSUER_TAX_ID"]),
            series=int(config["FISCAL_SERIES"]),
            environment=config["FISCAL_ENVIRONMENT"],
            emission_mode=str(config["FISCAL_EMISSION_MODE"]),
        )

    @classmethod
    def from_mapping(cls, data: dict | None, config) -> "FiscalIssuer":
        """Config defaults overridden by any key present in ``data``."""
        base = cls.from_config(config)
        if not data:
            return base
        return cls(
            region_code=str(data.get("region_code", base.region_code)),
            tax_id=str(data.get("tax_id", base.tax_id)),
            series=to_int(data.get("series", base.series), "series"),
            environment=data.get("environment", base.environment),
            emission_mode=str(data.get("emission_mode", base.emission_mode)),
        )


# =============================================================================
# ACCESS KEY
# =============================================================================

def mod11_check_digit(base: str) -> str:
    """
    Weighted modulo-11 check digit.

    Weights 2..9 cycle from the last character to the first;
    dv = 11 - (sum % 11), and 10 or 11 become 0.
    """
    if not base.isdigit():
        raise ValidationError("Check digit base must contain only digits", details={"base": base})
    total = 0
    weight = 2
    for char in reversed(base):
        total += int(char) * weight
        weight = 2 if weight == 9 else weight + 1
    dv = 11 - (total % 11)
    return "0" if dv in (10, 11) else str(dv)


def _digits(value, width: int, field: str) -> str:
    text = str(value).strip()
    if not text.isdigit() or len(text) > width:
        raise ValidationError(
            f"{field} must be numeric with at most {width} digits",
            details={"field": field, "value": text},
        )
    return text.zfill(width)


def compose_access_key(
    *,
    region_code,
    issued_at: datetime,
    tax_id,
    model_code: str,
    series,
    number,
    emission_mode,
    control_number,
) -> str:
    base = "".join((
        _digits(region_code, 2, "region_code"),
        issued_at.strftime("%y%m"),
        _digits(tax_id, 14, "tax_id"),
        _digits(model_code, 2, "model_code"),
        _digits(series, 3, "series"),
        _digits(number, 9, "number"),
        _digits(emission_mode, 1, "emission_mode"),
        _digits(control_number, 8, "control_number"),
    ))
    return base + mod11_check_digit(base)


def generate_control_number() -> str:
    return f"{secrets.randbelow(10 ** 8):08d}"


def build_access_key(document: FiscalDocument, issuer: FiscalIssuer, control_number: str | None = None) -> str:
    """
    Access key for ``document``; deterministic when ``control_number`` is given.
    """
    if document.document_type not in DOCUMENT_TYPE_CODES:
        raise ValidationError(
            f"Unknown document type {document.document_type!r}",
            details={"document_type": document.document_type},
        )
    return compose_access_key(
        region_code=issuer.region_code,
        issued_at=document.issued_at,
        tax_id=issuer.tax_id,
        model_code=DOCUMENT_TYPE_CODES[document.document_type],
        series=document.series,
        number=document.number,
        emission_mode=issuer.emission_mode,
        control_number=control_number if control_number is not None else document.control_number,
    )


def is_valid_access_key(key: str) -> bool:
    return (
        isinstance(key, str)
        and len(key) == ACCESS_KEY_LENGTH
        and key.isdigit()
        and mod11_check_digit(key[:-1]) == key[-1]
    )


# =============================================================================
# STATE MACHINE
# =============================================================================

def can_transition(from_status: str, to_status: str) -> bool:
    return to_status in FISCAL_TRANSITIONS.get(from_status, frozenset())


def _transition(document: FiscalDocument, target: str) -> None:
    if not can_transition(document.status, target):
        raise IllegalTransitionError(
            f"Cannot change fiscal document status from {document.status} to {target}",
            details={
                "document_id": document.id,
                "current_status": document.status,
                "requested_status": target,
            },
        )
    current_app.logger.info(
        "Fiscal document %s moved from %s to %s", document.access_key, document.status, target
    )
    document.status = target


def _validate_justification(justification: str | None, document_id: int | None) -> str:
    """
    Length is counted after stripping surrounding whitespace, so padding a
    short reason with blanks does not satisfy the minimum. The stored text is
    the stripped one.
    """
    text = (justification or "").strip()
    if len(text) < MIN_JUSTIFICATION_LENGTH:
        raise ValidationError(
            f"Justification must have at least {MIN_JUSTIFICATION_LENGTH} characters",
            details={"document_id": document_id, "length": len(text)},
        )
    return text


def cancel(document: FiscalDocument, justification: str) -> FiscalDocument:
    """
    Cancel an authorized document. Irreversible. Does not commit.

    The justification is checked first, whatever the current status.
    """
    text = _validate_justification(justification, document.id)
    if document.status != STATUS_AUTHORIZED:
        raise InvalidStateError(
            f"Fiscal document cannot be cancelled in status {document.status}",
            details={
                "document_id": document.id,
                "current_status": document.status,
                "required_status": STATUS_AUTHORIZED,
            },
        )
    _transition(document, STATUS_CANCELLED)
    document.cancellation_justification = text
    document.cancelled_at = utcnow()
    return document


def void(document: FiscalDocument, justification: str) -> FiscalDocument:
    """Administrative unnumbering of a document that never got authorized."""
    text = _validate_justification(justification, document.id)
    if STATUS_VOIDED not in FISCAL_TRANSITIONS.get(document.status, frozenset()):
        raise InvalidStateError(
            f"Fiscal document cannot be voided in status {document.status}",
            details={"document_id": document.id, "current_status": document.status},
        )
    _transition(document, STATUS_VOIDED)
    document.void_justification = text
    document.voided_at = utcnow()
    return document


# =============================================================================
# TOTALS
# =============================================================================

def _tax_breakdown(sale) -> dict[str, Decimal]:
    icms_base = ZERO
    icms = ZERO
    pis = ZERO
    cofins = ZERO
    for line in sale.lines:
        line_total = to_decimal(line.total)
        icms_base += line_total
        icms += percent_of(line_total, to_decimal(line.icms_rate))
        pis += percent_of(line_total, to_decimal(line.pis_rate))
        cofins += percent_of(line_total, to_decimal(line.cofins_rate))
    return {
        "icms_base": quantize_money(icms_base),
        "icms_value": quantize_money(icms),
        "pis_value": quantize_money(pis),
        "cofins_value": quantize_money(cofins),
    }


def tax_totals(document: FiscalDocument) -> dict:
    return {
        "icms": {"base": str(document.icms_base), "value": str(document.icms_value)},
        "icms_st": {"base": str(document.icms_st_base), "value": str(document.icms_st_value)},
        "pis": str(document.pis_value),
        "cofins": str(document.cofins_value),
        "ipi": str(document.ipi_value),
    }


def status_summary(document: FiscalDocument) -> dict:
    return {
        "status": document.status,
        "code": document.authority_code,
        "message": document.authority_message,
        "attempts": document.submission_attempts,
    }


# =============================================================================
# OPERATIONS
# =============================================================================

def get_document(document_id: int, *, lock: bool = False) -> FiscalDocument:
    query = db.session.query(FiscalDocument).filter_by(id=document_id)
    if lock:
        query = lock_for_update(query)
    document = query.first()
    if document is None:
        raise NotFoundError(f"Fiscal document {document_id} not found", details={"document_id": document_id})
    return document


def issue_for_sale(
    sale,
    issuer: FiscalIssuer,
    *,
    document_type: str = DOCUMENT_TYPE_RETAIL_RECEIPT,
    control_number: str | None = None,
    additional_info: str | None = None,
) -> FiscalDocument:
    """
    Create the document for ``sale`` inside the caller's transaction.

    Raises:
        ConflictError: the sale already has a document that is not voided, or the access key
            collides with an existing one
        ValidationError: bad issuer data or unknown document type
    """
    if document_type not in DOCUMENT_TYPE_CODES:
        raise ValidationError(
            f"Unknown document type {document_type!r}",
            details={"document_type": document_type, "allowed": sorted(DOCUMENT_TYPE_CODES)},
        )
    if issuer.environment not in ENVIRONMENTS:
        raise ValidationError(
            f"Unknown environment {issuer.environment!r}",
            details={"environment": issuer.environment, "allowed": sorted(ENVIRONMENTS)},
        )
    if sale.status == SALE_STATUS_CANCELLED:
        raise InvalidStateError(
            "Cannot issue a fiscal document for a cancelled sale",
            details={"sale_id": sale.id, "current_status": sale.status},
        )
    existing = (
        db.session.query(FiscalDocument)
        .filter(FiscalDocument.sale_id == sale.id, FiscalDocument.status != STATUS_VOIDED)
        .first()
    )
    if existing is not None:
        raise ConflictError(
            f"Sale {sale.number} already has fiscal document {existing.id}",
            details={"sale_id": sale.id, "document_id": existing.id},
        )

    document = FiscalDocument(
        sale_id=sale.id,
        document_type=document_type,
        series=issuer.series,
        number=next_number(fiscal_sequence_key(document_type, issuer.series)),
        emission_mode=issuer.emission_mode,
        environment=issuer.environment,
        status=STATUS_DRAFTING,
        issued_at=utcnow(),
        control_number=control_number if control_number is not None else generate_control_number(),
        additional_info=additional_info,
        submission_attempts=0,
    )
    _apply_sale_amounts(document, sale)
    document.access_key = build_access_key(document, issuer)

    try:
        with db.session.begin_nested():
            db.session.add(document)
    except IntegrityError:
        raise ConflictError(
            "Fiscal document collides with an existing access key or number; regenerate the control number",
            details={"sale_id": sale.id, "access_key": document.access_key, "number": document.number},
        )

    current_app.logger.info(
        "Fiscal document %s issued for sale %s (%s %s/%s)",
        document.access_key, sale.number, document_type, document.series, document.number,
    )
    return document


def _apply_sale_amounts(document: FiscalDocument, sale) -> None:
    subtotal = to_decimal(sale.subtotal)
    document.products_total = subtotal
    document.discount_total = adjustment(subtotal, sale.discount_pct, sale.discount_value)
    document.surcharge_total = adjustment(subtotal, sale.surcharge_pct, sale.surcharge_value)
    document.freight_total = to_decimal(sale.freight)
    document.total = to_decimal(sale.total)
    for field, value in _tax_breakdown(sale).items():
        setattr(document, field, value)


def issue_fiscal_document(
    sale_id: int,
    issuer: FiscalIssuer,
    *,
    document_type: str = DOCUMENT_TYPE_RETAIL_RECEIPT,
    control_number: str | None = None,
    additional_info: str | None = None,
) -> FiscalDocument:
    def _op():
        sale = get_sale(sale_id, lock=True)
        return issue_for_sale(
            sale,
            issuer,
            document_type=document_type,
            control_number=control_number,
            additional_info=additional_info,
        )

    return run_in_transaction(_op)


def submit(document_id: int) -> FiscalDocument:
    """drafting/rejected -> pending; counts a submission attempt."""
    def _op():
        document = get_document(document_id, lock=True)
        _transition(document, STATUS_PENDING)
        document.submission_attempts = (document.submission_attempts or 0) + 1
        return document

    return run_in_transaction(_op)


def start_processing(document_id: int) -> FiscalDocument:
    def _op():
        document = get_document(document_id, lock=True)
        _transition(document, STATUS_PROCESSING)
        return document

    return run_in_transaction(_op)


def authorize(document_id: int, protocol: str, *, code: str | None = None, message: str | None = None) -> FiscalDocument:
    def _op():
        if not protocol:
            raise ValidationError("Authorization protocol is required", details={"document_id": document_id})
        document = get_document(document_id, lock=True)
        taken = (
            db.session.query(FiscalDocument.id)
            .filter(FiscalDocument.authorization_protocol == protocol, FiscalDocument.id != document_id)
            .first()
        )
        if taken is not None:
            raise ConflictError(
                f"Authorization protocol {protocol} already used",
                details={"document_id": document_id, "protocol": protocol, "other_document_id": taken.id},
            )
        _transition(document, STATUS_AUTHORIZED)
        document.authorization_protocol = protocol
        document.authorized_at = utcnow()
        document.authority_code = code
        document.authority_message = message
        return document

    return run_in_transaction(_op)


def reject(document_id: int, *, code: str | None = None, message: str | None = None) -> FiscalDocument:
    def _op():
        document = get_document(document_id, lock=True)
        _transition(document, STATUS_REJECTED)
        document.authority_code = code
        document.authority_message = message
        return document

    return run_in_transaction(_op)


def cancel_fiscal_document(document_id: int, justification: str) -> FiscalDocument:
    def _op():
        document = get_document(document_id, lock=True)
        return cancel(document, justification)

    return run_in_transaction(_op)


def void_fiscal_document(document_id: int, justification: str) -> FiscalDocument:
    def _op():
        document = get_document(document_id, lock=True)
        return void(document, justification)

    return run_in_transaction(_op)
