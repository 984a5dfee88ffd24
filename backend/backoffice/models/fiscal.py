from __future__ import annotations

from ..extensions import db
from ..money import as_str
from ..time_utils import to_utc_z


DOCUMENT_TYPE_RETAIL_RECEIPT = "retail_receipt"
DOCUMENT_TYPE_STANDARD_INVOICE = "standard_invoice"

# Model codes embedded in the access key
DOCUMENT_TYPE_CODES = {
    DOCUMENT_TYPE_STANDARD_INVOICE: "55",
    DOCUMENT_TYPE_RETAIL_RECEIPT: "65",
}

ENVIRONMENTS = {"homologation", "production"}

# Voided documents are unnumbered and free the sale for a new issue
DOCUMENT_STATUS_VOIDED = "voided"


class FiscalDocument(db.Model):
    """
    Tax document issued for one sale. A sale holds at most one document
    that is not voided.

    LIFECYCLE (see fiscal_service.FISCAL_TRANSITIONS):
        drafting -> pending -> processing -> authorized -> cancelled
        pending/processing -> rejected -> pending (resubmission)
        any pre-authorization state -> voided

    Totals mirror the sale at issuance time; later sale edits never reach
    an issued document.
    """
    __tablename__ = "fiscal_documents"
    __table_args__ = (
        db.UniqueConstraint("number", "series", "document_type", name="uq_fiscal_documents_number_series_type"),
        db.Index(
            "uq_fiscal_documents_live_sale",
            "sale_id",
            unique=True,
            sqlite_where=db.text(f"status != '{DOCUMENT_STATUS_VOIDED}'"),
            postgresql_where=db.text(f"status != '{DOCUMENT_STATUS_VOIDED}'"),
        ),
        db.Index("ix_fiscal_documents_status_issued", "status", "issued_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    document_type = db.Column(db.String(24), nullable=False, default=DOCUMENT_TYPE_RETAIL_RECEIPT)
    series = db.Column(db.Integer, nullable=False)
    number = db.Column(db.Integer, nullable=False)

    access_key = db.Column(db.String(44), nullable=False, unique=True)
    control_number = db.Column(db.String(8), nullable=False)
    emission_mode = db.Column(db.String(1), nullable=False, default="1")
    environment = db.Column(db.String(16), nullable=False, default="homologation")

    authorization_protocol = db.Column(db.String(64), nullable=True, unique=True)
    status = db.Column(db.String(16), nullable=False, default="drafting", index=True)

    issued_at = db.Column(db.DateTime(timezone=True), nullable=False)
    authorized_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)

    total = db.Column(db.Numeric(15, 2), nullable=False)
    products_total = db.Column(db.Numeric(15, 2), nullable=False)
    discount_total = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    surcharge_total = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    freight_total = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    insurance_total = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    other_expenses_total = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    icms_base = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    icms_value = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    icms_st_base = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    icms_st_value = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    pis_value = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    cofins_value = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    ipi_value = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    additional_info = db.Column(db.Text, nullable=True)
    cancellation_justification = db.Column(db.Text, nullable=True)
    void_justification = db.Column(db.Text, nullable=True)

    # Last answer from the tax authority
    authority_code = db.Column(db.String(16), nullable=True)
    authority_message = db.Column(db.Text, nullable=True)
    submission_attempts = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    sale = db.relationship("Sale", backref=db.backref("fiscal_documents", lazy=True, order_by="FiscalDocument.id"))

    def __repr__(self) -> str:
        return f"<FiscalDocument id={self.id} key={self.access_key} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "document_type": self.document_type,
            "series": self.series,
            "number": self.number,
            "access_key": self.access_key,
            "emission_mode": self.emission_mode,
            "environment": self.environment,
            "authorization_protocol": self.authorization_protocol,
            "status": self.status,
            "issued_at": to_utc_z(self.issued_at),
            "authorized_at": to_utc_z(self.authorized_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "voided_at": to_utc_z(self.voided_at),
            "total": as_str(self.total),
            "products_total": as_str(self.products_total),
            "discount_total": as_str(self.discount_total),
            "surcharge_total": as_str(self.surcharge_total),
            "freight_total": as_str(self.freight_total),
            "insurance_total": as_str(self.insurance_total),
            "other_expenses_total": as_str(self.other_expenses_total),
            "icms_base": as_str(self.icms_base),
            "icms_value": as_str(self.icms_value),
            "icms_st_base": as_str(self.icms_st_base),
            "icms_st_value": as_str(self.icms_st_value),
            "pis_value": as_str(self.pis_value),
            "cofins_value": as_str(self.cofins_value),
            "ipi_value": as_str(self.ipi_value),
            "additional_info": self.additional_info,
            "cancellation_justification": self.cancellation_justification,
            "void_justification": self.void_justification,
            "authority_code": self.authority_code,
            "authority_message": self.authority_message,
            "submission_attempts": self.submission_attempts,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
