from __future__ import annotations

from ..extensions import db
from ..money import as_str
from ..time_utils import to_utc_z
from .fiscal import DOCUMENT_STATUS_VOIDED


SALE_TYPES = {"counter", "delivery", "online"}

PAYMENT_METHODS = {
    "cash",
    "credit_card",
    "debit_card",
    "pix",
    "bank_slip",
    "transfer",
    "store_credit",
}


class Sale(db.Model):
    """
    Sale header (the order-to-cash aggregate root).

    WHY: Owns its lines exclusively. Totals are cached columns recomputed by
    pricing.compute_sale_totals after every header or line change, before
    the unit of work commits.

    STOCK: stock_applied_at is set when the confirmation debit ran and cleared
    when a cancellation credited it back, so stock moves at most once per
    business event.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_status_sold", "status", "sold_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-facing sequential number from document_sequences
    number = db.Column(db.Integer, nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    # Seller accounts live in the auth layer; only the reference is kept
    seller_id = db.Column(db.Integer, nullable=False, index=True)

    sale_type = db.Column(db.String(16), nullable=False, default="counter")
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    subtotal = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    discount_pct = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_value = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    surcharge_pct = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    surcharge_value = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    freight = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=False)
    installments = db.Column(db.Integer, nullable=False, default=1)
    payment_terms = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    sold_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expected_delivery_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    stock_applied_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        order_by="SaleLine.sequence",
        cascade="all, delete-orphan",
        lazy=True,
    )

    @property
    def fiscal_document(self):
        """The document that is not voided, if any."""
        for document in self.fiscal_documents:
            if document.status != DOCUMENT_STATUS_VOIDED:
                return document
        return None

    def __repr__(self) -> str:
        return f"<Sale id={self.id} number={self.number} status={self.status}>"

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "number": self.number,
            "customer_id": self.customer_id,
            "seller_id": self.seller_id,
            "sale_type": self.sale_type,
            "status": self.status,
            "subtotal": as_str(self.subtotal),
            "discount_pct": as_str(self.discount_pct),
            "discount_value": as_str(self.discount_value),
            "surcharge_pct": as_str(self.surcharge_pct),
            "surcharge_value": as_str(self.surcharge_value),
            "freight": as_str(self.freight),
            "total": as_str(self.total),
            "payment_method": self.payment_method,
            "installments": self.installments,
            "payment_terms": self.payment_terms,
            "notes": self.notes,
            "sold_at": to_utc_z(self.sold_at),
            "expected_delivery_at": to_utc_z(self.expected_delivery_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "stock_applied_at": to_utc_z(self.stock_applied_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """
    Individual line item on a sale.

    Product code/description/unit/cost are a snapshot taken when the line is
    created; later catalog changes never reach an existing line.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "sequence", name="uq_sale_lines_sale_sequence"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    # Snapshot of the product at sale time
    product_code = db.Column(db.String(64), nullable=False)
    product_description = db.Column(db.String(100), nullable=False)
    unit = db.Column(db.String(3), nullable=False)

    quantity = db.Column(db.Numeric(15, 3), nullable=False)
    unit_price = db.Column(db.Numeric(15, 4), nullable=False)
    original_unit_price = db.Column(db.Numeric(15, 4), nullable=False)
    discount_pct = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_value = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    surcharge_pct = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    surcharge_value = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    unit_cost = db.Column(db.Numeric(15, 4), nullable=False, default=0)
    # NULL when the cost basis is zero
    margin = db.Column(db.Numeric(9, 2), nullable=True)

    # Fiscal attributes captured at sale time
    ncm = db.Column(db.String(8), nullable=True)
    cfop = db.Column(db.String(4), nullable=True)
    icms_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    pis_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    cofins_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="lines")
    product = db.relationship("Product")

    def tax_info(self) -> dict:
        return {
            "ncm": self.ncm,
            "cfop": self.cfop,
            "icms_rate": as_str(self.icms_rate),
            "pis_rate": as_str(self.pis_rate),
            "cofins_rate": as_str(self.cofins_rate),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "sequence": self.sequence,
            "product_code": self.product_code,
            "product_description": self.product_description,
            "unit": self.unit,
            "quantity": as_str(self.quantity),
            "unit_price": as_str(self.unit_price),
            "original_unit_price": as_str(self.original_unit_price),
            "discount_pct": as_str(self.discount_pct),
            "discount_value": as_str(self.discount_value),
            "surcharge_pct": as_str(self.surcharge_pct),
            "surcharge_value": as_str(self.surcharge_value),
            "total": as_str(self.total),
            "unit_cost": as_str(self.unit_cost),
            "margin": as_str(self.margin),
            "tax": self.tax_info(),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
