from __future__ import annotations

from ..extensions import db
from ..money import as_str
from ..time_utils import to_iso_date, to_utc_z


ENTRY_KIND_RECEIVABLE = "receivable"
ENTRY_KIND_PAYABLE = "payable"

ENTRY_STATUS_OPEN = "open"
ENTRY_STATUS_PARTIALLY_SETTLED = "partially_settled"
ENTRY_STATUS_SETTLED = "settled"
ENTRY_STATUS_CANCELLED = "cancelled"

ENTRY_STATUSES = {
    ENTRY_STATUS_OPEN,
    ENTRY_STATUS_PARTIALLY_SETTLED,
    ENTRY_STATUS_SETTLED,
    ENTRY_STATUS_CANCELLED,
}

SETTLEMENT_METHODS = {
    "cash",
    "check",
    "credit_card",
    "debit_card",
    "transfer",
    "bank_slip",
    "pix",
}

# Periodicity -> months between due dates
PERIODICITY_MONTHS = {
    "monthly": 1,
    "bimonthly": 2,
    "quarterly": 3,
    "semiannual": 6,
    "annual": 12,
}


class LedgerEntry(db.Model):
    """
    Receivable or payable entry (single-table, discriminated by ``kind``).

    AMOUNTS:
        amount_remaining = original + interest + penalty - discount - settled
    amount_remaining is a cached column recomputed by finance_service on every
    mutation.

    FLAGS:
    - overdue is derived from due_date vs. a reference date, never stored
    - contested is an orthogonal flag that coexists with any status
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_entries_kind_status_due", "kind", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(db.String(16), nullable=False, index=True)
    document_number = db.Column(db.String(64), nullable=False)

    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False, index=True)
    settlement_date = db.Column(db.Date, nullable=True)

    amount_original = db.Column(db.Numeric(15, 2), nullable=False)
    amount_interest = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    amount_penalty = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    amount_discount = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    amount_settled = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    amount_remaining = db.Column(db.Numeric(15, 2), nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default=ENTRY_STATUS_OPEN, index=True)
    contested = db.Column(db.Boolean, nullable=False, default=False)
    settlement_method = db.Column(db.String(16), nullable=True)

    category = db.Column(db.String(64), nullable=False)
    cost_center = db.Column(db.String(64), nullable=True)

    recurring = db.Column(db.Boolean, nullable=False, default=False)
    periodicity = db.Column(db.String(16), nullable=True)
    installment_number = db.Column(db.Integer, nullable=True)
    installment_total = db.Column(db.Integer, nullable=True)
    recurrence_parent_id = db.Column(db.Integer, db.ForeignKey("ledger_entries.id"), nullable=True, index=True)

    notes = db.Column(db.Text, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    recurrence_parent = db.relationship(
        "LedgerEntry",
        remote_side=[id],
        backref=db.backref("recurrence_children", lazy=True),
    )

    __mapper_args__ = {"polymorphic_on": kind}

    @property
    def counterparty_id(self) -> int | None:
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id} doc={self.document_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind,
            "document_number": self.document_number,
            "counterparty_id": self.counterparty_id,
            "issue_date": to_iso_date(self.issue_date),
            "due_date": to_iso_date(self.due_date),
            "settlement_date": to_iso_date(self.settlement_date),
            "amount_original": as_str(self.amount_original),
            "amount_interest": as_str(self.amount_interest),
            "amount_penalty": as_str(self.amount_penalty),
            "amount_discount": as_str(self.amount_discount),
            "amount_settled": as_str(self.amount_settled),
            "amount_remaining": as_str(self.amount_remaining),
            "status": self.status,
            "contested": self.contested,
            "settlement_method": self.settlement_method,
            "category": self.category,
            "cost_center": self.cost_center,
            "recurring": self.recurring,
            "periodicity": self.periodicity,
            "installment_number": self.installment_number,
            "installment_total": self.installment_total,
            "recurrence_parent_id": self.recurrence_parent_id,
            "notes": self.notes,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Receivable(LedgerEntry):
    """Money owed to the business by a customer, optionally for a sale."""

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    customer = db.relationship("Customer", backref=db.backref("receivables", lazy=True))
    sale = db.relationship("Sale", backref=db.backref("receivables", lazy=True))

    __mapper_args__ = {"polymorphic_identity": ENTRY_KIND_RECEIVABLE}

    @property
    def counterparty_id(self) -> int | None:
        return self.customer_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["customer_id"] = self.customer_id
        data["sale_id"] = self.sale_id
        return data


class Payable(LedgerEntry):
    """Money owed by the business to a supplier."""

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    supplier = db.relationship("Supplier", backref=db.backref("payables", lazy=True))

    __mapper_args__ = {"polymorphic_identity": ENTRY_KIND_PAYABLE}

    @property
    def counterparty_id(self) -> int | None:
        return self.supplier_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["supplier_id"] = self.supplier_id
        return data
