from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """Counterparty for sales and receivables (registration lives elsewhere)."""
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    # CPF (11 digits) or CNPJ (14 digits)
    tax_id = db.Column(db.String(14), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "tax_id": self.tax_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Supplier(db.Model):
    """Counterparty for payables and default product sourcing."""
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    legal_name = db.Column(db.String(100), nullable=False)
    trade_name = db.Column(db.String(100), nullable=True)
    tax_id = db.Column(db.String(14), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} legal_name={self.legal_name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "legal_name": self.legal_name,
            "trade_name": self.trade_name,
            "tax_id": self.tax_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
