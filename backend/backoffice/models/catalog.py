from __future__ import annotations

from ..extensions import db
from ..money import as_str
from ..time_utils import to_utc_z


PRODUCT_STATUS_ACTIVE = "active"
PRODUCT_STATUS_INACTIVE = "inactive"
PRODUCT_STATUS_ON_PROMOTION = "on_promotion"
PRODUCT_STATUS_OUT_OF_STOCK = "out_of_stock"

PRODUCT_STATUSES = {
    PRODUCT_STATUS_ACTIVE,
    PRODUCT_STATUS_INACTIVE,
    PRODUCT_STATUS_ON_PROMOTION,
    PRODUCT_STATUS_OUT_OF_STOCK,
}

UNITS = {"UN", "KG", "MT", "LT", "CX", "PC"}


class Category(db.Model):
    """
    Product category with a materialized path.

    TREE DESIGN:
    - parent_id is the source of truth for structure
    - level and path are caches, recomputed for the whole subtree whenever
      a category is renamed or re-parented (see catalog_service)
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.Index("ix_categories_parent_status", "parent_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    name = db.Column(db.String(50), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)

    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    level = db.Column(db.Integer, nullable=False, default=1)
    path = db.Column(db.String(500), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active, inactive
    display_order = db.Column(db.Integer, nullable=False, default=0)

    # Defaults copied onto sale lines when the product has no explicit values
    default_margin = db.Column(db.Numeric(5, 2), nullable=True)
    default_icms_rate = db.Column(db.Numeric(5, 2), nullable=True)
    default_pis_rate = db.Column(db.Numeric(5, 2), nullable=True)
    default_cofins_rate = db.Column(db.Numeric(5, 2), nullable=True)
    default_ncm = db.Column(db.String(8), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    parent = db.relationship("Category", remote_side=[id], backref=db.backref("children", lazy=True))

    def __repr__(self) -> str:
        return f"<Category id={self.id} path={self.path!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "parent_id": self.parent_id,
            "level": self.level,
            "path": self.path,
            "status": self.status,
            "display_order": self.display_order,
            "default_margin": as_str(self.default_margin),
            "default_icms_rate": as_str(self.default_icms_rate),
            "default_pis_rate": as_str(self.default_pis_rate),
            "default_cofins_rate": as_str(self.default_cofins_rate),
            "default_ncm": self.default_ncm,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data with its current stock balance.

    STOCK INVARIANT:
    - stock_current is only changed through stock_service.apply_movement
    - status == out_of_stock whenever stock_current <= 0 after a movement
    - inactive is a manual status and is never derived automatically
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_description", "description"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True)
    barcode = db.Column(db.String(14), nullable=True, unique=True)
    description = db.Column(db.String(100), nullable=False)
    unit = db.Column(db.String(3), nullable=False, default="UN")

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    cost_price = db.Column(db.Numeric(15, 4), nullable=False, default=0)
    sale_price = db.Column(db.Numeric(15, 2), nullable=False, default=0)
    promo_price = db.Column(db.Numeric(15, 2), nullable=True)
    promo_start = db.Column(db.DateTime(timezone=True), nullable=True)
    promo_end = db.Column(db.DateTime(timezone=True), nullable=True)

    stock_current = db.Column(db.Numeric(15, 3), nullable=False, default=0)
    stock_min = db.Column(db.Numeric(15, 3), nullable=False, default=0)
    stock_max = db.Column(db.Numeric(15, 3), nullable=False, default=0)

    ncm = db.Column(db.String(8), nullable=True)
    status = db.Column(db.String(16), nullable=False, default=PRODUCT_STATUS_ACTIVE, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} stock={self.stock_current}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "barcode": self.barcode,
            "description": self.description,
            "unit": self.unit,
            "category_id": self.category_id,
            "supplier_id": self.supplier_id,
            "cost_price": as_str(self.cost_price),
            "sale_price": as_str(self.sale_price),
            "promo_price": as_str(self.promo_price),
            "promo_start": to_utc_z(self.promo_start),
            "promo_end": to_utc_z(self.promo_end),
            "stock_current": as_str(self.stock_current),
            "stock_min": as_str(self.stock_min),
            "stock_max": as_str(self.stock_max),
            "ncm": self.ncm,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only journal of stock movements.

    Written in the same DB transaction as the balance change it records.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    direction = db.Column(db.String(3), nullable=False)  # in, out
    quantity = db.Column(db.Numeric(15, 3), nullable=False)
    previous_balance = db.Column(db.Numeric(15, 3), nullable=False)
    new_balance = db.Column(db.Numeric(15, 3), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "direction": self.direction,
            "quantity": as_str(self.quantity),
            "previous_balance": as_str(self.previous_balance),
            "new_balance": as_str(self.new_balance),
            "reason": self.reason,
            "sale_id": self.sale_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
