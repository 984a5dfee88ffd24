# Overview: Service-layer operations for the catalog (categories and products).

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Category, Product
from ..models.catalog import PRODUCT_STATUSES, PRODUCT_STATUS_ACTIVE, UNITS
from ..money import ZERO, to_decimal
from ..time_utils import parse_iso_datetime, utcnow
from .concurrency import run_in_transaction
from .pricing import margin_pct
from .stock_service import derive_status


PATH_SEPARATOR = "/"


# =============================================================================
# CATEGORIES
# =============================================================================

def get_category(category_id: int) -> Category:
    category = db.session.query(Category).filter_by(id=category_id).first()
    if category is None:
        raise NotFoundError(f"Category {category_id} not found", details={"category_id": category_id})
    return category


def _refresh_path(category: Category) -> None:
    """Recompute level/path for a category and cascade to every descendant."""
    if category.parent is None:
        category.level = 1
        category.path = category.name
    else:
        category.level = category.parent.level + 1
        category.path = f"{category.parent.path}{PATH_SEPARATOR}{category.name}"

    for child in category.children:
        _refresh_path(child)


def _assert_not_descendant(category: Category, new_parent: Category) -> None:
    node = new_parent
    while node is not None:
        if node.id == category.id:
            raise ValidationError(
                "A category cannot be moved under itself or one of its descendants",
                details={"category_id": category.id, "parent_id": new_parent.id},
            )
        node = node.parent


def create_category(
    name: str,
    code: str,
    parent_id: int | None = None,
    **attrs,
) -> Category:
    def _op():
        if not name or not name.strip():
            raise ValidationError("Category name is required")
        parent = get_category(parent_id) if parent_id is not None else None

        category = Category(name=name.strip(), code=code, parent=parent, **attrs)
        db.session.add(category)
        _refresh_path(category)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError(f"Category code {code!r} already exists", details={"code": code})
        return category

    return run_in_transaction(_op)


def update_category(category_id: int, **changes) -> Category:
    """
    Update a category. Renames and re-parenting rebuild the cached paths of
    the whole subtree.
    """
    def _op():
        category = get_category(category_id)
        structural = False

        if "parent_id" in changes:
            parent_id = changes.pop("parent_id")
            if parent_id != category.parent_id:
                new_parent = get_category(parent_id) if parent_id is not None else None
                if new_parent is not None:
                    _assert_not_descendant(category, new_parent)
                category.parent = new_parent
                structural = True

        if "name" in changes:
            name = (changes.pop("name") or "").strip()
            if not name:
                raise ValidationError("Category name is required", details={"category_id": category_id})
            structural = structural or name != category.name
            category.name = name

        for key, value in changes.items():
            if not hasattr(Category, key) or key in {"id", "level", "path", "created_at"}:
                raise ValidationError(f"Unknown or read-only field {key!r}", details={"field": key})
            setattr(category, key, value)

        if structural:
            _refresh_path(category)
        db.session.flush()
        return category

    return run_in_transaction(_op)


def rebuild_paths() -> int:
    """Recompute every cached path from the roots down. Returns rows touched."""
    def _op():
        roots = db.session.query(Category).filter(Category.parent_id.is_(None)).all()
        for root in roots:
            _refresh_path(root)
        return db.session.query(Category).count()

    return run_in_transaction(_op)


def root_categories() -> list[Category]:
    return (
        db.session.query(Category)
        .filter(Category.parent_id.is_(None), Category.status == "active")
        .order_by(Category.display_order.asc(), Category.name.asc())
        .all()
    )


def category_tree(category_id: int) -> dict:
    """Nested dict of a category and its active descendants."""
    category = get_category(category_id)

    def _node(cat: Category) -> dict:
        node = {
            "id": cat.id,
            "name": cat.name,
            "code": cat.code,
            "level": cat.level,
            "path": cat.path,
            "status": cat.status,
        }
        children = [child for child in cat.children if child.status == "active"]
        if children:
            node["children"] = [_node(child) for child in sorted(children, key=lambda c: (c.display_order, c.name))]
        return node

    return _node(category)


# =============================================================================
# PRODUCTS
# =============================================================================

def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def create_product(
    *,
    code: str,
    description: str,
    sale_price,
    cost_price=ZERO,
    unit: str = "UN",
    stock_current=ZERO,
    stock_min=ZERO,
    stock_max=ZERO,
    status: str | None = None,
    promo_price=None,
    promo_start=None,
    promo_end=None,
    **attrs,
) -> Product:
    def _op():
        if unit not in UNITS:
            raise ValidationError(f"Invalid unit {unit!r}", details={"unit": unit, "allowed": sorted(UNITS)})
        if status is not None and status not in PRODUCT_STATUSES:
            raise ValidationError(f"Invalid status {status!r}", details={"status": status})

        current = to_decimal(stock_current, "stock_current")
        for field, value in (("stock_current", current), ("stock_min", stock_min), ("stock_max", stock_max)):
            if to_decimal(value, field) < 0:
                raise ValidationError(f"{field} cannot be negative", details={"field": field})

        product = Product(
            code=code,
            description=description,
            unit=unit,
            sale_price=to_decimal(sale_price, "sale_price"),
            cost_price=to_decimal(cost_price, "cost_price"),
            stock_current=current,
            stock_min=to_decimal(stock_min, "stock_min"),
            stock_max=to_decimal(stock_max, "stock_max"),
            promo_price=to_decimal(promo_price, "promo_price") if promo_price is not None else None,
            promo_start=_as_datetime(promo_start),
            promo_end=_as_datetime(promo_end),
            status=derive_status(status or PRODUCT_STATUS_ACTIVE, current),
            **attrs,
        )
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError(f"Product code {code!r} already exists", details={"code": code})

        current_app.logger.info("Product %s created (%s)", product.id, product.code)
        return product

    return run_in_transaction(_op)


def _as_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return parse_iso_datetime(str(value))


def is_on_promotion(product: Product, at: datetime | None = None) -> bool:
    """True when a promotional price is set and ``at`` is inside its window."""
    at = at or utcnow()
    if product.promo_price is None or product.promo_start is None or product.promo_end is None:
        return False
    return product.promo_start <= at <= product.promo_end


def current_price(product: Product, at: datetime | None = None) -> Decimal:
    if is_on_promotion(product, at):
        return to_decimal(product.promo_price)
    return to_decimal(product.sale_price)


def markup(product: Product, price=None) -> Optional[Decimal]:
    """Margin of ``price`` (default: list price) over cost, in percent."""
    price = to_decimal(price if price is not None else product.sale_price, "price")
    return margin_pct(price, to_decimal(product.cost_price))


def low_stock_products() -> list[Product]:
    """Products at or below their minimum stock (inactive ones excluded)."""
    return (
        db.session.query(Product)
        .filter(Product.stock_current <= Product.stock_min, Product.status != "inactive")
        .order_by(Product.code.asc())
        .all()
    )
