# Overview: Flask API routes for categories, products and stock movements.

# backend/backoffice/routes/catalog.py
from flask import Blueprint, request, jsonify, current_app

from ..errors import EngineError
from ..services import catalog_service, stock_service


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.post("/categories")
def create_category_route():
    try:
        data = dict(request.get_json() or {})
        name = data.pop("name", None)
        code = data.pop("code", None)
        if not name or not code:
            return jsonify({"error": "name and code required"}), 400

        category = catalog_service.create_category(name, code, **data)
        return jsonify({"category": category.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/categories/<int:category_id>")
def update_category_route(category_id: int):
    try:
        data = request.get_json() or {}
        category = catalog_service.update_category(category_id, **data)
        return jsonify({"category": category.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update category")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/categories/<int:category_id>/tree")
def category_tree_route(category_id: int):
    try:
        return jsonify({"tree": catalog_service.category_tree(category_id)}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@catalog_bp.post("/products")
def create_product_route():
    try:
        data = request.get_json() or {}
        if not data.get("code") or not data.get("description") or data.get("sale_price") is None:
            return jsonify({"error": "code, description and sale_price required"}), 400

        product = catalog_service.create_product(**data)
        return jsonify({"product": product.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/products/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(product_id)
        payload = product.to_dict()
        payload["current_price"] = str(catalog_service.current_price(product))
        return jsonify({"product": payload}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@catalog_bp.get("/products/low-stock")
def low_stock_route():
    products = catalog_service.low_stock_products()
    return jsonify({"products": [product.to_dict() for product in products]}), 200


@catalog_bp.get("/products/<int:product_id>/availability")
def availability_route(product_id: int):
    try:
        quantity = request.args.get("quantity", "1")
        product = catalog_service.get_product(product_id)
        availability = stock_service.check_availability(product, quantity)
        return jsonify({"availability": availability.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@catalog_bp.post("/products/<int:product_id>/movements")
def register_movement_route(product_id: int):
    """Body: {"quantity": "5", "direction": "in", "reason": "receiving"}"""
    try:
        data = request.get_json() or {}
        if data.get("quantity") is None or not data.get("direction"):
            return jsonify({"error": "quantity and direction required"}), 400

        result = stock_service.register_movement(
            product_id, data["quantity"], data["direction"], data.get("reason")
        )
        return jsonify({"movement": result.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register stock movement")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/products/<int:product_id>/movements")
def list_movements_route(product_id: int):
    try:
        catalog_service.get_product(product_id)
        movements = stock_service.get_movements(product_id, limit=request.args.get("limit", 100, type=int))
        return jsonify({"movements": [movement.to_dict() for movement in movements]}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
