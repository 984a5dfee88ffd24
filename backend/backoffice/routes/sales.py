# Overview: Flask API routes for sales; parses input and returns JSON responses.

# backend/backoffice/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import EngineError
from ..services import order_service, sales_service
from ..validation import to_flag


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/")
def create_sale_route():
    """
    Create a pending sale.

    Body: {"customer_id", "seller_id", "payment_method", ..., "items": [{"product_id", "quantity", ...}]}
    """
    try:
        data = dict(request.get_json() or {})
        items = data.pop("items", None) or []

        sale = sales_service.create_sale(data, items)

        return jsonify({"sale": sale.to_dict(include_lines=True)}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict(include_lines=True)}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.patch("/<int:sale_id>")
def update_sale_route(sale_id: int):
    try:
        data = request.get_json() or {}
        sale = sales_service.update_sale_header(sale_id, **data)
        return jsonify({"sale": sale.to_dict(include_lines=True)}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/lines")
def add_line_route(sale_id: int):
    try:
        data = request.get_json() or {}
        if not data.get("product_id") or data.get("quantity") is None:
            return jsonify({"error": "product_id and quantity required"}), 400

        line = sales_service.add_line(sale_id, data)

        return jsonify({"line": line.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add sale line")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>/lines/<int:line_id>")
def remove_line_route(sale_id: int, line_id: int):
    try:
        sale = sales_service.remove_line(sale_id, line_id)
        return jsonify({"sale": sale.to_dict(include_lines=True)}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove sale line")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/transition")
def transition_sale_route(sale_id: int):
    """
    Move a sale to another status.

    Body: {"status": "picking"}
    Cancelling restores any stock debited on approval.
    """
    try:
        data = request.get_json() or {}
        target = data.get("status")
        if not target:
            return jsonify({"error": "status required"}), 400

        sale = sales_service.transition_sale(sale_id, target)

        return jsonify({"sale": sale.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to transition sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/confirm")
def confirm_sale_route(sale_id: int):
    """
    Approve a pending sale: stock debit, optional fiscal document, receivables.

    Body: {"issue_document": false, "document_type": "retail_receipt", "first_due_date": "2024-02-01"}
    """
    try:
        data = request.get_json() or {}
        options = {
            "issue_document": to_flag(data.get("issue_document"), "issue_document", default=False),
            "create_receivables": to_flag(data.get("create_receivables"), "create_receivables", default=True),
            "first_due_date": data.get("first_due_date"),
        }
        if data.get("document_type"):
            options["document_type"] = data["document_type"]

        result = order_service.confirm_sale(sale_id, **options)

        return jsonify(result.to_dict()), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
def delete_sale_route(sale_id: int):
    try:
        sales_service.delete_sale(sale_id)
        return "", 204

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return jsonify({"error": "Internal server error"}), 500
