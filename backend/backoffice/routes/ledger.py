# Overview: Flask API routes for receivables and payables; parses input and returns JSON responses.

# backend/backoffice/routes/ledger.py
from flask import Blueprint, request, jsonify, current_app

from ..errors import EngineError
from ..services import finance_service


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")

ENTRY_FIELDS = {
    "document_number",
    "amount",
    "discount",
    "issue_date",
    "due_date",
    "category",
    "cost_center",
    "recurring",
    "periodicity",
    "installment_number",
    "installment_total",
    "notes",
}


def _entry_fields(data: dict) -> dict:
    return {key: value for key, value in data.items() if key in ENTRY_FIELDS}


@ledger_bp.post("/receivables")
def create_receivable_route():
    try:
        data = request.get_json() or {}
        entry = finance_service.create_receivable(
            customer_id=data.get("customer_id"),
            sale_id=data.get("sale_id"),
            **_entry_fields(data),
        )
        return jsonify({"entry": entry.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create receivable")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.post("/payables")
def create_payable_route():
    try:
        data = request.get_json() or {}
        entry = finance_service.create_payable(supplier_id=data.get("supplier_id"), **_entry_fields(data))
        return jsonify({"entry": entry.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create payable")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/entries/<int:entry_id>")
def get_entry_route(entry_id: int):
    try:
        entry = finance_service.get_entry(entry_id)
        as_of = request.args.get("as_of")
        payload = entry.to_dict()
        payload["overdue"] = finance_service.is_overdue(entry, as_of)
        return jsonify({"entry": payload}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@ledger_bp.get("/overdue")
def overdue_entries_route():
    try:
        entries = finance_service.overdue_entries(request.args.get("as_of"), request.args.get("kind"))
        return jsonify({"entries": [entry.to_dict() for entry in entries]}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@ledger_bp.post("/entries/<int:entry_id>/settle")
def settle_entry_route(entry_id: int):
    """Body: {"amount": "50.00", "settled_on": "2024-01-20", "method": "pix"}"""
    try:
        data = request.get_json() or {}
        if data.get("amount") is None:
            return jsonify({"error": "amount required"}), 400

        entry = finance_service.register_settlement(
            entry_id, data["amount"], data.get("settled_on"), data.get("method")
        )
        return jsonify({"entry": entry.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register settlement")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.post("/entries/<int:entry_id>/accrue")
def accrue_entry_route(entry_id: int):
    try:
        data = request.get_json() or {}
        charges = finance_service.accrue_late_charges(entry_id, data.get("as_of"))
        return jsonify({"charges": charges.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to accrue late charges")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.post("/entries/<int:entry_id>/next-recurrence")
def next_recurrence_route(entry_id: int):
    try:
        entry = finance_service.generate_next_recurrence(entry_id)
        return jsonify({"entry": entry.to_dict()}), 201

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to generate next recurrence")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.post("/entries/<int:entry_id>/cancel")
def cancel_entry_route(entry_id: int):
    try:
        data = request.get_json() or {}
        entry = finance_service.cancel_entry(entry_id, data.get("reason"))
        return jsonify({"entry": entry.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel ledger entry")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.post("/entries/<int:entry_id>/contest")
def contest_entry_route(entry_id: int):
    try:
        data = request.get_json() or {}
        entry = finance_service.set_contested(entry_id, data.get("contested", True))
        return jsonify({"entry": entry.to_dict()}), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to flag ledger entry")
        return jsonify({"error": "Internal server error"}), 500
