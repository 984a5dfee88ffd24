# Overview: Flask API routes for fiscal documents (issue, submission lifecycle, cancellation).

# backend/backoffice/routes/fiscal.py
from flask import Blueprint, request, jsonify, current_app

from ..errors import EngineError
from ..models.fiscal import DOCUMENT_TYPE_RETAIL_RECEIPT
from ..services import fiscal_service


fiscal_bp = Blueprint("fiscal", __name__, url_prefix="/api/fiscal-documents")


def _document_response(document, status_code: int = 200):
    return jsonify({
        "document": document.to_dict(),
        "status": fiscal_service.status_summary(document),
    }), status_code


@fiscal_bp.post("/")
def issue_document_route():
    """
    Issue the fiscal document of a sale.

    Body: {"sale_id": 1, "document_type": "retail_receipt", "issuer": {...optional overrides}}
    """
    try:
        data = request.get_json() or {}
        sale_id = data.get("sale_id")
        if not sale_id:
            return jsonify({"error": "sale_id required"}), 400

        issuer = fiscal_service.FiscalIssuer.from_mapping(data.get("issuer"), current_app.config)
        document = fiscal_service.issue_fiscal_document(
            sale_id,
            issuer,
            document_type=data.get("document_type") or DOCUMENT_TYPE_RETAIL_RECEIPT,
            additional_info=data.get("additional_info"),
        )
        return _document_response(document, 201)

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to issue fiscal document")
        return jsonify({"error": "Internal server error"}), 500


@fiscal_bp.get("/<int:document_id>")
def get_document_route(document_id: int):
    try:
        document = fiscal_service.get_document(document_id)
        payload = {
            "document": document.to_dict(),
            "status": fiscal_service.status_summary(document),
            "taxes": fiscal_service.tax_totals(document),
        }
        return jsonify(payload), 200

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code


@fiscal_bp.post("/<int:document_id>/submit")
def submit_document_route(document_id: int):
    try:
        return _document_response(fiscal_service.submit(document_id))

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to submit fiscal document")
        return jsonify({"error": "Internal server error"}), 500


@fiscal_bp.post("/<int:document_id>/processing")
def processing_document_route(document_id: int):
    try:
        return _document_response(fiscal_service.start_processing(document_id))

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark fiscal document as processing")
        return jsonify({"error": "Internal server error"}), 500


@fiscal_bp.post("/<int:document_id>/authorize")
def authorize_document_route(document_id: int):
    """Body: {"protocol": "135240000000001", "code": "100", "message": "..."}"""
    try:
        data = request.get_json() or {}
        protocol = data.get("protocol")
        if not protocol:
            return jsonify({"error": "protocol required"}), 400

        document = fiscal_service.authorize(
            document_id, protocol, code=data.get("code"), message=data.get("message")
        )
        return _document_response(document)

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to authorize fiscal document")
        return jsonify({"error": "Internal server error"}), 500


@fiscal_bp.post("/<int:document_id>/reject")
def reject_document_route(document_id: int):
    try:
        data = request.get_json() or {}
        document = fiscal_service.reject(document_id, code=data.get("code"), message=data.get("message"))
        return _document_response(document)

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject fiscal document")
        return jsonify({"error": "Internal server error"}), 500


@fiscal_bp.post("/<int:document_id>/cancel")
def cancel_document_route(document_id: int):
    """Body: {"justification": "at least fifteen characters"}"""
    try:
        data = request.get_json() or {}
        document = fiscal_service.cancel_fiscal_document(document_id, data.get("justification"))
        return _document_response(document)

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel fiscal document")
        return jsonify({"error": "Internal server error"}), 500


@fiscal_bp.post("/<int:document_id>/void")
def void_document_route(document_id: int):
    try:
        data = request.get_json() or {}
        document = fiscal_service.void_fiscal_document(document_id, data.get("justification"))
        return _document_response(document)

    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to void fiscal document")
        return jsonify({"error": "Internal server error"}), 500
