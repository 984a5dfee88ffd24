"""
Domain error taxonomy.

Every error is recoverable by the caller: it carries the entity id and the
current vs. requested state or amount in ``details`` so the caller can decide
between retrying and surfacing the problem to the user.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for order-to-cash domain errors."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"error": self.message, "type": self.type, "details": self.details}


class ValidationError(EngineError):
    """400-level input problem."""

    status_code = 400


class NotFoundError(EngineError):
    status_code = 404


class IllegalTransitionError(EngineError):
    """Requested status is not in the current status' legal set."""

    status_code = 409


class InvalidStateError(EngineError):
    """Operation is not allowed for the entity's current status."""

    status_code = 409


class ConflictError(EngineError):
    """409-level unique-key collision (access key, protocol, sale number)."""

    status_code = 409


class InsufficientStockError(EngineError):
    status_code = 422


class OverpaymentError(EngineError):
    status_code = 422


class NotRecurringError(EngineError):
    status_code = 422
