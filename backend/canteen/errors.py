# Overview: Domain error taxonomy shared by services and routes.

"""
Every error raised by the service layer carries:
- a stable machine-readable `kind` (clients switch on it)
- an HTTP `status_code` used by the route layer
- a human-readable message and optional structured `details`

Routes never build error bodies by hand; they return `error.to_dict()`.
"""

from __future__ import annotations


class CanteenError(Exception):
    """Base class for domain errors surfaced to API callers."""
    kind = "error"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "kind": self.kind}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(CanteenError, ValueError):
    """400-level input problem (empty cart, non-positive quantity, bad enum)."""
    kind = "validation_error"
    status_code = 400


class InvalidTransitionError(ValidationError):
    """Order status change not permitted by the transition table."""
    kind = "invalid_transition"


class NotFoundError(CanteenError):
    kind = "not_found"
    status_code = 404


class UnauthorizedError(CanteenError):
    """No credential, or the credential is invalid/expired."""
    kind = "unauthorized"
    status_code = 401


class ForbiddenError(CanteenError):
    """Role or ownership violation."""
    kind = "forbidden"
    status_code = 403


class PermissionDeniedError(ForbiddenError):
    """Raised when user lacks required permission."""


class ConflictError(CanteenError, ValueError):
    """409-level business rule conflict (e.g., duplicate email)."""
    kind = "conflict"
    status_code = 409


class ItemUnavailableError(CanteenError):
    kind = "item_unavailable"
    status_code = 409


class InsufficientStockError(CanteenError):
    kind = "insufficient_stock"
    status_code = 409


class InvoiceAlreadyExistsError(ConflictError):
    kind = "invoice_already_exists"


class InvoiceNotYetAvailableError(CanteenError):
    kind = "invoice_not_yet_available"
    status_code = 404
