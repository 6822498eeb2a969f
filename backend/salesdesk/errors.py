# Overview: Error taxonomy shared by the sale engines, services and routes.

"""
Sale errors.

Every error carries a human-readable message (the notice shown to the
operator) and a details dict with the structured facts behind it (product,
available quantity, monetary differential). Routes render them as
{"error": ..., "code": ..., "details": ...} with status_code.
"""


class SaleError(Exception):
    """Raised for sale operation errors."""
    code = "SALE_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "code": self.code, "details": self.details}


class ValidationError(SaleError):
    """Missing required selection, empty cart, malformed input."""
    code = "VALIDATION_ERROR"


class ItemEditLocked(ValidationError):
    """Item-level price edits are blocked while a global discount is applied."""
    code = "ITEM_EDIT_LOCKED"


class ConflictError(SaleError):
    """Business rule conflict on catalog/people records."""
    code = "CONFLICT"
    status_code = 409


class InsufficientStock(SaleError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, product_name: str, available, requested=None, product_id=None):
        super().__init__(
            f"Insufficient stock for '{product_name}'. Available: {available}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_name = product_name
        self.available = available


class ProductNotFound(SaleError):
    code = "PRODUCT_NOT_FOUND"
    status_code = 404


class AuthorizationRequired(SaleError):
    """Discount over the threshold without an override token."""
    code = "AUTHORIZATION_REQUIRED"
    status_code = 403


class RoleNotAllowed(SaleError):
    code = "ROLE_NOT_ALLOWED"
    status_code = 403


class PaymentMismatch(SaleError):
    code = "PAYMENT_MISMATCH"

    @property
    def difference(self):
        return self.details.get("difference")


class ExceedsRemaining(SaleError):
    """A single payment-method allocation larger than the room left."""
    code = "EXCEEDS_REMAINING"


class AlreadyCompleted(SaleError):
    code = "ALREADY_COMPLETED"
    status_code = 409


class InvalidTransition(SaleError):
    code = "INVALID_TRANSITION"
    status_code = 409


class NotFound(SaleError):
    code = "NOT_FOUND"
    status_code = 404


class StoreError(SaleError):
    """Opaque persistence failure passed through from the record store."""
    code = "STORE_ERROR"
    status_code = 503
