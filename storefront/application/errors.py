"""Storefront error taxonomy.

Each error knows the HTTP status and JSON body it is rendered as, so route
handlers only raise and the exception handler in ``storefront.main`` turns
them into responses.
"""

from typing import Any, Dict, List, Optional


class StorefrontError(Exception):
    status_code = 500
    message = "Unexpected error."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class InvalidPayload(StorefrontError):
    """Request body failed schema validation; nothing was written."""
    status_code = 400
    message = "Invalid payload."


class ItemsUnavailable(StorefrontError):
    """Some (product, size, color) lines do not resolve to a purchasable variant."""
    status_code = 400
    message = "Some items are no longer available."

    def __init__(self, missing_items: List[str]):
        super().__init__()
        self.missing_items = missing_items

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "missingItems": self.missing_items}


class OutOfStock(StorefrontError):
    """Some resolved variants cannot cover the requested quantity."""
    status_code = 409
    message = "Some items are out of stock."

    def __init__(self, stock_issues: List[str]):
        super().__init__()
        self.stock_issues = stock_issues

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "stockIssues": self.stock_issues}


class TransactionFailure(StorefrontError):
    """The write phase failed and was rolled back. Details stay server side."""
    status_code = 500
    message = "Unable to create order at this time."


class OrderNumberCollision(TransactionFailure):
    code = "ORDER_NUMBER_COLLISION"


class StockConflict(Exception):
    """A guarded stock decrement matched no row.

    Raised by the inventory ledger inside a transaction; callers roll back
    and report it as ``OutOfStock``.
    """

    def __init__(self, variant_id: str, delta: int):
        super().__init__(f"Insufficient stock on variant {variant_id} for delta {delta}")
        self.variant_id = variant_id
        self.delta = delta


class DatabaseNotConfigured(StorefrontError):
    status_code = 503
    message = "Database is not configured."


class NotFound(StorefrontError):
    status_code = 404
    message = "Not found."


class Unauthorized(StorefrontError):
    status_code = 401
    message = "Not authenticated."
