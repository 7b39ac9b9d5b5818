"""
Storefront error taxonomy.

Every expected failure of a cart, checkout or order operation is raised as one
of these typed errors and surfaced to the request layer as-is:

    StorefrontError
    ├── NotFoundError
    ├── InsufficientStockError
    ├── ProductUnavailableError
    ├── EmptyCartError
    ├── InvalidTransitionError
    ├── ValidationError
    └── CartConflictError
"""
from typing import Any, Dict, Optional


class StorefrontError(Exception):
    """
    Base class for expected, caller-recoverable errors.

    Attributes:
        message: Human-readable description, safe to return to clients
        code: Machine-readable error code
        details: Extra context (ids, quantities) for clients and logs
    """

    default_code: str = "STOREFRONT_ERROR"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class NotFoundError(StorefrontError):
    """Cart line, order or product does not exist or is not visible to the caller."""
    default_code = "NOT_FOUND"
    status_code = 404


class InsufficientStockError(StorefrontError):
    default_code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(
        self,
        product_id: int,
        product_name: Optional[str],
        available: Optional[int],
        requested: int,
        message: Optional[str] = None,
    ):
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested
        if message is None:
            label = product_name or f"product {product_id}"
            if available is None:
                message = f"Insufficient stock for {label}"
            else:
                message = f"Only {available} items available for {label}"
        super().__init__(
            message,
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )


class ProductUnavailableError(StorefrontError):
    """Product exists but has been soft-deleted."""
    default_code = "PRODUCT_UNAVAILABLE"
    status_code = 409

    def __init__(self, product_id: int, product_name: Optional[str] = None):
        self.product_id = product_id
        self.product_name = product_name
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Product {label} is no longer available",
            details={"product_id": product_id, "product_name": product_name},
        )


class EmptyCartError(StorefrontError):
    default_code = "EMPTY_CART"
    status_code = 400

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class InvalidTransitionError(StorefrontError):
    default_code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, current: str, target: str, message: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(
            message or f"Cannot change order status from {current} to {target}",
            details={"current": current, "target": target},
        )


class ValidationError(StorefrontError):
    """Malformed input shape: missing shipping fields, bad quantity, negative price."""
    default_code = "VALIDATION_ERROR"
    status_code = 422


class CartConflictError(StorefrontError):
    """The cart kept changing underneath a mutation until retries ran out."""
    default_code = "CART_CONFLICT"
    status_code = 409
