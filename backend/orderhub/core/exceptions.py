"""
Error kinds raised by the order lifecycle engine.

Every error carries a machine-readable code and keyword context so the
calling layer can map it to a response and logs can include the details.
"""

from typing import Any, Optional


class OrderHubError(Exception):
    """Base exception for order engine errors."""

    code = "ORDERHUB_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, **context: Any):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logging or response shaping."""
        return {"code": self.code, "message": self.message, **self.context}


class OrderValidationError(OrderHubError):
    """Raised when input is malformed. No side effects have been attempted."""

    code = "VALIDATION_ERROR"


class NotFoundError(OrderHubError):
    """Raised when a referenced entity does not exist."""

    code = "NOT_FOUND"


class OrderNotFoundError(NotFoundError):
    """Raised when an order id does not resolve."""

    code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: Any):
        super().__init__(
            f"Order {order_id} not found",
            order_id=str(order_id),
        )
        self.order_id = order_id


class ProductNotFoundError(NotFoundError):
    """Raised when a product referenced by an order line does not exist."""

    code = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: Any):
        super().__init__(
            f"Product {product_id} not found",
            product_id=str(product_id),
        )
        self.product_id = product_id


class InsufficientStockError(OrderHubError):
    """Raised when a product cannot cover the requested quantity."""

    code = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: Any,
        requested: int,
        available: Optional[int] = None,
    ):
        super().__init__(
            f"Insufficient stock for product {product_id}",
            product_id=str(product_id),
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InvalidStateTransitionError(OrderHubError):
    """Raised when a lifecycle transition is not legal from the current status."""

    code = "INVALID_STATE_TRANSITION"

    def __init__(self, current_status: Any, requested_status: Any, **context: Any):
        current = getattr(current_status, "value", current_status)
        requested = getattr(requested_status, "value", requested_status)
        super().__init__(
            f"Invalid transition from {current} to {requested}",
            current_status=current,
            requested_status=requested,
            **context,
        )
        self.current_status = current_status
        self.requested_status = requested_status


class UnsupportedCurrencyError(OrderHubError):
    """Raised when a currency is not present in the configured rate table."""

    code = "UNSUPPORTED_CURRENCY"

    def __init__(self, currency: Any):
        value = getattr(currency, "value", currency)
        super().__init__(
            f"Unsupported currency: {value}",
            currency=str(value),
        )
        self.currency = currency


class PersistenceError(OrderHubError):
    """Raised when the backing store rejects a read or write."""

    code = "PERSISTENCE_FAILURE"
