# backend/utils/errors.py
"""Domain errors raised by the checkout services.

Each error carries the HTTP status it is rendered with; the handlers in
``main.py`` turn them into ``{"success": false, "error": <message>}``.
"""


class ShopError(Exception):
    """Base exception for all checkout errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFound(ShopError):
    """Product, cart, cart item, order or payment attempt is absent."""

    status_code = 404


class ValidationFailed(ShopError):
    """Missing/malformed input or a forbidden state change."""

    status_code = 400


class InsufficientStock(ShopError):
    """Requested quantity exceeds what is currently available."""

    status_code = 400

    def __init__(self, product_id: int, requested: int, available: int, name: str | None = None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        label = name or f"#{product_id}"
        super().__init__(
            f"Product {label} has insufficient stock. Requested: {requested}, available: {available}"
        )


class Unauthorized(ShopError):
    """Caller is neither the owner nor holds an elevated role."""

    status_code = 403


class PaymentNotSuccessful(ShopError):
    """Gateway intent is not in the succeeded state."""

    status_code = 400

    def __init__(self, intent_id: str, status: str):
        self.intent_id = intent_id
        self.status = status
        super().__init__(f"Payment not successful (intent {intent_id} is {status})")


class WebhookSignatureInvalid(ShopError):
    """Webhook payload could not be authenticated."""

    status_code = 400


class UpstreamUnavailable(ShopError):
    """Catalog or payment gateway unreachable or failing."""

    status_code = 502


class UpstreamTimeout(UpstreamUnavailable):
    """Catalog or payment gateway did not answer in time."""

    status_code = 504
