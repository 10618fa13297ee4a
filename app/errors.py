"""Error taxonomy shared by the webhook handlers and services.

Validation and not-found errors are logged and acknowledged, authentication
errors are rejected with 401/403, upstream errors are caught where a customer
flow is in progress, and configuration errors stop the process at startup.
"""


class StorefrontError(Exception):
    code = "storefront_error"

    def __init__(self, message: str = ""):
        self.message = message or self.code
        super().__init__(self.message)


class ValidationFailure(StorefrontError):
    code = "validation_error"


class AuthenticationFailure(StorefrontError):
    code = "auth_error"


class NotFound(StorefrontError):
    code = "not_found"


class UpstreamError(StorefrontError):
    """Failure talking to WhatsApp, the LLM provider or Paystack."""

    code = "upstream_error"

    def __init__(self, message: str = "", *, transient: bool = True, status_code: int | None = None):
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code


class UpstreamTimeout(UpstreamError):
    code = "upstream_timeout"

    def __init__(self, message: str = ""):
        super().__init__(message, transient=True)


class BusinessRuleViolation(StorefrontError):
    code = "business_rule"


class InsufficientStock(BusinessRuleViolation):
    code = "insufficient_stock"

    def __init__(self, product_name: str, requested: int, available: int):
        super().__init__(f"Requested {requested} of {product_name}, only {available} available")
        self.product_name = product_name
        self.requested = requested
        self.available = available


class ConfigurationError(StorefrontError):
    code = "configuration_error"
