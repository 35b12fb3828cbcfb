"""
Error taxonomy shared by the store, the chain clients and the API.

Each error carries the HTTP status it maps to and a public message that is
safe to return to the client.
"""


class PaymentServiceError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message: str | None = None, code: str | None = None):
        if message is not None:
            self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(self.message)


class ValidationError(PaymentServiceError):
    status_code = 400
    message = "Missing required fields"


class UnsupportedCurrencyError(ValidationError):
    message = "Unsupported cryptocurrency"


class NotFoundError(PaymentServiceError):
    status_code = 404
    message = "Not found"


class ConflictError(PaymentServiceError):
    status_code = 409
    message = "Transaction already used"


class PersistenceError(PaymentServiceError):
    message = "Internal server error"


class ConfigurationError(PaymentServiceError):
    message = "Internal server error"


class UpstreamChainError(PaymentServiceError):
    """Explorer unreachable or returned something unusable. Retry next cycle."""


class InvalidTransactionError(PaymentServiceError):
    """The explorer rejected the transaction hash itself. Retrying will not help."""

    status_code = 400
    message = "Invalid transaction hash"
