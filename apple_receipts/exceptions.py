"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class ReceiptVerificationError(Exception):
    """Base exception for all receipt verification errors."""

    pass


class PaymentProviderError(ReceiptVerificationError):
    """Raised when the call to the payment provider fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment provider error: {message}")


class ProviderResponseError(PaymentProviderError):
    """Raised when the provider reply is not a JSON object."""

    def __init__(self, message: str, body: str) -> None:
        self.body = body
        super().__init__(message)


class MalformedReceiptError(ReceiptVerificationError):
    """Raised when the provider envelope has an unexpected transaction list."""

    def __init__(self, product_type: str, message: str) -> None:
        self.product_type = product_type
        self.message = message
        super().__init__(f"Malformed {product_type} receipt: {message}")
