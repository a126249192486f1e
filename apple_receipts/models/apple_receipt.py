"""
Apple receipt domain models - Immutable dataclasses for receipt verification.

NO DICTIONARIES - All data uses strongly typed models.

These model the legacy App Store verifyReceipt endpoint, which answers with
a JSON envelope whose shape depends on the `status` code.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from apple_receipts.config import Settings


class ProductType(str, Enum):
    """App Store product type of the purchase being verified."""

    SUBSCRIPTION = "Subscription"
    CONSUMABLE = "Consumable"
    NON_CONSUMABLE = "NonConsumable"

    def is_subscription(self) -> bool:
        """Check if expiry logic applies to this product type."""
        return self is ProductType.SUBSCRIPTION


class ReceiptStatus(IntEnum):
    """Documented verifyReceipt status codes."""

    VALID = 0
    NOT_POST = 21000
    NO_LONGER_SENT = 21001
    MALFORMED_DATA = 21002
    NOT_AUTHENTICATED = 21003
    SHARED_SECRET_MISMATCH = 21004
    SERVER_UNAVAILABLE = 21005
    SUBSCRIPTION_EXPIRED = 21006
    SANDBOX_RECEIPT = 21007
    PRODUCTION_RECEIPT = 21008
    INTERNAL_DATA_ACCESS_ERROR = 21009
    ACCOUNT_NOT_FOUND = 21010

    @property
    def description(self) -> str:
        """Human-readable meaning of the status code."""
        return _STATUS_DESCRIPTIONS[self]


_STATUS_DESCRIPTIONS: dict[ReceiptStatus, str] = {
    ReceiptStatus.VALID: "Receipt is valid",
    ReceiptStatus.NOT_POST: "Request to the App Store was not made using HTTP POST",
    ReceiptStatus.NO_LONGER_SENT: "Status code no longer sent by the App Store",
    ReceiptStatus.MALFORMED_DATA: "Receipt data was malformed or the service had a temporary issue",
    ReceiptStatus.NOT_AUTHENTICATED: "Receipt could not be authenticated",
    ReceiptStatus.SHARED_SECRET_MISMATCH: "Shared secret does not match the one on file",
    ReceiptStatus.SERVER_UNAVAILABLE: "Receipt server was temporarily unavailable",
    ReceiptStatus.SUBSCRIPTION_EXPIRED: "Receipt is valid but the subscription has expired",
    ReceiptStatus.SANDBOX_RECEIPT: "Sandbox receipt sent to the production environment",
    ReceiptStatus.PRODUCTION_RECEIPT: "Production receipt sent to the sandbox environment",
    ReceiptStatus.INTERNAL_DATA_ACCESS_ERROR: "Internal data access error",
    ReceiptStatus.ACCOUNT_NOT_FOUND: "User account cannot be found or has been deleted",
}


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


@dataclass(frozen=True)
class TransactionRecord:
    """One purchase entry from `latest_receipt_info` or `receipt.in_app`.

    Apple sends every field as a string, including booleans and epoch
    millisecond timestamps.
    """

    product_id: str | None
    original_transaction_id: str | None = None
    expires_date_ms: str | None = None  # Subscriptions only
    is_trial_period: str | None = None  # "true" / "false"

    @classmethod
    def from_provider(cls, item: Mapping[str, Any]) -> "TransactionRecord":
        """Build a record from one raw transaction object."""
        return cls(
            product_id=_optional_str(item.get("product_id")),
            original_transaction_id=_optional_str(item.get("original_transaction_id")),
            expires_date_ms=_optional_str(item.get("expires_date_ms")),
            is_trial_period=_optional_str(item.get("is_trial_period")),
        )


@dataclass(frozen=True)
class ProviderEnvelope:
    """Parsed verifyReceipt response.

    Only `status` is guaranteed to be meaningful; the transaction lists are
    present for some status codes and absent for others. `raw` keeps the
    full object for audit.
    """

    status: int | None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ProviderEnvelope":
        """Build an envelope from a decoded JSON object.

        A status that is not an integer leaves the envelope without a status.
        """
        status = payload.get("status")
        if isinstance(status, bool) or not isinstance(status, int):
            status = None
        return cls(status=status, raw=payload)

    @property
    def receipt_status(self) -> ReceiptStatus | None:
        """Documented status member, or None for an absent or unknown code."""
        if self.status is None:
            return None
        try:
            return ReceiptStatus(self.status)
        except ValueError:
            return None

    def is_usable(self) -> bool:
        """Check if the envelope carries a status code at all."""
        return self.status is not None

    def candidate_transactions(self, product_type: ProductType) -> object:
        """
        Return the raw transaction list consulted for this product type.

        Subscriptions read `latest_receipt_info`; every other product type
        reads `receipt.in_app`. The value is returned unchecked and may be
        None or a non-list for a malformed envelope.
        """
        if product_type.is_subscription():
            return self.raw.get("latest_receipt_info")

        receipt = self.raw.get("receipt")
        if not isinstance(receipt, Mapping):
            return None
        return receipt.get("in_app")


@dataclass(frozen=True)
class PurchaseResult:
    """Normalized outcome of one receipt verification attempt."""

    product_type: ProductType
    sandbox: bool
    last_response_from_provider: str
    validated: bool = False  # Entitlement currently active
    trial: bool = False
    checked: bool = False  # Status was expected and the receipt was examined
    original_transaction_id: str | None = None
    expired_at: datetime | None = None

    def is_entitled(self) -> bool:
        """Check if the user may access the purchased product."""
        return self.validated

    def to_dict(self) -> dict[str, object]:
        """Serialize with the camelCase keys used by entitlement records."""
        data: dict[str, object] = {
            "validated": self.validated,
            "trial": self.trial,
            "checked": self.checked,
            "sandBox": self.sandbox,
            "productType": self.product_type.value,
            "lastResponseFromProvider": self.last_response_from_provider,
        }
        if self.original_transaction_id is not None:
            data["originalTransactionId"] = self.original_transaction_id
        if self.expired_at is not None:
            data["expiredAt"] = self.expired_at.isoformat()
        return data


@dataclass(frozen=True)
class AppleReceiptConfig:
    """Configuration for the verifyReceipt endpoint."""

    host: str  # Production host, e.g. "buy.itunes.apple.com"
    sandbox_host: str  # e.g. "sandbox.itunes.apple.com"
    path: str  # e.g. "/verifyReceipt"
    shared_secret: str  # App-specific shared secret from App Store Connect

    def __post_init__(self) -> None:
        """Validate configuration fields."""
        if not self.host:
            raise ValueError("verifyReceipt host is required")
        if not self.sandbox_host:
            raise ValueError("verifyReceipt sandbox host is required")
        if not self.path.startswith("/"):
            raise ValueError("verifyReceipt path must start with '/'")
        if not self.shared_secret:
            raise ValueError("Shared secret is required")

    def __repr__(self) -> str:
        return (
            f"AppleReceiptConfig(host={self.host!r}, sandbox_host={self.sandbox_host!r}, "
            f"path={self.path!r}, shared_secret='***')"
        )

    def host_for(self, sandbox: bool) -> str:
        """Get the endpoint host for the requested environment."""
        return self.sandbox_host if sandbox else self.host

    @classmethod
    def from_settings(cls, settings: "Settings") -> "AppleReceiptConfig":
        """Build the config from application settings."""
        return cls(
            host=settings.apple_verify_host,
            sandbox_host=settings.apple_sandbox_host,
            path=settings.apple_verify_path,
            shared_secret=settings.apple_shared_secret,
        )
