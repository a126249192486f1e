"""
Apple Receipt Provider Implementation.

NO DICTIONARIES - All data uses strongly typed models.

Uses the App Store verifyReceipt endpoint to validate a receipt and turn
the provider envelope into a normalized `PurchaseResult`.
https://developer.apple.com/documentation/appstorereceipts/verifyreceipt
"""

import json
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from structlog import get_logger

from apple_receipts.exceptions import (
    MalformedReceiptError,
    PaymentProviderError,
    ProviderResponseError,
)
from apple_receipts.models.apple_receipt import (
    AppleReceiptConfig,
    ProductType,
    ProviderEnvelope,
    PurchaseResult,
    ReceiptStatus,
    TransactionRecord,
)
from apple_receipts.observability.logging import log_context
from apple_receipts.observability.metrics import VerificationOutcome, metrics
from apple_receipts.services.receipt_dates import is_after_now, is_valid_date, to_date
from apple_receipts.services.transport import RequestOptions, Transport

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AppleReceiptProvider:
    """
    App Store receipt verification provider.

    Sends one receipt to verifyReceipt, dispatches on the status code and
    picks the transaction that decides entitlement for a product.
    """

    def __init__(
        self,
        config: AppleReceiptConfig,
        transport: Transport,
        log: Any | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize Apple receipt provider.

        Args:
            config: Endpoint hosts, path and shared secret
            transport: Collaborator that performs the HTTPS POST
            log: Structured logger; defaults to the module logger
            clock: Returns the current aware UTC time; used for expiry checks
        """
        self.config = config
        self.transport = transport
        self._logger = log if log is not None else logger
        self._clock = clock or _utc_now

        self._logger.info(
            "apple_receipt_provider_initialized",
            host=config.host,
            sandbox_host=config.sandbox_host,
        )

    async def verify_and_parse_receipt(
        self,
        product_id: str,
        receipt_token: str,
        product_type: ProductType | str,
    ) -> PurchaseResult | None:
        """
        Verify a receipt against the production endpoint.

        Args:
            product_id: App Store product identifier to look up
            receipt_token: Base64 receipt blob from the device
            product_type: Product type of `product_id`

        Returns:
            Parsed purchase result, or None when the provider reply carries no
            status and no entitlement decision can be made

        Raises:
            ValueError: If an argument is empty or the product type is unknown
            PaymentProviderError: If the provider call fails or the reply is not JSON
            MalformedReceiptError: If the transaction list has an unexpected shape
        """
        if not product_id:
            raise ValueError("Product ID required")
        if not receipt_token:
            raise ValueError("Receipt token required")
        product_type = ProductType(product_type)

        # Sandbox receipts (21007) are not retried against the sandbox host;
        # that policy belongs to the caller.
        return await self._verify_and_parse_receipt(
            product_id, receipt_token, product_type, sandbox=False
        )

    async def _verify_and_parse_receipt(
        self,
        product_id: str,
        receipt_token: str,
        product_type: ProductType,
        sandbox: bool,
    ) -> PurchaseResult | None:
        started_at = time.perf_counter()

        with log_context(product_id=product_id, product_type=product_type.value, sandbox=sandbox):
            try:
                envelope = await self._verify_receipt(receipt_token, sandbox)
            except PaymentProviderError as exc:
                metrics.record_provider_error(type(exc).__name__)
                raise

            metrics.record_provider_status(envelope.status)

            if not envelope.is_usable():
                self._logger.error(
                    "apple_receipt_response_unusable",
                    response=envelope.raw,
                )
                metrics.record_verification(
                    product_type.value,
                    VerificationOutcome.UNUSABLE,
                    time.perf_counter() - started_at,
                )
                return None

            result = self.parse_response(product_id, envelope, product_type, sandbox)

            if result.validated:
                outcome = VerificationOutcome.VALIDATED
            elif result.checked:
                outcome = VerificationOutcome.NOT_VALIDATED
            else:
                outcome = VerificationOutcome.UNCHECKED
            metrics.record_verification(
                product_type.value, outcome, time.perf_counter() - started_at
            )

            self._logger.info(
                "apple_receipt_verified",
                status=envelope.status,
                checked=result.checked,
                validated=result.validated,
                trial=result.trial,
                original_transaction_id=result.original_transaction_id,
                expired_at=result.expired_at.isoformat() if result.expired_at else None,
            )

            return result

    async def _verify_receipt(self, receipt_token: str, sandbox: bool) -> ProviderEnvelope:
        """Send the receipt to verifyReceipt and decode the JSON reply."""
        options = RequestOptions(
            host=self.config.host_for(sandbox),
            path=self.config.path,
            method="POST",
        )
        body = {
            "receipt-data": receipt_token,
            "password": self.config.shared_secret,
        }

        self._logger.info("verifying_apple_receipt", host=options.host)

        text = await self.transport.send(options, body, "https")

        try:
            payload = json.loads(text)
        except (json.JSONDecodeError, TypeError) as exc:
            self._logger.error("apple_receipt_invalid_json", error=str(exc))
            raise ProviderResponseError("Invalid JSON from verifyReceipt", body=text) from exc

        if payload is None:
            return ProviderEnvelope(status=None, raw={})
        if not isinstance(payload, dict):
            self._logger.error("apple_receipt_unexpected_json", json_type=type(payload).__name__)
            raise ProviderResponseError("verifyReceipt reply is not a JSON object", body=text)

        return ProviderEnvelope.from_payload(payload)

    def parse_response(
        self,
        product_id: str,
        envelope: ProviderEnvelope,
        product_type: ProductType,
        sandbox: bool,
    ) -> PurchaseResult:
        """
        Interpret a provider envelope for one product.

        Args:
            product_id: App Store product identifier to look up
            envelope: Decoded verifyReceipt reply
            product_type: Product type of `product_id`
            sandbox: Whether the sandbox endpoint answered

        Returns:
            Purchase result; unexpected status codes yield an unchecked result

        Raises:
            MalformedReceiptError: If the transaction list has an unexpected shape
        """
        last_response = json.dumps(envelope.raw)
        status = envelope.receipt_status

        validated = False
        trial = False
        checked = False
        original_transaction_id: str | None = None
        expired_at: datetime | None = None

        self._logger.info(
            "apple_receipt_status_received",
            status=envelope.status,
            description=status.description if status is not None else None,
        )

        if status is ReceiptStatus.VALID:
            record = self.locate_transaction(envelope, product_id, product_type)
            checked = True
            if record is None:
                self._logger.info("apple_receipt_transaction_not_found", product_id=product_id)
            else:
                original_transaction_id = record.original_transaction_id
                if product_type.is_subscription():
                    validated = is_after_now(record.expires_date_ms, self._clock())
                    if is_valid_date(record.expires_date_ms):
                        expired_at = to_date(record.expires_date_ms)
                else:
                    validated = True
                trial = self.is_trial(record)

        elif status is ReceiptStatus.SHARED_SECRET_MISMATCH:
            self._logger.error("apple_receipt_shared_secret_mismatch")
            checked = True
            validated = False

        elif status is ReceiptStatus.SUBSCRIPTION_EXPIRED:
            record = self.locate_transaction(envelope, product_id, product_type)
            if record is None:
                self._logger.info("apple_receipt_transaction_not_found", product_id=product_id)
            else:
                original_transaction_id = record.original_transaction_id
                checked = True
                validated = False
                if is_valid_date(record.expires_date_ms):
                    expired_at = to_date(record.expires_date_ms)
                else:
                    self._logger.warning(
                        "apple_receipt_expiry_unparseable",
                        expires_date_ms=record.expires_date_ms,
                    )
                trial = self.is_trial(record)

        else:
            if status is ReceiptStatus.SANDBOX_RECEIPT:
                self._logger.warning("apple_receipt_sandbox_receipt")
            if not envelope.is_usable():
                self._logger.warning("apple_receipt_response_empty")
            else:
                self._logger.warning(
                    "apple_receipt_unexpected_status",
                    status=envelope.status,
                    description=status.description if status is not None else "unknown",
                )

        return PurchaseResult(
            product_type=product_type,
            sandbox=sandbox,
            last_response_from_provider=last_response,
            validated=validated,
            trial=trial,
            checked=checked,
            original_transaction_id=original_transaction_id,
            expired_at=expired_at,
        )

    def locate_transaction(
        self,
        envelope: ProviderEnvelope,
        product_id: str,
        product_type: ProductType,
    ) -> TransactionRecord | None:
        """
        Find the transaction that decides entitlement for `product_id`.

        Non-subscriptions return the first matching entry of `receipt.in_app`.
        Subscriptions return the entry of `latest_receipt_info` with the
        latest `expires_date_ms`; on equal expiry the later entry wins and
        entries without a parseable expiry are skipped.

        Returns:
            The selected record, or None if no entry matches

        Raises:
            MalformedReceiptError: If the list is absent, not a list, or holds a non-object
        """
        candidates = envelope.candidate_transactions(product_type)

        if not isinstance(candidates, (list, tuple)):
            raise self._malformed(
                envelope,
                product_type,
                f"expected a list of transactions, got {type(candidates).__name__}",
            )

        selected: TransactionRecord | None = None
        latest_expiry: datetime | None = None

        for index, item in enumerate(candidates):
            if not isinstance(item, Mapping):
                raise self._malformed(
                    envelope,
                    product_type,
                    f"transaction {index} is {type(item).__name__}, not an object",
                )

            if item.get("product_id") != product_id:
                continue

            record = TransactionRecord.from_provider(item)

            if not product_type.is_subscription():
                return record

            if not is_valid_date(record.expires_date_ms):
                self._logger.warning(
                    "apple_receipt_transaction_without_expiry",
                    index=index,
                    expires_date_ms=record.expires_date_ms,
                )
                continue

            expiry = to_date(record.expires_date_ms)
            if latest_expiry is None or expiry >= latest_expiry:
                selected = record
                latest_expiry = expiry

        return selected

    def _malformed(
        self,
        envelope: ProviderEnvelope,
        product_type: ProductType,
        reason: str,
    ) -> MalformedReceiptError:
        self._logger.error(
            "apple_receipt_malformed_transactions",
            reason=reason,
            response=envelope.raw,
        )
        return MalformedReceiptError(product_type.value, reason)

    @staticmethod
    def is_trial(record: TransactionRecord | None) -> bool:
        """
        Derive the trial flag of a transaction.

        True only when `is_trial_period` is the string "false". The mapping is
        inverted relative to the field name and existing entitlement records
        depend on it.
        """
        return record is not None and record.is_trial_period == "false"
