"""
Hypothesis Property-Based Tests for receipt interpretation.

Uses Hypothesis to generate transaction lists and timestamps and verify:
- Subscription selection always picks the maximum expiry
- Trial derivation depends only on the literal string "false"
- Date helpers agree with each other
- Result invariants hold for every status code
"""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

from hypothesis import given, settings
from hypothesis import strategies as st

from apple_receipts.models.apple_receipt import (
    AppleReceiptConfig,
    ProductType,
    TransactionRecord,
)
from apple_receipts.services.apple_receipt_provider import AppleReceiptProvider
from apple_receipts.services.receipt_dates import is_after_now, is_valid_date, to_date
from receipt_factories import NOW, envelope_of, in_app_envelope, subscription_envelope, to_ms

# ============================================================================
# Hypothesis Strategies - Reusable data generators
# ============================================================================

product_ids = st.sampled_from(["pro_monthly", "pro_yearly", "coins_100"])

# Epoch milliseconds between 2000 and 2100
expiry_millis = st.integers(min_value=946_684_800_000, max_value=4_102_444_800_000)

trial_flags = st.one_of(st.none(), st.sampled_from(["true", "false", "TRUE", "False", "", "0"]))

statuses = st.one_of(
    st.sampled_from([0, 21000, 21002, 21004, 21006, 21007, 21008, 21010]),
    st.integers(min_value=-5, max_value=30_000),
)


@st.composite
def transactions(draw, product_id=product_ids):
    """Generate raw transaction objects."""
    return {
        "product_id": draw(product_id),
        "original_transaction_id": str(draw(st.integers(min_value=1, max_value=10**12))),
        "expires_date_ms": str(draw(expiry_millis)),
        "is_trial_period": draw(st.sampled_from(["true", "false"])),
    }


def make_provider() -> AppleReceiptProvider:
    """Provider with a mocked transport and logger at the fixed clock."""
    config = AppleReceiptConfig(
        host="buy.itunes.apple.com",
        sandbox_host="sandbox.itunes.apple.com",
        path="/verifyReceipt",
        shared_secret="test-shared-secret",
    )
    return AppleReceiptProvider(config, MagicMock(), log=MagicMock(), clock=lambda: NOW)


# ============================================================================
# Property Tests
# ============================================================================


class TestSelectionProperties:
    """Properties of transaction selection."""

    @given(items=st.lists(transactions(), max_size=12))
    @settings(max_examples=100)
    def test_subscription_selects_maximum_expiry(self, items):
        """The selected subscription entry has the maximum expiry among matches."""
        provider = make_provider()
        envelope = envelope_of(subscription_envelope(0, *items))

        record = provider.locate_transaction(envelope, "pro_monthly", ProductType.SUBSCRIPTION)

        matches = [i for i in items if i["product_id"] == "pro_monthly"]
        if not matches:
            assert record is None
            return

        assert record is not None
        assert record.product_id == "pro_monthly"
        best = max(int(i["expires_date_ms"]) for i in matches)
        assert int(record.expires_date_ms) == best

        # Last entry carrying the maximum wins ties
        last_best = [i for i in matches if int(i["expires_date_ms"]) == best][-1]
        assert record.original_transaction_id == last_best["original_transaction_id"]

    @given(items=st.lists(transactions(), max_size=12))
    @settings(max_examples=100)
    def test_one_time_selects_first_match(self, items):
        """The selected one-time purchase is the first match."""
        provider = make_provider()
        envelope = envelope_of(in_app_envelope(0, *items))

        record = provider.locate_transaction(envelope, "coins_100", ProductType.CONSUMABLE)

        matches = [i for i in items if i["product_id"] == "coins_100"]
        if not matches:
            assert record is None
        else:
            assert record == TransactionRecord.from_provider(matches[0])


class TestResultProperties:
    """Invariants of parsed results."""

    @given(status=statuses, items=st.lists(transactions(), max_size=6))
    @settings(max_examples=150)
    def test_validated_requires_checked_and_future_expiry(self, status, items):
        """Subscriptions validate only when checked with a future expiry."""
        provider = make_provider()
        payload = subscription_envelope(status, *items)

        result = provider.parse_response(
            "pro_monthly", envelope_of(payload), ProductType.SUBSCRIPTION, False
        )

        if result.validated:
            assert result.checked
            assert result.expired_at is not None
            assert result.expired_at > NOW
        assert json.loads(result.last_response_from_provider) == payload

    @given(status=statuses.filter(lambda s: s not in (0, 21006)))
    def test_only_21004_checks_without_lookup(self, status):
        """Among codes that skip the lookup only 21004 reports checked."""
        provider = make_provider()

        result = provider.parse_response(
            "pro_monthly", envelope_of({"status": status}), ProductType.NON_CONSUMABLE, True
        )

        assert result.checked is (status == 21004)
        assert result.validated is False
        assert result.sandbox is True


class TestTrialProperties:
    """Properties of trial derivation."""

    @given(flag=trial_flags)
    def test_trial_only_for_literal_false(self, flag):
        """Only the exact string "false" marks a trial."""
        record = TransactionRecord("p", is_trial_period=flag)
        assert AppleReceiptProvider.is_trial(record) is (flag == "false")


class TestDateProperties:
    """Properties of the date helpers."""

    @given(
        moment=st.datetimes(
            min_value=datetime(1971, 1, 1),
            max_value=datetime(2100, 12, 31),
            timezones=st.just(UTC),
        )
    )
    def test_encoded_datetimes_parse(self, moment):
        """Millisecond-truncated datetimes survive encoding."""
        moment = moment.replace(microsecond=(moment.microsecond // 1000) * 1000)
        raw = to_ms(moment)

        assert is_valid_date(raw)
        assert to_date(raw) == moment

    @given(millis=expiry_millis, offset=st.integers(min_value=-10**9, max_value=10**9))
    def test_is_after_now_matches_comparison(self, millis, offset):
        """is_after_now agrees with comparing parsed datetimes."""
        now = to_date(str(millis)) + timedelta(milliseconds=offset)

        assert is_after_now(str(millis), now) is (offset < 0)

    @given(text=st.text(alphabet="abcxyz.-:/ ", max_size=12))
    def test_non_numeric_text_is_invalid(self, text):
        """Text without digits never parses."""
        assert is_valid_date(text) is False
