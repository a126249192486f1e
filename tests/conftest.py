"""
Pytest Configuration and Centralized Fixtures.

Provides reusable mocks and fixtures for testing:
- Endpoint configuration
- Transport and logger mocks
- Provider wired with a fixed clock
"""

import json
import os
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set required environment variables BEFORE importing package modules
os.environ.setdefault("APPLE_SHARED_SECRET", "test-shared-secret")
os.environ.setdefault("LOG_FORMAT", "console")

from apple_receipts.models.apple_receipt import AppleReceiptConfig
from apple_receipts.services.apple_receipt_provider import AppleReceiptProvider
from receipt_factories import NOW

# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def receipt_config() -> AppleReceiptConfig:
    """Standard verifyReceipt configuration."""
    return AppleReceiptConfig(
        host="buy.itunes.apple.com",
        sandbox_host="sandbox.itunes.apple.com",
        path="/verifyReceipt",
        shared_secret="test-shared-secret",
    )


# ============================================================================
# Collaborator Fixtures
# ============================================================================


@pytest.fixture
def mock_transport() -> AsyncMock:
    """Transport answering with a bare status 0 reply by default."""
    transport = AsyncMock()
    transport.send = AsyncMock(return_value=json.dumps({"status": 0}))
    return transport


@pytest.fixture
def mock_logger() -> MagicMock:
    """Structured logger double."""
    return MagicMock()


@pytest.fixture
def provider(
    receipt_config: AppleReceiptConfig,
    mock_transport: AsyncMock,
    mock_logger: MagicMock,
) -> AppleReceiptProvider:
    """Provider with mocked transport and logger and a fixed clock."""
    return AppleReceiptProvider(
        receipt_config,
        mock_transport,
        log=mock_logger,
        clock=lambda: NOW,
    )


@pytest.fixture
def reply_with(mock_transport: AsyncMock):
    """Factory configuring the transport to answer with a given payload."""

    def _reply(payload: Any) -> AsyncMock:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        mock_transport.send = AsyncMock(return_value=text)
        return mock_transport

    return _reply
