"""
HTTPS transport for the verifyReceipt endpoint.

The receipt interpreter only depends on the `Transport` protocol; the
httpx implementation owns connections, TLS and timeouts.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import httpx
from structlog import get_logger

from apple_receipts.exceptions import PaymentProviderError

if TYPE_CHECKING:
    from apple_receipts.config import Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class RequestOptions:
    """Connection options for one provider request."""

    host: str
    path: str
    method: str = "POST"


class Transport(Protocol):
    """
    Transport protocol.

    Sends a JSON body and returns the raw response text. Implementations
    bound call duration themselves; no retries are expected.
    """

    async def send(
        self,
        options: RequestOptions,
        body: Mapping[str, str],
        scheme: str = "https",
    ) -> str:
        """
        Send one request.

        Args:
            options: Target host, path and HTTP method
            body: JSON-serializable request body
            scheme: URL scheme

        Returns:
            Raw response body

        Raises:
            PaymentProviderError: If the request fails
        """
        ...


class HttpxTransport:
    """Transport backed by `httpx.AsyncClient`."""

    def __init__(self, timeout: float = 30.0, client: httpx.AsyncClient | None = None) -> None:
        """
        Initialize the transport.

        Args:
            timeout: Per-request timeout in seconds
            client: Optional shared client; a new one is opened per call otherwise
        """
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: "Settings") -> "HttpxTransport":
        """Build a transport with the configured timeout."""
        return cls(timeout=settings.apple_http_timeout)

    async def send(
        self,
        options: RequestOptions,
        body: Mapping[str, str],
        scheme: str = "https",
    ) -> str:
        """Send the body as JSON and return the response text."""
        url = f"{scheme}://{options.host}{options.path}"

        if self._client is not None:
            return await self._send(self._client, options.method, url, body)

        async with httpx.AsyncClient() as client:
            return await self._send(client, options.method, url, body)

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        body: Mapping[str, str],
    ) -> str:
        try:
            response = await client.request(
                method,
                url,
                json=dict(body),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            logger.error("apple_receipt_transport_timeout", url=url, timeout=self.timeout)
            raise PaymentProviderError(f"Request to {url} timed out") from exc
        except httpx.HTTPError as exc:
            logger.error("apple_receipt_transport_failed", url=url, error=str(exc))
            raise PaymentProviderError(f"Request to {url} failed: {exc}") from exc

        if response.status_code >= 400:
            logger.error(
                "apple_receipt_transport_http_error",
                url=url,
                status=response.status_code,
                error=response.text,
            )
            raise PaymentProviderError(f"HTTP error: {response.status_code}")

        return response.text
