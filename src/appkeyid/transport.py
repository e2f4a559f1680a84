"""
AppKey backend transport.

Async HTTP transport for the AppKey REST API. Uses httpx for requests with
form-encoded bodies and JSON responses. Classification and decoding of the
response are left to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from appkeyid.config import Settings, get_settings
from appkeyid.errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportResponse:
    """Raw outcome of a single request."""

    status_code: int
    payload: Any
    text: str


class Transport:
    """
    Executes single requests against the AppKey backend.

    The underlying ``httpx.AsyncClient`` is created on first use, so the
    backend address is read at call time rather than at construction.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the transport.

        Args:
            settings: SDK settings. Uses get_settings() if not provided.
            http: Optional preconfigured client (tests, custom transports)
        """
        self.settings = settings or get_settings()
        self._client = http
        self._owns_client = http is None

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Accept": "application/json"},
                timeout=httpx.Timeout(self.settings.request_timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def url_for(self, path: str) -> str:
        """
        Build an absolute backend URL.

        Raises:
            ConfigurationError: If no backend address is configured
        """
        if not self.settings.configured:
            raise ConfigurationError()
        return f"{self.settings.base_url}/{path.lstrip('/')}"

    async def send(
        self,
        method: str,
        path: str,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> TransportResponse:
        """
        Make a request to the backend.

        Args:
            method: HTTP method (GET, POST)
            path: API path, or an absolute URL already pointing at the backend
            data: Form fields, sent as application/x-www-form-urlencoded
            headers: Extra headers (access-token, signup-token)

        Returns:
            TransportResponse with the decoded JSON payload (None if not JSON)

        Raises:
            ConfigurationError: If no backend address is configured
            TransportError: If no response was received
        """
        url = path if path.startswith(("http://", "https://")) else self.url_for(path)
        client = self._ensure_client()

        # None-valued fields are omitted, as optional query items are.
        form = {key: value for key, value in (data or {}).items() if value is not None}
        request_headers = {"Content-Type": "application/x-www-form-urlencoded"}
        request_headers.update(headers or {})

        try:
            response = await client.request(
                method=method,
                url=url,
                data=form if method != "GET" else None,
                headers=request_headers,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timed out: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"Request failed: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        logger.debug(f"{method} {path} -> {response.status_code}")
        return TransportResponse(
            status_code=response.status_code,
            payload=payload,
            text=response.text,
        )
