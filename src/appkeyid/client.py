"""
AppKey ID client.

Async facade over the ceremony orchestrator and the upload pipeline.
Uses httpx for the backend REST API and for object storage PUTs.
"""

import logging
from typing import Any

import httpx

from appkeyid.ceremony import CeremonyOrchestrator
from appkeyid.config import DEFAULT_REST_ADDRESS, Settings, get_settings
from appkeyid.contracts import SessionResult, User
from appkeyid.coordinator import UploadCoordinator
from appkeyid.media import DerivativeGenerator, MediaInspector, PlatformAuthenticator
from appkeyid.session import Session, SessionStore
from appkeyid.transfer import TransferEngine
from appkeyid.transport import Transport
from appkeyid.upload_urls import UploadUrlIssuer

logger = logging.getLogger(__name__)


class AppKeyIDClient:
    """
    Async client for AppKey ID.

    Provides:
    - Passkey ceremonies (register, login, verify, add passkey) via ``auth``
    - Account and passkey management via ``auth``
    - Media uploads with progress events via ``uploads``

    Example:
        >>> async with AppKeyIDClient() as client:
        ...     challenge = await client.auth.login("user@example.com")
        ...     assertion = await authenticator.get_assertion(challenge)
        ...     await client.auth.login_complete("user@example.com", assertion)
        ...     task_id = await client.uploads.upload_asset(asset, sink=print)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        http: httpx.AsyncClient | None = None,
        storage_http: httpx.AsyncClient | None = None,
        inspector: MediaInspector | None = None,
        derivatives: DerivativeGenerator | None = None,
    ):
        """
        Initialize the client.

        Args:
            settings: SDK settings. Uses get_settings() if not provided.
            http: Optional client for backend calls
            storage_http: Optional client for object storage PUTs
            inspector: Media inspector (defaults to local files)
            derivatives: Derivative generator; without one only originals upload
        """
        self.settings = settings or get_settings()
        self.session = SessionStore()
        self.transport = Transport(self.settings, http=http)
        self.auth = CeremonyOrchestrator(self.transport, self.session)
        self.engine = TransferEngine(self.settings, http=storage_http)
        self.uploads = UploadCoordinator(
            UploadUrlIssuer(self.transport, self.session.require_access_token),
            self.engine,
            inspector=inspector,
            derivatives=derivatives,
        )

    async def __aenter__(self) -> "AppKeyIDClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.close()

    async def close(self) -> None:
        """Wait for outstanding uploads and close HTTP clients."""
        await self.engine.aclose()
        await self.transport.close()

    def configure(self, rest_address: str = "") -> None:
        """
        Point the client at a backend and sign out.

        Args:
            rest_address: Backend base address; empty selects the default
        """
        self.auth.logout()
        address = rest_address or DEFAULT_REST_ADDRESS
        self.settings = self.settings.model_copy(update={"rest_address": address})
        self.transport.settings = self.settings
        self.engine.settings = self.settings
        logger.info(f"Configured AppKey backend {address}")

    @property
    def current_session(self) -> Session:
        return self.session.session

    @property
    def current_user(self) -> User | None:
        return self.session.current_user

    async def sign_in(self, email: str, authenticator: PlatformAuthenticator) -> SessionResult:
        """Run a full login ceremony with the given platform authenticator."""
        challenge = await self.auth.login(email)
        assertion = await authenticator.get_assertion(challenge)
        return await self.auth.login_complete(email, assertion)

    async def add_passkey_with(self, authenticator: PlatformAuthenticator) -> SessionResult:
        """Enroll an additional passkey for the signed-in user."""
        challenge = await self.auth.add_passkey()
        attestation = await authenticator.create_attestation(challenge)
        return await self.auth.add_passkey_complete(attestation)
