"""Passkey ceremony orchestration against the AppKey backend.

Drives the register, login, verify and add-passkey ceremonies:

    Idle -> ChallengeRequested -> ChallengeReceived -> CredentialSubmitted -> Completed

with ``Failed`` reachable from any non-terminal state. The challenge goes to
an external authenticator; the credential it produces comes back through
``submit_credential`` untouched. Session state is updated only from
ceremony-completing responses, through the injected ``SessionStore``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar, cast
from urllib.parse import urlparse

from pydantic import BaseModel, ValidationError

from appkeyid.contracts import (
    Assertion,
    Attestation,
    Challenge,
    Credential,
    LoginChallenge,
    SessionResult,
    SignupChallenge,
    SignupData,
    TokenEnvelope,
    User,
)
from appkeyid.errors import (
    AppKeyIDError,
    DecodeError,
    InvalidRequest,
    Unauthenticated,
    check_response,
)
from appkeyid.session import SessionStore
from appkeyid.transport import Transport

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

SCAN_PATH_MARKER = "/api/appkeyid/scan/"


class CeremonyKind(str, Enum):
    """Multi-step challenge/response exchanges."""

    REGISTER = "register"
    LOGIN = "login"
    VERIFY = "verify"
    ADD_PASSKEY = "add_passkey"


class CeremonyState(Enum):
    """Lifecycle of one ceremony invocation."""

    IDLE = "idle"
    CHALLENGE_REQUESTED = "challenge_requested"
    CHALLENGE_RECEIVED = "challenge_received"
    CREDENTIAL_SUBMITTED = "credential_submitted"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: dict[CeremonyState, frozenset[CeremonyState]] = {
    CeremonyState.IDLE: frozenset({CeremonyState.CHALLENGE_REQUESTED}),
    CeremonyState.CHALLENGE_REQUESTED: frozenset({CeremonyState.CHALLENGE_RECEIVED}),
    CeremonyState.CHALLENGE_RECEIVED: frozenset({CeremonyState.CREDENTIAL_SUBMITTED}),
    CeremonyState.CREDENTIAL_SUBMITTED: frozenset({CeremonyState.COMPLETED}),
    CeremonyState.COMPLETED: frozenset(),
    CeremonyState.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({CeremonyState.COMPLETED, CeremonyState.FAILED})


@dataclass(frozen=True)
class CeremonyEndpoints:
    """Backend routes and challenge shape for one ceremony kind."""

    challenge_path: str
    submit_path: str
    challenge_model: type[LoginChallenge] | type[SignupChallenge]
    # add-passkey runs inside an established session and is keyed by it
    authenticated: bool = False


ENDPOINTS: dict[CeremonyKind, CeremonyEndpoints] = {
    CeremonyKind.REGISTER: CeremonyEndpoints(
        "/api/authn/register", "/api/authn/registerConfirm", SignupChallenge
    ),
    CeremonyKind.LOGIN: CeremonyEndpoints(
        "/api/authn/login", "/api/authn/loginComplete", LoginChallenge
    ),
    CeremonyKind.VERIFY: CeremonyEndpoints(
        "/api/authn/verify", "/api/authn/verifyComplete", LoginChallenge
    ),
    CeremonyKind.ADD_PASSKEY: CeremonyEndpoints(
        "/api/authn/addPasskey",
        "/api/authn/addPasskeyComplete",
        SignupChallenge,
        authenticated=True,
    ),
}


@dataclass
class Ceremony:
    """One in-progress or finished ceremony for an identity handle."""

    kind: CeremonyKind
    handle: str
    state: CeremonyState = CeremonyState.IDLE
    challenge: Challenge | None = None
    error: AppKeyIDError | None = field(default=None, repr=False)

    def advance(self, state: CeremonyState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise InvalidRequest(
                f"Cannot move {self.kind.value} ceremony from {self.state.value} to {state.value}"
            )
        logger.debug(f"{self.kind.value} ceremony: {self.state.value} -> {state.value}")
        self.state = state

    def fail(self, error: AppKeyIDError) -> None:
        if self.state in TERMINAL_STATES:
            return
        logger.warning(f"{self.kind.value} ceremony failed in {self.state.value}: {error.message}")
        self.state = CeremonyState.FAILED
        self.error = error


def normalize_handle(email: str) -> str:
    """Canonical identity handle. Reserved characters are escaped by form encoding."""
    return email.strip()


def decode(model: type[ModelT], payload: Any) -> ModelT:
    """Typed decode of a classified payload.

    Raises:
        DecodeError: If the payload does not match ``model``.
    """
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise DecodeError(
            f"Unexpected {model.__name__} response from server ({e.error_count()} errors)"
        ) from e


def decode_identity(payload: Any) -> SessionResult:
    """Decode a user payload and merge the envelope tokens next to it.

    The user may sit at top level or under ``"user"``; the tokens are always
    read from the top level by a second, permissive pass.
    """
    user_payload = payload
    if isinstance(payload, dict) and isinstance(payload.get("user"), dict):
        user_payload = payload["user"]

    user = decode(User, user_payload)
    envelope = TokenEnvelope.from_payload(payload)
    return SessionResult(
        user=user,
        access_token=envelope.access_token,
        jwt=envelope.jwt,
        id_token=envelope.id_token,
    )


class CeremonyOrchestrator:
    """Runs passkey ceremonies and account calls; sole writer of the session."""

    def __init__(self, transport: Transport, session: SessionStore) -> None:
        self.transport = transport
        self.session = session
        self._ceremonies: dict[tuple[str, CeremonyKind], Ceremony] = {}

    # ========================================================================
    # Plumbing
    # ========================================================================

    async def _call(
        self,
        path: str,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        method: str = "POST",
    ) -> Any:
        response = await self.transport.send(method, path, data=data, headers=headers)
        check_response(response.payload, response.status_code)
        return response.payload

    def _auth_headers(self) -> dict[str, str]:
        return {"access-token": self.session.require_access_token()}

    def _account_handle(self) -> str:
        user = self.session.current_user
        return normalize_handle(user.email) if user else ""

    def _commit(self, identity: SessionResult, ticket: int, merge: bool = False) -> None:
        if not self.session.commit(identity, ticket, merge=merge):
            raise InvalidRequest("Superseded by a newer sign-in or logout")

    def ceremony_state(self, email: str, kind: CeremonyKind) -> CeremonyState:
        """State of the most recent ceremony of ``kind`` for ``email``."""
        ceremony = self._ceremonies.get((normalize_handle(email), kind))
        return ceremony.state if ceremony else CeremonyState.IDLE

    # ========================================================================
    # Generic ceremony steps
    # ========================================================================

    async def request_challenge(
        self,
        identity_handle: str,
        kind: CeremonyKind,
        extra: dict[str, Any] | None = None,
    ) -> Challenge:
        """
        Start a ceremony and fetch its single-use challenge.

        Args:
            identity_handle: User email (ignored for add-passkey, which uses
                the signed-in user)
            kind: Ceremony kind
            extra: Additional form fields (profile fields for register)

        Returns:
            LoginChallenge for login/verify, SignupChallenge for register/add-passkey

        Raises:
            ConfigurationError: If no backend address is configured
            Unauthenticated: If add-passkey is requested without a session
            ServerError: If the server rejects the request
            DecodeError: If the challenge does not match the expected shape
        """
        endpoints = ENDPOINTS[kind]
        self.transport.url_for(endpoints.challenge_path)

        data: dict[str, Any] = dict(extra or {})
        headers: dict[str, str] | None = None
        if endpoints.authenticated:
            headers = self._auth_headers()
            handle = self._account_handle()
        else:
            handle = normalize_handle(identity_handle)
            data["email"] = handle

        ceremony = Ceremony(kind=kind, handle=handle)
        self._ceremonies[(handle, kind)] = ceremony

        async with self.session.ceremony(handle):
            ceremony.advance(CeremonyState.CHALLENGE_REQUESTED)
            try:
                payload = await self._call(endpoints.challenge_path, data, headers)
                challenge = decode(endpoints.challenge_model, payload)
            except AppKeyIDError as e:
                ceremony.fail(e)
                raise
            ceremony.challenge = challenge
            ceremony.advance(CeremonyState.CHALLENGE_RECEIVED)
        return challenge

    async def submit_credential(
        self,
        identity_handle: str,
        kind: CeremonyKind,
        credential: Credential,
    ) -> SessionResult | SignupData:
        """
        Complete a ceremony with the authenticator's credential.

        The credential's ``response`` is forwarded exactly as received. Each
        challenge is consumed by one submission; a second submission needs a
        new challenge.

        Returns:
            SignupData for register (the account still needs signup_complete),
            otherwise the SessionResult that replaced the session.

        Raises:
            InvalidRequest: If no challenge is outstanding for this ceremony, or the
                result was superseded by a newer sign-in or a logout
            ConfigurationError, Unauthenticated, ServerError, DecodeError
        """
        endpoints = ENDPOINTS[kind]
        self.transport.url_for(endpoints.submit_path)

        data: dict[str, Any] = {}
        headers: dict[str, str] | None = None
        if endpoints.authenticated:
            headers = self._auth_headers()
            handle = self._account_handle()
        else:
            handle = normalize_handle(identity_handle)
            data["email"] = handle
        data["id"] = credential.id
        data["response"] = credential.response_json()

        ceremony = self._ceremonies.get((handle, kind))
        if ceremony is None or ceremony.state is not CeremonyState.CHALLENGE_RECEIVED:
            raise InvalidRequest(f"No outstanding {kind.value} challenge; request a new one")

        async with self.session.ceremony(handle) as ticket:
            ceremony.advance(CeremonyState.CREDENTIAL_SUBMITTED)
            try:
                payload = await self._call(endpoints.submit_path, data, headers)
                if kind is CeremonyKind.REGISTER:
                    result: SessionResult | SignupData = self._signup_data(payload)
                else:
                    identity = decode_identity(payload)
                    if not endpoints.authenticated and not identity.access_token:
                        raise DecodeError("Server response is missing the access token")
                    self._commit(identity, ticket, merge=endpoints.authenticated)
                    result = identity
            except AppKeyIDError as e:
                ceremony.fail(e)
                raise
            ceremony.advance(CeremonyState.COMPLETED)
        return result

    @staticmethod
    def _signup_data(payload: Any) -> SignupData:
        data = decode(SignupData, payload)
        envelope = TokenEnvelope.from_payload(payload)
        return data.model_copy(update={"signup_token": envelope.signup_token})

    # ========================================================================
    # Registration
    # ========================================================================

    async def signup(
        self,
        email: str,
        first_name: str,
        last_name: str,
        country: str | None = None,
    ) -> SignupChallenge:
        """Start registration; returns the attestation challenge for the new account."""
        challenge = await self.request_challenge(
            email,
            CeremonyKind.REGISTER,
            {"firstName": first_name, "lastName": last_name, "country": country},
        )
        return cast(SignupChallenge, challenge)

    async def signup_confirm(self, email: str, attestation: Attestation) -> SignupData:
        """Submit the registration attestation; yields the signup token for signup_complete."""
        result = await self.submit_credential(email, CeremonyKind.REGISTER, attestation)
        return cast(SignupData, result)

    async def signup_complete(self, signup_token: str, code: str) -> SessionResult:
        """
        Finish registration with the emailed code and sign the new user in.

        Raises:
            Unauthenticated: If signup_token is empty
        """
        path = "/api/authn/registerComplete"
        self.transport.url_for(path)
        if not signup_token:
            raise Unauthenticated("Signup session expired, please register again")

        async with self.session.ceremony("") as ticket:
            payload = await self._call(path, {"code": code}, {"signup-token": signup_token})
            identity = decode_identity(payload)
            if not identity.access_token:
                raise DecodeError("Server response is missing the access token")
            self._commit(identity, ticket)
        return identity

    # ========================================================================
    # Login / Verify
    # ========================================================================

    async def login(self, email: str) -> LoginChallenge:
        challenge = await self.request_challenge(email, CeremonyKind.LOGIN)
        return cast(LoginChallenge, challenge)

    async def login_complete(self, email: str, assertion: Assertion) -> SessionResult:
        result = await self.submit_credential(email, CeremonyKind.LOGIN, assertion)
        return cast(SessionResult, result)

    async def verify(self, email: str) -> LoginChallenge:
        """Re-verify the user (e.g. before deleting the account)."""
        challenge = await self.request_challenge(email, CeremonyKind.VERIFY)
        return cast(LoginChallenge, challenge)

    async def verify_complete(self, email: str, assertion: Assertion) -> SessionResult:
        result = await self.submit_credential(email, CeremonyKind.VERIFY, assertion)
        return cast(SessionResult, result)

    # ========================================================================
    # Passkey management (authenticated)
    # ========================================================================

    async def add_passkey(self) -> SignupChallenge:
        challenge = await self.request_challenge("", CeremonyKind.ADD_PASSKEY)
        return cast(SignupChallenge, challenge)

    async def add_passkey_complete(self, attestation: Attestation) -> SessionResult:
        result = await self.submit_credential("", CeremonyKind.ADD_PASSKEY, attestation)
        return cast(SessionResult, result)

    async def _update_user(self, path: str, data: dict[str, Any]) -> User:
        self.transport.url_for(path)
        headers = self._auth_headers()
        async with self.session.ceremony(self._account_handle()) as ticket:
            payload = await self._call(path, data, headers)
            identity = decode_identity(payload)
            self._commit(identity, ticket, merge=True)
        return identity.user

    async def update_passkey(self, key_id: str, key_name: str) -> User:
        """Rename a passkey; returns the refreshed user."""
        return await self._update_user(
            "/api/authn/updatePasskey", {"keyId": key_id, "keyName": key_name}
        )

    async def remove_passkey(self, key_id: str) -> User:
        """Remove a passkey; returns the refreshed user."""
        return await self._update_user("/api/authn/removePasskey", {"keyId": key_id})

    # ========================================================================
    # Account
    # ========================================================================

    async def _authenticated_call(
        self, path: str, data: dict[str, Any] | None = None, method: str = "POST"
    ) -> Any:
        self.transport.url_for(path)
        return await self._call(path, data, self._auth_headers(), method=method)

    async def update_profile(
        self,
        first_name: str,
        last_name: str,
        country: str | None = None,
    ) -> None:
        await self._authenticated_call(
            "/api/authn/updateProfile",
            {"firstName": first_name, "lastName": last_name, "country": country},
        )

    async def delete_account(self) -> None:
        """
        Delete the signed-in account and clear the session.

        The backend expects a fresh access token, so run a verify ceremony first.
        """
        await self._authenticated_call("/api/authn/deleteAccount")
        self.logout()

    async def scan_app_key_qr(self, url: str) -> None:
        """
        Approve an AppKey ID QR sign-in with the current session.

        Raises:
            InvalidRequest: If ``url`` is not a scan URL on the configured backend
        """
        self.transport.url_for(SCAN_PATH_MARKER)
        target = urlparse(url)
        backend = urlparse(self.transport.settings.base_url)
        if SCAN_PATH_MARKER not in target.path:
            raise InvalidRequest("This QR code is not an AppKey ID code")
        # The access token only ever goes to the configured backend.
        if (target.scheme, target.netloc.lower()) != (backend.scheme, backend.netloc.lower()):
            raise InvalidRequest("This QR code belongs to a different AppKey server")
        await self._authenticated_call(url, method="GET")

    async def remove_app_key_id(self, app_id: str) -> None:
        await self._authenticated_call("/api/appkeyid/remove", {"appId": app_id})

    def logout(self) -> None:
        """Clear the session. Local only; never fails."""
        self.session.clear()
        self._ceremonies.clear()
