"""
AppKey wire contract models.

Response and request shapes exchanged with the AppKey backend. Field aliases
match the backend's camelCase JSON; Python attributes are snake_case.
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from webauthn import options_to_json
from webauthn.helpers import base64url_to_bytes
from webauthn.helpers.structs import (
    PublicKeyCredentialRequestOptions,
    UserVerificationRequirement,
)


class _WireModel(BaseModel):
    """Base for backend shapes: immutable, populated by alias or name."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


# =============================================================================
# Identity
# =============================================================================


class Passkey(_WireModel):
    """A server-tracked public-key credential bound to a user."""

    id: str = Field(description="Credential ID")
    public_key: str = Field(alias="publicKey", description="Credential public key")
    counter: int = Field(description="Signature counter reported by the server")
    device_type: str = Field(alias="deviceType", description="'singleDevice' or 'multiDevice'")
    credential_backed_up: bool = Field(
        alias="credentialBackedUp", description="Whether the passkey is synced to cloud"
    )
    name: str = Field(description="User-friendly name for the passkey")
    platform: str = Field(description="Platform the passkey was registered on")
    last_used: str | None = Field(default=None, alias="lastUsed")
    created_at: str = Field(alias="createdAt")
    updated_at: str = Field(alias="updatedAt")


class User(_WireModel):
    """Identity snapshot; replaced wholesale after every ceremony-completing call."""

    user_id: str = Field(alias="userId")
    first_name: str = Field(alias="firstName")
    last_name: str = Field(alias="lastName")
    email: str
    status: str
    authenticators: list[Passkey] = Field(default_factory=list)
    plan_id: str | None = Field(default=None, alias="planId")
    company: str | None = None
    country: str | None = None
    avatar: str | None = None


class TokenEnvelope(_WireModel):
    """Side-channel tokens that travel next to the typed identity.

    These are not part of the ``User`` shape, so they are read by a second,
    permissive pass over the same payload.
    """

    access_token: str | None = None
    jwt: str | None = None
    id_token: str | None = None
    signup_token: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenEnvelope":
        """Extract whichever token fields are present as strings; ignore the rest."""
        if not isinstance(payload, dict):
            return cls()

        def _text(key: str) -> str | None:
            value = payload.get(key)
            return value if isinstance(value, str) and value else None

        return cls(
            access_token=_text("access-token"),
            jwt=_text("jwt"),
            id_token=_text("id-token"),
            signup_token=_text("signup-token"),
        )


class SessionResult(_WireModel):
    """Typed identity merged with the tokens from its envelope."""

    user: User
    access_token: str | None = None
    jwt: str | None = None
    id_token: str | None = None


class SignupData(_WireModel):
    """Result of confirming a registration attestation."""

    email: str
    message: str
    signup_token: str | None = None


# =============================================================================
# Challenges
# =============================================================================


class LoginChallenge(_WireModel):
    """Single-use server nonce for login and verify ceremonies."""

    rp_id: str = Field(alias="rpId")
    challenge: str = Field(description="Opaque base64url nonce issued by the server")
    timeout: int
    user_verification: str = Field(alias="userVerification")
    require_add_passkey: bool | None = Field(default=None, alias="requireAddPasskey")

    def to_authentication_options(self) -> str:
        """Render as WebAuthn request options JSON for the platform authenticator."""
        try:
            user_verification = UserVerificationRequirement(self.user_verification)
        except ValueError:
            user_verification = UserVerificationRequirement.PREFERRED

        options = PublicKeyCredentialRequestOptions(
            challenge=base64url_to_bytes(self.challenge),
            timeout=self.timeout,
            rp_id=self.rp_id,
            user_verification=user_verification,
        )
        return options_to_json(options)


class SignupUser(_WireModel):
    """User entity the authenticator binds a new passkey to."""

    id: str = ""
    name: str = ""
    display_name: str = Field(default="", alias="displayName")
    email: str = ""


class SignupChallenge(_WireModel):
    """Single-use server nonce for register and add-passkey ceremonies."""

    challenge: str
    user: SignupUser


Challenge = LoginChallenge | SignupChallenge


# =============================================================================
# Credentials
# =============================================================================


class Credential(_WireModel):
    """Authenticator output submitted to complete a ceremony.

    ``response`` is kept exactly as the authenticator produced it; the SDK
    never parses or validates it.
    """

    id: str
    response: dict[str, Any]
    raw_id: str | None = Field(default=None, alias="rawId")
    authenticator_attachment: str | None = Field(default=None, alias="authenticatorAttachment")
    type: str | None = None

    def response_json(self) -> str:
        """Serialize the response sub-object for the form body, keys in received order."""
        return json.dumps(self.response)


class Attestation(Credential):
    """Registration credential (attestationObject + clientDataJSON)."""

    pass


class Assertion(Credential):
    """Authentication credential (authenticatorData, clientDataJSON, signature, userHandle)."""

    pass


# =============================================================================
# Uploads
# =============================================================================


class UploadUrlSet(_WireModel):
    """Short-lived write URLs for one asset, one per target resolution."""

    id: str
    write_url: str = Field(alias="writeUrl")
    read_url: str = Field(alias="readUrl")
    path: str
    write_url_small: str | None = Field(default=None, alias="writeUrlSmall")
    path_small: str | None = Field(default=None, alias="pathSmall")
    write_url_medium: str | None = Field(default=None, alias="writeUrlMedium")
    path_medium: str | None = Field(default=None, alias="pathMedium")
    write_url_large: str | None = Field(default=None, alias="writeUrlLarge")
    path_large: str | None = Field(default=None, alias="pathLarge")

    def derivative_targets(self) -> list[tuple[str, str]]:
        """(name, write URL) pairs for the derivatives the server issued, small first."""
        targets = [
            ("small", self.write_url_small),
            ("medium", self.write_url_medium),
            ("large", self.write_url_large),
        ]
        return [(name, url) for name, url in targets if url]
