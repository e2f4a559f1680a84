"""Client SDK for AppKey ID passkey authentication and media uploads."""

from appkeyid.ceremony import CeremonyKind, CeremonyOrchestrator, CeremonyState
from appkeyid.client import AppKeyIDClient
from appkeyid.config import Settings, get_settings
from appkeyid.contracts import (
    Assertion,
    Attestation,
    LoginChallenge,
    Passkey,
    SessionResult,
    SignupChallenge,
    SignupData,
    UploadUrlSet,
    User,
)
from appkeyid.coordinator import UploadCoordinator
from appkeyid.errors import (
    AppKeyIDError,
    ConfigurationError,
    DecodeError,
    InvalidAsset,
    InvalidRequest,
    ServerError,
    TransportError,
    Unauthenticated,
    UploadFailed,
    check_response,
)
from appkeyid.events import (
    AssetProgress,
    AssetStart,
    AssetUploadDescription,
    AssetUploadEnd,
    AssetUploadError,
    TransactionEnd,
    UploadEvent,
    UploadEventStream,
)
from appkeyid.media import MediaType, UploadAsset
from appkeyid.session import Session, SessionStore
from appkeyid.transfer import Transfer, TransferEngine, TransferState

__version__ = "0.1.0"

__all__ = [
    "AppKeyIDClient",
    "AppKeyIDError",
    "Assertion",
    "AssetProgress",
    "AssetStart",
    "AssetUploadDescription",
    "AssetUploadEnd",
    "AssetUploadError",
    "Attestation",
    "CeremonyKind",
    "CeremonyOrchestrator",
    "CeremonyState",
    "ConfigurationError",
    "DecodeError",
    "InvalidAsset",
    "InvalidRequest",
    "LoginChallenge",
    "MediaType",
    "Passkey",
    "ServerError",
    "Session",
    "SessionResult",
    "SessionStore",
    "Settings",
    "SignupChallenge",
    "SignupData",
    "TransactionEnd",
    "Transfer",
    "TransferEngine",
    "TransferState",
    "TransportError",
    "Unauthenticated",
    "UploadAsset",
    "UploadCoordinator",
    "UploadEvent",
    "UploadEventStream",
    "UploadFailed",
    "UploadUrlSet",
    "User",
    "check_response",
    "get_settings",
]
