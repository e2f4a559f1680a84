"""Upload assets and the external capabilities the SDK calls into.

The platform authenticator, media inspector and derivative generator are
supplied by the host application. ``FileMediaInspector`` covers plain files.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import unquote, urlparse
from uuid import uuid4

from appkeyid.contracts import Assertion, Attestation, LoginChallenge, SignupChallenge

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    UNKNOWN = "unknown"

    @classmethod
    def from_content_type(cls, content_type: str | None) -> MediaType:
        major = (content_type or "").split("/", 1)[0].lower()
        try:
            return cls(major)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class UploadAsset:
    """A media item to upload.

    Attributes:
        id: Asset identifier sent to the backend when requesting write URLs.
        source_locator: Where the media lives (path, file URL, library id).
        payload: Encoded bytes to upload.
        content_type: MIME type; resolved by the media inspector when None.
        size_hint: Expected size in bytes, if known ahead of the payload.
        media_type: Broad media category.
    """

    id: str
    source_locator: str
    payload: bytes | None
    content_type: str | None = None
    size_hint: int | None = None
    media_type: MediaType = MediaType.UNKNOWN

    @classmethod
    def from_path(cls, path: Path | str, asset_id: str | None = None) -> UploadAsset:
        """Build an asset from a local file."""
        file_path = Path(path)
        payload = file_path.read_bytes()
        content_type = guess_content_type(file_path.name)
        return cls(
            id=asset_id or str(uuid4()),
            source_locator=str(file_path),
            payload=payload,
            content_type=content_type,
            size_hint=len(payload),
            media_type=MediaType.from_content_type(content_type),
        )


@dataclass(frozen=True)
class MediaDetail:
    """What the media inspector knows about a source."""

    file_name: str
    content_type: str
    pixel_width: int | None = None
    pixel_height: int | None = None


def guess_content_type(filename: str) -> str:
    """Guess MIME type from a file name, defaulting to octet-stream."""
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or DEFAULT_CONTENT_TYPE


# =============================================================================
# Capabilities
# =============================================================================


@runtime_checkable
class MediaInspector(Protocol):
    """Resolves file name and content type for a source locator."""

    async def inspect(self, source_locator: str) -> MediaDetail | None: ...


@runtime_checkable
class DerivativeGenerator(Protocol):
    """Produces a resized copy of a payload, or None when not applicable."""

    async def generate(
        self, payload: bytes, content_type: str, name: str, max_edge: int
    ) -> bytes | None: ...


@runtime_checkable
class PlatformAuthenticator(Protocol):
    """Signs challenges; the SDK never sees key material."""

    async def create_attestation(self, challenge: SignupChallenge) -> Attestation: ...

    async def get_assertion(self, challenge: LoginChallenge) -> Assertion: ...


class FileMediaInspector:
    """Media inspector for local paths and ``file://`` URLs."""

    async def inspect(self, source_locator: str) -> MediaDetail | None:
        if not source_locator:
            return None

        parsed = urlparse(source_locator)
        raw_path = unquote(parsed.path) if parsed.scheme == "file" else source_locator
        name = Path(raw_path).name.replace(" ", "")
        if not name:
            return None

        return MediaDetail(file_name=name, content_type=guess_content_type(name))
