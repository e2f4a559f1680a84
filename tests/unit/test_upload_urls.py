"""Unit tests for upload URL issuance."""

from unittest.mock import MagicMock

import pytest
import respx

from appkeyid.config import Settings
from appkeyid.errors import (
    ConfigurationError,
    DecodeError,
    InvalidAsset,
    ServerError,
    Unauthenticated,
)
from appkeyid.transport import Transport
from appkeyid.upload_urls import UPLOAD_URL_PATH, UploadUrlIssuer
from conftest import BACKEND

URL_SET = {
    "id": "asset-1",
    "writeUrl": "https://store.blob.test/a?sig=w",
    "readUrl": "https://store.blob.test/a",
    "path": "asset-1/photo.png",
    "writeUrlSmall": "https://store.blob.test/a_small?sig=w",
    "pathSmall": "asset-1/photo_small.png",
}


@pytest.fixture
def issuer(settings) -> UploadUrlIssuer:
    return UploadUrlIssuer(Transport(settings), lambda: "tok-1")


class TestGetUploadUrls:
    """Tests for UploadUrlIssuer.get_upload_urls."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_requests_urls(self, issuer):
        route = respx.post(f"{BACKEND}{UPLOAD_URL_PATH}").respond(200, json=URL_SET)

        urls = await issuer.get_upload_urls("asset-1", "photo.png", payload=b"png")

        request = route.calls.last.request
        assert request.headers["access-token"] == "tok-1"
        assert b"fileName=photo.png" in request.content
        assert b"noCutting=false" in request.content
        assert urls.write_url.endswith("sig=w")
        assert urls.derivative_targets() == [("small", URL_SET["writeUrlSmall"])]

    @pytest.mark.asyncio
    @respx.mock
    async def test_skip_derivatives_flag(self, issuer):
        route = respx.post(f"{BACKEND}{UPLOAD_URL_PATH}").respond(
            200,
            json={k: v for k, v in URL_SET.items() if "Small" not in k},
        )

        urls = await issuer.get_upload_urls(
            "asset-1", "photo.png", skip_derivatives=True, payload=b"png"
        )

        assert b"noCutting=true" in route.calls.last.request.content
        assert urls.derivative_targets() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload,file_name",
        [(None, "photo.png"), (b"", "photo.png"), (b"png", None), (b"png", "")],
    )
    async def test_invalid_asset(self, issuer, payload, file_name):
        """Missing bytes or file name fail before any request."""
        with pytest.raises(InvalidAsset):
            await issuer.get_upload_urls("asset-1", file_name, payload=payload)

    @pytest.mark.asyncio
    async def test_not_configured(self):
        issuer = UploadUrlIssuer(Transport(Settings(rest_address="")), lambda: "tok")

        with pytest.raises(ConfigurationError):
            await issuer.get_upload_urls("asset-1", "photo.png", payload=b"png")

    @pytest.mark.asyncio
    async def test_unauthenticated(self, settings):
        token = MagicMock(side_effect=Unauthenticated())
        issuer = UploadUrlIssuer(Transport(settings), token)

        with pytest.raises(Unauthenticated):
            await issuer.get_upload_urls("asset-1", "photo.png", payload=b"png")

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_rejection(self, issuer):
        respx.post(f"{BACKEND}{UPLOAD_URL_PATH}").respond(
            200, json={"status": False, "message": "Quota exceeded"}
        )

        with pytest.raises(ServerError) as exc_info:
            await issuer.get_upload_urls("asset-1", "photo.png", payload=b"png")

        assert exc_info.value.message == "Quota exceeded"

    @pytest.mark.asyncio
    @respx.mock
    async def test_unexpected_shape(self, issuer):
        respx.post(f"{BACKEND}{UPLOAD_URL_PATH}").respond(200, json={"id": "asset-1"})

        with pytest.raises(DecodeError):
            await issuer.get_upload_urls("asset-1", "photo.png", payload=b"png")
