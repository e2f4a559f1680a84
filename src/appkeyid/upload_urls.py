"""Issue short-lived object storage write URLs for an asset."""

from __future__ import annotations

import logging
from collections.abc import Callable

from pydantic import ValidationError

from appkeyid.contracts import UploadUrlSet
from appkeyid.errors import DecodeError, InvalidAsset, check_response
from appkeyid.transport import Transport

logger = logging.getLogger(__name__)

UPLOAD_URL_PATH = "/api/upload/uploadUrl"


class UploadUrlIssuer:
    """Asks the backend for one write URL per target resolution."""

    def __init__(self, transport: Transport, access_token: Callable[[], str]) -> None:
        """
        Args:
            transport: Backend transport
            access_token: Returns the current access token or raises Unauthenticated
        """
        self.transport = transport
        self._access_token = access_token

    async def get_upload_urls(
        self,
        asset_id: str,
        file_name: str | None,
        skip_derivatives: bool = False,
        payload: bytes | None = None,
    ) -> UploadUrlSet:
        """
        Request write URLs for an asset.

        Whether derivative URLs come back is the server's decision.

        Args:
            asset_id: Asset identifier
            file_name: File name the object is stored under
            skip_derivatives: Ask for the original only
            payload: The bytes about to be uploaded (validated, not sent)

        Returns:
            UploadUrlSet with at least the original write/read pair

        Raises:
            InvalidAsset: If there is no payload or no file name
            ConfigurationError, Unauthenticated, TransportError, ServerError, DecodeError
        """
        if not payload:
            raise InvalidAsset("Asset has no data to upload")
        if not file_name:
            raise InvalidAsset("Could not resolve a file name for the asset")

        self.transport.url_for(UPLOAD_URL_PATH)
        headers = {"access-token": self._access_token()}

        response = await self.transport.send(
            "POST",
            UPLOAD_URL_PATH,
            data={
                "id": asset_id,
                "fileName": file_name,
                "noCutting": "true" if skip_derivatives else "false",
            },
            headers=headers,
        )
        check_response(response.payload, response.status_code)

        try:
            urls = UploadUrlSet.model_validate(response.payload)
        except ValidationError as e:
            raise DecodeError("Unexpected upload URL response from server") from e

        logger.debug(
            f"Issued upload URLs for asset {asset_id}: "
            f"{len(urls.derivative_targets())} derivative target(s)"
        )
        return urls
