"""Asset-level upload contract: resolve, issue URLs, transfer."""

from __future__ import annotations

import logging
from uuid import UUID

from appkeyid.contracts import UploadUrlSet
from appkeyid.errors import (
    AppKeyIDError,
    ConfigurationError,
    InvalidAsset,
    Unauthenticated,
    UploadFailed,
)
from appkeyid.events import (
    AssetUploadError,
    EventSink,
    TransactionEnd,
    UploadEvent,
)
from appkeyid.media import (
    DerivativeGenerator,
    FileMediaInspector,
    MediaDetail,
    MediaInspector,
    UploadAsset,
)
from appkeyid.transfer import TransferEngine
from appkeyid.upload_urls import UploadUrlIssuer

logger = logging.getLogger(__name__)


class UploadCoordinator:
    """Composes the URL issuer and transfer engine for consumers.

    Failures before the first byte raise; once a task id has been handed out,
    failures arrive as ``AssetUploadError`` events instead.
    """

    def __init__(
        self,
        issuer: UploadUrlIssuer,
        engine: TransferEngine,
        inspector: MediaInspector | None = None,
        derivatives: DerivativeGenerator | None = None,
    ) -> None:
        self.issuer = issuer
        self.engine = engine
        self.inspector = inspector or FileMediaInspector()
        self.derivatives = derivatives

    async def _resolve(self, asset: UploadAsset) -> tuple[bytes, MediaDetail]:
        payload = asset.payload
        if not payload:
            raise InvalidAsset("Asset has no data to upload")
        if not asset.source_locator:
            raise InvalidAsset("Asset has no source")

        detail = await self.inspector.inspect(asset.source_locator)
        if detail is None or not detail.file_name:
            raise InvalidAsset(f"Could not resolve asset source {asset.source_locator}")
        return payload, detail

    async def upload_asset(
        self,
        asset: UploadAsset,
        skip_derivatives: bool = False,
        sink: EventSink | None = None,
    ) -> UUID:
        """
        Start uploading an asset; returns its task id immediately.

        Args:
            asset: The asset to upload
            skip_derivatives: Upload the original only
            sink: Receives the upload events for the returned task id

        Raises:
            InvalidAsset: If the asset has no payload or unresolvable source
            Unauthenticated: If there is no signed-in session
            UploadFailed: If issuing write URLs fails (cause chained)
        """
        payload, detail = await self._resolve(asset)
        content_type = asset.content_type or detail.content_type

        try:
            urls = await self.issuer.get_upload_urls(
                asset.id,
                detail.file_name,
                skip_derivatives=skip_derivatives,
                payload=payload,
            )
        except (InvalidAsset, Unauthenticated, ConfigurationError):
            raise
        except AppKeyIDError as e:
            logger.warning(f"Could not get upload URLs for asset {asset.id}: {e.message}")
            raise UploadFailed(e.message) from e

        task_id = await self.engine.transfer_asset(
            payload,
            content_type,
            urls,
            sink=sink,
            skip_derivatives=skip_derivatives,
            derivatives=self.derivatives,
        )
        logger.info(f"Uploading asset {asset.id} as {detail.file_name} (task {task_id})")
        return task_id

    async def upload_and_wait(
        self,
        asset: UploadAsset,
        skip_derivatives: bool = False,
        sink: EventSink | None = None,
    ) -> UploadUrlSet:
        """
        Upload an asset and wait for the whole transaction.

        Returns:
            The UploadUrlSet of the stored asset

        Raises:
            InvalidAsset: If the asset is invalid
            UploadFailed: If issuing URLs or the original transfer fails
        """
        outcome: list[UploadEvent] = []

        def record(event: UploadEvent) -> None:
            if isinstance(event, AssetUploadError | TransactionEnd):
                outcome.append(event)
            if sink is not None:
                sink(event)

        task_id = await self.upload_asset(asset, skip_derivatives, sink=record)
        try:
            await self.engine.join(task_id)
        finally:
            self.engine.clear(task_id)

        for event in outcome:
            if isinstance(event, TransactionEnd):
                return event.urls
            if isinstance(event, AssetUploadError):
                raise UploadFailed(event.error.message) from event.error
        raise UploadFailed()
