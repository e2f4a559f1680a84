"""Binary transfers to object storage write URLs.

Handles:
- Block blob PUTs with the storage headers the write URLs require
- Byte-level progress per transfer, multiplexed by task id
- Best-effort derivative (small/medium/large) transfers after the original

All state is confined to the event loop the engine runs on.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from email.utils import formatdate
from enum import Enum
from urllib.parse import urlparse
from uuid import UUID, uuid4

import httpx

from appkeyid.config import Settings, get_settings
from appkeyid.contracts import UploadUrlSet
from appkeyid.errors import AppKeyIDError, UploadFailed
from appkeyid.events import (
    AssetProgress,
    AssetStart,
    AssetUploadDescription,
    AssetUploadEnd,
    AssetUploadError,
    EventSink,
    TransactionEnd,
    UploadEvent,
)
from appkeyid.media import DerivativeGenerator

logger = logging.getLogger(__name__)


class TransferState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Transfer:
    """Progress record for one outgoing transfer."""

    task_id: UUID
    byte_total: int
    byte_sent: int = 0
    state: TransferState = TransferState.PENDING

    @property
    def fraction(self) -> float | None:
        if self.byte_total <= 0:
            return None
        return self.byte_sent / self.byte_total


FollowUp = Callable[[UUID], Awaitable[None]]


class TransferEngine:
    """Runs concurrent transfers and routes their events to per-task sinks."""

    def __init__(
        self,
        settings: Settings | None = None,
        http: httpx.AsyncClient | None = None,
    ):
        """
        Initialize the transfer engine.

        Args:
            settings: SDK settings. Uses get_settings() if not provided.
            http: Optional storage client. Must not carry backend auth headers.
        """
        self.settings = settings or get_settings()
        self._client = http
        self._owns_client = http is None
        self._sinks: dict[UUID, EventSink] = {}
        self._transfers: dict[UUID, Transfer] = {}
        self._tasks: dict[UUID, asyncio.Task[None]] = {}

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.settings.upload_timeout))
        return self._client

    async def aclose(self) -> None:
        """Wait for outstanding transfers, drop their records, then close the storage client."""
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._sinks.clear()
        self._transfers.clear()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ========================================================================
    # Registry
    # ========================================================================

    def get_transfer(self, task_id: UUID) -> Transfer | None:
        return self._transfers.get(task_id)

    def clear(self, task_id: UUID) -> None:
        """Stop delivering events for ``task_id``.

        The network operation is not aborted; late events are dropped.
        """
        self._sinks.pop(task_id, None)
        self._transfers.pop(task_id, None)

    async def join(self, task_id: UUID) -> None:
        """Wait until the background work for ``task_id`` has finished."""
        task = self._tasks.get(task_id)
        if task is not None:
            await task

    def _emit(self, task_id: UUID, event: UploadEvent) -> None:
        sink = self._sinks.get(task_id)
        if sink is None:
            return
        try:
            sink(event)
        except Exception:
            logger.exception(f"Upload event sink failed for task {task_id}")

    # ========================================================================
    # Single PUT
    # ========================================================================

    def blob_headers(self, content_type: str, content_length: int) -> dict[str, str]:
        """Headers required by the storage write URL."""
        return {
            "x-ms-blob-type": "BlockBlob",
            "Content-Type": content_type,
            "Content-Length": str(content_length),
            "x-ms-version": self.settings.storage_api_version,
            "x-ms-date": formatdate(usegmt=True),
        }

    async def _chunks(
        self, payload: bytes, on_sent: Callable[[int], None]
    ) -> AsyncIterator[bytes]:
        size = self.settings.upload_chunk_size
        for offset in range(0, len(payload), size):
            chunk = payload[offset : offset + size]
            yield chunk
            # Resumed only once the transport has taken the chunk.
            on_sent(len(chunk))

    async def _put(
        self,
        target_url: str,
        payload: bytes,
        content_type: str,
        on_sent: Callable[[int], None] | None = None,
    ) -> None:
        client = self._ensure_client()
        headers = self.blob_headers(content_type, len(payload))
        content = self._chunks(payload, on_sent) if on_sent else payload
        host = urlparse(target_url).netloc

        try:
            response = await client.put(target_url, content=content, headers=headers)
        except httpx.TimeoutException as e:
            raise UploadFailed(f"Upload to {host} timed out") from e
        except httpx.RequestError as e:
            raise UploadFailed(f"Upload to {host} failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise UploadFailed(f"Storage rejected upload with status {response.status_code}")

    async def transfer_and_await(self, payload: bytes, content_type: str, target_url: str) -> None:
        """
        PUT a payload and wait for it. No events are emitted.

        Raises:
            UploadFailed: If the PUT fails or returns a non-2xx status
        """
        await self._put(target_url, payload, content_type)

    # ========================================================================
    # Fire-and-forget transfers
    # ========================================================================

    async def transfer(
        self,
        payload: bytes,
        content_type: str,
        target_url: str,
        sink: EventSink | None = None,
    ) -> UUID:
        """
        Start a PUT in the background and return its task id.

        Events for the task go to ``sink``: AssetStart, AssetProgress*, then
        AssetUploadEnd or AssetUploadError.
        """
        return self._start(payload, content_type, target_url, sink, urls=None, follow_up=None)

    async def transfer_asset(
        self,
        payload: bytes,
        content_type: str,
        urls: UploadUrlSet,
        sink: EventSink | None = None,
        skip_derivatives: bool = False,
        derivatives: DerivativeGenerator | None = None,
    ) -> UUID:
        """
        Upload the original to ``urls.write_url``, then its derivatives.

        After AssetUploadEnd, each derivative the server issued a URL for is
        generated and uploaded in order small, medium, large, one at a time.
        A failed derivative is logged and skipped. TransactionEnd follows once.
        """

        async def follow_up(task_id: UUID) -> None:
            if not skip_derivatives:
                await self._upload_derivatives(task_id, payload, content_type, urls, derivatives)
            self._emit(task_id, TransactionEnd(task_id=task_id, urls=urls))

        return self._start(
            payload, content_type, urls.write_url, sink, urls=urls, follow_up=follow_up
        )

    def _start(
        self,
        payload: bytes,
        content_type: str,
        target_url: str,
        sink: EventSink | None,
        urls: UploadUrlSet | None,
        follow_up: FollowUp | None,
    ) -> UUID:
        task_id = uuid4()
        # Sink goes in before the task exists so no event can precede it.
        if sink is not None:
            self._sinks[task_id] = sink
        transfer = Transfer(task_id=task_id, byte_total=len(payload))
        self._transfers[task_id] = transfer
        self._emit(task_id, AssetStart(task_id=task_id))

        task = asyncio.create_task(
            self._run(transfer, payload, content_type, target_url, urls, follow_up)
        )
        self._tasks[task_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(task_id, None))
        return task_id

    async def _run(
        self,
        transfer: Transfer,
        payload: bytes,
        content_type: str,
        target_url: str,
        urls: UploadUrlSet | None,
        follow_up: FollowUp | None,
    ) -> None:
        task_id = transfer.task_id
        transfer.state = TransferState.IN_FLIGHT

        def on_sent(count: int) -> None:
            transfer.byte_sent += count
            if transfer.byte_total > 0:
                self._emit(
                    task_id,
                    AssetProgress(
                        task_id=task_id,
                        bytes_sent=transfer.byte_sent,
                        bytes_total=transfer.byte_total,
                        fraction=transfer.byte_sent / transfer.byte_total,
                    ),
                )

        try:
            await self._put(target_url, payload, content_type, on_sent)
        except Exception as e:
            error = e if isinstance(e, AppKeyIDError) else UploadFailed(str(e))
            transfer.state = TransferState.FAILED
            logger.warning(f"Upload {task_id} failed: {error.message}")
            self._emit(task_id, AssetUploadError(task_id=task_id, error=error))
            return

        transfer.state = TransferState.SUCCEEDED
        logger.debug(f"Upload {task_id} finished ({transfer.byte_sent} bytes)")
        self._emit(task_id, AssetUploadEnd(task_id=task_id, urls=urls))

        if follow_up is not None:
            await follow_up(task_id)

    async def _upload_derivatives(
        self,
        task_id: UUID,
        payload: bytes,
        content_type: str,
        urls: UploadUrlSet,
        derivatives: DerivativeGenerator | None,
    ) -> None:
        targets = urls.derivative_targets()
        if not targets:
            return
        if derivatives is None:
            logger.debug(f"No derivative generator; skipping {len(targets)} derivative(s)")
            return

        sizes = self.settings.derivative_sizes()
        for name, write_url in targets:
            try:
                resized = await derivatives.generate(payload, content_type, name, sizes[name])
                if resized is None:
                    continue
                self._emit(
                    task_id,
                    AssetUploadDescription(task_id=task_id, description=f"uploading {name} image"),
                )
                await self.transfer_and_await(resized, content_type, write_url)
            except Exception as e:
                # Never fails the parent upload.
                logger.warning(
                    f"Derivative '{name}' upload failed for task {task_id}: {e}",
                    extra={
                        "task_id": str(task_id),
                        "derivative": name,
                        "target_host": urlparse(write_url).netloc,
                    },
                )
