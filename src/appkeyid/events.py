"""Upload state events and sinks.

For one transfer the engine emits, in order::

    AssetStart -> AssetProgress* -> (AssetUploadEnd | AssetUploadError)

and, once the primary succeeded, any number of ``AssetUploadDescription``
events for derivatives followed by exactly one ``TransactionEnd``.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from uuid import UUID

from appkeyid.contracts import UploadUrlSet
from appkeyid.errors import AppKeyIDError


@dataclass(frozen=True)
class AssetStart:
    task_id: UUID


@dataclass(frozen=True)
class AssetProgress:
    task_id: UUID
    bytes_sent: int
    bytes_total: int
    fraction: float


@dataclass(frozen=True)
class AssetUploadEnd:
    task_id: UUID
    urls: UploadUrlSet | None


@dataclass(frozen=True)
class AssetUploadError:
    task_id: UUID
    error: AppKeyIDError


@dataclass(frozen=True)
class AssetUploadDescription:
    """Human-readable status, e.g. "uploading small image"."""

    task_id: UUID
    description: str


@dataclass(frozen=True)
class TransactionEnd:
    task_id: UUID
    urls: UploadUrlSet


UploadEvent = (
    AssetStart
    | AssetProgress
    | AssetUploadEnd
    | AssetUploadError
    | AssetUploadDescription
    | TransactionEnd
)

EventSink = Callable[[UploadEvent], None]

# Events after which nothing more is delivered for a task
FINAL_EVENTS = (AssetUploadError, TransactionEnd)


class UploadEventStream:
    """Async-iterable sink: pass the instance as the sink, then ``async for`` it.

    Iteration stops after ``TransactionEnd`` or ``AssetUploadError``.

    Example:
        >>> stream = UploadEventStream()
        >>> task_id = await coordinator.upload_asset(asset, sink=stream)
        >>> async for event in stream:
        ...     print(event)
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[UploadEvent] = asyncio.Queue()

    def __call__(self, event: UploadEvent) -> None:
        self._queue.put_nowait(event)

    def __aiter__(self) -> AsyncIterator[UploadEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[UploadEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if isinstance(event, FINAL_EVENTS):
                return

    async def collect(self) -> list[UploadEvent]:
        """Drain the stream into a list (until a final event)."""
        return [event async for event in self]
