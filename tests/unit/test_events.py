"""Unit tests for upload events and the async event stream."""

from uuid import uuid4

import pytest

from appkeyid.contracts import UploadUrlSet
from appkeyid.errors import UploadFailed
from appkeyid.events import (
    AssetProgress,
    AssetStart,
    AssetUploadEnd,
    AssetUploadError,
    TransactionEnd,
    UploadEventStream,
)


class TestUploadEventStream:
    """Tests for UploadEventStream."""

    @pytest.mark.asyncio
    async def test_stops_after_transaction_end(self):
        task_id = uuid4()
        urls = UploadUrlSet(id="a", write_url="w", read_url="r", path="p")
        stream = UploadEventStream()

        stream(AssetStart(task_id=task_id))
        stream(AssetProgress(task_id=task_id, bytes_sent=1, bytes_total=2, fraction=0.5))
        stream(AssetUploadEnd(task_id=task_id, urls=urls))
        stream(TransactionEnd(task_id=task_id, urls=urls))
        stream(AssetStart(task_id=uuid4()))

        events = await stream.collect()

        assert [type(e) for e in events] == [
            AssetStart,
            AssetProgress,
            AssetUploadEnd,
            TransactionEnd,
        ]

    @pytest.mark.asyncio
    async def test_stops_after_error(self):
        task_id = uuid4()
        stream = UploadEventStream()

        stream(AssetStart(task_id=task_id))
        stream(AssetUploadError(task_id=task_id, error=UploadFailed("boom")))

        events = [event async for event in stream]

        assert isinstance(events[-1], AssetUploadError)
        assert events[-1].error.message == "boom"
