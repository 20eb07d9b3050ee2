"""Pytest fixtures for tusupload tests."""
import asyncio
import os
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from tusupload.core.api.errors import TUSError, TUSErrorKind
from tusupload.core.upload.models import SlotInfo, UploadInfo, UploadStatus


class FakeTUSClient:
    """
    In-memory protocol client.

    Stores uploaded bytes per upload URL and records every chunk call.
    Set ``gate`` to an unset asyncio.Event to hold chunk writes.
    """

    def __init__(self, chunk_size: int = 4):
        self.chunk_size = chunk_size
        self.uploads: Dict[str, dict] = {}
        self.chunk_calls: List[tuple] = []
        self.initiate_calls: List[dict] = []
        self.cancelled: List[str] = []
        self.slot = SlotInfo(available=True)
        self.was_reset = False
        self.poll_results: List[object] = []
        self.chunk_errors: List[Optional[Exception]] = []
        self.cancel_error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    def url_for(self, upload_id: str) -> str:
        return f"/files/{upload_id}"

    async def check_slot(self, endpoint):
        return self.slot

    async def check_slot_with_retry(self, endpoint, max_resets=1):
        return self.slot, self.was_reset

    async def poll_for_slot(self, endpoint, max_wait=None, interval=None):
        if self.poll_results:
            result = self.poll_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return SlotInfo(available=True)

    async def initiate(
        self,
        endpoint,
        file_size,
        metadata=None,
        metadata_type=None,
        is_update=False,
        resource_id=None,
        has_metadata_changed=False
    ):
        upload_id = f"upload-{len(self.initiate_calls) + 1}"
        self.initiate_calls.append({
            'endpoint': endpoint,
            'file_size': file_size,
            'metadata': metadata,
            'metadata_type': metadata_type,
            'is_update': is_update,
            'resource_id': resource_id,
            'has_metadata_changed': has_metadata_changed,
        })
        url = self.url_for(upload_id)
        self.uploads[url] = {'offset': 0, 'length': file_size, 'data': bytearray(file_size)}
        return UploadInfo(upload_id=upload_id, upload_url=url, offset=0, length=file_size)

    async def _write(self, url, chunk, offset):
        if self.gate is not None:
            await self.gate.wait()

        if self.chunk_errors:
            error = self.chunk_errors.pop(0)
            if error is not None:
                raise error

        upload = self.uploads[url]
        if offset != upload['offset']:
            return upload['offset']

        upload['data'][offset:offset + len(chunk)] = chunk
        upload['offset'] = offset + len(chunk)
        return upload['offset']

    async def upload_chunk_with_retry(self, upload_url, chunk, offset, token=None):
        self.chunk_calls.append((upload_url, offset, len(chunk)))
        operation = self._write(upload_url, chunk, offset)
        if token is not None:
            return await token.run(operation)
        return await operation

    async def get_status(self, upload_url):
        upload = self.uploads[upload_url]
        progress = round(upload['offset'] / upload['length'] * 100) if upload['length'] else 0
        return UploadStatus(offset=upload['offset'], length=upload['length'], progress=progress)

    async def get_info(self, upload_url):
        upload = self.uploads[upload_url]
        return {'offset': upload['offset'], 'length': upload['length']}

    async def cancel(self, upload_url):
        self.cancelled.append(upload_url)
        if self.cancel_error is not None:
            raise self.cancel_error

    async def close(self):
        self.closed = True

    def offsets(self, upload_url: str) -> List[int]:
        return [offset for url, offset, _ in self.chunk_calls if url == upload_url]


@pytest.fixture
def fake_client():
    """Fake protocol client with 4-byte chunks."""
    return FakeTUSClient(chunk_size=4)


@pytest.fixture
def make_client():
    """Factory for fake clients with a given chunk size."""
    return FakeTUSClient


@pytest.fixture
def make_file(tmp_path):
    """Factory writing a file of known content."""
    def factory(name: str = "modul.pdf", size: int = 10) -> Path:
        path = tmp_path / name
        path.write_bytes(os.urandom(size))
        return path
    return factory


@pytest.fixture
def queue_full_error():
    """QUEUE_FULL error as raised by slot polling."""
    return TUSError(408, 'Tidak ada slot upload tersedia', TUSErrorKind.QUEUE_FULL)

