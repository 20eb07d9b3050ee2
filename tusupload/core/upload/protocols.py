"""
Protocol definitions for upload module.

Defines interfaces (protocols) for dependency injection and strategy pattern.
The UploadManager depends on these, not on the concrete aiohttp client.
"""
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from .models import ChunkBounds, SlotInfo, UploadFile, UploadInfo, UploadMetadata, UploadStatus

TokenProvider = Callable[[], Optional[str]]


class ChunkingStrategy(Protocol):
    """
    Protocol for file chunking strategies.

    Allows different chunking algorithms to be plugged in.
    """

    def next_chunk(self, offset: int, length: int) -> ChunkBounds:
        """
        Bounds of the chunk starting at offset.

        Args:
            offset: Current upload offset
            length: Total upload length

        Returns:
            (start, end) tuple, end exclusive
        """
        ...

    def calculate_chunks(self, length: int, offset: int = 0) -> List[ChunkBounds]:
        ...


class FileReaderProtocol(Protocol):
    """Protocol for reading the source bytes of one upload."""

    async def open(self, upload_file: UploadFile) -> None:
        ...

    async def close(self) -> None:
        ...

    async def read(self, start: int, end: int) -> Optional[bytes]:
        """
        Read the byte range [start, end).

        Returns:
            Chunk data or None if reading failed
        """
        ...


class UploadClientProtocol(Protocol):
    """Wire operations the upload manager needs."""

    @property
    def chunk_size(self) -> int:
        ...

    async def check_slot(self, endpoint: str) -> SlotInfo:
        ...

    async def check_slot_with_retry(
        self,
        endpoint: str,
        max_resets: int = 1
    ) -> Tuple[SlotInfo, bool]:
        ...

    async def poll_for_slot(
        self,
        endpoint: str,
        max_wait: Optional[float] = None,
        interval: Optional[float] = None
    ) -> SlotInfo:
        ...

    async def initiate(
        self,
        endpoint: str,
        file_size: int,
        metadata: Optional[UploadMetadata] = None,
        metadata_type: Optional[str] = None,
        is_update: bool = False,
        resource_id: Optional[int] = None,
        has_metadata_changed: bool = False
    ) -> UploadInfo:
        ...

    async def upload_chunk_with_retry(
        self,
        upload_url: str,
        chunk: bytes,
        offset: int,
        token: Any = None
    ) -> int:
        """
        Upload one chunk and return the new server offset.

        Offset mismatches with a known server offset resolve to that offset.
        """
        ...

    async def get_status(self, upload_url: str) -> UploadStatus:
        ...

    async def get_info(self, upload_url: str) -> Dict[str, Any]:
        ...

    async def cancel(self, upload_url: str) -> None:
        ...

    async def close(self) -> None:
        ...
