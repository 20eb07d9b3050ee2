"""
Chunking strategies for resumable uploads.

Chunks are computed from the current offset rather than up front,
because the server may move the offset (409 resync, resume).
"""
from abc import ABC, abstractmethod
from typing import List

from ..models import ChunkBounds


class BaseChunkingStrategy(ABC):
    """Abstract base class for chunking strategies."""
    
    @abstractmethod
    def next_chunk(self, offset: int, length: int) -> ChunkBounds:
        """Bounds of the chunk starting at offset."""
        pass
    
    def calculate_chunks(self, length: int, offset: int = 0) -> List[ChunkBounds]:
        """
        All chunk bounds from offset to the end, assuming no resync.
        
        Args:
            length: Total upload length in bytes
            offset: Starting offset
            
        Returns:
            List of (start, end) tuples
        """
        chunks = []
        position = offset
        while position < length:
            start, end = self.next_chunk(position, length)
            chunks.append((start, end))
            position = end
        return chunks


class FixedSizeChunkingStrategy(BaseChunkingStrategy):
    """
    Fixed-size chunking strategy.
    
    The last chunk is shorter when the length is not a multiple of
    the chunk size.
    """
    
    DEFAULT_CHUNK_SIZE = 1024 * 1024  # 1MB
    
    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        """
        Initialize with chunk size.
        
        Args:
            chunk_size: Size of each chunk in bytes
        """
        if chunk_size <= 0:
            raise ValueError("Chunk size must be positive")
        self.chunk_size = chunk_size
    
    def next_chunk(self, offset: int, length: int) -> ChunkBounds:
        """
        Slice [offset, min(offset + chunk_size, length)).
        
        Raises:
            ValueError: If offset is outside [0, length)
        """
        if offset < 0 or offset >= length:
            raise ValueError(f"Offset {offset} outside upload of length {length}")
        return offset, min(offset + self.chunk_size, length)
