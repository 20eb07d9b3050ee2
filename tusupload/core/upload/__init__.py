"""
Upload module for resumable TUS uploads.

Provides the upload manager plus the pieces it is built from: metadata
codec, progress tracking, chunking strategies and file services.
"""
from .models import (
    ResourceType,
    UploadState,
    ProjectMetadata,
    ModulMetadata,
    UploadMetadata,
    FieldError,
    SlotInfo,
    UploadInfo,
    UploadStatus,
    ProgressInfo,
    TotalProgress,
    UploadFile,
    UploadCallbacks,
    UploadOutcome,
    BatchItem,
    BatchUploadResult,
)
from .metadata import (
    MetadataEncoder,
    MetadataValidator,
    encode_metadata,
    decode_metadata,
    validate_metadata,
)
from .protocols import (
    ChunkingStrategy,
    FileReaderProtocol,
    UploadClientProtocol,
    TokenProvider,
)
from .progress import ProgressTracker, ProgressAggregator, ProgressFormatter
from .session import CancellationToken, UploadSession
from .manager import UploadManager
from .store import UploadStateStore, UploadRecord, SlotState

__all__ = [
    # Main classes
    'UploadManager',
    'UploadStateStore',
    'UploadSession',
    'CancellationToken',

    # Models
    'ResourceType',
    'UploadState',
    'ProjectMetadata',
    'ModulMetadata',
    'UploadMetadata',
    'FieldError',
    'SlotInfo',
    'UploadInfo',
    'UploadStatus',
    'ProgressInfo',
    'TotalProgress',
    'UploadFile',
    'UploadCallbacks',
    'UploadOutcome',
    'BatchItem',
    'BatchUploadResult',
    'UploadRecord',
    'SlotState',

    # Metadata
    'MetadataEncoder',
    'MetadataValidator',
    'encode_metadata',
    'decode_metadata',
    'validate_metadata',

    # Progress
    'ProgressTracker',
    'ProgressAggregator',
    'ProgressFormatter',

    # Protocols
    'ChunkingStrategy',
    'FileReaderProtocol',
    'UploadClientProtocol',
    'TokenProvider',
]
