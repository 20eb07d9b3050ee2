"""Upload models."""
from .upload_models import (
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
    ChunkBounds,
)

__all__ = [
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
    'ChunkBounds',
]
