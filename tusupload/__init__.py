"""
tusupload - Async resumable upload client for TUS-style upload servers.

Usage:
    >>> from tusupload import UploadManager, ModulMetadata
    >>>
    >>> async with UploadManager(token_provider=lambda: token) as manager:
    ...     upload_id = await manager.start_upload(
    ...         'modul.pdf', '/modul/upload',
    ...         metadata=ModulMetadata('Modul 1', 'pdf', 3),
    ...         check_slot=True
    ...     )
    ...     await manager.wait(upload_id)
"""
import logging

# Upload side first: the API client imports upload models
from .core.upload import (
    UploadManager,
    UploadStateStore,
    UploadCallbacks,
    UploadFile,
    UploadState,
    ResourceType,
    ProjectMetadata,
    ModulMetadata,
    BatchItem,
    BatchUploadResult,
    ProgressInfo,
    ProgressFormatter,
)

# Configuration and client
from .core.api import (
    APIConfig,
    ProxyConfig,
    SSLConfig,
    TimeoutConfig,
    RetryConfig,
    UploadLimits,
    TUSClient,
    TUSError,
    TUSErrorKind,
)

__version__ = '1.0.0'


def setup_logging(level=logging.INFO):
    """
    Configure logging for tusupload modules.

    This ensures that all tusupload loggers are properly configured
    to show log messages at the specified level.

    Args:
        level: Logging level (default: logging.INFO)
    """
    loggers = [
        'tusupload',
        'tusupload.client',
        'tusupload.retry',
        'tusupload.upload.manager',
        'tusupload.upload.store',
        'tusupload.upload.file',
        'tusupload.upload.events',
    ]

    for logger_name in loggers:
        logger = logging.getLogger(logger_name)
        logger.setLevel(level)
        # Ensure propagation is enabled
        logger.propagate = True


__all__ = [
    'UploadManager',
    'UploadStateStore',
    'UploadCallbacks',
    'UploadFile',
    'UploadState',
    'ResourceType',
    'ProjectMetadata',
    'ModulMetadata',
    'BatchItem',
    'BatchUploadResult',
    'ProgressInfo',
    'ProgressFormatter',
    'APIConfig',
    'ProxyConfig',
    'SSLConfig',
    'TimeoutConfig',
    'RetryConfig',
    'UploadLimits',
    'TUSClient',
    'TUSError',
    'TUSErrorKind',
    'setup_logging',
]
