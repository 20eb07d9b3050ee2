"""TUS API module: configuration, errors, retry and the async client."""
from .config import (
    APIConfig,
    ProxyConfig,
    SSLConfig,
    TimeoutConfig,
    RetryConfig,
    UploadLimits,
)
from .endpoints import slot_endpoint, reset_queue_endpoint, update_endpoint
from .errors import TUSError, TUSErrorKind, TUSErrorMessages
from .retry import ExponentialBackoffStrategy, backoff_delay, retry_operation
from .events import EventEmitter
from .async_client import TUSClient

__all__ = [
    # Client
    'TUSClient',

    # Configuration
    'APIConfig',
    'ProxyConfig',
    'SSLConfig',
    'TimeoutConfig',
    'RetryConfig',
    'UploadLimits',

    # Endpoints
    'slot_endpoint',
    'reset_queue_endpoint',
    'update_endpoint',

    # Errors
    'TUSError',
    'TUSErrorKind',
    'TUSErrorMessages',

    # Retry
    'ExponentialBackoffStrategy',
    'backoff_delay',
    'retry_operation',

    # Events
    'EventEmitter',
]
