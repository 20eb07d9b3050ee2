"""Retry strategies using Strategy Pattern."""
from .retry_strategy import (
    RetryStrategy,
    ExponentialBackoffStrategy,
    backoff_delay,
    retry_operation,
)

__all__ = [
    'RetryStrategy',
    'ExponentialBackoffStrategy',
    'backoff_delay',
    'retry_operation',
]
