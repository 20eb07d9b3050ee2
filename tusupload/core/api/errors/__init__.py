"""TUS upload errors and classification."""
from .tus_errors import (
    TUSError,
    TUSErrorKind,
    TUSErrorMessages,
    classify,
    parse_response,
    is_retryable,
    should_reset_queue,
    should_wait_for_slot,
    create_network_error,
    create_cancelled_error,
    create_not_found_error,
    handle_error,
    format_error_message,
)

__all__ = [
    'TUSError',
    'TUSErrorKind',
    'TUSErrorMessages',
    'classify',
    'parse_response',
    'is_retryable',
    'should_reset_queue',
    'should_wait_for_slot',
    'create_network_error',
    'create_cancelled_error',
    'create_not_found_error',
    'handle_error',
    'format_error_message',
]
