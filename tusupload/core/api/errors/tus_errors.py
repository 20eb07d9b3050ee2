"""TUS upload error taxonomy and classification."""
import asyncio
import json
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import aiohttp


class TUSErrorKind(str, Enum):
    """Closed set of upload error kinds."""

    OFFSET_MISMATCH = 'OFFSET_MISMATCH'
    UPLOAD_LOCKED = 'UPLOAD_LOCKED'
    QUEUE_FULL = 'QUEUE_FULL'
    FILE_TOO_LARGE = 'FILE_TOO_LARGE'
    INVALID_METADATA = 'INVALID_METADATA'
    UNSUPPORTED_VERSION = 'UNSUPPORTED_VERSION'
    NETWORK_ERROR = 'NETWORK_ERROR'
    UNAUTHORIZED = 'UNAUTHORIZED'
    FORBIDDEN = 'FORBIDDEN'
    NOT_FOUND = 'NOT_FOUND'
    SERVER_ERROR = 'SERVER_ERROR'
    UPLOAD_CANCELLED = 'UPLOAD_CANCELLED'
    UNKNOWN = 'UNKNOWN'


class TUSErrorMessages:
    """Default user-facing messages keyed by HTTP status."""

    MESSAGES: Dict[int, str] = {
        400: 'Request tidak valid',
        401: 'Tidak memiliki akses',
        403: 'Akses ditolak',
        404: 'Upload tidak ditemukan',
        409: 'Offset tidak sesuai',
        412: 'Versi TUS protocol tidak didukung',
        413: 'Ukuran file terlalu besar',
        415: 'Content-Type tidak didukung',
        423: 'Upload tidak aktif',
        429: 'Antrian upload penuh',
        500: 'Terjadi kesalahan pada server',
    }

    KINDS: Dict[int, TUSErrorKind] = {
        401: TUSErrorKind.UNAUTHORIZED,
        403: TUSErrorKind.FORBIDDEN,
        404: TUSErrorKind.NOT_FOUND,
        409: TUSErrorKind.OFFSET_MISMATCH,
        412: TUSErrorKind.UNSUPPORTED_VERSION,
        413: TUSErrorKind.FILE_TOO_LARGE,
        423: TUSErrorKind.UPLOAD_LOCKED,
        429: TUSErrorKind.QUEUE_FULL,
    }

    UNKNOWN_MESSAGE = 'Terjadi kesalahan yang tidak diketahui'
    NETWORK_MESSAGE = 'Tidak dapat terhubung ke server. Periksa koneksi internet Anda.'
    CANCELLED_MESSAGE = 'Upload dibatalkan'

    @classmethod
    def get_message(cls, status: int) -> str:
        """Gets default message for an HTTP status."""
        return cls.MESSAGES.get(status, cls.UNKNOWN_MESSAGE)

    @classmethod
    def get_kind(cls, status: int) -> TUSErrorKind:
        """Gets error kind for an HTTP status."""
        if status >= 500:
            return TUSErrorKind.SERVER_ERROR
        return cls.KINDS.get(status, TUSErrorKind.UNKNOWN)


RETRYABLE_KINDS = frozenset({
    TUSErrorKind.OFFSET_MISMATCH,
    TUSErrorKind.UPLOAD_LOCKED,
    TUSErrorKind.NETWORK_ERROR,
    TUSErrorKind.SERVER_ERROR,
})


class TUSError(Exception):
    """
    Classified upload error.

    Attributes are read-only once the error is constructed.

    Attributes:
        code: HTTP status (0 for local/transport failures)
        message: Human readable message, ready for display
        kind: Error kind from the closed taxonomy
        correct_offset: Server offset reported with a 409 response
        headers: Response headers, when the error came from a response
        field_errors: Metadata validation errors, when applicable
    """

    def __init__(
        self,
        code: int,
        message: str,
        kind: TUSErrorKind = TUSErrorKind.UNKNOWN,
        correct_offset: Optional[int] = None,
        headers: Optional[Mapping[str, str]] = None,
        field_errors: Optional[List[Any]] = None
    ) -> None:
        self._code = code
        self._message = message
        self._kind = kind
        self._correct_offset = correct_offset
        self._headers = dict(headers) if headers else {}
        self._field_errors = list(field_errors) if field_errors else []
        super().__init__(message)

    @property
    def code(self) -> int:
        return self._code

    @property
    def message(self) -> str:
        return self._message

    @property
    def kind(self) -> TUSErrorKind:
        return self._kind

    @property
    def correct_offset(self) -> Optional[int]:
        return self._correct_offset

    @property
    def headers(self) -> Dict[str, str]:
        return dict(self._headers)

    @property
    def field_errors(self) -> List[Any]:
        return list(self._field_errors)

    @property
    def retryable(self) -> bool:
        """Returns True if the error may succeed on retry."""
        return is_retryable(self)

    def __repr__(self) -> str:
        return (
            f"TUSError(code={self._code}, kind={self._kind.value}, "
            f"message={self._message!r}, correct_offset={self._correct_offset})"
        )


def _parse_offset(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def _body_message(body: Any) -> Optional[str]:
    if isinstance(body, dict):
        message = body.get('message')
        if isinstance(message, str) and message:
            return message
    return None


def _is_validation_body(body: Any) -> bool:
    return isinstance(body, dict) and bool(body.get('errors'))


def classify(
    status: int,
    headers: Optional[Mapping[str, str]] = None,
    body: Any = None
) -> TUSError:
    """
    Map an HTTP outcome to a TUSError.

    Args:
        status: HTTP status code
        headers: Response headers (case-insensitive mapping preferred)
        body: Parsed JSON body, if any

    Returns:
        Classified error
    """
    headers = headers or {}
    message = TUSErrorMessages.get_message(status)
    kind = TUSErrorMessages.get_kind(status)
    correct_offset = None
    field_errors = None

    if status == 409:
        correct_offset = _parse_offset(
            headers.get('Upload-Offset', headers.get('upload-offset'))
        )
        kind = TUSErrorKind.OFFSET_MISMATCH
        message = (
            f"Offset tidak sesuai. Offset yang benar: {correct_offset}"
            if correct_offset is not None
            else 'Offset tidak sesuai dengan server'
        )
    elif status == 423:
        message = 'Upload tidak aktif. Silakan cek slot upload terlebih dahulu'
    elif status == 429:
        message = _body_message(body) or 'Antrian upload penuh'
    elif status == 413:
        message = _body_message(body) or 'Ukuran file terlalu besar'
    elif status == 412:
        message = 'Versi TUS protocol tidak didukung'
    elif status in (400, 422) and _is_validation_body(body):
        kind = TUSErrorKind.INVALID_METADATA
        message = _body_message(body) or 'Metadata upload tidak valid'
        errors = body.get('errors')
        field_errors = errors if isinstance(errors, list) else [errors]
    elif 400 <= status < 500:
        message = _body_message(body) or message

    return TUSError(
        status,
        message,
        kind,
        correct_offset=correct_offset,
        headers=headers,
        field_errors=field_errors
    )


async def parse_response(response: aiohttp.ClientResponse) -> TUSError:
    """
    Build a TUSError from a failed aiohttp response.

    The body is read best-effort; non-JSON bodies are ignored.
    """
    body = None
    try:
        body = await response.json(content_type=None)
    except (aiohttp.ClientError, json.JSONDecodeError, UnicodeDecodeError, ValueError):
        body = None
    return classify(response.status, response.headers, body)


def is_retryable(error: TUSError) -> bool:
    """True only for offset mismatch, locked upload, network and server errors."""
    return error.kind in RETRYABLE_KINDS


def should_reset_queue(error: TUSError) -> bool:
    """Locked uploads usually mean the server queue needs a reset."""
    return error.kind == TUSErrorKind.UPLOAD_LOCKED and error.code == 423


def should_wait_for_slot(error: TUSError) -> bool:
    """Full queue: the caller should poll for a slot."""
    return error.kind == TUSErrorKind.QUEUE_FULL and error.code == 429


def create_network_error(message: Optional[str] = None) -> TUSError:
    return TUSError(
        0,
        message or TUSErrorMessages.NETWORK_MESSAGE,
        TUSErrorKind.NETWORK_ERROR
    )


def create_cancelled_error() -> TUSError:
    return TUSError(0, TUSErrorMessages.CANCELLED_MESSAGE, TUSErrorKind.UPLOAD_CANCELLED)


def create_not_found_error() -> TUSError:
    return TUSError(404, 'Upload tidak ditemukan', TUSErrorKind.NOT_FOUND)


def handle_error(error: BaseException) -> TUSError:
    """
    Normalize any exception into a TUSError.

    asyncio.CancelledError is not an error and must not reach this function.
    """
    if isinstance(error, TUSError):
        return error
    if isinstance(error, (aiohttp.ClientError, asyncio.TimeoutError)):
        return create_network_error(str(error) or None)
    message = str(error) or TUSErrorMessages.UNKNOWN_MESSAGE
    return TUSError(0, message, TUSErrorKind.UNKNOWN)


def format_error_message(error: TUSError) -> str:
    """Message for display, with the server offset on mismatches."""
    if error.kind == TUSErrorKind.OFFSET_MISMATCH and error.correct_offset is not None:
        return f"{error.message} (Offset: {error.correct_offset})"
    return error.message
