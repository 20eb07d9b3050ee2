"""
Async TUS protocol client.

Stateless wire operations over aiohttp: slot negotiation, upload
initiation, chunk PATCH, status HEAD, cancel DELETE.
"""
import asyncio
import json
from typing import Any, Dict, Mapping, Optional, Tuple

import aiohttp

from .config import APIConfig
from .endpoints import reset_queue_endpoint, update_endpoint
from .errors import (
    TUSError,
    TUSErrorKind,
    create_network_error,
    parse_response,
)
from .retry import retry_operation
from ..logging import get_logger
from ..upload.metadata import PROJECT_UPDATE_FIELDS, MetadataEncoder
from ..upload.models import ResourceType, SlotInfo, UploadInfo, UploadMetadata, UploadStatus
from ..upload.protocols import TokenProvider

OFFSET_CONTENT_TYPE = 'application/offset+octet-stream'


class TUSClient:
    """
    Asynchronous TUS protocol client.

    Features:
    - Bearer token from an injected provider
    - Configurable proxy, SSL, timeouts
    - Stuck-queue detection with automatic reset
    - Chunk retry with exponential backoff and offset resync

    Example:
        >>> async with TUSClient(APIConfig(), token_provider=lambda: token) as client:
        ...     slot = await client.check_slot('/modul/upload/check-slot')
    """

    def __init__(
        self,
        config: Optional[APIConfig] = None,
        token_provider: Optional[TokenProvider] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize client.

        Args:
            config: Client configuration (defaults if not provided)
            token_provider: Returns the current bearer token, or None
            session: Optional shared aiohttp session (not closed by us)
        """
        self._config = config or APIConfig.default()
        self._token_provider = token_provider
        self._session = session
        self._owns_session = session is None
        self._retry_strategy = self._config.retry.create_strategy()
        self._logger = get_logger('tusupload.client')

    @property
    def config(self) -> APIConfig:
        return self._config

    @property
    def chunk_size(self) -> int:
        return self._config.chunk_size

    @property
    def max_retries(self) -> int:
        return self._config.max_retries

    @property
    def tus_version(self) -> str:
        return self._config.tus_version

    async def __aenter__(self) -> 'TUSClient':
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure session is created and open."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(**self._config.get_connector_kwargs())
            self._session = aiohttp.ClientSession(
                connector=connector,
                **self._config.get_session_kwargs()
            )
            self._owns_session = True
        return self._session

    async def close(self):
        """Close the session if we own it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    def _build_url(self, path: str) -> str:
        if path.startswith(('http://', 'https://')):
            return path
        return f"{self._config.base_url.rstrip('/')}{path}"

    def _auth_headers(self) -> Dict[str, str]:
        token = self._token_provider() if self._token_provider else None
        return {'Authorization': f"Bearer {token}"} if token else {}

    def _tus_headers(self) -> Dict[str, str]:
        return {'Tus-Resumable': self._config.tus_version, **self._auth_headers()}

    @staticmethod
    def _unwrap(payload: Any) -> Any:
        """Unwrap the {"data": ...} response envelope."""
        if isinstance(payload, dict) and isinstance(payload.get('data'), dict):
            return payload['data']
        return payload

    async def _request(
        self,
        method: str,
        path: str,
        headers: Optional[Mapping[str, str]] = None,
        data: Optional[bytes] = None,
        expect_json: bool = False
    ) -> Tuple[int, Mapping[str, str], Any]:
        """
        Send one request.

        Returns:
            (status, headers, parsed JSON body or None)

        Raises:
            TUSError: Classified HTTP failure, or NETWORK_ERROR on transport failure
        """
        session = await self._ensure_session()
        url = self._build_url(path)
        proxy = self._config.proxy.to_aiohttp_proxy() if self._config.proxy else None

        self._logger.debug(f"{method} {url}")

        try:
            async with session.request(
                method,
                url,
                headers=dict(headers or {}),
                data=data,
                proxy=proxy
            ) as response:
                if response.status >= 400:
                    error = await parse_response(response)
                    self._logger.debug(
                        f"{method} {url} failed: HTTP {response.status} ({error.kind.value})"
                    )
                    raise error

                body = None
                if expect_json:
                    try:
                        body = await response.json(content_type=None)
                    except (json.JSONDecodeError, ValueError) as e:
                        raise TUSError(
                            response.status,
                            'Respons server tidak valid',
                            TUSErrorKind.SERVER_ERROR
                        ) from e

                return response.status, response.headers.copy(), body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._logger.error(f"Network error on {method} {url}: {e!r}")
            raise create_network_error(str(e) or None) from e

    # Slot negotiation

    async def check_slot(self, endpoint: str) -> SlotInfo:
        """GET the admission state of the upload queue."""
        _, _, body = await self._request(
            'GET', endpoint, headers=self._auth_headers(), expect_json=True
        )
        return SlotInfo.from_dict(self._unwrap(body) or {})

    async def reset_queue(self, endpoint: str) -> None:
        """POST a queue reset."""
        headers = {'Content-Type': 'application/json', **self._auth_headers()}
        await self._request('POST', endpoint, headers=headers)

    async def check_slot_with_retry(
        self,
        endpoint: str,
        max_resets: int = 1
    ) -> Tuple[SlotInfo, bool]:
        """
        Check the slot, resetting a stuck queue.

        A queue is stuck when no slot is available, the queue is empty,
        and the server still reports an active upload. That state comes
        from a server-side leak; a reset clears it.

        Args:
            endpoint: check-slot endpoint
            max_resets: Resets allowed before giving up

        Returns:
            (slot info, whether a reset happened)
        """
        slot = await self.check_slot(endpoint)

        if slot.is_stuck and max_resets > 0:
            reset_endpoint = reset_queue_endpoint(endpoint)
            self._logger.warning(f"Upload queue stuck, resetting via {reset_endpoint}")
            await self.reset_queue(reset_endpoint)
            await asyncio.sleep(self._config.queue_reset_delay)

            retry_slot, _ = await self.check_slot_with_retry(endpoint, max_resets - 1)
            return retry_slot, True

        return slot, False

    async def poll_for_slot(
        self,
        endpoint: str,
        max_wait: Optional[float] = None,
        interval: Optional[float] = None
    ) -> SlotInfo:
        """
        Poll until a slot is available.

        Args:
            endpoint: check-slot endpoint
            max_wait: Seconds to wait (config default 30)
            interval: Seconds between polls (config default 1)

        Raises:
            TUSError: QUEUE_FULL when no slot frees up in time
        """
        max_wait = self._config.slot_poll_timeout if max_wait is None else max_wait
        interval = self._config.slot_poll_interval if interval is None else interval

        loop = asyncio.get_running_loop()
        start = loop.time()

        while loop.time() - start < max_wait:
            slot, _ = await self.check_slot_with_retry(endpoint)
            if slot.available:
                return slot

            self._logger.debug(
                f"No upload slot yet (queue length {slot.queue_length}), "
                f"polling again in {interval:.1f}s"
            )
            await asyncio.sleep(interval)

        raise TUSError(
            408,
            'Tidak ada slot upload tersedia setelah menunggu maksimal. Silakan coba lagi nanti.',
            TUSErrorKind.QUEUE_FULL
        )

    # Upload lifecycle

    def _metadata_header(
        self,
        metadata: Optional[UploadMetadata],
        metadata_type: Optional[str],
        is_update: bool,
        has_metadata_changed: bool
    ) -> Optional[str]:
        if metadata is None or metadata_type is None:
            return None

        resource = ResourceType(metadata_type)
        if resource is ResourceType.PROJECT and is_update:
            if not has_metadata_changed:
                return None
            return MetadataEncoder.encode(metadata, resource, fields=PROJECT_UPDATE_FIELDS)

        return MetadataEncoder.encode(metadata, resource)

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
        """
        POST a new upload.

        Args:
            endpoint: Upload collection endpoint, e.g. '/modul/upload'
            file_size: Upload-Length in bytes
            metadata: Metadata to send in Upload-Metadata
            metadata_type: 'project' or 'modul'
            is_update: Replacing the file of an existing resource
            resource_id: Id of the resource being updated
            has_metadata_changed: Project updates send metadata only if True

        Returns:
            Upload info; the offset may be nonzero for a resumed upload
        """
        if is_update and resource_id is not None:
            endpoint = update_endpoint(endpoint, resource_id)

        headers = {**self._tus_headers(), 'Upload-Length': str(file_size)}
        encoded = self._metadata_header(metadata, metadata_type, is_update, has_metadata_changed)
        if encoded:
            headers['Upload-Metadata'] = encoded

        _, _, body = await self._request('POST', endpoint, headers=headers, expect_json=True)
        try:
            info = UploadInfo.from_dict(self._unwrap(body) or {})
        except (KeyError, TypeError, ValueError) as e:
            raise TUSError(500, 'Respons inisiasi upload tidak lengkap', TUSErrorKind.SERVER_ERROR) from e

        self._logger.info(
            f"Upload initiated: {info.upload_id} ({info.length} bytes, offset {info.offset})"
        )
        return info

    async def _patch_chunk(self, upload_url: str, chunk: bytes, offset: int) -> int:
        headers = {
            **self._tus_headers(),
            'Content-Type': OFFSET_CONTENT_TYPE,
            'Upload-Offset': str(offset),
        }
        _, response_headers, _ = await self._request('PATCH', upload_url, headers=headers, data=chunk)

        new_offset = response_headers.get('Upload-Offset')
        if new_offset is None:
            raise TUSError(500, 'Server tidak mengembalikan Upload-Offset', TUSErrorKind.SERVER_ERROR)
        try:
            return int(new_offset)
        except ValueError as e:
            raise TUSError(500, 'Upload-Offset dari server tidak valid', TUSErrorKind.SERVER_ERROR) from e

    async def upload_chunk(
        self,
        upload_url: str,
        chunk: bytes,
        offset: int,
        token: Any = None
    ) -> int:
        """
        PATCH one chunk at offset.

        Args:
            upload_url: Upload resource path
            chunk: Chunk bytes
            offset: Offset the chunk starts at
            token: Optional CancellationToken aborting the request

        Returns:
            New offset reported by the server
        """
        operation = self._patch_chunk(upload_url, chunk, offset)
        if token is not None:
            return await token.run(operation)
        return await operation

    async def upload_chunk_with_retry(
        self,
        upload_url: str,
        chunk: bytes,
        offset: int,
        token: Any = None
    ) -> int:
        """
        Upload a chunk, retrying retryable failures.

        A 409 carrying the server offset is a resync, not a failure:
        the server offset is returned and the caller re-slices from it.
        """
        async def attempt() -> int:
            try:
                return await self.upload_chunk(upload_url, chunk, offset, token)
            except TUSError as error:
                if error.kind == TUSErrorKind.OFFSET_MISMATCH and error.correct_offset is not None:
                    self._logger.info(
                        f"Offset resync for {upload_url}: {offset} -> {error.correct_offset}"
                    )
                    return error.correct_offset
                raise

        return await retry_operation(
            attempt,
            max_attempts=self._config.max_retries,
            strategy=self._retry_strategy,
            token=token
        )

    async def get_status(self, upload_url: str) -> UploadStatus:
        """HEAD the upload; the server is the source of truth for the offset."""
        _, headers, _ = await self._request('HEAD', upload_url, headers=self._tus_headers())

        offset_header = headers.get('Upload-Offset')
        length_header = headers.get('Upload-Length')
        if offset_header is None or length_header is None:
            raise TUSError(
                500,
                'Server tidak mengembalikan Upload-Offset atau Upload-Length',
                TUSErrorKind.SERVER_ERROR
            )

        try:
            offset = int(offset_header)
            length = int(length_header)
        except ValueError as e:
            raise TUSError(500, 'Status upload dari server tidak valid', TUSErrorKind.SERVER_ERROR) from e

        progress = round(offset / length * 100) if length > 0 else 0
        return UploadStatus(offset=offset, length=length, progress=progress)

    async def get_info(self, upload_url: str) -> Dict[str, Any]:
        """GET the server's record of an upload."""
        _, _, body = await self._request(
            'GET', upload_url, headers=self._auth_headers(), expect_json=True
        )
        return self._unwrap(body) or {}

    async def cancel(self, upload_url: str) -> None:
        """DELETE the upload."""
        await self._request('DELETE', upload_url, headers=self._tus_headers())
        self._logger.info(f"Upload cancelled on server: {upload_url}")
