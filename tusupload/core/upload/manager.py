"""
Upload manager.

Orchestrates admission, initiation and the per-upload chunk loop using
injected dependencies. Each registered upload runs as one asyncio task;
offsets of a single upload are written strictly in sequence.
"""
import asyncio
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from .metadata import MetadataValidator
from .models import (
    BatchItem,
    BatchUploadResult,
    ProgressInfo,
    ResourceType,
    TotalProgress,
    UploadCallbacks,
    UploadFile,
    UploadMetadata,
    UploadOutcome,
    UploadState,
    UploadStatus,
)
from .progress import ProgressAggregator, ProgressTracker
from .protocols import ChunkingStrategy, FileReaderProtocol, TokenProvider, UploadClientProtocol
from .services import AsyncFileReader, FileValidator
from .session import UploadSession
from .strategies import FixedSizeChunkingStrategy
from ..api.config import APIConfig
from ..api.endpoints import resource_of, slot_endpoint
from ..api.errors import (
    TUSError,
    TUSErrorKind,
    create_cancelled_error,
    create_not_found_error,
    handle_error,
)
from ..api.events import EventEmitter
from ..logging import get_logger

logger = get_logger('tusupload.upload.manager')

QUEUE_FULL_MESSAGE = 'Slot upload tidak tersedia (maksimal 5 upload bersamaan per user)'


class UploadManager:
    """
    Manages concurrent resumable uploads.

    Uses dependency injection for all components, making it:
    - Testable (pass a fake client)
    - Extensible (swap chunking or file reading)
    - Free of global state (one manager per token provider)

    Events emitted on ``manager.events``:
        initiated(upload_id, file_name)
        state(upload_id, UploadState)
        progress(ProgressInfo)
        error(upload_id, TUSError)
        removed(upload_id)

    Example:
        >>> async with UploadManager(token_provider=lambda: token) as manager:
        ...     upload_id = await manager.start_upload(
        ...         'modul.pdf', '/modul/upload',
        ...         metadata=ModulMetadata('Modul 1', 'pdf', 3),
        ...         metadata_type='modul', check_slot=True
        ...     )
        ...     outcome = await manager.wait(upload_id)
    """

    def __init__(
        self,
        client: Optional[UploadClientProtocol] = None,
        config: Optional[APIConfig] = None,
        token_provider: Optional[TokenProvider] = None,
        chunking_strategy: Optional[ChunkingStrategy] = None,
        file_reader_factory: Callable[[], FileReaderProtocol] = AsyncFileReader,
        validator: Optional[FileValidator] = None
    ):
        """
        Initialize upload manager.

        Args:
            client: Protocol client (a TUSClient is created if not provided)
            config: Configuration for the created client and upload limits
            token_provider: Bearer token getter for the created client
            chunking_strategy: Strategy for slicing files
            file_reader_factory: Creates one file reader per chunk loop run
            validator: File validator
        """
        self._config = config or getattr(client, 'config', None) or APIConfig.default()

        if client is None:
            from ..api.async_client import TUSClient
            client = TUSClient(self._config, token_provider=token_provider)
            self._owns_client = True
        else:
            self._owns_client = False

        self._client = client
        self._chunking = chunking_strategy or FixedSizeChunkingStrategy(client.chunk_size)
        self._file_reader_factory = file_reader_factory
        self._validator = validator or FileValidator()

        self._uploads: Dict[str, UploadSession] = {}
        # Latest loop task per upload; finished ones stay awaitable until cleared
        self._tasks: Dict[str, asyncio.Task] = {}
        # Uploads with a resume between its status request and relaunch
        self._resuming: Set[str] = set()
        self._aggregator = ProgressAggregator()
        self.events = EventEmitter('tusupload.upload.events')

    @property
    def client(self) -> UploadClientProtocol:
        return self._client

    @property
    def config(self) -> APIConfig:
        return self._config

    async def __aenter__(self) -> 'UploadManager':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # Start

    def _resource_type(
        self,
        endpoint: str,
        metadata_type: Optional[str]
    ) -> Optional[ResourceType]:
        try:
            return ResourceType(metadata_type or resource_of(endpoint))
        except ValueError:
            return None

    def _validate(
        self,
        upload_file: UploadFile,
        resource: Optional[ResourceType],
        metadata: Optional[UploadMetadata],
        is_update: bool,
        has_metadata_changed: bool
    ) -> None:
        if resource is None:
            return

        self._validator.validate_upload(
            upload_file,
            resource,
            self._config.limits.max_file_size(resource.value)
        )

        if metadata is None:
            return
        # Project file replacements without metadata edits send no metadata
        if resource is ResourceType.PROJECT and is_update and not has_metadata_changed:
            return

        errors = MetadataValidator.validate(metadata, resource)
        if errors:
            raise TUSError(
                400,
                'Metadata upload tidak valid',
                TUSErrorKind.INVALID_METADATA,
                field_errors=errors
            )

    async def _admit(self, endpoint: str, poll: bool) -> None:
        check_endpoint = slot_endpoint(endpoint)

        if poll:
            await self._client.poll_for_slot(check_endpoint)
            return

        slot, was_reset = await self._client.check_slot_with_retry(check_endpoint)
        if was_reset:
            logger.info(f"Upload queue was reset before admission on {check_endpoint}")
        if not slot.available:
            raise TUSError(429, slot.message or QUEUE_FULL_MESSAGE, TUSErrorKind.QUEUE_FULL)

    async def start_upload(
        self,
        file: Union[UploadFile, str, Path],
        endpoint: str,
        metadata: Optional[UploadMetadata] = None,
        metadata_type: Optional[str] = None,
        callbacks: Optional[UploadCallbacks] = None,
        check_slot: bool = False,
        poll_for_slot: bool = False,
        is_update: bool = False,
        resource_id: Optional[int] = None,
        has_metadata_changed: bool = False
    ) -> str:
        """
        Validate, admit and initiate an upload, then start its chunk loop.

        Returns as soon as the server issued an upload id; the loop runs
        in the background and reports through callbacks and events.

        Args:
            file: UploadFile or local path
            endpoint: Upload collection endpoint, e.g. '/modul/upload'
            metadata: Project or modul metadata
            metadata_type: 'project' or 'modul' (derived from endpoint if omitted)
            callbacks: Progress, success and error hooks
            check_slot: Check the upload slot before initiating
            poll_for_slot: Wait for a free slot instead of failing fast
            is_update: Replace the file of an existing resource
            resource_id: Id of the resource being updated
            has_metadata_changed: Project updates send metadata only if True

        Returns:
            Server-issued upload id

        Raises:
            FileNotFoundError: If a path does not exist
            TUSError: Validation, admission or initiation failure
        """
        upload_file = file if isinstance(file, UploadFile) else UploadFile.from_path(file)
        resource = self._resource_type(endpoint, metadata_type)

        self._validate(upload_file, resource, metadata, is_update, has_metadata_changed)

        if check_slot:
            await self._admit(endpoint, poll_for_slot)

        info = await self._client.initiate(
            endpoint,
            upload_file.size,
            metadata=metadata,
            metadata_type=resource.value if resource and metadata is not None else None,
            is_update=is_update,
            resource_id=resource_id,
            has_metadata_changed=has_metadata_changed
        )

        offset = self._check_offset(info.offset, info.length)

        tracker = ProgressTracker(info.upload_id, upload_file.name, info.length)
        session = UploadSession(
            upload_id=info.upload_id,
            upload_url=info.upload_url,
            file=upload_file,
            offset=offset,
            length=info.length,
            progress_tracker=tracker,
            metadata=metadata,
            resource_type=resource,
            callbacks=callbacks or UploadCallbacks(),
        )

        self._uploads[session.upload_id] = session
        self._aggregator.add_tracker(tracker)
        logger.info(
            f"Starting upload {session.upload_id}: {upload_file.name} "
            f"({upload_file.size} bytes, offset {session.offset})"
        )
        self.events.emit('initiated', session.upload_id, upload_file.name)

        self._launch(session)
        return session.upload_id

    def _launch(self, session: UploadSession) -> None:
        self._tasks[session.upload_id] = asyncio.create_task(
            self._run_chunk_loop(session),
            name=f"tusupload-{session.upload_id}"
        )

    # Chunk loop

    def _set_state(self, session: UploadSession, state: UploadState) -> None:
        if session.state is state:
            return
        session.state = state
        logger.debug(f"Upload {session.upload_id} -> {state.value}")
        self.events.emit('state', session.upload_id, state)

    def _call(self, callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception(f"Upload callback {callback!r} failed")

    def _report_progress(self, session: UploadSession, progress: ProgressInfo) -> None:
        self._call(session.callbacks.on_progress, progress)
        self.events.emit('progress', progress)

    def _check_offset(self, new_offset: int, length: int) -> int:
        if not 0 <= new_offset <= length:
            raise TUSError(
                500,
                f"Offset dari server di luar batas file: {new_offset}",
                TUSErrorKind.SERVER_ERROR
            )
        return new_offset

    async def _run_chunk_loop(self, session: UploadSession) -> UploadOutcome:
        """
        Upload chunks until done, stopped or failed.

        Each chunk starts at the offset the server returned for the
        previous one.
        """
        if not session.is_uploading:
            # Paused or cancelled before the task got to run
            return UploadOutcome(session.upload_id, session.state)

        if session.state in (UploadState.INITIATING, UploadState.PAUSED, UploadState.FAILED):
            self._set_state(session, UploadState.UPLOADING)

        reader = self._file_reader_factory()
        try:
            await reader.open(session.file)

            while session.offset < session.length and session.is_uploading:
                start, end = self._chunking.next_chunk(session.offset, session.length)
                chunk = await reader.read(start, end)
                if chunk is None:
                    raise TUSError(0, f"Gagal membaca file {session.file.name}", TUSErrorKind.UNKNOWN)

                new_offset = await self._client.upload_chunk_with_retry(
                    session.upload_url,
                    chunk,
                    start,
                    session.cancellation_token
                )
                session.offset = self._check_offset(new_offset, session.length)
                logger.debug(
                    f"Upload {session.upload_id}: {session.offset}/{session.length} bytes"
                )

                progress = session.progress_tracker.update_progress(session.offset)
                self._report_progress(session, progress)
        except asyncio.CancelledError:
            session.is_uploading = False
            raise
        except Exception as e:
            error = handle_error(e)
            if error.kind == TUSErrorKind.UPLOAD_CANCELLED and not session.is_uploading:
                # Paused or cancelled; the control call set the state
                return UploadOutcome(session.upload_id, session.state)
            return self._fail(session, error)
        finally:
            await reader.close()

        if session.offset >= session.length and session.is_uploading:
            return self._complete(session)

        return UploadOutcome(session.upload_id, session.state)

    def _complete(self, session: UploadSession) -> UploadOutcome:
        session.is_uploading = False
        self._set_state(session, UploadState.COMPLETED)
        logger.info(f"Upload {session.upload_id} completed ({session.length} bytes)")
        self._call(session.callbacks.on_success, session.upload_id)
        self._deregister(session.upload_id)
        return UploadOutcome(session.upload_id, UploadState.COMPLETED)

    def _fail(self, session: UploadSession, error: TUSError) -> UploadOutcome:
        session.is_uploading = False
        session.error = error
        self._set_state(session, UploadState.FAILED)
        logger.error(
            f"Upload {session.upload_id} failed at offset {session.offset}: "
            f"{error.kind.value} ({error.code}) {error.message}"
        )
        self._call(session.callbacks.on_error, error)
        self.events.emit('error', session.upload_id, error)
        return UploadOutcome(session.upload_id, UploadState.FAILED, error)

    def _deregister(self, upload_id: str) -> None:
        if self._uploads.pop(upload_id, None) is None:
            return
        self._aggregator.remove_tracker(upload_id)
        self.events.emit('removed', upload_id)

    async def _settle(self, upload_id: str) -> None:
        """Wait for the running loop of an upload to exit."""
        task = self._tasks.get(upload_id)
        if task is not None and not task.done():
            await asyncio.wait({task})

    # Control

    def _get_session(self, upload_id: str) -> UploadSession:
        session = self._uploads.get(upload_id)
        if session is None:
            raise create_not_found_error()
        return session

    async def cancel_upload(self, upload_id: str) -> None:
        """
        Stop an upload, delete it on the server and forget it.

        The server DELETE is best effort; local state is cleared regardless.

        Raises:
            TUSError: NOT_FOUND for an unknown id
        """
        session = self._get_session(upload_id)
        session.stop()
        self._set_state(session, UploadState.CANCELLED)
        await self._settle(upload_id)

        try:
            await self._client.cancel(session.upload_url)
        except TUSError as e:
            logger.warning(f"Server cancel of {upload_id} failed: {e.message}")
        finally:
            self._deregister(upload_id)

        logger.info(f"Upload {upload_id} cancelled")

    async def pause_upload(self, upload_id: str) -> None:
        """
        Stop an upload but keep it registered for resume.

        Raises:
            TUSError: NOT_FOUND for an unknown id
        """
        session = self._get_session(upload_id)
        session.stop()
        if session.state in (UploadState.INITIATING, UploadState.UPLOADING):
            self._set_state(session, UploadState.PAUSED)
        await self._settle(upload_id)
        logger.info(f"Upload {upload_id} paused at offset {session.offset}")

    async def resume_upload(
        self,
        upload_id: str,
        callbacks: Optional[UploadCallbacks] = None
    ) -> None:
        """
        Resume a paused or failed upload from the server's offset.

        Args:
            upload_id: Upload to resume
            callbacks: Replace the upload's callbacks when given

        A call made while another resume of the same upload is still in
        progress returns without starting a second loop.

        Raises:
            TUSError: NOT_FOUND for an unknown id, or a status failure;
                SERVER_ERROR when the server offset is outside the file
        """
        session = self._get_session(upload_id)
        task = self._tasks.get(upload_id)
        if session.is_uploading and task is not None and not task.done():
            logger.info(f"Upload {upload_id} is already running")
            return
        if upload_id in self._resuming:
            logger.info(f"Upload {upload_id} is already resuming")
            return

        self._resuming.add(upload_id)
        try:
            await self._settle(upload_id)

            status = await self._client.get_status(session.upload_url)
            if upload_id not in self._uploads:
                raise create_not_found_error()
            offset = self._check_offset(status.offset, session.length)

            if offset != session.offset:
                logger.info(
                    f"Resuming {upload_id} from server offset {offset} "
                    f"(local {session.offset})"
                )
            session.restart(offset)
            if callbacks is not None:
                session.callbacks = callbacks
            session.progress_tracker.update_progress(offset)

            self._launch(session)
        finally:
            self._resuming.discard(upload_id)

    # Lookups

    def get_progress(self, upload_id: str) -> Optional[ProgressInfo]:
        session = self._uploads.get(upload_id)
        return session.progress_tracker.get_progress() if session else None

    def get_active_upload(self, upload_id: str) -> Optional[UploadSession]:
        return self._uploads.get(upload_id)

    def get_all_active_uploads(self) -> Dict[str, UploadSession]:
        return dict(self._uploads)

    def get_active_upload_ids(self) -> List[str]:
        return list(self._uploads)

    def has_active_uploads(self) -> bool:
        return bool(self._uploads)

    @property
    def active_upload_count(self) -> int:
        return len(self._uploads)

    def get_total_progress(self) -> TotalProgress:
        return self._aggregator.get_total_progress()

    async def get_server_status(self, upload_url: str) -> UploadStatus:
        return await self._client.get_status(upload_url)

    async def wait(self, upload_id: str) -> UploadOutcome:
        """
        Wait for the current loop run of an upload to end.

        Raises:
            TUSError: NOT_FOUND if the upload never ran or was cleared
        """
        task = self._tasks.get(upload_id)
        if task is None:
            raise create_not_found_error()

        await asyncio.wait({task})
        if task.cancelled():
            return UploadOutcome(upload_id, UploadState.CANCELLED, create_cancelled_error())
        return task.result()

    # Housekeeping

    async def remove_upload(self, upload_id: str) -> bool:
        """Stop (without server cancel) and forget an upload."""
        session = self._uploads.get(upload_id)
        if session is None:
            return False

        session.stop()
        await self._settle(upload_id)
        self._deregister(upload_id)
        self._tasks.pop(upload_id, None)
        return True

    def clear_finished_uploads(self) -> List[str]:
        """
        Forget uploads that are not uploading (failed or paused).

        Also drops the finished loop runs of completed and cancelled uploads.

        Returns:
            Ids of the sessions removed from the registry
        """
        removed = [
            upload_id for upload_id, session in self._uploads.items()
            if not session.is_uploading
        ]
        for upload_id in removed:
            self._deregister(upload_id)

        for upload_id, task in list(self._tasks.items()):
            if task.done() and upload_id not in self._uploads:
                del self._tasks[upload_id]

        return removed

    async def cancel_all_uploads(self) -> None:
        upload_ids = list(self._uploads)
        results = await asyncio.gather(
            *(self.cancel_upload(upload_id) for upload_id in upload_ids),
            return_exceptions=True
        )
        for upload_id, result in zip(upload_ids, results):
            if isinstance(result, Exception):
                logger.warning(f"Cancel of {upload_id} failed: {result}")
        self._uploads.clear()
        self._aggregator.clear()

    async def close(self):
        """Stop running loops and close an owned client. Nothing is deleted on the server."""
        for session in self._uploads.values():
            if session.is_uploading:
                session.stop()
                if session.state is UploadState.UPLOADING:
                    self._set_state(session, UploadState.PAUSED)

        pending = [task for task in self._tasks.values() if not task.done()]
        if pending:
            await asyncio.wait(pending)

        if self._owns_client:
            await self._client.close()

    # Batch

    async def upload_batch(
        self,
        items: Iterable[Union[BatchItem, UploadFile]],
        endpoint: str,
        metadata_type: Optional[str] = None,
        callbacks_factory: Optional[Callable[[UploadFile], UploadCallbacks]] = None,
        max_wait: Optional[float] = None
    ) -> List[BatchUploadResult]:
        """
        Upload several files concurrently.

        Each file waits for its own slot, then runs as an independent
        upload; one failure never stops the others.

        Args:
            items: Files with their metadata
            endpoint: Upload collection endpoint
            metadata_type: 'project' or 'modul'
            callbacks_factory: Builds callbacks for each file
            max_wait: Slot wait per file (config default)

        Returns:
            One settled result per item, in input order

        Raises:
            ValueError: If there are more items than the batch limit
        """
        batch = [item if isinstance(item, BatchItem) else BatchItem(item) for item in items]
        max_batch = self._config.limits.max_batch_size
        if len(batch) > max_batch:
            raise ValueError(f"At most {max_batch} files per batch, got {len(batch)}")

        check_endpoint = slot_endpoint(endpoint)

        async def upload_one(item: BatchItem) -> BatchUploadResult:
            name = item.file.name
            try:
                await self._client.poll_for_slot(check_endpoint, max_wait=max_wait)
                upload_id = await self.start_upload(
                    item.file,
                    endpoint,
                    metadata=item.metadata,
                    metadata_type=metadata_type,
                    callbacks=callbacks_factory(item.file) if callbacks_factory else None
                )
            except TUSError as error:
                logger.warning(f"Batch file {name} not started: {error.message}")
                return BatchUploadResult(name, None, UploadState.FAILED, error)

            outcome = await self.wait(upload_id)
            return BatchUploadResult(name, upload_id, outcome.state, outcome.error)

        logger.info(f"Starting batch of {len(batch)} files on {endpoint}")
        results = await asyncio.gather(*(upload_one(item) for item in batch))
        completed = sum(1 for result in results if result.succeeded)
        logger.info(f"Batch finished: {completed}/{len(results)} completed")
        return list(results)
