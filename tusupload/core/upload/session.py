"""
Upload session state.

An UploadSession is owned by the UploadManager and mutated only by the
chunk loop that runs it; control operations just flip the flag and the
cancellation token.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Optional, TypeVar

from .models import ResourceType, UploadCallbacks, UploadFile, UploadMetadata, UploadState
from .progress import ProgressTracker
from ..api.errors import TUSError, create_cancelled_error

T = TypeVar('T')


class CancellationToken:
    """
    Aborts in-flight requests of one upload attempt.

    A token is single use: once cancelled it stays cancelled, and a
    resumed upload gets a fresh token.
    """

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def run(self, operation: Awaitable[T]) -> T:
        """
        Await an operation unless the token fires first.

        Raises:
            TUSError: UPLOAD_CANCELLED when the token fires before the
                operation finishes; the operation is cancelled
        """
        if self.cancelled:
            if asyncio.iscoroutine(operation):
                operation.close()
            raise create_cancelled_error()

        task = asyncio.ensure_future(operation)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        # The aborted request's own outcome no longer matters
        await asyncio.gather(task, return_exceptions=True)
        raise create_cancelled_error()


@dataclass
class UploadSession:
    """
    Per-upload state held in the manager's registry.

    Invariant: 0 <= offset <= length; complete iff offset == length.
    """
    upload_id: str
    upload_url: str
    file: UploadFile
    offset: int
    length: int
    progress_tracker: ProgressTracker
    metadata: Optional[UploadMetadata] = None
    resource_type: Optional[ResourceType] = None
    is_uploading: bool = True
    state: UploadState = UploadState.INITIATING
    cancellation_token: CancellationToken = field(default_factory=CancellationToken)
    callbacks: UploadCallbacks = field(default_factory=UploadCallbacks)
    error: Optional[TUSError] = None

    @property
    def is_complete(self) -> bool:
        return self.offset >= self.length

    def stop(self) -> None:
        """Clear the flag and abort the in-flight request."""
        self.is_uploading = False
        self.cancellation_token.cancel()

    def restart(self, offset: int) -> None:
        """Prepare a new attempt from the given server offset."""
        self.offset = offset
        self.is_uploading = True
        self.error = None
        self.cancellation_token = CancellationToken()
