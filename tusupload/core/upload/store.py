"""
Upload state store.

Keeps a display-oriented record of every upload a manager has started,
plus the last known slot state per resource. Records outlive the
manager's registry so finished uploads stay visible until cleared.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from .models import ProgressInfo, ResourceType, SlotInfo, UploadState
from ..api.endpoints import slot_endpoint
from ..api.errors import TUSError
from ..logging import get_logger

logger = get_logger('tusupload.upload.store')


@dataclass
class UploadRecord:
    upload_id: str
    file_name: str
    status: UploadState = UploadState.INITIATING
    progress: Optional[ProgressInfo] = None
    error: Optional[TUSError] = None


@dataclass
class SlotState:
    loading: bool = False
    data: Optional[SlotInfo] = None
    error: Optional[str] = None


class UploadStateStore:
    """
    Event-driven view of upload state.

    Example:
        >>> store = UploadStateStore().attach(manager)
        >>> [record.status for record in store.all()]
    """

    def __init__(self):
        self._uploads: Dict[str, UploadRecord] = {}
        self._slots: Dict[ResourceType, SlotState] = {
            resource: SlotState() for resource in ResourceType
        }

    def attach(self, manager) -> 'UploadStateStore':
        """Subscribe to a manager's events."""
        manager.events.on('initiated', self._on_initiated)
        manager.events.on('state', self._on_state)
        manager.events.on('progress', self._on_progress)
        manager.events.on('error', self._on_error)
        return self

    def _on_initiated(self, upload_id: str, file_name: str) -> None:
        self._uploads[upload_id] = UploadRecord(upload_id, file_name)

    def _on_state(self, upload_id: str, state: UploadState) -> None:
        record = self._uploads.get(upload_id)
        if record is None:
            return
        record.status = state
        if state is UploadState.UPLOADING:
            record.error = None

    def _on_progress(self, progress: ProgressInfo) -> None:
        record = self._uploads.get(progress.upload_id)
        if record is not None:
            record.progress = progress

    def _on_error(self, upload_id: str, error: TUSError) -> None:
        record = self._uploads.get(upload_id)
        if record is not None:
            record.status = UploadState.FAILED
            record.error = error

    # Uploads

    def get(self, upload_id: str) -> Optional[UploadRecord]:
        return self._uploads.get(upload_id)

    def all(self) -> List[UploadRecord]:
        return list(self._uploads.values())

    def remove(self, upload_id: str) -> None:
        self._uploads.pop(upload_id, None)

    def _clear_status(self, status: UploadState) -> None:
        self._uploads = {
            upload_id: record for upload_id, record in self._uploads.items()
            if record.status is not status
        }

    def clear_completed(self) -> None:
        self._clear_status(UploadState.COMPLETED)

    def clear_failed(self) -> None:
        self._clear_status(UploadState.FAILED)

    def clear_all(self) -> None:
        self._uploads.clear()

    # Slots

    def slot(self, resource: Union[ResourceType, str]) -> SlotState:
        return self._slots[ResourceType(resource)]

    def clear_slot(self, resource: Union[ResourceType, str]) -> None:
        self._slots[ResourceType(resource)] = SlotState()

    async def fetch_slot(self, client, resource: Union[ResourceType, str]) -> SlotState:
        """
        Refresh the slot state of a resource.

        Failures are kept in the state's error instead of raised.
        """
        resource = ResourceType(resource)
        state = self._slots[resource]
        state.loading = True
        state.error = None

        try:
            state.data = await client.check_slot(slot_endpoint(f"/{resource.value}/upload"))
        except TUSError as e:
            logger.warning(f"Slot check for {resource.value} failed: {e.message}")
            state.error = e.message
        finally:
            state.loading = False

        return state
