"""
Data models for upload module.

Uses dataclasses for immutable, type-safe data structures.
"""
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union


class ResourceType(str, Enum):
    """Upload resource types known to the server."""
    PROJECT = 'project'
    MODUL = 'modul'


class UploadState(str, Enum):
    """Upload lifecycle states."""
    INITIATING = 'initiating'
    UPLOADING = 'uploading'
    PAUSED = 'paused'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'

    @property
    def is_terminal(self) -> bool:
        return self in (UploadState.COMPLETED, UploadState.FAILED, UploadState.CANCELLED)


@dataclass(frozen=True)
class ProjectMetadata:
    """
    Metadata for project archive uploads.

    Attributes:
        nama_project: Project name (3-255 chars)
        kategori: website, mobile, iot, machine_learning or deep_learning
        semester: Semester 1-8
        filename: Original file name
        filetype: MIME type or extension of the archive
    """
    nama_project: str
    kategori: str
    semester: int
    filename: str = ''
    filetype: str = ''

    FIELDS = ('nama_project', 'kategori', 'semester', 'filename', 'filetype')


@dataclass(frozen=True)
class ModulMetadata:
    """
    Metadata for course module documents.

    Attributes:
        nama_file: Display name (3-255 chars)
        tipe: docx, xlsx, pdf or pptx
        semester: Semester 1-8
    """
    nama_file: str
    tipe: str
    semester: int

    FIELDS = ('nama_file', 'tipe', 'semester')


UploadMetadata = Union[ProjectMetadata, ModulMetadata]


@dataclass(frozen=True)
class FieldError:
    """A single metadata validation failure."""
    field: str
    message: str


@dataclass(frozen=True)
class SlotInfo:
    """
    Server-side admission state at one instant.

    Never cached beyond its use.
    """
    available: bool
    message: str = ''
    queue_length: int = 0
    active_upload: bool = False
    max_concurrent: Optional[int] = None
    max_queue: Optional[int] = None

    @property
    def is_stuck(self) -> bool:
        """Server state leak: no slot, empty queue, yet an active upload."""
        return (
            not self.available
            and self.queue_length == 0
            and self.active_upload is True
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SlotInfo':
        """Create from check-slot response data."""
        return cls(
            available=bool(data.get('available', False)),
            message=data.get('message') or '',
            queue_length=int(data.get('queue_length') or 0),
            active_upload=bool(data.get('active_upload', False)),
            max_concurrent=data.get('max_concurrent'),
            max_queue=data.get('max_queue'),
        )


@dataclass(frozen=True)
class UploadInfo:
    """Server answer to an upload initiation."""
    upload_id: str
    upload_url: str
    offset: int
    length: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UploadInfo':
        return cls(
            upload_id=str(data['upload_id']),
            upload_url=str(data['upload_url']),
            offset=int(data.get('offset') or 0),
            length=int(data['length']),
        )


@dataclass(frozen=True)
class UploadStatus:
    """Server truth for an upload, from a HEAD request."""
    offset: int
    length: int
    progress: int


@dataclass(frozen=True)
class ProgressInfo:
    """
    Progress snapshot of a single upload.

    Attributes:
        speed: Bytes per second
        remaining_time: Seconds left, None while speed is unknown
    """
    upload_id: str
    file_name: str
    bytes_uploaded: int
    bytes_total: int
    percentage: int
    speed: float = 0.0
    remaining_time: Optional[int] = None
    start_time: Optional[float] = None


@dataclass(frozen=True)
class TotalProgress:
    """Aggregate progress over many uploads."""
    bytes_uploaded: int
    bytes_total: int
    percentage: int
    active_uploads: int


@dataclass(frozen=True)
class UploadFile:
    """
    Immutable handle to the source bytes of an upload.

    Only the size is known up front; content is read per chunk.
    """
    path: Path
    name: str
    size: int

    @classmethod
    def from_path(cls, path: Union[str, Path], name: Optional[str] = None) -> 'UploadFile':
        """Create a handle from a local file path."""
        path = Path(path) if isinstance(path, str) else path
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        return cls(path=path, name=name or path.name, size=path.stat().st_size)

    @property
    def extension(self) -> str:
        """Lower-case extension without the dot."""
        return self.name.lower().rsplit('.', 1)[-1] if '.' in self.name else ''


@dataclass
class UploadCallbacks:
    """Caller hooks for one upload."""
    on_progress: Optional[Callable[[ProgressInfo], None]] = None
    on_success: Optional[Callable[[str], None]] = None
    on_error: Optional[Callable[[Any], None]] = None


@dataclass(frozen=True)
class UploadOutcome:
    """How a chunk loop run ended."""
    upload_id: str
    state: UploadState
    error: Optional[Any] = None


@dataclass(frozen=True)
class BatchItem:
    """One file of a batch upload."""
    file: UploadFile
    metadata: Optional[UploadMetadata] = None


@dataclass(frozen=True)
class BatchUploadResult:
    """
    Settled result for one file of a batch.

    upload_id is None when the file never got past admission.
    """
    file_name: str
    upload_id: Optional[str]
    state: UploadState
    error: Optional[Any] = None

    @property
    def succeeded(self) -> bool:
        return self.state == UploadState.COMPLETED


ChunkBounds = Tuple[int, int]
