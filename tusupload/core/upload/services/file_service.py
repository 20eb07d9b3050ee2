"""
File validation and reading services.

FileValidator applies the per-resource file rules before an upload is
initiated; AsyncFileReader feeds the chunk loop from disk.
"""
from typing import Optional, Union
import logging

import aiofiles

from ..models import ResourceType, UploadFile
from ...api.errors import TUSError, TUSErrorKind


class FileValidator:
    """
    Validates upload files against the server's rules.

    Projects are ZIP archives; moduls are office documents or PDFs.
    """

    ALLOWED_EXTENSIONS = {
        ResourceType.PROJECT: ('zip',),
        ResourceType.MODUL: ('docx', 'xlsx', 'pdf', 'pptx'),
    }

    TYPE_MESSAGES = {
        ResourceType.PROJECT: 'File harus berformat ZIP',
        ResourceType.MODUL: 'File harus berformat DOCX, XLSX, PDF, atau PPTX',
    }

    def validate_upload(
        self,
        upload_file: UploadFile,
        resource_type: Union[ResourceType, str],
        max_size: int
    ) -> None:
        """
        Validate an upload against the rules of its resource type.

        Raises:
            TUSError: FILE_TOO_LARGE (413) when over max_size,
                INVALID_METADATA (400) for empty files or wrong extensions
        """
        resource = ResourceType(resource_type)

        if upload_file.size > max_size:
            max_mb = max_size / 1024 / 1024
            current_mb = upload_file.size / 1024 / 1024
            raise TUSError(
                413,
                f"Ukuran file melebihi batas maksimal {max_mb:.0f}MB. "
                f"File saat ini: {current_mb:.2f}MB",
                TUSErrorKind.FILE_TOO_LARGE
            )

        if upload_file.size == 0:
            raise TUSError(400, 'File tidak boleh kosong', TUSErrorKind.INVALID_METADATA)

        if upload_file.extension not in self.ALLOWED_EXTENSIONS[resource]:
            raise TUSError(400, self.TYPE_MESSAGES[resource], TUSErrorKind.INVALID_METADATA)


class AsyncFileReader:
    """
    Reads byte ranges of one upload file with aiofiles.

    One reader serves one chunk loop run: the handle is opened once,
    every chunk seeks to its own offset (the server may move the offset
    between chunks), and the handle is closed when the run ends.

    Example:
        >>> reader = AsyncFileReader()
        >>> await reader.open(upload_file)
        >>> chunk = await reader.read(0, 1024 * 1024)
        >>> await reader.close()
    """

    def __init__(self):
        self._logger = logging.getLogger('tusupload.upload.file')
        self._handle = None
        self._file: Optional[UploadFile] = None

    @property
    def is_open(self) -> bool:
        return self._handle is not None

    async def open(self, upload_file: UploadFile) -> None:
        """Open the source of an upload; reopening the same file is a no-op."""
        if self._handle is not None:
            if self._file == upload_file:
                return
            await self.close()

        self._handle = await aiofiles.open(upload_file.path, 'rb')
        self._file = upload_file

    async def close(self) -> None:
        if self._handle is None:
            return
        handle, self._handle, self._file = self._handle, None, None
        await handle.close()

    async def read(self, start: int, end: int) -> Optional[bytes]:
        """
        Read [start, end) of the open file.

        Returns:
            Chunk bytes, or None when nothing could be read (not open,
            past the end, or an OS error)
        """
        if self._handle is None:
            self._logger.error(f"Read of {start}-{end} before a file was opened")
            return None

        try:
            await self._handle.seek(start)
            data = await self._handle.read(end - start)
        except OSError as e:
            self._logger.error(f"Failed to read {self._file.name} at {start}-{end}: {e}")
            return None

        if not data:
            return None
        self._logger.debug(f"Read {self._file.name} {start}-{start + len(data)}")
        return data

    async def __aenter__(self) -> 'AsyncFileReader':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
