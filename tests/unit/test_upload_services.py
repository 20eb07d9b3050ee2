"""Tests for upload services."""
import pytest

from tusupload.core.api.errors import TUSError, TUSErrorKind
from tusupload.core.upload.models import ResourceType, UploadFile
from tusupload.core.upload.services import AsyncFileReader, FileValidator


class TestFileValidator:
    """Test suite for FileValidator."""

    @pytest.fixture
    def validator(self):
        return FileValidator()

    def test_upload_within_limits(self, validator, make_file):
        upload_file = UploadFile.from_path(make_file("laporan.docx", 10))

        validator.validate_upload(upload_file, ResourceType.MODUL, max_size=1024)

    def test_file_too_large(self, validator):
        upload_file = UploadFile(path=None, name="besar.zip", size=3 * 1024 * 1024)

        with pytest.raises(TUSError) as exc_info:
            validator.validate_upload(upload_file, "project", max_size=2 * 1024 * 1024)

        assert exc_info.value.kind == TUSErrorKind.FILE_TOO_LARGE
        assert exc_info.value.code == 413
        assert exc_info.value.message == (
            "Ukuran file melebihi batas maksimal 2MB. File saat ini: 3.00MB"
        )

    def test_empty_file(self, validator):
        upload_file = UploadFile(path=None, name="kosong.pdf", size=0)

        with pytest.raises(TUSError) as exc_info:
            validator.validate_upload(upload_file, "modul", max_size=1024)

        assert exc_info.value.message == 'File tidak boleh kosong'

    @pytest.mark.parametrize("resource,name,message", [
        ("project", "proyek.rar", 'File harus berformat ZIP'),
        ("modul", "modul.txt", 'File harus berformat DOCX, XLSX, PDF, atau PPTX'),
    ])
    def test_wrong_extension(self, validator, resource, name, message):
        upload_file = UploadFile(path=None, name=name, size=10)

        with pytest.raises(TUSError) as exc_info:
            validator.validate_upload(upload_file, resource, max_size=1024)

        assert exc_info.value.kind == TUSErrorKind.INVALID_METADATA
        assert exc_info.value.message == message

    def test_extension_is_case_insensitive(self, validator):
        validator.validate_upload(UploadFile(path=None, name="PROYEK.ZIP", size=10), "project", max_size=1024)


class TestAsyncFileReader:
    """Test suite for AsyncFileReader."""

    @pytest.mark.asyncio
    async def test_read_ranges(self, make_file):
        """Test reads seek to each requested offset."""
        path = make_file("a.pdf", 10)
        content = path.read_bytes()
        upload_file = UploadFile.from_path(path)

        async with AsyncFileReader() as reader:
            await reader.open(upload_file)
            chunks = [await reader.read(start, min(start + 4, 10)) for start in (0, 4, 8)]
            again = await reader.read(2, 6)

        assert b''.join(chunks) == content
        assert again == content[2:6]
        assert not reader.is_open

    @pytest.mark.asyncio
    async def test_read_past_end(self, make_file):
        reader = AsyncFileReader()
        await reader.open(UploadFile.from_path(make_file("a.pdf", 4)))
        try:
            assert await reader.read(4, 8) is None
        finally:
            await reader.close()

    @pytest.mark.asyncio
    async def test_read_before_open(self):
        assert await AsyncFileReader().read(0, 4) is None

    @pytest.mark.asyncio
    async def test_open_missing_file(self, tmp_path):
        reader = AsyncFileReader()

        with pytest.raises(FileNotFoundError):
            await reader.open(UploadFile(path=tmp_path / "missing.pdf", name="missing.pdf", size=4))

        assert not reader.is_open

    @pytest.mark.asyncio
    async def test_reopen_other_file(self, make_file):
        """Test opening a different file replaces the handle."""
        first = UploadFile.from_path(make_file("a.pdf", 4))
        second = UploadFile.from_path(make_file("b.pdf", 4))
        reader = AsyncFileReader()

        await reader.open(first)
        await reader.open(first)
        await reader.open(second)
        try:
            assert await reader.read(0, 4) == second.path.read_bytes()
        finally:
            await reader.close()
        await reader.close()

        assert not reader.is_open
