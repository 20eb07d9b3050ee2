"""
Upload-Metadata encoding and validation.

Header format:
    nama_file ZG9rdW1lbg==,tipe cGRm,semester Mw==

Each pair is a key, one space, and the base64 of the UTF-8 value.
"""
import base64
import binascii
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .models import FieldError, ModulMetadata, ProjectMetadata, ResourceType

MetadataInput = Union[ProjectMetadata, ModulMetadata, Mapping[str, Any]]

# Project updates only carry the editable fields
PROJECT_UPDATE_FIELDS = ('nama_project', 'kategori', 'semester')


def _as_dict(metadata: MetadataInput) -> Dict[str, Any]:
    if is_dataclass(metadata) and not isinstance(metadata, type):
        return asdict(metadata)
    return dict(metadata)


def _resource(resource_type: Union[ResourceType, str]) -> ResourceType:
    return ResourceType(resource_type)


class MetadataEncoder:
    """
    Encode and decode the Upload-Metadata header.

    Example:
        >>> MetadataEncoder.encode(ModulMetadata("Modul 1", "pdf", 3), "modul")
        'nama_file TW9kdWwgMQ==,tipe cGRm,semester Mw=='
    """

    @staticmethod
    def encode_value(value: Any) -> str:
        """Base64 of the UTF-8 string form of a value."""
        return base64.b64encode(str(value).encode('utf-8')).decode('ascii')

    @staticmethod
    def decode_value(encoded: str) -> str:
        """
        Decode one base64 value.

        Raises:
            ValueError: If the value is not valid base64 or UTF-8
        """
        try:
            return base64.b64decode(encoded, validate=True).decode('utf-8')
        except (binascii.Error, UnicodeDecodeError) as e:
            raise ValueError(f"Invalid metadata value: {encoded!r}") from e

    @classmethod
    def encode(
        cls,
        metadata: MetadataInput,
        resource_type: Union[ResourceType, str],
        fields: Optional[Iterable[str]] = None
    ) -> str:
        """
        Encode metadata for the Upload-Metadata header.

        Fields are emitted in declared order. Empty strings and missing
        fields are omitted, not sent as empty values.

        Args:
            metadata: ProjectMetadata, ModulMetadata or a plain mapping
            resource_type: 'project' or 'modul'
            fields: Optional subset of fields to send

        Returns:
            Comma-separated header value
        """
        resource = _resource(resource_type)
        values = _as_dict(metadata)
        declared = ModulMetadata.FIELDS if resource is ResourceType.MODUL else ProjectMetadata.FIELDS
        wanted = set(fields) if fields is not None else None

        pairs = []
        for name in declared:
            if wanted is not None and name not in wanted:
                continue
            value = values.get(name)
            if value is None or value == '':
                continue
            pairs.append(f"{name} {cls.encode_value(value)}")

        return ','.join(pairs)

    @classmethod
    def decode(cls, encoded: Optional[str]) -> Dict[str, str]:
        """
        Decode an Upload-Metadata header, best effort.

        Segments without a space or with an undecodable value are skipped.
        """
        if not encoded or not encoded.strip():
            return {}

        result: Dict[str, str] = {}
        for pair in encoded.split(','):
            pair = pair.strip()
            key, sep, value = pair.partition(' ')
            if not sep or not key:
                continue
            try:
                result[key] = cls.decode_value(value)
            except ValueError:
                continue

        return result


class MetadataValidator:
    """Validate metadata field sets before initiating an upload."""

    VALID_KATEGORI = ('website', 'mobile', 'iot', 'machine_learning', 'deep_learning')
    VALID_TIPE = ('docx', 'xlsx', 'pdf', 'pptx')

    MIN_NAME_LENGTH = 3
    MAX_NAME_LENGTH = 255
    MIN_SEMESTER = 1
    MAX_SEMESTER = 8

    @classmethod
    def _validate_name(cls, value: Any, field: str, label: str) -> Optional[FieldError]:
        if not value:
            return FieldError(field, f"{label} wajib diisi")
        if not isinstance(value, str):
            return FieldError(field, f"{label} harus berupa teks")
        if len(value) < cls.MIN_NAME_LENGTH:
            return FieldError(field, f"{label} minimal {cls.MIN_NAME_LENGTH} karakter")
        if len(value) > cls.MAX_NAME_LENGTH:
            return FieldError(field, f"{label} maksimal {cls.MAX_NAME_LENGTH} karakter")
        return None

    @staticmethod
    def _validate_choice(
        value: Any,
        field: str,
        label: str,
        choices: Sequence[str]
    ) -> Optional[FieldError]:
        if not value:
            return FieldError(field, f"{label} wajib diisi")
        if value not in choices:
            return FieldError(field, f"{label} harus salah satu dari: {', '.join(choices)}")
        return None

    @classmethod
    def _validate_semester(cls, value: Any) -> Optional[FieldError]:
        if value is None or value == '':
            return FieldError('semester', 'Semester wajib diisi')
        try:
            semester = int(value)
        except (TypeError, ValueError):
            return FieldError('semester', 'Semester harus berupa angka')
        if semester < cls.MIN_SEMESTER or semester > cls.MAX_SEMESTER:
            return FieldError('semester', f"Semester harus antara {cls.MIN_SEMESTER}-{cls.MAX_SEMESTER}")
        return None

    @classmethod
    def validate_project(cls, metadata: MetadataInput) -> List[FieldError]:
        values = _as_dict(metadata)
        checks = [
            cls._validate_name(values.get('nama_project'), 'nama_project', 'Nama project'),
            cls._validate_choice(values.get('kategori'), 'kategori', 'Kategori', cls.VALID_KATEGORI),
            cls._validate_semester(values.get('semester')),
        ]
        return [error for error in checks if error is not None]

    @classmethod
    def validate_modul(cls, metadata: MetadataInput) -> List[FieldError]:
        values = _as_dict(metadata)
        checks = [
            cls._validate_name(values.get('nama_file'), 'nama_file', 'Nama file'),
            cls._validate_choice(values.get('tipe'), 'tipe', 'Tipe file', cls.VALID_TIPE),
            cls._validate_semester(values.get('semester')),
        ]
        return [error for error in checks if error is not None]

    @classmethod
    def validate(
        cls,
        metadata: MetadataInput,
        resource_type: Union[ResourceType, str]
    ) -> List[FieldError]:
        """
        Validate a (possibly partial) metadata set.

        Returns every violation, at most one per field.
        """
        if _resource(resource_type) is ResourceType.MODUL:
            return cls.validate_modul(metadata)
        return cls.validate_project(metadata)

    @classmethod
    def is_valid_project_metadata(cls, metadata: MetadataInput) -> bool:
        return not cls.validate_project(metadata)

    @classmethod
    def is_valid_modul_metadata(cls, metadata: MetadataInput) -> bool:
        return not cls.validate_modul(metadata)


encode_metadata = MetadataEncoder.encode
decode_metadata = MetadataEncoder.decode
validate_metadata = MetadataValidator.validate
