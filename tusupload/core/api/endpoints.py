"""
Endpoint path helpers.

Upload endpoints look like '/<resource>/upload' or, for updates,
'/<resource>/<id>/upload'. Slot endpoints hang off the resource.
Absolute URLs keep their scheme, host and any path prefix.
"""
from typing import List, Tuple
from urllib.parse import SplitResult, urlsplit, urlunsplit


def _resource_path(upload_endpoint: str) -> Tuple[SplitResult, List[str]]:
    """Split an upload endpoint into its URL parts and the path up to the resource."""
    parts = urlsplit(upload_endpoint)
    segments = [segment for segment in parts.path.split('/') if segment]
    if segments and segments[-1] == 'upload':
        segments.pop()
    if segments and segments[-1].isdigit():
        segments.pop()
    return parts, segments


def _join(parts: SplitResult, segments: List[str]) -> str:
    path = '/' + '/'.join(segments)
    if parts.scheme or parts.netloc:
        return urlunsplit((parts.scheme, parts.netloc, path, '', ''))
    return path


def resource_of(upload_endpoint: str) -> str:
    """'/modul/upload' or 'https://host/api/v1/project/7/upload' -> resource name."""
    _, segments = _resource_path(upload_endpoint)
    return segments[-1] if segments else ''


def slot_endpoint(upload_endpoint: str) -> str:
    """'/modul/upload' or '/project/12/upload' -> '/<resource>/upload/check-slot'."""
    parts, segments = _resource_path(upload_endpoint)
    return _join(parts, segments + ['upload', 'check-slot'])


def reset_queue_endpoint(check_slot_endpoint: str) -> str:
    return check_slot_endpoint.replace('/check-slot', '/reset-queue')


def update_endpoint(upload_endpoint: str, resource_id: int) -> str:
    """'/project/upload' -> '/project/<id>/upload'."""
    parts, segments = _resource_path(upload_endpoint)
    return _join(parts, segments + [str(resource_id), 'upload'])
