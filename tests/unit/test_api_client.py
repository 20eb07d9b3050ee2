"""Tests for TUSClient against an in-process fake server."""
import asyncio
from contextlib import asynccontextmanager

import pytest
from aiohttp import test_utils, web

from tusupload.core.api.async_client import TUSClient
from tusupload.core.api.config import APIConfig, RetryConfig
from tusupload.core.api.errors import TUSError, TUSErrorKind
from tusupload.core.upload.metadata import MetadataEncoder
from tusupload.core.upload.models import ModulMetadata, ProjectMetadata, UploadStatus
from tusupload.core.upload.session import CancellationToken

SLOT_ENDPOINT = '/modul/upload/check-slot'
STUCK = {'available': False, 'queue_length': 0, 'active_upload': True, 'message': 'Sedang upload'}
BUSY = {'available': False, 'queue_length': 2, 'active_upload': True, 'message': 'Antrian penuh'}
FREE = {'available': True, 'queue_length': 0, 'active_upload': False, 'max_concurrent': 5, 'max_queue': 10}


class FakeTusServer:
    """Minimal TUS server keeping uploads in memory."""

    def __init__(self):
        self.slot_responses = []
        self.requests = []
        self.uploads = {}
        self.patch_script = []
        self.head_script = []
        self.release = None

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/api/v1/{resource}/upload/check-slot', self.check_slot)
        app.router.add_post('/api/v1/{resource}/upload/reset-queue', self.reset_queue)
        app.router.add_post('/api/v1/{resource}/upload', self.create)
        app.router.add_post('/api/v1/{resource}/{resource_id}/upload', self.create)
        app.router.add_route('PATCH', '/api/v1/files/{upload_id}', self.patch)
        app.router.add_route('HEAD', '/api/v1/files/{upload_id}', self.head)
        app.router.add_get('/api/v1/files/{upload_id}', self.info, allow_head=False)
        app.router.add_delete('/api/v1/files/{upload_id}', self.delete)
        return app

    def record(self, request):
        self.requests.append((request.method, request.path, request.headers.copy()))

    def requests_for(self, method, suffix=''):
        return [r for r in self.requests if r[0] == method and r[1].endswith(suffix)]

    async def check_slot(self, request):
        self.record(request)
        slot = self.slot_responses.pop(0) if self.slot_responses else FREE
        return web.json_response({'data': slot})

    async def reset_queue(self, request):
        self.record(request)
        return web.json_response({'message': 'Queue reset'})

    async def create(self, request):
        self.record(request)
        upload_id = f"u{len(self.uploads) + 1}"
        length = int(request.headers['Upload-Length'])
        self.uploads[upload_id] = {
            'offset': 0,
            'length': length,
            'data': b'',
            'metadata': request.headers.get('Upload-Metadata'),
        }
        return web.json_response({
            'data': {
                'upload_id': upload_id,
                'upload_url': f"/files/{upload_id}",
                'offset': 0,
                'length': length,
            }
        }, status=201)

    async def patch(self, request):
        self.record(request)
        upload = self.uploads[request.match_info['upload_id']]
        body = await request.read()

        if self.release is not None:
            await self.release.wait()

        if self.patch_script:
            step = self.patch_script.pop(0)
            if step == 'no-offset':
                return web.Response(status=204)
            if isinstance(step, tuple):
                status, headers = step
                return web.json_response({'message': 'Conflict'}, status=status, headers=headers)
            return web.json_response({'message': f"Error {step}"}, status=step)

        offset = int(request.headers['Upload-Offset'])
        if offset != upload['offset']:
            return web.json_response(
                {'message': 'Offset mismatch'},
                status=409,
                headers={'Upload-Offset': str(upload['offset'])}
            )

        upload['data'] += body
        upload['offset'] += len(body)
        return web.Response(status=204, headers={'Upload-Offset': str(upload['offset'])})

    async def head(self, request):
        self.record(request)
        upload = self.uploads.get(request.match_info['upload_id'])
        if upload is None:
            return web.Response(status=404)
        if self.head_script:
            return web.Response(status=200, headers=self.head_script.pop(0))
        return web.Response(status=200, headers={
            'Upload-Offset': str(upload['offset']),
            'Upload-Length': str(upload['length']),
        })

    async def info(self, request):
        self.record(request)
        upload_id = request.match_info['upload_id']
        upload = self.uploads[upload_id]
        return web.json_response({
            'data': {'upload_id': upload_id, 'offset': upload['offset'], 'length': upload['length']}
        })

    async def delete(self, request):
        self.record(request)
        self.uploads.pop(request.match_info['upload_id'], None)
        return web.Response(status=204)


@asynccontextmanager
async def running(server, token='token-123', **config_kwargs):
    """Serve the fake server and yield a client pointed at it."""
    async with test_utils.TestServer(server.app()) as http:
        options = {
            'queue_reset_delay': 0,
            'slot_poll_interval': 0.01,
            'retry': RetryConfig(base_delay=0),
        }
        options.update(config_kwargs)
        config = APIConfig(base_url=str(http.make_url('/api/v1')), **options)
        async with TUSClient(config, token_provider=lambda: token) as client:
            yield client


@pytest.fixture
def server():
    """Fresh fake server state."""
    return FakeTusServer()


class TestSlotNegotiation:
    """Test suite for slot checks."""

    @pytest.mark.asyncio
    async def test_check_slot(self, server):
        """Test envelope unwrapping and bearer auth."""
        server.slot_responses = [FREE]

        async with running(server) as client:
            slot = await client.check_slot(SLOT_ENDPOINT)

        assert slot.available is True
        assert slot.max_concurrent == 5
        assert slot.max_queue == 10
        _, path, headers = server.requests[0]
        assert path == '/api/v1/modul/upload/check-slot'
        assert headers['Authorization'] == 'Bearer token-123'

    @pytest.mark.asyncio
    @pytest.mark.parametrize("token", [None, ""])
    async def test_no_token_no_auth_header(self, server, token):
        """Test the Authorization header is omitted without a token."""
        async with running(server, token=token) as client:
            await client.check_slot(SLOT_ENDPOINT)

        _, _, headers = server.requests[0]
        assert 'Authorization' not in headers

    @pytest.mark.asyncio
    async def test_stuck_queue_resets_once(self, server):
        """Test a stuck queue triggers one reset and one retry."""
        server.slot_responses = [STUCK, STUCK]

        async with running(server) as client:
            slot, was_reset = await client.check_slot_with_retry(SLOT_ENDPOINT)

        assert was_reset is True
        assert slot.available is False
        assert len(server.requests_for('POST', '/reset-queue')) == 1
        assert server.requests_for('POST', '/reset-queue')[0][1] == '/api/v1/modul/upload/reset-queue'
        assert len(server.requests_for('GET', '/check-slot')) == 2

    @pytest.mark.asyncio
    async def test_stuck_queue_recovers(self, server):
        """Test a reset that frees the queue."""
        server.slot_responses = [STUCK, FREE]

        async with running(server) as client:
            slot, was_reset = await client.check_slot_with_retry(SLOT_ENDPOINT)

        assert slot.available is True
        assert was_reset is True

    @pytest.mark.asyncio
    async def test_busy_queue_is_not_reset(self, server):
        """Test a queue with waiting uploads is left alone."""
        server.slot_responses = [BUSY]

        async with running(server) as client:
            slot, was_reset = await client.check_slot_with_retry(SLOT_ENDPOINT)

        assert was_reset is False
        assert slot.queue_length == 2
        assert server.requests_for('POST', '/reset-queue') == []

    @pytest.mark.asyncio
    async def test_no_reset_when_max_resets_is_zero(self, server):
        """Test max_resets=0 never resets."""
        server.slot_responses = [STUCK]

        async with running(server) as client:
            _, was_reset = await client.check_slot_with_retry(SLOT_ENDPOINT, max_resets=0)

        assert was_reset is False
        assert server.requests_for('POST', '/reset-queue') == []

    @pytest.mark.asyncio
    async def test_poll_for_slot(self, server):
        """Test polling until a slot frees up."""
        server.slot_responses = [BUSY, BUSY, FREE]

        async with running(server) as client:
            slot = await client.poll_for_slot(SLOT_ENDPOINT, max_wait=5, interval=0)

        assert slot.available is True
        assert len(server.requests_for('GET', '/check-slot')) == 3

    @pytest.mark.asyncio
    async def test_poll_for_slot_timeout(self, server):
        """Test polling gives up with QUEUE_FULL."""
        server.slot_responses = [BUSY] * 100

        async with running(server) as client:
            with pytest.raises(TUSError) as exc_info:
                await client.poll_for_slot(SLOT_ENDPOINT, max_wait=0.05, interval=0.01)

        assert exc_info.value.kind == TUSErrorKind.QUEUE_FULL
        assert exc_info.value.code == 408
        assert 'setelah menunggu maksimal' in exc_info.value.message


class TestInitiate:
    """Test suite for upload initiation."""

    @pytest.mark.asyncio
    async def test_initiate_with_metadata(self, server):
        """Test TUS headers and encoded metadata."""
        metadata = ModulMetadata("Modul Basis Data", "pdf", 4)

        async with running(server) as client:
            info = await client.initiate('/modul/upload', 2048, metadata=metadata, metadata_type='modul')

        assert info.upload_id == 'u1'
        assert info.upload_url == '/files/u1'
        assert info.offset == 0
        assert info.length == 2048

        _, path, headers = server.requests_for('POST')[0]
        assert path == '/api/v1/modul/upload'
        assert headers['Tus-Resumable'] == '1.0.0'
        assert headers['Upload-Length'] == '2048'
        assert MetadataEncoder.decode(headers['Upload-Metadata']) == {
            'nama_file': 'Modul Basis Data',
            'tipe': 'pdf',
            'semester': '4',
        }

    @pytest.mark.asyncio
    async def test_initiate_without_metadata(self, server):
        """Test no metadata header when there is no metadata."""
        async with running(server) as client:
            await client.initiate('/modul/upload', 10)

        _, _, headers = server.requests_for('POST')[0]
        assert 'Upload-Metadata' not in headers

    @pytest.mark.asyncio
    async def test_project_update_without_change(self, server):
        """Test project updates skip unchanged metadata and target the resource."""
        metadata = ProjectMetadata("Sistem Parkir", "iot", 5, filename="parkir.zip", filetype="application/zip")

        async with running(server) as client:
            await client.initiate(
                '/project/upload', 10,
                metadata=metadata, metadata_type='project',
                is_update=True, resource_id=12
            )

        _, path, headers = server.requests_for('POST')[0]
        assert path == '/api/v1/project/12/upload'
        assert 'Upload-Metadata' not in headers

    @pytest.mark.asyncio
    async def test_project_update_with_change(self, server):
        """Test changed project metadata sends only editable fields."""
        metadata = ProjectMetadata("Sistem Parkir", "iot", 5, filename="parkir.zip", filetype="application/zip")

        async with running(server) as client:
            await client.initiate(
                '/project/upload', 10,
                metadata=metadata, metadata_type='project',
                is_update=True, resource_id=12, has_metadata_changed=True
            )

        _, _, headers = server.requests_for('POST')[0]
        assert MetadataEncoder.decode(headers['Upload-Metadata']) == {
            'nama_project': 'Sistem Parkir',
            'kategori': 'iot',
            'semester': '5',
        }

    @pytest.mark.asyncio
    async def test_new_project_sends_all_fields(self, server):
        """Test new projects send file name and type too."""
        metadata = ProjectMetadata("Sistem Parkir", "iot", 5, filename="parkir.zip", filetype="application/zip")

        async with running(server) as client:
            await client.initiate('/project/upload', 10, metadata=metadata, metadata_type='project')

        _, _, headers = server.requests_for('POST')[0]
        decoded = MetadataEncoder.decode(headers['Upload-Metadata'])
        assert decoded['filename'] == 'parkir.zip'
        assert decoded['filetype'] == 'application/zip'


class TestChunkUpload:
    """Test suite for PATCH, HEAD and DELETE."""

    @pytest.mark.asyncio
    async def test_upload_all_chunks(self, server):
        """Test sequential chunks reach the server in order."""
        content = b'0123456789'

        async with running(server) as client:
            info = await client.initiate('/modul/upload', len(content))
            offset = 0
            while offset < len(content):
                offset = await client.upload_chunk_with_retry(info.upload_url, content[offset:offset + 4], offset)
            status = await client.get_status(info.upload_url)

        assert offset == 10
        assert server.uploads['u1']['data'] == content
        assert status == UploadStatus(offset=10, length=10, progress=100)

        _, _, headers = server.requests_for('PATCH')[0]
        assert headers['Content-Type'] == 'application/offset+octet-stream'
        assert headers['Upload-Offset'] == '0'
        assert headers['Tus-Resumable'] == '1.0.0'

    @pytest.mark.asyncio
    async def test_offset_conflict_resyncs(self, server):
        """Test a 409 carrying the server offset is returned as the new offset."""
        server.patch_script = [(409, {'Upload-Offset': '1048576'})]

        async with running(server) as client:
            info = await client.initiate('/modul/upload', 2 * 1024 * 1024)
            new_offset = await client.upload_chunk_with_retry(info.upload_url, b'abcd', 0)

        assert new_offset == 1048576
        assert len(server.requests_for('PATCH')) == 1

    @pytest.mark.asyncio
    async def test_offset_conflict_raises_without_retry_wrapper(self, server):
        """Test a bare upload_chunk surfaces the conflict."""
        server.patch_script = [(409, {'Upload-Offset': '1048576'})]

        async with running(server) as client:
            info = await client.initiate('/modul/upload', 10)
            with pytest.raises(TUSError) as exc_info:
                await client.upload_chunk(info.upload_url, b'abcd', 0)

        assert exc_info.value.kind == TUSErrorKind.OFFSET_MISMATCH
        assert exc_info.value.correct_offset == 1048576

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [500, 503, 423])
    async def test_retryable_errors_are_retried(self, server, status):
        """Test server errors and locked uploads are retried."""
        server.patch_script = [status]

        async with running(server) as client:
            info = await client.initiate('/modul/upload', 4)
            new_offset = await client.upload_chunk_with_retry(info.upload_url, b'abcd', 0)

        assert new_offset == 4
        assert len(server.requests_for('PATCH')) == 2

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, server):
        """Test a 403 fails on the first attempt."""
        server.patch_script = [403]

        async with running(server) as client:
            info = await client.initiate('/modul/upload', 4)
            with pytest.raises(TUSError) as exc_info:
                await client.upload_chunk_with_retry(info.upload_url, b'abcd', 0)

        assert exc_info.value.kind == TUSErrorKind.FORBIDDEN
        assert len(server.requests_for('PATCH')) == 1

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, server):
        """Test the last error is raised after max_retries attempts."""
        server.patch_script = [500, 500, 500]

        async with running(server) as client:
            info = await client.initiate('/modul/upload', 4)
            with pytest.raises(TUSError) as exc_info:
                await client.upload_chunk_with_retry(info.upload_url, b'abcd', 0)

        assert exc_info.value.kind == TUSErrorKind.SERVER_ERROR
        assert len(server.requests_for('PATCH')) == 3

    @pytest.mark.asyncio
    async def test_missing_offset_header(self, server):
        """Test a 2xx without Upload-Offset is a server error."""
        server.patch_script = ['no-offset']

        async with running(server, retry=RetryConfig(max_retries=1, base_delay=0)) as client:
            info = await client.initiate('/modul/upload', 4)
            with pytest.raises(TUSError) as exc_info:
                await client.upload_chunk_with_retry(info.upload_url, b'abcd', 0)

        assert exc_info.value.kind == TUSErrorKind.SERVER_ERROR
        assert exc_info.value.message == 'Server tidak mengembalikan Upload-Offset'

    @pytest.mark.asyncio
    async def test_cancel_in_flight_chunk(self, server):
        """Test a cancellation token aborts the running PATCH."""
        server.release = asyncio.Event()
        token = CancellationToken()

        async with running(server) as client:
            info = await client.initiate('/modul/upload', 4)
            task = asyncio.create_task(client.upload_chunk(info.upload_url, b'abcd', 0, token))

            for _ in range(200):
                if server.requests_for('PATCH'):
                    break
                await asyncio.sleep(0.01)

            token.cancel()
            with pytest.raises(TUSError) as exc_info:
                await task
            server.release.set()

        assert exc_info.value.kind == TUSErrorKind.UPLOAD_CANCELLED

    @pytest.mark.asyncio
    async def test_cancelled_token_skips_request(self, server):
        """Test an already cancelled token sends nothing."""
        token = CancellationToken()
        token.cancel()

        async with running(server) as client:
            info = await client.initiate('/modul/upload', 4)
            with pytest.raises(TUSError) as exc_info:
                await client.upload_chunk(info.upload_url, b'abcd', 0, token)

        assert exc_info.value.kind == TUSErrorKind.UPLOAD_CANCELLED
        assert server.requests_for('PATCH') == []

    @pytest.mark.asyncio
    async def test_status_missing_headers(self, server):
        """Test HEAD without offset headers is a server error."""
        server.head_script = [{'Upload-Offset': '4'}]

        async with running(server) as client:
            info = await client.initiate('/modul/upload', 4)
            with pytest.raises(TUSError) as exc_info:
                await client.get_status(info.upload_url)

        assert exc_info.value.kind == TUSErrorKind.SERVER_ERROR

    @pytest.mark.asyncio
    async def test_status_unknown_upload(self, server):
        """Test HEAD on an unknown upload is NOT_FOUND."""
        async with running(server) as client:
            with pytest.raises(TUSError) as exc_info:
                await client.get_status('/files/missing')

        assert exc_info.value.kind == TUSErrorKind.NOT_FOUND
        assert exc_info.value.message == 'Upload tidak ditemukan'

    @pytest.mark.asyncio
    async def test_get_info(self, server):
        """Test upload info is unwrapped."""
        async with running(server) as client:
            info = await client.initiate('/modul/upload', 4)
            data = await client.get_info(info.upload_url)

        assert data == {'upload_id': 'u1', 'offset': 0, 'length': 4}

    @pytest.mark.asyncio
    async def test_cancel(self, server):
        """Test DELETE with the TUS header."""
        async with running(server) as client:
            info = await client.initiate('/modul/upload', 4)
            await client.cancel(info.upload_url)

        _, path, headers = server.requests_for('DELETE')[0]
        assert path == '/api/v1/files/u1'
        assert headers['Tus-Resumable'] == '1.0.0'
        assert 'u1' not in server.uploads


class TestTransport:
    """Test suite for transport behavior."""

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Test connection failures are classified as NETWORK_ERROR."""
        async with test_utils.TestServer(web.Application()) as http:
            base_url = str(http.make_url('/api/v1'))

        async with TUSClient(APIConfig(base_url=base_url)) as client:
            with pytest.raises(TUSError) as exc_info:
                await client.check_slot(SLOT_ENDPOINT)

        assert exc_info.value.kind == TUSErrorKind.NETWORK_ERROR
        assert exc_info.value.code == 0
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_absolute_upload_url(self, server):
        """Test absolute upload URLs are used as-is."""
        async with test_utils.TestServer(server.app()) as http:
            config = APIConfig(base_url='http://example.invalid/api/v1')
            async with TUSClient(config) as client:
                server.uploads['u9'] = {'offset': 3, 'length': 9, 'data': b'abc'}
                status = await client.get_status(str(http.make_url('/api/v1/files/u9')))

        assert status.offset == 3
        assert status.progress == 33

    @pytest.mark.asyncio
    async def test_close_releases_session(self, server):
        """Test leaving the context closes an owned session."""
        async with running(server) as client:
            await client.check_slot(SLOT_ENDPOINT)

        assert client._session is None

    def test_properties(self):
        """Test configuration passthrough."""
        client = TUSClient(APIConfig(chunk_size=512, retry=RetryConfig(max_retries=5)))

        assert client.chunk_size == 512
        assert client.max_retries == 5
        assert client.tus_version == '1.0.0'
