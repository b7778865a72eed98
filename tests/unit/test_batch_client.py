"""
Unit tests for the batch job client.

The remote service is replaced by a local aiohttp application that mimics the
job API and its storage endpoints.
"""

from unittest.mock import patch

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from call_analytics.exceptions import (
    DownloadError,
    InitializationError,
    SourceUnavailableError,
    StartError,
    StatusCheckError,
    UploadError,
)
from call_analytics.server.common.batch_client import (
    SUBSCRIPTION_KEY_HEADER,
    BatchJobClient,
    encode_path_segment,
    find_source_error,
    parse_body,
)
from call_analytics.services.audio_source.resolver import AudioSourceResolver
from call_analytics.services.common.job import JobParameters, JobState, Question

ARTIFACTS = {
    "a.json": b'{"answers": []}',
    "b.txt": b"transcript " * 20000,
}


class FakeCallAnalyticsService:
    """Minimal in-process stand-in for the job API and its storage."""

    def __init__(self):
        self.requests: list[tuple[str, str]] = []
        self.subscription_keys: list[str | None] = []
        self.uploads: dict[str, bytes] = {}
        self.start_bodies: list[dict] = []
        self.statuses = ["Running", "Completed"]
        self.listing = [{"name": name, "size": len(data)} for name, data in ARTIFACTS.items()]
        self.fail: dict[str, tuple[int, object]] = {}
        self.init_payload: dict | None = None
        self.server: TestServer | None = None

    def base_url(self) -> str:
        return str(self.server.make_url("/call-analytics/"))

    def app(self) -> web.Application:
        app = web.Application(middlewares=[self.record])
        app.router.add_post("/call-analytics/job/init", self.init)
        app.router.add_post("/call-analytics/job", self.start)
        app.router.add_get("/call-analytics/job/{job_id}/status", self.status)
        app.router.add_put("/storage/input/{job_id}/{name}", self.upload)
        app.router.add_get("/storage/output/{job_id}", self.list_outputs)
        app.router.add_get("/storage/output/{job_id}/{name}", self.download)
        app.router.add_get("/audio/truncated/{name}", self.truncated_audio)
        return app

    @web.middleware
    async def record(self, request, handler):
        self.requests.append((request.method, request.path))
        self.subscription_keys.append(request.headers.get(SUBSCRIPTION_KEY_HEADER))
        return await handler(request)

    def _failure(self, operation: str) -> web.Response | None:
        if operation not in self.fail:
            return None
        status, body = self.fail[operation]
        return web.json_response(body, status=status)

    async def init(self, request):
        failure = self._failure("init")
        if failure:
            return failure
        if self.init_payload is not None:
            return web.json_response(self.init_payload)
        return web.json_response(
            {
                "job_id": "job-42",
                "input_storage_path": str(self.server.make_url("/storage/input/job-42/")),
                "output_storage_path": str(self.server.make_url("/storage/output/job-42")),
            }
        )

    async def upload(self, request):
        failure = self._failure("upload")
        if failure:
            return failure
        reader = await request.multipart()
        part = await reader.next()
        assert part.name == "file"
        self.uploads[request.match_info["name"]] = await part.read()
        return web.json_response({"uploaded": part.filename})

    async def start(self, request):
        failure = self._failure("start")
        if failure:
            return failure
        self.start_bodies.append(await request.json())
        return web.json_response({"job_state": "Accepted"})

    async def status(self, request):
        failure = self._failure("status")
        if failure:
            return failure
        state = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        return web.json_response({"job_id": request.match_info["job_id"], "job_state": state})

    async def list_outputs(self, request):
        failure = self._failure("list")
        if failure:
            return failure
        return web.json_response(self.listing)

    async def download(self, request):
        failure = self._failure("download")
        if failure:
            return failure
        return web.Response(body=ARTIFACTS[request.match_info["name"]])

    async def truncated_audio(self, request):
        """Announce a large recording, send part of it, then drop the connection."""
        response = web.StreamResponse(headers={"Content-Length": "1000000"})
        await response.prepare(request)
        await response.write(b"\x00" * 70000)
        request.transport.close()
        return response


# -------------------------------------------------------------- #
# Fixtures
# -------------------------------------------------------------- #


@pytest.fixture
async def service():
    fake = FakeCallAnalyticsService()
    fake.server = TestServer(fake.app())
    await fake.server.start_server()
    yield fake
    await fake.server.close()


@pytest.fixture
async def client(service):
    client = BatchJobClient(api_key="test-key", endpoint=service.base_url(), chunk_size=1024)
    await client.connect()
    yield client
    await client.disconnect()


async def run_until_completed(client: BatchJobClient) -> None:
    await client.initialize_job()
    await client.upload_file(b"audio-bytes", "call one.wav")
    await client.start_job()
    while (await client.check_job_status()).state is not JobState.COMPLETED:
        pass


# -------------------------------------------------------------- #
# Helpers
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestHelpers:
    def test_encode_path_segment(self):
        assert encode_path_segment("call one.wav") == "call%20one.wav"
        assert encode_path_segment("a/b?.wav") == "a%2Fb%3F.wav"
        assert encode_path_segment("it's(1)!.wav") == "it's(1)!.wav"

    def test_parse_body(self):
        assert parse_body("") is None
        assert parse_body('{"a": 1}') == {"a": 1}
        assert parse_body("Internal Server Error") == "Internal Server Error"

    def test_find_source_error_follows_cause_chain(self):
        source_error = SourceUnavailableError("stream cut short")
        try:
            try:
                raise RuntimeError("Failed to send bytes") from source_error
            except RuntimeError as e:
                raise UploadError("upload call.wav failed") from e
        except UploadError as upload_error:
            assert find_source_error(upload_error) is source_error

        assert find_source_error(UploadError("HTTP 403")) is None

    def test_audio_stream_uses_client_timeout(self):
        client = BatchJobClient("test-key", request_timeout_s=5.0)

        with patch("call_analytics.server.services.AudioSourceResolver") as resolver_cls:
            client.get_audio_stream("https://audio.example/call.wav")

        resolver_cls.assert_called_once_with(request_timeout_s=5.0)
        resolver_cls.return_value.open.assert_called_once_with("https://audio.example/call.wav")

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            BatchJobClient(api_key="")


# -------------------------------------------------------------- #
# Lifecycle
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestBatchJobClientLifecycle:
    @pytest.mark.asyncio
    async def test_full_lifecycle(self, client, service):
        job = await client.initialize_job()
        assert job.job_id == "job-42"
        assert not job.input_storage_path.endswith("/")

        await client.upload_file(b"audio-bytes", "call one.wav")
        assert service.uploads == {"call one.wav": b"audio-bytes"}

        await client.start_job()
        body = service.start_bodies[0]
        assert body["job_id"] == "job-42"
        assert body["job_parameters"]["model"] == "saaras:v2"
        assert body["job_parameters"]["num_speakers"] == 2
        assert len(body["job_parameters"]["questions"]) == 2

        assert (await client.check_job_status()).state is JobState.RUNNING
        assert (await client.check_job_status()).state is JobState.COMPLETED
        assert client.job.state is JobState.COMPLETED

        files = await client.list_output_files()
        assert [f.name for f in files] == ["a.json", "b.txt"]

        async with client.open_output_file("b.txt") as stream:
            content = b"".join([chunk async for chunk in stream])
        assert content == ARTIFACTS["b.txt"]

    @pytest.mark.asyncio
    async def test_every_request_carries_subscription_key(self, client, service):
        await run_until_completed(client)
        await client.list_output_files()

        assert len(service.subscription_keys) == len(service.requests)
        assert set(service.subscription_keys) == {"test-key"}

    @pytest.mark.asyncio
    async def test_upload_path_is_encoded(self, client, service):
        await client.initialize_job()
        await client.upload_file(b"x", "call one.wav")

        assert ("PUT", "/storage/input/job-42/call one.wav") in service.requests

    @pytest.mark.asyncio
    async def test_streamed_upload(self, client, service):
        async def chunks():
            yield b"part-1 "
            yield b"part-2"

        await client.initialize_job()
        await client.upload_file(chunks(), "call.wav")

        assert service.uploads["call.wav"] == b"part-1 part-2"

    @pytest.mark.asyncio
    async def test_reupload_same_name_is_idempotent(self, client, service):
        await client.initialize_job()
        await client.upload_file(b"first", "call.wav")
        await client.upload_file(b"second", "call.wav")

        assert client.job.uploaded_files == ["call.wav"]
        assert service.uploads["call.wav"] == b"second"

    @pytest.mark.asyncio
    async def test_reupload_identical_content_changes_nothing(self, client, service):
        await client.initialize_job()
        await client.upload_file(b"audio-bytes", "call.wav")
        first = dict(service.uploads)

        await client.upload_file(b"audio-bytes", "call.wav")

        assert service.uploads == first == {"call.wav": b"audio-bytes"}
        assert client.job.uploaded_files == ["call.wav"]
        puts = [path for method, path in service.requests if method == "PUT"]
        assert puts == ["/storage/input/job-42/call.wav"] * 2

    @pytest.mark.asyncio
    async def test_custom_job_parameters(self, service):
        parameters = JobParameters(
            model="saaras:v1",
            with_diarization=False,
            num_speakers=3,
            questions=(Question(id="q", type="boolean", text="Refund?"),),
        )
        async with BatchJobClient(
            "test-key", endpoint=service.base_url(), job_parameters=parameters
        ) as client:
            await client.initialize_job()
            await client.upload_file(b"x", "call.wav")
            await client.start_job()

        assert service.start_bodies[0]["job_parameters"] == parameters.to_payload()


# -------------------------------------------------------------- #
# Error Mapping
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestBatchJobClientErrors:
    @pytest.mark.asyncio
    async def test_init_failure_keeps_payload_and_disables_client(self, client, service):
        service.fail["init"] = (401, {"error": {"message": "invalid key"}})

        with pytest.raises(InitializationError) as exc_info:
            await client.initialize_job()

        assert exc_info.value.status == 401
        assert exc_info.value.payload == {"error": {"message": "invalid key"}}

        service.fail.clear()
        with pytest.raises(InitializationError, match="previous initialization failed"):
            await client.initialize_job()

    @pytest.mark.asyncio
    async def test_malformed_init_response(self, client, service):
        service.init_payload = {"job_id": "job-42"}

        with pytest.raises(InitializationError, match="Malformed init response") as exc_info:
            await client.initialize_job()

        assert exc_info.value.payload == {"job_id": "job-42"}
        assert client.job is None

    @pytest.mark.asyncio
    async def test_second_initialize_is_rejected(self, client):
        await client.initialize_job()

        with pytest.raises(InitializationError, match="already owns job"):
            await client.initialize_job()

    @pytest.mark.asyncio
    async def test_upload_failure(self, client, service):
        service.fail["upload"] = (403, {"error": "SignatureDoesNotMatch"})
        await client.initialize_job()

        with pytest.raises(UploadError) as exc_info:
            await client.upload_file(b"x", "call.wav")

        assert exc_info.value.status == 403
        assert not client.job.is_uploaded

        with pytest.raises(StartError):
            await client.start_job()
        assert ("POST", "/call-analytics/job") not in service.requests

    @pytest.mark.asyncio
    async def test_source_failure_during_upload_is_not_blamed_on_upload(self, client, service):
        async def interrupted_audio():
            yield b"RIFF" + b"\x00" * 4096
            raise SourceUnavailableError("Audio stream from s3 interrupted: connection reset")

        await client.initialize_job()

        with pytest.raises(SourceUnavailableError, match="interrupted") as exc_info:
            await client.upload_file(interrupted_audio(), "call.wav")

        assert not isinstance(exc_info.value, UploadError)
        assert not client.job.is_uploaded

    @pytest.mark.asyncio
    async def test_truncated_remote_audio_stops_before_start(self, client, service):
        url = str(service.server.make_url("/audio/truncated/clip.wav"))
        await client.initialize_job()

        with pytest.raises(SourceUnavailableError):
            async with AudioSourceResolver(request_timeout_s=5).open(url) as source:
                await client.upload_file(source.stream, source.name)

        assert not client.job.is_uploaded
        with pytest.raises(StartError):
            await client.start_job()
        assert ("POST", "/call-analytics/job") not in service.requests

    @pytest.mark.asyncio
    async def test_start_failure(self, client, service):
        service.fail["start"] = (400, {"error": "bad parameters"})
        await client.initialize_job()
        await client.upload_file(b"x", "call.wav")

        with pytest.raises(StartError) as exc_info:
            await client.start_job()

        assert exc_info.value.payload == {"error": "bad parameters"}
        assert not client.job.is_started

    @pytest.mark.asyncio
    async def test_status_failure(self, client, service):
        service.fail["status"] = (503, {"error": "unavailable"})
        await client.initialize_job()
        await client.upload_file(b"x", "call.wav")
        await client.start_job()

        with pytest.raises(StatusCheckError) as exc_info:
            await client.check_job_status()

        assert exc_info.value.status == 503

    @pytest.mark.asyncio
    async def test_listing_not_a_list(self, client, service):
        service.listing = {"files": []}
        await run_until_completed(client)

        with pytest.raises(DownloadError, match="not a JSON array"):
            await client.list_output_files()

    @pytest.mark.asyncio
    async def test_listing_skips_entries_without_name(self, client, service):
        service.listing = [{"name": "a.json"}, {"size": 3}, "b.txt", {"name": ""}]
        await run_until_completed(client)

        files = await client.list_output_files()

        assert [f.name for f in files] == ["a.json"]

    @pytest.mark.asyncio
    async def test_download_failure(self, client, service):
        await run_until_completed(client)
        service.fail["download"] = (404, {"error": "NoSuchKey"})

        with pytest.raises(DownloadError) as exc_info:
            async with client.open_output_file("a.json"):
                pass

        assert exc_info.value.status == 404
        assert exc_info.value.payload == {"error": "NoSuchKey"}

    @pytest.mark.asyncio
    async def test_transport_failure(self, unused_tcp_port):
        client = BatchJobClient(
            "test-key", endpoint=f"http://127.0.0.1:{unused_tcp_port}/", request_timeout_s=5
        )
        async with client:
            with pytest.raises(InitializationError) as exc_info:
                await client.initialize_job()

        assert exc_info.value.status is None


# -------------------------------------------------------------- #
# Ordering Guards
# -------------------------------------------------------------- #


@pytest.mark.unit
class TestBatchJobClientOrdering:
    @pytest.mark.asyncio
    async def test_calls_before_connect(self):
        client = BatchJobClient("test-key")

        with pytest.raises(InitializationError, match="Not connected"):
            await client.initialize_job()

    @pytest.mark.asyncio
    async def test_upload_before_init(self, client, service):
        with pytest.raises(UploadError):
            await client.upload_file(b"x", "call.wav")
        assert service.requests == []

    @pytest.mark.asyncio
    async def test_start_before_upload(self, client, service):
        await client.initialize_job()

        with pytest.raises(StartError, match="before audio has been uploaded"):
            await client.start_job()

    @pytest.mark.asyncio
    async def test_status_before_start(self, client):
        await client.initialize_job()

        with pytest.raises(StatusCheckError):
            await client.check_job_status()

    @pytest.mark.asyncio
    async def test_listing_before_completed(self, client, service):
        await client.initialize_job()
        await client.upload_file(b"x", "call.wav")
        await client.start_job()
        await client.check_job_status()

        with pytest.raises(DownloadError, match="Completed"):
            await client.list_output_files()

        with pytest.raises(DownloadError):
            async with client.open_output_file("a.json"):
                pass

    @pytest.mark.asyncio
    async def test_health_check_tracks_session(self, service):
        client = BatchJobClient("test-key", endpoint=service.base_url())
        assert not await client.health_check()

        await client.connect()
        assert await client.health_check()
        assert client.is_connected

        await client.disconnect()
        assert not await client.health_check()
        assert not client.is_connected
