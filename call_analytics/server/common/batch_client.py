"""Batch call analytics client implementation."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import aiohttp

from call_analytics.exceptions import (
    DownloadError,
    InitializationError,
    RemoteServiceError,
    SourceUnavailableError,
    StartError,
    StatusCheckError,
    UploadError,
)
from call_analytics.server.services import BatchJobHandler
from call_analytics.services.common.job import (
    Job,
    JobParameters,
    JobState,
    OutputFile,
    StatusResponse,
)

if TYPE_CHECKING:
    from call_analytics.config import Config

logger = logging.getLogger(__name__)

SUBSCRIPTION_KEY_HEADER = "API-Subscription-Key"
DEFAULT_CHUNK_SIZE = 64 * 1024

# encodeURIComponent leaves these unescaped as well
_URI_COMPONENT_SAFE = "!~*'()"


def encode_path_segment(value: str) -> str:
    """Percent-encode a value for use as a single URL path segment."""
    return quote(value, safe=_URI_COMPONENT_SAFE)


def find_source_error(exc: BaseException) -> SourceUnavailableError | None:
    """Find an audio source failure in the cause or context chain of an error."""
    seen = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        if isinstance(current, SourceUnavailableError):
            return current
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    return None


def parse_body(body: str) -> Any:
    """Decode a response body as JSON, falling back to the raw text."""
    if not body:
        return None
    try:
        return json.loads(body)
    except ValueError:
        return body


class BatchJobClient(BatchJobHandler):
    """Client for the asynchronous batch call analytics service."""

    def __init__(
        self,
        api_key: str,
        name: str = "call_analytics",
        endpoint: str = "https://api.sarvam.ai/call-analytics/",
        job_parameters: JobParameters | None = None,
        request_timeout_s: float = 60.0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        """
        Initialize the batch job client.

        Args:
            api_key: Subscription key sent with every request
            name: Name of the client (used in log lines)
            endpoint: Base URL of the job API
            job_parameters: Parameters submitted by start_job
            request_timeout_s: Total timeout for control calls; socket read
                timeout for uploads and downloads
            chunk_size: Read size for streamed downloads
        """
        if not api_key:
            raise ValueError("api_key is required")

        super().__init__(name, endpoint.rstrip("/") + "/", request_timeout_s)
        self.job_parameters = job_parameters or JobParameters()
        self.chunk_size = chunk_size
        self.session: aiohttp.ClientSession | None = None

        self._api_key = api_key
        self._unusable = False
        self._control_timeout = aiohttp.ClientTimeout(total=request_timeout_s)
        self._transfer_timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=request_timeout_s, sock_read=request_timeout_s
        )

    # -------------------------------------------------------------- #
    # Server Management
    # -------------------------------------------------------------- #

    async def connect(self) -> None:
        """Open the HTTP session used for every call of this job."""
        if self.session is not None:
            return

        self.session = aiohttp.ClientSession(headers={SUBSCRIPTION_KEY_HEADER: self._api_key})
        self._connected = True
        logger.info(f"[{self.name}] Session opened for {self.endpoint}")

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None
        self._connected = False
        logger.info(f"[{self.name}] Session closed")

    async def health_check(self) -> bool:
        """The service exposes no health endpoint; report session state."""
        return self.session is not None and not self.session.closed

    # -------------------------------------------------------------- #
    # Lifecycle Operations
    # -------------------------------------------------------------- #

    async def initialize_job(self) -> Job:
        """Request a new job context and record it on this client."""
        if self._unusable:
            raise InitializationError("A previous initialization failed; create a new client")
        if self.job is not None:
            raise InitializationError(f"Client already owns job {self.job.job_id}")
        self._require_session(InitializationError)

        logger.info(f"[{self.name}] Initializing job...")
        try:
            payload = await self._request_json(
                "POST", f"{self.endpoint}job/init", InitializationError, "initialize job"
            )
            if not isinstance(payload, dict):
                raise InitializationError(
                    f"Unexpected init response: {payload!r}", payload=payload
                )
            try:
                job = Job.from_init_payload(payload)
            except (KeyError, ValueError) as e:
                raise InitializationError(f"Malformed init response: {e}", payload=payload) from e
        except InitializationError:
            self._unusable = True
            raise

        self.job = job
        logger.info(
            f"[{self.name}] Job initialized: {job.job_id} "
            f"(input: {job.input_storage_path}, output: {job.output_storage_path})"
        )
        return job

    async def upload_file(self, stream: AsyncIterator[bytes] | bytes, name: str) -> None:
        """Upload audio to {input_storage_path}/{encoded name} as multipart form data."""
        job = self._require_job(UploadError, "upload a file")
        url = f"{job.input_storage_path}/{encode_path_segment(name)}"

        data = aiohttp.FormData()
        data.add_field("file", stream, filename=name, content_type="application/octet-stream")

        logger.info(f"[{self.name}] Uploading {name} to input storage...")
        try:
            await self._request_json(
                "PUT", url, UploadError, f"upload {name}", data=data, timeout=self._transfer_timeout
            )
        except UploadError as e:
            # aiohttp wraps errors raised by the body stream in a connection error
            source_error = find_source_error(e)
            if source_error is None:
                raise
            raise SourceUnavailableError(str(source_error), status=source_error.status) from e

        job.mark_uploaded(name)
        logger.info(f"[{self.name}] File uploaded successfully: {name}")

    async def start_job(self) -> None:
        """Submit the job parameters bound to this job's identifier."""
        job = self._require_job(StartError, "start the job")
        if not job.is_uploaded:
            raise StartError(f"Cannot start job {job.job_id} before audio has been uploaded")

        body = {"job_id": job.job_id, "job_parameters": self.job_parameters.to_payload()}

        logger.info(f"[{self.name}] Starting job {job.job_id}...")
        await self._request_json("POST", f"{self.endpoint}job", StartError, "start job", json=body)

        job.mark_started()
        logger.info(f"[{self.name}] Job started successfully")

    async def check_job_status(self) -> StatusResponse:
        """Fetch the current state of the job."""
        job = self._require_job(StatusCheckError, "check status")
        if not job.is_started:
            raise StatusCheckError(f"Job {job.job_id} has not been started")

        url = f"{self.endpoint}job/{encode_path_segment(job.job_id)}/status"
        payload = await self._request_json("GET", url, StatusCheckError, "check job status")
        if not isinstance(payload, dict):
            raise StatusCheckError(f"Unexpected status response: {payload!r}", payload=payload)

        status = StatusResponse.from_payload(payload)
        job.apply_status(status)
        logger.info(f"[{self.name}] Current job status: {status.raw_state or status.state.value}")
        return status

    # -------------------------------------------------------------- #
    # Result Retrieval
    # -------------------------------------------------------------- #

    async def list_output_files(self) -> list[OutputFile]:
        """
        List the artifacts at the output storage location.

        Entries that are not objects with a string name are skipped.
        """
        job = self._require_completed()

        payload = await self._request_json(
            "GET", job.output_storage_path, DownloadError, "list output files"
        )
        if not isinstance(payload, list):
            logger.error(f"[{self.name}] Output listing is not a list: {payload!r}")
            raise DownloadError("Output listing is not a JSON array", payload=payload)

        files = []
        for entry in payload:
            name = entry.get("name") if isinstance(entry, dict) else None
            if not isinstance(name, str) or not name:
                logger.warning(f"[{self.name}] Skipping unrecognized listing entry: {entry!r}")
                continue
            size = entry.get("size")
            files.append(OutputFile(name=name, size=size if isinstance(size, int) else None))
        return files

    @asynccontextmanager
    async def open_output_file(self, name: str):
        """Open a streamed download of {output_storage_path}/{name}."""
        job = self._require_completed()
        session = self._require_session(DownloadError)
        url = f"{job.output_storage_path}/{encode_path_segment(name)}"

        try:
            response = await session.get(url, timeout=self._transfer_timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._log_failure(f"download {name}", None, str(e))
            raise DownloadError(f"download {name} failed: {e}") from e

        try:
            if not 200 <= response.status < 300:
                payload = parse_body(await response.text())
                self._log_failure(f"download {name}", response.status, payload)
                raise DownloadError(
                    f"download {name} failed (HTTP {response.status})",
                    status=response.status,
                    payload=payload,
                )
            yield self._iter_body(response, name)
        finally:
            response.release()

    # -------------------------------------------------------------- #
    # Helpers
    # -------------------------------------------------------------- #

    def _require_session(self, error_cls: type[RemoteServiceError]) -> aiohttp.ClientSession:
        if not self.session:
            raise error_cls(f"[{self.name}] Not connected; call connect() first")
        return self.session

    def _require_job(self, error_cls: type[RemoteServiceError], action: str) -> Job:
        if self.job is None:
            raise error_cls(f"Cannot {action} before the job has been initialized")
        return self.job

    def _require_completed(self) -> Job:
        job = self._require_job(DownloadError, "download results")
        if job.state is not JobState.COMPLETED:
            raise DownloadError(
                f"Job {job.job_id} is {job.state.value}; results are only available once Completed"
            )
        return job

    def _log_failure(self, operation: str, status: int | None, payload: Any) -> None:
        logger.error(
            f"[{self.name}] Error in {operation} | Status: {status or 'no response'} "
            f"| Details: {payload}"
        )

    async def _request_json(
        self,
        method: str,
        url: str,
        error_cls: type[RemoteServiceError],
        operation: str,
        timeout: aiohttp.ClientTimeout | None = None,
        **kwargs: Any,
    ) -> Any:
        """
        Perform a request and decode its body.

        Raises:
            error_cls: On transport failure or a non-2xx response; the
                service's error body is logged and attached to the error
        """
        session = self._require_session(error_cls)

        try:
            async with session.request(
                method, url, timeout=timeout or self._control_timeout, **kwargs
            ) as response:
                payload = parse_body(await response.text())
                if not 200 <= response.status < 300:
                    self._log_failure(operation, response.status, payload)
                    raise error_cls(
                        f"{operation} failed (HTTP {response.status})",
                        status=response.status,
                        payload=payload,
                    )
                return payload
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._log_failure(operation, None, str(e))
            raise error_cls(f"{operation} failed: {e}") from e

    async def _iter_body(self, response: aiohttp.ClientResponse, name: str) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.content.iter_chunked(self.chunk_size):
                yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self._log_failure(f"download {name}", response.status, str(e))
            raise DownloadError(f"download {name} interrupted: {e}") from e


def construct_batch_job_client(config: "Config") -> BatchJobClient:
    """
    Construct and return a batch job client.

    Args:
        config: Process configuration

    Returns:
        Configured BatchJobClient instance
    """
    return BatchJobClient(
        api_key=config.api_key,
        endpoint=config.base_url,
        job_parameters=config.job_parameters,
        request_timeout_s=config.request_timeout_s,
    )
