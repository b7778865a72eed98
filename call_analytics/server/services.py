from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from typing import Any

from call_analytics.services.audio_source.resolver import AudioSource, AudioSourceResolver
from call_analytics.services.common.job import Job, OutputFile, StatusResponse

# -------------------------------------------------------------- #
# Base Server Handler
# -------------------------------------------------------------- #


class BaseServerHandler(ABC):
    """Abstract base class for all remote service handlers."""

    def __init__(self, name: str, endpoint: str):
        self.name = name
        self.endpoint = endpoint
        self._connected = False

    # -------------------------------------------------------------- #
    # Abstract Methods
    # -------------------------------------------------------------- #

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection pool to the service."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the connection pool to the service."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the service is reachable."""
        pass

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to the service."""
        return self._connected

    async def __aenter__(self) -> "BaseServerHandler":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()


# -------------------------------------------------------------- #
# Batch Job Handler
# -------------------------------------------------------------- #


class BatchJobHandler(BaseServerHandler):
    """
    Handler for the asynchronous batch job service.

    One handler instance owns exactly one job for its lifetime. The
    operations must be called in lifecycle order:
    initialize_job -> upload_file -> start_job -> check_job_status
    and, once Completed has been observed, list_output_files /
    open_output_file.
    """

    def __init__(self, name: str, endpoint: str, request_timeout_s: float = 60.0):
        super().__init__(name, endpoint)
        self.job: Job | None = None
        self.request_timeout_s = request_timeout_s

    def get_audio_stream(self, specifier: str) -> AbstractAsyncContextManager[AudioSource]:
        """
        Open the audio to upload for this job.

        The fetch uses its own HTTP session so the subscription key is never
        sent to the audio host.

        Raises:
            SourceUnavailableError: If the audio cannot be fetched or read
        """
        return AudioSourceResolver(request_timeout_s=self.request_timeout_s).open(specifier)

    @abstractmethod
    async def initialize_job(self) -> Job:
        """
        Request a new job context from the service.

        Returns:
            The initialized Job, also recorded on the handler

        Raises:
            InitializationError: On transport failure or non-2xx response
        """
        pass

    @abstractmethod
    async def upload_file(self, stream: AsyncIterator[bytes], name: str) -> None:
        """
        Stream audio content to the job's input storage under the given name.

        Raises:
            UploadError: On transport failure or non-2xx response
        """
        pass

    @abstractmethod
    async def start_job(self) -> None:
        """
        Submit the job parameters and start processing.

        Raises:
            StartError: On transport failure, non-2xx response, or if no
                audio has been uploaded yet
        """
        pass

    @abstractmethod
    async def check_job_status(self) -> StatusResponse:
        """
        Fetch the current state of the job.

        Raises:
            StatusCheckError: On transport failure or non-2xx response
        """
        pass

    @abstractmethod
    async def list_output_files(self) -> list[OutputFile]:
        """
        List the artifacts at the job's output storage location.

        Raises:
            DownloadError: On transport failure, non-2xx response, or a
                listing that is not a JSON array
        """
        pass

    @abstractmethod
    def open_output_file(self, name: str) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        """
        Open a streamed download of one output artifact.

        Returns:
            Async context manager yielding an async iterator of byte chunks

        Raises:
            DownloadError: On transport failure or non-2xx response
        """
        pass


# -------------------------------------------------------------- #
# Prerecorded Transcription Handler
# -------------------------------------------------------------- #


class PrerecordedHandler(BaseServerHandler):
    """Handler for the synchronous single-request transcription service."""

    @abstractmethod
    async def transcribe_url(self, url: str, options: dict[str, Any]) -> dict[str, Any]:
        """
        Transcribe the audio at a URL in a single request.

        Args:
            url: Publicly reachable audio URL
            options: Service options (model, tier, language, diarize, ...)

        Returns:
            The parsed JSON response

        Raises:
            TranscriptionError: On transport failure or non-2xx response
        """
        pass
