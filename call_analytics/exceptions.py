"""
Exception hierarchy for the call analytics client.

Every error raised by this package derives from CallAnalyticsError so callers
can catch the whole family at the workflow boundary. Failures of a remote call
derive from RemoteServiceError and keep the HTTP status and the error body
returned by the service (when there was one).
"""

from typing import Any


class CallAnalyticsError(Exception):
    """Base class for all call analytics errors."""


class ConfigurationError(CallAnalyticsError):
    """Configuration is missing or malformed."""


# -------------------------------------------------------------- #
# Remote Call Errors
# -------------------------------------------------------------- #


class RemoteServiceError(CallAnalyticsError):
    """
    A remote call failed at the transport level or with a non-2xx status.

    Attributes:
        status: HTTP status code, or None when no response was received
        payload: Error body returned by the service, if any
    """

    def __init__(self, message: str, status: int | None = None, payload: Any = None):
        super().__init__(message)
        self.status = status
        self.payload = payload


class SourceUnavailableError(RemoteServiceError):
    """The input audio could not be fetched or read."""


class AudioSourceNotFoundError(SourceUnavailableError, FileNotFoundError):
    """The local audio file does not exist."""


class InitializationError(RemoteServiceError):
    """The service refused or failed to create a job."""


class UploadError(RemoteServiceError):
    """The audio could not be uploaded to the job's input storage."""


class StartError(RemoteServiceError):
    """The job could not be started."""


class StatusCheckError(RemoteServiceError):
    """The job status could not be fetched."""


class DownloadError(RemoteServiceError):
    """An output artifact could not be listed, fetched or written."""


class TranscriptionError(RemoteServiceError):
    """The synchronous transcription request failed."""


# -------------------------------------------------------------- #
# Job Outcome Errors
# -------------------------------------------------------------- #


class RemoteJobFailure(CallAnalyticsError):
    """The service reported the job as Failed."""

    def __init__(self, job_id: str | None, error_message: str | None):
        self.job_id = job_id
        self.error_message = error_message
        super().__init__(f"Job {job_id} failed: {error_message or 'no error message provided'}")


class PollTimeoutError(CallAnalyticsError, TimeoutError):
    """
    The polling ceiling was reached before the job reached a terminal state.

    The job may still be running on the remote side.
    """

    def __init__(self, job_id: str | None, attempts: int, last_state: str | None = None):
        self.job_id = job_id
        self.attempts = attempts
        self.last_state = last_state
        super().__init__(
            f"Job {job_id} did not complete within {attempts} status checks "
            f"(last state: {last_state or 'unknown'})"
        )
