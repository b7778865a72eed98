"""
Batch workflow orchestration.

Sequences open audio -> init -> upload -> start -> poll -> download against one batch job
handler and maps the outcome to a process exit status. Every step is strictly
sequential and any failure aborts the remaining steps.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from call_analytics.exceptions import (
    CallAnalyticsError,
    ConfigurationError,
    PollTimeoutError,
    RemoteJobFailure,
)
from call_analytics.services.audio_source.resolver import AudioSourceResolver
from call_analytics.services.poll_loop.controller import PollLoopController
from call_analytics.services.result_materializer.materializer import ResultMaterializer
from call_analytics.services.transcript.formatter import (
    DEFAULT_LANGUAGE,
    DEFAULT_PRERECORDED_OPTIONS,
    TranscriptResult,
    format_transcript,
)

if TYPE_CHECKING:
    from call_analytics.config import Config
    from call_analytics.server.services import BatchJobHandler, PrerecordedHandler
    from call_analytics.services.common.job import Job

logger = logging.getLogger(__name__)


class ExitCode(enum.IntEnum):
    """Process exit status for a workflow run."""

    OK = 0
    ERROR = 1
    JOB_FAILED = 2
    POLL_TIMEOUT = 3
    CONFIGURATION = 4


def exit_code_for(exc: BaseException | None) -> ExitCode:
    """Map a workflow outcome to a process exit status."""
    if exc is None:
        return ExitCode.OK
    if isinstance(exc, RemoteJobFailure):
        return ExitCode.JOB_FAILED
    if isinstance(exc, PollTimeoutError):
        return ExitCode.POLL_TIMEOUT
    if isinstance(exc, ConfigurationError):
        return ExitCode.CONFIGURATION
    return ExitCode.ERROR


def describe_failure(exc: BaseException) -> str:
    """Human readable explanation of why a workflow stopped."""
    if isinstance(exc, RemoteJobFailure):
        return f"Job failed on the remote service: {exc.error_message or 'no error message'}"
    if isinstance(exc, PollTimeoutError):
        return (
            f"Gave up waiting after {exc.attempts} status checks; "
            f"job {exc.job_id} may still be running remotely"
        )
    if isinstance(exc, CallAnalyticsError):
        return f"Error during processing: {exc}"
    return f"Unexpected error during processing: {type(exc).__name__}: {exc}"


@dataclass
class WorkflowResult:
    """Outcome of a successful batch workflow run."""

    job: Job
    attempts: int
    files: list[Path]


class BatchWorkflow:
    """Runs one audio recording through the batch job lifecycle."""

    def __init__(
        self,
        config: Config,
        handler: BatchJobHandler,
        resolver: AudioSourceResolver | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            config: Process configuration
            handler: Batch job handler owning this run's job
            resolver: Audio source resolver (a default one is created if omitted)
            sleep: Sleep coroutine used between status checks
        """
        self.config = config
        self.handler = handler
        self.resolver = resolver or AudioSourceResolver(request_timeout_s=config.request_timeout_s)
        self._sleep = sleep

    async def run(self) -> WorkflowResult:
        """
        Execute the whole workflow.

        Raises:
            CallAnalyticsError: The first failure; no later step is attempted
        """
        await self.handler.connect()
        try:
            # Step 1: open the audio before a remote job exists for it
            async with self.resolver.open(self.config.audio_source) as source:
                # Step 2: initialize job
                job = await self.handler.initialize_job()

                # Step 3: upload audio
                await self.handler.upload_file(source.stream, source.name)

            # Step 4: start job
            await self.handler.start_job()

            # Step 5: monitor job status
            poll_loop = PollLoopController(
                self.handler.check_job_status,
                interval_s=self.config.poll_interval_s,
                max_attempts=self.config.max_poll_attempts,
                sleep=self._sleep,
                job_id=job.job_id,
            )
            poll_result = await poll_loop.run()

            # Step 6: download results
            materializer = ResultMaterializer(self.handler, self.config.destination_dir)
            files = await materializer.materialize()
        finally:
            await self.handler.disconnect()

        logger.info(f"Processing complete. Results saved to: {self.config.destination_dir}")
        return WorkflowResult(job=job, attempts=poll_result.attempts, files=files)


async def run_prerecorded(
    handler: PrerecordedHandler,
    url: str,
    options: dict[str, Any] | None = None,
) -> TranscriptResult:
    """Transcribe a hosted recording in one request and normalize the result."""
    options = {**DEFAULT_PRERECORDED_OPTIONS, **(options or {})}

    await handler.connect()
    try:
        response = await handler.transcribe_url(url, options)
    finally:
        await handler.disconnect()

    return format_transcript(response, default_language=options.get("language") or DEFAULT_LANGUAGE)
