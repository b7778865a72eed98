"""
Fixed-cadence polling of a remote job until it reaches a terminal state.

The interval is constant, with no backoff and no jitter: the remote service
rate-limits on that cadence. The sleep function is injectable so the full
scenario matrix can run without real delays.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from call_analytics.exceptions import PollTimeoutError, RemoteJobFailure, StatusCheckError
from call_analytics.services.common.job import JobState, StatusResponse

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 10.0
DEFAULT_MAX_ATTEMPTS = 60  # 10 minutes at 10 second intervals


@dataclass(frozen=True)
class PollResult:
    """Outcome of a successful poll loop."""

    status: StatusResponse
    attempts: int


class PollLoopController:
    """Drives repeated status checks until Completed, Failed, or the attempt ceiling."""

    def __init__(
        self,
        check_status: Callable[[], Awaitable[StatusResponse]],
        interval_s: float = DEFAULT_INTERVAL_S,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        job_id: str | None = None,
    ):
        """
        Args:
            check_status: Coroutine function performing one status check
            interval_s: Seconds to wait between non-terminal checks
            max_attempts: Maximum number of status checks
            sleep: Sleep coroutine, replaceable in tests
            job_id: Identifier used in log lines and errors
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if interval_s < 0:
            raise ValueError("interval_s must not be negative")

        self._check_status = check_status
        self.interval_s = interval_s
        self.max_attempts = max_attempts
        self._sleep = sleep
        self.job_id = job_id

    async def run(self) -> PollResult:
        """
        Poll until the job reaches a terminal state.

        A StatusCheckError counts as a non-terminal attempt; any other
        exception propagates immediately.

        Returns:
            PollResult for the Completed status

        Raises:
            RemoteJobFailure: The service reported Failed
            PollTimeoutError: max_attempts checks without a terminal state
        """
        attempts = 0
        last_state: str | None = None
        last_error: StatusCheckError | None = None

        while attempts < self.max_attempts:
            attempts += 1

            try:
                status = await self._check_status()
            except StatusCheckError as e:
                last_error = e
                logger.warning(
                    f"Status check failed (attempt {attempts}/{self.max_attempts}): {e}"
                )
            else:
                last_error = None
                last_state = status.raw_state or status.state.value

                if status.state is JobState.COMPLETED:
                    logger.info(f"Job {self.job_id} completed successfully after {attempts} checks")
                    return PollResult(status=status, attempts=attempts)

                if status.state is JobState.FAILED:
                    logger.error(f"Job {self.job_id} failed: {status.error_message}")
                    raise RemoteJobFailure(self.job_id, status.error_message)

                logger.info(
                    f"Current status: {last_state} (attempt {attempts}/{self.max_attempts})"
                )

            if attempts < self.max_attempts:
                await self._sleep(self.interval_s)

        logger.error(f"Job {self.job_id} did not complete within {attempts} status checks")
        raise PollTimeoutError(self.job_id, attempts, last_state) from last_error
