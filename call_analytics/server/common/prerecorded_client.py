"""Prerecorded (single request) transcription client implementation."""

import asyncio
import logging
from typing import Any

import aiohttp

from call_analytics.exceptions import TranscriptionError
from call_analytics.server.common.batch_client import parse_body
from call_analytics.server.services import PrerecordedHandler

logger = logging.getLogger(__name__)

DEFAULT_PRERECORDED_ENDPOINT = "https://api.deepgram.com"


def encode_options(options: dict[str, Any]) -> dict[str, str]:
    """Render service options as query parameters (booleans as true/false, None dropped)."""
    return {
        key: str(value).lower() if isinstance(value, bool) else str(value)
        for key, value in options.items()
        if value is not None
    }


class PrerecordedClient(PrerecordedHandler):
    """Client for synchronous transcription of a hosted recording."""

    def __init__(
        self,
        api_key: str,
        name: str = "prerecorded",
        endpoint: str = DEFAULT_PRERECORDED_ENDPOINT,
        request_timeout_s: float = 300.0,
    ):
        """
        Initialize the prerecorded transcription client.

        Args:
            api_key: Service API key (sent as "Authorization: Token <key>")
            name: Name of the client
            endpoint: Base URL of the service
            request_timeout_s: Total timeout for the transcription request
        """
        if not api_key:
            raise ValueError("api_key is required")

        super().__init__(name, endpoint.rstrip("/"))
        self.session: aiohttp.ClientSession | None = None
        self._api_key = api_key
        self._timeout = aiohttp.ClientTimeout(total=request_timeout_s)

    async def connect(self) -> None:
        if self.session is not None:
            return
        self.session = aiohttp.ClientSession(headers={"Authorization": f"Token {self._api_key}"})
        self._connected = True

    async def disconnect(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None
        self._connected = False

    async def health_check(self) -> bool:
        return self.session is not None and not self.session.closed

    async def transcribe_url(self, url: str, options: dict[str, Any]) -> dict[str, Any]:
        """Transcribe the audio at a URL and return the parsed response."""
        if not self.session:
            raise TranscriptionError(f"[{self.name}] Not connected; call connect() first")

        logger.info(f"[{self.name}] Requesting transcription for {url}")
        try:
            async with self.session.post(
                f"{self.endpoint}/v1/listen",
                params=encode_options(options),
                json={"url": url},
                timeout=self._timeout,
            ) as response:
                payload = parse_body(await response.text())
                if not 200 <= response.status < 300:
                    logger.error(
                        f"[{self.name}] Error in transcription | Status: {response.status} "
                        f"| Details: {payload}"
                    )
                    raise TranscriptionError(
                        f"Transcription failed (HTTP {response.status})",
                        status=response.status,
                        payload=payload,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"[{self.name}] Error in transcription | Details: {e}")
            raise TranscriptionError(f"Transcription failed: {e}") from e

        if not isinstance(payload, dict):
            raise TranscriptionError(f"Unexpected transcription response: {payload!r}")
        return payload
