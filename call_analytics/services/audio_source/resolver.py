"""
Audio source resolution.

Turns an audio specifier (HTTP(S) URL or local path) into a byte stream and
an inferred file name. The underlying response or file handle stays open for
as long as the caller holds the context, and is closed on exit.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiohttp

from call_analytics.exceptions import AudioSourceNotFoundError, SourceUnavailableError
from call_analytics.utils import DEFAULT_AUDIO_NAME, infer_file_name, is_remote_source

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass
class AudioSource:
    """
    A readable audio stream and its inferred name.

    The stream is single-use: it is consumed exactly once, by the upload.
    """

    name: str
    stream: AsyncIterator[bytes]
    location: str


class AudioSourceResolver:
    """Opens audio from a remote URL or from local storage."""

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        request_timeout_s: float = 60.0,
        default_name: str = DEFAULT_AUDIO_NAME,
    ):
        """
        Args:
            session: Session used for remote fetches; a private one is
                created per fetch when omitted
            chunk_size: Read size for both remote and local streams
            request_timeout_s: Connect / socket read timeout for remote fetches
            default_name: Name used when the specifier has no path segment
        """
        self._session = session
        self.chunk_size = chunk_size
        self.default_name = default_name
        self._timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=request_timeout_s, sock_read=request_timeout_s
        )

    @asynccontextmanager
    async def open(self, specifier: str):
        """
        Open an audio source.

        Args:
            specifier: Absolute HTTP(S) URL or local file path

        Yields:
            AudioSource whose stream is valid until the context exits

        Raises:
            AudioSourceNotFoundError: If a local file does not exist
            SourceUnavailableError: If the source cannot be fetched or read
        """
        name = infer_file_name(specifier, self.default_name)

        if is_remote_source(specifier):
            async with self._open_remote(specifier) as stream:
                yield AudioSource(name=name, stream=stream, location=specifier)
        else:
            async with self._open_local(specifier) as stream:
                yield AudioSource(name=name, stream=stream, location=specifier)

    # -------------------------------------------------------------- #
    # Remote
    # -------------------------------------------------------------- #

    @asynccontextmanager
    async def _open_remote(self, url: str):
        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession()

        try:
            logger.info(f"Fetching audio from {url}")
            try:
                response = await session.get(url, timeout=self._timeout)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.error(f"Could not fetch audio from {url}: {e}")
                raise SourceUnavailableError(f"Could not fetch audio from {url}: {e}") from e

            try:
                if not 200 <= response.status < 300:
                    logger.error(f"Audio fetch from {url} returned HTTP {response.status}")
                    raise SourceUnavailableError(
                        f"Audio fetch from {url} returned HTTP {response.status}",
                        status=response.status,
                    )
                yield self._iter_remote(response, url)
            finally:
                response.release()
        finally:
            if owns_session:
                await session.close()

    async def _iter_remote(
        self, response: aiohttp.ClientResponse, url: str
    ) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.content.iter_chunked(self.chunk_size):
                yield chunk
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SourceUnavailableError(f"Audio stream from {url} interrupted: {e}") from e

    # -------------------------------------------------------------- #
    # Local
    # -------------------------------------------------------------- #

    @asynccontextmanager
    async def _open_local(self, specifier: str):
        path = Path(specifier).expanduser()

        loop = asyncio.get_event_loop()
        if not await loop.run_in_executor(None, path.is_file):
            raise AudioSourceNotFoundError(f"File not found: {specifier}")

        try:
            f = await aiofiles.open(path, "rb")
        except OSError as e:
            raise SourceUnavailableError(f"Cannot open audio file {specifier}: {e}") from e

        try:
            yield self._iter_local(f, specifier)
        finally:
            await f.close()

    async def _iter_local(self, f, specifier: str) -> AsyncIterator[bytes]:
        while True:
            try:
                chunk = await f.read(self.chunk_size)
            except OSError as e:
                raise SourceUnavailableError(f"Cannot read audio file {specifier}: {e}") from e
            if not chunk:
                break
            yield chunk
