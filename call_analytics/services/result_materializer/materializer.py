"""
Download of a completed job's output artifacts into a local directory.

Artifacts are fetched one at a time in listing order. Each local file is
written inside a scoped aiofiles context; if a download aborts, the partially
written file is removed and the remaining downloads are skipped.
"""

import asyncio
import logging
from functools import partial
from pathlib import Path

import aiofiles

from call_analytics.exceptions import DownloadError
from call_analytics.server.services import BatchJobHandler
from call_analytics.utils import is_safe_artifact_name

logger = logging.getLogger(__name__)


class ResultMaterializer:
    """Produces local copies of every artifact at a job's output location."""

    def __init__(self, handler: BatchJobHandler, destination_dir: str | Path):
        """
        Args:
            handler: Batch job handler whose job has Completed
            destination_dir: Directory receiving one file per artifact
        """
        self.handler = handler
        self.destination_dir = Path(destination_dir)

    async def materialize(self) -> list[Path]:
        """
        Download every listed artifact.

        Returns:
            Paths written, in listing order

        Raises:
            DownloadError: If the listing, any download, or any local write fails
        """
        logger.info("Downloading results...")
        await self._ensure_destination()

        files = await self.handler.list_output_files()
        written: list[Path] = []

        for output in files:
            if not is_safe_artifact_name(output.name):
                logger.warning(f"Skipping artifact with unsafe name: {output.name!r}")
                continue

            path = self.destination_dir / output.name
            await self._download(output.name, path)
            written.append(path)
            logger.info(f"Downloaded: {output.name}")

        logger.info(f"All files downloaded successfully ({len(written)} files)")
        return written

    # -------------------------------------------------------------- #
    # Private Methods
    # -------------------------------------------------------------- #

    async def _ensure_destination(self) -> None:
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(
                None, partial(self.destination_dir.mkdir, parents=True, exist_ok=True)
            )
        except OSError as e:
            raise DownloadError(
                f"Cannot create destination directory {self.destination_dir}: {e}"
            ) from e

    async def _download(self, name: str, path: Path) -> None:
        opened = False
        completed = False
        try:
            async with self.handler.open_output_file(name) as stream:
                async with aiofiles.open(path, "wb") as f:
                    opened = True
                    async for chunk in stream:
                        await f.write(chunk)
            completed = True
        except OSError as e:
            raise DownloadError(f"Cannot write {path}: {e}") from e
        finally:
            if opened and not completed:
                await self._discard_partial(path)

    async def _discard_partial(self, path: Path) -> None:
        loop = asyncio.get_event_loop()
        try:
            await loop.run_in_executor(None, partial(path.unlink, missing_ok=True))
            logger.warning(f"Removed partially downloaded file: {path}")
        except OSError as e:
            logger.error(f"Could not remove partially downloaded file {path}: {e}")
