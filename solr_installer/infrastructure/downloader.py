"""HTTP implementation of the Downloader port."""

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import AsyncGenerator, Generator, Optional

import httpx
from tqdm import tqdm

from ..application.domain import Downloader
from ..application.exceptions import DownloadError


class HttpDownloader(Downloader):
    """A downloader that fetches files via HTTP atomically."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        connect_timeout: float,
        chunk_size: int,
        logger: Optional[logging.Logger] = None,
    ):
        """Initializes the downloader adapter."""
        self.client = client
        # Archives are large and mirrors slow: only connecting is bounded.
        self.timeout = httpx.Timeout(None, connect=connect_timeout)
        self.chunk_size = chunk_size
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    @contextlib.contextmanager
    def _atomic_target(self, destination: Path) -> Generator[Path, None, None]:
        """Provides a temporary '.part' path and ensures cleanup."""
        part_path = destination.with_suffix(destination.suffix + ".part")
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            yield part_path
        finally:
            part_path.unlink(missing_ok=True)

    async def _stream_chunks(
        self, response: httpx.Response, target_file: Path,
    ):
        """Produce byte chunks from a response and write them to a file."""
        # Raw bytes: a Content-Encoding on a .tgz must not be decoded, or the
        # cached file no longer matches its published checksum.
        with open(target_file, "wb") as f:
            async for chunk in response.aiter_raw(self.chunk_size):
                await asyncio.to_thread(f.write, chunk)
                yield len(chunk)

    async def _consume_stream_with_progress(
        self,
        stream: AsyncGenerator[int, None],
        total_size: int,
        desc: str,
    ):
        """Consume the byte stream to update a TQDM progress bar."""

        with tqdm(
            total=total_size or None, unit="B", unit_scale=True, desc=desc
        ) as progress_bar:
            async for progress in stream:
                progress_bar.update(progress)

        if total_size != 0 and progress_bar.n != total_size:
            raise DownloadError(
                f"Size mismatch: {progress_bar.n} != {total_size}"
            )
        if progress_bar.n == 0:
            raise DownloadError(f"Empty response body for {desc}")

    async def _stream_from_network(self, uri: str, target_file: Path):
        """Manage the network request and the streaming process."""
        async with self.client.stream(
            "GET", uri, timeout=self.timeout, follow_redirects=True
        ) as response:
            response.raise_for_status()
            total_size = int(response.headers.get("Content-Length", 0) or 0)
            stream = self._stream_chunks(response, target_file)
            await self._consume_stream_with_progress(
                stream, total_size, target_file.name
            )

    async def _execute_atomic_download(self, uri: str, destination: Path):
        """Orchestrate the entire atomic download operation."""
        self.logger.info(f"Downloading {destination.name} from {uri}...")
        with self._atomic_target(destination) as part_path:
            try:
                await self._stream_from_network(uri, part_path)
            except httpx.HTTPError as e:
                raise DownloadError(
                    f"Failed to download {uri}: {e}"
                ) from e
            part_path.rename(destination)
        self.logger.info(f"Finished downloading {destination.name}")

    async def download(self, uri: str, destination: Path) -> Path:
        """
        Guarantee that the archive file exists, downloading only if necessary.

        This is the public method that fulfills the Downloader port contract.
        It handles the idempotency check by verifying if a non-empty
        destination file already exists before delegating the actual work to
        private methods.

        Args:
            uri: Where to fetch the file from.
            destination: The final desired path for the file.

        Returns:
            The path of the file on disk.

        Raises:
            DownloadError: If streaming download to file fails.
        """

        if destination.is_file() and destination.stat().st_size > 0:
            self.logger.info(
                f"Archive {destination.name} already exists. Skipping download."
            )
        else:
            await self._execute_atomic_download(uri, destination)

        return destination
