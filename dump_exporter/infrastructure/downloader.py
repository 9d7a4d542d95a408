"""HTTP implementation of the Downloader port."""

import asyncio
import contextlib
from pathlib import Path
from typing import AsyncGenerator, Generator, Optional

import httpx
from tqdm import tqdm

from ..application.domain import PART_SUFFIX, Downloader
from ..application.exceptions import DownloadError

from .base_client import BaseClient
from .decorators import retry_on_network_error


class HttpDownloader(BaseClient, Downloader):
    """A downloader that fetches files via HTTP atomically."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str,
        timeout: int,
        chunk_size: int,
    ):
        """Initializes the downloader adapter."""
        super().__init__(client, user_agent)
        self.timeout = timeout
        self.chunk_size = chunk_size

    @contextlib.contextmanager
    def _atomic_target(self, destination: Path) -> Generator[Path, None, None]:
        """Provides a temporary '.part' path and ensures cleanup."""
        part_path = destination.with_suffix(destination.suffix + PART_SUFFIX)
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            yield part_path
        finally:
            part_path.unlink(missing_ok=True)

    @retry_on_network_error
    async def _probe_size(self, url: str) -> Optional[int]:
        """Reads Content-Length with a HEAD request, for progress only."""
        response = await self.client.head(
            url, headers=self.headers, timeout=self.timeout
        )
        response.raise_for_status()
        length = response.headers.get("Content-Length")
        return int(length) if length and length.isdigit() else None

    async def _stream_chunks(
        self, response: httpx.Response, target_file: Path,
    ) -> AsyncGenerator[int, None]:
        """Produce byte chunks from a response and write them to a file."""
        with open(target_file, "wb") as f:
            async for chunk in response.aiter_bytes(self.chunk_size):
                await asyncio.to_thread(f.write, chunk)
                yield len(chunk)

    async def _consume_stream_with_progress(
        self,
        stream: AsyncGenerator[int, None],
        total_size: Optional[int],
        desc: str,
    ):
        """Consume the byte stream to update a TQDM progress bar."""

        with tqdm(
            total=total_size, unit="B", unit_scale=True, desc=desc
        ) as progress_bar:
            async for progress in stream:
                progress_bar.update(progress)

        if total_size and progress_bar.n != total_size:
            raise DownloadError(
                f"Size mismatch: {progress_bar.n} != {total_size}"
            )

    async def _stream_from_network(
        self, url: str, target_file: Path, total_size: Optional[int]
    ):
        """Manage the network request and the streaming process."""
        async with self.client.stream(
            "GET", url, timeout=self.timeout, headers=self.headers
        ) as response:
            response.raise_for_status()
            stream = self._stream_chunks(response, target_file)
            await self._consume_stream_with_progress(
                stream, total_size, target_file.name
            )

    @retry_on_network_error
    async def _execute_atomic_download(
        self, url: str, destination: Path, total_size: Optional[int]
    ):
        """Orchestrate the entire atomic download operation."""
        with self._atomic_target(destination) as part_path:
            await self._stream_from_network(url, part_path, total_size)
            part_path.rename(destination)

    async def download(self, url: str, destination: Path) -> Path:
        """
        Guarantee that the file exists, downloading only if necessary.

        This is the public method that fulfills the Downloader port contract.
        An existing destination is trusted as complete and causes no network
        traffic. Otherwise the size is probed first; a failing probe aborts
        the download. Bytes are streamed into a '.part' sibling that is only
        renamed on success, so a failed download leaves nothing behind.

        Args:
            url: The remote resource to fetch.
            destination: The final desired path for the file.

        Returns:
            The destination path.

        Raises:
            DownloadError: If probing or streaming the file fails.
        """

        if destination.exists():
            self.logger.info(
                f"Archive {destination.name} already exists. Skipping download."
            )
            return destination

        try:
            total_size = await self._probe_size(url)
            if total_size:
                self.logger.info(
                    f"Downloading {url} ({total_size / 1024 / 1024:.2f} MB)..."
                )
            else:
                self.logger.info(f"Downloading {url}...")
            await self._execute_atomic_download(url, destination, total_size)
        except httpx.HTTPError as e:
            raise DownloadError(f"Failed to download {url}: {e}") from e

        self.logger.info(f"Finished downloading {destination.name}")
        return destination
