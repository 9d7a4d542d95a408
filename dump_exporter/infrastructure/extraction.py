"""
Infrastructure adapter for decompressing downloaded dump archives.
"""

import asyncio
import gzip
import logging
import shutil
import zlib
from pathlib import Path

from ..application.domain import (
    PART_SUFFIX,
    CacheFile,
    Extractor,
    extracted_path,
)
from ..application.exceptions import CorruptArchiveError

# Signals of a truncated or damaged gzip stream.
_CORRUPTION_ERRORS = (EOFError, zlib.error, gzip.BadGzipFile)


class GzipExtractor(Extractor):
    """An adapter that implements the Extractor port for gzip archives."""

    def __init__(self, chunk_size: int = 1024 * 1024):
        """Initializes the extractor."""
        self.logger = logging.getLogger(self.__class__.__name__)
        self.chunk_size = chunk_size

    def _blocking_extract(self, source_path: Path, dest_path: Path):
        """
        Streams the archive into a '.part' file and renames it on success.

        The partial output is always removed on failure, since the presence
        of the decompressed file is what marks a dump as ready.
        """
        part_path = dest_path.with_suffix(dest_path.suffix + PART_SUFFIX)
        try:
            with gzip.open(source_path, "rb") as in_fh:
                with open(part_path, "wb") as out_fh:
                    shutil.copyfileobj(in_fh, out_fh, self.chunk_size)
            part_path.rename(dest_path)
        except _CORRUPTION_ERRORS as e:
            raise CorruptArchiveError(
                f"Archive {source_path.name} is corrupted: {e}"
            ) from e
        finally:
            part_path.unlink(missing_ok=True)

    async def extract(self, archive: CacheFile) -> CacheFile:
        """
        Guarantee the decompressed file exists, extracting only if necessary.

        This public method fulfills the Extractor port contract. It handles
        the idempotency check and delegates the blocking decompression to a
        separate thread to avoid blocking the async event loop.

        Args:
            archive: The compressed CacheFile to decompress.

        Returns:
            A CacheFile for the decompressed sibling.

        Raises:
            CorruptArchiveError: If the archive is truncated or damaged.
            OSError: For any other failure, unchanged.
        """

        destination = extracted_path(archive.path)

        if destination.exists():
            self.logger.info(
                f"File {destination.name} already extracted. Skipping."
            )
        else:
            self.logger.info(f"Extracting {archive.path.name}...")
            await asyncio.to_thread(
                self._blocking_extract, archive.path, destination
            )
            self.logger.info(f"Finished extracting {destination.name}")

        return CacheFile(
            dataset_type=archive.dataset_type,
            path=destination,
            compressed=False,
        )
