"""
This module defines the core domain models for the application.

These classes represent the pure, technology-agnostic entities and data
structures that the application's business logic operates on.
"""

import dataclasses
import enum
from datetime import datetime
from pathlib import Path

from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Mapping, Tuple

# A single CSV row, keyed by header column. Values are never coerced.
Record = Dict[str, str]

# Label values of one metric sample, ordered like MetricSpec.labelnames.
LabelKey = Tuple[str, ...]

# Cache layout: 'posts-2024-01-01.csv.gz' extracts to 'posts-2024-01-01.csv';
# files being written carry an extra '.part' suffix until complete.
ARCHIVE_SUFFIX = ".gz"
PART_SUFFIX = ".part"


# --- Domain Models ---

class DatasetType(str, enum.Enum):
    """The bulk-data categories published by the dump listing."""

    POSTS = "posts"
    POOLS = "pools"
    TAGS = "tags"
    TAG_ALIASES = "tag_aliases"
    TAG_IMPLICATIONS = "tag_implications"
    WIKI_PAGES = "wiki_pages"


@dataclasses.dataclass(frozen=True)
class CatalogEntry:
    """
    A dump file advertised by the remote listing.

    `date` is the zero-padded ISO date taken from the filename, so comparing
    it as a string compares it chronologically.
    """

    dataset_type: str
    filename: str
    date: str


@dataclasses.dataclass(frozen=True)
class CacheFile:
    """A dump file on local storage, either the archive or its extraction."""

    dataset_type: str
    path: Path
    compressed: bool


@dataclasses.dataclass(frozen=True)
class ProgressSnapshot:
    """A progress observation emitted while streaming a dump."""

    rows_processed: int
    estimated_rows: int
    percent: float


@dataclasses.dataclass(frozen=True)
class IngestionReport:
    """Summary of one streaming pass over a cached dump."""

    dataset_type: str
    path: Path
    rows: int
    failed_rows: int


@dataclasses.dataclass(frozen=True)
class MetricSpec:
    """Declaration of a gauge published through a MetricsSink."""

    name: str
    documentation: str
    labelnames: Tuple[str, ...] = ()


@dataclasses.dataclass(frozen=True)
class PopularTag:
    """A tag and its post count as reported by the live API."""

    name: str
    post_count: int


@dataclasses.dataclass(frozen=True)
class ArtistPost:
    """The scoring fields of a post returned by a live tag search."""

    id: int
    score: int
    fav_count: int
    created_at: datetime


# --- Ports (Interfaces) ---

class CatalogProvider(ABC):
    """A port for any listing of available dump files."""

    @abstractmethod
    async def latest_entries(self) -> List[CatalogEntry]:
        """Returns the newest entry for every dataset type in the listing."""
        pass

    @abstractmethod
    def url_for(self, filename: str) -> str:
        """Returns the download URL of a listed file."""
        pass


class Downloader(ABC):
    """A port for any file downloader."""

    @abstractmethod
    async def download(self, url: str, destination: Path) -> Path:
        """Downloads a single file to a destination path."""
        pass


class Extractor(ABC):
    """A port for decompressing a downloaded archive."""

    @abstractmethod
    async def extract(self, archive: CacheFile) -> CacheFile:
        """
        Decompresses an archive next to itself.
        Raises CorruptArchiveError if the archive is truncated or damaged.
        """
        pass


class RecordReader(ABC):
    """A port for streaming the records of a decompressed dump."""

    @abstractmethod
    def estimate_rows(self, path: Path) -> int:
        """Approximates the number of data rows, for progress only."""
        pass

    @abstractmethod
    def records(self, path: Path) -> Iterator[Record]:
        """Lazily yields the records of a file in order."""
        pass


class MetricsSink(ABC):
    """A port for the gauges the exporter publishes."""

    @abstractmethod
    def declare(self, spec: MetricSpec):
        """Registers a metric. Declaring the same spec twice is a no-op."""
        pass

    @abstractmethod
    def replace(self, name: str, samples: Mapping[LabelKey, float]):
        """Replaces every sample of a metric with `samples`."""
        pass


class LeaderboardSource(ABC):
    """A port for the site's live search API."""

    @abstractmethod
    async def popular_tags(self, page: int, limit: int) -> List[PopularTag]:
        """Returns one page of general tags ordered by post count."""
        pass

    @abstractmethod
    async def posts_for(
        self, tags: str, page: int, limit: int
    ) -> List[ArtistPost]:
        """Returns one page of posts matching a tag query."""
        pass


def extracted_path(archive_path: Path) -> Path:
    """Returns the sibling an archive decompresses into."""
    if archive_path.suffix != ARCHIVE_SUFFIX:
        raise ValueError(f"{archive_path.name} is not a gzip archive")
    return archive_path.with_suffix("")
