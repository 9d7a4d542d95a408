"""
The core application services, containing pure business logic.

This module defines the pipeline (DumpPipeline) that brings a single dump
into the local cache, the cache facade (DumpCacheService) offered to
collaborators, and the two cycle orchestrators: DumpExportService for the
bulk dumps and LeaderboardService for the live API.
"""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from tqdm.contrib.logging import logging_redirect_tqdm

from .aggregation import AggregatorFactory
from .domain import (
    ARCHIVE_SUFFIX,
    PART_SUFFIX,
    ArtistPost,
    CacheFile,
    CatalogEntry,
    CatalogProvider,
    DatasetType,
    Downloader,
    Extractor,
    IngestionReport,
    LabelKey,
    LeaderboardSource,
    MetricSpec,
    MetricsSink,
    ProgressSnapshot,
    Record,
    RecordReader,
    extracted_path,
)
from .exceptions import (
    APIError,
    CacheMissError,
    CorruptArchiveError,
    ExporterError,
    RetriesExhaustedError,
)

logger = logging.getLogger(__name__)

RecordConsumer = Callable[[Record], None]
ProgressObserver = Callable[[ProgressSnapshot], None]


class DumpPipeline:
    """Encapsulates fetching and extracting a single dump."""

    def __init__(
        self,
        catalog: CatalogProvider,
        downloader: Downloader,
        extractor: Extractor,
        cache_dir: Path,
        max_attempts: int = 3,
    ):
        """Initializes the pipeline with necessary dependencies (ports)."""
        self.logger = logging.getLogger(self.__class__.__name__)
        self.catalog = catalog
        self.downloader = downloader
        self.extractor = extractor
        self.cache_dir = Path(cache_dir)
        self.max_attempts = max(1, max_attempts)

    async def run(self, entry: CatalogEntry) -> CacheFile:
        """Executes the sequential steps for one dump.

        A corrupt archive is deleted and fetched again, up to
        `max_attempts` extractions in total.

        Args:
            entry: The catalog entry of the dump to bring in.

        Returns:
            The decompressed CacheFile.

        Raises:
            DownloadError: If the archive cannot be fetched.
            RetriesExhaustedError: If every extraction attempt hit a
                                   corrupt archive.
        """

        url = self.catalog.url_for(entry.filename)
        archive_path = self.cache_dir / entry.filename
        archive = CacheFile(
            dataset_type=entry.dataset_type, path=archive_path, compressed=True
        )

        destination = extracted_path(archive_path)
        if destination.exists():
            self.logger.info(
                f"File {destination.name} already present. Skipping."
            )
            return CacheFile(
                dataset_type=entry.dataset_type,
                path=destination,
                compressed=False,
            )

        self.logger.info(f"Starting pipeline for {entry.filename}...")

        for attempt in range(1, self.max_attempts + 1):
            # Step 1: Download (no-op when the archive is already cached)
            await self.downloader.download(url, archive_path)

            # Step 2: Extract (CacheFile.gz -> CacheFile)
            try:
                extracted = await self.extractor.extract(archive)
            except CorruptArchiveError as e:
                self.logger.warning(
                    f"Corrupted file detected: {archive_path.name} "
                    f"(attempt {attempt}/{self.max_attempts}): {e}"
                )
                archive_path.unlink(missing_ok=True)
                continue

            self.logger.info(f"Dump {extracted.path.name} is ready.")
            return extracted

        raise RetriesExhaustedError(
            f"{entry.filename} was still corrupt after "
            f"{self.max_attempts} attempts"
        )


class DumpCacheService:
    """
    Facade over the local dump cache.

    The cache is a flat directory holding archives and their decompressed
    siblings. A decompressed file's presence is the only freshness marker.
    """

    def __init__(
        self,
        catalog: CatalogProvider,
        pipeline: DumpPipeline,
        cache_dir: Path,
        reader: RecordReader,
        progress_interval: int = 1_000_000,
    ):
        """Initializes the service and creates the cache directory."""
        self.logger = logging.getLogger(self.__class__.__name__)
        self.catalog = catalog
        self.pipeline = pipeline
        self.cache_dir = Path(cache_dir)
        self.reader = reader
        self.progress_interval = progress_interval
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    async def ensure_latest(self) -> List[CacheFile]:
        """
        Brings the newest dump of every listed type into the cache.

        A failure for one type is logged and does not stop the others.

        Returns:
            The decompressed files that are ready.

        Raises:
            CatalogError: If the listing itself cannot be fetched.
        """

        entries = await self.catalog.latest_entries()
        if not entries:
            self.logger.info("No dumps found in the listing.")
            return []

        ready = []
        for entry in entries:
            try:
                ready.append(await self.pipeline.run(entry))
            except ExporterError as e:
                self.logger.error(f"Failed to fetch {entry.filename}: {e}")

        self.logger.info(
            f"{len(ready)} of {len(entries)} latest dumps downloaded "
            f"and extracted."
        )
        return ready

    def _is_extracted(self, path: Path) -> bool:
        return path.is_file() and path.suffix not in (
            ARCHIVE_SUFFIX, PART_SUFFIX
        )

    def cached_files(self) -> List[CacheFile]:
        """Lists the decompressed dumps currently in the cache."""
        return [
            CacheFile(
                dataset_type=path.name.split("-")[0],
                path=path,
                compressed=False,
            )
            for path in sorted(self.cache_dir.iterdir())
            if self._is_extracted(path)
        ]

    def latest_cached(self, dataset_type: DatasetType) -> CacheFile:
        """
        Returns the newest decompressed dump of a type.

        Raises:
            CacheMissError: If no dump of that type is cached.
        """
        prefix = f"{dataset_type.value}-"
        candidates = [
            cache_file
            for cache_file in self.cached_files()
            if cache_file.path.name.startswith(prefix)
        ]
        if not candidates:
            raise CacheMissError(
                f"No {dataset_type.value} files found in {self.cache_dir}"
            )
        return max(candidates, key=lambda cache_file: cache_file.path.name)

    def clear(self) -> int:
        """Deletes every file in the cache directory and returns the count."""
        removed = 0
        for path in self.cache_dir.iterdir():
            if path.is_file():
                path.unlink()
                removed += 1
        self.logger.info(f"Removed {removed} files from {self.cache_dir}")
        return removed

    def _log_progress(self, dataset_type: DatasetType) -> ProgressObserver:
        def observe(progress: ProgressSnapshot):
            self.logger.info(
                f"{dataset_type.value}: {progress.rows_processed} of "
                f"~{progress.estimated_rows} rows ({progress.percent:.2f}%)"
            )
        return observe

    def _blocking_ingest(
        self,
        cache_file: CacheFile,
        consumer: RecordConsumer,
        on_progress: ProgressObserver,
    ) -> IngestionReport:
        """Streams every record of a file through the consumer."""

        estimated = self.reader.estimate_rows(cache_file.path)
        self.logger.info(
            f"Streaming {cache_file.path.name} (~{estimated} rows)..."
        )

        def progress(rows: int) -> ProgressSnapshot:
            percent = rows / estimated * 100 if estimated > 0 else 0.0
            return ProgressSnapshot(rows, estimated, percent)

        rows = 0
        failed = 0
        for record in self.reader.records(cache_file.path):
            rows += 1
            try:
                consumer(record)
            except Exception as e:
                failed += 1
                self.logger.warning(
                    f"Failed to process row {rows} of "
                    f"{cache_file.path.name}: {e!r}"
                )
            if rows % self.progress_interval == 0:
                on_progress(progress(rows))

        if rows % self.progress_interval:
            on_progress(progress(rows))

        return IngestionReport(
            dataset_type=cache_file.dataset_type,
            path=cache_file.path,
            rows=rows,
            failed_rows=failed,
        )

    async def ingest(
        self,
        dataset_type: DatasetType,
        consumer: RecordConsumer,
        on_progress: Optional[ProgressObserver] = None,
    ) -> IngestionReport:
        """
        Streams the newest cached dump of a type through `consumer`.

        Records are handed over one at a time, in file order. An exception
        raised by the consumer is logged and counted, and streaming goes on
        with the next record.

        Args:
            dataset_type: The dump to read.
            consumer: Called once per record.
            on_progress: Receives a ProgressSnapshot every
                         `progress_interval` rows and after the last row.
                         Progress is logged when omitted.

        Returns:
            An IngestionReport with row and failure counts.

        Raises:
            CacheMissError: If no dump of that type is cached.
        """

        cache_file = self.latest_cached(dataset_type)
        report = await asyncio.to_thread(
            self._blocking_ingest,
            cache_file,
            consumer,
            on_progress or self._log_progress(dataset_type),
        )

        self.logger.info(
            f"Finished {cache_file.path.name}: {report.rows} rows, "
            f"{report.failed_rows} failed."
        )
        return report


class DumpExportService:
    """Orchestrates one full dump cycle: refresh, stream, publish."""

    def __init__(
        self,
        cache: DumpCacheService,
        aggregators: AggregatorFactory,
        sink: MetricsSink,
        dataset_types: Iterable[DatasetType] = tuple(DatasetType),
    ):
        """Initializes the service."""
        self.cache = cache
        self.aggregators = aggregators
        self.sink = sink
        self.dataset_types = list(dataset_types)

    async def run_cycle(self) -> List[IngestionReport]:
        """
        Recomputes every dataset metric from the newest dumps.

        Types are processed strictly one after another. A type without a
        cached dump is logged and skipped. Any other failure aborts the
        cycle: metrics already published keep their new values and the
        rest keep those of the previous cycle.
        """

        logger.info("Starting dump cycle...")

        with logging_redirect_tqdm():
            await self.cache.ensure_latest()

        reports = []
        for dataset_type in self.dataset_types:
            aggregator = self.aggregators.create(dataset_type)
            try:
                report = await self.cache.ingest(
                    dataset_type, aggregator.consume
                )
            except CacheMissError as e:
                logger.error(f"Skipping {dataset_type.value}: {e}")
                continue
            aggregator.flush(self.sink)
            reports.append(report)

        logger.info("Dump cycle completed.")
        return reports


class LeaderboardService:
    """Polls the live API for popular tags and monitored artists."""

    TAG_POSTS = MetricSpec(
        "post_count_tags", "Number of posts per tag", ("tag",)
    )
    ARTIST_TOTAL = MetricSpec(
        "posts_by_artist_total", "Number of posts per artist", ("artist",)
    )
    ARTIST_SCORE = MetricSpec(
        "artist_posts_score", "Score per artist posts", ("artist", "post_id")
    )
    ARTIST_FAV = MetricSpec(
        "artist_posts_fav", "fav_count per artist posts", ("artist", "post_id")
    )
    LATEST_SCORE = MetricSpec(
        "latest_post_score", "Score per artist latest post",
        ("artist", "post_id"),
    )
    LATEST_FAV = MetricSpec(
        "latest_post_fav", "fav_count per artist latest post",
        ("artist", "post_id"),
    )

    def __init__(
        self,
        source: LeaderboardSource,
        sink: MetricsSink,
        monitored_artists: Union[str, Iterable[str]] = (),
        pages_to_scan: int = 3,
        items_per_page: int = 10,
        page_delay_seconds: float = 0.3,
    ):
        """
        Initializes the service and declares its metrics.

        `monitored_artists` is a list of tag names or one comma-separated
        string, the form an environment variable override arrives in.
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.source = source
        self.sink = sink
        if isinstance(monitored_artists, str):
            monitored_artists = monitored_artists.split(",")
        self.monitored_artists = [
            artist.strip() for artist in monitored_artists if artist.strip()
        ]
        self.pages_to_scan = pages_to_scan
        self.items_per_page = items_per_page
        self.page_delay_seconds = page_delay_seconds

        for spec in (
            self.TAG_POSTS, self.ARTIST_TOTAL, self.ARTIST_SCORE,
            self.ARTIST_FAV, self.LATEST_SCORE, self.LATEST_FAV,
        ):
            self.sink.declare(spec)

    async def scrape_popular_tags(self):
        """Publishes the post count of the most used general tags."""
        found = []
        for page in range(1, self.pages_to_scan + 1):
            try:
                tags = await self.source.popular_tags(page, self.items_per_page)
            except APIError as e:
                self.logger.error(f"Failed to search for tags: {e}")
                continue
            if not tags:
                break
            found.extend(tags)
            await asyncio.sleep(self.page_delay_seconds)

        self.sink.replace(
            self.TAG_POSTS.name, {(tag.name,): tag.post_count for tag in found}
        )
        self.logger.info(f"Published post counts of {len(found)} tags.")

    async def _artist_posts(self, artist: str) -> List[ArtistPost]:
        """Collects up to `pages_to_scan` pages of an artist's posts."""
        found = []
        for page in range(1, self.pages_to_scan + 1):
            try:
                posts = await self.source.posts_for(
                    artist, page, self.items_per_page
                )
            except APIError as e:
                self.logger.error(f"Failed to search posts of {artist}: {e}")
                continue
            if not posts:
                break
            found.extend(posts)
            await asyncio.sleep(self.page_delay_seconds)
        return found

    async def scrape_monitored_artists(self):
        """Publishes post counts, scores and favourites of tracked artists."""
        if not self.monitored_artists:
            self.logger.warning("No artists to monitor.")
            return

        samples: Dict[str, Dict[LabelKey, float]] = {
            spec.name: {}
            for spec in (
                self.ARTIST_TOTAL, self.ARTIST_SCORE, self.ARTIST_FAV,
                self.LATEST_SCORE, self.LATEST_FAV,
            )
        }

        for artist in self.monitored_artists:
            posts = await self._artist_posts(artist)
            samples[self.ARTIST_TOTAL.name][(artist,)] = len(posts)

            for post in posts:
                key = (artist, str(post.id))
                samples[self.ARTIST_SCORE.name][key] = post.score
                samples[self.ARTIST_FAV.name][key] = post.fav_count

            if posts:
                latest = max(posts, key=lambda post: post.created_at)
                key = (artist, str(latest.id))
                samples[self.LATEST_SCORE.name][key] = latest.score
                samples[self.LATEST_FAV.name][key] = latest.fav_count

        for name, values in samples.items():
            self.sink.replace(name, values)
        self.logger.info(
            f"Published posts of {len(self.monitored_artists)} artists."
        )

    async def run_cycle(self):
        """Runs every scrape task; one failing task does not stop the next."""
        tasks = [
            ("scrape_popular_tags", self.scrape_popular_tags),
            ("scrape_monitored_artists", self.scrape_monitored_artists),
        ]
        for name, task in tasks:
            try:
                await task()
            except ExporterError as e:
                self.logger.error(f"Failed to run {name}: {e}")

        self.logger.info("Scrape tasks performed.")
