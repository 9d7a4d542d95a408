"""
Dependency Injection container for the dump_exporter component.

This container uses the `dependency-injector` library to wire together all
the components of the application, such as services and infrastructure adapters,
based on the application's configuration.
"""

from dependency_injector import containers, providers
import httpx

from ..application.aggregation import AggregatorFactory
from ..application.domain import (
    CatalogProvider,
    Downloader,
    Extractor,
    LeaderboardSource,
    MetricsSink,
    RecordReader,
)
from ..application.service import (
    DumpCacheService,
    DumpExportService,
    DumpPipeline,
    LeaderboardService,
)
from ..settings import settings

from .api_client import HttpLeaderboardSource
from .catalog import HtmlCatalogProvider
from .csv_stream import CsvRecordReader
from .downloader import HttpDownloader
from .extraction import GzipExtractor
from .metrics import PrometheusMetricsSink


class Container(containers.DeclarativeContainer):
    """DI container for wiring the application components."""

    config = providers.Object(settings)

    exporter = config.provided.exporter
    dumps = config.provided.dumps
    api = config.provided.api

    http_client = providers.Singleton(httpx.AsyncClient, follow_redirects=True)

    metrics_sink: providers.Singleton[MetricsSink] = providers.Singleton(
        PrometheusMetricsSink,
        namespace=config.provided.metrics.namespace,
    )

    catalog: providers.Factory[CatalogProvider] = providers.Factory(
        HtmlCatalogProvider,
        client=http_client,
        user_agent=exporter.user_agent,
        base_url=dumps.base_url,
        timeout=dumps.timeout,
    )

    downloader: providers.Factory[Downloader] = providers.Factory(
        HttpDownloader,
        client=http_client,
        user_agent=exporter.user_agent,
        timeout=dumps.timeout,
        chunk_size=dumps.chunk_size,
    )

    extractor: providers.Factory[Extractor] = providers.Factory(
        GzipExtractor,
        chunk_size=dumps.read_chunk_size,
    )

    reader: providers.Factory[RecordReader] = providers.Factory(
        CsvRecordReader,
        chunk_size=dumps.read_chunk_size,
        sample_count=dumps.row_sample_count,
        max_record_length=dumps.max_record_length,
    )

    dump_pipeline = providers.Factory(
        DumpPipeline,
        catalog=catalog,
        downloader=downloader,
        extractor=extractor,
        cache_dir=dumps.cache_dir,
        max_attempts=dumps.extract_max_attempts,
    )

    dump_cache = providers.Singleton(
        DumpCacheService,
        catalog=catalog,
        pipeline=dump_pipeline,
        cache_dir=dumps.cache_dir,
        reader=reader,
        progress_interval=dumps.progress_interval,
    )

    aggregators = providers.Factory(
        AggregatorFactory,
        tag_threshold=config.provided.thresholds.tags,
        source_threshold=config.provided.thresholds.sources,
    )

    dump_export_service = providers.Factory(
        DumpExportService,
        cache=dump_cache,
        aggregators=aggregators,
        sink=metrics_sink,
    )

    leaderboard_source: providers.Factory[LeaderboardSource] = providers.Factory(
        HttpLeaderboardSource,
        client=http_client,
        user_agent=exporter.user_agent,
        base_url=api.base_url,
        timeout=api.timeout,
    )

    leaderboard_service = providers.Factory(
        LeaderboardService,
        source=leaderboard_source,
        sink=metrics_sink,
        monitored_artists=api.monitored_artists,
        pages_to_scan=api.pages_to_scan,
        items_per_page=api.items_per_page,
        page_delay_seconds=api.page_delay_seconds,
    )
