"""Shared pytest fixtures for dump_exporter tests."""

import gzip
from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from dump_exporter.infrastructure.metrics import PrometheusMetricsSink


@pytest.fixture
def registry() -> CollectorRegistry:
    """Return a registry private to the test."""
    return CollectorRegistry()


@pytest.fixture
def sink(registry) -> PrometheusMetricsSink:
    """Return a sink publishing into the private registry, unprefixed."""
    return PrometheusMetricsSink(registry=registry)


@pytest.fixture
def write_gzip():
    """Return a helper that gzips bytes into a file and returns its path."""

    def _write(path: Path, content: bytes) -> Path:
        path.write_bytes(gzip.compress(content))
        return path

    return _write
