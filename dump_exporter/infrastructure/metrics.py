"""Prometheus implementation of the MetricsSink port."""

import logging
from typing import Dict, Mapping, Optional, Set

from prometheus_client import CollectorRegistry, Gauge, start_http_server

from ..application.domain import LabelKey, MetricSpec, MetricsSink


class PrometheusMetricsSink(MetricsSink):
    """Publishes every metric as a gauge in a Prometheus registry."""

    def __init__(
        self,
        namespace: str = "",
        registry: Optional[CollectorRegistry] = None,
    ):
        """
        Initializes the sink.

        Args:
            namespace: Prefix added to every metric name.
            registry: Registry to publish into. A private one is created
                      when omitted, so separate sinks never collide.
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.namespace = namespace
        self.registry = registry if registry is not None else CollectorRegistry()
        self._gauges: Dict[str, Gauge] = {}
        self._specs: Dict[str, MetricSpec] = {}
        # Label sets currently exposed per metric.
        self._published: Dict[str, Set[LabelKey]] = {}

    def declare(self, spec: MetricSpec):
        existing = self._specs.get(spec.name)
        if existing is not None:
            if existing != spec:
                raise ValueError(
                    f"Metric {spec.name} already declared as {existing}"
                )
            return
        self._specs[spec.name] = spec
        self._gauges[spec.name] = Gauge(
            spec.name,
            spec.documentation,
            labelnames=spec.labelnames,
            namespace=self.namespace,
            registry=self.registry,
        )

    def _gauge(self, name: str) -> Gauge:
        try:
            return self._gauges[name]
        except KeyError:
            raise KeyError(f"Metric {name} was never declared") from None

    def replace(self, name: str, samples: Mapping[LabelKey, float]):
        """
        Overwrites a metric with a fresh snapshot.

        Label combinations missing from `samples` disappear from the
        exposition instead of keeping their previous value. New values are
        written before stale label sets are removed, so a concurrent scrape
        never sees the metric empty.
        """
        gauge = self._gauge(name)
        if not self._specs[name].labelnames:
            gauge.set(sum(samples.values()))
            return
        current = {tuple(str(label) for label in labels) for labels in samples}
        for labels, value in samples.items():
            gauge.labels(*labels).set(value)
        for labels in self._published.get(name, set()) - current:
            gauge.remove(*labels)
        self._published[name] = current
        self.logger.debug(f"Published {len(samples)} samples for {name}")

    def serve(self, port: int, addr: str = "0.0.0.0"):
        """Exposes the registry over HTTP in the Prometheus text format."""
        start_http_server(port, addr=addr, registry=self.registry)
        self.logger.info(f"Exporter running at http://{addr}:{port}/metrics")
