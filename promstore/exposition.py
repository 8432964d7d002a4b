"""Expose stored metrics through prometheus_client."""
from typing import Iterator, List
import logging

from prometheus_client import CollectorRegistry, CONTENT_TYPE_LATEST, Metric, generate_latest

from promstore.errors import CorruptMetadata
from promstore.keys import MetricType
from promstore.models import MetricFamily

logger = logging.getLogger(__name__)

__all__ = ["CONTENT_TYPE_LATEST", "RedisCollector", "render", "to_prometheus"]


def to_prometheus(family: MetricFamily) -> Metric:
    """Convert a collected family into a prometheus_client Metric."""
    metric = Metric(family.name, family.help, family.type.value)
    for sample in family.samples:
        labels = dict(zip(family.label_names + sample.label_names, sample.label_values))
        name = sample.name
        if family.type is MetricType.COUNTER:
            # Metric strips "_total" from counter names; samples must carry it
            name = f"{metric.name}_total"
        metric.add_sample(name, labels, sample.value)
    return metric


class RedisCollector:
    """Custom collector reading every metric from a RedisStorage on scrape."""

    def __init__(self, storage):
        self.storage = storage

    def _families(self) -> List[MetricFamily]:
        try:
            return self.storage.collect()
        except CorruptMetadata as e:
            # Expose what could be read; the broken metrics are logged
            logger.error(f"Exposing partial result: {e}")
            return e.families

    def collect(self) -> Iterator[Metric]:
        for family in self._families():
            yield to_prometheus(family)


def render(storage) -> bytes:
    """Render everything in the store in the Prometheus text format."""
    registry = CollectorRegistry(auto_describe=False)
    registry.register(RedisCollector(storage))
    return generate_latest(registry)
