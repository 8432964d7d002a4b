"""Redis-backed storage for counters, gauges and histograms."""
from contextlib import contextmanager
from typing import Dict, List, Optional, Tuple, Union
import logging
import math
import re

import redis
from prometheus_client.utils import floatToGoString
from pydantic import ValidationError

from promstore.commands import dispatch, is_first_write, to_command
from promstore.config import StorageConfig
from promstore.errors import CorruptMetadata, StorageUnavailable
from promstore.keys import (
    INF_BUCKET, META_FIELD, SUM_BUCKET, MetricType,
    decode_field_key, field_key, metric_keys_set, normalize_bucket, storage_key,
)
from promstore.models import (
    CounterUpdate, GaugeUpdate, HistogramUpdate, MetaRecord, MetricFamily, Sample,
)

logger = logging.getLogger(__name__)

# Histograms first, then gauges, then counters
COLLECTION_ORDER = (MetricType.HISTOGRAM, MetricType.GAUGE, MetricType.COUNTER)

_WIPE_BATCH = 500
_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class RedisStorage:
    """
    Accumulates metric updates in Redis hashes and rebuilds samples from them.

    Every metric is one hash keyed ``<prefix>:<type>:<name>``. Each label
    tuple (and, for histograms, each bucket plus a running sum) is one hash
    field updated with a single atomic Redis command, so any number of
    processes can write concurrently without coordination. Metrics are made
    discoverable by adding their hash key to ``<prefix><type>_METRIC_KEYS``
    the first time they are written.

    Args:
        config: Key prefix and Redis connection settings
        client: Pre-built Redis client; must use ``decode_responses=True``
    """

    def __init__(self, config: Optional[StorageConfig] = None, client=None):
        self.config = config or StorageConfig()
        self._client = client

    @property
    def prefix(self) -> str:
        return self.config.prefix

    def _connection(self):
        """Return the shared Redis client, creating it on first use."""
        if self._client is None:
            settings = self.config.redis
            options = dict(
                decode_responses=True,
                socket_timeout=settings.socket_timeout,
                socket_connect_timeout=settings.socket_connect_timeout,
            )
            if settings.url:
                self._client = redis.Redis.from_url(settings.url, **options)
                logger.info(f"Redis client created for {settings.url}")
            else:
                self._client = redis.Redis(
                    host=settings.host,
                    port=settings.port,
                    db=settings.db,
                    password=settings.password,
                    **options
                )
                logger.info(f"Redis client created for {settings.host}:{settings.port}/{settings.db}")
        return self._client

    @contextmanager
    def _store_errors(self, operation: str):
        try:
            yield
        except (redis.ConnectionError, redis.TimeoutError) as e:
            raise StorageUnavailable(f"Redis unavailable during {operation}: {e}") from e

    def ping(self) -> bool:
        """Check that Redis answers."""
        with self._store_errors("ping"):
            return bool(self._connection().ping())

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def update_counter(self, update: CounterUpdate) -> None:
        """Apply a counter increment (or set) to its label tuple."""
        self._update_scalar(update, MetricType.COUNTER)

    def update_gauge(self, update: GaugeUpdate) -> None:
        """Apply a gauge set or increment to its label tuple."""
        self._update_scalar(update, MetricType.GAUGE)

    def _update_scalar(self, update: Union[CounterUpdate, GaugeUpdate], metric_type: MetricType) -> None:
        command = to_command(update.command)
        client = self._connection()
        key = storage_key(self.prefix, metric_type, update.name)
        operation = dispatch(client, command)

        with self._store_errors(f"{metric_type.value} update"):
            result = operation(key, field_key(update.label_values), update.value)
            if is_first_write(command, result, update.value):
                self._register(client, key, MetaRecord.from_update(update, metric_type))

    def update_histogram(self, update: HistogramUpdate) -> None:
        """
        Record one observation.

        The observation lands in the first bucket whose upper bound is >= the
        value, or in ``+Inf``. Buckets are only counted individually here;
        cumulative counts are rebuilt by :meth:`collect`.
        """
        bucket_to_increase: Union[float, str] = INF_BUCKET
        for bucket in update.buckets:
            if update.value <= bucket:
                bucket_to_increase = bucket
                break

        client = self._connection()
        key = storage_key(self.prefix, MetricType.HISTOGRAM, update.name)

        with self._store_errors("histogram update"):
            total = client.hincrbyfloat(key, field_key(update.label_values, SUM_BUCKET), update.value)
            client.hincrby(key, field_key(update.label_values, bucket_to_increase), 1)
            if float(total) == float(update.value):
                self._register(client, key, MetaRecord.from_update(update, MetricType.HISTOGRAM))

    def _register(self, client, key: str, meta: MetaRecord) -> None:
        """Store metadata and make the metric visible to the collector."""
        client.hset(key, META_FIELD, meta.to_json())
        client.sadd(metric_keys_set(self.prefix, meta.type), key)
        logger.debug(f"Registered {meta.type.value} metric '{meta.name}' under {key}")

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def collect(self) -> List[MetricFamily]:
        """
        Rebuild every registered metric.

        Raises:
            CorruptMetadata: after collecting everything else, if any metric's
                metadata could not be read; ``families`` holds the rest.
            StorageUnavailable: if Redis cannot be reached
        """
        families: List[MetricFamily] = []
        corrupt: List[str] = []
        for metric_type in COLLECTION_ORDER:
            collected, bad_keys = self._collect_type(metric_type)
            families.extend(collected)
            corrupt.extend(bad_keys)

        if corrupt:
            raise CorruptMetadata(corrupt, families)
        return families

    def collect_type(self, metric_type: MetricType) -> List[MetricFamily]:
        """Rebuild all registered metrics of a single type."""
        families, corrupt = self._collect_type(MetricType(metric_type))
        if corrupt:
            raise CorruptMetadata(corrupt, families)
        return families

    def _collect_type(self, metric_type: MetricType) -> Tuple[List[MetricFamily], List[str]]:
        client = self._connection()
        families: List[MetricFamily] = []
        corrupt: List[str] = []

        with self._store_errors(f"{metric_type.value} collection"):
            keys = sorted(client.smembers(metric_keys_set(self.prefix, metric_type)))
            for key in keys:
                raw = client.hgetall(key)
                try:
                    meta = self._read_meta(key, raw)
                except CorruptMetadata as e:
                    logger.error(f"Skipping {metric_type.value} metric {key}: {e}")
                    corrupt.append(key)
                    continue

                fields = {k: v for k, v in raw.items() if k != META_FIELD}
                if metric_type is MetricType.HISTOGRAM:
                    families.append(self._build_histogram(meta, fields))
                else:
                    families.append(self._build_scalar(meta, fields))

        return families, corrupt

    @staticmethod
    def _read_meta(key: str, raw: Dict[str, str]) -> MetaRecord:
        if META_FIELD not in raw:
            raise CorruptMetadata([key])
        try:
            return MetaRecord.from_json(raw[META_FIELD])
        except (ValidationError, ValueError) as e:
            raise CorruptMetadata([key]) from e

    @staticmethod
    def _build_scalar(meta: MetaRecord, fields: Dict[str, str]) -> MetricFamily:
        family = MetricFamily(
            type=meta.type,
            name=meta.name,
            help=meta.help,
            label_names=list(meta.label_names),
        )
        for raw_key, raw_value in fields.items():
            _, label_values = decode_field_key(raw_key)
            family.samples.append(Sample(
                name=meta.name,
                label_names=[],
                label_values=label_values,
                value=_parse_number(raw_value),
            ))
        family.samples.sort(key=lambda s: "".join(s.label_values))
        return family

    @staticmethod
    def _build_histogram(meta: MetaRecord, fields: Dict[str, str]) -> MetricFamily:
        buckets = [normalize_bucket(b) for b in (meta.buckets or []) if math.isfinite(b)] + [INF_BUCKET]
        family = MetricFamily(
            type=meta.type,
            name=meta.name,
            help=meta.help,
            label_names=list(meta.label_names),
            buckets=buckets,
        )

        label_tuples = set()
        for raw_key in fields:
            bucket, label_values = decode_field_key(raw_key)
            if bucket == SUM_BUCKET:
                continue
            label_tuples.add(tuple(label_values))

        for label_values in sorted(label_tuples):
            # Unobserved buckets inherit the cumulative count below them
            acc = 0
            for bucket in buckets:
                count = fields.get(field_key(label_values, bucket))
                if count is not None:
                    acc += int(count)
                family.samples.append(Sample(
                    name=f"{meta.name}_bucket",
                    label_names=["le"],
                    label_values=list(label_values) + [_le(bucket)],
                    value=acc,
                ))

            family.samples.append(Sample(
                name=f"{meta.name}_count",
                label_names=[],
                label_values=list(label_values),
                value=acc,
            ))

            total = fields.get(field_key(label_values, SUM_BUCKET))
            family.samples.append(Sample(
                name=f"{meta.name}_sum",
                label_names=[],
                label_values=list(label_values),
                value=float(total) if total is not None else 0.0,
            ))

        return family

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def wipe_all(self) -> int:
        """
        Delete every metric hash and discovery set of this store. Irreversible.

        Only ``<prefix>:*`` and the ``<prefix><type>_METRIC_KEYS`` sets are
        removed, so stores whose prefix merely starts with this one survive.

        Returns:
            Number of keys deleted
        """
        client = self._connection()
        pattern = _GLOB_SPECIAL.sub(r"\\\1", self.prefix) + ":*"
        deleted = 0

        with self._store_errors("wipe"):
            batch = [metric_keys_set(self.prefix, metric_type) for metric_type in COLLECTION_ORDER]
            for key in client.scan_iter(match=pattern, count=_WIPE_BATCH):
                batch.append(key)
                if len(batch) >= _WIPE_BATCH:
                    deleted += client.delete(*batch)
                    batch = []
            if batch:
                deleted += client.delete(*batch)

        logger.info(f"Wiped {deleted} keys under prefix '{self.prefix}'")
        return deleted


def _parse_number(raw: str) -> Union[int, float]:
    try:
        return int(raw)
    except ValueError:
        return float(raw)


def _le(bucket: Union[float, str]) -> str:
    if bucket == INF_BUCKET:
        return INF_BUCKET
    return floatToGoString(bucket)
