"""Redis key and hash-field encoding for stored metrics."""
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union
import json

META_FIELD = "__meta"
METRIC_KEYS_SUFFIX = "_METRIC_KEYS"
INF_BUCKET = "+Inf"
SUM_BUCKET = "sum"

Bucket = Union[float, str]


class MetricType(str, Enum):
    """Metric types the store knows how to aggregate."""
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


def _dumps(obj) -> str:
    # Compact separators, ASCII escapes and no key sorting: output depends only
    # on the order the caller builds the object in.
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=True, allow_nan=False)


def storage_key(prefix: str, metric_type: MetricType, name: str) -> str:
    """Hash key holding every field of one metric."""
    return ":".join([prefix, MetricType(metric_type).value, name])


def metric_keys_set(prefix: str, metric_type: MetricType) -> str:
    """Set key listing the storage keys of all registered metrics of a type."""
    return f"{prefix}{MetricType(metric_type).value}{METRIC_KEYS_SUFFIX}"


def normalize_bucket(bucket: Bucket) -> Bucket:
    """Boundaries are stored as floats; the sentinels stay strings."""
    if bucket in (INF_BUCKET, SUM_BUCKET):
        return bucket
    return float(bucket)


def field_key(label_values: Sequence[str], bucket: Optional[Bucket] = None) -> str:
    """
    Encode a label tuple (and histogram bucket) as a hash field name.

    Counters and gauges use the bare JSON list of label values. Histogram
    fields are ``{"b": bucket, "labelValues": [...]}`` with ``b`` always
    written first.
    """
    values = [str(v) for v in label_values]
    if bucket is None:
        return _dumps(values)
    return _dumps({"b": normalize_bucket(bucket), "labelValues": values})


def decode_field_key(raw: str) -> Tuple[Optional[Bucket], List[str]]:
    """Inverse of :func:`field_key`; returns ``(bucket, label_values)``."""
    decoded = json.loads(raw)
    if isinstance(decoded, list):
        return None, decoded
    return decoded["b"], decoded["labelValues"]
