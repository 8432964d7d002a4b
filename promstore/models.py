"""Update records, stored metadata and collected sample structures."""
from dataclasses import dataclass, field
from typing import List, Optional, Union
import json
import math

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from promstore.commands import Command
from promstore.keys import MetricType


class _Update(BaseModel):
    """Fields shared by every update record."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    help: str = ""
    label_names: List[str] = Field(default_factory=list, alias="labelNames")
    label_values: List[str] = Field(default_factory=list, alias="labelValues")
    value: float

    @model_validator(mode='after')
    def validate_label_arity(self):
        """Every declared label needs exactly one value."""
        if len(self.label_values) != len(self.label_names):
            raise ValueError(
                f"Metric '{self.name}' declares {len(self.label_names)} labels "
                f"but got {len(self.label_values)} values"
            )
        return self


class CounterUpdate(_Update):
    command: Command = Command.INCREMENT_INTEGER


class GaugeUpdate(_Update):
    command: Command = Command.SET


class HistogramUpdate(_Update):
    """A single histogram observation; ``buckets`` must already be ascending."""
    buckets: List[float]

    @field_validator('buckets')
    @classmethod
    def validate_buckets(cls, v):
        """The +Inf bucket is implicit; a trailing inf is dropped."""
        if v and v[-1] == math.inf:
            v = v[:-1]
        if not all(math.isfinite(b) for b in v):
            raise ValueError("Histogram buckets must be finite, except a trailing +Inf")
        return v


class MetaRecord(BaseModel):
    """Metric description persisted next to the metric's values."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    help: str = ""
    type: MetricType
    label_names: List[str] = Field(default_factory=list, alias="labelNames")
    buckets: Optional[List[float]] = None

    @classmethod
    def from_update(cls, update: _Update, metric_type: MetricType) -> "MetaRecord":
        return cls(
            name=update.name,
            help=update.help,
            type=metric_type,
            label_names=update.label_names,
            buckets=getattr(update, "buckets", None),
        )

    def to_json(self) -> str:
        return json.dumps(
            self.model_dump(mode="json", by_alias=True, exclude_none=True),
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, raw: str) -> "MetaRecord":
        return cls.model_validate_json(raw)


@dataclass
class Sample:
    """One exposition line: a series name, its labels and its value."""
    name: str
    label_names: List[str]
    label_values: List[str]
    value: Union[int, float]


@dataclass
class MetricFamily:
    """All samples of one stored metric, ready for a text formatter."""
    type: MetricType
    name: str
    help: str
    label_names: List[str]
    buckets: Optional[List[Union[float, str]]] = None
    samples: List[Sample] = field(default_factory=list)
