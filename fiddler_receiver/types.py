"""
Fiddler Receiver - Type Definitions.

============================================================
PURPOSE
============================================================
Shared types for the collection pipeline.

- Catalog records (projects, models, metrics, baselines)
- Query request / response records
- Decoded metric points and time windows
- Cycle result bookkeeping

============================================================
DESIGN PRINCIPLES
============================================================
- Catalog and query records are immutable
- Wire parsing lives next to the record (from_dict)
- No business logic
- Serializable for logging

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID, uuid4


# Sentinel column meaning "any column"; passed through to the API unchanged.
ANY_COLUMN = "__ANY__"

VIZ_TYPE_LINE = "line"


# =============================================================
# ENUMS
# =============================================================

class MetricType(str, Enum):
    """Metric categories reported by the Fiddler API."""
    SERVICE_METRICS = "service_metrics"
    DRIFT = "drift"
    PERFORMANCE = "performance"
    DATA_INTEGRITY = "data_integrity"
    CUSTOM = "custom"


class CycleStatus(str, Enum):
    """Outcome of a single poll cycle."""
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


# =============================================================
# CATALOG TYPES
# =============================================================

@dataclass(frozen=True)
class Project:
    """Fiddler project owning one or more models."""
    id: str
    name: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(id=str(data["id"]), name=str(data.get("name", "")))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class Model:
    """A monitored model and its owning project."""
    id: str
    name: str
    project: Project

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Model":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            project=Project.from_dict(data["project"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "project": self.project.to_dict()}


@dataclass(frozen=True)
class MetricDefinition:
    """
    A metric declared for a model.

    An empty column list means a scalar metric. The ANY_COLUMN sentinel is
    kept as-is; expanding it is the API's job.
    """
    id: str
    type: str
    columns: Tuple[str, ...] = ()
    requires_baseline: bool = False
    requires_categories: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetricDefinition":
        columns = data.get("columns") or []
        if not isinstance(columns, list):
            raise TypeError(f"columns must be a list, got {type(columns).__name__}")
        return cls(
            id=str(data["id"]),
            type=str(data["type"]),
            columns=tuple(str(c) for c in columns),
            requires_baseline=bool(data.get("requires_baseline", False)),
            requires_categories=bool(data.get("requires_categories", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "columns": list(self.columns),
            "requires_baseline": self.requires_baseline,
            "requires_categories": self.requires_categories,
        }


@dataclass(frozen=True)
class Column:
    """A model column as listed next to the metric definitions."""
    id: str
    group: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Column":
        return cls(id=str(data["id"]), group=str(data.get("group", "")))


@dataclass(frozen=True)
class Baseline:
    """Reference dataset a drift-style metric is compared against."""
    id: str
    name: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Baseline":
        return cls(id=str(data["id"]), name=str(data.get("name", "")))


@dataclass
class ModelMetrics:
    """Metric definitions and columns returned for one model."""
    metrics: List[MetricDefinition] = field(default_factory=list)
    columns: List[Column] = field(default_factory=list)


# =============================================================
# QUERY TYPES
# =============================================================

@dataclass(frozen=True)
class QuerySpec:
    """A fully-resolved query for one (model, metric) pair."""
    query_key: str
    metric: str
    metric_type: str
    model_id: str
    columns: Tuple[str, ...] = ()
    categories: Tuple[str, ...] = ()
    viz_type: str = VIZ_TYPE_LINE
    baseline_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation sent to the queries endpoint."""
        return {
            "query_key": self.query_key,
            "categories": list(self.categories),
            "columns": list(self.columns),
            "viz_type": self.viz_type,
            "metric": self.metric,
            "metric_type": self.metric_type,
            "model_id": self.model_id,
            "baseline_id": self.baseline_id,
        }


@dataclass(frozen=True)
class QueryResult:
    """
    Tabular result for one query key.

    Rows are kept as received; row shape is checked by the decoder
    so a malformed row only costs that row.
    """
    query_key: str
    model: Model
    metric: str
    col_names: Tuple[str, ...]
    data: Tuple[Any, ...]

    @classmethod
    def from_dict(cls, query_key: str, data: Dict[str, Any]) -> "QueryResult":
        if not isinstance(data, dict):
            raise TypeError(f"result must be an object, got {type(data).__name__}")
        rows = data.get("data") or []
        if not isinstance(rows, list):
            raise TypeError(f"data must be a list, got {type(rows).__name__}")
        col_names = data.get("col_names") or []
        if not isinstance(col_names, list):
            raise TypeError(f"col_names must be a list, got {type(col_names).__name__}")
        return cls(
            query_key=query_key,
            model=Model.from_dict(data["model"]),
            metric=str(data.get("metric") or query_key),
            col_names=tuple(str(c) for c in col_names),
            data=tuple(rows),
        )


@dataclass(frozen=True)
class QueryResponse:
    """
    Response of one batched query request.

    A result entry that cannot be parsed is left out of ``results``
    and its reason kept in ``invalid``; the other entries survive.
    """
    project: Project
    results: Dict[str, QueryResult]
    invalid: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "QueryResponse":
        data = payload["data"]
        raw_results = data.get("results") or {}
        if not isinstance(raw_results, dict):
            raise TypeError(f"results must be an object, got {type(raw_results).__name__}")

        results: Dict[str, QueryResult] = {}
        invalid: Dict[str, str] = {}
        for key, value in raw_results.items():
            try:
                results[key] = QueryResult.from_dict(key, value)
            except (KeyError, TypeError, AttributeError) as e:
                invalid[key] = f"{type(e).__name__}: {e}"

        return cls(
            project=Project.from_dict(data["project"]),
            results=results,
            invalid=invalid,
        )


# =============================================================
# TIME WINDOW
# =============================================================

@dataclass(frozen=True)
class TimeWindow:
    """[start, end) range requested by a single poll cycle."""
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def is_valid(self) -> bool:
        return self.start < self.end

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


# =============================================================
# DECODED OUTPUT
# =============================================================

@dataclass(frozen=True)
class MetricPoint:
    """One decoded gauge sample."""
    name: str
    timestamp: datetime
    value: float
    attributes: Dict[str, str] = field(default_factory=dict)


def metric_name(metric_type: str, metric_id: str) -> str:
    """Namespaced metric name, e.g. ``fiddler.drift.jsd``."""
    return f"fiddler.{metric_type}.{metric_id}"


# =============================================================
# CYCLE RESULT
# =============================================================

@dataclass
class CycleResult:
    """Result of a single poll cycle."""
    cycle_id: UUID = field(default_factory=uuid4)
    window: Optional[TimeWindow] = None
    status: CycleStatus = CycleStatus.SUCCESS

    # Counts
    models_resolved: int = 0
    queries_built: int = 0
    points_emitted: int = 0
    decode_errors: int = 0

    # Timing
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    errors: List[str] = field(default_factory=list)

    def mark_complete(self, completed_at: datetime) -> None:
        """Mark the cycle as complete and calculate duration."""
        self.completed_at = completed_at
        if self.started_at:
            self.duration_seconds = (completed_at - self.started_at).total_seconds()

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)
        if self.status == CycleStatus.SUCCESS:
            self.status = CycleStatus.PARTIAL

    def mark_failed(self, error: str) -> None:
        """Mark the cycle as failed."""
        self.status = CycleStatus.FAILED
        self.errors.append(error)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "cycle_id": str(self.cycle_id),
            "window": self.window.to_dict() if self.window else None,
            "status": self.status.value,
            "models_resolved": self.models_resolved,
            "queries_built": self.queries_built,
            "points_emitted": self.points_emitted,
            "decode_errors": self.decode_errors,
            "duration_seconds": self.duration_seconds,
            "error_count": len(self.errors),
            "errors": self.errors[:5],  # Limit for logging
        }
