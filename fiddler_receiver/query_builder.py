"""
Fiddler Receiver - Query Builder.

============================================================
RESPONSIBILITY
============================================================
Turns a model's metric catalog into QuerySpec records.

- Filters metrics by enabled type
- Copies declared columns verbatim
- Resolves the baseline for metrics that require one
- Builds the batched request body for a model

============================================================
BASELINE POLICY
============================================================
The first baseline in discovery order is used. A metric that
requires a baseline is left out of the cycle when the model
has none.

============================================================
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from fiddler_receiver.types import (
    Baseline,
    MetricDefinition,
    Model,
    QuerySpec,
    TimeWindow,
    VIZ_TYPE_LINE,
)


logger = logging.getLogger(__name__)


QUERY_TYPE_MONITORING = "MONITORING"
TIME_LABEL = "timestamp"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

BIN_HOUR = "Hour"
BIN_DAY = "Day"
BIN_WEEK = "Week"
BIN_MONTH = "Month"


def is_metric_enabled(metric_type: str, enabled_types: Sequence[str]) -> bool:
    """An empty filter enables every type; otherwise exact membership."""
    if not enabled_types:
        return True
    return metric_type in enabled_types


def select_baseline(baselines: Sequence[Baseline]) -> Optional[Baseline]:
    """First baseline in discovery order, or None."""
    return baselines[0] if baselines else None


def build_queries(
    model: Model,
    metrics: Sequence[MetricDefinition],
    baselines: Sequence[Baseline],
    enabled_types: Sequence[str],
) -> List[QuerySpec]:
    """
    Build one QuerySpec per eligible metric of a model.

    Args:
        model: Owning model
        metrics: The model's metric definitions
        baselines: The model's baselines in discovery order
        enabled_types: Metric type filter (empty means all)

    Returns:
        QuerySpec records keyed by metric id
    """
    baseline = select_baseline(baselines)
    queries: List[QuerySpec] = []

    for metric in metrics:
        if not is_metric_enabled(metric.type, enabled_types):
            continue

        baseline_id = ""
        if metric.requires_baseline:
            if baseline is None:
                logger.warning(
                    f"Skipping metric {metric.id} for model {model.id}: "
                    f"baseline required but none available"
                )
                continue
            baseline_id = baseline.id

        queries.append(QuerySpec(
            query_key=metric.id,
            metric=metric.id,
            metric_type=metric.type,
            model_id=model.id,
            columns=tuple(metric.columns),
            categories=(),
            viz_type=VIZ_TYPE_LINE,
            baseline_id=baseline_id,
        ))

    return queries


def get_bin_size(interval: timedelta) -> str:
    """
    Bucket a poll interval into the API's bin size.

    - up to 1 hour:   Hour
    - up to 1 day:    Day
    - up to 1 week:   Week
    - longer:         Month
    """
    if interval <= timedelta(hours=1):
        return BIN_HOUR
    if interval <= timedelta(days=1):
        return BIN_DAY
    if interval <= timedelta(days=7):
        return BIN_WEEK
    return BIN_MONTH


def format_time(value: datetime) -> str:
    """Format an instant as ``YYYY-MM-DD HH:MM:SS`` in UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIME_FORMAT)


def build_query_request(
    project_id: str,
    queries: Sequence[QuerySpec],
    window: TimeWindow,
    bin_size: str,
) -> Dict[str, Any]:
    """Request body for one model's batched queries."""
    return {
        "project_id": project_id,
        "query_type": QUERY_TYPE_MONITORING,
        "filters": {
            "time_label": TIME_LABEL,
            "time_range": {
                "start_time": format_time(window.start),
                "end_time": format_time(window.end),
            },
            "bin_size": bin_size,
            "tz": "UTC",
        },
        "queries": [query.to_dict() for query in queries],
    }
