"""
Fiddler Receiver Package.

Polls the Fiddler ML-monitoring API and converts its tabular
query results into gauge metric batches.

Components:
- catalog: model / metric / baseline discovery
- query_builder: per-model query construction
- executor: batched query execution
- decoder: result table decoding
- scheduler: interval polling and window bookkeeping

Main entry point:
- receiver: wires the pipeline into poll cycles
"""

from fiddler_receiver.catalog import Catalog, CatalogResolver
from fiddler_receiver.client import FiddlerClient
from fiddler_receiver.config import DEFAULTS, ReceiverConfig, ReceiverDefaults
from fiddler_receiver.decoder import (
    DecodeOutcome,
    FeatureColumn,
    ScalarColumn,
    decode,
    parse_column_header,
)
from fiddler_receiver.exceptions import (
    ReceiverError,
    ConfigValidationError,
    FetchError,
    CatalogFetchError,
    QueryExecutionError,
    DecodeError,
    CycleTimeoutError,
)
from fiddler_receiver.executor import ExecutionOutcome, QueryExecutor
from fiddler_receiver.metrics import (
    GaugeMetric,
    MetricsBatch,
    MetricsBatchBuilder,
    ResourceMetrics,
    ScopeMetrics,
)
from fiddler_receiver.query_builder import (
    build_queries,
    build_query_request,
    format_time,
    get_bin_size,
    is_metric_enabled,
)
from fiddler_receiver.receiver import FiddlerReceiver, create_receiver
from fiddler_receiver.scheduler import PollScheduler, SchedulerState
from fiddler_receiver.sink import LoggingConsumer, MetricsConsumer, MetricsSink
from fiddler_receiver.types import (
    ANY_COLUMN,
    Baseline,
    Column,
    CycleResult,
    CycleStatus,
    MetricDefinition,
    MetricPoint,
    MetricType,
    Model,
    Project,
    QueryResponse,
    QueryResult,
    QuerySpec,
    TimeWindow,
    metric_name,
)


__all__ = [
    # Receiver
    "FiddlerReceiver",
    "create_receiver",
    # Components
    "Catalog",
    "CatalogResolver",
    "FiddlerClient",
    "QueryExecutor",
    "ExecutionOutcome",
    "PollScheduler",
    "SchedulerState",
    # Query building
    "build_queries",
    "build_query_request",
    "format_time",
    "get_bin_size",
    "is_metric_enabled",
    # Decoding
    "decode",
    "parse_column_header",
    "DecodeOutcome",
    "ScalarColumn",
    "FeatureColumn",
    # Config
    "DEFAULTS",
    "ReceiverConfig",
    "ReceiverDefaults",
    # Output
    "MetricsBatch",
    "MetricsBatchBuilder",
    "ResourceMetrics",
    "ScopeMetrics",
    "GaugeMetric",
    "MetricsConsumer",
    "MetricsSink",
    "LoggingConsumer",
    # Types
    "ANY_COLUMN",
    "Baseline",
    "Column",
    "CycleResult",
    "CycleStatus",
    "MetricDefinition",
    "MetricPoint",
    "MetricType",
    "Model",
    "Project",
    "QueryResponse",
    "QueryResult",
    "QuerySpec",
    "TimeWindow",
    "metric_name",
    # Errors
    "ReceiverError",
    "ConfigValidationError",
    "FetchError",
    "CatalogFetchError",
    "QueryExecutionError",
    "DecodeError",
    "CycleTimeoutError",
]
