"""
Fiddler Receiver - Metrics Batch.

============================================================
PURPOSE
============================================================
Outbound shape handed to the metrics consumer.

MetricsBatch
└── ResourceMetrics        one per project
    │   attributes: service.name, fiddler.project
    └── ScopeMetrics       one per receiver
        └── GaugeMetric    one per metric name
            └── MetricPoint

============================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from fiddler_receiver.types import MetricPoint, Project


ATTR_SERVICE_NAME = "service.name"
ATTR_PROJECT = "fiddler.project"

SCOPE_NAME = "fiddler_receiver"
SCOPE_VERSION = "1.0.0"


@dataclass
class GaugeMetric:
    """All points sharing one metric name."""
    name: str
    data_points: List[MetricPoint] = field(default_factory=list)


@dataclass
class ScopeMetrics:
    """Metrics emitted by one instrumentation scope."""
    name: str = SCOPE_NAME
    version: str = SCOPE_VERSION
    metrics: List[GaugeMetric] = field(default_factory=list)

    def find(self, name: str) -> Optional[GaugeMetric]:
        for metric in self.metrics:
            if metric.name == name:
                return metric
        return None


@dataclass
class ResourceMetrics:
    """Metrics for one project resource."""
    attributes: Dict[str, str] = field(default_factory=dict)
    scope_metrics: List[ScopeMetrics] = field(default_factory=list)


@dataclass
class MetricsBatch:
    """Everything emitted by one poll cycle."""
    resource_metrics: List[ResourceMetrics] = field(default_factory=list)

    def metric_count(self) -> int:
        return sum(
            len(scope.metrics)
            for resource in self.resource_metrics
            for scope in resource.scope_metrics
        )

    def data_point_count(self) -> int:
        return sum(
            len(metric.data_points)
            for resource in self.resource_metrics
            for scope in resource.scope_metrics
            for metric in scope.metrics
        )

    def is_empty(self) -> bool:
        return self.data_point_count() == 0

    def to_dict(self) -> Dict[str, Any]:
        """Summary for logging."""
        return {
            "resources": len(self.resource_metrics),
            "metrics": self.metric_count(),
            "data_points": self.data_point_count(),
        }


class MetricsBatchBuilder:
    """Folds decoded points into a MetricsBatch grouped by project."""

    def __init__(self, service_name: str = "fiddler") -> None:
        self._service_name = service_name
        self._resources: Dict[str, ResourceMetrics] = {}
        self._gauges: Dict[str, Dict[str, GaugeMetric]] = {}

    def add_points(self, project: Project, points: Iterable[MetricPoint]) -> None:
        scope = self._scope_for(project)
        gauges = self._gauges[project.id]
        for point in points:
            gauge = gauges.get(point.name)
            if gauge is None:
                gauge = GaugeMetric(name=point.name)
                gauges[point.name] = gauge
                scope.metrics.append(gauge)
            gauge.data_points.append(point)

    def build(self) -> MetricsBatch:
        return MetricsBatch(resource_metrics=list(self._resources.values()))

    def _scope_for(self, project: Project) -> ScopeMetrics:
        resource = self._resources.get(project.id)
        if resource is None:
            resource = ResourceMetrics(
                attributes={
                    ATTR_SERVICE_NAME: self._service_name,
                    ATTR_PROJECT: project.name,
                },
                scope_metrics=[ScopeMetrics()],
            )
            self._resources[project.id] = resource
            self._gauges[project.id] = {}
        return resource.scope_metrics[0]
