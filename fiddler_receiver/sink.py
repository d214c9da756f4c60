"""
Fiddler Receiver - Metrics Consumers.

A consumer receives exactly one MetricsBatch per successful
cycle. Implementations forward it to the telemetry pipeline.
"""

import logging
from abc import ABC, abstractmethod
from typing import List

from fiddler_receiver.metrics import MetricsBatch


logger = logging.getLogger(__name__)


class MetricsConsumer(ABC):
    """Abstract consumer of metric batches."""

    @abstractmethod
    async def consume(self, batch: MetricsBatch) -> None:
        """Accept one cycle's batch."""
        pass


class MetricsSink(MetricsConsumer):
    """Keeps every batch in memory."""

    def __init__(self) -> None:
        self._batches: List[MetricsBatch] = []

    async def consume(self, batch: MetricsBatch) -> None:
        self._batches.append(batch)

    def all_metrics(self) -> List[MetricsBatch]:
        return list(self._batches)

    def data_point_count(self) -> int:
        return sum(batch.data_point_count() for batch in self._batches)

    def reset(self) -> None:
        self._batches.clear()


class LoggingConsumer(MetricsConsumer):
    """Logs each batch; used by the CLI when no pipeline is attached."""

    def __init__(self, verbose: bool = False) -> None:
        self._verbose = verbose

    async def consume(self, batch: MetricsBatch) -> None:
        logger.info(f"Received metrics batch: {batch.to_dict()}")
        if not self._verbose:
            return
        for resource in batch.resource_metrics:
            for scope in resource.scope_metrics:
                for metric in scope.metrics:
                    for point in metric.data_points:
                        logger.info(
                            f"{metric.name} {point.timestamp.isoformat()} "
                            f"{point.value} {point.attributes}"
                        )
