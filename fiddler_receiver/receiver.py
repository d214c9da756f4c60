"""
Fiddler Receiver - Receiver.

============================================================
RESPONSIBILITY
============================================================
Wires the collection pipeline into one poll cycle.

1. Resolve catalog (models, metrics, baselines)
2. Build per-model query sets
3. Execute one batched request per model
4. Decode results into metric points
5. Hand one batch to the consumer

============================================================
DESIGN PRINCIPLES
============================================================
- Failure isolation per model and per point
- Only a failed model listing aborts a cycle
- A cycle emits one batch or none
- Catalog re-fetched every cycle unless configured otherwise

============================================================
USAGE
============================================================
```python
config = ReceiverConfig.from_env()
receiver = create_receiver(config, consumer)

await receiver.start()
...
await receiver.shutdown()
```

============================================================
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from fiddler_receiver.catalog import Catalog, CatalogResolver
from fiddler_receiver.client import FiddlerClient
from fiddler_receiver.config import DEFAULTS, ReceiverConfig, ReceiverDefaults
from fiddler_receiver.decoder import decode
from fiddler_receiver.exceptions import ReceiverError
from fiddler_receiver.executor import QueryExecutor
from fiddler_receiver.metrics import MetricsBatchBuilder
from fiddler_receiver.query_builder import build_queries, get_bin_size
from fiddler_receiver.scheduler import Clock, ErrorCallback, PollScheduler, utc_now
from fiddler_receiver.sink import MetricsConsumer
from fiddler_receiver.types import CycleResult, CycleStatus, Model, QuerySpec, TimeWindow


class FiddlerReceiver:
    """
    Polls Fiddler for monitoring metrics and emits metric batches.

    The receiver expects an already validated configuration;
    use create_receiver() to validate and build in one step.
    """

    def __init__(
        self,
        config: ReceiverConfig,
        consumer: MetricsConsumer,
        client: Optional[FiddlerClient] = None,
        clock: Clock = utc_now,
        error_callback: Optional[ErrorCallback] = None,
    ) -> None:
        self._config = config
        self._consumer = consumer
        self._clock = clock
        self._error_callback = error_callback
        self._logger = logging.getLogger("fiddler_receiver.receiver")

        self._client = client or FiddlerClient(
            endpoint=config.endpoint,
            token=config.token,
            timeout=config.timeout_seconds,
            page_size=config.page_size,
        )
        self._cached_catalog: Optional[Catalog] = None
        self._scheduler: Optional[PollScheduler] = None

    @property
    def consumer(self) -> MetricsConsumer:
        return self._consumer

    @property
    def client(self) -> FiddlerClient:
        return self._client

    @client.setter
    def client(self, client: FiddlerClient) -> None:
        self._client = client
        self._cached_catalog = None

    @property
    def scheduler(self) -> Optional[PollScheduler]:
        return self._scheduler

    # =========================================================
    # LIFECYCLE
    # =========================================================

    async def start(self) -> None:
        """Start periodic collection."""
        if self._scheduler is None:
            self._scheduler = self.create_scheduler()
        await self._scheduler.start()

    async def shutdown(self) -> None:
        """Stop collection and release the HTTP session."""
        if self._scheduler is not None:
            await self._scheduler.stop()
        await self._client.close()

    def create_scheduler(self) -> PollScheduler:
        offset = self._config.offset_seconds
        return PollScheduler(
            cycle_fn=self.collect,
            interval_seconds=self._config.interval_seconds,
            offset_seconds=offset if offset is not None else DEFAULTS.offset_seconds,
            timeout_seconds=self._config.timeout_seconds,
            clock=self._clock,
            error_callback=self._error_callback,
        )

    # =========================================================
    # COLLECTION CYCLE
    # =========================================================

    async def collect(self, window: TimeWindow) -> CycleResult:
        """
        Run one collection cycle for a time window.

        Returns:
            CycleResult describing what was emitted

        Raises:
            CatalogFetchError: If the model list cannot be fetched
        """
        result = CycleResult(window=window, started_at=self._clock())
        self._logger.info(
            f"Starting cycle {result.cycle_id} for "
            f"{window.start.isoformat()} -> {window.end.isoformat()}"
        )

        # Step 1: Catalog
        catalog = await self._get_catalog()
        result.models_resolved = len(catalog.models)
        for error in catalog.errors:
            result.add_error(str(error))
            self._report(error)

        # Step 2: Queries
        plans = self._build_plans(catalog)
        result.queries_built = sum(len(queries) for _, queries in plans)

        # Step 3: Execute
        executor = QueryExecutor(
            self._client,
            bin_size=get_bin_size(timedelta(seconds=self._config.interval_seconds)),
            max_concurrency=self._config.max_concurrency,
        )
        outcome = await executor.execute_all(plans, window)
        for error in outcome.errors:
            result.add_error(str(error))
            self._report(error)

        if outcome.errors and not outcome.responses:
            result.mark_failed("All query requests failed")
            result.mark_complete(self._clock())
            self._log_result(result)
            return result

        # Step 4: Decode
        builder = MetricsBatchBuilder(service_name=self._config.service_name)
        for model_id, response in outcome.responses.items():
            for query_key, reason in response.invalid.items():
                self._logger.warning(f"Dropping malformed result {query_key} on model {model_id}: {reason}")
                result.decode_errors += 1

            for query in outcome.queries[model_id]:
                query_result = response.results.get(query.query_key)
                if query_result is None:
                    self._logger.debug(f"No result for {query.query_key} on model {model_id}")
                    continue
                decoded = decode(query_result, query.metric_type, query.metric)
                result.decode_errors += len(decoded.errors)
                builder.add_points(response.project, decoded.points)

        # Step 5: Emit
        batch = builder.build()
        result.points_emitted = batch.data_point_count()
        if not batch.is_empty():
            await self._consumer.consume(batch)

        result.mark_complete(self._clock())
        self._log_result(result)
        return result

    async def _get_catalog(self) -> Catalog:
        if not self._config.refresh_catalog_each_cycle and self._cached_catalog is not None:
            return self._cached_catalog

        resolver = CatalogResolver(
            self._client,
            project_id=self._config.project_id,
            max_concurrency=self._config.max_concurrency,
        )
        catalog = await resolver.resolve()

        if not catalog.errors:
            self._cached_catalog = catalog
        return catalog

    def _build_plans(self, catalog: Catalog) -> List[Tuple[Model, List[QuerySpec]]]:
        plans = []
        for model in catalog.models:
            queries = build_queries(
                model,
                catalog.metrics_for(model.id),
                catalog.baselines_for(model.id),
                self._config.enabled_metric_types,
            )
            self._logger.debug(f"Built {len(queries)} queries for model {model.id}")
            plans.append((model, queries))
        return plans

    def _report(self, error: ReceiverError) -> None:
        if self._error_callback is None:
            return
        try:
            self._error_callback(error)
        except Exception:
            self._logger.exception("Error callback raised")

    def _log_result(self, result: CycleResult) -> None:
        log_data = result.to_dict()

        if result.status == CycleStatus.SUCCESS:
            self._logger.info(f"Cycle complete: {log_data}")
        elif result.status == CycleStatus.PARTIAL:
            self._logger.warning(f"Cycle partial: {log_data}")
        else:
            self._logger.error(f"Cycle failed: {log_data}")

    # =========================================================
    # HEALTH
    # =========================================================

    def get_health_status(self) -> Dict[str, Any]:
        return {
            "endpoint": self._client.endpoint,
            "config": self._config.to_dict(),
            "scheduler": self._scheduler.get_health_status() if self._scheduler else None,
        }


def create_receiver(
    config: ReceiverConfig,
    consumer: MetricsConsumer,
    defaults: ReceiverDefaults = DEFAULTS,
    **kwargs: Any,
) -> FiddlerReceiver:
    """
    Validate a configuration and build a receiver.

    Raises:
        ConfigValidationError: If the configuration is invalid
    """
    config.validate(defaults)
    return FiddlerReceiver(config, consumer, **kwargs)
