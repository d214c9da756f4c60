"""
Fiddler Receiver - Catalog Resolver.

============================================================
RESPONSIBILITY
============================================================
Discovers what can be queried in the current cycle.

- Lists models for the configured scope
- Fetches metric definitions per model
- Fetches baselines only for models with a metric that needs one

============================================================
FAILURE ISOLATION
============================================================
- Model list failure: CatalogFetchError, the cycle cannot run
- Metric / baseline failure for one model: logged, model skipped

============================================================
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from fiddler_receiver.client import FiddlerClient
from fiddler_receiver.exceptions import CatalogFetchError, FetchError
from fiddler_receiver.types import Baseline, MetricDefinition, Model


logger = logging.getLogger(__name__)


@dataclass
class Catalog:
    """Models, metric definitions and baselines resolved for one cycle."""
    models: List[Model] = field(default_factory=list)
    metrics_by_model: Dict[str, List[MetricDefinition]] = field(default_factory=dict)
    baselines_by_model: Dict[str, List[Baseline]] = field(default_factory=dict)
    errors: List[CatalogFetchError] = field(default_factory=list)

    def metrics_for(self, model_id: str) -> List[MetricDefinition]:
        return self.metrics_by_model.get(model_id, [])

    def baselines_for(self, model_id: str) -> List[Baseline]:
        return self.baselines_by_model.get(model_id, [])


@dataclass
class _ModelCatalog:
    model: Model
    metrics: List[MetricDefinition]
    baselines: List[Baseline]


class CatalogResolver:
    """Resolves the model / metric / baseline catalog through the API client."""

    def __init__(
        self,
        client: FiddlerClient,
        project_id: Optional[str] = None,
        max_concurrency: int = 4,
    ) -> None:
        self._client = client
        self._project_id = project_id
        self._max_concurrency = max_concurrency

    async def resolve(self) -> Catalog:
        """
        Resolve the full catalog.

        Returns:
            Catalog containing every model whose metrics could be fetched

        Raises:
            CatalogFetchError: If the model list cannot be fetched
        """
        try:
            models = await self._client.list_models(self._project_id)
        except FetchError as e:
            raise CatalogFetchError(
                message="Failed to list models",
                original_error=e,
                context={"project_id": self._project_id},
            )

        logger.debug(f"Discovered {len(models)} models")

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(model: Model) -> _ModelCatalog:
            async with semaphore:
                return await self._resolve_model(model)

        outcomes = await asyncio.gather(
            *(bounded(model) for model in models),
            return_exceptions=True,
        )

        catalog = Catalog()
        for model, outcome in zip(models, outcomes):
            if isinstance(outcome, CatalogFetchError):
                logger.warning(f"Skipping model {model.id} for this cycle: {outcome}")
                catalog.errors.append(outcome)
                continue
            if isinstance(outcome, BaseException):
                raise outcome

            catalog.models.append(model)
            catalog.metrics_by_model[model.id] = outcome.metrics
            catalog.baselines_by_model[model.id] = outcome.baselines

        return catalog

    async def _resolve_model(self, model: Model) -> _ModelCatalog:
        """Fetch metric definitions and, when needed, baselines for one model."""
        try:
            model_metrics = await self._client.list_metrics(model.id)
        except FetchError as e:
            raise CatalogFetchError(
                message=f"Failed to fetch metrics for model {model.id}",
                model_id=model.id,
                original_error=e,
            )

        baselines: List[Baseline] = []
        if any(metric.requires_baseline for metric in model_metrics.metrics):
            try:
                baselines = await self._client.list_baselines(model.id)
            except FetchError as e:
                raise CatalogFetchError(
                    message=f"Failed to fetch baselines for model {model.id}",
                    model_id=model.id,
                    original_error=e,
                )

        return _ModelCatalog(model=model, metrics=model_metrics.metrics, baselines=baselines)
