"""
Fiddler Receiver - Query Executor.

Sends one batched query request per model and isolates failures
per model: a failing model is reported, the others still run.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from fiddler_receiver.client import FiddlerClient
from fiddler_receiver.exceptions import FetchError, QueryExecutionError
from fiddler_receiver.query_builder import build_query_request
from fiddler_receiver.types import Model, QueryResponse, QuerySpec, TimeWindow


logger = logging.getLogger(__name__)


@dataclass
class ExecutionOutcome:
    """Responses and errors of a cycle's query requests."""
    responses: Dict[str, QueryResponse] = field(default_factory=dict)
    queries: Dict[str, List[QuerySpec]] = field(default_factory=dict)
    errors: List[QueryExecutionError] = field(default_factory=list)


class QueryExecutor:
    """Runs per-model query batches through the API client."""

    def __init__(
        self,
        client: FiddlerClient,
        bin_size: str,
        max_concurrency: int = 4,
    ) -> None:
        self._client = client
        self._bin_size = bin_size
        self._max_concurrency = max_concurrency

    async def execute(
        self,
        model: Model,
        queries: Sequence[QuerySpec],
        window: TimeWindow,
    ) -> QueryResponse:
        """
        Run all queries of one model in a single request.

        Raises:
            QueryExecutionError: If the transport call fails
        """
        request = build_query_request(model.project.id, queries, window, self._bin_size)
        try:
            return await self._client.run_queries(request)
        except FetchError as e:
            raise QueryExecutionError(
                message=f"Query request failed for model {model.id}",
                model_id=model.id,
                query_keys=[q.query_key for q in queries],
                original_error=e,
            )

    async def execute_all(
        self,
        plans: Sequence[Tuple[Model, List[QuerySpec]]],
        window: TimeWindow,
    ) -> ExecutionOutcome:
        """Run every model's batch concurrently, collecting per-model errors."""
        outcome = ExecutionOutcome()
        plans = [(model, queries) for model, queries in plans if queries]
        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(model: Model, queries: List[QuerySpec]) -> QueryResponse:
            async with semaphore:
                return await self.execute(model, queries, window)

        results = await asyncio.gather(
            *(bounded(model, queries) for model, queries in plans),
            return_exceptions=True,
        )

        for (model, queries), result in zip(plans, results):
            if isinstance(result, QueryExecutionError):
                logger.error(f"{result}")
                outcome.errors.append(result)
                continue
            if isinstance(result, BaseException):
                raise result
            outcome.responses[model.id] = result
            outcome.queries[model.id] = queries

        return outcome
