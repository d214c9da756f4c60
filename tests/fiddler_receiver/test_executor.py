"""
Tests for the Query Executor.

============================================================
PURPOSE
============================================================
- One batched request per model
- Empty query sets are not sent
- Failures isolated per model
- Malformed result entries dropped per query key

============================================================
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from fiddler_receiver.exceptions import FetchError, QueryExecutionError
from fiddler_receiver.executor import QueryExecutor
from fiddler_receiver.types import Model, Project, QueryResponse, QuerySpec, TimeWindow


PROJECT = Project(id="project1", name="Project 1")
MODEL_1 = Model(id="model1", name="Model 1", project=PROJECT)
MODEL_2 = Model(id="model2", name="Model 2", project=PROJECT)

WINDOW = TimeWindow(
    start=datetime(2021, 6, 1, 11, 0, tzinfo=timezone.utc),
    end=datetime(2021, 6, 1, 12, 0, tzinfo=timezone.utc),
)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def mock_client():
    client = MagicMock()
    client.run_queries = AsyncMock(return_value=QueryResponse(project=PROJECT, results={}))
    return client


def traffic_query(model_id):
    return QuerySpec(
        query_key="traffic",
        metric="traffic",
        metric_type="service_metrics",
        model_id=model_id,
    )


# ============================================================
# EXECUTION
# ============================================================

class TestQueryExecutor:
    """Tests for QueryExecutor."""

    @pytest.mark.asyncio
    async def test_one_request_per_model(self, mock_client):
        executor = QueryExecutor(mock_client, bin_size="Hour")
        plans = [(MODEL_1, [traffic_query("model1")]), (MODEL_2, [traffic_query("model2")])]

        outcome = await executor.execute_all(plans, WINDOW)

        assert mock_client.run_queries.await_count == 2
        assert set(outcome.responses) == {"model1", "model2"}
        request = mock_client.run_queries.await_args_list[0].args[0]
        assert request["filters"]["bin_size"] == "Hour"
        assert request["project_id"] == "project1"

    @pytest.mark.asyncio
    async def test_empty_plans_not_sent(self, mock_client):
        executor = QueryExecutor(mock_client, bin_size="Hour")

        outcome = await executor.execute_all([(MODEL_1, [])], WINDOW)

        mock_client.run_queries.assert_not_awaited()
        assert outcome.responses == {}
        assert outcome.errors == []

    @pytest.mark.asyncio
    async def test_failure_isolated_per_model(self, mock_client):
        async def run_queries(request):
            if request["queries"][0]["model_id"] == "model1":
                raise FetchError("HTTP 500", status_code=500)
            return QueryResponse(project=PROJECT, results={})

        mock_client.run_queries.side_effect = run_queries
        executor = QueryExecutor(mock_client, bin_size="Hour")
        plans = [(MODEL_1, [traffic_query("model1")]), (MODEL_2, [traffic_query("model2")])]

        outcome = await executor.execute_all(plans, WINDOW)

        assert set(outcome.responses) == {"model2"}
        assert len(outcome.errors) == 1
        assert isinstance(outcome.errors[0], QueryExecutionError)
        assert outcome.errors[0].query_keys == ["traffic"]


# ============================================================
# RESPONSE PARSING
# ============================================================

class TestQueryResponse:
    """Tests for QueryResponse.from_dict()."""

    def test_malformed_entries_dropped_per_key(self):
        model = {"id": "model1", "name": "Model 1", "project": {"id": "project1", "name": "Project 1"}}
        payload = {
            "data": {
                "project": {"id": "project1", "name": "Project 1"},
                "results": {
                    "traffic": {"model": model, "metric": "traffic", "col_names": ["timestamp", "count"], "data": []},
                    "jsd": None,
                    "psi": {"metric": "psi", "col_names": ["timestamp"], "data": []},
                },
            },
        }

        response = QueryResponse.from_dict(payload)

        assert set(response.results) == {"traffic"}
        assert set(response.invalid) == {"jsd", "psi"}

    def test_rows_kept_as_received(self):
        model = {"id": "model1", "name": "Model 1", "project": {"id": "project1", "name": "Project 1"}}
        payload = {
            "data": {
                "project": {"id": "project1", "name": "Project 1"},
                "results": {
                    "traffic": {
                        "model": model,
                        "metric": None,
                        "col_names": ["timestamp", "count"],
                        "data": [["2021-06-01T00:00:00Z", 42.0], None],
                    },
                },
            },
        }

        result = QueryResponse.from_dict(payload).results["traffic"]

        assert result.data == (["2021-06-01T00:00:00Z", 42.0], None)
        assert result.metric == "traffic"
