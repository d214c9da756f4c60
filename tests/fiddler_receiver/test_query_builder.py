"""
Tests for the Query Builder.

============================================================
PURPOSE
============================================================
- Enabled-type filtering
- Column pass-through (including __ANY__)
- Baseline selection and exclusion
- Bin size buckets and time formatting
- Batched request body

============================================================
"""

from datetime import datetime, timedelta, timezone

import pytest

from fiddler_receiver.query_builder import (
    build_queries,
    build_query_request,
    format_time,
    get_bin_size,
    is_metric_enabled,
    select_baseline,
)
from fiddler_receiver.types import (
    ANY_COLUMN,
    Baseline,
    MetricDefinition,
    Model,
    Project,
    TimeWindow,
)


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def model():
    return Model(id="model1", name="Model 1", project=Project(id="project1", name="Project 1"))


@pytest.fixture
def metrics():
    features = ("creditscore", "geography", "gender", "age", "balance")
    return [
        MetricDefinition(id="traffic", type="service_metrics"),
        MetricDefinition(id="jsd", type="drift", columns=features, requires_baseline=True),
        MetricDefinition(id="psi", type="drift", columns=features, requires_baseline=True),
        MetricDefinition(
            id="null_violation_count",
            type="data_integrity",
            columns=(ANY_COLUMN, "creditscore", "age"),
        ),
        MetricDefinition(id="accuracy", type="performance"),
    ]


@pytest.fixture
def baselines():
    return [
        Baseline(id="baseline1", name="default_static_baseline"),
        Baseline(id="baseline2", name="rolling_baseline"),
    ]


# ============================================================
# FILTERING
# ============================================================

class TestIsMetricEnabled:
    """Tests for the enabled-type filter."""

    def test_membership(self):
        enabled = ["traffic", "drift"]

        assert is_metric_enabled("traffic", enabled)
        assert is_metric_enabled("drift", enabled)
        assert not is_metric_enabled("performance", enabled)

    def test_empty_list_enables_everything(self):
        assert is_metric_enabled("anything", [])

    def test_case_sensitive(self):
        assert not is_metric_enabled("Drift", ["drift"])

    def test_filtered_types_never_produce_queries(self, model, metrics, baselines):
        queries = build_queries(model, metrics, baselines, ["drift"])

        assert {q.metric_type for q in queries} == {"drift"}
        assert {q.query_key for q in queries} == {"jsd", "psi"}

    def test_empty_filter_is_identity(self, model, metrics, baselines):
        queries = build_queries(model, metrics, baselines, [])

        assert [q.query_key for q in queries] == [m.id for m in metrics]


# ============================================================
# QUERY SPECS
# ============================================================

class TestBuildQueries:
    """Tests for QuerySpec construction."""

    def test_query_fields(self, model, metrics, baselines):
        queries = {q.query_key: q for q in build_queries(model, metrics, baselines, [])}

        traffic = queries["traffic"]
        assert traffic.metric == "traffic"
        assert traffic.metric_type == "service_metrics"
        assert traffic.model_id == "model1"
        assert traffic.columns == ()
        assert traffic.categories == ()
        assert traffic.viz_type == "line"
        assert traffic.baseline_id == ""

    def test_columns_copied_verbatim(self, model, metrics, baselines):
        queries = {q.query_key: q for q in build_queries(model, metrics, baselines, [])}

        assert queries["null_violation_count"].columns == (ANY_COLUMN, "creditscore", "age")
        assert queries["jsd"].columns == ("creditscore", "geography", "gender", "age", "balance")

    def test_first_baseline_selected(self, model, metrics, baselines):
        queries = {q.query_key: q for q in build_queries(model, metrics, baselines, [])}

        assert queries["jsd"].baseline_id == "baseline1"
        assert queries["psi"].baseline_id == "baseline1"

    def test_baseline_not_attached_when_not_required(self, model, metrics, baselines):
        queries = {q.query_key: q for q in build_queries(model, metrics, baselines, [])}

        assert queries["accuracy"].baseline_id == ""

    def test_metric_requiring_baseline_skipped_without_one(self, model, metrics):
        queries = build_queries(model, metrics, [], [])

        keys = {q.query_key for q in queries}
        assert "jsd" not in keys
        assert "psi" not in keys
        assert keys == {"traffic", "null_violation_count", "accuracy"}

    def test_query_keys_unique(self, model, metrics, baselines):
        queries = build_queries(model, metrics, baselines, [])

        keys = [q.query_key for q in queries]
        assert len(keys) == len(set(keys))

    def test_select_baseline(self, baselines):
        assert select_baseline(baselines).id == "baseline1"
        assert select_baseline([]) is None

    def test_wire_format(self, model, metrics, baselines):
        jsd = next(q for q in build_queries(model, metrics, baselines, []) if q.query_key == "jsd")

        assert jsd.to_dict() == {
            "query_key": "jsd",
            "categories": [],
            "columns": ["creditscore", "geography", "gender", "age", "balance"],
            "viz_type": "line",
            "metric": "jsd",
            "metric_type": "drift",
            "model_id": "model1",
            "baseline_id": "baseline1",
        }


# ============================================================
# BIN SIZE & TIME FORMAT
# ============================================================

class TestBinSize:
    """Tests for interval bucketing."""

    @pytest.mark.parametrize(
        "interval,expected",
        [
            (timedelta(minutes=30), "Hour"),
            (timedelta(hours=1), "Hour"),
            (timedelta(hours=1, seconds=1), "Day"),
            (timedelta(hours=12), "Day"),
            (timedelta(days=1), "Day"),
            (timedelta(days=1, seconds=1), "Week"),
            (timedelta(days=7), "Week"),
            (timedelta(days=7, seconds=1), "Month"),
            (timedelta(days=30), "Month"),
        ],
    )
    def test_buckets(self, interval, expected):
        assert get_bin_size(interval) == expected


class TestFormatTime:
    """Tests for request time formatting."""

    def test_utc(self):
        assert format_time(datetime(2021, 6, 1, 12, 0, 0, tzinfo=timezone.utc)) == "2021-06-01 12:00:00"

    def test_naive_treated_as_utc(self):
        assert format_time(datetime(2021, 6, 1, 12, 0, 0)) == "2021-06-01 12:00:00"

    def test_offset_converted_to_utc(self):
        tz = timezone(timedelta(hours=2))

        assert format_time(datetime(2021, 6, 1, 14, 0, 0, tzinfo=tz)) == "2021-06-01 12:00:00"


class TestBuildQueryRequest:
    """Tests for the batched request body."""

    def test_request_body(self, model, metrics, baselines):
        queries = build_queries(model, metrics, baselines, ["performance"])
        window = TimeWindow(
            start=datetime(2021, 6, 1, 11, 0, tzinfo=timezone.utc),
            end=datetime(2021, 6, 1, 12, 0, tzinfo=timezone.utc),
        )

        body = build_query_request("project1", queries, window, "Hour")

        assert body["project_id"] == "project1"
        assert body["query_type"] == "MONITORING"
        assert body["filters"]["time_range"] == {
            "start_time": "2021-06-01 11:00:00",
            "end_time": "2021-06-01 12:00:00",
        }
        assert body["filters"]["bin_size"] == "Hour"
        assert [q["query_key"] for q in body["queries"]] == ["accuracy"]
