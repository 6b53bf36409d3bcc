"""
Tests for the demographic breakdown planner: splitting, merging and
partial-failure handling.
"""
import asyncio
import time

import pytest

from conftest import FakeMetaClient
from adpulse.connectors.meta.client import MetaAPIError
from adpulse.connectors.meta.rate_limiter import RequestScheduler
from adpulse.models.insight_models import DemographicQuery
from adpulse.services.demographics import (
    ALLOWED_COMBINATIONS,
    INVALID_COMBINATIONS,
    BreakdownClass,
    DemographicsPlanner,
    aggregate_breakdown_rows,
    classify_breakdowns,
    normalize_breakdowns,
    normalize_time_series_rows,
    plan_breakdowns,
)


def _query(breakdowns, **overrides):
    values = dict(
        ad_account_id="act_42",
        date_from="2026-02-01",
        date_to="2026-02-07",
        breakdowns=breakdowns,
    )
    values.update(overrides)
    return DemographicQuery(**values)


def _sent_breakdowns(client):
    return [params.get("breakdowns") for _, params in client.calls]


class TestPlanning:

    def test_normalize(self):
        assert normalize_breakdowns([" Age", "GENDER", "age", "device", "country"]) == [
            "age", "gender", "country",
        ]
        assert normalize_breakdowns("age,region") == ["age", "region"]
        assert normalize_breakdowns(None) == []

    @pytest.mark.parametrize("combo,expected", [
        (["age", "gender"], BreakdownClass.ALLOWED),
        (["region"], BreakdownClass.ALLOWED),
        (["gender", "age", "country"], BreakdownClass.FORBIDDEN),
        (["country", "gender"], BreakdownClass.FORBIDDEN),
        (["age", "region"], BreakdownClass.DECOMPOSABLE),
    ])
    def test_classify(self, combo, expected):
        assert classify_breakdowns(combo) == expected

    def test_invalid_triple_is_decomposed(self):
        plan = plan_breakdowns(["age", "gender", "country"])
        assert plan.age_gender and plan.country and not plan.region
        assert plan.skipped == ["age+gender+country"]

    def test_every_planned_group_is_allowed(self):
        for invalid in INVALID_COMBINATIONS:
            for group in plan_breakdowns(sorted(invalid)).groups:
                assert frozenset(group) in ALLOWED_COMBINATIONS
                assert frozenset(group) != invalid

    def test_empty_plan(self):
        plan = plan_breakdowns([])
        assert plan.groups == []


class TestMerging:

    def test_sums_rows_sharing_a_key(self):
        rows = [
            {"age": "25-34", "gender": "male", "impressions": "10"},
            {"age": "25-34", "gender": "male", "impressions": "5"},
        ]
        merged = aggregate_breakdown_rows(rows, ["age", "gender"])
        assert len(merged) == 1
        assert merged[0].impressions == 15

    def test_spend_parsed_not_concatenated(self):
        rows = [
            {"country": "IN", "spend": "1.50", "reach": "3"},
            {"country": "IN", "spend": "2.25", "reach": None},
            {"country": "US", "spend": "oops", "impressions": "x"},
        ]
        merged = {r.country: r for r in aggregate_breakdown_rows(rows, ["country"])}
        assert merged["IN"].spend == pytest.approx(3.75)
        assert merged["IN"].reach == 3
        assert merged["US"].spend == 0.0
        assert merged["US"].impressions == 0

    def test_missing_key_groups_as_unknown(self):
        merged = aggregate_breakdown_rows([{"impressions": "1"}, {"region": "", "impressions": "2"}], ["region"])
        assert [(r.region, r.impressions) for r in merged] == [("unknown", 3)]

    def test_reaggregating_same_input_is_stable(self):
        rows = [{"age": "18-24", "gender": "female", "reach": "7"}]
        first = aggregate_breakdown_rows(rows, ["age", "gender"])
        second = aggregate_breakdown_rows(rows, ["age", "gender"])
        assert first == second
        assert second[0].reach == 7

    def test_time_series_sorted_by_date(self):
        rows = [
            {"date_start": "2026-02-03", "age": "18-24", "impressions": "3"},
            {"date_start": "2026-02-01", "age": "18-24", "impressions": "1"},
            {"date_start": "2026-02-02", "age": "18-24", "spend": "0.5"},
        ]
        series = normalize_time_series_rows(rows)
        assert [r.date_start for r in series] == ["2026-02-01", "2026-02-02", "2026-02-03"]
        assert series[1].spend == 0.5


class TestPlanner:

    def test_invalid_triple_yields_two_breakdown_groups(self, scheduler):
        def handler(url, params):
            if params.get("breakdowns") == "country":
                return [{"country": "IN", "impressions": "4"}, {"country": "IN", "impressions": "6"}]
            return [{"age": "25-34", "gender": "male", "impressions": "10", "date_start": "2026-02-01"}]

        client = FakeMetaClient(handler)
        result = asyncio.run(
            DemographicsPlanner(client, scheduler).fetch(_query(["age", "gender", "country"]))
        )

        sent = _sent_breakdowns(client)
        assert "age,gender,country" not in sent
        assert sorted(set(sent)) == ["age,gender", "country"]
        assert sent.count("country") == 1
        assert result.country_breakdown[0].impressions == 10
        assert result.age_gender_breakdown[0].gender == "male"
        assert len(result.time_series_age_gender) == 1
        assert result.errors is None

    def test_age_gender_group_adds_daily_series_call(self, scheduler):
        client = FakeMetaClient()
        asyncio.run(DemographicsPlanner(client, scheduler).fetch(_query(["age"])))

        assert len(client.calls) == 2
        increments = sorted(str(params.get("time_increment")) for _, params in client.calls)
        assert increments == ["1", "None"]
        for url, _ in client.calls:
            assert url.endswith("/act_42/insights")

    def test_failed_branch_does_not_sink_siblings(self, scheduler):
        def handler(url, params):
            if params.get("breakdowns") == "region":
                return MetaAPIError("Service temporarily unavailable", status_code=503)
            return [{"country": "US", "impressions": "2"}]

        client = FakeMetaClient(handler)
        result = asyncio.run(
            DemographicsPlanner(client, scheduler).fetch(_query(["country", "region"]))
        )

        assert result.region_breakdown == []
        assert result.country_breakdown[0].impressions == 2
        assert result.errors == ["region: Service temporarily unavailable"]
        assert "errors" in result.to_response()

    def test_invalid_parameter_error_leaves_branch_empty(self, scheduler):
        client = FakeMetaClient(
            lambda url, params: MetaAPIError("Invalid parameter", status_code=400, error_code=100)
        )
        result = asyncio.run(DemographicsPlanner(client, scheduler).fetch(_query(["country"])))
        assert result.country_breakdown == []
        assert result.errors is None

    def test_no_known_breakdowns_makes_no_calls(self, scheduler):
        client = FakeMetaClient()
        result = asyncio.run(DemographicsPlanner(client, scheduler).fetch(_query(["device"])))
        assert client.calls == []
        assert result.to_response() == {
            "age_gender_breakdown": [],
            "country_breakdown": [],
            "region_breakdown": [],
            "time_series_age_gender": [],
        }

    def test_branches_are_throttled_by_the_scheduler(self):
        started = []

        def handler(url, params):
            started.append(time.monotonic())
            return []

        client = FakeMetaClient(handler)
        throttled = RequestScheduler(max_concurrent=1, min_interval_ms=50)
        asyncio.run(
            DemographicsPlanner(client, throttled).fetch(_query(["age", "gender", "country", "region"]))
        )

        assert len(started) == 4
        gaps = [later - earlier for earlier, later in zip(started, started[1:])]
        assert all(gap >= 0.045 for gap in gaps)
