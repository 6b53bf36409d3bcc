"""
Tests for the insights query builder.
"""
import json

import pytest
from pydantic import ValidationError

from adpulse.connectors.meta.query_builder import (
    DEFAULT_FIELDS,
    EFFECTIVE_STATUSES,
    build_filtering,
    build_insights_request,
)
from adpulse.models.insight_models import InsightsQuery

GRAPH = "https://graph.test/v21.0"


def _query(**overrides):
    values = dict(ad_account_id="act_123", date_from="2026-01-01", date_to="2026-01-07")
    values.update(overrides)
    return InsightsQuery(**values)


class TestBuildFiltering:

    def test_status_predicates_always_present(self):
        filtering = build_filtering()
        fields = [f["field"] for f in filtering]
        assert fields == ["campaign.effective_status", "ad.effective_status"]
        for predicate in filtering:
            assert predicate["operator"] == "IN"
            assert set(predicate["value"]) == {
                "ACTIVE", "PAUSED", "ARCHIVED", "IN_REVIEW",
                "REJECTED", "PENDING_REVIEW", "LEARNING", "ENDED",
            }

    def test_select_all_ignores_id_lists(self):
        filtering = build_filtering(True, True, ["1", "2"], ["9"])
        assert len(filtering) == 2

    def test_explicit_ids_add_in_predicates(self):
        filtering = build_filtering(False, False, [1, "2"], ["a1"])
        assert {"field": "campaign.id", "operator": "IN", "value": ["1", "2"]} in filtering
        assert {"field": "ad.id", "operator": "IN", "value": ["a1"]} in filtering

    def test_empty_explicit_list_adds_nothing(self):
        assert len(build_filtering(False, False, [], [])) == 2

    def test_returns_independent_copies(self):
        filtering = build_filtering()
        filtering[0]["value"].append("BOGUS")
        assert "BOGUS" not in EFFECTIVE_STATUSES
        assert "BOGUS" not in build_filtering()[0]["value"]


class TestBuildInsightsRequest:

    def test_url_strips_account_prefix(self):
        request = build_insights_request(_query(), graph_url=GRAPH)
        assert request.url == f"{GRAPH}/act_123/insights"

    def test_time_range_and_defaults(self):
        params = build_insights_request(_query(), graph_url=GRAPH).params
        assert json.loads(params["time_range"]) == {"since": "2026-01-01", "until": "2026-01-07"}
        assert params["fields"] == DEFAULT_FIELDS
        assert params["level"] == "ad"
        assert params["limit"] == 1000
        assert len(json.loads(params["filtering"])) == 2

    def test_no_breakdowns_means_totals_only(self):
        params = build_insights_request(_query(), graph_url=GRAPH).params
        assert "breakdowns" not in params
        assert "time_increment" not in params

    def test_breakdowns_and_granularity(self):
        params = build_insights_request(
            _query(breakdowns=["age", "gender"], time_increment=1, fields="impressions"),
            graph_url=GRAPH,
        ).params
        assert params["breakdowns"] == "age,gender"
        assert params["time_increment"] == 1
        assert params["fields"] == "impressions"

    def test_explicit_campaign_selection_reaches_filtering(self):
        params = build_insights_request(
            _query(is_all_campaigns=False, campaign_ids=["55"]), graph_url=GRAPH
        ).params
        filtering = json.loads(params["filtering"])
        assert filtering[-1] == {"field": "campaign.id", "operator": "IN", "value": ["55"]}

    def test_missing_account_is_rejected(self):
        with pytest.raises(ValidationError):
            _query(ad_account_id="act_")
