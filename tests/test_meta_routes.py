"""
Tests for the /meta HTTP routes with Meta and the cache store faked out.
"""
import pytest
from fastapi.testclient import TestClient

from conftest import FakeMetaClient
from adpulse.api.dependencies import get_meta_client, get_scheduler
from adpulse.connectors.meta.client import MetaAPIError
from adpulse.connectors.meta.rate_limiter import RequestScheduler
from adpulse.database import get_session
from adpulse.main import app


@pytest.fixture
def fake_meta():
    return FakeMetaClient()


@pytest.fixture
def api(session, fake_meta):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_meta_client] = lambda: fake_meta
    app.dependency_overrides[get_scheduler] = lambda: RequestScheduler(2, 0)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(api):
    assert api.get("/health").json()["status"] == "healthy"


def test_campaigns_empty_cache_failing_remote(api, fake_meta):
    fake_meta.handler = lambda url, params: MetaAPIError("User request limit reached", error_code=17)

    resp = api.get("/meta/campaigns", params={"ad_account_id": "act_123"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["data"] == []
    assert body["rate_limited"] is True
    assert "User request limit reached" in body["errors"][0]


def test_campaigns_fetched_then_cached(api, fake_meta):
    fake_meta.handler = lambda url, params: [{"id": "1", "name": "Spring"}]

    first = api.get("/meta/campaigns", params={"ad_account_id": "123"}).json()
    second = api.get("/meta/campaigns", params={"ad_account_id": "act_123"}).json()

    assert first["data"][0]["name"] == "Spring"
    assert first["cached"] is False
    assert second["cached"] is True
    assert len(fake_meta.calls) == 1


def test_ad_accounts_listing(api, fake_meta):
    fake_meta.handler = lambda url, params: [{"account_id": "9", "name": "Main", "account_status": 1}]
    body = api.get("/meta/ad-accounts").json()
    assert body["data"][0]["status"] == "ACTIVE"


def test_ads_sync_maps_auth_failure_to_401(api, fake_meta):
    fake_meta.handler = lambda url, params: MetaAPIError("Error validating access token", error_code=190)
    resp = api.post("/meta/ads/sync", params={"ad_account_id": "123"})
    assert resp.status_code == 401


@pytest.mark.parametrize("error, status", [
    (MetaAPIError("User request limit reached", error_code=17), 429),
    (MetaAPIError("Unknown error", status_code=500, error_code=1), 502),
])
def test_ads_sync_maps_other_failures(api, fake_meta, error, status):
    fake_meta.handler = lambda url, params: error
    resp = api.post("/meta/ads/sync", params={"ad_account_id": "123"})
    assert resp.status_code == status


def test_ads_sync_then_filter_by_campaign(api, fake_meta):
    fake_meta.handler = lambda url, params: [
        {"id": "a1", "name": "One", "campaign_id": "c1"},
        {"id": "a2", "name": "Two", "campaign_id": "c2"},
    ]
    assert api.post("/meta/ads/sync", params={"ad_account_id": "123"}).json()["ok"]

    body = api.get("/meta/ads", params={"ad_account_id": "123", "campaign_id": "c1"}).json()

    assert [ad["id"] for ad in body["data"]] == ["a1"]
    assert len(fake_meta.calls) == 1


def test_demographics_splits_invalid_combination(api, fake_meta):
    fake_meta.handler = lambda url, params: [{"country": "IN", "age": "18-24", "gender": "female", "impressions": "3"}]

    resp = api.get(
        "/meta/demographics",
        params={"ad_account_id": "42", "from": "2026-01-01", "to": "2026-01-31", "breakdowns": "age,gender,country"},
    )

    assert resp.status_code == 200
    sent = {params.get("breakdowns") for _, params in fake_meta.calls}
    assert sent == {"age,gender", "country"}
    assert resp.json()["country_breakdown"] == [{"country": "IN", "impressions": 3, "reach": 0, "spend": 0.0}]


def test_insights_rate_limit_is_429(api, fake_meta):
    fake_meta.handler = lambda url, params: MetaAPIError("too many calls", error_code=80004)
    resp = api.get("/meta/insights", params={"ad_account_id": "77", "from": "2026-05-01", "to": "2026-05-02"})
    assert resp.status_code == 429
