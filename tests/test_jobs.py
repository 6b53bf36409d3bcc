"""
Tests for the scheduled entity cache sync.
"""
import asyncio

from sqlmodel import Session

from conftest import FakeMetaClient
from adpulse.scheduler import jobs
from adpulse.connectors.meta.rate_limiter import RequestScheduler
from adpulse.connectors.meta.client import MetaAPIError
from adpulse.scheduler.jobs import sync_entity_cache
from adpulse.services.entities import CampaignsService


def test_sync_refreshes_accounts_then_their_entities(session, scheduler):
    def handler(url, params):
        if url.endswith("/me/adaccounts"):
            return [{"account_id": "1", "name": "One"}, {"account_id": "2", "name": "Two"}]
        if url.endswith("/act_2/ads"):
            return MetaAPIError("Unsupported get request", error_code=100)
        return [{"id": f"x{len(url)}", "name": "Item", "campaign_id": "c"}]

    client = FakeMetaClient(handler)

    summary = asyncio.run(sync_entity_cache(client, scheduler, session))

    assert summary["accounts"] == 2
    assert summary["errors"] == {"ad_account": 0, "campaign": 0, "ad": 1}
    assert len(client.calls_to("/campaigns")) == 2
    assert len(client.calls_to("/ads")) == 2
    cached = asyncio.run(CampaignsService(client, scheduler, session).list(["1", "2"]))
    assert len(cached.data) == 2
    assert len(client.calls_to("/campaigns")) == 2


def test_daily_job_closes_its_session(engine, monkeypatch):
    closed = []

    class TrackingSession(Session):
        def close(self):
            closed.append(True)
            super().close()

    client = FakeMetaClient(lambda url, params: [{"account_id": "1", "name": "One"}])
    monkeypatch.setattr(jobs, "engine", engine)
    monkeypatch.setattr(jobs, "Session", TrackingSession)
    monkeypatch.setattr(jobs, "MetaClient", lambda: client)
    monkeypatch.setattr(jobs, "get_request_scheduler", lambda: RequestScheduler(2, 0))

    asyncio.run(jobs.daily_sync_job())

    assert closed
    assert len(client.calls_to("/me/adaccounts")) == 1
