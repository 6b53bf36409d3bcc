"""AdPulse — Live Insights Service.

One /insights request per (account, date range, filter set), never one
per campaign or ad id. Results are held in a short-lived in-memory cache
so repeated dashboard refreshes inside the TTL cost no remote calls.
"""

import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from adpulse.config import settings
from adpulse.connectors.meta.client import MetaClient
from adpulse.connectors.meta.endpoints import MetaEndpoints
from adpulse.connectors.meta.query_builder import build_insights_request
from adpulse.connectors.meta.rate_limiter import RequestScheduler
from adpulse.models.insight_models import InsightsFilter, InsightsQuery
from adpulse.core.logging import get_logger

logger = get_logger("services.insights")


def insights_cache_key(query: InsightsFilter) -> str:
    """`from|to|account|campaign ids or *|ad ids or *`."""
    campaigns = "" if query.is_all_campaigns else ",".join(query.campaign_ids)
    ads = "" if query.is_all_ads else ",".join(query.ad_ids)
    return "|".join(
        [query.date_from, query.date_to, query.ad_account_id, campaigns or "*", ads or "*"]
    )


class InsightsCache:
    """Tiny TTL map keyed by `insights_cache_key`."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[str, Tuple[float, List[Dict[str, Any]]]] = {}

    def get(self, key: str) -> Optional[List[Dict[str, Any]]]:
        hit = self._entries.get(key)
        if hit is None:
            return None
        expires, data = hit
        if expires <= self.clock():
            del self._entries[key]
            return None
        return data

    def set(self, key: str, data: List[Dict[str, Any]]) -> None:
        now = self.clock()
        expired = [k for k, (expires, _) in self._entries.items() if expires <= now]
        for k in expired:
            del self._entries[k]
        self._entries[key] = (now + self.ttl_seconds, data)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count


_default_cache = InsightsCache(settings.insights_cache_ttl_seconds)


class InsightsService:
    """Daily ad-level insights, fetched live through the scheduler."""

    def __init__(
        self,
        client: MetaClient,
        scheduler: RequestScheduler,
        cache: Optional[InsightsCache] = None,
    ):
        self.endpoints = MetaEndpoints(client)
        self.scheduler = scheduler
        self.cache = cache if cache is not None else _default_cache

    async def fetch(self, query: InsightsFilter) -> List[Dict[str, Any]]:
        """Raw ad-level rows, one per ad per day. MetaAPIError propagates."""
        key = insights_cache_key(query)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Insights cache hit", extra={"scope_id": query.ad_account_id})
            return cached

        params = query.model_dump()
        params["time_increment"] = 1
        request = build_insights_request(
            InsightsQuery(**params),
            graph_url=self.endpoints.graph_url,
        )
        rows = await self.scheduler.schedule(lambda: self.endpoints.fetch_insights(request))
        self.cache.set(key, rows)
        return rows


def clear_insights_cache() -> int:
    """Drop every cached insights response; returns how many were held."""
    return _default_cache.clear()
