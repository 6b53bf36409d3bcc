"""AdPulse — Entity Services (cache-aside over Meta structure endpoints).

The dashboard reads ad accounts, campaigns and ads from the local cache.
A scope is refreshed from Meta only when it has never been fetched, when
its oldest row is at least one TTL old, or when the caller forces it.
Remote failures never abort a listing: whatever is cached is returned
along with the reasons the refresh failed.

Two overlapping `list` calls may both decide a scope is stale and both
refresh it. The upsert is idempotent, so that only costs an extra call.
"""

import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, Type

from sqlmodel import Session

from adpulse.config import settings
from adpulse.connectors.meta.client import MetaAPIError, MetaClient
from adpulse.connectors.meta.endpoints import MetaEndpoints
from adpulse.connectors.meta.rate_limiter import RequestScheduler
from adpulse.models.entity_models import Ad, AdAccount, Campaign, normalize_account_id
from adpulse.models.result_models import EntityListResult, FetchResult
from adpulse.repositories.base import CacheRepository, EntityT, normalize_scopes, utcnow
from adpulse.repositories.entities import AdAccountRepository, AdRepository, CampaignRepository
from adpulse.core.logging import get_logger

logger = get_logger("services.entities")


class EntityService(Generic[EntityT]):
    """fetch_and_cache + TTL-aware list for one entity kind."""

    kind: str = "entity"
    repository_class: Type[CacheRepository]

    def __init__(
        self,
        client: MetaClient,
        scheduler: RequestScheduler,
        session: Session,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.endpoints = MetaEndpoints(client)
        self.scheduler = scheduler
        self.repository = self.repository_class(session, clock=clock)
        self.ttl = ttl if ttl is not None else timedelta(hours=settings.entity_cache_ttl_hours)
        self.clock = clock

    # ── Per-kind hooks ──

    async def fetch_remote(self, scope: Optional[str]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def to_entity(self, raw: Dict[str, Any], scope: Optional[str]) -> Optional[EntityT]:
        raise NotImplementedError

    # ── Helpers ──

    def resolve_scopes(self, scopes: Optional[Iterable[str]]) -> List[Optional[str]]:
        if not self.repository.scoped:
            return [None]
        if isinstance(scopes, str):
            scopes = [scopes]
        return normalize_scopes(scopes)

    def is_stale(self, oldest: Optional[datetime]) -> bool:
        """Stale once `now - oldest >= ttl`; an empty cache is always stale."""
        if oldest is None:
            return True
        return self.clock() - oldest >= self.ttl

    # ── Operations ──

    async def fetch_and_cache(self, scope: Optional[str] = None) -> FetchResult[EntityT]:
        """One scheduled remote call for `scope`, upserted into the cache."""
        scope_key = normalize_account_id(scope) if self.repository.scoped else None
        if self.repository.scoped and not scope_key:
            return FetchResult.failure("ad_account_id required")

        started = time.perf_counter()
        try:
            raw = await self.scheduler.schedule(lambda: self.fetch_remote(scope_key))
        except MetaAPIError as e:
            logger.warning(
                f"Refreshing {self.kind} cache failed: {e}",
                extra={
                    "scope_id": scope_key,
                    "operation": f"{self.kind}.fetch_and_cache",
                    "error_code": e.error_code,
                },
            )
            return FetchResult.failure(
                str(e), error_code=e.error_code or None, rate_limited=e.is_rate_limit
            )

        entities = [
            entity
            for entity in (self.to_entity(item, scope_key) for item in raw)
            if entity is not None
        ]
        self.repository.upsert(scope_key, entities)
        logger.info(
            f"Cached {len(entities)} {self.kind} rows from Meta",
            extra={
                "scope_id": scope_key,
                "operation": f"{self.kind}.fetch_and_cache",
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )
        return FetchResult.success(self.repository.list([scope_key]))

    async def list(
        self,
        scopes: Optional[Iterable[str]] = None,
        force_refresh: bool = False,
        **filters: Any,
    ) -> EntityListResult[EntityT]:
        """Cached entities for `scopes`, refreshing from Meta when stale."""
        valid = self.resolve_scopes(scopes)
        if not valid:
            return EntityListResult()

        if force_refresh:
            to_refresh = valid
        elif self.is_stale(self.repository.oldest_updated_at(valid)):
            to_refresh = valid
        else:
            to_refresh = []

        result: EntityListResult[EntityT] = EntityListResult()
        for scope in to_refresh:
            outcome = await self.fetch_and_cache(scope)
            if outcome.ok:
                result.refreshed = True
                continue
            label = f"{self.kind} {scope}" if scope else self.kind
            result.errors.append(f"{label}: {outcome.error}")
            if outcome.rate_limited:
                result.rate_limited = True
                logger.warning(
                    f"Meta rate limit hit; serving cached {self.kind} data",
                    extra={"scope_id": scope, "operation": f"{self.kind}.list"},
                )
                break

        result.data = self.repository.list(valid, **filters)
        return result


class AdAccountsService(EntityService[AdAccount]):
    """/me/adaccounts → meta_ad_accounts."""

    kind = "ad_account"
    repository_class = AdAccountRepository

    async def fetch_remote(self, scope: Optional[str]) -> List[Dict[str, Any]]:
        return await self.endpoints.fetch_ad_accounts()

    def to_entity(self, raw: Dict[str, Any], scope: Optional[str]) -> Optional[AdAccount]:
        return AdAccount.from_remote(raw)


class CampaignsService(EntityService[Campaign]):
    """/act_{id}/campaigns → meta_campaigns."""

    kind = "campaign"
    repository_class = CampaignRepository

    async def fetch_remote(self, scope: Optional[str]) -> List[Dict[str, Any]]:
        return await self.endpoints.fetch_campaigns(scope)

    def to_entity(self, raw: Dict[str, Any], scope: Optional[str]) -> Optional[Campaign]:
        return Campaign.from_remote(raw, scope)


class AdsService(EntityService[Ad]):
    """/act_{id}/ads → meta_ads. Filter changes read `campaign_ids` from cache."""

    kind = "ad"
    repository_class = AdRepository

    async def fetch_remote(self, scope: Optional[str]) -> List[Dict[str, Any]]:
        return await self.endpoints.fetch_ads(scope)

    def to_entity(self, raw: Dict[str, Any], scope: Optional[str]) -> Optional[Ad]:
        return Ad.from_remote(raw, scope)
