"""AdPulse — Meta API Routes.

Entity lists are served from the local cache and always answer 200; refresh
failures are reported in `errors` next to whatever was cached.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError
from sqlmodel import Session

from adpulse.api.dependencies import get_meta_client, get_scheduler
from adpulse.config import settings
from adpulse.connectors.meta.client import AUTH_ERROR_CODE, MetaAPIError, MetaClient
from adpulse.connectors.meta.rate_limiter import RequestScheduler
from adpulse.database import get_session
from adpulse.models.entity_models import normalize_account_id
from adpulse.models.insight_models import DemographicQuery, InsightsFilter
from adpulse.models.result_models import EntityListResult
from adpulse.services.demographics import DemographicsPlanner
from adpulse.services.entities import AdAccountsService, AdsService, CampaignsService
from adpulse.services.insights import InsightsService, clear_insights_cache
from adpulse.core.logging import get_logger

logger = get_logger("api.meta")

router = APIRouter(prefix="/meta", tags=["Meta"])


# ── Helpers ──


def _split_ids(raw: Optional[str]) -> List[str]:
    return [part.strip() for part in (raw or "").split(",") if part.strip()]


def _account_or_400(ad_account_id: Optional[str]) -> str:
    account_id = normalize_account_id(ad_account_id or settings.meta_ad_account_id)
    if not account_id:
        raise HTTPException(
            status_code=400,
            detail="ad_account_id required (query param or META_AD_ACCOUNT_ID)",
        )
    return account_id


def _listing(result: EntityListResult) -> dict:
    body = {
        "data": [item.model_dump(mode="json") for item in result.data],
        "cached": not result.refreshed,
    }
    if result.errors:
        body["errors"] = result.errors
    if result.rate_limited:
        body["rate_limited"] = True
    return body


def _http_error(e: MetaAPIError, action: str) -> HTTPException:
    if e.is_auth_error:
        return HTTPException(
            status_code=401, detail=f"Meta access token expired or invalid: {e}"
        )
    if e.is_rate_limit:
        return HTTPException(status_code=429, detail=f"Meta rate limit reached: {e}")
    return HTTPException(status_code=502, detail=f"Failed to {action}: {e}")


def _filter_or_422(model, **values):
    try:
        return model(**values)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


# ── Entity Lists ──


@router.get("/ad-accounts")
async def list_ad_accounts(
    refresh: bool = False,
    client: MetaClient = Depends(get_meta_client),
    scheduler: RequestScheduler = Depends(get_scheduler),
    session: Session = Depends(get_session),
):
    """Ad accounts from the cache, refreshed from /me/adaccounts when stale."""
    service = AdAccountsService(client, scheduler, session)
    return _listing(await service.list(force_refresh=refresh))


@router.get("/campaigns")
async def list_campaigns(
    ad_account_id: Optional[str] = None,
    refresh: bool = False,
    client: MetaClient = Depends(get_meta_client),
    scheduler: RequestScheduler = Depends(get_scheduler),
    session: Session = Depends(get_session),
):
    """Campaigns for one or more (comma-separated) accounts, cached 24h."""
    accounts = _split_ids(ad_account_id) or [_account_or_400(ad_account_id)]
    service = CampaignsService(client, scheduler, session)
    return _listing(await service.list(accounts, force_refresh=refresh))


@router.get("/ads")
async def list_ads(
    ad_account_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    refresh: bool = False,
    client: MetaClient = Depends(get_meta_client),
    scheduler: RequestScheduler = Depends(get_scheduler),
    session: Session = Depends(get_session),
):
    """Ads for an account, optionally narrowed to campaigns. Filter changes hit the cache only."""
    accounts = _split_ids(ad_account_id) or [_account_or_400(ad_account_id)]
    service = AdsService(client, scheduler, session)
    result = await service.list(
        accounts, force_refresh=refresh, campaign_ids=_split_ids(campaign_id)
    )
    return _listing(result)


@router.post("/ads/sync")
async def sync_ads(
    ad_account_id: Optional[str] = None,
    client: MetaClient = Depends(get_meta_client),
    scheduler: RequestScheduler = Depends(get_scheduler),
    session: Session = Depends(get_session),
):
    """Explicit one-off refresh of /act_{id}/ads into the cache."""
    account_id = _account_or_400(ad_account_id)
    service = AdsService(client, scheduler, session)
    outcome = await service.fetch_and_cache(account_id)
    if not outcome.ok:
        status = 401 if outcome.error_code == AUTH_ERROR_CODE else 429 if outcome.rate_limited else 502
        raise HTTPException(status_code=status, detail=f"Failed to sync ads: {outcome.error}")
    return {
        "ok": True,
        "data": [ad.model_dump() for ad in outcome.data],
        "message": f"Ads synced for account {account_id}",
    }


# ── Insights ──


@router.get("/insights")
async def get_insights(
    date_from: str = Query(..., alias="from"),
    date_to: str = Query(..., alias="to"),
    ad_account_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    ad_id: Optional[str] = None,
    is_all_campaigns: Optional[bool] = None,
    is_all_ads: Optional[bool] = None,
    client: MetaClient = Depends(get_meta_client),
    scheduler: RequestScheduler = Depends(get_scheduler),
):
    """Daily ad-level insights. Omitted ids or is_all_*=true mean Select All."""
    campaign_ids, ad_ids = _split_ids(campaign_id), _split_ids(ad_id)
    query = _filter_or_422(
        InsightsFilter,
        ad_account_id=_account_or_400(ad_account_id),
        date_from=date_from,
        date_to=date_to,
        is_all_campaigns=is_all_campaigns if is_all_campaigns is not None else not campaign_ids,
        is_all_ads=is_all_ads if is_all_ads is not None else not ad_ids,
        campaign_ids=campaign_ids,
        ad_ids=ad_ids,
    )
    try:
        rows = await InsightsService(client, scheduler).fetch(query)
    except MetaAPIError as e:
        logger.error(
            f"Insights fetch failed: {e}",
            extra={"scope_id": query.ad_account_id, "operation": "insights.fetch"},
        )
        raise _http_error(e, "fetch insights")
    return {"data": rows}


@router.get("/demographics")
async def get_demographics(
    date_from: str = Query(..., alias="from"),
    date_to: str = Query(..., alias="to"),
    breakdowns: str = "age,gender,country",
    ad_account_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
    ad_id: Optional[str] = None,
    client: MetaClient = Depends(get_meta_client),
    scheduler: RequestScheduler = Depends(get_scheduler),
):
    """Age/gender, country and region breakdowns, split into calls Meta accepts."""
    campaign_ids, ad_ids = _split_ids(campaign_id), _split_ids(ad_id)
    query = _filter_or_422(
        DemographicQuery,
        ad_account_id=_account_or_400(ad_account_id),
        date_from=date_from,
        date_to=date_to,
        is_all_campaigns=not campaign_ids,
        is_all_ads=not ad_ids,
        campaign_ids=campaign_ids,
        ad_ids=ad_ids,
        breakdowns=_split_ids(breakdowns),
    )
    insights = await DemographicsPlanner(client, scheduler).fetch(query)
    return insights.to_response()


@router.post("/cache/clear")
async def clear_cache():
    """Drop cached live-insights responses."""
    return {"ok": True, "cleared": clear_insights_cache()}
