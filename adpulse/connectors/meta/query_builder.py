"""AdPulse — Insights Query Builder.

Pure translation of a logical InsightsQuery into the GET parameters of
/act_{id}/insights. One request per ad account and filter set; ids are
never looped over.

Select All for campaigns or ads sends status predicates only. An explicit
selection adds `campaign.id IN [...]` / `ad.id IN [...]` to the same
request.
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from adpulse.config import settings
from adpulse.models.entity_models import DeliveryStatus, normalize_account_id
from adpulse.models.insight_models import InsightsQuery, InsightsRequest

# Every lifecycle state, so paused / archived / ended entities still report
EFFECTIVE_STATUSES: List[str] = [status.value for status in DeliveryStatus]

STATUS_FILTER: List[Dict[str, Any]] = [
    {"field": "campaign.effective_status", "operator": "IN", "value": EFFECTIVE_STATUSES},
    {"field": "ad.effective_status", "operator": "IN", "value": EFFECTIVE_STATUSES},
]

DEFAULT_FIELDS = (
    "ad_id,ad_name,campaign_id,campaign_name,impressions,clicks,spend,ctr,cpc,"
    "actions,action_values,date_start,date_stop"
)
PAGE_LIMIT = 1000


def build_filtering(
    is_all_campaigns: bool = True,
    is_all_ads: bool = True,
    campaign_ids: Sequence[str] = (),
    ad_ids: Sequence[str] = (),
) -> List[Dict[str, Any]]:
    """Build the `filtering` array for the Insights API."""
    filtering = [dict(f, value=list(f["value"])) for f in STATUS_FILTER]
    if not is_all_campaigns and campaign_ids:
        filtering.append(
            {"field": "campaign.id", "operator": "IN", "value": [str(i) for i in campaign_ids]}
        )
    if not is_all_ads and ad_ids:
        filtering.append(
            {"field": "ad.id", "operator": "IN", "value": [str(i) for i in ad_ids]}
        )
    return filtering


def insights_url(ad_account_id: str, graph_url: Optional[str] = None) -> str:
    account_id = normalize_account_id(ad_account_id)
    return f"{graph_url or settings.meta_graph_url}/act_{account_id}/insights"


def build_insights_request(
    query: InsightsQuery, graph_url: Optional[str] = None
) -> InsightsRequest:
    """Build url + params for GET act_{ad_account_id}/insights.

    Empty breakdowns mean a totals-only request: the `breakdowns` parameter
    is omitted, as is `time_increment` when no granularity was asked for.
    """
    filtering = build_filtering(
        query.is_all_campaigns, query.is_all_ads, query.campaign_ids, query.ad_ids
    )
    params: Dict[str, Any] = {
        "level": query.level,
        "time_range": json.dumps({"since": query.date_from, "until": query.date_to}),
        "fields": query.fields or DEFAULT_FIELDS,
        "limit": PAGE_LIMIT,
        "filtering": json.dumps(filtering),
    }
    if query.breakdowns:
        params["breakdowns"] = ",".join(query.breakdowns)
    if query.time_increment is not None:
        params["time_increment"] = query.time_increment

    return InsightsRequest(url=insights_url(query.ad_account_id, graph_url), params=params)
