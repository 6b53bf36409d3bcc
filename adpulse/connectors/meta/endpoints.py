"""AdPulse — Meta API Endpoints.

Fetch functions for each Meta Marketing API resource. Each returns the raw
`data` rows; mapping into canonical entities happens in the services.
Callers are responsible for running these through the RequestScheduler.
"""

from typing import Any, Dict, List

from adpulse.connectors.meta.client import MetaClient
from adpulse.models.entity_models import normalize_account_id
from adpulse.models.insight_models import InsightsRequest
from adpulse.core.logging import get_logger

logger = get_logger("meta.endpoints")

AD_ACCOUNT_FIELDS = "account_id,name,currency,timezone_name,account_status"
CAMPAIGN_FIELDS = "id,name,status,effective_status,objective"
AD_FIELDS = "id,name,status,effective_status,campaign_id"

AD_ACCOUNT_PAGE_LIMIT = 100
STRUCTURE_PAGE_LIMIT = 1000


class MetaEndpoints:
    """Thin wrappers around the Graph API paths AdPulse uses."""

    def __init__(self, client: MetaClient):
        self.client = client
        self.graph_url = client.graph_url

    # ── Structure Endpoints (Ad Accounts, Campaigns, Ads) ──

    async def fetch_ad_accounts(self) -> List[Dict[str, Any]]:
        """Ad accounts visible to the access token."""
        url = f"{self.graph_url}/me/adaccounts"
        params = {"fields": AD_ACCOUNT_FIELDS, "limit": AD_ACCOUNT_PAGE_LIMIT}
        return await self.client.paginated_get(url, params)

    async def fetch_campaigns(self, ad_account_id: str) -> List[Dict[str, Any]]:
        account_id = normalize_account_id(ad_account_id)
        url = f"{self.graph_url}/act_{account_id}/campaigns"
        params = {"fields": CAMPAIGN_FIELDS, "limit": STRUCTURE_PAGE_LIMIT}
        return await self.client.paginated_get(url, params)

    async def fetch_ads(self, ad_account_id: str) -> List[Dict[str, Any]]:
        account_id = normalize_account_id(ad_account_id)
        url = f"{self.graph_url}/act_{account_id}/ads"
        params = {"fields": AD_FIELDS, "limit": STRUCTURE_PAGE_LIMIT}
        return await self.client.paginated_get(url, params)

    # ── Insights ──

    async def fetch_insights(self, request: InsightsRequest) -> List[Dict[str, Any]]:
        """Run a prepared /insights request, following pagination."""
        data = await self.client.paginated_get(request.url, request.params)
        logger.info(f"Fetched {len(data)} insight rows")
        return data
