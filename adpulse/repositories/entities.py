"""AdPulse — Ad Account / Campaign / Ad cache repositories."""

from typing import Iterable, List, Optional

from sqlmodel import col

from adpulse.models.cache_models import MetaAdAccountRow, MetaAdRow, MetaCampaignRow
from adpulse.models.entity_models import Ad, AdAccount, AccountStatus, Campaign
from adpulse.repositories.base import CacheRepository


class AdAccountRepository(CacheRepository[AdAccount]):
    """Ad accounts are global to the access token, so rows have no scope."""

    table = MetaAdAccountRow
    id_column = "account_id"
    scope_column = None
    kind = "ad_account"

    def entity_id(self, entity: AdAccount) -> str:
        return entity.account_id

    def apply(self, row: MetaAdAccountRow, entity: AdAccount) -> None:
        row.name = entity.account_name
        row.currency = entity.currency or "USD"
        row.timezone_name = entity.timezone or "UTC"
        row.account_status = entity.account_status

    def to_entity(self, row: MetaAdAccountRow) -> AdAccount:
        return AdAccount(
            account_id=row.account_id,
            account_name=row.name or f"Account {row.account_id}",
            currency=row.currency or "USD",
            timezone=row.timezone_name or "UTC",
            account_status=row.account_status,
            status=AccountStatus.from_code(row.account_status),
        )


class CampaignRepository(CacheRepository[Campaign]):
    table = MetaCampaignRow
    id_column = "campaign_id"
    scope_column = "ad_account_id"
    kind = "campaign"

    def entity_id(self, entity: Campaign) -> str:
        return entity.id

    def apply(self, row: MetaCampaignRow, entity: Campaign) -> None:
        row.name = entity.name
        row.status = entity.status
        row.effective_status = entity.effective_status
        row.objective = entity.objective

    def to_entity(self, row: MetaCampaignRow) -> Campaign:
        return Campaign(
            id=row.campaign_id,
            name=row.name,
            status=row.status,
            effective_status=row.effective_status,
            objective=row.objective,
            ad_account_id=row.ad_account_id,
        )


class AdRepository(CacheRepository[Ad]):
    table = MetaAdRow
    id_column = "ad_id"
    scope_column = "ad_account_id"
    kind = "ad"

    def entity_id(self, entity: Ad) -> str:
        return entity.id

    def apply(self, row: MetaAdRow, entity: Ad) -> None:
        row.name = entity.name
        row.status = entity.status
        row.effective_status = entity.effective_status
        row.campaign_id = entity.campaign_id

    def to_entity(self, row: MetaAdRow) -> Ad:
        return Ad(
            id=row.ad_id,
            name=row.name,
            status=row.status,
            effective_status=row.effective_status,
            campaign_id=row.campaign_id,
            ad_account_id=row.ad_account_id,
        )

    def list(
        self,
        scopes: Optional[Iterable[str]] = None,
        campaign_ids: Optional[Iterable[str]] = None,
    ) -> List[Ad]:
        """Cached ads, optionally narrowed to some parent campaigns."""
        stmt = self._select_rows(scopes)
        if stmt is None:
            return []
        wanted = [str(c).strip() for c in campaign_ids or [] if str(c).strip()]
        if wanted:
            stmt = stmt.where(col(MetaAdRow.campaign_id).in_(wanted))
        return [self.to_entity(row) for row in self.session.exec(stmt).all()]
