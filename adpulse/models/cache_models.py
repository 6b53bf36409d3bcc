"""AdPulse — Entity Cache Tables.

One table per remote entity kind. Each row is keyed uniquely by
(scope, entity id), so repeated refreshes upsert instead of duplicating.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MetaAdAccountRow(SQLModel, table=True):
    """Cached ad account from /me/adaccounts."""

    __tablename__ = "meta_ad_accounts"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: str = Field(unique=True, index=True, description="Numeric id, no act_")
    name: str = Field(default="")
    currency: str = Field(default="USD")
    timezone_name: str = Field(default="UTC")
    account_status: int = Field(default=0)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class MetaCampaignRow(SQLModel, table=True):
    """Cached campaign from /act_{id}/campaigns."""

    __tablename__ = "meta_campaigns"
    __table_args__ = (
        UniqueConstraint("ad_account_id", "campaign_id", name="uq_meta_campaign"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    ad_account_id: str = Field(index=True)
    campaign_id: str = Field(index=True)
    name: str = Field(default="")
    status: str = Field(default="")
    effective_status: str = Field(default="")
    objective: str = Field(default="")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class MetaAdRow(SQLModel, table=True):
    """Cached ad from /act_{id}/ads."""

    __tablename__ = "meta_ads"
    __table_args__ = (UniqueConstraint("ad_account_id", "ad_id", name="uq_meta_ad"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    ad_account_id: str = Field(index=True)
    ad_id: str = Field(index=True)
    campaign_id: str = Field(default="", index=True)
    name: str = Field(default="")
    status: str = Field(default="")
    effective_status: str = Field(default="")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
