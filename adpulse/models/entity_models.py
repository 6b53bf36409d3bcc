"""AdPulse — Canonical Remote Entity Models.

Meta returns loosely-shaped payloads (`account_id` vs `id`, `name` vs
`account_name`, ids with or without the `act_` marker). Each `from_remote`
constructor normalizes a raw payload exactly once at the API boundary;
everything downstream sees one struct per entity kind.
"""

from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel

ACCOUNT_ID_PREFIX = "act_"


def normalize_account_id(value: Any) -> str:
    """Strip the `act_` marker so account lookups are prefix-insensitive."""
    if value is None:
        return ""
    text = str(value).strip()
    if text.startswith(ACCOUNT_ID_PREFIX):
        text = text[len(ACCOUNT_ID_PREFIX):]
    return text


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


class AccountStatus(str, Enum):
    """Dashboard-facing account state. Meta code 1 is the only active one."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"

    @classmethod
    def from_code(cls, code: Optional[int]) -> "AccountStatus":
        return cls.ACTIVE if code == 1 else cls.INACTIVE


class DeliveryStatus(str, Enum):
    """Lifecycle states Meta reports for campaigns and ads."""

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"
    IN_REVIEW = "IN_REVIEW"
    REJECTED = "REJECTED"
    PENDING_REVIEW = "PENDING_REVIEW"
    LEARNING = "LEARNING"
    ENDED = "ENDED"


class AdAccount(BaseModel):
    """Ad account as served to the dashboard."""

    account_id: str
    account_name: str
    currency: str = "USD"
    timezone: str = "UTC"
    account_status: int = 0
    status: AccountStatus = AccountStatus.INACTIVE

    @classmethod
    def from_remote(cls, raw: Dict[str, Any]) -> Optional["AdAccount"]:
        """Build from a /me/adaccounts row; None when it has no id."""
        account_id = normalize_account_id(raw.get("account_id") or raw.get("id"))
        if not account_id:
            return None
        try:
            code = int(raw.get("account_status") or 0)
        except (TypeError, ValueError):
            code = 0
        name = _text(raw.get("name") or raw.get("account_name"))
        return cls(
            account_id=account_id,
            account_name=name or f"Account {account_id}",
            currency=raw.get("currency") or "USD",
            timezone=raw.get("timezone_name") or raw.get("timezone") or "UTC",
            account_status=code,
            status=AccountStatus.from_code(code),
        )


class Campaign(BaseModel):
    """Campaign belonging to one ad account."""

    id: str
    name: str = ""
    status: str = ""
    effective_status: str = ""
    objective: str = ""
    ad_account_id: str = ""

    @classmethod
    def from_remote(cls, raw: Dict[str, Any], ad_account_id: str) -> Optional["Campaign"]:
        campaign_id = _text(raw.get("id") or raw.get("campaign_id"))
        if not campaign_id:
            return None
        return cls(
            id=campaign_id,
            name=_text(raw.get("name")),
            status=_text(raw.get("status")),
            effective_status=_text(raw.get("effective_status")),
            objective=_text(raw.get("objective")),
            ad_account_id=normalize_account_id(ad_account_id),
        )


class Ad(BaseModel):
    """Ad belonging to one ad account, linked to its parent campaign."""

    id: str
    name: str = ""
    status: str = ""
    effective_status: str = ""
    campaign_id: str = ""
    ad_account_id: str = ""

    @classmethod
    def from_remote(cls, raw: Dict[str, Any], ad_account_id: str) -> Optional["Ad"]:
        ad_id = _text(raw.get("id") or raw.get("ad_id"))
        if not ad_id:
            return None
        return cls(
            id=ad_id,
            name=_text(raw.get("name")),
            status=_text(raw.get("status")),
            effective_status=_text(raw.get("effective_status")),
            campaign_id=_text(raw.get("campaign_id")),
            ad_account_id=normalize_account_id(ad_account_id),
        )
