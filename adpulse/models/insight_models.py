"""AdPulse — Insights Query & Response Schemas."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from adpulse.models.entity_models import normalize_account_id


# ─────────────────────────────────────────────
# QUERIES
# ─────────────────────────────────────────────


class InsightsFilter(BaseModel):
    """Date range plus campaign / ad selection for one ad account.

    `is_all_*` means "Select All" in the dashboard: no id predicate is sent,
    regardless of what the id lists contain.
    """

    ad_account_id: str
    date_from: str
    date_to: str
    is_all_campaigns: bool = True
    is_all_ads: bool = True
    campaign_ids: List[str] = []
    ad_ids: List[str] = []

    @field_validator("ad_account_id")
    @classmethod
    def _strip_prefix(cls, value: str) -> str:
        value = normalize_account_id(value)
        if not value:
            raise ValueError("ad_account_id is required")
        return value

    @field_validator("date_from", "date_to")
    @classmethod
    def _require_date(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("date bounds are required")
        return value.strip()

    @field_validator("campaign_ids", "ad_ids", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(v).strip() for v in value if str(v).strip()]


class InsightsQuery(InsightsFilter):
    """Logical /insights query handed to the query builder."""

    breakdowns: List[str] = []
    fields: Optional[str] = None
    time_increment: Optional[int] = None
    level: str = "ad"


class DemographicQuery(InsightsFilter):
    """Demographic breakdown request from the dashboard."""

    breakdowns: List[str] = []


# ─────────────────────────────────────────────
# RESPONSES
# ─────────────────────────────────────────────


class BreakdownRow(BaseModel):
    """Metrics summed over all raw rows sharing one breakdown key."""

    age: Optional[str] = None
    gender: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    impressions: int = 0
    reach: int = 0
    spend: float = 0.0


class TimeSeriesRow(BaseModel):
    """One day of age/gender metrics."""

    date_start: Optional[str] = None
    date_stop: Optional[str] = None
    age: Optional[str] = None
    gender: Optional[str] = None
    impressions: int = 0
    reach: int = 0
    spend: float = 0.0


class DemographicInsights(BaseModel):
    """Merged result of every breakdown branch for one query."""

    age_gender_breakdown: List[BreakdownRow] = []
    country_breakdown: List[BreakdownRow] = []
    region_breakdown: List[BreakdownRow] = []
    time_series_age_gender: List[TimeSeriesRow] = []
    errors: Optional[List[str]] = None

    def to_response(self) -> Dict[str, Any]:
        """Chart-ready payload: breakdown rows carry only their own keys."""
        out: Dict[str, Any] = {
            "age_gender_breakdown": [
                r.model_dump(exclude_none=True) for r in self.age_gender_breakdown
            ],
            "country_breakdown": [
                r.model_dump(exclude_none=True) for r in self.country_breakdown
            ],
            "region_breakdown": [
                r.model_dump(exclude_none=True) for r in self.region_breakdown
            ],
            "time_series_age_gender": [
                r.model_dump() for r in self.time_series_age_gender
            ],
        }
        if self.errors:
            out["errors"] = self.errors
        return out


class InsightsRequest(BaseModel):
    """Wire-level GET for /act_{id}/insights."""

    url: str
    params: Dict[str, Any] = Field(default_factory=dict)
