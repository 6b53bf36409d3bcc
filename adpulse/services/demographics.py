"""AdPulse — Demographic Insights Planner.

The Insights API rejects some breakdown combinations outright (error #100),
e.g. age+gender+country. Ads Manager works around this by issuing one call
per compatible group and stitching the charts together; this module does
the same:

  1. normalize the requested breakdowns,
  2. classify them against ALLOWED_COMBINATIONS / INVALID_COMBINATIONS,
  3. decompose into the age/gender, country and region groups,
  4. run each group's call(s) through the RequestScheduler concurrently,
  5. sum metrics per breakdown key and return one response.

A failed branch yields an empty list plus an entry in `errors`; sibling
branches are unaffected.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, NamedTuple, Optional, Sequence

from adpulse.connectors.meta.client import INVALID_PARAMETER_CODE, MetaAPIError, MetaClient
from adpulse.connectors.meta.endpoints import MetaEndpoints
from adpulse.connectors.meta.query_builder import build_insights_request
from adpulse.connectors.meta.rate_limiter import RequestScheduler
from adpulse.models.insight_models import (
    BreakdownRow,
    DemographicInsights,
    DemographicQuery,
    InsightsQuery,
    TimeSeriesRow,
)
from adpulse.core.logging import get_logger

logger = get_logger("services.demographics")

KNOWN_BREAKDOWNS = ("age", "gender", "country", "region")

# Fields must contain only metrics, never breakdown names
METRIC_FIELDS = "impressions,reach,spend"
METRIC_FIELDS_WITH_DATE = "date_start,date_stop,impressions,reach,spend"

ALLOWED_COMBINATIONS: List[FrozenSet[str]] = [
    frozenset({"age", "gender"}),
    frozenset({"age"}),
    frozenset({"gender"}),
    frozenset({"country"}),
    frozenset({"region"}),
]

# Meta answers these with #100; they are never sent
INVALID_COMBINATIONS: List[FrozenSet[str]] = [
    frozenset({"age", "gender", "country"}),
    frozenset({"age", "country"}),
    frozenset({"gender", "country"}),
]

AGE_GENDER = ["age", "gender"]


class BreakdownClass(str, Enum):
    ALLOWED = "allowed"
    FORBIDDEN = "forbidden"
    DECOMPOSABLE = "decomposable"


class BreakdownPlan(NamedTuple):
    """Which grouped calls to issue for one request."""

    age_gender: bool
    country: bool
    region: bool
    skipped: List[str]

    @property
    def groups(self) -> List[List[str]]:
        groups = []
        if self.age_gender:
            groups.append(AGE_GENDER)
        if self.country:
            groups.append(["country"])
        if self.region:
            groups.append(["region"])
        return groups


# ─────────────────────────────────────────────
# PLANNING
# ─────────────────────────────────────────────


def normalize_breakdowns(breakdowns: Optional[Iterable[Any]]) -> List[str]:
    """Lowercase, trim, dedupe (keeping order) and drop unknown names."""
    if not breakdowns or isinstance(breakdowns, str):
        breakdowns = str(breakdowns or "").split(",")
    seen: Dict[str, None] = {}
    for name in breakdowns:
        key = str(name).strip().lower()
        if key in KNOWN_BREAKDOWNS:
            seen.setdefault(key, None)
    return list(seen)


def is_invalid_combination(combo: Iterable[str]) -> bool:
    return frozenset(c.lower() for c in combo) in INVALID_COMBINATIONS


def is_allowed_combination(combo: Iterable[str]) -> bool:
    return frozenset(c.lower() for c in combo) in ALLOWED_COMBINATIONS


def classify_breakdowns(combo: Iterable[str]) -> BreakdownClass:
    combo = list(combo)
    if is_allowed_combination(combo):
        return BreakdownClass.ALLOWED
    if is_invalid_combination(combo):
        return BreakdownClass.FORBIDDEN
    return BreakdownClass.DECOMPOSABLE


def plan_breakdowns(requested: Optional[Iterable[Any]]) -> BreakdownPlan:
    """Split a request into calls Meta accepts; never rebuilds an invalid set."""
    normalized = normalize_breakdowns(requested)
    if not normalized:
        return BreakdownPlan(False, False, False, [])

    skipped = []
    if is_invalid_combination(normalized):
        skipped.append("+".join(normalized))

    return BreakdownPlan(
        age_gender="age" in normalized or "gender" in normalized,
        country="country" in normalized,
        region="region" in normalized,
        skipped=skipped,
    )


# ─────────────────────────────────────────────
# MERGING
# ─────────────────────────────────────────────


def _safe_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0


def _safe_float(value: Any) -> float:
    """Safely convert a value to float."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def aggregate_breakdown_rows(
    rows: Sequence[Dict[str, Any]], breakdown_keys: Sequence[str]
) -> List[BreakdownRow]:
    """Sum impressions / reach / spend per breakdown key.

    Builds fresh rows on every call; missing keys group under "unknown".
    """
    merged: Dict[str, BreakdownRow] = {}
    for row in rows:
        values = [str(row.get(k) or "unknown").strip() for k in breakdown_keys]
        key = "|".join(values)
        agg = merged.get(key)
        if agg is None:
            agg = BreakdownRow(**dict(zip(breakdown_keys, values)))
            merged[key] = agg
        agg.impressions += _safe_int(row.get("impressions"))
        agg.reach += _safe_int(row.get("reach"))
        agg.spend += _safe_float(row.get("spend"))
    return list(merged.values())


def normalize_time_series_rows(rows: Sequence[Dict[str, Any]]) -> List[TimeSeriesRow]:
    """Daily age/gender rows with numeric metrics, oldest day first."""
    series = [
        TimeSeriesRow(
            date_start=row.get("date_start") or None,
            date_stop=row.get("date_stop") or None,
            age=row.get("age") or None,
            gender=row.get("gender") or None,
            impressions=_safe_int(row.get("impressions")),
            reach=_safe_int(row.get("reach")),
            spend=_safe_float(row.get("spend")),
        )
        for row in rows
    ]
    return sorted(series, key=lambda r: r.date_start or "")


# ─────────────────────────────────────────────
# EXECUTION
# ─────────────────────────────────────────────


class DemographicsPlanner:
    """Fan demographic requests out over legal breakdown groups."""

    def __init__(self, client: MetaClient, scheduler: RequestScheduler):
        self.endpoints = MetaEndpoints(client)
        self.scheduler = scheduler

    async def _call(
        self,
        query: DemographicQuery,
        breakdowns: List[str],
        fields: str,
        time_increment: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """One scheduled /insights call for one allowed breakdown group."""
        if not is_allowed_combination(breakdowns):
            raise ValueError(f"refusing to send breakdowns {breakdowns}")
        request = build_insights_request(
            InsightsQuery(
                **query.model_dump(exclude={"breakdowns"}),
                breakdowns=breakdowns,
                fields=fields,
                time_increment=time_increment,
            ),
            graph_url=self.endpoints.graph_url,
        )
        try:
            return await self.scheduler.schedule(
                lambda: self.endpoints.fetch_insights(request)
            )
        except MetaAPIError as e:
            if e.error_code == INVALID_PARAMETER_CODE:
                logger.warning(
                    f"Meta #100 for breakdowns {','.join(breakdowns)}; branch left empty: {e}",
                    extra={"scope_id": query.ad_account_id, "error_code": e.error_code},
                )
                return []
            raise

    async def fetch(self, query: DemographicQuery) -> DemographicInsights:
        plan = plan_breakdowns(query.breakdowns)
        if plan.skipped:
            logger.info(
                f"Invalid breakdown combination split: {', '.join(plan.skipped)}",
                extra={"scope_id": query.ad_account_id, "operation": "demographics.plan"},
            )

        branches: Dict[str, Any] = {}
        if plan.age_gender:
            branches["age_gender"] = self._call(query, AGE_GENDER, METRIC_FIELDS)
            branches["time_series_age_gender"] = self._call(
                query, AGE_GENDER, METRIC_FIELDS_WITH_DATE, time_increment=1
            )
        if plan.country:
            branches["country"] = self._call(query, ["country"], METRIC_FIELDS)
        if plan.region:
            branches["region"] = self._call(query, ["region"], METRIC_FIELDS)

        settled = await asyncio.gather(*branches.values(), return_exceptions=True)

        rows: Dict[str, List[Dict[str, Any]]] = {}
        errors: List[str] = []
        for name, outcome in zip(branches, settled):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning(
                    f"Demographic branch {name} failed: {outcome}",
                    extra={"scope_id": query.ad_account_id, "operation": f"demographics.{name}"},
                )
                errors.append(f"{name}: {str(outcome) or 'failed'}")
                rows[name] = []
            else:
                rows[name] = outcome

        return DemographicInsights(
            age_gender_breakdown=aggregate_breakdown_rows(rows.get("age_gender", []), AGE_GENDER),
            country_breakdown=aggregate_breakdown_rows(rows.get("country", []), ["country"]),
            region_breakdown=aggregate_breakdown_rows(rows.get("region", []), ["region"]),
            time_series_age_gender=normalize_time_series_rows(
                rows.get("time_series_age_gender", [])
            ),
            errors=errors or None,
        )
