"""AdPulse — Service Result Types.

Expected remote failures (rate limits, expired tokens, timeouts) travel as
values rather than exceptions, so a dashboard request can still render
whatever is cached.
"""

from typing import Generic, List, Optional, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class UpsertCounts(BaseModel):
    """Rows written by one repository upsert."""

    inserted: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated


class FetchResult(BaseModel, Generic[T]):
    """Outcome of one fetch-and-cache for one scope."""

    ok: bool
    data: List[T] = []
    error: Optional[str] = None
    error_code: Optional[int] = None
    rate_limited: bool = False

    @classmethod
    def success(cls, data: List[T]) -> "FetchResult[T]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: Optional[int] = None,
        rate_limited: bool = False,
    ) -> "FetchResult[T]":
        return cls(
            ok=False, error=error, error_code=error_code, rate_limited=rate_limited
        )


class EntityListResult(BaseModel, Generic[T]):
    """Cached entities for a set of scopes, plus any refresh failures."""

    data: List[T] = []
    errors: List[str] = []
    refreshed: bool = False
    rate_limited: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors
