"""AdPulse — Cache-Aside Repository Base.

Rows are keyed uniquely by (scope, entity id); `upsert` overwrites in
place, so concurrent or repeated refreshes never duplicate. Every row
written by one upsert carries the same `updated_at`, and staleness is
judged on the oldest stamp across the requested scopes.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, Generic, Iterable, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import func
from sqlmodel import Session, SQLModel, col, select

from adpulse.models.entity_models import normalize_account_id
from adpulse.models.result_models import UpsertCounts
from adpulse.core.logging import get_logger

logger = get_logger("repositories")

EntityT = TypeVar("EntityT", bound=BaseModel)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; they were written as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_scopes(scopes: Optional[Iterable[str]]) -> List[str]:
    """Strip `act_`, drop blanks, dedupe while keeping order."""
    seen: Dict[str, None] = {}
    for scope in scopes or []:
        key = normalize_account_id(scope)
        if key:
            seen.setdefault(key, None)
    return list(seen)


class CacheRepository(Generic[EntityT]):
    """Shared upsert / list / staleness queries for one cache table.

    Subclasses set `table`, `id_column`, optionally `scope_column`
    (None for unscoped kinds), and map between rows and entities.
    """

    table: Type[SQLModel]
    id_column: str
    scope_column: Optional[str] = None
    kind: str = "entity"

    def __init__(self, session: Session, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.clock = clock

    # ── Mapping hooks ──

    def entity_id(self, entity: EntityT) -> str:
        raise NotImplementedError

    def apply(self, row: SQLModel, entity: EntityT) -> None:
        """Copy entity attributes onto a (new or existing) row."""
        raise NotImplementedError

    def to_entity(self, row: SQLModel) -> EntityT:
        raise NotImplementedError

    # ── Queries ──

    @property
    def scoped(self) -> bool:
        return self.scope_column is not None

    def _scope_filter(self, stmt, scopes: Sequence[str]):
        if self.scoped:
            stmt = stmt.where(col(getattr(self.table, self.scope_column)).in_(scopes))
        return stmt

    def upsert(self, scope: Optional[str], entities: Sequence[EntityT]) -> UpsertCounts:
        """Write one row per (scope, entity id), all stamped with one timestamp."""
        if not entities:
            return UpsertCounts()
        scope_key = normalize_account_id(scope) if self.scoped else None
        if self.scoped and not scope_key:
            return UpsertCounts()

        by_id: Dict[str, EntityT] = {}
        for entity in entities:
            entity_key = normalize_account_id(self.entity_id(entity))
            if entity_key:
                by_id[entity_key] = entity
        if not by_id:
            return UpsertCounts()

        id_attr = getattr(self.table, self.id_column)
        stmt = select(self.table).where(col(id_attr).in_(list(by_id)))
        if self.scoped:
            stmt = self._scope_filter(stmt, [scope_key])
        existing = {
            getattr(row, self.id_column): row for row in self.session.exec(stmt).all()
        }

        stamp = self.clock()
        counts = UpsertCounts()
        for entity_key, entity in by_id.items():
            row = existing.get(entity_key)
            if row is None:
                row = self.table(**{self.id_column: entity_key})
                if self.scoped:
                    setattr(row, self.scope_column, scope_key)
                row.created_at = stamp
                counts.inserted += 1
            else:
                counts.updated += 1
            self.apply(row, entity)
            row.updated_at = stamp
            self.session.add(row)

        self.session.commit()
        logger.info(
            f"Upserted {counts.total} {self.kind} rows "
            f"({counts.inserted} new, {counts.updated} updated)",
            extra={"scope_id": scope_key, "operation": f"{self.kind}.upsert"},
        )
        return counts

    def _select_rows(self, scopes: Optional[Iterable[str]]):
        stmt = select(self.table)
        if self.scoped:
            valid = normalize_scopes(scopes)
            if not valid:
                return None
            stmt = self._scope_filter(stmt, valid)
        return stmt.order_by(
            col(self.table.name), col(getattr(self.table, self.id_column))
        )

    def list(self, scopes: Optional[Iterable[str]] = None) -> List[EntityT]:
        """Cached entities for `scopes`, ordered by name."""
        stmt = self._select_rows(scopes)
        if stmt is None:
            return []
        return [self.to_entity(row) for row in self.session.exec(stmt).all()]

    def oldest_updated_at(self, scopes: Optional[Iterable[str]] = None) -> Optional[datetime]:
        """Oldest write stamp across `scopes`; None when nothing is cached."""
        stmt = select(func.min(self.table.updated_at))
        if self.scoped:
            valid = normalize_scopes(scopes)
            if not valid:
                return None
            stmt = self._scope_filter(stmt, valid)
        oldest = self.session.exec(stmt).first()
        return as_utc(oldest) if oldest is not None else None
