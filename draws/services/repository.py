"""Draw repository: load/save whole draw aggregates.

The engine only talks to the `DrawRepository` protocol. `InMemoryDrawRepository`
backs the tests; `SqlDrawRepository` persists through the async SQLAlchemy
session factory.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from draws.domain import Draw, DrawStatus, DrawType, Match, MatchScore
from draws.models import DrawRecord, MatchRecord
from draws.models.base import async_session_factory
from draws.services.errors import DrawNotFound, RepositoryUnavailable


class DrawRepository(Protocol):
    async def load(self, draw_id: str) -> Draw:
        """Return the draw or raise DrawNotFound."""
        ...

    async def load_by_event(self, event_id: str) -> List[Draw]:
        ...

    async def list_draws(
        self,
        *,
        event_id: Optional[str] = None,
        status: Optional[DrawStatus] = None,
        draw_type: Optional[DrawType] = None,
    ) -> List[Draw]:
        ...

    async def save(self, draw: Draw) -> None:
        """Replace the stored aggregate (draw + matches) in one step."""
        ...

    async def delete(self, draw_id: str) -> None:
        ...


def _matches_filters(draw: Draw, event_id, status, draw_type) -> bool:
    if event_id is not None and draw.event_id != event_id:
        return False
    if status is not None and draw.status != status:
        return False
    if draw_type is not None and draw.draw_type != draw_type:
        return False
    return True


class InMemoryDrawRepository:
    """Dict-backed repository. Stores and hands out deep copies."""

    def __init__(self) -> None:
        self._draws: Dict[str, Draw] = {}

    async def load(self, draw_id: str) -> Draw:
        draw = self._draws.get(draw_id)
        if draw is None:
            raise DrawNotFound(draw_id)
        return draw.model_copy(deep=True)

    async def load_by_event(self, event_id: str) -> List[Draw]:
        return await self.list_draws(event_id=event_id)

    async def list_draws(self, *, event_id=None, status=None, draw_type=None) -> List[Draw]:
        return [
            d.model_copy(deep=True)
            for d in self._draws.values()
            if _matches_filters(d, event_id, status, draw_type)
        ]

    async def save(self, draw: Draw) -> None:
        self._draws[draw.id] = draw.model_copy(deep=True)

    async def delete(self, draw_id: str) -> None:
        if self._draws.pop(draw_id, None) is None:
            raise DrawNotFound(draw_id)


def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize to UTC before storing; SQLite keeps only the wall-clock part."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc)


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; everything is stored as UTC."""
    if dt is None or dt.tzinfo is not None:
        return dt
    return dt.replace(tzinfo=timezone.utc)


def _match_to_domain(m: MatchRecord) -> Match:
    return Match(
        id=m.match_id,
        round=m.round_num,
        position=m.position,
        participant1_ref=m.participant1_ref,
        participant2_ref=m.participant2_ref,
        winner_ref=m.winner_ref,
        score=MatchScore.model_validate(m.score or {}),
        status=m.status,
        scheduled_time=_aware(m.scheduled_time),
        venue=m.venue,
        group_label=m.group_label,
    )


def _to_domain(record: DrawRecord) -> Draw:
    return Draw(
        id=record.id,
        event_id=record.event_id,
        draw_type=record.draw_type,
        seeding_method=record.seeding_method,
        participants=list(record.participants or []),
        matches={m.match_id: _match_to_domain(m) for m in record.matches},
        status=record.status,
        total_rounds=record.total_rounds,
        group_size=record.group_size,
        created_at=_aware(record.created_at),
        created_by=record.created_by,
    )


def _apply_match(record: MatchRecord, match: Match) -> None:
    record.round_num = match.round
    record.position = match.position
    record.participant1_ref = match.participant1_ref
    record.participant2_ref = match.participant2_ref
    record.winner_ref = match.winner_ref
    record.score = match.score.model_dump()
    record.status = match.status.value
    record.scheduled_time = _utc(match.scheduled_time)
    record.venue = match.venue
    record.group_label = match.group_label


class SqlDrawRepository:
    """Repository over the draws / draw_matches tables."""

    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory or async_session_factory

    def _query(self):
        return select(DrawRecord).options(selectinload(DrawRecord.matches))

    async def load(self, draw_id: str) -> Draw:
        try:
            async with self._session_factory() as session:
                result = await session.execute(self._query().where(DrawRecord.id == draw_id))
                record = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryUnavailable(f"Could not load draw {draw_id}: {e}") from e
        if record is None:
            raise DrawNotFound(draw_id)
        return _to_domain(record)

    async def load_by_event(self, event_id: str) -> List[Draw]:
        return await self.list_draws(event_id=event_id)

    async def list_draws(self, *, event_id=None, status=None, draw_type=None) -> List[Draw]:
        query = self._query().order_by(DrawRecord.created_at, DrawRecord.id)
        if event_id is not None:
            query = query.where(DrawRecord.event_id == event_id)
        if status is not None:
            query = query.where(DrawRecord.status == DrawStatus(status).value)
        if draw_type is not None:
            query = query.where(DrawRecord.draw_type == DrawType(draw_type).value)
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                records = result.scalars().all()
        except SQLAlchemyError as e:
            raise RepositoryUnavailable(f"Could not list draws: {e}") from e
        return [_to_domain(r) for r in records]

    async def save(self, draw: Draw) -> None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(self._query().where(DrawRecord.id == draw.id))
                record = result.scalar_one_or_none()
                if record is None:
                    record = DrawRecord(id=draw.id, created_at=_utc(draw.created_at), created_by=draw.created_by)
                    session.add(record)
                record.event_id = draw.event_id
                record.draw_type = draw.draw_type.value
                record.seeding_method = draw.seeding_method.value
                record.status = draw.status.value
                record.participants = list(draw.participants)
                record.total_rounds = draw.total_rounds
                record.group_size = draw.group_size

                # Update rows in place so (draw, round, position) never collides mid-flush
                existing = {m.match_id: m for m in record.matches}
                for match_id, match in draw.matches.items():
                    row = existing.pop(match_id, None)
                    if row is None:
                        row = MatchRecord(match_id=match_id)
                        record.matches.append(row)
                    _apply_match(row, match)
                for stale in existing.values():
                    record.matches.remove(stale)
                await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryUnavailable(f"Could not save draw {draw.id}: {e}") from e

    async def delete(self, draw_id: str) -> None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(self._query().where(DrawRecord.id == draw_id))
                record = result.scalar_one_or_none()
                if record is None:
                    raise DrawNotFound(draw_id)
                await session.delete(record)
                await session.commit()
        except SQLAlchemyError as e:
            raise RepositoryUnavailable(f"Could not delete draw {draw_id}: {e}") from e
