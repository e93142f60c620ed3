"""Collaborators around the draw engine: schools, events, rosters, results.

Schools, events and rosters are owned elsewhere in the olympiad system and
are only read here. The result/certificate emitter is notified once per
completed draw.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Tuple

import httpx
from pydantic import BaseModel
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError

import config
from draws.domain import Standings
from draws.models import DrawResult, Event, EventEntry, School
from draws.models.base import async_session_factory

logger = logging.getLogger("olympiad.results")


class SchoolInfo(BaseModel):
    id: str
    name: str
    status: str


class EventInfo(BaseModel):
    id: str
    name: str
    category: str
    max_participants: int
    status: str


class EntityRegistry(Protocol):
    async def get_school(self, school_id: str) -> Optional[SchoolInfo]: ...


class EventCatalog(Protocol):
    async def get_event(self, event_id: str) -> Optional[EventInfo]: ...


class ParticipantRoster(Protocol):
    async def get_registered_participants(self, event_id: str) -> List[str]: ...

    async def get_school_entries(self, school_id: str) -> List[Tuple[str, str]]: ...


class ResultEmitter(Protocol):
    async def on_draw_completed(self, draw_id: str, standings: Standings) -> None: ...


class SqlEntityRegistry:
    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory or async_session_factory

    async def get_school(self, school_id: str) -> Optional[SchoolInfo]:
        async with self._session_factory() as session:
            school = await session.get(School, school_id)
            if not school:
                return None
            return SchoolInfo(id=school.id, name=school.name, status=school.status)


class SqlEventCatalog:
    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory or async_session_factory

    async def get_event(self, event_id: str) -> Optional[EventInfo]:
        async with self._session_factory() as session:
            event = await session.get(Event, event_id)
            if not event:
                return None
            return EventInfo(
                id=event.id,
                name=event.name,
                category=event.category,
                max_participants=event.max_participants,
                status=event.status,
            )


class SqlParticipantRoster:
    """Eligible entries for an event, in ranking (sort_order) order.

    Entries from schools that are not approved are left out; entries with no
    school (open entries) are kept.
    """

    def __init__(self, session_factory=None) -> None:
        self._session_factory = session_factory or async_session_factory

    async def get_registered_participants(self, event_id: str) -> List[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(EventEntry.participant_ref)
                .outerjoin(School, EventEntry.school_id == School.id)
                .where(
                    EventEntry.event_id == event_id,
                    or_(EventEntry.school_id.is_(None), School.status == "approved"),
                )
                .order_by(EventEntry.sort_order, EventEntry.id)
            )
            return [row[0] for row in result.fetchall()]

    async def get_school_entries(self, school_id: str) -> List[Tuple[str, str]]:
        """(event_id, participant_ref) for every entry a school has, whatever its approval status."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(EventEntry.event_id, EventEntry.participant_ref)
                .where(EventEntry.school_id == school_id)
                .order_by(EventEntry.event_id, EventEntry.sort_order)
            )
            return [(row[0], row[1]) for row in result.fetchall()]


def placings(standings: Standings) -> List[dict]:
    """Flatten standings into (participant, placing) rows. Placing is per group for group stages; tied records share a placing."""
    rows = []
    if not standings.table:
        podium = (standings.winner_ref, standings.runner_up_ref, standings.third_place_ref)
        for placing, ref in enumerate(podium, start=1):
            if ref:
                rows.append({"participant_ref": ref, "placing": placing, "group_label": None, "wins": 0})
        return rows
    # Competition ranking: equal (wins, ties) share a placing, the next one skips (1, 1, 3)
    seen_in_group: dict = {}
    last: dict = {}
    for row in standings.table:
        seen = seen_in_group.get(row.group_label, 0) + 1
        seen_in_group[row.group_label] = seen
        key = (row.wins, row.ties)
        prev_key, prev_rank = last.get(row.group_label, (None, 0))
        rank = prev_rank if key == prev_key else seen
        last[row.group_label] = (key, rank)
        rows.append({
            "participant_ref": row.participant_ref,
            "placing": rank,
            "group_label": row.group_label,
            "wins": row.wins,
        })
    return rows


class ResultCertificateEmitter:
    """Records final placings and forwards them to the certificate service. Best-effort."""

    def __init__(self, session_factory=None, webhook_url: Optional[str] = None) -> None:
        self._session_factory = session_factory or async_session_factory
        self._webhook_url = config.RESULTS_WEBHOOK_URL if webhook_url is None else webhook_url

    async def on_draw_completed(self, draw_id: str, standings: Standings) -> None:
        rows = placings(standings)
        try:
            async with self._session_factory() as session:
                for row in rows:
                    session.add(DrawResult(draw_id=draw_id, event_id=standings.event_id, **row))
                await session.commit()
            logger.info("Recorded %d placings for draw %s", len(rows), draw_id)
        except SQLAlchemyError:
            logger.exception("Failed to record results for draw %s", draw_id)

        if not self._webhook_url:
            return
        try:
            async with httpx.AsyncClient(timeout=config.RESULTS_WEBHOOK_TIMEOUT) as client:
                r = await client.post(
                    self._webhook_url,
                    json={"drawId": draw_id, "standings": standings.model_dump(mode="json", by_alias=True)},
                )
                r.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Results webhook failed for draw %s: %s", draw_id, e)
