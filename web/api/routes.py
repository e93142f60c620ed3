"""API routes for draw generation, publishing and match progression."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from draws.domain import DomainModel, Draw, DrawStatus, DrawType, Match, ScoreValue
from draws.models import User
from draws.services.bracket_gen import label_for
from draws.services.collaborators import (
    EntityRegistry,
    EventCatalog,
    ParticipantRoster,
    ResultCertificateEmitter,
    SqlEntityRegistry,
    SqlEventCatalog,
    SqlParticipantRoster,
)
from draws.services.errors import DrawError
from draws.services.progression import DrawEngine, DrawStats, compute_standings
from draws.services.repository import SqlDrawRepository
from web.auth import ensure_school_access, require_super_admin_user, require_user

logger = logging.getLogger("olympiad.api")

router = APIRouter(prefix="/api", tags=["draws"])

_engine: Optional[DrawEngine] = None


def get_engine() -> DrawEngine:
    """Process-wide engine so per-draw locks are shared by every request."""
    global _engine
    if _engine is None:
        _engine = DrawEngine(SqlDrawRepository(), ResultCertificateEmitter())
    return _engine


def get_entity_registry() -> EntityRegistry:
    return SqlEntityRegistry()


def get_event_catalog() -> EventCatalog:
    return SqlEventCatalog()


def get_roster() -> ParticipantRoster:
    return SqlParticipantRoster()


def _http_error(e: DrawError) -> HTTPException:
    return HTTPException(e.status_code, str(e))


# --- Pydantic schemas ---


class CreateDrawRequest(DomainModel):
    event_id: str
    draw_type: str = "single_elimination"  # single_elimination, double_elimination, round_robin, group_stage
    seeding_method: str = "ranked"  # random, ranked, manual
    participants: Optional[list[str]] = None  # Defaults to the event roster, in ranking order
    slot_assignment: Optional[list[Optional[str]]] = None  # Manual seeding only; None = bye
    group_size: Optional[int] = None  # Required for group_stage


class ScoreRequest(DomainModel):
    score1: Optional[ScoreValue] = None
    score2: Optional[ScoreValue] = None


class CompleteMatchRequest(DomainModel):
    winner_ref: Optional[str] = None  # None records a tie (round robin / group stage only)
    score1: Optional[ScoreValue] = None
    score2: Optional[ScoreValue] = None


class ScheduleMatchRequest(DomainModel):
    scheduled_time: Optional[datetime] = None
    venue: Optional[str] = None


# --- Draws ---


@router.post("/draws", response_model=Draw)
async def create_draw(
    body: CreateDrawRequest,
    user: User = Depends(require_super_admin_user),
    engine: DrawEngine = Depends(get_engine),
    catalog: EventCatalog = Depends(get_event_catalog),
    roster: ParticipantRoster = Depends(get_roster),
):
    """Generate a draft draw for an event from its roster (or an explicit participant list)."""
    event = await catalog.get_event(body.event_id)
    if not event:
        raise HTTPException(404, "Event not found")
    participants = body.participants
    if participants is None:
        participants = await roster.get_registered_participants(body.event_id)
    if event.max_participants and len(participants) > event.max_participants:
        raise HTTPException(
            400, f"{event.name} allows {event.max_participants} participants, got {len(participants)}"
        )
    try:
        draw = await engine.create(
            body.event_id,
            participants,
            body.draw_type,
            body.seeding_method,
            slot_assignment=body.slot_assignment,
            group_size=body.group_size,
            created_by=user.username,
        )
    except DrawError as e:
        raise _http_error(e)
    logger.info("User %s created draw %s for event %s", user.username, draw.id, event.id)
    return draw


@router.get("/draws", response_model=list[Draw])
async def list_draws(
    event_id: Optional[str] = Query(None, alias="eventId"),
    status: Optional[DrawStatus] = None,
    draw_type: Optional[DrawType] = Query(None, alias="drawType"),
    engine: DrawEngine = Depends(get_engine),
):
    """List draws, optionally filtered by event, status and draw type."""
    try:
        return await engine.list_draws(event_id=event_id, status=status, draw_type=draw_type)
    except DrawError as e:
        raise _http_error(e)


@router.get("/draws/stats", response_model=DrawStats)
async def draw_stats(engine: DrawEngine = Depends(get_engine)):
    """Dashboard counters across all draws."""
    try:
        return await engine.stats()
    except DrawError as e:
        raise _http_error(e)


@router.get("/draws/school/{school_id}", response_model=list[Draw])
async def list_school_draws(
    school_id: str,
    user: User = Depends(require_user),
    engine: DrawEngine = Depends(get_engine),
    registry: EntityRegistry = Depends(get_entity_registry),
    roster: ParticipantRoster = Depends(get_roster),
):
    """Draws any of a school's entries take part in. School admins only see their own school."""
    ensure_school_access(user, school_id)
    if not await registry.get_school(school_id):
        raise HTTPException(404, "School not found")
    entries = await roster.get_school_entries(school_id)
    try:
        return await engine.list_school_draws(entries)
    except DrawError as e:
        raise _http_error(e)


@router.get("/draws/{draw_id}", response_model=Draw)
async def get_draw(draw_id: str, engine: DrawEngine = Depends(get_engine)):
    try:
        return await engine.get(draw_id)
    except DrawError as e:
        raise _http_error(e)


@router.get("/draws/{draw_id}/matches", response_model=list[Match])
async def list_matches(draw_id: str, engine: DrawEngine = Depends(get_engine)):
    """Matches ordered by round, then position."""
    try:
        draw = await engine.get(draw_id)
    except DrawError as e:
        raise _http_error(e)
    return [m for matches in draw.matches_by_round().values() for m in matches]


@router.get("/draws/{draw_id}/bracket")
async def get_bracket(draw_id: str, engine: DrawEngine = Depends(get_engine)):
    """Bracket for rendering: matches grouped by round with display labels."""
    try:
        draw = await engine.get(draw_id)
    except DrawError as e:
        raise _http_error(e)
    rounds = {}
    for r, matches in draw.matches_by_round().items():
        rounds[str(r)] = {
            "label": label_for(draw, r),
            "matches": [m.model_dump(mode="json", by_alias=True) for m in matches],
        }
    return {
        "draw": {
            "id": draw.id,
            "eventId": draw.event_id,
            "drawType": draw.draw_type.value,
            "status": draw.status.value,
            "totalRounds": draw.total_rounds,
        },
        "rounds": rounds,
    }


@router.get("/draws/{draw_id}/standings")
async def get_standings(draw_id: str, engine: DrawEngine = Depends(get_engine)):
    try:
        draw = await engine.get(draw_id)
    except DrawError as e:
        raise _http_error(e)
    return compute_standings(draw)


@router.post("/draws/{draw_id}/publish", response_model=Draw)
async def publish_draw(
    draw_id: str,
    user: User = Depends(require_super_admin_user),
    engine: DrawEngine = Depends(get_engine),
):
    try:
        return await engine.publish(draw_id)
    except DrawError as e:
        raise _http_error(e)


@router.delete("/draws/{draw_id}")
async def delete_draw(
    draw_id: str,
    user: User = Depends(require_super_admin_user),
    engine: DrawEngine = Depends(get_engine),
):
    """Delete a draft or published draw and its matches."""
    try:
        await engine.delete(draw_id)
    except DrawError as e:
        raise _http_error(e)
    return {"ok": True, "deleted": draw_id}


# --- Matches ---


@router.put("/draws/{draw_id}/matches/{match_id}/start", response_model=Match)
async def start_match(
    draw_id: str,
    match_id: str,
    user: User = Depends(require_super_admin_user),
    engine: DrawEngine = Depends(get_engine),
):
    try:
        return await engine.start(draw_id, match_id)
    except DrawError as e:
        raise _http_error(e)


@router.put("/draws/{draw_id}/matches/{match_id}/score", response_model=Match)
async def record_score(
    draw_id: str,
    match_id: str,
    body: ScoreRequest,
    user: User = Depends(require_super_admin_user),
    engine: DrawEngine = Depends(get_engine),
):
    try:
        return await engine.record_score(draw_id, match_id, body.score1, body.score2)
    except DrawError as e:
        raise _http_error(e)


@router.put("/draws/{draw_id}/matches/{match_id}/complete")
async def complete_match(
    draw_id: str,
    match_id: str,
    body: CompleteMatchRequest,
    user: User = Depends(require_super_admin_user),
    engine: DrawEngine = Depends(get_engine),
):
    """Decide a match. Returns the match and the draw (which may now be completed)."""
    try:
        match, draw = await engine.complete(
            draw_id, match_id, body.winner_ref, body.score1, body.score2
        )
    except DrawError as e:
        raise _http_error(e)
    return {"match": match, "draw": draw}


@router.put("/draws/{draw_id}/matches/{match_id}/schedule", response_model=Match)
async def schedule_match(
    draw_id: str,
    match_id: str,
    body: ScheduleMatchRequest,
    user: User = Depends(require_super_admin_user),
    engine: DrawEngine = Depends(get_engine),
):
    try:
        return await engine.schedule(draw_id, match_id, body.scheduled_time, body.venue)
    except DrawError as e:
        raise _http_error(e)
