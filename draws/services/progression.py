"""Match progression: draw/match state machine, winner propagation, completion.

Every mutating call is a read-modify-write of one draw aggregate under that
draw's lock. All checks run before anything is changed, and the aggregate is
saved whole, so a rejected call never leaves partial state behind.
"""
from __future__ import annotations

import asyncio
import logging
import weakref
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from draws.domain import (
    DELETABLE_STATUSES,
    LIVE_STATUSES,
    DomainModel,
    Draw,
    DrawStatus,
    DrawType,
    Match,
    MatchScore,
    MatchStatus,
    ScoreValue,
    StandingRow,
    Standings,
)
from draws.services import bracket_gen
from draws.services.collaborators import ResultEmitter
from draws.services.errors import (
    IllegalStateTransition,
    InvalidWinner,
    MatchNotFound,
    ParticipantsNotReady,
)
from draws.services.repository import DrawRepository

logger = logging.getLogger("olympiad.draws")


class DrawStats(DomainModel):
    total_draws: int = 0
    active_draws: int = 0
    completed_draws: int = 0
    total_matches: int = 0
    completed_matches: int = 0


def _get_match(draw: Draw, match_id: str) -> Match:
    match = draw.matches.get(match_id)
    if match is None:
        raise MatchNotFound(draw.id, match_id)
    return match


def _require_live(draw: Draw, action: str) -> None:
    if draw.status not in LIVE_STATUSES:
        raise IllegalStateTransition(f"Cannot {action}: draw {draw.id} is {draw.status.value}")


def downstream_slot(draw: Draw, match: Match) -> Optional[Tuple[Match, str]]:
    """(next match, slot attribute) the winner of `match` moves into. None for the final and round robin."""
    if not draw.is_elimination or match.round >= draw.total_rounds:
        return None
    target = draw.get_match(match.round + 1, (match.position + 1) // 2)
    if target is None:
        return None
    return target, "participant1_ref" if match.position % 2 else "participant2_ref"


def is_finished(draw: Draw) -> bool:
    """Elimination: the final has been decided. Round robin / groups: every match is completed."""
    if draw.is_elimination:
        final = draw.final_match()
        return final is not None and final.status == MatchStatus.COMPLETED
    return bool(draw.matches) and all(m.status == MatchStatus.COMPLETED for m in draw.matches.values())


def compute_standings(draw: Draw) -> Standings:
    """Placings for a draw. Works on unfinished draws too (partial table)."""
    standings = Standings(draw_id=draw.id, event_id=draw.event_id, draw_type=draw.draw_type)
    if draw.is_elimination:
        final = draw.final_match()
        if final is not None and final.status == MatchStatus.COMPLETED:
            standings.winner_ref = final.winner_ref
            standings.runner_up_ref = final.loser_ref
        return standings

    rows: Dict[str, StandingRow] = {ref: StandingRow(participant_ref=ref) for ref in draw.participants}
    for m in draw.matches.values():
        for ref in (m.participant1_ref, m.participant2_ref):
            if ref in rows and m.group_label:
                rows[ref].group_label = m.group_label
        if m.status != MatchStatus.COMPLETED:
            continue
        for ref in (m.participant1_ref, m.participant2_ref):
            row = rows[ref]
            row.played += 1
            if m.winner_ref is None:
                row.ties += 1
            elif m.winner_ref == ref:
                row.wins += 1
            else:
                row.losses += 1
    table = sorted(rows.values(), key=lambda r: (r.group_label or "", -r.wins, -r.ties, r.participant_ref))
    standings.table = table
    if draw.draw_type == DrawType.ROUND_ROBIN and is_finished(draw) and table:
        leader = table[0]
        tied = len(table) > 1 and (table[1].wins, table[1].ties) == (leader.wins, leader.ties)
        if not tied:
            standings.winner_ref = leader.participant_ref
    return standings


class DrawEngine:
    """Owns draw lifecycle operations on top of a DrawRepository."""

    def __init__(self, repository: DrawRepository, emitter: Optional[ResultEmitter] = None) -> None:
        self.repository = repository
        self.emitter = emitter
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, draw_id: str) -> asyncio.Lock:
        lock = self._locks.get(draw_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[draw_id] = lock
        return lock

    # --- Reads ---

    async def get(self, draw_id: str) -> Draw:
        return await self.repository.load(draw_id)

    async def list_draws(self, *, event_id=None, status=None, draw_type=None) -> List[Draw]:
        return await self.repository.list_draws(event_id=event_id, status=status, draw_type=draw_type)

    async def list_school_draws(self, entries: Iterable[Tuple[str, str]]) -> List[Draw]:
        """Draws in which any of a school's (event_id, participant_ref) entries takes part."""
        refs_by_event: Dict[str, set] = {}
        for event_id, ref in entries:
            refs_by_event.setdefault(event_id, set()).add(ref)
        draws: List[Draw] = []
        for event_id, refs in refs_by_event.items():
            for draw in await self.repository.load_by_event(event_id):
                if refs.intersection(draw.participants):
                    draws.append(draw)
        draws.sort(key=lambda d: (d.created_at, d.id))
        return draws

    async def stats(self) -> DrawStats:
        stats = DrawStats()
        for draw in await self.repository.list_draws():
            stats.total_draws += 1
            if draw.status in LIVE_STATUSES:
                stats.active_draws += 1
            elif draw.status == DrawStatus.COMPLETED:
                stats.completed_draws += 1
            stats.total_matches += len(draw.matches)
            stats.completed_matches += sum(
                1 for m in draw.matches.values() if m.status == MatchStatus.COMPLETED
            )
        return stats

    # --- Lifecycle ---

    async def create(self, event_id: str, participants, draw_type, seeding_method, **options) -> Draw:
        """Generate a draft draw and persist it."""
        draw = bracket_gen.generate(event_id, participants, draw_type, seeding_method, **options)
        await self.repository.save(draw)
        return draw

    async def publish(self, draw_id: str) -> Draw:
        async with self._lock_for(draw_id):
            draw = await self.repository.load(draw_id)
            if draw.status != DrawStatus.DRAFT:
                raise IllegalStateTransition(f"Only draft draws can be published (draw is {draw.status.value})")
            draw.status = DrawStatus.PUBLISHED
            await self.repository.save(draw)
        logger.info("Draw %s published", draw_id)
        return draw

    async def delete(self, draw_id: str) -> None:
        async with self._lock_for(draw_id):
            draw = await self.repository.load(draw_id)
            if draw.status not in DELETABLE_STATUSES:
                raise IllegalStateTransition(f"Cannot delete a draw that is {draw.status.value}")
            await self.repository.delete(draw_id)
        logger.info("Draw %s deleted", draw_id)

    # --- Match operations ---

    async def start(self, draw_id: str, match_id: str) -> Match:
        async with self._lock_for(draw_id):
            draw = await self.repository.load(draw_id)
            match = _get_match(draw, match_id)
            _require_live(draw, f"start match {match_id}")
            if match.status != MatchStatus.PENDING:
                raise IllegalStateTransition(f"Match {match_id} is already {match.status.value}")
            if not match.is_ready:
                raise ParticipantsNotReady(f"Match {match_id} still has an undecided slot")
            match.status = MatchStatus.ONGOING
            if draw.status == DrawStatus.PUBLISHED:
                draw.status = DrawStatus.ONGOING
            await self.repository.save(draw)
        logger.info("Match %s of draw %s started", match_id, draw_id)
        return match

    async def record_score(
        self,
        draw_id: str,
        match_id: str,
        score1: Optional[ScoreValue],
        score2: Optional[ScoreValue],
    ) -> Match:
        """Store a score without changing match status. Allowed before the match starts."""
        async with self._lock_for(draw_id):
            draw = await self.repository.load(draw_id)
            match = _get_match(draw, match_id)
            _require_live(draw, f"score match {match_id}")
            if match.status == MatchStatus.COMPLETED:
                raise IllegalStateTransition(f"Match {match_id} is completed")
            match.score = MatchScore(score1=score1, score2=score2)
            await self.repository.save(draw)
        return match

    async def schedule(
        self,
        draw_id: str,
        match_id: str,
        scheduled_time: Optional[datetime],
        venue: Optional[str],
    ) -> Match:
        async with self._lock_for(draw_id):
            draw = await self.repository.load(draw_id)
            match = _get_match(draw, match_id)
            if draw.status == DrawStatus.COMPLETED or match.status == MatchStatus.COMPLETED:
                raise IllegalStateTransition(f"Match {match_id} can no longer be rescheduled")
            match.scheduled_time = scheduled_time
            match.venue = venue
            await self.repository.save(draw)
        return match

    async def complete(
        self,
        draw_id: str,
        match_id: str,
        winner_ref: Optional[str],
        score1: Optional[ScoreValue] = None,
        score2: Optional[ScoreValue] = None,
    ) -> Tuple[Match, Draw]:
        """Decide a match, push the winner forward and close the draw after its last match.

        Repeating a call with the same winner is a no-op. winner_ref=None records
        a tie and is only accepted for round robin and group stage matches.
        """
        async with self._lock_for(draw_id):
            draw = await self.repository.load(draw_id)
            match = _get_match(draw, match_id)
            if match.status == MatchStatus.COMPLETED:
                if match.winner_ref == winner_ref:
                    return match, draw
                raise IllegalStateTransition(
                    f"Match {match_id} was already won by {match.winner_ref}"
                )
            _require_live(draw, f"complete match {match_id}")
            if not match.is_ready:
                raise InvalidWinner(f"Match {match_id} still has an undecided slot")
            if winner_ref is None:
                if draw.is_elimination:
                    raise InvalidWinner("Elimination matches need a winner")
            elif winner_ref not in (match.participant1_ref, match.participant2_ref):
                raise InvalidWinner(f"{winner_ref} is not playing in match {match_id}")

            target = downstream_slot(draw, match)
            if target is not None:
                next_match, slot = target
                current = getattr(next_match, slot)
                if next_match.status != MatchStatus.PENDING or current not in (None, winner_ref):
                    raise IllegalStateTransition(
                        f"Match {next_match.id} already has {slot} set to {current}"
                    )

            if score1 is not None or score2 is not None:
                match.score = MatchScore(score1=score1, score2=score2)
            match.winner_ref = winner_ref
            match.status = MatchStatus.COMPLETED
            if draw.status == DrawStatus.PUBLISHED:
                draw.status = DrawStatus.ONGOING
            if target is not None:
                setattr(next_match, slot, winner_ref)
            finished = is_finished(draw)
            if finished:
                draw.status = DrawStatus.COMPLETED
            await self.repository.save(draw)

        logger.info("Match %s of draw %s completed, winner %s", match_id, draw_id, winner_ref or "tie")
        if finished:
            logger.info("Draw %s completed", draw_id)
            await self._notify_completed(draw)
        return match, draw

    async def _notify_completed(self, draw: Draw) -> None:
        if self.emitter is None:
            return
        try:
            await self.emitter.on_draw_completed(draw.id, compute_standings(draw))
        except Exception:
            # Fire-and-forget: the draw is already saved as completed
            logger.exception("Result emitter failed for draw %s", draw.id)
