"""Draw and match aggregate shared by the generator, engine and repositories."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DrawType(str, Enum):
    SINGLE_ELIMINATION = "single_elimination"
    DOUBLE_ELIMINATION = "double_elimination"
    ROUND_ROBIN = "round_robin"
    GROUP_STAGE = "group_stage"


class SeedingMethod(str, Enum):
    RANDOM = "random"
    RANKED = "ranked"
    MANUAL = "manual"


class DrawStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ONGOING = "ongoing"
    COMPLETED = "completed"


class MatchStatus(str, Enum):
    PENDING = "pending"
    ONGOING = "ongoing"
    COMPLETED = "completed"


ELIMINATION_TYPES = (DrawType.SINGLE_ELIMINATION, DrawType.DOUBLE_ELIMINATION)
DELETABLE_STATUSES = (DrawStatus.DRAFT, DrawStatus.PUBLISHED)
LIVE_STATUSES = (DrawStatus.PUBLISHED, DrawStatus.ONGOING)

# Points, seconds, or a time/score string depending on the event
ScoreValue = Union[int, float, str]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def match_id_for(round_num: int, position: int) -> str:
    """Stable match id; unique within a draw because positions are unique per round."""
    return f"R{round_num}-M{position}"


class DomainModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MatchScore(DomainModel):
    score1: Optional[ScoreValue] = None
    score2: Optional[ScoreValue] = None


class Match(DomainModel):
    """One contest between two slots within a draw."""

    id: str
    round: int = Field(ge=1)
    position: int = Field(ge=1)
    participant1_ref: Optional[str] = None
    participant2_ref: Optional[str] = None
    winner_ref: Optional[str] = None
    score: MatchScore = Field(default_factory=MatchScore)
    status: MatchStatus = MatchStatus.PENDING
    scheduled_time: Optional[datetime] = None
    venue: Optional[str] = None
    group_label: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        """True when both slots hold a participant."""
        return self.participant1_ref is not None and self.participant2_ref is not None

    @property
    def loser_ref(self) -> Optional[str]:
        if self.winner_ref is None:
            return None
        if self.winner_ref == self.participant1_ref:
            return self.participant2_ref
        return self.participant1_ref


class Draw(DomainModel):
    """One tournament instance for one event. Owns its matches."""

    id: str
    event_id: str
    draw_type: DrawType
    seeding_method: SeedingMethod
    participants: list[str]
    matches: dict[str, Match] = Field(default_factory=dict)
    status: DrawStatus = DrawStatus.DRAFT
    total_rounds: int = 0
    group_size: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    created_by: Optional[str] = None

    @property
    def is_elimination(self) -> bool:
        return self.draw_type in ELIMINATION_TYPES

    def get_match(self, round_num: int, position: int) -> Optional[Match]:
        return self.matches.get(match_id_for(round_num, position))

    def matches_by_round(self) -> dict[int, list[Match]]:
        """Matches grouped by round, each round ordered by position."""
        rounds: dict[int, list[Match]] = {}
        for m in sorted(self.matches.values(), key=lambda x: (x.round, x.position)):
            rounds.setdefault(m.round, []).append(m)
        return rounds

    def final_match(self) -> Optional[Match]:
        if not self.is_elimination or not self.total_rounds:
            return None
        return self.get_match(self.total_rounds, 1)


class StandingRow(DomainModel):
    participant_ref: str
    group_label: Optional[str] = None
    played: int = 0
    wins: int = 0
    ties: int = 0
    losses: int = 0


class Standings(DomainModel):
    """Final placings handed to the result/certificate emitter."""

    draw_id: str
    event_id: str
    draw_type: DrawType
    winner_ref: Optional[str] = None
    runner_up_ref: Optional[str] = None
    # Only set when a third-place playoff exists; none is generated today
    third_place_ref: Optional[str] = None
    table: list[StandingRow] = Field(default_factory=list)
