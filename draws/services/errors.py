"""Draw engine errors. Each carries the HTTP status the API layer should answer with."""
from __future__ import annotations


class DrawError(Exception):
    """Base class for draw engine failures."""

    status_code = 400


class InvalidConfiguration(DrawError):
    """Bad generator input (no participants, duplicates, unknown draw type...)."""


class Unsupported(DrawError):
    """Valid request the engine does not implement (double elimination, missing group size)."""

    status_code = 422


class ParticipantsNotReady(DrawError):
    """Match cannot start while a slot is still TBD."""

    status_code = 409


class InvalidWinner(DrawError):
    """Winner is not one of the match's resolved participants."""


class IllegalStateTransition(DrawError):
    status_code = 409


class DrawNotFound(DrawError):
    status_code = 404

    def __init__(self, draw_id: str):
        super().__init__(f"Draw not found: {draw_id}")
        self.draw_id = draw_id


class MatchNotFound(DrawError):
    status_code = 404

    def __init__(self, draw_id: str, match_id: str):
        super().__init__(f"Match not found: {match_id} (draw {draw_id})")
        self.draw_id = draw_id
        self.match_id = match_id


class RepositoryUnavailable(DrawError):
    """Storage failed. May be transient; the engine never retries."""

    status_code = 503
