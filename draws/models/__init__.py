"""Database models."""
from draws.models.base import Base, init_db
from draws.models.draw import DrawRecord, MatchRecord
from draws.models.reference import Event, EventEntry, School
from draws.models.result import DrawResult
from draws.models.user import User

__all__ = [
    "Base",
    "DrawRecord",
    "MatchRecord",
    "School",
    "Event",
    "EventEntry",
    "DrawResult",
    "User",
    "init_db",
]
