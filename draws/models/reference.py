"""Reference data owned by other parts of the olympiad system. Read-only here."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from draws.models.base import Base


class School(Base):
    """Registered school (entity)."""

    __tablename__ = "schools"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending, approved, rejected


class Event(Base):
    """Competition in the event catalog."""

    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[str] = mapped_column(String(16), nullable=False)  # academic, sporting
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 0 = no limit
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")  # draft, active, completed

    entries = relationship(
        "EventEntry", back_populates="event", cascade="all, delete-orphan"
    )


class EventEntry(Base):
    """Participant (individual or team) registered for an event."""

    __tablename__ = "event_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(ForeignKey("events.id"), nullable=False, index=True)
    participant_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    school_id: Mapped[Optional[str]] = mapped_column(ForeignKey("schools.id"), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)  # ranking order for ranked seeding

    event = relationship("Event", back_populates="entries")
    school = relationship("School")
