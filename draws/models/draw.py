"""Draw and match tables."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from draws.models.base import Base


class DrawRecord(Base):
    """Persisted draw aggregate root."""

    __tablename__ = "draws"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    event_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    draw_type: Mapped[str] = mapped_column(String(32), nullable=False)  # single_elimination, round_robin, group_stage
    seeding_method: Mapped[str] = mapped_column(String(16), nullable=False)  # random, ranked, manual
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")  # draft, published, ongoing, completed
    participants: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_rounds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    group_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    matches = relationship(
        "MatchRecord",
        back_populates="draw",
        cascade="all, delete-orphan",
    )


class MatchRecord(Base):
    """Single match in a draw."""

    __tablename__ = "draw_matches"
    __table_args__ = (UniqueConstraint("draw_id", "round_num", "position"),)

    pk: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    draw_id: Mapped[str] = mapped_column(ForeignKey("draws.id", ondelete="CASCADE"), nullable=False, index=True)
    match_id: Mapped[str] = mapped_column(String(32), nullable=False)
    round_num: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    participant1_ref: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    participant2_ref: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    winner_ref: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    score: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending, ongoing, completed
    scheduled_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    venue: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    group_label: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)

    draw = relationship("DrawRecord", back_populates="matches")
