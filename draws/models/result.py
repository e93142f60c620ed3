"""Final placings recorded when a draw completes."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from draws.domain import utcnow
from draws.models.base import Base


class DrawResult(Base):
    """One placing in a completed draw. Input for certificates."""

    __tablename__ = "draw_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    draw_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    event_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    participant_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    placing: Mapped[int] = mapped_column(Integer, nullable=False)  # 1 = winner
    group_label: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    wins: Mapped[int] = mapped_column(Integer, default=0)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
