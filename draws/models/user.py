"""Web user model for dashboard authentication."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from draws.models.base import Base

ROLES = ("school_admin", "super_admin")


class User(Base):
    """Dashboard user. School admins are tied to one school."""

    __tablename__ = "web_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="school_admin")  # school_admin, super_admin
    school_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
