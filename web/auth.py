"""Dashboard authentication: JWT tokens, bcrypt hashes and the olympiad role gate.

Two roles exist. Super admins run the draws for every event; school admins
are bound to one school and may only look at that school's draws.
"""
from __future__ import annotations

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy import select

import config
from draws.models import User
from draws.models.base import async_session_factory

SUPER_ADMIN = "super_admin"
SCHOOL_ADMIN = "school_admin"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)


def _prepare_password(password: str) -> str:
    """Bcrypt has a 72-byte limit. Pre-hash longer passwords with SHA256."""
    encoded = password.encode("utf-8")
    if len(encoded) > 72:
        return hashlib.sha256(encoded).hexdigest()
    return password


def hash_password(password: str) -> str:
    return pwd_context.hash(_prepare_password(password))


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(_prepare_password(plain), hashed)


def create_access_token(user: User) -> str:
    """Signed token naming the user, their role and (for school admins) their school."""
    payload = {
        "sub": user.username,
        "role": user.role,
        "school": user.school_id,
        "exp": datetime.now(timezone.utc) + timedelta(days=config.JWT_EXPIRE_DAYS),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.InvalidTokenError:
        return None


async def get_user_by_username(username: str) -> Optional[User]:
    async with async_session_factory() as session:
        result = await session.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    x_auth_token: Optional[str] = Header(None, alias="X-Auth-Token"),
) -> Optional[User]:
    """User behind an Authorization: Bearer or X-Auth-Token header, or None."""
    token = credentials.credentials if credentials and credentials.credentials else x_auth_token
    payload = decode_token(token) if token else None
    if not payload or not payload.get("sub"):
        return None
    # Role and school are re-read from the database so revoked access takes effect at once
    return await get_user_by_username(payload["sub"])


async def require_user(user: Optional[User] = Depends(get_current_user)) -> User:
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_super_admin_user(user: User = Depends(require_user)) -> User:
    """Draw generation and every match mutation."""
    if user.role != SUPER_ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Super admin access required")
    return user


def ensure_school_access(user: User, school_id: str) -> None:
    """Super admins may view any school; school admins only the school they are bound to."""
    if user.role == SUPER_ADMIN:
        return
    if user.role != SCHOOL_ADMIN or user.school_id != school_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to view this school's draws")
