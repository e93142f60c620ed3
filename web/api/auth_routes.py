"""Auth API routes: login, current user, user management."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import select

import config
from draws.models import User
from draws.models.base import async_session_factory
from draws.models.user import ROLES
from web.auth import (
    SCHOOL_ADMIN,
    SUPER_ADMIN,
    create_access_token,
    get_user_by_username,
    hash_password,
    require_super_admin_user,
    require_user,
    verify_password,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    username: str
    role: str


class UserResponse(BaseModel):
    username: str
    role: str
    school_id: Optional[str] = None


class CreateUserRequest(BaseModel):
    username: str
    password: str
    role: str = "school_admin"  # school_admin, super_admin
    school_id: Optional[str] = None


@router.post("/login", response_model=LoginResponse)
async def login(body: LoginRequest):
    """Authenticate and return JWT."""
    user = await get_user_by_username(body.username)
    if not user:
        # Bootstrap: if INITIAL_ADMIN_PASSWORD is set and matches, create the super admin
        if (
            config.INITIAL_ADMIN_PASSWORD
            and body.username == config.INITIAL_ADMIN_USERNAME
            and body.password == config.INITIAL_ADMIN_PASSWORD
        ):
            async with async_session_factory() as session:
                user = User(
                    username=config.INITIAL_ADMIN_USERNAME,
                    password_hash=hash_password(config.INITIAL_ADMIN_PASSWORD),
                    role=SUPER_ADMIN,
                )
                session.add(user)
                await session.commit()
                await session.refresh(user)
                token = create_access_token(user)
                return LoginResponse(access_token=token, username=user.username, role=user.role)
        raise HTTPException(status_code=401, detail="Invalid username or password")
    if not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    token = create_access_token(user)
    return LoginResponse(access_token=token, username=user.username, role=user.role)


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(require_user)):
    """Get current authenticated user."""
    return UserResponse(username=user.username, role=user.role, school_id=user.school_id)


@router.post("/users", response_model=UserResponse)
async def create_user(body: CreateUserRequest, admin: User = Depends(require_super_admin_user)):
    """Create a dashboard user (super admin only)."""
    if body.role not in ROLES:
        raise HTTPException(400, "Invalid role")
    if body.role == SCHOOL_ADMIN and not body.school_id:
        raise HTTPException(400, "School admins need a school_id")
    async with async_session_factory() as session:
        existing = await session.execute(select(User).where(User.username == body.username))
        if existing.scalar_one_or_none():
            raise HTTPException(400, "Username already exists")
        user = User(
            username=body.username,
            password_hash=hash_password(body.password),
            role=body.role,
            school_id=body.school_id,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return UserResponse(username=user.username, role=user.role, school_id=user.school_id)
