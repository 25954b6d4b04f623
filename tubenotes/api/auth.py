"""Account routes: register, login, API key rotation, current account."""

import secrets
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from tubenotes.api.deps import get_current_user
from tubenotes.api.rate_limit import rate_limit
from tubenotes.config import settings
from tubenotes.db.database import get_db
from tubenotes.db.models import Summary, User, Video
from tubenotes.security import hash_password, verify_password

router = APIRouter(prefix="/v1/auth", tags=["auth"])
auth_limiter = rate_limit(settings.auth_rate_limit_per_minute, 60, "auth")
log = structlog.get_logger()


class Credentials(BaseModel):
    username: str = Field(..., min_length=3, max_length=64)
    # bcrypt uses first 72 bytes; keep strict limit to avoid silent truncation.
    password: str = Field(..., min_length=6, max_length=72)


class Registration(Credentials):
    email: Optional[str] = Field(None, max_length=255)


class AccountKey(BaseModel):
    api_key: str
    username: str


def _issue_key(user: User) -> AccountKey:
    return AccountKey(api_key=user.api_key, username=user.username)


@router.post("/register", response_model=AccountKey)
def register(
    body: Registration,
    _: None = Depends(auth_limiter),
    db: Session = Depends(get_db),
):
    if db.query(User).filter(User.username == body.username).first():
        log.info("auth_register_duplicate", username=body.username)
        raise HTTPException(400, "Username already taken")
    # The email names the user's export folder, so two accounts cannot share one.
    if body.email and db.query(User).filter(User.email == body.email).first():
        raise HTTPException(400, "Email already registered")

    user = User(
        username=body.username,
        email=body.email,
        password_hash=hash_password(body.password),
        api_key=secrets.token_urlsafe(32),
    )
    db.add(user)
    db.commit()
    log.info("auth_register_success", user_id=user.id, username=user.username)
    return _issue_key(user)


@router.post("/login", response_model=AccountKey)
def login(
    body: Credentials,
    _: None = Depends(auth_limiter),
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.username == body.username).first()
    if not user or not verify_password(body.password, user.password_hash):
        log.info("auth_login_failed", username=body.username)
        raise HTTPException(401, "Invalid username or password")
    return _issue_key(user)


@router.post("/rotate-key", response_model=AccountKey)
def rotate_api_key(
    _: None = Depends(auth_limiter),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    user.api_key = secrets.token_urlsafe(32)
    db.commit()
    log.info("auth_key_rotated", user_id=user.id, new_prefix=user.api_key[:6])
    return _issue_key(user)


@router.get("/me")
def me(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    videos = db.query(func.count(Video.id)).filter(Video.user_id == user.id).scalar()
    summaries = (
        db.query(func.count(Summary.id))
        .join(Video, Summary.video_id == Video.id)
        .filter(Video.user_id == user.id, Summary.status == "completed")
        .scalar()
    )
    return {
        "username": user.username,
        "email": user.email,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "videos": videos or 0,
        "completed_summaries": summaries or 0,
    }
