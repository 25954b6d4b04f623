"""Shared API dependencies (auth, owned-resource lookup)."""

from fastapi import Depends, HTTPException, Header
from sqlalchemy.orm import Session

from tubenotes.db.database import get_db
from tubenotes.db.models import User, Video


def get_current_user(
    x_api_key: str = Header(..., alias="X-API-Key"),
    db: Session = Depends(get_db),
) -> User:
    """Resolve current user from X-API-Key header."""
    user = db.query(User).filter(User.api_key == x_api_key).first()
    if not user:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return user


def get_owned_video(
    youtube_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Video:
    """The current user's Video for a `{youtube_id}` path parameter."""
    video = (
        db.query(Video)
        .filter(Video.youtube_id == youtube_id, Video.user_id == user.id)
        .first()
    )
    if not video:
        raise HTTPException(404, "Video not found")
    return video
