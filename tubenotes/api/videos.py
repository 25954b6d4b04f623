"""Video endpoints: register, list, read state, transcript, tag assignment."""

from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tubenotes.api.deps import get_current_user, get_owned_video
from tubenotes.db.database import get_db
from tubenotes.db.models import Tag, User, Video, VideoTag
from tubenotes.services import youtube as yt_svc
from tubenotes.services.transcript import (
    TranscriptError,
    TranscriptNotFoundError,
    TranscriptsDisabledError,
    fetch_transcript,
)

router = APIRouter(prefix="/v1/videos", tags=["videos"])
log = structlog.get_logger()


class VideoCreate(BaseModel):
    url: str = Field(..., description="YouTube video URL or id")
    title: Optional[str] = None
    channel_name: Optional[str] = None
    duration: Optional[str] = None
    published_at: Optional[datetime] = None
    playlist_id: Optional[str] = None
    playlist_title: Optional[str] = None


class VideoUpdate(BaseModel):
    is_read: Optional[bool] = None
    is_removed: Optional[bool] = None


class TagAssign(BaseModel):
    tag_id: str


def _iso(value):
    return value.isoformat() if value else None


def serialize_video(v: Video) -> dict:
    return {
        "id": v.id,
        "youtube_id": v.youtube_id,
        "title": v.title,
        "channel_name": v.channel_name,
        "duration": v.duration,
        "published_at": _iso(v.published_at),
        "playlist_id": v.playlist_id,
        "playlist_title": v.playlist_title,
        "is_read": v.is_read,
        "read_at": _iso(v.read_at),
        "is_removed": v.is_removed,
        "has_transcript": v.transcript_data is not None,
        "tags": [{"id": vt.tag.id, "name": vt.tag.name, "color": vt.tag.color} for vt in v.video_tags],
    }


@router.get("")
def list_videos(
    is_read: Optional[bool] = None,
    is_removed: Optional[bool] = False,
    playlist_id: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    q = db.query(Video).filter(Video.user_id == user.id)
    if is_read is not None:
        q = q.filter(Video.is_read == is_read)
    if is_removed is not None:
        q = q.filter(Video.is_removed == is_removed)
    if playlist_id:
        q = q.filter(Video.playlist_id == playlist_id)
    return {"items": [serialize_video(v) for v in q.order_by(Video.created_at.desc()).all()]}


@router.post("", status_code=201)
def register_video(
    body: VideoCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        youtube_id = yt_svc.extract_video_id(body.url)
    except ValueError as exc:
        raise HTTPException(400, "Invalid YouTube URL") from exc

    existing = db.query(Video).filter(Video.user_id == user.id, Video.youtube_id == youtube_id).first()
    if existing:
        raise HTTPException(409, "Video already registered")

    title, channel, duration, published = body.title, body.channel_name, body.duration, body.published_at
    if not title:
        meta = yt_svc.get_metadata(youtube_id)
        title = meta.title or youtube_id
        channel = channel or meta.channel
        duration = duration or meta.duration
        published = published or meta.published_at

    video = Video(
        user_id=user.id,
        youtube_id=youtube_id,
        title=title,
        channel_name=channel,
        duration=duration,
        published_at=published,
        playlist_id=body.playlist_id,
        playlist_title=body.playlist_title,
    )
    db.add(video)
    db.commit()
    db.refresh(video)
    log.info("video_registered", video_id=video.id, youtube_id=youtube_id)
    return serialize_video(video)


@router.get("/{youtube_id}")
def get_video(video: Video = Depends(get_owned_video)):
    return serialize_video(video)


@router.patch("/{youtube_id}")
def update_video(
    body: VideoUpdate,
    video: Video = Depends(get_owned_video),
    db: Session = Depends(get_db),
):
    if body.is_read is not None:
        video.is_read = body.is_read
        video.read_at = datetime.now(timezone.utc) if body.is_read else None
    if body.is_removed is not None:
        video.is_removed = body.is_removed
    db.commit()
    db.refresh(video)
    return serialize_video(video)


@router.get("/{youtube_id}/transcript")
def get_transcript(
    video: Video = Depends(get_owned_video),
    db: Session = Depends(get_db),
):
    try:
        result = fetch_transcript(db, video.youtube_id)
    except (TranscriptsDisabledError, TranscriptNotFoundError) as exc:
        raise HTTPException(404, str(exc)) from exc
    except TranscriptError as exc:
        log.warning("transcript_fetch_error", youtube_id=video.youtube_id, error=str(exc))
        raise HTTPException(502, str(exc)) from exc
    return result.to_dict()


@router.post("/{youtube_id}/tags", status_code=201)
def assign_tag(
    body: TagAssign,
    video: Video = Depends(get_owned_video),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    tag = db.query(Tag).filter(Tag.id == body.tag_id, Tag.user_id == user.id).first()
    if not tag:
        raise HTTPException(404, "Tag not found")

    db.add(VideoTag(video_id=video.id, tag_id=tag.id))
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(409, "Tag already assigned") from exc
    return {"success": True}


@router.delete("/{youtube_id}/tags/{tag_id}")
def remove_tag(
    tag_id: str,
    video: Video = Depends(get_owned_video),
    db: Session = Depends(get_db),
):
    db.query(VideoTag).filter(VideoTag.video_id == video.id, VideoTag.tag_id == tag_id).delete(
        synchronize_session=False
    )
    db.commit()
    return {"success": True}
