"""Chat endpoints for a video."""

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from tubenotes.api.deps import get_current_user, get_owned_video
from tubenotes.db.database import get_db
from tubenotes.db.models import ChatMessage, User, Video
from tubenotes.services import chat as chat_svc
from tubenotes.services.provider import MissingApiKeyError, ProviderError, load_ai_settings

router = APIRouter(prefix="/v1/videos/{youtube_id}/chat", tags=["chat"])
log = structlog.get_logger()


class MessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=8000)


def _serialize(m: ChatMessage) -> dict:
    return {
        "id": m.id,
        "role": m.role,
        "content": m.content,
        "created_at": m.created_at.isoformat() if m.created_at else None,
    }


@router.get("")
def get_history(
    video: Video = Depends(get_owned_video),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    messages = (
        db.query(ChatMessage)
        .filter(ChatMessage.video_id == video.id)
        .order_by(ChatMessage.created_at.asc())
        .all()
    )
    suggestions = []
    if not messages:
        suggestions = chat_svc.get_suggested_questions(db, video, load_ai_settings(db, user.id))
    return {"messages": [_serialize(m) for m in messages], "suggestions": suggestions}


@router.post("")
def post_message(
    body: MessageRequest,
    video: Video = Depends(get_owned_video),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        reply = chat_svc.post_message(db, video, body.message, load_ai_settings(db, user.id))
    except MissingApiKeyError as exc:
        raise HTTPException(400, str(exc)) from exc
    except ProviderError as exc:
        log.error("chat_failed", video_id=video.id, error=str(exc))
        raise HTTPException(502, f"Failed to generate response. {exc}") from exc
    return {"message": _serialize(reply)}
