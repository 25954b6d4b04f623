"""Per-user AI settings."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from tubenotes.api.deps import get_current_user
from tubenotes.db.database import get_db
from tubenotes.db.models import User, UserSettings
from tubenotes.services.provider import load_ai_settings

router = APIRouter(prefix="/v1/settings", tags=["settings"])

MASK = "••••••"


class SettingsUpdate(BaseModel):
    ai_provider: str = Field(..., pattern="^(gemini|openai|openai-compatible)$")
    ai_model: str = Field(..., min_length=1, max_length=128)
    api_key: Optional[str] = None
    base_url: Optional[str] = None


def _masked(api_key: Optional[str]) -> Optional[str]:
    return MASK + api_key[-4:] if api_key else None


@router.get("")
def get_settings(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ai = load_ai_settings(db, user.id)
    return {
        "ai_provider": ai.provider,
        "ai_model": ai.model,
        "api_key": _masked(ai.api_key),
        "has_api_key": bool(ai.api_key),
        "base_url": ai.base_url or "",
    }


@router.put("")
def update_settings(
    body: SettingsUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    row = db.query(UserSettings).filter(UserSettings.user_id == user.id).first()
    if row is None:
        row = UserSettings(user_id=user.id)
        db.add(row)

    row.ai_provider = body.ai_provider
    row.ai_model = body.ai_model
    row.base_url = body.base_url or None
    # The masked key the client echoes back means "unchanged".
    if body.api_key and not body.api_key.startswith(MASK):
        row.api_key = body.api_key
    db.commit()

    return get_settings(db, user)
