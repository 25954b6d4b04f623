"""Tag endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tubenotes.api.deps import get_current_user
from tubenotes.db.database import get_db
from tubenotes.db.models import Tag, User

router = APIRouter(prefix="/v1/tags", tags=["tags"])


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)
    color: Optional[str] = Field(None, max_length=16)


def _serialize(t: Tag) -> dict:
    return {"id": t.id, "name": t.name, "color": t.color}


@router.get("")
def list_tags(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    rows = db.query(Tag).filter(Tag.user_id == user.id).order_by(Tag.name.asc()).all()
    return [_serialize(t) for t in rows]


@router.post("", status_code=201)
def create_tag(
    body: TagCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    tag = Tag(user_id=user.id, name=body.name, color=body.color)
    db.add(tag)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(409, "Tag already exists") from exc
    db.refresh(tag)
    return _serialize(tag)


@router.delete("/{tag_id}")
def delete_tag(
    tag_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    tag = db.query(Tag).filter(Tag.id == tag_id, Tag.user_id == user.id).first()
    if not tag:
        raise HTTPException(404, "Tag not found")
    db.delete(tag)
    db.commit()
    return {"success": True}
