"""SQLAlchemy ORM models — users, videos, summaries, chat and tags."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _utcnow():
    return datetime.now(timezone.utc)


def _uuid():
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    username = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255))
    password_hash = Column(String(255), nullable=False)
    api_key = Column(String(64), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    settings = relationship("UserSettings", back_populates="user", uselist=False)
    videos = relationship("Video", back_populates="user", lazy="dynamic")


class UserSettings(Base):
    __tablename__ = "user_settings"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    ai_provider = Column(String(32), nullable=False)  # gemini | openai | openai-compatible
    ai_model = Column(String(128), nullable=False)
    api_key = Column(String(255))
    base_url = Column(String(512))
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    user = relationship("User", back_populates="settings")


class Video(Base):
    __tablename__ = "videos"
    __table_args__ = (UniqueConstraint("user_id", "youtube_id", name="uq_videos_user_youtube"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    youtube_id = Column(String(32), nullable=False, index=True)

    title = Column(String(512), nullable=False, default="")
    channel_name = Column(String(255))
    duration = Column(String(32))
    published_at = Column(DateTime(timezone=True))
    playlist_id = Column(String(64), index=True)
    playlist_title = Column(String(255))

    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True))
    is_removed = Column(Boolean, default=False, nullable=False)

    # {"video_id", "language", "transcript": [{"text", "start", "duration"}]}
    transcript_data = Column(JSON)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    user = relationship("User", back_populates="videos")
    summaries = relationship(
        "Summary", back_populates="video", cascade="all, delete-orphan", passive_deletes=True
    )
    chat_messages = relationship(
        "ChatMessage", back_populates="video", cascade="all, delete-orphan", passive_deletes=True
    )
    video_tags = relationship(
        "VideoTag", back_populates="video", cascade="all, delete-orphan", passive_deletes=True
    )


class Summary(Base):
    __tablename__ = "summaries"

    id = Column(String(36), primary_key=True, default=_uuid)
    video_id = Column(String(36), ForeignKey("videos.id", ondelete="CASCADE"), nullable=False, index=True)

    status = Column(String(20), default="processing", index=True)  # processing | completed | failed
    transcript = Column(Text)
    structural_analysis = Column(Text)
    category = Column(String(64))
    markdown = Column(Text)
    passes_completed = Column(Integer, default=0, nullable=False)

    provider = Column(String(32))
    provider_model = Column(String(128))
    target_language = Column(String(16), default="en")

    input_tokens = Column(Integer, default=0, nullable=False)
    output_tokens = Column(Integer, default=0, nullable=False)
    total_tokens = Column(Integer, default=0, nullable=False)

    translations = Column(JSON)  # {language_code: markdown}
    error_message = Column(Text)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    video = relationship("Video", back_populates="summaries")


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    video_id = Column(String(36), ForeignKey("videos.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(16), nullable=False)  # user | assistant
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, index=True)

    video = relationship("Video", back_populates="chat_messages")


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_tags_user_name"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(64), nullable=False)
    color = Column(String(16))
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    video_tags = relationship(
        "VideoTag", back_populates="tag", cascade="all, delete-orphan", passive_deletes=True
    )


class VideoTag(Base):
    __tablename__ = "video_tags"

    video_id = Column(String(36), ForeignKey("videos.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)

    video = relationship("Video", back_populates="video_tags")
    tag = relationship("Tag", back_populates="video_tags")
