"""Shared fixtures: SQLite database, users, videos, AI settings."""

import os
import secrets
import tempfile
import uuid

# Set test env vars before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_tubenotes.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("AUTH_RATE_LIMIT_PER_MINUTE", "1000")
os.environ.setdefault("SUMMARY_SUBMIT_RATE_LIMIT_PER_MINUTE", "1000")
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="tubenotes-data-"))

import pytest

from tubenotes.db.database import SessionLocal, engine
from tubenotes.db.models import Base, User, UserSettings, Video
from tubenotes.services.provider import AISettings, GenerationResult, Usage


@pytest.fixture(scope="session", autouse=True)
def setup_db():
    """Create tables for tests."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    u = User(
        username=f"user-{uuid.uuid4().hex[:8]}",
        password_hash="x",
        api_key=secrets.token_urlsafe(32),
    )
    db.add(u)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def user_with_key(db, user):
    db.add(UserSettings(user_id=user.id, ai_provider="openai", ai_model="gpt-test", api_key="sk-test-1234"))
    db.commit()
    return user


@pytest.fixture
def video(db, user):
    v = Video(
        user_id=user.id,
        youtube_id=uuid.uuid4().hex[:11],
        title="How Rust Works",
        channel_name="Systems Talk",
        duration="12:34",
    )
    db.add(v)
    db.commit()
    db.refresh(v)
    return v


@pytest.fixture
def ai_settings():
    return AISettings(provider="openai", model="gpt-test", api_key="sk-test-1234")


@pytest.fixture
def make_result():
    """Build a canned gateway result with `tokens` in and out."""

    def _make(text: str, tokens: int = 10) -> GenerationResult:
        return GenerationResult(text=text, usage=Usage(tokens, tokens, tokens * 2))

    return _make
