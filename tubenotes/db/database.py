"""SQLAlchemy engine & session factory."""

from urllib.parse import quote, unquote

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from tubenotes.config import settings


def _fix_url_scheme(url: str) -> str:
    """SQLAlchemy 2.x expects postgresql:// instead of legacy postgres://."""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def _encode_db_password(url: str) -> str:
    """URL-encode a raw password pasted into DATABASE_URL.

    The last '@' separates credentials from the host, so passwords containing
    '@' survive.
    """
    if "://" not in url or "@" not in url:
        return url

    scheme, rest = url.split("://", 1)
    at_pos = rest.rfind("@")
    userinfo, host_and_path = rest[:at_pos], rest[at_pos + 1 :]
    if ":" not in userinfo:
        return url

    username, password = userinfo.split(":", 1)
    encoded_password = quote(unquote(password), safe="")
    if encoded_password == password:
        return url
    return f"{scheme}://{username}:{encoded_password}@{host_and_path}"


def _normalize_database_url(url: str) -> str:
    return _encode_db_password(_fix_url_scheme(url))


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # Route handlers run in a threadpool while the worker opens its own sessions.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


_url = _normalize_database_url(settings.database_url)
engine = create_engine(_url, **_engine_kwargs(_url))
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db():
    """FastAPI dependency — yields a DB session and closes it after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
