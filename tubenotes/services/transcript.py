"""Transcript source — youtube-transcript-api with a cache on the Video row."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from youtube_transcript_api import (
    NoTranscriptFound,
    TranscriptsDisabled,
    YouTubeTranscriptApi,
)

from tubenotes.db.models import Video

log = structlog.get_logger()


class TranscriptError(RuntimeError):
    pass


class TranscriptsDisabledError(TranscriptError):
    def __init__(self):
        super().__init__("Transcripts are disabled for this video")


class TranscriptNotFoundError(TranscriptError):
    def __init__(self):
        super().__init__("No transcript found for this video")


@dataclass
class TranscriptSegment:
    text: str
    start: float
    duration: float


@dataclass
class TranscriptResult:
    video_id: str
    language: str
    segments: list[TranscriptSegment] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "video_id": self.video_id,
            "language": self.language,
            "transcript": [asdict(s) for s in self.segments],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptResult":
        return cls(
            video_id=data["video_id"],
            language=data.get("language", "unknown"),
            segments=[
                TranscriptSegment(
                    text=s.get("text", ""),
                    start=float(s.get("start", 0)),
                    duration=float(s.get("duration", 0)),
                )
                for s in data.get("transcript") or []
            ],
        )


# ── Cache ────────────────────────────────────────────────────────────────────


def _get_cached(db: Session, youtube_id: str) -> Optional[TranscriptResult]:
    video = (
        db.query(Video)
        .filter(Video.youtube_id == youtube_id, Video.transcript_data.isnot(None))
        .first()
    )
    if not video or not video.transcript_data:
        return None
    try:
        return TranscriptResult.from_dict(video.transcript_data)
    except (KeyError, TypeError, ValueError):
        log.warning("transcript_cache_corrupt", youtube_id=youtube_id)
        return None


def _store_cache(db: Session, youtube_id: str, result: TranscriptResult) -> None:
    try:
        db.query(Video).filter(Video.youtube_id == youtube_id).update(
            {Video.transcript_data: result.to_dict()}, synchronize_session=False
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        log.warning("transcript_cache_write_failed", youtube_id=youtube_id, error=str(exc))


# ── Fetch ────────────────────────────────────────────────────────────────────


def _fetch_remote(youtube_id: str, lang: Optional[str]) -> TranscriptResult:
    api = YouTubeTranscriptApi()
    if lang:
        fetched = api.fetch(youtube_id, languages=[lang])
    else:
        # Any language: first track the video lists.
        fetched = next(iter(api.list(youtube_id))).fetch()

    return TranscriptResult(
        video_id=youtube_id,
        language=fetched.language_code or lang or "any",
        segments=[
            TranscriptSegment(text=s.text, start=float(s.start), duration=float(s.duration))
            for s in fetched.snippets
        ],
    )


def fetch_transcript(
    db: Session,
    youtube_id: str,
    lang: str = "en",
    skip_cache: bool = False,
) -> TranscriptResult:
    """Cached transcript, else `lang`, else any language.

    Transcripts being disabled is final; other failures get the
    any-language attempt before giving up.
    """
    if not skip_cache:
        cached = _get_cached(db, youtube_id)
        if cached:
            return cached

    last_error: Optional[Exception] = None
    for attempt in (lang, None):
        try:
            result = _fetch_remote(youtube_id, attempt)
        except TranscriptsDisabled as exc:
            raise TranscriptsDisabledError() from exc
        except Exception as exc:
            if "disabled" in str(exc).lower():
                raise TranscriptsDisabledError() from exc
            log.info("transcript_attempt_failed", youtube_id=youtube_id, lang=attempt or "any", error=str(exc)[:200])
            last_error = exc
            continue

        if not result.segments:
            continue

        _store_cache(db, youtube_id, result)
        log.info("transcript_fetched", youtube_id=youtube_id, language=result.language, segments=len(result.segments))
        return result

    if last_error is None or isinstance(last_error, (NoTranscriptFound, StopIteration)):
        raise TranscriptNotFoundError()
    msg = str(last_error).lower()
    if "not available" in msg or "no transcript" in msg:
        raise TranscriptNotFoundError()
    raise TranscriptError(str(last_error))


def format_transcript(result: TranscriptResult) -> str:
    """One `[m:ss] text` line per segment."""
    lines = []
    for seg in result.segments:
        minutes, seconds = divmod(int(seg.start), 60)
        lines.append(f"[{minutes}:{seconds:02d}] {seg.text}")
    return "\n".join(lines)


def fetch_transcript_text(db: Session, youtube_id: str) -> str:
    return format_transcript(fetch_transcript(db, youtube_id))
