"""Admission guard for summarization attempts.

At most one Summary per video may be `processing`. A processing row whose
`updated_at` heartbeat is older than the staleness threshold is treated as
abandoned: it is marked failed and a new attempt is admitted.

The check and the insert are two statements, not a lock. Two requests for the
same video arriving together can both pass the check; that window is accepted.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from tubenotes.config import settings
from tubenotes.db.models import Summary, Video
from tubenotes.services.provider import AISettings

log = structlog.get_logger()


class AlreadyProcessingError(RuntimeError):
    def __init__(self, summary_id: str):
        super().__init__("Already processing")
        self.summary_id = summary_id


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def stuck_timeout() -> timedelta:
    return timedelta(minutes=settings.stuck_timeout_minutes)


def admit_summary(
    db: Session,
    video: Video,
    ai_settings: AISettings,
    target_language: str,
    now: Optional[datetime] = None,
) -> Summary:
    """Create a new `processing` Summary for `video` or raise AlreadyProcessingError."""
    now = now or datetime.now(timezone.utc)

    processing = (
        db.query(Summary)
        .filter(Summary.video_id == video.id, Summary.status == "processing")
        .order_by(Summary.updated_at.desc())
        .first()
    )
    if processing:
        elapsed = now - _as_utc(processing.updated_at or processing.created_at or now)
        if elapsed <= stuck_timeout():
            log.info("summary_admission_rejected", video_id=video.id, processing_id=processing.id,
                     elapsed_seconds=int(elapsed.total_seconds()))
            raise AlreadyProcessingError(processing.id)

        processing.status = "failed"
        processing.error_message = f"Timed out after {round(elapsed.total_seconds() / 60)} minutes"
        processing.updated_at = now
        db.commit()
        log.warning("summary_stuck_reaped", video_id=video.id, summary_id=processing.id,
                    elapsed_seconds=int(elapsed.total_seconds()))

    summary = Summary(
        video_id=video.id,
        status="processing",
        provider=ai_settings.provider,
        provider_model=ai_settings.model,
        target_language=target_language,
        created_at=now,
        updated_at=now,
    )
    db.add(summary)
    db.commit()
    db.refresh(summary)
    log.info("summary_admitted", video_id=video.id, summary_id=summary.id, language=target_language)
    return summary
