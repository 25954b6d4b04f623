"""On-demand translation of a stored summary, cached per language on the row."""

from __future__ import annotations

import structlog
from sqlalchemy.orm import Session

from tubenotes.db.models import Summary, Video
from tubenotes.services.prompts import translation_prompt
from tubenotes.services.provider import AISettings, generate_text

log = structlog.get_logger()


class SummaryNotFoundError(LookupError):
    pass


class NotOwnerError(PermissionError):
    pass


class EmptySummaryError(ValueError):
    pass


class SummaryNotReadyError(RuntimeError):
    pass


def translate_summary(
    db: Session,
    summary_id: str,
    user_id: str,
    target_language: str,
    ai_settings: AISettings,
) -> tuple[str, bool]:
    """Return `(markdown, cached)` for `summary_id` in `target_language`.

    Only `translations` and the usage counters are written; the primary
    markdown and status are left alone.
    """
    summary = db.query(Summary).filter(Summary.id == summary_id).first()
    if not summary:
        raise SummaryNotFoundError("Summary not found")

    video = db.query(Video).filter(Video.id == summary.video_id).first()
    if not video or video.user_id != user_id:
        raise NotOwnerError("Unauthorized")

    # The pipeline still owns the row and sets the usage counters outright.
    if summary.status != "completed":
        raise SummaryNotReadyError("Summary is not completed yet")

    cached = (summary.translations or {}).get(target_language)
    if cached:
        return cached, True

    if not summary.markdown:
        raise EmptySummaryError("Original summary content is empty")

    result = generate_text(translation_prompt(summary.markdown, target_language), ai_settings)

    # Re-read so languages cached concurrently are kept.
    db.refresh(summary)
    translations = dict(summary.translations or {})
    translations[target_language] = result.text

    db.query(Summary).filter(Summary.id == summary_id).update(
        {
            Summary.translations: translations,
            Summary.input_tokens: Summary.input_tokens + result.usage.input_tokens,
            Summary.output_tokens: Summary.output_tokens + result.usage.output_tokens,
            Summary.total_tokens: Summary.total_tokens + result.usage.total_tokens,
        },
        synchronize_session=False,
    )
    db.commit()
    log.info("summary_translated", summary_id=summary_id, language=target_language,
             total_tokens=result.usage.total_tokens)
    return result.text, False
