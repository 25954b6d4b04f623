"""RQ background tasks: summarization runs and markdown export."""

from __future__ import annotations

import traceback

import structlog

from tubenotes.db.database import SessionLocal
from tubenotes.db.models import Summary

log = structlog.get_logger()


def _mark_failed(summary_id: str, message: str) -> None:
    """Mark the row failed unless it already reached a terminal state."""
    db = SessionLocal()
    try:
        summary = db.query(Summary).filter(Summary.id == summary_id).first()
        if not summary or summary.status != "processing":
            return
        summary.status = "failed"
        summary.error_message = message[:2000] or "Summarization failed"
        db.commit()
    finally:
        db.close()


def run_summarization(summary_id: str, youtube_id: str, user_id: str, target_language: str):
    """Run one summarization attempt; no exception leaves the row in `processing`."""
    from tubenotes.services import summarizer

    log.info("summary_job_start", summary_id=summary_id, youtube_id=youtube_id, language=target_language)
    try:
        summarizer.run_summarization_pipeline(summary_id, youtube_id, user_id, target_language)
        log.info("summary_job_done", summary_id=summary_id)
    except summarizer.RunAbandonedError as exc:
        log.warning("summary_job_abandoned", summary_id=summary_id, error=str(exc))
    except Exception as exc:
        log.error("summary_job_error", summary_id=summary_id, error=str(exc),
                  traceback=traceback.format_exc())
        try:
            _mark_failed(summary_id, str(exc))
        except Exception as update_exc:
            log.error("summary_mark_failed_error", summary_id=summary_id, error=str(update_exc))


def export_summary(summary_id: str):
    """Write the markdown export; errors reach RQ so its retry policy applies."""
    from tubenotes.services.export import write_summary_markdown

    write_summary_markdown(summary_id)
