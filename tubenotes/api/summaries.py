"""Summary endpoints: start, poll, delete, translate, export."""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from tubenotes.api.deps import get_current_user, get_owned_video
from tubenotes.api.rate_limit import rate_limit
from tubenotes.config import settings
from tubenotes.db.database import get_db
from tubenotes.db.models import Summary, User, Video
from tubenotes.queue import enqueue_task
from tubenotes.services import export as export_svc
from tubenotes.services.admission import AlreadyProcessingError, admit_summary
from tubenotes.services.provider import MissingApiKeyError, ProviderError, load_ai_settings
from tubenotes.services.translation import (
    EmptySummaryError,
    NotOwnerError,
    SummaryNotFoundError,
    SummaryNotReadyError,
    translate_summary,
)

router = APIRouter(prefix="/v1/videos/{youtube_id}/summaries", tags=["summaries"])
submit_limiter = rate_limit(settings.summary_submit_rate_limit_per_minute, 60, "summarize")
log = structlog.get_logger()

SUMMARIZE_TASK = "tubenotes.workers.tasks.run_summarization"


class StartRequest(BaseModel):
    target_language: Optional[str] = Field(None, min_length=2, max_length=16)


class TranslateRequest(BaseModel):
    summary_id: str
    target_language: str = Field(..., min_length=2, max_length=16)


def _iso(value):
    return value.isoformat() if value else None


def _serialize(s: Summary) -> dict:
    return {
        "id": s.id,
        "status": s.status,
        "markdown": s.markdown,
        "category": s.category,
        "provider": s.provider,
        "provider_model": s.provider_model,
        "target_language": s.target_language,
        "passes_completed": s.passes_completed,
        "error_message": s.error_message,
        "translations": s.translations or {},
        "input_tokens": s.input_tokens,
        "output_tokens": s.output_tokens,
        "total_tokens": s.total_tokens,
        "created_at": _iso(s.created_at),
        "updated_at": _iso(s.updated_at),
    }


def _get_summary(db: Session, video: Video, summary_id: str) -> Summary:
    summary = (
        db.query(Summary)
        .filter(Summary.id == summary_id, Summary.video_id == video.id)
        .first()
    )
    if not summary:
        raise HTTPException(404, "Summary not found")
    return summary


def _completed_summary(db: Session, video: Video, summary_id: str) -> Summary:
    summary = _get_summary(db, video, summary_id)
    if summary.status == "failed":
        raise HTTPException(422, detail=summary.error_message or "Summarization failed")
    if summary.status != "completed":
        raise HTTPException(409, "Summary not completed yet")
    return summary


@router.get("")
def list_summaries(
    video: Video = Depends(get_owned_video),
    db: Session = Depends(get_db),
):
    rows = (
        db.query(Summary)
        .filter(Summary.video_id == video.id)
        .order_by(Summary.created_at.desc())
        .all()
    )
    if not rows:
        return {"summaries": [], "status": "none"}
    return {"summaries": [_serialize(s) for s in rows]}


@router.post("")
def start_summary(
    body: Optional[StartRequest] = None,
    _: None = Depends(submit_limiter),
    video: Video = Depends(get_owned_video),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    target_language = (body.target_language if body else None) or settings.default_language
    ai_settings = load_ai_settings(db, user.id)
    if not ai_settings.api_key:
        raise HTTPException(400, str(MissingApiKeyError()))

    try:
        summary = admit_summary(db, video, ai_settings, target_language)
    except AlreadyProcessingError as exc:
        raise HTTPException(409, "Already processing") from exc

    try:
        enqueue_task(SUMMARIZE_TASK, summary.id, video.youtube_id, user.id, target_language)
    except Exception as exc:
        # No job will ever pick the row up; release the video for a retry.
        log.error("summary_enqueue_failed", summary_id=summary.id, error=str(exc))
        summary.status = "failed"
        summary.error_message = f"Failed to queue summarization: {exc}"
        db.commit()
        raise HTTPException(503, "Summarization queue unavailable") from exc

    return {
        "status": "processing",
        "summary_id": summary.id,
        "provider": summary.provider,
        "provider_model": summary.provider_model,
        "message": "Summarization started",
    }


@router.delete("/{summary_id}")
def delete_summary(
    summary_id: str,
    video: Video = Depends(get_owned_video),
    db: Session = Depends(get_db),
):
    summary = _get_summary(db, video, summary_id)
    db.delete(summary)
    db.commit()
    log.info("summary_deleted", summary_id=summary_id, video_id=video.id)
    return {"message": "Summary deleted"}


@router.post("/translate")
def translate(
    body: TranslateRequest,
    video: Video = Depends(get_owned_video),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    try:
        markdown, cached = translate_summary(
            db, body.summary_id, user.id, body.target_language, load_ai_settings(db, user.id)
        )
    except SummaryNotFoundError as exc:
        raise HTTPException(404, str(exc)) from exc
    except NotOwnerError as exc:
        raise HTTPException(403, str(exc)) from exc
    except SummaryNotReadyError as exc:
        raise HTTPException(409, str(exc)) from exc
    except EmptySummaryError as exc:
        raise HTTPException(400, str(exc)) from exc
    except MissingApiKeyError as exc:
        raise HTTPException(400, str(exc)) from exc
    except ProviderError as exc:
        log.error("summary_translate_failed", summary_id=body.summary_id, error=str(exc))
        raise HTTPException(502, detail={"error": "Translation failed", "details": str(exc)}) from exc

    return {"markdown": markdown, "cached": cached}


@router.get("/{summary_id}/export.md", response_class=PlainTextResponse)
def export_markdown(
    summary_id: str,
    video: Video = Depends(get_owned_video),
    db: Session = Depends(get_db),
):
    summary = _completed_summary(db, video, summary_id)
    return PlainTextResponse(
        content=export_svc.summary_to_markdown(summary),
        media_type="text/markdown; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="summary-{summary.id}.md"'},
    )


@router.get("/{summary_id}/export.docx")
def export_docx(
    summary_id: str,
    video: Video = Depends(get_owned_video),
    db: Session = Depends(get_db),
):
    summary = _completed_summary(db, video, summary_id)
    return Response(
        content=export_svc.summary_to_docx_bytes(summary),
        media_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        headers={"Content-Disposition": f'attachment; filename="summary-{summary.id}.docx"'},
    )


@router.get("/{summary_id}/export.pdf")
def export_pdf(
    summary_id: str,
    video: Video = Depends(get_owned_video),
    db: Session = Depends(get_db),
):
    summary = _completed_summary(db, video, summary_id)
    return Response(
        content=export_svc.summary_to_pdf_bytes(summary),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="summary-{summary.id}.pdf"'},
    )
