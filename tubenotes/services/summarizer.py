"""Multi-pass summarization pipeline.

One run owns one Summary row and moves it from `processing` to `completed`
or `failed`:

    transcript → pass 1 (structure + category) → pass 2 (deep summary)
    → pass 3 (translation, only for a non-default language) → footer → export

Transcript, pass 1 and pass 2 failures are fatal and recorded on the row with
a labelled message. Translation failure falls back to the pass 2 markdown with
a visible note. Export runs as a separate best-effort job.
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog

from tubenotes.config import settings
from tubenotes.db.database import SessionLocal
from tubenotes.db.models import Summary
from tubenotes.queue import enqueue_task
from tubenotes.services.prompts import (
    CATEGORIES,
    DEFAULT_CATEGORY,
    category_detection_prompt,
    deep_summary_prompt,
    language_name,
    structural_analysis_prompt,
    translation_prompt,
)
from tubenotes.services.provider import AISettings, Usage, generate_text, load_ai_settings
from tubenotes.services.transcript import fetch_transcript_text

log = structlog.get_logger()

TRUNCATION_MARKER = "\n\n[Transcript truncated...]"
EXPORT_TASK = "tubenotes.workers.tasks.export_summary"


class PipelineError(RuntimeError):
    """A fatal pipeline step failed; the message carries the step label."""


class RunAbandonedError(PipelineError):
    """The row left `processing` while this run was still working on it."""


@dataclass
class SummarizationResult:
    markdown: str
    category: str
    structural_analysis: str
    provider_model: str
    passes_completed: int
    usage: Usage


# ── Persistence ──────────────────────────────────────────────────────────────


def update_summary(summary_id: str, **fields) -> bool:
    """Write fields to a row still in `processing`; every write refreshes the heartbeat.

    Returns False and leaves the row alone once it is gone or terminal, so a
    reaped row keeps its timeout message.
    """
    db = SessionLocal()
    try:
        updated = (
            db.query(Summary)
            .filter(Summary.id == summary_id, Summary.status == "processing")
            .update({**fields, "updated_at": datetime.now(timezone.utc)}, synchronize_session=False)
        )
        db.commit()
    finally:
        db.close()
    if not updated:
        log.warning("summary_not_processing_on_update", summary_id=summary_id)
    return bool(updated)


def _save(summary_id: str, **fields) -> None:
    if not update_summary(summary_id, **fields):
        raise RunAbandonedError(f"Summary {summary_id} is no longer processing")


def _fail(summary_id: str, message: str) -> PipelineError:
    log.error("summary_pass_failed", summary_id=summary_id, error=message)
    update_summary(summary_id, status="failed", error_message=message)
    return PipelineError(message)


# ── Helpers ──────────────────────────────────────────────────────────────────


def truncate_transcript(transcript: str, limit: Optional[int] = None) -> str:
    limit = limit or settings.max_transcript_chars
    if len(transcript) <= limit:
        return transcript
    return transcript[:limit] + TRUNCATION_MARKER


def _parse_json_object(raw: str) -> Optional[dict]:
    """Parse a JSON object from model output, tolerating code fences and chatter."""
    candidates = [raw]
    m = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", raw, re.DOTALL)
    if m:
        candidates.append(m.group(1))
    m = re.search(r"\{.*\}", raw, re.DOTALL)
    if m:
        candidates.append(m.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, TypeError):
            continue
        if isinstance(parsed, dict):
            return parsed
    return None


def normalize_category(raw) -> str:
    if not isinstance(raw, str):
        return DEFAULT_CATEGORY
    value = raw.strip().strip("`'\".* ").lower().replace("-", "_").replace(" ", "_")
    return value if value in CATEGORIES else DEFAULT_CATEGORY


def _detect_category(transcript: str, ai_settings: AISettings, usage: Usage) -> str:
    sample = transcript[: settings.category_sample_chars]
    try:
        result = generate_text(category_detection_prompt(sample), ai_settings)
    except Exception as exc:
        log.warning("category_detection_failed", error=str(exc))
        return DEFAULT_CATEGORY
    usage.add(result.usage)
    return normalize_category(result.text)


def usage_footer(usage: Usage, duration_seconds: int) -> str:
    return (
        "\n\n---\n"
        f"*AI Usage: [Input: {usage.input_tokens} | Output: {usage.output_tokens} | "
        f"Total: {usage.total_tokens} tokens | Duration: {duration_seconds}s]*"
    )


def translation_failed_note(target_language: str) -> str:
    return (
        f"\n\n> **Note:** Translation to {language_name(target_language)} failed. "
        "Showing the original summary."
    )


def _trigger_export(summary_id: str) -> None:
    try:
        enqueue_task(EXPORT_TASK, summary_id, max_retries=settings.export_max_retries)
    except Exception as exc:
        log.warning("summary_export_enqueue_failed", summary_id=summary_id, error=str(exc))


# ── Pipeline ─────────────────────────────────────────────────────────────────


def run_summarization_pipeline(
    summary_id: str,
    youtube_id: str,
    user_id: str,
    target_language: Optional[str] = None,
) -> SummarizationResult:
    target_language = target_language or settings.default_language
    started = time.monotonic()
    usage = Usage()

    db = SessionLocal()
    try:
        ai_settings = load_ai_settings(db, user_id)

        # 0. Transcript
        try:
            transcript = fetch_transcript_text(db, youtube_id)
        except Exception as exc:
            raise _fail(summary_id, f"Failed to fetch transcript: {exc}") from exc
    finally:
        db.close()

    transcript = truncate_transcript(transcript)
    _save(summary_id, transcript=transcript)
    log.info("summary_transcript_ready", summary_id=summary_id, chars=len(transcript))

    # 1. Structural analysis + category
    try:
        result = generate_text(structural_analysis_prompt(transcript), ai_settings)
        structural_analysis = result.text
        usage.add(result.usage)

        parsed = _parse_json_object(structural_analysis)
        if parsed is not None:
            category = normalize_category(parsed.get("category"))
        else:
            log.info("structural_analysis_not_json", summary_id=summary_id)
            category = _detect_category(transcript, ai_settings, usage)

        _save(
            summary_id,
            structural_analysis=structural_analysis,
            category=category,
            passes_completed=1,
            provider=ai_settings.provider,
            provider_model=ai_settings.model,
        )
    except RunAbandonedError:
        raise
    except Exception as exc:
        raise _fail(summary_id, f"Pass 1 failed: {exc}") from exc
    log.info("summary_pass1_done", summary_id=summary_id, category=category)

    # 2. Deep summary
    try:
        result = generate_text(deep_summary_prompt(transcript, structural_analysis, category), ai_settings)
        deep_summary = result.text
        usage.add(result.usage)
        _save(summary_id, markdown=deep_summary, passes_completed=2)
    except RunAbandonedError:
        raise
    except Exception as exc:
        raise _fail(summary_id, f"Pass 2 failed: {exc}") from exc
    log.info("summary_pass2_done", summary_id=summary_id, chars=len(deep_summary))

    # 3. Translation (optional, non-fatal)
    final_markdown = deep_summary
    passes = 2
    if target_language != settings.default_language:
        passes = 3
        try:
            result = generate_text(translation_prompt(deep_summary, target_language), ai_settings)
            final_markdown = result.text
            usage.add(result.usage)
            log.info("summary_pass3_done", summary_id=summary_id, language=target_language)
        except Exception as exc:
            log.warning("summary_translation_failed", summary_id=summary_id, language=target_language, error=str(exc))
            final_markdown += translation_failed_note(target_language)

    # 4. Finalize
    final_markdown += usage_footer(usage, round(time.monotonic() - started))
    _save(
        summary_id,
        markdown=final_markdown,
        passes_completed=passes,
        status="completed",
        input_tokens=usage.input_tokens,
        output_tokens=usage.output_tokens,
        total_tokens=usage.total_tokens,
        target_language=target_language,
    )
    log.info("summary_completed", summary_id=summary_id, passes=passes, total_tokens=usage.total_tokens)

    _trigger_export(summary_id)

    return SummarizationResult(
        markdown=final_markdown,
        category=category,
        structural_analysis=structural_analysis,
        provider_model=ai_settings.model,
        passes_completed=passes,
        usage=usage,
    )
