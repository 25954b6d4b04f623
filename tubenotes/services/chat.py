"""Chat about a video, grounded in its latest completed summary."""

from __future__ import annotations

import json
from typing import Optional

import structlog
from sqlalchemy.orm import Session

from tubenotes.config import settings
from tubenotes.db.models import ChatMessage, Summary, Video
from tubenotes.services.prompts import CHAT_SYSTEM_INSTRUCTION, suggested_questions_prompt
from tubenotes.services.provider import AISettings, generate_text
from tubenotes.services.tools import get_search_tool

log = structlog.get_logger()

DEFAULT_SUGGESTIONS = [
    "What is this video about?",
    "What are the key takeaways?",
    "Can you explain the main concepts?",
    "What are the practical applications?",
]


def latest_completed_summary(db: Session, video_id: str) -> Optional[Summary]:
    return (
        db.query(Summary)
        .filter(Summary.video_id == video_id, Summary.status == "completed")
        .order_by(Summary.created_at.desc())
        .first()
    )


def recent_history(db: Session, video_id: str, exclude_id: Optional[str] = None) -> list[ChatMessage]:
    """Most recent `chat_history_limit` messages, oldest first."""
    q = db.query(ChatMessage).filter(ChatMessage.video_id == video_id)
    if exclude_id:
        q = q.filter(ChatMessage.id != exclude_id)
    rows = q.order_by(ChatMessage.created_at.desc()).limit(settings.chat_history_limit).all()
    return list(reversed(rows))


def build_chat_prompt(video: Video, summary: Optional[Summary], history: list[ChatMessage], user_message: str) -> str:
    lines = [f"VIDEO: {json.dumps(video.title, ensure_ascii=False)} by {video.channel_name or 'Unknown'}"]

    if summary and summary.markdown:
        lines += ["", "VIDEO SUMMARY:", summary.markdown]
    if summary and summary.transcript:
        lines += ["", "TRANSCRIPT (partial):", summary.transcript[: settings.chat_transcript_chars]]

    if history:
        lines += ["", "CONVERSATION HISTORY:"]
        for msg in history:
            role = "Human" if msg.role == "user" else "Assistant"
            lines += [f"{role}: {msg.content}", ""]

    lines += ["", f"Human: {user_message}", "", "Provide a helpful response:"]
    return "\n".join(lines)


def post_message(db: Session, video: Video, text: str, ai_settings: AISettings) -> ChatMessage:
    """Store the user's message, ask the model, store and return the reply.

    The user's message stays stored when generation fails.
    """
    user_msg = ChatMessage(video_id=video.id, role="user", content=text)
    db.add(user_msg)
    db.commit()
    db.refresh(user_msg)

    prompt = build_chat_prompt(
        video,
        latest_completed_summary(db, video.id),
        recent_history(db, video.id, exclude_id=user_msg.id),
        text,
    )
    result = generate_text(
        prompt,
        ai_settings,
        system_instruction=CHAT_SYSTEM_INSTRUCTION,
        tools=get_search_tool(ai_settings.provider),
    )

    reply = ChatMessage(video_id=video.id, role="assistant", content=result.text)
    db.add(reply)
    db.commit()
    db.refresh(reply)
    log.info("chat_reply", video_id=video.id, total_tokens=result.usage.total_tokens)
    return reply


def get_suggested_questions(db: Session, video: Video, ai_settings: AISettings) -> list[str]:
    summary = latest_completed_summary(db, video.id)
    if not summary or not summary.markdown:
        return DEFAULT_SUGGESTIONS[:3]

    try:
        result = generate_text(
            suggested_questions_prompt(summary.markdown[: settings.suggestion_summary_chars]),
            ai_settings,
        )
        questions = json.loads(result.text)
        if isinstance(questions, list):
            return [str(q) for q in questions[:4]]
    except Exception as exc:
        log.info("suggested_questions_fallback", video_id=video.id, error=str(exc))

    return list(DEFAULT_SUGGESTIONS)
