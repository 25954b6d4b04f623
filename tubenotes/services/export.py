"""Summary export: markdown file with frontmatter, plus md/docx/pdf downloads."""

from __future__ import annotations

import io
import os
import re
import textwrap
from datetime import datetime, timezone

import structlog
from docx import Document
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from tubenotes.config import settings
from tubenotes.db.database import SessionLocal
from tubenotes.db.models import Summary
from tubenotes.services.youtube import watch_url

log = structlog.get_logger()

_UNSAFE = re.compile(r"[^a-z0-9À-ɏḀ-ỿ\s_-]", re.IGNORECASE)


def sanitize_filename(name: str) -> str:
    return re.sub(r"\s+", " ", _UNSAFE.sub("", name or "")).strip()


def _date(value) -> str:
    return value.strftime("%Y-%m-%d") if value else ""


def render_frontmatter(summary: Summary) -> str:
    video = summary.video
    tags = ", ".join(f'"{vt.tag.name}"' for vt in video.video_tags)
    return "\n".join([
        "---",
        f"tags: [{tags}]",
        f"video_url: {watch_url(video.youtube_id)}",
        f'channel: "{video.channel_name or ""}"',
        f'playlist: "{video.playlist_title or "Uncategorized"}"',
        f'model: "{summary.provider_model or "unknown"}"',
        f"created_at: {_date(datetime.now(timezone.utc))}",
        f'video_published: "{_date(video.published_at)}"',
        f'duration: "{video.duration or ""}"',
        "rating: ",
        "status: ",
        "---",
        "",
        "",
    ])


def export_path(summary: Summary) -> str:
    """data_dir/{user}/{playlist}/{channel} - {title}/{channel} - {title} - {model}[.{lang}].md"""
    video = summary.video
    user = video.user
    user_folder = sanitize_filename(user.email) if user.email else user.id
    playlist_folder = sanitize_filename(video.playlist_title or "Uncategorized") or "Uncategorized"
    channel = sanitize_filename(video.channel_name or "") or "Unknown Channel"
    title = sanitize_filename(video.title) or video.youtube_id

    file_name = f"{channel} - {title} - {summary.provider_model or 'ai'}"
    if summary.target_language and summary.target_language != settings.default_language:
        file_name += f".{summary.target_language}"
    file_name += ".md"

    return os.path.join(settings.data_dir, user_folder, playlist_folder, f"{channel} - {title}", file_name)


def write_summary_markdown(summary_id: str) -> str | None:
    """Write the summary to disk and return the path; None when there is nothing to write.

    Filesystem errors propagate so the export job can be retried.
    """
    db = SessionLocal()
    try:
        summary = db.query(Summary).filter(Summary.id == summary_id).first()
        if not summary or not summary.markdown:
            log.warning("export_summary_missing", summary_id=summary_id)
            return None

        path = export_path(summary)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(render_frontmatter(summary) + summary.markdown)
        log.info("export_summary_done", summary_id=summary_id, path=path)
        return path
    finally:
        db.close()


# ── Downloads ────────────────────────────────────────────────────────────────


def summary_to_markdown(summary: Summary) -> str:
    return render_frontmatter(summary) + (summary.markdown or "") + "\n"


def _blocks(markdown: str) -> list[tuple[str, str]]:
    """Split markdown into (kind, text) where kind is h1/h2/h3/bullet/text."""
    blocks = []
    for line in (markdown or "").splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        m = re.match(r"^(#{1,3})\s+(.*)$", stripped)
        if m:
            blocks.append((f"h{len(m.group(1))}", m.group(2)))
        elif stripped.startswith(("- ", "* ")):
            blocks.append(("bullet", stripped[2:]))
        else:
            blocks.append(("text", stripped))
    return blocks


def summary_to_docx_bytes(summary: Summary) -> bytes:
    doc = Document()
    doc.add_heading(summary.video.title or "Summary", level=0)
    for kind, text in _blocks(summary.markdown):
        if kind.startswith("h"):
            doc.add_heading(text, level=int(kind[1]))
        elif kind == "bullet":
            doc.add_paragraph(text, style="List Bullet")
        else:
            doc.add_paragraph(text)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


def summary_to_pdf_bytes(summary: Summary) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    width, height = A4
    x = 40
    y = height - 40

    def write_line(text: str, bold: bool = False):
        nonlocal y
        if y < 50:
            c.showPage()
            y = height - 40
        c.setFont("Helvetica-Bold" if bold else "Helvetica", 10)
        c.drawString(x, y, text[:140])
        y -= 14

    write_line(summary.video.title or "Summary", bold=True)
    write_line("")
    for kind, text in _blocks(summary.markdown):
        prefix = "- " if kind == "bullet" else ""
        for chunk in textwrap.wrap(prefix + text, width=120) or [""]:
            write_line(chunk, bold=kind.startswith("h"))

    c.save()
    return buf.getvalue()
