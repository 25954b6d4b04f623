"""YouTube helpers: video id parsing and metadata via yt-dlp."""

from __future__ import annotations

import json
import re
import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog

from tubenotes.config import settings

log = structlog.get_logger()

_BARE_ID = re.compile(r"^[a-zA-Z0-9_-]{11}$")


def extract_video_id(url: str) -> str:
    """Extract video ID from various YouTube URL formats (or a bare id)."""
    if _BARE_ID.match(url):
        return url
    patterns = [
        r"(?:v=|/v/|youtu\.be/)([a-zA-Z0-9_-]{11})",
        r"(?:embed/)([a-zA-Z0-9_-]{11})",
        r"(?:shorts/)([a-zA-Z0-9_-]{11})",
    ]
    for p in patterns:
        m = re.search(p, url)
        if m:
            return m.group(1)
    raise ValueError(f"Cannot extract video ID from: {url}")


def watch_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


@dataclass
class VideoMeta:
    video_id: str
    title: str = ""
    channel: str = ""
    duration: str = ""
    published_at: Optional[datetime] = None


def format_duration(seconds: int) -> str:
    h, rem = divmod(int(seconds), 3600)
    m, s = divmod(rem, 60)
    return f"{h}:{m:02d}:{s:02d}" if h else f"{m}:{s:02d}"


def get_metadata(video_id: str) -> VideoMeta:
    """Fetch video metadata using yt-dlp (no download). Best effort."""
    cmd = ["yt-dlp", "--dump-json", "--no-download", "--no-warnings"]
    if settings.yt_dlp_cookies_path:
        cmd.extend(["--cookies", settings.yt_dlp_cookies_path])
    cmd.append(watch_url(video_id))

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=30)
        if result.returncode != 0:
            log.warning("yt_dlp_metadata_failed", video_id=video_id, stderr=result.stderr[:500])
            return VideoMeta(video_id=video_id)

        info = json.loads(result.stdout)
        published = None
        if info.get("upload_date"):
            published = datetime.strptime(info["upload_date"], "%Y%m%d").replace(tzinfo=timezone.utc)
        return VideoMeta(
            video_id=video_id,
            title=info.get("title", ""),
            channel=info.get("channel", info.get("uploader", "")),
            duration=format_duration(info.get("duration") or 0) if info.get("duration") else "",
            published_at=published,
        )
    except (OSError, subprocess.TimeoutExpired, ValueError) as exc:
        log.warning("metadata_error", video_id=video_id, error=str(exc))
        return VideoMeta(video_id=video_id)
