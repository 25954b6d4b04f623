"""In-memory sliding-window rate limits, per API key or client IP."""

from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from threading import Lock
from typing import Callable

from fastapi import HTTPException, Request

_BUCKETS: dict[str, deque[float]] = defaultdict(deque)
_LOCK = Lock()


def _client_key(request: Request) -> str:
    # Authenticated calls are limited per key, anonymous ones per IP.
    api_key = request.headers.get("X-API-Key")
    if api_key:
        return f"key:{api_key[:16]}"
    return f"ip:{(request.client.host if request.client else 'unknown').strip()}"


def rate_limit(limit: int, window_seconds: int, scope: str) -> Callable[[Request], None]:
    """Dependency allowing `limit` calls per `window_seconds` per client within `scope`."""

    def _dep(request: Request) -> None:
        bucket = f"{scope}:{_client_key(request)}"
        now = time.monotonic()

        with _LOCK:
            hits = _BUCKETS[bucket]
            while hits and hits[0] <= now - window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                retry_after = max(1, math.ceil(hits[0] + window_seconds - now))
                raise HTTPException(
                    status_code=429,
                    detail=f"Rate limit exceeded for {scope}. Try again in {retry_after}s.",
                    headers={"Retry-After": str(retry_after)},
                )
            hits.append(now)

    return _dep
