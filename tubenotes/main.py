"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tubenotes.api import auth, chat, settings as settings_api, summaries, tags, videos
from tubenotes.config import settings
from tubenotes.db.database import engine
from tubenotes.db.models import Base

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level.upper())
    ),
)
log = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    Base.metadata.create_all(bind=engine)
    log.info("app_started", database=engine.url.get_backend_name())
    yield


app = FastAPI(
    title="TubeNotes",
    description="YouTube video → transcript → multi-pass AI summary",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS — allow all for personal use
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── API routes ───────────────────────────────────────────────────────────────
app.include_router(auth.router)
app.include_router(settings_api.router)
app.include_router(videos.router)
app.include_router(summaries.router)
app.include_router(chat.router)
app.include_router(tags.router)


@app.get("/health")
def health():
    return {"status": "ok"}
