"""Smoke tests for API endpoints."""

import uuid

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from tubenotes.api import summaries as summaries_api
from tubenotes.db.models import Summary
from tubenotes.main import app
from tubenotes.services import summarizer
from tubenotes.workers import tasks

client = TestClient(app)


@pytest.fixture
def key():
    r = client.post("/v1/auth/register", json={
        "username": f"api-{uuid.uuid4().hex[:8]}",
        "password": "testpass123",
    })
    assert r.status_code == 200
    return r.json()["api_key"]


@pytest.fixture
def headers(key):
    return {"X-API-Key": key}


@pytest.fixture
def configured(headers):
    r = client.put("/v1/settings", headers=headers, json={
        "ai_provider": "openai",
        "ai_model": "gpt-test",
        "api_key": "sk-secret-9876",
    })
    assert r.status_code == 200
    return headers


@pytest.fixture
def youtube_id(headers):
    yt = "dQw4w9WgXcQ"
    r = client.post("/v1/videos", headers=headers, json={
        "url": f"https://www.youtube.com/watch?v={yt}",
        "title": "Never Gonna",
        "channel_name": "Rick",
    })
    assert r.status_code == 201
    return yt


class TestHealth:
    def test_health(self):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


class TestAuth:
    def test_register_duplicate(self):
        body = {"username": f"dup-{uuid.uuid4().hex[:8]}", "password": "testpass123"}
        assert client.post("/v1/auth/register", json=body).status_code == 200
        assert client.post("/v1/auth/register", json=body).status_code == 400

    def test_login_wrong_password(self):
        body = {"username": f"pw-{uuid.uuid4().hex[:8]}", "password": "testpass123"}
        client.post("/v1/auth/register", json=body)
        r = client.post("/v1/auth/login", json={**body, "password": "wrongpass"})
        assert r.status_code == 401

    def test_rotate_key(self, key):
        r = client.post("/v1/auth/rotate-key", headers={"X-API-Key": key})
        assert r.status_code == 200
        assert r.json()["api_key"] != key
        assert client.get("/v1/videos", headers={"X-API-Key": key}).status_code == 401

    def test_missing_key(self):
        assert client.get("/v1/videos").status_code == 422

    def test_me_counts_library(self, headers, youtube_id):
        r = client.get("/v1/auth/me", headers=headers)
        assert r.status_code == 200
        assert r.json()["videos"] == 1
        assert r.json()["completed_summaries"] == 0

    def test_duplicate_email(self):
        email = f"{uuid.uuid4().hex[:8]}@example.com"
        first = {"username": f"e1-{uuid.uuid4().hex[:6]}", "password": "testpass123", "email": email}
        second = {**first, "username": f"e2-{uuid.uuid4().hex[:6]}"}
        assert client.post("/v1/auth/register", json=first).status_code == 200
        assert client.post("/v1/auth/register", json=second).status_code == 400


class TestSettings:
    def test_defaults_without_row(self, headers):
        r = client.get("/v1/settings", headers=headers)
        assert r.json()["ai_provider"] == "gemini"
        assert r.json()["has_api_key"] is False

    def test_key_masked_and_echo_ignored(self, configured):
        data = client.get("/v1/settings", headers=configured).json()
        assert data["api_key"] == "••••••9876"

        client.put("/v1/settings", headers=configured, json={
            "ai_provider": "openai-compatible",
            "ai_model": "llama3",
            "api_key": data["api_key"],
            "base_url": "http://localhost:11434/v1",
        })
        data = client.get("/v1/settings", headers=configured).json()
        assert data["api_key"] == "••••••9876"
        assert data["ai_provider"] == "openai-compatible"
        assert data["base_url"] == "http://localhost:11434/v1"

    def test_unknown_provider_rejected(self, headers):
        r = client.put("/v1/settings", headers=headers, json={"ai_provider": "bard", "ai_model": "x"})
        assert r.status_code == 422


class TestVideos:
    def test_invalid_url(self, headers):
        r = client.post("/v1/videos", headers=headers, json={"url": "https://example.com/not-youtube"})
        assert r.status_code == 400

    def test_duplicate(self, headers, youtube_id):
        r = client.post("/v1/videos", headers=headers, json={"url": youtube_id, "title": "again"})
        assert r.status_code == 409

    def test_read_state(self, headers, youtube_id):
        r = client.patch(f"/v1/videos/{youtube_id}", headers=headers, json={"is_read": True})
        assert r.json()["is_read"] is True
        assert r.json()["read_at"]

        listed = client.get("/v1/videos?is_read=false", headers=headers).json()["items"]
        assert listed == []

    def test_other_users_video_is_404(self, youtube_id, key):
        other = client.post("/v1/auth/register", json={
            "username": f"other-{uuid.uuid4().hex[:8]}", "password": "testpass123",
        }).json()["api_key"]
        r = client.get(f"/v1/videos/{youtube_id}", headers={"X-API-Key": other})
        assert r.status_code == 404


class TestTags:
    def test_assign_and_duplicate(self, headers, youtube_id):
        tag = client.post("/v1/tags", headers=headers, json={"name": "music"}).json()
        assert client.post("/v1/tags", headers=headers, json={"name": "music"}).status_code == 409

        r = client.post(f"/v1/videos/{youtube_id}/tags", headers=headers, json={"tag_id": tag["id"]})
        assert r.status_code == 201
        r = client.post(f"/v1/videos/{youtube_id}/tags", headers=headers, json={"tag_id": tag["id"]})
        assert r.status_code == 409

        video = client.get(f"/v1/videos/{youtube_id}", headers=headers).json()
        assert [t["name"] for t in video["tags"]] == ["music"]

        client.delete(f"/v1/videos/{youtube_id}/tags/{tag['id']}", headers=headers)
        assert client.get(f"/v1/videos/{youtube_id}", headers=headers).json()["tags"] == []


class TestSummaries:
    def test_none_yet(self, headers, youtube_id):
        r = client.get(f"/v1/videos/{youtube_id}/summaries", headers=headers)
        assert r.json() == {"summaries": [], "status": "none"}

    def test_start_requires_api_key(self, headers, youtube_id, monkeypatch):
        monkeypatch.setattr(summaries_api, "enqueue_task", lambda *a, **kw: pytest.fail("enqueued"))
        r = client.post(f"/v1/videos/{youtube_id}/summaries", headers=headers, json={})
        assert r.status_code == 400
        assert "No API key configured" in r.json()["detail"]

    def test_second_start_conflicts_while_processing(self, configured, youtube_id, monkeypatch):
        queued = []
        monkeypatch.setattr(summaries_api, "enqueue_task", lambda *a, **kw: queued.append(a))

        first = client.post(f"/v1/videos/{youtube_id}/summaries", headers=configured, json={})
        second = client.post(f"/v1/videos/{youtube_id}/summaries", headers=configured, json={})

        assert first.status_code == 200
        assert first.json()["status"] == "processing"
        assert first.json()["provider_model"] == "gpt-test"
        assert second.status_code == 409
        assert len(queued) == 1
        assert queued[0][0] == "tubenotes.workers.tasks.run_summarization"

    def test_queue_down_fails_row_and_allows_retry(self, configured, youtube_id, monkeypatch):
        def redis_down(*args, **kw):
            raise ConnectionError("Error 111 connecting to localhost:6379")

        monkeypatch.setattr(summaries_api, "enqueue_task", redis_down)
        r = client.post(f"/v1/videos/{youtube_id}/summaries", headers=configured, json={})
        assert r.status_code == 503

        listed = client.get(f"/v1/videos/{youtube_id}/summaries", headers=configured).json()["summaries"]
        assert listed[0]["status"] == "failed"
        assert listed[0]["error_message"].startswith("Failed to queue summarization: ")

        monkeypatch.setattr(summaries_api, "enqueue_task", lambda *a, **kw: None)
        assert client.post(f"/v1/videos/{youtube_id}/summaries", headers=configured, json={}).status_code == 200

    def test_translate_while_processing_is_409(self, configured, youtube_id, monkeypatch):
        monkeypatch.setattr(summaries_api, "enqueue_task", lambda *a, **kw: None)
        monkeypatch.setattr(
            "tubenotes.services.translation.generate_text", lambda *a, **kw: pytest.fail("translated")
        )
        summary_id = client.post(
            f"/v1/videos/{youtube_id}/summaries", headers=configured, json={}
        ).json()["summary_id"]

        body = {"summary_id": summary_id, "target_language": "de"}
        r = client.post(f"/v1/videos/{youtube_id}/summaries/translate", headers=configured, json=body)
        assert r.status_code == 409

    def test_full_run_then_translate_and_export(self, configured, youtube_id, monkeypatch, make_result):
        def run_inline(func_path, *args, **kw):
            if func_path.endswith("run_summarization"):
                tasks.run_summarization(*args)

        answers = iter([
            make_result('{"category": "music_arts"}'),
            make_result("# Never Gonna\n\n- Give you up."),
            make_result("# Nie"),
        ])
        monkeypatch.setattr(summaries_api, "enqueue_task", run_inline)
        monkeypatch.setattr(summarizer, "enqueue_task", lambda *a, **kw: None)
        monkeypatch.setattr(summarizer, "fetch_transcript_text", lambda db, yt: "[0:00] never gonna")
        monkeypatch.setattr(summarizer, "generate_text", lambda *a, **kw: next(answers))
        monkeypatch.setattr("tubenotes.services.translation.generate_text", lambda *a, **kw: next(answers))

        r = client.post(f"/v1/videos/{youtube_id}/summaries", headers=configured, json={})
        summary_id = r.json()["summary_id"]

        listed = client.get(f"/v1/videos/{youtube_id}/summaries", headers=configured).json()["summaries"]
        assert listed[0]["id"] == summary_id
        assert listed[0]["status"] == "completed"
        assert listed[0]["category"] == "music_arts"
        assert listed[0]["passes_completed"] == 2

        body = {"summary_id": summary_id, "target_language": "pl"}
        first = client.post(f"/v1/videos/{youtube_id}/summaries/translate", headers=configured, json=body)
        again = client.post(f"/v1/videos/{youtube_id}/summaries/translate", headers=configured, json=body)
        assert first.json() == {"markdown": "# Nie", "cached": False}
        assert again.json() == {"markdown": "# Nie", "cached": True}

        md = client.get(f"/v1/videos/{youtube_id}/summaries/{summary_id}/export.md", headers=configured)
        assert md.status_code == 200
        assert "# Never Gonna" in md.text
        docx = client.get(f"/v1/videos/{youtube_id}/summaries/{summary_id}/export.docx", headers=configured)
        assert docx.content[:2] == b"PK"

        # A new run is admitted once the previous one finished.
        monkeypatch.setattr(summaries_api, "enqueue_task", lambda *a, **kw: None)
        assert client.post(f"/v1/videos/{youtube_id}/summaries", headers=configured, json={}).status_code == 200

    def test_failed_run_export_is_422(self, configured, youtube_id, monkeypatch):
        def run_inline(func_path, *args, **kw):
            tasks.run_summarization(*args)

        def no_transcript(db, yt):
            raise RuntimeError("Transcripts are disabled for this video")

        monkeypatch.setattr(summaries_api, "enqueue_task", run_inline)
        monkeypatch.setattr(summarizer, "fetch_transcript_text", no_transcript)

        summary_id = client.post(
            f"/v1/videos/{youtube_id}/summaries", headers=configured, json={}
        ).json()["summary_id"]

        listed = client.get(f"/v1/videos/{youtube_id}/summaries", headers=configured).json()["summaries"]
        assert listed[0]["status"] == "failed"
        assert listed[0]["error_message"].startswith("Failed to fetch transcript: ")

        r = client.get(f"/v1/videos/{youtube_id}/summaries/{summary_id}/export.pdf", headers=configured)
        assert r.status_code == 422

    def test_delete(self, configured, youtube_id, db):
        from tubenotes.db.models import Video

        video = db.query(Video).filter(Video.youtube_id == youtube_id).first()
        s = Summary(video_id=video.id, status="completed", markdown="x")
        db.add(s)
        db.commit()

        r = client.delete(f"/v1/videos/{youtube_id}/summaries/{s.id}", headers=configured)
        assert r.status_code == 200
        db.expire_all()
        assert db.get(Summary, s.id) is None


class TestChat:
    def test_suggestions_when_empty(self, headers, youtube_id):
        r = client.get(f"/v1/videos/{youtube_id}/chat", headers=headers)
        assert r.json()["messages"] == []
        assert len(r.json()["suggestions"]) == 3

    def test_gateway_failure_is_502_and_message_kept(self, configured, youtube_id, monkeypatch):
        from tubenotes.services import chat
        from tubenotes.services.provider import ProviderError

        def down(*a, **kw):
            raise ProviderError("backend down")

        monkeypatch.setattr(chat, "generate_text", down)

        r = client.post(f"/v1/videos/{youtube_id}/chat", headers=configured, json={"message": "hi"})
        assert r.status_code == 502

        history = client.get(f"/v1/videos/{youtube_id}/chat", headers=configured).json()
        assert [m["content"] for m in history["messages"]] == ["hi"]
        assert history["suggestions"] == []

    def test_empty_message_rejected(self, headers, youtube_id):
        r = client.post(f"/v1/videos/{youtube_id}/chat", headers=headers, json={"message": ""})
        assert r.status_code == 422


class TestRateLimit:
    def test_limit_sets_retry_after(self):
        from fastapi import FastAPI

        from tubenotes.api.rate_limit import rate_limit

        limited = FastAPI()
        limiter = rate_limit(2, 60, f"limit-{uuid.uuid4().hex[:6]}")

        @limited.get("/ping", dependencies=[Depends(limiter)])
        def ping():
            return {"ok": True}

        limited_client = TestClient(limited)
        assert limited_client.get("/ping").status_code == 200
        assert limited_client.get("/ping").status_code == 200
        r = limited_client.get("/ping")
        assert r.status_code == 429
        assert int(r.headers["Retry-After"]) >= 1
