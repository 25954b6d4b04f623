"""Tests for the search tools, against a mocked HTTP transport."""

import httpx
import pytest

from tubenotes.services import search


@pytest.fixture
def transport(monkeypatch):
    """Route every httpx.Client in the search module through `handler`."""
    real_client = httpx.Client

    def install(handler):
        monkeypatch.setattr(
            httpx, "Client", lambda **kw: real_client(transport=httpx.MockTransport(handler), **kw)
        )

    return install


def test_google_not_configured(monkeypatch):
    monkeypatch.setattr(search.settings, "serper_api_key", "")
    monkeypatch.setattr(search.settings, "google_search_api_key", "")
    assert search.search_google("x").startswith("Error: Serper Search is not configured")


def test_serper_results(monkeypatch, transport):
    monkeypatch.setattr(search.settings, "serper_api_key", "serper-key")
    seen = {}

    def handler(request):
        seen["key"] = request.headers["X-API-KEY"]
        return httpx.Response(200, json={
            "answerBox": {"answer": "42"},
            "organic": [{"title": "Deep Thought", "link": "https://h2g2.example", "snippet": "the answer"}],
        })

    transport(handler)
    out = search.search_google("meaning of life")

    assert seen["key"] == "serper-key"
    assert out.startswith('Search Results for "meaning of life":')
    assert "Answer: 42" in out
    assert "Title: Deep Thought" in out


def test_serper_http_error(monkeypatch, transport):
    monkeypatch.setattr(search.settings, "serper_api_key", "serper-key")
    transport(lambda request: httpx.Response(403, text="forbidden"))
    assert search.search_google("x") == "Error performing Search: HTTP 403"


def test_legacy_fallback(monkeypatch, transport):
    monkeypatch.setattr(search.settings, "serper_api_key", "")
    monkeypatch.setattr(search.settings, "google_search_api_key", "g-key")
    monkeypatch.setattr(search.settings, "google_search_cx", "cx")
    transport(lambda request: httpx.Response(200, json={"items": [{"title": "T", "link": "L", "snippet": "S"}]}))
    assert search.search_google("q").startswith('Google Search Results for "q":')


def test_wikipedia_extracts(transport):
    def handler(request):
        if request.url.params.get("list") == "search":
            return httpx.Response(200, json={"query": {"search": [{"pageid": 7, "title": "Rust"}]}})
        return httpx.Response(200, json={"query": {"pages": {"7": {"pageid": 7, "title": "Rust", "extract": "A language."}}}})

    transport(handler)
    out = search.search_wikipedia("rust")
    assert "Summary: A language." in out
    assert "curid=7" in out


def test_wikipedia_network_error_is_text(transport):
    def handler(request):
        raise httpx.ConnectError("offline")

    transport(handler)
    assert search.search_wikipedia("rust") == "An error occurred while searching Wikipedia."
