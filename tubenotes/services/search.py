"""Web search tools exposed to function-calling models.

Google results come from Serper.dev, with the legacy Google Custom Search API
as a fallback when only that key is configured. Wikipedia uses the public
MediaWiki API. Every function returns text for the model, including on error.
"""

from __future__ import annotations

import re

import httpx
import structlog

from tubenotes.config import settings

log = structlog.get_logger()

SERPER_API_URL = "https://google.serper.dev/search"
GOOGLE_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"
WIKIPEDIA_API_URL = "https://en.wikipedia.org/w/api.php"


def _format_results(items: list[dict]) -> str:
    return "\n---\n".join(
        f"Title: {item.get('title')}\nLink: {item.get('link')}\nSnippet: {item.get('snippet')}\n"
        for item in items[:5]
    )


def search_google(query: str) -> str:
    api_key = settings.serper_api_key
    if not api_key and settings.google_search_api_key:
        return _search_google_legacy(query)
    if not api_key:
        log.warning("search_google_not_configured")
        return "Error: Serper Search is not configured. Please set SERPER_API_KEY."

    try:
        with httpx.Client(timeout=settings.search_timeout_seconds) as client:
            resp = client.post(
                SERPER_API_URL,
                headers={"X-API-KEY": api_key, "Content-Type": "application/json"},
                json={"q": query},
            )
        if resp.status_code != 200:
            log.warning("search_google_http_error", status=resp.status_code, body=resp.text[:300])
            return f"Error performing Search: HTTP {resp.status_code}"

        data = resp.json()
        organic = data.get("organic") or []
        if not organic:
            return "No search results found."

        extra = ""
        answer_box = data.get("answerBox")
        if answer_box:
            extra += f"Answer: {answer_box.get('answer') or answer_box.get('snippet')}\n\n"
        graph = data.get("knowledgeGraph")
        if graph:
            extra += f"Knowledge Graph: {graph.get('title')} - {graph.get('description')}\n\n"

        return f'Search Results for "{query}":\n\n{extra}{_format_results(organic)}'
    except (httpx.HTTPError, ValueError) as exc:
        log.warning("search_google_failed", error=str(exc))
        return "An error occurred while performing search."


def _search_google_legacy(query: str) -> str:
    if not settings.google_search_api_key or not settings.google_search_cx:
        return "Error: configured legacy search key missing."

    try:
        with httpx.Client(timeout=settings.search_timeout_seconds) as client:
            resp = client.get(
                GOOGLE_SEARCH_URL,
                params={
                    "key": settings.google_search_api_key,
                    "cx": settings.google_search_cx,
                    "q": query,
                },
            )
        if resp.status_code != 200:
            log.warning("search_google_legacy_http_error", status=resp.status_code)
            return f"Error performing Google Search: HTTP {resp.status_code}"

        items = resp.json().get("items") or []
        if not items:
            return "No Google Search results found."
        return f'Google Search Results for "{query}":\n\n{_format_results(items)}'
    except (httpx.HTTPError, ValueError) as exc:
        log.warning("search_google_legacy_failed", error=str(exc))
        return "An error occurred while performing Google Search."


def search_wikipedia(query: str) -> str:
    try:
        with httpx.Client(timeout=settings.search_timeout_seconds) as client:
            resp = client.get(
                WIKIPEDIA_API_URL,
                params={"action": "query", "list": "search", "srsearch": query, "format": "json"},
            )
            if resp.status_code != 200:
                return f"Error searching Wikipedia: HTTP {resp.status_code}"

            results = (resp.json().get("query") or {}).get("search") or []
            if not results:
                return "No Wikipedia articles found."
            top = results[:3]

            extracts = client.get(
                WIKIPEDIA_API_URL,
                params={
                    "action": "query",
                    "prop": "extracts",
                    "pageids": "|".join(str(r["pageid"]) for r in top),
                    "exintro": "true",
                    "explaintext": "true",
                    "format": "json",
                },
            )

        if extracts.status_code != 200:
            # Search snippets carry <span> highlight markup.
            snippets = "\n\n".join(
                f"Title: {r.get('title')}\nSnippet: {re.sub(r'<[^>]+>', '', r.get('snippet', ''))}"
                for r in top
            )
            return f"Wikipedia Search Results (Snippets):\n{snippets}"

        pages = (extracts.json().get("query") or {}).get("pages") or {}
        body = "\n\n---\n\n".join(
            f"Title: {page.get('title')}\nSummary: {page.get('extract')}\n"
            f"Link: https://en.wikipedia.org/?curid={page.get('pageid')}"
            for page in pages.values()
        )
        return f'Wikipedia Search Results for "{query}":\n\n{body}'
    except (httpx.HTTPError, ValueError, KeyError) as exc:
        log.warning("search_wikipedia_failed", error=str(exc))
        return "An error occurred while searching Wikipedia."
