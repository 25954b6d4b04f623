"""Tool declarations per provider and the dispatcher for function calls."""

from __future__ import annotations

from typing import Callable, Optional

from tubenotes.services import search

# Gemini declares grounding search as a single opaque tool; the backend runs it.
GEMINI_SEARCH_TOOL = {"google_search": {}}


def _function_tool(name: str, description: str, query_hint: str) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": {"query": {"type": "string", "description": query_hint}},
                "required": ["query"],
            },
        },
    }


OPENAI_SEARCH_TOOLS = [
    _function_tool(
        "search_google",
        "Search the web for current information, facts, or recent events. Uses Google Search via Serper.",
        "The search query to use.",
    ),
    _function_tool(
        "search_wikipedia",
        "Search Wikipedia for general knowledge, history, definitions, and summaries of topics.",
        "The search query (topic name) to use.",
    ),
]

TOOL_HANDLERS: dict[str, Callable[[str], str]] = {
    "search_google": lambda query: search.search_google(query),
    "search_wikipedia": lambda query: search.search_wikipedia(query),
}


def get_search_tool(provider: str) -> Optional[list[dict]]:
    """Search tool configuration for `provider`, or None when it has none."""
    if provider == "gemini":
        return [GEMINI_SEARCH_TOOL]
    if provider in ("openai", "openai-compatible"):
        return OPENAI_SEARCH_TOOLS
    return None


def execute_tool(name: str, args: dict) -> str:
    """Run a tool call; failures become text the model can react to."""
    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        return f"Error: Tool {name} not found."
    try:
        return handler(str(args.get("query", "")))
    except Exception as exc:
        return f"Error executing {name}: {exc}"
