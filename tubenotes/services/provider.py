"""Model provider gateway — one text-generation call over Gemini or OpenAI-style backends.

Callers get back `GenerationResult(text, usage)`. The backend, model, API key
and base URL come from the user's stored settings; a missing key is a
precondition failure and never reaches the network.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Optional

import httpx
import structlog
from openai import OpenAI, OpenAIError
from sqlalchemy.orm import Session

from tubenotes.config import settings
from tubenotes.db.models import UserSettings
from tubenotes.services.tools import execute_tool

log = structlog.get_logger()

MAX_TURNS_TEXT = "Error: Maximum tool execution turns reached."
OPENAI_PROVIDERS = ("openai", "openai-compatible")


class ProviderError(RuntimeError):
    """Backend call failed or returned something unusable."""


class MissingApiKeyError(ProviderError):
    def __init__(self):
        super().__init__("No API key configured. Please go to Settings and add your API key.")


class UnknownProviderError(ProviderError):
    def __init__(self, provider: str):
        super().__init__(f"Unknown AI provider: {provider}")


# ── Types ────────────────────────────────────────────────────────────────────


@dataclass
class AISettings:
    provider: str
    model: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def add(self, other: "Usage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.total_tokens += other.total_tokens


@dataclass
class GenerationResult:
    text: str
    usage: Usage = field(default_factory=Usage)


def load_ai_settings(db: Session, user_id: str) -> AISettings:
    """User's AI settings, falling back to the configured defaults."""
    row = db.query(UserSettings).filter(UserSettings.user_id == user_id).first()
    return AISettings(
        provider=(row.ai_provider if row else None) or settings.default_ai_provider,
        model=(row.ai_model if row else None) or settings.default_ai_model,
        api_key=(row.api_key if row else None) or None,
        base_url=(row.base_url if row else None) or None,
    )


# ── Output sanitization ──────────────────────────────────────────────────────

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.IGNORECASE | re.DOTALL)
_THINK_OPEN = re.compile(r"<think>", re.IGNORECASE)
_THINK_CLOSE = re.compile(r"</think>", re.IGNORECASE)
_FIRST_HEADING = re.compile(r"^#{1,6}\s", re.MULTILINE)
_FENCE_OPEN = re.compile(r"^```(?:markdown|md)?[ \t]*\n", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n```\s*$")

_VERBS = r"analy[sz]e|review|draft|construct|refin|self-correct|format|check"
REASONING_MARKERS = [
    re.compile(rf"^\d+\.\s+({_VERBS}|let'?s|generat)", re.IGNORECASE),
    re.compile(rf"^-\s+({_VERBS})", re.IGNORECASE),
    re.compile(rf"^({_VERBS}|let me|i need to|i will|first,|next,|finally,|now,)", re.IGNORECASE),
    re.compile(r"^(input|output|role|goal|action|constraint|result)\s*:", re.IGNORECASE),
]


def _looks_like_reasoning(preamble: str) -> bool:
    return any(
        marker.match(line.strip())
        for line in preamble.strip().splitlines()
        for marker in REASONING_MARKERS
    )


def strip_thinking_tokens(text: str) -> str:
    """Best-effort removal of reasoning leakage from model output.

    1. `<think>...</think>` blocks are removed. A closing tag without an
       opening one drops everything before it; a lone opening tag is removed.
    2. Text before the first markdown heading is dropped only if one of its
       lines matches `REASONING_MARKERS`.
    3. A code fence wrapping the whole output is unwrapped, as is a trailing
       fence left behind once step 2 dropped the preamble holding its opener.
    """
    result = _THINK_BLOCK.sub("", text or "")

    closes = list(_THINK_CLOSE.finditer(result))
    if closes:
        result = result[closes[-1].end():]
    result = _THINK_OPEN.sub("", result)

    preamble_dropped = False
    heading = _FIRST_HEADING.search(result)
    if heading and heading.start() > 0 and _looks_like_reasoning(result[: heading.start()]):
        result = result[heading.start():]
        preamble_dropped = True

    stripped = result.strip()
    if _FENCE_OPEN.match(stripped) and _FENCE_CLOSE.search(stripped):
        stripped = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", stripped, count=1))
    elif preamble_dropped:
        # The opening fence went with the preamble.
        stripped = _FENCE_CLOSE.sub("", stripped)

    return stripped.strip()


# ── Public API ───────────────────────────────────────────────────────────────


def generate_text(
    prompt: str,
    ai_settings: AISettings,
    system_instruction: Optional[str] = None,
    tools: Optional[list[dict]] = None,
) -> GenerationResult:
    """Generate text with the configured backend."""
    if not ai_settings.api_key:
        raise MissingApiKeyError()

    if ai_settings.provider == "gemini":
        return _generate_with_gemini(prompt, ai_settings, system_instruction, tools)
    if ai_settings.provider in OPENAI_PROVIDERS:
        return _generate_with_openai(prompt, ai_settings, system_instruction, tools)
    raise UnknownProviderError(ai_settings.provider)


# ── Gemini ───────────────────────────────────────────────────────────────────


def _generate_with_gemini(
    prompt: str,
    ai_settings: AISettings,
    system_instruction: Optional[str],
    tools: Optional[list[dict]],
) -> GenerationResult:
    url = f"{settings.gemini_api_base.rstrip('/')}/models/{ai_settings.model}:generateContent"
    payload: dict = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
    if system_instruction:
        payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
    if tools:
        payload["tools"] = tools

    try:
        with httpx.Client(timeout=settings.llm_timeout_seconds) as client:
            resp = client.post(url, params={"key": ai_settings.api_key}, json=payload)
            resp.raise_for_status()
            data = resp.json()
    except httpx.HTTPStatusError as exc:
        raise ProviderError(
            f"Gemini API error {exc.response.status_code}: {exc.response.text[:300]}"
        ) from exc
    except (httpx.HTTPError, ValueError) as exc:
        raise ProviderError(f"Gemini request failed: {exc}") from exc

    candidates = data.get("candidates") or []
    if not candidates:
        reason = (data.get("promptFeedback") or {}).get("blockReason", "no candidates")
        raise ProviderError(f"Gemini returned no content ({reason})")

    parts = (candidates[0].get("content") or {}).get("parts") or []
    raw = "".join(p.get("text", "") for p in parts if not p.get("thought"))

    meta = data.get("usageMetadata") or {}
    usage = Usage(
        input_tokens=int(meta.get("promptTokenCount", 0)),
        output_tokens=int(meta.get("candidatesTokenCount", 0)),
        total_tokens=int(meta.get("totalTokenCount", 0)),
    )
    return GenerationResult(text=strip_thinking_tokens(raw), usage=usage)


# ── OpenAI / OpenAI-compatible ───────────────────────────────────────────────


def _openai_client(ai_settings: AISettings) -> OpenAI:
    kwargs = {"api_key": ai_settings.api_key, "timeout": settings.llm_timeout_seconds}
    # Self-hosted endpoints (Ollama, LM Studio, vLLM...) speak the same protocol.
    if ai_settings.provider == "openai-compatible" and ai_settings.base_url:
        kwargs["base_url"] = ai_settings.base_url
    return OpenAI(**kwargs)


def _usage_of(completion) -> Usage:
    u = getattr(completion, "usage", None)
    if u is None:
        return Usage()
    return Usage(
        input_tokens=u.prompt_tokens or 0,
        output_tokens=u.completion_tokens or 0,
        total_tokens=u.total_tokens or 0,
    )


def _generate_with_openai(
    prompt: str,
    ai_settings: AISettings,
    system_instruction: Optional[str],
    tools: Optional[list[dict]],
) -> GenerationResult:
    client = _openai_client(ai_settings)
    messages: list[dict] = []
    if system_instruction:
        messages.append({"role": "system", "content": system_instruction})
    messages.append({"role": "user", "content": prompt})

    try:
        if not tools:
            completion = client.chat.completions.create(model=ai_settings.model, messages=messages)
            message = completion.choices[0].message if completion.choices else None
            return GenerationResult(
                text=strip_thinking_tokens(message.content if message else ""),
                usage=_usage_of(completion),
            )
        return _run_tool_loop(client, ai_settings.model, messages, tools)
    except OpenAIError as exc:
        raise ProviderError(f"{ai_settings.provider} API error: {exc}") from exc


def _run_tool_loop(client: OpenAI, model: str, messages: list[dict], tools: list[dict]) -> GenerationResult:
    """Call the model, run requested tools, feed results back; at most `max_tool_turns` rounds."""
    input_tokens = output_tokens = 0

    for turn in range(settings.max_tool_turns):
        completion = client.chat.completions.create(
            model=model,
            messages=messages,
            tools=tools,
            tool_choice="auto",
        )
        usage = _usage_of(completion)
        input_tokens += usage.input_tokens
        output_tokens += usage.output_tokens

        message = completion.choices[0].message if completion.choices else None
        if message is None or not message.tool_calls:
            return GenerationResult(
                text=strip_thinking_tokens(message.content if message else ""),
                usage=Usage(input_tokens, output_tokens, input_tokens + output_tokens),
            )

        messages.append({
            "role": "assistant",
            "content": message.content,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.function.name, "arguments": call.function.arguments},
                }
                for call in message.tool_calls
            ],
        })

        for call in message.tool_calls:
            name = call.function.name
            try:
                args = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError as exc:
                raise ProviderError(f"Malformed arguments for tool {name}: {exc}") from exc

            output = execute_tool(name, args if isinstance(args, dict) else {})
            log.info("llm_tool_call", turn=turn, tool=name, result_preview=output[:100])
            messages.append({"role": "tool", "tool_call_id": call.id, "content": output})

    log.warning("llm_tool_turns_exhausted", turns=settings.max_tool_turns)
    return GenerationResult(
        text=MAX_TURNS_TEXT,
        usage=Usage(input_tokens, output_tokens, input_tokens + output_tokens),
    )
