"""Tests for the model provider gateway: sanitizing, dispatch, tool loop."""

import json
from types import SimpleNamespace

import httpx
import pytest
from openai import OpenAIError

from tubenotes.services import provider
from tubenotes.services.provider import (
    MAX_TURNS_TEXT,
    AISettings,
    MissingApiKeyError,
    ProviderError,
    UnknownProviderError,
    generate_text,
    strip_thinking_tokens,
)
from tubenotes.services.tools import OPENAI_SEARCH_TOOLS, execute_tool, get_search_tool


# ── Fake OpenAI client ───────────────────────────────────────────────────────


def _tool_call(name, arguments, call_id="call_1"):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def _completion(content=None, tool_calls=None, prompt_tokens=5, completion_tokens=3):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content, tool_calls=tool_calls))],
        usage=SimpleNamespace(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
        ),
    )


class FakeOpenAI:
    instances = []

    def __init__(self, script, **kwargs):
        self.kwargs = kwargs
        self.calls = []
        self._script = script
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))
        FakeOpenAI.instances.append(self)

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        step = self._script(len(self.calls))
        if isinstance(step, Exception):
            raise step
        return step


@pytest.fixture
def fake_openai(monkeypatch):
    FakeOpenAI.instances = []

    def install(script):
        monkeypatch.setattr(provider, "OpenAI", lambda **kw: FakeOpenAI(script, **kw))
        return FakeOpenAI.instances

    return install


# ── Sanitizer ────────────────────────────────────────────────────────────────


class TestStripThinkingTokens:
    def test_paired_think_block_removed(self):
        assert strip_thinking_tokens("<think>plan it</think>\n# Title\nBody") == "# Title\nBody"

    def test_unpaired_closing_tag_drops_leading_text(self):
        assert strip_thinking_tokens("I should outline first.</think>\n# Title") == "# Title"

    def test_lone_opening_tag_removed(self):
        out = strip_thinking_tokens("<think># Title\nBody")
        assert "<think>" not in out
        assert out.startswith("# Title")

    def test_reasoning_preamble_before_heading_dropped(self):
        raw = "1. Analyze the transcript\n2. Draft the outline\n\n# Summary\nText"
        assert strip_thinking_tokens(raw) == "# Summary\nText"

    def test_plain_preamble_kept(self):
        raw = "Here is a short intro.\n\n# Summary\nText"
        assert strip_thinking_tokens(raw) == raw

    def test_full_fence_unwrapped(self):
        assert strip_thinking_tokens("```markdown\n# T\nbody\n```") == "# T\nbody"

    def test_half_fence_left_alone(self):
        assert strip_thinking_tokens("```markdown\n# T\nbody") == "```markdown\n# T\nbody"

    def test_fence_opened_inside_dropped_preamble(self):
        raw = "Let me draft the summary:\n```markdown\n# T\nbody\n```"
        assert strip_thinking_tokens(raw) == "# T\nbody"

    def test_none_becomes_empty(self):
        assert strip_thinking_tokens(None) == ""


# ── Dispatch ─────────────────────────────────────────────────────────────────


class TestDispatch:
    def test_missing_api_key_fails_before_network(self, monkeypatch):
        monkeypatch.setattr(provider, "OpenAI", lambda **kw: pytest.fail("client built"))
        with pytest.raises(MissingApiKeyError, match="No API key configured"):
            generate_text("hi", AISettings(provider="openai", model="m"))

    def test_unknown_provider(self):
        with pytest.raises(UnknownProviderError):
            generate_text("hi", AISettings(provider="mystery", model="m", api_key="k"))

    def test_base_url_only_for_compatible(self, fake_openai):
        instances = fake_openai(lambda n: _completion("ok"))
        generate_text("hi", AISettings("openai", "m", "k", base_url="http://local:11434/v1"))
        generate_text("hi", AISettings("openai-compatible", "m", "k", base_url="http://local:11434/v1"))
        assert "base_url" not in instances[0].kwargs
        assert instances[1].kwargs["base_url"] == "http://local:11434/v1"

    def test_plain_call_returns_sanitized_text_and_usage(self, fake_openai):
        fake_openai(lambda n: _completion("<think>x</think># Done", prompt_tokens=7, completion_tokens=2))
        res = generate_text("hi", AISettings("openai", "m", "k"), system_instruction="Be brief.")
        assert res.text == "# Done"
        assert (res.usage.input_tokens, res.usage.output_tokens, res.usage.total_tokens) == (7, 2, 9)

    def test_system_instruction_sent_first(self, fake_openai):
        instances = fake_openai(lambda n: _completion("ok"))
        generate_text("hi", AISettings("openai", "m", "k"), system_instruction="Be brief.")
        messages = instances[0].calls[0]["messages"]
        assert messages[0] == {"role": "system", "content": "Be brief."}
        assert messages[1] == {"role": "user", "content": "hi"}

    def test_sdk_error_wrapped(self, fake_openai):
        fake_openai(lambda n: OpenAIError("rate limited"))
        with pytest.raises(ProviderError, match="rate limited"):
            generate_text("hi", AISettings("openai", "m", "k"))


# ── Tool loop ────────────────────────────────────────────────────────────────


class TestToolLoop:
    def test_tool_result_fed_back_and_usage_summed(self, fake_openai, monkeypatch):
        monkeypatch.setattr("tubenotes.services.search.search_wikipedia", lambda q: f"wiki: {q}")

        def script(n):
            if n == 1:
                return _completion(tool_calls=[_tool_call("search_wikipedia", json.dumps({"query": "Rust"}))])
            return _completion("Rust is a language.")

        instances = fake_openai(script)
        res = generate_text("what is rust", AISettings("openai", "m", "k"), tools=OPENAI_SEARCH_TOOLS)

        assert res.text == "Rust is a language."
        assert (res.usage.input_tokens, res.usage.output_tokens, res.usage.total_tokens) == (10, 6, 16)

        messages = instances[0].calls[-1]["messages"]
        assistant = next(m for m in messages if m["role"] == "assistant")
        assert assistant["tool_calls"][0]["function"]["name"] == "search_wikipedia"
        tool_msg = next(m for m in messages if m["role"] == "tool")
        assert tool_msg == {"role": "tool", "tool_call_id": "call_1", "content": "wiki: Rust"}

    def test_turn_limit(self, fake_openai, monkeypatch):
        monkeypatch.setattr("tubenotes.services.search.search_google", lambda q: "result")
        instances = fake_openai(
            lambda n: _completion(tool_calls=[_tool_call("search_google", '{"query": "loop"}', f"c{n}")])
        )
        res = generate_text("q", AISettings("openai", "m", "k"), tools=OPENAI_SEARCH_TOOLS)
        assert res.text == MAX_TURNS_TEXT
        assert len(instances[0].calls) == 5
        assert res.usage.total_tokens == 40

    def test_unknown_tool_reported_to_model(self, fake_openai):
        def script(n):
            if n == 1:
                return _completion(tool_calls=[_tool_call("delete_everything", "{}")])
            return _completion("fine")

        instances = fake_openai(script)
        generate_text("q", AISettings("openai", "m", "k"), tools=OPENAI_SEARCH_TOOLS)
        tool_msg = next(m for m in instances[0].calls[-1]["messages"] if m["role"] == "tool")
        assert tool_msg["content"] == "Error: Tool delete_everything not found."

    def test_malformed_arguments_fail(self, fake_openai):
        fake_openai(lambda n: _completion(tool_calls=[_tool_call("search_google", "{not json")]))
        with pytest.raises(ProviderError, match="Malformed arguments"):
            generate_text("q", AISettings("openai", "m", "k"), tools=OPENAI_SEARCH_TOOLS)


class TestTools:
    def test_unknown_tool(self):
        assert execute_tool("nope", {}) == "Error: Tool nope not found."

    def test_handler_exception_becomes_text(self, monkeypatch):
        def boom(q):
            raise RuntimeError("boom")

        monkeypatch.setattr("tubenotes.services.search.search_google", boom)
        assert execute_tool("search_google", {"query": "x"}) == "Error executing search_google: boom"

    def test_search_tool_per_provider(self):
        assert get_search_tool("gemini") == [{"google_search": {}}]
        assert get_search_tool("openai-compatible") is OPENAI_SEARCH_TOOLS
        assert get_search_tool("other") is None


# ── Gemini ───────────────────────────────────────────────────────────────────


class TestGemini:
    def test_generate_content_request_and_usage(self, monkeypatch):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [
                    {"text": "thinking...", "thought": True},
                    {"text": "# Answer"},
                ]}}],
                "usageMetadata": {"promptTokenCount": 11, "candidatesTokenCount": 4, "totalTokenCount": 15},
            })

        real_client = httpx.Client
        monkeypatch.setattr(
            httpx, "Client", lambda **kw: real_client(transport=httpx.MockTransport(handler), **kw)
        )

        res = generate_text(
            "hello",
            AISettings("gemini", "gemini-2.0-flash", "g-key"),
            system_instruction="sys",
            tools=get_search_tool("gemini"),
        )

        assert res.text == "# Answer"
        assert res.usage.total_tokens == 15
        assert "models/gemini-2.0-flash:generateContent" in seen["url"]
        assert "key=g-key" in seen["url"]
        assert seen["body"]["systemInstruction"] == {"parts": [{"text": "sys"}]}
        assert seen["body"]["tools"] == [{"google_search": {}}]

    def test_http_error_wrapped(self, monkeypatch):
        real_client = httpx.Client
        transport = httpx.MockTransport(lambda req: httpx.Response(429, text="quota"))
        monkeypatch.setattr(httpx, "Client", lambda **kw: real_client(transport=transport, **kw))

        with pytest.raises(ProviderError, match="429"):
            generate_text("hello", AISettings("gemini", "gemini-2.0-flash", "g-key"))
