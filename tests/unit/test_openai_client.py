"""
tests/unit/test_openai_client.py — OpenAI Translation Tests

Covers:
  - internal messages → chat completion payload (tool calls, tool results)
  - tool schemas → function tools
  - completion → LLMResponse: content parts, tool-call ids, bad JSON args
  - generate(): tools omitted when none given, provider errors normalised
"""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from brain.llm_client import LLMRateLimitError
from brain.openai_client import (
    OpenAIClient,
    from_provider_response,
    normalize_content,
    to_provider_messages,
    to_provider_tools,
)
from brain.types import FinishReason, Message, ToolCall, ToolResult, ToolSchema

from tests.fakes import llm_config


def _completion(content=None, tool_calls=None, finish_reason="stop"):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=11, completion_tokens=7),
        model="gpt-4o-mini",
    )


def _tool_call(call_id, name, arguments):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


class TestToProvider:

    def test_messages(self):
        call = ToolCall(id="c1", name="google_geocode", arguments={"query": "חיפה"})
        payload = to_provider_messages([
            Message.system("sys"),
            Message.user("where is Haifa"),
            Message.assistant(None, tool_calls=[call]),
            Message.tool_response(ToolResult(tool_call_id="c1", content='{"ok": true}')),
        ])
        assert [m["role"] for m in payload] == ["system", "user", "assistant", "tool"]
        assistant = payload[2]
        assert assistant["content"] == ""
        assert assistant["tool_calls"][0]["id"] == "c1"
        assert json.loads(assistant["tool_calls"][0]["function"]["arguments"]) == {"query": "חיפה"}
        assert "חיפה" in assistant["tool_calls"][0]["function"]["arguments"]
        assert payload[3] == {"role": "tool", "tool_call_id": "c1", "content": '{"ok": true}'}

    def test_tools(self):
        schema = ToolSchema(name="web_search", description="search", parameters={"type": "object"})
        assert to_provider_tools([schema]) == [{
            "type": "function",
            "function": {"name": "web_search", "description": "search", "parameters": {"type": "object"}},
        }]


class TestFromProvider:

    def test_plain_text(self):
        result = from_provider_response(_completion("שלום"))
        assert result.content == "שלום"
        assert not result.has_tool_calls
        assert result.finish_reason == FinishReason.STOP
        assert result.usage.input_tokens == 11

    def test_content_parts_flattened(self):
        assert normalize_content([{"type": "text", "text": "a"}, "b", SimpleNamespace(text="c")]) == "abc"
        assert normalize_content(None) == ""

    def test_tool_calls(self):
        result = from_provider_response(_completion(
            tool_calls=[
                _tool_call("call_1", "govmap_call", '{"commands": []}'),
                _tool_call(None, "web_search", "{not json"),
                _tool_call("call_3", "google_geocode", "[1, 2]"),
            ],
            finish_reason="tool_calls",
        ))
        assert result.finish_reason == FinishReason.TOOL_CALLS
        assert [tc.id for tc in result.tool_calls] == ["call_1", "web_search_1", "call_3"]
        assert result.tool_calls[0].arguments == {"commands": []}
        assert result.tool_calls[1].arguments == {}
        assert result.tool_calls[2].arguments == {}


@pytest.mark.asyncio
class TestGenerate:

    def _client(self, create: AsyncMock) -> OpenAIClient:
        sdk = MagicMock()
        sdk.chat.completions.create = create
        return OpenAIClient(api_key="sk-test", client=sdk)

    async def test_no_tools_not_sent(self):
        create = AsyncMock(return_value=_completion("hi"))
        result = await self._client(create).generate([Message.user("hi")], llm_config())
        assert result.text == "hi"
        kwargs = create.call_args.kwargs
        assert kwargs["tools"] is openai.NOT_GIVEN
        assert kwargs["tool_choice"] is openai.NOT_GIVEN

    async def test_tools_sent(self):
        create = AsyncMock(return_value=_completion("ok"))
        schema = ToolSchema(name="web_search", description="search", parameters={"type": "object"})
        await self._client(create).generate([Message.user("hi")], llm_config(), tools=[schema])
        kwargs = create.call_args.kwargs
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["tools"][0]["function"]["name"] == "web_search"

    async def test_rate_limit_normalised(self):
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        error = openai.RateLimitError(
            "slow down", response=httpx.Response(429, request=request), body=None
        )
        client = self._client(AsyncMock(side_effect=error))
        with pytest.raises(LLMRateLimitError) as exc_info:
            await client.generate([Message.user("hi")], llm_config())
        assert exc_info.value.provider == "openai"
