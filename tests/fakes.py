"""
tests/fakes.py — Shared test doubles

ScriptedLLM replays a fixed list of responses (or raises queued errors)
and records every generate() call, so tests can assert on what the
reasoning engine was shown.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

from brain.llm_client import BaseLLMClient
from brain.types import LLMConfig, LLMResponse, Message, Role, ToolCall, ToolSchema

Scripted = Union[LLMResponse, Exception]


class ScriptedLLM(BaseLLMClient):

    def __init__(
        self,
        responses: Optional[list[Scripted]] = None,
        fallback: Optional[Callable[[list[Message], Optional[list[ToolSchema]]], LLMResponse]] = None,
    ):
        super().__init__()
        self._responses = list(responses or [])
        self._fallback = fallback
        self.calls: list[dict[str, Any]] = []

    def queue(self, *responses: Scripted) -> None:
        self._responses.extend(responses)

    async def generate(
        self,
        messages: list[Message],
        config: LLMConfig,
        tools: Optional[list[ToolSchema]] = None,
    ) -> LLMResponse:
        self.calls.append({"messages": list(messages), "config": config, "tools": tools})
        if self._responses:
            item = self._responses.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        if self._fallback is not None:
            return self._fallback(messages, tools)
        raise AssertionError("ScriptedLLM has no response left")

    @property
    def call_count(self) -> int:
        return len(self.calls)


def reply(text: str) -> LLMResponse:
    return LLMResponse(content=text, model="scripted")


def tool_turn(*calls: ToolCall, text: str = "") -> LLMResponse:
    return LLMResponse(content=text or None, tool_calls=list(calls), model="scripted")


def call(name: str, arguments: Optional[dict[str, Any]] = None, call_id: str = "call_1") -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=arguments or {})


def govmap(call_id: str = "call_map", *commands: dict[str, Any], explanation: str = "") -> ToolCall:
    if not commands:
        commands = ({"fn": "zoomToXY", "args": {"x": 180000, "y": 660000, "level": 8}},)
    args: dict[str, Any] = {"commands": list(commands)}
    if explanation:
        args["explanation"] = explanation
    return ToolCall(id=call_id, name="govmap_call", arguments=args)


def llm_config() -> LLMConfig:
    return LLMConfig(model="test-model")


def assert_paired(messages: list[Message]) -> None:
    """Every tool message answers the closest preceding tool-requesting assistant."""
    open_ids: set[str] = set()
    for msg in messages:
        if msg.role == Role.TOOL:
            assert msg.tool_call_id in open_ids, f"orphan tool message {msg.tool_call_id}"
            open_ids.discard(msg.tool_call_id)
        else:
            assert not open_ids, f"unanswered tool calls {open_ids}"
            if msg.requests_tools:
                open_ids = set(msg.requested_ids)
    assert not open_ids
