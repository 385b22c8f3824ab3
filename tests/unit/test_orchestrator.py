"""
tests/unit/test_orchestrator.py — Orchestration Loop Tests

Covers:
  - DONE on a plain answer (one engine call)
  - server round → results folded → final answer
  - client-deferred invocation → AWAITING_CLIENT right after the round,
    server results of that round included
  - bounded termination: an always-tool engine gets max_rounds + 1 calls,
    the last one without tools
  - LLMError propagates
  - the engine always sees paired call/result messages
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from pydantic import BaseModel

from agent.context_builder import ContextBuilder
from agent.dispatcher import ToolDispatcher
from agent.orchestrator import LoopState, Orchestrator
from agent.session import Session
from brain.llm_client import LLMRateLimitError
from brain.types import Message, Role, ToolResult
from tools.capability_registry import CapabilityRegistry
from tools.map_commands import MapCommandCatalog, register_map_capability

from tests.fakes import ScriptedLLM, assert_paired, call, govmap, llm_config, reply, tool_turn


class LookupArgs(BaseModel):
    query: str


def _registry(handler=None) -> CapabilityRegistry:
    registry = CapabilityRegistry()
    register_map_capability(registry, MapCommandCatalog())
    registry.register(name="lookup", description="Look something up", args_model=LookupArgs)(
        handler or AsyncMock(return_value={"ok": True, "x": 180000, "y": 660000})
    )
    return registry


def _orchestrator(llm, registry=None, max_tool_rounds: int = 3) -> Orchestrator:
    registry = registry or _registry()
    return Orchestrator(
        llm_client=llm,
        llm_config=llm_config(),
        dispatcher=ToolDispatcher(registry),
        context_builder=ContextBuilder(registry),
        max_tool_rounds=max_tool_rounds,
    )


def _session(*messages: Message) -> Session:
    s = Session.create(now=0.0, secret_lifetime_seconds=600)
    s.messages = list(messages)
    return s


@pytest.mark.asyncio
class TestLoopTermination:

    async def test_plain_answer_is_done(self):
        llm = ScriptedLLM([reply("Hello!")])
        outcome = await _orchestrator(llm).run(_session(Message.user("hi")))

        assert outcome.state == LoopState.DONE
        assert outcome.llm_calls == 1
        assert [m.role for m in outcome.new_messages] == [Role.ASSISTANT]
        assert outcome.assistant_text == "Hello!"
        assert outcome.commands == []

    async def test_server_round_then_answer(self):
        handler = AsyncMock(return_value={"ok": True, "answer": 42})
        llm = ScriptedLLM([
            tool_turn(call("lookup", {"query": "q"}, "s1")),
            reply("It is 42."),
        ])
        outcome = await _orchestrator(llm, _registry(handler)).run(_session(Message.user("q?")))

        handler.assert_awaited_once_with(query="q")
        assert outcome.state == LoopState.DONE
        assert [m.role for m in outcome.new_messages] == [Role.ASSISTANT, Role.TOOL, Role.ASSISTANT]
        assert outcome.new_messages[1].tool_call_id == "s1"
        assert outcome.llm_calls == 2
        # second call saw the tool result right after its request
        second_context = llm.calls[1]["messages"]
        assert second_context[-1].role == Role.TOOL
        assert second_context[-2].requests_tools

    async def test_client_call_awaits_client(self):
        llm = ScriptedLLM([tool_turn(govmap("m1"), text="Zooming in")])
        outcome = await _orchestrator(llm).run(_session(Message.user("zoom to Haifa")))

        assert outcome.state == LoopState.AWAITING_CLIENT
        assert outcome.llm_calls == 1
        assert [c.tool_call_id for c in outcome.commands] == ["m1"]
        assert [m.role for m in outcome.new_messages] == [Role.ASSISTANT]
        assert outcome.assistant_text == "Zooming in"

    async def test_mixed_turn_folds_server_results_before_stopping(self):
        llm = ScriptedLLM([tool_turn(call("lookup", {"query": "q"}, "s1"), govmap("m1"))])
        outcome = await _orchestrator(llm).run(_session(Message.user("go")))

        assert outcome.state == LoopState.AWAITING_CLIENT
        assert [m.role for m in outcome.new_messages] == [Role.ASSISTANT, Role.TOOL]
        assert outcome.new_messages[0].requested_ids == ["s1", "m1"]
        assert outcome.new_messages[1].tool_call_id == "s1"

    async def test_always_tool_engine_is_bounded(self):
        counter = {"n": 0}

        def always_tools(messages, tools):
            counter["n"] += 1
            if tools is None:
                return reply("Final answer without tools")
            return tool_turn(call("lookup", {"query": "again"}, f"s{counter['n']}"))

        llm = ScriptedLLM(fallback=always_tools)
        outcome = await _orchestrator(llm, max_tool_rounds=3).run(_session(Message.user("loop")))

        assert outcome.llm_calls == 4
        assert llm.call_count == 4
        assert all(c["tools"] for c in llm.calls[:3])
        assert llm.calls[3]["tools"] is None
        assert outcome.forced_final is True
        assert outcome.state == LoopState.DONE
        assert outcome.assistant_text == "Final answer without tools"
        # 3 × (assistant + tool) + final assistant
        assert len(outcome.new_messages) == 7

    async def test_llm_error_propagates(self):
        llm = ScriptedLLM([LLMRateLimitError("slow down", provider="openai")])
        with pytest.raises(LLMRateLimitError):
            await _orchestrator(llm).run(_session(Message.user("hi")))


@pytest.mark.asyncio
class TestContextHandling:

    async def test_tools_offered_from_registry(self):
        llm = ScriptedLLM([reply("ok")])
        await _orchestrator(llm).run(_session(Message.user("hi")))
        assert {t.name for t in llm.calls[0]["tools"]} == {"govmap_call", "lookup"}

    async def test_engine_never_sees_unpaired_messages(self):
        # stored history has an unanswered client call and a stray result
        stored = [
            Message.user("zoom"),
            Message.assistant("", tool_calls=[govmap("m_old")]),
            Message.tool_response(ToolResult(tool_call_id="ghost", content="{}")),
            Message.user("never mind"),
        ]
        llm = ScriptedLLM([tool_turn(call("lookup", {"query": "q"}, "s1")), reply("done")])
        await _orchestrator(llm).run(_session(*stored))

        for sent in llm.calls:
            history = [m for m in sent["messages"] if m.role != Role.SYSTEM]
            assert_paired(history)

    async def test_explicit_context_is_extended(self):
        llm = ScriptedLLM([reply("ok")])
        context = [Message.system("sys"), Message.user("hi")]
        await _orchestrator(llm).run(_session(), context=context)
        assert context[-1].content == "ok"
