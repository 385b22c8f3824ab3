"""
tests/unit/test_context_builder.py — Context Builder Tests

Covers:
  - message order: system prompt, capability guide, layer context, history
  - layer context omitted without a catalog
  - history goes through the presented view
  - system prompt content (language rule, API reference, extra text)
"""

from __future__ import annotations

from agent.context_builder import ContextBuilder
from agent.session import Session
from brain.types import Message, Role, ToolResult
from tools.capability_registry import CapabilityRegistry
from tools.layer_catalog import normalize_layer_catalog
from tools.map_commands import GOVMAP_API_GUIDE, MapCommandCatalog, register_map_capability

from tests.fakes import govmap


def _builder() -> ContextBuilder:
    registry = CapabilityRegistry()
    register_map_capability(registry, MapCommandCatalog())
    return ContextBuilder(registry)


def _session(layers=None, messages=()) -> Session:
    s = Session.create(now=0.0, secret_lifetime_seconds=600, layer_catalog=layers)
    s.messages = list(messages)
    return s


class TestContextBuilder:

    def test_without_catalog(self):
        messages = _builder().build(_session(messages=[Message.user("שלום")]))
        assert [m.role for m in messages] == [Role.SYSTEM, Role.SYSTEM, Role.USER]
        assert messages[1].content.startswith("Available tools:")

    def test_with_catalog(self):
        layers = normalize_layer_catalog([{"id": "parcels", "label": "חלקות"}])
        messages = _builder().build(_session(layers=layers, messages=[Message.user("hi")]))
        assert [m.role for m in messages] == [Role.SYSTEM, Role.SYSTEM, Role.SYSTEM, Role.USER]
        assert "- חלקות (parcels)" in messages[2].content

    def test_history_is_presented_view(self):
        stored = [
            Message.tool_response(ToolResult(tool_call_id="ghost", content="{}")),
            Message.user("zoom"),
            Message.assistant("", tool_calls=[govmap("m1")]),
        ]
        messages = _builder().build(_session(messages=stored))
        history = [m for m in messages if m.role != Role.SYSTEM]
        assert [m.content for m in history] == ["zoom"]

    def test_system_prompt(self):
        builder = _builder()
        prompt = builder.build(_session())[0].content
        assert "GovMap Assistant" in prompt
        assert "language of the user's last message" in prompt
        assert GOVMAP_API_GUIDE.strip()[:40] in prompt

        extra = builder.system_prompt("Always answer in haiku.")
        assert extra.endswith("Always answer in haiku.")
