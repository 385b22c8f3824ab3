"""
agent/context_builder.py — LLM Context Builder

Assembles the message list sent to the reasoning engine each turn:
    System prompt → Capability guide → Layer catalog (if any) → Presented history

The history part is HistoryManager.presentable(), so the provider never
receives an orphan tool result or an unanswered tool call.
"""

from __future__ import annotations

from typing import Optional

from brain.types import Message
from observability.logger import get_logger
from tools.capability_registry import CapabilityRegistry
from tools.layer_catalog import MAX_PROMPT_CHARS, render_layer_catalog
from tools.map_commands import GOVMAP_API_GUIDE

from agent.history import HistoryManager
from agent.session import Session

log = get_logger(__name__)

_SYSTEM_TEMPLATE = """\
You are {agent_name}, a professional maps assistant inside a map application.

## Language
- Reply in the language of the user's last message: clear, concise Hebrew for Hebrew, English for English.
- Switch language only when the user asks you to.
- Keep explanations short.

## Map control
- You change the map ONLY by calling 'govmap_call'. You never run map functions yourself; the browser runs them as govmap[fn](args).
- Use as few commands as possible. Use only function names from the API reference below.
- When you need data from the map (searchAndLocate, intersectFeatures, selectFeaturesOnMap, ...), say which fields to return. The results arrive in a later tool message; if they are already in the conversation, answer from them instead of calling again.
- After planning map commands, add one short sentence in the user's language about what changed on the map.

## Choosing a tool
- Layers, parcels, gush, filters, attributes, opacity, styles or spatial queries → 'govmap_call' only. Never Google tools for these.
- A real-world place or route (address, business, beach, school, city) → 'google_places_lookup', 'google_geocode' or 'google_route' to get coordinates or directions, then 'govmap_call' on a later turn with those coordinates.
- Do not mix Google tools and 'govmap_call' in the same turn.
- General internet information (not map control) → 'web_search', then summarize the top results briefly.
- If a name could be either a catalog layer or a real-world place, ask one short clarifying question first.
- Generic words ("bus stops", "beach", "school") are layer names only when they match the layer catalog.

## Interaction
- If a required value (layer name, address, zoom level, coordinates, whereClause) is missing or ambiguous, ask ONE short clarifying question. Never invent critical values.

## Map API reference
Use this reference when choosing function names and arguments. Do not invent functions.

{api_guide}"""


class ContextBuilder:
    """Assembles the complete LLM message list for each orchestration run."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        agent_name: str = "GovMap Assistant",
        api_guide: str = GOVMAP_API_GUIDE,
        max_catalog_chars: int = MAX_PROMPT_CHARS,
    ):
        self.registry = registry
        self.agent_name = agent_name
        self.api_guide = api_guide
        self.max_catalog_chars = max_catalog_chars

    def build(self, session: Session, extra_system: Optional[str] = None) -> list[Message]:
        """
        Build the full message list for this turn.

        Returns a list ready to pass directly to BaseLLMClient.generate().
        """
        messages: list[Message] = [Message.system(self.system_prompt(extra_system))]
        messages.append(Message.system(self.registry.render_capabilities()))

        layer_context = render_layer_catalog(session.layer_catalog, max_chars=self.max_catalog_chars)
        if layer_context:
            messages.append(Message.system(layer_context))

        history = HistoryManager.presentable(session.messages)
        messages.extend(history)

        log.debug(
            "context_builder.built",
            total_messages=len(messages),
            history_msgs=len(history),
            stored_msgs=len(session.messages),
            has_layers=bool(layer_context),
        )
        return messages

    def system_prompt(self, extra_system: Optional[str] = None) -> str:
        prompt = _SYSTEM_TEMPLATE.format(agent_name=self.agent_name, api_guide=self.api_guide)
        if extra_system:
            prompt += f"\n\n{extra_system}"
        return prompt
