"""
agent/history.py — Conversation History Manager

Owns the stored message log of a session and the view of it that is sent
to the reasoning engine.

Stored history:
  - append()             order-preserving, followed by a hard trim
  - append_and_compact() append, summarize when over threshold, then trim
  - compact()            keep the last K messages verbatim and replace the
                         rest with one synthetic assistant summary
  - trim()               slice to the last history_limit messages

Cut points for trim and compaction move forward past leading tool messages,
so the stored tail never starts with a result whose request was cut away.

Presented view:
  - presentable()        drops orphan tool messages and strips tool_calls
                         that have no result, so the provider never sees an
                         invalid call/result pairing. Stored history is not
                         modified.

One writer per session is assumed: the browser drives one request at a time.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from brain.llm_client import BaseLLMClient, LLMError
from brain.types import LLMConfig, Message, Role, ToolResult
from exceptions import SummarizationError
from observability.logger import get_logger

from agent.session import Session

log = get_logger(__name__)

SUMMARY_PREFIX = "Conversation summary so far: "

_SUMMARY_INSTRUCTION = (
    "Condense the conversation below into at most 5 sentences: the map actions "
    "already taken (zooms, layers turned on or filtered, searches), the results "
    "that matter, open questions and instructions to remember. Write in the same "
    "language the user wrote in (Hebrew or English). Output only the summary."
)

_ROLE_LABELS = {
    Role.USER: "User",
    Role.ASSISTANT: "Assistant",
    Role.TOOL: "Tool",
    Role.SYSTEM: "System",
}


class HistoryManager:
    """Append, compact, trim and present a session's message history."""

    def __init__(
        self,
        llm_client: BaseLLMClient,
        llm_config: LLMConfig,
        history_limit: int = 30,
        summary_threshold: int = 30,
        summary_keep_recent: Optional[int] = None,
    ):
        self._llm = llm_client
        self._config = llm_config
        self.history_limit = history_limit
        self.summary_threshold = summary_threshold
        self.keep_recent = (
            summary_keep_recent if summary_keep_recent is not None
            else max(summary_threshold - 10, 1)
        )

    # ── Stored history ────────────────────────────────────────────────────────

    def append(self, session: Session, messages: list[Message]) -> None:
        session.messages.extend(messages)
        self.trim(session)

    async def append_and_compact(self, session: Session, messages: list[Message]) -> bool:
        """
        Append inbound messages, summarize if the log grew past the
        threshold, then hard-trim whatever the outcome. Returns True if a
        summary was written.
        """
        session.messages.extend(messages)
        compacted = await self.compact(session)
        self.trim(session)
        return compacted

    def trim(self, session: Session) -> int:
        """Keep at most history_limit messages. Returns how many were dropped."""
        messages = session.messages
        if len(messages) <= self.history_limit:
            return 0
        cut = _advance_past_tool_messages(messages, len(messages) - self.history_limit)
        session.messages = messages[cut:]
        log.debug("history.trimmed", dropped=cut, kept=len(session.messages))
        return cut

    async def compact(self, session: Session) -> bool:
        """
        Summarize everything older than the last K messages into one
        assistant message. Failures are logged and swallowed; the next
        request tries again.
        """
        messages = session.messages
        if len(messages) <= self.summary_threshold:
            return False

        cut = _advance_past_tool_messages(messages, len(messages) - self.keep_recent)
        older, recent = messages[:cut], messages[cut:]
        if not older:
            return False

        try:
            summary = await self.summarize(older)
        except SummarizationError as e:
            log.warning(
                "history.summary_failed",
                error=str(e),
                error_type=type(e.__cause__ or e).__name__,
                message_count=len(messages),
            )
            return False

        session.messages = [Message.assistant(SUMMARY_PREFIX + summary)] + recent
        log.info(
            "history.compacted",
            summarized=len(older),
            kept=len(recent),
            total=len(session.messages),
        )
        return True

    async def summarize(self, messages: list[Message]) -> str:
        """Ask the reasoning engine for a short summary. Raises SummarizationError."""
        summary_config = LLMConfig(
            model=self._config.model,
            temperature=0.2,
            max_tokens=400,
            timeout_seconds=self._config.timeout_seconds,
        )
        try:
            response = await self._llm.generate(
                messages=[
                    Message.system(_SUMMARY_INSTRUCTION),
                    Message.user(transcript(messages)),
                ],
                config=summary_config,
                tools=None,
            )
        except LLMError as e:
            raise SummarizationError(f"summary call failed: {e}") from e

        summary = (response.content or "").strip()
        if not summary:
            raise SummarizationError("reasoning engine returned an empty summary")
        return summary

    # ── Presented view ────────────────────────────────────────────────────────

    @staticmethod
    def presentable(messages: list[Message]) -> list[Message]:
        """
        View of the history that satisfies call/result pairing.

        A tool message is kept only when it directly follows (possibly after
        sibling tool messages) the assistant message that requested its id,
        and only the first result per id. Requested calls without a result are
        removed from that assistant message; if none remain it is presented as
        plain text, or skipped when it has no text.
        """
        presented: list[Message] = []
        dropped = 0
        i, n = 0, len(messages)

        while i < n:
            msg = messages[i]

            if msg.requests_tools:
                j = i + 1
                while j < n and messages[j].role == Role.TOOL:
                    j += 1
                requested = set(msg.requested_ids)
                matched: list[Message] = []
                seen: set[str] = set()
                for tool_msg in messages[i + 1:j]:
                    call_id = tool_msg.tool_call_id
                    if call_id in requested and call_id not in seen:
                        seen.add(call_id)
                        matched.append(tool_msg)
                    else:
                        dropped += 1

                kept_calls = [tc for tc in msg.tool_calls or [] if tc.id in seen]
                if kept_calls:
                    presented.append(Message.assistant(msg.content or "", tool_calls=kept_calls))
                    presented.extend(matched)
                elif msg.content:
                    presented.append(Message.assistant(msg.content))
                i = j
                continue

            if msg.role == Role.TOOL:
                dropped += 1
            else:
                presented.append(msg)
            i += 1

        if dropped:
            log.debug("history.orphans_hidden", dropped=dropped)
        return presented


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def tool_messages_from_client(results: list[Any]) -> list[Message]:
    """
    One tool message per invocation id, in first-seen order, content
    {"results": [...]} with every item the client reported for that id.
    Results without an id are dropped.
    """
    grouped: dict[str, list[Any]] = {}
    dropped = 0
    for item in results:
        call_id = item.get("tool_call_id") if isinstance(item, dict) else None
        if not isinstance(call_id, str) or not call_id:
            dropped += 1
            continue
        grouped.setdefault(call_id, []).append(item)

    if dropped:
        log.warning("history.client_results_dropped", dropped=dropped, reason="missing tool_call_id")

    return [
        Message.tool_response(ToolResult(
            tool_call_id=call_id,
            content=json.dumps({"results": items}, ensure_ascii=False, default=str),
        ))
        for call_id, items in grouped.items()
    ]


def transcript(messages: list[Message]) -> str:
    lines = []
    for msg in messages:
        text = msg.content or ""
        if msg.tool_calls:
            names = ", ".join(tc.name for tc in msg.tool_calls)
            text = f"{text} [requested: {names}]".strip()
        lines.append(f"{_ROLE_LABELS[msg.role]}: {text}")
    return "\n".join(lines)


def _advance_past_tool_messages(messages: list[Message], cut: int) -> int:
    while cut < len(messages) and messages[cut].role == Role.TOOL:
        cut += 1
    return cut
