"""
agent/orchestrator.py — Orchestration Loop

The bounded think → dispatch → fold loop for one request.

States:
    THINKING        → waiting for the reasoning engine
    TOOLS_REQUESTED → the turn asked for tools; dispatcher splits them
    AWAITING_CLIENT → at least one client-deferred command; loop ends after
                      the server results of that turn are folded in
    DONE            → the turn carried no tool requests

At most max_tool_rounds THINKING rounds run with tools enabled. If the model
is still asking for tools after that, one final call is made with tools
disabled, so a run never takes more than max_tool_rounds + 1 engine calls.

LLMError is not caught here. The caller persists nothing for a failed run.

Usage:
    orc = Orchestrator(llm, llm_config, dispatcher, context_builder)
    outcome = await orc.run(session)
    history.append(session, outcome.new_messages)
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from brain.llm_client import BaseLLMClient
from brain.types import LLMConfig, Message, Role
from observability.logger import get_logger
from tools.types import ClientCommand

from agent.context_builder import ContextBuilder
from agent.dispatcher import ToolDispatcher
from agent.session import Session

log = get_logger(__name__)

DEFAULT_MAX_TOOL_ROUNDS = 3


class LoopState(str, Enum):
    THINKING = "thinking"
    TOOLS_REQUESTED = "tools_requested"
    AWAITING_CLIENT = "awaiting_client"
    DONE = "done"


class LoopOutcome(BaseModel):
    """What one run produced. new_messages are all persisted, in order."""
    state: LoopState
    new_messages: list[Message] = Field(default_factory=list)
    commands: list[ClientCommand] = Field(default_factory=list)
    llm_calls: int = 0
    forced_final: bool = False

    @property
    def final_message(self) -> Message:
        for msg in reversed(self.new_messages):
            if msg.role == Role.ASSISTANT:
                return msg
        return Message.assistant("")

    @property
    def assistant_text(self) -> str:
        return self.final_message.content or ""


class Orchestrator:
    """
    Runs the orchestration loop against one session's context.

    Inject all dependencies via constructor; the app factory wires them.
    """

    def __init__(
        self,
        llm_client: BaseLLMClient,
        llm_config: LLMConfig,
        dispatcher: ToolDispatcher,
        context_builder: ContextBuilder,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
    ):
        self._llm = llm_client
        self._config = llm_config
        self._dispatcher = dispatcher
        self._ctx = context_builder
        self.max_tool_rounds = max_tool_rounds

    @classmethod
    def from_settings(
        cls,
        settings,
        llm_client: BaseLLMClient,
        registry,
    ) -> "Orchestrator":
        """Wire an Orchestrator from Settings and a populated registry."""
        from brain import LLMClientFactory

        return cls(
            llm_client=llm_client,
            llm_config=LLMClientFactory.request_config(settings),
            dispatcher=ToolDispatcher(registry, timeout_seconds=settings.agent.tool_timeout_seconds),
            context_builder=ContextBuilder(
                registry,
                agent_name=settings.agent.name,
                max_catalog_chars=settings.catalog.max_prompt_chars,
            ),
            max_tool_rounds=settings.agent.max_tool_rounds,
        )

    async def run(self, session: Session, context: Optional[list[Message]] = None) -> LoopOutcome:
        """
        Run the loop until DONE or AWAITING_CLIENT.

        context defaults to ContextBuilder.build(session). It is extended in
        place with each round's messages.
        """
        working = context if context is not None else self._ctx.build(session)
        tools = self._dispatcher.registry.to_llm_schemas()
        new_messages: list[Message] = []
        llm_calls = 0
        t0 = time.monotonic()

        for round_index in range(self.max_tool_rounds):
            log.debug("orchestrator.thinking", round=round_index, msg_count=len(working))
            response = await self._llm.generate(messages=working, config=self._config, tools=tools)
            llm_calls += 1

            assistant = Message.assistant(response.text, tool_calls=response.tool_calls or None)
            new_messages.append(assistant)
            working.append(assistant)

            if not response.has_tool_calls:
                log.info("orchestrator.done", rounds=round_index + 1, llm_calls=llm_calls,
                         ms=round((time.monotonic() - t0) * 1000))
                return LoopOutcome(state=LoopState.DONE, new_messages=new_messages, llm_calls=llm_calls)

            log.info(
                "orchestrator.tools_requested",
                round=round_index,
                tools=[tc.name for tc in response.tool_calls],
            )
            outcome = await self._dispatcher.dispatch(response.tool_calls)

            for result in outcome.executed_results:
                tool_msg = Message.tool_response(result)
                new_messages.append(tool_msg)
                working.append(tool_msg)

            if outcome.awaiting_client:
                log.info("orchestrator.awaiting_client", round=round_index,
                         commands=len(outcome.deferred_commands), llm_calls=llm_calls)
                return LoopOutcome(
                    state=LoopState.AWAITING_CLIENT,
                    new_messages=new_messages,
                    commands=outcome.deferred_commands,
                    llm_calls=llm_calls,
                )

        # Round budget spent and the model still wants tools: force an answer
        log.warning("orchestrator.max_rounds_reached", max_tool_rounds=self.max_tool_rounds)
        response = await self._llm.generate(messages=working, config=self._config, tools=None)
        llm_calls += 1
        new_messages.append(Message.assistant(response.text))

        log.info("orchestrator.done", forced_final=True, llm_calls=llm_calls,
                 ms=round((time.monotonic() - t0) * 1000))
        return LoopOutcome(
            state=LoopState.DONE,
            new_messages=new_messages,
            llm_calls=llm_calls,
            forced_final=True,
        )
