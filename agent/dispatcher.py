"""
agent/dispatcher.py — Tool Dispatcher

Routes one model turn's tool invocations by execution venue.

Flow per invocation:
  ToolCall → registry lookup (unknown name → error result)
           → argument validation against the capability's pydantic model
             (invalid → error result)
           → SERVER: handler(**args) with timeout, run concurrently with its
                     siblings; any failure becomes a structured payload
           → CLIENT: not executed; the registered builder turns it into a
                     ClientCommand for the browser

Every invocation ends up in exactly one of executed_results or
deferred_commands, each tagged with its own id. dispatch() never raises.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from brain.types import ToolCall, ToolResult
from exceptions import (
    CapabilityError,
    CapabilityExecutionError,
    CapabilityNotFoundError,
    CapabilityValidationError,
)
from observability.logger import get_logger
from tools.capability_registry import CapabilityRegistry
from tools.types import CapabilityDescriptor, ClientCommand, DispatchOutcome

log = get_logger(__name__)

# Max serialized result size fed back to the model
MAX_RESULT_CHARS = 8_000

DEFAULT_TIMEOUT_SECONDS = 20.0


class ToolDispatcher:
    """
    Splits invocations into server-executed results and client-deferred commands.

    Usage:
        dispatcher = ToolDispatcher(registry, timeout_seconds=20)
        outcome = await dispatcher.dispatch(response.tool_calls)
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_result_chars: int = MAX_RESULT_CHARS,
    ):
        self.registry = registry
        self.timeout_seconds = timeout_seconds
        self.max_result_chars = max_result_chars

    async def dispatch(self, invocations: list[ToolCall]) -> DispatchOutcome:
        # Slot per executed invocation, filled in request order
        executed: list[Optional[ToolResult]] = []
        server_jobs: list[tuple[int, ToolCall, CapabilityDescriptor, BaseModel]] = []
        deferred: list[ClientCommand] = []

        for call in invocations:
            descriptor = self.registry.get(call.name)
            if descriptor is None:
                executed.append(_failure(
                    call, CapabilityNotFoundError(call.name, self.registry.list_names())
                ))
                log.warning("dispatcher.unknown_capability", capability=call.name, tool_call_id=call.id)
                continue

            try:
                args = _validate(descriptor, call.arguments)
            except CapabilityValidationError as e:
                executed.append(_failure(call, e))
                log.warning("dispatcher.invalid_arguments", capability=call.name,
                            tool_call_id=call.id, error=str(e))
                continue

            if descriptor.is_client:
                command = self._build_command(call, args)
                if isinstance(command, ToolResult):
                    executed.append(command)
                else:
                    deferred.append(command)
                continue

            executed.append(None)
            server_jobs.append((len(executed) - 1, call, descriptor, args))

        if server_jobs:
            results = await asyncio.gather(
                *(self._run_server(call, args) for _, call, _, args in server_jobs)
            )
            for (slot, _, _, _), result in zip(server_jobs, results):
                executed[slot] = result

        outcome = DispatchOutcome(
            executed_results=[r for r in executed if r is not None],
            deferred_commands=deferred,
        )
        log.info(
            "dispatcher.dispatched",
            invocations=len(invocations),
            executed=len(outcome.executed_results),
            deferred=len(outcome.deferred_commands),
            errors=sum(1 for r in outcome.executed_results if r.is_error),
        )
        return outcome

    # ── Server venue ──────────────────────────────────────────────────────────

    async def _run_server(self, call: ToolCall, args: BaseModel) -> ToolResult:
        handler = self.registry.get_handler(call.name)
        start_ms = time.monotonic() * 1000

        try:
            raw = await asyncio.wait_for(handler(**args.model_dump()), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            log.error("dispatcher.server_timeout", capability=call.name,
                      timeout_seconds=self.timeout_seconds)
            return _failure(call, CapabilityExecutionError(
                f"'{call.name}' timed out after {self.timeout_seconds}s"
            ))
        except Exception as e:
            log.error("dispatcher.server_error", capability=call.name, tool_call_id=call.id,
                      error=str(e), error_type=type(e).__name__, exc_info=True)
            return _failure(call, e)

        content = _truncate(_serialize(raw), self.max_result_chars)
        is_error = isinstance(raw, dict) and raw.get("ok") is False
        log.info(
            "dispatcher.server_call",
            capability=call.name,
            tool_call_id=call.id,
            duration_ms=round(time.monotonic() * 1000 - start_ms, 1),
            ok=not is_error,
            result_chars=len(content),
        )
        return ToolResult(tool_call_id=call.id, name=call.name, content=content, is_error=is_error)

    # ── Client venue ──────────────────────────────────────────────────────────

    def _build_command(self, call: ToolCall, args: BaseModel) -> ClientCommand | ToolResult:
        builder = self.registry.get_handler(call.name)
        try:
            command = builder(call.id, args)
        except CapabilityError as e:
            log.warning("dispatcher.command_rejected", capability=call.name, error=str(e))
            return _failure(call, e)
        log.info("dispatcher.deferred", capability=call.name, tool_call_id=call.id,
                 calls=len(command.calls))
        return command


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def _validate(descriptor: CapabilityDescriptor, arguments: dict[str, Any]) -> BaseModel:
    if descriptor.args_model is None:
        raise CapabilityValidationError(f"'{descriptor.name}' declares no argument model")
    try:
        return descriptor.args_model.model_validate(arguments)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
            for err in e.errors()
        )
        raise CapabilityValidationError(f"Invalid arguments for '{descriptor.name}': {problems}") from e


def _failure(call: ToolCall, error: Exception) -> ToolResult:
    """Structured failure payload for one invocation."""
    return ToolResult(
        tool_call_id=call.id,
        name=call.name,
        content=json.dumps(
            {"ok": False, "error": str(error) or type(error).__name__, "error_type": type(error).__name__},
            ensure_ascii=False,
        ),
        is_error=True,
    )


def _serialize(result: Any) -> str:
    if result is None:
        return json.dumps({"ok": True})
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    return json.dumps(result, ensure_ascii=False, default=str)


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + f"\n[truncated, {len(text) - max_chars} chars omitted]"
