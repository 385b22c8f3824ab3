"""
agent/client_executor.py — Client Executor (contract + reference)

The browser half of the protocol, in Python: receives ClientCommands,
invokes the map capability provider for every call, and returns results
tagged with the invocation id so the next /chat request can report them.

Failures never raise. They are reported as ordinary result content:
    "Error: Function not found"
    "Error: execution error: <detail>"

Used by tests to drive multi-round exchanges; a real browser implements the
same contract in its own language.
"""

from __future__ import annotations

import inspect
from typing import Any, Callable, Protocol

from observability.logger import get_logger
from tools.types import CallingConvention, ClientCommand, ClientToolResult, MapCall

log = get_logger(__name__)

FUNCTION_NOT_FOUND = "Error: Function not found"


class CapabilityProvider(Protocol):
    """The map engine: enumerable by name, callable with arguments."""

    def has(self, fn: str) -> bool: ...

    async def call(self, call: MapCall) -> Any: ...


class FunctionTableProvider:
    """
    Provider backed by a dict of callables.

    POSITIONAL calls are spread as *args, KEYWORD calls get one options dict.
    Sync and async callables are both accepted.
    """

    def __init__(self, functions: dict[str, Callable[..., Any]]):
        self._functions = dict(functions)

    def has(self, fn: str) -> bool:
        return fn in self._functions

    async def call(self, call: MapCall) -> Any:
        fn = self._functions[call.fn]
        if call.convention == CallingConvention.POSITIONAL:
            result = fn(*call.args)
        else:
            result = fn(call.args)
        if inspect.isawaitable(result):
            result = await result
        return result


class ClientExecutor:
    """Executes deferred commands against a CapabilityProvider."""

    def __init__(self, provider: CapabilityProvider):
        self._provider = provider

    async def execute(self, commands: list[ClientCommand]) -> list[ClientToolResult]:
        results: list[ClientToolResult] = []
        for command in commands:
            for call in command.calls:
                results.append(ClientToolResult(
                    tool_call_id=command.tool_call_id,
                    fn=call.fn,
                    result=await self._run(call),
                ))
        log.debug("client_executor.executed", commands=len(commands), results=len(results))
        return results

    async def _run(self, call: MapCall) -> Any:
        if not self._provider.has(call.fn):
            return FUNCTION_NOT_FOUND
        try:
            return await self._provider.call(call)
        except Exception as e:
            log.warning("client_executor.call_failed", fn=call.fn, error=str(e))
            return f"Error: execution error: {e}"
