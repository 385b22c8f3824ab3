"""
agent/ — govmap-agent Core

Public API:
    from agent import Orchestrator, Session, HistoryManager

Component overview:
    Session             Per-browser state (secret, history, layer catalog)
    HistoryManager      Append, compact, trim and present the message log
    ToolDispatcher      Splits tool calls into server results and client commands
    ContextBuilder      Assembles the LLM prompt from registry + catalog + history
    Orchestrator        Bounded loop: think → dispatch → fold
    ClientExecutor      Reference executor for client-deferred map commands
"""

from agent.client_executor import CapabilityProvider, ClientExecutor, FunctionTableProvider
from agent.context_builder import ContextBuilder
from agent.dispatcher import ToolDispatcher
from agent.history import SUMMARY_PREFIX, HistoryManager, tool_messages_from_client
from agent.orchestrator import LoopOutcome, LoopState, Orchestrator
from agent.session import Session, generate_secret

__all__ = [
    "Orchestrator",
    "LoopOutcome",
    "LoopState",
    "Session",
    "generate_secret",
    "HistoryManager",
    "SUMMARY_PREFIX",
    "tool_messages_from_client",
    "ToolDispatcher",
    "ContextBuilder",
    "ClientExecutor",
    "CapabilityProvider",
    "FunctionTableProvider",
]
