"""
tools/__init__.py — govmap-agent Capability System

Public interface for the capability system.

Usage:
    from tools import ServerCapabilities, build_default_registry

    server = ServerCapabilities(google_key=..., tavily_key=...)
    registry = build_default_registry(server)
    schemas = registry.to_llm_schemas()
"""

from __future__ import annotations

from tools.capability_registry import CapabilityRegistry, build_default_registry, render_capabilities
from tools.layer_catalog import LayerDefinition, LayerField, normalize_layer_catalog, render_layer_catalog
from tools.map_commands import MAP_CAPABILITY_NAME, MapCommandCatalog
from tools.server_capabilities import ServerCapabilities, detect_language
from tools.types import (
    CallingConvention,
    CapabilityDescriptor,
    ClientCommand,
    ClientToolResult,
    DispatchOutcome,
    ExecutionVenue,
    MapCall,
)

__all__ = [
    "CapabilityRegistry",
    "build_default_registry",
    "render_capabilities",
    "MapCommandCatalog",
    "MAP_CAPABILITY_NAME",
    "ServerCapabilities",
    "detect_language",
    "LayerDefinition",
    "LayerField",
    "normalize_layer_catalog",
    "render_layer_catalog",
    # Types
    "CallingConvention",
    "CapabilityDescriptor",
    "ClientCommand",
    "ClientToolResult",
    "DispatchOutcome",
    "ExecutionVenue",
    "MapCall",
]
