"""
tools/capability_registry.py — Capability Registry

Declares every capability the reasoning engine may invoke: name, argument
model, JSON parameter schema and execution venue. Built once at startup and
read-only at request time. There is no module-level registry; the app
factory builds one and passes it to the dispatcher and context builder.

Handlers:
  - SERVER capabilities register an async handler called with the
    validated arguments as keyword arguments.
  - CLIENT capabilities register a command builder called as
    builder(tool_call_id, args_model_instance) -> ClientCommand.

Usage:
    registry = CapabilityRegistry()

    @registry.register(
        name="google_geocode",
        description="Geocode a free-text address",
        args_model=GeocodeArgs,
        category="geo",
    )
    async def google_geocode(query: str, language: str | None = None) -> dict:
        ...

    descriptor = registry.get("google_geocode")
    handler = registry.get_handler("google_geocode")
    schemas = registry.to_llm_schemas()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Optional

from pydantic import BaseModel

from brain.types import ToolSchema
from observability.logger import get_logger
from tools.types import CapabilityDescriptor, ExecutionVenue, Handler

if TYPE_CHECKING:
    from tools.map_commands import MapCommandCatalog
    from tools.server_capabilities import ServerCapabilities

log = get_logger(__name__)

# Prompt-size bounds for render_capabilities()
MAX_RENDERED_CAPABILITIES = 20
MAX_RENDERED_ARGS = 12
MAX_RENDERED_CHARS = 4_000


class CapabilityRegistry:
    """
    Maps capability names to their descriptors and handlers.

    Registration happens at startup only; lookups are plain dict reads.
    """

    def __init__(self):
        self._descriptors: dict[str, CapabilityDescriptor] = {}
        self._handlers: dict[str, Handler] = {}

    def register(
        self,
        name: str,
        description: str,
        args_model: type[BaseModel],
        venue: ExecutionVenue = ExecutionVenue.SERVER,
        category: str = "general",
        usage: str = "",
        parameters: Optional[dict[str, Any]] = None,
    ) -> Callable:
        """
        Decorator to register a capability handler.

        parameters defaults to the JSON schema of args_model.
        """
        def decorator(fn: Handler) -> Handler:
            self.add(
                CapabilityDescriptor(
                    name=name,
                    description=description,
                    venue=venue,
                    parameters=parameters or _schema_from_model(args_model),
                    args_model=args_model,
                    category=category,
                    usage=usage,
                ),
                fn,
            )
            return fn

        return decorator

    def add(self, descriptor: CapabilityDescriptor, handler: Handler) -> None:
        """Programmatic registration (alternative to the decorator)."""
        if descriptor.name in self._descriptors:
            raise ValueError(f"Capability '{descriptor.name}' is already registered")
        self._descriptors[descriptor.name] = descriptor
        self._handlers[descriptor.name] = handler
        log.debug(
            "capability.registered",
            capability=descriptor.name,
            venue=descriptor.venue.value,
            category=descriptor.category,
        )

    def get(self, name: str) -> Optional[CapabilityDescriptor]:
        """Return the descriptor for a capability, or None if not found."""
        return self._descriptors.get(name)

    def get_handler(self, name: str) -> Optional[Handler]:
        return self._handlers.get(name)

    def is_registered(self, name: str) -> bool:
        return name in self._descriptors

    def list_descriptors(self, venue: Optional[ExecutionVenue] = None) -> list[CapabilityDescriptor]:
        """All descriptors in registration order, optionally filtered by venue."""
        descriptors = list(self._descriptors.values())
        if venue is not None:
            descriptors = [d for d in descriptors if d.venue == venue]
        return descriptors

    def list_names(self) -> list[str]:
        return list(self._descriptors.keys())

    def to_llm_schemas(self) -> list[ToolSchema]:
        """Return every capability as a provider-agnostic ToolSchema."""
        return [d.to_llm_schema() for d in self._descriptors.values()]

    def render_capabilities(
        self,
        max_entries: int = MAX_RENDERED_CAPABILITIES,
        max_args: int = MAX_RENDERED_ARGS,
        max_chars: int = MAX_RENDERED_CHARS,
    ) -> str:
        """
        Instructional text listing each capability, where it runs, its
        argument shape and its usage rule. Deterministic and size-bounded.
        """
        return render_capabilities(
            self.list_descriptors(),
            max_entries=max_entries,
            max_args=max_args,
            max_chars=max_chars,
        )

    def __len__(self) -> int:
        return len(self._descriptors)

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __repr__(self) -> str:
        return f"<CapabilityRegistry capabilities={self.list_names()}>"


# ─────────────────────────────────────────────────────────────────────────────
# Rendering
# ─────────────────────────────────────────────────────────────────────────────


def render_capabilities(
    descriptors: list[CapabilityDescriptor],
    max_entries: int = MAX_RENDERED_CAPABILITIES,
    max_args: int = MAX_RENDERED_ARGS,
    max_chars: int = MAX_RENDERED_CHARS,
) -> str:
    """Pure renderer behind CapabilityRegistry.render_capabilities()."""
    lines = ["Available tools:"]
    for descriptor in descriptors[:max_entries]:
        where = "runs in the browser" if descriptor.is_client else "runs on the server"
        args = _render_args(descriptor.parameters, max_args)
        summary = descriptor.usage or descriptor.description.strip().splitlines()[0]
        lines.append(f"- {descriptor.name}({args}) [{where}]: {summary}")

    omitted = len(descriptors) - max_entries
    if omitted > 0:
        lines.append(f"- ... {omitted} more not shown")

    text = "\n".join(lines)
    if len(text) > max_chars:
        text = text[: max_chars - 3].rstrip() + "..."
    return text


def _render_args(parameters: dict[str, Any], max_args: int) -> str:
    properties: dict[str, Any] = parameters.get("properties", {}) or {}
    required = set(parameters.get("required", []) or [])
    rendered = []
    for name in list(properties)[:max_args]:
        json_type = properties[name].get("type", "any")
        suffix = "" if name in required else "?"
        rendered.append(f"{name}{suffix}: {json_type}")
    if len(properties) > max_args:
        rendered.append("...")
    return ", ".join(rendered)


def _schema_from_model(model: type[BaseModel]) -> dict[str, Any]:
    schema = model.model_json_schema(by_alias=True)
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    schema.setdefault("required", [])
    return schema


# ─────────────────────────────────────────────────────────────────────────────
# Default registry
# ─────────────────────────────────────────────────────────────────────────────


def build_default_registry(
    server: "ServerCapabilities",
    catalog: Optional["MapCommandCatalog"] = None,
) -> CapabilityRegistry:
    """
    Registry holding govmap_call (client) and the four server capabilities
    (web_search, google_places_lookup, google_geocode, google_route).
    """
    from tools.map_commands import MapCommandCatalog, register_map_capability
    from tools.server_capabilities import register_server_capabilities

    registry = CapabilityRegistry()
    register_map_capability(registry, catalog or MapCommandCatalog())
    register_server_capabilities(registry, server)
    log.info("capability.registry_built", capabilities=registry.list_names())
    return registry
