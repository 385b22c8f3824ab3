"""
tools/layer_catalog.py — Session Layer Catalog

Layer metadata sent by the browser so the model knows the exact layer and
field names it can use. Advisory context only: it never changes which
capabilities exist.

Parsing is tolerant. Strings become {id, label} / {name}, aliases are
accepted (name/title for layers, fields/variables for field lists), and any
shape that cannot be understood is dropped instead of rejected. Both the
parsed catalog and its rendered prompt text are size-bounded.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from observability.logger import get_logger

log = get_logger(__name__)

MAX_LAYERS = 50
MAX_FIELDS_PER_LAYER = 50
MAX_PROMPT_CHARS = 12_000

FieldType = Literal["text", "number", "enum", "date"]
_FIELD_TYPES = ("text", "number", "enum", "date")


class LayerField(BaseModel):
    name: str
    label: Optional[str] = None
    description: Optional[str] = None
    type: Optional[FieldType] = None
    options: Optional[list[str]] = None


class ZoomCenter(BaseModel):
    x: float
    y: float
    level: float


class LayerDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    label: Optional[str] = None
    description: Optional[str] = None
    icon_url: Optional[str] = Field(default=None, alias="iconUrl")
    group_id: Optional[str] = Field(default=None, alias="groupId")
    fields: Optional[list[LayerField]] = None
    zoom_center: Optional[ZoomCenter] = Field(default=None, alias="zoomCenter")

    @property
    def display_name(self) -> str:
        if self.label and self.id and self.label != self.id:
            return f"{self.label} ({self.id})"
        return self.label or self.id or "Layer"


# ─────────────────────────────────────────────────────────────────────────────
# Parsing
# ─────────────────────────────────────────────────────────────────────────────


def normalize_layer_catalog(
    raw: Any,
    max_layers: int = MAX_LAYERS,
    max_fields_per_layer: int = MAX_FIELDS_PER_LAYER,
) -> Optional[list[LayerDefinition]]:
    """
    Parse client layer metadata into LayerDefinitions.

    Returns None when the input is not a list or nothing usable was found.
    """
    if not isinstance(raw, list):
        return None

    layers: list[LayerDefinition] = []
    dropped = 0

    for item in raw:
        if len(layers) >= max_layers:
            break
        layer = _parse_layer(item, max_fields_per_layer)
        if layer is None:
            dropped += 1
            continue
        layers.append(layer)

    if dropped:
        log.debug("layer_catalog.dropped_entries", dropped=dropped, kept=len(layers))

    return layers or None


def _parse_layer(item: Any, max_fields: int) -> Optional[LayerDefinition]:
    if isinstance(item, str):
        return LayerDefinition(id=item, label=item)
    if not isinstance(item, dict):
        return None

    layer_id = _str_or_none(item.get("id")) or _str_or_none(item.get("name"))
    label = _str_or_none(item.get("label")) or _str_or_none(item.get("title"))
    if not layer_id and not label:
        return None

    layer = LayerDefinition(
        id=layer_id,
        label=label,
        description=_str_or_none(item.get("description")),
        icon_url=_str_or_none(item.get("iconUrl")),
        group_id=_str_or_none(item.get("groupId")),
        zoom_center=_parse_zoom(item.get("zoomCenter")),
    )

    raw_fields = item.get("fields")
    if raw_fields is None:
        raw_fields = item.get("variables")
    if isinstance(raw_fields, list):
        fields = []
        for raw_field in raw_fields:
            if len(fields) >= max_fields:
                break
            field = _parse_field(raw_field)
            if field is not None:
                fields.append(field)
        layer.fields = fields or None

    return layer


def _parse_field(raw: Any) -> Optional[LayerField]:
    if isinstance(raw, str):
        return LayerField(name=raw)
    if not isinstance(raw, dict):
        return None
    name = _str_or_none(raw.get("name"))
    if not name:
        return None

    field_type = raw.get("type")
    options = raw.get("options")
    if isinstance(options, list):
        options = [o for o in options if isinstance(o, str)] or None
    else:
        options = None

    return LayerField(
        name=name,
        label=_str_or_none(raw.get("label")),
        description=_str_or_none(raw.get("description")),
        type=field_type if field_type in _FIELD_TYPES else None,
        options=options,
    )


def _parse_zoom(raw: Any) -> Optional[ZoomCenter]:
    if not isinstance(raw, dict):
        return None
    values = [raw.get("x"), raw.get("y"), raw.get("level")]
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in values):
        return None
    return ZoomCenter(x=values[0], y=values[1], level=values[2])


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


# ─────────────────────────────────────────────────────────────────────────────
# Rendering
# ─────────────────────────────────────────────────────────────────────────────


def render_layer_catalog(
    layers: Optional[list[LayerDefinition]],
    max_layers: int = MAX_LAYERS,
    max_fields_per_layer: int = MAX_FIELDS_PER_LAYER,
    max_chars: int = MAX_PROMPT_CHARS,
) -> Optional[str]:
    """Compact prompt snippet listing layers and their fields, or None if empty."""
    if not layers:
        return None

    lines = [
        "Available map layers and their fields (use the exact layer and field names in queries):"
    ]
    for layer in layers[:max_layers]:
        parts: list[str] = []
        if layer.description:
            parts.append(layer.description)
        if layer.fields:
            parts.append("fields: " + ", ".join(
                _render_field(f) for f in layer.fields[:max_fields_per_layer]
            ))
        suffix = " | " + " | ".join(parts) if parts else ""
        lines.append(f"- {layer.display_name}{suffix}")

    text = "\n".join(lines)
    if len(text) > max_chars:
        text = text[: max_chars - 3].rstrip() + "..."
    return text


def _render_field(field: LayerField) -> str:
    name = field.name
    if field.label and field.label != field.name:
        name = f"{field.name} ({field.label})"
    details = []
    if field.type:
        details.append(f"type: {field.type}")
    if field.options:
        details.append("options: " + "/".join(field.options))
    if field.description:
        details.append(field.description)
    return f"{name} – {', '.join(details)}" if details else name
