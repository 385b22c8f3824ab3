"""
tools/map_commands.py — Map Command Catalog

The govmap_call capability: the model plans one or more map function calls,
the browser executes them, and the results come back on the next request.

MapCommandCatalog resolves each function's calling convention once, from a
static table. Positional functions get an ordered argument list (trailing
nulls trimmed); everything else, including functions the table does not
know, is passed through as a keyword options object.

The function table and the quick reference below are configuration data.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from observability.logger import get_logger
from tools.capability_registry import CapabilityRegistry
from tools.types import CallingConvention, ClientCommand, ExecutionVenue, MapCall

log = get_logger(__name__)

MAP_CAPABILITY_NAME = "govmap_call"

# Positional map functions and their ordered argument names.
POSITIONAL_SIGNATURES: dict[str, tuple[str, ...]] = {
    "identifyByXY": ("x", "y"),
    "identifyByXYAndLayer": ("x", "y", "layers"),
    "setCenter": ("x", "y"),
    "getZoomLevel": (),
    "getCenter": (),
    "setBackground": ("backgroundId",),
    "getBackground": (),
    "zoomIn": (),
    "zoomOut": (),
    "getMapTolerance": (),
    "gpsOn": (),
    "gpsOff": (),
    "getGPSLocation": (),
    "showPrint": (),
    "closePrint": (),
    "getXY": (),
    "closeOpenApps": (),
    "zoomToDrawing": (),
    "draw": ("drawType",),
    "editDrawing": (),
    "clearDrawing": (),
    "clearDrawings": (),
    "showMeasure": (),
    "closeMeasure": (),
    "showExportMap": (),
    "closeExportMap": (),
    "closeBubble": (),
    "setVisibleLayers": ("layersOn", "layersOff"),
    "removeHeatLayer": (),
    "refreshLayer": ("layerName",),
    "clearSelection": ("layerName",),
    "identifyOnClick": ("enabled",),
}


GOVMAP_API_GUIDE = """
Core navigation
- zoomToXY({ x, y, level?, marker?: boolean }): move the map to ITM coordinates, optionally drop a marker. level is the zoom level (0-10).
- getXY(): switches the pointer to a crosshair and returns the clicked coordinate. Ask the user "is it ok to click on the map to get coordinates?" before requesting it.
- getCenter(): returns the current map center { x, y }.
- setCenter({ x, y }): set the center point.
- setBackground({ backgroundId: number }): switch basemap. 0 Streets & buildings, 1 Aerial 2023, 2 Combined, 3 CIR, 5 TA 1930, 6 Map 1935, 7 Jerusalem 1926, 8 Haifa 1919, 9 Topographic, 11 No background, 16 Aerial 2003, 17 Aerial 2004, 18 Aerial 2006, 19 Aerial 2013, 20 Aerial 2005, 21 Aerial 2008, 24 Aerial 2019, 27 Aerial 2022, 32 Aerial 2021.
- getBackground(): returns the current background id.
- zoomIn() / zoomOut(): change the zoom level by 1.
- getZoomLevel(): returns the current zoom level.
- getMapTolerance(): returns the map tolerance in meters.
- refreshResource({ layerName: string }): refresh a specific layer.
- gpsOn() / gpsOff() / getGPSLocation().
- setMapMarker({ x, y }): place a custom marker.
- clearMapMarker(): remove all custom markers.

Drawing, editing, measuring
- draw({ drawType: Point|Polyline|Polygon|Rectangle|Circle }): let the user draw; returns the geometry as WKT.
- editDrawing(): edit the last drawn geometry; returns WKT.
- zoomToDrawing(): zoom to the last drawn geometry.
- clearDrawing() / clearDrawings(): clear the last / all drawings.
- showMeasure() / closeMeasure().
- showPrint() / closePrint(): map screenshot.
- showExportMap() / closeExportMap().
- closeOpenApps(): close any open print/measure/export apps.

Layers & styling
- setVisibleLayers({ layersOn: string[], layersOff?: string[] }): toggle layer visibility.
- setLayerOpacity({ layerName: string, opacity: number }): opacity from 0 to 100.
- refreshLayer({ layerName?: string }).
- setHeatLayer({ points: { point: { x, y }, attributes: { val1?, val2? } }[], options: { valueField, gradient?, radius?, opacity?, blur?, xField?, yField? } }): client-side heatmap from weighted points.
- removeHeatLayer(): remove the heatmap layer.
- getLayerRenderer({ LayerNames: string[] }): renderer info for one or more layers.
- filterLayers({ layerName: string, whereClause: string, zoomToExtent?: boolean }): filter a single layer.
- selectFeaturesOnMap({ layers: string[], drawType?, whereClause?: Record<string, string>, selectOnMap?: boolean, isZoomToExtent?: boolean, returnFields?: Record<string, string[]> }): select and zoom to features.
- closeBubble(): close any open info bubble.

Search, locate, identify
- identifyByXY({ x, y }): identify features at a point.
- identifyByXYAndLayer({ x, y, layers: string[] }): identify features of specific layers at a point.
- searchAndLocate({ type: addressToLotParcel|lotParcelToAddress, address?, lot?, parcel? }): locate by address or reverse-locate by lot/parcel.
- getLayerData({ LayerName: string, Point: { x, y }, Radius: number }): layer data around a point, radius in meters.

Spatial analysis
- intersectFeatures({ address?, geometry?, layerName: string, fields?: string[], getShapes?: boolean, whereClause? }): layer features by address or WKT.
- searchInLayer({ layerName, fieldName, fieldValues, highlight?, showBubble?, outLineColor?, fillColor? }): find features by field values.

General rules
- whereClause is one SQL-style filter built from (condition) blocks comparing a field to a value with =, <>, <, >, >=, <= or IN (...). Strings in single quotes, numbers bare, conditions joined with AND / OR.
  Example: "(SETL_NAME = 'תל אביב-יפו') AND (COMPANY = 'פז')".
- Keep commands minimal: do only what the user asked.
- If a parameter is unknown or the right function is unclear, ask a short clarifying question instead of guessing.
""".strip()


# ─────────────────────────────────────────────────────────────────────────────
# Argument model
# ─────────────────────────────────────────────────────────────────────────────


class MapCommandSpec(BaseModel):
    """One planned map function call as emitted by the model."""
    fn: str = Field(..., min_length=1)
    args: dict[str, Any] = Field(default_factory=dict)

    @field_validator("args", mode="before")
    @classmethod
    def _object_args(cls, v: Any) -> Any:
        return v if isinstance(v, dict) else {}


class GovmapCallArgs(BaseModel):
    commands: list[MapCommandSpec] = Field(..., min_length=1)
    explanation: Optional[str] = None


GOVMAP_CALL_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "commands": {
            "type": "array",
            "description": (
                "Map commands (fn + args) the frontend executes in order as govmap[fn](args)."
            ),
            "items": {
                "type": "object",
                "properties": {
                    "fn": {
                        "type": "string",
                        "description": (
                            "Map function name, e.g. 'zoomToXY', 'setVisibleLayers', "
                            "'intersectFeatures', 'filterLayers'. Only functions from the reference."
                        ),
                    },
                    "args": {
                        "type": "object",
                        "description": (
                            "Named arguments for the function, using the keys shown in the "
                            "reference (e.g. 'x', 'y', 'level', 'layers', 'whereClause')."
                        ),
                        "additionalProperties": True,
                    },
                },
                "required": ["fn", "args"],
            },
            "minItems": 1,
        },
        "explanation": {
            "type": "string",
            "description": (
                "Short sentence in the user's language (Hebrew or English) describing "
                "the visible effect on the map."
            ),
        },
    },
    "required": ["commands"],
}

GOVMAP_CALL_DESCRIPTION = """
Plan one or more map API calls to change the map in the user's browser.
You do not execute them yourself: the frontend runs each command as govmap[fn](args)
and returns the results in a later message.

Usage rules:
- Use this tool whenever the user wants to change the map view, layers, filters or selections, or run a spatial query.
- Use only real function names from the map API reference.
- Use as few commands as possible.
- When you need data back (searchAndLocate, intersectFeatures, selectFeaturesOnMap, ...), say which fields to return.
- If results for the same operation already exist in the conversation, answer from them instead of calling again.
- The explanation is one short sentence in the user's language about the visible effect only.
""".strip()


# ─────────────────────────────────────────────────────────────────────────────
# Catalog
# ─────────────────────────────────────────────────────────────────────────────


class MapCommandCatalog:
    """Resolves calling conventions and builds ClientCommands for govmap_call."""

    def __init__(
        self,
        signatures: Optional[dict[str, tuple[str, ...]]] = None,
        guide: str = GOVMAP_API_GUIDE,
    ):
        self._signatures = dict(POSITIONAL_SIGNATURES if signatures is None else signatures)
        self.guide = guide

    def convention_for(self, fn: str) -> CallingConvention:
        if fn in self._signatures:
            return CallingConvention.POSITIONAL
        return CallingConvention.KEYWORD

    def normalize(self, fn: str, args: dict[str, Any]) -> MapCall:
        """Adapt one call's arguments to the function's calling convention."""
        signature = self._signatures.get(fn)
        if signature is None:
            return MapCall(fn=fn, convention=CallingConvention.KEYWORD, args=dict(args))
        ordered = [args.get(key) for key in signature]
        return MapCall(
            fn=fn,
            convention=CallingConvention.POSITIONAL,
            args=trim_trailing_nulls(ordered),
        )

    def build_command(self, tool_call_id: str, args: GovmapCallArgs) -> ClientCommand:
        """Client-venue builder registered for govmap_call."""
        calls = [self.normalize(spec.fn, spec.args) for spec in args.commands]
        log.debug(
            "map_commands.built",
            tool_call_id=tool_call_id,
            fns=[c.fn for c in calls],
        )
        return ClientCommand(
            tool_call_id=tool_call_id,
            capability=MAP_CAPABILITY_NAME,
            calls=calls,
            note=args.explanation or None,
        )


def trim_trailing_nulls(values: list[Any]) -> list[Any]:
    trimmed = list(values)
    while trimmed and trimmed[-1] is None:
        trimmed.pop()
    return trimmed


def register_map_capability(registry: CapabilityRegistry, catalog: MapCommandCatalog) -> None:
    registry.register(
        name=MAP_CAPABILITY_NAME,
        description=GOVMAP_CALL_DESCRIPTION,
        args_model=GovmapCallArgs,
        venue=ExecutionVenue.CLIENT,
        category="map",
        usage="change the map or query map layers; results arrive on the next turn",
        parameters=GOVMAP_CALL_PARAMETERS,
    )(catalog.build_command)
