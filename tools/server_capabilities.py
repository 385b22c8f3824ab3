"""
tools/server_capabilities.py — Server-Immediate Capabilities

Executed by the dispatcher inside the request, results folded back into
the same orchestration round.

Registered capabilities:
  - web_search            → Tavily search, top results + short answer
  - google_places_lookup  → Google Places text search
  - google_geocode        → Google Geocoding
  - google_route          → Google Directions, first route only

Places and geocode first search with an Israel region bias, then fall back
to a global search in the alternate language when nothing useful came back.
Coordinates are enriched with ITM x/y for the map.

Provider failures (missing key, HTTP error, non-OK status) are returned as
{"ok": false, "error": ...} payloads so the model can react to them.
"""

from __future__ import annotations

import re
from typing import Any, Literal, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from observability.logger import get_logger
from tools.capability_registry import CapabilityRegistry
from tools.projection import wgs84_to_itm
from tools.types import ExecutionVenue

log = get_logger(__name__)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"
GOOGLE_MAPS_BASE_URL = "https://maps.googleapis.com/maps/api"

_TIMEOUT = 15.0
_HEBREW = re.compile(r"[\u0590-\u05FF]")
_MISSING_GOOGLE_KEY = "GOOGLE_MAPS_API_KEY/GOOGLE_API_KEY is not set"


def detect_language(text: str) -> str:
    """'he' when the text contains Hebrew characters, else 'en'."""
    return "he" if text and _HEBREW.search(text) else "en"


# ─────────────────────────────────────────────────────────────────────────────
# Argument models
# ─────────────────────────────────────────────────────────────────────────────


def _clamp_results(v: Any) -> Any:
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return min(max(int(v), 1), 5)
    return v


class WebSearchArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str
    max_results: int = Field(default=3, alias="maxResults")

    @field_validator("max_results", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> Any:
        return _clamp_results(v)


class PlacesLookupArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    query: str
    max_results: int = Field(default=3, alias="maxResults")
    language: Optional[str] = None

    @field_validator("max_results", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> Any:
        return _clamp_results(v)


class GeocodeArgs(BaseModel):
    query: str
    language: Optional[str] = None


class RouteArgs(BaseModel):
    origin: str
    destination: str
    mode: Literal["driving", "walking", "bicycling", "transit"] = "driving"
    language: Optional[str] = None


_LANGUAGE_PROP = {
    "type": "string",
    "description": "Response language code (e.g. he, en). Defaults to the query's language.",
}

WEB_SEARCH_PARAMETERS = {
    "type": "object",
    "properties": {
        "query": {
            "type": "string",
            "description": "Search query with key nouns. Avoid full questions; keep it short.",
        },
        "maxResults": {"type": "number", "description": "Maximum results (1-5). Default 3."},
    },
    "required": ["query"],
}

PLACES_PARAMETERS = {
    "type": "object",
    "properties": {
        "query": {"type": "string", "description": "Business or place text to search."},
        "maxResults": {"type": "number", "description": "Limit results (1-5). Default 3."},
        "language": _LANGUAGE_PROP,
    },
    "required": ["query"],
}

GEOCODE_PARAMETERS = {
    "type": "object",
    "properties": {
        "query": {"type": "string", "description": "Address or place text to geocode."},
        "language": _LANGUAGE_PROP,
    },
    "required": ["query"],
}

ROUTE_PARAMETERS = {
    "type": "object",
    "properties": {
        "origin": {"type": "string", "description": "Starting address or place text."},
        "destination": {"type": "string", "description": "Destination address or place text."},
        "mode": {
            "type": "string",
            "enum": ["driving", "walking", "bicycling", "transit"],
            "description": "Travel mode. Defaults to driving.",
        },
        "language": _LANGUAGE_PROP,
    },
    "required": ["origin", "destination"],
}


# ─────────────────────────────────────────────────────────────────────────────
# Implementations
# ─────────────────────────────────────────────────────────────────────────────


class ServerCapabilities:
    """
    Provider-backed capabilities sharing one httpx.AsyncClient.

    Pass http= to inject a client (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        google_key: Optional[str] = None,
        tavily_key: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = _TIMEOUT,
    ):
        self._google_key = google_key
        self._tavily_key = tavily_key
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ── web_search ────────────────────────────────────────────────────────────

    async def web_search(self, query: str, max_results: int = 3) -> dict:
        query = query.strip()
        if not query:
            return {"ok": False, "error": "Missing query"}
        if not self._tavily_key:
            return {"ok": False, "error": "Web search requires TAVILY_API_KEY to be set"}

        log.debug("web_search.start", max_results=max_results)
        try:
            response = await self._http.post(
                TAVILY_SEARCH_URL,
                headers={"Authorization": f"Bearer {self._tavily_key}"},
                json={
                    "query": query,
                    "max_results": max_results,
                    "search_depth": "advanced",
                    "include_answer": True,
                    "include_raw_content": False,
                },
            )
            if response.is_error:
                return {"ok": False, "error": f"Tavily HTTP {response.status_code}: {response.text}"}
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return {"ok": False, "error": f"Search request failed (Tavily): {e}"}

        raw_results = data.get("results") if isinstance(data.get("results"), list) else []
        results = [
            {"title": item.get("title"), "link": item.get("url"), "snippet": item.get("content")}
            for item in raw_results[:max_results]
        ]
        log.debug("web_search.complete", result_count=len(results))
        return {
            "ok": True,
            "query": data.get("query") or query,
            "answer": data.get("answer"),
            "results": results,
            "provider": "tavily",
        }

    # ── google_places_lookup ──────────────────────────────────────────────────

    async def google_places_lookup(
        self,
        query: str,
        max_results: int = 3,
        language: Optional[str] = None,
    ) -> dict:
        query = query.strip()
        if not query:
            return {"ok": False, "error": "Missing query"}
        if not self._google_key:
            return {"ok": False, "error": _MISSING_GOOGLE_KEY}

        outcome = await self._search_with_fallback(
            f"{GOOGLE_MAPS_BASE_URL}/place/textsearch/json",
            {"query": query},
            language or detect_language(query),
            label="Places",
        )
        if "results" not in outcome:
            return outcome

        results = []
        for place in outcome["results"][:max_results]:
            location, itm = _location_and_itm((place.get("geometry") or {}).get("location"))
            results.append({
                "name": place.get("name"),
                "address": place.get("formatted_address"),
                "types": place.get("types"),
                "rating": place.get("rating"),
                "user_ratings_total": place.get("user_ratings_total"),
                "location": location,
                "itm": itm,
                "place_id": place.get("place_id"),
            })
        return {"ok": True, "query": query, "results": results}

    # ── google_geocode ────────────────────────────────────────────────────────

    async def google_geocode(self, query: str, language: Optional[str] = None) -> dict:
        query = query.strip()
        if not query:
            return {"ok": False, "error": "Missing query"}
        if not self._google_key:
            return {"ok": False, "error": _MISSING_GOOGLE_KEY}

        outcome = await self._search_with_fallback(
            f"{GOOGLE_MAPS_BASE_URL}/geocode/json",
            {"address": query},
            language or detect_language(query),
            label="Geocode",
        )
        if "results" not in outcome:
            return outcome

        results = []
        for hit in outcome["results"]:
            location, itm = _location_and_itm((hit.get("geometry") or {}).get("location"))
            results.append({
                "formatted_address": hit.get("formatted_address"),
                "types": hit.get("types"),
                "location": location,
                "itm": itm,
                "place_id": hit.get("place_id"),
            })
        return {"ok": True, "query": query, "results": results}

    # ── google_route ──────────────────────────────────────────────────────────

    async def google_route(
        self,
        origin: str,
        destination: str,
        mode: str = "driving",
        language: Optional[str] = None,
    ) -> dict:
        origin, destination = origin.strip(), destination.strip()
        if not origin or not destination:
            return {"ok": False, "error": "Missing origin or destination"}
        if not self._google_key:
            return {"ok": False, "error": _MISSING_GOOGLE_KEY}

        params = {
            "origin": origin,
            "destination": destination,
            "mode": mode,
            "language": language or detect_language(origin + destination),
            "units": "metric",
            "key": self._google_key,
        }
        try:
            response = await self._http.get(f"{GOOGLE_MAPS_BASE_URL}/directions/json", params=params)
            if response.is_error:
                return {"ok": False, "status": response.status_code,
                        "error": f"Directions HTTP {response.status_code}: {response.text}"}
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return {"ok": False, "error": f"Directions lookup failed: {e}"}

        if data.get("status") != "OK":
            return {
                "ok": False,
                "status": data.get("status"),
                "error": data.get("error_message") or "Directions lookup failed",
            }

        routes = []
        for route in (data.get("routes") or [])[:1]:
            leg = (route.get("legs") or [{}])[0]
            start, start_itm = _location_and_itm(leg.get("start_location"))
            end, end_itm = _location_and_itm(leg.get("end_location"))
            routes.append({
                "summary": route.get("summary"),
                "distance_meters": (leg.get("distance") or {}).get("value"),
                "duration_seconds": (leg.get("duration") or {}).get("value"),
                "start_address": leg.get("start_address"),
                "end_address": leg.get("end_address"),
                "start_location": start,
                "end_location": end,
                "start_itm": start_itm,
                "end_itm": end_itm,
                "warnings": route.get("warnings"),
                "overview_polyline": (route.get("overview_polyline") or {}).get("points"),
            })
        return {"ok": True, "origin": origin, "destination": destination, "mode": mode, "routes": routes}

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _search_with_fallback(
        self,
        url: str,
        params: dict[str, str],
        language: str,
        label: str,
    ) -> dict:
        """
        Israel-biased request, then a global one in the alternate language.

        Returns {"results": [...]} on success, otherwise an error payload.
        """
        try:
            first = await self._http.get(
                url, params={**params, "language": language, "region": "il", "key": self._google_key}
            )
            if first.is_error:
                return {"ok": False, "status": first.status_code,
                        "error": f"{label} HTTP {first.status_code}: {first.text}"}
            data = first.json()

            if data.get("status") != "OK" or not data.get("results"):
                fallback_language = "en" if language == "he" else language
                log.debug("google.fallback_search", label=label, language=fallback_language)
                second = await self._http.get(
                    url, params={**params, "language": fallback_language, "key": self._google_key}
                )
                if not second.is_error:
                    data = second.json()
        except (httpx.HTTPError, ValueError) as e:
            return {"ok": False, "error": f"{label} lookup failed: {e}"}

        results = data.get("results") if isinstance(data.get("results"), list) else []
        if data.get("status") != "OK" or not results:
            return {
                "ok": False,
                "status": data.get("status"),
                "error": data.get("error_message") or f"{label} lookup failed or returned no results",
            }
        return {"results": results}


def _location_and_itm(loc: Any) -> tuple[Optional[dict], Optional[dict]]:
    if not isinstance(loc, dict):
        return None, None
    lat, lng = loc.get("lat"), loc.get("lng")
    if lat is None or lng is None:
        return None, None
    return {"lat": lat, "lng": lng}, wgs84_to_itm(lng, lat)


# ─────────────────────────────────────────────────────────────────────────────
# Registration
# ─────────────────────────────────────────────────────────────────────────────


def register_server_capabilities(registry: CapabilityRegistry, caps: ServerCapabilities) -> None:
    registry.register(
        name="web_search",
        description="Search the public web (Tavily). Use only if the answer is not in the conversation.",
        args_model=WebSearchArgs,
        venue=ExecutionVenue.SERVER,
        category="search",
        usage="general internet information, not map control",
        parameters=WEB_SEARCH_PARAMETERS,
    )(caps.web_search)

    registry.register(
        name="google_places_lookup",
        description=(
            "Look up businesses or places via Google Places text search. Returns name, "
            "address and coordinates including Israel Transverse Mercator (ITM) x/y."
        ),
        args_model=PlacesLookupArgs,
        category="geo",
        usage="coordinates for a real-world place or business",
        parameters=PLACES_PARAMETERS,
    )(caps.google_places_lookup)

    registry.register(
        name="google_geocode",
        description=(
            "Geocode a free-text address or place name via Google Geocoding. Returns the "
            "formatted address and coordinates including ITM x/y."
        ),
        args_model=GeocodeArgs,
        category="geo",
        usage="coordinates for an address",
        parameters=GEOCODE_PARAMETERS,
    )(caps.google_geocode)

    registry.register(
        name="google_route",
        description=(
            "Estimated route, distance and duration between two places via Google Directions. "
            "Returns start/end coordinates including ITM x/y."
        ),
        args_model=RouteArgs,
        category="geo",
        usage="distance, duration and route between two places",
        parameters=ROUTE_PARAMETERS,
    )(caps.google_route)
