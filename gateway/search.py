"""
gateway/search.py — Place Search Suggestions

Backs GET /search/google-geocode: Google Places autocomplete restricted to
Israel, then a details lookup for up to 6 predictions to get coordinates.
Each suggestion carries a zoom action in ITM coordinates.

Errors:
    no Google key                       → SearchUnavailableError (503)
    autocomplete transport/HTTP failure
    or unreadable body                  → SearchProviderError (502)
    non-OK autocomplete status          → empty list + error text
    failed details lookup               → that prediction is skipped
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx

from exceptions import SearchProviderError, SearchUnavailableError
from observability.logger import get_logger
from tools.projection import wgs84_to_itm
from tools.server_capabilities import GOOGLE_MAPS_BASE_URL

from gateway.protocol import SearchAction, SearchSuggestion

log = get_logger(__name__)

MAX_PREDICTIONS = 6
ZOOM_LEVEL = 12
DETAIL_FIELDS = "geometry,name,formatted_address,types"

_ADDRESS_TYPES = {"street_address", "premise", "route", "locality", "political"}


def is_address(types: Optional[list[str]]) -> bool:
    if not types:
        return False
    return bool({t.lower() for t in types} & _ADDRESS_TYPES)


def badge_for(types: Optional[list[str]]) -> str:
    """Hebrew badge shown next to a suggestion."""
    if not types:
        return "תוצאה"
    if "street_address" in types or "premise" in types:
        return "כתובת"
    if "route" in types:
        return "רחוב"
    if "locality" in types or "political" in types:
        return "יישוב"
    if "point_of_interest" in types or "establishment" in types:
        return "מקום"
    return "תוצאה"


def _first(*values: Any) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value:
            return value
    return None


def to_suggestion(
    prediction: dict[str, Any],
    details: dict[str, Any],
    idx: int,
    fallback_title: str,
) -> Optional[SearchSuggestion]:
    location = (details.get("geometry") or {}).get("location") or {}
    lat, lng = location.get("lat"), location.get("lng")
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None
    itm = wgs84_to_itm(lng, lat)
    if itm is None:
        return None

    formatting = prediction.get("structured_formatting") or {}
    title = _first(
        details.get("name"),
        details.get("formatted_address"),
        formatting.get("main_text"),
        prediction.get("description"),
    ) or fallback_title
    subtitle = _first(
        formatting.get("secondary_text"),
        details.get("formatted_address"),
        prediction.get("description"),
    )
    types = details.get("types") or prediction.get("types")

    return SearchSuggestion(
        id=f"gg-{prediction.get('place_id') or idx}",
        title=title,
        subtitle=subtitle,
        kind="address" if is_address(types) else "feature",
        badge=badge_for(types),
        action=SearchAction(x=itm["x"], y=itm["y"], level=ZOOM_LEVEL, term=title),
    )


class GoogleSearchHelper:
    """
    Usage:
        helper = GoogleSearchHelper(settings.google_key)
        suggestions, error = await helper.suggest("דיזנגוף 50")
    """

    def __init__(
        self,
        google_key: Optional[str],
        http: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self._google_key = google_key
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=timeout)

    @property
    def configured(self) -> bool:
        return bool(self._google_key)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def suggest(self, text: str) -> tuple[list[SearchSuggestion], Optional[str]]:
        """Return (suggestions, error_text). An empty query returns ([], None)."""
        text = text.strip()
        if not text:
            return [], None
        if not self._google_key:
            raise SearchUnavailableError("Google Maps API key is not configured on the server")

        try:
            response = await self._http.get(
                f"{GOOGLE_MAPS_BASE_URL}/place/autocomplete/json",
                params={
                    "input": text,
                    "key": self._google_key,
                    "language": "he",
                    "components": "country:il",
                },
            )
        except httpx.HTTPError as e:
            log.error("search.autocomplete_failed", error=str(e))
            raise SearchProviderError(f"Google Places autocomplete failed: {e}") from e
        if response.is_error:
            log.error("search.autocomplete_failed", status=response.status_code)
            raise SearchProviderError(f"Google Places autocomplete returned {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            log.error("search.autocomplete_failed", error="invalid JSON body")
            raise SearchProviderError("Google Places autocomplete returned an invalid body") from e
        if not isinstance(data, dict):
            log.error("search.autocomplete_failed", error="body is not an object")
            raise SearchProviderError("Google Places autocomplete returned an invalid body")

        status = data.get("status")
        predictions = data.get("predictions") if status == "OK" else None
        if not isinstance(predictions, list):
            predictions = []

        error = None
        if status not in ("OK", "ZERO_RESULTS"):
            error = data.get("error_message") or (f"Google Places status {status}" if status else None)
            log.warning("search.autocomplete_status", status=status, error=error)

        detailed = await asyncio.gather(*(
            self._suggestion(prediction, idx, text)
            for idx, prediction in enumerate(predictions[:MAX_PREDICTIONS])
        ))
        suggestions = [s for s in detailed if s is not None]
        log.info("search.suggested", predictions=len(predictions), suggestions=len(suggestions))
        return suggestions, error

    async def _suggestion(self, prediction: Any, idx: int, text: str) -> Optional[SearchSuggestion]:
        if not isinstance(prediction, dict) or not prediction.get("place_id"):
            return None
        details = await self._details(prediction["place_id"])
        if details is None:
            return None
        return to_suggestion(prediction, details, idx, text)

    async def _details(self, place_id: str) -> Optional[dict[str, Any]]:
        try:
            response = await self._http.get(
                f"{GOOGLE_MAPS_BASE_URL}/place/details/json",
                params={"place_id": place_id, "key": self._google_key, "fields": DETAIL_FIELDS},
            )
        except httpx.HTTPError as e:
            log.warning("search.details_failed", place_id=place_id, error=str(e))
            return None
        if response.is_error:
            log.warning("search.details_failed", place_id=place_id, status=response.status_code)
            return None

        try:
            data = response.json()
        except ValueError:
            log.warning("search.details_failed", place_id=place_id, error="invalid JSON body")
            return None
        if not isinstance(data, dict):
            log.warning("search.details_failed", place_id=place_id, error="body is not an object")
            return None

        if data.get("status") != "OK" or not isinstance(data.get("result"), dict):
            log.warning("search.details_status", place_id=place_id, status=data.get("status"))
            return None
        return data["result"]
