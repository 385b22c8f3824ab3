"""
tests/unit/test_server_capabilities.py — Server Capability Tests

Providers are stubbed with httpx.MockTransport.

Covers:
  - language detection
  - argument models: maxResults alias + clamping
  - web_search: Tavily request shape, result mapping, missing key
  - google_places_lookup / google_geocode: Israel bias first, global
    fallback in the alternate language, ITM enrichment, error payloads
  - google_route: first route only, leg distance/duration, ITM endpoints
  - registration in the default registry
"""

from __future__ import annotations

import json

import httpx
import pytest

from tools.capability_registry import build_default_registry
from tools.server_capabilities import (
    PlacesLookupArgs,
    ServerCapabilities,
    WebSearchArgs,
    detect_language,
)
from tools.types import ExecutionVenue


def _caps(handler, google_key="g-key", tavily_key="t-key") -> tuple[ServerCapabilities, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(record))
    return ServerCapabilities(google_key=google_key, tavily_key=tavily_key, http=http), seen


_HAIFA = {"lat": 32.794, "lng": 34.9896}


class TestHelpers:

    def test_detect_language(self):
        assert detect_language("חוף הכרמל") == "he"
        assert detect_language("Carmel beach") == "en"
        assert detect_language("") == "en"

    def test_max_results_alias_and_clamp(self):
        assert WebSearchArgs.model_validate({"query": "q", "maxResults": 9}).max_results == 5
        assert WebSearchArgs.model_validate({"query": "q", "maxResults": 0}).max_results == 1
        assert PlacesLookupArgs.model_validate({"query": "q"}).max_results == 3
        assert PlacesLookupArgs.model_validate({"query": "q", "max_results": 2}).max_results == 2


@pytest.mark.asyncio
class TestWebSearch:

    async def test_results_mapped(self):
        def handler(request):
            body = json.loads(request.content)
            assert request.headers["Authorization"] == "Bearer t-key"
            assert body["query"] == "Haifa weather"
            assert body["max_results"] == 2
            return httpx.Response(200, json={
                "answer": "Sunny",
                "results": [
                    {"title": "A", "url": "https://a", "content": "aa"},
                    {"title": "B", "url": "https://b", "content": "bb"},
                    {"title": "C", "url": "https://c", "content": "cc"},
                ],
            })

        caps, _ = _caps(handler)
        result = await caps.web_search("Haifa weather", max_results=2)
        assert result["ok"] is True
        assert result["answer"] == "Sunny"
        assert result["provider"] == "tavily"
        assert result["results"] == [
            {"title": "A", "link": "https://a", "snippet": "aa"},
            {"title": "B", "link": "https://b", "snippet": "bb"},
        ]

    async def test_missing_key(self):
        caps, seen = _caps(lambda r: httpx.Response(500), tavily_key=None)
        result = await caps.web_search("q")
        assert result == {"ok": False, "error": "Web search requires TAVILY_API_KEY to be set"}
        assert seen == []

    async def test_http_error(self):
        caps, _ = _caps(lambda r: httpx.Response(429, text="quota"))
        result = await caps.web_search("q")
        assert result["ok"] is False
        assert "429" in result["error"]

    async def test_blank_query(self):
        caps, _ = _caps(lambda r: httpx.Response(200, json={}))
        assert (await caps.web_search("   "))["error"] == "Missing query"


@pytest.mark.asyncio
class TestGoogleLookups:

    async def test_places_israel_bias_first(self):
        def handler(request):
            assert request.url.path.endswith("/place/textsearch/json")
            return httpx.Response(200, json={"status": "OK", "results": [
                {"name": "Bahai Gardens", "formatted_address": "Haifa", "place_id": "p1",
                 "geometry": {"location": _HAIFA}},
            ]})

        caps, seen = _caps(handler)
        result = await caps.google_places_lookup("גני הבהאים")
        assert len(seen) == 1
        params = seen[0].url.params
        assert params["region"] == "il"
        assert params["language"] == "he"
        assert params["query"] == "גני הבהאים"
        [place] = result["results"]
        assert place["name"] == "Bahai Gardens"
        assert place["location"] == _HAIFA
        assert 195_000 < place["itm"]["x"] < 205_000

    async def test_fallback_to_global_alternate_language(self):
        responses = [
            httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []}),
            httpx.Response(200, json={"status": "OK", "results": [
                {"formatted_address": "Haifa, Israel", "geometry": {"location": _HAIFA}},
            ]}),
        ]
        caps, seen = _caps(lambda r: responses.pop(0))
        result = await caps.google_geocode("חיפה")

        assert len(seen) == 2
        assert "region" not in seen[1].url.params
        assert seen[1].url.params["language"] == "en"
        assert seen[1].url.params["address"] == "חיפה"
        assert result["ok"] is True
        assert result["results"][0]["formatted_address"] == "Haifa, Israel"

    async def test_no_results_anywhere(self):
        caps, _ = _caps(lambda r: httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []}))
        result = await caps.google_geocode("nowhere")
        assert result["ok"] is False
        assert result["status"] == "ZERO_RESULTS"

    async def test_http_error_payload(self):
        caps, _ = _caps(lambda r: httpx.Response(503, text="down"))
        result = await caps.google_places_lookup("cafe")
        assert result["ok"] is False
        assert result["status"] == 503

    async def test_missing_google_key(self):
        caps, seen = _caps(lambda r: httpx.Response(200), google_key=None)
        result = await caps.google_geocode("Haifa")
        assert result == {"ok": False, "error": "GOOGLE_MAPS_API_KEY/GOOGLE_API_KEY is not set"}
        assert seen == []


@pytest.mark.asyncio
class TestRoute:

    async def test_first_route_summarized(self):
        def handler(request):
            assert request.url.params["mode"] == "walking"
            return httpx.Response(200, json={"status": "OK", "routes": [
                {
                    "summary": "Route 2",
                    "legs": [{
                        "distance": {"value": 95000},
                        "duration": {"value": 4200},
                        "start_address": "Tel Aviv",
                        "end_address": "Haifa",
                        "start_location": {"lat": 32.0853, "lng": 34.7818},
                        "end_location": _HAIFA,
                    }],
                    "overview_polyline": {"points": "abc"},
                },
                {"summary": "Route 6", "legs": []},
            ]})

        caps, _ = _caps(handler)
        result = await caps.google_route("Tel Aviv", "Haifa", mode="walking")
        assert result["ok"] is True
        [route] = result["routes"]
        assert route["summary"] == "Route 2"
        assert route["distance_meters"] == 95000
        assert route["duration_seconds"] == 4200
        assert route["start_itm"]["y"] < route["end_itm"]["y"]

    async def test_missing_endpoints(self):
        caps, _ = _caps(lambda r: httpx.Response(200))
        assert (await caps.google_route("", "Haifa"))["error"] == "Missing origin or destination"

    async def test_status_not_ok(self):
        caps, _ = _caps(lambda r: httpx.Response(200, json={"status": "NOT_FOUND"}))
        result = await caps.google_route("a", "b")
        assert result == {"ok": False, "status": "NOT_FOUND", "error": "Directions lookup failed"}


class TestRegistration:

    def test_default_registry(self):
        registry = build_default_registry(ServerCapabilities())
        assert registry.list_names() == [
            "govmap_call", "web_search", "google_places_lookup", "google_geocode", "google_route",
        ]
        servers = registry.list_descriptors(ExecutionVenue.SERVER)
        assert {d.name for d in servers} == {
            "web_search", "google_places_lookup", "google_geocode", "google_route",
        }
        assert registry.get("google_route").parameters["required"] == ["origin", "destination"]
