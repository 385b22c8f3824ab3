"""
tests/unit/test_search.py — Place Search Suggestion Tests

Covers:
  - empty query short-circuits without a provider call
  - missing key → SearchUnavailableError, HTTP failure → SearchProviderError
  - prediction + details → suggestion (id, badge, kind, zoom action)
  - non-OK status surfaces error text, ZERO_RESULTS does not
  - failed or unreadable details lookups are skipped, predictions capped at 6
  - unreadable autocomplete body → SearchProviderError
"""

from __future__ import annotations

import httpx
import pytest

from exceptions import SearchProviderError, SearchUnavailableError
from gateway.search import MAX_PREDICTIONS, GoogleSearchHelper, badge_for, is_address


_TEL_AVIV = {"lat": 32.0853, "lng": 34.7818}


def _helper(handler, key="g-key") -> tuple[GoogleSearchHelper, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def record(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    http = httpx.AsyncClient(transport=httpx.MockTransport(record))
    return GoogleSearchHelper(key, http=http), seen


def _provider(predictions, details_by_id, status="OK"):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/place/autocomplete/json"):
            return httpx.Response(200, json={"status": status, "predictions": predictions})
        place_id = request.url.params["place_id"]
        detail = details_by_id.get(place_id)
        if detail is None:
            return httpx.Response(500)
        return httpx.Response(200, json={"status": "OK", "result": detail})
    return handler


class TestBadges:

    def test_badges(self):
        assert badge_for(["street_address"]) == "כתובת"
        assert badge_for(["route"]) == "רחוב"
        assert badge_for(["locality", "political"]) == "יישוב"
        assert badge_for(["establishment"]) == "מקום"
        assert badge_for(None) == "תוצאה"

    def test_is_address(self):
        assert is_address(["Locality"])
        assert not is_address(["point_of_interest"])
        assert not is_address([])


@pytest.mark.asyncio
class TestGoogleSearchHelper:

    async def test_empty_query(self):
        helper, seen = _helper(lambda r: httpx.Response(500))
        assert await helper.suggest("   ") == ([], None)
        assert seen == []

    async def test_missing_key(self):
        helper, _ = _helper(lambda r: httpx.Response(200), key=None)
        assert not helper.configured
        with pytest.raises(SearchUnavailableError):
            await helper.suggest("דיזנגוף")

    async def test_autocomplete_http_failure(self):
        helper, _ = _helper(lambda r: httpx.Response(500))
        with pytest.raises(SearchProviderError) as exc_info:
            await helper.suggest("דיזנגוף")
        assert exc_info.value.status_code == 502

    async def test_suggestion_built(self):
        handler = _provider(
            [{"place_id": "abc", "description": "Dizengoff 50, Tel Aviv",
              "structured_formatting": {"main_text": "Dizengoff 50", "secondary_text": "Tel Aviv"}}],
            {"abc": {"name": "Dizengoff 50", "formatted_address": "Dizengoff St 50, Tel Aviv",
                     "types": ["street_address"], "geometry": {"location": _TEL_AVIV}}},
        )
        helper, seen = _helper(handler)
        suggestions, error = await helper.suggest("דיזנגוף 50")

        assert error is None
        params = seen[0].url.params
        assert params["components"] == "country:il"
        assert params["language"] == "he"

        [s] = suggestions
        assert s.id == "gg-abc"
        assert s.title == "Dizengoff 50"
        assert s.subtitle == "Tel Aviv"
        assert s.kind == "address"
        assert s.badge == "כתובת"
        assert s.action.type == "zoom"
        assert s.action.level == 12
        assert s.action.term == "Dizengoff 50"
        assert 175_000 < s.action.x < 185_000

    async def test_zero_results_has_no_error(self):
        helper, _ = _helper(_provider([], {}, status="ZERO_RESULTS"))
        assert await helper.suggest("xyz") == ([], None)

    async def test_non_ok_status_reports_error(self):
        def handler(request):
            return httpx.Response(200, json={"status": "REQUEST_DENIED", "error_message": "key invalid"})

        helper, _ = _helper(handler)
        assert await helper.suggest("xyz") == ([], "key invalid")

    async def test_failed_details_skipped(self):
        handler = _provider(
            [{"place_id": "good"}, {"place_id": "bad"}, {"description": "no id"}],
            {"good": {"name": "Azrieli", "types": ["establishment"],
                      "geometry": {"location": _TEL_AVIV}}},
        )
        helper, _ = _helper(handler)
        suggestions, _ = await helper.suggest("עזריאלי")
        assert [s.id for s in suggestions] == ["gg-good"]
        assert suggestions[0].kind == "feature"
        assert suggestions[0].badge == "מקום"

    async def test_predictions_capped(self):
        ids = [f"p{i}" for i in range(10)]
        details = {i: {"name": i, "geometry": {"location": _TEL_AVIV}} for i in ids}
        helper, seen = _helper(_provider([{"place_id": i} for i in ids], details))
        suggestions, _ = await helper.suggest("רחוב")
        assert len(suggestions) == MAX_PREDICTIONS
        assert len(seen) == 1 + MAX_PREDICTIONS

    async def test_unreadable_details_body_skipped(self):
        def handler(request):
            if request.url.path.endswith("/place/autocomplete/json"):
                return httpx.Response(200, json={"status": "OK", "predictions": [
                    {"place_id": "p1"}, {"place_id": "p2"}, {"place_id": "p3"},
                ]})
            place_id = request.url.params["place_id"]
            if place_id == "p1":
                return httpx.Response(200, text="<html>gateway hiccup</html>")
            if place_id == "p2":
                return httpx.Response(200, json=["not", "an", "object"])
            return httpx.Response(200, json={"status": "OK", "result": {
                "name": "Azrieli", "geometry": {"location": _TEL_AVIV},
            }})

        helper, _ = _helper(handler)
        suggestions, error = await helper.suggest("azrieli")
        assert error is None
        assert [s.id for s in suggestions] == ["gg-p3"]

    @pytest.mark.parametrize("body", [
        {"text": "not json"},
        {"json": [{"status": "OK"}]},
    ])
    async def test_unreadable_autocomplete_body(self, body):
        helper, _ = _helper(lambda r: httpx.Response(200, **body))
        with pytest.raises(SearchProviderError) as exc_info:
            await helper.suggest("azrieli")
        assert exc_info.value.status_code == 502
