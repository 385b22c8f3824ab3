"""
tests/unit/test_client_executor.py — Client Executor Tests

Covers:
  - positional calls spread, keyword calls get one options object
  - unknown function → "Error: Function not found"
  - provider exception → "Error: execution error: <detail>"
  - results tagged with the command's tool_call_id, in call order
  - async provider functions awaited
"""

from __future__ import annotations

import pytest

from agent.client_executor import FUNCTION_NOT_FOUND, ClientExecutor, FunctionTableProvider
from tools.types import CallingConvention, ClientCommand, MapCall


def _command(call_id: str, *calls: MapCall) -> ClientCommand:
    return ClientCommand(tool_call_id=call_id, capability="govmap_call", calls=list(calls))


@pytest.mark.asyncio
class TestClientExecutor:

    async def test_conventions(self):
        seen = []

        def set_visible_layers(on, off=None):
            seen.append(("setVisibleLayers", on, off))
            return "visible"

        def zoom_to_xy(options):
            seen.append(("zoomToXY", options))
            return {"zoomed": True}

        executor = ClientExecutor(FunctionTableProvider({
            "setVisibleLayers": set_visible_layers,
            "zoomToXY": zoom_to_xy,
        }))
        results = await executor.execute([_command(
            "m1",
            MapCall(fn="setVisibleLayers", convention=CallingConvention.POSITIONAL, args=[["parcels"]]),
            MapCall(fn="zoomToXY", args={"x": 1, "y": 2, "level": 8}),
        )])

        assert seen == [
            ("setVisibleLayers", ["parcels"], None),
            ("zoomToXY", {"x": 1, "y": 2, "level": 8}),
        ]
        assert [(r.tool_call_id, r.fn, r.result) for r in results] == [
            ("m1", "setVisibleLayers", "visible"),
            ("m1", "zoomToXY", {"zoomed": True}),
        ]

    async def test_unknown_function(self):
        executor = ClientExecutor(FunctionTableProvider({}))
        [result] = await executor.execute([_command("m1", MapCall(fn="flyToMars"))])
        assert result.result == FUNCTION_NOT_FOUND == "Error: Function not found"

    async def test_provider_exception_reported(self):
        def broken(options):
            raise ValueError("layer not loaded")

        executor = ClientExecutor(FunctionTableProvider({"filterLayers": broken}))
        [result] = await executor.execute([_command("m2", MapCall(fn="filterLayers"))])
        assert result.result == "Error: execution error: layer not loaded"
        assert result.tool_call_id == "m2"

    async def test_async_functions_awaited(self):
        async def get_zoom():
            return 9

        executor = ClientExecutor(FunctionTableProvider({"getZoomLevel": get_zoom}))
        [result] = await executor.execute([_command(
            "m3", MapCall(fn="getZoomLevel", convention=CallingConvention.POSITIONAL, args=[])
        )])
        assert result.result == 9

    async def test_results_serialize_for_next_request(self):
        executor = ClientExecutor(FunctionTableProvider({"zoomIn": lambda: None}))
        results = await executor.execute([
            _command("a", MapCall(fn="zoomIn", convention=CallingConvention.POSITIONAL, args=[])),
            _command("b", MapCall(fn="nope")),
        ])
        wire = [r.model_dump() for r in results]
        assert wire == [
            {"tool_call_id": "a", "fn": "zoomIn", "result": None},
            {"tool_call_id": "b", "fn": "nope", "result": FUNCTION_NOT_FOUND},
        ]
