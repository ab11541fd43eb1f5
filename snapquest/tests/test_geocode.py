"""
Tests for geocode resolvers.

NominatimResolver is exercised against a local aiohttp server.
"""

import asyncio

from aiohttp import web

from ..core.models import Coordinates
from ..detection.geocode import (
    NominatimResolver,
    NullGeocodeResolver,
    StaticGeocodeResolver,
    parse_nominatim_result,
)
from .conftest import run


async def _serve(handler):
    app = web.Application()
    app.router.add_get("/search", handler)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", 0)
    await site.start()
    host, port = runner.addresses[0][:2]
    return runner, f"http://{host}:{port}/search"


class TestParseNominatimResult:
    """Tests for parse_nominatim_result."""

    def test_first_hit(self):
        data = [{"lat": "46.7698", "lon": "23.5897"}, {"lat": "0", "lon": "0"}]
        assert parse_nominatim_result(data) == Coordinates(lat=46.7698, lon=23.5897)

    def test_empty_list(self):
        assert parse_nominatim_result([]) is None

    def test_not_a_list(self):
        assert parse_nominatim_result({"error": "rate limited"}) is None

    def test_malformed_hit(self):
        assert parse_nominatim_result([{"lat": "north"}]) is None


class TestNominatimResolver:
    """Tests against a local HTTP server."""

    def test_resolves_query(self):
        seen = {}

        async def handler(request):
            seen.update(request.query)
            seen["user_agent"] = request.headers.get("User-Agent")
            return web.json_response([{"lat": "46.77", "lon": "23.59"}])

        async def scenario():
            runner, url = await _serve(handler)
            resolver = NominatimResolver(base_url=url, timeout=2, user_agent="snapquest-test")
            try:
                return await resolver.resolve("Union Square Cluj-Napoca")
            finally:
                await resolver.close()
                await runner.cleanup()

        coordinates = run(scenario())

        assert coordinates == Coordinates(lat=46.77, lon=23.59)
        assert seen["q"] == "Union Square Cluj-Napoca"
        assert seen["format"] == "json"
        assert seen["limit"] == "1"
        assert seen["user_agent"] == "snapquest-test"

    def test_http_error_yields_none(self):
        async def handler(request):
            return web.Response(status=503, text="busy")

        async def scenario():
            runner, url = await _serve(handler)
            resolver = NominatimResolver(base_url=url, timeout=2)
            try:
                return await resolver.resolve("anything")
            finally:
                await resolver.close()
                await runner.cleanup()

        assert run(scenario()) is None

    def test_non_json_body_yields_none(self):
        async def handler(request):
            return web.Response(text="<html>oops</html>")

        async def scenario():
            runner, url = await _serve(handler)
            resolver = NominatimResolver(base_url=url, timeout=2)
            try:
                return await resolver.resolve("anything")
            finally:
                await resolver.close()
                await runner.cleanup()

        assert run(scenario()) is None

    def test_timeout_yields_none(self):
        async def handler(request):
            await asyncio.sleep(1)
            return web.json_response([])

        async def scenario():
            runner, url = await _serve(handler)
            resolver = NominatimResolver(base_url=url, timeout=0.1)
            try:
                return await resolver.resolve("anything")
            finally:
                await resolver.close()
                await runner.cleanup()

        assert run(scenario()) is None

    def test_unreachable_host_yields_none(self):
        async def scenario():
            resolver = NominatimResolver(base_url="http://127.0.0.1:9/search", timeout=1)
            try:
                return await resolver.resolve("anything")
            finally:
                await resolver.close()

        assert run(scenario()) is None

    def test_blank_query_skips_network(self):
        resolver = NominatimResolver(base_url="http://127.0.0.1:9/search")
        assert run(resolver.resolve("   ")) is None


class TestStaticResolvers:
    def test_case_insensitive_lookup(self):
        resolver = StaticGeocodeResolver({"Union Square": Coordinates(1.0, 2.0)})
        assert run(resolver.resolve("union square")) == Coordinates(1.0, 2.0)
        assert resolver.queries == ["union square"]

    def test_unknown_query(self):
        assert run(StaticGeocodeResolver().resolve("nowhere")) is None

    def test_null_resolver(self):
        assert run(NullGeocodeResolver().resolve("Union Square")) is None
