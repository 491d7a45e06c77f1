"""Tests for the remote catalog client."""

from __future__ import annotations

import json

import pytest
from aiohttp import web

from mcp_dashboard.catalog import CatalogClient, parse_catalog
from mcp_dashboard.errors import CatalogError
from mcp_dashboard.models import PackageRegistry


class TestParseCatalog:
    """Tests for parse_catalog."""

    def test_parses_entries(self, catalog_data):
        servers = parse_catalog(catalog_data)
        assert [s.name for s in servers] == ["echo-server", "notes", "github"]

    def test_skips_bad_entries(self):
        """Test one broken entry doesn't take the whole catalog down."""
        servers = parse_catalog({
            "ok": {"npxSetup": {"package": "ok-mcp"}},
            "broken": {"launchStrategy": {"type": "helm"}},
            "junk": "not an object",
        })
        assert [s.name for s in servers] == ["ok"]

    def test_not_an_object(self):
        with pytest.raises(CatalogError):
            parse_catalog(["echo-server"])


class TestCatalogClient:
    """Tests for CatalogClient.fetch."""

    @pytest.mark.asyncio
    async def test_fetch(self, serve, catalog_data):
        """Test a plain-text JSON body is accepted and headers disable caching."""
        seen_headers = {}

        async def handler(request):
            seen_headers.update(request.headers)
            return web.Response(text=json.dumps(catalog_data), content_type="text/plain")

        server = await serve(handler)
        try:
            servers = await CatalogClient(str(server.make_url("/catalog.json"))).fetch()
        finally:
            await server.close()

        by_name = {s.name: s for s in servers}
        assert isinstance(by_name["echo-server"].launch_strategy, PackageRegistry)
        assert seen_headers["Cache-Control"] == "no-cache"

    @pytest.mark.asyncio
    async def test_http_error(self, serve):
        async def handler(request):
            return web.Response(status=500, text="gist is down")

        server = await serve(handler)
        try:
            with pytest.raises(CatalogError) as exc_info:
                await CatalogClient(str(server.make_url("/catalog.json"))).fetch()
        finally:
            await server.close()

        assert "500" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_invalid_json(self, serve):
        async def handler(request):
            return web.Response(text="{nope")

        server = await serve(handler)
        try:
            with pytest.raises(CatalogError):
                await CatalogClient(str(server.make_url("/catalog.json"))).fetch()
        finally:
            await server.close()

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        with pytest.raises(CatalogError) as exc_info:
            await CatalogClient("http://127.0.0.1:1/catalog.json", timeout=5).fetch()
        assert exc_info.value.cause is not None
