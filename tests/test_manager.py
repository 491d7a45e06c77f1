"""Tests for the dashboard manager facade."""

from __future__ import annotations

import asyncio
import json

import pytest
from aiohttp import web

from mcp_dashboard.errors import ServerAlreadyInstalledError
from mcp_dashboard.models import LaunchConfig, ServerDescriptor


@pytest.fixture
def serve_catalog(manager, catalog_data, serve):
    """Start a catalog server and point the manager at it."""
    async def start():
        async def handler(request):
            return web.json_response(catalog_data)

        server = await serve(handler)
        manager.catalog.url = str(server.make_url("/catalog.json"))
        return server

    return start


class TestListServers:
    """Tests for DashboardManager.list_servers."""

    @pytest.mark.asyncio
    async def test_splits_installed_and_available(self, manager, serve_catalog):
        server = await serve_catalog()
        try:
            await manager.registry.add("notes", LaunchConfig(command="/w.sh"))
            listing = await manager.list_servers()
        finally:
            await server.close()

        assert [s.name for s in listing.installed] == ["notes"]
        assert listing.installed[0].descriptor.launch_config.command == "/w.sh"
        assert [s.name for s in listing.available] == ["echo-server", "github"]
        assert listing.catalog_error is None

    @pytest.mark.asyncio
    async def test_catalog_down_still_lists_installed(self, manager):
        """Test installed state comes from the registry alone."""
        await manager.registry.add("orphan", LaunchConfig(command="/w.sh"))

        listing = await manager.list_servers()

        assert [s.name for s in listing.installed] == ["orphan"]
        assert listing.installed[0].descriptor is None
        assert listing.available == []
        assert listing.catalog_error
        assert await manager.is_installed("orphan")

        data = listing.to_dict()
        assert data["installed"][0]["enabled"] is True
        assert data["catalogError"] == listing.catalog_error


class TestOperations:
    """Tests for the install-side operations."""

    @pytest.mark.asyncio
    async def test_get_descriptor(self, manager, serve_catalog):
        server = await serve_catalog()
        try:
            descriptor = await manager.get_descriptor("echo-server")
            missing = await manager.get_descriptor("ghost")
        finally:
            await server.close()

        assert descriptor.name == "echo-server"
        assert missing is None

    @pytest.mark.asyncio
    async def test_install_twice(self, manager, catalog_data):
        descriptor = ServerDescriptor.from_dict(catalog_data["echo-server"])
        await manager.install(descriptor, {})

        with pytest.raises(ServerAlreadyInstalledError):
            await manager.install(descriptor, {})

    @pytest.mark.asyncio
    async def test_concurrent_install_same_server(self, manager, catalog_data, runner):
        """Test racing installs of one server run the pipeline once."""
        descriptor = ServerDescriptor.from_dict(catalog_data["echo-server"])

        results = await asyncio.gather(
            manager.install(descriptor, {}),
            manager.install(descriptor, {}),
            return_exceptions=True,
        )

        assert sum(isinstance(r, ServerAlreadyInstalledError) for r in results) == 1
        assert runner.commands.count(
            ("npx", "-y", "@smithery/cli", "install", "echo-mcp", "--client", manager.settings.smithery_client)
        ) == 1

    @pytest.mark.asyncio
    async def test_read_saved_environment(self, manager, catalog_data, home):
        descriptor = ServerDescriptor.from_dict(catalog_data["notes"])
        assert await manager.read_saved_environment(descriptor) is None

        await manager.install(descriptor, {"NOTES_TOKEN": "abc"})
        saved = await manager.read_saved_environment(descriptor)

        # NOTES_DIR was never submitted, so its catalog default comes back
        assert saved == {"NOTES_DIR": "~/notes", "NOTES_TOKEN": "abc"}

    @pytest.mark.asyncio
    async def test_uninstall_and_toggle(self, manager, catalog_data, settings):
        descriptor = ServerDescriptor.from_dict(catalog_data["echo-server"])
        await manager.install(descriptor, {})

        config = await manager.set_enabled("echo-server", False)
        assert not config.enabled

        await manager.uninstall(descriptor)
        registry = json.loads(settings.registry_path.read_text())
        assert registry["mcpServers"] == {}
