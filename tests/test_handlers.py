"""Tests for message handlers."""

from __future__ import annotations

import json

import pytest
from aiohttp import web

from mcp_dashboard.handlers import (
    dispatch_message,
    handle_hello,
    make_error_response,
    make_result_response,
)


@pytest.fixture
def catalog(manager, catalog_data, serve):
    async def start():
        async def handler(request):
            return web.json_response(catalog_data)

        server = await serve(handler)
        manager.catalog.url = str(server.make_url("/catalog.json"))
        return server

    return start


class TestHelpers:
    """Tests for helper functions."""

    def test_make_error_response(self):
        response = make_error_response("req-123", "build_error", "Build failed")
        assert response == {
            "type": "error",
            "request_id": "req-123",
            "error": {"code": "build_error", "message": "Build failed"},
        }

    def test_make_result_response(self):
        response = make_result_response("install_server", "req-123", server="echo-server")
        assert response["type"] == "install_server_result"
        assert response["server"] == "echo-server"


class TestDispatch:
    """Tests for dispatch_message."""

    @pytest.mark.asyncio
    async def test_hello(self, manager, sample_hello_message):
        response = await handle_hello(sample_hello_message, manager)

        assert response["type"] == "pong"
        assert response["request_id"] == "test-123"
        assert "bridge_version" in response

    @pytest.mark.asyncio
    async def test_missing_type(self, manager):
        response = await dispatch_message({"request_id": "r1"}, manager)
        assert response["error"]["code"] == "invalid_message"

    @pytest.mark.asyncio
    async def test_unknown_type(self, manager):
        response = await dispatch_message({"type": "launch_rockets", "request_id": "r1"}, manager)

        assert response["error"]["code"] == "unknown_message_type"
        assert response["error"]["details"] == {"received_type": "launch_rockets"}


class TestServerHandlers:
    """Tests for the install-side handlers."""

    @pytest.mark.asyncio
    async def test_install_with_descriptor(self, manager, catalog_data, settings):
        """Test installing from a descriptor passed in the request."""
        response = await dispatch_message({
            "type": "install_server",
            "request_id": "r1",
            "descriptor": catalog_data["echo-server"],
            "env": {},
        }, manager)

        assert response["type"] == "install_server_result"
        assert response["mcpConfig"]["command"] == str(
            settings.env_root / "echo-server-npx-wrapper.sh"
        )

    @pytest.mark.asyncio
    async def test_install_by_name(self, manager, catalog):
        server = await catalog()
        try:
            response = await dispatch_message({
                "type": "install_server",
                "request_id": "r1",
                "server": "github",
                "env": {"GITHUB_PERSONAL_ACCESS_TOKEN": "t"},
            }, manager)
            missing = await dispatch_message({
                "type": "install_server",
                "request_id": "r2",
                "server": "ghost",
            }, manager)
        finally:
            await server.close()

        assert response["server"] == "github"
        assert missing["error"]["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_install_error_carries_taxonomy_code(self, manager, catalog_data, runner):
        runner.fail("npx")

        response = await dispatch_message({
            "type": "install_server",
            "request_id": "r1",
            "descriptor": catalog_data["echo-server"],
        }, manager)

        assert response["type"] == "error"
        assert response["error"]["code"] == "build_error"
        assert response["error"]["details"]["phase"] == "Package Installation"

    @pytest.mark.asyncio
    async def test_install_bad_env(self, manager, catalog_data):
        response = await dispatch_message({
            "type": "install_server",
            "request_id": "r1",
            "descriptor": catalog_data["echo-server"],
            "env": ["A=1"],
        }, manager)
        assert response["error"]["code"] == "invalid_params"

    @pytest.mark.asyncio
    async def test_uninstall_without_catalog(self, manager, catalog_data):
        """Test uninstall by name works while the catalog is unreachable."""
        await dispatch_message({
            "type": "install_server",
            "request_id": "r1",
            "descriptor": catalog_data["echo-server"],
        }, manager)

        response = await dispatch_message({
            "type": "uninstall_server",
            "request_id": "r2",
            "server": "echo-server",
        }, manager)

        assert response["type"] == "uninstall_server_result"
        assert response["wasInstalled"] is True
        assert not await manager.is_installed("echo-server")

    @pytest.mark.asyncio
    async def test_set_server_enabled(self, manager, catalog_data):
        await dispatch_message({
            "type": "install_server",
            "request_id": "r1",
            "descriptor": catalog_data["echo-server"],
        }, manager)

        response = await dispatch_message({
            "type": "set_server_enabled",
            "request_id": "r2",
            "server": "echo-server",
            "enabled": False,
        }, manager)

        assert response["enabled"] is False
        assert response["mcpConfig"]["disabled"] is True

    @pytest.mark.asyncio
    async def test_set_server_enabled_errors(self, manager):
        not_installed = await dispatch_message({
            "type": "set_server_enabled",
            "request_id": "r1",
            "server": "ghost",
            "enabled": True,
        }, manager)
        bad_flag = await dispatch_message({
            "type": "set_server_enabled",
            "request_id": "r2",
            "server": "ghost",
            "enabled": "yes",
        }, manager)

        assert not_installed["error"]["code"] == "server_not_installed"
        assert bad_flag["error"]["code"] == "invalid_params"

    @pytest.mark.asyncio
    async def test_configure_and_read_back(self, manager, catalog_data):
        notes = catalog_data["notes"]
        await dispatch_message({
            "type": "install_server",
            "request_id": "r1",
            "descriptor": notes,
            "env": {"NOTES_DIR": "/a"},
        }, manager)

        configured = await dispatch_message({
            "type": "configure_server",
            "request_id": "r2",
            "descriptor": notes,
            "env": {"NOTES_DIR": "/b", "NOTES_TOKEN": "t"},
        }, manager)
        saved = await dispatch_message({
            "type": "read_saved_environment",
            "request_id": "r3",
            "descriptor": notes,
        }, manager)

        assert configured["saved"] is True
        assert saved["env"] == {"NOTES_DIR": "/b", "NOTES_TOKEN": "t"}

    @pytest.mark.asyncio
    async def test_configure_disabled_tools(self, manager, catalog_data, settings):
        """Test configure_server applies disabledTools to the saved entry."""
        await dispatch_message({
            "type": "install_server",
            "request_id": "r1",
            "descriptor": catalog_data["echo-server"],
        }, manager)

        configured = await dispatch_message({
            "type": "configure_server",
            "request_id": "r2",
            "server": "echo-server",
            "env": {},
            "disabledTools": ["dangerous"],
        }, manager)
        bad = await dispatch_message({
            "type": "configure_server",
            "request_id": "r3",
            "server": "echo-server",
            "disabledTools": "dangerous",
        }, manager)

        assert configured["mcpConfig"]["disabledTools"] == ["dangerous"]
        registry = json.loads(settings.registry_path.read_text())
        assert registry["mcpServers"]["echo-server"]["disabledTools"] == ["dangerous"]
        assert bad["error"]["code"] == "invalid_params"

    @pytest.mark.asyncio
    async def test_list_servers_catalog_down(self, manager):
        response = await dispatch_message({"type": "list_servers", "request_id": "r1"}, manager)

        assert response["type"] == "list_servers_result"
        assert response["installed"] == []
        assert response["catalogError"]
