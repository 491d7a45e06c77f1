"""Message handlers for the native messaging bridge.

Each handler processes a specific message type and returns a response.
Servers are named by ``server`` (looked up in the catalog) or passed
in full as ``descriptor``.
"""

import logging
from collections.abc import Callable, Coroutine
from typing import Any, Optional

from mcp_dashboard import __version__
from mcp_dashboard.errors import CatalogError, DashboardError
from mcp_dashboard.manager import DashboardManager
from mcp_dashboard.models import ServerDescriptor

logger = logging.getLogger(__name__)

# Type alias for message handlers
MessageHandler = Callable[[dict[str, Any], DashboardManager], Coroutine[Any, Any, dict[str, Any]]]


class InvalidParams(Exception):
    """A request is missing a parameter or has one of the wrong type."""


class DescriptorNotFound(Exception):
    """A server name is not in the catalog."""


def make_error_response(
    request_id: str,
    code: str,
    message: str,
    details: Any | None = None,
) -> dict[str, Any]:
    """Create a standardized error response."""
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return {
        "type": "error",
        "request_id": request_id,
        "error": error,
    }


def make_result_response(
    request_type: str,
    request_id: str,
    **kwargs: Any,
) -> dict[str, Any]:
    """Create a standardized result response."""
    return {
        "type": f"{request_type}_result",
        "request_id": request_id,
        **kwargs,
    }


def error_from_exception(request_id: str, exc: Exception, action: str) -> dict[str, Any]:
    """Map an exception raised by a handler to an error response."""
    if isinstance(exc, InvalidParams):
        return make_error_response(request_id, "invalid_params", str(exc))
    if isinstance(exc, DescriptorNotFound):
        return make_error_response(request_id, "not_found", str(exc))
    if isinstance(exc, DashboardError):
        return make_error_response(request_id, exc.code, exc.message, details=exc.details or None)
    logger.exception(f"Failed to {action}")
    return make_error_response(request_id, "internal_error", f"Failed to {action}: {exc}")


def _server_name(message: dict[str, Any]) -> str:
    name = message.get("server")
    if not name or not isinstance(name, str):
        raise InvalidParams("Missing or invalid 'server' parameter")
    return name


def _env_values(message: dict[str, Any]) -> dict[str, Any]:
    env = message.get("env", {})
    if env is None:
        return {}
    if not isinstance(env, dict):
        raise InvalidParams("Invalid 'env' parameter, expected an object")
    return env


def _disabled_tools(message: dict[str, Any]) -> Optional[list[str]]:
    tools = message.get("disabledTools")
    if tools is None:
        return None
    if not isinstance(tools, list) or not all(isinstance(t, str) for t in tools):
        raise InvalidParams("Invalid 'disabledTools' parameter, expected a list of tool names")
    return tools


async def _resolve_descriptor(
    message: dict[str, Any],
    manager: DashboardManager,
    allow_bare: bool = False,
) -> ServerDescriptor:
    """
    Descriptor for a request.

    With ``allow_bare``, a server the catalog can't describe (catalog down,
    entry removed) still resolves to a name-only descriptor.
    """
    data = message.get("descriptor")
    if data is not None:
        if not isinstance(data, dict):
            raise InvalidParams("Invalid 'descriptor' parameter, expected an object")
        try:
            return ServerDescriptor.from_dict(data, name=message.get("server"))
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidParams(f"Invalid 'descriptor' parameter: {e}") from e

    name = _server_name(message)
    descriptor: Optional[ServerDescriptor]
    try:
        descriptor = await manager.get_descriptor(name)
    except CatalogError:
        if not allow_bare:
            raise
        logger.warning(f"[{name}] Catalog unavailable, using name-only descriptor")
        descriptor = None

    if descriptor is None:
        if allow_bare:
            return ServerDescriptor(name=name)
        raise DescriptorNotFound(f"Server not found in catalog: {name}")
    return descriptor


async def handle_hello(message: dict[str, Any], manager: DashboardManager) -> dict[str, Any]:
    """Handle hello message - returns pong with bridge version."""
    return {
        "type": "pong",
        "request_id": message.get("request_id", ""),
        "bridge_version": __version__,
    }


async def handle_list_servers(message: dict[str, Any], manager: DashboardManager) -> dict[str, Any]:
    """Handle list_servers message - installed and available servers."""
    request_id = message.get("request_id", "")

    try:
        listing = await manager.list_servers()
        return make_result_response("list_servers", request_id, **listing.to_dict())
    except Exception as e:
        return error_from_exception(request_id, e, "list servers")


async def handle_install_server(message: dict[str, Any], manager: DashboardManager) -> dict[str, Any]:
    """Install a server. Progress is pushed separately while this runs."""
    request_id = message.get("request_id", "")

    try:
        env = _env_values(message)
        descriptor = await _resolve_descriptor(message, manager)
        result = await manager.install(descriptor, env)
        return make_result_response("install_server", request_id, **result.to_dict())
    except Exception as e:
        return error_from_exception(request_id, e, "install server")


async def handle_uninstall_server(message: dict[str, Any], manager: DashboardManager) -> dict[str, Any]:
    """Uninstall a server."""
    request_id = message.get("request_id", "")

    try:
        descriptor = await _resolve_descriptor(message, manager, allow_bare=True)
        result = await manager.uninstall(descriptor)
        return make_result_response("uninstall_server", request_id, **result.to_dict())
    except Exception as e:
        return error_from_exception(request_id, e, "uninstall server")


async def handle_set_server_enabled(message: dict[str, Any], manager: DashboardManager) -> dict[str, Any]:
    """Enable or disable an installed server."""
    request_id = message.get("request_id", "")

    try:
        name = _server_name(message)
        enabled = message.get("enabled")
        if not isinstance(enabled, bool):
            raise InvalidParams("Missing or invalid 'enabled' parameter")

        config = await manager.set_enabled(name, enabled)
        return make_result_response(
            "set_server_enabled",
            request_id,
            server=name,
            enabled=config.enabled,
            mcpConfig=config.to_dict(),
        )
    except Exception as e:
        return error_from_exception(request_id, e, "update server")


async def handle_configure_server(message: dict[str, Any], manager: DashboardManager) -> dict[str, Any]:
    """Save new environment values and disabled tools for an installed server."""
    request_id = message.get("request_id", "")

    try:
        env = _env_values(message)
        disabled_tools = _disabled_tools(message)
        descriptor = await _resolve_descriptor(message, manager)
        result = await manager.configure(descriptor, env, disabled_tools)
        return make_result_response(
            "configure_server",
            request_id,
            saved=True,
            **result.to_dict(),
        )
    except Exception as e:
        return error_from_exception(request_id, e, "configure server")


async def handle_read_saved_environment(message: dict[str, Any], manager: DashboardManager) -> dict[str, Any]:
    """Saved environment values, for pre-filling the configure form."""
    request_id = message.get("request_id", "")

    try:
        descriptor = await _resolve_descriptor(message, manager)
        values = await manager.read_saved_environment(descriptor)
        return make_result_response(
            "read_saved_environment",
            request_id,
            server=descriptor.name,
            env=values,
        )
    except Exception as e:
        return error_from_exception(request_id, e, "read saved environment")


HANDLERS: dict[str, MessageHandler] = {
    "hello": handle_hello,
    "list_servers": handle_list_servers,
    "install_server": handle_install_server,
    "uninstall_server": handle_uninstall_server,
    "set_server_enabled": handle_set_server_enabled,
    "configure_server": handle_configure_server,
    "read_saved_environment": handle_read_saved_environment,
}


async def dispatch_message(message: dict[str, Any], manager: DashboardManager) -> dict[str, Any]:
    """Dispatch a message to the appropriate handler."""
    message_type = message.get("type")
    request_id = message.get("request_id", "")

    if not message_type:
        return make_error_response(
            request_id,
            "invalid_message",
            "Missing 'type' field in message",
        )

    handler = HANDLERS.get(message_type)
    if not handler:
        return make_error_response(
            request_id,
            "unknown_message_type",
            f"Unknown message type: {message_type}",
            details={"received_type": message_type},
        )

    return await handler(message, manager)
