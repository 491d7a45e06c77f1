"""MCP Dashboard bridge entry point.

Runs the native messaging loop the desktop UI talks to. Requests are
handled concurrently so progress events for a running install can be
pushed while other requests are answered.
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Any, Dict, Optional, Set

from mcp_dashboard import __version__
from mcp_dashboard.config import LOG_LEVEL_ENV_VAR, Settings
from mcp_dashboard.handlers import dispatch_message
from mcp_dashboard.manager import DashboardManager
from mcp_dashboard.native_messaging import (
    InvalidMessageError,
    MessageOutbox,
    MessageTooLargeError,
    NativeMessagingError,
    read_message,
)
from mcp_dashboard.progress import InstallationStep

logger = logging.getLogger("mcp_dashboard")


def configure_logging(level: Optional[str] = None) -> None:
    """Log to stderr; stdout carries native messages."""
    level_name = (level or os.environ.get(LOG_LEVEL_ENV_VAR) or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def progress_event(step: InstallationStep) -> Dict[str, Any]:
    return {"type": "installation_progress", "step": step.to_dict()}


async def handle_request(
    message: Dict[str, Any],
    manager: DashboardManager,
    outbox: MessageOutbox,
) -> None:
    logger.debug(
        f"Received: type={message.get('type')}, request_id={message.get('request_id')}"
    )
    response = await dispatch_message(message, manager)
    outbox.send(response)
    logger.debug(f"Sent: type={response.get('type')}")


async def run_bridge(
    manager: Optional[DashboardManager] = None,
    reader: Optional[asyncio.StreamReader] = None,
    outbox: Optional[MessageOutbox] = None,
) -> None:
    """Run the main bridge loop until EOF."""
    logger.info(f"MCP Dashboard bridge v{__version__} starting...")

    if manager is None:
        settings = Settings.from_env()
        logger.info(f"Registry: {settings.registry_path}")
        manager = DashboardManager.create(settings)

    outbox = outbox or MessageOutbox()
    outbox.start()
    unsubscribe = manager.bus.subscribe(lambda step: outbox.send(progress_event(step)))

    pending: Set[asyncio.Task] = set()
    try:
        while True:
            try:
                message = await read_message(reader)
            except MessageTooLargeError as e:
                logger.error(f"Message too large: {e}")
                outbox.send({
                    "type": "error",
                    "request_id": "",
                    "error": {"code": "message_too_large", "message": str(e)},
                })
                # The oversized payload is still in the stream, framing is lost
                break
            except InvalidMessageError as e:
                logger.error(f"Invalid message: {e}")
                outbox.send({
                    "type": "error",
                    "request_id": "",
                    "error": {"code": "invalid_message", "message": str(e)},
                })
                continue
            except NativeMessagingError as e:
                logger.error(f"Native messaging error: {e}")
                break

            if message is None:
                logger.info("EOF received, shutting down")
                break

            task = asyncio.create_task(handle_request(message, manager, outbox))
            pending.add(task)
            task.add_done_callback(pending.discard)

        if pending:
            logger.info(f"Waiting for {len(pending)} running request(s)")
            await asyncio.gather(*pending)
    finally:
        unsubscribe()
        await outbox.close()

    logger.info("MCP Dashboard bridge shutting down")


def main() -> None:
    """Entry point for the bridge."""
    configure_logging()
    try:
        asyncio.run(run_bridge())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
