"""
Remote catalog of installable MCP servers.

The catalog is a JSON object mapping server name to descriptor, hosted as
a raw file. It is fetched fresh on every load and never cached locally.
"""

import asyncio
import logging
from typing import Optional

import aiohttp

from mcp_dashboard.errors import CatalogError
from mcp_dashboard.models import ServerDescriptor

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Accept": "application/json",
}


def parse_catalog(data: dict) -> list[ServerDescriptor]:
    """
    Turn the raw catalog mapping into descriptors.

    Entries that fail to parse are logged and skipped.
    """
    if not isinstance(data, dict):
        raise CatalogError(f"Catalog must be a JSON object, got {type(data).__name__}")

    servers: list[ServerDescriptor] = []
    for key, entry in data.items():
        if not isinstance(entry, dict):
            logger.warning(f"[Catalog] Skipping {key}: entry is not an object")
            continue
        try:
            servers.append(ServerDescriptor.from_dict(entry, name=key))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"[Catalog] Failed to parse entry {key}: {e}")
    return servers


class CatalogClient:
    """Fetches the remote server catalog."""

    def __init__(self, url: str, timeout: float = REQUEST_TIMEOUT):
        self.url = url
        self.timeout = timeout

    async def fetch(self, session: Optional[aiohttp.ClientSession] = None) -> list[ServerDescriptor]:
        """
        Download and parse the catalog.

        Raises:
            CatalogError: On network errors, non-200 responses or bad JSON
        """
        logger.info(f"[Catalog] Fetching: {self.url}")
        try:
            if session is not None:
                data = await self._get(session)
            else:
                async with aiohttp.ClientSession() as own_session:
                    data = await self._get(own_session)
        except CatalogError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"[Catalog] Fetch error: {e}")
            raise CatalogError(f"Failed to fetch catalog: {e}", cause=e) from e

        servers = parse_catalog(data)
        logger.info(f"[Catalog] Got {len(servers)} servers")
        return servers

    async def _get(self, session: aiohttp.ClientSession) -> dict:
        async with session.get(
            self.url,
            headers=NO_CACHE_HEADERS,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        ) as response:
            if response.status != 200:
                error_text = await response.text()
                raise CatalogError(f"HTTP {response.status}: {error_text[:200]}")
            # Raw gist files are served as text/plain
            return await response.json(content_type=None)
