"""Installed-server registry backed by the assistant's MCP config file.

The file is shared with the assistant, so it is re-read on every call and
rewritten in full on every change. Keys we don't know about, at the top
level or inside an entry, are preserved.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp_dashboard.errors import RegistryIOError, ServerNotInstalledError
from mcp_dashboard.models import LaunchConfig

logger = logging.getLogger(__name__)

SERVERS_KEY = "mcpServers"


class RegistryManager:
    """Reads and writes the ``mcpServers`` mapping."""

    def __init__(self, path: Path, home: Optional[Path] = None) -> None:
        self.path = Path(path)
        self.home = Path(home) if home is not None else Path.home()

    async def _read(self) -> Dict[str, Any]:
        def _load() -> Dict[str, Any]:
            if not self.path.exists():
                return {SERVERS_KEY: {}}
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            if not isinstance(data.get(SERVERS_KEY), dict):
                data[SERVERS_KEY] = {}
            return data

        try:
            return await asyncio.to_thread(_load)
        except (OSError, ValueError) as e:
            # json.JSONDecodeError is a ValueError
            raise RegistryIOError(f"Failed to read registry {self.path}: {e}", cause=e) from e

    async def _write(self, data: Dict[str, Any]) -> None:
        def _dump() -> None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)

        try:
            await asyncio.to_thread(_dump)
        except (OSError, TypeError) as e:
            raise RegistryIOError(f"Failed to write registry {self.path}: {e}", cause=e) from e

    async def entries(self) -> Dict[str, LaunchConfig]:
        """All installed servers with their launch configs."""
        data = await self._read()
        return {
            name: LaunchConfig.from_dict(entry if isinstance(entry, dict) else {})
            for name, entry in data[SERVERS_KEY].items()
        }

    async def names(self) -> List[str]:
        data = await self._read()
        return list(data[SERVERS_KEY].keys())

    async def is_installed(self, name: str) -> bool:
        data = await self._read()
        return name in data[SERVERS_KEY]

    async def get(self, name: str) -> Optional[LaunchConfig]:
        data = await self._read()
        entry = data[SERVERS_KEY].get(name)
        if entry is None:
            return None
        return LaunchConfig.from_dict(entry if isinstance(entry, dict) else {})

    def _expand_home(self, config: LaunchConfig) -> Dict[str, Any]:
        entry = config.to_dict()
        home = str(self.home)
        entry["command"] = entry["command"].replace("~", home)
        if "args" in entry:
            entry["args"] = [arg.replace("~", home) for arg in entry["args"]]
        return entry

    async def add(self, name: str, config: LaunchConfig) -> LaunchConfig:
        """Record a server as installed, replacing any previous entry."""
        data = await self._read()
        entry = self._expand_home(config)
        data[SERVERS_KEY][name] = entry
        await self._write(data)
        logger.info(f"Registered server {name}: {entry['command']}")
        return LaunchConfig.from_dict(entry)

    async def remove(self, name: str) -> bool:
        """Remove a server. Returns False if it was not installed."""
        data = await self._read()
        if name not in data[SERVERS_KEY]:
            return False
        del data[SERVERS_KEY][name]
        await self._write(data)
        logger.info(f"Unregistered server {name}")
        return True

    async def set_disabled(self, name: str, disabled: bool) -> LaunchConfig:
        """Set the ``disabled`` flag of an installed server."""
        data = await self._read()
        entry = data[SERVERS_KEY].get(name)
        if not isinstance(entry, dict):
            raise ServerNotInstalledError(f"Server not installed: {name}")
        entry["disabled"] = disabled
        await self._write(data)
        return LaunchConfig.from_dict(entry)

    async def set_disabled_tools(self, name: str, tools: List[str]) -> LaunchConfig:
        """Replace the ``disabledTools`` list of an installed server."""
        data = await self._read()
        entry = data[SERVERS_KEY].get(name)
        if not isinstance(entry, dict):
            raise ServerNotInstalledError(f"Server not installed: {name}")
        if tools:
            entry["disabledTools"] = list(tools)
        else:
            entry.pop("disabledTools", None)
        await self._write(data)
        return LaunchConfig.from_dict(entry)

    async def toggle(self, name: str) -> LaunchConfig:
        """Flip the ``disabled`` flag of an installed server."""
        data = await self._read()
        entry = data[SERVERS_KEY].get(name)
        if not isinstance(entry, dict):
            raise ServerNotInstalledError(f"Server not installed: {name}")
        entry["disabled"] = not entry.get("disabled", False)
        await self._write(data)
        return LaunchConfig.from_dict(entry)
