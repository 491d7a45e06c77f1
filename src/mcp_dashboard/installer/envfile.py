"""
Per-server environment files.

Format is one ``KEY=VALUE`` per line with no quoting or escaping, the
same thing the wrapper scripts feed to ``export $(cat file | xargs)``.
A value containing a newline does not survive a write/read cycle.
"""

import asyncio
import logging
from pathlib import Path
from typing import Mapping, Optional

from ..config import Settings
from ..errors import EnvFileIOError
from ..models import EnvVariable

logger = logging.getLogger(__name__)


def serialize_env(values: Mapping[str, str]) -> str:
    """Render ``KEY=VALUE`` lines."""
    return "".join(f"{key}={value}\n" for key, value in values.items())


def parse_env(text: str) -> dict[str, str]:
    """Parse ``KEY=VALUE`` lines, splitting on the first ``=``."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        if not line or "=" not in line:
            continue
        key, _, value = line.partition("=")
        values[key] = value
    return values


class EnvironmentFileManager:
    """Reads and writes ``<env_root>/<server>.env`` files."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def path_for(self, server_name: str) -> Path:
        return self._settings.env_file(server_name)

    async def write(self, server_name: str, values: Mapping[str, str]) -> Path:
        """
        Write a server's environment file, replacing any existing one.

        Every ``~`` in a value becomes the home directory.

        Raises:
            EnvFileIOError: If the file cannot be written
        """
        expanded = {key: self._settings.expand_home(value) for key, value in values.items()}
        for key, value in expanded.items():
            if "\n" in value:
                logger.warning(f"[{server_name}] Value for {key} contains a newline and will not round-trip")

        path = self.path_for(server_name)
        content = serialize_env(expanded)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise EnvFileIOError(f"Failed to write {path}: {e}", cause=e) from e

        logger.info(f"[{server_name}] Saved {len(expanded)} environment variables to {path}")
        return path

    async def read(
        self,
        server_name: str,
        schema: Mapping[str, EnvVariable],
    ) -> Optional[dict[str, str]]:
        """
        Load saved values for the keys in ``schema``.

        Schema keys missing from the file keep their default; file keys
        outside the schema are ignored.

        Returns:
            The values, or None if nothing has been saved yet
        """
        path = self.path_for(server_name)

        def _read() -> str:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()

        try:
            text = await asyncio.to_thread(_read)
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"[{server_name}] Error reading env file {path}: {e}")
            return None

        saved = parse_env(text)
        return {
            key: saved.get(key, variable.default)
            for key, variable in schema.items()
        }

    async def remove(self, server_name: str) -> bool:
        """
        Delete a server's environment file.

        Never raises.

        Returns:
            False if the file existed and could not be removed
        """
        path = self.path_for(server_name)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            logger.error(f"[{server_name}] Error deleting env file {path}: {e}")
            return False
        return True
