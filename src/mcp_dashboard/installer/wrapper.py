"""
Launch wrapper scripts.

The assistant launches every installed server through a small bash
script that loads the server's env file and then runs the real command.
The registry entry points at the script, so secrets never have to be
copied into the assistant's config.
"""

import asyncio
import logging
import os
import shlex
import stat
from pathlib import Path
from typing import Iterable

from ..config import Settings
from ..errors import UnknownStrategyError, WrapperCreationError
from ..models import ContainerImage, LaunchConfig, LaunchStrategy, LocalRepo, PackageRegistry, Runtime
from .repository import repo_dir_name

logger = logging.getLogger(__name__)

# How a cloned server's entry point is started
RUNTIME_COMMANDS: dict[Runtime, str] = {
    Runtime.NODE: "node",
    Runtime.NPM: "node",
    Runtime.PNPM: "node",
    Runtime.UV: "uv run",
}

DEFAULT_CONTAINER_REGISTRY = "ghcr.io"


def container_registry_host(image_reference: str) -> str:
    """Registry host part of an image reference."""
    first, sep, _ = image_reference.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        return first
    return DEFAULT_CONTAINER_REGISTRY


def _export_line(env_file: Path) -> str:
    return f"export $(cat {shlex.quote(str(env_file))} | xargs)"


def local_repo_script(strategy: LocalRepo, repo_path: Path, env_file: Path) -> str:
    entry = shlex.quote(f"{repo_path}/{strategy.entry_point}")
    return "\n".join([
        "#!/bin/bash",
        _export_line(env_file),
        f"{RUNTIME_COMMANDS[strategy.runtime]} {entry}",
        "",
    ])


def package_registry_script(strategy: PackageRegistry, env_file: Path) -> str:
    args = " ".join(shlex.quote(a) for a in strategy.invocation_args)
    return "\n".join([
        "#!/bin/bash",
        _export_line(env_file),
        f"npx {args}".rstrip(),
        "",
    ])


def container_image_script(strategy: ContainerImage, env_file: Path) -> str:
    env_path = shlex.quote(str(env_file))
    host = container_registry_host(strategy.image_reference)
    # stdout belongs to the MCP stdio stream, keep login chatter off it
    return "\n".join([
        "#!/bin/bash",
        f"GITHUB_TOKEN=$(grep '^GITHUB_PERSONAL_ACCESS_TOKEN=' {env_path} | cut -d '=' -f2-)",
        f"GITHUB_USER=$(grep '^GITHUB_USERNAME=' {env_path} | cut -d '=' -f2-)",
        f'echo "$GITHUB_TOKEN" | docker login {host} -u "${{GITHUB_USER:-$USER}}" --password-stdin >&2',
        f"docker run --rm -i --env-file {env_path} {shlex.quote(strategy.image_reference)}",
        "",
    ])


class WrapperGenerator:
    """Writes wrapper scripts and produces the matching launch config."""

    def __init__(self, settings: Settings):
        self._settings = settings

    def path_for(self, server_name: str, strategy: LaunchStrategy) -> Path:
        if isinstance(strategy, LocalRepo):
            repo_path = self._settings.repo_root / repo_dir_name(strategy.repository_url)
            return repo_path / f"{server_name}-wrapper.sh"
        if isinstance(strategy, PackageRegistry):
            return self._settings.env_root / f"{server_name}-npx-wrapper.sh"
        if isinstance(strategy, ContainerImage):
            return self._settings.env_root / f"{server_name}-docker-wrapper.sh"
        raise UnknownStrategyError(f"No wrapper for strategy {strategy!r}")

    def render(self, server_name: str, strategy: LaunchStrategy, env_file: Path) -> str:
        """Script text for a strategy."""
        if isinstance(strategy, LocalRepo):
            repo_path = self._settings.repo_root / repo_dir_name(strategy.repository_url)
            return local_repo_script(strategy, repo_path, env_file)
        if isinstance(strategy, PackageRegistry):
            return package_registry_script(strategy, env_file)
        if isinstance(strategy, ContainerImage):
            return container_image_script(strategy, env_file)
        raise UnknownStrategyError(f"No wrapper for strategy {strategy!r}")

    async def generate(
        self,
        server_name: str,
        strategy: LaunchStrategy,
        env_file: Path,
        disabled_tools: Iterable[str] = (),
    ) -> LaunchConfig:
        """
        Write an executable wrapper and return the launch config for it.

        Raises:
            WrapperCreationError: If the script cannot be written or chmodded
        """
        path = self.path_for(server_name, strategy)
        content = self.render(server_name, strategy, env_file)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
            mode = os.stat(path).st_mode
            os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise WrapperCreationError(f"Error creating wrapper {path}: {e}", cause=e) from e

        logger.info(f"[{server_name}] Created wrapper {path}")
        return LaunchConfig(
            command=str(path),
            disabled_tools=tuple(disabled_tools),
        )

    async def remove(self, server_name: str, strategy: LaunchStrategy) -> bool:
        """Best-effort delete of a server's wrapper. Never raises."""
        try:
            path = self.path_for(server_name, strategy)
        except UnknownStrategyError:
            return True
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            logger.error(f"[{server_name}] Error deleting wrapper {path}: {e}")
            return False
        return True
