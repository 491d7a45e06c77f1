"""
Prerequisite checks for command-line tools a server needs.

Tools already on PATH pass immediately. Missing tools are installed with
the platform package manager from a fixed table; a tool that is not in the
table, or whose install fails, stops the whole check. Partially installed
toolchains are not resumable, so nothing after the first failure runs.
"""

import logging
from typing import Callable, Iterable, Optional

from ..errors import UnmetPrerequisite
from ..progress import ProgressBus
from .commands import CommandRunner, run_command, which

logger = logging.getLogger(__name__)


# tool name -> ordered installer sub-commands (taps first, then installs)
PREREQUISITES: dict[str, list[list[str]]] = {
    "node": [
        ["install", "node"],
    ],
    "uv": [
        ["install", "uv"],
    ],
    "vault": [
        ["tap", "hashicorp/tap"],
        ["install", "hashicorp/tap/vault"],
    ],
}


def step_name(tool: str) -> str:
    """Progress step name for a tool."""
    return f"Prerequisite: {tool}"


class PrerequisiteChecker:
    """Verifies, and installs where possible, required CLI tools."""

    def __init__(
        self,
        bus: ProgressBus,
        installer: str = "brew",
        table: Optional[dict[str, list[list[str]]]] = None,
        runner: CommandRunner = run_command,
        resolve: Callable[[str], Optional[str]] = which,
    ):
        self._bus = bus
        self._installer = installer
        self._table = PREREQUISITES if table is None else table
        self._run = runner
        self._resolve = resolve

    def is_available(self, tool: str) -> bool:
        """Check whether a tool resolves on PATH."""
        return self._resolve(tool) is not None

    async def ensure_prerequisites(self, server_name: str, tools: Iterable[str]) -> None:
        """
        Make sure every tool is available, in declared order.

        Raises:
            UnmetPrerequisite: On the first tool that is unknown or fails
                to install. Later tools are not attempted.
        """
        reporter = self._bus.reporter(server_name)

        for tool in tools:
            step = step_name(tool)
            reporter.started(step, f"Checking for {tool}...")

            if self.is_available(tool):
                logger.info(f"[{server_name}] {tool} is already installed")
                reporter.completed(step, f"{tool} is already installed")
                continue

            commands = self._table.get(tool)
            if commands is None:
                logger.error(f"[{server_name}] No installer known for {tool}")
                reporter.failed(step, f"Prerequisite {tool} not found")
                raise UnmetPrerequisite(tool, "unknown")

            logger.info(f"[{server_name}] Installing {tool}")
            reporter.started(step, f"Installing {tool}...")
            for sub_command in commands:
                await self._install(server_name, tool, step, sub_command)

            reporter.completed(step, f"{tool} installed successfully")

    async def _install(
        self,
        server_name: str,
        tool: str,
        step: str,
        sub_command: list[str],
    ) -> None:
        reporter = self._bus.reporter(server_name)
        args = [self._installer, *sub_command]
        try:
            result = await self._run(args)
        except OSError as e:
            reason = f"could not run {self._installer}: {e}"
            logger.error(f"[{server_name}] Error installing {tool}: {reason}")
            reporter.failed(step, f"Error installing {tool}: {reason}")
            raise UnmetPrerequisite(tool, reason, cause=e) from e

        if not result.ok:
            reason = result.describe()
            logger.error(f"[{server_name}] Error installing {tool}: {reason}")
            reporter.failed(step, f"Error installing {tool}: {reason}")
            raise UnmetPrerequisite(tool, reason)
