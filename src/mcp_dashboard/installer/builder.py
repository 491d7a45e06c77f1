"""
Dependency install and build for cloned repositories.

Each runtime maps to an ordered list of build phases. Servers that need a
hand-written sequence register an override in BUILD_OVERRIDES; the
orchestrator resolves it once, before anything runs.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..config import Settings
from ..errors import BuildError
from ..models import Runtime
from ..progress import ProgressBus
from .commands import CommandRunner, run_command

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildPhase:
    """One command in a build sequence, reported as its own step."""
    label: str
    args: tuple[str, ...]
    cwd: Optional[Path] = None
    start_message: str = ""
    success_message: str = ""


def default_phases(runtime: Runtime, path: Path) -> list[BuildPhase]:
    """The generic build sequence for a runtime."""
    if runtime in (Runtime.NODE, Runtime.NPM):
        return [
            BuildPhase(
                "Dependencies Installation", ("npm", "install"), path,
                "Installing dependencies...", "Dependencies installed successfully",
            ),
            BuildPhase(
                "Build", ("npm", "run", "build"), path,
                "Building project...", "Project built successfully",
            ),
        ]
    if runtime == Runtime.PNPM:
        return [
            BuildPhase(
                "Dependencies Installation", ("pnpm", "install"), path,
                "Installing dependencies...", "Dependencies installed successfully",
            ),
            BuildPhase(
                "Build", ("pnpm", "run", "build"), path,
                "Building project...", "Project built successfully",
            ),
        ]
    if runtime == Runtime.UV:
        return [
            BuildPhase(
                "Dependency Sync", ("uv", "sync"), path,
                "Syncing dependencies...", "Dependencies synced successfully",
            ),
        ]
    raise ValueError(f"No build sequence for runtime {runtime}")


# server name -> phases, given (server name, repo path, settings)
BuildOverride = Callable[[str, Path, Settings], list[BuildPhase]]


def vault_tool_build(server_name: str, path: Path, settings: Settings) -> list[BuildPhase]:
    """Pull the setup repo, sync secrets from vault, then install as a uv tool."""
    return [
        BuildPhase(
            "Syncing Setup Repository",
            ("git", "-C", str(settings.setup_repo), "pull", "origin"),
            None,
            "Fetching and pulling setup repository...",
            "Setup repository synced successfully",
        ),
        BuildPhase(
            "Vault Environment Sync",
            ("vault-sync-env",),
            None,
            "Syncing vault environment...",
            "Vault environment synced successfully",
        ),
        BuildPhase(
            "UV Tool Installation",
            ("uv", "tool", "install", server_name),
            None,
            "Installing UV tool...",
            "UV tool installed successfully",
        ),
    ]


BUILD_OVERRIDES: dict[str, BuildOverride] = {
    "bamboohr": vault_tool_build,
}


class DependencyBuilder:
    """Runs build phases and reports each on the progress bus."""

    def __init__(
        self,
        bus: ProgressBus,
        settings: Settings,
        overrides: Optional[dict[str, BuildOverride]] = None,
        runner: CommandRunner = run_command,
    ):
        self._bus = bus
        self._settings = settings
        self._overrides = BUILD_OVERRIDES if overrides is None else overrides
        self._run = runner

    def resolve_override(self, server_name: str) -> Optional[BuildOverride]:
        return self._overrides.get(server_name)

    def phases_for(
        self,
        server_name: str,
        runtime: Runtime,
        path: Path,
        override: Optional[BuildOverride] = None,
    ) -> list[BuildPhase]:
        """The phases that will run for a server, override first."""
        if override is not None:
            return override(server_name, path, self._settings)
        return default_phases(runtime, path)

    async def build(
        self,
        server_name: str,
        runtime: Runtime,
        path: Path,
        phases: Optional[list[BuildPhase]] = None,
        announce: bool = True,
    ) -> None:
        """
        Run every phase in order.

        Args:
            phases: Pre-resolved phases (defaults to ``phases_for``)
            announce: Publish all phases as pending before starting

        Raises:
            BuildError: On the first phase that fails
        """
        if phases is None:
            phases = self.phases_for(server_name, runtime, path, self.resolve_override(server_name))

        reporter = self._bus.reporter(server_name)
        if announce:
            for phase in phases:
                reporter.pending(phase.label)

        for phase in phases:
            await self._run_phase(server_name, phase)

    async def _run_phase(self, server_name: str, phase: BuildPhase) -> None:
        reporter = self._bus.reporter(server_name)
        reporter.started(phase.label, phase.start_message or f"{phase.label}...")

        try:
            result = await self._run(list(phase.args), cwd=phase.cwd)
        except OSError as e:
            reporter.failed(phase.label, f"Error: {e}")
            logger.error(f"[{server_name}] {phase.label} could not start: {e}")
            raise BuildError(phase.label, str(e), cause=e) from e

        if not result.ok:
            reporter.failed(phase.label, f"Error: {result.describe()}")
            logger.error(f"[{server_name}] {phase.label} failed: {result.describe()}")
            raise BuildError(phase.label, result.describe())

        reporter.completed(phase.label, phase.success_message or f"{phase.label} complete")
