"""
Installation orchestrator - runs the install and uninstall sequences.

Install runs, strictly in order:

    prerequisites -> clone + build (or package install) -> env file
    -> wrapper script -> registry entry

and stops at the first failure. The registry entry is always written
last, so a server only shows up as installed once it can actually be
launched. Uninstall removes the registry entry first and then cleans up
files on a best-effort basis.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterable, Iterator, Mapping
from contextlib import asynccontextmanager, contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ..config import Settings
from ..errors import (
    BuildError,
    DashboardError,
    ServerAlreadyInstalledError,
    ServerNotInstalledError,
    UnknownStrategyError,
    UnmetPrerequisite,
)
from ..models import ContainerImage, LaunchConfig, LocalRepo, PackageRegistry, ServerDescriptor
from ..progress import ProgressBus, StepReporter
from ..registry import RegistryManager
from .builder import DependencyBuilder
from .commands import CommandRunner, run_command
from .envfile import EnvironmentFileManager
from .prerequisites import PrerequisiteChecker, step_name as prerequisite_step
from .repository import RepositoryProvisioner
from .wrapper import WrapperGenerator

logger = logging.getLogger(__name__)

# Step names shown in the progress panel
STEP_SETUP = "Setup"
STEP_CLONE = "Repository Clone"
STEP_PACKAGE = "Package Installation"
STEP_CONTAINER = "Container Image"
STEP_ENV_FILE = "Environment File"
STEP_WRAPPER = "Wrapper Creation"
STEP_REGISTRY = "MCP Configuration"

STEP_UNREGISTER = "Remove MCP Configuration"
STEP_ENV_CLEANUP = "Remove Environment File"
STEP_WRAPPER_CLEANUP = "Remove Wrapper"
STEP_REPO_CLEANUP = "Remove Repository"


class InstallState(str, Enum):
    """Where an install attempt currently is."""
    IDLE = "idle"
    PREREQUISITES_CHECKING = "prerequisites_checking"
    PROVISIONING = "provisioning"
    BUILDING = "building"
    ENVIRONMENT_WRITING = "environment_writing"
    WRAPPER_CREATION = "wrapper_creation"
    REGISTRY_UPDATE = "registry_update"
    DONE = "done"
    FAILED = "failed"


@dataclass
class InstallResult:
    """A completed install."""
    descriptor: ServerDescriptor
    launch_config: LaunchConfig
    env_file: Path
    repo_path: Optional[Path] = None

    def to_dict(self) -> dict:
        return {
            "server": self.descriptor.name,
            "mcpConfig": self.launch_config.to_dict(),
            "envFile": str(self.env_file),
            "repoPath": str(self.repo_path) if self.repo_path else None,
        }


@dataclass
class UninstallResult:
    """A completed uninstall. Cleanup failures are reported, not raised."""
    server_name: str
    was_installed: bool
    cleanup_failures: list[str]

    @property
    def clean(self) -> bool:
        return not self.cleanup_failures

    def to_dict(self) -> dict:
        return {
            "server": self.server_name,
            "wasInstalled": self.was_installed,
            "cleanupFailures": self.cleanup_failures,
        }


@dataclass
class ConfigureResult:
    server_name: str
    launch_config: LaunchConfig
    env_file: Path

    def to_dict(self) -> dict:
        return {
            "server": self.server_name,
            "mcpConfig": self.launch_config.to_dict(),
            "envFile": str(self.env_file),
        }


def env_values_for(
    descriptor: ServerDescriptor,
    values: Mapping[str, Union[str, bool, None]],
) -> dict[str, str]:
    """Schema variables with a non-empty value, in schema order."""
    result: dict[str, str] = {}
    for key in descriptor.environment_schema:
        value = values.get(key)
        if isinstance(value, bool):
            value = "true" if value else "false"
        if value is None or value == "":
            continue
        result[key] = str(value)
    return result


@contextmanager
def tracked_step(
    reporter: StepReporter,
    step: str,
    start_message: str,
    success_message: str,
) -> Iterator[None]:
    """Publish in-progress, then complete or error, around a block."""
    reporter.started(step, start_message)
    try:
        yield
    except DashboardError as e:
        reporter.failed(step, f"Error: {e.message}")
        raise
    except Exception as e:
        reporter.failed(step, f"Error: {e}")
        raise
    reporter.completed(step, success_message)


class InstallationOrchestrator:
    """
    Sequences install, uninstall, configure and enable/disable.

    Operations on the same server name are serialised with a per-name
    lock; different servers may run concurrently.
    """

    def __init__(
        self,
        bus: ProgressBus,
        settings: Settings,
        registry: RegistryManager,
        prerequisites: PrerequisiteChecker,
        provisioner: RepositoryProvisioner,
        builder: DependencyBuilder,
        env_files: EnvironmentFileManager,
        wrappers: WrapperGenerator,
        runner: CommandRunner = run_command,
    ):
        self._bus = bus
        self._settings = settings
        self._registry = registry
        self._prerequisites = prerequisites
        self._provisioner = provisioner
        self._builder = builder
        self._env_files = env_files
        self._wrappers = wrappers
        self._run = runner

        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}
        self._states: dict[str, InstallState] = {}

    @asynccontextmanager
    async def _lock(self, server_name: str) -> AsyncIterator[None]:
        """Hold the per-server lock; it is dropped once nobody holds or waits on it."""
        lock = self._locks.setdefault(server_name, asyncio.Lock())
        self._lock_users[server_name] = self._lock_users.get(server_name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[server_name] -= 1
            if not self._lock_users[server_name]:
                del self._lock_users[server_name]
                del self._locks[server_name]

    def state(self, server_name: str) -> InstallState:
        """Current (or last) install state for a server."""
        return self._states.get(server_name, InstallState.IDLE)

    def _set_state(self, server_name: str, state: InstallState) -> None:
        self._states[server_name] = state
        logger.debug(f"[{server_name}] -> {state.value}")

    def plan(self, descriptor: ServerDescriptor) -> list[str]:
        """Step names an install of this descriptor will go through."""
        strategy = descriptor.launch_strategy
        if strategy is None:
            raise UnknownStrategyError(f"Server {descriptor.name} has no launch strategy")

        steps = [prerequisite_step(tool) for tool in descriptor.prerequisites]
        if isinstance(strategy, LocalRepo):
            steps.append(STEP_CLONE)
            steps.extend(phase.label for phase in self._build_phases(descriptor.name, strategy))
        elif isinstance(strategy, PackageRegistry):
            steps.append(STEP_PACKAGE)
        elif isinstance(strategy, ContainerImage):
            steps.append(STEP_CONTAINER)
        steps.extend([STEP_ENV_FILE, STEP_WRAPPER, STEP_REGISTRY])
        return steps

    def _build_phases(self, server_name: str, strategy: LocalRepo):
        override = self._builder.resolve_override(server_name)
        repo_path = self._provisioner.path_for(strategy.repository_url)
        return self._builder.phases_for(server_name, strategy.runtime, repo_path, override)

    async def install(
        self,
        descriptor: ServerDescriptor,
        env_values: Mapping[str, Union[str, bool, None]],
    ) -> InstallResult:
        """
        Install a server.

        Raises:
            DashboardError: The taxonomy error of the step that failed.
                Nothing after that step runs and the registry is untouched.
        """
        name = descriptor.name
        reporter = self._bus.reporter(name)
        strategy = descriptor.launch_strategy

        if strategy is None:
            error = UnknownStrategyError(f"Server {name} has no launch strategy")
            reporter.failed(STEP_SETUP, f"Error: {error.message}")
            raise error

        async with self._lock(name):
            # Checked under the lock so a concurrent install of the same name sees our entry
            if await self._registry.is_installed(name):
                error = ServerAlreadyInstalledError(f"Server already installed: {name}")
                reporter.failed(STEP_SETUP, f"Error: {error.message}")
                raise error

            logger.info(f"[{name}] Installing ({strategy.type})")

            phases = self._build_phases(name, strategy) if isinstance(strategy, LocalRepo) else []
            for step in self.plan(descriptor):
                reporter.pending(step)

            repo_path: Optional[Path] = None
            try:
                self._set_state(name, InstallState.PREREQUISITES_CHECKING)
                await self._prerequisites.ensure_prerequisites(name, descriptor.prerequisites)

                self._set_state(name, InstallState.PROVISIONING)
                if isinstance(strategy, LocalRepo):
                    with tracked_step(
                        reporter, STEP_CLONE,
                        f"Cloning {strategy.repository_url}...",
                        "Repository cloned successfully",
                    ):
                        repo_path = await self._provisioner.clone(strategy.repository_url)

                    self._set_state(name, InstallState.BUILDING)
                    await self._builder.build(name, strategy.runtime, repo_path, phases=phases, announce=False)
                elif isinstance(strategy, PackageRegistry):
                    with tracked_step(
                        reporter, STEP_PACKAGE,
                        f"Installing {strategy.package_name}...",
                        "Package installed successfully",
                    ):
                        await self._install_package(strategy)
                else:
                    with tracked_step(
                        reporter, STEP_CONTAINER,
                        f"Pulling {strategy.image_reference}...",
                        "Container image pulled successfully",
                    ):
                        await self._pull_image(strategy)

                self._set_state(name, InstallState.ENVIRONMENT_WRITING)
                with tracked_step(
                    reporter, STEP_ENV_FILE,
                    "Saving environment variables...",
                    "Environment variables saved",
                ):
                    env_file = await self._env_files.write(name, env_values_for(descriptor, env_values))

                self._set_state(name, InstallState.WRAPPER_CREATION)
                previous = descriptor.launch_config
                if previous is not None and previous.disabled_tools is not None:
                    disabled_tools = previous.disabled_tools
                else:
                    disabled_tools = descriptor.disabled_tools
                with tracked_step(
                    reporter, STEP_WRAPPER,
                    "Creating environment wrapper...",
                    "Environment wrapper created successfully",
                ):
                    launch_config = await self._wrappers.generate(
                        name, strategy, env_file, disabled_tools=disabled_tools,
                    )

                self._set_state(name, InstallState.REGISTRY_UPDATE)
                with tracked_step(
                    reporter, STEP_REGISTRY,
                    "Saving MCP configuration...",
                    "MCP configuration saved successfully",
                ):
                    launch_config = await self._registry.add(name, launch_config)

            except Exception as e:
                self._set_state(name, InstallState.FAILED)
                logger.error(f"[{name}] Install failed: {e}")
                raise

            self._set_state(name, InstallState.DONE)
            logger.info(f"[{name}] Installed")
            return InstallResult(
                descriptor=descriptor.with_launch_config(launch_config),
                launch_config=launch_config,
                env_file=env_file,
                repo_path=repo_path,
            )

    async def _install_package(self, strategy: PackageRegistry) -> None:
        args = [
            "npx", "-y", "@smithery/cli", "install", strategy.package_name,
            "--client", self._settings.smithery_client,
        ]
        try:
            result = await self._run(args)
        except OSError as e:
            raise BuildError(STEP_PACKAGE, f"could not run npx: {e}", cause=e) from e
        if not result.ok:
            raise BuildError(STEP_PACKAGE, result.describe())

    async def _pull_image(self, strategy: ContainerImage) -> None:
        """Check the docker daemon answers, then pull the image."""
        try:
            result = await self._run(["docker", "info"])
        except OSError as e:
            raise UnmetPrerequisite("docker", f"could not run docker: {e}", cause=e) from e
        if not result.ok:
            raise UnmetPrerequisite("docker", "Docker is installed but not running")

        result = await self._run(["docker", "pull", strategy.image_reference])
        if not result.ok:
            raise BuildError(STEP_CONTAINER, result.describe())

    async def uninstall(self, descriptor: ServerDescriptor) -> UninstallResult:
        """
        Uninstall a server.

        The registry entry goes first; env file, wrapper and cloned repo
        are then removed best-effort.

        Raises:
            RegistryIOError: If the registry entry could not be removed
        """
        name = descriptor.name
        reporter = self._bus.reporter(name)
        strategy = descriptor.launch_strategy

        async with self._lock(name):
            steps = [STEP_UNREGISTER, STEP_ENV_CLEANUP]
            if strategy is not None:
                steps.append(STEP_WRAPPER_CLEANUP)
            if isinstance(strategy, LocalRepo):
                steps.append(STEP_REPO_CLEANUP)
            for step in steps:
                reporter.pending(step)

            with tracked_step(
                reporter, STEP_UNREGISTER,
                "Removing MCP configuration...",
                "MCP configuration removed",
            ):
                was_installed = await self._registry.remove(name)
            if not was_installed:
                logger.warning(f"[{name}] Was not in the registry, cleaning up files anyway")

            failures: list[str] = []

            reporter.started(STEP_ENV_CLEANUP, "Deleting environment file...")
            if await self._env_files.remove(name):
                reporter.completed(STEP_ENV_CLEANUP, "Environment file deleted")
            else:
                failures.append(STEP_ENV_CLEANUP)
                reporter.failed(STEP_ENV_CLEANUP, "Could not delete environment file")

            if strategy is not None:
                reporter.started(STEP_WRAPPER_CLEANUP, "Deleting wrapper script...")
                if await self._wrappers.remove(name, strategy):
                    reporter.completed(STEP_WRAPPER_CLEANUP, "Wrapper script deleted")
                else:
                    failures.append(STEP_WRAPPER_CLEANUP)
                    reporter.failed(STEP_WRAPPER_CLEANUP, "Could not delete wrapper script")

            if isinstance(strategy, LocalRepo):
                reporter.started(STEP_REPO_CLEANUP, "Removing cloned repository...")
                if await self._provisioner.teardown(strategy.repository_url):
                    reporter.completed(STEP_REPO_CLEANUP, "Repository removed")
                else:
                    failures.append(STEP_REPO_CLEANUP)
                    reporter.failed(STEP_REPO_CLEANUP, "Could not remove repository")

            self._set_state(name, InstallState.IDLE)
            logger.info(f"[{name}] Uninstalled" + (f" with cleanup failures: {failures}" if failures else ""))
            return UninstallResult(server_name=name, was_installed=was_installed, cleanup_failures=failures)

    async def configure(
        self,
        descriptor: ServerDescriptor,
        env_values: Mapping[str, Union[str, bool, None]],
        disabled_tools: Optional[Iterable[str]] = None,
    ) -> ConfigureResult:
        """
        Save new environment values and disabled tools for an installed server.

        Wrappers read the env file on every launch, so the wrapper itself is
        not regenerated. ``disabled_tools`` defaults to what the descriptor
        carries, the same way install picks them.

        Raises:
            ServerNotInstalledError: If the server is not in the registry
            EnvFileIOError: If the file cannot be written
            RegistryIOError: If the registry cannot be updated
        """
        name = descriptor.name
        if disabled_tools is None:
            launch = descriptor.launch_config
            disabled_tools = (
                launch.disabled_tools
                if launch is not None and launch.disabled_tools is not None
                else descriptor.disabled_tools
            )

        async with self._lock(name):
            if not await self._registry.is_installed(name):
                raise ServerNotInstalledError(f"Server not installed: {name}")
            env_file = await self._env_files.write(name, env_values_for(descriptor, env_values))
            config = await self._registry.set_disabled_tools(name, list(disabled_tools))
            logger.info(f"[{name}] Configuration saved")
            return ConfigureResult(server_name=name, launch_config=config, env_file=env_file)

    async def set_enabled(self, server_name: str, enabled: bool) -> LaunchConfig:
        """
        Enable or disable an installed server without reinstalling.

        Raises:
            ServerNotInstalledError: If the server is not in the registry
        """
        async with self._lock(server_name):
            config = await self._registry.set_disabled(server_name, not enabled)
            logger.info(f"[{server_name}] {'Enabled' if enabled else 'Disabled'}")
            return config
