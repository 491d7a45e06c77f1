"""
Dashboard Manager - the single entry point the UI talks to.

This wires the installer components together and exposes:
- Listing installed vs available servers
- Install / uninstall / configure
- Enabling and disabling installed servers
- Reading saved environment values back for the configure form
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Optional, Union

from .catalog import CatalogClient
from .config import Settings
from .errors import CatalogError
from .installer.builder import DependencyBuilder
from .installer.commands import CommandRunner, run_command, which
from .installer.envfile import EnvironmentFileManager
from .installer.orchestrator import (
    ConfigureResult,
    InstallationOrchestrator,
    InstallResult,
    UninstallResult,
)
from .installer.prerequisites import PrerequisiteChecker
from .installer.repository import RepositoryProvisioner
from .installer.wrapper import WrapperGenerator
from .models import InstalledServer, LaunchConfig, ServerDescriptor, ServerListing
from .progress import ProgressBus
from .registry import RegistryManager

logger = logging.getLogger(__name__)

EnvValues = Mapping[str, Union[str, bool, None]]


class DashboardManager:
    """
    Facade over the catalog, registry and installation orchestrator.

    Whether a server is installed is decided by the registry alone; the
    catalog only contributes descriptors.
    """

    def __init__(
        self,
        settings: Settings,
        bus: ProgressBus,
        registry: RegistryManager,
        catalog: CatalogClient,
        env_files: EnvironmentFileManager,
        orchestrator: InstallationOrchestrator,
    ):
        self.settings = settings
        self.bus = bus
        self.registry = registry
        self.catalog = catalog
        self.env_files = env_files
        self.orchestrator = orchestrator

        self._descriptors: dict[str, ServerDescriptor] = {}

    @classmethod
    def create(
        cls,
        settings: Optional[Settings] = None,
        bus: Optional[ProgressBus] = None,
        runner: CommandRunner = run_command,
        resolve=which,
    ) -> "DashboardManager":
        """Build a manager with the default component graph."""
        settings = settings or Settings.from_env()
        bus = bus or ProgressBus()

        registry = RegistryManager(settings.registry_path, home=settings.home)
        env_files = EnvironmentFileManager(settings)
        orchestrator = InstallationOrchestrator(
            bus=bus,
            settings=settings,
            registry=registry,
            prerequisites=PrerequisiteChecker(
                bus,
                installer=settings.prerequisite_installer,
                runner=runner,
                resolve=resolve,
            ),
            provisioner=RepositoryProvisioner(settings.repo_root, runner=runner),
            builder=DependencyBuilder(bus, settings, runner=runner),
            env_files=env_files,
            wrappers=WrapperGenerator(settings),
            runner=runner,
        )
        return cls(
            settings=settings,
            bus=bus,
            registry=registry,
            catalog=CatalogClient(settings.catalog_url),
            env_files=env_files,
            orchestrator=orchestrator,
        )

    # =========================================================================
    # Listing
    # =========================================================================

    async def refresh_catalog(self) -> list[ServerDescriptor]:
        """Fetch the catalog and remember its descriptors by name."""
        descriptors = await self.catalog.fetch()
        self._descriptors = {d.name: d for d in descriptors}
        return descriptors

    async def list_servers(self) -> ServerListing:
        """
        Split servers into installed and available.

        A catalog failure is reported on the listing instead of raised;
        installed servers are still listed from the registry.

        Raises:
            RegistryIOError: If the registry cannot be read
        """
        catalog_error: Optional[str] = None
        try:
            await self.refresh_catalog()
        except CatalogError as e:
            logger.warning(f"Catalog unavailable, listing registry only: {e}")
            catalog_error = e.message

        entries = await self.registry.entries()

        installed = []
        for name, config in entries.items():
            descriptor = self._descriptors.get(name)
            if descriptor is not None:
                descriptor = descriptor.with_launch_config(config)
            installed.append(InstalledServer(name=name, launch_config=config, descriptor=descriptor))

        available = [d for name, d in self._descriptors.items() if name not in entries]

        return ServerListing(installed=installed, available=available, catalog_error=catalog_error)

    async def is_installed(self, name: str) -> bool:
        return await self.registry.is_installed(name)

    async def get_descriptor(self, name: str, refresh: bool = False) -> Optional[ServerDescriptor]:
        """
        Look up a catalog descriptor, fetching the catalog if needed.

        Raises:
            CatalogError: If the catalog has to be fetched and cannot be
        """
        if refresh or name not in self._descriptors:
            await self.refresh_catalog()
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            return None
        config = await self.registry.get(name)
        return descriptor.with_launch_config(config) if config else descriptor

    # =========================================================================
    # Operations
    # =========================================================================

    async def install(self, descriptor: ServerDescriptor, env_values: EnvValues) -> InstallResult:
        """
        Install a server that is not yet in the registry.

        Raises:
            ServerAlreadyInstalledError: If the registry already has it
            DashboardError: Whatever the failing install step raised
        """
        result = await self.orchestrator.install(descriptor, env_values)
        self._descriptors[descriptor.name] = result.descriptor.with_launch_config(None)
        return result

    async def uninstall(self, descriptor: ServerDescriptor) -> UninstallResult:
        return await self.orchestrator.uninstall(descriptor)

    async def set_enabled(self, name: str, enabled: bool) -> LaunchConfig:
        return await self.orchestrator.set_enabled(name, enabled)

    async def configure(
        self,
        descriptor: ServerDescriptor,
        env_values: EnvValues,
        disabled_tools: Optional[Iterable[str]] = None,
    ) -> ConfigureResult:
        """Save new environment values and disabled tools for an installed server."""
        return await self.orchestrator.configure(descriptor, env_values, disabled_tools)

    async def read_saved_environment(self, descriptor: ServerDescriptor) -> Optional[dict[str, str]]:
        """
        Saved values for the descriptor's schema.

        Returns:
            The values, or None if the server has never been configured
        """
        return await self.env_files.read(descriptor.name, descriptor.environment_schema)
