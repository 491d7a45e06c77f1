"""
Data model for catalog descriptors and registry launch configs.

Catalog entries come in two shapes: the tagged ``launchStrategy`` form
and the legacy form with ``localSetup`` / ``npxSetup`` / ``dockerWrapper``
fields side by side. Both are normalised into a single LaunchStrategy
variant when the catalog is parsed.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Union


class EnvKind(str, Enum):
    """Input kind for an environment variable field."""
    STRING = "string"
    PASSWORD = "password"
    BOOLEAN = "boolean"


class Runtime(str, Enum):
    """Runtime used to build and launch a locally cloned server."""
    NODE = "node"
    NPM = "npm"
    PNPM = "pnpm"
    UV = "uv"


@dataclass(frozen=True)
class EnvVariable:
    """One field of a server's environment schema."""
    kind: EnvKind = EnvKind.STRING
    description: str = ""
    docs_url: str = ""
    default: str = ""

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "description": self.description,
            "docsUrl": self.docs_url,
            "value": self.default,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EnvVariable":
        try:
            kind = EnvKind(data.get("type", "string"))
        except ValueError:
            kind = EnvKind.STRING
        default = data.get("value", "")
        if isinstance(default, bool):
            default = "true" if default else "false"
        return cls(
            kind=kind,
            description=data.get("description", "") or "",
            docs_url=data.get("docsUrl", "") or "",
            default=str(default) if default is not None else "",
        )


@dataclass(frozen=True)
class LocalRepo:
    """Clone a repository, build it, and run an entry point from it."""
    repository_url: str
    runtime: Runtime
    entry_point: str

    type = "localRepo"

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "repositoryUrl": self.repository_url,
            "runtime": self.runtime.value,
            "entryPoint": self.entry_point,
        }


@dataclass(frozen=True)
class PackageRegistry:
    """Run a published package through npx."""
    package_name: str
    invocation_args: tuple[str, ...] = ()

    type = "packageRegistry"

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "packageName": self.package_name,
            "invocationArgs": list(self.invocation_args),
        }


@dataclass(frozen=True)
class ContainerImage:
    """Run a container image with the env file passed to docker."""
    image_reference: str

    type = "containerImage"

    def to_dict(self) -> dict:
        return {"type": self.type, "imageReference": self.image_reference}


LaunchStrategy = Union[LocalRepo, PackageRegistry, ContainerImage]


def parse_launch_strategy(data: dict) -> Optional[LaunchStrategy]:
    """
    Pick the single launch strategy described by a catalog entry.

    Returns None when the entry describes none. Raises ValueError when the
    tagged form is present but malformed.
    """
    tagged = data.get("launchStrategy")
    if isinstance(tagged, dict):
        kind = tagged.get("type")
        if kind == LocalRepo.type:
            return LocalRepo(
                repository_url=tagged["repositoryUrl"],
                runtime=Runtime(tagged["runtime"]),
                entry_point=tagged["entryPoint"],
            )
        if kind == PackageRegistry.type:
            return PackageRegistry(
                package_name=tagged["packageName"],
                invocation_args=tuple(tagged.get("invocationArgs", [])),
            )
        if kind == ContainerImage.type:
            return ContainerImage(image_reference=tagged["imageReference"])
        raise ValueError(f"Unknown launch strategy type: {kind!r}")

    # Legacy catalog shape, first match wins
    local = data.get("localSetup")
    if isinstance(local, dict) and local.get("repo"):
        return LocalRepo(
            repository_url=local["repo"],
            runtime=Runtime(local.get("command", "node")),
            entry_point=local.get("entryPoint", ""),
        )

    npx = data.get("npxSetup")
    if isinstance(npx, dict) and npx.get("package"):
        return PackageRegistry(
            package_name=npx["package"],
            invocation_args=tuple(npx.get("args", [])),
        )

    if data.get("dockerWrapper") and data.get("dockerImage"):
        return ContainerImage(image_reference=data["dockerImage"])

    return None


@dataclass(frozen=True)
class LaunchConfig:
    """The invocation record the assistant reads from the registry."""
    command: str
    args: Optional[tuple[str, ...]] = None
    disabled: Optional[bool] = None
    disabled_tools: Optional[tuple[str, ...]] = None

    def to_dict(self) -> dict:
        # Absent fields stay absent in the registry file
        data: dict = {"command": self.command}
        if self.args is not None:
            data["args"] = list(self.args)
        if self.disabled is not None:
            data["disabled"] = self.disabled
        if self.disabled_tools is not None:
            data["disabledTools"] = list(self.disabled_tools)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "LaunchConfig":
        args = data.get("args")
        disabled_tools = data.get("disabledTools")
        return cls(
            command=data.get("command", ""),
            args=tuple(args) if args is not None else None,
            disabled=data.get("disabled"),
            disabled_tools=tuple(disabled_tools) if disabled_tools is not None else None,
        )

    @property
    def enabled(self) -> bool:
        return not self.disabled


@dataclass(frozen=True)
class ServerDescriptor:
    """An installable MCP server as described by the catalog."""

    name: str
    display_name: str = ""
    description: str = ""
    docs_url: str = ""
    environment_schema: dict[str, EnvVariable] = field(default_factory=dict)
    launch_strategy: Optional[LaunchStrategy] = None
    prerequisites: tuple[str, ...] = ()
    disabled_tools: tuple[str, ...] = ()
    launch_config: Optional[LaunchConfig] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "displayName": self.display_name,
            "description": self.description,
            "docsUrl": self.docs_url,
            "env": {k: v.to_dict() for k, v in self.environment_schema.items()},
            "launchStrategy": self.launch_strategy.to_dict() if self.launch_strategy else None,
            "prerequisites": list(self.prerequisites),
            "disabledTools": list(self.disabled_tools),
            "mcpConfig": self.launch_config.to_dict() if self.launch_config else None,
        }

    @classmethod
    def from_dict(cls, data: dict, name: Optional[str] = None) -> "ServerDescriptor":
        """
        Build a descriptor from a catalog entry.

        Args:
            data: The catalog entry
            name: Catalog key, used when the entry has no ``name`` field
        """
        server_name = data.get("name") or name
        if not server_name:
            raise ValueError("Catalog entry has no name")

        env_data = data.get("env") or {}
        schema = {
            key: EnvVariable.from_dict(value if isinstance(value, dict) else {})
            for key, value in env_data.items()
        }

        # Prerequisites live at the top level or under localSetup
        prerequisites = data.get("prerequisites")
        if prerequisites is None and isinstance(data.get("localSetup"), dict):
            prerequisites = data["localSetup"].get("prerequisites")
        # Declared order matters, duplicates don't
        ordered = tuple(dict.fromkeys(prerequisites or []))

        mcp_config = data.get("mcpConfig") or {}
        disabled_tools = data.get("disabledTools", mcp_config.get("disabledTools")) or []

        return cls(
            name=server_name,
            display_name=data.get("displayName", "") or "",
            description=data.get("description", "") or "",
            docs_url=data.get("docsUrl", "") or "",
            environment_schema=schema,
            launch_strategy=parse_launch_strategy(data),
            prerequisites=ordered,
            disabled_tools=tuple(disabled_tools),
        )

    def with_launch_config(self, launch_config: Optional[LaunchConfig]) -> "ServerDescriptor":
        """Return a copy carrying the given registry launch config."""
        return replace(self, launch_config=launch_config)


@dataclass(frozen=True)
class InstalledServer:
    """A registry entry, joined with its catalog descriptor when known."""
    name: str
    launch_config: LaunchConfig
    descriptor: Optional[ServerDescriptor] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "installed": True,
            "enabled": self.launch_config.enabled,
            "mcpConfig": self.launch_config.to_dict(),
            "descriptor": self.descriptor.to_dict() if self.descriptor else None,
        }


@dataclass
class ServerListing:
    """Result of comparing the catalog against the registry."""
    installed: list[InstalledServer] = field(default_factory=list)
    available: list[ServerDescriptor] = field(default_factory=list)
    catalog_error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "installed": [s.to_dict() for s in self.installed],
            "available": [dict(s.to_dict(), installed=False) for s in self.available],
            "catalogError": self.catalog_error,
        }
