"""
Locations and tunables for the dashboard.

Defaults match the layout the assistant already uses: the registry lives
in the Windsurf MCP config, env files and wrappers under ``~/.mcp`` and
cloned repositories under ``~/.mcp/repos``. Each can be overridden from
the environment.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

# Environment variable overrides
HOME_ENV_VAR = "MCP_DASHBOARD_HOME"
REGISTRY_PATH_ENV_VAR = "MCP_DASHBOARD_REGISTRY_PATH"
ENV_ROOT_ENV_VAR = "MCP_DASHBOARD_ENV_ROOT"
REPO_ROOT_ENV_VAR = "MCP_DASHBOARD_REPO_ROOT"
CATALOG_URL_ENV_VAR = "MCP_DASHBOARD_CATALOG_URL"
LOG_LEVEL_ENV_VAR = "MCP_DASHBOARD_LOG_LEVEL"

# Defaults, relative to the home directory
DEFAULT_REGISTRY_PATH = Path(".codeium/windsurf/mcp_config.json")
DEFAULT_ENV_ROOT = Path(".mcp")
DEFAULT_REPO_ROOT = Path(".mcp/repos")
DEFAULT_SETUP_REPO = Path("repos/setup")

DEFAULT_CATALOG_URL = (
    "https://gist.githubusercontent.com/Breven217/78add136e29ae98a8ed1a2c28d4f8d80"
    "/raw/server-config.json"
)

# Package manager used to install missing prerequisites
DEFAULT_PREREQUISITE_INSTALLER = "brew"

# Client name passed to the smithery CLI for registry packages
DEFAULT_SMITHERY_CLIENT = "claude"


def _resolve(path: Path, home: Path) -> Path:
    """Expand ``~`` against our home and anchor relative paths there."""
    text = str(path)
    if text == "~" or text.startswith("~/"):
        return home / text[2:]
    if not path.is_absolute():
        return home / path
    return path


@dataclass
class Settings:
    """Resolved paths and tunables."""

    home: Path = field(default_factory=Path.home)
    registry_path: Path = DEFAULT_REGISTRY_PATH
    env_root: Path = DEFAULT_ENV_ROOT
    repo_root: Path = DEFAULT_REPO_ROOT
    setup_repo: Path = DEFAULT_SETUP_REPO
    catalog_url: str = DEFAULT_CATALOG_URL
    prerequisite_installer: str = DEFAULT_PREREQUISITE_INSTALLER
    smithery_client: str = DEFAULT_SMITHERY_CLIENT

    def __post_init__(self):
        self.home = Path(self.home).expanduser()
        self.registry_path = _resolve(Path(self.registry_path), self.home)
        self.env_root = _resolve(Path(self.env_root), self.home)
        self.repo_root = _resolve(Path(self.repo_root), self.home)
        self.setup_repo = _resolve(Path(self.setup_repo), self.home)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings, applying any ``MCP_DASHBOARD_*`` overrides."""
        env = os.environ if environ is None else environ
        home = Path(env[HOME_ENV_VAR]).expanduser() if env.get(HOME_ENV_VAR) else Path.home()
        return cls(
            home=home,
            registry_path=Path(env.get(REGISTRY_PATH_ENV_VAR) or DEFAULT_REGISTRY_PATH),
            env_root=Path(env.get(ENV_ROOT_ENV_VAR) or DEFAULT_ENV_ROOT),
            repo_root=Path(env.get(REPO_ROOT_ENV_VAR) or DEFAULT_REPO_ROOT),
            catalog_url=env.get(CATALOG_URL_ENV_VAR) or DEFAULT_CATALOG_URL,
        )

    def env_file(self, server_name: str) -> Path:
        """Path of a server's environment file."""
        return self.env_root / f"{server_name}.env"

    def expand_home(self, value: str) -> str:
        """Replace every ``~`` with the home directory."""
        return value.replace("~", str(self.home))
