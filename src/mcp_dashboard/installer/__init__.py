"""
MCP Server Installer - turns catalog descriptors into runnable servers.

This module provides:
- Prerequisite checks and installs for CLI tools
- Repository cloning and dependency builds
- Environment files and launch wrapper scripts
- The orchestrator that sequences all of the above
"""

from .commands import CommandResult, CommandRunner, run_command, which
from .prerequisites import PREREQUISITES, PrerequisiteChecker
from .repository import RepositoryProvisioner, repo_dir_name
from .builder import BUILD_OVERRIDES, BuildPhase, DependencyBuilder, default_phases
from .envfile import EnvironmentFileManager, parse_env, serialize_env
from .wrapper import WrapperGenerator
from .orchestrator import (
    ConfigureResult,
    InstallationOrchestrator,
    InstallResult,
    InstallState,
    UninstallResult,
)

__all__ = [
    # Commands
    "CommandResult",
    "CommandRunner",
    "run_command",
    "which",
    # Prerequisites
    "PREREQUISITES",
    "PrerequisiteChecker",
    # Repository
    "RepositoryProvisioner",
    "repo_dir_name",
    # Build
    "BUILD_OVERRIDES",
    "BuildPhase",
    "DependencyBuilder",
    "default_phases",
    # Environment / wrappers
    "EnvironmentFileManager",
    "parse_env",
    "serialize_env",
    "WrapperGenerator",
    # Orchestrator
    "ConfigureResult",
    "InstallationOrchestrator",
    "InstallResult",
    "InstallState",
    "UninstallResult",
]
