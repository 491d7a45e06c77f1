"""Error taxonomy for the dashboard core.

Every error carries a stable ``code`` that the native messaging handlers
send back to the UI, plus the original exception in ``cause`` (also
chained as ``__cause__`` when raised with ``from``).
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DashboardError(Exception):
    """Base exception for all dashboard operations."""

    code = "dashboard_error"

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    @property
    def details(self) -> Dict[str, Any]:
        """Extra structured data for error responses."""
        details: Dict[str, Any] = {}
        if self.cause is not None:
            details["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return details


class UnmetPrerequisite(DashboardError):
    """A required command-line tool is missing and could not be installed."""

    code = "unmet_prerequisite"

    def __init__(self, tool: str, reason: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Prerequisite {tool} not met: {reason}", cause)
        self.tool = tool
        self.reason = reason

    @property
    def details(self) -> Dict[str, Any]:
        return {**super().details, "tool": self.tool, "reason": self.reason}


class CloneError(DashboardError):
    """Cloning a server repository failed."""

    code = "clone_error"


class BuildError(DashboardError):
    """A dependency install or build phase failed."""

    code = "build_error"

    def __init__(self, phase: str, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"{phase} failed: {message}", cause)
        self.phase = phase

    @property
    def details(self) -> Dict[str, Any]:
        return {**super().details, "phase": self.phase}


class WrapperCreationError(DashboardError):
    """The launch wrapper script could not be written or made executable."""

    code = "wrapper_creation_error"


class RegistryIOError(DashboardError):
    """The installed-servers registry file could not be read or written."""

    code = "registry_io_error"


class EnvFileIOError(DashboardError):
    """A server environment file could not be written."""

    code = "env_file_io_error"


class UnknownStrategyError(DashboardError):
    """The descriptor does not name a launch strategy we can install."""

    code = "unknown_strategy"


class CatalogError(DashboardError):
    """The remote catalog could not be fetched or parsed."""

    code = "catalog_error"


class ServerNotInstalledError(DashboardError):
    """The operation needs an installed server but the registry has none."""

    code = "server_not_installed"


class ServerAlreadyInstalledError(DashboardError):
    """Install was requested for a server the registry already records."""

    code = "server_already_installed"
