"""Pytest configuration for mcp_dashboard tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from mcp_dashboard.config import Settings
from mcp_dashboard.installer.commands import CommandResult
from mcp_dashboard.manager import DashboardManager
from mcp_dashboard.progress import InstallationStep, ProgressBus


class FakeRunner:
    """Command runner that records calls instead of spawning processes."""

    def __init__(self) -> None:
        self.calls: List[Tuple[Tuple[str, ...], Optional[Path]]] = []
        self._failures: List[Tuple[Tuple[str, ...], int, str]] = []
        self._missing: set[str] = set()

    def fail(self, *prefix: str, returncode: int = 1, stderr: str = "boom") -> None:
        """Make commands starting with ``prefix`` exit non-zero."""
        self._failures.append((prefix, returncode, stderr))

    def missing(self, program: str) -> None:
        """Make spawning ``program`` raise like a missing binary."""
        self._missing.add(program)

    @property
    def commands(self) -> List[Tuple[str, ...]]:
        return [args for args, _ in self.calls]

    async def __call__(self, args, cwd=None) -> CommandResult:
        cmd = tuple(str(a) for a in args)
        self.calls.append((cmd, Path(cwd) if cwd is not None else None))

        if cmd[0] in self._missing:
            raise FileNotFoundError(2, "No such file or directory", cmd[0])

        for prefix, returncode, stderr in self._failures:
            if cmd[: len(prefix)] == prefix:
                return CommandResult(args=cmd, returncode=returncode, stderr=stderr)

        if cmd[:2] == ("git", "clone"):
            Path(cmd[3]).mkdir(parents=True, exist_ok=True)
        return CommandResult(args=cmd, returncode=0)


class StepRecorder:
    """Collects every step published on a bus."""

    def __init__(self, bus: ProgressBus, server: Optional[str] = None) -> None:
        self.steps: List[InstallationStep] = []
        self.unsubscribe = bus.subscribe(self.steps.append, server=server)

    def statuses(self, step_name: str) -> List[str]:
        return [s.status.value for s in self.steps if s.step_name == step_name]

    def names(self) -> List[str]:
        return list(dict.fromkeys(s.step_name for s in self.steps))


@pytest.fixture
def home() -> Path:
    """A throwaway home directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(home: Path) -> Settings:
    return Settings(home=home, catalog_url="http://127.0.0.1:1/catalog.json")


@pytest.fixture
def bus() -> ProgressBus:
    return ProgressBus()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def recorder(bus: ProgressBus) -> StepRecorder:
    return StepRecorder(bus)


@pytest.fixture
def manager(settings: Settings, bus: ProgressBus, runner: FakeRunner) -> DashboardManager:
    """A manager where every tool resolves on PATH and no process runs."""
    return DashboardManager.create(
        settings,
        bus=bus,
        runner=runner,
        resolve=lambda tool: f"/usr/local/bin/{tool}",
    )


@pytest.fixture
def catalog_data() -> Dict[str, Any]:
    """A small catalog mixing tagged and legacy entries."""
    return {
        "echo-server": {
            "name": "echo-server",
            "displayName": "Echo",
            "description": "Echoes tool calls back",
            "launchStrategy": {
                "type": "packageRegistry",
                "packageName": "echo-mcp",
                "invocationArgs": ["echo-mcp", "--stdio"],
            },
            "env": {},
        },
        "notes": {
            "name": "notes",
            "displayName": "Notes",
            "localSetup": {
                "repo": "https://github.com/example/notes-mcp.git",
                "command": "node",
                "entryPoint": "dist/index.js",
                "prerequisites": ["node"],
            },
            "env": {
                "NOTES_DIR": {"type": "string", "description": "Where notes live", "value": "~/notes"},
                "NOTES_TOKEN": {"type": "password", "description": "API token"},
            },
            "mcpConfig": {"disabledTools": ["delete_note"]},
        },
        "github": {
            "name": "github",
            "displayName": "GitHub",
            "dockerWrapper": True,
            "dockerImage": "ghcr.io/github/github-mcp-server",
            "env": {
                "GITHUB_PERSONAL_ACCESS_TOKEN": {"type": "password"},
                "GITHUB_USERNAME": {"type": "string"},
            },
        },
    }


@pytest.fixture
def serve():
    """Start a local HTTP server answering /catalog.json with a handler."""

    async def start(handler) -> TestServer:
        app = web.Application()
        app.router.add_get("/catalog.json", handler)
        server = TestServer(app)
        await server.start_server()
        return server

    return start


@pytest.fixture
def sample_hello_message() -> Dict[str, str]:
    """Return a sample hello message."""
    return {"type": "hello", "request_id": "test-123"}
