"""Tests for repository provisioning."""

from __future__ import annotations

import pytest

from mcp_dashboard.errors import CloneError
from mcp_dashboard.installer.repository import RepositoryProvisioner, repo_dir_name


class TestRepoDirName:
    """Tests for repo_dir_name."""

    def test_strips_git_suffix(self):
        assert repo_dir_name("https://github.com/example/notes-mcp.git") == "notes-mcp"

    def test_trailing_slash(self):
        assert repo_dir_name("https://github.com/example/notes-mcp/") == "notes-mcp"


class TestRepositoryProvisioner:
    """Tests for RepositoryProvisioner."""

    @pytest.mark.asyncio
    async def test_clone(self, settings, runner):
        provisioner = RepositoryProvisioner(settings.repo_root, runner=runner)
        url = "https://github.com/example/notes-mcp.git"

        path = await provisioner.clone(url)

        assert path == settings.repo_root / "notes-mcp"
        assert runner.commands == [("git", "clone", url, str(path))]

    @pytest.mark.asyncio
    async def test_clone_failure(self, settings, runner):
        """Test git's own failure surfaces as CloneError."""
        runner.fail("git", "clone", stderr="fatal: destination path 'notes-mcp' already exists")
        provisioner = RepositoryProvisioner(settings.repo_root, runner=runner)

        with pytest.raises(CloneError) as exc_info:
            await provisioner.clone("https://github.com/example/notes-mcp.git")
        assert "already exists" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_git_missing(self, settings, runner):
        runner.missing("git")
        provisioner = RepositoryProvisioner(settings.repo_root, runner=runner)

        with pytest.raises(CloneError):
            await provisioner.clone("https://github.com/example/notes-mcp.git")

    @pytest.mark.asyncio
    async def test_teardown(self, settings, runner):
        provisioner = RepositoryProvisioner(settings.repo_root, runner=runner)
        url = "https://github.com/example/notes-mcp.git"
        path = await provisioner.clone(url)
        (path / "index.js").write_text("console.log(1)")

        assert await provisioner.teardown(url) is True
        assert not path.exists()
        # Nothing left to remove is still a success
        assert await provisioner.teardown(url) is True

    @pytest.mark.asyncio
    async def test_teardown_failure_is_reported(self, settings, runner, monkeypatch):
        """Test a permission error is returned as False, not raised."""
        provisioner = RepositoryProvisioner(settings.repo_root, runner=runner)
        url = "https://github.com/example/notes-mcp.git"
        await provisioner.clone(url)

        def denied(path, *args, **kwargs):
            raise PermissionError(13, "Permission denied", str(path))

        monkeypatch.setattr("mcp_dashboard.installer.repository.shutil.rmtree", denied)

        assert await provisioner.teardown(url) is False
