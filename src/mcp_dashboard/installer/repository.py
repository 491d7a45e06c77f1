"""
Local workspace for servers that run from a cloned repository.
"""

import asyncio
import logging
import shutil
from pathlib import Path

from ..errors import CloneError
from .commands import CommandRunner, run_command

logger = logging.getLogger(__name__)


def repo_dir_name(repository_url: str) -> str:
    """Directory name for a repository: last URL segment without ``.git``."""
    last = repository_url.rstrip("/").split("/")[-1]
    if last.endswith(".git"):
        last = last[: -len(".git")]
    return last or "repo"


class RepositoryProvisioner:
    """Clones server repositories under a fixed workspace root."""

    def __init__(self, workspace_root: Path, runner: CommandRunner = run_command):
        self.workspace_root = Path(workspace_root)
        self._run = runner

    def path_for(self, repository_url: str) -> Path:
        return self.workspace_root / repo_dir_name(repository_url)

    async def clone(self, repository_url: str) -> Path:
        """
        Clone a repository into the workspace.

        An existing directory is not cleaned up first; git's own
        "destination path already exists" failure surfaces as CloneError.

        Returns:
            Path of the cloned repository
        """
        target = self.path_for(repository_url)
        try:
            await asyncio.to_thread(self.workspace_root.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise CloneError(f"Cannot create workspace {self.workspace_root}: {e}", cause=e) from e

        logger.info(f"Cloning {repository_url} into {target}")
        try:
            result = await self._run(["git", "clone", repository_url, str(target)])
        except OSError as e:
            raise CloneError(f"Could not run git: {e}", cause=e) from e

        if not result.ok:
            raise CloneError(f"Cloning {repository_url} failed: {result.describe()}")

        return target

    async def teardown(self, repository_url: str) -> bool:
        """
        Remove a cloned repository.

        Never raises: failures are logged so uninstall can carry on.

        Returns:
            False if the directory existed and could not be removed
        """
        target = self.path_for(repository_url)
        if not target.exists():
            return True

        try:
            await asyncio.to_thread(shutil.rmtree, target)
        except OSError as e:
            logger.error(f"Error tearing down local repository {target}: {e}")
            return False

        logger.info(f"Removed local repository {target}")
        return True
