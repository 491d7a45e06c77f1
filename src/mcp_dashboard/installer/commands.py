"""
Subprocess helpers for install steps.

All external tools (git, npm, pnpm, uv, brew, docker, npx) are run
through ``run_command`` so the installer components can be handed a fake
runner in tests.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence, Union

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of a finished subprocess."""
    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        """Short failure description for errors and progress messages."""
        output = (self.stderr.strip() or self.stdout.strip()).splitlines()
        detail = output[-1] if output else "no output"
        return f"'{' '.join(self.args)}' exited with code {self.returncode}: {detail}"


CommandRunner = Callable[..., Awaitable[CommandResult]]


async def run_command(
    args: Sequence[str],
    cwd: Optional[Union[str, Path]] = None,
) -> CommandResult:
    """
    Run a command to completion and capture its output.

    Non-zero exits are reported in the result, not raised. Failing to
    spawn the program (missing binary, bad cwd) raises OSError.
    """
    cmd = tuple(str(a) for a in args)
    logger.debug(f"Running: {' '.join(cmd)}" + (f" (cwd={cwd})" if cwd else ""))

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd is not None else None,
    )
    stdout, stderr = await process.communicate()

    result = CommandResult(
        args=cmd,
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
    if not result.ok:
        logger.debug(f"Command failed: {result.describe()}")
    return result


def which(tool: str) -> Optional[str]:
    """Resolve a tool on PATH."""
    return shutil.which(tool)
