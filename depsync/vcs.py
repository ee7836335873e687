"""Local command execution and cloned working copies."""

import asyncio
import logging
import shutil
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from pathlib import Path

from .errors import CleanupError, CloneError, VCSCommandError

logger = logging.getLogger(__name__)


class CommandRunner:
    """Runs local commands and returns their combined output."""

    def __init__(self, timeout: float = 300.0):
        """Initialize command runner.

        Args:
            timeout: Seconds a single command may run before it is killed
        """
        self.timeout = timeout

    async def run(
        self,
        args: Sequence[str],
        cwd: Path | None = None,
        *,
        secret: bool = False,
    ) -> str:
        """Run a command, raising VCSCommandError on failure.

        Args:
            args: Program and arguments
            cwd: Directory to run in
            secret: Do not log the command line, it carries credentials

        Returns:
            Combined stdout and stderr
        """
        display = f"{args[0]} <redacted>" if secret else " ".join(args)
        logger.info("Running command %s", display)

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise VCSCommandError(display, -1, str(e)) from e

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise VCSCommandError(display, None)

        output = stdout.decode(errors="replace")
        if not secret:
            logger.debug("Command output:\n%s", output)
        if process.returncode != 0:
            raise VCSCommandError(display, process.returncode, "" if secret else output)
        return output


class Git:
    """The git commands an update attempt needs."""

    def __init__(self, runner: CommandRunner, user_name: str, user_email: str):
        self.runner = runner
        self.user_name = user_name
        self.user_email = user_email

    async def clone(self, url: str, dest: Path) -> None:
        try:
            await self.runner.run(["git", "clone", url, str(dest)], secret=True)
        except VCSCommandError as e:
            raise CloneError(e.command, e.returncode, e.output) from e

    async def checkout(self, path: Path, branch: str, *, create: bool = False) -> None:
        args = ["git", "checkout", "-b", branch] if create else ["git", "checkout", branch]
        await self.runner.run(args, cwd=path)

    async def commit_all(self, path: Path, message: str) -> None:
        await self.runner.run(
            [
                "git",
                "-c",
                f"user.name={self.user_name}",
                "-c",
                f"user.email={self.user_email}",
                "commit",
                "-am",
                message,
            ],
            cwd=path,
        )

    async def push(self, path: Path, branch: str) -> None:
        await self.runner.run(["git", "push", "--set-upstream", "origin", branch], cwd=path)


def remove_tree(path: Path) -> None:
    """Delete a directory tree, raising CleanupError if it survives."""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as e:
        raise CleanupError(f"Error during clean up of {path}: {e}") from e


@asynccontextmanager
async def working_copy(git: Git, workdir: Path, repo: str, url: str) -> AsyncIterator[Path]:
    """Clone repo under workdir and delete the clone on exit.

    Any stale directory of the same name is removed first. The clone is
    removed on every exit path, including a failed clone.
    """
    path = Path(workdir) / repo
    remove_tree(path)
    try:
        await git.clone(url, path)
        yield path
    finally:
        remove_tree(path)
        logger.debug("Removed working copy %s", path)
