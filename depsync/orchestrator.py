"""Per-repository dependency update pipeline."""

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path

from .config import PatchStrategy, UpdaterConfig
from .errors import FatalError
from .fingerprint import Fingerprinter, branch_name
from .manifest import load_manifest, save_manifest
from .models import AttemptState, ManifestSnapshot, UpdateAttempt
from .patch import patch_distinguished, patch_file, read_version_file, resolve_roles
from .remote import RemoteCoordinator
from .vcs import CommandRunner, Git, working_copy

logger = logging.getLogger(__name__)


def format_pr_body(snapshot: ManifestSnapshot, digest: str) -> str:
    """Generate pull request body text."""
    lines = ["Automated dependency update.", ""]
    for record in snapshot.records:
        lines.append(
            f"- `{record.name}`: {record.repo_name}@{record.prod_branch} "
            f"-> `{record.last_stable_commit}`"
        )
    lines.extend(["", f"Fingerprint: `{digest}`"])
    return "\n".join(lines)


class UpdateOrchestrator:
    """Updates downstream repositories to the latest stable dependency commits."""

    def __init__(
        self,
        remote: RemoteCoordinator,
        config: UpdaterConfig | None = None,
        runner: CommandRunner | None = None,
    ):
        self.remote = remote
        self.config = config or UpdaterConfig()
        self.runner = runner or CommandRunner(timeout=self.config.command_timeout)
        self.git = Git(self.runner, self.config.git_user_name, self.config.git_user_email)
        self.fingerprinter = Fingerprinter(remote, max_concurrency=self.config.max_concurrency)

    async def _patch(self, repo: str, path: Path, snapshot: ManifestSnapshot) -> None:
        strategy = self.config.strategy_for(repo)
        if strategy is PatchStrategy.SCRIPT:
            script = self.config.script
            # fail before touching any file
            resolve_roles(snapshot.records, script.roles)
            values = await read_version_file(
                path / script.version_file, script.version_keys, self.runner
            )
            invocation = patch_distinguished(snapshot.records, values, script)
            await self.runner.run(invocation.argv, cwd=path)
        else:
            for record in snapshot.records:
                patch_file(path / record.file_path, record)

    async def _attempt(self, attempt: UpdateAttempt) -> None:
        repo = attempt.repo
        logger.info("Updating dependencies of %s", repo)
        base = self.config.base_branch

        async with working_copy(
            self.git, self.config.workdir, repo, self.remote.clone_url(repo)
        ) as path:
            attempt.advance(AttemptState.CLONED)
            await self.git.checkout(path, base)

            manifest_path = path / self.config.deps_file
            snapshot = load_manifest(manifest_path)

            digest = await self.fingerprinter.fingerprint_snapshot(repo, base, snapshot)
            branch = branch_name(digest)
            attempt.digest = digest
            attempt.branch = branch
            attempt.advance(AttemptState.FINGERPRINTED)

            # an existing branch means this exact delta was already proposed
            if await self.remote.branch_exists(repo, branch):
                logger.info("Branch %s already exists in %s, skipping", branch, repo)
                attempt.advance(AttemptState.SKIPPED)
                return

            await self.remote.close_stale_pull_requests(repo, base)

            await self.git.checkout(path, branch, create=True)
            attempt.advance(AttemptState.BRANCH_CREATED)

            await self._patch(repo, path, snapshot)
            save_manifest(manifest_path, snapshot)
            attempt.advance(AttemptState.PATCHED)

            await self.git.commit_all(path, self.config.commit_message)
            attempt.advance(AttemptState.COMMITTED)

            await self.git.push(path, branch)
            attempt.advance(AttemptState.PUSHED)

            await self.remote.open_pull_request(
                branch, base, repo, body=format_pr_body(snapshot, digest)
            )
            attempt.advance(AttemptState.PULL_REQUEST_OPENED)

    async def update_repository(self, repo: str) -> UpdateAttempt:
        """Update one repository, raising on the first failure.

        Args:
            repo: Name of the downstream repository

        Returns:
            The attempt, in state SKIPPED or PULL_REQUEST_OPENED
        """
        attempt = UpdateAttempt(repo=repo)
        await self._attempt(attempt)
        return attempt

    async def run(
        self, repos: Iterable[str], stop: asyncio.Event | None = None
    ) -> list[UpdateAttempt]:
        """Update each repository in turn.

        A failing repository is logged and recorded; the batch continues.
        Fatal errors propagate. The stop event is checked between repositories.
        """
        attempts: list[UpdateAttempt] = []
        for repo in repos:
            if stop is not None and stop.is_set():
                logger.warning("Stop requested, not updating remaining repositories")
                break

            attempt = UpdateAttempt(repo=repo)
            try:
                await self._attempt(attempt)
            except FatalError:
                raise
            except Exception as e:
                attempt.fail(e)
                logger.error(
                    "Failed to update dependencies of %s (after %s): %s",
                    repo,
                    attempt.failed_at.value,
                    e,
                )
            attempts.append(attempt)
        return attempts
