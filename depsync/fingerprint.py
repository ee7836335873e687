"""Fingerprinting the desired dependency state of a repository."""

import asyncio
import hashlib
import logging
import re
from collections.abc import Iterable

from .config import UPDATE_BRANCH_PREFIX
from .errors import RemoteAPIError, ResolutionError
from .models import ManifestSnapshot
from .remote import RemoteCoordinator

logger = logging.getLogger(__name__)

_FULL_SHA = re.compile(r"^[0-9a-f]{40}$")


def fingerprint(head_commit: str, base_branch: str, commits: Iterable[str]) -> str:
    """Generate an MD5 digest of the version set of a repository.

    The digest is order sensitive, so commits must be given in manifest order.
    """
    digest = head_commit + base_branch + "".join(commits)
    return hashlib.md5(digest.encode()).hexdigest()


def branch_name(digest: str) -> str:
    return UPDATE_BRANCH_PREFIX + digest


class Fingerprinter:
    """Resolves dependency heads and fingerprints the result."""

    def __init__(self, remote: RemoteCoordinator, max_concurrency: int = 6):
        self.remote = remote
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def _resolve(self, repo: str, branch: str) -> str:
        async with self._semaphore:
            try:
                sha = await self.remote.head_commit(repo, branch)
            except ResolutionError:
                raise
            except RemoteAPIError as e:
                raise ResolutionError(f"cannot resolve {repo}@{branch}: {e}") from e

        if not _FULL_SHA.match(sha or ""):
            raise ResolutionError(f"{repo}@{branch} resolved to invalid commit {sha!r}")
        return sha

    async def fingerprint_snapshot(
        self, repo: str, base_branch: str, snapshot: ManifestSnapshot
    ) -> str:
        """Resolve every head commit and return the digest of the set.

        On success each record's last_stable_commit holds its resolved head.
        On failure the snapshot is left untouched.
        """
        head = await self._resolve(repo, base_branch)
        tasks = [
            asyncio.ensure_future(self._resolve(r.repo_name, r.prod_branch))
            for r in snapshot.records
        ]
        try:
            commits = await asyncio.gather(*tasks)
        except BaseException:
            # no lookup may outlive a failed fingerprint
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        for record, sha in zip(snapshot.records, commits):
            if record.last_stable_commit != sha:
                logger.debug("%s: %s -> %s", record.name, record.last_stable_commit, sha)
            record.last_stable_commit = sha

        return fingerprint(head, base_branch, commits)
