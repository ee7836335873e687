"""Hosting API access: commits, branches, pull requests and repositories."""

import logging
from typing import Protocol
from urllib.parse import quote

import httpx

from .config import UPDATE_BRANCH_PREFIX
from .errors import RemoteAPIError, ResolutionError

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
MAX_PAGES = 10
PER_PAGE = 100


class RemoteCoordinator(Protocol):
    """Operations the orchestrator needs from the hosting service."""

    def clone_url(self, repo: str) -> str: ...

    async def head_commit(self, repo: str, branch: str) -> str: ...

    async def branch_exists(self, repo: str, branch: str) -> bool: ...

    async def close_stale_pull_requests(self, repo: str, base_branch: str) -> list[int]: ...

    async def open_pull_request(
        self, head_branch: str, base_branch: str, repo: str, body: str = ""
    ) -> str: ...

    async def list_repositories(self, owner: str | None = None) -> list[str]: ...


def _github_headers(token: str) -> dict[str, str]:
    return {
        "Accept": "application/vnd.github+json",
        "Authorization": f"Bearer {token}",
        "X-GitHub-Api-Version": "2022-11-28",
        "User-Agent": "depsync",
    }


class GitHubCoordinator:
    """RemoteCoordinator backed by the GitHub REST API."""

    def __init__(
        self,
        owner: str,
        token: str,
        base_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize GitHub coordinator.

        Args:
            owner: Organization or user owning the repositories
            token: API access token
            base_url: API root, for GitHub Enterprise installs
            timeout: Request timeout in seconds
            transport: Optional httpx transport, used by tests
        """
        self.owner = owner
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=_github_headers(token),
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubCoordinator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def clone_url(self, repo: str) -> str:
        return f"https://{self._token}@github.com/{self.owner}/{repo}.git"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteAPIError(f"Timeout on {method} {url}") from e
        except httpx.HTTPError as e:
            raise RemoteAPIError(f"Network error on {method} {url}: {e}") from e
        return response

    def _check(self, response: httpx.Response) -> httpx.Response:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteAPIError(
                f"HTTP {response.status_code} on {response.request.method} "
                f"{response.request.url.path}: {response.text[:200]}"
            ) from e
        return response

    def _branch_url(self, repo: str, branch: str) -> str:
        return f"/repos/{self.owner}/{repo}/branches/{quote(branch, safe='')}"

    async def head_commit(self, repo: str, branch: str) -> str:
        """Get the SHA of the head commit of branch in repo."""
        try:
            response = self._check(await self._request("GET", self._branch_url(repo, branch)))
            return response.json()["commit"]["sha"]
        except (RemoteAPIError, KeyError, TypeError, ValueError) as e:
            raise ResolutionError(f"Failed to get head commit of {repo}@{branch}: {e}") from e

    async def branch_exists(self, repo: str, branch: str) -> bool:
        response = await self._request("GET", self._branch_url(repo, branch))
        if response.status_code == 404:
            return False
        self._check(response)
        return True

    async def _list_open_pulls(self, repo: str, base_branch: str) -> list[dict]:
        pulls: list[dict] = []
        for page in range(1, MAX_PAGES + 1):
            response = self._check(
                await self._request(
                    "GET",
                    f"/repos/{self.owner}/{repo}/pulls",
                    params={"state": "open", "base": base_branch, "per_page": PER_PAGE, "page": page},
                )
            )
            chunk = [item for item in response.json() if isinstance(item, dict)]
            pulls.extend(chunk)
            if len(chunk) < PER_PAGE:
                break
        return pulls

    async def close_stale_pull_requests(self, repo: str, base_branch: str) -> list[int]:
        """Close open update pull requests against base_branch.

        Stops at the first failure; pull requests closed before it stay closed.

        Returns:
            Numbers of the closed pull requests
        """
        closed: list[int] = []
        for pull in await self._list_open_pulls(repo, base_branch):
            head_ref = pull.get("head", {}).get("ref", "")
            if not head_ref.startswith(UPDATE_BRANCH_PREFIX):
                continue
            number = pull["number"]
            self._check(
                await self._request(
                    "PATCH",
                    f"/repos/{self.owner}/{repo}/pulls/{number}",
                    json={"state": "closed"},
                )
            )
            logger.info("Closed stale pull request %s#%d (%s)", repo, number, head_ref)
            closed.append(number)
        return closed

    async def open_pull_request(
        self, head_branch: str, base_branch: str, repo: str, body: str = ""
    ) -> str:
        """Open a pull request and return its URL."""
        response = self._check(
            await self._request(
                "POST",
                f"/repos/{self.owner}/{repo}/pulls",
                json={
                    "title": "Update Dependencies",
                    "head": head_branch,
                    "base": base_branch,
                    "body": body,
                },
            )
        )
        url = response.json().get("html_url", "")
        logger.info("Created pull request %s", url or f"{repo}:{head_branch}")
        return url

    async def list_repositories(self, owner: str | None = None) -> list[str]:
        """List repository names of an organization, in API order."""
        owner = owner or self.owner
        names: list[str] = []
        for page in range(1, MAX_PAGES + 1):
            response = self._check(
                await self._request(
                    "GET", f"/orgs/{owner}/repos", params={"per_page": PER_PAGE, "page": page}
                )
            )
            chunk = [item["name"] for item in response.json() if isinstance(item, dict)]
            names.extend(chunk)
            if len(chunk) < PER_PAGE:
                break
        return names
