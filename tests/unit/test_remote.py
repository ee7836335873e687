"""Tests for the GitHub remote coordinator."""

import json

import httpx
import pytest

from depsync.errors import RemoteAPIError, ResolutionError
from depsync.remote import GitHubCoordinator


def coordinator(handler) -> GitHubCoordinator:
    return GitHubCoordinator("istio", "secret", transport=httpx.MockTransport(handler))


class TestGitHubCoordinator:
    """Test GitHub REST calls."""

    def test_clone_url(self):
        """Should embed the token in the clone URL."""
        remote = GitHubCoordinator("istio", "secret")
        assert remote.clone_url("proxy") == "https://secret@github.com/istio/proxy.git"

    @pytest.mark.asyncio
    async def test_head_commit(self):
        """Should return the SHA of the branch head."""

        def handler(request):
            assert request.url.path == "/repos/istio/pilot/branches/stable"
            assert request.headers["Authorization"] == "Bearer secret"
            return httpx.Response(200, json={"commit": {"sha": "a" * 40}})

        async with coordinator(handler) as remote:
            assert await remote.head_commit("pilot", "stable") == "a" * 40

    @pytest.mark.asyncio
    async def test_head_commit_failure(self):
        """A failed lookup should raise ResolutionError."""
        async with coordinator(lambda request: httpx.Response(500)) as remote:
            with pytest.raises(ResolutionError):
                await remote.head_commit("pilot", "stable")

    @pytest.mark.asyncio
    async def test_branch_exists(self):
        """Should map 200 to True and 404 to False."""

        def handler(request):
            if request.url.path.endswith("autoUpdateDeps_abc"):
                return httpx.Response(200, json={"name": "autoUpdateDeps_abc"})
            return httpx.Response(404, json={"message": "Branch not found"})

        async with coordinator(handler) as remote:
            assert await remote.branch_exists("proxy", "autoUpdateDeps_abc") is True
            assert await remote.branch_exists("proxy", "autoUpdateDeps_def") is False

    @pytest.mark.asyncio
    async def test_branch_exists_error(self):
        """Other statuses should raise RemoteAPIError."""
        async with coordinator(lambda request: httpx.Response(403)) as remote:
            with pytest.raises(RemoteAPIError):
                await remote.branch_exists("proxy", "autoUpdateDeps_abc")

    @pytest.mark.asyncio
    async def test_close_stale_pull_requests(self):
        """Should close only open update pull requests."""
        closed = []

        def handler(request):
            if request.method == "GET":
                assert request.url.params["base"] == "master"
                return httpx.Response(200, json=[
                    {"number": 1, "head": {"ref": "autoUpdateDeps_old"}},
                    {"number": 2, "head": {"ref": "feature"}},
                    {"number": 3, "head": {"ref": "autoUpdateDeps_older"}},
                ])
            assert json.loads(request.content) == {"state": "closed"}
            closed.append(int(request.url.path.rsplit("/", 1)[1]))
            return httpx.Response(200, json={})

        async with coordinator(handler) as remote:
            result = await remote.close_stale_pull_requests("proxy", "master")

        assert result == [1, 3]
        assert closed == [1, 3]

    @pytest.mark.asyncio
    async def test_close_stale_pull_requests_failure(self):
        """The first failure should surface as RemoteAPIError."""

        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json=[{"number": 1, "head": {"ref": "autoUpdateDeps_old"}}])
            return httpx.Response(422, json={"message": "Validation Failed"})

        async with coordinator(handler) as remote:
            with pytest.raises(RemoteAPIError):
                await remote.close_stale_pull_requests("proxy", "master")

    @pytest.mark.asyncio
    async def test_open_pull_request(self):
        """Should post head and base branches."""

        def handler(request):
            payload = json.loads(request.content)
            assert request.url.path == "/repos/istio/proxy/pulls"
            assert payload["head"] == "autoUpdateDeps_abc"
            assert payload["base"] == "master"
            return httpx.Response(201, json={"html_url": "https://github.com/istio/proxy/pull/7"})

        async with coordinator(handler) as remote:
            url = await remote.open_pull_request("autoUpdateDeps_abc", "master", "proxy")

        assert url == "https://github.com/istio/proxy/pull/7"

    @pytest.mark.asyncio
    async def test_list_repositories_pages(self):
        """Should walk pages until a short page, keeping order."""

        def handler(request):
            page = int(request.url.params["page"])
            if page == 1:
                return httpx.Response(200, json=[{"name": f"repo{i}"} for i in range(100)])
            return httpx.Response(200, json=[{"name": "last"}])

        async with coordinator(handler) as remote:
            repos = await remote.list_repositories()

        assert len(repos) == 101
        assert repos[0] == "repo0"
        assert repos[-1] == "last"

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Transport errors should raise RemoteAPIError."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with coordinator(handler) as remote:
            with pytest.raises(RemoteAPIError, match="Network error"):
                await remote.list_repositories()
