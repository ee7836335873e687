"""Pytest configuration and fixtures."""

import shutil
from pathlib import Path

import pytest

from depsync.config import UpdaterConfig
from depsync.errors import ResolutionError, VCSCommandError
from depsync.vcs import CommandRunner

BASE_HEAD = "0" * 40
PILOT_SHA = "1" * 40
MIXER_SHA = "2" * 40
AUTH_SHA = "3" * 40

SAMPLE_DEPS = """[
  {
    "_comment": "",
    "name": "PILOT_SHA",
    "repoName": "pilot",
    "prodBranch": "stable",
    "file": "WORKSPACE",
    "lastStableSHA": "abc123"
  },
  {
    "name": "MIXER_SHA",
    "repoName": "mixer",
    "prodBranch": "master",
    "file": "WORKSPACE",
    "lastStableSHA": "def456"
  }
]
"""

SAMPLE_WORKSPACE = """# pinned dependencies
PILOT_SHA = "abc123",
MIXER_SHA = "def456",
"""


class FakeRemote:
    """In-memory RemoteCoordinator recording every call."""

    def __init__(self, calls: list, heads: dict | None = None, branches: set | None = None):
        self.calls = calls
        self.heads = heads or {}
        self.branches = branches or set()
        self.pull_requests: list[dict] = []

    def clone_url(self, repo):
        return f"https://token@github.com/istio/{repo}.git"

    async def head_commit(self, repo, branch):
        self.calls.append(("head_commit", repo, branch))
        try:
            return self.heads[(repo, branch)]
        except KeyError:
            raise ResolutionError(f"no head for {repo}@{branch}")

    async def branch_exists(self, repo, branch):
        self.calls.append(("branch_exists", repo, branch))
        return branch in self.branches

    async def close_stale_pull_requests(self, repo, base_branch):
        self.calls.append(("close_stale_pull_requests", repo, base_branch))
        return []

    async def open_pull_request(self, head_branch, base_branch, repo, body=""):
        self.calls.append(("open_pull_request", head_branch, base_branch, repo))
        self.pull_requests.append({"head": head_branch, "base": base_branch, "body": body})
        return f"https://github.com/istio/{repo}/pull/1"

    async def list_repositories(self, owner=None):
        return []


class FakeRunner(CommandRunner):
    """Command runner that fakes git and records commands.

    ``git clone`` copies the template directory for the repository, and
    ``git commit`` captures the files of the working copy.
    """

    def __init__(self, calls: list, templates: dict[str, Path], fail_on: str | None = None):
        super().__init__(timeout=5)
        self.calls = calls
        self.templates = templates
        self.fail_on = fail_on
        self.committed: dict[str, str] = {}
        self.outputs: dict[str, str] = {}

    async def run(self, args, cwd=None, *, secret=False):
        args = list(args)
        self.calls.append(("run", *args))
        command = args[1] if args[0] == "git" else args[0]
        if args[0] == "git" and "commit" in args:
            command = "commit"

        if self.fail_on and self.fail_on == command:
            raise VCSCommandError(" ".join(args), 1, "simulated failure")

        if command == "clone":
            repo = Path(args[-1]).name
            shutil.copytree(self.templates[repo], args[-1])
        elif command == "commit":
            root = Path(cwd)
            self.committed = {
                str(p.relative_to(root)): p.read_text() for p in root.rglob("*") if p.is_file()
            }
        return self.outputs.get(command, "")


@pytest.fixture
def calls():
    return []


@pytest.fixture
def repo_template(tmp_path):
    """Template of a downstream repository using the generic strategy."""
    template = tmp_path / "templates" / "proxy"
    template.mkdir(parents=True)
    (template / "istio.deps").write_text(SAMPLE_DEPS)
    (template / "WORKSPACE").write_text(SAMPLE_WORKSPACE)
    return template


@pytest.fixture
def heads():
    return {
        ("proxy", "master"): BASE_HEAD,
        ("pilot", "stable"): PILOT_SHA,
        ("mixer", "master"): MIXER_SHA,
    }


@pytest.fixture
def config(tmp_path):
    workdir = tmp_path / "work"
    workdir.mkdir()
    return UpdaterConfig(workdir=workdir)


@pytest.fixture
def sample_deps():
    return SAMPLE_DEPS


@pytest.fixture
def remote(calls, heads):
    return FakeRemote(calls, heads=heads)


@pytest.fixture
def runner(calls, repo_template):
    return FakeRunner(calls, templates={"proxy": repo_template})


@pytest.fixture
def make_runner(calls):
    def factory(templates: dict[str, Path], fail_on: str | None = None) -> FakeRunner:
        return FakeRunner(calls, templates=templates, fail_on=fail_on)

    return factory
