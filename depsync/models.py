"""Core data models for depsync."""

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DependencyRecord(BaseModel):
    """A single upstream dependency tracked by a downstream repository."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    name: str
    repo_name: str = Field(alias="repoName")
    prod_branch: str = Field(alias="prodBranch")
    file_path: str = Field(alias="file")
    last_stable_commit: str = Field(default="", alias="lastStableSHA")


@dataclass
class ManifestSnapshot:
    """The parsed deps manifest of one downstream repository."""

    raw: str
    records: list[DependencyRecord]
    # JSON objects as read from disk, used to keep key order and unknown keys
    originals: list[dict] = field(default_factory=list)

    def commits(self) -> list[str]:
        return [record.last_stable_commit for record in self.records]

    def is_modified(self) -> bool:
        """Check if any record differs from what was loaded."""
        if len(self.originals) != len(self.records):
            return True
        for original, record in zip(self.originals, self.records):
            dumped = record.model_dump(by_alias=True, exclude_unset=True)
            if any(original.get(key) != value for key, value in dumped.items()):
                return True
        return False


class AttemptState(str, Enum):
    """Stages an update attempt moves through."""

    PENDING = "pending"
    CLONED = "cloned"
    FINGERPRINTED = "fingerprinted"
    SKIPPED = "skipped"
    BRANCH_CREATED = "branch_created"
    PATCHED = "patched"
    COMMITTED = "committed"
    PUSHED = "pushed"
    PULL_REQUEST_OPENED = "pull_request_opened"
    FAILED = "failed"


@dataclass
class UpdateAttempt:
    """Outcome of updating the dependencies of one repository."""

    repo: str
    state: AttemptState = AttemptState.PENDING
    digest: str | None = None
    branch: str | None = None
    # last state reached before a failure
    failed_at: AttemptState | None = None
    error: str | None = None

    def advance(self, state: AttemptState) -> None:
        self.state = state

    def fail(self, error: Exception) -> None:
        self.failed_at = self.state
        self.state = AttemptState.FAILED
        self.error = str(error)


@dataclass
class ScriptInvocation:
    """A version-bump script call composed for the distinguished repository."""

    script: str
    args: list[str]

    @property
    def argv(self) -> list[str]:
        return [self.script, *self.args]
