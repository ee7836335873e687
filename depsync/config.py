"""Run configuration for depsync."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .errors import CredentialError

UPDATE_BRANCH_PREFIX = "autoUpdateDeps_"


class PatchStrategy(str, Enum):
    """How a downstream repository receives new dependency commits."""

    GENERIC = "generic"  # rewrite each record's line in its file
    SCRIPT = "script"  # run the repository's version-bump script


@dataclass
class ScriptConfig:
    """Settings for the script-driven patch strategy."""

    script: str = "./install/updateVersion.sh"
    version_file: str = "istio.VERSION"
    # role -> upstream repository name
    roles: dict[str, str] = field(
        default_factory=lambda: {"primary": "pilot", "secondary": "mixer", "auth": "auth"}
    )
    ca_hub_key: str = "CA_HUB"
    primary_hub_key: str = "PILOT_HUB"
    secondary_hub_key: str = "MIXER_HUB"
    cli_url_key: str = "ISTIOCTL_URL"
    primary_tag_key: str = "PILOT_TAG"

    @property
    def version_keys(self) -> list[str]:
        return [
            self.ca_hub_key,
            self.primary_hub_key,
            self.secondary_hub_key,
            self.cli_url_key,
            self.primary_tag_key,
        ]


@dataclass
class UpdaterConfig:
    """Configuration for a dependency update run."""

    owner: str = "istio"
    base_branch: str = "master"
    deps_file: str = "istio.deps"
    workdir: Path = field(default_factory=Path.cwd)
    strategies: dict[str, PatchStrategy] = field(
        default_factory=lambda: {"istio": PatchStrategy.SCRIPT}
    )
    script: ScriptConfig = field(default_factory=ScriptConfig)
    commit_message: str = "Update_Dependencies"
    git_user_name: str = "depsync"
    git_user_email: str = "depsync@users.noreply.github.com"
    request_timeout: float = 30.0
    command_timeout: float = 300.0
    max_concurrency: int = 6

    def strategy_for(self, repo: str) -> PatchStrategy:
        return self.strategies.get(repo, PatchStrategy.GENERIC)


def load_token(token_file: str | Path | None) -> str:
    """Read the API token from a file.

    Args:
        token_file: Path to a file whose only content is the token

    Returns:
        The token with surrounding whitespace removed
    """
    if not token_file:
        raise CredentialError("token_file not provided")

    try:
        token = Path(token_file).read_text().strip()
    except OSError as e:
        raise CredentialError(f"Error accessing token_file {token_file}: {e}") from e

    if not token:
        raise CredentialError(f"token_file {token_file} is empty")
    return token
