"""Rewriting dependency references inside a downstream repository."""

import re
from collections.abc import Iterable, Mapping
from pathlib import Path

from .config import ScriptConfig
from .errors import (
    EnvironmentLookupError,
    IncompleteDependencySetError,
    NotFoundError,
    VCSCommandError,
)
from .models import DependencyRecord, ScriptInvocation
from .vcs import CommandRunner

KV_SPLITTERS = (" = ", "=", ":")
COMMENT_PREFIXES = ("#", "//")

_VALUE_PATTERN = re.compile(r"""(\s*)("[^"]*"|'[^']*'|[^\s,;]*)""")


def _key_pattern(key: str, splitter: str) -> re.Pattern:
    # The key must not be the tail of a longer identifier
    return re.compile(rf"(?<![\w.\-]){re.escape(key)}{re.escape(splitter)}")


def _replace_value(rest: str, value: str) -> str:
    match = _VALUE_PATTERN.match(rest)
    leading, token = match.group(1), match.group(2)
    quote = token[0] if token[:1] in ('"', "'") else ""
    return f"{leading}{quote}{value}{quote}{rest[match.end():]}"


def patch_generic(content: str, key: str, new_commit: str) -> str:
    """Replace the value assigned to key with new_commit.

    Every non-comment line containing ``key`` followed by one of the
    delimiters in KV_SPLITTERS is rewritten; all other bytes are kept.

    Args:
        content: The dependency file content
        key: Dependency name as it appears in the file
        new_commit: Commit SHA to write

    Returns:
        Updated file content
    """
    lines = content.split("\n")
    found = False

    for i, line in enumerate(lines):
        if line.lstrip().startswith(COMMENT_PREFIXES):
            continue

        for splitter in KV_SPLITTERS:
            match = _key_pattern(key, splitter).search(line)
            if match:
                lines[i] = line[: match.end()] + _replace_value(line[match.end():], new_commit)
                found = True
                break

    if not found:
        raise NotFoundError(f"no occurrence of {key} found")
    return "\n".join(lines)


def patch_file(path: Path, record: DependencyRecord) -> None:
    """Apply patch_generic to the file a record points at."""
    try:
        content = Path(path).read_bytes().decode()
    except (OSError, UnicodeDecodeError) as e:
        raise NotFoundError(f"cannot read {path}: {e}") from e

    try:
        updated = patch_generic(content, record.name, record.last_stable_commit)
    except NotFoundError as e:
        raise NotFoundError(f"{e} in {path}") from e

    Path(path).write_bytes(updated.encode())


def resolve_roles(records: Iterable[DependencyRecord], roles: Mapping[str, str]) -> dict[str, str]:
    """Map each script role to the resolved commit of its upstream repository."""
    by_repo: dict[str, str] = {}
    for record in records:
        by_repo.setdefault(record.repo_name, record.last_stable_commit)

    commits = {role: by_repo.get(repo, "") for role, repo in roles.items()}
    missing = sorted(role for role, commit in commits.items() if not commit)
    if missing:
        raise IncompleteDependencySetError(
            "incomplete dependencies, no commit for: "
            + ", ".join(f"{role} ({roles[role]})" for role in missing)
        )
    return commits


async def read_version_file(
    path: Path, keys: Iterable[str], runner: CommandRunner
) -> dict[str, str]:
    """Read exported values from a shell-sourceable version file.

    The file is sourced by bash so that values built from other variables
    resolve the same way the repository's own scripts see them.
    """
    keys = list(keys)
    if not Path(path).is_file():
        raise EnvironmentLookupError(f"version file {path} not found")

    script = 'source "$0" >/dev/null; for key in "$@"; do printf "%s=%s\\n" "$key" "${!key}"; done'
    try:
        output = await runner.run(["bash", "-c", script, str(path), *keys], cwd=Path(path).parent)
    except VCSCommandError as e:
        raise EnvironmentLookupError(f"cannot source {path}: {e}") from e

    values: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if sep and key in keys:
            values[key] = value.strip()

    for key in keys:
        if not values.get(key):
            raise EnvironmentLookupError(f"{key} is not set in {path}")
    return values


def patch_distinguished(
    records: Iterable[DependencyRecord],
    values: Mapping[str, str],
    script: ScriptConfig,
) -> ScriptInvocation:
    """Compose the version-bump invocation for script-driven repositories.

    Args:
        records: Dependency records with resolved commits
        values: Values read from the version file
        script: Script strategy settings

    Returns:
        The script call carrying new hub/tag pairs and the rewritten CLI URL
    """
    commits = resolve_roles(records, script.roles)

    def lookup(key: str) -> str:
        value = values.get(key)
        if not value:
            raise EnvironmentLookupError(f"{key} is not set in {script.version_file}")
        return value

    ca_hub = lookup(script.ca_hub_key)
    primary_hub = lookup(script.primary_hub_key)
    secondary_hub = lookup(script.secondary_hub_key)
    cli_url = lookup(script.cli_url_key)
    old_primary_tag = lookup(script.primary_tag_key)

    cli_url = cli_url.replace(old_primary_tag, commits["primary"], 1)
    return ScriptInvocation(
        script=script.script,
        args=[
            "-p",
            f"{primary_hub},{commits['primary']}",
            "-x",
            f"{secondary_hub},{commits['secondary']}",
            "-i",
            cli_url,
            "-c",
            f"{ca_hub},{commits['auth']}",
        ],
    )
