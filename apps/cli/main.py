"""CLI application for depsync."""

import asyncio
import logging
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from depsync.config import PatchStrategy, UpdaterConfig, load_token
from depsync.errors import FatalError, RemoteAPIError
from depsync.models import AttemptState, UpdateAttempt
from depsync.orchestrator import UpdateOrchestrator
from depsync.remote import GitHubCoordinator

console = Console()
logger = logging.getLogger(__name__)


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def format_summary(attempts: list[UpdateAttempt]) -> Table:
    """Build a summary table of update attempts."""
    table = Table(title="Dependency updates")
    table.add_column("Repository")
    table.add_column("Result")
    table.add_column("Branch / error")

    for attempt in attempts:
        if attempt.state is AttemptState.FAILED:
            table.add_row(attempt.repo, "[red]failed[/red]", attempt.error or "")
        elif attempt.state is AttemptState.SKIPPED:
            table.add_row(attempt.repo, "[yellow]already proposed[/yellow]", attempt.branch or "")
        else:
            table.add_row(attempt.repo, "[green]pull request opened[/green]", attempt.branch or "")
    return table


async def run_updates(config: UpdaterConfig, token: str, repo: str | None) -> list[UpdateAttempt]:
    """Update one repository, or every repository of the owner."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    handled = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
            handled.append(sig)
        except (NotImplementedError, RuntimeError, ValueError):
            # not supported on this platform or outside the main thread
            pass

    try:
        async with GitHubCoordinator(config.owner, token, timeout=config.request_timeout) as remote:
            if repo:
                repos = [repo]
            else:
                try:
                    repos = await remote.list_repositories()
                except RemoteAPIError as e:
                    logger.error("Error when fetching list of repos: %s", e)
                    return []

            orchestrator = UpdateOrchestrator(remote, config)
            return await orchestrator.run(repos, stop=stop)
    finally:
        for sig in handled:
            loop.remove_signal_handler(sig)


app = typer.Typer(
    name="depsync",
    help="depsync - Propagate latest stable dependency commits to downstream repositories",
    add_completion=False,
)


@app.command()
def update(
    repo: str | None = typer.Option(None, "--repo", help="Update dependencies of only this repository"),
    owner: str = typer.Option("istio", "--owner", help="GitHub owner or org"),
    token_file: str | None = typer.Option(
        None, "--token-file", envvar="DEPSYNC_TOKEN_FILE", help="File containing GitHub API access token"
    ),
    base_branch: str = typer.Option("master", "--base-branch", help="Branch the deps update commit is based on"),
    deps_file: str = typer.Option("istio.deps", "--deps-file", help="Deps manifest in each repository"),
    workdir: Path = typer.Option(Path("."), "--workdir", help="Directory to clone repositories into"),
    script_repos: list[str] = typer.Option(
        ["istio"], "--script-repo", help="Repository updated through its version-bump script (repeatable)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log command output"),
) -> None:
    """Update the dependencies of downstream repositories and open pull requests."""
    configure_logging(verbose)

    try:
        token = load_token(token_file)
    except FatalError as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)

    config = UpdaterConfig(
        owner=owner,
        base_branch=base_branch,
        deps_file=deps_file,
        workdir=workdir.resolve(),
        strategies={name: PatchStrategy.SCRIPT for name in script_repos},
    )

    try:
        attempts = asyncio.run(run_updates(config, token, repo))
    except FatalError as e:
        console.print(f"Error: {e}", style="red")
        raise typer.Exit(1)

    if attempts:
        console.print(format_summary(attempts))


if __name__ == "__main__":
    app()
