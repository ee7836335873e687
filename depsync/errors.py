"""Error taxonomy for depsync."""


class DepsyncError(Exception):
    """Base class for every error raised by depsync."""


class FatalError(DepsyncError):
    """Errors that must stop the whole run."""


class CredentialError(FatalError):
    """The API token is missing or unreadable."""


class CleanupError(FatalError):
    """A working copy could not be removed."""


class RepositoryError(DepsyncError):
    """Errors that abort the update of a single repository."""


class VCSCommandError(RepositoryError):
    """A local command exited non-zero or timed out."""

    def __init__(self, command: str, returncode: int | None, output: str = ""):
        self.command = command
        self.returncode = returncode
        self.output = output
        if returncode is None:
            message = f"command timed out: {command}"
        else:
            message = f"command failed ({returncode}): {command}"
        if output:
            message += f"\n{output.strip()}"
        super().__init__(message)


class CloneError(VCSCommandError):
    """Cloning the downstream repository failed."""


class ResolutionError(RepositoryError):
    """The head commit of a branch could not be resolved."""


class IncompleteDependencySetError(RepositoryError):
    """A dependency required by the version-bump script has no commit."""


class EnvironmentLookupError(RepositoryError):
    """A key could not be read from the version file."""


class ParseError(RepositoryError):
    """The deps manifest is missing or malformed."""


class NotFoundError(RepositoryError):
    """No line in a dependency file references the given key."""


class RemoteAPIError(RepositoryError):
    """A call to the hosting API failed."""
