"""Shared exception types for gitward."""


class GitwardError(Exception):
    """Base exception for all gitward errors."""


class ConfigError(GitwardError):
    """Configuration is invalid or missing."""


class NotARepositoryError(GitwardError):
    """The path does not belong to a git repository."""

    def __init__(self, path: str = "") -> None:
        super().__init__("Not a repository")
        self.path = path


class PreconditionError(GitwardError):
    """The repository is not in a state that allows the operation."""


class GitCommandError(GitwardError):
    """The git executable exited non-zero, timed out, or could not be started."""

    def __init__(self, args: tuple[str, ...], returncode: int, stderr: str) -> None:
        message = stderr.strip() or f"git {' '.join(args)} exited with {returncode}"
        super().__init__(message)
        self.command = args
        self.returncode = returncode
        self.stderr = stderr
