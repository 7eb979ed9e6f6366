"""Resolve an arbitrary filesystem path to its repository root."""

from pathlib import Path

import structlog

from gitward.exceptions import PreconditionError
from gitward.git.runner import GitRunner

logger = structlog.get_logger()


def canonical_root(raw: str) -> str:
    """Absolute, symlink-free, posix-separated root without a trailing separator."""
    resolved = Path(raw.strip()).expanduser().resolve().as_posix()
    if len(resolved) > 1:
        resolved = resolved.rstrip("/")
    return resolved


async def resolve_root(runner: GitRunner, path: str | Path) -> str | None:
    """Return the repository root containing *path*, or None.

    Absence of a repository is a normal outcome, so nothing is raised.
    """
    target = Path(path).expanduser()
    cwd = target if target.is_dir() else target.parent
    if not cwd.is_dir():
        return None

    code, stdout, stderr = await runner.run("rev-parse", "--show-toplevel", cwd=cwd)
    if code != 0 or not stdout.strip():
        logger.debug("repo_root_unresolved", path=str(path), reason=stderr.strip())
        return None
    return canonical_root(stdout)


def relative_to_root(root: str, file_path: str | Path) -> str:
    """Express *file_path* relative to *root* in posix form.

    Absolute paths must lie inside the root; relative paths are taken from
    the root. Anything escaping the repository is rejected.
    """
    base = Path(root)
    candidate = Path(file_path)
    if not candidate.is_absolute():
        candidate = base / candidate
    # resolve() only the parent so a symlink entry itself is not followed
    if candidate.name == "..":
        resolved = candidate.resolve()
    else:
        resolved = candidate.parent.resolve() / candidate.name
    try:
        relative = resolved.relative_to(base)
    except ValueError:
        raise PreconditionError(f"Path escapes repository: {file_path}") from None
    if not relative.parts or relative.parts[0] == ".git":
        raise PreconditionError(f"Not a repository file: {file_path}")
    return relative.as_posix()
