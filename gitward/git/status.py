"""Parse ``git status --porcelain=v2 --branch -z`` into a RepositoryStatus."""

from pathlib import Path

from gitward.git.models import FileStatusEntry, RepositoryStatus
from gitward.git.runner import GitRunner

# -z keeps paths verbatim; without it git C-quotes names containing
# quotes, backslashes or control characters even with core.quotepath off.
STATUS_ARGS = (
    "status",
    "--porcelain=v2",
    "--branch",
    "--untracked-files=all",
    "-z",
)


def _code(char: str) -> str:
    # porcelain v2 writes "." for an unchanged side
    return " " if char == "." else char


def parse_porcelain_v2(text: str) -> RepositoryStatus:
    """Parse NUL-terminated porcelain v2 records.

    A rename record (type 2) is followed by one extra field holding the
    original path.
    """
    branch: str | None = None
    tracking = None
    ahead = 0
    behind = 0
    files: list[FileStatusEntry] = []

    records = iter(text.split("\0"))
    for record in records:
        if record.startswith("# branch.head "):
            head = record.split(" ", 2)[2]
            branch = None if head == "(detached)" else head
        elif record.startswith("# branch.upstream "):
            tracking = record.split(" ", 2)[2]
        elif record.startswith("# branch.ab "):
            for part in record.split(" ")[2:]:
                if part.startswith("+"):
                    ahead = int(part[1:])
                elif part.startswith("-"):
                    behind = int(part[1:])
        elif record.startswith("1 "):
            # "1 XY sub mH mI mW hH hI path"
            parts = record.split(" ", 8)
            if len(parts) < 9 or len(parts[1]) != 2:
                continue
            files.append(
                FileStatusEntry(
                    path=parts[8],
                    index_code=_code(parts[1][0]),
                    worktree_code=_code(parts[1][1]),
                )
            )
        elif record.startswith("2 "):
            # "2 XY sub mH mI mW hH hI Xscore path" NUL "origPath"
            parts = record.split(" ", 9)
            original = next(records, None)
            if len(parts) < 10 or len(parts[1]) != 2:
                continue
            files.append(
                FileStatusEntry(
                    path=parts[9],
                    index_code=_code(parts[1][0]),
                    worktree_code=_code(parts[1][1]),
                    original_path=original or None,
                )
            )
        elif record.startswith("u "):
            # "u XY sub m1 m2 m3 mW h1 h2 h3 path"
            parts = record.split(" ", 10)
            if len(parts) < 11 or len(parts[1]) != 2:
                continue
            files.append(
                FileStatusEntry(
                    path=parts[10], index_code=parts[1][0], worktree_code=parts[1][1]
                )
            )
        elif record.startswith("? "):
            files.append(FileStatusEntry(path=record[2:], index_code="?", worktree_code="?"))
        elif record.startswith("! "):
            files.append(FileStatusEntry(path=record[2:], index_code="!", worktree_code="!"))

    return RepositoryStatus(
        current_branch=branch,
        tracking_branch=tracking,
        ahead=ahead,
        behind=behind,
        files=files,
    )


async def read_status(runner: GitRunner, root: str) -> RepositoryStatus:
    stdout = await runner.check(*STATUS_ARGS, cwd=Path(root))
    return parse_porcelain_v2(stdout)


def split_nul(text: str) -> list[str]:
    """Fields of ``-z`` output, without the empty trailer."""
    return [field for field in text.split("\0") if field]
