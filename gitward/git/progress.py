"""Detect in-progress merge/rebase and compute the conflicted path set."""

from pathlib import Path

import structlog

from gitward.git.models import ProgressState, RepositoryStatus
from gitward.git.runner import GitRunner
from gitward.git.status import read_status, split_nul

logger = structlog.get_logger()

MERGE_MARKER = "MERGE_HEAD"
CHERRY_PICK_MARKER = "CHERRY_PICK_HEAD"
REBASE_MARKERS = ("rebase-merge", "rebase-apply")


class ProgressInspector:
    def __init__(self, runner: GitRunner) -> None:
        self._runner = runner

    async def git_dir(self, root: str) -> Path:
        stdout = await self._runner.check(
            "rev-parse", "--absolute-git-dir", cwd=Path(root)
        )
        return Path(stdout.strip())

    async def reported_conflicts(self, root: str) -> list[str]:
        """Paths git itself lists as unmerged."""
        stdout = await self._runner.check(
            "diff", "--name-only", "--diff-filter=U", "-z", cwd=Path(root)
        )
        return split_nul(stdout)

    async def get_progress_state(
        self, root: str, status: RepositoryStatus | None = None
    ) -> ProgressState:
        """Inspect marker files and union both sources of conflicted paths.

        The two sources are unioned because either one can miss entries the
        other catches.
        """
        git_dir = await self.git_dir(root)
        in_cherry_pick = (git_dir / CHERRY_PICK_MARKER).exists()
        in_merge = (git_dir / MERGE_MARKER).exists() or in_cherry_pick
        in_rebase = any((git_dir / marker).exists() for marker in REBASE_MARKERS)

        if status is None:
            status = await read_status(self._runner, root)
        conflicted = set(await self.reported_conflicts(root))
        conflicted.update(status.paths("conflicted"))

        state = ProgressState(
            in_merge=in_merge,
            in_rebase=in_rebase,
            in_cherry_pick=in_cherry_pick,
            conflicted=sorted(conflicted),
        )
        if in_merge and in_rebase:
            logger.info("progress_merge_and_rebase", root=root)
        return state
