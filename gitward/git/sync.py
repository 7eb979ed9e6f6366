"""Composite fetch → pull → conflict check → push, plus the reload auto-sync policy."""

import hashlib
from pathlib import Path

import structlog

from gitward.exceptions import GitCommandError, PreconditionError
from gitward.git.models import (
    AutoSyncOutcome,
    AutoSyncSkip,
    ProgressState,
    RepositoryStatus,
    SyncOutcome,
)
from gitward.git.progress import ProgressInspector
from gitward.git.runner import GitRunner
from gitward.git.status import read_status

logger = structlog.get_logger()


class SyncOrchestrator:
    """Runs the synchronize sequence on an already-locked repository root."""

    def __init__(
        self,
        runner: GitRunner,
        inspector: ProgressInspector,
        *,
        network_timeout: float | None = None,
    ) -> None:
        self._runner = runner
        self._inspector = inspector
        self._network_timeout = network_timeout

    async def sync(
        self, root: str, remote: str, branch: str | None = None
    ) -> SyncOutcome:
        cwd = Path(root)
        status = await read_status(self._runner, root)
        branch = branch or status.current_branch
        if not branch:
            raise PreconditionError("Detached HEAD: no branch to synchronize")

        await self._runner.check(
            "fetch", remote, cwd=cwd, timeout=self._network_timeout
        )

        pull_details = ""
        if await self._remote_branch_exists(root, remote, branch):
            code, stdout, stderr = await self._runner.run(
                "pull",
                "--rebase",
                "--autostash",
                remote,
                branch,
                cwd=cwd,
                timeout=self._network_timeout,
            )
            pull_details = stderr.strip() or stdout.strip()
            if code != 0:
                # Pull failure is not final: the conflict check below decides.
                logger.warning(
                    "sync_pull_failed", root=root, remote=remote, branch=branch
                )
        else:
            logger.info("sync_remote_branch_missing", root=root, remote=remote, branch=branch)

        status = await read_status(self._runner, root)
        state = await self._inspector.get_progress_state(root, status)
        if status.has_unmerged or state.conflicted or state.in_merge or state.in_rebase:
            logger.info(
                "sync_needs_resolution", root=root, conflicted=state.conflicted
            )
            return SyncOutcome(
                needs_resolution=True, status=status, details=pull_details
            )

        if status.tracking_branch is None:
            args: tuple[str, ...] = ("push", "-u", remote, branch)
        else:
            args = ("push",)
        code, stdout, stderr = await self._runner.run(
            *args, cwd=cwd, timeout=self._network_timeout
        )
        if code != 0:
            raise GitCommandError(args, code, stderr or stdout)

        status = await read_status(self._runner, root)
        return SyncOutcome(
            needs_resolution=False,
            pushed=True,
            status=status,
            details=stderr.strip() or stdout.strip(),
        )

    async def _remote_branch_exists(self, root: str, remote: str, branch: str) -> bool:
        code, _, _ = await self._runner.run(
            "rev-parse",
            "--verify",
            "--quiet",
            f"refs/remotes/{remote}/{branch}",
            cwd=Path(root),
        )
        return code == 0

    async def auto_sync(self, root: str) -> AutoSyncOutcome:
        try:
            status = await read_status(self._runner, root)
        except GitCommandError as e:
            logger.warning("auto_sync_status_failed", root=root, error=str(e))
            return AutoSyncOutcome(skipped="no_status", details=str(e))
        skip = auto_sync_decision(status)
        if skip is not None:
            logger.info("auto_sync_skipped", root=root, reason=skip)
            return AutoSyncOutcome(skipped=skip)
        stdout = await self._runner.check(
            "pull", cwd=Path(root), timeout=self._network_timeout
        )
        return AutoSyncOutcome(pulled=True, details=stdout.strip())


def auto_sync_decision(status: RepositoryStatus) -> AutoSyncSkip | None:
    """Why a reload-time pull should be skipped, or None when it is safe.

    Only a clean branch that tracks a remote and is strictly behind it is
    pulled.
    """
    if not status.tracking_branch:
        return "no_tracking"
    if not status.clean:
        return "local_changes"
    if status.ahead > 0:
        return "ahead"
    if status.behind == 0:
        return "uptodate"
    return None


def status_signature(
    status: RepositoryStatus | None, progress: ProgressState | None
) -> str:
    """Cheap fingerprint for pollers deciding whether to redraw."""
    conflicted = progress.conflicted if progress else []
    parts = [
        ",".join(conflicted),
        "M" if progress and progress.in_merge else "",
        "R" if progress and progress.in_rebase else "",
        str(status.ahead if status else 0),
        str(status.behind if status else 0),
        str(len(status.files) if status else 0),
    ]
    return hashlib.sha1("|".join(parts).encode()).hexdigest()[:16]
