"""Merge/rebase state machine and per-file conflict resolution.

States are read from ``ProgressState`` on every call:

* Idle      -- no merge or rebase marker present
* Merging   -- ``MERGE_HEAD`` (or ``CHERRY_PICK_HEAD``) present
* Rebasing  -- ``rebase-merge``/``rebase-apply`` present

Methods here assume the caller already holds the repository slot; they raise
``GitwardError`` subclasses and leave envelope conversion to ``GitService``.
"""

from pathlib import Path
from typing import Literal

import structlog
from pydantic import BaseModel

from gitward.exceptions import GitCommandError, PreconditionError
from gitward.git.models import CommandOutput, MergeOutcome, ProgressState
from gitward.git.progress import ProgressInspector
from gitward.git.resolver import relative_to_root
from gitward.git.runner import GitRunner
from gitward.git.status import split_nul

logger = structlog.get_logger()

UNMERGED_FILES_REMAIN = "Unmerged files remain"
NOTHING_IN_PROGRESS = "No merge/rebase in progress"


class ConflictSnapshot(BaseModel):
    """Unmerged index stages and worktree bytes of one path before it was resolved."""

    stages: list[str]
    content: bytes | None = None


class ConflictController:
    def __init__(
        self,
        runner: GitRunner,
        inspector: ProgressInspector,
        *,
        mergetool: str | None = None,
        mergetool_timeout: float | None = None,
    ) -> None:
        self._runner = runner
        self._inspector = inspector
        self._mergetool = mergetool
        self._mergetool_timeout = mergetool_timeout
        self._snapshots: dict[tuple[str, str], ConflictSnapshot] = {}

    # ── Entering Merging / Rebasing ──────────────────────────────────

    async def merge(self, root: str, ref: str) -> MergeOutcome:
        self._forget(root)
        code, stdout, stderr = await self._runner.run(
            "merge", "--no-edit", ref, cwd=Path(root)
        )
        if code == 0:
            return MergeOutcome(
                success=True, message=f"Merged '{ref}'", details=stdout.strip()
            )
        state = await self._inspector.get_progress_state(root)
        if state.in_merge and state.conflicted:
            logger.info("merge_conflicts", root=root, ref=ref, files=state.conflicted)
            return MergeOutcome(
                success=False,
                had_conflicts=True,
                conflicted_files=state.conflicted,
                message=f"Merge of '{ref}' stopped with {len(state.conflicted)} conflict(s)",
                details=stdout.strip() or stderr.strip(),
            )
        raise GitCommandError(("merge", "--no-edit", ref), code, stderr or stdout)

    async def rebase_start(self, root: str, upstream: str) -> MergeOutcome:
        self._forget(root)
        code, stdout, stderr = await self._runner.run(
            "rebase", upstream, cwd=Path(root)
        )
        if code == 0:
            return MergeOutcome(
                success=True,
                message=f"Rebased onto '{upstream}'",
                details=stdout.strip() or stderr.strip(),
            )
        state = await self._inspector.get_progress_state(root)
        if state.in_rebase and state.conflicted:
            logger.info(
                "rebase_conflicts", root=root, upstream=upstream, files=state.conflicted
            )
            return MergeOutcome(
                success=False,
                had_conflicts=True,
                conflicted_files=state.conflicted,
                message=f"Rebase onto '{upstream}' stopped with {len(state.conflicted)} conflict(s)",
                details=stderr.strip() or stdout.strip(),
            )
        raise GitCommandError(("rebase", upstream), code, stderr or stdout)

    # ── Leaving Merging / Rebasing ───────────────────────────────────

    async def merge_continue(
        self, root: str, message: str | None = None
    ) -> CommandOutput:
        state = await self._inspector.get_progress_state(root)
        if not state.in_merge:
            raise PreconditionError("No merge in progress")
        _require_resolved(state)
        return await self._finish_merge(root, state, message)

    async def merge_abort(self, root: str) -> CommandOutput:
        state = await self._inspector.get_progress_state(root)
        if not state.in_merge:
            return CommandOutput(message="No merge in progress")
        self._forget(root)
        if state.in_cherry_pick:
            await self._runner.check("cherry-pick", "--abort", cwd=Path(root))
            return CommandOutput(message="Cherry-pick aborted")
        await self._runner.check("merge", "--abort", cwd=Path(root))
        return CommandOutput(message="Merge aborted")

    async def rebase_continue(self, root: str) -> CommandOutput:
        state = await self._inspector.get_progress_state(root)
        if not state.in_rebase:
            raise PreconditionError("No rebase in progress")
        _require_resolved(state)
        return await self._finish_rebase(root)

    async def rebase_abort(self, root: str) -> CommandOutput:
        self._forget(root)
        await self._runner.check("rebase", "--abort", cwd=Path(root))
        return CommandOutput(message="Rebase aborted")

    async def continue_any(
        self, root: str, message: str | None = None
    ) -> CommandOutput:
        """Continue whichever operation is in progress.

        A rebase wins when both markers are present: the merge marker is then
        left over from a step inside the rebase.
        """
        state = await self._inspector.get_progress_state(root)
        if not state.in_merge and not state.in_rebase:
            raise PreconditionError(NOTHING_IN_PROGRESS)
        _require_resolved(state)
        if state.in_rebase:
            return await self._finish_rebase(root)
        return await self._finish_merge(root, state, message)

    async def _finish_merge(
        self, root: str, state: ProgressState, message: str | None
    ) -> CommandOutput:
        cwd = Path(root)
        self._forget(root)
        if state.in_cherry_pick:
            stdout = await self._runner.check("cherry-pick", "--continue", cwd=cwd)
            return CommandOutput(message="Cherry-pick continued", details=stdout.strip())
        if message:
            stdout = await self._runner.check("commit", "-m", message, cwd=cwd)
        else:
            stdout = await self._runner.check("commit", "--no-edit", cwd=cwd)
        return CommandOutput(message="Merge completed", details=stdout.strip())

    async def _finish_rebase(self, root: str) -> CommandOutput:
        self._forget(root)
        stdout = await self._runner.check("rebase", "--continue", cwd=Path(root))
        return CommandOutput(message="Rebase continued", details=stdout.strip())

    # ── Per-file resolution (state unchanged) ────────────────────────

    async def choose_ours(self, root: str, file_path: str) -> CommandOutput:
        return await self._choose_side(root, file_path, "ours")

    async def choose_theirs(self, root: str, file_path: str) -> CommandOutput:
        return await self._choose_side(root, file_path, "theirs")

    async def _choose_side(
        self, root: str, file_path: str, side: Literal["ours", "theirs"]
    ) -> CommandOutput:
        rel = relative_to_root(root, file_path)
        cwd = Path(root)
        snapshot = await self._capture(root, rel)
        code, _stdout, stderr = await self._runner.run(
            "checkout", f"--{side}", "--", rel, cwd=cwd
        )
        if code == 0:
            await self._runner.check("add", "--", rel, cwd=cwd)
            self._remember(root, rel, snapshot)
            return CommandOutput(message=f"Resolved {rel} using {side}")
        if "does not have" in stderr:
            # That side deleted the file, so taking it means deleting it.
            await self._runner.check("rm", "--quiet", "--", rel, cwd=cwd)
            self._remember(root, rel, snapshot)
            return CommandOutput(message=f"Resolved {rel} using {side} (deleted)")
        raise GitCommandError(("checkout", f"--{side}", "--", rel), code, stderr)

    async def mark_resolved(self, root: str, file_path: str) -> CommandOutput:
        rel = relative_to_root(root, file_path)
        snapshot = await self._capture(root, rel)
        await self._runner.check("add", "-A", "--", rel, cwd=Path(root))
        self._remember(root, rel, snapshot)
        return CommandOutput(message=f"Marked {rel} as resolved")

    async def revert_resolution(self, root: str, file_path: str) -> CommandOutput:
        """Undo a staged resolution for one path.

        During a merge/rebase the conflicted state is recreated. A path
        resolved through this controller gets its exact unmerged stages and
        worktree bytes back, which also covers modify/delete conflicts.
        Other paths fall back to ``checkout -m`` and the index's
        resolve-undo record. Outside a merge/rebase the path is unstaged and
        restored to HEAD.
        """
        rel = relative_to_root(root, file_path)
        cwd = Path(root)
        state = await self._inspector.get_progress_state(root)
        snapshot = self._snapshots.pop((root, rel), None)
        if state.in_merge or state.in_rebase:
            if snapshot is not None:
                await self._restore(root, rel, snapshot)
            else:
                await self._runner.check("checkout", "-m", "--", rel, cwd=cwd)
            return CommandOutput(message=f"Restored conflicts in {rel}")
        await self._runner.check("reset", "-q", "HEAD", "--", rel, cwd=cwd)
        await self._runner.check("checkout", "HEAD", "--", rel, cwd=cwd)
        return CommandOutput(message=f"Restored {rel} to HEAD")

    # ── Resolution snapshots ─────────────────────────────────────────

    async def _capture(self, root: str, rel: str) -> ConflictSnapshot | None:
        stdout = await self._runner.check(
            "ls-files", "-s", "-u", "-z", "--", rel, cwd=Path(root)
        )
        stages = split_nul(stdout)
        if not stages:
            return None
        target = Path(root) / rel
        content = target.read_bytes() if target.is_file() else None
        return ConflictSnapshot(stages=stages, content=content)

    def _remember(self, root: str, rel: str, snapshot: ConflictSnapshot | None) -> None:
        if snapshot is not None:
            self._snapshots[(root, rel)] = snapshot

    def _forget(self, root: str) -> None:
        for key in [key for key in self._snapshots if key[0] == root]:
            del self._snapshots[key]

    async def _restore(self, root: str, rel: str, snapshot: ConflictSnapshot) -> None:
        # A mode-0 entry drops the resolved stage-0 entry before the
        # unmerged stages are written back.
        object_id = snapshot.stages[0].split(" ", 2)[1]
        records = [f"0 {'0' * len(object_id)}\t{rel}", *snapshot.stages]
        await self._runner.check(
            "update-index",
            "-z",
            "--index-info",
            cwd=Path(root),
            stdin_text="".join(f"{record}\0" for record in records),
        )
        target = Path(root) / rel
        if snapshot.content is None:
            target.unlink(missing_ok=True)
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(snapshot.content)
        logger.info("conflict_restored", root=root, path=rel, stages=len(snapshot.stages))

    async def open_mergetool(
        self, root: str, file_path: str | None = None
    ) -> CommandOutput:
        args = ["mergetool", "--no-prompt"]
        if self._mergetool:
            args.extend(["--tool", self._mergetool])
        if file_path:
            args.extend(["--", relative_to_root(root, file_path)])
        stdout = await self._runner.check(
            *args,
            cwd=Path(root),
            timeout=self._mergetool_timeout,
            unbounded=self._mergetool_timeout is None,
        )
        return CommandOutput(message="Mergetool finished", details=stdout.strip())


def _require_resolved(state: ProgressState) -> None:
    if state.conflicted:
        raise PreconditionError(
            f"{UNMERGED_FILES_REMAIN}: {', '.join(state.conflicted)}"
        )
