"""Public repository operations: serialized, status-aware, never raising."""

import re
import shutil
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import structlog

from gitward.core.config import GitwardConfig
from gitward.core.events import CONFLICTS_DETECTED, EventBus, RepoEvent
from gitward.core.serializer import RepoLockRegistry
from gitward.exceptions import GitwardError, NotARepositoryError, PreconditionError
from gitward.git.conflicts import ConflictController
from gitward.git.models import (
    AutoSyncOutcome,
    Branch,
    BranchList,
    CommandOutput,
    CommitSummary,
    DiscardOutcome,
    LogEntry,
    Remote,
    RemoteInfo,
    Result,
    StashEntry,
)
from gitward.git.progress import ProgressInspector
from gitward.git.resolver import relative_to_root, resolve_root
from gitward.git.runner import GitRunner
from gitward.git.status import read_status, split_nul
from gitward.git.sync import SyncOrchestrator

logger = structlog.get_logger()

_BRANCH_NAME_RE = re.compile(r"^(?!-)[a-zA-Z0-9._/\-]+$")
_REF_RE = re.compile(r"^(?!-)[a-zA-Z0-9._/~^@{}\-]+$")
_FIELD_SEP = "\x1f"
_LOG_FORMAT = _FIELD_SEP.join(("%H", "%h", "%an", "%ae", "%aI", "%s"))

Operation = Callable[[str], Awaitable[Any]]


class GitService:
    """Async facade over the git executable for one or more repositories.

    Every public method accepts any path inside a repository, resolves the
    root, and returns a :class:`Result`. Mutations are serialized per root;
    reads are not.
    """

    def __init__(
        self,
        config: GitwardConfig | None = None,
        *,
        runner: GitRunner | None = None,
        locks: RepoLockRegistry | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.config = config or GitwardConfig()
        self._runner = runner or GitRunner(
            self.config.git_binary, timeout=self.config.command_timeout_seconds
        )
        self.locks = locks or RepoLockRegistry()
        self.event_bus = event_bus or EventBus()
        self._inspector = ProgressInspector(self._runner)
        self._conflicts = ConflictController(
            self._runner,
            self._inspector,
            mergetool=self.config.mergetool,
            mergetool_timeout=self.config.mergetool_timeout_seconds,
        )
        self._sync = SyncOrchestrator(
            self._runner,
            self._inspector,
            network_timeout=self.config.network_timeout_seconds,
        )
        # Roots that already received the one-time `git config` setup.
        self._configured: set[str] = set()

    # ── Boundary helpers ─────────────────────────────────────────────

    async def _read(self, path: str | Path, operation: str, fn: Operation) -> Result:
        root = await resolve_root(self._runner, path)
        if root is None:
            return Result.success(None)
        try:
            return Result.success(await fn(root))
        except (GitwardError, OSError) as e:
            logger.warning("git_read_failed", root=root, operation=operation, error=str(e))
            return Result.failure(str(e))

    async def _mutate(
        self, path: str | Path, operation: str, fn: Operation
    ) -> Result:
        try:
            root = await self._require_root(path)
        except NotARepositoryError as e:
            logger.info("git_operation_rejected", path=e.path, operation=operation)
            return Result.failure(str(e))

        async def _guarded() -> Any:
            await self._ensure_configured(root)
            return await fn(root)

        try:
            data = await self.locks.run(root, _guarded)
        except (GitwardError, OSError) as e:
            logger.warning(
                "git_operation_failed", root=root, operation=operation, error=str(e)
            )
            return Result.failure(str(e))

        logger.info("git_operation", root=root, operation=operation)
        await self.event_bus.repo_mutated(root, operation)
        return Result.success(data)

    async def _require_root(self, path: str | Path) -> str:
        root = await resolve_root(self._runner, path)
        if root is None:
            raise NotARepositoryError(str(path))
        return root

    async def _ensure_configured(self, root: str) -> None:
        if root in self._configured:
            return
        for key, value in self.config.repo_settings.items():
            await self._runner.check("config", key, value, cwd=Path(root))
        self._configured.add(root)
        logger.debug("repo_configured", root=root, settings=list(self.config.repo_settings))

    def _remote(self, remote: str | None) -> str:
        return _require_ref(remote or self.config.default_remote)

    async def _git(self, root: str, *args: str, network: bool = False) -> str:
        timeout = self.config.network_timeout_seconds if network else None
        return await self._runner.check(*args, cwd=Path(root), timeout=timeout)

    async def _output(
        self, root: str, message: str, *args: str, network: bool = False
    ) -> CommandOutput:
        stdout = await self._git(root, *args, network=network)
        return CommandOutput(message=message, details=stdout.strip())

    # ── Repository discovery ─────────────────────────────────────────

    async def is_repository(self, path: str | Path) -> Result:
        return Result.success(await resolve_root(self._runner, path) is not None)

    async def get_root(self, path: str | Path) -> Result:
        return Result.success(await resolve_root(self._runner, path))

    # ── Read-only queries (unlocked) ─────────────────────────────────

    async def get_status(self, path: str | Path) -> Result:
        return await self._read(path, "status", lambda root: read_status(self._runner, root))

    async def get_progress_state(self, path: str | Path) -> Result:
        return await self._read(path, "progress", self._inspector.get_progress_state)

    async def get_conflicted_files(self, path: str | Path) -> Result:
        async def _op(root: str) -> list[str]:
            state = await self._inspector.get_progress_state(root)
            return state.conflicted

        return await self._read(path, "conflicts", _op)

    async def get_remote_info(self, path: str | Path) -> Result:
        async def _op(root: str) -> RemoteInfo:
            remotes: dict[str, dict[str, str]] = {}
            for line in (await self._git(root, "remote", "-v")).splitlines():
                parts = line.split()
                if len(parts) < 3:
                    continue
                name, url, kind = parts[0], parts[1], parts[2].strip("()")
                remotes.setdefault(name, {})[kind] = url
            remote_branches = []
            for line in (await self._git(root, "branch", "-r")).splitlines():
                name = line.strip()
                if name and " -> " not in name:
                    remote_branches.append(name)
            return RemoteInfo(
                remotes=[
                    Remote(
                        name=name,
                        fetch_url=urls.get("fetch", ""),
                        push_url=urls.get("push", ""),
                    )
                    for name, urls in remotes.items()
                ],
                remote_branches=remote_branches,
            )

        return await self._read(path, "remote_info", _op)

    async def branches(self, path: str | Path) -> Result:
        async def _op(root: str) -> BranchList:
            current = None
            found: list[Branch] = []
            for line in (await self._git(root, "branch", "-a")).splitlines():
                line = line.strip()
                if not line:
                    continue
                is_current = line.startswith("* ")
                # "+ " marks a branch checked out in another worktree
                name = line.lstrip("*+ ").strip()
                # Skip detached HEAD and remote HEAD pointers
                if name.startswith("(") or " -> " in name:
                    continue
                is_remote = name.startswith("remotes/")
                if is_remote:
                    name = name.removeprefix("remotes/")
                if is_current:
                    current = name
                found.append(Branch(name=name, is_current=is_current, is_remote=is_remote))
            return BranchList(current=current, branches=found)

        return await self._read(path, "branches", _op)

    async def log(
        self,
        path: str | Path,
        *,
        max_count: int = 50,
        from_ref: str | None = None,
        to_ref: str | None = None,
    ) -> Result:
        async def _op(root: str) -> list[LogEntry]:
            args = ["log", f"--max-count={max(max_count, 1)}", f"--format={_LOG_FORMAT}"]
            if from_ref:
                args.append(f"{_require_ref(from_ref)}..{_require_ref(to_ref or 'HEAD')}")
            elif to_ref:
                args.append(_require_ref(to_ref))
            code, stdout, stderr = await self._runner.run(*args, cwd=Path(root))
            if code != 0:
                # A repository without commits has no log.
                if "does not have any commits" in stderr:
                    return []
                raise GitwardError(stderr.strip() or "git log failed")
            entries: list[LogEntry] = []
            for line in stdout.splitlines():
                parts = line.split(_FIELD_SEP, 5)
                if len(parts) != 6:
                    continue
                entries.append(
                    LogEntry(
                        hash=parts[0],
                        short_hash=parts[1],
                        author=parts[2],
                        email=parts[3],
                        date=parts[4],
                        message=parts[5],
                    )
                )
            return entries

        return await self._read(path, "log", _op)

    async def diff_name_only(self, path: str | Path, base: str | None = None) -> Result:
        async def _op(root: str) -> list[str]:
            args = ["diff", "--name-only", "-z"]
            if base:
                args.append(_require_ref(base))
            stdout = await self._git(root, *args)
            return split_nul(stdout)

        return await self._read(path, "diff_name_only", _op)

    async def diff_file(
        self, path: str | Path, file_path: str, base: str | None = None
    ) -> Result:
        async def _op(root: str) -> str:
            args = ["diff"]
            if base:
                args.append(_require_ref(base))
            args.extend(["--", relative_to_root(root, file_path)])
            return await self._git(root, *args)

        return await self._read(path, "diff_file", _op)

    async def stash_list(self, path: str | Path) -> Result:
        async def _op(root: str) -> list[StashEntry]:
            stdout = await self._git(root, "stash", "list", f"--format=%gd{_FIELD_SEP}%gs")
            entries: list[StashEntry] = []
            for index, line in enumerate(stdout.splitlines()):
                ref, _, message = line.partition(_FIELD_SEP)
                entries.append(StashEntry(index=index, ref=ref, message=message))
            return entries

        return await self._read(path, "stash_list", _op)

    # ── Remote synchronization ───────────────────────────────────────

    async def fetch(
        self,
        path: str | Path,
        remote: str | None = None,
        *,
        branch: str | None = None,
        prune: bool = False,
    ) -> Result:
        async def _op(root: str) -> CommandOutput:
            args = ["fetch"]
            if prune:
                args.append("--prune")
            args.append(self._remote(remote))
            if branch:
                args.append(_require_branch(branch))
            return await self._output(root, "Fetch successful", *args, network=True)

        return await self._mutate(path, "fetch", _op)

    async def pull(
        self,
        path: str | Path,
        remote: str | None = None,
        branch: str | None = None,
        *,
        rebase: bool = False,
        autostash: bool = False,
    ) -> Result:
        async def _op(root: str) -> CommandOutput:
            args = ["pull"]
            if rebase:
                args.append("--rebase")
            if autostash:
                args.append("--autostash")
            if remote or branch:
                args.append(self._remote(remote))
            if branch:
                args.append(_require_branch(branch))
            return await self._output(root, "Pull successful", *args, network=True)

        return await self._mutate(path, "pull", _op)

    async def push(
        self,
        path: str | Path,
        remote: str | None = None,
        branch: str | None = None,
        *,
        set_upstream: bool = False,
        force_with_lease: bool = False,
        tags: bool = False,
    ) -> Result:
        async def _op(root: str) -> CommandOutput:
            args = ["push"]
            if set_upstream:
                args.append("-u")
            if force_with_lease:
                args.append("--force-with-lease")
            if tags:
                args.append("--tags")
            if remote or branch or set_upstream:
                args.append(self._remote(remote))
            if branch:
                args.append(_require_branch(branch))
            code, stdout, stderr = await self._runner.run(
                *args, cwd=Path(root), timeout=self.config.network_timeout_seconds
            )
            output = stderr.strip() or stdout.strip()
            if code != 0:
                raise GitwardError(output or "Push failed")
            return CommandOutput(message="Push successful", details=output)

        return await self._mutate(path, "push", _op)

    async def set_upstream(self, path: str | Path, remote: str, branch: str) -> Result:
        async def _op(root: str) -> CommandOutput:
            upstream = f"{self._remote(remote)}/{_require_branch(branch)}"
            await self._git(root, "branch", f"--set-upstream-to={upstream}")
            return CommandOutput(message=f"Tracking {upstream}")

        return await self._mutate(path, "set_upstream", _op)

    async def sync(
        self, path: str | Path, remote: str | None = None, branch: str | None = None
    ) -> Result:
        async def _op(root: str) -> Any:
            outcome = await self._sync.sync(
                root, self._remote(remote), _require_branch(branch) if branch else None
            )
            if outcome.needs_resolution:
                conflicted = outcome.status.paths("conflicted") if outcome.status else []
                await self.event_bus.emit(
                    RepoEvent(
                        name=CONFLICTS_DETECTED,
                        root=root,
                        operation="sync",
                        data={"conflicted": conflicted},
                    )
                )
            return outcome

        return await self._mutate(path, "sync", _op)

    async def safe_auto_sync(self, path: str | Path) -> Result:
        """Pull only when the branch is clean, tracked, and strictly behind."""
        if await resolve_root(self._runner, path) is None:
            return Result.success(AutoSyncOutcome(skipped="not_a_repo"))
        return await self._mutate(path, "auto_sync", self._sync.auto_sync)

    # ── Index and commits ────────────────────────────────────────────

    async def add_all(self, path: str | Path) -> Result:
        async def _op(root: str) -> CommandOutput:
            return await self._output(root, "Staged all changes", "add", "-A")

        return await self._mutate(path, "add_all", _op)

    async def add_paths(self, path: str | Path, paths: list[str]) -> Result:
        async def _op(root: str) -> CommandOutput:
            rels = _relative_paths(root, paths)
            await self._git(root, "add", "-A", "--", *rels)
            return CommandOutput(message=f"Staged {len(rels)} file(s)", details=", ".join(rels))

        return await self._mutate(path, "add_paths", _op)

    async def reset_paths(self, path: str | Path, paths: list[str]) -> Result:
        async def _op(root: str) -> CommandOutput:
            rels = _relative_paths(root, paths)
            await self._git(root, "reset", "-q", "--", *rels)
            return CommandOutput(message=f"Unstaged {len(rels)} file(s)", details=", ".join(rels))

        return await self._mutate(path, "reset_paths", _op)

    async def commit(
        self, path: str | Path, message: str, *, add_all_before_commit: bool = False
    ) -> Result:
        async def _op(root: str) -> CommitSummary:
            _require_message(message)
            if add_all_before_commit:
                await self._git(root, "add", "-A")
            stdout = await self._git(root, "commit", "-m", message)
            return _commit_summary(stdout, message)

        return await self._mutate(path, "commit", _op)

    async def commit_paths(
        self, path: str | Path, message: str, paths: list[str]
    ) -> Result:
        async def _op(root: str) -> CommitSummary:
            _require_message(message)
            rels = _relative_paths(root, paths)
            await self._git(root, "add", "-A", "--", *rels)
            stdout = await self._git(root, "commit", "-m", message, "--", *rels)
            return _commit_summary(stdout, message)

        return await self._mutate(path, "commit_paths", _op)

    # ── Branches ─────────────────────────────────────────────────────

    async def create_branch(
        self,
        path: str | Path,
        name: str,
        *,
        checkout: bool = True,
        start_point: str | None = None,
    ) -> Result:
        async def _op(root: str) -> CommandOutput:
            branch = _require_branch(name)
            args = ["checkout", "-b", branch] if checkout else ["branch", branch]
            if start_point:
                args.append(_require_ref(start_point))
            action = "Created and switched to" if checkout else "Created"
            return await self._output(root, f"{action} branch '{branch}'", *args)

        return await self._mutate(path, "create_branch", _op)

    async def checkout(self, path: str | Path, ref: str) -> Result:
        async def _op(root: str) -> CommandOutput:
            target = _require_ref(ref)
            return await self._output(root, f"Switched to '{target}'", "checkout", target)

        return await self._mutate(path, "checkout", _op)

    async def delete_branch(
        self, path: str | Path, name: str, *, force: bool = False
    ) -> Result:
        async def _op(root: str) -> CommandOutput:
            branch = _require_branch(name)
            return await self._output(
                root, f"Deleted branch '{branch}'", "branch", "-D" if force else "-d", branch
            )

        return await self._mutate(path, "delete_branch", _op)

    # ── History rewriting and stashes ────────────────────────────────

    async def reset_hard(self, path: str | Path, ref: str = "HEAD") -> Result:
        async def _op(root: str) -> CommandOutput:
            target = _require_ref(ref)
            return await self._output(root, f"Reset to '{target}'", "reset", "--hard", target)

        return await self._mutate(path, "reset_hard", _op)

    async def revert_commit(
        self, path: str | Path, commit: str, *, no_commit: bool = False
    ) -> Result:
        async def _op(root: str) -> CommandOutput:
            args = ["revert", "--no-edit"]
            if no_commit:
                args.append("--no-commit")
            args.append(_require_ref(commit))
            return await self._output(root, f"Reverted {commit}", *args)

        return await self._mutate(path, "revert_commit", _op)

    async def stash_save(
        self,
        path: str | Path,
        message: str | None = None,
        *,
        include_untracked: bool = False,
    ) -> Result:
        async def _op(root: str) -> CommandOutput:
            args = ["stash", "push"]
            if include_untracked:
                args.append("--include-untracked")
            if message:
                args.extend(["-m", message])
            return await self._output(root, "Changes stashed", *args)

        return await self._mutate(path, "stash_save", _op)

    async def stash_pop(self, path: str | Path, ref: str | None = None) -> Result:
        async def _op(root: str) -> CommandOutput:
            args = ["stash", "pop"]
            if ref:
                args.append(_require_ref(ref))
            return await self._output(root, "Stash applied", *args)

        return await self._mutate(path, "stash_pop", _op)

    async def discard_file(self, path: str | Path, file_path: str) -> Result:
        """Drop local changes to one path: delete it if untracked, else restore HEAD."""

        async def _op(root: str) -> DiscardOutcome:
            rel = relative_to_root(root, file_path)
            target = Path(root) / rel
            cwd = Path(root)
            tracked, _, _ = await self._runner.run(
                "ls-files", "--error-unmatch", "--", rel, cwd=cwd
            )
            in_head, _, _ = await self._runner.run("cat-file", "-e", f"HEAD:{rel}", cwd=cwd)
            if in_head == 0:
                await self._git(root, "checkout", "HEAD", "--", rel)
                return DiscardOutcome(path=rel, action="restored")
            if tracked == 0:
                # Staged but never committed
                await self._git(root, "rm", "--cached", "-q", "-r", "--", rel)
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            elif target.exists() or target.is_symlink():
                target.unlink()
            else:
                raise PreconditionError(f"No such file: {rel}")
            return DiscardOutcome(path=rel, action="deleted")

        return await self._mutate(path, "discard_file", _op)

    # ── Merge / rebase state machine ─────────────────────────────────

    async def merge(self, path: str | Path, ref: str) -> Result:
        return await self._mutate(
            path, "merge", lambda root: self._conflicts.merge(root, _require_ref(ref))
        )

    async def merge_abort(self, path: str | Path) -> Result:
        return await self._mutate(path, "merge_abort", self._conflicts.merge_abort)

    async def merge_continue(self, path: str | Path, message: str | None = None) -> Result:
        return await self._mutate(
            path, "merge_continue", lambda root: self._conflicts.merge_continue(root, message)
        )

    async def rebase_start(self, path: str | Path, upstream: str) -> Result:
        return await self._mutate(
            path,
            "rebase_start",
            lambda root: self._conflicts.rebase_start(root, _require_ref(upstream)),
        )

    async def rebase_continue(self, path: str | Path) -> Result:
        return await self._mutate(path, "rebase_continue", self._conflicts.rebase_continue)

    async def rebase_abort(self, path: str | Path) -> Result:
        return await self._mutate(path, "rebase_abort", self._conflicts.rebase_abort)

    async def continue_any(self, path: str | Path, message: str | None = None) -> Result:
        return await self._mutate(
            path, "continue", lambda root: self._conflicts.continue_any(root, message)
        )

    async def choose_ours(self, path: str | Path, file_path: str) -> Result:
        return await self._mutate(
            path, "choose_ours", lambda root: self._conflicts.choose_ours(root, file_path)
        )

    async def choose_theirs(self, path: str | Path, file_path: str) -> Result:
        return await self._mutate(
            path, "choose_theirs", lambda root: self._conflicts.choose_theirs(root, file_path)
        )

    async def mark_resolved(self, path: str | Path, file_path: str) -> Result:
        return await self._mutate(
            path, "mark_resolved", lambda root: self._conflicts.mark_resolved(root, file_path)
        )

    async def revert_resolution(self, path: str | Path, file_path: str) -> Result:
        return await self._mutate(
            path,
            "revert_resolution",
            lambda root: self._conflicts.revert_resolution(root, file_path),
        )

    async def open_mergetool(self, path: str | Path, file_path: str | None = None) -> Result:
        return await self._mutate(
            path, "mergetool", lambda root: self._conflicts.open_mergetool(root, file_path)
        )


def _require_branch(name: str) -> str:
    if not _BRANCH_NAME_RE.match(name):
        raise PreconditionError(f"Invalid branch name: {name}")
    return name


def _require_ref(ref: str) -> str:
    if not _REF_RE.match(ref):
        raise PreconditionError(f"Invalid ref: {ref}")
    return ref


def _require_message(message: str) -> None:
    if not message.strip():
        raise PreconditionError("Commit message must not be empty")


def _relative_paths(root: str, paths: list[str]) -> list[str]:
    if not paths:
        raise PreconditionError("No files specified")
    return [relative_to_root(root, p) for p in paths]


def _commit_summary(stdout: str, message: str) -> CommitSummary:
    """Extract branch and short hash from output like ``[main abc1234] message``."""
    branch = None
    short_hash = ""
    for line in stdout.splitlines():
        if line.startswith("["):
            bracket_end = line.find("]")
            if bracket_end > 0:
                parts = line[1:bracket_end].split()
                if len(parts) >= 2:
                    branch = parts[0]
                    short_hash = parts[-1]
            break
    return CommitSummary(commit=short_hash, branch=branch, summary=message.splitlines()[0])
